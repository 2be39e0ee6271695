"""Tests for sync JSON reading and writing."""

from __future__ import annotations

import json


def test_write_and_read_sync_json(tmp_path):
    from readsync.alignment.base import (
        AlignedSegment, MatchQuality, SegmentType, SyncResult, WordTiming,
    )
    from readsync.export.sync_json import read_sync_json, write_sync_json
    result = SyncResult(
        sentences=[AlignedSegment(id="p1_s1", text="Ça va.", type=SegmentType.sentence,
                                  start_time=0.5, end_time=1.5, quality=MatchQuality.matched,
                                  score=210.0)],
        words=[WordTiming(id="p1_s1_w1", parent_id="p1_s1", text="Ça",
                          start_time=0.5, end_time=0.9)],
        stats={"method": "aeneas"},
    )
    out = write_sync_json(result, tmp_path / "nested" / "out.json")
    raw = out.read_text(encoding="utf-8")
    assert "Ça va." in raw
    restored = read_sync_json(out)
    assert restored.sentences == result.sentences
    assert restored.words == result.words
    assert restored.stats == {"method": "aeneas"}


def test_load_segments_assigns_positions(write_json):
    from readsync.export.sync_json import load_segments
    p = write_json("segs.json", [{"id": "a", "text": "One."}, {"id": "b", "text": "Two."}])
    assert [(s.id, s.position) for s in load_segments(p)] == [("a", 0), ("b", 1)]


def test_load_segments_keeps_explicit_positions(write_json):
    from readsync.export.sync_json import load_segments
    p = write_json("segs.json", {"segments": [{"id": "a", "text": "One.", "position": 7}]})
    assert load_segments(p)[0].position == 7


def test_load_candidates_formats(write_json):
    from readsync.export.sync_json import load_candidates
    plain = write_json("a.json", [{"text": "Hi.", "beginTime": 0, "endTime": 1}])
    wrapped = write_json("b.json", {"candidates": [{"text": "Hi.", "beginTime": 0, "endTime": 1}]})
    aeneas = write_json("c.json", {"fragments": [{"begin": "0.000", "end": "1.000", "lines": ["Hi."]}]})
    assert load_candidates(plain) == load_candidates(wrapped) == load_candidates(aeneas)


def test_silences_roundtrip(tmp_path, write_json):
    from readsync.alignment.base import SilencePeriod
    from readsync.export.sync_json import load_silences, write_silences
    out = write_silences([SilencePeriod(0.0, 0.42)], tmp_path / "sil.json")
    assert json.loads(out.read_text(encoding="utf-8")) == {"silences": [{"start": 0.0, "end": 0.42}]}
    assert load_silences(out) == [SilencePeriod(0.0, 0.42)]
    bare = write_json("bare.json", [{"start": 1, "end": 2}])
    assert load_silences(bare) == [SilencePeriod(1.0, 2.0)]
