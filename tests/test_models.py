"""Tests for the core data model."""

from __future__ import annotations

import math

import pytest


@pytest.mark.parametrize("value,expected", [
    (1.5, 1.5), ("2.25", 2.25), (None, 0.0), ("abc", 0.0),
    (-3.0, 0.0), (math.nan, 0.0), (math.inf, 0.0), (0, 0.0),
])
def test_clean_time(value, expected):
    from readsync.alignment.base import clean_time
    assert clean_time(value) == expected


def test_candidate_from_aeneas_fragment():
    from readsync.alignment.base import AlignmentCandidate
    c = AlignmentCandidate.from_aeneas_fragment(
        {"begin": "1.200", "end": "2.480", "id": "f000001", "lines": ["It was", "happy."]})
    assert c.text == "It was happy."
    assert (c.begin_time, c.end_time) == (1.2, 2.48)


def test_candidate_from_dict_accepts_both_key_styles():
    from readsync.alignment.base import AlignmentCandidate
    a = AlignmentCandidate.from_dict({"text": "x", "beginTime": 1, "endTime": 2})
    b = AlignmentCandidate.from_dict({"text": "x", "begin_time": 1, "end_time": 2})
    assert a == b
    assert a.to_dict() == {"text": "x", "beginTime": 1.0, "endTime": 2.0}


def test_candidate_bad_times_become_zero():
    from readsync.alignment.base import AlignmentCandidate
    c = AlignmentCandidate.from_dict({"text": "x", "beginTime": "NaN", "endTime": None})
    assert (c.begin_time, c.end_time) == (0.0, 0.0)


def test_source_segment_legacy_order_key():
    from readsync.alignment.base import SegmentType, SourceSegment
    s = SourceSegment.from_dict({"id": "p1_s1", "text": "Hi.", "type": "word", "order": 4})
    assert s.position == 4
    assert s.type == SegmentType.word


def test_aligned_segment_dict_shape():
    from readsync.alignment.base import AlignedSegment, MatchQuality, SegmentType
    seg = AlignedSegment(id="p1_s1", text="Hi.", type=SegmentType.sentence,
                         start_time=1.0, end_time=2.5, quality=MatchQuality.fallback, score=12.5)
    d = seg.to_dict()
    assert d["startTime"] == 1.0
    assert d["endTime"] == 2.5
    assert d["duration"] == 1500.0
    assert d["quality"] == "fallback"
    assert AlignedSegment.from_dict(d) == seg


def test_word_timing_dict_shape():
    from readsync.alignment.base import WordTiming
    w = WordTiming(id="p1_s1_w1", parent_id="p1_s1", text="Hi.", start_time=1.0, end_time=1.25)
    d = w.to_dict()
    assert d["parentId"] == "p1_s1"
    assert d["type"] == "word"
    assert d["duration"] == 250.0


def test_sync_result_from_dict_defaults():
    from readsync.alignment.base import SyncResult
    r = SyncResult.from_dict({})
    assert r.sentences == [] and r.words == [] and r.stats == {}


def test_silence_period_duration():
    from readsync.alignment.base import SilencePeriod
    assert SilencePeriod(1.0, 1.75).duration == pytest.approx(0.75)
    assert SilencePeriod.from_dict({"start": "1", "end": 2}).to_dict() == {"start": 1.0, "end": 2.0}
