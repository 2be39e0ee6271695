"""Tests for word timing propagation inside sentences."""

from __future__ import annotations

import pytest


def _sentence(start: float, end: float, sid: str = "p1_s1"):
    from readsync.alignment.base import AlignedSegment, SegmentType
    return AlignedSegment(id=sid, text="", type=SegmentType.sentence,
                          start_time=start, end_time=end)


def _words(*texts: str, prefix: str = "p1_s1"):
    from readsync.alignment.base import WordRef
    return [WordRef(id=f"{prefix}_w{i}", text=t) for i, t in enumerate(texts, 1)]


# ── Weights ──────────────────────────────────────────────────────────────────

@pytest.mark.parametrize("text,weight", [
    ("a", 1.5), ("of", 2.0), ("the", 3.6), ("ran.", 4.8), ("horse", 5.0), ("", 1.5),
])
def test_word_weight(text, weight):
    from readsync.refine.word_timing import word_weight
    assert word_weight(text) == pytest.approx(weight)


def test_is_punctuated():
    from readsync.refine.word_timing import is_punctuated
    assert is_punctuated("end.")
    assert is_punctuated("wait,")
    assert not is_punctuated("don't")
    assert not is_punctuated("")


# ── Propagation ──────────────────────────────────────────────────────────────

class TestPropagate:

    LONG = ("Once", "upon", "a", "time,", "there", "lived", "a", "curious", "pony.")

    def test_ids_and_parent(self):
        from readsync.refine.word_timing import propagate
        timings = propagate(_sentence(2.0, 8.0), _words(*self.LONG))
        assert [t.id for t in timings] == [f"p1_s1_w{i}" for i in range(1, 10)]
        assert all(t.parent_id == "p1_s1" for t in timings)
        assert timings[0].start_time == 2.0

    def test_monotonic_and_padded(self):
        from readsync.refine.word_timing import propagate
        timings = propagate(_sentence(0.0, 10.0), _words(*self.LONG))
        for prev, cur in zip(timings, timings[1:]):
            assert cur.start_time >= prev.end_time + 0.12 - 2e-3

    def test_coverage_within_sentence(self):
        from readsync.refine.word_timing import propagate
        timings = propagate(_sentence(0.0, 10.0), _words(*self.LONG))
        durations = sum(t.end_time - t.start_time for t in timings)
        padding = 8 * 0.12 + 1 * 0.2  # "time," gets the pause; "pony." is last
        assert durations + padding <= 10.0 + 1e-6
        assert timings[-1].end_time <= 10.0 + 1e-6

    def test_min_duration_respected(self):
        from readsync.refine.word_timing import propagate
        timings = propagate(_sentence(0.0, 4.0), _words("I", "am", "extraordinarily", "tired"))
        assert all(t.end_time - t.start_time >= 0.25 - 1e-3 for t in timings)

    def test_punctuation_pause_inserted(self):
        from readsync.refine.word_timing import propagate
        timings = propagate(_sentence(0.0, 10.0), _words("Stop.", "Then", "go"))
        gap_after_punct = timings[1].start_time - timings[0].end_time
        gap_plain = timings[2].start_time - timings[1].end_time
        assert gap_after_punct == pytest.approx(0.32, abs=2e-3)
        assert gap_plain == pytest.approx(0.12, abs=2e-3)

    def test_short_sentence_uses_unpadded_split(self):
        from readsync.refine.word_timing import propagate
        timings = propagate(_sentence(1.0, 1.4), _words("one", "two", "three", "four", "five"))
        assert len(timings) == 5
        for prev, cur in zip(timings, timings[1:]):
            assert cur.start_time == prev.end_time
        assert all(t.end_time - t.start_time >= 0.25 - 1e-3 for t in timings)

    def test_no_words(self):
        from readsync.refine.word_timing import propagate
        assert propagate(_sentence(0.0, 1.0), []) == []

    def test_deterministic(self):
        from readsync.refine.word_timing import propagate
        a = propagate(_sentence(0.0, 5.0), _words(*self.LONG))
        b = propagate(_sentence(0.0, 5.0), _words(*self.LONG))
        assert [t.to_dict() for t in a] == [t.to_dict() for t in b]

    def test_config_overrides(self):
        from readsync.refine.word_timing import propagate
        from readsync.utils.config import WordTimingConfig
        cfg = WordTimingConfig(word_padding=0.0, punctuation_pause=0.0)
        timings = propagate(_sentence(0.0, 3.0), _words("abcde", "fghij", "klmno"), cfg)
        assert [t.start_time for t in timings] == [0.0, 1.0, 2.0]
        assert timings[-1].end_time == 3.0

    def test_nan_sentence_end_clamped(self):
        import math
        from readsync.refine.word_timing import propagate
        timings = propagate(_sentence(1.0, math.nan), _words("hello", "world"))
        assert all(math.isfinite(t.start_time) and math.isfinite(t.end_time) for t in timings)
        assert [(t.start_time, t.end_time) for t in timings] == [(1.0, 1.25), (1.25, 1.5)]

    def test_negative_sentence_span_clamped(self):
        from readsync.refine.word_timing import propagate
        timings = propagate(_sentence(2.0, 1.0), _words("hello", "world"))
        assert [(t.start_time, t.end_time) for t in timings] == [(2.0, 2.25), (2.25, 2.5)]


# ── Fan-out ──────────────────────────────────────────────────────────────────

def test_propagate_all_keeps_sentence_order():
    from readsync.refine.word_timing import propagate_all
    sentences = [_sentence(i * 5.0, i * 5.0 + 4.0, sid=f"s{i}") for i in range(6)]
    words = {f"s{i}": _words("some", "words", "here.", prefix=f"s{i}") for i in range(6)}
    del words["s3"]
    serial = propagate_all(sentences, words, workers=1)
    threaded = propagate_all(sentences, words, workers=4)
    assert [t.to_dict() for t in serial] == [t.to_dict() for t in threaded]
    assert [t.parent_id for t in serial][::3] == ["s0", "s1", "s2", "s4", "s5"]


def test_propagate_all_without_words():
    from readsync.refine.word_timing import propagate_all
    assert propagate_all([_sentence(0.0, 1.0)], {}) == []
