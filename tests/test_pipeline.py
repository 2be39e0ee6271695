"""End-to-end pipeline tests with a precomputed aligner and mocked ffmpeg."""

from __future__ import annotations

from unittest.mock import patch

import pytest


SAMPLE_FRAGMENTS = [("The little horse ran.", 0.0, 1.84), ("It was happy.", 1.84, 3.12)]


def _backend(candidate, fragments=SAMPLE_FRAGMENTS):
    from readsync.alignment.aeneas_backend import PrecomputedBackend
    return PrecomputedBackend([candidate(*f) for f in fragments])


def _config(refine=False, pauses=False, **silence):
    from readsync.utils.config import AppConfig, SilenceConfig
    return AppConfig(silence=SilenceConfig(refine=refine, adjust_pauses=pauses, **silence))


# ── auto_sync ────────────────────────────────────────────────────────────────

class TestAutoSync:

    def test_sentences_and_words(self, audio_file, sample_xhtml, candidate, tmp_path):
        from readsync.alignment.base import MatchQuality
        from readsync.pipeline import auto_sync
        result = auto_sync(audio_file, sample_xhtml, _backend(candidate), _config(),
                           work_dir=tmp_path)
        assert [s.id for s in result.sentences] == ["page1_p1_s1", "page1_p1_s2"]
        assert [(s.start_time, s.end_time) for s in result.sentences] == [(0.0, 1.84), (1.84, 3.12)]
        assert all(s.quality == MatchQuality.matched for s in result.sentences)
        assert len(result.words) == 7
        assert result.words[0].parent_id == "page1_p1_s1"
        assert result.words[-1].id == "page1_p1_s2_w3"
        assert list(tmp_path.glob("readsync_*")) == []

    def test_stats(self, audio_file, sample_xhtml, candidate):
        from readsync.pipeline import auto_sync
        stats = auto_sync(audio_file, sample_xhtml, _backend(candidate), _config()).stats
        assert stats["total_sentences"] == 2
        assert stats["total_words"] == 7
        assert stats["total_duration"] == pytest.approx(3.12)
        assert stats["method"] == "precomputed"
        assert stats["refined"] is False
        assert stats["fallback_matches"] == 0
        assert stats["candidates"] == 2
        assert stats["placeholders"] == 0

    def test_words_disabled(self, audio_file, sample_xhtml, candidate):
        from readsync.pipeline import auto_sync
        cfg = _config()
        cfg.word_timing.enabled = False
        assert auto_sync(audio_file, sample_xhtml, _backend(candidate), cfg).words == []

    def test_word_granularity_results_are_words(self, audio_file, sample_xhtml, candidate):
        from readsync.pipeline import auto_sync
        cfg = _config()
        cfg.extraction.granularity = "word"
        words = ["The", "little", "horse", "ran.", "It", "was", "happy."]
        frags = [(w, i * 0.5, i * 0.5 + 0.4) for i, w in enumerate(words)]
        result = auto_sync(audio_file, sample_xhtml, _backend(candidate, frags), cfg)
        assert result.sentences == []
        assert [w.text for w in result.words] == words
        assert all(w.parent_id == "" for w in result.words)

    def test_no_candidates_gives_placeholders(self, audio_file, sample_xhtml, candidate):
        from readsync.alignment.base import MatchQuality
        from readsync.pipeline import auto_sync
        result = auto_sync(audio_file, sample_xhtml, _backend(candidate, []), _config())
        assert all(s.quality == MatchQuality.placeholder for s in result.sentences)
        assert result.stats["placeholders"] == 2

    def test_missing_audio(self, tmp_path, sample_xhtml, candidate):
        from readsync.pipeline import auto_sync
        with pytest.raises(FileNotFoundError):
            auto_sync(tmp_path / "missing.mp3", sample_xhtml, _backend(candidate), _config())

    def test_no_segments(self, audio_file, candidate):
        from readsync.pipeline import auto_sync
        with pytest.raises(ValueError, match="No syncable"):
            auto_sync(audio_file, "<html><body><p>plain</p></body></html>",
                      _backend(candidate), _config())

    def test_backend_failure_propagates(self, audio_file, sample_xhtml):
        from readsync.alignment.base import AlignerBackend
        from readsync.pipeline import auto_sync

        class Broken(AlignerBackend):
            name = "broken"

            def align(self, audio_path, text_lines, language="eng", **kwargs):
                raise RuntimeError("aeneas alignment failed: espeak missing")

        with pytest.raises(RuntimeError, match="espeak"):
            auto_sync(audio_file, sample_xhtml, Broken(), _config())


# ── Silence refinement and pause adjustment ──────────────────────────────────

class TestPostProcess:

    def test_refine_snaps_to_silence(self, audio_file, sample_xhtml, candidate):
        from readsync.alignment.base import SilencePeriod
        from readsync.pipeline import auto_sync
        with patch("readsync.pipeline.detect_silence_periods",
                   return_value=[SilencePeriod(1.9, 2.0)]) as det:
            result = auto_sync(audio_file, sample_xhtml, _backend(candidate),
                               _config(refine=True, pauses=True))
        assert result.sentences[0].end_time == 1.9
        assert result.stats["refined"] is True
        det.assert_called_once()

    def test_refine_failure_keeps_timings(self, audio_file, sample_xhtml, candidate):
        from readsync.pipeline import auto_sync
        with patch("readsync.pipeline.detect_silence_periods",
                   side_effect=RuntimeError("ffmpeg missing")):
            result = auto_sync(audio_file, sample_xhtml, _backend(candidate),
                               _config(refine=True, pauses=True))
        assert [(s.start_time, s.end_time) for s in result.sentences] == [(0.0, 1.84), (1.84, 3.12)]
        assert result.stats["refined"] is False

    def test_pause_adjustment_when_refine_off(self, audio_file, sample_xhtml, candidate):
        from readsync.pipeline import auto_sync
        with patch("readsync.pipeline.detect_silence_periods", return_value=[]) as det:
            auto_sync(audio_file, sample_xhtml, _backend(candidate), _config(pauses=True))
        det.assert_called_once_with(audio_file, -35.0, 0.1)

    def test_nothing_detected_when_both_off(self, audio_file, sample_xhtml, candidate):
        from readsync.pipeline import auto_sync
        with patch("readsync.pipeline.detect_silence_periods") as det:
            auto_sync(audio_file, sample_xhtml, _backend(candidate), _config())
        det.assert_not_called()

    def test_refine_with_silence_moves_words_too(self):
        from readsync.alignment.base import AlignedSegment, SegmentType, SilencePeriod, WordTiming
        from readsync.pipeline import refine_with_silence
        sentences = [AlignedSegment(id="s", text="", type=SegmentType.sentence,
                                    start_time=1.0, end_time=2.0)]
        words = [WordTiming(id="w", parent_id="s", text="x", start_time=1.0, end_time=2.0)]
        new_s, new_w = refine_with_silence(sentences, words, [SilencePeriod(0.5, 0.9)])
        assert new_s[0].start_time == 0.9
        assert new_w[0].start_time == 0.9


def test_detect_silences_unknown_detector(audio_file):
    from readsync.pipeline import detect_silences
    from readsync.utils.config import SilenceConfig
    with pytest.raises(ValueError):
        detect_silences(audio_file, SilenceConfig(detector="praat"))


def test_detect_silences_vad_converts_non_wav(tmp_path):
    from readsync.pipeline import detect_silences
    from readsync.utils.config import SilenceConfig
    mp3 = tmp_path / "book.mp3"
    with patch("readsync.pipeline.convert_to_wav", return_value=tmp_path / "book_vad.wav") as conv, \
            patch("readsync.pipeline.detect_silences_vad", return_value=[]) as vad:
        detect_silences(mp3, SilenceConfig(detector="webrtcvad", min_duration=0.08), tmp_path)
    conv.assert_called_once_with(mp3, tmp_path / "book_vad.wav")
    assert vad.call_args.kwargs["min_silence_ms"] == 80


# ── Backends ─────────────────────────────────────────────────────────────────

def test_get_backend():
    from readsync.alignment.aeneas_backend import AeneasBackend
    from readsync.pipeline import get_backend
    from readsync.utils.config import AlignerConfig
    backend = get_backend(AlignerConfig(python_cmd="python3", timeout=60))
    assert isinstance(backend, AeneasBackend)
    assert backend.timeout == 60
    with pytest.raises(ValueError):
        get_backend(AlignerConfig(backend="whisper"))


# ── Pages ────────────────────────────────────────────────────────────────────

@pytest.mark.parametrize("segment_id,page", [
    ("page3_p1_s2", 3), ("page12_p1_s1_w4", 12), ("p7_s1", 7),
    ("paragraph_s1", 1), ("chapter_s1", 1),
])
def test_page_number_for_id(segment_id, page):
    from readsync.pipeline import page_number_for_id
    assert page_number_for_id(segment_id) == page


def test_batch_auto_sync_groups_pages(audio_file, candidate, page_factory):
    from readsync.pipeline import batch_auto_sync
    pages = [page_factory(1, ["One fish.", "Two fish."]), page_factory(2, ["Red fish."])]
    frags = [("One fish.", 0.0, 1.0), ("Two fish.", 1.2, 2.0), ("Red fish.", 2.5, 3.5)]
    result = batch_auto_sync(audio_file, pages, _backend(candidate, frags), _config())
    assert sorted(result.pages) == [1, 2]
    assert [s.id for s in result.pages[1].sentences] == ["page1_p1_s1", "page1_p1_s2"]
    assert [s.id for s in result.pages[2].sentences] == ["page2_p1_s1"]
    d = result.to_dict()
    assert list(d["pages"]) == ["1", "2"]
    assert d["stats"]["total_sentences"] == 3


# ── Linear spread ────────────────────────────────────────────────────────────

def test_linear_spread_sync(sample_xhtml):
    from readsync.alignment.base import MatchQuality
    from readsync.pipeline import linear_spread_sync
    result = linear_spread_sync(sample_xhtml, 0.0, 10.0)
    assert [s.id for s in result.sentences] == ["page1_p1_s1", "page1_p1_s2"]
    assert all(s.quality == MatchQuality.fallback for s in result.sentences)
    assert len(result.words) == 7
    assert result.stats["method"] == "linear_spread"
    assert result.stats["fallback_matches"] == 2


def test_linear_spread_sync_empty_document():
    from readsync.pipeline import linear_spread_sync
    result = linear_spread_sync("<p>nothing</p>", 0.0, 10.0)
    assert result.sentences == []
    assert result.stats["total_sentences"] == 0
