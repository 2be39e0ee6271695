"""End-to-end sync: XHTML + narration audio → per-id timestamps.

extract → normalize audio → align → reconcile → propagate words → snap to
silence (or pause adjustment when snapping is off or finds nothing).
"""

from __future__ import annotations

import re
import subprocess
import tempfile
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from readsync.alignment.base import (
    AlignedSegment,
    AlignerBackend,
    MatchQuality,
    SegmentType,
    SilencePeriod,
    SyncResult,
    WordTiming,
)
from readsync.extract.segments import build_text_lines, extract_all_child_words, extract_segments
from readsync.preprocess.ffmpeg_io import convert_to_wav, detect_silence_periods, prepare_for_alignment
from readsync.preprocess.vad import detect_silences_vad
from readsync.refine.linear_spread import linear_spread
from readsync.refine.reconcile import reconcile
from readsync.refine.silence import (
    adjust_for_pauses,
    refine_segments_with_silence,
    refine_words_with_silence,
)
from readsync.refine.word_timing import propagate_all
from readsync.utils.config import AlignerConfig, AppConfig, SilenceConfig
from readsync.utils.logging import debug, info, success, warn

PAGE_BREAK = "\n<!-- PAGE_BREAK -->\n"

_PAGE_RE = re.compile(r"^page(\d+)_")
_LEGACY_PAGE_RE = re.compile(r"^p(\d+)")

_EXTERNAL_ERRORS = (RuntimeError, OSError, ValueError, subprocess.SubprocessError)


def get_backend(cfg: AlignerConfig) -> AlignerBackend:
    if cfg.backend == "aeneas":
        from readsync.alignment.aeneas_backend import AeneasBackend
        return AeneasBackend(python_cmd=cfg.python_cmd, timeout=cfg.timeout,
                             keep_debug_output=cfg.keep_debug_output)
    raise ValueError(f"Unknown aligner backend: {cfg.backend!r}")


def page_number_for_id(segment_id: str) -> int:
    """Page of a segment id: "page3_p1_s2" → 3, legacy "p3_s2" → 3, else 1."""
    m = _PAGE_RE.match(segment_id) or _LEGACY_PAGE_RE.match(segment_id)
    return int(m.group(1)) if m else 1


def detect_silences(audio_path: Path, cfg: SilenceConfig,
                    work_dir: Path | None = None) -> list[SilencePeriod]:
    if cfg.detector == "ffmpeg":
        return detect_silence_periods(audio_path, cfg.threshold_db, cfg.min_duration)
    if cfg.detector == "webrtcvad":
        wav = audio_path
        if audio_path.suffix.lower() != ".wav":
            target_dir = work_dir or audio_path.parent
            wav = convert_to_wav(audio_path, target_dir / f"{audio_path.stem}_vad.wav")
        return detect_silences_vad(wav, aggressiveness=cfg.vad_aggressiveness,
                                   min_silence_ms=int(cfg.min_duration * 1000))
    raise ValueError(f"Unknown silence detector: {cfg.detector!r}")


def refine_with_silence(sentences: list[AlignedSegment], words: list[WordTiming],
                        silences: list[SilencePeriod],
                        cfg: SilenceConfig | None = None) -> tuple[list[AlignedSegment], list[WordTiming]]:
    cfg = cfg or SilenceConfig()
    window = cfg.window_ms / 1000
    return (
        refine_segments_with_silence(sentences, silences, window, cfg.workers),
        refine_words_with_silence(words, silences, window, cfg.workers),
    )


def _split_results(aligned: list[AlignedSegment]) -> tuple[list[AlignedSegment], list[WordTiming]]:
    sentences = [a for a in aligned if a.type != SegmentType.word]
    words = [
        WordTiming(id=a.id, parent_id="", text=a.text,
                   start_time=a.start_time, end_time=a.end_time)
        for a in aligned if a.type == SegmentType.word
    ]
    return sentences, words


def _stats(sentences: list[AlignedSegment], words: list[WordTiming], method: str,
           refined: bool, **extra: Any) -> dict[str, Any]:
    total = sentences[-1].end_time - sentences[0].start_time if sentences else 0.0
    return {
        "total_sentences": len(sentences),
        "total_words": len(words),
        "total_duration": round(total, 3),
        "method": method,
        "refined": refined,
        "fallback_matches": sum(1 for s in sentences if s.quality == MatchQuality.fallback),
        **extra,
    }


def _post_process(sentences: list[AlignedSegment], words: list[WordTiming],
                  audio_path: Path, cfg: AppConfig,
                  work_dir: Path) -> tuple[list[AlignedSegment], list[WordTiming], bool]:
    refined = False
    if cfg.silence.refine:
        try:
            silences = detect_silences(audio_path, cfg.silence, work_dir)
            if silences:
                sentences, words = refine_with_silence(sentences, words, silences, cfg.silence)
                refined = True
            else:
                info("No silence periods detected, skipping refinement")
        except _EXTERNAL_ERRORS as e:
            warn(f"Silence refinement failed, using unrefined timings: {e}")

    if not refined and cfg.silence.adjust_pauses and sentences:
        try:
            pauses = detect_silence_periods(audio_path, cfg.silence.pause_threshold_db,
                                            cfg.silence.pause_min_duration)
            sentences = adjust_for_pauses(
                sentences, pauses,
                min_gap=cfg.silence.pause_min_gap,
                min_silence=cfg.silence.pause_min_silence,
                apply_preroll_offset=cfg.silence.apply_preroll_offset,
            )
        except _EXTERNAL_ERRORS as e:
            warn(f"Pause adjustment failed, keeping timings: {e}")
    return sentences, words, refined


def auto_sync(audio_path: Path, xhtml: str, backend: AlignerBackend | None = None,
              config: AppConfig | None = None, *, work_dir: Path | None = None) -> SyncResult:
    """Align `xhtml`'s read-aloud segments against `audio_path`.

    Raises ValueError when the document has no syncable segments and
    FileNotFoundError when the audio is missing; aligner failures propagate as
    RuntimeError.
    """
    cfg = config or AppConfig()
    audio_path = Path(audio_path)
    if not audio_path.exists():
        raise FileNotFoundError(f"Audio file not found: {audio_path}")

    ext = cfg.extraction
    segments = extract_segments(
        xhtml, ext.granularity,
        exclude_ids=ext.exclude_ids,
        exclude_patterns=ext.exclude_patterns,
        disable_default_exclusions=ext.disable_default_exclusions,
    )
    if not segments:
        raise ValueError("No syncable text segments found in document")

    backend = backend or get_backend(cfg.aligner)
    started = time.time()

    with tempfile.TemporaryDirectory(prefix="readsync_", dir=work_dir) as tmp:
        tmp_dir = Path(tmp)
        if cfg.audio.normalize:
            aligned_audio = prepare_for_alignment(
                audio_path, tmp_dir,
                sample_rate=cfg.audio.sample_rate,
                max_drift=cfg.audio.max_duration_drift,
            )
        else:
            aligned_audio = audio_path

        lines = build_text_lines(segments)
        candidates = backend.align(aligned_audio, lines, language=cfg.aligner.language,
                                   work_dir=tmp_dir)
        aligned = reconcile(segments, candidates, cfg.reconcile)
        sentences, words = _split_results(aligned)
        debug(f"Separated: {len(sentences)} sentences, {len(words)} words")

        if cfg.word_timing.enabled and ext.granularity == "sentence" and sentences:
            words_by_sentence = extract_all_child_words(xhtml, [s.id for s in sentences])
            words = propagate_all(sentences, words_by_sentence, cfg.word_timing,
                                  workers=cfg.word_timing.workers)

        sentences, words, refined = _post_process(sentences, words, aligned_audio, cfg, tmp_dir)

    stats = _stats(
        sentences, words, backend.name, refined,
        candidates=len(candidates),
        placeholders=sum(1 for s in aligned if s.quality == MatchQuality.placeholder),
        runtime_sec=round(time.time() - started, 2),
    )
    success(f"Auto-sync complete: {len(sentences)} sentences, {len(words)} words")
    return SyncResult(sentences=sentences, words=words, stats=stats)


@dataclass
class BatchSyncResult:
    pages: dict[int, SyncResult] = field(default_factory=dict)
    stats: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "pages": {str(n): r.to_dict() for n, r in sorted(self.pages.items())},
            "stats": dict(self.stats),
        }


def group_by_page(result: SyncResult) -> dict[int, SyncResult]:
    pages: dict[int, SyncResult] = {}
    for sentence in result.sentences:
        pages.setdefault(page_number_for_id(sentence.id), SyncResult()).sentences.append(sentence)
    for word in result.words:
        pages.setdefault(page_number_for_id(word.id), SyncResult()).words.append(word)
    return pages


def batch_auto_sync(audio_path: Path, pages: list[str], backend: AlignerBackend | None = None,
                    config: AppConfig | None = None, *,
                    work_dir: Path | None = None) -> BatchSyncResult:
    """Sync several pages narrated in one audio file, split back per page."""
    info(f"Batch auto-sync for {len(pages)} pages")
    combined = auto_sync(audio_path, PAGE_BREAK.join(pages), backend, config, work_dir=work_dir)
    by_page = group_by_page(combined)
    info(f"Batch result spans {len(by_page)} pages")
    return BatchSyncResult(pages=by_page, stats=combined.stats)


def linear_spread_sync(xhtml: str, start: float, end: float,
                       config: AppConfig | None = None) -> SyncResult:
    """Aligner-free sync: spread [start, end] over the document's segments."""
    cfg = config or AppConfig()
    ext = cfg.extraction
    segments = extract_segments(
        xhtml, ext.granularity,
        exclude_ids=ext.exclude_ids,
        exclude_patterns=ext.exclude_patterns,
        disable_default_exclusions=ext.disable_default_exclusions,
    )
    if not segments:
        warn("No text segments found for linear spread")
        return SyncResult(stats=_stats([], [], "linear_spread", False))

    spread = linear_spread(segments, start, end, cfg.linear_spread)
    sentences, words = _split_results(spread)
    if cfg.word_timing.enabled and ext.granularity == "sentence" and sentences:
        words = propagate_all(sentences, extract_all_child_words(xhtml, [s.id for s in sentences]),
                              cfg.word_timing, workers=cfg.word_timing.workers)
    return SyncResult(sentences=sentences, words=words,
                      stats=_stats(sentences, words, "linear_spread", False))
