"""Silence-aware boundary refinement.

Aligner boundaries tend to land a little inside the surrounding pauses. Snapping
a span's start to the end of the silence just before it, and its end to the
start of the silence just after it, makes highlighting begin and end with the
voice.
"""

from __future__ import annotations

import math
from concurrent.futures import ThreadPoolExecutor
from dataclasses import replace
from typing import TypeVar

from readsync.alignment.base import AlignedSegment, SilencePeriod, WordTiming
from readsync.utils.logging import debug, info

T = TypeVar("T", AlignedSegment, WordTiming)

MIN_SEGMENT_DURATION = 0.1
PREROLL_MAX_START = 0.5
PREROLL_MIN_END = 0.1


def clean_silences(silences: list[SilencePeriod]) -> list[SilencePeriod]:
    """Time-ordered copy without zero or negative length periods."""
    valid = [s for s in silences if s.end > s.start]
    if len(valid) != len(silences):
        debug(f"Dropped {len(silences) - len(valid)} invalid silence periods")
    return sorted(valid, key=lambda s: s.start)


def snap(start: float, end: float, silences: list[SilencePeriod],
         window: float = 0.2,
         min_duration: float = MIN_SEGMENT_DURATION) -> tuple[float, float]:
    """Move `start` to the end of the nearest preceding silence and `end` to the
    start of the nearest following silence, each within `window` seconds.

    Spans without a qualifying silence pass through unchanged. The result never
    has end <= start.
    """
    if math.isnan(window) or window < 0:
        window = 0.0

    best_start: SilencePeriod | None = None
    best_end: SilencePeriod | None = None
    for period in silences:
        if start - window <= period.end <= start:
            if best_start is None or start - period.end < start - best_start.end:
                best_start = period
        if end <= period.start <= end + window:
            if best_end is None or period.start - end < best_end.start - end:
                best_end = period

    new_start = round(best_start.end if best_start is not None else start, 3)
    new_end = round(best_end.start if best_end is not None else end, 3)
    if new_end <= new_start:
        new_end = round(new_start + min_duration, 3)
    return new_start, new_end


def _refine(items: list[T], silences: list[SilencePeriod], window: float,
            workers: int) -> list[T]:
    ordered = clean_silences(silences)

    def one(item: T) -> T:
        new_start, new_end = snap(item.start_time, item.end_time, ordered, window)
        return replace(item, start_time=new_start, end_time=new_end)

    if workers > 1 and len(items) > 1:
        with ThreadPoolExecutor(max_workers=workers) as pool:
            return list(pool.map(one, items))
    return [one(item) for item in items]


def _count_moved(before: list[T], after: list[T]) -> int:
    return sum(1 for a, b in zip(before, after)
               if (a.start_time, a.end_time) != (b.start_time, b.end_time))


def refine_segments_with_silence(segments: list[AlignedSegment],
                                 silences: list[SilencePeriod],
                                 window: float = 0.2,
                                 workers: int = 1) -> list[AlignedSegment]:
    refined = _refine(segments, silences, window, workers)
    info(f"Silence snap: {_count_moved(segments, refined)}/{len(segments)} segments adjusted")
    return refined


def refine_words_with_silence(words: list[WordTiming],
                              silences: list[SilencePeriod],
                              window: float = 0.2,
                              workers: int = 1) -> list[WordTiming]:
    refined = _refine(words, silences, window, workers)
    debug(f"Silence snap: {_count_moved(words, refined)}/{len(words)} words adjusted")
    return refined


def find_preroll(silences: list[SilencePeriod]) -> SilencePeriod | None:
    """Leading silence before the narration starts, if any."""
    for period in silences:
        if period.start < PREROLL_MAX_START and period.end > PREROLL_MIN_END:
            return period
    return None


def _silence_in_gap(silences: list[SilencePeriod], gap_start: float, gap_end: float,
                    min_silence: float) -> SilencePeriod | None:
    for period in silences:
        if period.start >= gap_start and period.end <= gap_end and period.duration >= min_silence:
            return period
    return None


def adjust_for_pauses(sentences: list[AlignedSegment], silences: list[SilencePeriod], *,
                      min_gap: float = 0.1, min_silence: float = 0.15,
                      apply_preroll_offset: bool = False) -> list[AlignedSegment]:
    """Extend each sentence end through the pause that follows it.

    Narration voices leave long pauses between sentences; holding the highlight
    through the pause avoids a flicker of "nothing playing". A leading pre-roll
    silence is reported, and only shifted into the timestamps when
    `apply_preroll_offset` is set, since the aligner already accounts for it.
    """
    if not sentences or not silences:
        return list(sentences)

    ordered = clean_silences(silences)
    preroll = find_preroll(ordered)
    offset = 0.0
    if preroll is not None:
        if apply_preroll_offset:
            offset = preroll.end
            info(f"Applying {preroll.end * 1000:.0f}ms pre-roll offset")
        else:
            debug(f"Detected {preroll.end * 1000:.0f}ms pre-roll silence, not applying offset")

    adjusted: list[AlignedSegment] = []
    extended = 0
    last = len(sentences) - 1
    for i, sentence in enumerate(sentences):
        end = sentence.end_time
        if i < last:
            nxt = sentences[i + 1]
            if nxt.start_time - sentence.end_time > min_gap:
                pause = _silence_in_gap(ordered, sentence.end_time, nxt.start_time, min_silence)
                if pause is not None:
                    debug(f"  {sentence.id}: end extended by "
                          f"{(pause.end - sentence.end_time) * 1000:.0f}ms for pause")
                    end = pause.end
                    extended += 1
        adjusted.append(replace(
            sentence,
            start_time=round(sentence.start_time + offset, 3),
            end_time=round(end + offset, 3),
        ))

    info(f"Pause adjustment: {extended}/{len(sentences)} sentences extended")
    return adjusted

