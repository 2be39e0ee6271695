"""Alignment reconciliation: map aligner fragments back onto source segments.

The forced aligner is fed one text line per source segment, but the fragments it
returns do not always line up 1:1 (it may split or merge lines), and the same
text can occur several times in a book (a chapter title in the table of
contents and again at the chapter start). Matching by index alone then drifts
by tens of seconds without any visible error.

Each segment is matched inside a small window around a forward-only cursor,
scoring candidates on three components:

- text: exact > superset > subset; no overlap vetoes the candidate
- proximity: close to the cursor (early segments favour indices at or before
  their own position)
- timing: close to where the segment should fall if speech were uniform, with
  an absolute ceiling for the first part of the book

Every segment gets exactly one result. Rejected segments fall back to the next
unused fragment so the output stays usable, and are flagged as such.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass, field

from readsync.alignment.base import (
    AlignedSegment,
    AlignmentCandidate,
    MatchQuality,
    SourceSegment,
)
from readsync.utils.config import ReconcileConfig
from readsync.utils.logging import debug, info, warn

_WS_RE = re.compile(r"\s+")


def normalize_text(text: str) -> str:
    return _WS_RE.sub(" ", text or "").strip().casefold()


@dataclass
class ScanState:
    """Cursor state carried from one segment to the next."""
    fragment_index: int = 0
    results: list[AlignedSegment] = field(default_factory=list)


@dataclass(frozen=True)
class SegmentContext:
    index: int
    expected: float
    tolerance: float
    early: bool
    very_early: bool
    early_ceiling: float
    text: str


def segment_context(index: int, segment: SourceSegment, n_segments: int,
                    total_duration: float, cfg: ReconcileConfig) -> SegmentContext:
    return SegmentContext(
        index=index,
        expected=total_duration * (index / n_segments) if n_segments else 0.0,
        tolerance=total_duration * cfg.tolerance_fraction,
        early=index < n_segments * cfg.early_fraction,
        very_early=index < n_segments * cfg.very_early_fraction,
        early_ceiling=min(cfg.early_ceiling_seconds, total_duration * cfg.early_ceiling_fraction),
        text=normalize_text(segment.text),
    )


def search_window(ctx: SegmentContext, fragment_index: int,
                  candidates: list[AlignmentCandidate], cfg: ReconcileConfig) -> list[int]:
    """Candidate indices to score for one segment, in index order."""
    if ctx.very_early:
        reach = fragment_index
    elif ctx.early:
        reach = min(cfg.early_lookbehind, fragment_index)
    else:
        reach = cfg.lookbehind
    lo = max(0, fragment_index - reach)
    hi = min(len(candidates), fragment_index + cfg.lookahead)
    window = set(range(lo, hi))

    if ctx.early and len(ctx.text) > cfg.forced_range_min_chars:
        for j, cand in enumerate(candidates):
            if cfg.forced_range_start <= cand.begin_time <= cfg.forced_range_end:
                window.add(j)
    return sorted(window)


def text_score(expected: str, candidate: str, early: bool,
               cfg: ReconcileConfig) -> float | None:
    """Text component, or None when the texts do not overlap at all."""
    if candidate == expected:
        return cfg.exact_score_early if early else cfg.exact_score
    if expected in candidate:
        extra = candidate.replace(expected, "", 1).strip()
        if extra:
            base = cfg.superset_score_early if early else cfg.superset_score
            return base - min(cfg.extra_penalty_cap, len(extra) * cfg.extra_char_penalty)
        return cfg.superset_clean_score_early if early else cfg.superset_clean_score
    if candidate in expected:
        return cfg.subset_score
    return None


def proximity_score(j: int, ctx: SegmentContext, fragment_index: int,
                    cfg: ReconcileConfig) -> float:
    if ctx.early:
        if j <= ctx.index:
            return cfg.early_proximity_max - abs(j - ctx.index) * cfg.early_proximity_step
        return max(0.0, cfg.late_proximity_max - (j - ctx.index) * cfg.late_proximity_step)
    return max(0.0, cfg.proximity_max - abs(j - fragment_index))


def _tolerance_ratio(diff: float, tolerance: float) -> float:
    if tolerance > 0:
        return diff / tolerance
    return math.inf if diff > 0 else 0.0


def timing_score(begin: float, ctx: SegmentContext, cfg: ReconcileConfig) -> float:
    diff = abs(begin - ctx.expected)
    ratio = _tolerance_ratio(diff, ctx.tolerance)

    if ctx.early:
        if begin > ctx.early_ceiling:
            return -cfg.early_ceiling_penalty
        score = 0.0
        if begin <= cfg.early_band_end:
            score += cfg.early_band_bonus - (begin / cfg.early_band_end) * cfg.early_band_slope
        if cfg.sweet_spot_start <= begin <= cfg.sweet_spot_end:
            score += cfg.sweet_spot_bonus
        if cfg.forced_range_start <= begin <= cfg.forced_range_end:
            score += cfg.forced_range_bonus
        if diff > ctx.tolerance:
            score -= min(cfg.early_timing_penalty_cap, ratio * cfg.early_timing_penalty_scale)
        return score

    if diff > ctx.tolerance:
        return -min(cfg.timing_penalty_cap, ratio * cfg.timing_penalty_scale)
    return max(0.0, cfg.timing_bonus_max - ratio * cfg.timing_bonus_max)


def score_candidate(j: int, candidate: AlignmentCandidate, ctx: SegmentContext,
                    fragment_index: int, cfg: ReconcileConfig) -> float | None:
    """Total score of candidate `j`; None for candidates with no text."""
    cand_text = normalize_text(candidate.text)
    if not cand_text:
        return None
    text = text_score(ctx.text, cand_text, ctx.early, cfg)
    if text is None:
        return cfg.no_match_score
    return (text
            + proximity_score(j, ctx, fragment_index, cfg)
            + timing_score(candidate.begin_time, ctx, cfg))


def _best_match(ctx: SegmentContext, state: ScanState,
                candidates: list[AlignmentCandidate],
                cfg: ReconcileConfig) -> tuple[int, float] | None:
    best: tuple[int, float] | None = None
    for j in search_window(ctx, state.fragment_index, candidates, cfg):
        score = score_candidate(j, candidates[j], ctx, state.fragment_index, cfg)
        if score is None:
            continue
        if best is None or score > best[1]:
            best = (j, score)
    return best


def _is_plausible(candidate: AlignmentCandidate, ctx: SegmentContext,
                  cfg: ReconcileConfig) -> bool:
    if ctx.early and candidate.begin_time > ctx.early_ceiling:
        return False
    return candidate.begin_time <= ctx.expected + cfg.max_lateness


def _already_used(candidate: AlignmentCandidate, results: list[AlignedSegment],
                  tolerance: float) -> bool:
    return any(
        abs(r.start_time - candidate.begin_time) < tolerance
        and abs(r.end_time - candidate.end_time) < tolerance
        for r in results
    )


def _fallback_index(state: ScanState, candidates: list[AlignmentCandidate],
                    cfg: ReconcileConfig) -> int:
    for j in range(state.fragment_index, len(candidates)):
        if not _already_used(candidates[j], state.results, cfg.reuse_tolerance):
            return j
    return min(state.fragment_index, len(candidates) - 1)


def _emit(segment: SourceSegment, candidate: AlignmentCandidate,
          quality: MatchQuality, score: float | None) -> AlignedSegment:
    return AlignedSegment(
        id=segment.id,
        text=segment.text,
        type=segment.type,
        start_time=round(candidate.begin_time, 3),
        end_time=round(candidate.end_time, 3),
        quality=quality,
        score=round(score, 2) if score is not None else None,
    )


def _placeholders(source_segments: list[SourceSegment]) -> list[AlignedSegment]:
    warn(f"No alignment candidates; emitting {len(source_segments)} placeholder timestamps")
    return [
        AlignedSegment(id=s.id, text=s.text, type=s.type, start_time=0.0, end_time=0.0,
                       quality=MatchQuality.placeholder)
        for s in source_segments
    ]


def reconcile(source_segments: list[SourceSegment],
              candidates: list[AlignmentCandidate],
              config: ReconcileConfig | None = None) -> list[AlignedSegment]:
    """Return one `AlignedSegment` per source segment, in source order."""
    if source_segments is None:
        raise ValueError("source_segments must be a list, got None")
    cfg = config or ReconcileConfig()
    candidates = list(candidates or [])
    if not source_segments:
        return []
    if not candidates:
        return _placeholders(source_segments)

    n = len(source_segments)
    total_duration = candidates[-1].end_time
    state = ScanState()
    fallbacks = 0

    debug(f"Reconciling {n} segments against {len(candidates)} candidates "
          f"({total_duration:.2f}s)")

    for i, segment in enumerate(source_segments):
        ctx = segment_context(i, segment, n, total_duration, cfg)
        best = _best_match(ctx, state, candidates, cfg)

        if best is not None and best[1] > cfg.min_score:
            j, score = best
            if _is_plausible(candidates[j], ctx, cfg):
                state.results.append(_emit(segment, candidates[j], MatchQuality.matched, score))
                state.fragment_index = j + 1
                debug(f"  {segment.id}: fragment {j} score {score:.1f} "
                      f"@ {candidates[j].begin_time:.2f}s")
                continue
            warn(f"  {segment.id}: rejected fragment {j} at {candidates[j].begin_time:.2f}s "
                 f"(expected ~{ctx.expected:.2f}s, early={ctx.early})")

        fb = _fallback_index(state, candidates, cfg)
        state.results.append(_emit(segment, candidates[fb], MatchQuality.fallback, None))
        state.fragment_index = min(fb + 1, len(candidates))
        fallbacks += 1
        best_desc = f"best score {best[1]:.1f}" if best is not None else "no scorable candidate"
        warn(f"  {segment.id}: no confident match ({best_desc}), "
             f"fallback to fragment {fb} at {candidates[fb].begin_time:.2f}s")

    unused = len(candidates) - state.fragment_index
    if unused > 0:
        warn(f"{unused} alignment fragments were not consumed")
    info(f"Reconciled {n - fallbacks}/{n} segments "
         f"({fallbacks} fallback, {len(candidates)} candidates, "
         f"ratio {len(candidates) / n:.2f})")
    return state.results
