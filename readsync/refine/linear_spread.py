"""Linear spread: timing without an aligner.

Spreads a user-supplied audio range across the segments by punctuation-weighted
character count. Results are approximate (no prosody, no intro/outro silence)
and are flagged as fallback quality.
"""

from __future__ import annotations

import re

from readsync.alignment.base import AlignedSegment, MatchQuality, SourceSegment
from readsync.utils.config import LinearSpreadConfig
from readsync.utils.logging import error, info, warn

_PUNCT_RE = re.compile(r"[.,!?;:]")


def punctuation_count(text: str) -> int:
    return len(_PUNCT_RE.findall(text))


def weighted_chars(text: str, cfg: LinearSpreadConfig | None = None) -> int:
    cfg = cfg or LinearSpreadConfig()
    return len(text) + punctuation_count(text) * cfg.punctuation_weight


def linear_spread(segments: list[SourceSegment], start: float, end: float,
                  config: LinearSpreadConfig | None = None) -> list[AlignedSegment]:
    cfg = config or LinearSpreadConfig()
    if not segments:
        error("No segments to spread")
        return []

    total_duration = end - start
    usable = total_duration - total_duration * cfg.pause_reserve_fraction
    total_chars = sum(weighted_chars(s.text, cfg) for s in segments)
    if usable <= 0 or total_chars <= 0:
        error(f"Invalid range for linear spread: {start:.3f}s → {end:.3f}s")
        return []

    results: list[AlignedSegment] = []
    cursor = start
    last = len(segments) - 1
    for i, seg in enumerate(segments):
        ratio = weighted_chars(seg.text, cfg) / total_chars
        seg_end = cursor + max(usable * ratio, cfg.min_segment_duration)
        results.append(AlignedSegment(
            id=seg.id,
            text=seg.text,
            type=seg.type,
            start_time=round(cursor, 3),
            end_time=round(seg_end, 3),
            quality=MatchQuality.fallback,
        ))
        cursor = seg_end
        if i < last:
            cursor += cfg.punctuation_pause if punctuation_count(seg.text) else cfg.plain_pause

    info(f"Linear spread: {len(results)} segments over {total_duration:.2f}s")
    warn("Linear spread timings are approximate and may need manual adjustment")
    return results
