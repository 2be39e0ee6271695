"""Word-level timestamps distributed inside a sentence span."""

from __future__ import annotations

import math
from concurrent.futures import ThreadPoolExecutor

from readsync.alignment.base import AlignedSegment, WordRef, WordTiming
from readsync.utils.config import WordTimingConfig
from readsync.utils.logging import debug, info


def word_weight(text: str, cfg: WordTimingConfig | None = None) -> float:
    """Length-based weight; short function words get a floor so they stay readable."""
    cfg = cfg or WordTimingConfig()
    n = len(text.strip())
    if n <= cfg.short_word_chars:
        return max(float(n), cfg.short_word_min_weight)
    if n <= cfg.medium_word_chars:
        return n * cfg.medium_word_boost
    return float(n)


def is_punctuated(text: str, cfg: WordTimingConfig | None = None) -> bool:
    cfg = cfg or WordTimingConfig()
    stripped = text.strip()
    return bool(stripped) and stripped[-1] in cfg.punctuation


def _timing(word: WordRef, sentence: AlignedSegment, start: float, end: float) -> WordTiming:
    return WordTiming(
        id=word.id,
        parent_id=sentence.id,
        text=word.text,
        start_time=round(start, 3),
        end_time=round(end, 3),
    )


def _unpadded(sentence: AlignedSegment, words: list[WordRef], duration: float,
              cfg: WordTimingConfig) -> list[WordTiming]:
    """Plain char-ratio walk for sentences too short to hold the padding."""
    chars = [len(w.text.strip()) for w in words]
    total_chars = sum(chars)
    timings: list[WordTiming] = []
    cursor = sentence.start_time
    for word, count in zip(words, chars):
        ratio = count / total_chars if total_chars else 1 / len(words)
        end = cursor + max(duration * ratio, cfg.min_word_duration)
        timings.append(_timing(word, sentence, cursor, end))
        cursor = end
    return timings


def propagate(sentence: AlignedSegment, child_words: list[WordRef],
              config: WordTimingConfig | None = None) -> list[WordTiming]:
    """Split the sentence span across its words by weighted character count.

    Padding separates consecutive words and punctuated words get an extra
    pause. The last word ends at its own computed end, not the sentence end.
    """
    cfg = config or WordTimingConfig()
    if not child_words:
        return []

    weights = [word_weight(w.text, cfg) for w in child_words]
    total_weight = sum(weights)
    if total_weight <= 0:
        return []

    duration = sentence.end_time - sentence.start_time
    if not math.isfinite(duration):
        duration = 0.0
    punctuated = [is_punctuated(w.text, cfg) for w in child_words]
    usable = (duration
              - (len(child_words) - 1) * cfg.word_padding
              - sum(punctuated) * cfg.punctuation_pause)

    if usable <= 0:
        debug(f"{sentence.id}: {duration:.3f}s too short for padding, unpadded split")
        return _unpadded(sentence, child_words, duration, cfg)

    timings: list[WordTiming] = []
    cursor = sentence.start_time
    last = len(child_words) - 1
    for i, (word, weight) in enumerate(zip(child_words, weights)):
        end = cursor + max(usable * weight / total_weight, cfg.min_word_duration)
        timings.append(_timing(word, sentence, cursor, end))
        if i < last:
            cursor = end + cfg.word_padding
            if punctuated[i]:
                cursor += cfg.punctuation_pause
    return timings


def propagate_all(sentences: list[AlignedSegment],
                  words_by_sentence: dict[str, list[WordRef]],
                  config: WordTimingConfig | None = None,
                  workers: int = 1) -> list[WordTiming]:
    """Propagate every sentence that has child words, keeping sentence order."""
    cfg = config or WordTimingConfig()
    jobs = [(s, words_by_sentence[s.id]) for s in sentences if words_by_sentence.get(s.id)]
    if not jobs:
        return []

    if workers > 1 and len(jobs) > 1:
        with ThreadPoolExecutor(max_workers=workers) as pool:
            chunks = list(pool.map(lambda job: propagate(job[0], job[1], cfg), jobs))
    else:
        chunks = [propagate(s, words, cfg) for s, words in jobs]

    timings = [t for chunk in chunks for t in chunk]
    info(f"Word timings: {len(timings)} words across {len(jobs)} sentences")
    return timings
