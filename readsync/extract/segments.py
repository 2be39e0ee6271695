"""Syncable segment extraction from read-aloud XHTML.

Elements flagged ``data-read-aloud="true"`` are walked in document order and
turned into `SourceSegment`s at the requested granularity. Unspoken content
(tables of contents, headers, page numbers, ...) is filtered out so it does not
eat into the audio timeline during alignment.
"""

from __future__ import annotations

import re
from collections.abc import Iterable

from bs4 import BeautifulSoup, Tag

from readsync.alignment.base import SegmentType, SourceSegment, WordRef
from readsync.utils.logging import debug, info, warn

GRANULARITIES = ("word", "sentence", "paragraph")

DEFAULT_EXCLUDE_PATTERNS = (
    r"toc",
    r"table-of-contents",
    r"contents",
    r"chapter-index",
    r"chapter-idx",
    r"^nav",
    r"^header",
    r"^footer",
    r"^sidebar",
    r"^menu",
    r"page-number",
    r"page-num",
    r"^skip",
    r"^metadata",
)

WORD_SELECTOR = '.sync-word[id], span[id*="_w"]'
CHILD_WORD_SELECTOR = '.sync-word, [id*="_w"]'

_WS_RE = re.compile(r"\s+")


def normalize_line(text: str) -> str:
    """Text exactly as handed to the aligner: no BOM, single spaces."""
    return _WS_RE.sub(" ", text.replace("\ufeff", "")).strip()


def build_text_lines(segments: Iterable[SourceSegment]) -> list[str]:
    return [normalize_line(s.text) for s in segments]


def compile_exclusions(patterns: Iterable[str] = (),
                       disable_defaults: bool = False) -> list[re.Pattern[str]]:
    base = () if disable_defaults else DEFAULT_EXCLUDE_PATTERNS
    return [re.compile(p, re.IGNORECASE) for p in (*base, *patterns)]


def _classify(el: Tag, element_id: str) -> SegmentType:
    classes = el.get("class") or []
    if "sync-word" in classes or (el.name == "span" and "_w" in element_id):
        return SegmentType.word
    if "sync-sentence" in classes or "_s" in element_id:
        return SegmentType.sentence
    return SegmentType.paragraph


def _flagged_off(el: Tag) -> bool:
    return el.get("data-read-aloud") == "false" or el.get("data-should-sync") == "false"


class _Exclusion:
    def __init__(self, exclude_ids: Iterable[str], patterns: list[re.Pattern[str]]):
        self.exclude_ids = set(exclude_ids)
        self.patterns = patterns
        self.count = 0

    def __call__(self, el: Tag, element_id: str | None, text: str) -> bool:
        excluded = (
            not element_id
            or element_id in self.exclude_ids
            or any(p.search(element_id) or p.search(text) for p in self.patterns)
            or _flagged_off(el)
        )
        if excluded:
            self.count += 1
            debug(f"Excluding unspoken content: {element_id} ({text[:30]!r})")
        return excluded


def extract_segments(
    xhtml: str,
    granularity: str = "sentence",
    *,
    exclude_ids: Iterable[str] = (),
    exclude_patterns: Iterable[str] = (),
    disable_default_exclusions: bool = False,
) -> list[SourceSegment]:
    """Return the ordered syncable segments of `xhtml` at `granularity`.

    An empty list means nothing qualified; the caller decides whether that is
    fatal.
    """
    if granularity not in GRANULARITIES:
        raise ValueError(f"Unknown granularity: {granularity!r} (expected one of {GRANULARITIES})")

    soup = BeautifulSoup(xhtml, "html.parser")
    should_exclude = _Exclusion(
        exclude_ids, compile_exclusions(exclude_patterns, disable_default_exclusions)
    )

    elements = soup.find_all(attrs={"data-read-aloud": "true"})
    if not elements:
        warn('No elements with data-read-aloud="true" found')

    collected: list[tuple[str, str, SegmentType]] = []
    seen: set[str] = set()

    for el in elements:
        element_id = el.get("id")
        if element_id in seen or (element_id and "div" in element_id):
            continue
        text = el.get_text().strip()
        if not text:
            continue
        if should_exclude(el, element_id, text):
            continue

        seg_type = _classify(el, element_id)

        if granularity == "word" and seg_type != SegmentType.word:
            for word_el in el.select(WORD_SELECTOR):
                word_id = word_el.get("id")
                if not word_id or "div" in word_id or word_id in seen:
                    continue
                word_text = word_el.get_text().strip()
                if not word_text or should_exclude(word_el, word_id, word_text):
                    continue
                seen.add(word_id)
                collected.append((word_id, word_text, SegmentType.word))
            continue

        if seg_type.value != granularity:
            continue

        seen.add(element_id)
        collected.append((element_id, text, seg_type))

    segments = [
        SourceSegment(id=sid, text=text, type=stype, position=pos)
        for pos, (sid, text, stype) in enumerate(collected)
    ]

    if not segments:
        warn(f"No {granularity}-level segments found (excluded {should_exclude.count}); "
             f"check id patterns and exclusions")
    else:
        info(f"Extracted {len(segments)} syncable {granularity} segments "
             f"(excluded {should_exclude.count} unspoken)")
    return segments


def _child_words(sentence_el: Tag) -> list[WordRef]:
    words: list[WordRef] = []
    for word_el in sentence_el.select(CHILD_WORD_SELECTOR):
        word_id = word_el.get("id")
        if not word_id:
            continue
        words.append(WordRef(id=word_id, text=word_el.get_text().strip()))
    return words


def extract_child_words(xhtml: str, sentence_id: str) -> list[WordRef]:
    soup = BeautifulSoup(xhtml, "html.parser")
    sentence_el = soup.find(id=sentence_id)
    if sentence_el is None:
        return []
    return _child_words(sentence_el)


def extract_all_child_words(xhtml: str,
                            sentence_ids: Iterable[str] | None = None) -> dict[str, list[WordRef]]:
    """Map sentence id → nested word elements; parses the document once."""
    soup = BeautifulSoup(xhtml, "html.parser")
    if sentence_ids is None:
        sentence_ids = [el.get("id") for el in soup.find_all(id=True)
                        if _classify(el, el.get("id")) == SegmentType.sentence]

    words_by_sentence: dict[str, list[WordRef]] = {}
    for sid in sentence_ids:
        sentence_el = soup.find(id=sid)
        if sentence_el is None:
            continue
        words = _child_words(sentence_el)
        if words:
            words_by_sentence[sid] = words
    return words_by_sentence
