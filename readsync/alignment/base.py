"""Core data model and the aligner backend contract."""

from __future__ import annotations

import math
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any


class SegmentType(str, Enum):
    word = "word"
    sentence = "sentence"
    paragraph = "paragraph"


class MatchQuality(str, Enum):
    matched = "matched"
    fallback = "fallback"
    placeholder = "placeholder"


def clean_time(value: Any) -> float:
    """Coerce a timestamp to a finite, non-negative float (0.0 otherwise)."""
    try:
        t = float(value)
    except (TypeError, ValueError):
        return 0.0
    if not math.isfinite(t) or t < 0:
        return 0.0
    return t


@dataclass(frozen=True)
class SourceSegment:
    id: str
    text: str
    type: SegmentType = SegmentType.sentence
    position: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "text": self.text, "type": self.type.value,
                "position": self.position}

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> SourceSegment:
        return cls(
            id=str(d["id"]),
            text=d.get("text", ""),
            type=SegmentType(d.get("type", "sentence")),
            position=int(d.get("position", d.get("order", 0))),
        )


@dataclass(frozen=True)
class WordRef:
    """A child word element of a sentence, as found in the document."""
    id: str
    text: str


@dataclass(frozen=True)
class AlignmentCandidate:
    text: str
    begin_time: float
    end_time: float

    def to_dict(self) -> dict[str, Any]:
        return {"text": self.text, "beginTime": self.begin_time, "endTime": self.end_time}

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> AlignmentCandidate:
        return cls(
            text=d.get("text", ""),
            begin_time=clean_time(d.get("beginTime", d.get("begin_time", 0.0))),
            end_time=clean_time(d.get("endTime", d.get("end_time", 0.0))),
        )

    @classmethod
    def from_aeneas_fragment(cls, fragment: dict[str, Any]) -> AlignmentCandidate:
        """Build from an aeneas JSON fragment ({"begin": "1.200", "lines": [...]})."""
        lines = fragment.get("lines") or []
        return cls(
            text=" ".join(str(line) for line in lines),
            begin_time=clean_time(fragment.get("begin", 0.0)),
            end_time=clean_time(fragment.get("end", 0.0)),
        )


@dataclass
class AlignedSegment:
    id: str
    text: str
    type: SegmentType
    start_time: float
    end_time: float
    quality: MatchQuality = MatchQuality.matched
    score: float | None = None

    @property
    def duration_ms(self) -> float:
        return round((self.end_time - self.start_time) * 1000, 3)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "text": self.text,
            "type": self.type.value,
            "startTime": self.start_time,
            "endTime": self.end_time,
            "duration": self.duration_ms,
            "quality": self.quality.value,
            "score": self.score,
        }

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> AlignedSegment:
        return cls(
            id=str(d["id"]),
            text=d.get("text", ""),
            type=SegmentType(d.get("type", "sentence")),
            start_time=float(d["startTime"]),
            end_time=float(d["endTime"]),
            quality=MatchQuality(d.get("quality", "matched")),
            score=d.get("score"),
        )


@dataclass(frozen=True)
class SilencePeriod:
    start: float
    end: float

    @property
    def duration(self) -> float:
        return self.end - self.start

    def to_dict(self) -> dict[str, float]:
        return {"start": self.start, "end": self.end}

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> SilencePeriod:
        return cls(start=float(d["start"]), end=float(d["end"]))


@dataclass
class WordTiming:
    id: str
    parent_id: str
    text: str
    start_time: float
    end_time: float

    @property
    def duration_ms(self) -> float:
        return round((self.end_time - self.start_time) * 1000, 3)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "parentId": self.parent_id,
            "text": self.text,
            "type": SegmentType.word.value,
            "startTime": self.start_time,
            "endTime": self.end_time,
            "duration": self.duration_ms,
        }

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> WordTiming:
        return cls(
            id=str(d["id"]),
            parent_id=str(d.get("parentId", "")),
            text=d.get("text", ""),
            start_time=float(d["startTime"]),
            end_time=float(d["endTime"]),
        )


@dataclass
class SyncResult:
    sentences: list[AlignedSegment] = field(default_factory=list)
    words: list[WordTiming] = field(default_factory=list)
    stats: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "sentences": [s.to_dict() for s in self.sentences],
            "words": [w.to_dict() for w in self.words],
            "stats": dict(self.stats),
        }

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> SyncResult:
        return cls(
            sentences=[AlignedSegment.from_dict(s) for s in d.get("sentences", [])],
            words=[WordTiming.from_dict(w) for w in d.get("words", [])],
            stats=dict(d.get("stats", {})),
        )


class AlignerBackend(ABC):
    name: str = "base"

    @abstractmethod
    def align(self, audio_path: Path, text_lines: list[str], language: str = "eng",
              **kwargs: Any) -> list[AlignmentCandidate]:
        ...

    def check_available(self) -> tuple[bool, str]:
        return True, "OK"
