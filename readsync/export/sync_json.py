"""Sync JSON documents: results, segment lists, aligner candidates, silences."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from readsync.alignment.base import (
    AlignmentCandidate,
    SilencePeriod,
    SourceSegment,
    SyncResult,
)


def _read_json(path: Path) -> Any:
    return json.loads(Path(path).read_text(encoding="utf-8"))


def write_json(data: Any, output_path: Path) -> Path:
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    output_path.write_text(json.dumps(data, indent=2, ensure_ascii=False), encoding="utf-8")
    return output_path


def write_sync_json(result: SyncResult, output_path: Path) -> Path:
    return write_json(result.to_dict(), output_path)


def read_sync_json(path: Path) -> SyncResult:
    return SyncResult.from_dict(_read_json(path))


def load_segments(path: Path) -> list[SourceSegment]:
    """Segment list, either a bare array or {"segments": [...]}."""
    data = _read_json(path)
    items = data.get("segments", []) if isinstance(data, dict) else data
    segments = [SourceSegment.from_dict(d) for d in items]
    if not any("position" in d or "order" in d for d in items):
        segments = [
            SourceSegment(id=s.id, text=s.text, type=s.type, position=i)
            for i, s in enumerate(segments)
        ]
    return segments


def load_candidates(path: Path) -> list[AlignmentCandidate]:
    """Candidate array, or raw aeneas output ({"fragments": [...]})."""
    data = _read_json(path)
    if isinstance(data, dict) and "fragments" in data:
        return [AlignmentCandidate.from_aeneas_fragment(f) for f in data["fragments"]]
    items = data.get("candidates", []) if isinstance(data, dict) else data
    return [AlignmentCandidate.from_dict(d) for d in items]


def load_silences(path: Path) -> list[SilencePeriod]:
    data = _read_json(path)
    items = data.get("silences", []) if isinstance(data, dict) else data
    return [SilencePeriod.from_dict(d) for d in items]


def write_silences(silences: list[SilencePeriod], output_path: Path) -> Path:
    return write_json({"silences": [s.to_dict() for s in silences]}, output_path)
