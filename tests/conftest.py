"""Shared fixtures: sample read-aloud XHTML, segments, candidates, silences."""

from __future__ import annotations

import json
from pathlib import Path

import pytest


# ── Seed data ────────────────────────────────────────────────────────────────

SAMPLE_XHTML = """\
<?xml version="1.0" encoding="UTF-8"?>
<html xmlns="http://www.w3.org/1999/xhtml">
<body>
  <nav id="toc" data-read-aloud="true"><p id="toc_entry1">Chapter One</p></nav>
  <div id="header-1" data-read-aloud="true">A Tale of Ponies</div>
  <p id="page1_p1" data-read-aloud="true">
    <span id="page1_p1_s1" class="sync-sentence" data-read-aloud="true"><span id="page1_p1_s1_w1" class="sync-word">The</span> <span id="page1_p1_s1_w2" class="sync-word">little</span> <span id="page1_p1_s1_w3" class="sync-word">horse</span> <span id="page1_p1_s1_w4" class="sync-word">ran.</span></span>
    <span id="page1_p1_s2" class="sync-sentence" data-read-aloud="true"><span id="page1_p1_s2_w1" class="sync-word">It</span> <span id="page1_p1_s2_w2" class="sync-word">was</span> <span id="page1_p1_s2_w3" class="sync-word">happy.</span></span>
  </p>
  <p id="page1_p2" data-read-aloud="true">
    <span id="page1_p2_s1" class="sync-sentence" data-read-aloud="true" data-should-sync="false">Not narrated here.</span>
    <span id="page1_p2_s2" class="sync-sentence" data-read-aloud="true">   </span>
  </p>
  <span id="page-number-3" data-read-aloud="true">3</span>
</body>
</html>
"""


def make_page(page: int, sentences: list[str]) -> str:
    spans = "\n".join(
        f'<span id="page{page}_p1_s{i}" class="sync-sentence" data-read-aloud="true">{text}</span>'
        for i, text in enumerate(sentences, 1)
    )
    return f'<html><body><p id="page{page}_p1">\n{spans}\n</p></body></html>'


@pytest.fixture
def sample_xhtml() -> str:
    return SAMPLE_XHTML


@pytest.fixture
def segments_factory():
    from readsync.alignment.base import SegmentType, SourceSegment

    def _make(texts: list[str], seg_type: SegmentType = SegmentType.sentence):
        return [SourceSegment(id=f"s{i}", text=t, type=seg_type, position=i)
                for i, t in enumerate(texts)]
    return _make


@pytest.fixture
def candidate():
    from readsync.alignment.base import AlignmentCandidate

    def _make(text: str, begin: float, end: float) -> AlignmentCandidate:
        return AlignmentCandidate(text=text, begin_time=begin, end_time=end)
    return _make


@pytest.fixture
def audio_file(tmp_path) -> Path:
    """A WAV path that exists; never decoded since tools are mocked."""
    p = tmp_path / "narration.wav"
    p.write_bytes(b"RIFF\x00\x00\x00\x00WAVE")
    return p


@pytest.fixture
def write_json(tmp_path):
    def _write(name: str, data) -> Path:
        p = tmp_path / name
        p.write_text(json.dumps(data), encoding="utf-8")
        return p
    return _write


SILENCEDETECT_STDERR = """\
Input #0, wav, from 'narration.wav':
  Duration: 00:00:12.00, bitrate: 256 kb/s
[silencedetect @ 0x55d5c6c4a440] silence_start: 0
[silencedetect @ 0x55d5c6c4a440] silence_end: 0.42 | silence_duration: 0.42
[silencedetect @ 0x55d5c6c4a440] silence_start: 3.105
[silencedetect @ 0x55d5c6c4a440] silence_end: 3.51 | silence_duration: 0.405
[silencedetect @ 0x55d5c6c4a440] silence_start: 11.8
size=N/A time=00:00:12.00 bitrate=N/A speed= 512x
"""


# ── Logging isolation ────────────────────────────────────────────────────────

@pytest.fixture(autouse=True)
def _isolated_log_dir(tmp_path, monkeypatch):
    """Keep the rotating run log out of the working tree."""
    import readsync.utils.logging as log_mod
    monkeypatch.setattr(log_mod, "LOG_DIR", tmp_path / "logs")


@pytest.fixture
def silencedetect_stderr() -> str:
    return SILENCEDETECT_STDERR


@pytest.fixture
def page_factory():
    return make_page
