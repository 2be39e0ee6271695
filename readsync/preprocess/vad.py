"""Silence detection from voice activity (webrtcvad).

Alternative to ffmpeg's silencedetect for noisy narration: every 30 ms frame
is classified as speech or not, short flips are smoothed away, and the gaps
between speech regions become silence periods.
"""

from __future__ import annotations

import wave
from dataclasses import dataclass
from pathlib import Path

from readsync.alignment.base import SilencePeriod
from readsync.utils.logging import debug, warn

FRAME_MS = 30
VAD_SAMPLE_RATES = (8000, 16000, 32000, 48000)


@dataclass
class SpeechSegment:
    start_ms: int
    end_ms: int


def _read_wave(path: Path) -> tuple[bytes, int, int]:
    """PCM bytes, sample rate and frame count of a 16-bit mono WAV."""
    with wave.open(str(path), "rb") as wf:
        if wf.getnchannels() != 1:
            raise ValueError("WAV must be mono")
        if wf.getsampwidth() != 2:
            raise ValueError("WAV must be 16-bit")
        if wf.getframerate() not in VAD_SAMPLE_RATES:
            raise ValueError(f"Unsupported sample rate: {wf.getframerate()}")
        return wf.readframes(wf.getnframes()), wf.getframerate(), wf.getnframes()


def _speech_flags(vad, pcm: bytes, sample_rate: int) -> list[bool]:
    frame_bytes = sample_rate * FRAME_MS // 1000 * 2
    return [
        vad.is_speech(pcm[offset:offset + frame_bytes], sample_rate)
        for offset in range(0, len(pcm) - frame_bytes + 1, frame_bytes)
    ]


def _collapse(flags: list[bool], total_ms: int, min_speech_frames: int,
              min_silence_frames: int) -> list[SpeechSegment]:
    """Turn per-frame flags into speech regions with hysteresis.

    Speech opens after `min_speech_frames` active frames in a row and closes
    after `min_silence_frames` inactive ones; both edges sit on the first
    frame of the run.
    """
    segments: list[SpeechSegment] = []
    open_at: int | None = None
    run = 0
    for i, active in enumerate(flags):
        flipped = active if open_at is None else not active
        run = run + 1 if flipped else 0
        if open_at is None and run >= min_speech_frames:
            open_at, run = (i - run + 1) * FRAME_MS, 0
        elif open_at is not None and run >= min_silence_frames:
            segments.append(SpeechSegment(open_at, (i - run + 1) * FRAME_MS))
            open_at, run = None, 0
    if open_at is not None:
        segments.append(SpeechSegment(open_at, total_ms))
    return segments


def detect_speech(wav_path: Path, aggressiveness: int = 2,
                  min_speech_ms: int = 90, min_silence_ms: int = 60) -> tuple[list[SpeechSegment], int]:
    """Return speech segments and the total audio length in ms."""
    try:
        import webrtcvad
    except ImportError:
        warn("webrtcvad not installed, no VAD silences (pip install webrtcvad)")
        return [], 0

    pcm, sample_rate, n_frames = _read_wave(wav_path)
    total_ms = n_frames * 1000 // sample_rate
    flags = _speech_flags(webrtcvad.Vad(aggressiveness), pcm, sample_rate)
    segments = _collapse(flags, total_ms,
                         max(1, min_speech_ms // FRAME_MS),
                         max(1, min_silence_ms // FRAME_MS))
    debug(f"VAD found {len(segments)} speech segments in {len(flags)} frames")
    return segments, total_ms


def speech_to_silences(speech: list[SpeechSegment], total_ms: int,
                       min_silence_ms: int = 50) -> list[SilencePeriod]:
    """Invert speech regions into silence periods no shorter than min_silence_ms."""
    silences: list[SilencePeriod] = []
    cursor = 0
    for seg in sorted(speech, key=lambda s: s.start_ms):
        if seg.start_ms - cursor >= min_silence_ms:
            silences.append(SilencePeriod(cursor / 1000, seg.start_ms / 1000))
        cursor = max(cursor, seg.end_ms)
    if total_ms - cursor >= min_silence_ms:
        silences.append(SilencePeriod(cursor / 1000, total_ms / 1000))
    return silences


def detect_silences_vad(wav_path: Path, aggressiveness: int = 2,
                        min_silence_ms: int = 50) -> list[SilencePeriod]:
    speech, total_ms = detect_speech(wav_path, aggressiveness=aggressiveness,
                                     min_silence_ms=min_silence_ms)
    if not speech:
        return []
    silences = speech_to_silences(speech, total_ms, min_silence_ms)
    debug(f"VAD silences: {len(silences)} periods")
    return silences
