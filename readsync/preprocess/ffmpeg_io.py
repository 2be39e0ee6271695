"""FFmpeg I/O helpers: probing, alignment-friendly WAV conversion, silence detection."""

from __future__ import annotations

import json
import re
import subprocess
from pathlib import Path
from typing import Any

from readsync.alignment.base import SilencePeriod
from readsync.utils.logging import debug, error, info, warn
from readsync.utils.media_executor import run_media_subprocess

SUPPORTED_FORMATS = {".mp3", ".wav", ".flac", ".m4a", ".aac", ".ogg", ".opus", ".wma"}

_SILENCE_START_RE = re.compile(r"silence_start:\s*(-?[\d.]+)")
_SILENCE_END_RE = re.compile(r"silence_end:\s*(-?[\d.]+)")


def probe_audio(path: Path) -> dict[str, Any]:
    cmd = [
        "ffprobe", "-v", "quiet",
        "-print_format", "json",
        "-show_format", "-show_streams",
        str(path),
    ]
    try:
        r = run_media_subprocess(
            cmd, tool="ffprobe", description=f"probe {path.name}",
            timeout=30, heavy=False,
        )
        return json.loads(r.stdout)
    except (OSError, ValueError, subprocess.SubprocessError) as e:
        error(f"ffprobe failed for {path}: {e}")
        return {}


def get_duration(path: Path) -> float:
    meta = probe_audio(path)
    try:
        return float(meta["format"]["duration"])
    except (KeyError, ValueError, TypeError):
        return 0.0


def convert_to_wav(input_path: Path, output_path: Path | None = None,
                   sample_rate: int = 16000, mono: bool = True) -> Path:
    """Convert to CBR PCM WAV; VBR sources drift against HTML5 audio clocks."""
    if output_path is None:
        output_path = input_path.with_suffix(".wav")
    channels = "1" if mono else "2"
    cmd = [
        "ffmpeg", "-y", "-i", str(input_path),
        "-ar", str(sample_rate), "-ac", channels,
        "-c:a", "pcm_s16le",
        str(output_path),
    ]
    debug(f"Converting: {' '.join(cmd)}")
    r = run_media_subprocess(
        cmd, tool="ffmpeg", description=f"convert {input_path.name} → WAV",
        timeout=300, heavy=True,
    )
    if r.returncode != 0:
        raise RuntimeError(f"ffmpeg conversion failed: {r.stderr}")
    return output_path


def prepare_for_alignment(audio_path: Path, work_dir: Path, sample_rate: int = 16000,
                          max_drift: float = 0.1) -> Path:
    """Return the audio file the aligner should read.

    Non-WAV input is converted; the original is kept whenever conversion fails
    or shifts the duration by more than `max_drift` seconds.
    """
    if audio_path.suffix.lower() == ".wav":
        debug("Audio is already WAV, skipping normalization")
        return audio_path

    target = work_dir / f"{audio_path.stem}_normalized.wav"
    try:
        converted = convert_to_wav(audio_path, target, sample_rate=sample_rate)
    except (RuntimeError, OSError, subprocess.SubprocessError) as e:
        warn(f"Audio normalization failed, using original (may drift): {e}")
        return audio_path

    original = get_duration(audio_path)
    normalized = get_duration(converted)
    if original > 0 and normalized > 0 and abs(original - normalized) > max_drift:
        warn(f"Normalized audio differs by {abs(original - normalized):.2f}s, "
             f"using original to preserve timing")
        return audio_path
    info(f"Normalized audio: {normalized:.2f}s (original {original:.2f}s)")
    return converted


def parse_silencedetect(output: str, min_duration: float = 0.05) -> list[SilencePeriod]:
    """Pair silence_start/silence_end lines from ffmpeg's silencedetect filter."""
    starts = [max(0.0, float(m)) for m in _SILENCE_START_RE.findall(output)]
    ends = [float(m) for m in _SILENCE_END_RE.findall(output)]

    periods: list[SilencePeriod] = []
    for i, start in enumerate(starts):
        end = ends[i] if i < len(ends) else start + min_duration
        if end <= start:
            debug(f"Dropping invalid silence period {start:.3f}-{end:.3f}")
            continue
        periods.append(SilencePeriod(start=start, end=end))
    return periods


def detect_silence_periods(audio_path: Path, threshold_db: float = -40.0,
                           min_duration: float = 0.05) -> list[SilencePeriod]:
    cmd = [
        "ffmpeg", "-hide_banner", "-nostats", "-i", str(audio_path),
        "-af", f"silencedetect=noise={threshold_db}dB:d={min_duration}",
        "-f", "null", "-",
    ]
    r = run_media_subprocess(
        cmd, tool="ffmpeg", description=f"silencedetect {audio_path.name}",
        timeout=300, heavy=True,
    )
    output = (r.stdout or "") + (r.stderr or "")
    if r.returncode != 0 and "silence_" not in output:
        warn(f"ffmpeg silence detection failed for {audio_path.name} (exit {r.returncode})")
        return []

    periods = parse_silencedetect(output, min_duration)
    debug(f"silencedetect found {len(periods)} periods at {threshold_db}dB/{min_duration}s")
    return periods


def is_supported_audio(path: Path) -> bool:
    return path.suffix.lower() in SUPPORTED_FORMATS
