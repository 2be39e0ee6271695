"""Which external tools a sync run needs, and whether they are here.

Binaries are looked up on PATH, Python modules with find_spec(); nothing is
imported at check time. ffmpeg is the only tool actually executed, to read
its version banner.
"""

from __future__ import annotations

import importlib.util
import shutil
import subprocess
from dataclasses import dataclass

from readsync.utils.logging import info, warn, error

_HINTS = {
    "ffmpeg": "Install: sudo apt-get install ffmpeg  (or https://ffmpeg.org/download.html)",
    "ffprobe": "Usually bundled with ffmpeg",
    "aeneas": "Install: pip install numpy aeneas  (Python 3.9 recommended; needs eSpeak NG)",
    "espeak": "Install: sudo apt-get install espeak-ng  (required by aeneas)",
    "webrtcvad": "Install: pip install webrtcvad  (only for silence.detector=webrtcvad)",
}


@dataclass
class DepStatus:
    name: str
    available: bool
    version: str = ""
    hint: str = ""

    @classmethod
    def missing(cls, name: str, hint: str = "") -> DepStatus:
        return cls(name, False, hint=hint or _HINTS.get(name, ""))


def _on_path(name: str, *executables: str) -> DepStatus:
    for exe in executables or (name,):
        if shutil.which(exe):
            return DepStatus(name, True, version=exe if executables else "")
    return DepStatus.missing(name)


def _importable(module: str) -> DepStatus:
    if importlib.util.find_spec(module) is None:
        return DepStatus.missing(module)
    return DepStatus(module, True)


def check_ffmpeg() -> DepStatus:
    found = _on_path("ffmpeg")
    if not found.available:
        return found
    try:
        proc = subprocess.run(["ffmpeg", "-version"], capture_output=True, text=True, timeout=5)
    except (OSError, subprocess.SubprocessError):
        return DepStatus.missing("ffmpeg", hint="ffmpeg found but failed to run")
    banner = proc.stdout.splitlines()
    found.version = banner[0] if banner else "unknown"
    return found


def check_ffprobe() -> DepStatus:
    return _on_path("ffprobe")


def check_aeneas() -> DepStatus:
    """Import check in this interpreter only; the backend also probes others."""
    return _importable("aeneas")


def check_espeak() -> DepStatus:
    return _on_path("espeak", "espeak-ng", "espeak")


def check_webrtcvad() -> DepStatus:
    return _importable("webrtcvad")


def check_all(backend: str = "aeneas", detector: str = "ffmpeg") -> list[DepStatus]:
    checks = [check_ffmpeg, check_ffprobe]
    if backend == "aeneas":
        checks += [check_aeneas, check_espeak]
    if detector == "webrtcvad":
        checks.append(check_webrtcvad)
    return [check() for check in checks]


def print_dep_status(deps: list[DepStatus], strict: bool = False) -> bool:
    """Report each dependency; False when strict and anything is missing."""
    missing = [d for d in deps if not d.available]
    for d in deps:
        if d.available:
            info(f"[green]✓[/green] {d.name}: {d.version or 'OK'}")
        elif strict:
            error(f"{d.name}: NOT FOUND, {d.hint}")
        else:
            warn(f"{d.name}: not found, {d.hint}")
    return not (strict and missing)
