"""One runner for every external tool call (ffmpeg, ffprobe, aeneas).

Heavy jobs (conversion, silence detection, alignment) share a process-wide
slot pool so a batch run does not start several decoders at once on a small
machine. Probes skip the pool.

Environment:
    MAX_MEDIA_JOBS: concurrent heavy jobs (default 1)
    FFMPEG_THREADS: value for ffmpeg's -threads (default 2)
    MEDIA_NICE: nice level for heavy jobs on Linux, 0 disables (default 10)
"""

from __future__ import annotations

import os
import platform
import shutil
import subprocess
import threading
import time
from contextlib import contextmanager
from typing import Any, Iterator

from readsync.utils.logging import debug

MAX_MEDIA_JOBS: int = int(os.environ.get("MAX_MEDIA_JOBS", "1"))
FFMPEG_THREADS: int = int(os.environ.get("FFMPEG_THREADS", "2"))
MEDIA_NICE: int = int(os.environ.get("MEDIA_NICE", "10"))

IS_LINUX: bool = platform.system() == "Linux"

_semaphore: threading.Semaphore = threading.Semaphore(MAX_MEDIA_JOBS)


def _build_nice_prefix() -> list[str]:
    if IS_LINUX and MEDIA_NICE > 0 and shutil.which("nice"):
        return ["nice", "-n", str(MEDIA_NICE)]
    return []


def inject_ffmpeg_thread_flags(cmd: list[str]) -> list[str]:
    """ffmpeg commands get a global -threads right after the binary, once."""
    if not cmd or cmd[0] != "ffmpeg" or "-threads" in cmd:
        return cmd
    return [cmd[0], "-threads", str(FFMPEG_THREADS), *cmd[1:]]


@contextmanager
def _slot(desc: str, heavy: bool) -> Iterator[None]:
    if not heavy:
        yield
        return
    debug(f"media-exec: {desc} waiting for a slot (max {MAX_MEDIA_JOBS})")
    with _semaphore:
        yield


def run_media_subprocess(
    cmd: list[str],
    *,
    description: str = "",
    tool: str = "ffmpeg",
    timeout: int | None = None,
    env: dict[str, str] | None = None,
    heavy: bool = True,
    **subprocess_kwargs: Any,
) -> subprocess.CompletedProcess:
    """Run `cmd` with captured text output and return the completed process.

    A non-zero exit is returned, not raised; callers decide what it means.
    `subprocess.TimeoutExpired` and `FileNotFoundError` propagate.
    """
    if tool == "ffmpeg":
        cmd = inject_ffmpeg_thread_flags(cmd)
    if heavy:
        cmd = _build_nice_prefix() + cmd
    desc = description or f"{tool} job"

    with _slot(desc, heavy):
        started = time.monotonic()
        result = subprocess.run(cmd, capture_output=True, text=True, timeout=timeout,
                                env=env, **subprocess_kwargs)
    debug(f"media-exec: {desc} exit {result.returncode} "
          f"({time.monotonic() - started:.1f}s)")
    return result
