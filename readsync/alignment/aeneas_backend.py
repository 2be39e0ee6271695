"""Forced alignment via the aeneas command-line task runner."""

from __future__ import annotations

import json
import os
import shlex
import subprocess
import tempfile
import time
from pathlib import Path
from typing import Any

from readsync.alignment.base import AlignerBackend, AlignmentCandidate
from readsync.utils.logging import info, debug, warn, error
from readsync.utils.media_executor import run_media_subprocess

PYTHON_CANDIDATES = ("python3", "python", "py -3.9", "py")


def write_text_file(text_lines: list[str], output_path: Path) -> Path:
    """Write one line per segment, UTF-8 without BOM (espeak chokes on it)."""
    content = "\n".join(line.replace("\ufeff", "") for line in text_lines)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    output_path.write_text(content, encoding="utf-8")
    debug(f"Aligner text file: {len(text_lines)} lines → {output_path.name}")
    return output_path


def parse_aeneas_output(data: dict[str, Any]) -> list[AlignmentCandidate]:
    fragments = data.get("fragments") or []
    return [AlignmentCandidate.from_aeneas_fragment(f) for f in fragments]


def _failure_hint(stderr: str) -> str:
    lowered = stderr.lower()
    if "espeak" in lowered:
        return "Possible fix: install eSpeak NG and make sure it is on PATH"
    if "ffmpeg" in lowered or "ffprobe" in lowered:
        return "Possible fix: install FFmpeg and make sure it is on PATH"
    if "python" in lowered or "no module named" in lowered:
        return "Possible fix: install Python 3.9+ with aeneas (pip install aeneas)"
    return ""


class AeneasBackend(AlignerBackend):
    name = "aeneas"

    def __init__(self, python_cmd: str = "", timeout: int = 900,
                 keep_debug_output: bool = False):
        self.timeout = timeout
        self.keep_debug_output = keep_debug_output
        self._python_cmd: str | None = python_cmd or None

    def _probe(self, cmd: str) -> bool:
        try:
            r = run_media_subprocess(
                [*shlex.split(cmd), "-c", "import aeneas; print('OK')"],
                tool="aeneas", description=f"probe aeneas ({cmd})",
                timeout=15, heavy=False,
            )
        except (FileNotFoundError, subprocess.TimeoutExpired):
            return False
        return "OK" in (r.stdout or "")

    def initialize(self) -> str:
        """Pick the interpreter that can import aeneas and cache the choice."""
        if self._python_cmd:
            return self._python_cmd
        for cmd in PYTHON_CANDIDATES:
            if self._probe(cmd):
                self._python_cmd = cmd
                info(f"Using Python command for aeneas: {cmd}")
                return cmd
        raise RuntimeError(
            "aeneas not importable from any of: " + ", ".join(PYTHON_CANDIDATES)
            + " (pip install aeneas)"
        )

    def check_available(self) -> tuple[bool, str]:
        try:
            cmd = self.initialize()
        except RuntimeError as e:
            return False, str(e)
        return True, f"aeneas via {cmd}"

    def build_command(self, audio_path: Path, text_path: Path, output_path: Path,
                      language: str = "eng") -> list[str]:
        task_config = "|".join([
            f"task_language={language}",
            "is_text_type=plain",
            "os_task_file_format=json",
        ])
        return [
            *shlex.split(self.initialize()),
            "-m", "aeneas.tools.execute_task",
            str(audio_path), str(text_path), task_config, str(output_path),
        ]

    def align(self, audio_path: Path, text_lines: list[str], language: str = "eng",
              **kwargs: Any) -> list[AlignmentCandidate]:
        work_dir = kwargs.get("work_dir")
        with tempfile.TemporaryDirectory(prefix="readsync_aeneas_", dir=work_dir) as tmp:
            tmp_dir = Path(tmp)
            text_path = write_text_file(text_lines, tmp_dir / "text.txt")
            output_path = tmp_dir / "output.json"
            cmd = self.build_command(audio_path, text_path, output_path, language)

            env = dict(os.environ)
            env["PYTHONIOENCODING"] = "UTF-8"
            env["PYTHONUTF8"] = "1"

            info(f"Aligning {len(text_lines)} lines against {audio_path.name}")
            started = time.time()
            r = run_media_subprocess(
                cmd, tool="aeneas", description=f"align {audio_path.name}",
                timeout=self.timeout, env=env, heavy=True,
            )
            debug(f"aeneas finished in {time.time() - started:.2f}s")

            stderr = r.stderr or ""
            if r.returncode != 0:
                hint = _failure_hint(stderr)
                error(f"aeneas alignment failed (exit {r.returncode})")
                message = f"aeneas alignment failed: {stderr.strip() or 'no output'}"
                raise RuntimeError(f"{message}\n{hint}" if hint else message)
            if stderr and ("error" in stderr.lower() or "failed" in stderr.lower()):
                warn(f"aeneas stderr: {stderr.strip()[:300]}")

            try:
                data = json.loads(output_path.read_text(encoding="utf-8"))
            except (OSError, ValueError) as e:
                raise RuntimeError(f"Failed to parse aeneas output: {e}") from e

            if self.keep_debug_output:
                debug_path = audio_path.with_name(f"{audio_path.stem}.aeneas.json")
                debug_path.write_text(json.dumps(data, indent=2, ensure_ascii=False),
                                      encoding="utf-8")
                debug(f"Saved raw aeneas output: {debug_path}")

        candidates = parse_aeneas_output(data)
        info(f"aeneas returned {len(candidates)} fragments for {len(text_lines)} lines")
        return candidates


class PrecomputedBackend(AlignerBackend):
    """Serves candidates produced by an earlier aligner run."""

    name = "precomputed"

    def __init__(self, candidates: list[AlignmentCandidate]):
        self.candidates = list(candidates)

    def align(self, audio_path: Path, text_lines: list[str], language: str = "eng",
              **kwargs: Any) -> list[AlignmentCandidate]:
        if len(self.candidates) != len(text_lines):
            debug(f"Precomputed candidates: {len(self.candidates)} for {len(text_lines)} lines")
        return list(self.candidates)
