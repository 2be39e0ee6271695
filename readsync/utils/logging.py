"""Console and file logging for readsync runs.

Library modules call the `info` / `success` / `warn` / `error` / `debug`
helpers only. `setup_logging` (called by the CLI) picks the verbosity and
attaches the rotating run log.
"""

from __future__ import annotations

import logging
import os
import uuid
from contextvars import ContextVar
from enum import Enum
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any

from rich.console import Console
from rich.logging import RichHandler
from rich.theme import Theme

_THEME = Theme({
    "info": "cyan",
    "warning": "yellow bold",
    "error": "red bold",
    "success": "green bold",
    "dim": "dim white",
})

console = Console(theme=_THEME)
err_console = Console(stderr=True, theme=_THEME)

LOG_DIR = Path(os.environ.get("READSYNC_LOG_DIR", "data/logs"))
LOG_FILE_MAX_BYTES = 20 * 1024 * 1024
LOG_FILE_BACKUPS = 5

_job_id: ContextVar[str] = ContextVar("readsync_job_id", default="")
_run_log: logging.Logger | None = None


class Verbosity(str, Enum):
    SILENT = "silent"
    NORMAL = "normal"
    VERBOSE = "verbose"


_verbosity = Verbosity.NORMAL

_CONSOLE_LEVELS = {
    Verbosity.SILENT: logging.ERROR,
    Verbosity.NORMAL: logging.INFO,
    Verbosity.VERBOSE: logging.DEBUG,
}


def set_job_id(jid: str = "") -> str:
    """Tag subsequent log lines with a sync job id (generated when empty)."""
    jid = jid or uuid.uuid4().hex[:8]
    _job_id.set(jid)
    return jid


class _JobFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        jid = _job_id.get()
        if jid:
            record.msg = f"[job={jid}] {record.msg}"
        return super().format(record)


def _attach_run_log(path: Path) -> logging.Logger:
    path.parent.mkdir(parents=True, exist_ok=True)
    handler = RotatingFileHandler(path, maxBytes=LOG_FILE_MAX_BYTES,
                                  backupCount=LOG_FILE_BACKUPS, encoding="utf-8")
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(_JobFormatter("%(asctime)s %(levelname)-8s %(message)s",
                                       datefmt="%Y-%m-%d %H:%M:%S"))
    logger = logging.getLogger("readsync.run")
    logger.setLevel(logging.DEBUG)
    logger.propagate = False
    logger.addHandler(handler)
    return logger


def setup_logging(verbosity: Verbosity = Verbosity.NORMAL, log_file: bool = True) -> None:
    """Configure console verbosity; LOG_LEVEL in the environment wins."""
    global _verbosity, _run_log
    _verbosity = verbosity

    level = logging.getLevelName(os.environ.get("LOG_LEVEL", "").upper())
    if not isinstance(level, int):
        level = _CONSOLE_LEVELS[verbosity]

    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=err_console, show_path=False, markup=True)],
        force=True,
    )
    if log_file and _run_log is None:
        _run_log = _attach_run_log(LOG_DIR / "readsync.log")


def _record(level: int, msg: str) -> None:
    if _run_log is not None:
        _run_log.log(level, msg)


def info(msg: str, **kwargs: Any) -> None:
    if _verbosity != Verbosity.SILENT:
        console.print(f"[info]ℹ {msg}[/info]", **kwargs)
    _record(logging.INFO, msg)


def success(msg: str, **kwargs: Any) -> None:
    if _verbosity != Verbosity.SILENT:
        console.print(f"[success]✓ {msg}[/success]", **kwargs)
    _record(logging.INFO, msg)


def warn(msg: str, **kwargs: Any) -> None:
    if _verbosity != Verbosity.SILENT:
        console.print(f"[warning]⚠ {msg}[/warning]", **kwargs)
    _record(logging.WARNING, msg)


def error(msg: str, **kwargs: Any) -> None:
    err_console.print(f"[error]✗ {msg}[/error]", **kwargs)
    _record(logging.ERROR, msg)


def debug(msg: str, **kwargs: Any) -> None:
    if _verbosity == Verbosity.VERBOSE:
        console.print(f"[dim]  {msg}[/dim]", **kwargs)
    _record(logging.DEBUG, msg)
