"""Main CLI application with typer subcommands."""

from __future__ import annotations

from enum import Enum
from pathlib import Path
from typing import Annotated, Optional

import typer
from dotenv import load_dotenv
from rich.prompt import Confirm
from rich.table import Table

from readsync.utils.logging import (
    setup_logging, set_job_id, Verbosity, console, info, success, warn, error,
)
from readsync.utils.config import AppConfig, load_config, merge_cli_overrides, DEFAULT_CONFIG_YAML
from readsync.utils.deps_check import check_all, print_dep_status

load_dotenv()

app = typer.Typer(
    name="readsync",
    help="Read-aloud sync: per-segment timestamps for narrated XHTML.",
    rich_markup_mode="rich",
    no_args_is_help=True,
)

_CLI_ERRORS = (ValueError, RuntimeError, OSError)


# ── Enums ─────────────────────────────────────────────────────────────────────

class Granularity(str, Enum):
    word = "word"
    sentence = "sentence"
    paragraph = "paragraph"


class Detector(str, Enum):
    ffmpeg = "ffmpeg"
    webrtcvad = "webrtcvad"


class OnOff(str, Enum):
    on = "on"
    off = "off"


# ── Helper functions ──────────────────────────────────────────────────────────

def _verbosity(silent: bool, verbose: bool) -> Verbosity:
    return Verbosity.SILENT if silent else (Verbosity.VERBOSE if verbose else Verbosity.NORMAL)


def _get_backend(cfg: AppConfig, candidates: Optional[Path] = None):
    if candidates is not None:
        from readsync.alignment.aeneas_backend import PrecomputedBackend
        from readsync.export.sync_json import load_candidates
        return PrecomputedBackend(load_candidates(candidates))
    from readsync.pipeline import get_backend
    try:
        return get_backend(cfg.aligner)
    except ValueError as e:
        raise typer.BadParameter(str(e))


def _require_file(path: Path, label: str) -> None:
    if not path.is_file():
        error(f"{label} not found: {path}")
        raise typer.Exit(1)


def _require_audio(path: Path) -> None:
    from readsync.preprocess.ffmpeg_io import is_supported_audio
    _require_file(path, "Audio")
    if not is_supported_audio(path):
        warn(f"Unrecognized audio extension '{path.suffix}', ffmpeg will try anyway")


def _read_text(path: Path) -> str:
    return path.read_text(encoding="utf-8-sig")


def _print_summary(result) -> None:
    table = Table(title="Sync result", show_lines=False)
    table.add_column("id", style="cyan")
    table.add_column("start", justify="right")
    table.add_column("end", justify="right")
    table.add_column("quality")
    for s in result.sentences[:10]:
        table.add_row(s.id, f"{s.start_time:.3f}", f"{s.end_time:.3f}", s.quality.value)
    if len(result.sentences) > 10:
        table.add_row("…", "", "", f"+{len(result.sentences) - 10} more")
    console.print(table)


# ── SYNC ──────────────────────────────────────────────────────────────────────

@app.command()
def sync(
    audio: Annotated[Path, typer.Option("--audio", "-a", help="Narration audio file")],
    xhtml: Annotated[Path, typer.Option("--xhtml", "-x", help="XHTML page with read-aloud markup")],
    output: Annotated[Optional[Path], typer.Option("--output", "-o", help="Output JSON")] = None,
    granularity: Annotated[Granularity, typer.Option(help="Segment level")] = Granularity.sentence,
    language: Annotated[Optional[str], typer.Option(help="Aligner language (eng, fra, deu, ...)")] = None,
    python_cmd: Annotated[Optional[str], typer.Option(help="Python command with aeneas")] = None,
    candidates: Annotated[Optional[Path], typer.Option(help="Use precomputed aligner output")] = None,
    exclude_id: Annotated[Optional[list[str]], typer.Option("--exclude-id", help="Segment id to skip")] = None,
    words: Annotated[OnOff, typer.Option(help="Propagate word timings")] = OnOff.on,
    refine: Annotated[OnOff, typer.Option(help="Snap to detected silences")] = OnOff.on,
    pauses: Annotated[OnOff, typer.Option(help="Pause adjustment when not snapping")] = OnOff.on,
    detector: Annotated[Detector, typer.Option(help="Silence detector")] = Detector.ffmpeg,
    window_ms: Annotated[Optional[int], typer.Option(help="Silence snap window")] = None,
    keep_debug: Annotated[bool, typer.Option("--keep-debug", help="Keep raw aligner JSON")] = False,
    config: Annotated[Optional[Path], typer.Option("--config")] = None,
    silent: Annotated[bool, typer.Option("--silent")] = False,
    verbose: Annotated[bool, typer.Option("--verbose", "-v")] = False,
):
    """Align an XHTML page against its narration and write sync JSON."""
    setup_logging(_verbosity(silent, verbose))
    from readsync.pipeline import auto_sync
    from readsync.export.sync_json import write_sync_json

    _require_audio(audio)
    _require_file(xhtml, "XHTML")

    cfg = load_config(config)
    cfg = merge_cli_overrides(cfg, {
        "extraction.granularity": granularity.value,
        "extraction.exclude_ids": exclude_id or None,
        "aligner.language": language,
        "aligner.python_cmd": python_cmd,
        "aligner.keep_debug_output": keep_debug or None,
        "word_timing.enabled": words == OnOff.on,
        "silence.refine": refine == OnOff.on,
        "silence.adjust_pauses": pauses == OnOff.on,
        "silence.detector": detector.value,
        "silence.window_ms": window_ms,
    })

    if candidates is None:
        deps = check_all(cfg.aligner.backend, cfg.silence.detector)
        if not print_dep_status(deps):
            warn("Some dependencies missing, alignment may fail")

    job = set_job_id()
    info(f"Job {job}: {xhtml.name} ↔ {audio.name}")
    try:
        backend = _get_backend(cfg, candidates)
        result = auto_sync(audio, _read_text(xhtml), backend, cfg)
    except _CLI_ERRORS as e:
        error(f"Sync failed: {e}")
        raise typer.Exit(1)

    out = output or xhtml.with_suffix(".sync.json")
    write_sync_json(result, out)
    _print_summary(result)
    success(f"Sync JSON: {out}")


# ── BATCH ─────────────────────────────────────────────────────────────────────

@app.command()
def batch(
    audio: Annotated[Path, typer.Option("--audio", "-a", help="Audio covering all pages")],
    page: Annotated[list[Path], typer.Option("--page", "-p", help="XHTML page, in reading order")],
    output: Annotated[Path, typer.Option("--output", "-o", help="Output JSON")] = Path("batch.sync.json"),
    candidates: Annotated[Optional[Path], typer.Option(help="Use precomputed aligner output")] = None,
    config: Annotated[Optional[Path], typer.Option("--config")] = None,
    verbose: Annotated[bool, typer.Option("--verbose", "-v")] = False,
):
    """Sync several pages narrated in one audio file; results grouped per page."""
    setup_logging(Verbosity.VERBOSE if verbose else Verbosity.NORMAL)
    from readsync.pipeline import batch_auto_sync
    from readsync.export.sync_json import write_json

    _require_audio(audio)
    for p in page:
        _require_file(p, "Page")

    cfg = load_config(config)
    set_job_id()
    try:
        result = batch_auto_sync(audio, [_read_text(p) for p in page],
                                 _get_backend(cfg, candidates), cfg)
    except _CLI_ERRORS as e:
        error(f"Batch sync failed: {e}")
        raise typer.Exit(1)

    write_json(result.to_dict(), output)
    success(f"Batch sync JSON ({len(result.pages)} pages): {output}")


# ── RECONCILE ─────────────────────────────────────────────────────────────────

@app.command()
def reconcile(
    segments: Annotated[Path, typer.Option("--segments", "-s", help="Source segments JSON")],
    candidates: Annotated[Path, typer.Option("--candidates", "-c", help="Aligner output JSON")],
    output: Annotated[Path, typer.Option("--output", "-o")] = Path("reconciled.json"),
    config: Annotated[Optional[Path], typer.Option("--config")] = None,
    verbose: Annotated[bool, typer.Option("--verbose", "-v")] = False,
):
    """Match aligner fragments to source segments (no audio needed)."""
    setup_logging(Verbosity.VERBOSE if verbose else Verbosity.NORMAL)
    from readsync.alignment.base import SyncResult
    from readsync.export.sync_json import load_candidates, load_segments, write_sync_json
    from readsync.refine.reconcile import reconcile as run_reconcile

    _require_file(segments, "Segments")
    _require_file(candidates, "Candidates")
    cfg = load_config(config)
    try:
        aligned = run_reconcile(load_segments(segments), load_candidates(candidates), cfg.reconcile)
    except _CLI_ERRORS as e:
        error(f"Reconcile failed: {e}")
        raise typer.Exit(1)

    result = SyncResult(sentences=aligned, stats={"total_sentences": len(aligned)})
    write_sync_json(result, output)
    success(f"Reconciled {len(aligned)} segments: {output}")


# ── WORDS ─────────────────────────────────────────────────────────────────────

@app.command()
def words(
    input: Annotated[Path, typer.Option("--input", "-i", help="Sync JSON with sentences")],
    xhtml: Annotated[Path, typer.Option("--xhtml", "-x", help="XHTML with word elements")],
    output: Annotated[Optional[Path], typer.Option("--output", "-o")] = None,
    workers: Annotated[int, typer.Option(min=1)] = 1,
    config: Annotated[Optional[Path], typer.Option("--config")] = None,
    verbose: Annotated[bool, typer.Option("--verbose", "-v")] = False,
):
    """Distribute word timings inside already-timed sentences."""
    setup_logging(Verbosity.VERBOSE if verbose else Verbosity.NORMAL)
    from readsync.export.sync_json import read_sync_json, write_sync_json
    from readsync.extract.segments import extract_all_child_words
    from readsync.refine.word_timing import propagate_all

    _require_file(input, "Sync JSON")
    _require_file(xhtml, "XHTML")
    cfg = load_config(config)

    result = read_sync_json(input)
    words_by_sentence = extract_all_child_words(_read_text(xhtml),
                                                [s.id for s in result.sentences])
    result.words = propagate_all(result.sentences, words_by_sentence, cfg.word_timing,
                                 workers=workers)
    result.stats["total_words"] = len(result.words)

    out = output or input
    write_sync_json(result, out)
    success(f"{len(result.words)} word timings: {out}")


# ── SNAP ──────────────────────────────────────────────────────────────────────

@app.command()
def snap(
    input: Annotated[Path, typer.Option("--input", "-i", help="Sync JSON")],
    audio: Annotated[Optional[Path], typer.Option("--audio", "-a", help="Detect silences from audio")] = None,
    silences: Annotated[Optional[Path], typer.Option(help="Precomputed silences JSON")] = None,
    window_ms: Annotated[Optional[int], typer.Option(help="Snap window")] = None,
    detector: Annotated[Detector, typer.Option()] = Detector.ffmpeg,
    output: Annotated[Optional[Path], typer.Option("--output", "-o")] = None,
    config: Annotated[Optional[Path], typer.Option("--config")] = None,
    verbose: Annotated[bool, typer.Option("--verbose", "-v")] = False,
):
    """Snap sentence and word boundaries to silence edges."""
    setup_logging(Verbosity.VERBOSE if verbose else Verbosity.NORMAL)
    from readsync.export.sync_json import load_silences, read_sync_json, write_sync_json
    from readsync.pipeline import detect_silences, refine_with_silence

    _require_file(input, "Sync JSON")
    if (audio is None) == (silences is None):
        error("Pass exactly one of --audio or --silences")
        raise typer.Exit(1)

    cfg = merge_cli_overrides(load_config(config), {
        "silence.window_ms": window_ms,
        "silence.detector": detector.value,
    })
    try:
        if silences is not None:
            periods = load_silences(silences)
        else:
            _require_file(audio, "Audio")
            periods = detect_silences(audio, cfg.silence)
    except _CLI_ERRORS as e:
        error(f"Silence detection failed: {e}")
        raise typer.Exit(1)

    result = read_sync_json(input)
    if not periods:
        warn("No silence periods, timings unchanged")
    else:
        result.sentences, result.words = refine_with_silence(
            result.sentences, result.words, periods, cfg.silence)
        result.stats["refined"] = True

    out = output or input
    write_sync_json(result, out)
    success(f"Snapped timings: {out}")


# ── SPREAD ────────────────────────────────────────────────────────────────────

@app.command()
def spread(
    xhtml: Annotated[Path, typer.Option("--xhtml", "-x")],
    start: Annotated[float, typer.Option(help="Narration start (s)")],
    end: Annotated[float, typer.Option(help="Narration end (s)")],
    output: Annotated[Optional[Path], typer.Option("--output", "-o")] = None,
    granularity: Annotated[Granularity, typer.Option()] = Granularity.sentence,
    words: Annotated[OnOff, typer.Option(help="Propagate word timings")] = OnOff.on,
    config: Annotated[Optional[Path], typer.Option("--config")] = None,
    verbose: Annotated[bool, typer.Option("--verbose", "-v")] = False,
):
    """Aligner-free fallback: spread a time range over the page's segments."""
    setup_logging(Verbosity.VERBOSE if verbose else Verbosity.NORMAL)
    from readsync.export.sync_json import write_sync_json
    from readsync.pipeline import linear_spread_sync

    _require_file(xhtml, "XHTML")
    if end <= start:
        error(f"--end ({end}) must be after --start ({start})")
        raise typer.Exit(1)

    cfg = merge_cli_overrides(load_config(config), {
        "extraction.granularity": granularity.value,
        "word_timing.enabled": words == OnOff.on,
    })
    result = linear_spread_sync(_read_text(xhtml), start, end, cfg)
    if not result.sentences and not result.words:
        error("Linear spread produced no timings")
        raise typer.Exit(1)

    out = output or xhtml.with_suffix(".sync.json")
    write_sync_json(result, out)
    success(f"Linear spread JSON: {out}")


# ── SILENCES ──────────────────────────────────────────────────────────────────

@app.command()
def silences(
    audio: Annotated[Path, typer.Option("--audio", "-a")],
    output: Annotated[Optional[Path], typer.Option("--output", "-o")] = None,
    detector: Annotated[Detector, typer.Option()] = Detector.ffmpeg,
    threshold_db: Annotated[Optional[float], typer.Option(help="Noise floor in dB")] = None,
    min_duration: Annotated[Optional[float], typer.Option(help="Shortest silence (s)")] = None,
    config: Annotated[Optional[Path], typer.Option("--config")] = None,
    verbose: Annotated[bool, typer.Option("--verbose", "-v")] = False,
):
    """Detect silence periods and dump them as JSON."""
    setup_logging(Verbosity.VERBOSE if verbose else Verbosity.NORMAL)
    from readsync.export.sync_json import write_silences
    from readsync.pipeline import detect_silences

    _require_file(audio, "Audio")
    cfg = merge_cli_overrides(load_config(config), {
        "silence.detector": detector.value,
        "silence.threshold_db": threshold_db,
        "silence.min_duration": min_duration,
    })
    try:
        periods = detect_silences(audio, cfg.silence)
    except _CLI_ERRORS as e:
        error(f"Silence detection failed: {e}")
        raise typer.Exit(1)

    out = output or audio.with_suffix(".silences.json")
    write_silences(periods, out)
    success(f"{len(periods)} silence periods: {out}")


# ── INIT CONFIG ───────────────────────────────────────────────────────────────

@app.command(name="init-config")
def init_config(
    path: Annotated[Path, typer.Option("--path")] = Path("readsync.yaml"),
    force: Annotated[bool, typer.Option("--force")] = False,
):
    """Generate a default readsync.yaml."""
    setup_logging(Verbosity.NORMAL, log_file=False)
    if path.exists() and not force:
        if not Confirm.ask(f"{path} exists. Overwrite?", default=False):
            raise typer.Exit(0)
    path.write_text(DEFAULT_CONFIG_YAML, encoding="utf-8")
    success(f"Created {path}")


# ── CHECK ─────────────────────────────────────────────────────────────────────

@app.command()
def check(
    detector: Annotated[Detector, typer.Option()] = Detector.webrtcvad,
    strict: Annotated[bool, typer.Option("--strict")] = False,
):
    """Report external tool and library availability."""
    setup_logging(Verbosity.NORMAL, log_file=False)
    ok = print_dep_status(check_all("aeneas", detector.value), strict=strict)
    if not ok:
        raise typer.Exit(1)


# ── ENTRY POINT ───────────────────────────────────────────────────────────────

def app_entry():
    app()


if __name__ == "__main__":
    app_entry()
