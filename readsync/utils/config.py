"""Configuration management with YAML support and pydantic models."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field


class ExtractionConfig(BaseModel):
    granularity: str = "sentence"            # word | sentence | paragraph
    exclude_ids: list[str] = Field(default_factory=list)
    exclude_patterns: list[str] = Field(default_factory=list)
    disable_default_exclusions: bool = False


class AlignerConfig(BaseModel):
    backend: str = "aeneas"                  # aeneas | precomputed
    language: str = "eng"
    python_cmd: str = ""                     # empty = probe python3 / python / py -3.9
    timeout: int = 900
    keep_debug_output: bool = False


class ReconcileConfig(BaseModel):
    """Scoring parameters for matching aligner fragments to source segments."""

    # search window
    lookahead: int = 5
    lookbehind: int = 2
    early_lookbehind: int = 10
    very_early_fraction: float = 0.1
    early_fraction: float = 0.3
    forced_range_start: float = 6.0
    forced_range_end: float = 9.0
    forced_range_min_chars: int = 5

    # timing expectations
    tolerance_fraction: float = 0.15
    early_ceiling_seconds: float = 20.0
    early_ceiling_fraction: float = 0.15
    max_lateness: float = 30.0

    # text component
    exact_score: float = 100.0
    exact_score_early: float = 150.0
    superset_score: float = 25.0
    superset_score_early: float = 40.0
    superset_clean_score: float = 50.0
    superset_clean_score_early: float = 80.0
    extra_char_penalty: float = 2.0
    extra_penalty_cap: float = 30.0
    subset_score: float = 30.0
    no_match_score: float = -100.0

    # proximity component
    proximity_max: float = 20.0
    early_proximity_max: float = 30.0
    early_proximity_step: float = 2.0
    late_proximity_max: float = 20.0
    late_proximity_step: float = 3.0

    # timing component
    early_ceiling_penalty: float = 300.0
    early_band_end: float = 15.0
    early_band_bonus: float = 30.0
    early_band_slope: float = 15.0
    sweet_spot_start: float = 5.0
    sweet_spot_end: float = 10.0
    sweet_spot_bonus: float = 40.0
    forced_range_bonus: float = 60.0
    early_timing_penalty_cap: float = 50.0
    early_timing_penalty_scale: float = 15.0
    timing_penalty_cap: float = 100.0
    timing_penalty_scale: float = 30.0
    timing_bonus_max: float = 10.0

    # acceptance
    min_score: float = 50.0
    reuse_tolerance: float = 0.1


class WordTimingConfig(BaseModel):
    enabled: bool = True
    min_word_duration: float = Field(default=0.25, ge=0)
    word_padding: float = Field(default=0.12, ge=0)
    punctuation_pause: float = Field(default=0.2, ge=0)
    short_word_chars: int = 2
    short_word_min_weight: float = 1.5
    medium_word_chars: int = 4
    medium_word_boost: float = 1.2
    punctuation: str = ".,!?;:"
    workers: int = Field(default=1, ge=1)


class SilenceConfig(BaseModel):
    refine: bool = True
    detector: str = "ffmpeg"                 # ffmpeg | webrtcvad
    threshold_db: float = -40.0
    min_duration: float = 0.05
    window_ms: int = 200
    min_segment_duration: float = 0.1
    vad_aggressiveness: int = Field(default=2, ge=0, le=3)
    workers: int = Field(default=1, ge=1)

    # pause adjustment (runs when snapping is disabled or fails)
    adjust_pauses: bool = True
    pause_threshold_db: float = -35.0
    pause_min_duration: float = 0.1
    pause_min_gap: float = 0.1
    pause_min_silence: float = 0.15
    apply_preroll_offset: bool = False


class LinearSpreadConfig(BaseModel):
    pause_reserve_fraction: float = Field(default=0.05, ge=0, lt=1)
    min_segment_duration: float = 0.3
    punctuation_weight: int = 2
    punctuation_pause: float = 0.15
    plain_pause: float = 0.05


class AudioConfig(BaseModel):
    normalize: bool = True
    sample_rate: int = 16000
    max_duration_drift: float = 0.1


class AppConfig(BaseModel):
    extraction: ExtractionConfig = ExtractionConfig()
    aligner: AlignerConfig = AlignerConfig()
    reconcile: ReconcileConfig = ReconcileConfig()
    word_timing: WordTimingConfig = WordTimingConfig()
    silence: SilenceConfig = SilenceConfig()
    linear_spread: LinearSpreadConfig = LinearSpreadConfig()
    audio: AudioConfig = AudioConfig()


def load_config(path: str | Path | None = None) -> AppConfig:
    if path is None:
        candidates = [Path("readsync.yaml"), Path("config.yaml"), Path("config.yml")]
        for c in candidates:
            if c.exists():
                path = c
                break
    if path is not None:
        p = Path(path)
        if p.exists():
            with open(p, encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
            return AppConfig(**data)
    return AppConfig()


def merge_cli_overrides(cfg: AppConfig, overrides: dict[str, Any]) -> AppConfig:
    data = cfg.model_dump()
    for key, val in overrides.items():
        if val is None:
            continue
        parts = key.split(".")
        d = data
        for p in parts[:-1]:
            d = d.setdefault(p, {})
        d[parts[-1]] = val
    return AppConfig(**data)


DEFAULT_CONFIG_YAML = """\
# readsync configuration

extraction:
  granularity: sentence      # word | sentence | paragraph
  exclude_ids: []
  exclude_patterns: []       # regexes, matched case-insensitively against id and text
  disable_default_exclusions: false

aligner:
  backend: aeneas            # aeneas | precomputed
  language: eng              # aeneas task_language (eng, fra, deu, ...)
  python_cmd: ""             # empty = probe python3 / python / py -3.9
  timeout: 900
  keep_debug_output: false

reconcile:
  lookahead: 5
  lookbehind: 2
  early_lookbehind: 10
  early_fraction: 0.3        # first 30% of segments count as early
  very_early_fraction: 0.1   # first 10% may look back to fragment 0
  tolerance_fraction: 0.15
  early_ceiling_seconds: 20.0
  max_lateness: 30.0
  min_score: 50.0

word_timing:
  enabled: true
  min_word_duration: 0.25
  word_padding: 0.12
  punctuation_pause: 0.2
  workers: 1

silence:
  refine: true
  detector: ffmpeg           # ffmpeg | webrtcvad
  threshold_db: -40.0
  min_duration: 0.05
  window_ms: 200
  adjust_pauses: true
  apply_preroll_offset: false

linear_spread:
  pause_reserve_fraction: 0.05
  min_segment_duration: 0.3

audio:
  normalize: true            # convert non-WAV input to CBR 16 kHz mono WAV
  sample_rate: 16000
  max_duration_drift: 0.1
"""
