"""
Central configuration for all morphometry hyperparameters.

Edit the defaults here or override them from run_measure.py.
"""
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from cellmorph.exceptions import ConfigError

FILTER_METHODS = ("none", "gauss", "mean", "median")
WINDOW_CONVENTIONS = ("tracking", "fixed")
LOG_FORMATS = ("default", "minimal")


@dataclass
class MeasureConfig:
    """All tuneable hyperparameters for the pipeline, in one place."""

    # ── I/O ──────────────────────────────────────────────────────────────
    source_dir: str = ""
    invert_y: bool = True                 # markers use the graphic (y-up) frame
    write_seed: bool = True               # append seed columns to output rows
    log_file: str | None = "log.txt"      # relative paths land in source_dir

    # ── Cell region ──────────────────────────────────────────────────────
    cube_dim: int = 70                    # edge of the box around each seed
    scale_z: float = 0.4                  # resZ / resXY, 1 means isotropic
    discard_edge_cells: bool = True

    # ── Pre-filter ───────────────────────────────────────────────────────
    filter_method: str = "none"           # 'none', 'gauss', 'mean', 'median'
    filter_sigma: float = 2.0

    # ── First-pass threshold & radius ────────────────────────────────────
    r0: int = 13                          # spot radius
    r1: int = 18                          # background shell inner radius
    r2: int = 40                          # background shell outer radius
    mean_weight: float = 0.4              # <0.5 favours background
    max_radius: int = 40

    # ── Mean shift ───────────────────────────────────────────────────────
    ms_sigma: float = 10.0
    ms_iterations: int = 15

    # ── Second-pass windows ──────────────────────────────────────────────
    window_convention: str = "tracking"   # 'tracking' or 'fixed' outer edge
    window_inner: int = 3                 # delta around the first radius
    window_outer: int = 23                # outer offset for 'tracking'

    # ── Execution ────────────────────────────────────────────────────────
    workers: int = 1
    debug: bool = False
    preview_count: int = 16
    log_level: str = "INFO"
    log_format: str = "default"           # 'default' (timestamped) or 'minimal'

    def validate(self, require_source: bool = False) -> "MeasureConfig":
        """Raise ConfigError on the first invalid field, return self otherwise."""
        if self.filter_method not in FILTER_METHODS:
            raise ConfigError(
                f"Unknown filter '{self.filter_method}', expected one of {FILTER_METHODS}",
                field="filter_method",
            )
        if self.window_convention not in WINDOW_CONVENTIONS:
            raise ConfigError(
                f"Unknown window convention '{self.window_convention}', "
                f"expected one of {WINDOW_CONVENTIONS}",
                field="window_convention",
            )
        if not 0 < self.scale_z <= 1:
            raise ConfigError(f"scale_z must be in (0, 1], got {self.scale_z}", field="scale_z")
        if self.cube_dim <= 0:
            raise ConfigError(f"cube_dim must be positive, got {self.cube_dim}", field="cube_dim")
        if not 0 <= self.mean_weight <= 1:
            raise ConfigError(
                f"mean_weight must be in [0, 1], got {self.mean_weight}", field="mean_weight")
        if self.max_radius < 0:
            raise ConfigError(
                f"max_radius must be >= 0, got {self.max_radius}", field="max_radius")
        if not 0 <= self.r0 <= self.r1 <= self.r2:
            raise ConfigError(
                f"expected 0 <= r0 <= r1 <= r2, got {self.r0}, {self.r1}, {self.r2}",
                field="r0",
            )
        if self.window_inner < 0 or self.window_outer < 0:
            raise ConfigError("window offsets must be >= 0", field="window_inner")
        if self.filter_sigma <= 0:
            raise ConfigError(
                f"filter_sigma must be positive, got {self.filter_sigma}", field="filter_sigma")
        if self.ms_sigma <= 0:
            raise ConfigError(f"ms_sigma must be positive, got {self.ms_sigma}", field="ms_sigma")
        if self.ms_iterations < 1:
            raise ConfigError(
                f"ms_iterations must be >= 1, got {self.ms_iterations}", field="ms_iterations")
        if self.log_format not in LOG_FORMATS:
            raise ConfigError(
                f"Unknown log format '{self.log_format}', expected one of {LOG_FORMATS}",
                field="log_format",
            )
        if self.workers < 1:
            raise ConfigError(f"workers must be >= 1, got {self.workers}", field="workers")
        if require_source and not Path(self.source_dir).is_dir():
            raise ConfigError(f"source dir '{self.source_dir}' is not valid", field="source_dir")
        return self
