#!/usr/bin/env python
"""
Run the per-seed cell morphometry over a directory of marked volumes.

Every ``<volume>.marker`` found under the source directory is paired with
``<volume>``; results are written next to it as ``<volume>[RAD].marker``.
All hyperparameters live in the MeasureConfig at the top of this file.
Edit them there, or override via command-line flags.

Usage:
    python run_measure.py /path/to/stacks --scale-z 0.4 --filter gauss

Each pipeline step can also be run independently – see the individual
modules under ``cellmorph/``.
"""
from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from cellmorph.config import FILTER_METHODS, LOG_FORMATS, WINDOW_CONVENTIONS, MeasureConfig
from cellmorph.exceptions import ConfigError, DataLoadError, MarkerError
from cellmorph.io_utils import (
    find_marked_volumes,
    load_volume,
    read_marker,
    result_marker_path,
    write_marker,
)
from cellmorph.log_utils import RunReport, setup_logging
from cellmorph.step6_measure import run_measurement
from cellmorph.step7_visualize import run_visualization

logger = logging.getLogger("cellmorph.run")


# =====================================================================
#  HYPERPARAMETERS: edit defaults here or override via CLI
# =====================================================================
DEFAULT_CONFIG = MeasureConfig(
    # I/O
    source_dir="",
    invert_y=True,
    write_seed=True,
    log_file="log.txt",
    # Cell region
    cube_dim=70,
    scale_z=0.4,
    discard_edge_cells=True,
    # Pre-filter
    filter_method="none",
    filter_sigma=2.0,
    # First pass
    r0=13,
    r1=18,
    r2=40,
    mean_weight=0.4,
    max_radius=40,
    # Mean shift
    ms_sigma=10.0,
    ms_iterations=15,
    # Second pass
    window_convention="tracking",
    window_inner=3,
    window_outer=23,
    # Execution
    workers=1,
    debug=False,
    preview_count=16,
    log_level="INFO",
    log_format="default",
)


# =====================================================================
#  CLI: command-line overrides for any config field
# =====================================================================
def _build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="cellmorph",
        description="Refine seed positions into cell centre, radius and density")

    # I/O
    p.add_argument("source_dir", help="source directory for volumes and .marker files")
    p.add_argument("--matrix-coord", action="store_true",
                   help="markers use the matrix coordinate system (no y inversion)")
    p.add_argument("--no-seed", action="store_true", help="omit seed columns in output")
    p.add_argument("--log-file", default=None)
    p.add_argument("--log-format", choices=list(LOG_FORMATS), default=None,
                   help="'minimal' drops timestamps and logger names")

    # Cell region
    p.add_argument("--cube-dim", type=int, default=None)
    p.add_argument("--scale-z", "-z", type=float, default=None)
    p.add_argument("--edge-cells", action="store_true", help="include cells on edges")

    # Pre-filter
    p.add_argument("--filter", "-f", choices=list(FILTER_METHODS), default=None)
    p.add_argument("--filter-sigma", type=float, default=None)

    # First pass
    p.add_argument("--local-mean-weight", type=float, default=None)
    p.add_argument("--max-radius", type=int, default=None)

    # Mean shift
    p.add_argument("--ms-sigma", type=float, default=None)
    p.add_argument("--ms-iterations", type=int, default=None)

    # Second pass
    p.add_argument("--windows", choices=list(WINDOW_CONVENTIONS), default=None)
    p.add_argument("--window-inner", type=int, default=None)
    p.add_argument("--window-outer", type=int, default=None)

    # Execution
    p.add_argument("--workers", "-j", type=int, default=None)
    p.add_argument("--debug", "-d", action="store_true")
    p.add_argument("--preview-count", type=int, default=None)
    return p


def _override(value, default):
    return value if value is not None else default


def _parse_args(argv=None) -> MeasureConfig:
    """Build config from DEFAULT_CONFIG + CLI overrides."""
    args = _build_parser().parse_args(argv)
    d = DEFAULT_CONFIG
    return MeasureConfig(
        source_dir=args.source_dir,
        invert_y=not args.matrix_coord,
        write_seed=not args.no_seed,
        log_file=_override(args.log_file, d.log_file),
        cube_dim=_override(args.cube_dim, d.cube_dim),
        scale_z=_override(args.scale_z, d.scale_z),
        discard_edge_cells=not args.edge_cells,
        filter_method=_override(args.filter, d.filter_method),
        filter_sigma=_override(args.filter_sigma, d.filter_sigma),
        r0=d.r0,
        r1=d.r1,
        r2=d.r2,
        mean_weight=_override(args.local_mean_weight, d.mean_weight),
        max_radius=_override(args.max_radius, d.max_radius),
        ms_sigma=_override(args.ms_sigma, d.ms_sigma),
        ms_iterations=_override(args.ms_iterations, d.ms_iterations),
        window_convention=_override(args.windows, d.window_convention),
        window_inner=_override(args.window_inner, d.window_inner),
        window_outer=_override(args.window_outer, d.window_outer),
        workers=_override(args.workers, d.workers),
        debug=args.debug,
        preview_count=_override(args.preview_count, d.preview_count),
        log_level="DEBUG" if args.debug else d.log_level,
        log_format=_override(args.log_format, d.log_format),
    )


# =====================================================================
#  Pipeline runner
# =====================================================================
def process_volume(volume_path, marker_path, cfg: MeasureConfig, report: RunReport,
                   show_progress=True):
    """Measure all seeds of one volume and write its result marker."""
    name = Path(volume_path).name
    logger.info("Processing %s...", volume_path)
    try:
        volume = load_volume(volume_path, scale_z=cfg.scale_z)
        _, height, _ = volume.dimensions()
        seeds = read_marker(marker_path, image_height=height if cfg.invert_y else 0)
    except (DataLoadError, MarkerError) as e:
        logger.error("Skipped %s: %s", name, e)
        report.skip_image(name, str(e))
        return []

    outcomes = run_measurement(volume, seeds, cfg, show_progress=show_progress)
    results = [o.result for o in outcomes if o.emitted]
    for o in outcomes:
        if not o.emitted:
            report.skip_cell(o.status, o.reason)

    out_path = result_marker_path(volume_path)
    write_marker(out_path, results, write_seed=cfg.write_seed)
    logger.info("%s: %d/%d cells measured -> %s", name, len(results), len(seeds), out_path)

    if cfg.debug:
        previews = [o.preview for o in outcomes if o.preview is not None]
        montage = run_visualization(
            previews, name,
            save_path=str(Path(volume_path).parent / f"{name}_montage.png"),
            count=cfg.preview_count,
        )
        if montage:
            logger.info("  montage -> %s", montage)

    report.images_done += 1
    report.cells_emitted += len(results)
    return outcomes


def run(cfg: MeasureConfig, show_progress=True) -> RunReport:
    """Execute the pipeline for every marked volume under cfg.source_dir."""
    report = RunReport()
    pairs = find_marked_volumes(cfg.source_dir)
    if not pairs:
        logger.warning("No .marker files found in %s", cfg.source_dir)
        return report
    logger.info("Found %d marked volume(s)", len(pairs))
    logger.info(
        "Settings: dim=%d, scale_z=%.3f, filter=%s, weight=%.2f, max_radius=%d, "
        "ms_sigma=%.1f, windows=%s, workers=%d",
        cfg.cube_dim, cfg.scale_z, cfg.filter_method, cfg.mean_weight, cfg.max_radius,
        cfg.ms_sigma, cfg.window_convention, cfg.workers,
    )

    for idx, (volume_path, marker_path) in enumerate(pairs):
        logger.info("[%d/%d] %s", idx + 1, len(pairs), volume_path.name)
        process_volume(volume_path, marker_path, cfg, report, show_progress=show_progress)

    report.log_summary(logger)
    return report


# =====================================================================
#  Entry point
# =====================================================================
def main(argv=None) -> int:
    cfg = _parse_args(argv)
    try:
        cfg.validate(require_source=True)
    except ConfigError as e:
        print(f"Invalid configuration: {e}", file=sys.stderr)
        return 2

    log_file = None
    if cfg.log_file:
        log_file = Path(cfg.log_file)
        if not log_file.is_absolute():
            log_file = Path(cfg.source_dir) / log_file
    setup_logging(cfg.log_level, str(log_file) if log_file else None,
                  format_style=cfg.log_format)

    run(cfg)
    return 0


if __name__ == "__main__":
    sys.exit(main())
