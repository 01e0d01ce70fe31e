"""
Step 6 – Per-seed morphometry and per-volume orchestration.

For every seed:
  bounded -> border check -> first profile (threshold, radius) -> peaks
  -> mean shift -> second profile around the refined centre -> density.

A seed ends as ``emitted`` (a CellResult), ``rejected`` (border cell) or
``failed`` (any exception, recorded with its stage). Failures never abort
the volume.

Standalone usage:
    python -m cellmorph.step6_measure --volume stack.tif --seed 120 80 30 --scale-z 0.4
"""
from __future__ import annotations

import argparse
import logging
import math
import multiprocessing
from enum import Enum

import numpy as np
from tqdm import tqdm

from cellmorph.config import MeasureConfig
from cellmorph.exceptions import BoundsError
from cellmorph.io_utils import CellOutcome, CellPreview, CellResult
from cellmorph.step1_region import CellRegion
from cellmorph.step2_filter import run_filter
from cellmorph.step3_profile import estimate_radius, local_threshold
from cellmorph.step4_peaks import local_max_position, neighbors_within_radius, run_peak_detection
from cellmorph.step5_meanshift import refine_center

logger = logging.getLogger(__name__)


class CellStage(str, Enum):
    CREATED = "created"
    BOUNDED = "bounded"
    FIRST_PROFILED = "first_profiled"
    PEAK_SEEDED = "peak_seeded"
    REFINED = "refined"
    FINAL_PROFILED = "final_profiled"
    EMITTED = "emitted"
    REJECTED = "rejected"
    FAILED = "failed"


# ── Density & windows ────────────────────────────────────────────────────

def compute_density(region, threshold, radius):
    """
    Summed intensity of voxels >= threshold within *radius* of the centre,
    divided by the sphere's volume in voxels (4/3 pi r^3 scale_z).
    """
    if radius <= 0:
        return 0.0
    _, values = neighbors_within_radius(region, region.center, radius)
    bright = values[values >= threshold]
    if bright.size == 0:
        return 0.0
    volume = 4.0 / 3.0 * math.pi * radius ** 3 * region.scale_z
    return float(np.sum(bright, dtype=np.float64) / volume)


def second_pass_windows(radius, cfg):
    """(r0, r1, r2) for the threshold around the refined centre."""
    r0 = max(radius - cfg.window_inner, 0)
    r1 = radius + cfg.window_inner
    if cfg.window_convention == "fixed":
        r2 = cfg.r2
    else:
        r2 = radius + cfg.window_outer
    return r0, r1, r2


def make_preview(region, density):
    cx, cy, cz = region.center
    image = np.array(region.data[cz], dtype=np.float64)
    return CellPreview(image=image, center=(cx, cy), radius=region.radius,
                       density=density, title=f"{region.seed}")


# ── Single cell ──────────────────────────────────────────────────────────

def measure_cell(volume, seed, cfg: MeasureConfig) -> CellOutcome:
    """Run the whole per-seed sequence and report how it ended."""
    seed = tuple(int(v) for v in seed)
    outcome = CellOutcome(seed=seed, status="failed", stage=CellStage.CREATED.value)
    log = outcome.messages.append

    try:
        region = CellRegion.from_volume(volume, seed, cfg.cube_dim, cfg.scale_z)
        outcome.stage = CellStage.BOUNDED.value
        log(f"Cell at {seed}, box {region.box.origin} {region.box.size}")

        if region.is_on_border():
            if cfg.discard_edge_cells:
                outcome.status = CellStage.REJECTED.value
                outcome.reason = "on border"
                return outcome
            log("- Border cell kept")
        if not region.contains(region.center):
            raise BoundsError(f"Seed {seed} lies outside the volume", seed)

        if cfg.filter_method != "none":
            log(f"- Applying {cfg.filter_method} 3D filtering")
            region = run_filter(region, cfg.filter_method, cfg.filter_sigma)

        local_max = local_max_position(region)
        log(f"- Local max in {region.to_absolute(local_max)}, value: {region.voxel(local_max)}")

        threshold1 = local_threshold(region, cfg.r0, cfg.r1, cfg.r2, cfg.mean_weight)
        radius1 = estimate_radius(region, threshold1, cfg.max_radius)
        outcome.stage = CellStage.FIRST_PROFILED.value
        log(f"- Local mean: {threshold1:.3f}")
        log(f"- First radius: {radius1}")

        peaks = run_peak_detection(region, radius1, threshold1)
        outcome.stage = CellStage.PEAK_SEEDED.value
        log(f"- Applying mean shift with {len(peaks)} peaks")

        center, _ = refine_center(region, radius1, peaks, cfg.ms_sigma, threshold1,
                                  cfg.ms_iterations)
        region.center = center
        outcome.stage = CellStage.REFINED.value
        log(f"- New center: {region.to_absolute(center)}")

        r0, r1, r2 = second_pass_windows(radius1, cfg)
        threshold2 = local_threshold(region, r0, r1, r2, cfg.mean_weight)
        radius2 = estimate_radius(region, threshold2, cfg.max_radius)
        density = compute_density(region, threshold2, radius2)
        outcome.stage = CellStage.FINAL_PROFILED.value
        log(f"- New radius: {radius2}, density: {density:.3f}")

        x, y, z = region.to_absolute(region.center)
        outcome.result = CellResult(x=x, y=y, z=z, radius=radius2, density=density, seed=seed)
        if cfg.debug:
            outcome.preview = make_preview(region, density)
        outcome.status = CellStage.EMITTED.value
        outcome.stage = CellStage.EMITTED.value
    except Exception as e:
        outcome.status = CellStage.FAILED.value
        outcome.reason = f"{type(e).__name__}: {e}"
    return outcome


# ── Worker pool ──────────────────────────────────────────────────────────

_worker_state = {}


def _init_worker(volume, cfg):
    _worker_state["volume"] = volume
    _worker_state["cfg"] = cfg


def _measure_seed_worker(seed):
    return measure_cell(_worker_state["volume"], seed, _worker_state["cfg"])


# ── Public entry point ───────────────────────────────────────────────────

def run_measurement(volume, seeds, cfg: MeasureConfig, show_progress=True):
    """
    Measure every seed of one volume; outcomes come back in seed order.

    With ``cfg.workers > 1`` seeds are spread over a process pool that holds
    one copy of the volume per worker.
    """
    seeds = [tuple(s) for s in seeds]
    desc = volume.name or "cells"
    if cfg.workers <= 1 or len(seeds) <= 1:
        outcomes = [measure_cell(volume, s, cfg)
                    for s in tqdm(seeds, desc=desc, disable=not show_progress)]
    else:
        with multiprocessing.Pool(cfg.workers, initializer=_init_worker,
                                  initargs=(volume, cfg)) as pool:
            outcomes = list(tqdm(pool.imap(_measure_seed_worker, seeds),
                                 total=len(seeds), desc=desc, disable=not show_progress))

    for outcome in outcomes:
        for message in outcome.messages:
            logger.debug(message)
        if outcome.status == CellStage.FAILED.value:
            logger.warning("Skipped cell %s during '%s', reason: %s",
                           outcome.seed, outcome.stage, outcome.reason)
        elif outcome.status == CellStage.REJECTED.value:
            logger.info("Skipped on border cell %s", outcome.seed)
    return outcomes


# ── Standalone CLI ───────────────────────────────────────────────────────

def _cli():
    parser = argparse.ArgumentParser(description='Step 6: Measure one cell')
    parser.add_argument('--volume', required=True, help='Path to input stack')
    parser.add_argument('--seed', nargs=3, type=int, required=True, metavar=('X', 'Y', 'Z'))
    parser.add_argument('--dim', type=int, default=70)
    parser.add_argument('--scale-z', type=float, default=0.4)
    parser.add_argument('--keep-edge', action='store_true')
    args = parser.parse_args()

    from cellmorph.io_utils import load_volume
    cfg = MeasureConfig(cube_dim=args.dim, scale_z=args.scale_z,
                        discard_edge_cells=not args.keep_edge).validate()
    volume = load_volume(args.volume, scale_z=args.scale_z)

    outcome = measure_cell(volume, args.seed, cfg)
    for message in outcome.messages:
        print(message)
    print(f"Status: {outcome.status} ({outcome.stage}) {outcome.reason}")
    if outcome.result is not None:
        r = outcome.result
        print(f"Center {r.center}, radius {r.radius}, density {r.density:.3f}")


if __name__ == '__main__':
    _cli()
