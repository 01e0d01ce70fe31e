"""
Step 5 – Intensity-weighted mean shift for centre refinement.

Each candidate peak near the current centre is shifted, for a fixed number
of iterations, to the Gaussian-kernel weighted mean of the bright voxels
within ``radius`` of it. Voxel intensity acts as the mass of each point, so
tracked points climb towards the brightest, densest part of the cell. The
converged point closest to the original centre becomes the new centre.

Standalone usage:
    python -m cellmorph.step5_meanshift --volume stack.tif --seed 120 80 30 --radius 12 --threshold 200
"""
from __future__ import annotations

import argparse
import math

import numpy as np

from cellmorph.step1_region import squared_distance
from cellmorph.step4_peaks import neighbors_within_radius

DEFAULT_ITERATIONS = 15


# ── Kernel ───────────────────────────────────────────────────────────────

def gaussian_kernel(distance, sigma):
    return (1.0 / (sigma * math.sqrt(2 * math.pi))) * np.exp(-0.5 * (distance / sigma) ** 2)


# ── Mean shift ───────────────────────────────────────────────────────────

def filter_candidates(region, peaks, radius):
    """Positions of peaks within *radius* of the centre; the centre if none are."""
    r2 = float(radius) ** 2
    kept = [p.position for p in peaks
            if squared_distance(region.center, p.position, region.scale_z) <= r2]
    return kept or [tuple(region.center)]


def shift_point(region, point, radius, sigma, thresh):
    """
    One mean-shift update of *point*.

    Returns the point unchanged when no neighbour reaches *thresh*.
    """
    positions, values = neighbors_within_radius(region, point, radius)
    keep = values >= thresh
    if not keep.any():
        return point
    origin = np.asarray(point, dtype=np.float64)
    offsets = positions[keep].astype(np.float64) - origin
    values = values[keep].astype(np.float64)

    scaled = offsets.copy()
    scaled[:, 2] /= region.scale_z
    distance = np.sqrt(np.sum(scaled * scaled, axis=1))

    weights = gaussian_kernel(distance, sigma) * values
    denominator = weights.sum()
    if denominator <= 0:
        return point
    # drop summation noise before truncating: 35 - 1e-14 must stay 35
    shifted = np.round(origin + (weights @ offsets) / denominator, 6)
    return tuple(int(v) for v in np.trunc(shifted))


def mean_shift(region, points, radius, sigma, thresh, iterations=DEFAULT_ITERATIONS):
    """Shift every point for a fixed number of iterations (no tolerance stop)."""
    tracked = [tuple(p) for p in points]
    for _ in range(iterations):
        tracked = [shift_point(region, x, radius, sigma, thresh) for x in tracked]
    return tracked


def select_centroid(region, centroids):
    """Centroid closest to the region centre; first one wins ties."""
    best, best_d2 = None, math.inf
    for c in centroids:
        d2 = squared_distance(region.center, c, region.scale_z)
        if d2 < best_d2:
            best, best_d2 = c, d2
    return best


# ── Public entry point ───────────────────────────────────────────────────

def refine_center(region, radius, peaks, sigma, thresh, iterations=DEFAULT_ITERATIONS):
    """
    Run mean shift from the peaks near the centre and pick the new centre.

    The region is not modified; callers assign the result to ``region.center``.

    Returns
    -------
    center : tuple        – refined local (x, y, z)
    centroids : list      – every converged point
    """
    candidates = filter_candidates(region, peaks, radius)
    centroids = mean_shift(region, candidates, radius, sigma, thresh, iterations)
    return select_centroid(region, centroids), centroids


# ── Standalone CLI ───────────────────────────────────────────────────────

def _cli():
    parser = argparse.ArgumentParser(description='Step 5: Mean-shift centre refinement')
    parser.add_argument('--volume', required=True, help='Path to input stack')
    parser.add_argument('--seed', nargs=3, type=int, required=True, metavar=('X', 'Y', 'Z'))
    parser.add_argument('--dim', type=int, default=70)
    parser.add_argument('--scale-z', type=float, default=0.4)
    parser.add_argument('--radius', type=int, required=True, help='first-pass radius')
    parser.add_argument('--threshold', type=float, required=True)
    parser.add_argument('--sigma', type=float, default=10.0)
    parser.add_argument('--iterations', type=int, default=DEFAULT_ITERATIONS)
    args = parser.parse_args()

    from cellmorph.io_utils import load_volume
    from cellmorph.step1_region import CellRegion
    from cellmorph.step4_peaks import run_peak_detection
    volume = load_volume(args.volume, scale_z=args.scale_z)
    region = CellRegion.from_volume(volume, args.seed, args.dim)

    peaks = run_peak_detection(region, args.radius, args.threshold)
    center, centroids = refine_center(region, args.radius, peaks, args.sigma,
                                      args.threshold, args.iterations)
    print(f"{len(centroids)} centroids from {len(peaks)} peaks")
    print(f"New center: {region.to_absolute(center)} (seed {region.seed})")


if __name__ == '__main__':
    _cli()
