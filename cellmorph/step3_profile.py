"""
Step 3 – Radial intensity profile, adaptive threshold and radius estimate.

All distances are taken from ``region.center`` with the anisotropic metric
``dx^2 + dy^2 + dz^2 / scale_z^2``. Shells are half-open: ``r0 <= d < r1``.

Standalone usage:
    python -m cellmorph.step3_profile --volume stack.tif --seed 120 80 30 --output profile.npz
"""
from __future__ import annotations

import argparse

import numpy as np


# ── Helpers ──────────────────────────────────────────────────────────────

def _masked_mean(data, d2, r0, r1):
    lo = float(max(r0, 0)) ** 2
    hi = float(r1) ** 2
    mask = (d2 >= lo) & (d2 < hi)
    if not mask.any():
        return 0.0
    return float(np.mean(data[mask], dtype=np.float64))


# ── Radial profiler ──────────────────────────────────────────────────────

def shell_mean(region, r0, r1):
    """
    Mean intensity of the voxels with ``r0 <= distance < r1`` from the centre.

    Voxels outside the region are simply not sampled. An empty shell gives 0.
    """
    return _masked_mean(region.data, region.squared_distances(), r0, r1)


def full_region_profile(region, max_radius):
    """``shell_mean(region, r, r + 1)`` for every integer r in [0, max_radius]."""
    d2 = region.squared_distances()
    return np.array([_masked_mean(region.data, d2, r, r + 1)
                     for r in range(int(max_radius) + 1)])


# ── Threshold & radius ───────────────────────────────────────────────────

def local_threshold(region, r0, r1, r2, weight):
    """Convex combination of the spot mean [0, r0) and background shell [r1, r2)."""
    d2 = region.squared_distances()
    spot = _masked_mean(region.data, d2, 0, r0)
    background = _masked_mean(region.data, d2, r1, r2)
    return weight * spot + (1 - weight) * background


def estimate_radius(region, threshold, max_radius, profile=None):
    """
    First radius whose shell mean drops below *threshold*, capped at max_radius.

    Sets ``region.radius`` to the returned value.
    """
    if profile is None:
        profile = full_region_profile(region, max_radius)
    radius = int(max_radius)
    for r, value in enumerate(profile[:int(max_radius) + 1]):
        if value < threshold:
            radius = r
            break
    region.radius = radius
    return radius


# ── Public entry point ───────────────────────────────────────────────────

def run_profile(region, r0, r1, r2, weight, max_radius):
    """
    Threshold and radius around the region's current centre.

    Returns
    -------
    threshold : float
    radius : int
    profile : ndarray  – shell means for r = 0..max_radius
    """
    threshold = local_threshold(region, r0, r1, r2, weight)
    profile = full_region_profile(region, max_radius)
    radius = estimate_radius(region, threshold, max_radius, profile=profile)
    return threshold, radius, profile


# ── Standalone CLI ───────────────────────────────────────────────────────

def _cli():
    parser = argparse.ArgumentParser(description='Step 3: Radial profile & radius')
    parser.add_argument('--volume', required=True, help='Path to input stack')
    parser.add_argument('--seed', nargs=3, type=int, required=True, metavar=('X', 'Y', 'Z'))
    parser.add_argument('--dim', type=int, default=70)
    parser.add_argument('--scale-z', type=float, default=0.4)
    parser.add_argument('--radii', nargs=3, type=int, default=[13, 18, 40])
    parser.add_argument('--weight', type=float, default=0.4)
    parser.add_argument('--max-radius', type=int, default=40)
    parser.add_argument('--output', '-o', default='profile_output.npz')
    args = parser.parse_args()

    from cellmorph.io_utils import load_volume
    from cellmorph.step1_region import CellRegion
    volume = load_volume(args.volume, scale_z=args.scale_z)
    region = CellRegion.from_volume(volume, args.seed, args.dim)

    threshold, radius, profile = run_profile(region, *args.radii, args.weight, args.max_radius)
    print(f"Threshold: {threshold:.2f}")
    print(f"Radius: {radius}")

    np.savez_compressed(args.output, profile=profile, threshold=threshold, radius=radius)
    print(f"Saved -> {args.output}")


if __name__ == '__main__':
    _cli()
