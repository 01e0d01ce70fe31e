"""
Step 4 – Local maxima and spherical neighbourhoods inside a cell region.

* ``local_max_position``: greedy steepest ascent over the 3x3x3 neighbourhood.
* ``find_peaks``: regional maxima above a noise tolerance (scikit-image).
* ``neighbors_within_radius``: voxels of an anisotropic ball around a point.

Standalone usage:
    python -m cellmorph.step4_peaks --volume stack.tif --seed 120 80 30 --radius 8 --tolerance 200
"""
from __future__ import annotations

import argparse

import numpy as np
from skimage.feature import peak_local_max

from cellmorph.io_utils import Peak

# z-y-x scan order; the first strictly best neighbour wins ties
NEIGHBOR_OFFSETS = [
    (dx, dy, dz)
    for dz in (-1, 0, 1)
    for dy in (-1, 0, 1)
    for dx in (-1, 0, 1)
    if (dx, dy, dz) != (0, 0, 0)
]


# ── Hill climb ───────────────────────────────────────────────────────────

def local_max_position(region, start=None):
    """
    Walk from *start* (default: region centre) to the nearest local maximum.

    Neighbours outside the region are ignored. Each step moves to the
    brightest neighbour that is strictly brighter than the current voxel.
    """
    pos = tuple(region.center if start is None else start)
    value = region.voxel(pos)
    while True:
        best, best_value = None, value
        for dx, dy, dz in NEIGHBOR_OFFSETS:
            cand = (pos[0] + dx, pos[1] + dy, pos[2] + dz)
            if not region.contains(cand):
                continue
            v = region.voxel(cand)
            if v > best_value:
                best, best_value = cand, v
        if best is None:
            return pos
        pos, value = best, best_value


# ── Neighbourhood enumeration ────────────────────────────────────────────

def neighbors_within_radius(region, center, radius):
    """
    Voxels whose anisotropic distance to *center* is at most *radius*.

    Returns
    -------
    positions : ndarray (N, 3) – local (x, y, z) integer coordinates
    values : ndarray (N,)      – intensities
    """
    cx, cy, cz = (int(c) for c in center)
    d, h, w = region.data.shape
    r_xy = int(np.floor(radius))
    r_z = int(np.floor(radius * region.scale_z))

    x_lo, x_hi = max(cx - r_xy, 0), min(cx + r_xy + 1, w)
    y_lo, y_hi = max(cy - r_xy, 0), min(cy + r_xy + 1, h)
    z_lo, z_hi = max(cz - r_z, 0), min(cz + r_z + 1, d)
    if x_lo >= x_hi or y_lo >= y_hi or z_lo >= z_hi:
        return np.empty((0, 3), dtype=np.int64), np.empty(0, dtype=region.data.dtype)

    zz, yy, xx = np.meshgrid(np.arange(z_lo, z_hi), np.arange(y_lo, y_hi),
                             np.arange(x_lo, x_hi), indexing='ij')
    ratio = 1.0 / region.scale_z
    d2 = (xx - cx) ** 2 + (yy - cy) ** 2 + ((zz - cz) ** 2) * (ratio * ratio)
    inside = d2 <= float(radius) ** 2

    positions = np.stack([xx[inside], yy[inside], zz[inside]], axis=1)
    values = region.data[z_lo:z_hi, y_lo:y_hi, x_lo:x_hi][inside]
    return positions, values


# ── Peak detection ───────────────────────────────────────────────────────

def find_peaks(region, search_radius, noise_tolerance):
    """
    Regional maxima brighter than *noise_tolerance*, brightest first.

    The maximum filter spans +/- search_radius in xy and
    +/- search_radius * scale_z in z; plateaus are thinned to one peak per
    ``search_radius`` voxels.
    """
    r_xy = max(int(search_radius), 1)
    r_z = max(int(round(r_xy * region.scale_z)), 1)
    footprint = np.ones((2 * r_z + 1, 2 * r_xy + 1, 2 * r_xy + 1), dtype=bool)

    coords = peak_local_max(
        np.asarray(region.data, dtype=np.float64),
        min_distance=r_xy,
        threshold_abs=float(noise_tolerance),
        footprint=footprint,
        exclude_border=False,
    )
    return [Peak(int(x), int(y), int(z), float(region.data[z, y, x]))
            for z, y, x in coords]


# ── Public entry point ───────────────────────────────────────────────────

def run_peak_detection(region, radius, threshold):
    """Peaks for mean-shift seeding: search radius radius/2, plus the centre."""
    peaks = find_peaks(region, radius // 2, threshold)
    cx, cy, cz = region.center
    peaks.append(Peak(cx, cy, cz, float(region.voxel(region.center))))
    return peaks


# ── Standalone CLI ───────────────────────────────────────────────────────

def _cli():
    parser = argparse.ArgumentParser(description='Step 4: Local maxima in a cell region')
    parser.add_argument('--volume', required=True, help='Path to input stack')
    parser.add_argument('--seed', nargs=3, type=int, required=True, metavar=('X', 'Y', 'Z'))
    parser.add_argument('--dim', type=int, default=70)
    parser.add_argument('--scale-z', type=float, default=0.4)
    parser.add_argument('--radius', type=int, default=8, help='search radius')
    parser.add_argument('--tolerance', type=float, default=0.0)
    args = parser.parse_args()

    from cellmorph.io_utils import load_volume
    from cellmorph.step1_region import CellRegion
    volume = load_volume(args.volume, scale_z=args.scale_z)
    region = CellRegion.from_volume(volume, args.seed, args.dim)

    local_max = local_max_position(region)
    print(f"Local max at {local_max}, value {region.voxel(local_max)}")
    peaks = find_peaks(region, args.radius, args.tolerance)
    print(f"{len(peaks)} peaks")
    for p in peaks:
        print(f"  {region.to_absolute(p.position)}  {p.intensity:.1f}")


if __name__ == '__main__':
    _cli()
