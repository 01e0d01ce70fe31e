"""
Step 2 – Optional 3D pre-filter of a cell region.

Gaussian, mean or median smoothing with anisotropic kernels
(z-sigma = sigma * scale_z). The filtered data replaces the region's view of
the volume; the volume itself is never modified.

Standalone usage:
    python -m cellmorph.step2_filter --region region.npz --method gauss --sigma 2 --output filtered.npz
"""
from __future__ import annotations

import argparse

import numpy as np
from scipy import ndimage

from cellmorph.config import FILTER_METHODS
from cellmorph.exceptions import ConfigError


# ── Helpers ──────────────────────────────────────────────────────────────

def _window_size(sigma, scale_z):
    """Odd [z, y, x] window covering +/- sigma in xy and sigma * scale_z in z."""
    r_xy = max(int(round(sigma)), 1)
    r_z = int(round(sigma * scale_z))
    return (2 * r_z + 1, 2 * r_xy + 1, 2 * r_xy + 1)


def filter_array(data, method, sigma, scale_z):
    """Filter a [z, y, x] array; returns float64 data."""
    data = np.asarray(data, dtype=np.float64)
    if method == 'none':
        return data.copy()
    if method == 'gauss':
        return ndimage.gaussian_filter(data, sigma=(sigma * scale_z, sigma, sigma),
                                       mode='nearest')
    if method == 'mean':
        return ndimage.uniform_filter(data, size=_window_size(sigma, scale_z), mode='nearest')
    if method == 'median':
        return ndimage.median_filter(data, size=_window_size(sigma, scale_z), mode='nearest')
    raise ConfigError(f"Unknown filter '{method}', expected one of {FILTER_METHODS}",
                      field="filter_method")


# ── Public entry point ───────────────────────────────────────────────────

def run_filter(region, method='none', sigma=2.0):
    """Return a new CellRegion over the filtered data (same centre and radius)."""
    if method == 'none':
        return region
    return region.with_data(filter_array(region.data, method, sigma, region.scale_z))


# ── Standalone CLI ───────────────────────────────────────────────────────

def _cli():
    parser = argparse.ArgumentParser(description='Step 2: Region pre-filter')
    parser.add_argument('--region', required=True, help='region.npz from step 1')
    parser.add_argument('--method', choices=list(FILTER_METHODS), default='gauss')
    parser.add_argument('--sigma', type=float, default=2.0)
    parser.add_argument('--scale-z', type=float, default=0.4)
    parser.add_argument('--output', '-o', default='filtered_output.npz')
    args = parser.parse_args()

    data = np.load(args.region)
    filtered = filter_array(data['data'], args.method, args.sigma, args.scale_z)
    print(f"Range: [{filtered.min():.2f}, {filtered.max():.2f}]")

    np.savez_compressed(args.output, data=filtered, origin=data['origin'],
                        center=data['center'])
    print(f"Saved -> {args.output}")


if __name__ == '__main__':
    _cli()
