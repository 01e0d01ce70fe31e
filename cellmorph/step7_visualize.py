"""
Step 7 – Debug montages of measured cells and result-marker statistics.

Standalone usage:
    python -m cellmorph.step7_visualize --marker "stack.tif[RAD].marker" --scale-z 0.33
"""
from __future__ import annotations

import argparse
import math

import numpy as np
import matplotlib
matplotlib.use('Agg')
import matplotlib.pyplot as plt

from cellmorph.step1_region import squared_distance


# ── Statistics ───────────────────────────────────────────────────────────

def result_statistics(rows, scale_z):
    """
    Mean centre displacement (refined vs seed) and mean radius of result rows.

    Rows are ``[x, y, z, r, seed_x, seed_y, seed_z]``; rows without seed
    columns only contribute to the radius.
    """
    if not rows:
        return {'n_cells': 0, 'mean_distance': 0.0, 'mean_radius': 0.0}
    distances = [
        math.sqrt(squared_distance(row[0:3], row[4:7], scale_z))
        for row in rows if len(row) >= 7
    ]
    return {
        'n_cells': len(rows),
        'mean_distance': float(np.mean(distances)) if distances else 0.0,
        'mean_radius': float(np.mean([row[3] for row in rows])),
    }


# ── Montage ──────────────────────────────────────────────────────────────

def plot_montage(previews, title="", save_path=None, ncols=4):
    """Grid of centre slices with the refined centre and radius circle."""
    if not previews:
        return
    nrows = int(math.ceil(len(previews) / ncols))
    fig, axes = plt.subplots(nrows, ncols, figsize=(3.2 * ncols, 3.4 * nrows),
                             squeeze=False)
    for ax in axes.flat:
        ax.axis('off')

    for ax, pv in zip(axes.flat, previews):
        ax.imshow(pv.image, cmap='inferno')
        cx, cy = pv.center
        ax.plot(cx, cy, '+', color='lime', markersize=8, markeredgewidth=1.5)
        circle = plt.Circle((cx, cy), pv.radius, fill=False, color='cyan',
                            linewidth=1.5, linestyle='--')
        ax.add_patch(circle)
        ax.set_title(f'{pv.title}\nr={pv.radius}  d={pv.density:.1f}', fontsize=8)

    if title:
        fig.suptitle(title, fontsize=12, fontweight='bold')
    plt.tight_layout()
    if save_path:
        plt.savefig(save_path, dpi=120, bbox_inches='tight', facecolor='white')
        plt.close(fig)
    else:
        plt.show()


# ── Public entry point ───────────────────────────────────────────────────

def run_visualization(previews, name, save_path, count=16, seed=0):
    """Save a montage of up to *count* randomly chosen cell previews."""
    if not previews:
        return None
    rng = np.random.default_rng(seed)
    idx = np.sort(rng.choice(len(previews), size=min(count, len(previews)), replace=False))
    plot_montage([previews[i] for i in idx], title=name, save_path=save_path)
    return save_path


# ── Standalone CLI ───────────────────────────────────────────────────────

def _cli():
    parser = argparse.ArgumentParser(description='Step 7: Result marker statistics')
    parser.add_argument('--marker', required=True, help='result marker ([RAD].marker)')
    parser.add_argument('--scale-z', type=float, default=0.4)
    args = parser.parse_args()

    from cellmorph.io_utils import read_result_marker
    stats = result_statistics(read_result_marker(args.marker), args.scale_z)
    print(f"Cells: {stats['n_cells']}")
    print(f"Mean distance: {stats['mean_distance']:.3f}")
    print(f"Mean radius: {stats['mean_radius']:.3f}")


if __name__ == '__main__':
    _cli()
