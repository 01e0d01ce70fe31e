"""
Step 1 – Sub-volume box and cell region.

Crops a box of ``cube_dim`` (xy) by ``cube_dim * scale_z`` (z) around a seed,
clipped to the volume, and wraps it in a CellRegion with its own local frame
(local = absolute - box origin).

Standalone usage:
    python -m cellmorph.step1_region --volume stack.tif --seed 120 80 30 --output region.npz
"""
from __future__ import annotations

import argparse

import numpy as np

from cellmorph.exceptions import BoundsError
from cellmorph.io_utils import Box


# ── Geometry helpers ─────────────────────────────────────────────────────

def squared_distance(a, b, scale_z):
    """Anisotropy-corrected squared distance between two (x, y, z) points."""
    ratio = 1.0 / scale_z
    dx, dy, dz = (a[0] - b[0]), (a[1] - b[1]), (a[2] - b[2])
    return dx * dx + dy * dy + dz * dz * ratio * ratio


def make_box(seed, dim, scale_z, dims):
    """
    Box of edge ``dim`` (xy) and ``dim * scale_z`` (z) centred on *seed*.

    The origin is clipped at 0 first, then the size is clipped so the far
    edge never exceeds the volume extent. A seed near the low edge therefore
    gets a box reaching further past the seed on the high side.
    """
    halves = (dim // 2, dim // 2, int(dim * scale_z / 2))
    origin, size = [], []
    for c, half, extent in zip(seed, halves, dims):
        span = max(2 * half, 1)
        o = min(max(c - half, 0), extent)
        origin.append(o)
        size.append(max(min(span, extent - o), 0))
    return Box(*origin, *size)


# ── Cell region ──────────────────────────────────────────────────────────

class CellRegion:
    """
    Cropped view of a volume around one seed.

    ``center`` is in local (x, y, z) coordinates and ``radius`` is an integer
    in xy voxel units; both are updated in place by the pipeline stages.
    """

    def __init__(self, data, box, seed, scale_z, radius):
        self.data = data
        self.box = box
        self.seed = tuple(int(v) for v in seed)
        self.scale_z = scale_z
        self.radius = int(radius)
        self.center = self.to_local(self.seed)

    @classmethod
    def from_volume(cls, volume, seed, dim, scale_z=None):
        scale_z = volume.scale_z if scale_z is None else scale_z
        box = make_box(seed, dim, scale_z, volume.dimensions())
        return cls(volume.data[box.slices], box, seed, scale_z, radius=dim // 2)

    def with_data(self, data):
        """Copy of this region over *data* (same box, centre and radius)."""
        if data.shape != self.data.shape:
            raise ValueError(f"shape {data.shape} does not match region {self.data.shape}")
        region = CellRegion(data, self.box, self.seed, self.scale_z, self.radius)
        region.center = self.center
        return region

    @property
    def shape(self):
        """(width, height, depth)."""
        return self.box.size

    def contains(self, pos):
        x, y, z = pos
        w, h, d = self.shape
        return 0 <= x < w and 0 <= y < h and 0 <= z < d

    def voxel(self, pos):
        if not self.contains(pos):
            raise BoundsError(f"Position {tuple(pos)} is outside cell region {self.shape}",
                              tuple(pos))
        x, y, z = pos
        return self.data[z, y, x]

    def to_local(self, pos):
        return tuple(int(p - o) for p, o in zip(pos, self.box.origin))

    def to_absolute(self, pos):
        return tuple(int(p + o) for p, o in zip(pos, self.box.origin))

    def squared_distances(self, center=None):
        """Anisotropic squared distance of every voxel to *center*, as [z, y, x]."""
        cx, cy, cz = self.center if center is None else center
        d, h, w = self.data.shape
        ratio = 1.0 / self.scale_z
        zz, yy, xx = np.ogrid[:d, :h, :w]
        return (
            (xx - cx) ** 2 + (yy - cy) ** 2 + ((zz - cz) ** 2) * (ratio * ratio)
        ).astype(np.float64)

    def is_on_border(self):
        """True if the centre inflated by half the radius leaves the region."""
        half_xy = self.radius / 2
        half_z = self.radius * self.scale_z / 2
        for c, half, size in zip(self.center, (half_xy, half_xy, half_z), self.shape):
            if c - half < 0 or c + half >= size:
                return True
        return False

    def __repr__(self):
        return (f"CellRegion(seed={self.seed}, box={self.box}, "
                f"center={self.center}, radius={self.radius})")


# ── Public entry point ───────────────────────────────────────────────────

def run_region_extraction(volume, seeds, dim, scale_z=None):
    """Build one CellRegion per seed, in input order."""
    return [CellRegion.from_volume(volume, seed, dim, scale_z) for seed in seeds]


# ── Standalone CLI ───────────────────────────────────────────────────────

def _cli():
    parser = argparse.ArgumentParser(description='Step 1: Cell region extraction')
    parser.add_argument('--volume', required=True, help='Path to input stack')
    parser.add_argument('--seed', nargs=3, type=int, required=True, metavar=('X', 'Y', 'Z'))
    parser.add_argument('--dim', type=int, default=70)
    parser.add_argument('--scale-z', type=float, default=0.4)
    parser.add_argument('--output', '-o', default='region_output.npz')
    args = parser.parse_args()

    from cellmorph.io_utils import load_volume
    volume = load_volume(args.volume, scale_z=args.scale_z)
    print(f"Volume (W, H, D): {volume.dimensions()}")

    region = CellRegion.from_volume(volume, args.seed, args.dim)
    print(f"Box: {region.box}")
    print(f"Local center: {region.center}, on border: {region.is_on_border()}")

    np.savez_compressed(args.output, data=np.asarray(region.data),
                        origin=region.box.origin, center=region.center)
    print(f"Saved -> {args.output}")


if __name__ == '__main__':
    _cli()
