"""
Shared I/O helpers and data classes used across pipeline steps.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path

import numpy as np
import tifffile
from PIL import Image, ImageSequence, UnidentifiedImageError

from cellmorph.exceptions import MarkerError, VolumeFormatError, VolumeNotFoundError

logger = logging.getLogger(__name__)

RESULT_TAG = "[RAD]"
MARKER_SUFFIX = ".marker"


# ── Data classes ─────────────────────────────────────────────────────────

@dataclass(frozen=True)
class Volume:
    """Read-only 3D intensity grid, ``data`` indexed as [z, y, x]."""

    data: np.ndarray
    scale_z: float = 1.0
    name: str = ""

    @classmethod
    def from_array(cls, data, scale_z=1.0, name=""):
        arr = np.array(data, copy=True)
        if arr.ndim == 2:
            arr = arr[np.newaxis]
        if arr.ndim != 3:
            raise VolumeFormatError(f"Expected a 3D volume, got shape {arr.shape}", name)
        arr.setflags(write=False)
        return cls(data=arr, scale_z=float(scale_z), name=name)

    def dimensions(self):
        """(W, H, D)."""
        d, h, w = self.data.shape
        return w, h, d

    def voxel(self, x, y, z):
        return self.data[z, y, x]


@dataclass(frozen=True)
class Box:
    """Axis-aligned crop in absolute volume coordinates."""

    x0: int
    y0: int
    z0: int
    width: int
    height: int
    depth: int

    @property
    def origin(self):
        return self.x0, self.y0, self.z0

    @property
    def size(self):
        return self.width, self.height, self.depth

    @property
    def slices(self):
        """Numpy slices in [z, y, x] order."""
        return (
            slice(self.z0, self.z0 + self.depth),
            slice(self.y0, self.y0 + self.height),
            slice(self.x0, self.x0 + self.width),
        )


@dataclass(frozen=True)
class Peak:
    x: int
    y: int
    z: int
    intensity: float

    @property
    def position(self):
        return self.x, self.y, self.z


@dataclass(frozen=True)
class CellResult:
    x: int
    y: int
    z: int
    radius: int
    density: float
    seed: tuple

    @property
    def center(self):
        return self.x, self.y, self.z

    def to_row(self, write_seed=True):
        row = [self.x, self.y, self.z, self.radius]
        if write_seed:
            row.extend(self.seed)
        return [str(v) for v in row]


@dataclass
class CellPreview:
    """Centre slice of a measured cell, kept for debug montages."""

    image: np.ndarray
    center: tuple        # local (x, y) in the slice
    radius: int
    density: float
    title: str


@dataclass
class CellOutcome:
    seed: tuple
    status: str          # 'emitted', 'rejected' or 'failed'
    stage: str
    result: CellResult | None = None
    reason: str = ""
    messages: list = field(default_factory=list)
    preview: CellPreview | None = None

    @property
    def emitted(self):
        return self.status == "emitted"


# ── Volume loading ───────────────────────────────────────────────────────

def _read_tiff_stack(path):
    with tifffile.TiffFile(str(path)) as tf:
        data = tf.asarray()
        rgb = tf.pages[0].photometric == tifffile.PHOTOMETRIC.RGB
    return data, rgb


def _read_pillow_stack(path):
    with Image.open(path) as img:
        rgb = img.mode in ('RGB', 'RGBA')
        frames = [np.array(frame) for frame in ImageSequence.Iterator(img)]
    return np.stack(frames), rgb


def load_volume(path, scale_z=1.0):
    """
    Load a 3D stack as a read-only :class:`Volume`.

    RGB(A) pages are averaged to grey before the shape check, so a single
    colour image becomes a one-slice volume.
    """
    p = Path(path)
    if not p.is_file():
        raise VolumeNotFoundError(f"Volume file not found: {p}", str(p))
    try:
        if p.suffix.lower() in ('.tif', '.tiff'):
            data, rgb = _read_tiff_stack(p)
        else:
            data, rgb = _read_pillow_stack(p)
    except (UnidentifiedImageError, tifffile.TiffFileError, OSError, ValueError) as e:
        raise VolumeFormatError(f"Cannot decode volume {p}: {e}", str(p), e) from e

    if rgb and data.shape[-1] in (3, 4):
        data = np.mean(data[..., :3], axis=-1)
    data = np.squeeze(data)
    if data.ndim not in (2, 3):
        raise VolumeFormatError(f"Unsupported volume shape {data.shape} in {p}", str(p))
    return Volume.from_array(data, scale_z=scale_z, name=p.name)


# ── Marker files ─────────────────────────────────────────────────────────

def read_marker(path, image_height=0):
    """
    Read seed coordinates from a comma-separated marker file.

    The first line is a header. Each row starts with ``x,y,z`` (floats are
    truncated). When ``image_height`` is positive y is inverted as
    ``image_height - y``. Rows with fewer than three fields are skipped.
    """
    p = Path(path)
    try:
        lines = p.read_text().splitlines()
    except OSError as e:
        raise MarkerError(f"Cannot read marker {p}: {e}", str(p)) from e

    seeds = []
    for lineno, line in enumerate(lines[1:], start=2):
        data = line.strip().split(',')
        if len(data) < 3:
            if line.strip():
                logger.warning("Skipped invalid line %d in marker %s", lineno, p)
            continue
        try:
            x, y, z = (int(float(v)) for v in data[:3])
        except ValueError:
            logger.warning("Skipped invalid line %d in marker %s", lineno, p)
            continue
        if image_height > 0:
            y = image_height - y
        seeds.append((x, y, z))
    return seeds


def write_marker(path, results, write_seed=True):
    """Write one row per measured cell: ``x,y,z,r[,seed]``."""
    header = "x,y,z,r,seed" if write_seed else "x,y,z,r"
    with open(path, "w") as f:
        f.write(header + "\n")
        for res in results:
            f.write(",".join(res.to_row(write_seed)) + "\n")


def read_result_marker(path):
    """Read rows written by :func:`write_marker` as lists of ints."""
    p = Path(path)
    try:
        lines = p.read_text().splitlines()
    except OSError as e:
        raise MarkerError(f"Cannot read marker {p}: {e}", str(p)) from e
    rows = []
    for line in lines[1:]:
        data = line.strip().split(',')
        if len(data) < 4:
            continue
        rows.append([int(float(v)) for v in data])
    return rows


def result_marker_path(volume_path):
    return Path(f"{volume_path}{RESULT_TAG}{MARKER_SUFFIX}")


def find_marked_volumes(source_dir):
    """
    Find every ``<volume>.marker`` under *source_dir*, skipping result markers.

    Returns sorted ``(volume_path, marker_path)`` pairs.
    """
    pairs = []
    for marker in Path(source_dir).rglob("*"):
        if not marker.is_file() or marker.suffix.lower() != MARKER_SUFFIX:
            continue
        if RESULT_TAG in marker.name:
            continue
        pairs.append((marker.with_suffix(""), marker))
    return sorted(pairs)
