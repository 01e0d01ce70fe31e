"""
Per-seed 3D cell morphometry for volumetric microscopy.

Modular pipeline split into independent steps:
  1. Sub-volume box & cell region
  2. Optional 3D pre-filter
  3. Radial profile, adaptive threshold & radius
  4. Local maxima & spherical neighbourhoods
  5. Mean-shift centre refinement
  6. Per-seed orchestration, density & border rejection
  7. Debug montages & result statistics
"""

from cellmorph.config import MeasureConfig
from cellmorph.exceptions import (
    BoundsError,
    CellMorphError,
    ConfigError,
    DataLoadError,
    MarkerError,
    VolumeFormatError,
    VolumeNotFoundError,
)
from cellmorph.io_utils import (
    Box,
    CellOutcome,
    CellResult,
    Peak,
    Volume,
    find_marked_volumes,
    load_volume,
    read_marker,
    write_marker,
)
from cellmorph.step1_region import CellRegion, make_box
from cellmorph.step2_filter import run_filter
from cellmorph.step3_profile import estimate_radius, full_region_profile, local_threshold, shell_mean
from cellmorph.step4_peaks import find_peaks, local_max_position, neighbors_within_radius
from cellmorph.step5_meanshift import refine_center
from cellmorph.step6_measure import compute_density, measure_cell, run_measurement
from cellmorph.step7_visualize import result_statistics, run_visualization
