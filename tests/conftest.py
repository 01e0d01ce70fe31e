"""
Pytest configuration and shared fixtures for cellmorph tests.

This module provides:
    - Synthetic volumes (uniform sphere, Gaussian blob)
    - Temporary directory fixtures
    - A default MeasureConfig matching the reference scenario
"""

import tempfile
from pathlib import Path

import pytest

from cellmorph.config import MeasureConfig
from tests.fixtures.synthetic_volumes import make_gaussian_blobs, make_sphere_volume


@pytest.fixture
def temp_dir():
    """Provide a temporary directory that is cleaned up after the test."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def scenario_config():
    """70-voxel box, scale_z 0.4, R0/R1/R2 = 13/18/40, weight 0.4."""
    return MeasureConfig(
        cube_dim=70, scale_z=0.4, r0=13, r1=18, r2=40, mean_weight=0.4,
        max_radius=40, ms_sigma=10.0, log_file=None,
    ).validate()


@pytest.fixture(scope="session")
def sphere_volume():
    """70^3 volume, scale_z 0.4, sphere of 500 (radius 20) on 50 at the centre."""
    return make_sphere_volume((70, 70, 70), (35, 35, 35), 20, inside=500, outside=50,
                              scale_z=0.4)


@pytest.fixture(scope="session")
def blob_volume():
    """41^3 isotropic volume with one Gaussian blob (sigma 4) at (20, 20, 20)."""
    return make_gaussian_blobs((41, 41, 41), [(20, 20, 20)], sigma=4.0, amplitude=1000.0)
