"""
Unit tests for radial profiles, local thresholds and radius estimation.
"""

import math

import numpy as np
import pytest

from cellmorph.io_utils import Volume
from cellmorph.step1_region import CellRegion
from cellmorph.step3_profile import (
    estimate_radius,
    full_region_profile,
    local_threshold,
    run_profile,
    shell_mean,
)
from tests.fixtures.synthetic_volumes import (
    make_sphere_volume,
    make_step_volume,
    make_uniform_volume,
)


class TestShellMean:
    """Tests for shell_mean."""

    @pytest.mark.parametrize("shape, dim, scale_z", [
        ((10, 10, 10), 8, 1.0),
        ((33, 17, 5), 20, 0.4),
        ((64, 64, 64), 70, 0.25),
        ((3, 3, 3), 2, 1.0),
    ])
    def test_uniform_region_returns_uniform_value(self, shape, dim, scale_z):
        volume = make_uniform_volume(shape, 7, scale_z=scale_z)
        seed = tuple(s // 2 for s in shape)
        region = CellRegion.from_volume(volume, seed, dim)

        assert shell_mean(region, 0, math.inf) == 7.0

    def test_empty_shell_is_zero(self):
        volume = make_uniform_volume((20, 20, 20), 7)
        region = CellRegion.from_volume(volume, (10, 10, 10), 10)

        assert shell_mean(region, 3, 3) == 0.0
        assert shell_mean(region, 1000, 1001) == 0.0

    def test_negative_inner_radius_acts_as_zero(self):
        volume = make_sphere_volume((30, 30, 30), (15, 15, 15), 4, scale_z=1.0)
        region = CellRegion.from_volume(volume, (15, 15, 15), 20)

        assert shell_mean(region, -3, 6) == shell_mean(region, 0, 6)

    def test_spot_and_shell_of_two_level_sphere(self):
        volume = make_sphere_volume((40, 40, 40), (20, 20, 20), 10, scale_z=1.0)
        region = CellRegion.from_volume(volume, (20, 20, 20), 40)

        assert shell_mean(region, 0, 10) == pytest.approx(500.0)
        assert shell_mean(region, 10, 15) == pytest.approx(50.0)

    def test_uses_anisotropic_metric(self):
        # at scale_z 0.5 one z step is two xy steps
        volume = make_uniform_volume((21, 21, 11), 0)
        data = np.array(volume.data)
        data[5, 10, 10] = 100       # centre
        data[6, 10, 10] = 40        # dz = 1 -> distance 2
        data[5, 10, 11] = 10        # dx = 1 -> distance 1
        volume = Volume.from_array(data, scale_z=0.5)
        region = CellRegion.from_volume(volume, (10, 10, 5), 20)

        # shell [2, 3) holds the dz = 1 voxels and the in-plane distance-2 voxels
        assert shell_mean(region, 0, 1) == 100.0
        assert shell_mean(region, 2, 3) > 0.0
        assert shell_mean(region, 1, 2) == pytest.approx(10.0 / 8.0)


class TestProfile:
    """Tests for full_region_profile."""

    def test_profile_length(self):
        volume = make_uniform_volume((30, 30, 30), 3)
        region = CellRegion.from_volume(volume, (15, 15, 15), 20)

        assert len(full_region_profile(region, 12)) == 13

    def test_profile_entries_are_unit_shells(self):
        volume = make_sphere_volume((40, 40, 40), (20, 20, 20), 6, scale_z=1.0)
        region = CellRegion.from_volume(volume, (20, 20, 20), 30)
        profile = full_region_profile(region, 10)

        for r in range(11):
            assert profile[r] == pytest.approx(shell_mean(region, r, r + 1))


class TestLocalThreshold:
    """Tests for local_threshold."""

    def test_convex_combination(self):
        volume = make_sphere_volume((40, 40, 40), (20, 20, 20), 10, scale_z=1.0)
        region = CellRegion.from_volume(volume, (20, 20, 20), 40)

        assert local_threshold(region, 5, 12, 18, 0.4) == pytest.approx(230.0)
        assert local_threshold(region, 5, 12, 18, 1.0) == pytest.approx(500.0)
        assert local_threshold(region, 5, 12, 18, 0.0) == pytest.approx(50.0)


class TestEstimateRadius:
    """Tests for estimate_radius."""

    @pytest.mark.parametrize("scale_z", [1.0, 0.5])
    def test_stops_exactly_at_threshold_drop(self, scale_z):
        shape = (41, 41, 21)
        volume = make_step_volume(shape, (20, 20, 10), 5, threshold=100, scale_z=scale_z)
        region = CellRegion.from_volume(volume, (20, 20, 10), 40, scale_z)

        assert estimate_radius(region, 100, 20) == 5
        assert region.radius == 5

    def test_capped_at_max_radius(self):
        volume = make_uniform_volume((40, 40, 40), 100)
        region = CellRegion.from_volume(volume, (20, 20, 20), 40)

        assert estimate_radius(region, 50, 3) == 3

    def test_zero_when_center_below_threshold(self):
        volume = make_uniform_volume((20, 20, 20), 10)
        region = CellRegion.from_volume(volume, (10, 10, 10), 16)

        assert estimate_radius(region, 11, 8) == 0
        assert region.radius == 0

    def test_run_profile_on_sphere(self):
        volume = make_sphere_volume((50, 50, 50), (25, 25, 25), 12, scale_z=1.0)
        region = CellRegion.from_volume(volume, (25, 25, 25), 48)

        threshold, radius, profile = run_profile(region, 6, 14, 22, 0.5, 20)

        assert threshold == pytest.approx(275.0)
        assert radius == 12
        assert len(profile) == 21
