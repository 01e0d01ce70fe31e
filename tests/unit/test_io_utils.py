"""
Unit tests for volume loading, marker files and batch discovery.
"""

import logging

import numpy as np
import pytest
import tifffile
from PIL import Image

from cellmorph.exceptions import (
    DataLoadError,
    MarkerError,
    VolumeFormatError,
    VolumeNotFoundError,
)
from cellmorph.io_utils import (
    CellResult,
    Volume,
    find_marked_volumes,
    load_volume,
    read_marker,
    read_result_marker,
    result_marker_path,
    write_marker,
)
from tests.fixtures.synthetic_volumes import write_marker_file


class TestVolume:
    """Tests for the Volume data class."""

    def test_from_array_is_read_only_copy(self):
        data = np.zeros((4, 5, 6), dtype=np.uint16)
        volume = Volume.from_array(data, scale_z=0.5)
        data[0, 0, 0] = 9

        assert volume.voxel(0, 0, 0) == 0
        assert volume.dimensions() == (6, 5, 4)
        with pytest.raises(ValueError):
            volume.data[0, 0, 0] = 1

    def test_single_plane_becomes_one_slice(self):
        volume = Volume.from_array(np.ones((5, 6)))

        assert volume.dimensions() == (6, 5, 1)

    def test_rejects_four_dimensions(self):
        with pytest.raises(VolumeFormatError):
            Volume.from_array(np.ones((2, 3, 4, 5)))


class TestLoadVolume:
    """Tests for load_volume."""

    def test_tiff_stack(self, temp_dir):
        data = np.arange(3 * 8 * 10, dtype=np.uint16).reshape(3, 8, 10)
        path = temp_dir / "stack.tif"
        tifffile.imwrite(str(path), data)

        volume = load_volume(path, scale_z=0.4)

        assert volume.dimensions() == (10, 8, 3)
        assert volume.scale_z == 0.4
        assert volume.name == "stack.tif"
        np.testing.assert_array_equal(volume.data, data)

    def test_rgb_tiff_is_averaged(self, temp_dir):
        data = np.zeros((2, 4, 5, 3), dtype=np.uint8)
        data[..., 0] = 30
        path = temp_dir / "rgb.tif"
        tifffile.imwrite(str(path), data, photometric="rgb")

        volume = load_volume(path)

        assert volume.dimensions() == (5, 4, 2)
        assert volume.voxel(0, 0, 0) == pytest.approx(10.0)

    def test_pillow_single_image(self, temp_dir):
        path = temp_dir / "plane.png"
        Image.fromarray(np.full((6, 7), 42, dtype=np.uint8)).save(path)

        volume = load_volume(path)

        assert volume.dimensions() == (7, 6, 1)
        assert volume.voxel(3, 3, 0) == 42

    def test_single_rgb_png_is_one_slice(self, temp_dir):
        rgb = np.zeros((20, 30, 3), dtype=np.uint8)
        rgb[..., 1] = 90
        path = temp_dir / "colour.png"
        Image.fromarray(rgb).save(path)

        volume = load_volume(path)

        assert volume.dimensions() == (30, 20, 1)
        assert volume.voxel(29, 19, 0) == pytest.approx(30.0)

    def test_single_rgb_tiff_page_is_one_slice(self, temp_dir):
        rgb = np.zeros((20, 30, 3), dtype=np.uint8)
        rgb[..., 2] = 60
        path = temp_dir / "colour.tif"
        tifffile.imwrite(str(path), rgb, photometric="rgb")

        volume = load_volume(path)

        assert volume.dimensions() == (30, 20, 1)
        assert volume.voxel(0, 0, 0) == pytest.approx(20.0)

    def test_grey_stack_three_wide_is_not_averaged(self, temp_dir):
        data = np.arange(4 * 5 * 3, dtype=np.uint16).reshape(4, 5, 3)
        path = temp_dir / "narrow.tif"
        tifffile.imwrite(str(path), data, photometric="minisblack")

        volume = load_volume(path)

        assert volume.dimensions() == (3, 5, 4)
        np.testing.assert_array_equal(volume.data, data)

    def test_missing_file(self, temp_dir):
        with pytest.raises(VolumeNotFoundError) as exc_info:
            load_volume(temp_dir / "missing.tif")

        assert exc_info.value.file_path.endswith("missing.tif")

    def test_undecodable_file(self, temp_dir):
        path = temp_dir / "broken.tif"
        path.write_bytes(b"not an image")

        with pytest.raises(VolumeFormatError) as exc_info:
            load_volume(path)

        assert isinstance(exc_info.value, DataLoadError)
        assert exc_info.value.original_error is not None


class TestMarkers:
    """Tests for marker reading and writing."""

    def test_read_with_y_inversion(self, temp_dir):
        path = temp_dir / "v.tif.marker"
        write_marker_file(path, [(10, 20, 3), (1.7, 2.9, 0.5)])

        assert read_marker(path, image_height=100) == [(10, 80, 3), (1, 98, 0)]
        assert read_marker(path) == [(10, 20, 3), (1, 2, 0)]

    def test_extra_columns_are_ignored(self, temp_dir):
        path = temp_dir / "v.tif.marker"
        write_marker_file(path, [(10, 20, 3, 7, 99)], header="x,y,z,r,extra")

        assert read_marker(path) == [(10, 20, 3)]

    def test_invalid_rows_are_skipped(self, temp_dir, caplog):
        path = temp_dir / "v.tif.marker"
        path.write_text("x,y,z\n1,2,3\n4,5\n\na,b,c\n6,7,8\n")

        with caplog.at_level(logging.WARNING, logger="cellmorph.io_utils"):
            seeds = read_marker(path)

        assert seeds == [(1, 2, 3), (6, 7, 8)]
        assert "line 3" in caplog.text
        assert "line 5" in caplog.text

    def test_header_only(self, temp_dir):
        path = temp_dir / "v.tif.marker"
        write_marker_file(path, [])

        assert read_marker(path) == []

    def test_missing_marker(self, temp_dir):
        with pytest.raises(MarkerError):
            read_marker(temp_dir / "nope.marker")

    def test_write_with_and_without_seed(self, temp_dir):
        results = [
            CellResult(x=35, y=30, z=12, radius=20, density=480.5, seed=(34, 31, 12)),
            CellResult(x=5, y=6, z=7, radius=0, density=0.0, seed=(5, 6, 7)),
        ]
        with_seed = temp_dir / "a.marker"
        without_seed = temp_dir / "b.marker"

        write_marker(with_seed, results)
        write_marker(without_seed, results, write_seed=False)

        assert with_seed.read_text().splitlines() == [
            "x,y,z,r,seed", "35,30,12,20,34,31,12", "5,6,7,0,5,6,7",
        ]
        assert without_seed.read_text().splitlines() == ["x,y,z,r", "35,30,12,20", "5,6,7,0"]
        assert read_result_marker(with_seed) == [[35, 30, 12, 20, 34, 31, 12],
                                                 [5, 6, 7, 0, 5, 6, 7]]

    def test_empty_result_marker_has_header(self, temp_dir):
        path = temp_dir / "empty.marker"
        write_marker(path, [])

        assert path.read_text() == "x,y,z,r,seed\n"
        assert read_result_marker(path) == []


class TestDiscovery:
    """Tests for result paths and batch discovery."""

    def test_result_marker_path(self, temp_dir):
        assert result_marker_path(temp_dir / "a.tif") == temp_dir / "a.tif[RAD].marker"

    def test_finds_nested_markers_and_skips_results(self, temp_dir):
        nested = temp_dir / "sub"
        nested.mkdir()
        for path in [temp_dir / "b.tif.marker", nested / "a.tif.marker",
                     temp_dir / "b.tif[RAD].marker", temp_dir / "notes.txt"]:
            path.write_text("x,y,z\n")

        pairs = find_marked_volumes(temp_dir)

        assert pairs == sorted([
            (temp_dir / "b.tif", temp_dir / "b.tif.marker"),
            (nested / "a.tif", nested / "a.tif.marker"),
        ])

    def test_empty_directory(self, temp_dir):
        assert find_marked_volumes(temp_dir) == []
