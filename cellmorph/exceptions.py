"""
Exception hierarchy for the morphometry pipeline.

Degenerate samples (empty shells, mean-shift points with no bright
neighbours) are not errors and never raise; they resolve to defined values
inside the step modules.
"""
from __future__ import annotations

from typing import Optional


class CellMorphError(Exception):
    """Base class for all cellmorph errors."""


class ConfigError(CellMorphError):
    """Invalid configuration, raised before any per-image work starts."""

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.field = field


class BoundsError(CellMorphError, IndexError):
    """Voxel access outside the current cell region."""

    def __init__(self, message: str, position: Optional[tuple] = None):
        super().__init__(message)
        self.position = position


class DataLoadError(CellMorphError):
    """A volume could not be loaded."""

    def __init__(
        self,
        message: str,
        file_path: Optional[str] = None,
        original_error: Optional[Exception] = None,
    ):
        super().__init__(message)
        self.file_path = file_path
        self.original_error = original_error


class VolumeNotFoundError(DataLoadError):
    """The volume file does not exist."""


class VolumeFormatError(DataLoadError):
    """The volume file exists but cannot be decoded as a 3D scalar image."""


class MarkerError(CellMorphError):
    """A marker file is missing or cannot be read."""

    def __init__(self, message: str, marker_path: Optional[str] = None):
        super().__init__(message)
        self.marker_path = marker_path
