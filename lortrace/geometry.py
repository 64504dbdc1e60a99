"""Geometry value types for voxel traversal.

This module provides the continuous point type, the discrete voxel index type
and the conversion from physical coordinates into grid units.
"""

import math
from dataclasses import dataclass
from typing import Iterator, Sequence, Union

import numpy as np

from .constants import _DTYPE, _INDEX_DTYPE
from .utils import _as_coordinate_array, _as_voxel_size


# ============================================================================
# Continuous Coordinates
# ============================================================================

@dataclass(frozen=True)
class Point3D:
    """A point or vector in continuous 3D space.

    Coordinates are stored as (x, y, z). Arithmetic is component-wise;
    multiplication accepts either a scalar or another point.

    Examples
    --------
    >>> (Point3D(1.0, 2.0, 3.0) - Point3D(1.0, 0.0, 0.0)).norm()
    3.605551275463989
    """

    x: float
    y: float
    z: float

    def __iter__(self) -> Iterator[float]:
        yield self.x
        yield self.y
        yield self.z

    def __add__(self, other: "Point3D") -> "Point3D":
        return Point3D(self.x + other.x, self.y + other.y, self.z + other.z)

    def __sub__(self, other: "Point3D") -> "Point3D":
        return Point3D(self.x - other.x, self.y - other.y, self.z - other.z)

    def __mul__(self, other: Union["Point3D", float]) -> "Point3D":
        if isinstance(other, Point3D):
            return Point3D(self.x * other.x, self.y * other.y, self.z * other.z)
        return Point3D(self.x * other, self.y * other, self.z * other)

    __rmul__ = __mul__

    def norm(self) -> float:
        """Euclidean length of the vector."""
        return math.sqrt(self.x * self.x + self.y * self.y + self.z * self.z)

    def to_array(self) -> np.ndarray:
        return np.array([self.x, self.y, self.z], dtype=_DTYPE)

    @classmethod
    def from_array(cls, values: Sequence[float]) -> "Point3D":
        x, y, z = _as_coordinate_array(values, "values")
        return cls(float(x), float(y), float(z))


# ============================================================================
# Discrete Voxel Indices
# ============================================================================

@dataclass(frozen=True)
class VoxelIndex3D:
    """Integer (x, y, z) index of one grid cell.

    No bounds checking against a grid extent is performed; indices may be
    negative or beyond the volume.
    """

    x: int
    y: int
    z: int

    def __iter__(self) -> Iterator[int]:
        yield self.x
        yield self.y
        yield self.z

    def __add__(self, other: "VoxelIndex3D") -> "VoxelIndex3D":
        return VoxelIndex3D(self.x + other.x, self.y + other.y, self.z + other.z)

    def __sub__(self, other: "VoxelIndex3D") -> "VoxelIndex3D":
        return VoxelIndex3D(self.x - other.x, self.y - other.y, self.z - other.z)

    def manhattan_distance(self, other: "VoxelIndex3D") -> int:
        diff = self - other
        return abs(diff.x) + abs(diff.y) + abs(diff.z)

    def is_face_adjacent(self, other: "VoxelIndex3D") -> bool:
        """True if the two voxels share a face (one unit apart along one axis)."""
        return self.manhattan_distance(other) == 1

    def to_array(self) -> np.ndarray:
        return np.array([self.x, self.y, self.z], dtype=_INDEX_DTYPE)


# ============================================================================
# Coordinate Conversion
# ============================================================================

def physical_to_grid(point, voxel_size, origin=(0.0, 0.0, 0.0)):
    """Convert physical coordinates into voxel-grid units.

    Grid units place the centre of voxel ``(i, j, k)`` at ``(i, j, k)``, so
    that unit steps correspond to voxel boundaries. The result is the
    expected input of :func:`lortrace.tracer.ray_trace_voxels_on_cartesian_grid`.

    Parameters
    ----------
    point : array-like or Point3D
        Physical (x, y, z) coordinates, shape (3,) or (n, 3).
    voxel_size : array-like
        Physical voxel size per axis, shape (3,), all positive.
    origin : array-like, optional
        Physical position of the centre of voxel (0, 0, 0) (default: origin).

    Returns
    -------
    numpy.ndarray
        Coordinates in grid units, same shape as `point`.

    Examples
    --------
    >>> physical_to_grid([4.0, 2.0, 1.0], voxel_size=[2.0, 2.0, 2.0])
    array([2. , 1. , 0.5])
    """
    if isinstance(point, Point3D):
        point = point.to_array()
    point = np.asarray(point, dtype=_DTYPE)
    if point.shape[-1] != 3:
        raise ValueError(f"point must have 3 components in its last axis, got shape {point.shape}")
    voxel_size = _as_voxel_size(voxel_size)
    origin = _as_coordinate_array(origin, "origin")
    return (point - origin) / voxel_size
