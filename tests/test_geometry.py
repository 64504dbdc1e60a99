"""
Tests for the geometry value types and coordinate conversion.
"""

import dataclasses

import numpy as np
import pytest

from lortrace import Point3D, VoxelIndex3D, physical_to_grid


class TestPoint3D:
    def test_component_wise_arithmetic(self):
        p = Point3D(1.0, 2.0, 3.0)
        q = Point3D(0.5, -1.0, 2.0)

        assert p + q == Point3D(1.5, 1.0, 5.0)
        assert p - q == Point3D(0.5, 3.0, 1.0)
        assert p * q == Point3D(0.5, -2.0, 6.0)
        assert 2.0 * p == Point3D(2.0, 4.0, 6.0)

    def test_norm(self):
        assert Point3D(2.0, 3.0, 6.0).norm() == pytest.approx(7.0)

    def test_is_immutable(self):
        p = Point3D(0.0, 0.0, 0.0)
        with pytest.raises(dataclasses.FrozenInstanceError):
            p.x = 1.0

    def test_array_round_trip(self):
        p = Point3D.from_array([1.5, -2.0, 0.25])

        assert p == Point3D(1.5, -2.0, 0.25)
        np.testing.assert_array_equal(p.to_array(), [1.5, -2.0, 0.25])

    def test_from_array_rejects_wrong_length(self):
        with pytest.raises(ValueError, match="3 components"):
            Point3D.from_array([1.0, 2.0])


class TestVoxelIndex3D:
    def test_arithmetic_and_distance(self):
        a = VoxelIndex3D(1, 2, 3)
        b = VoxelIndex3D(0, 2, 5)

        assert a - b == VoxelIndex3D(1, 0, -2)
        assert a + b == VoxelIndex3D(1, 4, 8)
        assert a.manhattan_distance(b) == 3

    def test_face_adjacency(self):
        v = VoxelIndex3D(0, 0, 0)

        assert v.is_face_adjacent(VoxelIndex3D(0, -1, 0))
        assert not v.is_face_adjacent(VoxelIndex3D(1, 1, 0))
        assert not v.is_face_adjacent(v)

    def test_unpacks_as_xyz(self):
        x, y, z = VoxelIndex3D(4, -2, 7)

        assert (x, y, z) == (4, -2, 7)


class TestPhysicalToGrid:
    def test_scales_by_voxel_size(self):
        grid = physical_to_grid([4.0, 2.0, 1.0], voxel_size=[2.0, 2.0, 2.0])

        np.testing.assert_allclose(grid, [2.0, 1.0, 0.5])

    def test_origin_and_batch(self):
        points = np.array([[10.0, 10.0, 10.0], [12.0, 13.0, 14.0]])

        grid = physical_to_grid(points, voxel_size=[2.0, 3.0, 4.0], origin=[10.0, 10.0, 10.0])

        np.testing.assert_allclose(grid, [[0.0, 0.0, 0.0], [1.0, 1.0, 1.0]])

    def test_accepts_point3d(self):
        grid = physical_to_grid(Point3D(3.0, 6.0, 9.0), voxel_size=3.0)

        np.testing.assert_allclose(grid, [1.0, 2.0, 3.0])

    def test_rejects_wrong_shape(self):
        with pytest.raises(ValueError):
            physical_to_grid([1.0, 2.0], voxel_size=1.0)
