"""
Tests for LineAccumulator.
"""

import numpy as np
import pytest
import torch

from lortrace import LineAccumulator, VoxelIndex3D, trace_line


@pytest.fixture
def filled():
    """Accumulator with three entries, one of them outside a 4x4x4 grid."""
    lor = LineAccumulator()
    lor.append(VoxelIndex3D(2, 1, 0), 0.5)
    lor.append(VoxelIndex3D(-1, 1, 0), 0.25)
    lor.append(VoxelIndex3D(0, 3, 2), 2.0)
    return lor


class TestStorage:
    """Appending, reserving and reading entries."""

    def test_append_and_read_back(self, filled):
        assert len(filled) == 3
        assert filled[0] == (VoxelIndex3D(2, 1, 0), 0.5)
        assert filled[-1] == (VoxelIndex3D(0, 3, 2), 2.0)
        assert [w for _, w in filled] == [0.5, 0.25, 2.0]

    def test_index_out_of_range(self, filled):
        with pytest.raises(IndexError):
            filled[3]

    def test_reserve_keeps_entries(self, filled):
        filled.reserve(100)

        assert filled.capacity >= 100
        assert len(filled) == 3
        np.testing.assert_array_equal(filled.indices[0], [2, 1, 0])

    def test_reserve_never_shrinks(self):
        lor = LineAccumulator(16)
        lor.reserve(4)

        assert lor.capacity == 16

    def test_grows_past_capacity(self):
        lor = LineAccumulator(1)
        for i in range(20):
            lor.append(VoxelIndex3D(i, 0, 0), float(i))

        assert len(lor) == 20
        np.testing.assert_array_equal(lor.indices[:, 0], np.arange(20))

    def test_extend(self, lor):
        lor.extend([[0, 0, 0], [1, 0, 0]], [1.0, 2.0])
        lor.extend(np.array([[1, 1, 0]]), np.array([3.0]))

        assert len(lor) == 3
        np.testing.assert_array_equal(lor.weights, [1.0, 2.0, 3.0])

    def test_extend_length_mismatch_raises(self, lor):
        with pytest.raises(ValueError, match="same length"):
            lor.extend([[0, 0, 0]], [1.0, 2.0])

    def test_views_are_read_only(self, filled):
        with pytest.raises(ValueError):
            filled.weights[0] = 10.0

    def test_clear(self, filled):
        capacity = filled.capacity
        filled.clear()

        assert len(filled) == 0
        assert filled.capacity == capacity
        assert filled.total_weight() == 0.0


class TestReordering:
    """Sorting and merging rows."""

    def test_sort_orders_by_z_then_y_then_x(self, filled):
        filled.sort()

        np.testing.assert_array_equal(
            filled.indices, [[-1, 1, 0], [2, 1, 0], [0, 3, 2]]
        )
        np.testing.assert_array_equal(filled.weights, [0.25, 0.5, 2.0])

    def test_merge_sums_shared_voxels(self, filled):
        other = LineAccumulator()
        other.append(VoxelIndex3D(2, 1, 0), 1.5)
        other.append(VoxelIndex3D(5, 5, 5), 1.0)

        filled.merge(other)

        assert len(filled) == 4
        entries = dict((tuple(v), w) for v, w in filled)
        assert entries[(2, 1, 0)] == pytest.approx(2.0)
        assert entries[(5, 5, 5)] == pytest.approx(1.0)
        assert filled.total_weight() == pytest.approx(5.25)


class TestGridOperations:
    """Clipping and projecting through a (D, H, W) volume."""

    def test_clip_to_grid(self, filled):
        clipped = filled.clip_to_grid((4, 4, 4))

        np.testing.assert_array_equal(clipped.indices, [[2, 1, 0], [0, 3, 2]])
        assert len(filled) == 3

    def test_clip_to_grid_uses_dhw_order(self):
        lor = LineAccumulator()
        lor.append(VoxelIndex3D(5, 0, 0), 1.0)

        assert len(lor.clip_to_grid((1, 1, 6))) == 1
        assert len(lor.clip_to_grid((6, 1, 1))) == 0

    def test_clip_to_grid_rejects_bad_shape(self, filled):
        with pytest.raises(ValueError, match="3D"):
            filled.clip_to_grid((4, 4))

    def test_forward_project(self, filled):
        volume = np.arange(64, dtype=np.float64).reshape(4, 4, 4)

        value = filled.forward_project(volume)

        assert value == pytest.approx(0.5 * volume[0, 1, 2] + 2.0 * volume[2, 3, 0])

    def test_back_project(self, filled):
        volume = np.zeros((4, 4, 4))

        filled.back_project(volume, 2.0)

        assert volume[0, 1, 2] == pytest.approx(1.0)
        assert volume[2, 3, 0] == pytest.approx(4.0)
        assert volume.sum() == pytest.approx(5.0)

    def test_forward_and_back_projection_are_adjoint(self, rng):
        lor = trace_line((-1.0, 0.3, 2.2), (6.4, 4.1, 0.7))
        volume = rng.normal(size=(5, 5, 5))
        value = 1.7

        back = lor.back_project(np.zeros((5, 5, 5)), value)

        assert value * lor.forward_project(volume) == pytest.approx(np.sum(back * volume))

    def test_to_sparse_row(self, filled):
        row = filled.to_sparse_row((4, 4, 4))

        assert row.shape == (1, 64)
        dense = row.to_dense()
        assert dense[0, 0 * 16 + 1 * 4 + 2].item() == pytest.approx(0.5)
        assert dense[0, 2 * 16 + 3 * 4 + 0].item() == pytest.approx(2.0)
        assert row.dtype == torch.float32
        assert row._nnz() == 2
