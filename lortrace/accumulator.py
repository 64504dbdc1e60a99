"""Storage for one row of a projection matrix.

This module provides :class:`LineAccumulator`, an append-only ordered
sequence of (voxel index, weight) pairs filled by the voxel traversal, with
helpers to clip it to a grid and to use it as a projection operator.
"""

import numpy as np
import torch

from .constants import _DTYPE, _INDEX_DTYPE
from .geometry import VoxelIndex3D
from .utils import _validate_volume_shape


class LineAccumulator:
    """Ordered (voxel index, weight) pairs for one line of response.

    Indices are stored as an (N, 3) int64 array in (x, y, z) order and
    weights as an (N,) float64 array. Capacity grows geometrically on
    append; :meth:`reserve` lets callers size the storage up front.

    Volumes passed to the projection helpers are indexed (D, H, W), i.e.
    voxel (x, y, z) maps to ``volume[z, y, x]``.

    Examples
    --------
    >>> lor = LineAccumulator()
    >>> lor.append(VoxelIndex3D(0, 0, 0), 0.5)
    >>> len(lor), lor.total_weight()
    (1, 0.5)
    """

    def __init__(self, capacity=0):
        self._indices = np.empty((capacity, 3), dtype=_INDEX_DTYPE)
        self._weights = np.empty(capacity, dtype=_DTYPE)
        self._size = 0

    # ------------------------------------------------------------------
    # Storage
    # ------------------------------------------------------------------

    @property
    def capacity(self):
        """Number of entries that fit without reallocating.

        Returns
        -------
        int
            Allocated length of the index and weight arrays.
        """
        return self._weights.shape[0]

    def reserve(self, capacity):
        """Make room for at least `capacity` entries in total."""
        if capacity <= self.capacity:
            return
        indices = np.empty((capacity, 3), dtype=_INDEX_DTYPE)
        weights = np.empty(capacity, dtype=_DTYPE)
        indices[:self._size] = self._indices[:self._size]
        weights[:self._size] = self._weights[:self._size]
        self._indices = indices
        self._weights = weights

    def append(self, voxel, weight):
        """Append one entry at the end.

        Parameters
        ----------
        voxel : VoxelIndex3D or sequence of int
            Voxel index in (x, y, z) order.
        weight : float
            Weight of the voxel, e.g. its chord length.
        """
        if self._size == self.capacity:
            self.reserve(max(2 * self.capacity, 8))
        self._indices[self._size] = tuple(voxel)
        self._weights[self._size] = weight
        self._size += 1

    def extend(self, indices, weights):
        """Append a batch of entries.

        Parameters
        ----------
        indices : array-like
            Voxel indices, shape (n, 3), (x, y, z) order.
        weights : array-like
            Weights, shape (n,).
        """
        indices = np.asarray(indices, dtype=_INDEX_DTYPE).reshape(-1, 3)
        weights = np.asarray(weights, dtype=_DTYPE).reshape(-1)
        if indices.shape[0] != weights.shape[0]:
            raise ValueError(
                f"indices and weights must have the same length, got {indices.shape[0]} and {weights.shape[0]}"
            )
        n = weights.shape[0]
        if self._size + n > self.capacity:
            self.reserve(max(2 * self.capacity, self._size + n))
        self._indices[self._size:self._size + n] = indices
        self._weights[self._size:self._size + n] = weights
        self._size += n

    def clear(self):
        """Remove all entries, keeping the allocated capacity."""
        self._size = 0

    @property
    def indices(self):
        """Read-only (N, 3) view of the voxel indices."""
        view = self._indices[:self._size]
        view.flags.writeable = False
        return view

    @property
    def weights(self):
        """Read-only (N,) view of the weights."""
        view = self._weights[:self._size]
        view.flags.writeable = False
        return view

    def __len__(self):
        return self._size

    def __getitem__(self, i):
        if i < 0:
            i += self._size
        if not 0 <= i < self._size:
            raise IndexError(f"entry {i} out of range for {self._size} entries")
        x, y, z = self._indices[i]
        return VoxelIndex3D(int(x), int(y), int(z)), float(self._weights[i])

    def __iter__(self):
        for i in range(self._size):
            yield self[i]

    def __repr__(self):
        return f"LineAccumulator(size={self._size}, capacity={self.capacity})"

    def total_weight(self):
        """Sum of all weights.

        Returns
        -------
        float
            Total weight, 0.0 for an empty accumulator.
        """
        return float(self.weights.sum())

    # ------------------------------------------------------------------
    # Reordering
    # ------------------------------------------------------------------

    def sort(self):
        """Sort entries by voxel index (z, then y, then x)."""
        indices = self.indices
        order = np.lexsort((indices[:, 0], indices[:, 1], indices[:, 2]))
        self._indices[:self._size] = indices[order]
        self._weights[:self._size] = self.weights[order]

    def merge(self, other):
        """Add the entries of `other`, summing weights of shared voxels.

        Afterwards the entries are sorted and each voxel occurs once.
        """
        indices = np.concatenate([self.indices, other.indices])
        weights = np.concatenate([self.weights, other.weights])
        unique, inverse = np.unique(indices, axis=0, return_inverse=True)
        summed = np.zeros(unique.shape[0], dtype=_DTYPE)
        np.add.at(summed, inverse.reshape(-1), weights)
        self.clear()
        self.extend(unique, summed)
        self.sort()

    # ------------------------------------------------------------------
    # Grid Operations
    # ------------------------------------------------------------------

    def _inside(self, volume_shape):
        nz, ny, nx = _validate_volume_shape(volume_shape)
        upper = np.array([nx, ny, nz], dtype=_INDEX_DTYPE)
        indices = self.indices
        return np.all((indices >= 0) & (indices < upper), axis=1)

    def clip_to_grid(self, volume_shape):
        """Return a new accumulator holding only the entries inside the grid.

        Parameters
        ----------
        volume_shape : sequence of int
            Grid size as (D, H, W) = (nz, ny, nx).

        Returns
        -------
        LineAccumulator
            Entries with ``0 <= x < nx``, ``0 <= y < ny``, ``0 <= z < nz``,
            in their original order.
        """
        mask = self._inside(volume_shape)
        clipped = LineAccumulator(int(mask.sum()))
        clipped.extend(self.indices[mask], self.weights[mask])
        return clipped

    def forward_project(self, volume):
        """Weighted sum of `volume` along the line.

        Entries outside the volume are ignored.

        Parameters
        ----------
        volume : numpy.ndarray
            3D array of shape (D, H, W).

        Returns
        -------
        float
            ``sum(w * volume[z, y, x])``.
        """
        volume = np.asarray(volume)
        mask = self._inside(volume.shape)
        idx = self.indices[mask]
        return float(np.dot(self.weights[mask], volume[idx[:, 2], idx[:, 1], idx[:, 0]]))

    def back_project(self, volume, value):
        """Add ``value * w`` to every in-grid voxel of `volume`, in place."""
        mask = self._inside(volume.shape)
        idx = self.indices[mask]
        np.add.at(volume, (idx[:, 2], idx[:, 1], idx[:, 0]), value * self.weights[mask])
        return volume

    def to_sparse_row(self, volume_shape, dtype=torch.float32, device=None):
        """Return the in-grid entries as a (1, D*H*W) torch sparse COO tensor.

        Columns are the flattened (D, H, W) voxel positions. Repeated voxels
        are summed by coalescing.
        """
        shape = _validate_volume_shape(volume_shape)
        mask = self._inside(shape)
        idx = self.indices[mask]
        columns = np.ravel_multi_index((idx[:, 2], idx[:, 1], idx[:, 0]), shape)
        rows = np.zeros_like(columns)
        sparse_indices = torch.as_tensor(np.stack([rows, columns]), dtype=torch.int64)
        values = torch.as_tensor(self.weights[mask], dtype=dtype)
        row = torch.sparse_coo_tensor(
            sparse_indices, values, (1, int(np.prod(shape))), device=device
        )
        return row.coalesce()
