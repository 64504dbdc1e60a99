"""System matrix assembly and PyTorch autograd projection functions.

This module traces a batch of lines of response through a voxel grid to
build a sparse system matrix, and wraps that matrix in differentiable
forward projection and backprojection operators.
"""

import logging

import numpy as np
import torch

from .accumulator import LineAccumulator
from .constants import _DTYPE
from .tracer import ray_trace_voxels_on_cartesian_grid
from .utils import (
    DeviceManager,
    _as_point_batch,
    _as_voxel_size,
    _validate_volume_shape,
)

logger = logging.getLogger(__name__)


# ============================================================================
# System Matrix Assembly
# ============================================================================

def compute_system_matrix(start_points, stop_points, volume_shape, voxel_size,
                          normalisation=None, clip_to_segment=True,
                          dtype=torch.float32, device=None):
    """Build the sparse system matrix for a set of lines of response.

    Row ``i`` holds the chord lengths of LOR ``i`` in every voxel of the
    volume it crosses, times its normalisation. Voxels outside the volume
    are discarded.

    Parameters
    ----------
    start_points : array-like or torch.Tensor
        LOR start points in grid units, shape (n_lors, 3), (x, y, z) order.
    stop_points : array-like or torch.Tensor
        LOR stop points in grid units, shape (n_lors, 3).
    volume_shape : sequence of int
        Volume size as (D, H, W) = (nz, ny, nx).
    voxel_size : array-like or float
        Physical voxel size per axis (x, y, z).
    normalisation : float or array-like, optional
        One scalar for all LORs or one value per LOR (default: 1.0).
    clip_to_segment : bool, optional
        Passed on to the ray tracer (default: True).
    dtype : torch.dtype, optional
        Value type of the matrix (default: torch.float32).
    device : str or torch.device, optional
        Device of the returned matrix (default: CPU).

    Returns
    -------
    torch.Tensor
        Coalesced sparse COO tensor of shape (n_lors, D*H*W). Columns are
        the flattened (D, H, W) voxel positions.

    Raises
    ------
    ValueError
        If the point batches or normalisation values do not match in length.

    Examples
    --------
    >>> A = compute_system_matrix(
    ...     [[-0.5, 1.0, 1.0]], [[3.5, 1.0, 1.0]], (4, 4, 4), 1.0
    ... )
    >>> A.shape
    torch.Size([1, 64])
    """
    starts = _as_point_batch(start_points, "start_points")
    stops = _as_point_batch(stop_points, "stop_points")
    if starts.shape[0] != stops.shape[0]:
        raise ValueError(
            f"start_points and stop_points must hold the same number of LORs, "
            f"got {starts.shape[0]} and {stops.shape[0]}"
        )
    n_lors = starts.shape[0]
    shape = _validate_volume_shape(volume_shape)
    voxel_size = _as_voxel_size(voxel_size)

    if normalisation is None:
        normalisation = 1.0
    norms = np.broadcast_to(np.asarray(normalisation, dtype=_DTYPE), (n_lors,)) \
        if np.ndim(normalisation) == 0 else np.asarray(normalisation, dtype=_DTYPE)
    if norms.shape != (n_lors,):
        raise ValueError(f"normalisation must be a scalar or have shape ({n_lors},), got {norms.shape}")

    rows, columns, values = [], [], []
    lor = LineAccumulator()
    n_missed = 0
    for i in range(n_lors):
        lor.clear()
        ray_trace_voxels_on_cartesian_grid(
            lor, starts[i], stops[i], voxel_size, norms[i], clip_to_segment
        )
        row = lor.clip_to_grid(shape)
        if len(row) == 0:
            n_missed += 1
            continue
        idx = row.indices
        columns.append(np.ravel_multi_index((idx[:, 2], idx[:, 1], idx[:, 0]), shape))
        rows.append(np.full(len(row), i, dtype=np.int64))
        values.append(np.array(row.weights))

    if rows:
        sparse_indices = np.stack([np.concatenate(rows), np.concatenate(columns)])
        sparse_values = np.concatenate(values)
    else:
        sparse_indices = np.zeros((2, 0), dtype=np.int64)
        sparse_values = np.zeros(0, dtype=_DTYPE)

    if n_missed:
        logger.debug("%d of %d LORs do not intersect the volume", n_missed, n_lors)

    matrix = torch.sparse_coo_tensor(
        torch.as_tensor(sparse_indices, dtype=torch.int64),
        torch.as_tensor(sparse_values, dtype=dtype),
        (n_lors, int(np.prod(shape))),
        device=device,
    ).coalesce()
    logger.info(
        "System matrix for %d LORs on a %s grid: %d non-zeros", n_lors, shape, matrix._nnz()
    )
    return matrix


# ============================================================================
# PyTorch Autograd Functions
# ============================================================================

class RayTraceProjectorFunction(torch.autograd.Function):
    """
    Summary
    -------
    PyTorch autograd function for differentiable forward projection with a
    precomputed ray-tracing system matrix.

    Notes
    -----
    The forward pass multiplies the flattened (D, H, W) volume by the sparse
    system matrix from :func:`compute_system_matrix`. The backward pass
    applies the transpose, i.e. the backprojection. The matrix is moved to
    the device and dtype of the volume when needed.

    Examples
    --------
    >>> volume = torch.ones(4, 4, 4, requires_grad=True)
    >>> A = compute_system_matrix([[-0.5, 1.0, 1.0]], [[3.5, 1.0, 1.0]], (4, 4, 4), 1.0)
    >>> projections = RayTraceProjectorFunction.apply(volume, A)
    >>> projections.sum().backward()
    """
    @staticmethod
    def forward(ctx, volume, system_matrix):
        """Compute the projections of `volume`.

        Parameters
        ----------
        volume : torch.Tensor
            3D volume of shape (D, H, W).
        system_matrix : torch.Tensor
            Sparse matrix of shape (n_lors, D*H*W).

        Returns
        -------
        torch.Tensor
            Projections of shape (n_lors,).
        """
        if volume.dim() != 3:
            raise ValueError(f"Expected a 3D volume (D, H, W), got {volume.dim()}D")
        if system_matrix.shape[1] != volume.numel():
            raise ValueError(
                f"System matrix has {system_matrix.shape[1]} columns but the volume has {volume.numel()} voxels"
            )
        system_matrix = DeviceManager.match(system_matrix, volume)
        projections = torch.sparse.mm(system_matrix, volume.reshape(-1, 1)).reshape(-1)

        ctx.system_matrix = system_matrix
        ctx.volume_shape = volume.shape
        return projections

    @staticmethod
    def backward(ctx, grad_projections):
        system_matrix = DeviceManager.match(ctx.system_matrix, grad_projections)
        grad_volume = torch.sparse.mm(system_matrix.t(), grad_projections.reshape(-1, 1))
        return grad_volume.reshape(ctx.volume_shape), None


class RayTraceBackprojectorFunction(torch.autograd.Function):
    """
    Summary
    -------
    PyTorch autograd function for differentiable backprojection with a
    precomputed ray-tracing system matrix.

    Notes
    -----
    The forward pass multiplies the projections by the transposed system
    matrix and reshapes the result to the volume. The backward pass computes
    gradients with the forward projection as the adjoint operation.

    Examples
    --------
    >>> projections = torch.ones(1, requires_grad=True)
    >>> A = compute_system_matrix([[-0.5, 1.0, 1.0]], [[3.5, 1.0, 1.0]], (4, 4, 4), 1.0)
    >>> volume = RayTraceBackprojectorFunction.apply(projections, A, (4, 4, 4))
    >>> volume[1, 1]
    tensor([1., 1., 1., 1.], grad_fn=<SelectBackward0>)
    """
    @staticmethod
    def forward(ctx, projections, system_matrix, volume_shape):
        """Backproject `projections` into a volume.

        Parameters
        ----------
        projections : torch.Tensor
            Projection values of shape (n_lors,).
        system_matrix : torch.Tensor
            Sparse matrix of shape (n_lors, D*H*W).
        volume_shape : sequence of int
            Output volume size (D, H, W).

        Returns
        -------
        torch.Tensor
            Backprojected volume of shape (D, H, W).
        """
        shape = _validate_volume_shape(volume_shape)
        if system_matrix.shape[1] != int(np.prod(shape)):
            raise ValueError(
                f"System matrix has {system_matrix.shape[1]} columns but volume_shape {shape} "
                f"has {int(np.prod(shape))} voxels"
            )
        if projections.numel() != system_matrix.shape[0]:
            raise ValueError(
                f"Expected {system_matrix.shape[0]} projection values, got {projections.numel()}"
            )
        system_matrix = DeviceManager.match(system_matrix, projections)
        volume = torch.sparse.mm(system_matrix.t(), projections.reshape(-1, 1)).reshape(shape)

        ctx.system_matrix = system_matrix
        ctx.projections_shape = projections.shape
        return volume

    @staticmethod
    def backward(ctx, grad_volume):
        system_matrix = DeviceManager.match(ctx.system_matrix, grad_volume)
        grad_projections = torch.sparse.mm(system_matrix, grad_volume.reshape(-1, 1))
        return grad_projections.reshape(ctx.projections_shape), None, None
