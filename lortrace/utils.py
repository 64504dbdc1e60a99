"""Input validation helpers for the lortrace package.

This module converts user-facing inputs (sequences, Point3D values, numpy
arrays, torch tensors) into the contiguous arrays expected by the kernels,
validates volume shapes, and matches system matrices to tensor devices.
"""

import numpy as np
import torch

from .constants import _DTYPE


# ============================================================================
# Coordinate Validation
# ============================================================================

def _as_coordinate_array(values, name):
    """Convert a 3-component point to a contiguous float64 array.

    Parameters
    ----------
    values : array-like or Point3D
        Three (x, y, z) components.
    name : str
        Argument name used in error messages.

    Returns
    -------
    numpy.ndarray
        Array of shape (3,) and dtype `_DTYPE`.

    Raises
    ------
    ValueError
        If `values` does not hold exactly three components.
    """
    if hasattr(values, "to_array"):
        values = values.to_array()
    array = np.ascontiguousarray(values, dtype=_DTYPE)
    if array.shape != (3,):
        raise ValueError(f"{name} must have exactly 3 components (x, y, z), got shape {array.shape}")
    return array


def _as_voxel_size(values):
    """Convert a voxel size to a float64 array of three positive values.

    A scalar is broadcast to all three axes.
    """
    if not hasattr(values, "to_array") and np.ndim(values) == 0:
        values = (values, values, values)
    voxel_size = _as_coordinate_array(values, "voxel_size")
    assert np.all(voxel_size > 0), "voxel_size must be strictly positive"
    return voxel_size


def _as_point_batch(values, name):
    """Convert a batch of points to a contiguous float64 array of shape (n, 3)."""
    if hasattr(values, "detach"):
        values = values.detach().cpu().numpy()
    array = np.ascontiguousarray(values, dtype=_DTYPE)
    if array.ndim != 2 or array.shape[1] != 3:
        raise ValueError(f"{name} must have shape (n, 3), got {array.shape}")
    return array


# ============================================================================
# Volume Validation
# ============================================================================

def _validate_volume_shape(volume_shape):
    """Validate a (D, H, W) volume shape and return it as a tuple of ints.

    Parameters
    ----------
    volume_shape : sequence of int
        Number of voxels along (z, y, x).

    Returns
    -------
    tuple of int
        The validated shape.

    Raises
    ------
    ValueError
        If the shape is not 3D or has a non-positive dimension.
    """
    shape = tuple(int(n) for n in volume_shape)
    if len(shape) != 3:
        raise ValueError(f"Expected a 3D volume shape (D, H, W), got {len(shape)}D")
    if any(n <= 0 for n in shape):
        raise ValueError(f"Volume dimensions must be positive, got {shape}")
    return shape


# ============================================================================
# Device Management
# ============================================================================

class DeviceManager:
    """Utilities for matching system matrices to the tensors they act on."""

    @staticmethod
    def get_device(tensor):
        """Device of `tensor`, or the CPU for non-tensor inputs."""
        return tensor.device if hasattr(tensor, "device") else torch.device("cpu")

    @staticmethod
    def match(matrix, tensor):
        """Return `matrix` on the device and with the dtype of `tensor`.

        Parameters
        ----------
        matrix : torch.Tensor
            Dense or sparse system matrix.
        tensor : torch.Tensor
            Volume or projection tensor the matrix is applied to.

        Returns
        -------
        torch.Tensor
            `matrix` itself when it already matches, otherwise a converted copy.
        """
        device = DeviceManager.get_device(tensor)
        if matrix.device != device or matrix.dtype != tensor.dtype:
            return matrix.to(device=device, dtype=tensor.dtype)
        return matrix
