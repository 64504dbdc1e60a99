"""Numba kernels for voxel traversal.

This subpackage contains the CPU-compiled line-voxel traversal kernel used
to build projection-matrix rows.
"""

from .ray_trace import (
    _ray_trace_voxels_kernel,
    _reserve_size,
)

__all__ = [
    '_ray_trace_voxels_kernel',
    '_reserve_size',
]
