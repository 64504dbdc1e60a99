# lortrace/__init__.py
"""lortrace - Line-of-response ray tracing through Cartesian voxel grids.

Computes the voxels crossed by a line segment and the chord length in each
of them, the building block of projection matrices for iterative
tomographic reconstruction, with PyTorch operators on top.
"""

from .geometry import (
    Point3D,
    VoxelIndex3D,
    physical_to_grid,
)

from .accumulator import LineAccumulator

from .tracer import (
    ray_trace_voxels_on_cartesian_grid,
    trace_line,
)

from .projectors import (
    compute_system_matrix,
    RayTraceProjectorFunction,
    RayTraceBackprojectorFunction,
)

__version__ = '0.1.0'

__all__ = [
    'Point3D',
    'VoxelIndex3D',
    'physical_to_grid',
    'LineAccumulator',
    'ray_trace_voxels_on_cartesian_grid',
    'trace_line',
    'compute_system_matrix',
    'RayTraceProjectorFunction',
    'RayTraceBackprojectorFunction',
]
