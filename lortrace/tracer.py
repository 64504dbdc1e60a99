"""Line-voxel traversal through a Cartesian grid.

This module exposes the ray tracer that turns one line of response into a
projection-matrix row: the ordered voxels crossed by a segment together with
the chord length in each of them.
"""

import logging

import numpy as np

from .accumulator import LineAccumulator
from .constants import _DTYPE, _INDEX_DTYPE
from .kernels import _ray_trace_voxels_kernel, _reserve_size
from .utils import _as_coordinate_array, _as_voxel_size

logger = logging.getLogger(__name__)


def ray_trace_voxels_on_cartesian_grid(
    lor, start_point, stop_point, voxel_size, normalisation_constant=1.0,
    clip_to_segment=True
):
    """Append the voxels crossed by a segment and their chord lengths to `lor`.

    The segment is traversed from `start_point` to `stop_point`. Every voxel
    it passes through is appended once, in traversal order, with weight
    ``chord_length * normalisation_constant``. Consecutive entries are face
    neighbours: a line crossing an edge or corner of the grid yields
    zero-length entries for the intermediate voxels rather than a diagonal
    jump. Ties between simultaneous plane crossings are resolved in the
    order x, y, z.

    Parameters
    ----------
    lor : LineAccumulator
        Accumulator to append to. Existing entries are kept.
    start_point : array-like or Point3D
        Start of the segment in grid units (x, y, z), where voxel (i, j, k)
        is centred at (i, j, k).
    stop_point : array-like or Point3D
        End of the segment in grid units.
    voxel_size : array-like or float
        Physical voxel size per axis; only used to compute true lengths.
    normalisation_constant : float, optional
        Multiplier applied to every chord length (default: 1.0).
    clip_to_segment : bool, optional
        If True (default), the first and last voxels only receive the part
        of their chord between the end points, so the lengths sum to the
        segment length. If False, the chord of the whole line through those
        voxels is used.

    Notes
    -----
    No bounds checking is done; indices outside the image are the caller's
    to discard (see :meth:`LineAccumulator.clip_to_grid`). A segment with
    ``start_point == stop_point`` appends nothing.

    Examples
    --------
    >>> lor = LineAccumulator()
    >>> ray_trace_voxels_on_cartesian_grid(
    ...     lor, (0.5, 0.5, 0.5), (3.5, 0.5, 0.5), (1.0, 1.0, 1.0)
    ... )
    >>> [(tuple(v), w) for v, w in lor]
    [((1, 1, 1), 1.0), ((2, 1, 1), 1.0), ((3, 1, 1), 1.0)]
    """
    start = _as_coordinate_array(start_point, "start_point")
    stop = _as_coordinate_array(stop_point, "stop_point")
    voxel_size = _as_voxel_size(voxel_size)
    assert np.all(np.isfinite(start)) and np.all(np.isfinite(stop)), \
        "start_point and stop_point must be finite"

    capacity = _reserve_size(start, stop)
    lor.reserve(len(lor) + capacity)

    out_index = np.empty((capacity, 3), dtype=_INDEX_DTYPE)
    out_length = np.empty(capacity, dtype=_DTYPE)
    n = _ray_trace_voxels_kernel(
        start, stop, voxel_size, float(normalisation_constant), bool(clip_to_segment),
        out_index, out_length
    )
    if n == 0:
        logger.debug("Degenerate segment %s -> %s, nothing traced", start, stop)
    lor.extend(out_index[:n], out_length[:n])


def trace_line(start_point, stop_point, voxel_size=1.0, normalisation_constant=1.0,
               clip_to_segment=True):
    """Trace a segment into a new :class:`LineAccumulator`.

    Parameters are those of :func:`ray_trace_voxels_on_cartesian_grid`.

    Returns
    -------
    LineAccumulator
        The traversal entries of the segment.
    """
    lor = LineAccumulator()
    ray_trace_voxels_on_cartesian_grid(
        lor, start_point, stop_point, voxel_size, normalisation_constant, clip_to_segment
    )
    return lor
