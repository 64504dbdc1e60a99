"""Numba kernels for voxel traversal on a Cartesian grid.

This module contains the incremental parametric (Siddon-style) traversal that
computes the chord length of a line segment in every voxel it crosses.
"""

import math

from ..constants import (
    _JIT_DECORATOR,
    _SMALL_DIFFERENCE,
    _END_SAFETY_FACTOR,
    _SEGMENT_END_TOLERANCE,
    _PARALLEL_INCREMENT_SCALE,
    _RESERVE_MARGIN,
)


# ============================================================================
# Voxel Index Helpers
# ============================================================================

@_JIT_DECORATOR
def _entry_index(coord, sign):
    """Index of the voxel containing `coord`; a boundary point goes to the voxel ahead."""
    if sign > 0:
        return int(math.floor(coord + 0.5))
    return int(math.ceil(coord - 0.5))


@_JIT_DECORATOR
def _exit_index(coord, sign, clip_to_segment):
    """Index of the last voxel on an axis.

    With `clip_to_segment` a stop point on a boundary belongs to the voxel the
    segment ends in, otherwise to the voxel ahead of it.
    """
    if clip_to_segment:
        return _entry_index(coord, -sign)
    return _entry_index(coord, sign)


def _reserve_size(start, stop):
    """Number of entries to reserve for the segment from `start` to `stop`.

    Parameters
    ----------
    start : numpy.ndarray
        Start point in grid units, shape (3,).
    stop : numpy.ndarray
        Stop point in grid units, shape (3,).

    Returns
    -------
    int
        Manhattan distance between the end points, rounded up per axis, plus
        a small margin.
    """
    difference = stop - start
    return int(sum(math.ceil(abs(float(d))) for d in difference)) + _RESERVE_MARGIN


# ============================================================================
# Traversal Kernel
# ============================================================================

@_JIT_DECORATOR
def _ray_trace_voxels_kernel(
    start, stop, voxel_size, normalisation, clip_to_segment,
    out_index, out_length
):
    """Trace the segment from `start` to `stop` through the voxel grid.

    The line is parametrised by physical distance from the start point,
    ``p(a) = start + a * (stop - start) / d12``, so a step of one voxel along
    x corresponds to a parametric increment ``inc_x = d12 / |dx|``. Plane
    crossings are visited in increasing order of ``a``.

    Parameters
    ----------
    start : numpy.ndarray
        Start point in grid units, shape (3,), float64.
    stop : numpy.ndarray
        Stop point in grid units, shape (3,), float64.
    voxel_size : numpy.ndarray
        Physical voxel size per axis, shape (3,), all positive.
    normalisation : float
        Multiplier applied to every emitted length.
    clip_to_segment : bool
        If True, the chords of the first and last voxels only count the part
        inside the segment. If False, whole-voxel chords are emitted at both
        ends.
    out_index : numpy.ndarray
        Output voxel indices, shape (capacity, 3), int64.
    out_length : numpy.ndarray
        Output weighted lengths, shape (capacity,), float64.

    Returns
    -------
    int
        Number of entries written to the output arrays.
    """
    capacity = out_length.shape[0]

    dx = stop[0] - start[0]
    dy = stop[1] - start[1]
    dz = stop[2] - start[2]

    d12 = math.sqrt(
        (dx * voxel_size[0]) ** 2 + (dy * voxel_size[1]) ** 2 + (dz * voxel_size[2]) ** 2
    )

    sign_x = 1 if dx >= 0.0 else -1
    sign_y = 1 if dy >= 0.0 else -1
    sign_z = 1 if dz >= 0.0 else -1

    zero_diff_x = abs(dx) <= _SMALL_DIFFERENCE
    zero_diff_y = abs(dy) <= _SMALL_DIFFERENCE
    zero_diff_z = abs(dz) <= _SMALL_DIFFERENCE

    # coordinates of the first voxel
    ix = _entry_index(start[0], sign_x)
    iy = _entry_index(start[1], sign_y)
    iz = _entry_index(start[2], sign_z)

    # === DEGENERATE SEGMENT ===
    if zero_diff_x and zero_diff_y and zero_diff_z:
        if d12 == 0.0:
            return 0
        out_index[0, 0] = ix
        out_index[0, 1] = iy
        out_index[0, 2] = iz
        out_length[0] = d12 * normalisation
        return 1

    # === PARAMETRIC INCREMENTS ===
    # inc_? is always positive; parallel axes get a sentinel far beyond the segment
    parallel_inc = d12 * _PARALLEL_INCREMENT_SCALE
    inc_x = parallel_inc if zero_diff_x else d12 / abs(dx)
    inc_y = parallel_inc if zero_diff_y else d12 / abs(dy)
    inc_z = parallel_inc if zero_diff_z else d12 / abs(dz)

    # === LAST CROSSINGS ===
    # a?_end is the entry plane of the last voxel plus all but a sliver of one step
    jx = _exit_index(stop[0], sign_x, clip_to_segment)
    jy = _exit_index(stop[1], sign_y, clip_to_segment)
    jz = _exit_index(stop[2], sign_z, clip_to_segment)

    ax_end = parallel_inc if zero_diff_x else \
        ((jx - sign_x * 0.5 - start[0]) * sign_x + _END_SAFETY_FACTOR) * inc_x
    ay_end = parallel_inc if zero_diff_y else \
        ((jy - sign_y * 0.5 - start[1]) * sign_y + _END_SAFETY_FACTOR) * inc_y
    az_end = parallel_inc if zero_diff_z else \
        ((jz - sign_z * 0.5 - start[2]) * sign_z + _END_SAFETY_FACTOR) * inc_z

    if clip_to_segment:
        # the segment itself ends the traversal
        a_max = d12 * (1.0 - _SEGMENT_END_TOLERANCE)
    else:
        a_max = min(ax_end, min(ay_end, az_end))

    assert not zero_diff_x or ax_end > a_max
    assert not zero_diff_y or ay_end > a_max
    assert not zero_diff_z or az_end > a_max

    # === FIRST CROSSINGS ===
    # planes through which the line enters the first voxel (a? <= 0)
    ax = -inc_x if zero_diff_x else (ix - sign_x * 0.5 - start[0]) * inc_x * sign_x
    ay = -inc_y if zero_diff_y else (iy - sign_y * 0.5 - start[1]) * inc_y * sign_y
    az = -inc_z if zero_diff_z else (iz - sign_z * 0.5 - start[2]) * inc_z * sign_z

    # the biggest one is where the line enters the first voxel
    a = max(ax, max(ay, az))

    # now go to the intersections with the next planes
    if zero_diff_x:
        ax = ax_end
    else:
        ax += inc_x
    if zero_diff_y:
        ay = ay_end
    else:
        ay += inc_y
    if zero_diff_z:
        az = az_end
    else:
        az += inc_z

    # === TRAVERSAL LOOP ===
    n = 0
    while a < a_max:
        assert n < capacity
        # ties go to x, then y, then z
        if ax <= ay and ax <= az:
            a_next = ax
            axis = 0
        elif ay <= az:
            a_next = ay
            axis = 1
        else:
            a_next = az
            axis = 2

        lo = a
        hi = a_next
        if clip_to_segment:
            if lo < 0.0:
                lo = 0.0
            if hi > d12:
                hi = d12
            if hi < lo:
                hi = lo

        out_index[n, 0] = ix
        out_index[n, 1] = iy
        out_index[n, 2] = iz
        out_length[n] = (hi - lo) * normalisation
        n += 1

        a = a_next
        if axis == 0:
            ax += inc_x
            ix += sign_x
        elif axis == 1:
            ay += inc_y
            iy += sign_y
        else:
            az += inc_z
            iz += sign_z

    return n
