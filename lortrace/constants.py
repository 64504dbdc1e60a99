"""Global constants and configuration for the lortrace package.

This module defines the numerical types, the empirical thresholds used by the
voxel traversal kernel, and the JIT decorator applied to the kernels.
"""

import numpy as np
from numba import njit

# ---------------------------------------------------------------------------
# Data Types
# ---------------------------------------------------------------------------

_DTYPE = np.float64
"""Floating-point type for coordinates and chord lengths (numpy.float64)."""

_INDEX_DTYPE = np.int64
"""Integer type for voxel indices (numpy.int64)."""

# ---------------------------------------------------------------------------
# Traversal Thresholds
# ---------------------------------------------------------------------------

# Direction components are in grid units, so they have a natural scale of 1.
_SMALL_DIFFERENCE = 1e-5
"""Direction components at or below this magnitude mark the line as parallel to that axis' planes."""

# Holds the last crossing of each axis a tiny bit below its exact value so
# that accumulated rounding in the loop cannot produce an extra iteration.
# Scaled for float64; crossings within this sliver of the final step are lost.
_END_SAFETY_FACTOR = 1.0 - 1e-9
"""Fraction of the final voxel step counted before an unclipped traversal ends."""

_SEGMENT_END_TOLERANCE = 1e-12
"""Relative distance before the stop point at which a clipped traversal ends."""

_PARALLEL_INCREMENT_SCALE = 1e6
"""Multiple of the segment length used as increment for near-zero direction axes."""

_RESERVE_MARGIN = 4
"""Extra entries reserved on top of the Manhattan distance between the end points."""

# ---------------------------------------------------------------------------
# JIT Decorators
# ---------------------------------------------------------------------------

# No fastmath: tie-breaking between crossings relies on exact comparisons.
_JIT_DECORATOR = njit(cache=True)
"""Numba CPU JIT decorator for the traversal kernels."""
