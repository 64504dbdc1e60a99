"""Shared pytest fixtures for the lortrace test suite."""

import numpy as np
import pytest

from lortrace import LineAccumulator


@pytest.fixture
def unit_voxels():
    """Isotropic voxel size of 1 along every axis."""
    return np.array([1.0, 1.0, 1.0])


@pytest.fixture
def lor():
    """Empty accumulator for one line of response."""
    return LineAccumulator()


@pytest.fixture
def rng():
    """Seeded random generator so property checks are reproducible."""
    return np.random.default_rng(20021)
