"""Shared fixtures for the test suite."""

import numpy as np
import pytest

from topological_markers.evolution import DEFAULT_CACHE
from topological_markers.lattice import forget_lattice_size


@pytest.fixture(autouse=True)
def fresh_state():
    """Start every test without a remembered lattice size or cached operators."""
    forget_lattice_size()
    DEFAULT_CACHE.clear()
    yield
    forget_lattice_size()
    DEFAULT_CACHE.clear()


@pytest.fixture
def rng():
    return np.random.default_rng(1234)
