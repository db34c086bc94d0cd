"""Topological markers of two-dimensional Chern insulator lattices."""

import logging

from . import errors, evolution, field, hamiltonian, lattice, operators, storage
from .errors import (
    ConvergenceFailure,
    InvalidShape,
    MissingLatticeSize,
    ShapeMismatch,
    TopologicalMarkersError,
    TypeMismatch,
)
from .evolution import (
    DensitySpec,
    EvolutionCache,
    HamiltonianSpec,
    evolution_operator,
    run_evolution,
)
from .field import flux_quantum, landau_gauge, peierls_phase, symmetric_gauge
from .hamiltonian import HamiltonianConfig, apply_gauge_field, apply_zones, build_hamiltonian
from .lattice import CoordinateMap, LatticeSize, convention, to_coord, to_linear
from .operators import (
    coordinate_operators,
    currents,
    filled_projector,
    local_chern_marker,
    marker_currents,
    pairwise_currents,
    site_trace,
)
from .storage import OperatorStore, create_store, load_store

logging.getLogger(__name__).addHandler(logging.NullHandler())

__version__ = "0.1.0"

__all__ = [
    "ConvergenceFailure",
    "CoordinateMap",
    "DensitySpec",
    "EvolutionCache",
    "HamiltonianConfig",
    "HamiltonianSpec",
    "InvalidShape",
    "LatticeSize",
    "MissingLatticeSize",
    "OperatorStore",
    "ShapeMismatch",
    "TopologicalMarkersError",
    "TypeMismatch",
    "apply_gauge_field",
    "apply_zones",
    "build_hamiltonian",
    "convention",
    "coordinate_operators",
    "create_store",
    "currents",
    "errors",
    "evolution",
    "evolution_operator",
    "field",
    "filled_projector",
    "flux_quantum",
    "hamiltonian",
    "landau_gauge",
    "lattice",
    "load_store",
    "local_chern_marker",
    "marker_currents",
    "operators",
    "pairwise_currents",
    "peierls_phase",
    "run_evolution",
    "site_trace",
    "storage",
    "symmetric_gauge",
    "to_coord",
    "to_linear",
]
