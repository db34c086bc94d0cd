r"""Real-space Hamiltonian of the two-band Chern insulator.

The model on a ``rows × cols`` lattice reads

.. math::

    \hat H = \sum_i m_i c^\dagger_i \sigma_z c_i
      + \sum_{x\text{-bonds}} c^\dagger_i \frac{\sigma_z - i\sigma_x}{2} c_j
      + \sum_{y\text{-bonds}} c^\dagger_i \frac{\sigma_z - i\sigma_y}{2} c_j
      + \text{h.c.}

where :math:`m_i` is the mass on site :math:`i` and the bonds join every
site to its right (``x``) and upper (``y``) neighbour.  The bulk is
topological for :math:`0 < |m| < 2` and trivial for :math:`|m| > 2`.

Zones and magnetic fields act on the hopping blocks only.  A zone map
removes every bond whose ends carry different labels; a vector potential
multiplies the hopping of the bond from ``i`` to ``j`` by the Peierls factor
:math:`e^{i\varphi_{ij}}` (see :mod:`topological_markers.field`).  On a
periodic axis of one or two sites several bonds share a block and their
hoppings add up.

All functions return new read-only arrays.  In particular
:func:`apply_gauge_field` and :func:`apply_zones` never modify their
input, so a Hamiltonian object always keeps the value it was created
with; the evolution cache relies on that.

Examples
--------
>>> m = np.ones((15, 15))
>>> m[5:10, 6:11] = -1
>>> H = build_hamiltonian(m, "natural", field=landau_gauge(0.01))
>>> H.shape
(450, 450)
"""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass
from typing import Any, Optional, Tuple

import numpy as np

from .errors import InvalidShape, ShapeMismatch, TypeMismatch
from .field import DEFAULT_INTERVALS, VectorPotential, peierls_phase
from .lattice import (
    ORBITALS_PER_SITE,
    Bond,
    LatticeSize,
    as_coordinate_map,
    lattice_bonds,
    remember_lattice_size,
    resolve_lattice_size,
    site_position,
)

logger = logging.getLogger(__name__)

SIGMA_X = np.array([[0.0, 1.0], [1.0, 0.0]], dtype=complex)
SIGMA_Y = np.array([[0.0, -1.0j], [1.0j, 0.0]], dtype=complex)
SIGMA_Z = np.array([[1.0, 0.0], [0.0, -1.0]], dtype=complex)

HOPPINGS = {
    "x": (SIGMA_Z - 1j * SIGMA_X) / 2,
    "y": (SIGMA_Z - 1j * SIGMA_Y) / 2,
}

# Every bond that could exist on the lattice; blocks of absent bonds are zero.
_ALL_BONDS = (True, True)


def site_block(site: int) -> slice:
    """Matrix slice of the internal components of ``site``."""
    return slice(ORBITALS_PER_SITE * site, ORBITALS_PER_SITE * (site + 1))


def _freeze(H: np.ndarray) -> np.ndarray:
    H.flags.writeable = False
    return H


def _writable_copy(H) -> np.ndarray:
    H = np.array(H, dtype=complex)
    if H.ndim != 2 or H.shape[0] != H.shape[1]:
        raise ShapeMismatch(f"Hamiltonian must be a square matrix, got shape {H.shape}")
    return H


def _same_zone(a, b) -> bool:
    try:
        return bool(a == b)
    except (TypeError, ValueError) as exc:
        raise TypeMismatch(f"Zone labels {a!r} and {b!r} cannot be compared") from exc


def _cut_zones(H: np.ndarray, labels: np.ndarray, size: LatticeSize) -> int:
    """Zero the hopping blocks between sites of different zones in place."""
    removed = 0
    for bond in lattice_bonds(size, _ALL_BONDS):
        if bond.start == bond.end or _same_zone(labels[bond.start], labels[bond.end]):
            continue
        start, end = site_block(bond.start), site_block(bond.end)
        if H[start, end].any() or H[end, start].any():
            removed += 1
        H[start, end] = 0.0
        H[end, start] = 0.0
    return removed


def _bond_phase(
    bond: Bond, potential: VectorPotential, size: LatticeSize, intervals: int
) -> complex:
    origin = site_position(bond.start, size)
    return np.exp(1j * peierls_phase(potential, origin, origin + bond.displacement, intervals))


def _rephase_component(block: np.ndarray, hopping: np.ndarray, phase: complex) -> None:
    """Multiply the ``hopping`` component of ``block`` by ``phase`` in place.

    ``hopping`` has unit Frobenius norm and is orthogonal to its adjoint,
    so the two bonds sharing a block are rephased independently.
    """
    weight = np.vdot(hopping, block)
    block += (phase - 1.0) * weight * hopping


def _apply_phases(
    H: np.ndarray, potential: VectorPotential, size: LatticeSize, intervals: int
) -> None:
    """Multiply every present hopping by its Peierls factor in place.

    A block carrying a single bond is multiplied as a whole.  On a periodic
    axis of two sites the block holds a bond and a wrap bond running the
    other way, and each one's hopping component gets its own phase.
    Self-bonds of a one-site axis cannot be told apart from the on-site
    term and are left as they are; :func:`build_hamiltonian` phases them.
    """
    bonds = [bond for bond in lattice_bonds(size, _ALL_BONDS) if bond.start != bond.end]
    sharing = Counter(frozenset((bond.start, bond.end)) for bond in bonds)
    for bond in bonds:
        start, end = site_block(bond.start), site_block(bond.end)
        if not H[start, end].any():
            continue
        phase = _bond_phase(bond, potential, size, intervals)
        if sharing[frozenset((bond.start, bond.end))] > 1:
            hopping = HOPPINGS[bond.axis]
            _rephase_component(H[start, end], hopping, phase)
            _rephase_component(H[end, start], hopping.conj().T, np.conj(phase))
        else:
            H[start, end] *= phase
            H[end, start] *= np.conj(phase)


def _zone_labels(zones, size: LatticeSize, convention: Optional[str]) -> np.ndarray:
    try:
        zone_map = as_coordinate_map(zones, convention, lattice_size=size)
    except InvalidShape as exc:
        raise ShapeMismatch(
            f"Zone map does not fit a {size.rows}×{size.cols} lattice: {exc}"
        ) from exc
    return zone_map.site_values()


def build_hamiltonian(
    mass,
    convention: Optional[str] = None,
    *,
    pbc: Tuple[bool, bool] = (False, False),
    zones=None,
    zones_convention: Optional[str] = None,
    field: Optional[VectorPotential] = None,
    intervals: int = DEFAULT_INTERVALS,
) -> np.ndarray:
    """Build the Chern insulator Hamiltonian.

    Parameters
    ----------
    mass : CoordinateMap or array_like
        Mass :math:`m_i` on every site.  A raw 2-D array is interpreted in
        ``convention``.
    convention : str, optional
        Addressing convention of a raw ``mass`` array (``"coordinate"`` by
        default, or ``"natural"``).
    pbc : tuple of bool, optional
        Periodic boundary conditions along the horizontal and vertical
        edge.  Default is ``(False, False)``.
    zones : CoordinateMap or array_like, optional
        Zone label of every site; hoppings between different zones are
        removed.
    zones_convention : str, optional
        Addressing convention of a raw ``zones`` array.
    field : callable, optional
        Vector potential ``A(position)`` applied through the Peierls
        substitution.
    intervals : int, optional
        Quadrature intervals of the Peierls phase integral.

    Returns
    -------
    numpy.ndarray
        Read-only complex Hermitian matrix of shape ``(2N, 2N)``.  The
        lattice size is remembered for later calls that omit it.
    """

    masses = as_coordinate_map(mass, convention)
    size = masses.size
    values = np.asarray(masses.site_values(), dtype=float)
    dim = ORBITALS_PER_SITE * size.sites

    labels = None if zones is None else _zone_labels(zones, size, zones_convention)

    H = np.zeros((dim, dim), dtype=complex)
    for site, m in enumerate(values):
        H[site_block(site), site_block(site)] = m * SIGMA_Z
    bonds = []
    for bond in lattice_bonds(size, pbc):
        if labels is not None and bond.start != bond.end:
            if not _same_zone(labels[bond.start], labels[bond.end]):
                continue
        hopping = HOPPINGS[bond.axis]
        if field is not None:
            hopping = _bond_phase(bond, field, size, intervals) * hopping
        start, end = site_block(bond.start), site_block(bond.end)
        H[start, end] += hopping
        H[end, start] += hopping.conj().T
        bonds.append(bond)

    remember_lattice_size(size)
    logger.debug(
        "Built %d×%d Hamiltonian on a %d×%d lattice (%d bonds, zones=%s, field=%s)",
        dim, dim, size.rows, size.cols, len(bonds), zones is not None, field is not None,
    )
    return _freeze(H)


def apply_gauge_field(
    H,
    field: VectorPotential,
    lattice_size=None,
    intervals: int = DEFAULT_INTERVALS,
) -> np.ndarray:
    """Return a copy of ``H`` with the Peierls phases of ``field`` applied.

    Parameters
    ----------
    H : array_like
        Hamiltonian matrix.
    field : callable
        Vector potential ``A(position)``.
    lattice_size : tuple of int, optional
        Lattice the Hamiltonian is defined on.  Defaults to the size of the
        last built Hamiltonian.
    intervals : int, optional
        Quadrature intervals of the Peierls phase integral.

    Raises
    ------
    ShapeMismatch
        If ``H`` does not fit the lattice size.
    MissingLatticeSize
        If no size is given and none was remembered.

    Notes
    -----
    The self-bond of a periodic one-site axis sits in the on-site block
    and is not rephased here.  Pass ``field`` to :func:`build_hamiltonian`
    for such lattices.
    """

    H = _writable_copy(H)
    size = resolve_lattice_size(lattice_size, H.shape[0])
    _apply_phases(H, field, size, intervals)
    return _freeze(H)


def apply_zones(H, zones, lattice_size=None, convention: Optional[str] = None) -> np.ndarray:
    """Return a copy of ``H`` with the hoppings between zones removed.

    Parameters
    ----------
    H : array_like
        Hamiltonian matrix.
    zones : CoordinateMap or array_like
        Zone label of every site.  Labels are only compared for equality.
    lattice_size : tuple of int, optional
        Lattice the Hamiltonian is defined on.  Defaults to the size of the
        zone map.
    convention : str, optional
        Addressing convention of a raw ``zones`` array.

    Raises
    ------
    ShapeMismatch
        If ``H`` or the zone map does not fit the lattice size.
    TypeMismatch
        If two labels cannot be compared.
    """

    H = _writable_copy(H)
    if lattice_size is None:
        lattice_size = as_coordinate_map(zones, convention).size
    size = resolve_lattice_size(lattice_size, H.shape[0])
    removed = _cut_zones(H, _zone_labels(zones, size, convention), size)
    logger.debug("Removed %d inter-zone bonds", removed)
    return _freeze(H)


@dataclass
class HamiltonianConfig:
    """Model options shared by several Hamiltonians.

    Useful for time-dependent problems, where only the field changes:

    >>> config = HamiltonianConfig(pbc=(True, False))
    >>> h = lambda t: replace(config, field=symmetric_gauge(0.01 * t)).build(m)
    """

    pbc: Tuple[bool, bool] = (False, False)
    zones: Any = None
    zones_convention: Optional[str] = None
    field: Optional[VectorPotential] = None
    intervals: int = DEFAULT_INTERVALS

    def __post_init__(self):
        if len(self.pbc) != 2:
            raise ValueError(f"pbc must hold two flags, got {self.pbc!r}")
        self.pbc = (bool(self.pbc[0]), bool(self.pbc[1]))
        if self.intervals < 1:
            raise ValueError(f"intervals must be at least 1, got {self.intervals}")

    def build(self, mass, convention: Optional[str] = None) -> np.ndarray:
        return build_hamiltonian(
            mass,
            convention,
            pbc=self.pbc,
            zones=self.zones,
            zones_convention=self.zones_convention,
            field=self.field,
            intervals=self.intervals,
        )
