r"""Operators derived from a Hamiltonian: projectors, positions, currents.

Functions
---------
filled_projector :
    Zero-temperature density matrix :math:`P = \sum_{E_k \le \varepsilon} |k\rangle\langle k|`.
coordinate_operators :
    Diagonal position operators :math:`\hat X, \hat Y`.
currents :
    Bond-resolved electric currents :math:`J_{ij} = -2\,\mathrm{Im}\,\mathrm{tr}(H_{ij} P_{ji})`.
pairwise_currents :
    Skew-symmetric current matrix from any function of two sites.
marker_currents :
    Local Chern marker currents obeying the continuity equation.
site_trace :
    Site-resolved trace :math:`\langle r|\hat O|r\rangle` of an operator.
local_chern_marker :
    Local Chern marker, the site trace of :math:`4\pi i\, P X (1-P) Y P`.

Examples
--------
>>> H = build_hamiltonian(np.ones((15, 15)), "natural")
>>> P = filled_projector(H)
>>> lcm = local_chern_marker(P)
>>> J = currents(H, P)
"""

from __future__ import annotations

import logging
from typing import Callable, Tuple

import numpy as np

from .errors import ConvergenceFailure, ShapeMismatch
from .lattice import ORBITALS_PER_SITE, CoordinateMap, resolve_lattice_size, site_position

logger = logging.getLogger(__name__)

DEFAULT_FERMI_LEVEL = 0.0


def _square(matrix, name: str) -> np.ndarray:
    matrix = np.asarray(matrix)
    if matrix.ndim != 2 or matrix.shape[0] != matrix.shape[1]:
        raise ShapeMismatch(f"{name} must be a square matrix, got shape {matrix.shape}")
    return matrix


def _eigh(H: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    try:
        return np.linalg.eigh(H)
    except np.linalg.LinAlgError:
        logger.warning("Eigen-decomposition did not converge, retrying with symmetrized input")
    try:
        return np.linalg.eigh(0.5 * (H + H.conj().T))
    except np.linalg.LinAlgError as exc:
        raise ConvergenceFailure(
            f"Eigen-decomposition of a {H.shape[0]}×{H.shape[0]} matrix did not converge"
        ) from exc


def filled_projector(H, fermi_level: float = DEFAULT_FERMI_LEVEL) -> np.ndarray:
    """Return the projector onto the filled states of ``H``.

    Parameters
    ----------
    H : array_like
        Hermitian Hamiltonian matrix.
    fermi_level : float, optional
        States with energy ``<= fermi_level`` are filled.  Default is 0.

    Returns
    -------
    numpy.ndarray
        Ground-state density matrix, Hermitian and idempotent.

    Raises
    ------
    ShapeMismatch
        If ``H`` is not square.
    ConvergenceFailure
        If the decomposition fails, also after symmetrizing ``H``.
    """

    H = _square(H, "Hamiltonian")
    energies, states = _eigh(H)
    occupied = states[:, energies <= fermi_level]
    logger.debug("Filled %d of %d states below %g", occupied.shape[1], len(energies), fermi_level)
    return occupied @ occupied.conj().T


def coordinate_operators(lattice_size=None, symmetric: bool = False) -> Tuple[np.ndarray, np.ndarray]:
    """Return the diagonal position operators ``(X, Y)``.

    Parameters
    ----------
    lattice_size : tuple of int, optional
        Lattice size.  Defaults to the size of the last built Hamiltonian.
    symmetric : bool, optional
        Put the origin at the lattice centre instead of the bottom-left
        site.
    """

    size = resolve_lattice_size(lattice_size)
    positions = np.array([site_position(site, size) for site in range(size.sites)])
    if symmetric:
        positions -= np.array([(size.cols - 1) / 2, (size.rows - 1) / 2])
    xs = np.repeat(positions[:, 0], ORBITALS_PER_SITE)
    ys = np.repeat(positions[:, 1], ORBITALS_PER_SITE)
    return np.diag(xs), np.diag(ys)


def currents(H, P, lattice_size=None) -> np.ndarray:
    """Return the matrix of electric currents between sites.

    ``J[i, j]`` is the current flowing from site ``i`` to site ``j``.  It is
    nonzero only for sites joined by a hopping in ``H`` and the matrix is
    exactly skew-symmetric.

    Parameters
    ----------
    H : array_like
        Hamiltonian matrix.
    P : array_like
        Density matrix.
    lattice_size : tuple of int, optional
        Lattice size.  Defaults to the size of the last built Hamiltonian.

    Raises
    ------
    ShapeMismatch
        If ``H`` and ``P`` differ in shape or do not fit the lattice.
    """

    H = _square(H, "Hamiltonian")
    P = _square(P, "Density matrix")
    if H.shape != P.shape:
        raise ShapeMismatch(f"Hamiltonian {H.shape} and density matrix {P.shape} differ in shape")
    size = resolve_lattice_size(lattice_size, H.shape[0])
    n, k = size.sites, ORBITALS_PER_SITE
    flow = -2.0 * np.einsum("iajb,jbia->ij", H.reshape(n, k, n, k), P.reshape(n, k, n, k)).imag
    return 0.5 * (flow - flow.T)


def pairwise_currents(current: Callable[[int, int], float], lattice_size=None) -> np.ndarray:
    """Build a current matrix from ``current(i, j)`` evaluated for ``i < j``."""

    size = resolve_lattice_size(lattice_size)
    J = np.zeros((size.sites, size.sites))
    for i in range(size.sites):
        for j in range(i + 1, size.sites):
            value = float(current(i, j))
            J[i, j] = value
            J[j, i] = -value
    return J


def _positions(size, X, Y) -> Tuple[np.ndarray, np.ndarray]:
    if X is None or Y is None:
        X_default, Y_default = coordinate_operators(size)
        X = X_default if X is None else X
        Y = Y_default if Y is None else Y
    return np.asarray(X), np.asarray(Y)


def _marker_operator(P: np.ndarray, X: np.ndarray, Y: np.ndarray) -> np.ndarray:
    Q = np.eye(P.shape[0]) - P
    return 4j * np.pi * P @ X @ Q @ Y @ P


def _bond_flow(H: np.ndarray, A: np.ndarray, size) -> np.ndarray:
    """Skew-symmetric ``K`` whose row sums are the site traces of ``-i[H, A]``."""
    n, k = size.sites, ORBITALS_PER_SITE
    forward = np.einsum("iajb,jbia->ij", H.reshape(n, k, n, k), A.reshape(n, k, n, k))
    return np.real(-1j * (forward - forward.T))


def marker_currents(H, P, X=None, Y=None, lattice_size=None) -> Callable[[int, int], float]:
    r"""Return the local Chern marker current between two sites.

    With :math:`\dot P = -i[H, P]` and fixed positions, the marker
    operator :math:`C = 4\pi i\, P X (1-P) Y P` obeys

    .. math::

        \dot C = -i[H, C] - 4\pi i \left(P \dot X (1-P) Y P
                 + P X (1-P) \dot Y P\right),
        \qquad \dot X = -i[H, X],\ \dot Y = -i[H, Y].

    The commutator gives currents along the bonds of ``H``.  The second
    term is a source with vanishing total; it is spread over all site
    pairs as the antisymmetric matrix of least norm with those row sums.
    The currents therefore obey the continuity equation
    :math:`\dot c_i = -\sum_j J(i, j)` but are not localized.

    Parameters
    ----------
    H : array_like
        Hamiltonian driving the evolution.
    P : array_like
        Current density matrix.
    X, Y : array_like, optional
        Position operators.  Built with :func:`coordinate_operators` when
        omitted.
    lattice_size : tuple of int, optional
        Lattice size.  Defaults to the size of the last built Hamiltonian.

    Returns
    -------
    callable
        ``J(i, j)`` for sites ``i`` and ``j``; pass it to
        :func:`pairwise_currents` for the full matrix.

    Raises
    ------
    ShapeMismatch
        If ``H`` and ``P`` differ in shape or do not fit the lattice.
    """

    H = _square(H, "Hamiltonian")
    P = _square(P, "Density matrix")
    if H.shape != P.shape:
        raise ShapeMismatch(f"Hamiltonian {H.shape} and density matrix {P.shape} differ in shape")
    size = resolve_lattice_size(lattice_size, H.shape[0])
    X, Y = _positions(size, X, Y)
    Q = np.eye(P.shape[0]) - P

    bond = _bond_flow(H, _marker_operator(P, X, Y), size)
    X_dot = -1j * (H @ X - X @ H)
    Y_dot = -1j * (H @ Y - Y @ H)
    source_op = -4j * np.pi * (P @ X_dot @ Q @ Y @ P + P @ X @ Q @ Y_dot @ P)
    source = site_trace(source_op, size).site_values()
    J = -bond - (source[:, None] - source[None, :]) / size.sites

    def current(i: int, j: int) -> float:
        return float(J[i, j])

    return current


def site_trace(op, lattice_size=None) -> CoordinateMap:
    """Return the real part of the per-site trace of ``op`` as a coordinate map."""

    op = _square(op, "Operator")
    size = resolve_lattice_size(lattice_size, op.shape[0])
    per_site = np.real(np.diagonal(op)).reshape(size.sites, ORBITALS_PER_SITE).sum(axis=1)
    return CoordinateMap(per_site.reshape(size.rows, size.cols), "coordinate")


def local_chern_marker(P, X=None, Y=None, lattice_size=None) -> CoordinateMap:
    """Local Chern marker of the density matrix ``P``.

    The marker is the site trace of :math:`4\\pi i\\, P X (1 - P) Y P`.
    Deep inside a gapped region it approaches the Chern number of the
    bulk; its sum over a finite open lattice vanishes.

    Parameters
    ----------
    P : array_like
        Ground-state projector.
    X, Y : array_like, optional
        Position operators.  Built with :func:`coordinate_operators` when
        omitted.
    lattice_size : tuple of int, optional
        Lattice size.  Defaults to the size of the last built Hamiltonian.
    """

    P = _square(P, "Density matrix")
    size = resolve_lattice_size(lattice_size, P.shape[0])
    X, Y = _positions(size, X, Y)
    return site_trace(_marker_operator(P, X, Y), size)
