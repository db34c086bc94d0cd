r"""Vector potentials and the Peierls phase.

A magnetic field enters the lattice model through the Peierls
substitution: the hopping from site :math:`i` to site :math:`j` picks up
the phase factor :math:`e^{i\varphi_{ij}}` with

.. math::

    \varphi_{ij} = 2\pi \int_{r_i}^{r_j} \mathbf{A}(\mathbf{r}) \cdot d\mathbf{r}.

The integral is evaluated along the straight bond with a composite
midpoint rule.  Vector potentials are plain callables taking a position
``(x, y)`` and returning a 2-vector (a 3-vector is accepted too; its
``z`` component lies out of the lattice plane and is ignored).
"""

from __future__ import annotations

from typing import Callable, Sequence

import numpy as np

from .errors import TypeMismatch

DEFAULT_INTERVALS = 10

VectorPotential = Callable[[np.ndarray], Sequence[float]]


def evaluate_potential(potential: VectorPotential, position: np.ndarray) -> np.ndarray:
    """Evaluate ``potential`` at ``position`` and return its in-plane part.

    Raises
    ------
    TypeMismatch
        If the value is not a real vector with two or three components.
    """

    value = potential(position)
    try:
        vector = np.asarray(value, dtype=float)
    except (TypeError, ValueError):
        raise TypeMismatch(f"Vector potential returned {value!r}, expected a 2-vector") from None
    if vector.ndim != 1 or vector.shape[0] not in (2, 3):
        raise TypeMismatch(
            f"Vector potential returned shape {vector.shape}, expected (2,) or (3,)"
        )
    return vector[:2]


def peierls_phase(
    potential: VectorPotential,
    start: Sequence[float],
    end: Sequence[float],
    intervals: int = DEFAULT_INTERVALS,
) -> float:
    """Return :math:`2\\pi \\int A \\cdot dr` along the segment ``start → end``.

    Parameters
    ----------
    potential : callable
        Vector potential ``A(position)``.
    start, end : sequence of float
        Positions ``(x, y)`` of the bond ends.
    intervals : int, optional
        Number of midpoint sub-intervals.  Default is 10.
    """

    if intervals < 1:
        raise ValueError(f"intervals must be at least 1, got {intervals}")
    start = np.asarray(start, dtype=float)
    end = np.asarray(end, dtype=float)
    step = (end - start) / intervals
    total = 0.0
    for k in range(intervals):
        midpoint = start + (k + 0.5) * step
        total += float(np.dot(evaluate_potential(potential, midpoint), step))
    return 2.0 * np.pi * total


def landau_gauge(B: float) -> VectorPotential:
    """Landau gauge :math:`A = (0, Bx)` for a uniform field ``B``."""

    B = float(B)

    def potential(position):
        return np.array([0.0, B * position[0]])

    return potential


def symmetric_gauge(B: float, center: Sequence[float] = (0.0, 0.0)) -> VectorPotential:
    """Symmetric gauge :math:`A = \\frac{B}{2}(-(y - c_y), x - c_x)`.

    Moving ``center`` changes ``A`` by a constant vector, i.e. by a pure
    gauge; observables of a closed system do not depend on it.
    """

    B = float(B)
    cx, cy = (float(c) for c in center)

    def potential(position):
        return 0.5 * B * np.array([-(position[1] - cy), position[0] - cx])

    return potential


def flux_quantum(flux: float, point: Sequence[float] = (0.0, 0.0)) -> VectorPotential:
    """Vector potential of a thin flux tube carrying ``flux`` at ``point``.

    The circulation of ``A`` around ``point`` equals ``flux``, so a loop
    enclosing it collects the phase ``2π·flux``.  Place ``point`` inside a
    plaquette, e.g. ``(x + 0.5, y + 0.5)``, to keep it off the bonds.
    """

    flux = float(flux)
    px, py = (float(p) for p in point)

    def potential(position):
        dx = position[0] - px
        dy = position[1] - py
        r2 = dx * dx + dy * dy
        if r2 == 0.0:
            return np.zeros(2)
        return flux / (2.0 * np.pi * r2) * np.array([-dy, dx])

    return potential
