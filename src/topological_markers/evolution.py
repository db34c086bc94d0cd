r"""Unitary evolution of density matrices.

The density matrix evolves as

.. math::

    \mathcal{P}(t) = \mathcal{U}(t)\, \mathcal{P}_0\, \mathcal{U}^\dagger(t),
    \qquad \mathcal{U}(t) = e^{-i \hat H t} \quad (\hbar = 1).

:func:`evolution_operator` computes :math:`\mathcal{U}(t)` for a static
Hamiltonian and memoizes it in an :class:`EvolutionCache`.  The cache is
keyed on the *identity* of the Hamiltonian object and the time, so a
Hamiltonian must not be modified in place once it has been evolved.
Hamiltonians returned by :mod:`topological_markers.hamiltonian` are
read-only arrays, which rules this out for them; plain arrays passed by
the caller are not protected.

:func:`run_evolution` drives time-dependent problems.  For every requested
time :math:`t_k` it evaluates the Hamiltonian function and propagates each
initial density matrix with :math:`e^{-i \hat H(t_k) t_k}`, i.e. with the
Hamiltonian frozen at the requested instant rather than a time-ordered
product.  Every time point is computed independently.

Examples
--------
>>> m = np.ones((15, 15))
>>> P0 = filled_projector(build_hamiltonian(m))
>>> h = lambda t: build_hamiltonian(m, field=symmetric_gauge(0.01 * t / 30))
>>> specs = [HamiltonianSpec("H"), DensitySpec("P", P0)]
>>> for frame in run_evolution(specs, np.arange(0, 30, 0.5), h):
...     J = currents(frame.H, frame.P)
"""

from __future__ import annotations

import logging
import threading
import warnings
from collections import namedtuple
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, Iterator, Optional, Sequence, Tuple, Union

import numpy as np
from scipy.linalg import expm

from .errors import ShapeMismatch

logger = logging.getLogger(__name__)

HamiltonianOfTime = Callable[[float], np.ndarray]


class EvolutionCache:
    """Memo of evolution operators keyed by ``(id(H), t)``.

    Entries are never evicted; call :meth:`clear` to drop them.  Access is
    serialized by a lock, the matrix exponential itself runs outside it.
    """

    def __init__(self):
        # Entries keep their Hamiltonian alive, so its id cannot be reused.
        self._entries: Dict[Tuple[int, float], Tuple[np.ndarray, np.ndarray]] = {}
        self._lock = threading.Lock()
        self.hits = 0
        self.misses = 0

    def evolution_operator(self, H, t: float) -> np.ndarray:
        key = (id(H), float(t))
        with self._lock:
            entry = self._entries.get(key)
            if entry is not None:
                self.hits += 1
                return entry[1]
        U = expm(-1j * float(t) * np.asarray(H))
        U.flags.writeable = False
        with self._lock:
            self._entries.setdefault(key, (H, U))
            self.misses += 1
            U = self._entries[key][1]
        logger.debug("Computed evolution operator for t=%g (%d cached)", t, len(self._entries))
        return U

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self.hits = 0
            self.misses = 0

    def __len__(self):
        return len(self._entries)

    def __contains__(self, key):
        H, t = key
        return (id(H), float(t)) in self._entries


DEFAULT_CACHE = EvolutionCache()


def evolution_operator(H, t: float, cache: Optional[EvolutionCache] = None) -> np.ndarray:
    """Return the evolution operator :math:`e^{-i H t}`.

    Parameters
    ----------
    H : array_like
        Hermitian Hamiltonian.  It must not be modified in place afterwards:
        repeated calls with the same object and time return the cached
        result.
    t : float
        Evolution time.
    cache : EvolutionCache, optional
        Cache to use instead of the process-wide default.

    Returns
    -------
    numpy.ndarray
        Read-only unitary matrix.
    """

    cache = DEFAULT_CACHE if cache is None else cache
    return cache.evolution_operator(H, t)


@dataclass
class HamiltonianSpec:
    """Bind the Hamiltonian at every time point to ``name``."""

    name: str
    hamiltonian_of_time: Optional[HamiltonianOfTime] = None


@dataclass(eq=False)
class DensitySpec:
    """Bind the density matrix evolved from ``initial`` to ``name``."""

    name: str
    initial: np.ndarray
    hamiltonian_of_time: Optional[HamiltonianOfTime] = None


EvolutionSpec = Union[HamiltonianSpec, DensitySpec]


def _check_names(specifiers: Sequence[EvolutionSpec]) -> Tuple[str, ...]:
    names = tuple(spec.name for spec in specifiers)
    for name in names:
        if not isinstance(name, str) or not name.isidentifier() or name.startswith("_"):
            raise ValueError(f"Specifier name {name!r} is not a valid identifier")
        if name == "t":
            raise ValueError("The name 't' is reserved for the time of each frame")
    if len(set(names)) != len(names):
        raise ValueError(f"Specifier names must be distinct, got {names}")
    return names


def run_evolution(
    specifiers: Iterable[EvolutionSpec],
    times: Iterable[float],
    hamiltonian_of_time: Optional[HamiltonianOfTime] = None,
    cache: Optional[EvolutionCache] = None,
) -> Iterator[tuple]:
    """Lazily evolve the bound quantities over ``times``.

    Parameters
    ----------
    specifiers : iterable of HamiltonianSpec or DensitySpec
        Quantities to compute at every time point.  A specifier without
        its own Hamiltonian function uses ``hamiltonian_of_time``.
    times : iterable of float
        Increasing time points.
    hamiltonian_of_time : callable, optional
        Default function returning the Hamiltonian at a given time.
    cache : EvolutionCache, optional
        Cache for the evolution operators.

    Returns
    -------
    iterator of namedtuple
        One ``EvolutionFrame(t, <name>, ...)`` per time point, computed
        when requested.

    Raises
    ------
    ValueError
        If names are invalid or a specifier has no Hamiltonian function.
    ShapeMismatch
        If an initial density matrix is not square.
    """

    specifiers = list(specifiers)
    names = _check_names(specifiers)
    bound = []
    for spec in specifiers:
        func = spec.hamiltonian_of_time or hamiltonian_of_time
        if func is None:
            raise ValueError(f"Specifier {spec.name!r} has no Hamiltonian function")
        if isinstance(spec, DensitySpec):
            initial = np.asarray(spec.initial)
            if initial.ndim != 2 or initial.shape[0] != initial.shape[1]:
                raise ShapeMismatch(
                    f"Initial density matrix {spec.name!r} must be square, got {initial.shape}"
                )
            bound.append((func, initial))
        elif isinstance(spec, HamiltonianSpec):
            bound.append((func, None))
        else:
            raise TypeError(f"Unknown evolution specifier {spec!r}")
    frame_type = namedtuple("EvolutionFrame", ("t",) + names)
    return _frames(frame_type, bound, times, DEFAULT_CACHE if cache is None else cache)


def _frames(frame_type, bound, times, cache: EvolutionCache) -> Iterator[tuple]:
    previous = None
    for t in times:
        if previous is not None and t <= previous:
            warnings.warn(
                f"Time points are not increasing ({previous} then {t}); "
                "each frame is still evolved from t = 0",
                RuntimeWarning,
                stacklevel=2,
            )
        previous = t
        hamiltonians = {}
        values = []
        for func, initial in bound:
            if id(func) not in hamiltonians:
                hamiltonians[id(func)] = func(t)
            H = hamiltonians[id(func)]
            if initial is None:
                values.append(H)
                continue
            if np.shape(H) != initial.shape:
                raise ShapeMismatch(
                    f"Hamiltonian {np.shape(H)} and density matrix {initial.shape} differ in shape"
                )
            U = cache.evolution_operator(H, t)
            values.append(U @ initial @ U.conj().T)
        logger.debug("Evolution frame at t=%g", t)
        yield frame_type(t, *values)
