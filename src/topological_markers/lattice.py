"""Lattice geometry: sizes, site indices, coordinate maps and bonds.

Sites of a ``rows × cols`` lattice are addressed by a coordinate pair
``(row, col)``.  In the *coordinate* convention row ``0`` is the bottom
row, so the position vector of site ``(row, col)`` is ``(x, y) = (col,
row)``.  Matrices printed in the usual way read the other way round; the
*natural* convention describes that raster order, in which natural row
``r`` is coordinate row ``rows - 1 - r``.

Each site carries ``ORBITALS_PER_SITE`` internal components, so a lattice
of ``N`` sites is described by ``2N × 2N`` operators.  The component ``a``
of site ``s`` has matrix index ``2*s + a``.

Functions
---------
to_linear, to_coord :
    Convert between coordinates and linear site indices (row-major).
convention :
    Re-express a :class:`CoordinateMap` in another convention.
lattice_bonds :
    Enumerate nearest-neighbour bonds, optionally with wrap-around bonds.
resolve_lattice_size :
    Pick an explicit or remembered lattice size and check it against a
    matrix dimension.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, List, NamedTuple, Optional, Tuple

import numpy as np

from .errors import InvalidShape, MissingLatticeSize, ShapeMismatch

ORBITALS_PER_SITE = 2

_CONVENTION_ALIASES = {
    "c": "coordinate",
    "coord": "coordinate",
    "coordinate": "coordinate",
    "n": "natural",
    "natural": "natural",
}

_last_lattice_size: Optional["LatticeSize"] = None


class LatticeSize(NamedTuple):
    """Extent of a rectangular lattice."""

    rows: int
    cols: int

    @property
    def sites(self) -> int:
        return self.rows * self.cols


def as_lattice_size(size: Any) -> LatticeSize:
    """Validate ``size`` and return it as a :class:`LatticeSize`.

    Raises
    ------
    InvalidShape
        If ``size`` is not a pair of positive integers.
    """

    try:
        rows, cols = size
    except (TypeError, ValueError):
        raise InvalidShape(f"Lattice size must be a (rows, cols) pair, got {size!r}") from None
    if not all(isinstance(v, (int, np.integer)) for v in (rows, cols)) or rows < 1 or cols < 1:
        raise InvalidShape(f"Lattice size must hold positive integers, got {size!r}")
    return LatticeSize(int(rows), int(cols))


def to_linear(coord: Tuple[int, int], size: Tuple[int, int]) -> int:
    """Return the row-major site index of ``coord = (row, col)``."""

    size = as_lattice_size(size)
    row, col = coord
    if not (0 <= row < size.rows and 0 <= col < size.cols):
        raise InvalidShape(f"Coordinate {coord!r} lies outside a {size.rows}×{size.cols} lattice")
    return int(row) * size.cols + int(col)


def to_coord(index: int, size: Tuple[int, int]) -> Tuple[int, int]:
    """Return the ``(row, col)`` coordinate of site ``index``."""

    size = as_lattice_size(size)
    if not 0 <= index < size.sites:
        raise InvalidShape(f"Site index {index} lies outside a lattice of {size.sites} sites")
    row, col = divmod(int(index), size.cols)
    return row, col


def site_position(index: int, size: Tuple[int, int]) -> np.ndarray:
    """Position vector ``(x, y)`` of site ``index``."""

    row, col = to_coord(index, size)
    return np.array([col, row], dtype=float)


def normalise_convention(spec: str) -> str:
    """Map a convention name or alias to ``"coordinate"`` or ``"natural"``."""

    try:
        return _CONVENTION_ALIASES[str(spec).lower()]
    except KeyError:
        raise ValueError(
            f"Unknown convention {spec!r}; use one of {sorted(_CONVENTION_ALIASES)}"
        ) from None


class CoordinateMap:
    """A lattice-shaped array together with its addressing convention.

    Parameters
    ----------
    lattice : array_like
        Two-dimensional array with one value per site.  It is wrapped, not
        copied, so item assignment writes through to it.
    convention : str, optional
        ``"coordinate"`` (the default; the value of site ``(row, col)`` is
        ``lattice[row, col]``) or ``"natural"`` (the raster order of the
        printed matrix).  The aliases ``"c"``, ``"coord"`` and ``"n"`` are
        accepted.
    lattice_size : tuple of int, optional
        Expected ``(rows, cols)``.  A mismatch raises :class:`InvalidShape`.

    Notes
    -----
    Indexing (``cmap[row, col]``, slices included) always uses coordinate
    addressing, whichever convention the backing array is stored in.
    """

    def __init__(self, lattice, convention: str = "coordinate", lattice_size=None):
        values = np.asarray(lattice)
        if values.ndim != 2:
            raise InvalidShape(f"A coordinate map needs a 2-D array, got shape {values.shape}")
        if lattice_size is not None:
            size = as_lattice_size(lattice_size)
            if values.shape != tuple(size):
                raise InvalidShape(
                    f"Array of shape {values.shape} does not match lattice size {tuple(size)}"
                )
        self.lattice = values
        self.convention = normalise_convention(convention)

    @property
    def size(self) -> LatticeSize:
        return LatticeSize(*self.lattice.shape)

    def coordinate_values(self) -> np.ndarray:
        """View of the values in coordinate addressing."""
        if self.convention == "coordinate":
            return self.lattice
        return np.flipud(self.lattice)

    def natural_values(self) -> np.ndarray:
        """View of the values in natural (raster) addressing."""
        if self.convention == "natural":
            return self.lattice
        return np.flipud(self.lattice)

    def site_values(self) -> np.ndarray:
        """Values as a flat array ordered by linear site index."""
        return self.coordinate_values().reshape(-1)

    def as_convention(self, target: str) -> "CoordinateMap":
        """Return a new map holding the same site values stored in ``target``."""
        target = normalise_convention(target)
        if target == "coordinate":
            return CoordinateMap(self.coordinate_values().copy(), "coordinate")
        return CoordinateMap(self.natural_values().copy(), "natural")

    def __getitem__(self, key):
        return self.coordinate_values()[key]

    def __setitem__(self, key, value):
        self.coordinate_values()[key] = value

    def __eq__(self, other):
        if not isinstance(other, CoordinateMap):
            return NotImplemented
        return self.size == other.size and np.array_equal(
            self.coordinate_values(), other.coordinate_values()
        )

    __hash__ = None

    def __repr__(self):
        return (
            f"CoordinateMap(size={tuple(self.size)}, convention='{self.convention}', "
            f"dtype={self.lattice.dtype})"
        )


def convention(cmap: CoordinateMap, target: str) -> CoordinateMap:
    """Re-express ``cmap`` in the ``target`` convention (pure reindexing)."""

    return cmap.as_convention(target)


def as_coordinate_map(values, convention: Optional[str] = None, lattice_size=None) -> CoordinateMap:
    """Wrap ``values`` into a :class:`CoordinateMap` unless it already is one."""

    if isinstance(values, CoordinateMap):
        if lattice_size is not None and values.size != as_lattice_size(lattice_size):
            raise ShapeMismatch(
                f"Coordinate map of size {tuple(values.size)} does not match "
                f"lattice size {tuple(lattice_size)}"
            )
        return values
    if convention is None:
        convention = "coordinate"
    return CoordinateMap(values, convention, lattice_size=lattice_size)


@dataclass(frozen=True)
class Bond:
    """Nearest-neighbour bond from site ``start`` to site ``end``.

    ``axis`` is ``"x"`` for horizontal and ``"y"`` for vertical bonds; the
    displacement from ``start`` to ``end`` is one lattice unit along it,
    also for wrap-around bonds.
    """

    start: int
    end: int
    axis: str
    wraps: bool = False

    @property
    def displacement(self) -> np.ndarray:
        return np.array([1.0, 0.0]) if self.axis == "x" else np.array([0.0, 1.0])


def lattice_bonds(size: Tuple[int, int], pbc: Tuple[bool, bool] = (False, False)) -> List[Bond]:
    """Enumerate the right and up bonds of every site.

    Parameters
    ----------
    size : tuple of int
        Lattice size ``(rows, cols)``.
    pbc : tuple of bool
        Periodic boundary conditions along the horizontal and vertical
        axis.  A periodic axis of two sites gets a wrap bond running back
        over the pair its regular bond already joins, and an axis of one
        site gets a self-bond (``start == end``).  The hoppings of such
        bonds add up.
    """

    size = as_lattice_size(size)
    wrap_x = bool(pbc[0])
    wrap_y = bool(pbc[1])
    bonds = []
    for row in range(size.rows):
        for col in range(size.cols):
            site = row * size.cols + col
            if col + 1 < size.cols:
                bonds.append(Bond(site, site + 1, "x"))
            elif wrap_x:
                bonds.append(Bond(site, row * size.cols, "x", wraps=True))
            if row + 1 < size.rows:
                bonds.append(Bond(site, site + size.cols, "y"))
            elif wrap_y:
                bonds.append(Bond(site, col, "y", wraps=True))
    return bonds


def remember_lattice_size(size: Tuple[int, int]) -> LatticeSize:
    """Record ``size`` as the default for later operations."""

    global _last_lattice_size
    _last_lattice_size = as_lattice_size(size)
    return _last_lattice_size


def last_lattice_size() -> Optional[LatticeSize]:
    return _last_lattice_size


def forget_lattice_size() -> None:
    global _last_lattice_size
    _last_lattice_size = None


def resolve_lattice_size(
    lattice_size=None,
    dim: Optional[int] = None,
    orbitals: int = ORBITALS_PER_SITE,
) -> LatticeSize:
    """Return the explicit or remembered lattice size.

    Parameters
    ----------
    lattice_size : tuple of int, optional
        Explicit size.  When omitted the size of the last built
        Hamiltonian is used.
    dim : int, optional
        Matrix dimension to check against ``orbitals * rows * cols``.
    orbitals : int
        Matrix rows per site.

    Raises
    ------
    MissingLatticeSize
        If no size is given and none was remembered.
    ShapeMismatch
        If ``dim`` does not fit the lattice size.
    """

    if lattice_size is None:
        if _last_lattice_size is None:
            raise MissingLatticeSize(
                "No lattice size given and no Hamiltonian has been built yet"
            )
        size = _last_lattice_size
    else:
        size = as_lattice_size(lattice_size)
    if dim is not None and dim != orbitals * size.sites:
        raise ShapeMismatch(
            f"Matrix dimension {dim} does not match a {size.rows}×{size.cols} lattice "
            f"({orbitals * size.sites} expected)"
        )
    return size
