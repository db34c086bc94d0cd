"""Exceptions raised by :mod:`topological_markers`."""

from __future__ import annotations


class TopologicalMarkersError(Exception):
    """Base class for all errors raised by the package."""


class InvalidShape(TopologicalMarkersError, ValueError):
    """A lattice or matrix has dimensions that do not fit the request."""


class ShapeMismatch(InvalidShape):
    """A matrix does not match the lattice size or another matrix."""


class MissingLatticeSize(TopologicalMarkersError, ValueError):
    """No lattice size was supplied and none was remembered."""


class TypeMismatch(TopologicalMarkersError, TypeError):
    """A callable or label produced a value of the wrong kind."""


class ConvergenceFailure(TopologicalMarkersError, RuntimeError):
    """The eigen-decomposition did not converge."""
