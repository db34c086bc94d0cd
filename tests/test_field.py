"""Unit tests for the Peierls phase and the gauge-field constructors."""

import numpy as np
import pytest

from topological_markers.errors import TypeMismatch
from topological_markers.field import (
    flux_quantum,
    landau_gauge,
    peierls_phase,
    symmetric_gauge,
)

PLAQUETTE = [(0.0, 0.0), (1.0, 0.0), (1.0, 1.0), (0.0, 1.0), (0.0, 0.0)]


def circulation(potential, corners, intervals=10):
    """Sum of the Peierls phases around a closed path."""
    return sum(
        peierls_phase(potential, a, b, intervals) for a, b in zip(corners[:-1], corners[1:])
    )


class TestPeierlsPhase:
    """Tests for the phase quadrature."""

    def test_landau_phases(self):
        B = 0.3
        A = landau_gauge(B)
        assert peierls_phase(A, (2.0, 1.0), (3.0, 1.0)) == pytest.approx(0.0)
        assert peierls_phase(A, (2.0, 1.0), (2.0, 2.0)) == pytest.approx(2 * np.pi * B * 2.0)

    def test_reversed_bond_flips_sign(self):
        A = symmetric_gauge(0.2, center=(1.0, -1.0))
        forward = peierls_phase(A, (0.0, 0.0), (1.0, 0.0))
        backward = peierls_phase(A, (1.0, 0.0), (0.0, 0.0))
        assert backward == pytest.approx(-forward)

    def test_constant_potential(self):
        A = lambda r: np.array([0.25, -0.5])
        for intervals in (1, 3, 10):
            assert peierls_phase(A, (0, 0), (1, 1), intervals) == pytest.approx(2 * np.pi * -0.25)

    @pytest.mark.parametrize("gauge", [landau_gauge, symmetric_gauge])
    def test_plaquette_flux(self, gauge):
        B = 0.07
        assert circulation(gauge(B), PLAQUETTE) == pytest.approx(2 * np.pi * B)

    def test_flux_quantum_circulation(self):
        A = flux_quantum(0.5, point=(0.5, 0.5))
        assert circulation(A, PLAQUETTE, intervals=400) == pytest.approx(np.pi, rel=1e-4)

    def test_flux_quantum_outside_loop(self):
        A = flux_quantum(1.0, point=(3.5, 3.5))
        assert circulation(A, PLAQUETTE, intervals=400) == pytest.approx(0.0, abs=1e-6)

    def test_flux_quantum_is_zero_at_point(self):
        assert np.array_equal(flux_quantum(1.0, (2.0, 3.0))(np.array([2.0, 3.0])), [0.0, 0.0])

    def test_three_component_potential(self):
        B = 0.1
        A3 = lambda r: [0.0, r[0] * B, 0.0]
        assert peierls_phase(A3, (3.0, 0.0), (3.0, 1.0)) == pytest.approx(
            peierls_phase(landau_gauge(B), (3.0, 0.0), (3.0, 1.0))
        )

    @pytest.mark.parametrize("bad", [
        lambda r: 1.0,
        lambda r: [1.0, 2.0, 3.0, 4.0],
        lambda r: "ab",
        lambda r: np.zeros((2, 2)),
    ])
    def test_non_vector_potential(self, bad):
        with pytest.raises(TypeMismatch):
            peierls_phase(bad, (0, 0), (1, 0))

    def test_intervals_must_be_positive(self):
        with pytest.raises(ValueError):
            peierls_phase(landau_gauge(1.0), (0, 0), (1, 0), intervals=0)


def test_symmetric_center_shift_is_constant():
    """Moving the symmetric-gauge centre adds a constant vector."""
    A0 = symmetric_gauge(0.4)
    A1 = symmetric_gauge(0.4, center=(2.0, -3.0))
    points = [np.array(p) for p in [(0.0, 0.0), (1.5, 2.0), (-3.0, 4.0)]]
    offsets = [A1(p) - A0(p) for p in points]
    for offset in offsets[1:]:
        assert np.allclose(offset, offsets[0])


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
