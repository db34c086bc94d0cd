"""Unit tests for the evolution operator cache and the evolution loop."""

import numpy as np
import pytest
from scipy.linalg import expm

import topological_markers.evolution as evolution
from topological_markers.errors import ShapeMismatch
from topological_markers.evolution import (
    DEFAULT_CACHE,
    DensitySpec,
    EvolutionCache,
    HamiltonianSpec,
    evolution_operator,
    run_evolution,
)
from topological_markers.field import symmetric_gauge
from topological_markers.hamiltonian import build_hamiltonian
from topological_markers.operators import currents, filled_projector


@pytest.fixture
def hamiltonian():
    m = np.ones((3, 3))
    m[1, 1] = -1.0
    return build_hamiltonian(m)


@pytest.fixture
def counting_expm(monkeypatch):
    """Replace the matrix exponential with a counting wrapper."""
    calls = []

    def wrapper(matrix):
        calls.append(matrix)
        return expm(matrix)

    monkeypatch.setattr(evolution, "expm", wrapper)
    return calls


class TestEvolutionOperator:
    """Tests for evolution_operator and EvolutionCache."""

    @pytest.mark.parametrize("t", [0.0, 0.5, 5.0, -2.0])
    def test_unitary(self, hamiltonian, t):
        U = evolution_operator(hamiltonian, t)
        assert np.allclose(U @ U.conj().T, np.eye(U.shape[0]), atol=1e-10)

    def test_matches_exponential(self, hamiltonian):
        U = evolution_operator(hamiltonian, 1.3)
        assert np.allclose(U, expm(-1j * 1.3 * np.asarray(hamiltonian)))

    def test_second_call_is_cached(self, hamiltonian, counting_expm):
        U1 = evolution_operator(hamiltonian, 5.0)
        U2 = evolution_operator(hamiltonian, 5.0)
        assert len(counting_expm) == 1
        assert U2 is U1
        assert np.array_equal(U1, U2)
        assert DEFAULT_CACHE.hits == 1
        assert DEFAULT_CACHE.misses == 1

    def test_key_is_identity_and_time(self, hamiltonian, counting_expm):
        evolution_operator(hamiltonian, 5.0)
        evolution_operator(hamiltonian, 2.5)
        evolution_operator(hamiltonian.copy(), 5.0)
        assert len(counting_expm) == 3
        assert len(DEFAULT_CACHE) == 3
        assert (hamiltonian, 5.0) in DEFAULT_CACHE

    def test_result_is_read_only(self, hamiltonian):
        U = evolution_operator(hamiltonian, 1.0)
        with pytest.raises(ValueError):
            U[0, 0] = 0.0

    def test_private_cache(self, hamiltonian, counting_expm):
        cache = EvolutionCache()
        evolution_operator(hamiltonian, 1.0, cache=cache)
        evolution_operator(hamiltonian, 1.0, cache=cache)
        assert len(cache) == 1
        assert len(DEFAULT_CACHE) == 0
        cache.clear()
        assert len(cache) == 0
        evolution_operator(hamiltonian, 1.0, cache=cache)
        assert len(counting_expm) == 2


class TestRunEvolution:
    """Tests for run_evolution."""

    def test_static_hamiltonian_keeps_ground_state(self, hamiltonian):
        P0 = filled_projector(hamiltonian)
        frames = list(run_evolution([DensitySpec("P", P0)], [0.0, 1.0, 4.0], lambda t: hamiltonian))
        assert [frame.t for frame in frames] == [0.0, 1.0, 4.0]
        for frame in frames:
            assert np.allclose(frame.P, P0, atol=1e-9)

    def test_frame_fields(self, hamiltonian):
        P0 = filled_projector(hamiltonian)
        h = lambda t: hamiltonian
        frame = next(iter(run_evolution([HamiltonianSpec("H"), DensitySpec("P", P0)], [0.5], h)))
        assert frame._fields == ("t", "H", "P")
        assert frame.H is hamiltonian

    def test_piecewise_static_formula(self):
        m = np.ones((3, 3))
        P0 = filled_projector(build_hamiltonian(m))
        h = lambda t: build_hamiltonian(m, field=symmetric_gauge(0.05 * t, center=(1.0, 1.0)))
        specs = [HamiltonianSpec("H"), DensitySpec("P", P0)]
        for frame in run_evolution(specs, [0.5, 1.0, 2.0], h):
            U = expm(-1j * frame.t * np.asarray(frame.H))
            assert np.allclose(frame.P, U @ P0 @ U.conj().T, atol=1e-10)
            assert np.allclose(frame.P, frame.P.conj().T, atol=1e-10)
            assert np.allclose(frame.P @ frame.P, frame.P, atol=1e-9)
            assert currents(frame.H, frame.P).shape == (9, 9)

    def test_lazy_and_one_hamiltonian_per_frame(self, hamiltonian):
        calls = []

        def h(t):
            calls.append(t)
            return hamiltonian

        P0 = filled_projector(hamiltonian)
        frames = run_evolution([HamiltonianSpec("H"), DensitySpec("P", P0)], [0.0, 1.0, 2.0], h)
        assert calls == []
        next(frames)
        assert calls == [0.0]
        list(frames)
        assert calls == [0.0, 1.0, 2.0]

    def test_specifier_functions(self, hamiltonian):
        other = build_hamiltonian(np.full((3, 3), 3.0))
        P0 = filled_projector(hamiltonian)
        specs = [
            HamiltonianSpec("H"),
            HamiltonianSpec("H_other", lambda t: other),
            DensitySpec("P", P0, lambda t: other),
        ]
        frame = next(iter(run_evolution(specs, [1.0], lambda t: hamiltonian)))
        assert frame.H is hamiltonian
        assert frame.H_other is other
        U = evolution_operator(other, 1.0)
        assert np.allclose(frame.P, U @ P0 @ U.conj().T)

    def test_static_hamiltonian_uses_cache(self, hamiltonian, counting_expm):
        P0 = filled_projector(hamiltonian)
        specs = [DensitySpec("P", P0), DensitySpec("Q", np.eye(18) - P0)]
        list(run_evolution(specs, [1.0, 2.0], lambda t: hamiltonian))
        list(run_evolution(specs, [1.0, 2.0], lambda t: hamiltonian))
        assert len(counting_expm) == 2

    def test_non_increasing_times_warn(self, hamiltonian):
        frames = run_evolution([HamiltonianSpec("H")], [1.0, 0.5], lambda t: hamiltonian)
        with pytest.warns(RuntimeWarning):
            list(frames)

    @pytest.mark.parametrize("names", [("P", "P"), ("t",), ("not valid",)])
    def test_invalid_names(self, hamiltonian, names):
        specs = [HamiltonianSpec(name) for name in names]
        with pytest.raises(ValueError):
            run_evolution(specs, [0.0], lambda t: hamiltonian)

    def test_missing_hamiltonian_function(self, hamiltonian):
        with pytest.raises(ValueError):
            run_evolution([DensitySpec("P", np.eye(18))], [0.0])

    def test_non_square_initial(self, hamiltonian):
        with pytest.raises(ShapeMismatch):
            run_evolution([DensitySpec("P", np.zeros((18, 4)))], [0.0], lambda t: hamiltonian)

    def test_size_disagreement(self, hamiltonian):
        frames = run_evolution([DensitySpec("P", np.eye(8))], [0.0], lambda t: hamiltonian)
        with pytest.raises(ShapeMismatch):
            next(frames)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
