import numpy as np
import pytest

from runevision.particle_filter import ParticleFilter


def _identity(x):
    return np.asarray(x, dtype=float).copy()


def _make(q, r, num=200, seed=0):
    holder = {"q": np.asarray(q, dtype=float), "r": np.asarray(r, dtype=float)}
    pf = ParticleFilter(
        _identity,
        _identity,
        lambda: holder["q"],
        lambda z: holder["r"],
        num,
        rng=np.random.default_rng(seed),
    )
    return pf, holder


def test_init_without_noise_places_all_particles_on_state():
    pf, _ = _make(np.zeros((2, 2)), np.eye(2), num=10)
    pf.init_state([1.5, -0.5])
    assert np.allclose(pf.particles, np.array([[1.5] * 10, [-0.5] * 10]))
    assert np.isclose(pf.weights.sum(), 1.0)
    assert np.allclose(pf.predict(), [1.5, -0.5])


def test_predict_applies_process_to_every_particle():
    q = np.zeros((1, 1))
    pf = ParticleFilter(
        lambda x: np.asarray(x) + 1.0, _identity, lambda: q, lambda z: np.eye(1), 5,
        rng=np.random.default_rng(1),
    )
    pf.init_state([2.0])
    estimate = pf.predict()
    assert np.allclose(pf.particles, 3.0)
    assert np.allclose(estimate, [3.0])


def test_set_dim_with_zero_spread_sets_row():
    pf, _ = _make(np.zeros((2, 2)), np.eye(2), num=8)
    pf.init_state([0.0, 0.0])
    pf.set_dim(1, 4.0)
    assert np.allclose(pf.particles[1], 4.0)
    assert np.allclose(pf.particles[0], 0.0)


def test_init_noise_spreads_particles():
    pf, _ = _make(np.eye(2), np.eye(2), num=500)
    pf.init_state([0.0, 0.0])
    spread = pf.particles.std(axis=1)
    assert np.all(spread > 0.5)
    assert np.all(spread < 1.5)


def test_update_moves_estimate_toward_measurement():
    pf, _ = _make(np.eye(1), np.eye(1), num=2000, seed=3)
    pf.init_state([0.0])
    prior = pf.predict()
    estimate = pf.update([1.0])
    assert abs(estimate[0] - 1.0) < abs(prior[0] - 1.0)
    assert np.isclose(pf.weights.sum(), 1.0)


def test_resampling_without_noise_keeps_existing_particles():
    pf, holder = _make(np.eye(1), 0.01 * np.eye(1), num=300, seed=5)
    pf.init_state([0.0])
    before = set(np.round(pf.particles[0], 12))
    holder["q"] = np.zeros((1, 1))
    pf.update([1.0])
    after = np.round(pf.particles[0], 12)
    assert set(after) <= before
    assert np.allclose(pf.weights, 1.0 / 300)


def test_update_fails_when_weights_vanish():
    pf, _ = _make(np.zeros((1, 1)), np.eye(1), num=4)
    pf.init_state([0.0])
    with pytest.raises(ValueError):
        pf.update([1e6])


def test_zero_particles_rejected():
    with pytest.raises(ValueError):
        ParticleFilter(_identity, _identity, lambda: np.eye(1), lambda z: np.eye(1), 0)


def test_init_state_wrong_size_rejected():
    pf, _ = _make(np.eye(2), np.eye(2))
    with pytest.raises(ValueError):
        pf.init_state([1.0, 2.0, 3.0])