"""Particle filter with Gaussian likelihood weighting and resampling."""

from __future__ import annotations

import math
from typing import Callable, Optional

import numpy as np

VectorFunc = Callable[[np.ndarray], np.ndarray]
UpdateQFunc = Callable[[], np.ndarray]
UpdateRFunc = Callable[[np.ndarray], np.ndarray]


def _gaussian_likelihood(x: np.ndarray, mean: np.ndarray, cov: np.ndarray) -> float:
    """Density of ``x`` under a Gaussian with the given mean and covariance."""
    diff = x - mean
    exponent = -0.5 * float(diff @ np.linalg.solve(cov, diff))
    norm = math.sqrt((2 * math.pi) ** diff.size * float(np.linalg.det(cov)))
    return math.exp(exponent) / norm


class ParticleFilter:
    """Particle filter over ``num_particles`` particles.

    The diagonal of the process covariance is used as the standard deviation
    of the independent noise added to each state dimension.
    """

    def __init__(
        self,
        f: VectorFunc,
        h: VectorFunc,
        update_q: UpdateQFunc,
        update_r: UpdateRFunc,
        num_particles: int,
        *,
        rng: Optional[np.random.Generator] = None,
    ) -> None:
        if num_particles < 1:
            raise ValueError("num_particles must be at least 1")
        self.f = f
        self.h = h
        self.update_q = update_q
        self.update_r = update_r
        self.num_particles = num_particles
        self.rng = rng if rng is not None else np.random.default_rng()
        self.state_dim = np.asarray(update_q()).shape[0]
        self._particles = np.zeros((self.state_dim, num_particles))
        self._weights = np.zeros(num_particles)

    @property
    def particles(self) -> np.ndarray:
        """Particles as columns of a ``(state_dim, num_particles)`` array."""
        return self._particles.copy()

    @property
    def weights(self) -> np.ndarray:
        return self._weights.copy()

    def _noise(self, cov: np.ndarray) -> np.ndarray:
        std = np.diag(np.asarray(cov, dtype=float))
        return self.rng.normal(0.0, std[:, None], size=(self.state_dim, self.num_particles))

    def init_state(self, x0: np.ndarray) -> None:
        """Scatter the particles around ``x0`` and give them equal weights."""
        x0 = np.asarray(x0, dtype=float).reshape(-1)
        if x0.size != self.state_dim:
            raise ValueError(f"state must have {self.state_dim} elements, got {x0.size}")
        self._particles = x0[:, None] + self._noise(self.update_q())
        self._weights = np.full(self.num_particles, 1.0 / self.num_particles)

    def set_dim(self, dim: int, value: float) -> None:
        """Redraw one dimension of every particle around ``value``."""
        std = float(np.asarray(self.update_q(), dtype=float)[dim, dim])
        self._particles[dim, :] = self.rng.normal(value, std, size=self.num_particles)

    def predict(self) -> np.ndarray:
        """Move every particle through ``f`` and return the weighted mean."""
        self._particles = np.column_stack(
            [np.asarray(self.f(column), dtype=float) for column in self._particles.T]
        )
        return self._particles @ self._weights

    def update(self, z: np.ndarray) -> np.ndarray:
        """Reweight the particles by measurement ``z`` and return the weighted mean.

        Resamples when fewer than half the particles are effective.
        """
        z = np.asarray(z, dtype=float).reshape(-1)
        cov = np.asarray(self.update_r(z), dtype=float)
        likelihoods = np.array(
            [
                _gaussian_likelihood(z, np.asarray(self.h(column), dtype=float), cov)
                for column in self._particles.T
            ]
        )
        weighted = likelihoods * self._weights
        total = weighted.sum()
        if not np.isfinite(total) or total <= 0.0:
            raise ValueError("all particle weights vanished")
        self._weights = weighted / total
        estimate = self._particles @ self._weights

        n_eff = 1.0 / float(self._weights @ self._weights)
        if n_eff < self.num_particles * 0.5:
            self._resample()
        return estimate

    def _resample(self) -> None:
        noise = self._noise(self.update_q())
        indices = self.rng.choice(self.num_particles, size=self.num_particles, p=self._weights)
        new_particles = self._particles[:, indices].copy()
        seen: set[int] = set()
        for column, index in enumerate(indices):
            # Only duplicates are perturbed so the best particles survive unchanged.
            if index in seen:
                new_particles[:, column] += noise[:, column]
            seen.add(int(index))
        self._particles = new_particles
        self._weights = np.full(self.num_particles, 1.0 / self.num_particles)