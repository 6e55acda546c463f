"""Extended Kalman filter whose Jacobians come from numerical differentiation."""

from __future__ import annotations

from typing import Callable, Optional

import numpy as np

VectorFunc = Callable[[np.ndarray], np.ndarray]
JacobianFunc = Callable[[np.ndarray], np.ndarray]
UpdateQFunc = Callable[[], np.ndarray]
UpdateRFunc = Callable[[np.ndarray], np.ndarray]

_RELATIVE_STEP = 1e-6


def _numerical_jacobian(func: VectorFunc, x: np.ndarray) -> np.ndarray:
    """Central-difference Jacobian of ``func`` at ``x``."""
    columns = []
    for i, value in enumerate(x):
        step = _RELATIVE_STEP * max(1.0, abs(value))
        delta = np.zeros_like(x)
        delta[i] = step
        forward = np.asarray(func(x + delta), dtype=float)
        backward = np.asarray(func(x - delta), dtype=float)
        columns.append((forward - backward) / (2.0 * step))
    return np.column_stack(columns)


def _linearise(
    func: VectorFunc, jacobian: Optional[JacobianFunc], x: np.ndarray
) -> tuple[np.ndarray, np.ndarray]:
    value = np.asarray(func(x.copy()), dtype=float).reshape(-1)
    if jacobian is not None:
        jac = np.asarray(jacobian(x.copy()), dtype=float)
    else:
        jac = _numerical_jacobian(func, x)
    return value, jac.reshape(value.size, x.size)


class ExtendedKalmanFilter:
    """Extended Kalman filter for a nonlinear process ``f`` and observation ``h``.

    Jacobians are taken numerically unless explicit ones are supplied.
    """

    def __init__(
        self,
        f: VectorFunc,
        h: VectorFunc,
        update_q: UpdateQFunc,
        update_r: UpdateRFunc,
        p0: np.ndarray,
        *,
        f_jacobian: Optional[JacobianFunc] = None,
        h_jacobian: Optional[JacobianFunc] = None,
    ) -> None:
        p0 = np.array(p0, dtype=float)
        if p0.ndim != 2 or p0.shape[0] != p0.shape[1]:
            raise ValueError("initial covariance must be a square matrix")
        n = p0.shape[0]
        self.f = f
        self.h = h
        self.update_q = update_q
        self.update_r = update_r
        self.f_jacobian = f_jacobian
        self.h_jacobian = h_jacobian
        self.p_post = p0
        self.p_prior = p0.copy()
        self.x_prior = np.zeros(n)
        self.x_post = np.zeros(n)
        self.transition_jacobian = np.zeros((n, n))
        self.measurement_jacobian: Optional[np.ndarray] = None
        self.gain: Optional[np.ndarray] = None

    @property
    def dim(self) -> int:
        return self.x_post.size

    def set_state(self, x0: np.ndarray) -> None:
        """Set the posterior state."""
        x0 = np.array(x0, dtype=float).reshape(-1)
        if x0.size != self.dim:
            raise ValueError(f"state must have {self.dim} elements, got {x0.size}")
        self.x_post = x0

    def set_predict_func(self, f: VectorFunc) -> None:
        self.f = f

    def set_measure_func(self, h: VectorFunc) -> None:
        self.h = h

    def predict(self) -> np.ndarray:
        """Propagate the state through ``f`` and return the prior state."""
        x_prior, jac = _linearise(self.f, self.f_jacobian, self.x_post)
        self.transition_jacobian = jac
        q = np.asarray(self.update_q(), dtype=float)
        self.p_prior = jac @ self.p_post @ jac.T + q
        self.x_prior = x_prior
        self.x_post = x_prior.copy()
        return x_prior.copy()

    def update(self, z: np.ndarray) -> np.ndarray:
        """Correct the state with measurement ``z`` and return the posterior state."""
        z = np.asarray(z, dtype=float).reshape(-1)
        z_prior, jac = _linearise(self.h, self.h_jacobian, self.x_prior)
        if z.size != z_prior.size:
            raise ValueError(f"measurement must have {z_prior.size} elements, got {z.size}")
        self.measurement_jacobian = jac
        r = np.asarray(self.update_r(z), dtype=float)
        innovation_cov = jac @ self.p_prior @ jac.T + r
        gain = np.linalg.solve(innovation_cov.T, (self.p_prior @ jac.T).T).T
        self.gain = gain
        self.x_post = self.x_post + gain @ (z - z_prior)
        self.p_post = (np.eye(self.dim) - gain @ jac) @ self.p_prior
        return self.x_post.copy()