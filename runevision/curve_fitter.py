"""Fits the rune's rotation angle over time and predicts future angles."""

from __future__ import annotations

import logging
import math
import threading
import time as _time
from collections import deque
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from typing import Optional

import numpy as np
from scipy.optimize import least_squares

from runevision.rune_model import Direction, MotionType, big_rune_curve, small_rune_curve

_log = logging.getLogger(__name__)

QUEUE_UPPER_LIMIT = 500
QUEUE_LOWER_LIMIT = 50
CAUCHY_SCALE = 0.5
STATIC_THRESHOLD = 2 * math.pi / 180

SMALL_INITIAL = (1.045, 0.0, 0.0, 0.0, 0.0)
BIG_INITIAL = (0.9125, 1.942, 2.090 - 0.9125, 0.0, 0.0)

_SMALL_BOUNDS = (
    np.array([1.045 * 0.5, -np.inf, -np.inf]),
    np.array([1.045 * 1.5, np.inf, np.inf]),
)
_BIG_BOUNDS = (
    np.array([0.780 * 0.5, 1.884 * 0.5, (2.090 - 1.045) * 0.5, -np.inf, -np.inf]),
    np.array([1.045 * 1.5, 2.000 * 1.5, (2.090 - 0.780) * 1.5, np.inf, np.inf]),
)


@dataclass(frozen=True)
class _Sample:
    time: float
    angle: float


def _fit(
    motion_type: MotionType,
    initial: tuple[float, ...],
    times: np.ndarray,
    angles: np.ndarray,
    direction: int,
) -> tuple[tuple[float, ...], float]:
    """Robustly fit one curve; return the five parameters and the final cost."""
    sign = float(direction)
    if motion_type is MotionType.BIG:
        lower, upper = _BIG_BOUNDS
        x0 = np.asarray(initial[:5], dtype=float)

        def residual(p: np.ndarray) -> np.ndarray:
            return angles - big_rune_curve(times, p[0], p[1], p[2], p[3], p[4], sign)

    else:
        lower, upper = _SMALL_BOUNDS
        x0 = np.asarray(initial[:3], dtype=float)

        def residual(p: np.ndarray) -> np.ndarray:
            return angles - small_rune_curve(times, p[0], p[1], p[2], sign)

    x0 = np.clip(x0, lower, upper)
    result = least_squares(
        residual, x0, bounds=(lower, upper), loss="cauchy", f_scale=CAUCHY_SCALE
    )
    params = list(initial)
    params[: result.x.size] = (float(v) for v in result.x)
    return tuple(params), float(result.cost)


class CurveFitter:
    """Collects ``(time, angle)`` samples and fits a small or big rune curve.

    Fitting runs in a background thread; the first fit is waited for so that a
    prediction is available as soon as enough samples have arrived.
    """

    def __init__(self, motion_type: MotionType = MotionType.UNKNOWN) -> None:
        self._type = motion_type
        self._is_static = False
        self._auto_type_determined = False
        self._direction = int(Direction.UNKNOWN)
        self._data: deque[_Sample] = deque()
        self._params: tuple[float, ...] = SMALL_INITIAL
        self._future: Optional[Future[None]] = None
        self._lock = threading.Lock()
        self._executor = ThreadPoolExecutor(max_workers=1)

    @property
    def type(self) -> MotionType:
        return self._type

    @property
    def direction(self) -> int:
        return self._direction

    @property
    def is_static(self) -> bool:
        return self._is_static

    @property
    def fitting_param(self) -> tuple[float, ...]:
        with self._lock:
            return self._params

    def close(self) -> None:
        """Wait for a running fit and stop the worker thread."""
        self._executor.shutdown(wait=True)

    def __enter__(self) -> CurveFitter:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def _wait(self) -> None:
        if self._future is not None:
            self._future.result()

    def _fit_double_curve(self, times: np.ndarray, angles: np.ndarray, direction: int) -> None:
        if self._is_static:
            # A static target is treated as a small rune.
            self._type = MotionType.SMALL
            return
        start = _time.perf_counter()
        with self._lock:
            current = self._params
        if self._type is MotionType.BIG:
            small_init, big_init = SMALL_INITIAL, current
        elif self._type is MotionType.SMALL:
            small_init, big_init = current, BIG_INITIAL
        else:
            small_init, big_init = SMALL_INITIAL, BIG_INITIAL

        small_params, small_cost = _fit(MotionType.SMALL, small_init, times, angles, direction)
        big_params, big_cost = _fit(MotionType.BIG, big_init, times, angles, direction)
        with self._lock:
            if small_cost < big_cost:
                self._params = small_params
                self._type = MotionType.SMALL
            else:
                self._params = big_params
                self._type = MotionType.BIG
        _log.debug("Fitting time: %d ms", (_time.perf_counter() - start) * 1000)

    def _fit_curve(self, times: np.ndarray, angles: np.ndarray, direction: int) -> None:
        if self._is_static:
            return
        motion_type = self._type
        if motion_type is MotionType.UNKNOWN:
            return
        start = _time.perf_counter()
        # Each fit starts from scratch with the default parameters.
        initial = BIG_INITIAL if motion_type is MotionType.BIG else SMALL_INITIAL
        params, _ = _fit(motion_type, initial, times, angles, direction)
        with self._lock:
            self._params = params
        _log.debug("Fitting time: %d ms", (_time.perf_counter() - start) * 1000)

    def predict(self, time: float) -> float:
        """Angle predicted at ``time``; the last angle when the target is static."""
        if self._is_static:
            return self._data[-1].angle
        with self._lock:
            p = self._params
            motion_type = self._type
        if motion_type is MotionType.BIG:
            return float(big_rune_curve(time, p[0], p[1], p[2], p[3], p[4], self._direction))
        if motion_type is MotionType.SMALL:
            return float(small_rune_curve(time, p[0], p[1], p[2], self._direction))
        return 0.0

    def update(self, time: float, angle: float) -> None:
        """Add a sample and start a new fit when enough samples are held."""
        self._data.append(_Sample(time, angle))
        if len(self._data) < QUEUE_LOWER_LIMIT:
            return
        if len(self._data) > QUEUE_UPPER_LIMIT:
            self._data.popleft()

        angle_diff = self._data[-1].angle - self._data[0].angle
        if abs(angle_diff) < STATIC_THRESHOLD:
            self._is_static = True
            self._data.popleft()
        else:
            self._is_static = False

        self._direction = int(
            Direction.CLOCKWISE if angle_diff < 0 else Direction.ANTI_CLOCKWISE
        )

        if self._future is None:
            self._start_fitting()
            self._wait()
        elif self._future.done():
            self._start_fitting()
        else:
            _log.warning("Fitting is in progress, do not start a new fitting")

    def _start_fitting(self) -> None:
        times = np.array([s.time for s in self._data], dtype=float)
        angles = np.array([s.angle for s in self._data], dtype=float)
        task = self._fit_double_curve if self._auto_type_determined else self._fit_curve
        self._future = self._executor.submit(task, times, angles, self._direction)

    def reset(self) -> None:
        """Forget all samples and the motion type and direction."""
        if self._future is not None:
            self._wait()
            self._future = None
        self._type = MotionType.UNKNOWN
        self._direction = int(Direction.UNKNOWN)
        self._data.clear()

    def status_verified(self) -> bool:
        """True once type and direction are known and a fit has been started."""
        return not (
            self._type is MotionType.UNKNOWN
            or self._direction == Direction.UNKNOWN
            or self._future is None
        )

    def set_type(self, motion_type: MotionType) -> None:
        """Force the motion type; ignored when the type is determined automatically."""
        if self._type is motion_type or self._auto_type_determined:
            return
        self._wait()
        self._type = motion_type
        with self._lock:
            if motion_type is MotionType.BIG:
                self._params = BIG_INITIAL
            elif motion_type is MotionType.SMALL:
                self._params = SMALL_INITIAL

    def set_auto_type_determined(self, flag: bool) -> None:
        self._auto_type_determined = bool(flag)

    def debug_text(self) -> str:
        """Human-readable form of the fitted speed curve."""
        with self._lock:
            p = self._params
        if self._type is MotionType.BIG:
            a, omega, b, d = p[0], p[1], p[2], p[4]
            sign = "-" if self._direction == Direction.CLOCKWISE else " "
            d_sign = "+" if d > 0 else "-"
            b_sign = "+" if b > 0 else "-"
            return (
                f"V: {sign}( {a:.2f} sin( {omega:.2f} (x {d_sign} {abs(d):.2f}) ) "
                f"{b_sign} {abs(b):.2f} )"
            )
        if self._type is MotionType.SMALL:
            v = 0.0 if self._is_static else p[0]
            return f"V: {self._direction * v:.2f}"
        return "Unknown"