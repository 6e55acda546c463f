"""Rune geometry, motion curves and the identity motion model of the rune centre."""

from __future__ import annotations

import math
from enum import Enum, IntEnum
from typing import Sequence

import numpy as np

DEG_72 = 0.4 * math.pi
ARMOR_KEYPOINTS_NUM = 4
KEYPOINTS_NUM = 5

# Rune arm length in metres.
ARM_LENGTH = 0.700

# Acceptable distance between robot and rune in metres (true value about 6.436 m).
MIN_RUNE_DISTANCE = 4.0
MAX_RUNE_DISTANCE = 9.0

# Object points in metres: r_tag, bottom_left, top_left, top_right, bottom_right.
RUNE_OBJECT_POINTS: tuple[tuple[float, float, float], ...] = tuple(
    (x / 1000, y / 1000, z / 1000)
    for x, y, z in (
        (0.0, 0.0, 0.0),
        (0.0, -541.5, 186.0),
        (0.0, -858.5, 160.0),
        (0.0, -858.5, -160.0),
        (0.0, -541.5, -186.0),
    )
)

# Dimensions of the rune-centre filter: state and measurement are x, y, z, yaw.
X_N = 4
Z_N = 4


class MotionType(Enum):
    """Kind of rune motion: constant speed (small) or sinusoidal speed (big)."""

    SMALL = 0
    BIG = 1
    UNKNOWN = 2


class Direction(IntEnum):
    """Sense of rotation as seen by the camera."""

    CLOCKWISE = -1
    ANTI_CLOCKWISE = 1
    UNKNOWN = 0


def big_rune_curve(x, a, omega, b, c, d, sign):
    """Angle of a big rune: the integral of ``a*sin(omega*(x+d)) + b``, signed."""
    return (-(a / omega * np.cos(omega * (x + d))) + b * (x + d) + c) * sign


def small_rune_curve(x, a, b, c, sign):
    """Angle of a small rune turning at constant speed ``a``, signed."""
    return (a * (x + b) + c) * sign


def predict_state(x: Sequence[float]) -> np.ndarray:
    """Process model of the rune centre: the state stays where it is."""
    return np.array(x, dtype=float).reshape(X_N)


def measure_state(x: Sequence[float]) -> np.ndarray:
    """Observation model of the rune centre: the state is measured directly."""
    return np.array(x, dtype=float).reshape(Z_N)