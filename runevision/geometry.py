"""Rotation and angle helpers: Euler angles, axis-angle and angle normalisation."""

from __future__ import annotations

import math
from enum import Enum
from typing import Sequence

import numpy as np
from scipy.spatial.transform import Rotation


class EulerOrder(Enum):
    XYZ = "XYZ"
    XZY = "XZY"
    YXZ = "YXZ"
    YZX = "YZX"
    ZXY = "ZXY"
    ZYX = "ZYX"


_EULER_AXES = {
    EulerOrder.XYZ: (0, 1, 2),
    EulerOrder.XZY: (0, 2, 1),
    EulerOrder.YXZ: (1, 0, 2),
    EulerOrder.YZX: (1, 2, 0),
    EulerOrder.ZXY: (2, 0, 1),
    EulerOrder.ZYX: (2, 1, 0),
}

_UNIT_AXES = np.eye(3)


def axis_angle_matrix(axis: Sequence[float], angle: float) -> np.ndarray:
    """Rotation matrix for ``angle`` radians about ``axis``."""
    axis = np.asarray(axis, dtype=float)
    norm = np.linalg.norm(axis)
    if norm == 0.0:
        raise ValueError("rotation axis must be non-zero")
    return Rotation.from_rotvec(axis / norm * angle).as_matrix()


def rodrigues(rvec: np.ndarray) -> np.ndarray:
    """Convert a rotation vector to a matrix, or a 3x3 matrix to a rotation vector."""
    value = np.asarray(rvec, dtype=float)
    if value.shape == (3, 3):
        return Rotation.from_matrix(value).as_rotvec()
    if value.size == 3:
        return Rotation.from_rotvec(value.reshape(3)).as_matrix()
    raise ValueError("expected a 3-vector or a 3x3 matrix")


def euler_to_matrix(
    euler: Sequence[float], order: EulerOrder = EulerOrder.XYZ
) -> np.ndarray:
    """Build a rotation from roll, pitch and yaw about X, Y and Z.

    ``XYZ`` applies roll first, then pitch, then yaw (``Rz @ Ry @ Rx``).
    """
    r = axis_angle_matrix(_UNIT_AXES[0], euler[0])
    p = axis_angle_matrix(_UNIT_AXES[1], euler[1])
    y = axis_angle_matrix(_UNIT_AXES[2], euler[2])
    products = {
        EulerOrder.XYZ: lambda: y @ p @ r,
        EulerOrder.XZY: lambda: p @ y @ r,
        EulerOrder.YXZ: lambda: y @ r @ p,
        EulerOrder.YZX: lambda: r @ y @ p,
        EulerOrder.ZXY: lambda: p @ r @ y,
        EulerOrder.ZYX: lambda: r @ p @ y,
    }
    return products[EulerOrder(order)]()


def matrix_to_euler(
    rotation: np.ndarray, order: EulerOrder = EulerOrder.XYZ
) -> np.ndarray:
    """Angles ``(e0, e1, e2)`` such that the rotation equals the product of rotations
    about the order's three axes, taken left to right; ``e0`` lies in ``[0, pi]``.
    """
    mat = np.asarray(rotation, dtype=float)
    a0, a1, _ = _EULER_AXES[EulerOrder(order)]
    odd = 0 if (a0 + 1) % 3 == a1 else 1
    i = a0
    j = (a0 + 1 + odd) % 3
    k = (a0 + 2 - odd) % 3

    res = np.zeros(3)
    res[0] = math.atan2(mat[j, k], mat[k, k])
    c2 = math.hypot(mat[i, i], mat[i, j])
    if (odd and res[0] < 0) or (not odd and res[0] > 0):
        res[0] += -math.pi if res[0] > 0 else math.pi
        res[1] = math.atan2(-mat[i, k], -c2)
    else:
        res[1] = math.atan2(-mat[i, k], c2)
    s1 = math.sin(res[0])
    c1 = math.cos(res[0])
    res[2] = math.atan2(s1 * mat[k, i] - c1 * mat[j, i], c1 * mat[j, j] - s1 * mat[k, j])
    return res if odd else -res


def get_rpy(rotation: np.ndarray) -> np.ndarray:
    """Negated ``(roll, pitch, yaw)`` read from the transpose convention of ``rotation``."""
    mat = np.asarray(rotation, dtype=float)
    yaw = math.atan2(mat[0, 1], mat[0, 0])
    c2 = math.hypot(mat[2, 2], mat[1, 2])
    pitch = math.atan2(-mat[0, 2], c2)
    s1 = math.sin(yaw)
    c1 = math.cos(yaw)
    roll = math.atan2(s1 * mat[2, 0] - c1 * mat[2, 1], c1 * mat[1, 1] - s1 * mat[1, 0])
    return -np.array([roll, pitch, yaw])


def rpy_from_matrix(rotation: np.ndarray) -> tuple[float, float, float]:
    """``(roll, pitch, yaw)`` with ``rotation = Rz(yaw) @ Ry(pitch) @ Rx(roll)``."""
    mat = np.asarray(rotation, dtype=float)
    if abs(mat[2, 0]) >= 1:
        delta = math.atan2(mat[2, 1], mat[2, 2])
        pitch = math.pi / 2 if mat[2, 0] < 0 else -math.pi / 2
        return delta, pitch, 0.0
    pitch = -math.asin(mat[2, 0])
    cp = math.cos(pitch)
    roll = math.atan2(mat[2, 1] / cp, mat[2, 2] / cp)
    yaw = math.atan2(mat[1, 0] / cp, mat[0, 0] / cp)
    return roll, pitch, yaw


def normalize_angle_positive(angle: float) -> float:
    """Map ``angle`` into ``[0, 2*pi)``."""
    two_pi = 2.0 * math.pi
    return math.fmod(math.fmod(angle, two_pi) + two_pi, two_pi)


def normalize_angle(angle: float) -> float:
    """Map ``angle`` into ``(-pi, pi]``."""
    a = normalize_angle_positive(angle)
    if a > math.pi:
        a -= 2.0 * math.pi
    return a


def shortest_angular_distance(start: float, end: float) -> float:
    """Signed smallest rotation taking ``start`` to ``end``."""
    return normalize_angle(end - start)