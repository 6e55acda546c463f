import math

import numpy as np
import pytest

from runevision.geometry import (
    EulerOrder,
    axis_angle_matrix,
    euler_to_matrix,
    get_rpy,
    matrix_to_euler,
    normalize_angle,
    normalize_angle_positive,
    rodrigues,
    rpy_from_matrix,
    shortest_angular_distance,
)

AXES = {
    EulerOrder.XYZ: (0, 1, 2),
    EulerOrder.XZY: (0, 2, 1),
    EulerOrder.YXZ: (1, 0, 2),
    EulerOrder.YZX: (1, 2, 0),
    EulerOrder.ZXY: (2, 0, 1),
    EulerOrder.ZYX: (2, 1, 0),
}
UNIT = np.eye(3)
ANGLE_SETS = [(0.4, -0.3, 0.7), (-0.5, 0.2, 1.1), (2.0, 0.1, -2.5)]


def _compose(axes, angles):
    result = np.eye(3)
    for axis, angle in zip(axes, angles):
        result = result @ axis_angle_matrix(UNIT[axis], angle)
    return result


@pytest.mark.parametrize("order", list(EulerOrder))
def test_euler_to_matrix_is_rotation(order):
    mat = euler_to_matrix([0.3, -0.7, 1.2], order)
    assert np.allclose(mat @ mat.T, np.eye(3))
    assert np.isclose(np.linalg.det(mat), 1.0)


def test_euler_to_matrix_xyz_order():
    roll, pitch, yaw = 0.2, -0.4, 0.9
    expected = (
        axis_angle_matrix(UNIT[2], yaw)
        @ axis_angle_matrix(UNIT[1], pitch)
        @ axis_angle_matrix(UNIT[0], roll)
    )
    assert np.allclose(euler_to_matrix([roll, pitch, yaw], EulerOrder.XYZ), expected)


@pytest.mark.parametrize("order", list(EulerOrder))
@pytest.mark.parametrize("angles", ANGLE_SETS)
def test_matrix_to_euler_reconstructs(order, angles):
    axes = AXES[order]
    mat = _compose(axes, angles)
    result = matrix_to_euler(mat, order)
    assert np.allclose(_compose(axes, result), mat)
    assert 0.0 <= result[0] <= math.pi


@pytest.mark.parametrize("angles", ANGLE_SETS[:2])
def test_rpy_from_matrix_round_trip(angles):
    mat = euler_to_matrix(angles, EulerOrder.XYZ)
    assert np.allclose(rpy_from_matrix(mat), angles)


def test_rpy_from_matrix_gimbal_lock():
    mat = euler_to_matrix([0.0, math.pi / 2, 0.0])
    mat[2, 0] = -1.0
    roll, pitch, yaw = rpy_from_matrix(mat)
    assert pitch == math.pi / 2
    assert yaw == 0.0


@pytest.mark.parametrize("angles", ANGLE_SETS[:2])
def test_get_rpy_of_transpose_is_negated_angles(angles):
    mat = euler_to_matrix(angles, EulerOrder.XYZ)
    assert np.allclose(get_rpy(mat.T), -np.array(angles))


def test_axis_angle_normalises_axis():
    assert np.allclose(axis_angle_matrix([0, 0, 5], 0.3), axis_angle_matrix([0, 0, 1], 0.3))


def test_axis_angle_zero_axis_rejected():
    with pytest.raises(ValueError):
        axis_angle_matrix([0, 0, 0], 1.0)


def test_rodrigues_round_trip():
    rvec = np.array([0.1, -0.4, 0.8])
    mat = rodrigues(rvec)
    assert np.allclose(mat, axis_angle_matrix(rvec, np.linalg.norm(rvec)))
    assert np.allclose(rodrigues(mat), rvec)


def test_rodrigues_zero_is_identity():
    assert np.allclose(rodrigues(np.zeros(3)), np.eye(3))


def test_rodrigues_bad_shape():
    with pytest.raises(ValueError):
        rodrigues(np.zeros(4))


def test_normalize_angle_positive_range():
    for angle in (-7.0, -math.pi / 2, 0.0, 3.0, 13.0):
        result = normalize_angle_positive(angle)
        assert 0.0 <= result < 2 * math.pi
        assert math.isclose(math.cos(result), math.cos(angle), abs_tol=1e-12)
        assert math.isclose(math.sin(result), math.sin(angle), abs_tol=1e-12)


def test_normalize_angle_range():
    for angle in (-7.0, 4.0, 3 * math.pi / 2, 10.0):
        result = normalize_angle(angle)
        assert -math.pi < result <= math.pi
        assert math.isclose(math.sin(result), math.sin(angle), abs_tol=1e-12)


def test_normalize_angle_wraps_three_quarter_turn():
    assert math.isclose(normalize_angle(3 * math.pi / 2), -math.pi / 2)


def test_shortest_angular_distance_crosses_zero():
    assert math.isclose(shortest_angular_distance(0.1, 2 * math.pi), -0.1)
    assert math.isclose(shortest_angular_distance(2 * math.pi - 0.1, 0.1), 0.2)