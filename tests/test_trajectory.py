import math

import pytest

from runevision.trajectory import (
    IdealCompensator,
    ResistanceCompensator,
    create_compensator,
)


def test_factory_builds_with_defaults():
    ideal = create_compensator("ideal")
    resistance = create_compensator("resistance")
    assert isinstance(ideal, IdealCompensator)
    assert isinstance(resistance, ResistanceCompensator)
    assert (ideal.velocity, ideal.iteration_times, ideal.gravity, ideal.resistance) == (
        15.0,
        20,
        9.8,
        0.01,
    )


def test_factory_rejects_unknown_kind():
    with pytest.raises(ValueError):
        create_compensator("magic")


@pytest.mark.parametrize("cls", [IdealCompensator, ResistanceCompensator])
def test_trajectory_starts_at_origin(cls):
    assert cls().calculate_trajectory(0.0, 0.3) == pytest.approx(0.0)


@pytest.mark.parametrize("cls", [IdealCompensator, ResistanceCompensator])
def test_compensated_pitch_hits_target(cls):
    comp = cls(velocity=28.0)
    target = (5.0, 1.0, 1.0)
    pitch = comp.compensate(target)
    assert pitch is not None
    distance = math.hypot(5.0, 1.0)
    assert comp.calculate_trajectory(distance, pitch) == pytest.approx(1.0, abs=0.01)
    assert pitch > math.atan2(1.0, distance)


def test_without_gravity_pitch_is_line_of_sight():
    comp = IdealCompensator(gravity=0.0)
    pitch = comp.compensate((6.0, 0.0, 2.0))
    assert pitch == pytest.approx(math.atan2(2.0, 6.0))


def test_zero_iterations_returns_direct_angle():
    comp = IdealCompensator(iteration_times=0)
    assert comp.compensate((3.0, 4.0, 1.0)) == pytest.approx(math.atan2(1.0, 5.0))


def test_unreachable_target_fails():
    assert IdealCompensator().compensate((1000.0, 0.0, 0.0)) is None


def test_too_steep_target_fails():
    assert IdealCompensator().compensate((1.0, 0.0, 10.0)) is None


def test_flying_time_scales_inversely_with_velocity():
    target = (6.0, 2.0, 1.0)
    slow = IdealCompensator(velocity=10.0).get_flying_time(target)
    fast = IdealCompensator(velocity=20.0).get_flying_time(target)
    assert slow == pytest.approx(2 * fast)


def test_resistance_slows_projectile():
    target = (8.0, 0.0, 0.5)
    ideal = IdealCompensator().get_flying_time(target)
    drag = ResistanceCompensator(resistance=0.1).get_flying_time(target)
    assert drag > ideal


def test_resistance_is_clamped_from_below():
    target = (7.0, 1.0, 0.5)
    zero = ResistanceCompensator(resistance=0.0)
    floor = ResistanceCompensator(resistance=1e-4)
    assert zero.get_flying_time(target) == floor.get_flying_time(target)
    assert zero.calculate_trajectory(3.0, 0.2) == floor.calculate_trajectory(3.0, 0.2)


def test_get_trajectory_samples():
    comp = IdealCompensator()
    points = comp.get_trajectory(1.0, 0.1)
    assert points[0] == (0.0, 0.0)
    assert all(x < 1.0 for x, _ in points)
    steps = [b[0] - a[0] for a, b in zip(points, points[1:])]
    assert all(step == pytest.approx(0.03) for step in steps)
    assert points[-1][0] + 0.03 >= 1.0 - 1e-9


def test_get_trajectory_negative_distance_is_empty():
    assert IdealCompensator().get_trajectory(-1.0, 0.2) == []