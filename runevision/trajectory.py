"""Ballistic compensation of the gimbal pitch for a projectile."""

from __future__ import annotations

import math
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional, Sequence

_MAX_ANGLE = math.pi / 2.5
_HEIGHT_TOLERANCE = 0.01
_TRAJECTORY_STEP = 0.03
_MIN_RESISTANCE = 1e-4


def _horizontal_distance(target: Sequence[float]) -> float:
    return math.sqrt(target[0] * target[0] + target[1] * target[1])


@dataclass
class TrajectoryCompensator(ABC):
    """Iteratively finds the pitch that makes the projectile hit the target height."""

    velocity: float = 15.0
    iteration_times: int = 20
    gravity: float = 9.8
    resistance: float = 0.01

    def compensate(self, target_position: Sequence[float]) -> Optional[float]:
        """Return the pitch that hits ``target_position``, or ``None`` if none is found."""
        target_height = target_position[2]
        iterative_height = target_height
        distance = _horizontal_distance(target_position)
        angle = math.atan2(target_height, distance)
        dh = 0.0
        for _ in range(self.iteration_times):
            angle = math.atan2(iterative_height, distance)
            if abs(angle) > _MAX_ANGLE:
                break
            impact_height = self.calculate_trajectory(distance, angle)
            dh = target_height - impact_height
            if abs(dh) < _HEIGHT_TOLERANCE:
                break
            iterative_height += dh
        if abs(dh) > _HEIGHT_TOLERANCE or abs(angle) > _MAX_ANGLE:
            return None
        return angle

    def get_trajectory(self, distance: float, angle: float) -> list[tuple[float, float]]:
        """Sample the trajectory every 3 cm up to ``distance``."""
        trajectory: list[tuple[float, float]] = []
        x = 0.0
        while x < distance:
            trajectory.append((x, self.calculate_trajectory(x, angle)))
            x += _TRAJECTORY_STEP
        return trajectory

    @abstractmethod
    def get_flying_time(self, target_position: Sequence[float]) -> float:
        """Time for the projectile to reach the target's horizontal distance."""

    @abstractmethod
    def calculate_trajectory(self, x: float, angle: float) -> float:
        """Height of the projectile after travelling ``x`` horizontally."""


class IdealCompensator(TrajectoryCompensator):
    """Compensator ignoring air resistance."""

    def calculate_trajectory(self, x: float, angle: float) -> float:
        t = x / (self.velocity * math.cos(angle))
        return self.velocity * math.sin(angle) * t - 0.5 * self.gravity * t * t

    def get_flying_time(self, target_position: Sequence[float]) -> float:
        distance = _horizontal_distance(target_position)
        angle = math.atan2(target_position[2], distance)
        return distance / (self.velocity * math.cos(angle))


class ResistanceCompensator(TrajectoryCompensator):
    """Compensator with a first-order air resistance model."""

    def _r(self) -> float:
        return _MIN_RESISTANCE if self.resistance < _MIN_RESISTANCE else self.resistance

    def calculate_trajectory(self, x: float, angle: float) -> float:
        r = self._r()
        t = (math.exp(r * x) - 1) / (r * self.velocity * math.cos(angle))
        return self.velocity * math.sin(angle) * t - 0.5 * self.gravity * t * t

    def get_flying_time(self, target_position: Sequence[float]) -> float:
        r = self._r()
        distance = _horizontal_distance(target_position)
        angle = math.atan2(target_position[2], distance)
        return (math.exp(r * distance) - 1) / (r * self.velocity * math.cos(angle))


_COMPENSATORS: dict[str, type[TrajectoryCompensator]] = {
    "ideal": IdealCompensator,
    "resistance": ResistanceCompensator,
}


def create_compensator(kind: str) -> TrajectoryCompensator:
    """Build a compensator by name: ``"ideal"`` or ``"resistance"``."""
    try:
        return _COMPENSATORS[kind]()
    except KeyError:
        raise ValueError(f"unknown compensator type: {kind!r}") from None