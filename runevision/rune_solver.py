"""Tracks the rune centre, fits the blade rotation and aims the gimbal at it."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Optional, Sequence

import numpy as np

from runevision.curve_fitter import CurveFitter
from runevision.geometry import (
    EulerOrder,
    axis_angle_matrix,
    euler_to_matrix,
    normalize_angle,
    normalize_angle_positive,
    rodrigues,
    rpy_from_matrix,
    shortest_angular_distance,
)
from runevision.kalman import ExtendedKalmanFilter
from runevision.manual_compensator import ManualCompensator
from runevision.pnp import PnPSolver
from runevision.rune_model import (
    ARM_LENGTH,
    ARMOR_KEYPOINTS_NUM,
    DEG_72,
    KEYPOINTS_NUM,
    MAX_RUNE_DISTANCE,
    MIN_RUNE_DISTANCE,
    RUNE_OBJECT_POINTS,
    X_N,
    Z_N,
    MotionType,
    measure_state,
    predict_state,
)
from runevision.trajectory import create_compensator

_log = logging.getLogger(__name__)

RUNE_FRAME = "rune"
TARGET_RADIUS = 0.308
MIN_SHOOTING_RANGE_DEG = 1.0
COMPENSATOR_ITERATIONS = 30

Point2 = tuple[float, float]
CameraToOdom = Callable[[float], np.ndarray]
GimbalOrientation = Callable[[], np.ndarray]


@dataclass
class RuneSolverParams:
    """Tuning of the rune solver."""

    compensator_type: str = "ideal"
    gravity: float = 9.8
    bullet_speed: float = 28.0
    angle_offset_thres: float = 0.78
    lost_time_thres: float = 0.5
    auto_type_determined: bool = True
    ekf_q: Sequence[float] = (0.001, 0.001, 0.001, 0.001)
    ekf_r: Sequence[float] = (0.1, 0.1, 0.1, 0.1)
    angle_offset: Sequence[str] = ()


class TrackerState(Enum):
    LOST = 0
    DETECTING = 1
    TRACKING = 2


@dataclass
class RuneTarget:
    """A detection: the R tag followed by the four armour corners, in pixels.

    ``pts`` is ordered r_center, bottom_left, top_left, top_right, bottom_right;
    ``stamp`` is in seconds.
    """

    stamp: float = 0.0
    frame_id: str = "camera_optical_frame"
    is_lost: bool = True
    is_big_rune: bool = False
    pts: list[Point2] = field(default_factory=lambda: [(0.0, 0.0)] * KEYPOINTS_NUM)


@dataclass
class GimbalCmd:
    """Gimbal command; angles are in degrees, distance in metres."""

    yaw: float = 0.0
    pitch: float = 0.0
    yaw_diff: float = 0.0
    pitch_diff: float = 0.0
    distance: float = -1.0
    fire_advice: bool = False


class RuneSolver:
    """Rune tracker.

    Usage: call :meth:`init` while the tracker is LOST and :meth:`update`
    otherwise; then :meth:`predict_target` gives the aim point and
    :meth:`solve_gimbal_cmd` turns it into a gimbal command.

    ``camera_to_odom`` maps a timestamp to the 4x4 transform from the camera
    optical frame to odom; ``gimbal_orientation`` returns the 3x3 rotation of
    the gimbal in odom. Both default to the identity.
    """

    def __init__(
        self,
        params: Optional[RuneSolverParams] = None,
        *,
        camera_to_odom: Optional[CameraToOdom] = None,
        gimbal_orientation: Optional[GimbalOrientation] = None,
        pnp_solver: Optional[PnPSolver] = None,
    ) -> None:
        self.params = params if params is not None else RuneSolverParams()
        self._camera_to_odom = camera_to_odom
        self._gimbal_orientation = gimbal_orientation
        self.tracker_state = TrackerState.LOST

        self.curve_fitter = CurveFitter(MotionType.UNKNOWN)
        self.curve_fitter.set_auto_type_determined(self.params.auto_type_determined)

        self.trajectory_compensator = create_compensator(self.params.compensator_type)
        self.trajectory_compensator.gravity = self.params.gravity
        self.trajectory_compensator.velocity = self.params.bullet_speed
        self.trajectory_compensator.resistance = 0.01

        self.manual_compensator = ManualCompensator()
        self.manual_compensator.update_map_flow(self.params.angle_offset)

        q = np.diag(np.asarray(self.params.ekf_q, dtype=float)[:X_N])
        r = np.diag(np.asarray(self.params.ekf_r, dtype=float)[:Z_N])
        self.ekf = ExtendedKalmanFilter(
            predict_state,
            measure_state,
            lambda: q,
            lambda _z: r,
            np.eye(X_N),
            f_jacobian=lambda _x: np.eye(X_N),
            h_jacobian=lambda _x: np.eye(Z_N, X_N),
        )

        self._pnp_solver: Optional[PnPSolver] = None
        self.pnp_solver = pnp_solver

        self._ekf_state = np.zeros(X_N)
        self._last_observed_angle = 0.0
        self._last_angle = 0.0
        self._start_time = 0.0
        self._last_time = 0.0

    @property
    def pnp_solver(self) -> Optional[PnPSolver]:
        return self._pnp_solver

    @pnp_solver.setter
    def pnp_solver(self, solver: Optional[PnPSolver]) -> None:
        """Install a solver; the rune's object points are registered on it."""
        if solver is not None:
            solver.set_object_points(RUNE_FRAME, RUNE_OBJECT_POINTS)
        self._pnp_solver = solver

    def close(self) -> None:
        self.curve_fitter.close()

    def __enter__(self) -> RuneSolver:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def _measure(self, target: RuneTarget) -> Optional[np.ndarray]:
        pose = self.solve_pose(target)
        distance = float(np.linalg.norm(pose[:3, 3]))
        if distance < MIN_RUNE_DISTANCE or distance > MAX_RUNE_DISTANCE:
            _log.error("Rune position is out of range")
            return None
        return self._state_from_transform(pose)

    def init(self, target: RuneTarget) -> float:
        """Start tracking from ``target``; return its angle, or 0 on failure."""
        if target.is_lost:
            return 0.0
        try:
            state = self._measure(target)
        except Exception:
            _log.exception("Init failed")
            return 0.0
        if state is None:
            return 0.0
        self._ekf_state = state
        self.ekf.set_state(state)

        self.tracker_state = TrackerState.DETECTING
        observed_angle = self._normal_angle(target)
        self.curve_fitter.update(0.0, observed_angle)

        self._last_observed_angle = observed_angle
        self._last_angle = observed_angle
        self._start_time = target.stamp
        self._last_time = self._start_time
        return observed_angle

    def update(self, target: RuneTarget) -> float:
        """Feed a new detection; return the continuous observed angle, or 0 on failure."""
        now_time = target.stamp
        delta_time = now_time - self._last_time

        self.curve_fitter.set_type(MotionType.BIG if target.is_big_rune else MotionType.SMALL)

        if not target.is_lost:
            try:
                measurement = self._measure(target)
                if measurement is None:
                    return 0.0
                self.ekf.predict()
                self._ekf_state = self.ekf.update(measurement)
            except Exception:
                _log.exception("EKF update failed")
                return 0.0

            observed_time = now_time - self._start_time
            normal_angle = self._normal_angle(target)
            observed_angle = self._observed_angle(normal_angle)
            self.curve_fitter.update(observed_time, observed_angle)

            self._last_time = now_time
            self._last_angle = normal_angle
            self._last_observed_angle = observed_angle

        timed_out = target.is_lost and delta_time > self.params.lost_time_thres
        if self.tracker_state is TrackerState.DETECTING:
            if timed_out:
                self.tracker_state = TrackerState.LOST
                self.curve_fitter.reset()
            elif self.curve_fitter.status_verified():
                self.tracker_state = TrackerState.TRACKING
        elif self.tracker_state is TrackerState.TRACKING:
            if timed_out:
                self.tracker_state = TrackerState.LOST
                self.curve_fitter.reset()
        elif not target.is_lost:
            self.tracker_state = TrackerState.DETECTING
        return self._last_observed_angle

    def predict_target(self, timestamp: float) -> tuple[float, np.ndarray]:
        """Return the predicted continuous angle and armour position at ``timestamp``."""
        t1 = timestamp - self._start_time
        t0 = self._last_time - self._start_time
        angle_diff = self.curve_fitter.predict(t1) - self.curve_fitter.predict(t0)
        position = self.target_position(angle_diff)
        return angle_diff + self._last_observed_angle, position

    def solve_pose(self, target: RuneTarget) -> np.ndarray:
        """4x4 transform from the rune frame to odom; ``RuntimeError`` when PnP fails."""
        solution = None
        if self._pnp_solver is not None:
            solution = self._pnp_solver.solve_pnp(target.pts, RUNE_FRAME)
        if solution is None:
            _log.error("PnP failed")
            raise RuntimeError("PnP failed")
        rvec, tvec = solution
        pose_cam = np.eye(4)
        pose_cam[:3, :3] = rodrigues(rvec)
        pose_cam[:3, 3] = np.asarray(tvec, dtype=float).reshape(3)
        if self._camera_to_odom is None:
            return pose_cam
        transform = np.asarray(self._camera_to_odom(target.stamp), dtype=float)
        return transform @ pose_cam

    def solve_gimbal_cmd(self, target: Sequence[float]) -> GimbalCmd:
        """Gimbal angles that hit ``target`` (in odom) and whether to fire."""
        point = np.asarray(target, dtype=float).reshape(3)
        orientation = (
            np.eye(3)
            if self._gimbal_orientation is None
            else np.asarray(self._gimbal_orientation(), dtype=float)
        )
        _, current_pitch, current_yaw = rpy_from_matrix(orientation)
        current_pitch = -current_pitch

        horizontal = math.hypot(point[0], point[1])
        yaw = math.atan2(point[1], point[0])
        pitch = math.atan2(point[2], horizontal)

        compensator = self.trajectory_compensator
        compensator.velocity = self.params.bullet_speed
        compensator.gravity = self.params.gravity
        compensator.iteration_times = COMPENSATOR_ITERATIONS
        compensated = compensator.compensate(point)
        if compensated is not None:
            pitch = compensated
        distance = float(np.linalg.norm(point))

        pitch_offset, yaw_offset = self.manual_compensator.angle_hard_correct(
            horizontal, point[2]
        )
        cmd_pitch = pitch + math.radians(pitch_offset)
        cmd_yaw = normalize_angle(yaw + math.radians(yaw_offset))

        cmd = GimbalCmd(
            yaw=math.degrees(cmd_yaw),
            pitch=math.degrees(cmd_pitch),
            yaw_diff=math.degrees(cmd_yaw - current_yaw),
            pitch_diff=math.degrees(cmd_pitch - current_pitch),
            distance=distance,
        )
        shooting_range = max(
            abs(math.degrees(math.atan2(TARGET_RADIUS / 2, distance))), MIN_SHOOTING_RANGE_DEG
        )
        cmd.fire_advice = abs(cmd.yaw_diff) < shooting_range and abs(cmd.pitch_diff) < shooting_range
        if cmd.fire_advice:
            _log.debug("You Can Fire!")
        return cmd

    def center_position(self) -> np.ndarray:
        """Filtered 3D position of the R tag in odom."""
        return self._ekf_state[:3].copy()

    def target_position(self, angle_diff: float) -> np.ndarray:
        """Armour position in odom after the rune turns by ``angle_diff`` more."""
        t_odom = self._ekf_state[:3]
        # The PnP orientation is noisy, so the rotation is rebuilt from the
        # filtered yaw and the blade angle.
        yaw = float(self._ekf_state[3])
        roll = -self._last_angle
        r_odom = euler_to_matrix((roll, 0.0, yaw), EulerOrder.XYZ)
        p_rune = axis_angle_matrix((1.0, 0.0, 0.0), -angle_diff) @ np.array(
            [0.0, -ARM_LENGTH, 0.0]
        )
        return r_odom @ p_rune + t_odom

    def current_angle(self) -> float:
        """Latest normalised blade angle."""
        return self._last_angle

    def _normal_angle(self, target: RuneTarget) -> float:
        pts = np.asarray(target.pts, dtype=float).reshape(-1, 2)
        if len(pts) != KEYPOINTS_NUM:
            raise ValueError(f"a rune target has {KEYPOINTS_NUM} points, got {len(pts)}")
        center = pts[0]
        armor_center = pts[1 : 1 + ARMOR_KEYPOINTS_NUM].mean(axis=0)
        x_diff = armor_center[0] - center[0]
        y_diff = -(armor_center[1] - center[1])
        return normalize_angle_positive(math.atan2(y_diff, x_diff))

    def _observed_angle(self, normal_angle: float) -> float:
        angle_diff = shortest_angular_distance(self._last_angle, normal_angle)
        # A large jump means the target switched to another blade.
        if abs(angle_diff) > self.params.angle_offset_thres:
            angle_diff = normal_angle - self._last_angle
            offset = round(angle_diff / DEG_72)
            angle_diff -= offset * DEG_72
        return self._last_observed_angle + angle_diff

    def _state_from_transform(self, transform: np.ndarray) -> np.ndarray:
        _, _, yaw = rpy_from_matrix(transform[:3, :3])
        yaw = normalize_angle(yaw)
        previous = float(self._ekf_state[3])
        yaw = previous + shortest_angular_distance(previous, yaw)
        return np.array([transform[0, 3], transform[1, 3], transform[2, 3], yaw])