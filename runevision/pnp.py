"""Perspective-n-point pose estimation with a pinhole camera and lens distortion."""

from __future__ import annotations

import math
from typing import Optional, Sequence

import numpy as np
from scipy.optimize import least_squares

from runevision.geometry import rodrigues

_UNDISTORT_ITERATIONS = 20
_PLANAR_RATIO = 1e-6


def _dlt_homography(plane: np.ndarray, image: np.ndarray) -> np.ndarray:
    rows = []
    for (a, b), (x, y) in zip(plane, image):
        rows.append([a, b, 1.0, 0.0, 0.0, 0.0, -x * a, -x * b, -x])
        rows.append([0.0, 0.0, 0.0, a, b, 1.0, -y * a, -y * b, -y])
    _, _, vt = np.linalg.svd(np.asarray(rows))
    return vt[-1].reshape(3, 3)


def _nearest_rotation(mat: np.ndarray) -> np.ndarray:
    u, _, vt = np.linalg.svd(mat)
    rot = u @ vt
    if np.linalg.det(rot) < 0:
        u[:, -1] *= -1
        rot = u @ vt
    return rot


def _planar_pose(
    obj: np.ndarray, image: np.ndarray, basis: np.ndarray
) -> tuple[np.ndarray, np.ndarray]:
    centroid = obj.mean(axis=0)
    plane = (obj - centroid) @ basis[:, :2]
    hom = _dlt_homography(plane, image)
    h1, h2, h3 = hom.T
    scale = 2.0 / (np.linalg.norm(h1) + np.linalg.norm(h2))
    r1, r2, t = scale * h1, scale * h2, scale * h3
    if t[2] < 0:
        r1, r2, t = -r1, -r2, -t
    rot_plane = _nearest_rotation(np.column_stack([r1, r2, np.cross(r1, r2)]))
    rot = rot_plane @ basis.T
    return rot, t - rot @ centroid


def _general_pose(obj: np.ndarray, image: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
    if len(obj) < 6:
        raise ValueError("non-planar PnP needs at least 6 points")
    rows = []
    for point, (x, y) in zip(obj, image):
        ph = np.append(point, 1.0)
        zero = np.zeros(4)
        rows.append(np.concatenate([ph, zero, -x * ph]))
        rows.append(np.concatenate([zero, ph, -y * ph]))
    _, _, vt = np.linalg.svd(np.asarray(rows))
    proj = vt[-1].reshape(3, 4)
    if np.linalg.det(proj[:, :3]) < 0:
        proj = -proj
    u, s, vt_m = np.linalg.svd(proj[:, :3])
    return u @ vt_m, proj[:, 3] / s.mean()


class PnPSolver:
    """Estimates object poses from 2D-3D correspondences for one calibrated camera."""

    def __init__(
        self,
        camera_matrix: Sequence[float],
        distortion_coefficients: Sequence[float] = (),
    ) -> None:
        matrix = np.asarray(camera_matrix, dtype=float)
        if matrix.size != 9:
            raise ValueError("camera matrix must have 9 elements")
        self.camera_matrix = matrix.reshape(3, 3).copy()
        dist = np.asarray(distortion_coefficients, dtype=float).reshape(-1)[:5]
        self.distortion_coefficients = np.pad(dist, (0, 5 - dist.size))
        self._object_points: dict[str, np.ndarray] = {}

    def set_object_points(self, name: str, points: Sequence[Sequence[float]]) -> None:
        """Register the 3D points of a coordinate frame under ``name``."""
        pts = np.asarray(points, dtype=float).reshape(-1, 3)
        self._object_points[name] = pts

    def _distort(self, xy: np.ndarray) -> np.ndarray:
        k1, k2, p1, p2, k3 = self.distortion_coefficients
        x, y = xy[:, 0], xy[:, 1]
        r2 = x * x + y * y
        radial = 1 + k1 * r2 + k2 * r2 * r2 + k3 * r2 ** 3
        xd = x * radial + 2 * p1 * x * y + p2 * (r2 + 2 * x * x)
        yd = y * radial + p1 * (r2 + 2 * y * y) + 2 * p2 * x * y
        return np.column_stack([xd, yd])

    def _undistort(self, pixels: np.ndarray) -> np.ndarray:
        homo = np.column_stack([pixels, np.ones(len(pixels))])
        norm = np.linalg.solve(self.camera_matrix, homo.T).T
        target = norm[:, :2] / norm[:, 2:3]
        k1, k2, p1, p2, k3 = self.distortion_coefficients
        xy = target.copy()
        for _ in range(_UNDISTORT_ITERATIONS):
            x, y = xy[:, 0], xy[:, 1]
            r2 = x * x + y * y
            radial = 1 + k1 * r2 + k2 * r2 * r2 + k3 * r2 ** 3
            dx = 2 * p1 * x * y + p2 * (r2 + 2 * x * x)
            dy = p1 * (r2 + 2 * y * y) + 2 * p2 * x * y
            xy = (target - np.column_stack([dx, dy])) / radial[:, None]
        return xy

    def _project(self, obj: np.ndarray, rvec: np.ndarray, tvec: np.ndarray) -> np.ndarray:
        cam = obj @ rodrigues(rvec).T + np.asarray(tvec, dtype=float).reshape(3)
        xy = self._distort(cam[:, :2] / cam[:, 2:3])
        homo = np.column_stack([xy, np.ones(len(xy))]) @ self.camera_matrix.T
        return homo[:, :2] / homo[:, 2:3]

    def project_points(self, name: str, rvec: np.ndarray, tvec: np.ndarray) -> np.ndarray:
        """Project the frame's object points into the image; ``KeyError`` if unknown."""
        try:
            obj = self._object_points[name]
        except KeyError:
            raise KeyError(f"unknown coordinate frame: {name!r}") from None
        return self._project(obj, rvec, tvec)

    def solve_pnp(
        self, image_points: Sequence[Sequence[float]], name: str
    ) -> Optional[tuple[np.ndarray, np.ndarray]]:
        """Return ``(rvec, tvec)`` of frame ``name``, or ``None`` if it is unknown or no pose fits."""
        obj = self._object_points.get(name)
        if obj is None:
            return None
        image = np.asarray(image_points, dtype=float).reshape(-1, 2)
        if len(image) != len(obj):
            raise ValueError("image and object point counts differ")
        if len(image) < 4:
            raise ValueError("PnP needs at least 4 points")

        normalized = self._undistort(image)
        centered = obj - obj.mean(axis=0)
        _, sing, vt = np.linalg.svd(centered)
        if sing[1] <= _PLANAR_RATIO * sing[0]:
            raise ValueError("object points are degenerate")
        if sing[2] <= _PLANAR_RATIO * sing[0]:
            basis = vt.T.copy()
            if np.linalg.det(basis) < 0:
                basis[:, 2] *= -1
            rot, tvec = _planar_pose(obj, normalized, basis)
        else:
            rot, tvec = _general_pose(obj, normalized)

        initial = np.concatenate([rodrigues(rot), tvec])

        def residual(params: np.ndarray) -> np.ndarray:
            return (self._project(obj, params[:3], params[3:]) - image).ravel()

        result = least_squares(residual, initial, method="lm")
        if not result.success or not np.all(np.isfinite(result.x)):
            return None
        return result.x[:3].copy(), result.x[3:].copy()

    def calculate_distance_to_center(self, image_point: Sequence[float]) -> float:
        """Pixel distance from ``image_point`` to the principal point."""
        cx = self.camera_matrix[0, 2]
        cy = self.camera_matrix[1, 2]
        return math.hypot(image_point[0] - cx, image_point[1] - cy)

    def calculate_reprojection_error(
        self,
        image_points: Sequence[Sequence[float]],
        rvec: np.ndarray,
        tvec: np.ndarray,
        name: str,
    ) -> float:
        """Sum of pixel distances between observed and reprojected points; 0 if unknown."""
        if name not in self._object_points:
            return 0.0
        projected = self.project_points(name, rvec, tvec)
        image = np.asarray(image_points, dtype=float).reshape(-1, 2)
        return float(np.linalg.norm(image - projected[: len(image)], axis=1).sum())