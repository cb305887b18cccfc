from __future__ import annotations
from typing import Tuple

import cv2
import numpy as np
from scipy.spatial.transform import Rotation

__all__ = [
    "make_transform",
    "decompose_transform",
    "invert_transform",
    "rvec_to_matrix",
    "rotation_angle",
    "euler_from_rvec",
    "convex_hull_area",
]


def make_transform(R: np.ndarray, t: np.ndarray) -> np.ndarray:
    """Build a homogeneous transform from ``R`` and ``t``."""
    T = np.eye(4)
    T[:3, :3] = R
    T[:3, 3] = np.asarray(t, dtype=np.float64).flatten()
    return T


def decompose_transform(T: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    """Return rotation matrix and translation vector from a transform."""
    return T[:3, :3], T[:3, 3]


def invert_transform(T: np.ndarray) -> np.ndarray:
    """Return the inverse of a homogeneous transform."""
    R, t = decompose_transform(T)
    R_inv = R.T
    t_inv = -R_inv @ t
    return make_transform(R_inv, t_inv)


def rvec_to_matrix(rvec: np.ndarray) -> np.ndarray:
    """Rodrigues vector to 3x3 rotation matrix."""
    R, _ = cv2.Rodrigues(np.asarray(rvec, dtype=np.float64).reshape(3, 1))
    return R


def rotation_angle(R: np.ndarray) -> float:
    """
    Returns the rotation angle (in degrees) from a rotation matrix.
    """
    trace = np.trace(R)
    angle = np.arccos(np.clip((trace - 1) / 2, -1, 1))
    return float(np.degrees(angle))


def euler_from_rvec(rvec: np.ndarray, order: str = "xyz") -> np.ndarray:
    """Euler angles in degrees for a Rodrigues vector."""
    return Rotation.from_rotvec(np.asarray(rvec, float).ravel()).as_euler(
        order, degrees=True
    )


def convex_hull_area(points: np.ndarray) -> float:
    """Area of the convex hull of 2-D ``points``."""
    pts = np.asarray(points, dtype=np.float32).reshape(-1, 2)
    if len(pts) < 3:
        return 0.0
    hull = cv2.convexHull(pts)
    return float(cv2.contourArea(hull))
