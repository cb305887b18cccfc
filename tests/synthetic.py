"""Render checkerboard views through a known pinhole camera."""

from __future__ import annotations

from typing import List, Sequence, Tuple

import cv2
import numpy as np
from scipy.spatial.transform import Rotation

K_TRUE = np.array([[800.0, 0.0, 320.0], [0.0, 800.0, 240.0], [0.0, 0.0, 1.0]])
IMAGE_SIZE = (640, 480)
SQUARE = 15.0
PATTERN = (7, 5)  # inner corners
PPM = 3.0  # board texture pixels per world unit
MARGIN = 1  # white border, in squares

# (rx, ry, rz) degrees, board centre (x, y, z) in the camera frame
VIEWS: List[Tuple[float, float, float, float, float, float]] = [
    (0, 0, 0, 0, 0, 420),
    (20, 0, 0, -30, 0, 450),
    (-20, 0, 0, 30, 15, 450),
    (0, 25, 0, 0, -20, 430),
    (0, -25, 0, 15, 20, 470),
    (15, 15, 10, -40, -30, 500),
    (-15, 20, -10, 40, 30, 500),
    (10, -20, 5, -35, 30, 440),
    (-10, -15, -5, 35, -30, 460),
    (25, 10, 0, 0, 0, 480),
]

POSE_VIEW = (10, -8, 3, 0, 0, 430)


def board_center(pattern: Tuple[int, int] = PATTERN, square: float = SQUARE) -> np.ndarray:
    cols, rows = pattern
    return np.array([(cols - 1) * square / 2.0, (rows - 1) * square / 2.0, 0.0])


def view_pose(view: Sequence[float]) -> Tuple[np.ndarray, np.ndarray]:
    """Rodrigues vector and translation mapping world to camera."""
    rx, ry, rz, x, y, z = view
    R = Rotation.from_euler("xyz", [rx, ry, rz], degrees=True).as_matrix()
    t = np.array([x, y, z], dtype=np.float64) - R @ board_center()
    rvec, _ = cv2.Rodrigues(R)
    return rvec.ravel(), t


def board_texture(pattern: Tuple[int, int] = PATTERN) -> Tuple[np.ndarray, np.ndarray]:
    """Board image and the world-to-texture pixel transform."""
    cols, rows = pattern
    sq = int(round(SQUARE * PPM))
    w = (cols + 1 + 2 * MARGIN) * sq
    h = (rows + 1 + 2 * MARGIN) * sq
    tex = np.full((h, w), 255, np.uint8)
    for r in range(rows + 1):
        for c in range(cols + 1):
            if (r + c) % 2 == 0:
                y0 = (MARGIN + r) * sq
                x0 = (MARGIN + c) * sq
                tex[y0 : y0 + sq, x0 : x0 + sq] = 0
    off = (MARGIN + 1) * sq - 0.5
    S = np.array([[PPM, 0.0, off], [0.0, PPM, off], [0.0, 0.0, 1.0]])
    return tex, S


def render_view(view: Sequence[float], K: np.ndarray = K_TRUE) -> np.ndarray:
    """Gray image of the board seen from ``view``; background is white."""
    rvec, t = view_pose(view)
    R, _ = cv2.Rodrigues(rvec)
    H = K @ np.column_stack([R[:, 0], R[:, 1], t])
    tex, S = board_texture()
    M = H @ np.linalg.inv(S)
    img = cv2.warpPerspective(
        tex, M, IMAGE_SIZE, flags=cv2.INTER_LINEAR, borderValue=255
    )
    return cv2.GaussianBlur(img, (3, 3), 0.7)


def render_views(views: Sequence[Sequence[float]] = VIEWS) -> List[np.ndarray]:
    return [render_view(v) for v in views]
