"""Checkerboard target detection and object point generation."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Sequence, Tuple

import cv2
import numpy as np

from utils.error_tracker import ConfigurationError
from utils.logger import Logger, LoggerType
from utils.settings import checkerboard

# OpenCV constants
CORNER_CRITERIA = (cv2.TERM_CRITERIA_EPS + cv2.TERM_CRITERIA_COUNT, 30, 1e-3)
SB_FLAGS = cv2.CALIB_CB_NORMALIZE_IMAGE | cv2.CALIB_CB_EXHAUSTIVE | cv2.CALIB_CB_ACCURACY
CHESSBOARD_FLAGS = cv2.CALIB_CB_ADAPTIVE_THRESH | cv2.CALIB_CB_NORMALIZE_IMAGE


class TargetType(str, Enum):
    """Supported calibration targets."""

    CHECKERBOARD = "CHECKERBOARD"

    @classmethod
    def parse(cls, name: str | "TargetType") -> "TargetType":
        try:
            return cls(str(getattr(name, "value", name)).upper())
        except ValueError as exc:
            raise ConfigurationError(f"Unsupported target type: {name}") from exc


@dataclass
class Detection:
    """Detected checkerboard with 2D-3D correspondences."""

    image_points: np.ndarray  # (N, 2) float32, canonical order
    object_points: np.ndarray  # (N, 3) float32, Z = 0
    pattern_size: Tuple[int, int]  # inner corners (cols, rows)
    image_size: Tuple[int, int]  # width, height
    method: str

    @property
    def corner_count(self) -> int:
        return int(len(self.image_points))

    def outline(self) -> np.ndarray:
        """Outer grid corners in pixel coordinates, clockwise from the origin."""
        cols, rows = self.pattern_size
        grid = self.image_points.reshape(rows, cols, 2)
        return np.array(
            [grid[0, 0], grid[0, -1], grid[-1, -1], grid[-1, 0]], dtype=np.float32
        )


def to_gray(image: np.ndarray) -> np.ndarray:
    """Convert a BGR/BGRA/gray image of any depth to 8-bit gray."""
    if image.ndim == 3 and image.shape[2] == 4:
        image = cv2.cvtColor(image, cv2.COLOR_BGRA2GRAY)
    elif image.ndim == 3 and image.shape[2] == 3:
        image = cv2.cvtColor(image, cv2.COLOR_BGR2GRAY)
    elif image.ndim == 3 and image.shape[2] == 1:
        image = image[:, :, 0]
    elif image.ndim != 2:
        raise ValueError(f"Unsupported image shape {image.shape}")
    if image.dtype != np.uint8:
        image = cv2.normalize(image, None, 0, 255, cv2.NORM_MINMAX).astype(np.uint8)
    return image


def make_objpoints(pattern_size: Tuple[int, int], square: float) -> np.ndarray:
    """Create planar checkerboard object points with Z=0, row by row."""
    cols, rows = pattern_size
    obj = np.zeros((rows * cols, 3), np.float32)
    xs, ys = np.meshgrid(np.arange(cols), np.arange(rows))
    obj[:, 0] = xs.reshape(-1) * square
    obj[:, 1] = ys.reshape(-1) * square
    return obj


def _subpix_window(corners: np.ndarray, cols: int) -> Tuple[int, int]:
    spacing = float(np.linalg.norm(corners[1] - corners[0])) if cols > 1 else 20.0
    half = int(np.clip(spacing / 4.0, 2, 11))
    return half, half


def find_checkerboard(
    gray: np.ndarray, pattern_size: Tuple[int, int]
) -> Optional[Tuple[np.ndarray, str]]:
    """Find inner corners; the sector based detector first, classic as fallback."""
    size = (int(pattern_size[0]), int(pattern_size[1]))
    found, corners = cv2.findChessboardCornersSB(gray, size, flags=SB_FLAGS)
    if found and corners is not None:
        return corners.reshape(-1, 2).astype(np.float32), "findChessboardCornersSB"

    found, corners = cv2.findChessboardCorners(gray, size, flags=CHESSBOARD_FLAGS)
    if not found or corners is None:
        return None
    win = _subpix_window(corners.reshape(-1, 2), size[0])
    cv2.cornerSubPix(gray, corners, win, (-1, -1), CORNER_CRITERIA)
    return corners.reshape(-1, 2).astype(np.float32), "findChessboardCorners"


def canonical_order(corners: np.ndarray, pattern_size: Tuple[int, int]) -> np.ndarray:
    """
    Reorder detected corners so the origin is the grid corner nearest the
    image top-left and the first row runs towards the image right.

    OpenCV may return the grid rotated or mirrored; picking one ordering
    keeps the world frame stable across images and the target normal
    pointing away from the camera.
    """
    cols, rows = pattern_size
    grid = corners.reshape(rows, cols, 2)
    candidates: List[np.ndarray] = [
        grid,
        grid[::-1, ::-1],
        grid[::-1, :],
        grid[:, ::-1],
    ]
    if cols == rows:
        candidates += [g.transpose(1, 0, 2) for g in list(candidates)]

    def _key(g: np.ndarray) -> Tuple[float, float]:
        first, second = g[0, 0], g[0, 1]
        return round(float(first[0] + first[1]), 3), -float(second[0] - first[0])

    best = min(candidates, key=_key)
    return np.ascontiguousarray(best.reshape(-1, 2), dtype=np.float32)


@dataclass
class CheckerboardPattern:
    """
    Checkerboard target with known square size.

    When ``pattern_size`` is ``None`` the inner-corner layout is taken from
    the first image where one of ``candidates`` detects, and kept fixed for
    all later images.
    """

    square_size: float = checkerboard.square_size
    pattern_size: Optional[Tuple[int, int]] = checkerboard.pattern_size
    candidates: Sequence[Tuple[int, int]] = checkerboard.candidate_sizes
    logger: LoggerType = field(
        default_factory=lambda: Logger.get_logger("calibration.pattern"),
        repr=False,
    )

    def __post_init__(self) -> None:
        if not self.square_size or self.square_size <= 0:
            raise ConfigurationError(
                f"Square size must be positive, got {self.square_size}"
            )
        if self.pattern_size is not None:
            self.pattern_size = _check_size(self.pattern_size)
        self.candidates = [_check_size(c) for c in self.candidates]

    def object_points(self, pattern_size: Optional[Tuple[int, int]] = None) -> np.ndarray:
        size = pattern_size or self.pattern_size
        if size is None:
            raise ConfigurationError("Pattern size is not known yet")
        return make_objpoints(size, self.square_size)

    def detect(self, image: np.ndarray) -> Optional[Detection]:
        """Detect the checkerboard in ``image`` or return ``None``."""
        gray = to_gray(image)
        sizes = [self.pattern_size] if self.pattern_size else list(self.candidates)
        for size in sizes:
            result = find_checkerboard(gray, size)
            if result is None:
                continue
            corners, method = result
            if self.pattern_size is None:
                self.logger.info(f"Autodetected board as {size[0]}x{size[1]} inner corners")
                self.pattern_size = size
            return Detection(
                image_points=canonical_order(corners, size),
                object_points=make_objpoints(size, self.square_size),
                pattern_size=size,
                image_size=(int(gray.shape[1]), int(gray.shape[0])),
                method=method,
            )
        self.logger.debug("Checkerboard not found")
        return None


def _check_size(size: Sequence[int]) -> Tuple[int, int]:
    if len(size) != 2:
        raise ConfigurationError(f"Pattern size must be (cols, rows), got {size}")
    cols, rows = int(size[0]), int(size[1])
    if cols < 2 or rows < 2:
        raise ConfigurationError(f"Board must be at least 2x2; got {cols}x{rows}")
    return cols, rows
