"""Multi-shot intrinsic camera calibration from checkerboard views."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, NamedTuple, Optional, Sequence, Tuple

import cv2
import numpy as np

from utils.error_tracker import (
    ConfigurationError,
    ImageSourceError,
    InsufficientDataError,
)
from utils.logger import CaptureStderrToLogger, Logger, LoggerType
from utils.math_utils import convex_hull_area, rvec_to_matrix
from utils.settings import calibration, checkerboard

from .model import DIST_NAMES, CameraModel
from .pattern import CheckerboardPattern, Detection, TargetType


class AddResult(NamedTuple):
    """Outcome of :meth:`CameraCalibrator.add_image`."""

    ok: bool  # target found and usable
    image_points: Optional[np.ndarray]
    object_points: Optional[np.ndarray]
    added: bool  # kept for calibration (False for duplicates)
    reason: str  # added | duplicate | not_found | size_mismatch


@dataclass
class ViewMetrics:
    """Per-view feedback values."""

    area: float  # fraction of the image covered by the target
    tilt_x: float  # target normal x component in the camera frame
    tilt_y: float  # target normal y component in the camera frame
    distance: float  # camera to target centre, world units
    hull: np.ndarray  # target outline in pixels


@dataclass
class CoverageGrid:
    """Per-cell count of accepted views whose target covers the cell centre."""

    scores: np.ndarray  # (rows, cols)
    cell_size: Tuple[float, float]  # (width, height) in pixels

    @property
    def size(self) -> Tuple[int, int]:
        """Grid size as (columns, rows)."""
        return int(self.scores.shape[1]), int(self.scores.shape[0])

    def score(self, col: int, row: int) -> float:
        return float(self.scores[row, col])


class DataCompleteness(NamedTuple):
    """Feedback on how well the accepted views cover the calibration space."""

    area: List[float]
    tilt_x: List[float]
    tilt_y: List[float]
    distance: List[float]
    coverage: CoverageGrid


@dataclass
class _View:
    detection: Detection
    metrics: ViewMetrics


@dataclass
class CameraCalibrator:
    """
    Collect checkerboard views and estimate camera intrinsics.

    Images are added one at a time. Views whose corners lie, on average,
    closer than ``uniqueness_threshold`` pixels to an accepted view are
    reported but not used.
    """

    square_size: float = checkerboard.square_size
    pattern_size: Optional[Tuple[int, int]] = checkerboard.pattern_size
    coverage_grid: Tuple[int, int] = calibration.coverage_grid
    min_views: int = calibration.min_views
    recommended_views: int = calibration.recommended_views
    logger: LoggerType = field(
        default_factory=lambda: Logger.get_logger("calibration.calibrator"),
        repr=False,
    )

    def __post_init__(self) -> None:
        self._configured_size = self.pattern_size
        self._pattern = CheckerboardPattern(self.square_size, self.pattern_size)
        self.target_type = TargetType.CHECKERBOARD
        self._enabled: Tuple[bool, ...] = tuple(calibration.distortion)
        self.uniqueness_enabled = calibration.uniqueness_enabled
        self.uniqueness_threshold = calibration.uniqueness_threshold
        self._views: List[_View] = []
        self._image_size: Optional[Tuple[int, int]] = None
        self._model: Optional[CameraModel] = None
        self.view_errors: List[float] = []

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------
    def set_checker_square_side_length(self, length: float) -> None:
        if length is None or length <= 0:
            raise ConfigurationError(f"Square side length must be positive, got {length}")
        self._require_empty("square size")
        self.square_size = float(length)
        self._pattern.square_size = self.square_size

    def set_target_type(self, name: str) -> None:
        self.target_type = TargetType.parse(name)

    def set_distortion_coefficients_enabled(
        self, k1: bool, k2: bool, p1: bool, p2: bool, k3: bool
    ) -> None:
        """Select the estimated coefficients; disabled ones stay zero."""
        if bool(p1) != bool(p2):
            raise ConfigurationError(
                "Tangential coefficients p1 and p2 must be enabled together"
            )
        self._enabled = (bool(k1), bool(k2), bool(p1), bool(p2), bool(k3))
        enabled = [n for n, on in zip(DIST_NAMES, self._enabled) if on]
        self.logger.debug(f"Distortion coefficients enabled: {enabled or 'none'}")

    def set_uniqueness_threshold(self, enabled: bool, threshold: float = 1.0) -> None:
        if threshold is None or threshold < 0:
            raise ConfigurationError(f"Uniqueness threshold must be >= 0, got {threshold}")
        self.uniqueness_enabled = bool(enabled)
        self.uniqueness_threshold = float(threshold)

    def set_pattern_size(self, pattern_size: Sequence[int]) -> None:
        self._require_empty("pattern size")
        self._pattern = CheckerboardPattern(self.square_size, tuple(pattern_size))
        self.pattern_size = self._pattern.pattern_size
        self._configured_size = self.pattern_size

    def _require_empty(self, what: str) -> None:
        if self._views:
            raise ConfigurationError(f"Cannot change {what} after views were added")

    @property
    def distortion_enabled(self) -> Tuple[bool, ...]:
        return self._enabled

    def calibration_flags(self) -> int:
        k1, k2, p1, p2, k3 = self._enabled
        flags = 0
        if not k1:
            flags |= cv2.CALIB_FIX_K1
        if not k2:
            flags |= cv2.CALIB_FIX_K2
        if not k3:
            flags |= cv2.CALIB_FIX_K3
        if not (p1 or p2):
            flags |= cv2.CALIB_ZERO_TANGENT_DIST
        return flags

    # ------------------------------------------------------------------
    # Views
    # ------------------------------------------------------------------
    @property
    def view_count(self) -> int:
        return len(self._views)

    @property
    def image_size(self) -> Optional[Tuple[int, int]]:
        return self._image_size

    def reset(self) -> None:
        """Forget all views, the last estimate and any auto-detected board size."""
        self._views.clear()
        self.pattern_size = self._configured_size
        self._pattern = CheckerboardPattern(self.square_size, self.pattern_size)
        self._image_size = None
        self._model = None
        self.view_errors = []

    def add_image(self, image: np.ndarray) -> AddResult:
        """Detect the target in ``image`` and keep the view if it is new."""
        if image is None or image.size == 0:
            raise ImageSourceError("Empty image passed to calibrator")
        size = (int(image.shape[1]), int(image.shape[0]))
        if self._image_size is not None and size != self._image_size:
            self.logger.warning(
                f"Image size {size[0]}x{size[1]} differs from "
                f"{self._image_size[0]}x{self._image_size[1]}, ignored"
            )
            return AddResult(False, None, None, False, "size_mismatch")

        det = self._pattern.detect(image)
        if det is None:
            self.logger.warning("Checkerboard not found, image ignored")
            return AddResult(False, None, None, False, "not_found")

        if self._image_size is None:
            self._image_size = size
        self.pattern_size = det.pattern_size

        duplicate = self._closest_duplicate(det)
        if duplicate is not None:
            self.logger.info(
                f"View too similar to view #{duplicate[0]} "
                f"(mean corner shift {duplicate[1]:.3f}px), not added"
            )
            return AddResult(True, det.image_points, det.object_points, False, "duplicate")

        metrics = self._view_metrics(det)
        self._views.append(_View(det, metrics))
        self.logger.info(
            f"View #{len(self._views)} added: area={metrics.area:.3f} "
            f"tilt=({metrics.tilt_x:+.2f}, {metrics.tilt_y:+.2f}) "
            f"distance={metrics.distance:.1f}"
        )
        return AddResult(True, det.image_points, det.object_points, True, "added")

    def _closest_duplicate(self, det: Detection) -> Optional[Tuple[int, float]]:
        if not self.uniqueness_enabled:
            return None
        for idx, view in enumerate(self._views, start=1):
            if view.detection.pattern_size != det.pattern_size:
                continue
            shift = float(
                np.linalg.norm(view.detection.image_points - det.image_points, axis=1).mean()
            )
            if shift < self.uniqueness_threshold:
                return idx, shift
        return None

    # ------------------------------------------------------------------
    # Feedback
    # ------------------------------------------------------------------
    def _provisional_intrinsics(self, image_size: Tuple[int, int]) -> Tuple[np.ndarray, np.ndarray]:
        if self._model is not None:
            return self._model.camera_matrix, self._model.dist_coeffs
        w, h = image_size
        f = float(max(w, h))
        K = np.array([[f, 0.0, w / 2.0], [0.0, f, h / 2.0], [0.0, 0.0, 1.0]])
        return K, np.zeros(5)

    def _view_metrics(
        self,
        det: Detection,
        rvec: Optional[np.ndarray] = None,
        tvec: Optional[np.ndarray] = None,
    ) -> ViewMetrics:
        w, h = det.image_size
        area = convex_hull_area(det.image_points) / float(w * h)
        if rvec is None or tvec is None:
            K, dist = self._provisional_intrinsics(det.image_size)
            ok, rvec, tvec = cv2.solvePnP(det.object_points, det.image_points, K, dist)
            if not ok:
                self.logger.warning("Provisional pose failed, tilt and distance unknown")
                return ViewMetrics(area, 0.0, 0.0, float("nan"), det.outline())
        R = rvec_to_matrix(rvec)
        normal = R[:, 2]
        centre = det.object_points.mean(axis=0).astype(np.float64)
        distance = float(np.linalg.norm(R @ centre + np.asarray(tvec, float).ravel()))
        return ViewMetrics(
            area=float(area),
            tilt_x=float(normal[0]),
            tilt_y=float(normal[1]),
            distance=distance,
            hull=det.outline(),
        )

    def coverage(self) -> CoverageGrid:
        cols, rows = self.coverage_grid
        scores = np.zeros((rows, cols), dtype=np.float64)
        if self._image_size is None:
            return CoverageGrid(scores, (0.0, 0.0))
        w, h = self._image_size
        cw, ch = w / float(cols), h / float(rows)
        centres = [
            ((c + 0.5) * cw, (r + 0.5) * ch) for r in range(rows) for c in range(cols)
        ]
        for view in self._views:
            hull = cv2.convexHull(view.detection.image_points.reshape(-1, 1, 2))
            for i, pt in enumerate(centres):
                if cv2.pointPolygonTest(hull, pt, False) >= 0:
                    scores[i // cols, i % cols] += 1
        return CoverageGrid(scores, (cw, ch))

    def data_completeness(self) -> DataCompleteness:
        """Per-view area, tilt and distance plus the image coverage grid."""
        metrics = [v.metrics for v in self._views]
        return DataCompleteness(
            area=[m.area for m in metrics],
            tilt_x=[m.tilt_x for m in metrics],
            tilt_y=[m.tilt_y for m in metrics],
            distance=[m.distance for m in metrics],
            coverage=self.coverage(),
        )

    # ------------------------------------------------------------------
    # Estimation
    # ------------------------------------------------------------------
    def estimate(self) -> Tuple[CameraModel, float]:
        """
        Estimate intrinsics from all accepted views.

        Returns the camera model and the mean reprojection error in pixels
        over all corners.
        """
        n = len(self._views)
        if n < self.min_views or self._image_size is None:
            raise InsufficientDataError(
                f"{n} views accepted, at least {self.min_views} required"
            )
        if n < self.recommended_views:
            self.logger.warning(
                f"Only {n} views; {self.recommended_views} or more are recommended"
            )

        obj_points = [v.detection.object_points for v in self._views]
        img_points = [v.detection.image_points.reshape(-1, 1, 2) for v in self._views]
        criteria = (
            cv2.TERM_CRITERIA_EPS + cv2.TERM_CRITERIA_MAX_ITER,
            calibration.max_iterations,
            calibration.epsilon,
        )
        self.logger.info(f"Calibrating from {n} views")
        with CaptureStderrToLogger(self.logger):
            rms, K, dist, rvecs, tvecs = cv2.calibrateCamera(
                obj_points,
                img_points,
                self._image_size,
                None,
                None,
                flags=self.calibration_flags(),
                criteria=criteria,
            )

        residuals: List[np.ndarray] = []
        self.view_errors = []
        for view, obj, img, rv, tv in zip(self._views, obj_points, img_points, rvecs, tvecs):
            proj, _ = cv2.projectPoints(obj, rv, tv, K, dist)
            err = np.linalg.norm(proj.reshape(-1, 2) - img.reshape(-1, 2), axis=1)
            residuals.append(err)
            self.view_errors.append(float(err.mean()))
            view.metrics = self._view_metrics(view.detection, rv, tv)

        avg_error = float(np.concatenate(residuals).mean())
        model = CameraModel(K, dist, self._image_size, calibration_error=avg_error)
        self._model = model
        self.logger.info(f"Calibration RMS={rms:.4f}px, mean error={avg_error:.4f}px")
        return model, avg_error
