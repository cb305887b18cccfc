"""Camera pose estimation against a checkerboard world reference."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional, Tuple

import cv2
import numpy as np

from utils.error_tracker import CalibrationError, NotCalibratedError, PatternNotFoundError
from utils.logger import Logger, LoggerType
from utils.math_utils import euler_from_rvec, rotation_angle, rvec_to_matrix
from utils.settings import checkerboard

from .model import CameraModel
from .pattern import CheckerboardPattern, Detection

PNP_FLAGS = cv2.SOLVEPNP_ITERATIVE


def reprojection_error(
    model: CameraModel, det: Detection, rvec: np.ndarray, tvec: np.ndarray
) -> float:
    """Mean pixel distance between detected and reprojected corners."""
    proj, _ = cv2.projectPoints(
        det.object_points, rvec, tvec, model.camera_matrix, model.dist_coeffs
    )
    err = proj.reshape(-1, 2) - det.image_points.reshape(-1, 2)
    return float(np.linalg.norm(err, axis=1).mean())


@dataclass
class PoseEstimator:
    """
    Locate the world frame in a single image.

    The world origin is the first inner corner of the checkerboard, X runs
    along its first row, Y down its first column and the board lies in Z=0.
    """

    square_size: float = checkerboard.square_size
    pattern_size: Optional[Tuple[int, int]] = checkerboard.pattern_size
    logger: LoggerType = field(
        default_factory=lambda: Logger.get_logger("calibration.pose"), repr=False
    )

    def __post_init__(self) -> None:
        self._pattern = CheckerboardPattern(self.square_size, self.pattern_size)

    def estimate(self, model: CameraModel, image: np.ndarray) -> Tuple[CameraModel, float]:
        """Return ``model`` extended with the pose and the mean error in pixels."""
        if model is None or model.camera_matrix is None:
            raise NotCalibratedError("Pose estimation needs a calibrated camera model")
        h, w = image.shape[:2]
        if (w, h) != tuple(model.image_size):
            raise CalibrationError(
                f"Pose image is {w}x{h} but the model was calibrated at "
                f"{model.image_size[0]}x{model.image_size[1]}"
            )

        det = self._pattern.detect(image)
        if det is None:
            raise PatternNotFoundError("World reference target not found in pose image")

        ok, rvec, tvec = cv2.solvePnP(
            det.object_points,
            det.image_points,
            model.camera_matrix,
            model.dist_coeffs,
            flags=PNP_FLAGS,
        )
        if not ok:
            raise CalibrationError("solvePnP failed")
        rvec, tvec = cv2.solvePnPRefineLM(
            det.object_points,
            det.image_points,
            model.camera_matrix,
            model.dist_coeffs,
            rvec,
            tvec,
        )
        error = reprojection_error(model, det, rvec, tvec)
        euler = euler_from_rvec(rvec)
        self.logger.info(
            f"Pose estimated from {det.corner_count} corners, error={error:.4f}px"
        )
        self.logger.debug(
            f"Board rotation {rotation_angle(rvec_to_matrix(rvec)):.2f} deg, "
            f"euler xyz=({euler[0]:.2f}, {euler[1]:.2f}, {euler[2]:.2f})"
        )
        return model.with_pose(rvec, tvec, error), error


def estimate_pose(
    model: CameraModel,
    image: np.ndarray,
    square_size: float = checkerboard.square_size,
    pattern_size: Optional[Tuple[int, int]] = None,
) -> Tuple[CameraModel, float]:
    """Shortcut for ``PoseEstimator(square_size, pattern_size).estimate``."""
    return PoseEstimator(square_size, pattern_size).estimate(model, image)
