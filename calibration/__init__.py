"""Multi-shot checkerboard camera calibration, pose estimation and rectification."""

from .calibrator import AddResult, CameraCalibrator, CoverageGrid, DataCompleteness
from .correction import CorrectedImage, Correction, CorrectionMode, CropMode, WorldRectangle
from .model import CameraModel
from .pattern import CheckerboardPattern, Detection, TargetType
from .pose import PoseEstimator, estimate_pose

__all__ = [
    "AddResult",
    "CameraCalibrator",
    "CoverageGrid",
    "DataCompleteness",
    "CorrectedImage",
    "Correction",
    "CorrectionMode",
    "CropMode",
    "WorldRectangle",
    "CameraModel",
    "CheckerboardPattern",
    "Detection",
    "TargetType",
    "PoseEstimator",
    "estimate_pose",
]
