import numpy as np
import pytest

from calibration.pose import PoseEstimator, estimate_pose
from utils.error_tracker import CalibrationError, NotCalibratedError, PatternNotFoundError
from synthetic import PATTERN, POSE_VIEW, SQUARE, view_pose


def test_pose_matches_ground_truth(calibrated, pose_image):
    _, model, _ = calibrated
    posed, error = PoseEstimator(SQUARE, PATTERN).estimate(model, pose_image)
    rvec, t = view_pose(POSE_VIEW)
    assert posed.has_pose and not model.has_pose
    assert error < 0.5
    assert posed.pose_error == pytest.approx(error)
    assert np.allclose(posed.tvec, t, rtol=0.02, atol=1.0)
    assert np.allclose(posed.rvec, rvec, atol=0.02)


def test_pose_with_autodetected_board(calibrated, pose_image):
    _, model, _ = calibrated
    posed, error = estimate_pose(model, pose_image, SQUARE)
    assert error < 0.5
    assert posed.tvec[2] > 0


def test_pose_requires_model(pose_image):
    with pytest.raises(NotCalibratedError):
        PoseEstimator(SQUARE, PATTERN).estimate(None, pose_image)


def test_pose_target_missing(calibrated):
    _, model, _ = calibrated
    blank = np.full((480, 640), 255, np.uint8)
    with pytest.raises(PatternNotFoundError):
        PoseEstimator(SQUARE, PATTERN).estimate(model, blank)


def test_pose_image_size_checked(calibrated):
    _, model, _ = calibrated
    with pytest.raises(CalibrationError):
        PoseEstimator(SQUARE, PATTERN).estimate(model, np.zeros((240, 320), np.uint8))
