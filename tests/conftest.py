import os
import sys

sys.path.insert(0, os.path.dirname(os.path.dirname(__file__)))
sys.path.insert(0, os.path.dirname(__file__))

import pytest

from calibration.calibrator import CameraCalibrator
from calibration.pose import PoseEstimator
from synthetic import PATTERN, POSE_VIEW, SQUARE, render_view, render_views


@pytest.fixture(scope="session")
def views():
    return render_views()


@pytest.fixture(scope="session")
def pose_image():
    return render_view(POSE_VIEW)


@pytest.fixture(scope="session")
def calibrated(views):
    calib = CameraCalibrator(square_size=SQUARE, pattern_size=PATTERN)
    for img in views:
        calib.add_image(img)
    model, error = calib.estimate()
    return calib, model, error


@pytest.fixture(scope="session")
def posed_model(calibrated, pose_image):
    _, model, _ = calibrated
    posed, _ = PoseEstimator(SQUARE, PATTERN).estimate(model, pose_image)
    return posed
