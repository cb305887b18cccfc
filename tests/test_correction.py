import numpy as np
import pytest

from calibration.correction import (
    Correction,
    CorrectionMode,
    CropMode,
    WorldRectangle,
)
from calibration.model import CameraModel
from calibration.pattern import CheckerboardPattern, make_objpoints
from utils.error_tracker import CalibrationError, ConfigurationError, NotCalibratedError
from synthetic import IMAGE_SIZE, K_TRUE, PATTERN, SQUARE

BOARD_RECT = WorldRectangle(center=(45.0, 30.0), width=150.0, height=120.0)


def _board_offsets(corrected):
    det = CheckerboardPattern(SQUARE, PATTERN).detect(corrected.image)
    assert det is not None
    expected = corrected.world_to_pixel(make_objpoints(PATTERN, SQUARE)[:, :2])
    return np.linalg.norm(det.image_points - expected, axis=1)


def test_undistort_keeps_size(calibrated, pose_image):
    _, model, _ = calibrated
    corr = Correction()
    for crop in ("VALID", "FULL"):
        corr.set_undistort_mode(model, crop)
        out = corr.apply(pose_image)
        assert out.mode is CorrectionMode.UNDISTORT
        assert out.image.shape == pose_image.shape
        assert not out.is_metric
        assert out.camera_matrix[0, 0] == pytest.approx(800.0, rel=0.05)
    with pytest.raises(NotCalibratedError):
        out.world_to_pixel([(0.0, 0.0)])


def test_untilt_full_is_metric(posed_model, pose_image):
    corr = Correction()
    corr.set_untilt_mode(posed_model, CropMode.FULL)
    out = corr.apply(pose_image)
    assert out.mode is CorrectionMode.UNTILT
    assert out.is_metric
    assert out.pixel_size == pytest.approx(430.0 / 800.0, rel=0.1)
    assert _board_offsets(out).max() < 1.0


def test_untilt_valid_inside_full(posed_model, pose_image):
    corr = Correction()
    corr.set_untilt_mode(posed_model, "FULL")
    full = corr.apply(pose_image)
    corr.set_untilt_mode(posed_model, "VALID")
    valid = corr.apply(pose_image)
    assert valid.size[0] <= full.size[0] and valid.size[1] <= full.size[1]
    w, h = valid.size
    corners = valid.pixel_to_world([(0, 0), (w - 1, 0), (w - 1, h - 1), (0, h - 1)])
    src = posed_model.project(corners)
    assert np.all(src >= -1.0)
    assert np.all(src[:, 0] <= IMAGE_SIZE[0]) and np.all(src[:, 1] <= IMAGE_SIZE[1])


def test_align_covers_rectangle(posed_model, pose_image):
    corr = Correction()
    corr.set_align_mode(posed_model, BOARD_RECT, pixel_size=0.5)
    assert corr.mode is CorrectionMode.ALIGN
    out = corr.apply(pose_image)
    assert out.mode is CorrectionMode.ALIGN
    assert out.size == (300, 240)
    assert np.allclose(out.world_to_pixel([(45.0, 30.0)]), [(149.5, 119.5)])
    assert _board_offsets(out).max() < 1.0


def test_rotated_rectangle_mapping_round_trip(posed_model, pose_image):
    rect = WorldRectangle((45.0, 30.0), 150.0, 120.0, rotation=90.0)
    assert np.allclose(rect.corners()[0], rect.origin)
    corr = Correction()
    corr.set_align_mode(posed_model, rect, pixel_size=0.5)
    out = corr.apply(pose_image)
    assert out.size == (300, 240)
    pts = np.array([[0.0, 0.0], [45.0, 30.0], [100.0, -10.0]])
    assert np.allclose(out.pixel_to_world(out.world_to_pixel(pts)), pts)
    assert np.allclose(out.pixel_to_world([(-0.5, -0.5)]), [rect.origin])


def test_output_size_is_capped(posed_model, pose_image):
    corr = Correction(max_output_side=200)
    corr.set_untilt_mode(posed_model, "FULL")
    out = corr.apply(pose_image)
    assert max(out.size) <= 201


def test_apply_requires_mode(pose_image):
    assert Correction().mode is None
    with pytest.raises(NotCalibratedError):
        Correction().apply(pose_image)


def test_metric_modes_require_pose(calibrated):
    _, model, _ = calibrated
    corr = Correction()
    with pytest.raises(NotCalibratedError):
        corr.set_untilt_mode(model)
    with pytest.raises(NotCalibratedError):
        corr.set_align_mode(model, BOARD_RECT)


def test_apply_checks_image_size(posed_model):
    corr = Correction()
    corr.set_undistort_mode(posed_model)
    with pytest.raises(CalibrationError):
        corr.apply(np.zeros((100, 100), np.uint8))


def test_untilt_rejects_horizon():
    rvec = np.array([np.radians(80.0), 0.0, 0.0])
    model = CameraModel(K_TRUE, np.zeros(5), IMAGE_SIZE).with_pose(
        rvec, np.array([0.0, 0.0, 500.0])
    )
    with pytest.raises(CalibrationError):
        Correction().set_untilt_mode(model)


def test_invalid_settings(posed_model):
    with pytest.raises(ConfigurationError):
        CropMode.parse("SOME")
    with pytest.raises(ConfigurationError):
        Correction(interpolation="sinc")
    with pytest.raises(ConfigurationError):
        WorldRectangle((0.0, 0.0), 0.0, 10.0)
    with pytest.raises(ConfigurationError):
        Correction().set_align_mode(posed_model, BOARD_RECT, pixel_size=-1.0)
