import numpy as np
import pytest

from calibration.model import CameraModel
from utils.error_tracker import NotCalibratedError
from synthetic import IMAGE_SIZE, K_TRUE, POSE_VIEW, view_pose


def _posed_model():
    rvec, t = view_pose(POSE_VIEW)
    return CameraModel(K_TRUE, [0.01, -0.02], IMAGE_SIZE).with_pose(rvec, t, 0.1)


def test_distortion_padded_to_five():
    model = CameraModel(K_TRUE, [0.1, -0.05], IMAGE_SIZE)
    assert model.dist_coeffs.shape == (5,)
    assert model.dist_coeffs[4] == 0.0
    assert model.fx == 800.0 and model.cy == 240.0


def test_with_pose_keeps_original():
    base = CameraModel(K_TRUE, np.zeros(5), IMAGE_SIZE)
    rvec, t = view_pose(POSE_VIEW)
    posed = base.with_pose(rvec, t, 0.2)
    assert posed.has_pose and not base.has_pose
    assert posed.pose_error == 0.2
    assert not posed.without_pose().has_pose


def test_requires_pose():
    model = CameraModel(K_TRUE, np.zeros(5), IMAGE_SIZE)
    with pytest.raises(NotCalibratedError):
        model.project(np.zeros((1, 2)))
    with pytest.raises(NotCalibratedError):
        model.pixel_to_world(np.zeros((1, 2)))


def test_pixel_to_world_inverts_project():
    model = _posed_model()
    world = np.array([[0.0, 0.0], [90.0, 0.0], [45.0, 30.0], [-20.0, 75.0]])
    pix = model.project(world)
    assert np.allclose(model.pixel_to_world(pix), world, atol=1e-3)


def test_camera_center_matches_pose():
    model = _posed_model()
    centre = model.camera_center
    assert np.allclose(model.camera_pose[:3, 3], centre)
    assert centre[2] < 0  # board faces the camera from Z=0


def test_plane_behind_camera_is_nan():
    model = CameraModel(K_TRUE, np.zeros(5), IMAGE_SIZE).with_pose(
        np.zeros(3), np.array([0.0, 0.0, -100.0])
    )
    world = model.pixel_to_world(np.array([[320.0, 240.0], [10.0, 10.0]]))
    assert np.isnan(world).all()


def test_save_and_load(tmp_path):
    model = _posed_model()
    model.calibration_error = 0.123
    path = model.save(tmp_path / "model.yaml")
    loaded = CameraModel.load(path)
    assert np.allclose(loaded.camera_matrix, model.camera_matrix)
    assert np.allclose(loaded.dist_coeffs, model.dist_coeffs)
    assert np.allclose(loaded.rvec, model.rvec)
    assert np.allclose(loaded.tvec, model.tvec)
    assert loaded.image_size == IMAGE_SIZE
    assert loaded.calibration_error == pytest.approx(0.123)
    assert loaded.pose_error == pytest.approx(0.1)


def test_dict_layout():
    data = CameraModel(K_TRUE, np.zeros(5), IMAGE_SIZE).to_dict()
    assert data["camera_matrix"]["rows"] == 3
    assert len(data["distortion_coefficients"]["data"]) == 5
    assert "pose" not in data
    assert "fx=800.000" in CameraModel.from_dict(data).to_string()
