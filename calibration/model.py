"""Pinhole camera model with Brown-Conrady distortion and optional pose."""

from __future__ import annotations

from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import cv2
import numpy as np

from utils.error_tracker import NotCalibratedError
from utils.io import load_yaml, save_yaml
from utils.logger import Logger
from utils.math_utils import invert_transform, make_transform, rvec_to_matrix

logger = Logger.get_logger("calibration.model")

# OpenCV coefficient order
DIST_NAMES = ("k1", "k2", "p1", "p2", "k3")


def _opencv_matrix(mat: np.ndarray) -> Dict[str, Any]:
    mat = np.atleast_2d(mat)
    return {
        "rows": int(mat.shape[0]),
        "cols": int(mat.shape[1]),
        "dt": "d",
        "data": mat.astype(float).flatten().tolist(),
    }


def _from_opencv_matrix(node: Any, shape: Tuple[int, ...]) -> np.ndarray:
    data = node["data"] if isinstance(node, dict) else node
    return np.array(data, dtype=np.float64).reshape(shape)


@dataclass
class CameraModel:
    """
    Intrinsic camera parameters and, after pose estimation, the transform
    from the world plane to the camera frame.

    ``rvec``/``tvec`` map world coordinates to camera coordinates; the world
    reference plane is Z=0.
    """

    camera_matrix: np.ndarray
    dist_coeffs: np.ndarray
    image_size: Tuple[int, int]  # width, height
    rvec: Optional[np.ndarray] = None
    tvec: Optional[np.ndarray] = None
    calibration_error: Optional[float] = None
    pose_error: Optional[float] = None

    def __post_init__(self) -> None:
        self.camera_matrix = np.asarray(self.camera_matrix, dtype=np.float64).reshape(3, 3)
        dist = np.asarray(self.dist_coeffs, dtype=np.float64).ravel()
        if dist.size < 5:
            dist = np.concatenate([dist, np.zeros(5 - dist.size)])
        self.dist_coeffs = dist
        self.image_size = (int(self.image_size[0]), int(self.image_size[1]))
        if self.rvec is not None:
            self.rvec = np.asarray(self.rvec, dtype=np.float64).reshape(3)
        if self.tvec is not None:
            self.tvec = np.asarray(self.tvec, dtype=np.float64).reshape(3)

    # ------------------------------------------------------------------
    @property
    def fx(self) -> float:
        return float(self.camera_matrix[0, 0])

    @property
    def fy(self) -> float:
        return float(self.camera_matrix[1, 1])

    @property
    def cx(self) -> float:
        return float(self.camera_matrix[0, 2])

    @property
    def cy(self) -> float:
        return float(self.camera_matrix[1, 2])

    @property
    def has_pose(self) -> bool:
        return self.rvec is not None and self.tvec is not None

    def _require_pose(self) -> None:
        if not self.has_pose:
            raise NotCalibratedError("Camera model has no pose; run pose estimation first")

    @property
    def rotation(self) -> np.ndarray:
        self._require_pose()
        return rvec_to_matrix(self.rvec)

    @property
    def extrinsic_matrix(self) -> np.ndarray:
        """4x4 world-to-camera transform."""
        return make_transform(self.rotation, self.tvec)

    @property
    def camera_pose(self) -> np.ndarray:
        """4x4 camera-to-world transform."""
        return invert_transform(self.extrinsic_matrix)

    @property
    def camera_center(self) -> np.ndarray:
        """Optical centre in world coordinates."""
        R = self.rotation
        return -R.T @ self.tvec

    # ------------------------------------------------------------------
    def with_pose(
        self, rvec: np.ndarray, tvec: np.ndarray, error: Optional[float] = None
    ) -> "CameraModel":
        """Return a copy carrying the given pose."""
        return replace(
            self,
            camera_matrix=self.camera_matrix.copy(),
            dist_coeffs=self.dist_coeffs.copy(),
            rvec=np.asarray(rvec, dtype=np.float64).reshape(3),
            tvec=np.asarray(tvec, dtype=np.float64).reshape(3),
            pose_error=error,
        )

    def without_pose(self) -> "CameraModel":
        return replace(self, rvec=None, tvec=None, pose_error=None)

    def project(self, world_points: np.ndarray) -> np.ndarray:
        """Project world points (N,2) on the plane or (N,3) to pixels."""
        self._require_pose()
        pts = np.asarray(world_points, dtype=np.float64)
        pts = pts.reshape(-1, pts.shape[-1])
        if pts.shape[1] == 2:
            pts = np.column_stack([pts, np.zeros(len(pts))])
        proj, _ = cv2.projectPoints(
            pts.reshape(-1, 1, 3), self.rvec, self.tvec, self.camera_matrix, self.dist_coeffs
        )
        return proj.reshape(-1, 2)

    def undistort_pixels(self, pixels: np.ndarray) -> np.ndarray:
        """Remove lens distortion from pixel coordinates, staying in pixels."""
        pts = np.asarray(pixels, dtype=np.float64).reshape(-1, 1, 2)
        und = cv2.undistortPoints(
            pts, self.camera_matrix, self.dist_coeffs, P=self.camera_matrix
        )
        return und.reshape(-1, 2)

    def homography(self) -> np.ndarray:
        """
        World plane (X, Y, 1) to undistorted pixel homography.
        Not normalised, so the sign of the third row tells front from back.
        """
        R = self.rotation
        M = np.column_stack([R[:, 0], R[:, 1], self.tvec])
        return self.camera_matrix @ M

    def pixel_to_world(self, pixels: np.ndarray) -> np.ndarray:
        """
        Intersect the viewing rays of ``pixels`` with the world plane Z=0.
        Rays that do not hit the plane in front of the camera give NaN.
        """
        und = self.undistort_pixels(pixels)
        H_inv = np.linalg.inv(self.homography())
        hom = np.column_stack([und, np.ones(len(und))]) @ H_inv.T
        world = np.full((len(und), 2), np.nan)
        front = hom[:, 2] > 1e-12
        world[front] = hom[front, :2] / hom[front, 2:3]
        return world

    # ------------------------------------------------------------------
    def to_string(self) -> str:
        w, h = self.image_size
        dist = " ".join(f"{n}={v:.6g}" for n, v in zip(DIST_NAMES, self.dist_coeffs))
        text = (
            f"CameraModel {w}x{h} fx={self.fx:.3f} fy={self.fy:.3f} "
            f"cx={self.cx:.3f} cy={self.cy:.3f} {dist}"
        )
        if self.has_pose:
            t = ", ".join(f"{v:.3f}" for v in self.tvec)
            r = ", ".join(f"{v:.5f}" for v in self.rvec)
            text += f" pose: rvec=({r}) tvec=({t})"
        return text

    def __str__(self) -> str:
        return self.to_string()

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "image_width": self.image_size[0],
            "image_height": self.image_size[1],
            "camera_matrix": _opencv_matrix(self.camera_matrix),
            "distortion_coefficients": _opencv_matrix(self.dist_coeffs.reshape(1, -1)),
        }
        if self.calibration_error is not None:
            data["avg_reprojection_error"] = float(self.calibration_error)
        if self.has_pose:
            data["pose"] = {
                "rvec": self.rvec.astype(float).tolist(),
                "tvec": self.tvec.astype(float).tolist(),
            }
            if self.pose_error is not None:
                data["pose"]["avg_reprojection_error"] = float(self.pose_error)
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CameraModel":
        pose = data.get("pose") or {}
        return cls(
            camera_matrix=_from_opencv_matrix(data["camera_matrix"], (3, 3)),
            dist_coeffs=_from_opencv_matrix(data["distortion_coefficients"], (-1,)),
            image_size=(data["image_width"], data["image_height"]),
            rvec=pose.get("rvec"),
            tvec=pose.get("tvec"),
            calibration_error=data.get("avg_reprojection_error"),
            pose_error=pose.get("avg_reprojection_error"),
        )

    def save(self, path: str | Path) -> Path:
        """Write the model as YAML in the OpenCV matrix layout."""
        path = Path(path)
        save_yaml(path, self.to_dict())
        logger.info(f"Saved camera model to {path}")
        return path

    @classmethod
    def load(cls, path: str | Path) -> "CameraModel":
        return cls.from_dict(load_yaml(path))
