"""Image rectification: undistort, untilt and align to a world rectangle."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Tuple

import cv2
import numpy as np

from utils.error_tracker import CalibrationError, ConfigurationError, NotCalibratedError
from utils.logger import Logger, LoggerType
from utils.settings import correction as CORRCFG

from .model import CameraModel

INTERPOLATION = {
    "nearest": cv2.INTER_NEAREST,
    "linear": cv2.INTER_LINEAR,
    "cubic": cv2.INTER_CUBIC,
    "lanczos": cv2.INTER_LANCZOS4,
}

# Samples per image edge when tracing the image footprint on the world plane
EDGE_SAMPLES = 32


class CropMode(str, Enum):
    """VALID keeps only pixels backed by the source image, FULL keeps all."""

    VALID = "VALID"
    FULL = "FULL"

    @classmethod
    def parse(cls, name: "str | CropMode") -> "CropMode":
        try:
            return cls(str(getattr(name, "value", name)).upper())
        except ValueError as exc:
            raise ConfigurationError(f"Unknown crop mode: {name}") from exc


class CorrectionMode(str, Enum):
    UNDISTORT = "UNDISTORT"
    UNTILT = "UNTILT"
    ALIGN = "ALIGN"


def _rot2d(deg: float) -> np.ndarray:
    a = np.radians(deg)
    return np.array([[np.cos(a), -np.sin(a)], [np.sin(a), np.cos(a)]])


@dataclass(frozen=True)
class WorldRectangle:
    """Rectangle on the world plane, ``rotation`` in degrees about its centre."""

    center: Tuple[float, float]
    width: float
    height: float
    rotation: float = 0.0

    def __post_init__(self) -> None:
        if self.width <= 0 or self.height <= 0:
            raise ConfigurationError(
                f"World rectangle must have positive size, got {self.width}x{self.height}"
            )

    @property
    def origin(self) -> np.ndarray:
        """World position of the rectangle corner mapped to the output top-left."""
        half = np.array([-self.width / 2.0, -self.height / 2.0])
        return np.asarray(self.center, dtype=np.float64) + _rot2d(self.rotation) @ half

    def corners(self) -> np.ndarray:
        local = np.array(
            [
                [0.0, 0.0],
                [self.width, 0.0],
                [self.width, self.height],
                [0.0, self.height],
            ]
        )
        return self.origin + local @ _rot2d(self.rotation).T


@dataclass
class CorrectedImage:
    """
    Rectified image plus the mapping between its pixels and the world plane.

    For untilt and align output, pixel ``(u, v)`` (pixel centres at
    integers) shows world point ``origin + R(rotation) @ ((u + 0.5) * s,
    (v + 0.5) * s)`` with ``s`` the pixel size in world units. Undistorted
    output stays in pixel units and carries its new camera matrix instead.
    """

    image: np.ndarray
    mode: CorrectionMode
    world_origin: Optional[Tuple[float, float]] = None
    pixel_size: Optional[float] = None
    rotation: float = 0.0
    camera_matrix: Optional[np.ndarray] = None

    @property
    def is_metric(self) -> bool:
        return self.world_origin is not None and self.pixel_size is not None

    @property
    def size(self) -> Tuple[int, int]:
        return int(self.image.shape[1]), int(self.image.shape[0])

    def _require_metric(self) -> None:
        if not self.is_metric:
            raise NotCalibratedError(f"{self.mode.value} output has no world mapping")

    def pixel_to_world(self, pixels: np.ndarray) -> np.ndarray:
        self._require_metric()
        px = np.asarray(pixels, dtype=np.float64).reshape(-1, 2)
        local = (px + 0.5) * self.pixel_size
        return np.asarray(self.world_origin) + local @ _rot2d(self.rotation).T

    def world_to_pixel(self, points: np.ndarray) -> np.ndarray:
        self._require_metric()
        pts = np.asarray(points, dtype=np.float64).reshape(-1, 2)
        local = (pts - np.asarray(self.world_origin)) @ _rot2d(self.rotation)
        return local / self.pixel_size - 0.5


@dataclass
class _Plan:
    mode: CorrectionMode
    output_size: Tuple[int, int]
    map_x: np.ndarray
    map_y: np.ndarray
    world_origin: Optional[Tuple[float, float]] = None
    pixel_size: Optional[float] = None
    rotation: float = 0.0
    camera_matrix: Optional[np.ndarray] = None


@dataclass
class Correction:
    """
    Rectify images of a calibrated camera.

    Select a mode with one of the ``set_*_mode`` methods, then call
    :meth:`apply` for every image. Remap tables are computed when the mode
    is set and reused for all images.
    """

    interpolation: str = CORRCFG.interpolation
    max_output_side: int = CORRCFG.max_output_side
    logger: LoggerType = field(
        default_factory=lambda: Logger.get_logger("calibration.correction"),
        repr=False,
    )

    def __post_init__(self) -> None:
        if self.interpolation not in INTERPOLATION:
            raise ConfigurationError(f"Unknown interpolation: {self.interpolation}")
        self._plan: Optional[_Plan] = None
        self._model: Optional[CameraModel] = None

    @property
    def mode(self) -> Optional[CorrectionMode]:
        return self._plan.mode if self._plan else None

    # ------------------------------------------------------------------
    # Modes
    # ------------------------------------------------------------------
    def set_undistort_mode(
        self, model: CameraModel, crop: "str | CropMode" = CORRCFG.undistort_crop
    ) -> None:
        """Remove lens distortion while keeping the perspective."""
        crop = CropMode.parse(crop)
        size = tuple(model.image_size)
        alpha = 0.0 if crop is CropMode.VALID else 1.0
        new_K, _ = cv2.getOptimalNewCameraMatrix(
            model.camera_matrix, model.dist_coeffs, size, alpha, size
        )
        map_x, map_y = cv2.initUndistortRectifyMap(
            model.camera_matrix, model.dist_coeffs, None, new_K, size, cv2.CV_32FC1
        )
        self._model = model
        self._plan = _Plan(
            CorrectionMode.UNDISTORT, size, map_x, map_y, camera_matrix=new_K
        )
        self.logger.info(f"Undistort mode ({crop.value}), output {size[0]}x{size[1]}")

    def set_untilt_mode(
        self, model: CameraModel, crop: "str | CropMode" = CORRCFG.untilt_crop
    ) -> None:
        """Remove distortion and perspective: a top view of the world plane."""
        crop = CropMode.parse(crop)
        self._require_pose(model)
        footprint = self._footprint(model)
        pixel_size = self.native_pixel_size(model)
        lo, hi = footprint.min(axis=0), footprint.max(axis=0)
        if crop is CropMode.VALID:
            lo, hi = self._inner_box(footprint, lo, hi)
        origin = (float(lo[0]), float(lo[1]))
        extent = hi - lo
        self._set_metric_plan(CorrectionMode.UNTILT, model, origin, extent, pixel_size, 0.0)
        self.logger.info(
            f"Untilt mode ({crop.value}), world box {extent[0]:.2f}x{extent[1]:.2f} "
            f"from ({origin[0]:.2f}, {origin[1]:.2f})"
        )

    def set_align_mode(
        self,
        model: CameraModel,
        world_rectangle: WorldRectangle,
        pixel_size: Optional[float] = None,
    ) -> None:
        """Untilt and crop to exactly ``world_rectangle``."""
        self._require_pose(model)
        if pixel_size is not None and pixel_size <= 0:
            raise ConfigurationError(f"Pixel size must be positive, got {pixel_size}")
        size = pixel_size or self.native_pixel_size(model)
        origin = world_rectangle.origin
        extent = np.array([world_rectangle.width, world_rectangle.height])
        self._set_metric_plan(
            CorrectionMode.ALIGN,
            model,
            (float(origin[0]), float(origin[1])),
            extent,
            size,
            world_rectangle.rotation,
        )
        self.logger.info(
            f"Align mode, rectangle {world_rectangle.width:.2f}x"
            f"{world_rectangle.height:.2f} at {tuple(world_rectangle.center)}"
        )

    # ------------------------------------------------------------------
    def apply(self, image: np.ndarray) -> CorrectedImage:
        """Rectify ``image`` with the current mode."""
        if self._plan is None or self._model is None:
            raise NotCalibratedError("No correction mode set")
        h, w = image.shape[:2]
        if (w, h) != tuple(self._model.image_size):
            raise CalibrationError(
                f"Image is {w}x{h} but the model expects "
                f"{self._model.image_size[0]}x{self._model.image_size[1]}"
            )
        plan = self._plan
        out = cv2.remap(
            image,
            plan.map_x,
            plan.map_y,
            INTERPOLATION[self.interpolation],
            borderMode=cv2.BORDER_CONSTANT,
            borderValue=0,
        )
        return CorrectedImage(
            image=out,
            mode=plan.mode,
            world_origin=plan.world_origin,
            pixel_size=plan.pixel_size,
            rotation=plan.rotation,
            camera_matrix=None if plan.camera_matrix is None else plan.camera_matrix.copy(),
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    @staticmethod
    def _require_pose(model: CameraModel) -> None:
        if not model.has_pose:
            raise NotCalibratedError("Camera model has no pose; run pose estimation first")

    @staticmethod
    def native_pixel_size(model: CameraModel) -> float:
        """World size of one source pixel at the image centre."""
        cx, cy = model.image_size[0] / 2.0, model.image_size[1] / 2.0
        pts = model.pixel_to_world(np.array([[cx, cy], [cx + 1.0, cy], [cx, cy + 1.0]]))
        if not np.isfinite(pts).all():
            raise CalibrationError("Image centre does not see the world plane")
        dx = np.linalg.norm(pts[1] - pts[0])
        dy = np.linalg.norm(pts[2] - pts[0])
        return float(np.sqrt(dx * dy))

    @staticmethod
    def _footprint(model: CameraModel) -> np.ndarray:
        """Image border traced onto the world plane, as a closed polygon."""
        w, h = model.image_size
        xs = np.linspace(0.0, w - 1.0, EDGE_SAMPLES)
        ys = np.linspace(0.0, h - 1.0, EDGE_SAMPLES)
        border = np.concatenate(
            [
                np.column_stack([xs, np.zeros_like(xs)]),
                np.column_stack([np.full_like(ys, w - 1.0), ys]),
                np.column_stack([xs[::-1], np.full_like(xs, h - 1.0)]),
                np.column_stack([np.zeros_like(ys), ys[::-1]]),
            ]
        )
        world = model.pixel_to_world(border)
        if not np.isfinite(world).all():
            raise CalibrationError(
                "Image footprint on the world plane is unbounded; use align mode"
            )
        return world

    @staticmethod
    def _inner_box(
        footprint: np.ndarray, lo: np.ndarray, hi: np.ndarray
    ) -> Tuple[np.ndarray, np.ndarray]:
        """Shrink the bounding box towards the centroid until it fits the footprint."""
        poly = footprint.reshape(-1, 1, 2).astype(np.float32)
        centre = footprint.mean(axis=0)
        for scale in np.linspace(1.0, 0.01, 100):
            a = centre + (lo - centre) * scale
            b = centre + (hi - centre) * scale
            corners = [(a[0], a[1]), (b[0], a[1]), (b[0], b[1]), (a[0], b[1])]
            if all(
                cv2.pointPolygonTest(poly, (float(x), float(y)), False) >= 0
                for x, y in corners
            ):
                return a, b
        raise CalibrationError("No valid region inside the image footprint")

    def _set_metric_plan(
        self,
        mode: CorrectionMode,
        model: CameraModel,
        origin: Tuple[float, float],
        extent: np.ndarray,
        pixel_size: float,
        rotation: float,
    ) -> None:
        longest = float(max(extent)) / pixel_size
        if longest > self.max_output_side:
            scaled = float(max(extent)) / self.max_output_side
            self.logger.warning(
                f"Output would be {longest:.0f}px wide, pixel size raised "
                f"from {pixel_size:.4f} to {scaled:.4f}"
            )
            pixel_size = scaled
        out_w = max(1, int(round(extent[0] / pixel_size)))
        out_h = max(1, int(round(extent[1] / pixel_size)))
        map_x, map_y = self._plane_maps(model, origin, pixel_size, rotation, (out_w, out_h))
        self._model = model
        self._plan = _Plan(
            mode,
            (out_w, out_h),
            map_x,
            map_y,
            world_origin=origin,
            pixel_size=float(pixel_size),
            rotation=float(rotation),
        )

    @staticmethod
    def _plane_maps(
        model: CameraModel,
        origin: Tuple[float, float],
        pixel_size: float,
        rotation: float,
        size: Tuple[int, int],
    ) -> Tuple[np.ndarray, np.ndarray]:
        """Source pixel for every output pixel of a world-plane view."""
        w, h = size
        u, v = np.meshgrid(np.arange(w, dtype=np.float64), np.arange(h, dtype=np.float64))
        local = np.stack([(u.ravel() + 0.5) * pixel_size, (v.ravel() + 0.5) * pixel_size], axis=1)
        world = np.asarray(origin) + local @ _rot2d(rotation).T
        pix = model.project(world)
        map_x = pix[:, 0].reshape(h, w).astype(np.float32)
        map_y = pix[:, 1].reshape(h, w).astype(np.float32)
        return map_x, map_y


__all__ = [
    "CropMode",
    "CorrectionMode",
    "WorldRectangle",
    "CorrectedImage",
    "Correction",
]
