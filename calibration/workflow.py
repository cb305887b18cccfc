"""End-to-end multi-shot calibration: intrinsics, pose and corrected images."""

from __future__ import annotations

import argparse
import math
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import cv2
import numpy as np

from utils.config import Config
from utils.error_tracker import ImageSourceError, InsufficientDataError
from utils.io import iter_images, list_image_files, read_image, save_json, write_image
from utils.logger import Logger, LoggerType
from utils.settings import (
    BASE_DIR,
    IMAGE_EXT,
    calibration as CALCFG,
    checkerboard as CBCFG,
    correction as CORRCFG,
    paths,
)

from .calibrator import CameraCalibrator, DataCompleteness
from .correction import CorrectedImage, Correction, WorldRectangle
from .model import CameraModel
from .pose import PoseEstimator
from .visualizer import plot_completeness, plot_reprojection_errors

MODEL_FILE = "camera_model.yaml"
SUMMARY_FILE = "calibration_summary.json"


def _truncate(value: float, digits: int = 2) -> float:
    scale = 10**digits
    return math.floor(value * scale) / scale


def _project_path(value: Any) -> Path:
    path = Path(value)
    return path if path.is_absolute() else BASE_DIR / path


@dataclass
class MultiShotConfig:
    """Settings for one calibration run."""

    images_dir: Path = paths.CAMERA_IMAGES_DIR
    pose_image: Path = paths.POSE_IMAGE
    results_dir: Path = paths.RESULTS_DIR
    viz_dir: Path = paths.VIZ_DIR
    square_size: float = CBCFG.square_size
    pose_square_size: Optional[float] = None
    pattern_size: Optional[Tuple[int, int]] = CBCFG.pattern_size
    target_type: str = CALCFG.target_type
    distortion: Tuple[bool, ...] = CALCFG.distortion
    uniqueness_enabled: bool = CALCFG.uniqueness_enabled
    uniqueness_threshold: float = CALCFG.uniqueness_threshold
    min_views: int = CALCFG.min_views
    recommended_views: int = CALCFG.recommended_views
    coverage_grid: Tuple[int, int] = CALCFG.coverage_grid
    undistort_crop: str = CORRCFG.undistort_crop
    untilt_crop: str = CORRCFG.untilt_crop
    align_center_squares: float = CORRCFG.align_center_squares
    align_size_squares: float = CORRCFG.align_size_squares
    save_plots: bool = True
    save_corrected: bool = True
    annotate: bool = True

    @property
    def world_square_size(self) -> float:
        """Square size of the pose target, defaults to the calibration board."""
        return self.pose_square_size or self.square_size

    @classmethod
    def from_config(cls) -> "MultiShotConfig":
        """Build from the loaded :class:`Config`, falling back to defaults."""
        pattern = Config.get("checkerboard.pattern_size")
        return cls(
            images_dir=_project_path(Config.get("paths.camera_images", paths.CAMERA_IMAGES_DIR)),
            pose_image=_project_path(Config.get("paths.pose_image", paths.POSE_IMAGE)),
            results_dir=_project_path(Config.get("paths.results_dir", paths.RESULTS_DIR)),
            viz_dir=_project_path(Config.get("paths.viz_dir", paths.VIZ_DIR)),
            square_size=float(Config.get("checkerboard.square_size", CBCFG.square_size)),
            pose_square_size=Config.get("pose.square_size"),
            pattern_size=tuple(pattern) if pattern else None,
            target_type=Config.get("calibration.target_type", CALCFG.target_type),
            distortion=tuple(Config.get("calibration.distortion", CALCFG.distortion)),
            uniqueness_enabled=bool(
                Config.get("calibration.uniqueness.enabled", CALCFG.uniqueness_enabled)
            ),
            uniqueness_threshold=float(
                Config.get("calibration.uniqueness.threshold", CALCFG.uniqueness_threshold)
            ),
            min_views=int(Config.get("calibration.min_views", CALCFG.min_views)),
            recommended_views=int(
                Config.get("calibration.recommended_views", CALCFG.recommended_views)
            ),
            coverage_grid=tuple(Config.get("calibration.coverage_grid", CALCFG.coverage_grid)),
            undistort_crop=Config.get("correction.undistort_crop", CORRCFG.undistort_crop),
            untilt_crop=Config.get("correction.untilt_crop", CORRCFG.untilt_crop),
            align_center_squares=float(
                Config.get("correction.align_center_squares", CORRCFG.align_center_squares)
            ),
            align_size_squares=float(
                Config.get("correction.align_size_squares", CORRCFG.align_size_squares)
            ),
            save_plots=bool(Config.get("workflow.save_plots", True)),
            save_corrected=bool(Config.get("workflow.save_corrected", True)),
        )

    def with_args(self, args: argparse.Namespace) -> "MultiShotConfig":
        """Override fields with CLI arguments that were given."""
        names = {f.name for f in fields(self)}
        overrides: Dict[str, Any] = {}
        for key, value in vars(args).items():
            if key not in names or value is None:
                continue
            if key in ("images_dir", "pose_image", "results_dir", "viz_dir"):
                value = Path(value)
            elif key == "pattern_size":
                value = tuple(value)
            overrides[key] = value
        return replace(self, **overrides)


@dataclass
class WorkflowResult:
    model: Optional[CameraModel] = None
    calibration_error: Optional[float] = None
    pose_error: Optional[float] = None
    views_added: int = 0
    views_rejected: int = 0
    completeness: Optional[DataCompleteness] = None
    corrected: Dict[str, CorrectedImage] = field(default_factory=dict)
    outputs: List[Path] = field(default_factory=list)


@dataclass
class MultiShotWorkflow:
    """
    Calibrate a camera from a folder of checkerboard shots, locate the world
    frame in a pose image and write undistorted, untilted and aligned
    versions of it.
    """

    config: MultiShotConfig = field(default_factory=MultiShotConfig)
    logger: LoggerType = field(
        default_factory=lambda: Logger.get_logger("calibration.workflow"), repr=False
    )

    # ------------------------------------------------------------------
    def build_calibrator(self) -> CameraCalibrator:
        cfg = self.config
        calibrator = CameraCalibrator(
            square_size=cfg.square_size,
            pattern_size=cfg.pattern_size,
            coverage_grid=cfg.coverage_grid,
            min_views=cfg.min_views,
            recommended_views=cfg.recommended_views,
        )
        calibrator.set_target_type(cfg.target_type)
        calibrator.set_distortion_coefficients_enabled(*cfg.distortion)
        calibrator.set_uniqueness_threshold(cfg.uniqueness_enabled, cfg.uniqueness_threshold)
        return calibrator

    def calibrate(self, result: WorkflowResult) -> CameraModel:
        """Feed every image of ``images_dir`` to the calibrator and estimate."""
        files = list_image_files(self.config.images_dir)
        if not files:
            raise ImageSourceError(f"No images found in {self.config.images_dir}")
        self.logger.info(f"Found {len(files)} images in {self.config.images_dir}")

        calibrator = self.build_calibrator()
        images = iter_images(self.config.images_dir)
        for path, img in Logger.progress(images, desc="Calibration images", total=len(files)):
            added = calibrator.add_image(img)
            if added.added:
                result.views_added += 1
                self.logger.info(f"Added: {result.views_added} ({path.name})")
            else:
                self.logger.info(f"Skipped {path.name}: {added.reason}")
        result.views_rejected = len(files) - result.views_added

        result.completeness = calibrator.data_completeness()
        if calibrator.view_count < calibrator.min_views:
            raise InsufficientDataError(
                f"Only {calibrator.view_count} usable views, "
                f"at least {calibrator.min_views} required"
            )
        model, error = calibrator.estimate()
        result.completeness = calibrator.data_completeness()
        result.model = model
        result.calibration_error = error
        self.logger.info(f"Camera calibrated with average error: {_truncate(error)} px")
        self.logger.info(model.to_string())

        out = model.save(self.config.results_dir / MODEL_FILE)
        result.outputs.append(out)
        result.outputs.append(self._save_summary(calibrator, error, result))
        if self.config.save_plots:
            self._plots(calibrator, error, result)
        return model

    def _save_summary(
        self, calibrator: CameraCalibrator, error: float, result: WorkflowResult
    ) -> Path:
        data = result.completeness
        summary = {
            "views_added": result.views_added,
            "views_rejected": result.views_rejected,
            "average_error": error,
            "view_errors": calibrator.view_errors,
            "area": data.area,
            "tilt_x": data.tilt_x,
            "tilt_y": data.tilt_y,
            "distance": data.distance,
            "coverage": data.coverage.scores.tolist(),
        }
        path = self.config.results_dir / SUMMARY_FILE
        save_json(path, summary)
        return path

    def _plots(self, calibrator: CameraCalibrator, error: float, result: WorkflowResult) -> None:
        viz = self.config.viz_dir
        for out in (
            plot_reprojection_errors(calibrator.view_errors, viz / "reprojection_errors", error),
            plot_completeness(result.completeness, viz / "completeness"),
        ):
            if out is not None:
                result.outputs.append(out)

    def locate(
        self, model: CameraModel, pose_image: np.ndarray, result: WorkflowResult
    ) -> CameraModel:
        """Estimate the camera pose from the pose image."""
        estimator = PoseEstimator(self.config.world_square_size, self.config.pattern_size)
        posed, error = estimator.estimate(model, pose_image)
        result.model = posed
        result.pose_error = error
        self.logger.info(f"Pose calibrated with average error: {_truncate(error)} px")
        out = posed.save(self.config.results_dir / MODEL_FILE)
        if out not in result.outputs:
            result.outputs.append(out)
        return posed

    def align_rectangle(self) -> WorldRectangle:
        sq = self.config.world_square_size
        cxy = sq * self.config.align_center_squares
        sxy = sq * self.config.align_size_squares
        return WorldRectangle((cxy, cxy), sxy, sxy)

    def correct(
        self, model: CameraModel, image: np.ndarray, result: WorkflowResult
    ) -> Dict[str, CorrectedImage]:
        """Apply the undistort, untilt and align corrections to ``image``."""
        cfg = self.config
        correction = Correction()
        steps = (
            ("undistort", lambda: correction.set_undistort_mode(model, cfg.undistort_crop)),
            ("untilt", lambda: correction.set_untilt_mode(model, cfg.untilt_crop)),
            ("align", lambda: correction.set_align_mode(model, self.align_rectangle())),
        )
        for name, set_mode in steps:
            set_mode()
            corrected = correction.apply(image)
            result.corrected[name] = corrected
            w, h = corrected.size
            self.logger.info(f"{name.capitalize()} mode: {w}x{h} image")
            if cfg.save_corrected:
                out = cfg.results_dir / f"{name}{IMAGE_EXT}"
                img = self._annotate(corrected, f"{name.capitalize()} mode") if cfg.annotate else corrected.image
                write_image(out, img)
                result.outputs.append(out)
        return result.corrected

    def _annotate(self, corrected: CorrectedImage, text: str) -> np.ndarray:
        """Write ``text`` near the image origin, at world (0, square) when metric."""
        img = corrected.image.copy()
        h = img.shape[0]
        scale = max(h / 600.0, 0.4)
        pos = (25, 25 + int(20 * scale))
        if corrected.is_metric:
            px = corrected.world_to_pixel([(0.0, self.config.world_square_size)])[0]
            if np.all(np.isfinite(px)) and 0 <= px[1] < h and 0 <= px[0] < img.shape[1]:
                pos = (int(px[0]), int(px[1]))
        color = (0, 230, 0) if img.ndim == 3 else (255,)
        cv2.putText(img, text, pos, cv2.FONT_HERSHEY_SIMPLEX, scale, color, max(1, int(scale * 2)))
        return img

    def _pose_image(self) -> np.ndarray:
        img = read_image(self.config.pose_image)
        if img is None:
            raise ImageSourceError(f"Cannot read pose image {self.config.pose_image}")
        return img

    # ------------------------------------------------------------------
    def run(self) -> WorkflowResult:
        """Intrinsics, pose and all three corrections."""
        result = WorkflowResult()
        model = self.calibrate(result)
        pose_image = self._pose_image()
        posed = self.locate(model, pose_image, result)
        self.correct(posed, pose_image, result)
        self.logger.info("Multi-shot calibration finished")
        return result

    def run_intrinsics(self) -> WorkflowResult:
        result = WorkflowResult()
        self.calibrate(result)
        return result

    def run_pose(self, model_path: Path) -> WorkflowResult:
        """Pose and corrections from a previously saved intrinsic model."""
        result = WorkflowResult()
        model = CameraModel.load(model_path).without_pose()
        result.model = model
        result.calibration_error = model.calibration_error
        self.logger.info(f"Loaded {model.to_string()}")
        pose_image = self._pose_image()
        posed = self.locate(model, pose_image, result)
        self.correct(posed, pose_image, result)
        return result
