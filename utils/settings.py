"""Project wide configuration dataclasses and default values."""

from dataclasses import dataclass
from pathlib import Path

# Root dir
BASE_DIR = Path(__file__).resolve().parent.parent

# Image formats picked up from calibration folders, listed in scan order
IMAGE_EXTENSIONS = (".png", ".bmp", ".jpg", ".jpeg")

# Extension used for corrected images and diagnostic plots
IMAGE_EXT = ".png"



@dataclass(frozen=True)
class Paths:
    """
    Dataclass aggregating all important filesystem paths used in the project.
    Calibration images are read from ``resources``; models, corrected images
    and plots are written below ``.data``.
    """

    RESOURCES_DIR: Path = BASE_DIR / "resources"
    CAMERA_IMAGES_DIR: Path = RESOURCES_DIR / "camera"
    POSE_IMAGE: Path = RESOURCES_DIR / "pose" / "pose.bmp"
    RESULTS_DIR: Path = BASE_DIR / ".data" / "calib_res"
    VIZ_DIR: Path = BASE_DIR / ".data" / "calib_viz"
    LOG_DIR: Path = BASE_DIR / ".logs"


paths = Paths()


@dataclass(frozen=True)
class LoggingCfg:
    """
    Logging configuration for the project.

    - level: Log level ("INFO", "DEBUG", etc.)
    - json: Enable/disable structured JSON logging.
    - log_dir: Directory where log files are stored.
    - log_format: Console log output format.
    - log_file_format: File log output format.
    - progress_bar_format: TQDM progress bar format.
    """

    level: str = "INFO"
    json: bool = True
    log_dir: Path = Path(".logs")
    log_format: str = (
        "<green>{time:MM-DD HH:mm:ss}</green>"
        "[<level>{level:.3}</level>]"
        "[<cyan>{extra[module]:.16}</cyan>:<cyan>{line:<3}</cyan>]"
        "<level>{message}</level>"
    )
    log_file_format: str = "{time:YYYY-MM-DD HH:mm:ss}[{level}][{file}:{line}]{message}"
    progress_bar_format: str = (
        "{l_bar}{bar}| {n_fmt}/{total_fmt} [{elapsed}<{remaining}]"
    )


logging = LoggingCfg()


@dataclass(frozen=True)
class CheckerboardDefaults:
    """
    Default parameters for the checkerboard calibration target.
    - square_size: side length of one square in world units (mm)
    - pattern_size: inner corners (columns, rows), ``None`` to auto-detect
    - candidate_sizes: inner-corner layouts tried during auto-detection
    """

    square_size: float = 166.0 / 11
    pattern_size: tuple[int, int] | None = None
    candidate_sizes: tuple[tuple[int, int], ...] = (
        (11, 11),
        (12, 12),
        (10, 10),
        (9, 6),
        (8, 6),
        (7, 5),
        (6, 9),
        (6, 8),
        (5, 7),
    )


checkerboard = CheckerboardDefaults()


@dataclass(frozen=True)
class CalibrationDefaults:
    """
    Multi-shot intrinsic calibration parameters.

    ``distortion`` enables the coefficients in OpenCV order
    (k1, k2, p1, p2, k3). ``uniqueness_threshold`` is the mean corner
    displacement in pixels below which a new view counts as a duplicate.
    """

    target_type: str = "CHECKERBOARD"
    distortion: tuple[bool, bool, bool, bool, bool] = (True, True, False, False, False)
    uniqueness_enabled: bool = True
    uniqueness_threshold: float = 1.0
    min_views: int = 6
    recommended_views: int = 9
    coverage_grid: tuple[int, int] = (8, 6)  # columns, rows
    max_iterations: int = 100
    epsilon: float = 1e-6


calibration = CalibrationDefaults()


@dataclass(frozen=True)
class CorrectionDefaults:
    """
    Rectification defaults.
    Align mode centre and size are expressed in checker squares.
    """

    undistort_crop: str = "VALID"
    untilt_crop: str = "FULL"
    align_center_squares: float = 6.0
    align_size_squares: float = 13.0
    interpolation: str = "linear"
    max_output_side: int = 4096


correction = CorrectionDefaults()


@dataclass(frozen=True)
class FeedbackDefaults:
    """Bin counts and scaling used for coverage feedback data."""

    bin_count: int = 7
    tilt_range: tuple[float, float] = (-1.0, 1.0)
    distance_margin: float = 1.2
    coverage_saturation: float = 10.0
    fill_alpha: int = 120
    line_alpha: int = 180


feedback = FeedbackDefaults()


__all__ = [
    "Paths",
    "LoggingCfg",
    "CheckerboardDefaults",
    "CalibrationDefaults",
    "CorrectionDefaults",
    "FeedbackDefaults",
    "BASE_DIR",
    "IMAGE_EXTENSIONS",
    "IMAGE_EXT",
    "paths",
    "logging",
    "checkerboard",
    "calibration",
    "correction",
    "feedback",
]
