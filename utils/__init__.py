"""Shared helper modules used across the project.

The :mod:`utils` package holds the logging, configuration, error handling,
CLI dispatching and file I/O helpers used by :mod:`calibration`.
"""

from .logger import Logger, LoggerType
from .settings import (
    IMAGE_EXT,
    IMAGE_EXTENSIONS,
    paths,
    checkerboard,
    calibration,
    correction,
    feedback,
    logging,
)
from .error_tracker import (
    CalibrationError,
    ConfigurationError,
    ErrorTracker,
    ImageSourceError,
    InsufficientDataError,
    NotCalibratedError,
    PatternNotFoundError,
)
from .io import (
    image_loader,
    iter_images,
    list_image_files,
    read_image,
    write_image,
    load_json,
    save_json,
    load_yaml,
    save_yaml,
)
from .math_utils import (
    make_transform,
    decompose_transform,
    invert_transform,
)

__all__ = [
    "Logger",
    "LoggerType",
    "IMAGE_EXT",
    "IMAGE_EXTENSIONS",
    "paths",
    "checkerboard",
    "calibration",
    "correction",
    "feedback",
    "logging",
    "CalibrationError",
    "ConfigurationError",
    "ErrorTracker",
    "ImageSourceError",
    "InsufficientDataError",
    "NotCalibratedError",
    "PatternNotFoundError",
    "image_loader",
    "iter_images",
    "list_image_files",
    "read_image",
    "write_image",
    "load_json",
    "save_json",
    "load_yaml",
    "save_yaml",
    "make_transform",
    "decompose_transform",
    "invert_transform",
]
