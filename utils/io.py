"""File I/O helpers for calibration images and results."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Callable, Iterator, List, Optional, Tuple

import cv2
import numpy as np
import yaml

from utils.error_tracker import ImageSourceError
from utils.logger import Logger
from utils.settings import IMAGE_EXTENSIONS

log = Logger.get_logger("utils.io")


def list_image_files(folder: str | Path) -> List[Path]:
    """
    Return image files in ``folder``.

    Files are grouped by extension in :data:`IMAGE_EXTENSIONS` order and
    sorted by name inside each group.
    """
    folder = Path(folder)
    if not folder.is_dir():
        raise ImageSourceError(f"Image folder not found: {folder}")
    files: List[Path] = []
    for ext in IMAGE_EXTENSIONS:
        files.extend(
            sorted(
                p for p in folder.iterdir() if p.is_file() and p.suffix.lower() == ext
            )
        )
    return files


def read_image(path: str | Path) -> np.ndarray | None:
    """Return an image from ``path`` or ``None`` if loading fails."""
    return cv2.imread(str(path), cv2.IMREAD_UNCHANGED)


def write_image(path: str | Path, img: np.ndarray) -> None:
    """Save an image to disk, creating parent folders."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    if not cv2.imwrite(str(path), img):
        raise ImageSourceError(f"Failed to write image: {path}")


def iter_images(folder: str | Path) -> Iterator[Tuple[Path, np.ndarray]]:
    """Yield ``(path, image)`` pairs, skipping files that cannot be decoded."""
    for path in list_image_files(folder):
        img = read_image(path)
        if img is None:
            log.warning(f"Skipping unreadable image {path.name}")
            continue
        yield path, img


def image_loader(folder: str | Path) -> Callable[[], Optional[np.ndarray]]:
    """
    Return a callable producing the next image of ``folder`` on each call.

    The callable returns ``None`` once all images have been consumed, so it
    can drive a ``while image is not None`` loop.
    """
    images = iter_images(folder)

    def _next() -> Optional[np.ndarray]:
        return next(images, (None, None))[1]

    return _next


def load_json(path: str | Path) -> Any:
    """Load JSON data from ``path``."""
    with open(path, "r", encoding="utf-8") as f:
        return json.load(f)


def save_json(path: str | Path, data: Any) -> None:
    """Write data as JSON to ``path``."""
    Path(path).parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(data, f, indent=2)


def load_yaml(path: str | Path) -> Any:
    """Load YAML data from ``path``."""
    with open(path, "r", encoding="utf-8") as f:
        return yaml.safe_load(f)


def save_yaml(path: str | Path, data: Any) -> None:
    """Write data as YAML to ``path``."""
    Path(path).parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        yaml.safe_dump(data, f, sort_keys=False)
