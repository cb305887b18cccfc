"""
Coverage feedback geometry.

These helpers turn :class:`~calibration.calibrator.DataCompleteness` into
plain shapes (cells, polylines, ruler ticks and labels) in image pixel
coordinates. Drawing them is left to the caller; :mod:`calibration.visualizer`
uses the histograms for its report.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple

import numpy as np

from utils.settings import feedback as FBCFG

from .calibrator import CoverageGrid, DataCompleteness

Color = Tuple[int, int, int, int]  # RGBA

TILT_X_COLOR: Color = (255, 153, 51, 255)
TILT_Y_COLOR: Color = (0, 136, 194, 255)
WHITE_FILL: Color = (255, 255, 255, FBCFG.fill_alpha)
WHITE_LINE: Color = (255, 255, 255, FBCFG.line_alpha)


def histogram(values: Sequence[float], count: int, lower: float, upper: float) -> List[int]:
    """
    Count ``values`` in ``count`` equal bins over ``[lower, upper)``.

    Values outside the range are counted in the first or last bin. NaN
    values are ignored.
    """
    if count < 1:
        raise ValueError(f"Bin count must be positive, got {count}")
    if upper <= lower:
        raise ValueError(f"Empty histogram range [{lower}, {upper})")
    binsize = (upper - lower) / count
    hist = [0] * count
    for v in values:
        if v is None or math.isnan(v):
            continue
        idx = int(math.floor((v - lower) / binsize))
        hist[min(max(idx, 0), count - 1)] += 1
    return hist


def polyline(values: Sequence[float], step: float, height: float, steps: float) -> np.ndarray:
    """Points ``(min(height, v * height / steps), step * i)`` as an (N, 2) array."""
    scale = height / steps
    pts = [(min(height, v * scale), step * i) for i, v in enumerate(values)]
    return np.array(pts, dtype=np.float64).reshape(-1, 2)


@dataclass
class Polyline:
    points: np.ndarray
    color: Color
    width: float


@dataclass
class Segment:
    start: Tuple[float, float]
    end: Tuple[float, float]
    color: Color = WHITE_FILL
    width: float = 1.0


@dataclass
class Label:
    text: str
    position: Tuple[float, float]
    size: float
    color: Color = WHITE_LINE


@dataclass
class Cell:
    """Coverage grid cell; ``fill`` goes from red (unseen) to green."""

    center: Tuple[float, float]
    size: Tuple[float, float]
    fill: Color
    score: float
    outline: Color = WHITE_FILL


def cell_color(score: float) -> Color:
    green = min(255.0, 255.0 / FBCFG.coverage_saturation * score)
    return int(round(255.0 - green)), int(round(green)), 0, FBCFG.fill_alpha


def area_cells(coverage: CoverageGrid) -> List[Cell]:
    w, h = coverage.cell_size
    cols, rows = coverage.size
    cells = []
    for r in range(rows):
        for c in range(cols):
            score = coverage.score(c, r)
            cells.append(
                Cell(
                    center=(w * c + w / 2.0, h * r + h / 2.0),
                    size=(w, h),
                    fill=cell_color(score),
                    score=score,
                )
            )
    return cells


def tilt_x_feedback(tilt: Sequence[float], width: float, height: float) -> Polyline:
    """Tilt-x histogram drawn along the top image edge."""
    bins = FBCFG.bin_count
    hist = histogram(tilt, bins, *FBCFG.tilt_range)
    poly = polyline(hist, width / (bins - 1), height / 8.0, 2)
    return Polyline(poly[:, ::-1].copy(), TILT_X_COLOR, height / 150.0)


def tilt_y_feedback(tilt: Sequence[float], width: float, height: float) -> Polyline:
    """Tilt-y histogram drawn along the left image edge."""
    bins = FBCFG.bin_count
    hist = histogram(tilt, bins, *FBCFG.tilt_range)
    poly = polyline(hist, height / (bins - 1), width / 8.0, 2)
    return Polyline(poly, TILT_Y_COLOR, height / 150.0)


@dataclass
class DistanceFeedback:
    """Vertical ruler at ``xpos`` with a distance histogram and range labels."""

    lower: float
    upper: float
    ruler: Segment
    ticks: List[Segment]
    histogram: Polyline
    labels: List[Label]


def distance_feedback(
    distance: Sequence[float], xpos: float, height: float, pad: float
) -> Optional[DistanceFeedback]:
    """Ruler geometry for the view distances, ``None`` without finite values."""
    finite = [d for d in distance if d is not None and not math.isnan(d)]
    if not finite:
        return None
    margin = FBCFG.distance_margin
    lower = min(finite) / margin
    upper = max(finite) * margin

    ruler = Segment((xpos, 0.0), (xpos, height))
    tick_count = max(1, int(math.ceil((upper - lower) * height / 200.0)))
    step = height / tick_count
    ticks = [Segment((xpos + pad, step * i), (xpos, step * i)) for i in range(tick_count + 1)]

    bins = FBCFG.bin_count
    hist = histogram(finite, bins, lower, upper)
    poly = polyline(hist, height / (bins - 1), pad, 1)
    poly[:, 0] += xpos

    font = height / 60.0
    labels = [
        Label(str(int(math.floor(lower))), (xpos + font, font), 2 * font),
        Label(str(int(math.ceil(upper))), (xpos + font, height - 2 * font), 2 * font),
    ]
    return DistanceFeedback(
        lower=lower,
        upper=upper,
        ruler=ruler,
        ticks=ticks,
        histogram=Polyline(poly, WHITE_LINE, height / 200.0),
        labels=labels,
    )


@dataclass
class FeedbackSummary:
    """All feedback shapes for one image of size ``image_size``."""

    image_size: Tuple[int, int]
    cells: List[Cell] = field(default_factory=list)
    tilt_x: Optional[Polyline] = None
    tilt_y: Optional[Polyline] = None
    distance: Optional[DistanceFeedback] = None

    @classmethod
    def from_completeness(
        cls,
        completeness: DataCompleteness,
        image_size: Tuple[int, int],
        pad: Optional[float] = None,
    ) -> "FeedbackSummary":
        w, h = float(image_size[0]), float(image_size[1])
        pad = w / 40.0 if pad is None else pad
        return cls(
            image_size=(int(image_size[0]), int(image_size[1])),
            cells=area_cells(completeness.coverage),
            tilt_x=tilt_x_feedback(completeness.tilt_x, w, h),
            tilt_y=tilt_y_feedback(completeness.tilt_y, w, h),
            distance=distance_feedback(completeness.distance, w - pad, h, pad),
        )
