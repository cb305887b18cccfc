"""Diagnostic plots for multi-shot calibration."""

from __future__ import annotations

from pathlib import Path
from typing import Optional, Sequence

import matplotlib

matplotlib.use("Agg")
import matplotlib.pyplot as plt  # noqa: E402
import numpy as np  # noqa: E402

from utils.error_tracker import ErrorTracker  # noqa: E402
from utils.logger import Logger, LoggerType  # noqa: E402
from utils.settings import feedback as FBCFG  # noqa: E402

from .calibrator import DataCompleteness  # noqa: E402
from .feedback import histogram  # noqa: E402

logger: LoggerType = Logger.get_logger("calibration.visualizer")


def _save(fig: plt.Figure, file: Path) -> Path:
    file = Path(file).with_suffix(".png")
    file.parent.mkdir(parents=True, exist_ok=True)
    fig.tight_layout()
    fig.savefig(file)
    plt.close(fig)
    return file


def plot_reprojection_errors(
    errors: Sequence[float], file: Path, average: Optional[float] = None
) -> Optional[Path]:
    """Plot the mean reprojection error of every accepted view."""
    try:
        fig, ax = plt.subplots()
        ax.bar(range(1, len(errors) + 1), errors, color="tab:blue", label="view error")
        if average is not None:
            ax.axhline(average, color="tab:red", linestyle="--", label=f"mean {average:.3f}")
        ax.set_xlabel("View")
        ax.set_ylabel("Mean reprojection error [px]")
        ax.set_title("Reprojection Error per View")
        ax.legend()
        out = _save(fig, file)
    except Exception as exc:
        logger.error(f"Plotting reprojection errors failed: {exc}")
        ErrorTracker.report(exc)
        return None
    logger.info(f"Saved reprojection error plot to {out}")
    return out


def plot_completeness(completeness: DataCompleteness, file: Path) -> Optional[Path]:
    """
    Four panel report: image coverage heat map, tilt-x and tilt-y
    histograms over [-1, 1] and the distance histogram.
    """
    try:
        bins = FBCFG.bin_count
        lo, hi = FBCFG.tilt_range
        edges = np.linspace(lo, hi, bins + 1)
        centres = (edges[:-1] + edges[1:]) / 2.0
        width = (hi - lo) / bins

        fig, axes = plt.subplots(2, 2, figsize=(10, 8))
        ax = axes[0, 0]
        scores = completeness.coverage.scores
        im = ax.imshow(
            scores, cmap="RdYlGn", vmin=0, vmax=FBCFG.coverage_saturation
        )
        for (r, c), val in np.ndenumerate(scores):
            ax.text(c, r, f"{int(val)}", ha="center", va="center", fontsize=8)
        ax.set_title("Image coverage [views per cell]")
        ax.set_xticks([])
        ax.set_yticks([])
        fig.colorbar(im, ax=ax, fraction=0.035)

        for ax, values, name, color in (
            (axes[0, 1], completeness.tilt_x, "Tilt X", "#ff9933"),
            (axes[1, 0], completeness.tilt_y, "Tilt Y", "#0088c2"),
        ):
            ax.bar(centres, histogram(values, bins, lo, hi), width=width * 0.9, color=color)
            ax.set_xlim(lo, hi)
            ax.set_title(f"{name} (board normal)")
            ax.set_ylabel("Views")

        ax = axes[1, 1]
        dist = [d for d in completeness.distance if np.isfinite(d)]
        if dist:
            dlo = min(dist) / FBCFG.distance_margin
            dhi = max(dist) * FBCFG.distance_margin
            dedges = np.linspace(dlo, dhi, bins + 1)
            ax.bar(
                (dedges[:-1] + dedges[1:]) / 2.0,
                histogram(dist, bins, dlo, dhi),
                width=(dhi - dlo) / bins * 0.9,
                color="tab:gray",
            )
        ax.set_title("Distance to target")
        ax.set_ylabel("Views")
        out = _save(fig, file)
    except Exception as exc:
        logger.error(f"Plotting data completeness failed: {exc}")
        ErrorTracker.report(exc)
        return None
    logger.info(f"Saved completeness report to {out}")
    return out
