import numpy as np
import pytest

from calibration.calibrator import CoverageGrid, DataCompleteness
from calibration.feedback import (
    FeedbackSummary,
    area_cells,
    cell_color,
    distance_feedback,
    histogram,
    polyline,
    tilt_x_feedback,
    tilt_y_feedback,
)


def test_histogram_clamps_out_of_range():
    hist = histogram([-5.0, -1.0, 0.0, 0.99, 1.0, 3.0, float("nan")], 4, -1.0, 1.0)
    assert hist == [2, 0, 1, 3]
    assert sum(hist) == 6


def test_histogram_rejects_empty_range():
    with pytest.raises(ValueError):
        histogram([1.0], 3, 1.0, 1.0)


def test_polyline_clips_to_height():
    pts = polyline([0, 1, 5], step=10.0, height=4.0, steps=2)
    assert np.allclose(pts, [[0.0, 0.0], [2.0, 10.0], [4.0, 20.0]])


def test_cell_color_saturates():
    assert cell_color(0) == (255, 0, 0, 120)
    assert cell_color(4)[1] == 102
    assert cell_color(25) == (0, 255, 0, 120)


def test_area_cells_layout():
    scores = np.zeros((2, 3))
    scores[1, 2] = 10
    cells = area_cells(CoverageGrid(scores, (10.0, 20.0)))
    assert len(cells) == 6
    last = cells[-1]
    assert last.center == (25.0, 30.0)
    assert last.size == (10.0, 20.0)
    assert last.fill == (0, 255, 0, 120)
    assert cells[0].fill == (255, 0, 0, 120)


def test_tilt_feedback_orientation():
    tilt = [0.0, 0.0, 0.9]
    y = tilt_y_feedback(tilt, 640.0, 480.0)
    x = tilt_x_feedback(tilt, 640.0, 480.0)
    assert y.points.shape == (7, 2)
    # tilt-y runs down the left edge, tilt-x along the top edge
    assert np.allclose(y.points[:, 1], np.arange(7) * 80.0)
    assert np.allclose(x.points[:, 0], np.arange(7) * 640.0 / 6)
    assert x.points[3, 1] == pytest.approx(60.0)
    assert y.points[3, 0] == pytest.approx(80.0)
    assert x.width == pytest.approx(480.0 / 150)


def test_distance_feedback_ruler():
    fb = distance_feedback([100.0, 200.0], xpos=600.0, height=480.0, pad=16.0)
    assert fb.lower == pytest.approx(100.0 / 1.2)
    assert fb.upper == pytest.approx(240.0)
    assert len(fb.ticks) == int(np.ceil((fb.upper - fb.lower) * 480.0 / 200.0)) + 1
    assert [label.text for label in fb.labels] == ["83", "240"]
    assert np.all(fb.histogram.points[:, 0] >= 600.0)
    assert distance_feedback([float("nan")], 0.0, 100.0, 5.0) is None


def test_distance_feedback_single_value():
    fb = distance_feedback([0.01], xpos=0.0, height=100.0, pad=5.0)
    assert len(fb.ticks) == 2


def test_summary_from_completeness():
    data = DataCompleteness(
        area=[0.1, 0.2],
        tilt_x=[0.1, -0.3],
        tilt_y=[0.0, 0.5],
        distance=[400.0, 500.0],
        coverage=CoverageGrid(np.ones((6, 8)), (80.0, 80.0)),
    )
    summary = FeedbackSummary.from_completeness(data, (640, 480))
    assert summary.image_size == (640, 480)
    assert len(summary.cells) == 48
    assert summary.tilt_x is not None and summary.tilt_y is not None
    assert summary.distance.ruler.start == (624.0, 0.0)
