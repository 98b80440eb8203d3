# tests/test_capture.py
"""Tests for click-based prior capture."""

import numpy as np
import pytest

from hilgp.capture import PriorCapture
from hilgp.exceptions import InvalidInputError, PreconditionViolationError


@pytest.fixture
def capture():
    return PriorCapture(distance_threshold=20.0, max_level=10)


def test_new_click_starts_at_level_zero(capture):
    assert capture.add_click(100, 100) == 0
    assert capture.add_click(300, 100) == 1
    np.testing.assert_array_equal(capture.levels, [0, 0])
    np.testing.assert_allclose(capture.points, [[100, 100], [300, 100]])


def test_nearby_click_bumps_level(capture):
    capture.add_click(100, 100)
    for _ in range(3):
        assert capture.add_click(105, 95) == 0
    assert len(capture) == 1
    assert capture.levels[0] == 3


def test_level_wraps_at_max(capture):
    capture.add_click(0, 0)
    for _ in range(10):
        capture.add_click(0, 0)
    assert capture.levels[0] == 0


def test_first_matching_point_wins(capture):
    capture.add_click(0, 0)
    capture.add_click(30, 0)
    assert capture.add_click(15, 0) == 0
    np.testing.assert_array_equal(capture.levels, [1, 0])


def test_undo_drops_last_point(capture):
    capture.add_click(0, 0)
    capture.add_click(100, 0)
    assert capture.undo() == (100.0, 0.0)
    assert len(capture) == 1
    assert PriorCapture(5.0, 3).undo() is None


def test_finish_returns_prior(capture):
    capture.add_click(10, 10)
    capture.add_click(12, 10)
    capture.add_click(200, 200)
    prior = capture.finish(confidence=6)
    assert capture.finished
    assert prior.confidence == 6.0
    np.testing.assert_allclose(prior.levels, [1, 0])
    with pytest.raises(PreconditionViolationError):
        capture.add_click(1, 1)
    with pytest.raises(PreconditionViolationError):
        capture.finish(confidence=6)


def test_high_confidence_warns(capture, caplog):
    capture.add_click(10, 10)
    with caplog.at_level("WARNING", logger="hilgp.capture"):
        capture.finish(confidence=25)
    assert "above the expected maximum" in caplog.text


def test_invalid_arguments(capture):
    with pytest.raises(InvalidInputError):
        PriorCapture(distance_threshold=0, max_level=10)
    with pytest.raises(InvalidInputError):
        PriorCapture(distance_threshold=5, max_level=0)
    with pytest.raises(InvalidInputError):
        capture.add_click(float("nan"), 0)
    capture.add_click(0, 0)
    with pytest.raises(InvalidInputError):
        capture.finish(confidence=0)
    assert not capture.finished
