#!/usr/bin/env python3
"""
Push-style accumulator for a human prior sketch.

A UI (matplotlib clicks, a web canvas, a replayed log) pushes click
locations one at a time. A click close to an existing point bumps that
point's level by one, wrapping at ``max_level``; any other click creates a
new point at level 0 ("no information"). When the user is done the UI asks
for a confidence value and calls ``finish`` to get a HumanPrior.
"""

from __future__ import annotations

import logging
from typing import List, Optional, Tuple

import numpy as np

from hilgp.data import HumanPrior
from hilgp.exceptions import InvalidInputError, PreconditionViolationError

logger = logging.getLogger(__name__)


class PriorCapture:
    """Merges near-duplicate clicks into level increments."""

    def __init__(self, distance_threshold: float, max_level: int, confidence_max: float = 10.0):
        if not distance_threshold > 0:
            raise InvalidInputError(f"distance_threshold must be > 0, got {distance_threshold!r}")
        if int(max_level) != max_level or max_level < 1:
            raise InvalidInputError(f"max_level must be an integer >= 1, got {max_level!r}")
        self.distance_threshold = float(distance_threshold)
        self.max_level = int(max_level)
        self.confidence_max = float(confidence_max)
        self._points: List[Tuple[float, float]] = []
        self._levels: List[int] = []
        self._finished = False

    @property
    def points(self) -> np.ndarray:
        return np.array(self._points, dtype=float).reshape(-1, 2)

    @property
    def levels(self) -> np.ndarray:
        return np.array(self._levels, dtype=int)

    @property
    def finished(self) -> bool:
        return self._finished

    def __len__(self) -> int:
        return len(self._points)

    def add_click(self, x: float, y: float) -> int:
        """Register a click; returns the index of the point created or bumped."""
        if self._finished:
            raise PreconditionViolationError("Capture session already finished")
        x, y = float(x), float(y)
        if not (np.isfinite(x) and np.isfinite(y)):
            raise InvalidInputError(f"Click location must be finite, got ({x}, {y})")

        # first point within the threshold wins, in creation order
        for i, (px, py) in enumerate(self._points):
            if np.hypot(x - px, y - py) < self.distance_threshold:
                self._levels[i] = (self._levels[i] + 1) % self.max_level
                return i

        self._points.append((x, y))
        self._levels.append(0)
        return len(self._points) - 1

    def undo(self) -> Optional[Tuple[float, float]]:
        """Drop the most recently created point (e.g. the click on a "done" button)."""
        if self._finished:
            raise PreconditionViolationError("Capture session already finished")
        if not self._points:
            return None
        self._levels.pop()
        return self._points.pop()

    def finish(self, confidence: float) -> HumanPrior:
        """Close the session and return the captured prior."""
        if self._finished:
            raise PreconditionViolationError("Capture session already finished")
        prior = HumanPrior(locations=self.points, levels=self.levels, confidence=confidence)
        if prior.confidence > self.confidence_max:
            logger.warning(
                f"[PriorCapture] Confidence {prior.confidence:g} is above the expected maximum {self.confidence_max:g}"
            )
        self._finished = True
        logger.info(f"[PriorCapture] Captured {len(prior)} points with confidence {prior.confidence:g}")
        return prior
