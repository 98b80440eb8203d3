#!/usr/bin/env python3
"""
Data records shared by the fusion, model and estimator layers.

Everything here is immutable once built: arrays are copied on construction
and marked read-only, so a record handed to another thread cannot change
underneath it. Updates always build a new record.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable, Optional, Sequence, Tuple

import numpy as np

from hilgp.exceptions import InvalidInputError


def _frozen_array(values, dtype=float, ndim: int = 1) -> np.ndarray:
    arr = np.array(values, dtype=dtype)
    if ndim == 2 and arr.size == 0:
        arr = arr.reshape(0, 2)
    arr.setflags(write=False)
    return arr


def as_points(points) -> np.ndarray:
    """Coerce ``points`` to an (N, 2) float array; raises InvalidInputError otherwise."""
    arr = np.asarray(points, dtype=float)
    if arr.size == 0:
        return np.empty((0, 2), dtype=float)
    if arr.ndim == 1 and arr.shape[0] == 2:
        arr = arr.reshape(1, 2)
    if arr.ndim != 2 or arr.shape[1] != 2:
        raise InvalidInputError(f"Expected (N, 2) points, got shape {arr.shape}")
    if not np.all(np.isfinite(arr)):
        raise InvalidInputError("Points must be finite")
    return arr


class ObservationSource(Enum):
    """Where an observation came from."""
    HUMAN = "human"      # replicated, noise-injected prior level
    MACHINE = "machine"  # swarm sample with measured variance


@dataclass(frozen=True)
class Observation:
    """Single training row: a location, a mean, its variance and its source."""
    location: Tuple[float, float]
    mean: float
    variance: float = 0.0
    source: ObservationSource = ObservationSource.MACHINE

    def __post_init__(self):
        loc = tuple(float(v) for v in self.location)
        if len(loc) != 2 or not all(math.isfinite(v) for v in loc):
            raise InvalidInputError(f"Observation location must be a finite (x, y) pair, got {self.location!r}")
        mean = float(self.mean)
        variance = float(self.variance)
        if not math.isfinite(mean):
            raise InvalidInputError(f"Observation mean must be finite, got {self.mean!r}")
        if not math.isfinite(variance) or variance < 0.0:
            raise InvalidInputError(f"Observation variance must be finite and >= 0, got {self.variance!r}")
        if not isinstance(self.source, ObservationSource):
            raise InvalidInputError(f"Unknown observation source {self.source!r}")
        object.__setattr__(self, 'location', loc)
        object.__setattr__(self, 'mean', mean)
        object.__setattr__(self, 'variance', variance)

    @classmethod
    def machine(cls, location: Sequence[float], mean: float, variance: float) -> "Observation":
        return cls(location=tuple(location), mean=mean, variance=variance, source=ObservationSource.MACHINE)


@dataclass(frozen=True, eq=False)
class HumanPrior:
    """
    Human-sketched prior: m distinct locations, an integer level for each,
    and one confidence value that applies to the whole sketch.
    """
    locations: np.ndarray
    levels: np.ndarray
    confidence: float

    def __post_init__(self):
        locations = as_points(self.locations)
        levels = np.asarray(self.levels, dtype=float).reshape(-1)
        if locations.shape[0] != levels.shape[0]:
            raise InvalidInputError(
                f"HumanPrior has {locations.shape[0]} locations but {levels.shape[0]} levels"
            )
        if not np.all(np.isfinite(levels)):
            raise InvalidInputError("HumanPrior levels must be finite")
        try:
            confidence = float(self.confidence)
        except (TypeError, ValueError) as e:
            raise InvalidInputError(f"HumanPrior confidence must be a number, got {self.confidence!r}") from e
        if not math.isfinite(confidence) or confidence <= 0.0:
            raise InvalidInputError(f"HumanPrior confidence must be > 0, got {self.confidence!r}")
        object.__setattr__(self, 'locations', _frozen_array(locations, ndim=2))
        object.__setattr__(self, 'levels', _frozen_array(levels))
        object.__setattr__(self, 'confidence', confidence)

    def __len__(self) -> int:
        return int(self.locations.shape[0])

    @classmethod
    def empty(cls, confidence: float = 1.0) -> "HumanPrior":
        return cls(locations=np.empty((0, 2)), levels=np.empty(0), confidence=confidence)

    @classmethod
    def from_pairs(cls, pairs: Iterable[Tuple[Sequence[float], float]], confidence: float) -> "HumanPrior":
        """Build from ``[((x, y), level), ...]`` as delivered by a capture session."""
        pairs = list(pairs)
        locations = [p[0] for p in pairs]
        levels = [p[1] for p in pairs]
        return cls(locations=np.array(locations, dtype=float).reshape(-1, 2), levels=levels, confidence=confidence)


@dataclass(frozen=True)
class TrainingSet:
    """Ordered fused training rows. Human rows first, then machine rows."""
    observations: Tuple[Observation, ...] = ()
    locations: np.ndarray = field(init=False, repr=False, compare=False)
    means: np.ndarray = field(init=False, repr=False, compare=False)
    variances: np.ndarray = field(init=False, repr=False, compare=False)

    def __post_init__(self):
        observations = tuple(self.observations)
        object.__setattr__(self, 'observations', observations)
        object.__setattr__(self, 'locations', _frozen_array([o.location for o in observations], ndim=2))
        object.__setattr__(self, 'means', _frozen_array([o.mean for o in observations]))
        object.__setattr__(self, 'variances', _frozen_array([o.variance for o in observations]))

    def __len__(self) -> int:
        return len(self.observations)

    @property
    def human_count(self) -> int:
        return sum(1 for o in self.observations if o.source is ObservationSource.HUMAN)

    @property
    def machine_count(self) -> int:
        return sum(1 for o in self.observations if o.source is ObservationSource.MACHINE)

    def rows(self, source: ObservationSource) -> "TrainingSet":
        """Subset of rows from a single source, order preserved."""
        return TrainingSet(tuple(o for o in self.observations if o.source is source))


@dataclass(frozen=True)
class Hyperparameters:
    """
    GP hyperparameters, stored in log space so the optimizer works on an
    unconstrained vector. Follows the GPML convention: the kernel amplitude
    ``sf`` and the likelihood noise ``sn`` are standard deviations, so
    signal variance is sf**2 and noise variance is sn**2.
    """
    log_length_scale: float
    log_signal_std: float
    log_noise_std: float

    def __post_init__(self):
        for name in ('log_length_scale', 'log_signal_std', 'log_noise_std'):
            value = float(getattr(self, name))
            if not math.isfinite(value):
                raise InvalidInputError(f"Hyperparameter {name} must be finite, got {value!r}")
            object.__setattr__(self, name, value)

    @classmethod
    def from_values(cls, length_scale: float, signal_std: float, noise_std: float) -> "Hyperparameters":
        if not (length_scale > 0 and signal_std > 0 and noise_std > 0):
            raise InvalidInputError(
                f"Hyperparameters must be positive, got l={length_scale}, sf={signal_std}, sn={noise_std}"
            )
        return cls(math.log(length_scale), math.log(signal_std), math.log(noise_std))

    @classmethod
    def from_vector(cls, vec) -> "Hyperparameters":
        v = np.asarray(vec, dtype=float).reshape(-1)
        if v.shape[0] != 3:
            raise InvalidInputError(f"Expected 3 log hyperparameters, got {v.shape[0]}")
        return cls(float(v[0]), float(v[1]), float(v[2]))

    def as_vector(self) -> np.ndarray:
        return np.array([self.log_length_scale, self.log_signal_std, self.log_noise_std], dtype=float)

    @property
    def length_scale(self) -> float:
        return math.exp(self.log_length_scale)

    @property
    def signal_std(self) -> float:
        return math.exp(self.log_signal_std)

    @property
    def signal_variance(self) -> float:
        return math.exp(2.0 * self.log_signal_std)

    @property
    def noise_std(self) -> float:
        return math.exp(self.log_noise_std)

    @property
    def noise_variance(self) -> float:
        return math.exp(2.0 * self.log_noise_std)

    def to_dict(self) -> dict:
        """Plain (non-log) values for logging and JSON output."""
        return {
            'length_scale': self.length_scale,
            'signal_variance': self.signal_variance,
            'noise_variance': self.noise_variance,
        }


@dataclass(frozen=True, eq=False)
class Prediction:
    """Posterior means and variances aligned index-for-index with the query points."""
    means: np.ndarray
    variances: np.ndarray

    def __post_init__(self):
        means = np.asarray(self.means, dtype=float).reshape(-1)
        variances = np.asarray(self.variances, dtype=float).reshape(-1)
        if means.shape != variances.shape:
            raise InvalidInputError(
                f"Prediction means ({means.shape[0]}) and variances ({variances.shape[0]}) differ in length"
            )
        object.__setattr__(self, 'means', _frozen_array(means))
        object.__setattr__(self, 'variances', _frozen_array(variances))

    def __len__(self) -> int:
        return int(self.means.shape[0])

    @property
    def std(self) -> np.ndarray:
        return np.sqrt(self.variances)

    @property
    def lower_bound(self) -> np.ndarray:
        """Mean minus two standard deviations (95% band)."""
        return self.means - 2.0 * self.std

    @property
    def upper_bound(self) -> np.ndarray:
        return self.means + 2.0 * self.std


class TestGrid:
    """
    Regular query lattice over [0, width] x [0, height].

    Endpoints are inclusive and the points are ordered row-major: x varies
    fastest, so ``values.reshape(ny, nx)`` gives an image with y along rows.
    """

    __test__ = False  # keep pytest from collecting this class

    def __init__(self, width: float, height: float, resolution: float):
        if not (width > 0 and height > 0 and resolution > 0):
            raise InvalidInputError(
                f"Grid needs positive width/height/resolution, got {width}, {height}, {resolution}"
            )
        self.width = float(width)
        self.height = float(height)
        self.resolution = float(resolution)
        nx = int(round(self.width / self.resolution)) + 1
        ny = int(round(self.height / self.resolution)) + 1
        self.xs = _frozen_array(np.linspace(0.0, self.width, nx))
        self.ys = _frozen_array(np.linspace(0.0, self.height, ny))
        Xg, Yg = np.meshgrid(self.xs, self.ys, indexing='xy')
        self.points = _frozen_array(np.column_stack([Xg.ravel(), Yg.ravel()]), ndim=2)

    @property
    def shape(self) -> Tuple[int, int]:
        """(ny, nx)"""
        return (int(self.ys.shape[0]), int(self.xs.shape[0]))

    def __len__(self) -> int:
        return int(self.points.shape[0])

    def reshape(self, values) -> np.ndarray:
        """Reshape a flat per-point array into a (ny, nx) image."""
        arr = np.asarray(values)
        if arr.shape[0] != len(self):
            raise InvalidInputError(f"Expected {len(self)} values for grid, got {arr.shape[0]}")
        return arr.reshape(self.shape)

    def meshgrid(self) -> Tuple[np.ndarray, np.ndarray]:
        return np.meshgrid(self.xs, self.ys, indexing='xy')

    def __repr__(self) -> str:
        return f"TestGrid(width={self.width}, height={self.height}, resolution={self.resolution}, shape={self.shape})"


@dataclass(frozen=True, eq=False)
class FieldSnapshot:
    """Read-only view handed to visualization and sampling-policy consumers."""
    human_prior: Optional[HumanPrior]
    training_set: TrainingSet
    test_grid: TestGrid
    prediction: Optional[Prediction]
    hyperparameters: Hyperparameters
