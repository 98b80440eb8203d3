#!/usr/bin/env python3
"""
Field Estimator

Owns everything needed to turn human and machine observations into a
predicted field over a fixed test grid:

- current HumanPrior and the machine sample history
- the fused TrainingSet (rebuilt on every input change, never edited)
- the GaussianProcessModel and its hyperparameters
- the TestGrid and the latest Prediction

Lifecycle:
1. Prior arrives (live capture -> ingest_human_prior, or a saved file at
   construction when prior.recycle_human_prior is set)
2. Swarm samples arrive over time -> append_machine_samples
3. refit() optimises hyperparameters on a snapshot of the training set
4. predict() evaluates the posterior over the grid for the sampling policy

Concurrency: inputs may be appended from a sampling loop while a fit is in
progress. Every refit/predict works on the TrainingSet reference it took at
entry, so later appends are invisible to it. Only one refit runs at a time;
a second caller gets BusyError or, with blocking=True, waits its turn.
"""

from __future__ import annotations

import logging
import os
import threading
from typing import Any, Dict, Iterable, Optional, Tuple, Union

import numpy as np

from hilgp.config import load_config
from hilgp.data import (
    FieldSnapshot,
    Hyperparameters,
    HumanPrior,
    Observation,
    ObservationSource,
    Prediction,
    TestGrid,
    TrainingSet,
)
from hilgp.exceptions import BusyError, InvalidInputError, PreconditionViolationError
from hilgp.fusion import ObservationFusion
from hilgp.gp_model import GaussianProcessModel
from hilgp.prior_store import PriorStore

logger = logging.getLogger(__name__)

ConfigSource = Union[str, os.PathLike, Dict[str, Any], None]


def _to_machine_observation(item) -> Observation:
    if isinstance(item, Observation):
        if item.source is not ObservationSource.MACHINE:
            raise InvalidInputError(f"Expected a MACHINE observation, got source {item.source.value}")
        return item
    try:
        location, mean, variance = item
    except (TypeError, ValueError) as e:
        raise InvalidInputError(f"Machine sample must be (location, mean, variance), got {item!r}") from e
    try:
        location = tuple(location)
    except TypeError as e:
        raise InvalidInputError(f"Machine sample location must be an (x, y) pair, got {location!r}") from e
    return Observation.machine(location, mean, variance)


class FieldEstimator:
    """Public entry point of the engine."""

    def __init__(self, config: ConfigSource = None,
                 model: Optional[GaussianProcessModel] = None,
                 fusion: Optional[ObservationFusion] = None,
                 prior_store: Optional[PriorStore] = None):
        self.cfg = load_config(config)
        field_cfg = self.cfg['field']
        self.test_grid = TestGrid(field_cfg['width'], field_cfg['height'], field_cfg['grid_resolution'])
        self.model = model if model is not None else GaussianProcessModel(config=self.cfg['model'])
        self.fusion = fusion if fusion is not None else ObservationFusion(config=self.cfg['fusion'])
        self.prior_store = prior_store if prior_store is not None else PriorStore()

        self._state_lock = threading.Lock()   # guards the fields below
        self._refit_lock = threading.Lock()   # held for the duration of a fit
        self._human_prior: Optional[HumanPrior] = None
        self._machine: Tuple[Observation, ...] = ()
        self._training_set = TrainingSet()
        self._prediction: Optional[Prediction] = None
        self._version = 0

        logger.info(f"[FieldEstimator] Initialized with {self.test_grid}")

        prior_cfg = self.cfg['prior']
        if prior_cfg['recycle_human_prior']:
            self.load_human_prior(prior_cfg['path'])

    @classmethod
    def from_config(cls, source: ConfigSource) -> "FieldEstimator":
        """Build from a YAML path or a config dict."""
        return cls(source)

    # ----------------------------
    # Read-only views
    # ----------------------------

    @property
    def human_prior(self) -> Optional[HumanPrior]:
        return self._human_prior

    @property
    def machine_observations(self) -> Tuple[Observation, ...]:
        return self._machine

    @property
    def training_set(self) -> TrainingSet:
        return self._training_set

    @property
    def prediction(self) -> Optional[Prediction]:
        """Latest prediction, or None if inputs or hyperparameters changed since."""
        return self._prediction

    @property
    def hyperparameters(self) -> Hyperparameters:
        return self.model.hyperparameters

    def snapshot(self) -> FieldSnapshot:
        with self._state_lock:
            return FieldSnapshot(
                human_prior=self._human_prior,
                training_set=self._training_set,
                test_grid=self.test_grid,
                prediction=self._prediction,
                hyperparameters=self.model.hyperparameters,
            )

    # ----------------------------
    # Inputs
    # ----------------------------

    def _publish_inputs(self, prior: Optional[HumanPrior], machine: Tuple[Observation, ...]) -> TrainingSet:
        # caller holds _state_lock; fuse first so a failure leaves state untouched
        training_set = self.fusion.fuse(prior, machine)
        self._human_prior = prior
        self._machine = machine
        self._training_set = training_set
        self._prediction = None
        self._version += 1
        return training_set

    def ingest_human_prior(self, prior: HumanPrior) -> TrainingSet:
        """Replace the human prior and rebuild the training set."""
        if not isinstance(prior, HumanPrior):
            raise InvalidInputError(f"Expected HumanPrior, got {type(prior).__name__}")
        confidence_max = float(self.cfg['prior']['confidence_max'])
        if prior.confidence > confidence_max:
            logger.warning(
                f"[FieldEstimator] Prior confidence {prior.confidence:g} exceeds expected maximum {confidence_max:g}"
            )
        with self._state_lock:
            training_set = self._publish_inputs(prior, self._machine)
        logger.info(
            f"[FieldEstimator] Ingested human prior: {len(prior)} points, confidence {prior.confidence:g}, "
            f"{training_set.human_count} human rows"
        )
        return training_set

    def append_machine_samples(self, observations: Iterable[Any]) -> TrainingSet:
        """
        Append machine samples, given as Observations or (location, mean, variance)
        triples. Either every sample is accepted or none is.
        """
        new = tuple(_to_machine_observation(item) for item in observations)
        with self._state_lock:
            training_set = self._publish_inputs(self._human_prior, self._machine + new)
        logger.info(
            f"[FieldEstimator] Appended {len(new)} machine samples "
            f"(total {training_set.machine_count}, training rows {len(training_set)})"
        )
        return training_set

    # ----------------------------
    # Fit / predict
    # ----------------------------

    def refit(self, max_evaluations: Optional[int] = None, blocking: bool = False) -> Hyperparameters:
        """
        Optimise hyperparameters on the current training set.

        Args:
            max_evaluations: objective evaluation budget (default model.max_evaluations)
            blocking: wait for an in-flight refit instead of raising BusyError
        """
        if not self._refit_lock.acquire(blocking=blocking):
            raise BusyError("A refit is already running on this FieldEstimator")
        try:
            with self._state_lock:
                training_set = self._training_set
            if max_evaluations is None:
                max_evaluations = int(self.cfg['model']['max_evaluations'])
            hyperparameters = self.model.train(training_set, max_evaluations)
            with self._state_lock:
                self._prediction = None
                self._version += 1
            return hyperparameters
        finally:
            self._refit_lock.release()

    def predict(self, include_noise: bool = False) -> Prediction:
        """Posterior over the test grid; published as ``prediction`` if inputs did not change meanwhile."""
        # Wait for an in-flight fit to publish its hyperparameters first
        with self._refit_lock:
            pass
        with self._state_lock:
            if not self.model.is_trained:
                raise PreconditionViolationError("FieldEstimator.predict called before any successful refit")
            training_set = self._training_set
            hyperparameters = self.model.hyperparameters
            version = self._version

        prediction = self.model.predict(
            training_set, self.test_grid.points, hyperparameters=hyperparameters, include_noise=include_noise
        )

        with self._state_lock:
            if self._version == version:
                self._prediction = prediction
            else:
                logger.debug("[FieldEstimator] Inputs changed during predict; result not published")
        return prediction

    def refit_and_predict(self, max_evaluations: Optional[int] = None,
                          include_noise: bool = False, blocking: bool = False) -> Prediction:
        self.refit(max_evaluations, blocking=blocking)
        return self.predict(include_noise=include_noise)

    def uncertain_locations(self, threshold: Optional[float] = None) -> np.ndarray:
        """Grid points whose latest predicted variance exceeds ``threshold``."""
        prediction = self._prediction
        if prediction is None:
            raise PreconditionViolationError("No current prediction; call predict() first")
        if threshold is None:
            threshold = float(self.cfg['policy']['variance_threshold'])
        return self.test_grid.points[prediction.variances > threshold]

    # ----------------------------
    # Prior persistence
    # ----------------------------

    def save_human_prior(self, destination) -> str:
        prior = self._human_prior
        if prior is None:
            raise PreconditionViolationError("No human prior to save")
        return self.prior_store.save(prior, destination)

    def load_human_prior(self, source) -> HumanPrior:
        """Load a prior file and ingest it; on any error the current state is kept."""
        prior = self.prior_store.load(source)
        self.ingest_human_prior(prior)
        return prior
