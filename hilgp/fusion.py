#!/usr/bin/env python3
"""
Observation fusion: turns a HumanPrior plus machine samples into a TrainingSet.

Human input is qualitative, so instead of one row with a guessed variance
each prior location is replicated ``samples_per_observation`` times with
Gaussian noise added to its level:

    mean_ij = level_j + eps_ij,   eps_ij ~ N(0, (noise_scale / confidence)^2)

A confident sketch produces a tight cluster of rows around each level, an
unsure one a wide spread that the GP reads as a noisy observation. Machine
samples are appended once, unchanged, with their own measured variance.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, Optional, Tuple

import numpy as np

from hilgp.config import default_config
from hilgp.data import HumanPrior, Observation, ObservationSource, TrainingSet
from hilgp.exceptions import InvalidInputError

logger = logging.getLogger(__name__)


class ObservationFusion:
    """
    Builds training sets from human and machine observations.

    The random source is re-created from ``seed`` on every call, so fusing
    the same prior twice yields the same human rows. This lets the
    estimator rebuild its training set whenever a machine sample arrives
    without re-drawing the human noise each time. When no seed is given one
    is drawn from OS entropy once, at construction.
    """

    def __init__(self, samples_per_observation: Optional[int] = None,
                 noise_scale: Optional[float] = None,
                 seed: Optional[int] = None,
                 config: Optional[Dict[str, Any]] = None):
        cfg = default_config()['fusion']
        if config:
            cfg.update(config)
        if samples_per_observation is not None:
            cfg['samples_per_observation'] = samples_per_observation
        if noise_scale is not None:
            cfg['noise_scale'] = noise_scale
        if seed is not None:
            cfg['seed'] = seed

        k = cfg['samples_per_observation']
        if isinstance(k, bool) or not isinstance(k, (int, np.integer)) or k < 1:
            raise InvalidInputError(f"samples_per_observation must be an integer >= 1, got {k!r}")
        if not float(cfg['noise_scale']) > 0:
            raise InvalidInputError(f"noise_scale must be > 0, got {cfg['noise_scale']!r}")

        self.samples_per_observation = int(k)
        self.noise_scale = float(cfg['noise_scale'])
        self.seed = int(cfg['seed']) if cfg['seed'] is not None else int(np.random.SeedSequence().entropy)

    def noise_std(self, confidence: float) -> float:
        """Standard deviation of the noise injected for a given confidence."""
        if not confidence > 0:
            raise InvalidInputError(f"Confidence must be > 0, got {confidence!r}")
        return self.noise_scale / float(confidence)

    def replicate_human_prior(self, prior: Optional[HumanPrior],
                              rng: Optional[np.random.Generator] = None) -> Tuple[Observation, ...]:
        """
        Human-derived training rows, round-major: round 0 covers every
        location in prior order, then round 1, and so on.
        """
        if prior is None or len(prior) == 0:
            return ()
        std = self.noise_std(prior.confidence)
        if rng is None:
            rng = np.random.default_rng(self.seed)
        k = self.samples_per_observation
        m = len(prior)
        noise = std * rng.standard_normal((k, m))
        rows = []
        for r in range(k):
            for j in range(m):
                rows.append(Observation(
                    location=(prior.locations[j, 0], prior.locations[j, 1]),
                    mean=prior.levels[j] + noise[r, j],
                    variance=0.0,
                    source=ObservationSource.HUMAN,
                ))
        return tuple(rows)

    def fuse(self, prior: Optional[HumanPrior],
             machine_observations: Iterable[Observation] = (),
             rng: Optional[np.random.Generator] = None) -> TrainingSet:
        """Human rows followed by machine rows, as a new TrainingSet."""
        machine = tuple(machine_observations)
        for obs in machine:
            if not isinstance(obs, Observation) or obs.source is not ObservationSource.MACHINE:
                raise InvalidInputError(f"Machine observations must be MACHINE-sourced Observations, got {obs!r}")
        human = self.replicate_human_prior(prior, rng=rng)
        training_set = TrainingSet(human + machine)
        logger.debug(
            f"[ObservationFusion] Fused {len(human)} human rows "
            f"({self.samples_per_observation} x {0 if prior is None else len(prior)}) and {len(machine)} machine rows"
        )
        return training_set
