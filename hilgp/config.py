#!/usr/bin/env python3
"""
Configuration loading for the field estimator.

Defaults live in ``_DEFAULTS``; a user dict or YAML file is deep-merged on
top of them. Keys that are not present in the defaults are rejected so that
typos do not silently fall back to a default value.
"""

from __future__ import annotations

import copy
import logging
import os
from typing import Any, Dict, Optional, Union

import yaml

from hilgp.exceptions import InvalidInputError

logger = logging.getLogger(__name__)

# ----------------------------
# Configuration defaults
# ----------------------------

_DEFAULTS: Dict[str, Dict[str, Any]] = {
    'field': {
        'width': 1024.0,         # overhead camera frame, pixels
        'height': 768.0,
        'grid_resolution': 32.0,
    },
    'fusion': {
        'samples_per_observation': 5,
        'noise_scale': 1.0,      # injected std = noise_scale / confidence
        'seed': None,
    },
    'model': {
        'initial_length_scale': 100.0,
        'initial_signal_std': 1.0,
        'initial_noise_std': 1.0,
        'max_evaluations': 100,
        'method': 'L-BFGS-B',
        'log_bounds': [-15.0, 15.0],
        'initial_jitter': 1e-10,
        'jitter_growth': 10.0,
        'max_jitter_attempts': 8,
        'use_observation_variance': True,
        'prediction_chunk': 4096,
    },
    'prior': {
        'recycle_human_prior': False,
        'path': None,
        'max_level': 10,
        'distance_threshold': 20.0,
        'confidence_max': 10.0,
    },
    'policy': {
        'variance_threshold': 0.5,
    },
}

_SUPPORTED_METHODS = ('L-BFGS-B', 'CG')


def default_config() -> Dict[str, Dict[str, Any]]:
    """Return a fresh copy of the default configuration."""
    return copy.deepcopy(_DEFAULTS)


def merge_config(overrides: Optional[Dict[str, Any]] = None) -> Dict[str, Dict[str, Any]]:
    """Deep-merge ``overrides`` onto the defaults and validate the result."""
    cfg = default_config()
    for section, values in (overrides or {}).items():
        if section not in cfg:
            raise InvalidInputError(f"Unknown config section '{section}'")
        if values is None:
            continue
        if not isinstance(values, dict):
            raise InvalidInputError(f"Config section '{section}' must be a mapping")
        for key, value in values.items():
            if key not in cfg[section]:
                raise InvalidInputError(f"Unknown config key '{section}.{key}'")
            cfg[section][key] = value
    validate_config(cfg)
    return cfg


def load_config(source: Union[str, os.PathLike, Dict[str, Any], None] = None) -> Dict[str, Dict[str, Any]]:
    """Load configuration from a YAML path, a dict, or defaults when ``None``."""
    if source is None:
        return merge_config()
    if isinstance(source, dict):
        return merge_config(source)

    config_path = os.fspath(source)
    if not os.path.exists(config_path):
        raise FileNotFoundError(f"Config file not found: {config_path}")
    with open(config_path, 'r') as f:
        try:
            raw = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise InvalidInputError(f"Failed to parse config {config_path}: {e}") from e
    if not isinstance(raw, dict):
        raise InvalidInputError(f"Config {config_path} must contain a mapping at top level")
    cfg = merge_config(raw)
    logger.info(f"[Config] Loaded configuration from: {config_path}")
    return cfg


def _require_positive(cfg: Dict[str, Dict[str, Any]], section: str, key: str) -> None:
    value = cfg[section][key]
    if isinstance(value, bool) or not isinstance(value, (int, float)) or not value > 0:
        raise InvalidInputError(f"{section}.{key} must be a positive number, got {value!r}")


def validate_config(cfg: Dict[str, Dict[str, Any]]) -> None:
    """Check value ranges; raises InvalidInputError on the first problem found."""
    for key in ('width', 'height', 'grid_resolution'):
        _require_positive(cfg, 'field', key)
    for key in ('noise_scale',):
        _require_positive(cfg, 'fusion', key)
    for key in ('initial_length_scale', 'initial_signal_std', 'initial_noise_std',
                'initial_jitter', 'jitter_growth'):
        _require_positive(cfg, 'model', key)
    for key in ('distance_threshold', 'confidence_max'):
        _require_positive(cfg, 'prior', key)
    _require_positive(cfg, 'policy', 'variance_threshold')

    int_keys = (
        ('fusion', 'samples_per_observation'),
        ('model', 'max_evaluations'),
        ('model', 'max_jitter_attempts'),
        ('model', 'prediction_chunk'),
        ('prior', 'max_level'),
    )
    for section, key in int_keys:
        value = cfg[section][key]
        if isinstance(value, bool) or not isinstance(value, int) or value < 1:
            raise InvalidInputError(f"{section}.{key} must be an integer >= 1, got {value!r}")

    seed = cfg['fusion']['seed']
    if seed is not None and (isinstance(seed, bool) or not isinstance(seed, int) or seed < 0):
        raise InvalidInputError(f"fusion.seed must be a non-negative integer or null, got {seed!r}")

    if cfg['model']['method'] not in _SUPPORTED_METHODS:
        raise InvalidInputError(
            f"model.method must be one of {_SUPPORTED_METHODS}, got {cfg['model']['method']!r}"
        )
    bounds = cfg['model']['log_bounds']
    if not isinstance(bounds, (list, tuple)) or len(bounds) != 2 or not bounds[0] < bounds[1]:
        raise InvalidInputError(f"model.log_bounds must be [low, high] with low < high, got {bounds!r}")

    if cfg['prior']['recycle_human_prior'] and not cfg['prior']['path']:
        raise InvalidInputError("prior.recycle_human_prior requires prior.path")
