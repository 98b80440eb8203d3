# tests/conftest.py
"""Shared fixtures for hilgp tests."""

import sys
import tempfile
from pathlib import Path
from typing import Dict, Generator

import numpy as np
import pytest

# Add project root to sys.path for imports
project_root = Path(__file__).parent.parent
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))

from hilgp.data import HumanPrior, Observation  # noqa: E402


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Provide a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def small_config() -> Dict:
    """Small field and a short optimisation budget so tests stay fast."""
    return {
        "field": {"width": 100, "height": 100, "grid_resolution": 10},
        "fusion": {"samples_per_observation": 3, "noise_scale": 1.0, "seed": 7},
        "model": {
            "initial_length_scale": 20.0,
            "initial_signal_std": 2.0,
            "initial_noise_std": 0.5,
            "max_evaluations": 30,
        },
        "prior": {"max_level": 10, "distance_threshold": 5.0},
    }


@pytest.fixture
def sample_prior() -> HumanPrior:
    """Four-corner sketch with a bright spot in the middle."""
    return HumanPrior(
        locations=np.array([[10.0, 10.0], [90.0, 10.0], [50.0, 50.0], [10.0, 90.0], [90.0, 90.0]]),
        levels=np.array([1, 2, 8, 2, 1]),
        confidence=5.0,
    )


@pytest.fixture
def machine_samples():
    return [
        Observation.machine((30.0, 30.0), 5.0, 0.01),
        Observation.machine((70.0, 60.0), 6.0, 0.01),
    ]
