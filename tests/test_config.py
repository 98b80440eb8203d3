# tests/test_config.py
"""Tests for configuration loading and validation."""

import pytest
import yaml

from hilgp.config import default_config, load_config, merge_config
from hilgp.exceptions import InvalidInputError


def test_defaults():
    cfg = load_config()
    assert cfg['model']['initial_length_scale'] == 100.0
    assert cfg['model']['initial_signal_std'] == 1.0
    assert cfg['model']['initial_noise_std'] == 1.0
    assert cfg['model']['max_evaluations'] == 100
    assert cfg['fusion']['samples_per_observation'] == 5
    assert cfg['prior']['recycle_human_prior'] is False


def test_default_config_is_a_copy():
    cfg = default_config()
    cfg['model']['max_evaluations'] = 1
    assert default_config()['model']['max_evaluations'] == 100


def test_dict_overrides_merge():
    cfg = load_config({'model': {'max_evaluations': 7}, 'fusion': None})
    assert cfg['model']['max_evaluations'] == 7
    assert cfg['model']['initial_length_scale'] == 100.0


def test_yaml_file(temp_dir):
    path = temp_dir / "cfg.yaml"
    path.write_text(yaml.safe_dump({'field': {'width': 50, 'height': 40}, 'fusion': {'seed': 3}}))
    cfg = load_config(str(path))
    assert cfg['field']['width'] == 50
    assert cfg['fusion']['seed'] == 3


def test_shipped_config_loads():
    from pathlib import Path
    path = Path(__file__).parent.parent / "config" / "estimator_config.yaml"
    cfg = load_config(path)
    assert cfg['fusion']['seed'] == 0


def test_missing_file(temp_dir):
    with pytest.raises(FileNotFoundError):
        load_config(str(temp_dir / "missing.yaml"))


def test_non_mapping_yaml(temp_dir):
    path = temp_dir / "cfg.yaml"
    path.write_text("- just\n- a list\n")
    with pytest.raises(InvalidInputError):
        load_config(str(path))


@pytest.mark.parametrize("overrides", [
    {'bogus': {}},
    {'model': {'bogus': 1}},
    {'model': 5},
    {'field': {'width': 0}},
    {'fusion': {'samples_per_observation': 0}},
    {'fusion': {'samples_per_observation': 2.5}},
    {'fusion': {'seed': -1}},
    {'model': {'method': 'Nelder-Mead'}},
    {'model': {'log_bounds': [5, -5]}},
    {'model': {'max_evaluations': True}},
    {'prior': {'recycle_human_prior': True}},
])
def test_invalid_overrides(overrides):
    with pytest.raises(InvalidInputError):
        merge_config(overrides)
