# tests/test_fit_prior_cli.py
"""End-to-end run of scripts/fit_prior.py."""

import importlib.util
from pathlib import Path

import numpy as np
import pytest
import yaml

from hilgp.exceptions import FormatError
from hilgp.prior_store import PriorStore

SCRIPT = Path(__file__).parent.parent / "scripts" / "fit_prior.py"


@pytest.fixture(scope="module")
def fit_prior():
    spec = importlib.util.spec_from_file_location("fit_prior", SCRIPT)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


@pytest.fixture
def config_file(temp_dir, small_config):
    path = temp_dir / "cfg.yaml"
    path.write_text(yaml.safe_dump(small_config))
    return path


def test_writes_prediction(fit_prior, temp_dir, config_file, sample_prior):
    prior_path = PriorStore.save(sample_prior, temp_dir / "prior.csv")
    samples = temp_dir / "samples.csv"
    samples.write_text("X,Y,Mean,Variance\n30,30,5,0.01\n70,60,6,0.01\n")
    out = temp_dir / "field.npz"

    code = fit_prior.main([
        "--prior", prior_path, "--samples", str(samples), "--config", str(config_file),
        "--max-evals", "8", "--out", str(out), "--plot", str(temp_dir / "field.png"),
    ])
    assert code == 0
    data = np.load(out)
    assert data["points"].shape == (121, 2)
    assert data["means"].shape == (121,)
    assert np.all(data["variances"] >= 0.0)
    assert (temp_dir / "field.png").exists()


def test_bad_prior_returns_error_code(fit_prior, temp_dir, config_file):
    bad = temp_dir / "prior.csv"
    bad.write_text("X,Y\n1,2\n")
    assert fit_prior.main(["--prior", str(bad), "--config", str(config_file)]) == 1


def test_sample_file_format(fit_prior, temp_dir):
    bad = temp_dir / "samples.csv"
    bad.write_text("X,Y,Mean\n1,2,3\n")
    with pytest.raises(FormatError):
        fit_prior.load_machine_samples(str(bad))
