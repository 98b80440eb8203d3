# tests/test_fusion.py
"""Tests for human/machine observation fusion."""

import numpy as np
import pytest

from hilgp.data import HumanPrior, Observation, ObservationSource
from hilgp.exceptions import InvalidInputError
from hilgp.fusion import ObservationFusion


@pytest.fixture
def two_point_prior():
    return HumanPrior.from_pairs([((0.0, 0.0), 2), ((10.0, 10.0), 8)], confidence=5.0)


def _noise(training_set, prior, k):
    """Per-row injected noise, shaped (k, m)."""
    human = training_set.rows(ObservationSource.HUMAN)
    return human.means.reshape(k, len(prior)) - prior.levels[None, :]


class TestReplication:
    """Noise-injected replication of the human prior."""

    def test_row_counts(self, sample_prior, machine_samples):
        fusion = ObservationFusion(samples_per_observation=4, seed=1)
        ts = fusion.fuse(sample_prior, machine_samples)
        assert len(ts) == 4 * len(sample_prior) + len(machine_samples)
        assert ts.human_count == 20
        assert ts.machine_count == 2

    def test_human_rows_first_round_major(self, sample_prior, machine_samples):
        fusion = ObservationFusion(samples_per_observation=3, seed=1)
        ts = fusion.fuse(sample_prior, machine_samples)
        m = len(sample_prior)
        for r in range(3):
            for j in range(m):
                obs = ts.observations[r * m + j]
                assert obs.source is ObservationSource.HUMAN
                assert obs.variance == 0.0
                assert obs.location == tuple(sample_prior.locations[j])
        assert ts.observations[-2:] == tuple(machine_samples)

    def test_scenario_two_points(self, two_point_prior):
        ts = ObservationFusion(samples_per_observation=3, seed=11).fuse(two_point_prior)
        assert len(ts) == 6
        near_first = ts.means[[0, 2, 4]]
        near_second = ts.means[[1, 3, 5]]
        # noise std is 1/5; five sigma either way
        assert np.all(np.abs(near_first - 2.0) < 1.0)
        assert np.all(np.abs(near_second - 8.0) < 1.0)

    def test_same_seed_same_rows(self, sample_prior):
        a = ObservationFusion(samples_per_observation=5, seed=42).fuse(sample_prior)
        b = ObservationFusion(samples_per_observation=5, seed=42).fuse(sample_prior)
        assert a == b

    def test_different_seed_different_rows(self, sample_prior):
        a = ObservationFusion(samples_per_observation=5, seed=1).fuse(sample_prior)
        b = ObservationFusion(samples_per_observation=5, seed=2).fuse(sample_prior)
        assert not np.array_equal(a.means, b.means)

    def test_repeated_fuse_reuses_human_rows(self, sample_prior, machine_samples):
        fusion = ObservationFusion(samples_per_observation=3)
        first = fusion.fuse(sample_prior)
        second = fusion.fuse(sample_prior, machine_samples)
        assert second.rows(ObservationSource.HUMAN) == first

    def test_explicit_rng_overrides_seed(self, sample_prior):
        fusion = ObservationFusion(samples_per_observation=3, seed=1)
        a = fusion.fuse(sample_prior, rng=np.random.default_rng(99))
        b = fusion.fuse(sample_prior, rng=np.random.default_rng(99))
        c = fusion.fuse(sample_prior)
        assert a == b
        assert not np.array_equal(a.means, c.means)

    def test_noise_is_zero_mean(self):
        prior = HumanPrior.from_pairs([((0.0, 0.0), 3), ((50.0, 50.0), 6)], confidence=1.0)
        k = 2000
        ts = ObservationFusion(samples_per_observation=k, seed=5).fuse(prior)
        noise = _noise(ts, prior, k)
        assert abs(noise.mean()) < 0.1
        assert noise.std() == pytest.approx(1.0, rel=0.1)

    def test_higher_confidence_tighter_spread(self, sample_prior):
        unsure = HumanPrior(sample_prior.locations, sample_prior.levels, confidence=1.0)
        sure = HumanPrior(sample_prior.locations, sample_prior.levels, confidence=5.0)
        fusion = ObservationFusion(samples_per_observation=50, seed=3)
        spread_unsure = np.abs(_noise(fusion.fuse(unsure), unsure, 50)).mean()
        spread_sure = np.abs(_noise(fusion.fuse(sure), sure, 50)).mean()
        assert spread_sure < spread_unsure
        assert spread_unsure == pytest.approx(5.0 * spread_sure)

    def test_noise_scale(self, sample_prior):
        base = ObservationFusion(samples_per_observation=10, seed=3)
        wide = ObservationFusion(samples_per_observation=10, noise_scale=2.0, seed=3)
        np.testing.assert_allclose(
            _noise(wide.fuse(sample_prior), sample_prior, 10),
            2.0 * _noise(base.fuse(sample_prior), sample_prior, 10),
            atol=1e-12,
        )
        assert wide.noise_std(4.0) == pytest.approx(0.5)


class TestEdgeCases:
    """Empty inputs and invalid values."""

    def test_no_prior(self, machine_samples):
        fusion = ObservationFusion(seed=0)
        assert len(fusion.fuse(None)) == 0
        assert len(fusion.fuse(HumanPrior.empty())) == 0
        ts = fusion.fuse(None, machine_samples)
        assert ts.machine_count == 2 and ts.human_count == 0

    def test_confidence_must_be_positive(self):
        with pytest.raises(InvalidInputError):
            HumanPrior.from_pairs([((0.0, 0.0), 1)], confidence=0.0)
        with pytest.raises(InvalidInputError):
            ObservationFusion(seed=0).noise_std(-1.0)

    def test_human_rows_rejected_as_machine_input(self, sample_prior):
        human = Observation((1.0, 1.0), 2.0, 0.0, ObservationSource.HUMAN)
        with pytest.raises(InvalidInputError):
            ObservationFusion(seed=0).fuse(sample_prior, [human])

    @pytest.mark.parametrize("k", [0, -1, 2.5, True])
    def test_invalid_sample_count(self, k):
        with pytest.raises(InvalidInputError):
            ObservationFusion(samples_per_observation=k)

    def test_config_section(self):
        fusion = ObservationFusion(config={'samples_per_observation': 7, 'seed': 3})
        assert fusion.samples_per_observation == 7
        assert fusion.seed == 3
