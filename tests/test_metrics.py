import json
from dataclasses import dataclass

import numpy as np
import pytest
from metrics import (
    acf_1d,
    compute_log_likelihood,
    create_metrics,
    ess_multichain,
    rhat_scalar,
)
from scipy.special import logsumexp
from scipy.stats import multivariate_normal


@dataclass
class _Regular:
    n_regular: int


@dataclass
class _Result:
    global_state: _Regular
    n_clusters_trace: np.ndarray
    log_likelihood_trace: np.ndarray
    runtime: float


def make_result(rng, n_clusters, runtime):
    return _Result(
        _Regular(n_clusters),
        np.full(50, n_clusters),
        rng.normal(-100.0, 1.0, 50),
        runtime,
    )


class TestLogLikelihood:
    def test_matches_mixture_density(self, make_global_state, rng):
        means = [(0.0, 0.0), (3.0, -1.0)]
        global_state = make_global_state(means, weights=[0.3, 0.6])
        data = rng.normal(size=(25, 2))

        components = np.column_stack(
            [
                multivariate_normal(mean, np.eye(2)).logpdf(data) + np.log(w)
                for mean, w in zip(means, [1.0 / 3.0, 2.0 / 3.0])
            ]
        )
        expected = logsumexp(components, axis=1).sum()
        assert compute_log_likelihood(global_state, data) == pytest.approx(expected)

    def test_far_points_stay_finite(self, make_global_state):
        global_state = make_global_state([(0.0, 0.0)])
        value = compute_log_likelihood(global_state, np.array([[60.0, 60.0]]))
        assert np.isfinite(value)

    def test_zero_weight_cluster(self, make_global_state):
        global_state = make_global_state([(0.0, 0.0), (5.0, 5.0)], weights=[1.0, 0.0])
        data = np.zeros((1, 2))
        expected = multivariate_normal(np.zeros(2), np.eye(2)).logpdf(data)
        assert compute_log_likelihood(global_state, data) == pytest.approx(expected)


class TestDiagnostics:
    def test_acf_starts_at_one(self, rng):
        ac = acf_1d(rng.normal(size=200), max_lag=10)
        assert ac.shape == (11,)
        assert ac[0] == pytest.approx(1.0)

    def test_acf_constant_series(self):
        np.testing.assert_array_equal(acf_1d(np.ones(20), max_lag=5), np.ones(6))

    def test_ess_of_independent_draws(self, rng):
        chains = [rng.normal(size=500) for _ in range(4)]
        ess = ess_multichain(chains)
        assert 0 < ess <= 2000
        assert ess > 1000

    def test_ess_short_chains(self, rng):
        assert ess_multichain([rng.normal(size=5), rng.normal(size=5)]) > 0

    def test_rhat_agreeing_chains(self, rng):
        chains = [rng.normal(size=1000) for _ in range(4)]
        assert rhat_scalar(chains) == pytest.approx(1.0, abs=0.05)

    def test_rhat_disagreeing_chains(self, rng):
        chains = [rng.normal(size=200), rng.normal(10.0, 1.0, size=200)]
        assert rhat_scalar(chains) > 2.0

    def test_rhat_constant_chains(self):
        assert rhat_scalar([np.full(10, 3.0), np.full(10, 3.0)]) == 1.0
        assert rhat_scalar([np.full(10, 3.0), np.full(10, 4.0)]) == np.inf

    def test_rhat_single_chain(self, rng):
        assert np.isnan(rhat_scalar([rng.normal(size=100)]))


class TestCreateMetrics:
    def test_writes_summary(self, tmp_path, rng):
        results = [make_result(rng, 3, 1.5), make_result(rng, 4, 2.5)]
        summary = create_metrics(results, "blobs", data_root=str(tmp_path))

        assert summary["final_n_clusters"] == [3, 4]
        assert summary["mean_n_clusters"] == [3.0, 4.0]
        assert summary["mean_runtime"] == pytest.approx(2.0)
        assert summary["std_runtime"] == pytest.approx(0.5)

        with open(tmp_path / "blobs" / "metrics.json", encoding="utf-8") as f:
            saved = json.load(f)
        assert saved["dpmm"]["final_n_clusters"] == [3, 4]

    def test_keeps_other_models(self, tmp_path, rng):
        metrics_file = tmp_path / "blobs" / "metrics.json"
        metrics_file.parent.mkdir()
        metrics_file.write_text(json.dumps({"other": {"final_n_clusters": [1]}}))

        create_metrics([make_result(rng, 2, 1.0)], "blobs", data_root=str(tmp_path), burn=10)

        saved = json.loads(metrics_file.read_text())
        assert set(saved) == {"other", "dpmm"}
        assert np.isnan(saved["dpmm"]["log_likelihood_rhat"])
