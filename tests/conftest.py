import numpy as np
import pytest
from global_state import Cluster, ClusterParams, GlobalState
from priors import NIW, NIWParams
from scipy.stats import multivariate_normal


@pytest.fixture
def rng():
    return np.random.default_rng(0)


@pytest.fixture
def prior():
    return NIW(NIWParams.default(2))


@pytest.fixture
def two_blobs(rng):
    """Two tight 2D blobs, 20 points each, at (-10, -10) and (10, 10)."""
    left = rng.normal(-10.0, 0.5, (20, 2))
    right = rng.normal(10.0, 0.5, (20, 2))
    return np.vstack([left, right])


@pytest.fixture
def make_params(prior):
    """Factory for a component with a fixed isotropic Gaussian."""

    def _make(mean, scale=1.0):
        stats = prior.stats_from_data(np.empty((0, 2)))
        dist = multivariate_normal(mean=np.asarray(mean, dtype=float), cov=scale * np.eye(2))
        return ClusterParams(prior, stats, prior.posterior(stats), dist)

    return _make


@pytest.fixture
def make_global_state(make_params):
    """Factory for a global state with fixed cluster and sub-cluster Gaussians."""

    def _make(means, weights=None, aux_means=None, aux_weights=None):
        n_clusters = len(means)
        if weights is None:
            weights = np.full(n_clusters, 1.0 / n_clusters)
        if aux_means is None:
            aux_means = [(mean, mean) for mean in means]
        if aux_weights is None:
            aux_weights = [np.full(2, 0.5)] * n_clusters
        clusters = [
            Cluster(
                make_params(mean),
                [make_params(aux[0]), make_params(aux[1])],
                np.asarray(aux_w, dtype=float),
            )
            for mean, aux, aux_w in zip(means, aux_means, aux_weights)
        ]
        return GlobalState(clusters, np.asarray(weights, dtype=float))

    return _make
