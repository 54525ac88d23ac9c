# pylint: disable=too-many-arguments

from dataclasses import dataclass
from functools import reduce
from operator import add
from typing import TYPE_CHECKING, List, Sequence, Tuple

import numpy as np
from numeric import compact_labels, row_normalize_log_weights, sample_weighted
from options import ModelOptions
from priors import NIW, GaussianPrior, SufficientStats

if TYPE_CHECKING:
    from global_state import GlobalState

# one (cluster stats, [left sub-cluster stats, right sub-cluster stats]) per cluster
LocalStats = List[Tuple[SufficientStats, List[SufficientStats]]]


def _check_log_likelihoods(ll: np.ndarray):
    """Raise ValueError for rows holding nan or +inf, or only -inf."""
    bad_rows = (
        np.isnan(ll).any(axis=1)
        | np.isposinf(ll).any(axis=1)
        | np.isneginf(ll).all(axis=1)
    )
    if bad_rows.any():
        row = int(np.flatnonzero(bad_rows)[0])
        raise ValueError(f"point {row} has no valid log-likelihood: {ll[row]}")


@dataclass
class LocalState:
    """
    Labels of one shard of the data.

    Attributes:
        data: Observations of the shard, shape (n_points, dim).
        labels: Cluster of each point.
        labels_aux: Sub-cluster (0 or 1) of each point within its cluster.
        prior: Prior whose sufficient statistics summarize the clusters.
    """

    data: np.ndarray
    labels: np.ndarray
    labels_aux: np.ndarray
    prior: GaussianPrior

    def __post_init__(self):
        self.data = np.asarray(self.data, dtype=float)
        # the shard owns its label vectors
        self.labels = np.array(self.labels, dtype=np.int64)
        self.labels_aux = np.array(self.labels_aux, dtype=np.int64)

        if self.data.ndim != 2:
            raise ValueError(f"data must be a 2D array, got shape {self.data.shape}")
        n_points = self.data.shape[0]
        if self.labels.shape != (n_points,) or self.labels_aux.shape != (n_points,):
            raise ValueError(
                f"labels and labels_aux must have length {n_points}, got "
                f"{self.labels.shape} and {self.labels_aux.shape}"
            )
        if (self.labels < 0).any():
            raise ValueError("labels must be nonnegative")
        if ((self.labels_aux != 0) & (self.labels_aux != 1)).any():
            raise ValueError("labels_aux must be 0 or 1")

    @classmethod
    def from_init(
        cls,
        data: np.ndarray,
        n_clusters: int,
        options: ModelOptions,
        rng: np.random.Generator,
    ) -> "LocalState":
        """
        Assign every point to a uniformly random cluster and sub-cluster.

        The outlier component, when configured, takes one extra cluster index.

        Args:
            data: Observations, shape (n_points, dim).
            n_clusters: Number of regular clusters.
            options: Model options.
            rng: Random number generator.

        Returns:
            Freshly initialized local state.
        """
        data = np.asarray(data, dtype=float)
        n_points = data.shape[0]
        n_clusters = n_clusters + int(options.outlier is not None)
        labels = rng.integers(0, n_clusters, n_points)
        labels_aux = rng.integers(0, 2, n_points)
        return cls(data, labels, labels_aux, NIW(options.data_dist))

    @property
    def n_points(self) -> int:
        return self.data.shape[0]

    def update_sample_labels(
        self, global_state: "GlobalState", is_final: bool, rng: np.random.Generator
    ):
        """
        Resample the cluster of every point.

        The log-likelihood of point i under cluster k is the log density of
        the cluster's primary distribution plus the log of its weight. In
        final mode each point takes its arg-max cluster; otherwise labels are
        drawn from the normalized likelihoods.

        Args:
            global_state: Current cluster parameters, read only.
            is_final: If True, assign labels deterministically by arg-max.
            rng: Random number generator.

        Raises:
            ValueError: If the weights do not match the clusters, or a point
                has a nan or +inf log-likelihood or only -inf ones.
        """
        if len(global_state.clusters) != len(global_state.weights):
            raise ValueError(
                f"global state has {len(global_state.clusters)} clusters but "
                f"{len(global_state.weights)} weights"
            )

        with np.errstate(divide="ignore"):
            ln_weights = np.log(global_state.weights)
        ll = np.empty((self.n_points, len(global_state.clusters)))
        for k, cluster in enumerate(global_state.clusters):
            ll[:, k] = cluster.prim.ln_pdf(self.data) + ln_weights[k]

        _check_log_likelihoods(ll)
        if is_final:
            self.labels[:] = ll.argmax(axis=1)
        else:
            row_normalize_log_weights(ll)
            self.labels[:] = sample_weighted(ll, rng)

    def update_sample_labels_aux(
        self, global_state: "GlobalState", rng: np.random.Generator
    ):
        """
        Resample the sub-cluster of every point within its current cluster.

        Args:
            global_state: Current cluster parameters, read only.
            rng: Random number generator.
        """
        ll = np.zeros((self.n_points, 2))
        for k, cluster in enumerate(global_state.clusters):
            in_k = self.labels == k
            if not in_k.any():
                continue
            points = self.data[in_k]
            with np.errstate(divide="ignore"):
                ln_weights = np.log(cluster.weights)
            for a in range(2):
                ll[in_k, a] = cluster.aux[a].ln_pdf(points) + ln_weights[a]

        _check_log_likelihoods(ll)
        row_normalize_log_weights(ll)
        self.labels_aux[:] = sample_weighted(ll, rng)

    def collect_stats(self, n_clusters: int) -> LocalStats:
        """Sufficient statistics of every cluster and its two sub-clusters."""
        if self.n_points and self.labels.max() >= n_clusters:
            raise ValueError(
                f"label {self.labels.max()} is out of range for {n_clusters} clusters"
            )
        return [self.collect_stats_cluster(k) for k in range(n_clusters)]

    def collect_stats_cluster(
        self, cluster_id: int
    ) -> Tuple[SufficientStats, List[SufficientStats]]:
        in_cluster = self.labels == cluster_id
        idx_l = np.flatnonzero(in_cluster & (self.labels_aux == 0))
        idx_r = np.flatnonzero(in_cluster & (self.labels_aux == 1))

        points = self.data[np.concatenate([idx_l, idx_r])]
        prim = self.prior.stats_from_data(points)
        aux = [
            self.prior.stats_from_data(points[: len(idx_l)]),
            self.prior.stats_from_data(points[len(idx_l) :]),
        ]
        return prim, aux

    def update_reset_clusters(
        self, cluster_idx: Sequence[int], rng: np.random.Generator
    ):
        """Draw fresh uniform sub-cluster labels for the points of the given clusters."""
        for k in cluster_idx:
            in_k = self.labels == k
            self.labels_aux[in_k] = rng.integers(0, 2, int(in_k.sum()))

    def update_remove_clusters(self, cluster_idx: Sequence[int]):
        """
        Renumber labels after clusters are deleted.

        Every label above a deleted index moves down by one, deletion after
        deletion, so the remaining clusters are numbered without gaps.

        Args:
            cluster_idx: Strictly ascending indices being deleted, in the
                numbering before the deletion. No point may hold one of them.

        Raises:
            ValueError: If the indices are not strictly ascending or a point is
                still assigned to a deleted cluster.
        """
        cluster_idx = np.asarray(cluster_idx, dtype=np.int64)
        if cluster_idx.size == 0:
            return
        if (np.diff(cluster_idx) <= 0).any():
            raise ValueError(
                f"cluster_idx must be strictly ascending, got {cluster_idx.tolist()}"
            )
        occupied = np.isin(self.labels, cluster_idx)
        if occupied.any():
            raise ValueError(
                f"{int(occupied.sum())} points are still assigned to removed clusters "
                f"{sorted(set(self.labels[occupied].tolist()))}"
            )
        compact_labels(self.labels, cluster_idx)

    def update_split_clusters(self, splits: Sequence[Tuple[int, int]]):
        """Move the second sub-cluster of each split cluster k to its new index."""
        for k, new_k in splits:
            self.labels[(self.labels == k) & (self.labels_aux == 1)] = new_k

    def update_merge_clusters(self, merges: Sequence[Tuple[int, int]]):
        """
        Fold cluster k2 into k1 for each pair.

        The parents become the sub-clusters of the merged cluster: former k1
        points take aux label 0 and former k2 points aux label 1. The emptied
        index k2 still has to be removed with `update_remove_clusters`.
        """
        for k1, k2 in merges:
            in_k1 = self.labels == k1
            in_k2 = self.labels == k2
            self.labels_aux[in_k1] = 0
            self.labels_aux[in_k2] = 1
            self.labels[in_k2] = k1


def aggregate_local_stats(stats_list: Sequence[LocalStats]) -> LocalStats:
    """
    Sum the statistics of several shards cluster by cluster.

    Args:
        stats_list: One `LocalStats` per shard, all with the same number of clusters.

    Returns:
        Combined statistics, one entry per cluster.
    """
    if not stats_list:
        raise ValueError("stats_list must contain at least one shard")
    n_clusters = {len(stats) for stats in stats_list}
    if len(n_clusters) != 1:
        raise ValueError(f"shards disagree on the number of clusters: {n_clusters}")

    aggregated = []
    for entries in zip(*stats_list):
        prim = reduce(add, (prim for prim, _ in entries))
        aux = [reduce(add, (aux[a] for _, aux in entries)) for a in range(2)]
        aggregated.append((prim, aux))
    return aggregated
