# pylint: disable=too-many-locals

from dataclasses import dataclass, field
from typing import Any, List, Optional, Sequence, Tuple

import numpy as np
from local_state import LocalStats
from options import ModelOptions, OutlierRemoval
from priors import NIW, GaussianPrior, SufficientStats
from scipy.special import gammaln


@dataclass
class ClusterParams:
    """
    Posterior of one component and a Gaussian drawn from it.

    Attributes:
        prior: Prior of the component.
        stats: Statistics of the points last assigned to the component.
        post: Posterior hyperparameters given stats.
        dist: Frozen Gaussian sampled from post.
    """

    prior: GaussianPrior
    stats: SufficientStats
    post: Any
    dist: Any

    @classmethod
    def from_prior(
        cls, prior: NIW, rng: np.random.Generator, stats: Optional[SufficientStats] = None
    ) -> "ClusterParams":
        """Component with the given statistics (none by default) and a fresh sample."""
        if stats is None:
            stats = prior.stats_from_data(np.empty((0, prior.dim)))
        post = prior.posterior(stats)
        return cls(prior, stats, post, prior.sample(post, rng))

    @property
    def n_points(self) -> int:
        return self.stats.n_points

    def ln_pdf(self, data: np.ndarray) -> np.ndarray:
        """Log density of each row of data."""
        return np.atleast_1d(self.dist.logpdf(data))

    def log_marginal_likelihood(self) -> float:
        return self.prior.log_marginal_likelihood(self.stats)

    def update_post(self, stats: SufficientStats):
        self.stats = stats
        self.post = self.prior.posterior(stats)

    def update_sample(self, rng: np.random.Generator):
        self.dist = self.prior.sample(self.post, rng)


@dataclass
class Cluster:
    """
    A mixture component with its two auxiliary sub-clusters.

    Attributes:
        prim: The component itself.
        aux: The two sub-clusters splitting the component's points.
        weights: Mixture weights of the two sub-clusters.
        age: Sweeps since the component was created by a split or merge.
    """

    prim: ClusterParams
    aux: List[ClusterParams]
    weights: np.ndarray = field(default_factory=lambda: np.full(2, 0.5))
    age: int = 0

    @classmethod
    def from_prior(
        cls, prior: NIW, rng: np.random.Generator, stats: Optional[SufficientStats] = None
    ) -> "Cluster":
        prim = ClusterParams.from_prior(prior, rng, stats)
        aux = [ClusterParams.from_prior(prior, rng) for _ in range(2)]
        return cls(prim, aux)

    @property
    def n_points(self) -> int:
        return self.prim.n_points


@dataclass
class GlobalState:
    """
    Parameters shared by every shard during one sweep.

    Attributes:
        clusters: Components of the mixture. When an outlier component is
            configured it sits at index 0.
        weights: Mixture weight of each component.
        outlier: Outlier configuration, if any.
    """

    clusters: List[Cluster]
    weights: np.ndarray
    outlier: Optional[OutlierRemoval] = None

    @classmethod
    def from_init(
        cls, n_clusters: int, options: ModelOptions, rng: np.random.Generator
    ) -> "GlobalState":
        """
        Draw the initial components from the prior.

        Args:
            n_clusters: Number of regular clusters.
            options: Model options.
            rng: Random number generator.

        Returns:
            Global state with uniform weights over the regular clusters.
        """
        prior = NIW(options.data_dist)
        clusters = [Cluster.from_prior(prior, rng) for _ in range(n_clusters)]
        weights = np.full(n_clusters, 1.0 / n_clusters)

        if options.outlier is not None:
            clusters.insert(0, Cluster.from_prior(NIW(options.outlier.dist), rng))
            weights = np.concatenate(
                [[options.outlier.weight], (1.0 - options.outlier.weight) * weights]
            )

        return cls(clusters, weights, options.outlier)

    @property
    def n_clusters(self) -> int:
        return len(self.clusters)

    @property
    def n_outliers(self) -> int:
        return int(self.outlier is not None)

    @property
    def n_regular(self) -> int:
        return self.n_clusters - self.n_outliers

    def update_clusters_post(self, stats: LocalStats):
        """Rebuild every posterior from aggregated statistics."""
        if len(stats) != self.n_clusters:
            raise ValueError(
                f"got statistics for {len(stats)} clusters, expected {self.n_clusters}"
            )
        for cluster, (prim, aux) in zip(self.clusters, stats):
            cluster.prim.update_post(prim)
            for a in range(2):
                cluster.aux[a].update_post(aux[a])

    def update_sample_clusters(self, rng: np.random.Generator):
        """Draw new Gaussians for every cluster and sub-cluster."""
        for cluster in self.clusters:
            cluster.prim.update_sample(rng)
            for aux in cluster.aux:
                aux.update_sample(rng)

    def update_sample_weights(self, alpha: float, rng: np.random.Generator):
        """
        Draw mixture weights given the current cluster sizes.

        Regular clusters follow Dirichlet(N_1, ..., N_K, alpha) with the mass of
        the unseen cluster dropped. The outlier keeps its fixed weight and the
        regular clusters share the rest. Sub-cluster weights follow
        Dirichlet(alpha / 2 + N_left, alpha / 2 + N_right).

        Args:
            alpha: Concentration of the Dirichlet process.
            rng: Random number generator.
        """
        counts = np.array(
            [cluster.n_points for cluster in self.clusters[self.n_outliers :]],
            dtype=float,
        )
        if (counts <= 0).any():
            raise ValueError("empty clusters must be removed before sampling weights")

        weights = rng.dirichlet(np.append(counts, alpha))[:-1] if counts.size else counts
        if self.outlier is not None:
            weights = np.concatenate(
                [[self.outlier.weight], (1.0 - self.outlier.weight) * weights]
            )
        self.weights = weights

        for cluster in self.clusters:
            aux_counts = np.array([aux.n_points for aux in cluster.aux], dtype=float)
            cluster.weights = rng.dirichlet(0.5 * alpha + aux_counts)

    def update_cluster_ages(self):
        for cluster in self.clusters:
            cluster.age += 1

    def empty_clusters(self) -> List[int]:
        """Indices of regular clusters without points."""
        return [
            k
            for k in range(self.n_outliers, self.n_clusters)
            if self.clusters[k].n_points == 0
        ]

    def remove_clusters(self, cluster_idx: Sequence[int]):
        """Delete clusters; indices are in the numbering before the deletion."""
        cluster_idx = sorted(set(cluster_idx))
        if self.outlier is not None and 0 in cluster_idx:
            raise ValueError("the outlier component cannot be removed")
        for k in reversed(cluster_idx):
            del self.clusters[k]
        self.weights = np.delete(self.weights, cluster_idx)

    def log_split_ratio(self, k: int, alpha: float) -> float:
        """
        Log Hastings ratio of splitting cluster k along its sub-clusters.

        Returns -inf when a sub-cluster is empty.
        """
        cluster = self.clusters[k]
        n_l, n_r = (aux.n_points for aux in cluster.aux)
        if n_l == 0 or n_r == 0:
            return -np.inf
        return float(
            np.log(alpha)
            + gammaln(n_l)
            + cluster.aux[0].log_marginal_likelihood()
            + gammaln(n_r)
            + cluster.aux[1].log_marginal_likelihood()
            - gammaln(n_l + n_r)
            - cluster.prim.log_marginal_likelihood()
        )

    def log_merge_ratio(self, k1: int, k2: int, alpha: float) -> float:
        """
        Log Hastings ratio of merging clusters k1 and k2.

        Returns -inf when one of them is empty.
        """
        c1 = self.clusters[k1].prim
        c2 = self.clusters[k2].prim
        n_1, n_2 = c1.n_points, c2.n_points
        if n_1 == 0 or n_2 == 0:
            return -np.inf
        n = n_1 + n_2
        merged = c1.prior.log_marginal_likelihood(c1.stats + c2.stats)
        return float(
            gammaln(n)
            - gammaln(n_1)
            - gammaln(n_2)
            - np.log(alpha)
            + merged
            - c1.log_marginal_likelihood()
            - c2.log_marginal_likelihood()
            + gammaln(alpha)
            - gammaln(alpha + n)
            + gammaln(0.5 * alpha + n_1)
            + gammaln(0.5 * alpha + n_2)
            - 2 * gammaln(0.5 * alpha)
        )

    def check_and_split(
        self, options: ModelOptions, max_clusters: int, rng: np.random.Generator
    ) -> List[Tuple[int, int]]:
        """
        Propose to split every mature regular cluster along its sub-clusters.

        An accepted split keeps the first sub-cluster at index k and appends the
        second as a new cluster. Both start a new burn-out period.

        Args:
            options: Model options (alpha and burnout_period are used).
            max_clusters: Upper bound on the number of regular clusters.
            rng: Random number generator.

        Returns:
            List of (k, new_k) pairs, one per accepted split.
        """
        splits = []
        for k in range(self.n_outliers, self.n_clusters):
            if self.n_regular >= max_clusters:
                break
            cluster = self.clusters[k]
            if cluster.age < options.burnout_period:
                continue
            if np.log(rng.random()) >= self.log_split_ratio(k, options.alpha):
                continue

            left, right = cluster.aux
            prior = cluster.prim.prior
            new_k = self.n_clusters
            self.clusters[k] = Cluster(left, [
                ClusterParams.from_prior(prior, rng, left.stats) for _ in range(2)
            ])
            self.clusters.append(Cluster(right, [
                ClusterParams.from_prior(prior, rng, right.stats) for _ in range(2)
            ]))
            weight = self.weights[k]
            self.weights[k] = weight * cluster.weights[0]
            self.weights = np.append(self.weights, weight * cluster.weights[1])
            splits.append((k, new_k))
        return splits

    def check_and_merge(
        self, options: ModelOptions, rng: np.random.Generator
    ) -> List[Tuple[int, int]]:
        """
        Propose to merge every pair of mature regular clusters.

        Each cluster takes part in at most one accepted merge. The merged
        cluster stays at index k1 with its parents as sub-clusters, and the
        emptied clusters k2 are removed from this state before returning.

        Args:
            options: Model options (alpha and burnout_period are used).
            rng: Random number generator.

        Returns:
            List of (k1, k2) pairs in the numbering before the removal.
        """
        merges = []
        merged = set()
        for k1 in range(self.n_outliers, self.n_clusters):
            for k2 in range(k1 + 1, self.n_clusters):
                if k1 in merged:
                    break
                if k2 in merged:
                    continue
                c1, c2 = self.clusters[k1], self.clusters[k2]
                if min(c1.age, c2.age) < options.burnout_period:
                    continue
                if np.log(rng.random()) >= self.log_merge_ratio(k1, k2, options.alpha):
                    continue

                prim = ClusterParams.from_prior(
                    c1.prim.prior, rng, c1.prim.stats + c2.prim.stats
                )
                w_1, w_2 = self.weights[k1], self.weights[k2]
                self.clusters[k1] = Cluster(
                    prim, [c1.prim, c2.prim], np.array([w_1, w_2]) / (w_1 + w_2)
                )
                self.weights[k1] = w_1 + w_2
                merges.append((k1, k2))
                merged.update((k1, k2))

        self.remove_clusters([k2 for _, k2 in merges])
        return merges
