from abc import ABC, abstractmethod
from dataclasses import dataclass

import numpy as np
from scipy.special import multigammaln
from scipy.stats import invwishart, multivariate_normal

# constants
LOG_PI = np.log(np.pi)


class SufficientStats(ABC):
    """Additive summary of a set of rows, enough to compute a posterior."""

    @classmethod
    @abstractmethod
    def from_data(cls, data: np.ndarray) -> "SufficientStats":
        """Summarize an (n, dim) array of rows; n may be zero."""

    @property
    @abstractmethod
    def n_points(self) -> int:
        """Number of rows summarized."""

    @abstractmethod
    def __add__(self, other: "SufficientStats") -> "SufficientStats":
        """Statistic of the union of both row sets."""


class GaussianPrior(ABC):
    """
    Conjugate prior over the parameters of a multivariate Gaussian.

    The samplers only rely on this interface: building sufficient statistics
    from rows, turning them into posterior hyperparameters, drawing a Gaussian
    from a posterior, and scoring statistics by their marginal likelihood.
    """

    @abstractmethod
    def stats_from_data(self, data: np.ndarray) -> SufficientStats:
        """Sufficient statistics of the rows of data."""

    @abstractmethod
    def posterior(self, stats: SufficientStats):
        """Posterior hyperparameters given the statistics."""

    @abstractmethod
    def sample(self, params, rng: np.random.Generator):
        """Draw a frozen Gaussian from the distribution given by params."""

    @abstractmethod
    def log_marginal_likelihood(self, stats: SufficientStats) -> float:
        """Log probability of the summarized rows with parameters integrated out."""


@dataclass
class NIWParams:
    """
    Normal-inverse-Wishart hyperparameters.

    Attributes:
        kappa: Scaling of the mean precision.
        mu: Prior mean, shape (dim,).
        nu: Degrees of freedom, must exceed dim - 1.
        psi: Scale matrix, shape (dim, dim).
    """

    kappa: float
    mu: np.ndarray
    nu: float
    psi: np.ndarray

    @property
    def dim(self) -> int:
        return self.mu.shape[0]

    @classmethod
    def default(cls, dim: int) -> "NIWParams":
        """Weakly informative hyperparameters centered at the origin."""
        return cls(1.0, np.zeros(dim), float(dim + 3), np.eye(dim))

    @classmethod
    def from_data(cls, data: np.ndarray) -> "NIWParams":
        """Hyperparameters centered on the data mean with the data covariance as scale."""
        data = np.asarray(data, dtype=float)
        if data.ndim != 2 or data.shape[0] < 2:
            raise ValueError(
                f"data must be a 2D array with at least 2 rows, got shape {data.shape}"
            )
        dim = data.shape[1]
        psi = np.atleast_2d(np.cov(data, rowvar=False))
        return cls(1.0, data.mean(axis=0), float(dim + 3), psi)

    def validate(self):
        """Raise ValueError if the hyperparameters do not define a proper NIW."""
        if self.kappa <= 0:
            raise ValueError(f"kappa must be positive, got {self.kappa}")
        if self.psi.shape != (self.dim, self.dim):
            raise ValueError(
                f"psi must have shape ({self.dim}, {self.dim}), got {self.psi.shape}"
            )
        if self.nu <= self.dim - 1:
            raise ValueError(f"nu must exceed dim - 1 = {self.dim - 1}, got {self.nu}")


@dataclass
class NIWStats(SufficientStats):
    """
    Count, sum and sum of outer products of a set of rows.

    Attributes:
        n: Number of rows.
        x_sum: Sum of the rows, shape (dim,).
        xx_sum: Sum of the outer products of the rows, shape (dim, dim).
    """

    n: int
    x_sum: np.ndarray
    xx_sum: np.ndarray

    @classmethod
    def from_data(cls, data: np.ndarray) -> "NIWStats":
        data = np.asarray(data, dtype=float)
        return cls(data.shape[0], data.sum(axis=0), data.T @ data)

    @classmethod
    def empty(cls, dim: int) -> "NIWStats":
        return cls(0, np.zeros(dim), np.zeros((dim, dim)))

    @property
    def n_points(self) -> int:
        return self.n

    def __add__(self, other: "NIWStats") -> "NIWStats":
        return NIWStats(
            self.n + other.n, self.x_sum + other.x_sum, self.xx_sum + other.xx_sum
        )


class NIW(GaussianPrior):
    """Normal-inverse-Wishart prior over a Gaussian's mean and covariance."""

    def __init__(self, params: NIWParams):
        params.validate()
        self.params = params

    @property
    def dim(self) -> int:
        return self.params.dim

    def stats_from_data(self, data: np.ndarray) -> NIWStats:
        return NIWStats.from_data(data)

    def posterior(self, stats: NIWStats) -> NIWParams:
        """
        Conjugate update of the hyperparameters.

        Args:
            stats: Statistics of the rows assigned to the component.

        Returns:
            Posterior hyperparameters; equal to the prior when stats is empty.
        """
        prior = self.params
        kappa = prior.kappa + stats.n
        nu = prior.nu + stats.n
        mu = (prior.kappa * prior.mu + stats.x_sum) / kappa
        psi = (
            prior.psi
            + stats.xx_sum
            + prior.kappa * np.outer(prior.mu, prior.mu)
            - kappa * np.outer(mu, mu)
        )
        return NIWParams(kappa, mu, nu, 0.5 * (psi + psi.T))

    def sample(self, params: NIWParams, rng: np.random.Generator):
        """
        Draw a Gaussian from a normal-inverse-Wishart distribution.

        Samples the covariance from an inverse-Wishart, then the mean from a
        normal scaled by 1 / kappa.

        Args:
            params: Hyperparameters to sample from (usually a posterior).
            rng: Random number generator.

        Returns:
            Frozen scipy multivariate normal.
        """
        cov = np.atleast_2d(invwishart.rvs(df=params.nu, scale=params.psi, random_state=rng))
        mean = np.atleast_1d(
            multivariate_normal.rvs(mean=params.mu, cov=cov / params.kappa, random_state=rng)
        )
        return multivariate_normal(mean=mean, cov=cov)

    def log_marginal_likelihood(self, stats: NIWStats) -> float:
        prior = self.params
        post = self.posterior(stats)
        dim = self.dim
        _, logdet_prior = np.linalg.slogdet(prior.psi)
        _, logdet_post = np.linalg.slogdet(post.psi)
        return float(
            -0.5 * stats.n * dim * LOG_PI
            + multigammaln(0.5 * post.nu, dim)
            - multigammaln(0.5 * prior.nu, dim)
            + 0.5 * prior.nu * logdet_prior
            - 0.5 * post.nu * logdet_post
            + 0.5 * dim * (np.log(prior.kappa) - np.log(post.kappa))
        )
