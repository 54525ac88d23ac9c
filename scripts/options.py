import sys
from dataclasses import dataclass, field
from typing import Optional

from priors import NIWParams


@dataclass
class OutlierRemoval:
    """
    Outlier component with a fixed share of the mixture.

    Attributes:
        weight: Mixture weight reserved for the outlier component.
        dist: Hyperparameters of the outlier component's prior.
    """

    weight: float
    dist: NIWParams


@dataclass
class ModelOptions:
    """
    Options of the mixture model.

    Attributes:
        data_dist: Hyperparameters of the prior over cluster parameters.
        alpha: Concentration of the Dirichlet process.
        dim: Dimension of the observations.
        burnout_period: Iterations a cluster must exist before it may split or merge.
        outlier: Optional outlier component.
        hard_assignment: If True, labels are always the arg-max cluster.
    """

    data_dist: NIWParams
    alpha: float = 10.0
    dim: int = 1
    burnout_period: int = 20
    outlier: Optional[OutlierRemoval] = None
    hard_assignment: bool = False

    @classmethod
    def default(cls, dim: int) -> "ModelOptions":
        return cls(
            data_dist=NIWParams.default(dim),
            alpha=10.0,
            dim=dim,
            burnout_period=20,
            outlier=OutlierRemoval(weight=0.05, dist=NIWParams.default(dim)),
            hard_assignment=False,
        )

    def validate(self):
        """Raise ValueError if the options are inconsistent."""
        if self.dim < 1:
            raise ValueError(f"dim must be positive, got {self.dim}")
        if self.alpha <= 0:
            raise ValueError(f"alpha must be positive, got {self.alpha}")
        if self.burnout_period < 0:
            raise ValueError(
                f"burnout_period must be nonnegative, got {self.burnout_period}"
            )
        if self.data_dist.dim != self.dim:
            raise ValueError(
                f"data_dist has dimension {self.data_dist.dim}, expected dim={self.dim}"
            )
        self.data_dist.validate()
        if self.outlier is not None:
            if not 0 < self.outlier.weight < 1:
                raise ValueError(
                    f"outlier weight must be in (0, 1), got {self.outlier.weight}"
                )
            if self.outlier.dist.dim != self.dim:
                raise ValueError(
                    f"outlier dist has dimension {self.outlier.dist.dim}, "
                    f"expected dim={self.dim}"
                )
            self.outlier.dist.validate()


@dataclass
class FitOptions:
    """
    Options of a single sampling run.

    Attributes:
        seed: Random seed.
        init_clusters: Number of clusters drawn at initialization.
        max_clusters: Upper bound on the number of clusters; splits stop there.
        iters: Number of sweeps.
        argmax_sample_stop: Number of final sweeps using arg-max labels.
        iter_split_stop: Number of final sweeps without splits or merges.
    """

    seed: int = 42
    init_clusters: int = 1
    max_clusters: int = field(default=sys.maxsize)
    iters: int = 100
    argmax_sample_stop: int = 5
    iter_split_stop: int = 5

    def validate(self):
        """Raise ValueError if the options are inconsistent."""
        if self.init_clusters < 1:
            raise ValueError(f"init_clusters must be positive, got {self.init_clusters}")
        if self.max_clusters < self.init_clusters:
            raise ValueError(
                f"max_clusters={self.max_clusters} is below "
                f"init_clusters={self.init_clusters}"
            )
        if self.iters < 1:
            raise ValueError(f"iters must be positive, got {self.iters}")
        if self.argmax_sample_stop < 0 or self.iter_split_stop < 0:
            raise ValueError(
                "argmax_sample_stop and iter_split_stop must be nonnegative, got "
                f"{self.argmax_sample_stop} and {self.iter_split_stop}"
            )
