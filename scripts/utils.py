import sys
from typing import List

import numpy as np
from options import FitOptions, ModelOptions, OutlierRemoval
from priors import NIWParams


def add_common_args(subparser):
    """Add common arguments to an argument parser.

    Args:
        subparser: ArgumentParser subparser to add arguments to
    """
    subparser.add_argument(
        "--data", type=str, default="example_1", help="Data directory"
    )
    subparser.add_argument(
        "--data_root", type=str, default="../data", help="Directory holding the datasets"
    )
    subparser.add_argument(
        "--verbose", action="store_true", help="Indicates if verbose output is desired"
    )
    subparser.add_argument(
        "--loading_bar", action="store_true", help="Show progress bars"
    )


def add_sampling_args(subparser, iters=100, burn=20):
    """Add sampling-related arguments to an argument parser.

    Args:
        subparser: ArgumentParser subparser to add arguments to
        iters: Default number of sweeps
        burn: Default number of sweeps left out of the diagnostics
    """
    subparser.add_argument("--iters", type=int, default=iters, help="Number of sweeps")
    subparser.add_argument(
        "--burn", type=int, default=burn, help="Sweeps left out of the diagnostics"
    )
    subparser.add_argument("--seed", type=int, default=42, help="Random seed")
    subparser.add_argument(
        "--init_clusters", type=int, default=1, help="Initial number of clusters"
    )
    subparser.add_argument(
        "--max_clusters", type=int, default=sys.maxsize, help="Maximum number of clusters"
    )
    subparser.add_argument(
        "--argmax_sample_stop",
        type=int,
        default=5,
        help="Final sweeps assigning labels by arg-max",
    )
    subparser.add_argument(
        "--iter_split_stop",
        type=int,
        default=5,
        help="Final sweeps without split or merge proposals",
    )


def add_model_args(subparser):
    """Add model arguments to an argument parser.

    Args:
        subparser: ArgumentParser subparser to add arguments to
    """
    subparser.add_argument(
        "--alpha", type=float, default=10.0, help="Dirichlet process concentration"
    )
    subparser.add_argument(
        "--burnout", type=int, default=20, help="Sweeps before a cluster may split or merge"
    )
    subparser.add_argument(
        "--outlier_weight", type=float, default=0.05, help="Weight of the outlier component"
    )
    subparser.add_argument(
        "--no_outlier", action="store_true", help="Disable the outlier component"
    )
    subparser.add_argument(
        "--hard_assignment", action="store_true", help="Always assign labels by arg-max"
    )
    subparser.add_argument(
        "--default_prior",
        action="store_true",
        help="Use the standard prior instead of one centered on the data",
    )


def add_chain_args(subparser):
    """Add chain-related arguments to an argument parser.

    Args:
        subparser: ArgumentParser subparser to add arguments to
    """
    subparser.add_argument("--chains", type=int, default=4, help="Number of chains")
    subparser.add_argument(
        "--shards", type=int, default=1, help="Number of data shards per chain"
    )


def add_dpmm_args(subparser):
    """Add all arguments for the DPMM sampler script.

    Args:
        subparser: ArgumentParser subparser to add arguments to
    """
    add_common_args(subparser)
    add_sampling_args(subparser)
    add_model_args(subparser)
    add_chain_args(subparser)


def parse_model_options(args, data: np.ndarray) -> ModelOptions:
    """Build model options from command line args.

    Args:
        args: Parsed command line arguments
        data: Observations, shape (n_points, dim)

    Returns:
        Validated ModelOptions
    """
    dim = data.shape[1]
    if args.default_prior:
        data_dist = NIWParams.default(dim)
    else:
        data_dist = NIWParams.from_data(data)

    outlier = None
    if not args.no_outlier:
        outlier = OutlierRemoval(weight=args.outlier_weight, dist=data_dist)

    options = ModelOptions(
        data_dist=data_dist,
        alpha=args.alpha,
        dim=dim,
        burnout_period=args.burnout,
        outlier=outlier,
        hard_assignment=args.hard_assignment,
    )
    options.validate()
    return options


def parse_fit_options(args) -> FitOptions:
    """Build fit options from command line args.

    Args:
        args: Parsed command line arguments

    Returns:
        Validated FitOptions
    """
    options = FitOptions(
        seed=args.seed,
        init_clusters=args.init_clusters,
        max_clusters=args.max_clusters,
        iters=args.iters,
        argmax_sample_stop=args.argmax_sample_stop,
        iter_split_stop=args.iter_split_stop,
    )
    options.validate()
    return options


def print_cluster_summary(result):
    """Print the clusters found by one chain.

    Args:
        result: FitResult of the chain
    """
    global_state = result.global_state
    print(f"Clusters: {global_state.n_regular}")
    for k, cluster in enumerate(global_state.clusters):
        name = "outlier" if k < global_state.n_outliers else f"cluster {k}"
        mean = np.round(cluster.prim.dist.mean, 3)
        print(
            f"  {name:<12} weight={global_state.weights[k]:.3f} "
            f"n={cluster.n_points:<6} mean={mean}"
        )


def print_runtime_summary(times: List[float]):
    """Print runtime summary.

    Args:
        times: List of runtime values
    """
    print(f"\nMean runtime / chain: {np.mean(times):.2f}s")


def create_output_message(data_name, data_root="../data"):
    """Create standardized output message for the metrics file.

    Args:
        data_name: Name of the dataset
        data_root: Directory holding the datasets

    Returns:
        Formatted output message string
    """
    return f"\nMetrics saved in {data_root}/{data_name}/metrics.json"
