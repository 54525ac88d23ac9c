# pylint: disable=too-many-arguments
# pylint: disable=too-many-locals
# pylint: disable=protected-access

import atexit
import dataclasses
import multiprocessing
import time
from dataclasses import dataclass
from multiprocessing import cpu_count
from typing import List, Optional

import numpy as np
from global_state import GlobalState
from joblib import Parallel, delayed
from local_state import LocalState, aggregate_local_stats
from metrics import compute_log_likelihood
from options import FitOptions, ModelOptions
from priors import NIWParams
from tqdm import tqdm


def _cleanup_multiprocessing():
    """
    Force cleanup of multiprocessing resources on exit.

    This function ensures that all multiprocessing resources are properly cleaned up
    when the Python interpreter exits. It checks if the multiprocessing module has
    a cleanup method and calls it if available.
    """
    if hasattr(multiprocessing, "_cleanup"):
        multiprocessing._cleanup()


atexit.register(_cleanup_multiprocessing)


@dataclass
class FitResult:
    """
    Outcome of one sampling run.

    Attributes:
        labels: Final cluster of every point, in the order of the input data.
        global_state: Cluster parameters after the last sweep.
        n_clusters_trace: Number of regular clusters after each sweep.
        log_likelihood_trace: Mixture log-likelihood after each sweep.
        runtime: Wall-clock duration of the run in seconds.
    """

    labels: np.ndarray
    global_state: GlobalState
    n_clusters_trace: np.ndarray
    log_likelihood_trace: np.ndarray
    runtime: float


def default_model_options(data: np.ndarray) -> ModelOptions:
    """Default model options with priors centered on the data."""
    options = ModelOptions.default(data.shape[1])
    options.data_dist = NIWParams.from_data(data)
    options.outlier.dist = NIWParams.from_data(data)
    return options


def _sample_shard_labels(
    local: LocalState,
    global_state: GlobalState,
    is_final: bool,
    rng: np.random.Generator,
):
    local.update_sample_labels(global_state, is_final, rng)
    local.update_sample_labels_aux(global_state, rng)


def _collect_stats(parallel, locals_: List[LocalState], global_state: GlobalState):
    stats = parallel(
        delayed(local.collect_stats)(global_state.n_clusters) for local in locals_
    )
    global_state.update_clusters_post(aggregate_local_stats(stats))


def _remove_empty_clusters(locals_: List[LocalState], global_state: GlobalState) -> int:
    empty = global_state.empty_clusters()
    if empty:
        global_state.remove_clusters(empty)
        for local in locals_:
            local.update_remove_clusters(empty)
    return len(empty)


def fit(
    data: np.ndarray,
    model_options: Optional[ModelOptions] = None,
    fit_options: Optional[FitOptions] = None,
    n_shards: int = 1,
    verbose: bool = False,
    loading_bar: bool = False,
) -> FitResult:
    """
    Run the split/merge sub-cluster sampler on a data set.

    Every sweep draws cluster parameters and weights, resamples labels and
    sub-cluster labels shard by shard, rebuilds the posteriors from the
    aggregated statistics, drops empty clusters and finally proposes splits
    and merges. The last `argmax_sample_stop` sweeps assign labels by arg-max
    and the last `iter_split_stop` sweeps make no split or merge proposals.

    Args:
        data: Observations, shape (n_points, dim) or (n_points,) for 1D data.
        model_options: Model options; priors centered on the data by default.
        fit_options: Run options; defaults to `FitOptions()`.
        n_shards: Number of row-wise shards swept in parallel threads.
        verbose: Whether to print verbose output.
        loading_bar: Whether to show a progress bar.

    Returns:
        The final labels, cluster parameters and per-sweep traces.
    """
    data = np.asarray(data, dtype=float)
    if data.ndim == 1:
        data = data[:, np.newaxis]
    if data.ndim != 2 or data.shape[0] == 0:
        raise ValueError(f"data must be a non-empty 2D array, got shape {data.shape}")
    if not 1 <= n_shards <= data.shape[0]:
        raise ValueError(
            f"n_shards must be between 1 and {data.shape[0]}, got {n_shards}"
        )

    if model_options is None:
        model_options = default_model_options(data)
    if fit_options is None:
        fit_options = FitOptions()
    model_options.validate()
    fit_options.validate()
    if model_options.dim != data.shape[1]:
        raise ValueError(
            f"data has dimension {data.shape[1]}, model expects dim={model_options.dim}"
        )

    root_seq, *shard_seqs = np.random.SeedSequence(fit_options.seed).spawn(n_shards + 1)
    rng = np.random.default_rng(root_seq)
    shard_rngs = [np.random.default_rng(seq) for seq in shard_seqs]

    global_state = GlobalState.from_init(
        fit_options.init_clusters, model_options, rng
    )
    locals_ = [
        LocalState.from_init(chunk, fit_options.init_clusters, model_options, shard_rng)
        for chunk, shard_rng in zip(np.array_split(data, n_shards), shard_rngs)
    ]

    n_clusters_trace = []
    log_likelihood_trace = []
    iters = fit_options.iters

    t0 = time.perf_counter()

    with Parallel(n_jobs=min(n_shards, cpu_count()), backend="threading") as parallel:
        _collect_stats(parallel, locals_, global_state)
        _remove_empty_clusters(locals_, global_state)

        iterations = tqdm(range(iters)) if (verbose or loading_bar) else range(iters)
        for it in iterations:
            is_final = (
                model_options.hard_assignment
                or it >= iters - fit_options.argmax_sample_stop
            )

            global_state.update_sample_clusters(rng)
            global_state.update_sample_weights(model_options.alpha, rng)

            parallel(
                delayed(_sample_shard_labels)(local, global_state, is_final, shard_rng)
                for local, shard_rng in zip(locals_, shard_rngs)
            )
            log_likelihood_trace.append(compute_log_likelihood(global_state, data))

            _collect_stats(parallel, locals_, global_state)
            n_removed = _remove_empty_clusters(locals_, global_state)

            if it < iters - fit_options.iter_split_stop:
                splits = global_state.check_and_split(
                    model_options, fit_options.max_clusters, rng
                )
                split_idx = [k for pair in splits for k in pair]
                for local, shard_rng in zip(locals_, shard_rngs):
                    local.update_split_clusters(splits)
                    local.update_reset_clusters(split_idx, shard_rng)

                merges = global_state.check_and_merge(model_options, rng)
                for local in locals_:
                    local.update_merge_clusters(merges)
                    local.update_remove_clusters(sorted(k2 for _, k2 in merges))

                if splits or merges:
                    _collect_stats(parallel, locals_, global_state)
                    if verbose:
                        print(
                            f"Iteration {it}: {len(splits)} splits, {len(merges)} merges, "
                            f"{global_state.n_regular} clusters"
                        )

            if verbose and n_removed:
                print(f"Iteration {it}: removed {n_removed} empty clusters")

            global_state.update_cluster_ages()
            n_clusters_trace.append(global_state.n_regular)

    return FitResult(
        np.concatenate([local.labels for local in locals_]),
        global_state,
        np.array(n_clusters_trace),
        np.array(log_likelihood_trace),
        time.perf_counter() - t0,
    )


def predict(global_state: GlobalState, data: np.ndarray) -> np.ndarray:
    """
    Assign new points to their most likely cluster.

    Args:
        global_state: Fitted cluster parameters.
        data: Observations, shape (n_points, dim) or (n_points,) for 1D data.

    Returns:
        Arg-max cluster of every point.
    """
    data = np.asarray(data, dtype=float)
    if data.ndim == 1:
        data = data[:, np.newaxis]
    n_points = data.shape[0]
    local = LocalState(
        data,
        np.zeros(n_points, dtype=np.int64),
        np.zeros(n_points, dtype=np.int64),
        global_state.clusters[0].prim.prior,
    )
    local.update_sample_labels(global_state, True, np.random.default_rng())
    return local.labels


def _run_single_chain(args):
    """
    Helper function to run a single chain (for parallelization).

    Unpacks arguments and calls fit. This function is designed to work
    with joblib's delayed calls, which pass a single tuple here.

    Args:
        args: Tuple containing all arguments needed for fit.

    Returns:
        FitResult of the chain.
    """
    data, model_options, fit_options, n_shards, verbose, loading_bar = args
    return fit(data, model_options, fit_options, n_shards, verbose, loading_bar)


def run_parallel_chains(
    data: np.ndarray,
    model_options: Optional[ModelOptions] = None,
    fit_options: Optional[FitOptions] = None,
    n_chains: int = 4,
    n_shards: int = 1,
    verbose: bool = False,
    loading_bar: bool = False,
) -> List[FitResult]:
    """
    Run multiple chains in parallel using multiprocessing.

    Executes independent chains with seeds `seed + 1000 * i` to check that
    they agree on the number of clusters. Uses all available CPU cores up to
    the number of chains requested.

    Args:
        data: Observations.
        model_options: Model options shared by every chain.
        fit_options: Run options; the seed is the base seed.
        n_chains: Number of chains to run.
        n_shards: Number of shards within each chain.
        verbose: Whether to print verbose output.
        loading_bar: Whether to show progress bars during execution.

    Returns:
        One FitResult per chain.
    """
    if fit_options is None:
        fit_options = FitOptions()
    seeds = [fit_options.seed + i * 1000 for i in range(n_chains)]
    if verbose:
        print(f"Running {n_chains} chains with joblib (backend: loky)...")
    return Parallel(
        n_jobs=min(n_chains, cpu_count()),
        backend="loky",
        verbose=0,
        batch_size=1,
        pre_dispatch="2*n_jobs",
    )(
        delayed(_run_single_chain)(
            (
                data,
                model_options,
                dataclasses.replace(fit_options, seed=seed),
                n_shards,
                verbose,
                loading_bar,
            )
        )
        for seed in seeds
    )
