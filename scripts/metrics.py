# pylint: disable=too-many-locals

import json
from pathlib import Path
from typing import TYPE_CHECKING, List

import numpy as np
from global_state import GlobalState
from numba import jit

if TYPE_CHECKING:
    from samplers import FitResult


def compute_log_likelihood(global_state: GlobalState, data: np.ndarray) -> float:
    """
    Compute the log-likelihood of the data under the current mixture.

    Weights are renormalized over the existing clusters, and the per-point
    sum over clusters uses the log-sum-exp trick for numerical stability.

    Args:
        global_state: Current cluster parameters and weights.
        data: Observations, shape (n_points, dim).

    Returns:
        Log-likelihood value for the entire dataset.
    """
    with np.errstate(divide="ignore"):
        log_w = np.log(global_state.weights / global_state.weights.sum())
    log_weights = np.empty((data.shape[0], global_state.n_clusters))
    for k, cluster in enumerate(global_state.clusters):
        log_weights[:, k] = cluster.prim.ln_pdf(data) + log_w[k]
    max_logw = np.max(log_weights, axis=1)
    return float(
        np.sum(
            max_logw
            + np.log(np.sum(np.exp(log_weights - max_logw[:, np.newaxis]), axis=1))
        )
    )


def acf_1d(x: np.ndarray, max_lag: int = 100):
    """
    Compute autocorrelation function for a 1D time series.

    Uses FFT to compute the autocorrelation function efficiently.

    Args:
        x: Input time series.
        max_lag: Maximum lag to compute autocorrelation for.

    Returns:
        Autocorrelation values from lag 0 to max_lag.
    """
    n = len(x)
    x = x - x.mean()
    n_fft = 2 ** int(np.ceil(np.log2(2 * n - 1)))
    x_padded = np.zeros(n_fft)
    x_padded[:n] = x

    X = np.fft.fft(x_padded)
    ac = np.fft.ifft(X * np.conj(X)).real[: max_lag + 1]

    if ac[0] == 0:
        return np.ones_like(ac)
    return ac / ac[0]


def ess_multichain(chains: List[np.ndarray], max_lag: int = 100):
    """
    Compute effective sample size for multiple chains.

    Args:
        chains: Traces of the same scalar quantity, one per chain.
        max_lag: Maximum lag to use in autocorrelation computation.

    Returns:
        Effective sample size.
    """
    m = len(chains)
    n = min(len(c) for c in chains)
    max_lag = min(max_lag, n - 1)
    chains_array = np.array([c[:n] for c in chains], dtype=float)

    acf_chains = np.array([acf_1d(c, max_lag) for c in chains_array])
    mean_acf = acf_chains.mean(axis=0)

    rho_sum = 0.0
    for k in range(1, max_lag - 1, 2):
        pair = mean_acf[k] + mean_acf[k + 1]
        if pair < 0:
            break
        rho_sum += pair

    return min(m * n / (1 + 2 * rho_sum), m * n)


@jit(nopython=True)
def rhat_scalar_numba(chains_array: np.ndarray):
    """
    Potential scale reduction factor of a (n_chains, n_samples) array.

    Returns 1 when every chain is constant and all chains agree.
    """
    m, n = chains_array.shape
    chain_means = np.zeros(m)
    for i in range(m):
        chain_means[i] = np.mean(chains_array[i])

    W = 0.0
    for i in range(m):
        chain_var = 0.0
        for j in range(n):
            chain_var += (chains_array[i, j] - chain_means[i]) ** 2
        W += chain_var / (n - 1)
    W /= m

    overall_mean = np.mean(chain_means)
    B = 0.0
    for i in range(m):
        B += (chain_means[i] - overall_mean) ** 2
    B = n * B / (m - 1)

    var_hat = (n - 1) / n * W + B / n
    if W == 0.0:
        return 1.0 if var_hat == 0.0 else np.inf
    return np.sqrt(var_hat / W)


def rhat_scalar(chains: List[np.ndarray]):
    """
    Compute R-hat convergence diagnostic for multiple chains.

    Values close to 1 indicate that the chains agree. Needs at least two
    chains of at least two samples; returns nan otherwise.

    Args:
        chains: Traces of the same scalar quantity, one per chain.

    Returns:
        R-hat value.
    """
    n = min(len(c) for c in chains)
    if len(chains) < 2 or n < 2:
        return float("nan")
    chains_array = np.array([c[:n] for c in chains], dtype=float)

    return float(rhat_scalar_numba(chains_array))


def create_metrics(
    results: List["FitResult"],
    data_name: str,
    data_root: str = "../data",
    model_name: str = "dpmm",
    burn: int = 0,
) -> dict:
    """
    Summarize the traces of several chains and save them as JSON.

    The summary holds the final and mean number of clusters, the R-hat and
    effective sample size of the log-likelihood trace, and the runtimes. It is
    merged into `{data_root}/{data_name}/metrics.json` under model_name.

    Args:
        results: One FitResult per chain.
        data_name: Name of the dataset (used for saving metrics file).
        data_root: Directory holding the datasets.
        model_name: Key of the summary in the metrics file.
        burn: Number of leading sweeps left out of the diagnostics.

    Returns:
        The summary dictionary.
    """
    n_clusters = [r.n_clusters_trace[burn:] for r in results]
    log_lik = [r.log_likelihood_trace[burn:] for r in results]
    runtimes = [r.runtime for r in results]

    summary = {
        "final_n_clusters": [int(r.global_state.n_regular) for r in results],
        "mean_n_clusters": [float(np.mean(c)) for c in n_clusters],
        "log_likelihood_mean": [float(np.mean(ll)) for ll in log_lik],
        "log_likelihood_rhat": rhat_scalar(log_lik),
        "log_likelihood_ess": float(ess_multichain(log_lik)),
        "runtimes": runtimes,
        "mean_runtime": float(np.mean(runtimes)),
        "std_runtime": float(np.std(runtimes)),
    }

    # Load existing metrics if they exist, otherwise create new dict
    metrics_file = Path(data_root) / data_name / "metrics.json"
    try:
        with open(metrics_file, encoding="utf-8") as f:
            metrics_dict = json.load(f)
    except FileNotFoundError:
        metrics_dict = {}

    metrics_dict[model_name] = summary

    metrics_file.parent.mkdir(parents=True, exist_ok=True)
    with open(metrics_file, "w", encoding="utf-8") as f:
        json.dump(metrics_dict, f, indent=2)

    return summary
