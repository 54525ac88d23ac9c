from collections import Counter
from typing import Dict, Hashable, List, Sequence, Tuple

import numpy as np
from numba import jit


def row_normalize_log_weights(weights: np.ndarray) -> np.ndarray:
    """
    Turn log-weights into relative weights, row by row, in place.

    Subtracts the maximum of each row before exponentiating so that the
    largest entry of every row becomes 1. The rows are proportional to the
    softmax of the input but do not sum to 1.

    Args:
        weights: 2D array of log-weights, overwritten with the result.

    Returns:
        The same array, for chaining.
    """
    weights -= weights.max(axis=1, keepdims=True)
    np.exp(weights, out=weights)
    return weights


def col_normalize_log_weights(weights: np.ndarray) -> np.ndarray:
    """
    Column-wise counterpart of `row_normalize_log_weights`.

    Args:
        weights: 2D array of log-weights, overwritten with the result.

    Returns:
        The same array, for chaining.
    """
    weights -= weights.max(axis=0, keepdims=True)
    np.exp(weights, out=weights)
    return weights


def sample_weighted(weights: np.ndarray, rng: np.random.Generator) -> np.ndarray:
    """
    Draw one categorical sample per row of a weight matrix.

    Weights only need to be nonnegative and proportional to the target
    probabilities. Each row is scaled by its maximum, then sampling inverts
    its cumulative sum against a uniform draw scaled by the row total.

    Args:
        weights: Array of shape (n, k) with nonnegative entries.
        rng: Random number generator.

    Returns:
        Integer array of length n with values in [0, k).

    Raises:
        ValueError: If a row is negative, non-finite, or sums to zero.
    """
    weights = np.asarray(weights, dtype=float)
    if weights.ndim != 2:
        raise ValueError(f"weights must be a 2D array, got shape {weights.shape}")
    if weights.shape[0] == 0:
        return np.empty(0, dtype=np.int64)

    bad_rows = ~np.isfinite(weights).all(axis=1) | (weights < 0).any(axis=1)
    if bad_rows.any():
        row = int(np.flatnonzero(bad_rows)[0])
        raise ValueError(f"row {row} has negative or non-finite weights: {weights[row]}")
    if weights.shape[1] == 0:
        raise ValueError("weights must have at least one column")

    row_max = weights.max(axis=1, keepdims=True)
    if (row_max <= 0).any():
        row = int(np.flatnonzero(row_max[:, 0] <= 0)[0])
        raise ValueError(f"row {row} has all zero weights")

    # scaled rows peak at 1, so their sums stay finite
    cum = np.cumsum(weights / row_max, axis=1)
    total = cum[:, -1:]
    u = np.minimum(rng.random((len(weights), 1)) * total, np.nextafter(total, 0))
    return (cum > u).argmax(axis=1)


def argmax(a: np.ndarray) -> int:
    """Index of the largest element, first occurrence on ties."""
    return int(np.argmax(np.asarray(a).ravel()))


def unique_with_indices(
    data: Sequence[Hashable], sort: bool = False
) -> Tuple[List[Hashable], np.ndarray]:
    """
    Deduplicate a sequence and map every element to its unique position.

    Args:
        data: Sequence of hashable values.
        sort: If True, the unique values are sorted; otherwise they keep
            their order of first appearance.

    Returns:
        Tuple of (unique, indices) with unique[indices[i]] == data[i].
    """
    unique = list(dict.fromkeys(data))
    if sort:
        unique.sort()
    index = {u: i for i, u in enumerate(unique)}
    return unique, np.array([index[d] for d in data], dtype=np.int64)


def bincount(data: Sequence[Hashable]) -> Dict[Hashable, int]:
    """Frequency of each distinct value in data."""
    return dict(Counter(data))


@jit(nopython=True)
def compact_labels(labels: np.ndarray, cluster_idx: np.ndarray):
    """
    Close the gaps left by deleted cluster indices, in place.

    Deletions are applied in ascending order; every index is shifted by the
    number of deletions already applied before it is compared.

    Args:
        labels: Integer label array, modified in place.
        cluster_idx: Sorted indices being deleted, in pre-deletion numbering.
    """
    removed = 0
    for k in cluster_idx:
        for i in range(labels.shape[0]):
            if labels[i] > k - removed:
                labels[i] -= 1
        removed += 1
