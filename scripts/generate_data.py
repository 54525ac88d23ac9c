import json
from pathlib import Path
from typing import List, Optional

import numpy as np


def generate_data(
    n: int,
    means: List[List[float]],
    weights: List[float],
    covs: List[List[List[float]]],
    name: str,
    data_root: str = "../data",
    rng: Optional[np.random.Generator] = None,
):
    """
    Generate synthetic data from a multivariate Gaussian mixture model.

    Saves the points to '{data_root}/{name}/data.npy', the true component of
    every point to 'labels.npy' and the generating parameters to
    'true_params.json'.

    Args:
        n: Number of data points to generate.
        means: Mean vector of each Gaussian component.
        weights: Mixture weights of the components (must sum to 1).
        covs: Covariance matrix of each Gaussian component.
        name: Name identifier for the dataset (used for directory naming).
        data_root: Directory holding the datasets.
        rng: Random number generator.

    Returns:
        Tuple of (data, labels).

    Raises:
        ValueError: If the lengths of means, weights, and covs don't match.
    """
    if not len(means) == len(weights) == len(covs):
        raise ValueError("The lengths of means, weights and covs must be equal")

    if not np.isclose(sum(weights), 1.0):
        raise ValueError("The weights must sum to 1")

    if rng is None:
        rng = np.random.default_rng()

    data_dir = Path(data_root) / name
    data_dir.mkdir(parents=True, exist_ok=True)

    K = len(means)
    means_array = np.atleast_2d(np.array(means, dtype=float))
    covs_array = np.array(covs, dtype=float).reshape(K, means_array.shape[1], -1)

    labels = rng.choice(K, size=n, p=weights)
    data = np.empty((n, means_array.shape[1]))
    for k in range(K):
        idx = labels == k
        data[idx] = rng.multivariate_normal(means_array[k], covs_array[k], idx.sum())

    np.save(data_dir / "data.npy", data)
    np.save(data_dir / "labels.npy", labels)

    # save true parameters for reference
    true_params = {
        "means": means_array.tolist(),
        "weights": list(weights),
        "covs": covs_array.tolist(),
    }
    with open(data_dir / "true_params.json", "w", encoding="utf-8") as f:
        json.dump(true_params, f, indent=2)

    return data, labels


if __name__ == "__main__":
    generator = np.random.default_rng(0)

    n = 600
    means = [[-5.0, 0.0], [5.0, 0.0]]
    weights = [0.5, 0.5]
    covs = [np.eye(2).tolist(), np.eye(2).tolist()]
    generate_data(n, means, weights, covs, "example_1", rng=generator)

    means = [[-4.0, -4.0], [0.0, 4.0], [4.0, -4.0], [8.0, 4.0]]
    weights = [0.2, 0.3, 0.1, 0.4]
    covs = [np.eye(2).tolist()] * 4
    generate_data(n, means, weights, covs, "example_2", rng=generator)

    means = [[-4.0, -4.0], [0.0, 4.0], [4.0, -4.0], [8.0, 4.0]]
    weights = [0.2, 0.3, 0.1, 0.4]
    covs = [
        [[0.5, 0.2], [0.2, 0.5]],
        [[1.0, 0.0], [0.0, 1.0]],
        [[1.5, -0.5], [-0.5, 1.0]],
        [[2.0, 0.0], [0.0, 0.5]],
    ]
    generate_data(n, means, weights, covs, "example_3", rng=generator)

    means = [
        [-2.0, 0.0, 1.0],
        [0.0, 3.0, -1.0],
        [3.0, -3.0, 0.0],
        [5.0, 5.0, 5.0],
        [15.0, 0.0, 0.0],
    ]
    weights = [0.2, 0.3, 0.1, 0.35, 0.05]
    covs = [(s * np.eye(3)).tolist() for s in [0.8, 1.2, 0.6, 1.8, 0.4]]
    generate_data(n, means, weights, covs, "example_4", rng=generator)
