import argparse
import warnings
from pathlib import Path

import numpy as np
from metrics import create_metrics
from samplers import run_parallel_chains
from utils import (
    add_dpmm_args,
    create_output_message,
    parse_fit_options,
    parse_model_options,
    print_cluster_summary,
    print_runtime_summary,
)

warnings.filterwarnings("ignore", category=DeprecationWarning)


if __name__ == "__main__":
    ap = argparse.ArgumentParser(
        description="Split/merge sub-cluster sampler for Dirichlet process Gaussian mixtures"
    )

    # Add all arguments for the DPMM sampler
    add_dpmm_args(ap)

    args = ap.parse_args()

    data = np.load(Path(args.data_root) / args.data / "data.npy")
    if data.ndim == 1:
        data = data[:, np.newaxis]

    model_options = parse_model_options(args, data)
    fit_options = parse_fit_options(args)

    if args.verbose:
        print(f"Running {args.chains} DPMM chains…")
    results = run_parallel_chains(
        data,
        model_options,
        fit_options,
        n_chains=args.chains,
        n_shards=args.shards,
        verbose=args.verbose,
        loading_bar=args.loading_bar,
    )

    summary = create_metrics(results, args.data, data_root=args.data_root, burn=args.burn)

    if args.verbose:
        print("\n=== DPMM SUMMARY ===")
        for i, result in enumerate(results):
            print(f"\nChain {i}")
            print_cluster_summary(result)
        print(f"\nR‑hat (log-likelihood): {summary['log_likelihood_rhat']:.3f}")
        print(f"ESS  (log-likelihood): {summary['log_likelihood_ess']:.1f}")

        print_runtime_summary([result.runtime for result in results])
        print(create_output_message(args.data, args.data_root))
