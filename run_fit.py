"""Command-line interface to fit a Poisson-lognormal model to a count matrix."""

import argparse
import logging
import sys

import numpy as np

from io_utils import build_control, configure_jax_platform, load_config, load_matrices, resolve_output_dir, save_fit
from plnfit.optimize import fit_pln


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Variational Poisson-lognormal fit with NLopt")
    parser.add_argument('--config', type=str, default='config_example.yaml', help='Path to the YAML config file')
    parser.add_argument('--algorithm', type=str, default=None, help='Override fit.control.algorithm')
    parser.add_argument('--no-plots', action='store_true', help='Skip the diagnostic plots')
    parser.add_argument('--verbose', action='store_true', help='Log progress every few evaluations')
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )

    cfg = load_config(args.config)
    if args.algorithm:
        cfg.setdefault('fit', {}).setdefault('control', {})['algorithm'] = args.algorithm
    configure_jax_platform(cfg)
    Y, X, O = load_matrices(cfg, args.config)
    n, p = Y.shape
    config = build_control(cfg, n, p)
    output_dir = resolve_output_dir(cfg, args.config)

    fit = fit_pln(Y, X, O, config=config)
    result = fit.result

    print(f"\nData: n={n} samples, p={p} variables, d={X.shape[1]} covariates")
    print(f"Algorithm: {config.algorithm}")
    print(f"Status: {int(result.status)} ({result.status.name}) - {result.message}")
    print(f"Objective: {result.objective:.6e} after {result.iterations} evaluations")
    print(f"Log-likelihood (variational): {fit.loglik:.6e}, BIC: {fit.bic:.6e}")
    print("\nTheta (p x d):")
    print(np.array2string(fit.Theta, precision=4))

    saved = save_fit(fit, output_dir)
    if not args.no_plots:
        from plot_utils import plot_fitted_counts, plot_objective_trace

        saved.append(plot_objective_trace(result.history, output_dir))
        saved.append(plot_fitted_counts(Y, X, O, fit, output_dir))
    print("\nSaved outputs:")
    for path in saved:
        print(f"  {path}")
    return 0 if not result.status.failed else 1


if __name__ == '__main__':
    sys.exit(main())
