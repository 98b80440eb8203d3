#!/usr/bin/env python3
"""
Fit the field estimate from a saved human prior (and optional machine samples)

- Loads a prior CSV (X,Y,Means,Confidence)
- Optionally appends machine samples from a CSV with columns X,Y,Mean,Variance
- Refits the GP hyperparameters and predicts over the configured test grid
- Writes grid points, means and variances to an .npz file
- Optionally renders the 3D field and the variance map

Usage:
    python3 scripts/fit_prior.py --prior prior.csv --out field.npz
        [--samples samples.csv] [--config config/estimator_config.yaml]
        [--max-evals 100] [--plot field.png]
"""

import argparse
import json
import logging
import sys

import numpy as np
import pandas as pd

from hilgp import FieldEstimator, FieldEstimationError
from hilgp.exceptions import FormatError


def load_machine_samples(path: str):
    """Read (location, mean, variance) triples from a 4-column CSV."""
    df = pd.read_csv(path, header=0, skipinitialspace=True)
    if df.shape[1] != 4:
        raise FormatError(f"Sample file {path} has {df.shape[1]} columns, expected 4 (X,Y,Mean,Variance)")
    values = df.apply(pd.to_numeric, errors='coerce')
    if values.isna().any().any():
        raise FormatError(f"Sample file {path} contains missing or non-numeric values")
    arr = values.to_numpy(dtype=float)
    return [((row[0], row[1]), row[2], row[3]) for row in arr]


def main(argv=None):
    parser = argparse.ArgumentParser(description='Fit GP field estimate from a human prior and machine samples')
    parser.add_argument('--prior', type=str, required=True, help='Prior CSV (X,Y,Means,Confidence)')
    parser.add_argument('--samples', type=str, default=None, help='Machine sample CSV (X,Y,Mean,Variance)')
    parser.add_argument('--config', type=str, default=None, help='YAML config file')
    parser.add_argument('--max-evals', type=int, default=None, help='Override model.max_evaluations')
    parser.add_argument('--include-noise', action='store_true', help='Report observation variance instead of latent variance')
    parser.add_argument('--out', type=str, default='field_prediction.npz', help='Output .npz path')
    parser.add_argument('--plot', type=str, default=None, help='Save a figure of the field to this path')
    parser.add_argument('--verbose', action='store_true')
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format='%(asctime)s %(levelname)s %(name)s: %(message)s',
    )
    log = logging.getLogger('fit_prior')

    try:
        estimator = FieldEstimator(args.config)
        estimator.load_human_prior(args.prior)
        if args.samples:
            estimator.append_machine_samples(load_machine_samples(args.samples))
        prediction = estimator.refit_and_predict(args.max_evals, include_noise=args.include_noise)
    except (FieldEstimationError, FileNotFoundError) as e:
        log.error(f"Field estimation failed: {e}")
        return 1

    grid = estimator.test_grid
    np.savez(
        args.out,
        points=grid.points,
        xs=grid.xs,
        ys=grid.ys,
        means=prediction.means,
        variances=prediction.variances,
    )
    log.info(f"Wrote prediction for {len(grid)} grid points to {args.out}")
    log.info(f"Hyperparameters: {json.dumps(estimator.hyperparameters.to_dict())}")
    log.info(f"Fit diagnostics: {json.dumps(estimator.model.last_fit)}")

    if args.plot:
        import matplotlib
        matplotlib.use('Agg')
        import matplotlib.pyplot as plt
        from hilgp.visualization import plot_field, plot_variance_map, save_figure

        snapshot = estimator.snapshot()
        threshold = float(estimator.cfg['policy']['variance_threshold'])
        fig = plt.figure(figsize=(16, 7))
        plot_field(snapshot, ax=fig.add_subplot(1, 2, 1, projection='3d'), threshold=threshold)
        plot_variance_map(snapshot, ax=fig.add_subplot(1, 2, 2), threshold=threshold)
        save_figure(fig, args.plot)
        log.info(f"Saved figure to {args.plot}")

    return 0


if __name__ == '__main__':
    sys.exit(main())
