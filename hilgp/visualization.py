#!/usr/bin/env python3
"""
Matplotlib rendering of a FieldSnapshot.

These helpers only read a snapshot; the estimator never imports them.
"""

from __future__ import annotations

from typing import Optional

import matplotlib.pyplot as plt

from hilgp.data import FieldSnapshot, ObservationSource
from hilgp.exceptions import PreconditionViolationError


def _require_prediction(snapshot: FieldSnapshot):
    if snapshot.prediction is None:
        raise PreconditionViolationError("Snapshot has no prediction to plot")
    return snapshot.prediction


def plot_field(snapshot: FieldSnapshot, ax=None, threshold: Optional[float] = None):
    """
    3D view of the estimate: human levels, noise-shifted human rows, machine
    samples, the mean surface and the 95% band (mean +/- 2 sigma).
    """
    prediction = _require_prediction(snapshot)
    grid = snapshot.test_grid
    if ax is None:
        fig = plt.figure(figsize=(10, 8))
        ax = fig.add_subplot(111, projection='3d')
    else:
        fig = ax.figure

    if snapshot.human_prior is not None and len(snapshot.human_prior) > 0:
        locs = snapshot.human_prior.locations
        ax.scatter(locs[:, 0], locs[:, 1], snapshot.human_prior.levels, c='black', s=30, label='Human-input levels')
    human_rows = snapshot.training_set.rows(ObservationSource.HUMAN)
    if len(human_rows) > 0:
        ax.scatter(human_rows.locations[:, 0], human_rows.locations[:, 1], human_rows.means,
                   c='magenta', s=12, alpha=0.7, label='Noise-shifted human rows')
    machine_rows = snapshot.training_set.rows(ObservationSource.MACHINE)
    if len(machine_rows) > 0:
        ax.scatter(machine_rows.locations[:, 0], machine_rows.locations[:, 1], machine_rows.means,
                   c='green', s=30, label='Machine samples')

    Xg, Yg = grid.meshgrid()
    ax.plot_wireframe(Xg, Yg, grid.reshape(prediction.means), color='gray', linewidth=0.6, label='Mean')
    ax.plot_surface(Xg, Yg, grid.reshape(prediction.lower_bound), color='cyan', alpha=0.3, edgecolor='blue', linewidth=0.2)
    ax.plot_surface(Xg, Yg, grid.reshape(prediction.upper_bound), color='orange', alpha=0.3, edgecolor='red', linewidth=0.2)

    title = 'Estimated field with samples'
    if threshold is not None:
        title += f'\n(variance threshold = {threshold:g})'
    ax.set_title(title)
    ax.set_xlabel('X')
    ax.set_ylabel('Y')
    ax.set_zlabel('Level')
    ax.legend(loc='upper right', fontsize=8)
    return fig


def plot_variance_map(snapshot: FieldSnapshot, ax=None, threshold: Optional[float] = None):
    """2D image of the predicted variance, with the threshold contour if given."""
    prediction = _require_prediction(snapshot)
    grid = snapshot.test_grid
    if ax is None:
        fig, ax = plt.subplots(1, 1, figsize=(8, 6))
    else:
        fig = ax.figure

    variance = grid.reshape(prediction.variances)
    im = ax.imshow(variance, extent=(0.0, grid.width, 0.0, grid.height), origin='lower', aspect='equal', cmap='plasma')
    if threshold is not None and variance.min() < threshold < variance.max():
        Xg, Yg = grid.meshgrid()
        ax.contour(Xg, Yg, variance, levels=[threshold], colors='white', linewidths=1.2)
    locs = snapshot.training_set.locations
    if locs.shape[0] > 0:
        ax.scatter(locs[:, 0], locs[:, 1], s=12, c='white', edgecolors='black', linewidths=0.4)
    ax.set_xlim(0.0, grid.width)
    ax.set_ylim(0.0, grid.height)
    ax.set_xlabel('X')
    ax.set_ylabel('Y')
    ax.set_title('Predicted variance')
    cbar = fig.colorbar(im, ax=ax, shrink=0.85)
    cbar.set_label('Variance')
    fig.tight_layout()
    return fig


def save_figure(fig, path: str, dpi: int = 150) -> str:
    fig.savefig(path, dpi=dpi, bbox_inches='tight')
    plt.close(fig)
    return path
