#!/usr/bin/env python3
"""
Isotropic squared-exponential covariance on 2D points.

    k(a, b) = sf^2 * exp(-|a - b|^2 / (2 * l^2))

where ``l`` is the length scale and ``sf`` the signal standard deviation
(its square is the prior signal variance, k(a, a) = sf^2). Partial
derivatives are taken with respect to log(l) and log(sf), which is the
parameterisation the marginal-likelihood optimizer works in:

    dk/dlog(l)  = k * d^2 / l^2
    dk/dlog(sf) = 2 * k
"""

from typing import Sequence, Tuple

import numpy as np

from hilgp.exceptions import InvalidInputError

# Rows of the first operand handled per block when building large cross-covariances
_CHUNK_ROWS = 4096


def _check_hyper(length_scale: float, signal_std: float) -> None:
    if not length_scale > 0 or not signal_std > 0:
        raise InvalidInputError(
            f"Kernel needs positive length scale and signal std, got l={length_scale}, sf={signal_std}"
        )


def squared_distances(A: np.ndarray, B: np.ndarray) -> np.ndarray:
    """Pairwise squared Euclidean distances between rows of A (N, 2) and B (M, 2)."""
    A = np.asarray(A, dtype=float)
    B = np.asarray(B, dtype=float)
    dx = A[:, None, 0] - B[None, :, 0]
    dy = A[:, None, 1] - B[None, :, 1]
    d2 = dx * dx + dy * dy
    return np.maximum(d2, 0.0)


def covariance(point_a: Sequence[float], point_b: Sequence[float], length_scale: float, signal_std: float) -> float:
    """Covariance between two single points."""
    _check_hyper(length_scale, signal_std)
    dx = float(point_a[0]) - float(point_b[0])
    dy = float(point_a[1]) - float(point_b[1])
    d2 = dx * dx + dy * dy
    return float(signal_std * signal_std * np.exp(-0.5 * d2 / (length_scale * length_scale)))


def covariance_matrix(A: np.ndarray, B: np.ndarray, length_scale: float, signal_std: float) -> np.ndarray:
    """
    Cross-covariance matrix K[i, j] = k(A[i], B[j]).

    Rows of A are processed in blocks so that prediction over a large test
    grid does not allocate the full (N, M, 2) difference tensor at once.
    """
    _check_hyper(length_scale, signal_std)
    A = np.asarray(A, dtype=float).reshape(-1, 2)
    B = np.asarray(B, dtype=float).reshape(-1, 2)
    sf2 = signal_std * signal_std
    inv_2l2 = 0.5 / (length_scale * length_scale)
    K = np.empty((A.shape[0], B.shape[0]), dtype=float)
    for start in range(0, A.shape[0], _CHUNK_ROWS):
        end = min(A.shape[0], start + _CHUNK_ROWS)
        d2 = squared_distances(A[start:end], B)
        np.exp(-inv_2l2 * d2, out=d2)
        K[start:end] = sf2 * d2
    return K


def gradients(A: np.ndarray, length_scale: float, signal_std: float) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """
    Kernel matrix of A with itself and its derivatives w.r.t. the log hyperparameters.

    Returns:
        (K, dK_dlog_length_scale, dK_dlog_signal_std), each (N, N)
    """
    _check_hyper(length_scale, signal_std)
    A = np.asarray(A, dtype=float).reshape(-1, 2)
    d2 = squared_distances(A, A)
    inv_l2 = 1.0 / (length_scale * length_scale)
    K = signal_std * signal_std * np.exp(-0.5 * d2 * inv_l2)
    dK_dlog_l = K * d2 * inv_l2
    dK_dlog_sf = 2.0 * K
    return K, dK_dlog_l, dK_dlog_sf
