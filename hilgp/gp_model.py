#!/usr/bin/env python3
"""
Exact Gaussian-process regression with a squared-exponential kernel.

Model:
    f ~ GP(0, k_SE(l, sf)),   y_i = f(x_i) + eps_i,   eps_i ~ N(0, sn^2 + v_i)

where v_i is the measured variance carried by each training row (zero for
human-derived rows, the sensor variance for machine samples). With every
v_i = 0 this is the textbook homoscedastic GP.

Training minimises the negative log marginal likelihood

    NLL = 0.5 * y^T K^-1 y + 0.5 * log|K| + (n/2) * log(2 pi)

over (log l, log sf, log sn) with its analytic gradient

    dNLL/dtheta = 0.5 * tr((K^-1 - alpha alpha^T) dK/dtheta),  alpha = K^-1 y

using scipy.optimize.minimize, capped at a fixed number of objective
evaluations. All solves go through a Cholesky factor; when K is not
numerically positive-definite a growing diagonal jitter is added before
giving up with NumericalInstabilityError.
"""

from __future__ import annotations

import logging
import math
from typing import Any, Dict, Optional, Tuple

import numpy as np
from scipy.linalg import LinAlgError, cho_solve, cholesky, solve_triangular
from scipy.optimize import minimize

from hilgp import kernel
from hilgp.config import default_config
from hilgp.data import Hyperparameters, Prediction, TrainingSet, as_points
from hilgp.exceptions import (
    InvalidInputError,
    NumericalInstabilityError,
    PreconditionViolationError,
)

logger = logging.getLogger(__name__)

_LOG_2PI = math.log(2.0 * math.pi)


class _EvaluationBudgetExhausted(Exception):
    """Raised inside the objective once the evaluation cap is reached."""


class _BudgetedObjective:
    """
    Wraps the NLL so that at most ``max_evaluations`` calls are made and the
    best finite point seen is remembered. scipy does not bound gradient
    evaluations for every method, so the cap is enforced here.
    """

    def __init__(self, fn, max_evaluations: int):
        self.fn = fn
        self.max_evaluations = max_evaluations
        self.count = 0
        self.failures = 0
        self.best_x: Optional[np.ndarray] = None
        self.best_f = float('inf')

    def __call__(self, x: np.ndarray) -> Tuple[float, np.ndarray]:
        if self.count >= self.max_evaluations:
            raise _EvaluationBudgetExhausted()
        self.count += 1
        try:
            f, g = self.fn(x)
        except NumericalInstabilityError as e:
            # The starting point must be valid; later probes may overshoot.
            if self.best_x is None:
                raise
            self.failures += 1
            logger.warning(f"[GaussianProcessModel] Rejected step at log-params {np.round(x, 3).tolist()}: {e}")
            return float('inf'), np.zeros_like(x)
        if np.isfinite(f) and f < self.best_f:
            self.best_f = float(f)
            self.best_x = np.array(x, dtype=float)
        return f, g


class GaussianProcessModel:
    """
    Holds the GP hyperparameters and exposes training and posterior prediction.

    The model never stores training data: every call receives the TrainingSet
    snapshot it should use, so a caller can hand it an immutable copy taken
    under its own lock.

    Usage:
        model = GaussianProcessModel()
        model.train(training_set, max_evaluations=100)
        prediction = model.predict(training_set, grid.points)
    """

    def __init__(self, initial: Optional[Hyperparameters] = None, config: Optional[Dict[str, Any]] = None):
        cfg = default_config()['model']
        if config:
            cfg.update(config)
        self.cfg = cfg
        if initial is None:
            initial = Hyperparameters.from_values(
                cfg['initial_length_scale'], cfg['initial_signal_std'], cfg['initial_noise_std']
            )
        self._initial = initial
        self._hyperparameters = initial
        self._trained = False
        self.last_fit: Dict[str, Any] = {}

    # ----------------------------
    # State
    # ----------------------------

    @property
    def hyperparameters(self) -> Hyperparameters:
        return self._hyperparameters

    @property
    def is_trained(self) -> bool:
        """True once hyperparameters are usable for prediction (trained or supplied)."""
        return self._trained

    def set_hyperparameters(self, hyperparameters: Hyperparameters) -> None:
        """Install caller-supplied hyperparameters and allow prediction without training."""
        if not isinstance(hyperparameters, Hyperparameters):
            raise InvalidInputError(f"Expected Hyperparameters, got {type(hyperparameters).__name__}")
        self._hyperparameters = hyperparameters
        self._trained = True

    def reset(self) -> None:
        """Return to the initial, untrained state."""
        self._hyperparameters = self._initial
        self._trained = False
        self.last_fit = {}

    # ----------------------------
    # Linear algebra
    # ----------------------------

    def _noise_diagonal(self, training_set: TrainingSet, hyp: Hyperparameters) -> np.ndarray:
        diag = np.full(len(training_set), hyp.noise_variance, dtype=float)
        if self.cfg['use_observation_variance']:
            diag = diag + training_set.variances
        return diag

    def _cholesky(self, K: np.ndarray) -> Tuple[np.ndarray, float]:
        """Lower Cholesky factor of K, adding diagonal jitter if needed. Returns (L, jitter)."""
        if not np.all(np.isfinite(K)):
            raise NumericalInstabilityError("Covariance matrix contains non-finite entries")
        try:
            return cholesky(K, lower=True, check_finite=False), 0.0
        except LinAlgError:
            pass

        n = K.shape[0]
        scale = float(np.mean(np.diag(K)))
        if not scale > 0:
            scale = 1.0
        jitter = float(self.cfg['initial_jitter']) * scale
        attempts = int(self.cfg['max_jitter_attempts'])
        for attempt in range(1, attempts + 1):
            try:
                L = cholesky(K + jitter * np.eye(n), lower=True, check_finite=False)
                logger.debug(f"[GaussianProcessModel] Cholesky succeeded with jitter {jitter:.3e} (attempt {attempt})")
                return L, jitter
            except LinAlgError:
                jitter *= float(self.cfg['jitter_growth'])
        raise NumericalInstabilityError(
            f"Covariance matrix ({n}x{n}) not positive-definite after {attempts} jitter attempts "
            f"(last jitter {jitter / float(self.cfg['jitter_growth']):.3e})"
        )

    # ----------------------------
    # Marginal likelihood
    # ----------------------------

    def negative_log_marginal_likelihood(self, hyperparameters: Hyperparameters,
                                         training_set: TrainingSet) -> Tuple[float, np.ndarray]:
        """
        NLL and its gradient with respect to (log l, log sf, log sn).

        Returns:
            tuple (nll, grad) with grad of shape (3,)
        """
        if len(training_set) == 0:
            raise InvalidInputError("Cannot evaluate the marginal likelihood of an empty training set")
        hyp = hyperparameters
        X = training_set.locations
        y = training_set.means
        n = y.shape[0]

        K, dK_dlog_l, dK_dlog_sf = kernel.gradients(X, hyp.length_scale, hyp.signal_std)
        K[np.diag_indices(n)] += self._noise_diagonal(training_set, hyp)
        L, _ = self._cholesky(K)

        alpha = cho_solve((L, True), y, check_finite=False)
        nll = 0.5 * float(y @ alpha) + float(np.sum(np.log(np.diag(L)))) + 0.5 * n * _LOG_2PI

        # W = K^-1 - alpha alpha^T; dNLL/dtheta = 0.5 * sum(W * dK/dtheta)
        W = cho_solve((L, True), np.eye(n), check_finite=False) - np.outer(alpha, alpha)
        grad = np.array([
            0.5 * float(np.sum(W * dK_dlog_l)),
            0.5 * float(np.sum(W * dK_dlog_sf)),
            hyp.noise_variance * float(np.trace(W)),  # dK/dlog sn = 2 sn^2 I
        ])
        return nll, grad

    def _objective(self, training_set: TrainingSet):
        def fn(x: np.ndarray) -> Tuple[float, np.ndarray]:
            # Unbounded methods can wander to log values whose exp over/underflows
            if not np.all(np.isfinite(x)) or np.any(np.abs(x) > 300.0):
                raise NumericalInstabilityError(f"Log hyperparameters out of representable range: {x}")
            return self.negative_log_marginal_likelihood(Hyperparameters.from_vector(x), training_set)
        return fn

    # ----------------------------
    # Training
    # ----------------------------

    def train(self, training_set: TrainingSet, max_evaluations: Optional[int] = None) -> Hyperparameters:
        """
        Fit hyperparameters by minimising the NLL, warm-started from the current values.

        The optimizer is capped at ``max_evaluations`` objective/gradient
        evaluations; whatever point scored best within that budget is kept.
        The result is a local optimum and is deterministic for a fixed start.

        Returns:
            The fitted Hyperparameters (also stored on the model).
        """
        if len(training_set) == 0:
            raise InvalidInputError("Cannot train on an empty training set")
        if max_evaluations is None:
            max_evaluations = int(self.cfg['max_evaluations'])
        if isinstance(max_evaluations, bool) or int(max_evaluations) != max_evaluations or max_evaluations < 1:
            raise InvalidInputError(f"max_evaluations must be a positive integer, got {max_evaluations!r}")
        max_evaluations = int(max_evaluations)

        method = self.cfg['method']
        lo, hi = (float(b) for b in self.cfg['log_bounds'])
        x0 = self._hyperparameters.as_vector()
        bounds = None
        options: Dict[str, Any] = {'maxiter': max_evaluations}
        if method == 'L-BFGS-B':
            x0 = np.clip(x0, lo, hi)
            bounds = [(lo, hi)] * 3
            options['maxfun'] = max_evaluations

        objective = _BudgetedObjective(self._objective(training_set), max_evaluations)
        opt_info: Dict[str, Any]
        try:
            result = minimize(objective, x0, jac=True, method=method, bounds=bounds, options=options)
            opt_info = {
                'nit': int(getattr(result, 'nit', -1)),
                'success': bool(getattr(result, 'success', False)),
                'message': str(getattr(result, 'message', '')),
            }
        except _EvaluationBudgetExhausted:
            opt_info = {'nit': -1, 'success': False, 'message': 'evaluation budget exhausted'}

        if objective.best_x is None:
            raise NumericalInstabilityError("No finite marginal likelihood was found during training")

        fitted = Hyperparameters.from_vector(objective.best_x)
        opt_info.update({
            'nll': objective.best_f,
            'nfev': objective.count,
            'rejected_steps': objective.failures,
            'n_train': len(training_set),
        })
        self._hyperparameters = fitted
        self._trained = True
        self.last_fit = opt_info

        logger.info(
            f"[GaussianProcessModel] Fit on {len(training_set)} rows: NLL={objective.best_f:.4f}, "
            f"evals={objective.count}/{max_evaluations}, l={fitted.length_scale:.4g}, "
            f"sf2={fitted.signal_variance:.4g}, sn2={fitted.noise_variance:.4g} ({opt_info['message']})"
        )
        return fitted

    # ----------------------------
    # Prediction
    # ----------------------------

    def predict(self, training_set: TrainingSet, query_points,
                hyperparameters: Optional[Hyperparameters] = None,
                include_noise: bool = False) -> Prediction:
        """
        Posterior mean and variance at each query point.

        Args:
            training_set: rows to condition on
            query_points: (M, 2) locations
            hyperparameters: explicit values; defaults to the trained ones
            include_noise: add sn^2 to get the variance of a new observation
                rather than of the latent field

        Returns:
            Prediction aligned with ``query_points``; variances are >= 0.
        """
        hyp = hyperparameters
        if hyp is None:
            if not self._trained:
                raise PreconditionViolationError(
                    "GaussianProcessModel.predict called before train() and without explicit hyperparameters"
                )
            hyp = self._hyperparameters

        Q = as_points(query_points)
        m = Q.shape[0]
        sf2 = hyp.signal_variance
        extra = hyp.noise_variance if include_noise else 0.0

        if len(training_set) == 0:
            return Prediction(means=np.zeros(m), variances=np.full(m, sf2 + extra))

        X = training_set.locations
        y = training_set.means
        K = kernel.covariance_matrix(X, X, hyp.length_scale, hyp.signal_std)
        K[np.diag_indices(X.shape[0])] += self._noise_diagonal(training_set, hyp)
        L, jitter = self._cholesky(K)
        alpha = cho_solve((L, True), y, check_finite=False)

        means = np.empty(m, dtype=float)
        variances = np.empty(m, dtype=float)
        chunk = int(self.cfg['prediction_chunk'])
        for start in range(0, m, chunk):
            end = min(m, start + chunk)
            Ks = kernel.covariance_matrix(Q[start:end], X, hyp.length_scale, hyp.signal_std)
            means[start:end] = Ks @ alpha
            V = solve_triangular(L, Ks.T, lower=True, check_finite=False)
            variances[start:end] = sf2 - np.sum(V * V, axis=0) + extra

        # Cancellation can leave tiny negative values where the data pins the field
        np.maximum(variances, 0.0, out=variances)
        if jitter > 0:
            logger.debug(f"[GaussianProcessModel] Prediction used jitter {jitter:.3e}")
        return Prediction(means=means, variances=variances)
