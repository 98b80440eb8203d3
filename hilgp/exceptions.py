#!/usr/bin/env python3
"""
Error taxonomy for the field estimation engine.

Every error derives from FieldEstimationError and from the builtin that
best describes it, so callers may catch either.
"""


class FieldEstimationError(Exception):
    """Base class for all hilgp errors."""


class InvalidInputError(FieldEstimationError, ValueError):
    """Caller supplied data that cannot be used (bad confidence, lengths, variances)."""


class FormatError(InvalidInputError):
    """A prior file does not follow the X,Y,Means,Confidence layout."""


class NumericalInstabilityError(FieldEstimationError, ArithmeticError):
    """Covariance matrix stayed non positive-definite after bounded jitter retries."""


class PreconditionViolationError(FieldEstimationError, RuntimeError):
    """Operation called in a state that does not allow it (e.g. predict before train)."""


class BusyError(FieldEstimationError, RuntimeError):
    """A refit is already running on this estimator."""
