"""Exceptions raised while evaluating posterior-predictive probabilities.

Numerical edge cases (tiny sigmas, probabilities at the boundary, huge
logits) are never errors; they are clipped in place by the evaluator.
"""

from __future__ import annotations


class PosteriorPredictiveError(Exception):
    """Base class for every error raised by this package."""


class MissingParameterError(PosteriorPredictiveError, KeyError):
    """A required model parameter is absent from ``param_names``."""

    def __init__(self, parameter: str) -> None:
        super().__init__(parameter)
        self.parameter = parameter

    def __str__(self) -> str:
        return f"Required parameter '{self.parameter}' not found in param_names"


class InsufficientDataError(PosteriorPredictiveError, ValueError):
    """There are no posterior draws to summarize."""


class MalformedBundleError(PosteriorPredictiveError, ValueError):
    """A posterior bundle violates the loader contract."""
