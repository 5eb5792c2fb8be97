"""Posterior bundle: sampled parameters of the fitted mixture/hazard model.

The bundle is exported by the model-fitting step as ``posterior.json``::

    {
      "CAP": 300,
      "age_mean": 61.2,
      "age_std": 14.8,
      "param_names": ["rho0", "rho1", "mu0", "mu1", "sigma0", "sigma1", ...],
      "draws": [[...], [...], ...]
    }

Loading and validating it is the only place ``MalformedBundleError`` is raised.
Everything downstream assumes a bundle that passed ``bundle_from_dict``.
"""

from __future__ import annotations

import json
import logging
import math
import pathlib
from dataclasses import dataclass
from typing import Any, Mapping, Sequence

import numpy as np
from numpy.typing import NDArray

from posterior_predictive.utils.errors import MalformedBundleError

logger = logging.getLogger(__name__)

# Older exports did not always carry CAP; the web UI assumed 300 minutes.
DEFAULT_CAP = 300.0


@dataclass(frozen=True)
class PosteriorBundle:
    """Immutable posterior draws plus the constants needed to standardize inputs."""

    cap: float
    age_mean: float
    age_std: float
    param_names: tuple[str, ...]
    draws: NDArray[np.float64]

    @property
    def n_draws(self) -> int:
        return int(self.draws.shape[0])

    @property
    def n_params(self) -> int:
        return len(self.param_names)

    @classmethod
    def from_arrays(
        cls,
        cap: float,
        age_mean: float,
        age_std: float,
        param_names: Sequence[str],
        draws: Any,
    ) -> PosteriorBundle:
        """Build a bundle whose draw matrix is a read-only float64 copy.

        No validation happens here; use ``bundle_from_dict`` for untrusted data.
        """
        names = tuple(param_names)
        matrix = np.array(draws, dtype=np.float64)
        if matrix.size == 0:
            matrix = matrix.reshape(0, len(names))
        matrix.setflags(write=False)
        return cls(
            cap=float(cap),
            age_mean=float(age_mean),
            age_std=float(age_std),
            param_names=names,
            draws=matrix,
        )


def _finite_number(data: Mapping[str, Any], key: str) -> float:
    value = data[key]
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise MalformedBundleError(f"'{key}' must be a number, got {value!r}")
    if not math.isfinite(value):
        raise MalformedBundleError(f"'{key}' must be finite, got {value!r}")
    return float(value)


def _validate_param_names(names: Any) -> tuple[str, ...]:
    if not isinstance(names, (list, tuple)):
        raise MalformedBundleError("'param_names' must be a list of strings")
    for name in names:
        if not isinstance(name, str):
            raise MalformedBundleError(f"Parameter name {name!r} is not a string")
    if len(set(names)) != len(names):
        duplicates = sorted({n for n in names if names.count(n) > 1})
        raise MalformedBundleError(f"Duplicate parameter names: {duplicates}")
    return tuple(names)


def _validate_draws(draws: Any, n_params: int) -> NDArray[np.float64]:
    if not isinstance(draws, (list, tuple)) or len(draws) == 0:
        raise MalformedBundleError("'draws' must be a non-empty list of rows")

    for i, row in enumerate(draws):
        if not isinstance(row, (list, tuple)):
            raise MalformedBundleError(f"Draw {i} is not a list")
        if len(row) != n_params:
            raise MalformedBundleError(
                f"Draw {i} has {len(row)} values, expected {n_params} "
                "(one per parameter name)"
            )
        for value in row:
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise MalformedBundleError(f"Draw {i} contains non-numeric value {value!r}")

    matrix = np.asarray(draws, dtype=np.float64)
    if not np.all(np.isfinite(matrix)):
        bad_rows = np.flatnonzero(~np.isfinite(matrix).all(axis=1))
        raise MalformedBundleError(
            f"Draws contain non-finite values (rows {bad_rows[:5].tolist()})"
        )
    return matrix


def bundle_from_dict(data: Mapping[str, Any]) -> PosteriorBundle:
    """Validate a parsed ``posterior.json`` document and build a bundle."""
    if not isinstance(data, Mapping):
        raise MalformedBundleError("Posterior bundle must be a JSON object")

    missing = [k for k in ("age_mean", "age_std", "param_names", "draws") if k not in data]
    if missing:
        raise MalformedBundleError(f"Posterior bundle is missing keys: {missing}")

    if "CAP" in data:
        cap = _finite_number(data, "CAP")
        if cap < 0:
            raise MalformedBundleError(f"'CAP' must be non-negative, got {cap}")
    else:
        logger.warning(f"Posterior bundle has no CAP; defaulting to {DEFAULT_CAP:g}")
        cap = DEFAULT_CAP

    age_mean = _finite_number(data, "age_mean")
    age_std = _finite_number(data, "age_std")
    param_names = _validate_param_names(data["param_names"])
    draws = _validate_draws(data["draws"], len(param_names))

    return PosteriorBundle.from_arrays(cap, age_mean, age_std, param_names, draws)


def load_posterior(path: pathlib.Path | str) -> PosteriorBundle:
    """Read and validate a posterior bundle from a JSON file."""
    path = pathlib.Path(path)
    try:
        data = json.loads(path.read_text())
    except json.JSONDecodeError as e:
        raise MalformedBundleError(f"{path} is not valid JSON: {e}") from e

    bundle = bundle_from_dict(data)
    logger.info(
        f"Loaded {bundle.n_draws} draws of {bundle.n_params} parameters from {path} "
        f"(CAP={bundle.cap:g})"
    )
    return bundle
