"""Posterior-predictive probabilities for the two-component mixture/hazard model.

For covariates x = (age, sex) and elapsed time t, the model compares a
"no event" component (index 0) with an "event" component (index 1). Each
posterior draw carries

    rho_k    mixing weights
    mu_k     mean time of component k (minutes)
    sigma_k  spread of component k
    beta_*   covariate coefficients (optional, 0 when absent)

and the log-odds of the event are

    m = 1 (time known):  log rho1 - log rho0 + [log N(t|mu1,s1) - log N(t|mu0,s0)] + x'beta
    m = 0 (no time):     log(1 - rho1) - log(1 - rho0) + x'beta

Everything is kept in the log domain and converted with a sigmoid that
branches on the sign of the logit, so no step can overflow. Running this over
every draw gives the posterior distribution of the probability, which we
summarize by its mean and a 95% credible interval.
"""

from __future__ import annotations

import dataclasses
import logging
import math
from dataclasses import dataclass
from typing import Any, Iterator

import numpy as np
import pandas as pd
from joblib import Parallel, delayed
from numpy.typing import NDArray

from posterior_predictive.utils.bundle import PosteriorBundle
from posterior_predictive.utils.errors import InsufficientDataError
from posterior_predictive.utils.parameters import ParameterIndex, resolve

logger = logging.getLogger(__name__)

PROBABILITY_EPS = 1e-12
SIGMA_FLOOR = 1e-12
LOW_QUANTILE = 0.025
HIGH_QUANTILE = 0.975
DEFAULT_CURVE_POINTS = 120

_LN_2PI = math.log(2 * math.pi)


# ---------------------------------------------------------------------------
# Inputs and results
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PredictionInput:
    """Raw covariates as entered by the user.

    ``use_time=False`` selects the no-time branch of the model (m = 0), in
    which ``time_minutes`` is ignored.
    """

    age: float | None
    sex01: int
    time_minutes: float | None = None
    use_time: bool = True

    def __post_init__(self) -> None:
        if self.sex01 not in (0, 1):
            raise ValueError(f"sex01 must be 0 or 1, got {self.sex01!r}")
        for name in ("age", "time_minutes"):
            value = getattr(self, name)
            if value is not None and not math.isfinite(value):
                raise ValueError(f"{name} must be finite or None, got {value!r}")


@dataclass(frozen=True)
class StdCovariates:
    age_z: float
    age_missing: int
    sex01: float
    sex_missing: int
    t: float


@dataclass(frozen=True)
class PredictionResult:
    mean: float
    lo: float
    hi: float
    # Per-draw probabilities, sorted ascending
    samples: NDArray[np.float64] | None = None

    def to_dict(self) -> dict[str, float]:
        return {"mean": self.mean, "lo": self.lo, "hi": self.hi}


@dataclass(frozen=True)
class CurvePoint:
    t: float
    mean: float
    lo: float
    hi: float


# ---------------------------------------------------------------------------
# Covariate standardization
# ---------------------------------------------------------------------------


def clamp_time(t: float | None, cap: float) -> float:
    return min(max(float(t or 0.0), 0.0), cap)


def standardize(bundle: PosteriorBundle, inputs: PredictionInput) -> StdCovariates:
    """Convert raw inputs into the model's covariate representation.

    A missing age is encoded as ``age_z = 0`` with the missingness indicator
    set. A non-positive ``age_std`` in the bundle falls back to 1 rather than
    dividing by it. Time is clamped to ``[0, CAP]`` even when it will not be
    used. Sex is always observed, so its missingness indicator is 0.
    """
    if inputs.age is None:
        age_z, age_missing = 0.0, 1
    else:
        age_std = bundle.age_std if bundle.age_std > 0 else 1.0
        age_z, age_missing = (inputs.age - bundle.age_mean) / age_std, 0

    return StdCovariates(
        age_z=age_z,
        age_missing=age_missing,
        sex01=float(inputs.sex01),
        sex_missing=0,
        t=clamp_time(inputs.time_minutes, bundle.cap),
    )


# ---------------------------------------------------------------------------
# Per-draw evaluation
# ---------------------------------------------------------------------------


def _log_normal_pdf(x: float, mu: NDArray[Any], sigma: NDArray[Any]) -> NDArray[Any]:
    z = (x - mu) / sigma
    return -0.5 * _LN_2PI - np.log(sigma) - 0.5 * z * z


def _stable_sigmoid(logit: NDArray[Any]) -> NDArray[Any]:
    # exp(-|z|) <= 1, so neither branch can overflow
    e = np.exp(-np.abs(logit))
    return np.where(logit >= 0, 1.0 / (1.0 + e), e / (1.0 + e))


def _coefficient(draws: NDArray[Any], column: int | None) -> NDArray[Any] | float:
    return 0.0 if column is None else draws[..., column]


def evaluate(
    draws: Any,
    index: ParameterIndex,
    std: StdCovariates,
    use_time: bool,
) -> Any:
    """Event probability for one draw (1-D row) or many draws (2-D matrix).

    Returns a float for a single row and an array with one probability per
    row otherwise. Degenerate parameter values are absorbed: rho is clipped
    into (0, 1), sigma is floored, and the final probability is clipped to
    ``[1e-12, 1 - 1e-12]``.
    """
    draws = np.asarray(draws, dtype=np.float64)

    rho0 = np.clip(draws[..., index.rho0], PROBABILITY_EPS, 1 - PROBABILITY_EPS)
    rho1 = np.clip(draws[..., index.rho1], PROBABILITY_EPS, 1 - PROBABILITY_EPS)
    mu0 = draws[..., index.mu0]
    mu1 = draws[..., index.mu1]
    sigma0 = np.maximum(draws[..., index.sigma0], SIGMA_FLOOR)
    sigma1 = np.maximum(draws[..., index.sigma1], SIGMA_FLOOR)

    linear = (
        _coefficient(draws, index.beta_age) * std.age_z
        + _coefficient(draws, index.beta_age_miss) * std.age_missing
        + _coefficient(draws, index.beta_sex) * std.sex01
        + _coefficient(draws, index.beta_sex_miss) * std.sex_missing
    )

    if use_time:
        logit = (
            np.log(rho1)
            - np.log(rho0)
            + (_log_normal_pdf(std.t, mu1, sigma1) - _log_normal_pdf(std.t, mu0, sigma0))
            + linear
        )
    else:
        logit = np.log1p(-rho1) - np.log1p(-rho0) + linear

    p = np.clip(_stable_sigmoid(logit), PROBABILITY_EPS, 1 - PROBABILITY_EPS)
    return float(p) if p.ndim == 0 else p


# ---------------------------------------------------------------------------
# Aggregation over the posterior
# ---------------------------------------------------------------------------


def quantile(samples: Any, q: float, assume_sorted: bool = False) -> float:
    """Linearly interpolated sample quantile.

    ``quantile(s, 0)`` is the minimum and ``quantile(s, 1)`` the maximum.
    """
    values = np.asarray(samples, dtype=np.float64).ravel()
    n = values.size
    if n == 0:
        raise InsufficientDataError("Cannot take a quantile of zero samples")
    if not assume_sorted:
        values = np.sort(values)

    pos = min(max(q * (n - 1), 0.0), n - 1)
    base = math.floor(pos)
    frac = pos - base
    if base + 1 < n:
        return float(values[base] * (1 - frac) + values[base + 1] * frac)
    return float(values[base])


def aggregate(
    bundle: PosteriorBundle,
    index: ParameterIndex,
    std: StdCovariates,
    use_time: bool,
    keep_samples: bool = True,
) -> PredictionResult:
    """Posterior mean and 95% credible interval of the event probability."""
    if bundle.n_draws == 0:
        raise InsufficientDataError("Posterior bundle has no draws")

    probs = np.sort(evaluate(bundle.draws, index, std, use_time))
    return PredictionResult(
        mean=float(np.mean(probs)),
        lo=quantile(probs, LOW_QUANTILE, assume_sorted=True),
        hi=quantile(probs, HIGH_QUANTILE, assume_sorted=True),
        samples=probs if keep_samples else None,
    )


def predict(
    bundle: PosteriorBundle,
    inputs: PredictionInput,
    keep_samples: bool = False,
) -> PredictionResult:
    index = resolve(bundle.param_names)
    std = standardize(bundle, inputs)
    return aggregate(bundle, index, std, inputs.use_time, keep_samples=keep_samples)


# ---------------------------------------------------------------------------
# Probability vs. time curves
# ---------------------------------------------------------------------------


def time_grid(cap: float, point_count: int) -> NDArray[np.float64]:
    """Evenly spaced times over ``[0, cap]``, both ends included."""
    if point_count < 1:
        raise ValueError(f"point_count must be at least 1, got {point_count}")
    if point_count == 1:
        return np.zeros(1)
    return np.linspace(0.0, cap, point_count)


def _curve_point(
    bundle: PosteriorBundle,
    index: ParameterIndex,
    base_std: StdCovariates,
    t: float,
) -> CurvePoint:
    std = dataclasses.replace(base_std, t=clamp_time(t, bundle.cap))
    result = aggregate(bundle, index, std, use_time=True, keep_samples=False)
    return CurvePoint(t=std.t, mean=result.mean, lo=result.lo, hi=result.hi)


def _prepare_curve(
    bundle: PosteriorBundle,
    base: PredictionInput,
    point_count: int,
) -> tuple[ParameterIndex, StdCovariates, NDArray[np.float64]]:
    index = resolve(bundle.param_names)
    if bundle.n_draws == 0:
        raise InsufficientDataError("Posterior bundle has no draws")
    grid = time_grid(bundle.cap, point_count)
    # Age and sex do not change along the curve
    base_std = standardize(bundle, dataclasses.replace(base, time_minutes=0.0, use_time=True))
    return index, base_std, grid


def iter_curve(
    bundle: PosteriorBundle,
    base: PredictionInput,
    point_count: int = DEFAULT_CURVE_POINTS,
) -> Iterator[CurvePoint]:
    """Lazily yield curve points in ascending t.

    The time fields of ``base`` are ignored. Validation happens on the call,
    so errors surface before the first point; consumers may stop iterating at
    any point boundary.
    """
    index, base_std, grid = _prepare_curve(bundle, base, point_count)

    def _points() -> Iterator[CurvePoint]:
        for t in grid:
            yield _curve_point(bundle, index, base_std, float(t))

    return _points()


def curve(
    bundle: PosteriorBundle,
    base: PredictionInput,
    point_count: int = DEFAULT_CURVE_POINTS,
    n_jobs: int = 1,
) -> list[CurvePoint]:
    """Posterior mean and 95% band of the event probability over ``[0, CAP]``.

    Always uses the time-dependent branch. With ``n_jobs != 1`` the grid
    points are evaluated in parallel with joblib; the output order is the
    grid order either way.
    """
    if n_jobs == 1:
        points = list(iter_curve(bundle, base, point_count))
    else:
        index, base_std, grid = _prepare_curve(bundle, base, point_count)
        points = Parallel(n_jobs=n_jobs)(
            delayed(_curve_point)(bundle, index, base_std, float(t)) for t in grid
        )
    logger.debug(f"Computed {len(points)}-point curve over [0, {bundle.cap:g}] (n_jobs={n_jobs})")
    return points


def curve_to_frame(points: list[CurvePoint]) -> pd.DataFrame:
    return pd.DataFrame(
        [dataclasses.asdict(p) for p in points], columns=["t", "mean", "lo", "hi"]
    )
