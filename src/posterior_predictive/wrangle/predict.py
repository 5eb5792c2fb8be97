"""Posterior-predictive event probabilities from a fitted posterior bundle.

Usage (standalone):
    python -m posterior_predictive.wrangle.predict \
        --posterior-file public/posterior.json \
        --age 60 --sex 1 --time-minutes 45

    python -m posterior_predictive.wrangle.predict \
        --posterior-file public/posterior.json \
        --sex 0 --curve --curve-points 60 > curve.csv

Usage (as library):
    from posterior_predictive.wrangle.predict import predict_frame
    df = predict_frame(bundle, inputs)

A single prediction is printed as YAML; a curve is printed as CSV with
columns t, mean, lo, hi. Nothing is written to disk.
"""

from __future__ import annotations

import argparse
import logging
import pathlib
import sys
from typing import Any, Sequence, TypedDict

import pandas as pd
import yaml

from posterior_predictive.utils.bundle import PosteriorBundle, load_posterior
from posterior_predictive.utils.errors import PosteriorPredictiveError
from posterior_predictive.utils.parameters import resolve
from posterior_predictive.utils.posterior import (
    DEFAULT_CURVE_POINTS,
    PredictionInput,
    aggregate,
    clamp_time,
    curve,
    curve_to_frame,
    predict,
    standardize,
)

logger = logging.getLogger(__name__)


class PredictParams(TypedDict, total=False):
    curve_points: int
    n_jobs: int


DEFAULT_PARAMS: PredictParams = {
    "curve_points": DEFAULT_CURVE_POINTS,
    "n_jobs": 1,
}


def load_params(params_file: pathlib.Path | None) -> PredictParams:
    """Code defaults, overridden by whatever the YAML params file sets."""
    params: PredictParams = dict(DEFAULT_PARAMS)  # type: ignore[assignment]
    if params_file is None:
        return params

    loaded = yaml.safe_load(params_file.read_text()) or {}
    if not isinstance(loaded, dict):
        raise ValueError(f"{params_file} must contain a mapping, got {type(loaded).__name__}")
    unknown = set(loaded) - set(DEFAULT_PARAMS)
    if unknown:
        logger.warning(f"Ignoring unknown keys in {params_file}: {sorted(unknown)}")
    for key in DEFAULT_PARAMS:
        if key in loaded:
            params[key] = int(loaded[key])  # type: ignore[literal-required]
    return params


def _optional(value: Any) -> float | None:
    if value is None or pd.isna(value):
        return None
    return float(value)


def _use_time(value: Any) -> bool:
    if value is None or pd.isna(value):
        return True
    return bool(value)


def predict_frame(bundle: PosteriorBundle, inputs: pd.DataFrame) -> pd.DataFrame:
    """Predict every row of ``inputs``, resolving the parameter index once.

    Expects columns ``age``, ``sex01`` and optionally ``time_minutes`` and
    ``use_time`` (default True). NaN age or time means "not entered".
    Returns a copy of ``inputs`` with ``mean``, ``lo`` and ``hi`` appended.
    """
    index = resolve(bundle.param_names)

    rows = []
    for _, row in inputs.iterrows():
        prediction_input = PredictionInput(
            age=_optional(row["age"]),
            sex01=int(row["sex01"]),
            time_minutes=_optional(row.get("time_minutes")),
            use_time=_use_time(row.get("use_time")),
        )
        std = standardize(bundle, prediction_input)
        result = aggregate(
            bundle, index, std, prediction_input.use_time, keep_samples=False
        )
        rows.append(result.to_dict())

    results = pd.DataFrame(rows, index=inputs.index, columns=["mean", "lo", "hi"])
    return pd.concat([inputs, results], axis=1)


def main(
    posterior_file: pathlib.Path,
    sex: int,
    age: float | None = None,
    time_minutes: float | None = None,
    no_time: bool = False,
    curve_points: int | None = None,
    n_jobs: int | None = None,
    params_file: pathlib.Path | None = None,
    as_curve: bool = False,
) -> None:
    params = load_params(params_file)
    if curve_points is not None:
        params["curve_points"] = curve_points
    if n_jobs is not None:
        params["n_jobs"] = n_jobs

    bundle = load_posterior(posterior_file)
    prediction_input = PredictionInput(
        age=age, sex01=sex, time_minutes=time_minutes, use_time=not no_time
    )

    if as_curve:
        points = curve(
            bundle,
            prediction_input,
            point_count=params["curve_points"],
            n_jobs=params["n_jobs"],
        )
        curve_to_frame(points).to_csv(sys.stdout, index=False)
        return

    result = predict(bundle, prediction_input)
    logger.info(
        f"P(event) = {result.mean:.1%} (95% CI {result.lo:.1%} - {result.hi:.1%}) "
        f"over {bundle.n_draws} draws"
    )
    output = {
        "inputs": {
            "age": age,
            "sex01": sex,
            "time_minutes": clamp_time(time_minutes, bundle.cap)
            if not no_time
            else None,
            "use_time": not no_time,
        },
        "prediction": {k: round(v, 6) for k, v in result.to_dict().items()},
    }
    yaml.dump(output, sys.stdout, sort_keys=False)


def get_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Posterior-predictive event probability with a 95% credible interval"
    )
    parser.add_argument("--posterior-file", type=pathlib.Path, required=True)
    parser.add_argument("--age", type=float, default=None)
    parser.add_argument("--sex", type=int, choices=[0, 1], required=True)
    parser.add_argument("--time-minutes", type=float, default=None)
    parser.add_argument(
        "--no-time",
        action="store_true",
        help="Use the no-time branch of the model (time is ignored)",
    )
    parser.add_argument(
        "--curve",
        dest="as_curve",
        action="store_true",
        help="Print probability vs. time over [0, CAP] as CSV",
    )
    parser.add_argument("--curve-points", type=int, default=None)
    parser.add_argument("--n-jobs", type=int, default=None)
    parser.add_argument("--params-file", type=pathlib.Path, default=None)
    parser.add_argument("--log-level", type=str, default="WARNING")
    return parser


def run(argv: Sequence[str] | None = None) -> int:
    parser = get_parser()
    args = vars(parser.parse_args(argv))
    if args["as_curve"] and args["no_time"]:
        parser.error("--curve requires the time-dependent model; drop --no-time")

    logging.basicConfig(
        level=args.pop("log_level").upper(),
        format="%(asctime)s - %(levelname)s - %(message)s",
        force=True,
    )
    try:
        main(**args)
    except (PosteriorPredictiveError, OSError, ValueError) as e:
        logger.error(str(e))
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(run())
