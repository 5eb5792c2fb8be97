import json
import logging

import numpy as np
import pytest

from posterior_predictive.utils.bundle import (
    DEFAULT_CAP,
    PosteriorBundle,
    bundle_from_dict,
    load_posterior,
)
from posterior_predictive.utils.errors import MalformedBundleError, PosteriorPredictiveError

from conftest import FULL_NAMES


def test_load_posterior(tmp_path, posterior_document):
    path = tmp_path / "posterior.json"
    path.write_text(json.dumps(posterior_document))

    bundle = load_posterior(path)

    assert isinstance(bundle, PosteriorBundle)
    assert bundle.cap == 240.0
    assert bundle.age_mean == 58.0
    assert bundle.age_std == 12.5
    assert bundle.param_names == tuple(FULL_NAMES)
    assert bundle.n_draws == 50
    assert bundle.n_params == len(FULL_NAMES)
    np.testing.assert_array_equal(bundle.draws, posterior_document["draws"])


def test_draws_are_read_only(posterior_document):
    bundle = bundle_from_dict(posterior_document)
    with pytest.raises(ValueError):
        bundle.draws[0, 0] = 1.0


def test_missing_cap_defaults(posterior_document, caplog):
    del posterior_document["CAP"]
    with caplog.at_level(logging.WARNING):
        bundle = bundle_from_dict(posterior_document)
    assert bundle.cap == DEFAULT_CAP
    assert "no CAP" in caplog.text


def test_integer_draws_are_accepted(posterior_document):
    posterior_document["param_names"] = ["rho0", "rho1", "mu0", "mu1", "sigma0", "sigma1"]
    posterior_document["draws"] = [[0, 1, 10, 50, 5, 10]]
    bundle = bundle_from_dict(posterior_document)
    assert bundle.draws.dtype == np.float64


@pytest.mark.parametrize(
    "mutate, message",
    [
        (lambda d: d.pop("draws"), "missing keys"),
        (lambda d: d.pop("age_mean"), "missing keys"),
        (lambda d: d.update(CAP=-1), "non-negative"),
        (lambda d: d.update(CAP="300"), "must be a number"),
        (lambda d: d.update(age_std=float("inf")), "finite"),
        (lambda d: d.update(age_mean=True), "must be a number"),
        (lambda d: d.update(param_names="rho0"), "list of strings"),
        (lambda d: d.update(param_names=d["param_names"][:-1] + [7]), "not a string"),
        (lambda d: d.update(param_names=d["param_names"][:-1] + ["rho0"]), "Duplicate"),
        (lambda d: d.update(draws=[]), "non-empty"),
        (lambda d: d["draws"].append(d["draws"][0][:-1]), "expected 10"),
        (lambda d: d["draws"][3].__setitem__(2, "x"), "non-numeric"),
        (lambda d: d["draws"][3].__setitem__(2, float("nan")), "non-finite"),
        (lambda d: d["draws"].__setitem__(0, 1.0), "not a list"),
    ],
)
def test_malformed_bundles_are_rejected(posterior_document, mutate, message):
    mutate(posterior_document)
    with pytest.raises(MalformedBundleError, match=message):
        bundle_from_dict(posterior_document)


def test_not_an_object():
    with pytest.raises(MalformedBundleError):
        bundle_from_dict([1, 2, 3])  # type: ignore[arg-type]


def test_invalid_json(tmp_path):
    path = tmp_path / "posterior.json"
    path.write_text("{not json")
    with pytest.raises(MalformedBundleError, match="not valid JSON") as excinfo:
        load_posterior(path)
    assert isinstance(excinfo.value, PosteriorPredictiveError)
    assert isinstance(excinfo.value, ValueError)
