import pytest

from posterior_predictive.utils.errors import MissingParameterError
from posterior_predictive.utils.parameters import (
    OPTIONAL_PARAMETERS,
    REQUIRED_PARAMETERS,
    resolve,
)

from conftest import FULL_NAMES, MIXTURE_NAMES


def test_resolve_mixture_only_marks_coefficients_absent():
    index = resolve(MIXTURE_NAMES)
    assert (index.rho0, index.rho1, index.mu0, index.mu1, index.sigma0, index.sigma1) == (
        0, 1, 2, 3, 4, 5,
    )
    for name in OPTIONAL_PARAMETERS:
        assert getattr(index, name) is None


def test_resolve_full_export():
    index = resolve(FULL_NAMES)
    for name in REQUIRED_PARAMETERS + OPTIONAL_PARAMETERS:
        assert getattr(index, name) == FULL_NAMES.index(name)


def test_resolve_is_order_independent():
    names = list(reversed(FULL_NAMES))
    index = resolve(names)
    for name in REQUIRED_PARAMETERS + OPTIONAL_PARAMETERS:
        assert names[getattr(index, name)] == name


def test_resolve_partial_coefficients():
    index = resolve(["sigma1", "beta_sex", *MIXTURE_NAMES[:-1]])
    assert index.sigma1 == 0
    assert index.beta_sex == 1
    assert index.beta_age is None
    assert index.beta_sex_miss is None


@pytest.mark.parametrize("missing", REQUIRED_PARAMETERS)
def test_resolve_missing_required_parameter(missing):
    names = [n for n in FULL_NAMES if n != missing]
    with pytest.raises(MissingParameterError) as excinfo:
        resolve(names)
    assert excinfo.value.parameter == missing
    assert missing in str(excinfo.value)
    assert isinstance(excinfo.value, KeyError)


def test_index_is_immutable():
    index = resolve(MIXTURE_NAMES)
    with pytest.raises(AttributeError):
        index.rho0 = 3  # type: ignore[misc]
