"""Map logical model parameters to columns of the posterior draw matrix.

Exports of the model have grown over time: the earliest carry only the six
mixture parameters, later ones add covariate coefficients. Coefficients that
an export does not carry resolve to ``None`` and are read as exactly 0.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Sequence

from posterior_predictive.utils.errors import MissingParameterError

logger = logging.getLogger(__name__)

REQUIRED_PARAMETERS = ("rho0", "rho1", "mu0", "mu1", "sigma0", "sigma1")
OPTIONAL_PARAMETERS = ("beta_age", "beta_age_miss", "beta_sex", "beta_sex_miss")


@dataclass(frozen=True)
class ParameterIndex:
    """Column position of each parameter; ``None`` marks an absent coefficient."""

    rho0: int
    rho1: int
    mu0: int
    mu1: int
    sigma0: int
    sigma1: int
    beta_age: int | None = None
    beta_age_miss: int | None = None
    beta_sex: int | None = None
    beta_sex_miss: int | None = None


def resolve(param_names: Sequence[str]) -> ParameterIndex:
    """Resolve parameter names to column positions.

    Raises MissingParameterError naming the first required parameter that is
    not present. The order of ``param_names`` does not matter.
    """
    positions = {name: i for i, name in enumerate(param_names)}

    for name in REQUIRED_PARAMETERS:
        if name not in positions:
            raise MissingParameterError(name)

    absent = [name for name in OPTIONAL_PARAMETERS if name not in positions]
    if absent:
        logger.debug(f"Optional coefficients absent, treated as 0: {absent}")

    return ParameterIndex(
        **{name: positions[name] for name in REQUIRED_PARAMETERS},
        **{name: positions.get(name) for name in OPTIONAL_PARAMETERS},
    )
