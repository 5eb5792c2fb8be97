import numpy as np
import pytest

from posterior_predictive.utils.bundle import PosteriorBundle

MIXTURE_NAMES = ["rho0", "rho1", "mu0", "mu1", "sigma0", "sigma1"]
FULL_NAMES = MIXTURE_NAMES + ["beta_age", "beta_age_miss", "beta_sex", "beta_sex_miss"]


def make_draws(n_draws: int, seed: int = 0) -> np.ndarray:
    rng = np.random.default_rng(seed)
    return np.column_stack(
        [
            rng.beta(3, 7, n_draws),  # rho0
            rng.beta(7, 3, n_draws),  # rho1
            rng.normal(20, 3, n_draws),  # mu0
            rng.normal(90, 8, n_draws),  # mu1
            np.abs(rng.normal(15, 2, n_draws)),  # sigma0
            np.abs(rng.normal(40, 5, n_draws)),  # sigma1
            rng.normal(0.4, 0.1, n_draws),  # beta_age
            rng.normal(-0.2, 0.1, n_draws),  # beta_age_miss
            rng.normal(0.3, 0.2, n_draws),  # beta_sex
            rng.normal(0.0, 0.1, n_draws),  # beta_sex_miss
        ]
    )


@pytest.fixture
def single_draw_bundle() -> PosteriorBundle:
    return PosteriorBundle.from_arrays(
        cap=300,
        age_mean=60.0,
        age_std=15.0,
        param_names=MIXTURE_NAMES,
        draws=[[0.3, 0.7, 10, 50, 5, 10]],
    )


@pytest.fixture
def full_bundle() -> PosteriorBundle:
    return PosteriorBundle.from_arrays(
        cap=240,
        age_mean=58.0,
        age_std=12.5,
        param_names=FULL_NAMES,
        draws=make_draws(400),
    )


@pytest.fixture
def posterior_document() -> dict:
    return {
        "CAP": 240,
        "age_mean": 58.0,
        "age_std": 12.5,
        "param_names": list(FULL_NAMES),
        "draws": make_draws(50, seed=1).tolist(),
    }
