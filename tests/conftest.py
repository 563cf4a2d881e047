import numpy as np
import pandas as pd
import pytest

from rentpanel.panel import PanelDataset
from rentpanel.synthetic import generate_rent_panel

COVARIATES = ["log_income", "log_population", "vacancy"]


@pytest.fixture
def rent_frame():
    df = generate_rent_panel(n_cities=20, n_years=6, seed=7)
    for col in ("rent", "income", "population"):
        df[f"log_{col}"] = np.log(df[col])
    return df


@pytest.fixture
def rent_panel(rent_frame):
    return PanelDataset(rent_frame, "city", "year")


@pytest.fixture
def tiny_frame():
    # x is constant within each city
    return pd.DataFrame({
        "city": ["A", "A", "B", "B"],
        "year": [2000, 2001, 2000, 2001],
        "y": [1.0, 2.0, 3.0, 4.0],
        "x": [0.0, 0.0, 1.0, 1.0],
    })


@pytest.fixture
def tiny_panel(tiny_frame):
    return PanelDataset(tiny_frame, "city", "year")


def make_panel(n_entities=25, n_periods=8, beta=(2.0, -0.5), effect_scale=1.0,
               effect_corr=0.0, noise=0.5, seed=0):
    """
    y_it = alpha_i + x1 * beta[0] + x2 * beta[1] + e_it with alpha_i optionally
    correlated with the entity mean of x1.
    """
    rng = np.random.RandomState(seed)
    n = n_entities * n_periods
    entity = np.repeat([f"E{i:03d}" for i in range(n_entities)], n_periods)
    period = np.tile(np.arange(2000, 2000 + n_periods), n_entities)
    x1_level = rng.normal(0, 1, n_entities)
    x1 = np.repeat(x1_level, n_periods) + rng.normal(0, 1, n)
    x2 = rng.normal(0, 1, n)
    alpha = effect_scale * (rng.normal(0, 1, n_entities) + effect_corr * x1_level)
    y = np.repeat(alpha, n_periods) + beta[0] * x1 + beta[1] * x2 + rng.normal(0, noise, n)
    return pd.DataFrame({"entity": entity, "period": period, "y": y, "x1": x1, "x2": x2})
