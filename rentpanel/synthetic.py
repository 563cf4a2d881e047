import numpy as np
import pandas as pd

REGIONS = ["North", "South", "East", "West"]


def generate_rent_panel(n_cities: int = 30, n_years: int = 10, entity_effect_scale: float = 1.0,
                        noise_scale: float = 0.05, start_year: int = 2010,
                        seed: int = 42) -> pd.DataFrame:
    """
    Balanced city/year panel of rents.

    log(rent) = 0.6 log(income) + 0.1 log(population) - 1.5 vacancy + city effect + noise

    The city effect is correlated with income, so fixed and random effects
    disagree unless ``entity_effect_scale`` is zero. ``region`` is constant
    within each city.
    """
    rng = np.random.RandomState(seed)
    cities = [f"City_{i:02d}" for i in range(n_cities)]
    years = [start_year + t for t in range(n_years)]

    city_effect = rng.normal(0, 0.3, n_cities) * entity_effect_scale
    base_income = 10.5 + rng.normal(0, 0.2, n_cities) + 0.5 * city_effect
    base_population = rng.uniform(11, 15, n_cities)
    region = rng.choice(REGIONS, n_cities)

    data = []
    for i, city in enumerate(cities):
        for t, year in enumerate(years):
            log_income = base_income[i] + 0.02 * t + rng.normal(0, 0.05)
            log_population = base_population[i] + 0.01 * t + rng.normal(0, 0.02)
            vacancy = float(np.clip(rng.normal(0.06, 0.02), 0.005, 0.3))
            log_rent = (
                1.0
                + 0.6 * log_income
                + 0.1 * log_population
                - 1.5 * vacancy
                + city_effect[i]
                + rng.normal(0, noise_scale)
            )
            data.append({
                "city": city,
                "year": year,
                "rent": float(np.exp(log_rent)),
                "income": float(np.exp(log_income)),
                "population": float(np.exp(log_population)),
                "vacancy": vacancy,
                "region": region[i],
            })

    return pd.DataFrame(data)
