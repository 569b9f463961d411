"""Shared fixtures for the survival tree tests."""

from __future__ import annotations

import numpy as np
import pandas as pd
import pytest

from survival_forest.data import SurvivalData


def make_random_data(n: int = 60, n_features: int = 3, seed: int = 0, censoring: float = 0.3) -> SurvivalData:
    rng = np.random.RandomState(seed)
    X = rng.normal(size=(n, n_features))
    # Coarse variable with many ties
    X[:, -1] = rng.randint(0, 3, size=n)
    time = np.round(rng.exponential(scale=10 * np.exp(-X[:, 0])), 1) + 0.1
    status = (rng.uniform(size=n) > censoring).astype(int)
    columns = [f"x{i}" for i in range(n_features)]
    return SurvivalData(pd.DataFrame(X, columns=columns), time, status)


@pytest.fixture
def random_data() -> SurvivalData:
    return make_random_data()


@pytest.fixture
def scenario_a() -> SurvivalData:
    # Four uncensored rows, one death per grid point
    return SurvivalData(pd.DataFrame({"x": [1.0, 2.0, 3.0, 4.0]}),
                        time=[5.0, 6.0, 7.0, 8.0], status=[1, 1, 1, 1])


@pytest.fixture
def informative_data() -> SurvivalData:
    # Higher x0 means earlier death; x1 is noise
    rng = np.random.RandomState(7)
    n = 120
    x0 = rng.uniform(size=n)
    x1 = rng.normal(size=n)
    time = 10.0 * (1.0 - x0) + rng.uniform(0.0, 0.5, size=n)
    status = (rng.uniform(size=n) < 0.8).astype(int)
    return SurvivalData(pd.DataFrame({"x0": x0, "x1": x1}), time, status)
