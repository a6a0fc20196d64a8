import numpy as np
import pandas as pd
import pytest
from sklearn.ensemble import RandomForestRegressor
from sklearn.linear_model import LinearRegression


@pytest.fixture
def toy_dataset():
    return pd.DataFrame({
        'x1': [1.0, 2.0, 3.0, 4.0],
        'x2': [0.5, 0.1, 0.9, 0.3],
        'y': [10, 20, 30, 40],
    })


@pytest.fixture
def regression_dataset():
    rng = np.random.default_rng(0)
    n = 200
    df = pd.DataFrame({
        'signal': rng.normal(size=n),
        'weak': rng.normal(size=n),
        'noise': rng.normal(size=n),
    })
    df['y'] = 3.0 * df['signal'] + 0.5 * df['weak'] + rng.normal(scale=0.1, size=n)
    return df


@pytest.fixture
def linear_model(regression_dataset):
    X = regression_dataset.drop(columns=['y'])
    return LinearRegression().fit(X, regression_dataset['y'])


@pytest.fixture
def forest_model(regression_dataset):
    X = regression_dataset.drop(columns=['y'])
    return RandomForestRegressor(n_estimators=20, random_state=0).fit(X, regression_dataset['y'])


def constant_predictor(X):
    return np.full(len(X), 25.0)
