"""
Pytest configuration and fixtures for modeltidy tests.

This module provides seeded synthetic datasets and fitted models shared
across the tidier tests:
- a 32-row car dataset with OLS and logistic fits
- a small Poisson count table
- a repeated-measures reaction-time dataset with mixed models
- a 50 x 4 dataset for PCA
"""

import os
import sys

import numpy as np
import pandas as pd
import pytest
import statsmodels.api as sm
import statsmodels.formula.api as smf

# Add the parent directory to the path to import the module
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from modeltidy.components.config import ConfigManager
from modeltidy.models import as_fitted_model


@pytest.fixture(autouse=True)
def fresh_config():
    """Reload configuration for every test so overrides don't leak."""
    ConfigManager.reset()
    yield
    ConfigManager.reset()


@pytest.fixture(scope="session")
def cars():
    """32 observations with two continuous predictors and a binary outcome."""
    rng = np.random.RandomState(20)
    n = 32
    wt = rng.uniform(1.5, 5.5, n)
    qsec = rng.uniform(14.5, 23.0, n)
    mpg = 30.0 - 5.0 * wt + 0.9 * qsec + rng.normal(0.0, 2.5, n)
    p_manual = 1.0 / (1.0 + np.exp(-(4.0 - 1.3 * wt)))
    am = rng.binomial(1, p_manual)
    index = [f"car{i + 1}" for i in range(n)]
    return pd.DataFrame({'mpg': mpg, 'wt': wt, 'qsec': qsec, 'am': am}, index=index)


@pytest.fixture(scope="session")
def ols_fit(cars):
    return smf.ols("mpg ~ wt + qsec", data=cars).fit()


@pytest.fixture(scope="session")
def logit_fit(cars):
    return smf.glm("am ~ wt", data=cars, family=sm.families.Binomial()).fit()


@pytest.fixture(scope="session")
def counts():
    """Counts by outcome and treatment, three levels each."""
    return pd.DataFrame({
        'treatment': ['1', '1', '1', '2', '2', '2', '3', '3', '3'],
        'outcome': ['1', '2', '3'] * 3,
        'counts': [18, 17, 15, 20, 10, 20, 25, 13, 12],
    })


@pytest.fixture(scope="session")
def poisson_fit(counts):
    return smf.glm("counts ~ outcome", data=counts, family=sm.families.Poisson()).fit()


@pytest.fixture(scope="session")
def reaction():
    """Reaction times for 18 subjects over 10 days with subject-level intercepts and slopes."""
    rng = np.random.RandomState(7)
    n_subjects, n_days = 18, 10
    subjects = np.repeat([f"S{i:02d}" for i in range(n_subjects)], n_days)
    days = np.tile(np.arange(n_days), n_subjects).astype(float)
    intercepts = np.repeat(rng.normal(0.0, 25.0, n_subjects), n_days)
    slopes = np.repeat(rng.normal(0.0, 6.0, n_subjects), n_days)
    reaction = 250.0 + intercepts + (10.0 + slopes) * days + rng.normal(0.0, 25.0, n_subjects * n_days)
    return pd.DataFrame({'Reaction': reaction, 'Days': days, 'Subject': subjects})


@pytest.fixture(scope="session")
def slopes_results(reaction):
    return smf.mixedlm("Reaction ~ Days", reaction, groups="Subject", re_formula="~Days").fit()


@pytest.fixture(scope="session")
def intercept_results(reaction):
    return smf.mixedlm("Reaction ~ Days", reaction, groups="Subject").fit()


@pytest.fixture
def slopes_fit(slopes_results):
    return as_fitted_model(slopes_results, group_name="Subject")


@pytest.fixture
def intercept_fit(intercept_results):
    return as_fitted_model(intercept_results, group_name="Subject")


@pytest.fixture(scope="session")
def arrests():
    """50 observations of 4 correlated variables."""
    rng = np.random.RandomState(3)
    latent = rng.normal(size=(50, 2))
    mixing = np.array([[3.0, 1.0, 0.5, 2.0],
                       [0.5, 2.0, 1.5, -1.0]])
    values = latent @ mixing + rng.normal(scale=0.5, size=(50, 4)) + [8.0, 170.0, 65.0, 21.0]
    index = [f"state{i + 1}" for i in range(50)]
    return pd.DataFrame(values, index=index, columns=['Murder', 'Assault', 'UrbanPop', 'Rape'])
