"""
Tests for the linear and generalized linear model tidiers.
"""

import pytest
import logging
import numpy as np
import pandas as pd
import sys
import os
import statsmodels.api as sm
import statsmodels.formula.api as smf
import patsy
from types import SimpleNamespace
from scipy import stats

# Add the parent directory to the path to import the module
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from modeltidy.components.config import ConfigManager
from modeltidy.errors import (
    DeprecatedOptionWarning,
    InvalidArgument,
    NoOpTransformWarning,
    UnsupportedOperation,
)
from modeltidy.models import GeneralizedLinearFit, ModelKind, as_fitted_model
from modeltidy.models.linear import design_matrix
from modeltidy.tidiers.lm import augment_lm, glance_lm, tidy_lm

COEFFICIENT_COLUMNS = ['term', 'estimate', 'std.error', 'statistic', 'p.value']

LM_AUGMENT_COLUMNS = ['.fitted', '.se.fit', '.resid', '.hat', '.sigma', '.cooksd', '.std.resid']


@pytest.fixture
def two_responses(cars):
    return {
        'mpg': smf.ols("mpg ~ wt", data=cars).fit(),
        'qsec': smf.ols("qsec ~ wt", data=cars).fit(),
    }


class TestTidyLinear:
    """Tests for tidy_lm on ordinary least squares fits."""

    def test_coefficient_table(self, ols_fit):
        """Test the default coefficient table."""
        result = tidy_lm(ols_fit)

        assert list(result.columns) == COEFFICIENT_COLUMNS
        assert list(result['term']) == ['Intercept', 'wt', 'qsec']
        assert np.allclose(result['estimate'], ols_fit.params.values)
        assert np.allclose(result['std.error'], ols_fit.bse.values)
        assert np.allclose(result['statistic'], ols_fit.tvalues.values)
        assert np.allclose(result['p.value'], ols_fit.pvalues.values)
        assert list(result.index) == [0, 1, 2]

    def test_quick(self, ols_fit):
        """Test that quick mode returns only terms and estimates."""
        result = tidy_lm(ols_fit, quick=True)

        assert list(result.columns) == ['term', 'estimate']
        assert list(result['term']) == ['Intercept', 'wt', 'qsec']
        assert np.allclose(result['estimate'], ols_fit.params.values)

    def test_quick_ignores_confidence_interval(self, ols_fit):
        """Test that quick mode adds no interval columns."""
        result = tidy_lm(ols_fit, quick=True, confidence_interval=True)

        assert list(result.columns) == ['term', 'estimate']

    def test_profile_interval_is_exact_t_interval(self, ols_fit):
        """Test the default interval against the t-based interval."""
        result = tidy_lm(ols_fit, confidence_interval=True)
        expected = ols_fit.conf_int(alpha=0.05).values

        assert list(result.columns) == COEFFICIENT_COLUMNS + ['conf.low', 'conf.high']
        assert np.allclose(result[['conf.low', 'conf.high']].values, expected)

    def test_wald_interval(self, ols_fit):
        """Test the symmetric normal interval."""
        result = tidy_lm(ols_fit, confidence_interval=True, confidence_level=0.9,
                         confidence_method='wald')
        mult = stats.norm.ppf(0.95)

        assert np.allclose(result['conf.low'], result['estimate'] - mult * result['std.error'])
        assert np.allclose(result['conf.high'], result['estimate'] + mult * result['std.error'])

    def test_interval_contains_estimate(self, ols_fit):
        """Test that every interval brackets its estimate."""
        result = tidy_lm(ols_fit, confidence_interval=True)

        assert np.all(result['conf.low'] < result['estimate'])
        assert np.all(result['estimate'] < result['conf.high'])

    def test_configured_confidence_level(self, ols_fit, monkeypatch):
        """Test that the default level is read from the environment."""
        monkeypatch.setenv('MODELTIDY_CONF_LEVEL', '0.8')
        ConfigManager.reset()

        result = tidy_lm(ols_fit, confidence_interval=True, confidence_method='wald')
        mult = stats.norm.ppf(0.9)

        assert np.allclose(result['conf.high'] - result['estimate'], mult * result['std.error'])

    @pytest.mark.parametrize("level", [0.0, 1.0, 1.5, -0.2, 'high'])
    def test_invalid_confidence_level(self, ols_fit, level):
        """Test that levels outside (0, 1) are rejected."""
        with pytest.raises(InvalidArgument):
            tidy_lm(ols_fit, confidence_interval=True, confidence_level=level)

    def test_invalid_confidence_method(self, ols_fit):
        """Test that unknown interval methods are rejected."""
        with pytest.raises(InvalidArgument):
            tidy_lm(ols_fit, confidence_interval=True, confidence_method='bootstrap')

    def test_transform_identity_link_warns(self, ols_fit):
        """Test that back-transforming an identity-link model is a no-op with a warning."""
        with pytest.warns(NoOpTransformWarning):
            result = tidy_lm(ols_fit, transform=True)

        assert np.allclose(result['estimate'], ols_fit.params.values)

    def test_warning_is_reported_once(self, ols_fit, caplog):
        """Test that a tidier warning is not also logged at warning level."""
        with caplog.at_level(logging.WARNING, logger='modeltidy'):
            with pytest.warns(NoOpTransformWarning):
                tidy_lm(ols_fit, transform=True)

        assert not [record for record in caplog.records if record.levelno >= logging.WARNING]

    def test_intercept_only(self, cars):
        """Test a model with no predictors."""
        fit = smf.ols("mpg ~ 1", data=cars).fit()
        result = tidy_lm(fit)

        assert list(result['term']) == ['Intercept']
        assert np.isclose(result['estimate'].iloc[0], cars['mpg'].mean())

    def test_array_model_terms(self, cars):
        """Test a model fitted on arrays with an added constant."""
        fit = sm.OLS(cars['mpg'], sm.add_constant(cars[['wt', 'qsec']])).fit()
        result = tidy_lm(fit)

        assert list(result['term']) == ['const', 'wt', 'qsec']

    def test_not_a_linear_model(self):
        """Test that unsupported objects are rejected."""
        with pytest.raises(UnsupportedOperation):
            tidy_lm(object())


class TestTidyGeneralizedLinear:
    """Tests for tidy_lm on generalized linear models."""

    def test_coefficient_table(self, poisson_fit):
        """Test the GLM coefficient table."""
        result = tidy_lm(poisson_fit)

        assert list(result.columns) == COEFFICIENT_COLUMNS
        assert len(result) == 3
        assert result['term'].iloc[0] == 'Intercept'
        assert np.allclose(result['estimate'], poisson_fit.params.values)

    def test_transform_applies_inverse_link(self, poisson_fit):
        """Test back-transformation through the log link."""
        base = tidy_lm(poisson_fit)
        result = tidy_lm(poisson_fit, transform=True)

        assert np.allclose(result['estimate'], np.exp(base['estimate']))
        assert np.allclose(result['std.error'], np.exp(base['estimate']) * base['std.error'])
        assert np.allclose(result['statistic'], base['statistic'])
        assert np.allclose(result['p.value'], base['p.value'])

    def test_transform_interval(self, poisson_fit):
        """Test that interval bounds are transformed too."""
        base = tidy_lm(poisson_fit, confidence_interval=True, confidence_method='wald')
        result = tidy_lm(poisson_fit, confidence_interval=True, confidence_method='wald',
                         transform=True)

        assert np.allclose(result['conf.low'], np.exp(base['conf.low']))
        assert np.allclose(result['conf.high'], np.exp(base['conf.high']))

    def test_transform_logit(self, logit_fit):
        """Test back-transformation through the logit link."""
        base = tidy_lm(logit_fit)
        result = tidy_lm(logit_fit, transform=True)

        assert np.allclose(result['estimate'], 1.0 / (1.0 + np.exp(-base['estimate'])))

    def test_exponentiate_is_deprecated(self, poisson_fit):
        """Test that the old option name still works but warns."""
        with pytest.warns(DeprecatedOptionWarning):
            result = tidy_lm(poisson_fit, exponentiate=True)

        assert np.allclose(result['estimate'], np.exp(poisson_fit.params.values))

    def test_profile_interval(self, poisson_fit):
        """Test likelihood profile intervals on a Poisson model."""
        profile = tidy_lm(poisson_fit, confidence_interval=True, confidence_method='profile')
        wald = tidy_lm(poisson_fit, confidence_interval=True, confidence_method='wald')

        assert np.all(np.isfinite(profile[['conf.low', 'conf.high']].values))
        assert np.all(profile['conf.low'] < profile['estimate'])
        assert np.all(profile['estimate'] < profile['conf.high'])

        # Close to the Wald interval for moderate counts
        tolerance = 0.5 * profile['std.error'].values
        assert np.all(np.abs(profile['conf.low'].values - wald['conf.low'].values) < tolerance)
        assert np.all(np.abs(profile['conf.high'].values - wald['conf.high'].values) < tolerance)

    def test_link_and_dispersion(self, poisson_fit, cars):
        """Test link detection and the known-dispersion flag."""
        fit = as_fitted_model(poisson_fit)

        assert isinstance(fit, GeneralizedLinearFit)
        assert fit.kind is ModelKind.GENERALIZED_LINEAR
        assert fit.link is not None
        assert fit.known_dispersion

        gaussian = as_fitted_model(smf.glm("mpg ~ wt", data=cars).fit())
        assert gaussian.link is None
        assert not gaussian.known_dispersion


class TestTidyMultiResponse:
    """Tests for tidy_lm on multi-response models."""

    def test_response_column(self, two_responses):
        """Test that each response contributes its own block of rows."""
        result = tidy_lm(two_responses)

        assert list(result.columns) == ['response'] + COEFFICIENT_COLUMNS
        assert len(result) == 4
        assert list(result['response']) == ['mpg', 'mpg', 'qsec', 'qsec']
        assert list(result['term']) == ['Intercept', 'wt', 'Intercept', 'wt']

    def test_quick(self, two_responses):
        """Test quick mode with several responses."""
        result = tidy_lm(two_responses, quick=True)

        assert list(result.columns) == ['response', 'term', 'estimate']

    def test_confidence_interval(self, two_responses):
        """Test intervals for every response."""
        result = tidy_lm(two_responses, confidence_interval=True)
        expected = two_responses['qsec'].conf_int().values

        assert np.allclose(result[result['response'] == 'qsec'][['conf.low', 'conf.high']].values, expected)

    def test_response_prefix_is_stripped(self, two_responses):
        """Test that 'Response ' prefixes are removed from names."""
        renamed = {f"Response {name}": fit for name, fit in two_responses.items()}

        assert list(tidy_lm(renamed)['response'].unique()) == ['mpg', 'qsec']

    def test_augment_and_glance_unsupported(self, two_responses):
        """Test that per-observation and summary tables are undefined."""
        with pytest.raises(UnsupportedOperation):
            augment_lm(two_responses)

        with pytest.raises(UnsupportedOperation):
            glance_lm(two_responses)

    def test_non_linear_member(self, two_responses, poisson_fit):
        """Test that every response must be a linear fit."""
        with pytest.raises(UnsupportedOperation):
            tidy_lm({'mpg': two_responses['mpg'], 'counts': poisson_fit})


class TestAugmentLinear:
    """Tests for augment_lm."""

    def test_training_data(self, ols_fit, cars):
        """Test augmenting the data the model was fitted on."""
        result = augment_lm(ols_fit)

        assert list(result.columns) == list(cars.columns) + LM_AUGMENT_COLUMNS
        assert len(result) == 32
        assert list(result.index) == list(cars.index)
        assert np.allclose(result['.fitted'], ols_fit.fittedvalues.values)
        assert np.allclose(result['.fitted'] + result['.resid'], cars['mpg'])

    def test_leverage_sums_to_rank(self, ols_fit):
        """Test that leverages add up to the number of coefficients."""
        result = augment_lm(ols_fit)

        assert np.isclose(result['.hat'].sum(), 3.0)
        assert np.all(result['.se.fit'] > 0)
        assert np.all(result['.sigma'] > 0)
        assert np.all(result['.cooksd'] >= 0)

    def test_explicit_data(self, ols_fit, cars):
        """Test augmenting a caller-supplied copy of the data."""
        data = cars[['mpg', 'wt']]
        result = augment_lm(ols_fit, data=data)

        assert list(result.columns) == ['mpg', 'wt'] + LM_AUGMENT_COLUMNS

    def test_missing_rows_get_nan(self, cars):
        """Test that rows dropped by the model get missing diagnostics."""
        data = cars.copy()
        data.loc['car1', 'wt'] = np.nan
        fit = smf.ols("mpg ~ wt + qsec", data=data).fit()

        result = augment_lm(fit)

        assert len(result) == 32
        assert np.isnan(result.loc['car1', '.fitted'])
        assert result['.fitted'].notna().sum() == 31

    def test_pearson_residuals(self, ols_fit):
        """Test the Pearson residual option."""
        result = augment_lm(ols_fit, residual_type='pearson')

        assert np.allclose(result['.resid'], ols_fit.resid_pearson)

    def test_invalid_types(self, ols_fit):
        """Test that unknown prediction and residual types are rejected."""
        with pytest.raises(InvalidArgument):
            augment_lm(ols_fit, prediction_type='link')

        with pytest.raises(InvalidArgument):
            augment_lm(ols_fit, residual_type='deviance')

    def test_new_data(self, ols_fit, cars):
        """Test predictions for new observations."""
        new = cars.iloc[:5]
        result = augment_lm(ols_fit, new_data=new)

        assert list(result.columns) == list(cars.columns) + ['.fitted', '.se.fit', '.resid']
        assert np.allclose(result['.fitted'], ols_fit.fittedvalues.values[:5])
        assert np.allclose(result['.resid'], ols_fit.resid.values[:5])

        predicted = ols_fit.get_prediction(new).summary_frame()
        assert np.allclose(result['.se.fit'], predicted['mean_se'])

    def test_new_data_without_response(self, ols_fit, cars):
        """Test that residuals are omitted when the response is absent."""
        new = cars[['wt', 'qsec']].iloc[:5]
        result = augment_lm(ols_fit, new_data=new)

        assert list(result.columns) == ['wt', 'qsec', '.fitted', '.se.fit']

    def test_new_data_categorical_interaction(self, cars):
        """Test predictions when the formula expands factors and interactions."""
        fit = smf.ols("mpg ~ wt * C(am) + I(qsec ** 2)", data=cars).fit()
        result = augment_lm(fit, new_data=cars.iloc[:6])

        assert np.allclose(result['.fitted'], fit.fittedvalues.values[:6])
        assert np.allclose(result['.fitted'], fit.predict(cars.iloc[:6]))

    def test_design_from_model_spec(self, cars):
        """Test that a design stored as ``model_spec`` is re-evaluated on new data."""
        design = patsy.dmatrix("wt + C(am)", cars).design_info
        results = SimpleNamespace(model=SimpleNamespace(
            exog_names=design.column_names,
            data=SimpleNamespace(model_spec=design),
        ))

        matrix = design_matrix(results, cars.iloc[:4])

        assert set(matrix.columns) == {'Intercept', 'C(am)[T.1]', 'wt'}
        assert list(matrix.index) == list(cars.index[:4])
        assert np.allclose(matrix['C(am)[T.1]'], cars['am'].iloc[:4])

    def test_array_model(self, cars):
        """Test augmenting a model fitted on arrays."""
        fit = sm.OLS(cars['mpg'], sm.add_constant(cars[['wt', 'qsec']])).fit()
        result = augment_lm(fit)

        assert list(result.columns) == ['mpg', 'wt', 'qsec'] + LM_AUGMENT_COLUMNS
        assert np.allclose(result['mpg'], cars['mpg'])

        predicted = augment_lm(fit, new_data=cars[['wt', 'qsec']].iloc[:3])
        assert np.allclose(predicted['.fitted'], fit.fittedvalues.values[:3])


class TestAugmentGeneralizedLinear:
    """Tests for augment_lm on generalized linear models."""

    def test_columns(self, logit_fit, cars):
        """Test that GLMs omit the leave-one-out sigma."""
        result = augment_lm(logit_fit)

        expected = ['.fitted', '.se.fit', '.resid', '.hat', '.cooksd', '.std.resid']
        assert list(result.columns) == list(cars.columns) + expected
        assert np.isclose(result['.hat'].sum(), 2.0)

    def test_link_scale_by_default(self, logit_fit):
        """Test that predictions default to the link scale."""
        result = augment_lm(logit_fit)
        mu = logit_fit.fittedvalues.values

        assert np.allclose(result['.fitted'], np.log(mu / (1 - mu)))
        assert np.allclose(result['.resid'], logit_fit.resid_deviance)

    def test_response_scale(self, logit_fit):
        """Test response-scale predictions and delta-method standard errors."""
        link = augment_lm(logit_fit)
        response = augment_lm(logit_fit, prediction_type='response')
        mu = logit_fit.fittedvalues.values

        assert np.allclose(response['.fitted'], mu)
        assert np.allclose(response['.se.fit'], mu * (1 - mu) * link['.se.fit'])

    @pytest.mark.parametrize("residual_type", ['deviance', 'pearson', 'response', 'working', 'anscombe'])
    def test_residual_types(self, poisson_fit, residual_type):
        """Test every GLM residual flavour."""
        result = augment_lm(poisson_fit, residual_type=residual_type)

        expected = getattr(poisson_fit, f"resid_{residual_type}")
        assert np.allclose(result['.resid'], expected)

    def test_new_data_residuals_on_response_scale(self, logit_fit, cars):
        """Test that new-data residuals use the response scale with link predictions."""
        result = augment_lm(logit_fit, new_data=cars)
        mu = logit_fit.predict(cars).values

        assert np.allclose(result['.fitted'], np.log(mu / (1 - mu)))
        assert np.allclose(result['.resid'], cars['am'] - mu)
        assert np.all(np.abs(result['.resid']) < 1)

    def test_new_data(self, poisson_fit, counts):
        """Test GLM predictions for new observations."""
        result = augment_lm(poisson_fit, new_data=counts, prediction_type='response')

        assert np.allclose(result['.fitted'], poisson_fit.fittedvalues.values)
        assert np.allclose(result['.resid'], counts['counts'] - poisson_fit.fittedvalues.values)


class TestGlance:
    """Tests for glance_lm."""

    def test_linear(self, ols_fit):
        """Test the one-row summary of a linear model."""
        result = glance_lm(ols_fit)

        assert len(result) == 1
        assert list(result.columns) == ['r.squared', 'adj.r.squared', 'sigma', 'statistic', 'p.value',
                                        'df', 'logLik', 'AIC', 'BIC', 'deviance', 'df.residual']
        row = result.iloc[0]
        assert row['df'] == 3
        assert row['df.residual'] == 29
        assert np.isclose(row['r.squared'], ols_fit.rsquared)
        assert np.isclose(row['adj.r.squared'], 1 - (1 - row['r.squared']) * 31 / 29)
        assert np.isclose(row['sigma'], np.sqrt(ols_fit.scale))
        assert np.isclose(row['p.value'], stats.f.sf(row['statistic'], 2, 29))
        assert np.isclose(row['deviance'], ols_fit.ssr)
        assert np.isclose(row['logLik'], ols_fit.llf)

    def test_intercept_only(self, cars):
        """Test that the F statistic is missing without predictors."""
        fit = smf.ols("mpg ~ 1", data=cars).fit()
        row = glance_lm(fit).iloc[0]

        assert row['df'] == 1
        assert np.isnan(row['statistic'])
        assert np.isnan(row['p.value'])

    def test_generalized_linear(self, poisson_fit):
        """Test the one-row summary of a GLM."""
        result = glance_lm(poisson_fit)

        assert list(result.columns) == ['null.deviance', 'df.null', 'logLik', 'AIC', 'BIC',
                                        'deviance', 'df.residual']
        row = result.iloc[0]
        assert row['df.null'] == 8
        assert row['df.residual'] == 6
        assert np.isclose(row['deviance'], poisson_fit.deviance)
        assert np.isclose(row['null.deviance'], poisson_fit.null_deviance)
        assert row['null.deviance'] >= row['deviance']
