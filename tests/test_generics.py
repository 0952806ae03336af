"""
Tests for the generic tidy, augment and glance entry points.
"""

import pytest
import numpy as np
import pandas as pd
import sys
import os
from sklearn.decomposition import PCA

# Add the parent directory to the path to import the module
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

import modeltidy
from modeltidy.errors import UnsupportedOperation
from modeltidy.models import (
    GeneralizedLinearFit,
    LinearFit,
    MixedFit,
    ModelKind,
    MultiResponseLinearFit,
    PCAFit,
    as_fitted_model,
)


class TestAsFittedModel:
    """Tests for model adapter selection."""

    def test_kinds(self, ols_fit, poisson_fit, slopes_results, arrests):
        """Test that each family gets its adapter."""
        assert isinstance(as_fitted_model(ols_fit), LinearFit)
        assert as_fitted_model(ols_fit).kind is ModelKind.LINEAR
        assert isinstance(as_fitted_model(poisson_fit), GeneralizedLinearFit)
        assert isinstance(as_fitted_model(slopes_results), MixedFit)
        assert isinstance(as_fitted_model({'mpg': ols_fit}), MultiResponseLinearFit)
        assert isinstance(as_fitted_model(PCA().fit(arrests.values), data=arrests), PCAFit)

    def test_adapter_passthrough(self, ols_fit):
        """Test that adapters are returned unchanged."""
        fit = as_fitted_model(ols_fit)

        assert as_fitted_model(fit) is fit

    def test_unknown_object(self):
        """Test that unsupported objects are rejected."""
        with pytest.raises(UnsupportedOperation):
            as_fitted_model('not a model')

    def test_group_name(self, slopes_results):
        """Test passing the grouping factor name."""
        assert as_fitted_model(slopes_results, group_name='Subject').group_name == 'Subject'


class TestGenerics:
    """Tests for dispatch through the generic functions."""

    def test_tidy(self, ols_fit, poisson_fit, arrests):
        """Test tidy on several model kinds."""
        pd.testing.assert_frame_equal(modeltidy.tidy(ols_fit), modeltidy.tidy_lm(ols_fit))
        pd.testing.assert_frame_equal(modeltidy.tidy(poisson_fit, transform=True),
                                      modeltidy.tidy_lm(poisson_fit, transform=True))

        fit = modeltidy.prcomp(arrests)
        pd.testing.assert_frame_equal(modeltidy.tidy(fit, mode='pcs'),
                                      modeltidy.tidy_pca(fit, mode='pcs'))

    def test_tidy_sklearn_pca(self, arrests):
        """Test passing training data through tidy."""
        pca = PCA().fit(arrests.values)
        result = modeltidy.tidy(pca, data=arrests, mode='components')

        assert len(result) == 4
        assert np.isclose(result['cumulative'].iloc[-1], 1.0)

    def test_tidy_mixed(self, slopes_results):
        """Test tidy on a mixed model with a named grouping factor."""
        result = modeltidy.tidy(slopes_results, group_name='Subject', effects='ran_pars')

        assert result['term'].iloc[0] == 'sd_Intercept.Subject'

    def test_augment(self, ols_fit, slopes_fit, arrests):
        """Test augment on several model kinds."""
        pd.testing.assert_frame_equal(modeltidy.augment(ols_fit), modeltidy.augment_lm(ols_fit))
        pd.testing.assert_frame_equal(modeltidy.augment(slopes_fit), modeltidy.augment_mixed(slopes_fit))

        fit = modeltidy.prcomp(arrests)
        result = modeltidy.augment(fit, data=arrests)
        assert '.fittedPC1' in result.columns

    def test_glance(self, ols_fit, intercept_fit):
        """Test glance on linear and mixed models."""
        pd.testing.assert_frame_equal(modeltidy.glance(ols_fit), modeltidy.glance_lm(ols_fit))
        pd.testing.assert_frame_equal(modeltidy.glance(intercept_fit), modeltidy.glance_mixed(intercept_fit))

    def test_glance_pca_unsupported(self, arrests):
        """Test that PCA has no one-row summary."""
        with pytest.raises(UnsupportedOperation):
            modeltidy.glance(modeltidy.prcomp(arrests))

    def test_unknown_model(self):
        """Test that unsupported objects are rejected by every generic."""
        for func in (modeltidy.tidy, modeltidy.augment, modeltidy.glance):
            with pytest.raises(UnsupportedOperation):
                func(42)
