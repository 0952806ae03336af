"""
Model adapters and the entry point that selects one for a fitted model.

``as_fitted_model`` is the only place that inspects the type of an incoming
model object; everything downstream works with the tagged adapter.
"""

import logging
from collections.abc import Mapping
from typing import Any, Optional

from sklearn.decomposition import PCA
from statsmodels.genmod.generalized_linear_model import GLMResults
from statsmodels.regression.linear_model import RegressionResults
from statsmodels.regression.mixed_linear_model import MixedLMResults

from modeltidy.errors import UnsupportedOperation
from modeltidy.models.base import FittedModel, ModelKind
from modeltidy.models.pca import PCAFit
from modeltidy.models.linear import LinearFit, GeneralizedLinearFit, MultiResponseLinearFit
from modeltidy.models.mixed import MixedFit

logger = logging.getLogger(__name__)


def as_fitted_model(model: Any, data: Any = None, group_name: Optional[str] = None) -> FittedModel:
    """
    Wrap a fitted model in the adapter for its family.

    Args:
        model: Fitted model object, or an adapter (returned unchanged)
        data: Training data, needed for a scikit-learn PCA
        group_name: Name of the grouping factor of a mixed model

    Returns:
        Model adapter tagged with its ``ModelKind``
    """
    if isinstance(model, FittedModel):
        return model

    if isinstance(model, PCA):
        return PCAFit.from_sklearn(model, data)

    if isinstance(model, Mapping):
        return MultiResponseLinearFit(model)

    # statsmodels hands back results wrappers around the actual results
    results = getattr(model, '_results', model)

    if isinstance(results, MixedLMResults):
        return MixedFit(model, group_name=group_name)
    if isinstance(results, GLMResults):
        return GeneralizedLinearFit(model)
    if isinstance(results, RegressionResults):
        return LinearFit(model)

    raise UnsupportedOperation(f"Don't know how to tidy a {type(model).__name__}")


__all__ = [
    'ModelKind',
    'FittedModel',
    'PCAFit',
    'LinearFit',
    'GeneralizedLinearFit',
    'MultiResponseLinearFit',
    'MixedFit',
    'as_fitted_model',
]
