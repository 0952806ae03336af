"""
Generic ``tidy``, ``augment`` and ``glance`` entry points.

The model is wrapped once by ``as_fitted_model`` and the call is routed on
its ``ModelKind``.
"""

import logging
from typing import Any, Optional

import pandas as pd

from modeltidy.errors import UnsupportedOperation
from modeltidy.models import ModelKind, as_fitted_model
from modeltidy.tidiers.lm import augment_lm, glance_lm, tidy_lm
from modeltidy.tidiers.mixed import augment_mixed, glance_mixed, tidy_mixed
from modeltidy.tidiers.pca import augment_pca, tidy_pca

logger = logging.getLogger(__name__)

TIDIERS = {
    ModelKind.PCA: tidy_pca,
    ModelKind.LINEAR: tidy_lm,
    ModelKind.GENERALIZED_LINEAR: tidy_lm,
    ModelKind.MULTI_RESPONSE_LINEAR: tidy_lm,
    ModelKind.MIXED: tidy_mixed,
}

AUGMENTERS = {
    ModelKind.PCA: augment_pca,
    ModelKind.LINEAR: augment_lm,
    ModelKind.GENERALIZED_LINEAR: augment_lm,
    ModelKind.MULTI_RESPONSE_LINEAR: augment_lm,
    ModelKind.MIXED: augment_mixed,
}

GLANCERS = {
    ModelKind.LINEAR: glance_lm,
    ModelKind.GENERALIZED_LINEAR: glance_lm,
    ModelKind.MULTI_RESPONSE_LINEAR: glance_lm,
    ModelKind.MIXED: glance_mixed,
}


def _dispatch(table, operation: str, model: Any, data: Any = None, group_name: Optional[str] = None):
    fit = as_fitted_model(model, data=data, group_name=group_name)
    func = table.get(fit.kind)
    if func is None:
        raise UnsupportedOperation(f"{operation} is not defined for {fit.kind.value} models")
    logger.debug(f"{operation} dispatched to {func.__name__}")
    return fit, func


def tidy(model: Any, **options) -> pd.DataFrame:
    """
    Tidy any supported model; options are passed to the family's tidier.

    A scikit-learn PCA needs its training data as ``data=``.
    """
    fit, func = _dispatch(TIDIERS, 'tidy', model, options.pop('data', None), options.pop('group_name', None))
    return func(fit, **options)


def augment(model: Any, data: Any = None, new_data: Any = None, **options) -> pd.DataFrame:
    """Augment data with per-observation results of any supported model."""
    fit, func = _dispatch(AUGMENTERS, 'augment', model, data, options.pop('group_name', None))
    return func(fit, data=data, new_data=new_data, **options)


def glance(model: Any, **options) -> pd.DataFrame:
    """One-row summary of any supported model except PCA."""
    fit, func = _dispatch(GLANCERS, 'glance', model, group_name=options.pop('group_name', None))
    return func(fit, **options)
