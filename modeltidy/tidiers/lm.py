"""
Tidiers for linear and generalized linear models.

These functions tidy the coefficients of a linear model into a summary,
augment the original data with information on the fitted values and
residuals, and construct a one-row glance of the model's statistics.

``tidy_lm`` is defined for single- and multi-response fits; ``augment_lm``
and ``glance_lm`` only for single-response fits.
"""

import logging
import numpy as np
import pandas as pd
from typing import Any, Optional

from modeltidy.components.config import get_option
from modeltidy.errors import (
    DeprecatedOptionWarning,
    InvalidArgument,
    NoOpTransformWarning,
    UnsupportedOperation,
    warn,
)
from modeltidy.models import FittedModel, LinearFit, ModelKind, as_fitted_model
from modeltidy.utils.general import augment_columns, finish_glance, fix_data_frame

logger = logging.getLogger(__name__)

LM_KINDS = (ModelKind.LINEAR, ModelKind.GENERALIZED_LINEAR, ModelKind.MULTI_RESPONSE_LINEAR)

CONF_METHODS = ('profile', 'wald')


def as_linear_fit(model: Any) -> FittedModel:
    fit = as_fitted_model(model)
    if fit.kind not in LM_KINDS:
        raise UnsupportedOperation(f"Expected a linear model, got {fit.kind.value}")
    return fit


def require_single_response(fit: FittedModel, operation: str) -> LinearFit:
    if fit.kind is ModelKind.MULTI_RESPONSE_LINEAR:
        raise UnsupportedOperation(f"{operation} does not support multiple responses")
    return fit


def resolve_conf_level(confidence_level: Optional[float]) -> float:
    level = get_option('tidy.conf-level', confidence_level)
    try:
        level = float(level)
    except (TypeError, ValueError):
        raise InvalidArgument(f"Confidence level must be a number, got {level!r}")
    if not 0 < level < 1:
        raise InvalidArgument(f"Confidence level must be in (0, 1), got {level}")
    return level


def resolve_conf_method(confidence_method: Optional[str], default_path: str) -> str:
    method = str(get_option(default_path, confidence_method)).lower()
    if method not in CONF_METHODS:
        raise InvalidArgument(f"Unknown confidence method {method!r}; expected 'profile' or 'wald'")
    return method


def resolve_choice(value: Optional[str], choices, default: str, what: str) -> str:
    value = default if value is None else str(value).lower()
    if value not in choices:
        raise InvalidArgument(f"Unknown {what} {value!r}; expected one of {list(choices)}")
    return value


def back_transform(ret: pd.DataFrame, fit: FittedModel) -> pd.DataFrame:
    """
    Back-transform estimates and bounds through the inverse link.

    Standard errors are rescaled by the derivative of the inverse link at
    the untransformed estimate (first-order delta method).
    """
    link = fit.link
    if link is None:
        warn("transform requested, but the model does not use a non-identity link function",
             NoOpTransformWarning, stacklevel=4)
        return ret

    ret = ret.copy()
    eta = ret['estimate'].to_numpy(dtype=float)
    if 'std.error' in ret.columns:
        ret['std.error'] = np.abs(link.inverse_deriv(eta)) * ret['std.error'].to_numpy(dtype=float)
    for name in ('conf.low', 'conf.high'):
        if name in ret.columns:
            ret[name] = link.inverse(ret[name].to_numpy(dtype=float))
    ret['estimate'] = link.inverse(eta)
    return ret


def _finish_coefficients(ret: pd.DataFrame, fit: LinearFit,
                         conf_level: Optional[float] = None,
                         conf_method: Optional[str] = None,
                         transform: bool = False) -> pd.DataFrame:
    """
    Add a confidence interval to a tidied coefficient table and back-transform it.

    Args:
        ret: Table with ``term`` and ``estimate`` columns (and possibly more)
        fit: Single-response linear model adapter
        conf_level: Interval level, or None for no interval
        conf_method: 'profile' or 'wald'
        transform: Whether to apply the inverse link

    Returns:
        Finished table
    """
    if conf_level is not None:
        ci = fit.conf_int(conf_level, conf_method)
        ret = ret.copy()
        ret['conf.low'] = ci['conf.low'].to_numpy(dtype=float)
        ret['conf.high'] = ci['conf.high'].to_numpy(dtype=float)

    if transform:
        ret = back_transform(ret, fit)
    return ret


def _tidy_quick(fit: LinearFit, transform: bool) -> pd.DataFrame:
    ret = fix_data_frame(fit.coefficients(), newnames=['estimate'])
    return _finish_coefficients(ret, fit, transform=transform)


def _tidy_full(fit: LinearFit, conf_level: Optional[float], conf_method: Optional[str],
               transform: bool) -> pd.DataFrame:
    ret = fix_data_frame(fit.coefficient_table())
    return _finish_coefficients(ret, fit, conf_level, conf_method, transform)


def tidy_lm(model: Any,
            confidence_interval: bool = False,
            confidence_level: Optional[float] = None,
            confidence_method: Optional[str] = None,
            transform: bool = False,
            quick: bool = False,
            exponentiate: Optional[bool] = None) -> pd.DataFrame:
    """
    Tidy the coefficients of a linear or generalized linear model.

    Args:
        model: statsmodels OLS/WLS/GLM results, or a mapping of response name
            to OLS results for a multi-response model
        confidence_interval: Whether to add ``conf.low`` and ``conf.high``
        confidence_level: Interval level (defaults to 0.95)
        confidence_method: 'profile' (the model's own interval; profile
            likelihood for GLMs) or 'wald' (symmetric normal interval)
        transform: Back-transform estimates and bounds through the inverse
            link, rescaling standard errors by the delta method
        quick: Return only ``term`` and ``estimate``
        exponentiate: Deprecated name for ``transform``

    Returns:
        One row per coefficient with ``term``, ``estimate``, ``std.error``,
        ``statistic``, ``p.value`` (and ``response`` first for
        multi-response models)
    """
    if exponentiate is not None:
        warn("the 'exponentiate' argument is deprecated: please use 'transform' instead",
             DeprecatedOptionWarning)
        transform = bool(exponentiate)

    conf_level = conf_method = None
    if confidence_interval and not quick:
        conf_level = resolve_conf_level(confidence_level)
        conf_method = resolve_conf_method(confidence_method, 'tidy.lm-conf-method')

    fit = as_linear_fit(model)
    logger.debug(f"tidy_lm kind={fit.kind.value} quick={quick} conf_level={conf_level} "
                 f"method={conf_method} transform={transform}")

    if fit.kind is ModelKind.MULTI_RESPONSE_LINEAR:
        frames = []
        for response, sub in fit.fits.items():
            if quick:
                ret = _tidy_quick(sub, transform)
            else:
                ret = _tidy_full(sub, conf_level, conf_method, transform)
            ret.insert(0, 'response', response)
            frames.append(ret)
        return pd.concat(frames, ignore_index=True)

    if quick:
        return _tidy_quick(fit, transform)
    return _tidy_full(fit, conf_level, conf_method, transform)


def augment_lm(model: Any,
               data: Optional[pd.DataFrame] = None,
               new_data: Optional[pd.DataFrame] = None,
               prediction_type: Optional[str] = None,
               residual_type: Optional[str] = None) -> pd.DataFrame:
    """
    Augment data with fitted values, residuals and influence measures.

    Without ``new_data`` the training data (or ``data``) gets ``.fitted``,
    ``.se.fit``, ``.resid``, ``.hat``, ``.sigma``, ``.cooksd`` and
    ``.std.resid``; GLMs omit ``.sigma``. With ``new_data`` only
    ``.fitted``, ``.se.fit`` and, when the response is present, ``.resid``
    are added.

    Args:
        model: statsmodels OLS/WLS/GLM results
        data: Original data, defaults to the data the model was fitted on
        new_data: If provided, predictions are made for these observations
        prediction_type: 'response' or, for GLMs, 'link' (the GLM default)
        residual_type: Residual flavour; for GLMs 'deviance' (default),
            'pearson', 'response', 'working' or 'anscombe'

    Returns:
        Augmented DataFrame
    """
    fit = require_single_response(as_linear_fit(model), 'augment')
    prediction_type = resolve_choice(prediction_type, fit.prediction_types,
                                     fit.default_prediction_type, 'prediction type')
    residual_type = resolve_choice(residual_type, fit.residual_types,
                                   fit.default_residual_type, 'residual type')

    if new_data is not None:
        fitted, se_fit, index = fit.predict(new_data, prediction_type)
        columns = {'.fitted': fitted, '.se.fit': se_fit}
        response = fit.new_data_response(new_data)
        if response is not None:
            # Residuals are always on the response scale
            mu = fitted if prediction_type == 'response' else fit.predict(new_data, 'response')[0]
            columns['.resid'] = response - mu
        base = new_data if isinstance(new_data, pd.DataFrame) else None
        return augment_columns(base, columns, index=index)

    fitted, se_fit, index = fit.predict(None, prediction_type)
    columns = {'.fitted': fitted, '.se.fit': se_fit, '.resid': fit.residuals(residual_type)}
    columns.update(fit.influence())
    columns = {name: columns[name] for name in fit.augment_columns}

    base = data if data is not None else fit.training_frame()
    return augment_columns(base, columns, index=index)


def glance_lm(model: Any) -> pd.DataFrame:
    """
    Construct a one-row summary of a linear or generalized linear model.

    Linear models report ``r.squared``, ``adj.r.squared``, ``sigma``,
    ``statistic``, ``p.value`` and ``df``; GLMs report ``null.deviance``
    and ``df.null``. Both finish with ``logLik``, ``AIC``, ``BIC``,
    ``deviance`` and ``df.residual``.
    """
    fit = require_single_response(as_linear_fit(model), 'glance')
    return finish_glance(fit.glance_row(), fit)
