"""
Tidiers for linear mixed-effects models.

These methods tidy the fixed effects, the random-effect variance parameters
and the conditional modes of a mixed model into one long table, augment
data with fitted values, and construct a one-row glance of the fit.
"""

import logging
import numpy as np
import pandas as pd
from scipy import stats
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

from modeltidy.components.config import get_option
from modeltidy.errors import InvalidArgument, UnsupportedConfidenceMethod, UnsupportedOperation
from modeltidy.models import MixedFit, ModelKind, as_fitted_model
from modeltidy.models.mixed import VarianceTerm
from modeltidy.tidiers.lm import resolve_choice, resolve_conf_level, resolve_conf_method
from modeltidy.utils.general import augment_columns, bind_rows, finish_glance, fix_data_frame

logger = logging.getLogger(__name__)

EFFECT_NAMES = ('fixed', 'ran_pars', 'ran_modes')

SCALE_ALIASES = {'sdcor': 'sdcor', 'varcov': 'varcov', 'vcov': 'varcov'}

RAN_PREFIXES = {'sdcor': ('sd', 'cor'), 'varcov': ('var', 'cov')}

COLUMN_ORDER = ('group', 'level', 'term', 'estimate', 'std.error',
                'statistic', 'p.value', 'conf.low', 'conf.high')


def as_mixed_fit(model: Any) -> MixedFit:
    fit = as_fitted_model(model)
    if fit.kind is not ModelKind.MIXED:
        raise UnsupportedOperation(f"Expected a mixed-effects model, got {fit.kind.value}")
    return fit


def check_component(component: Union[str, Sequence[str]]) -> None:
    if not isinstance(component, str):
        component = list(component)
        if len(component) != 1:
            raise UnsupportedOperation("only works for the conditional component")
        component = component[0]
    if component != 'cond':
        raise UnsupportedOperation("only works for the conditional component")


def resolve_effects(effects: Union[str, Sequence[str]]) -> List[str]:
    effects = [effects] if isinstance(effects, str) else list(effects)
    if not effects:
        raise InvalidArgument("At least one effect type must be requested")
    unknown = [e for e in effects if e not in EFFECT_NAMES]
    if unknown:
        raise InvalidArgument(f"unknown effect type {unknown}; expected {list(EFFECT_NAMES)}")
    return effects


def resolve_scale(scales: Union[None, str, Sequence[Optional[str]]], effects: List[str]) -> str:
    """
    Scale for the random-effect parameters.

    ``scales`` is None, a single name, or one entry per requested effect
    (None for effects that take no scale).
    """
    if scales is None or isinstance(scales, str):
        rscale = scales
    else:
        scales = list(scales)
        if len(scales) != len(effects):
            raise InvalidArgument("if scales are specified, values (or None) must be provided for each effect")
        rscale = scales[effects.index('ran_pars')] if 'ran_pars' in effects else None

    rscale = get_option('tidy.ran-pars-scale', rscale)
    key = str(rscale).lower()
    if key not in SCALE_ALIASES:
        raise InvalidArgument(f"unrecognized ran_pars scale {rscale!r}")
    return SCALE_ALIASES[key]


def resolve_prefix(ran_prefix: Any, rscale: str) -> Optional[Tuple[str, str]]:
    if ran_prefix is None:
        return RAN_PREFIXES[rscale]
    if ran_prefix is False:
        return None
    prefixes = tuple(ran_prefix)
    if len(prefixes) != 2 or not all(isinstance(p, str) for p in prefixes):
        raise InvalidArgument("ran_prefix must be a pair of strings (self term, cross term)")
    return prefixes


def ran_pars_label(term: VarianceTerm, prefixes: Optional[Tuple[str, str]]) -> str:
    variables = term.variables or ('Observation',)
    label = '.'.join(variables)
    if prefixes is not None:
        label = f"{prefixes[len(variables) - 1]}_{label}"
    return f"{label}.{term.group}"


def _tidy_fixed(fit: MixedFit, conf_level: Optional[float], conf_method: Optional[str],
                with_group: bool) -> pd.DataFrame:
    ret = fix_data_frame(fit.coefficient_table())
    if conf_level is not None:
        ci = fit.fixed_conf_int(conf_level, conf_method)
        ret['conf.low'] = ci['conf.low'].to_numpy(dtype=float)
        ret['conf.high'] = ci['conf.high'].to_numpy(dtype=float)
    if with_group:
        ret['group'] = 'fixed'
    return ret


def _tidy_ran_pars(fit: MixedFit, rscale: str, prefixes: Optional[Tuple[str, str]],
                   conf_level: Optional[float], conf_method: Optional[str]) -> pd.DataFrame:
    terms = fit.variance_terms()

    # Standard deviations used to turn covariances into correlations
    sds: Dict[Tuple[str, str], float] = {}
    for term in terms:
        if not term.is_cross:
            sds[(term.group, term.variables[0] if term.variables else '')] = np.sqrt(max(term.variance, 0.0))

    def to_scale(term: VarianceTerm, value: float) -> float:
        if rscale == 'varcov' or not np.isfinite(value):
            return value
        if term.is_cross:
            denom = sds[(term.group, term.variables[0])] * sds[(term.group, term.variables[1])]
            return value / denom if denom > 0 else np.nan
        return np.sqrt(max(value, 0.0))

    rows = []
    for term in terms:
        row = {
            'term': ran_pars_label(term, prefixes),
            'group': term.group,
            'estimate': to_scale(term, term.variance),
        }
        if conf_level is not None:
            if conf_method == 'profile':
                low, high = fit.variance_profile_interval(term, conf_level)
            else:
                mult = stats.norm.ppf((1 + conf_level) / 2)
                low = term.variance - mult * term.std_error
                high = term.variance + mult * term.std_error
            row['conf.low'] = to_scale(term, low)
            row['conf.high'] = to_scale(term, high)
        rows.append(row)

    return pd.DataFrame(rows)


def _tidy_ran_modes(fit: MixedFit, conf_level: Optional[float]) -> pd.DataFrame:
    rows = [
        {'group': fit.group_name, 'level': level, 'term': term, 'estimate': estimate, 'std.error': se}
        for level, term, estimate, se in fit.conditional_modes()
    ]
    ret = pd.DataFrame(rows, columns=['group', 'level', 'term', 'estimate', 'std.error'])

    if conf_level is not None:
        mult = stats.norm.ppf((1 + conf_level) / 2)
        ret['conf.low'] = ret['estimate'] - mult * ret['std.error']
        ret['conf.high'] = ret['estimate'] + mult * ret['std.error']
    return ret


def tidy_mixed(model: Any,
               effects: Union[str, Sequence[str]] = ('ran_pars', 'fixed'),
               component: Union[str, Sequence[str]] = 'cond',
               scales: Union[None, str, Sequence[Optional[str]]] = None,
               ran_prefix: Any = None,
               confidence_interval: bool = False,
               confidence_level: Optional[float] = None,
               confidence_method: Optional[str] = None) -> pd.DataFrame:
    """
    Tidy the effects of a linear mixed-effects model.

    Args:
        model: statsmodels MixedLM results (or a MixedFit adapter)
        effects: One or more of 'fixed' (fixed-effect parameters), 'ran_pars'
            (standard deviations and correlations, or variances and
            covariances, of the random effects) and 'ran_modes' (conditional
            modes)
        component: Sub-model to extract; only 'cond' is available
        scales: 'sdcor' (default) or 'varcov' for the random-effect
            parameters; a single name or one entry per effect
        ran_prefix: Pair of prefixes for self and cross terms, or False for
            bare labels
        confidence_interval: Whether to add ``conf.low`` and ``conf.high``
        confidence_level: Interval level (defaults to 0.95)
        confidence_method: 'wald' (default) or 'profile'; conditional modes
            only support 'wald'

    Returns:
        One row per estimated effect with a leading ``effect`` column; fixed
        effects come first, then random-effect parameters, then modes
    """
    check_component(component)
    effects = resolve_effects(effects)
    rscale = resolve_scale(scales, effects)
    prefixes = resolve_prefix(ran_prefix, rscale)

    conf_level = conf_method = None
    if confidence_interval:
        conf_level = resolve_conf_level(confidence_level)
        conf_method = resolve_conf_method(confidence_method, 'tidy.mixed-conf-method')
        if 'ran_modes' in effects and conf_method != 'wald':
            raise UnsupportedConfidenceMethod("only Wald CIs available for conditional modes")

    fit = as_mixed_fit(model)
    logger.debug(f"tidy_mixed effects={effects} scale={rscale} conf_level={conf_level} method={conf_method}")

    frames, ids = [], []
    random_requested = 'ran_pars' in effects or 'ran_modes' in effects
    if 'fixed' in effects:
        frames.append(_tidy_fixed(fit, conf_level, conf_method, random_requested))
        ids.append('fixed')
    if 'ran_pars' in effects:
        frames.append(_tidy_ran_pars(fit, rscale, prefixes, conf_level, conf_method))
        ids.append('ran_pars')
    if 'ran_modes' in effects:
        frames.append(_tidy_ran_modes(fit, conf_level))
        ids.append('ran_modes')

    return bind_rows(frames, COLUMN_ORDER, id_column='effect', ids=ids)


def augment_mixed(model: Any,
                  data: Optional[pd.DataFrame] = None,
                  new_data: Optional[pd.DataFrame] = None,
                  prediction_type: Optional[str] = None,
                  residual_type: Optional[str] = None,
                  include_se: bool = True) -> pd.DataFrame:
    """
    Augment data with predictions from a mixed-effects model.

    Adds ``.fitted`` (fixed plus random effects), ``.resid``, ``.fixed``
    (fixed effects only) and, with ``include_se``, ``.se.fit`` (standard
    error of the fixed-effect part). For ``new_data`` the residual is added
    only when the response column is present.

    Args:
        model: statsmodels MixedLM results
        data: Original data, defaults to the data the model was fitted on
        new_data: New observations to predict
        prediction_type: 'response'
        residual_type: 'response' (default) or 'pearson'
        include_se: Whether to add ``.se.fit``

    Returns:
        Augmented DataFrame
    """
    fit = as_mixed_fit(model)
    resolve_choice(prediction_type, fit.prediction_types, fit.default_prediction_type, 'prediction type')
    residual_type = resolve_choice(residual_type, fit.residual_types, fit.default_residual_type, 'residual type')

    pred = fit.predict(new_data)
    columns = {'.fitted': pred['fitted']}

    if new_data is None:
        columns['.resid'] = fit.residuals(residual_type)
    else:
        response = fit.new_data_response(new_data)
        if response is not None:
            resid = response - pred['fitted']
            if residual_type == 'pearson':
                resid = resid / np.sqrt(fit.model.scale)
            columns['.resid'] = resid

    columns['.fixed'] = pred['fixed']
    if include_se:
        columns['.se.fit'] = pred['se_fit']

    if new_data is not None:
        base = new_data if isinstance(new_data, pd.DataFrame) else None
    else:
        base = data if data is not None else fit.training_frame()
    return augment_columns(base, columns, index=pred['index'])


def glance_mixed(model: Any) -> pd.DataFrame:
    """
    Construct a one-row summary of a mixed-effects model.

    Columns: ``sigma``, ``logLik``, ``AIC``, ``BIC``, ``deviance`` and
    ``df.residual``.
    """
    fit = as_mixed_fit(model)
    return finish_glance({'sigma': float(np.sqrt(fit.model.scale))}, fit)
