"""
Adapter for statsmodels linear mixed-effects model results.

``MixedFit`` reads fixed effects, random-effect covariance parameters,
conditional modes and predictions from ``MixedLMResults``.
"""

import logging
from typing import Any, Dict, List, Optional, Tuple

import numpy as np
import pandas as pd
from scipy import stats
from statsmodels.regression.mixed_linear_model import MixedLM

from modeltidy.components.config import get_option
from modeltidy.errors import UnsupportedOperation
from modeltidy.math.profile import interpolate_profile, profile_interval
from modeltidy.models.base import FittedModel, ModelKind
from modeltidy.models.linear import as_series, design_matrix, linear_predictor_se

logger = logging.getLogger(__name__)

INTERCEPT_TERM = 'Intercept'


class VarianceTerm:
    """
    One random-effect variance or covariance parameter.

    Attributes:
        group: Grouping factor (``Residual`` for the residual variance)
        variables: One name for a variance, two for a covariance
        variance: Estimate on the variance/covariance scale
        std_error: Standard error on the variance/covariance scale, or NaN
        profile: (vtype, index) for terms that can be profiled, else None
    """

    def __init__(self, group: str, variables: Tuple[str, ...], variance: float,
                 std_error: float = np.nan, profile: Optional[Tuple[str, int]] = None):
        self.group = group
        self.variables = variables
        self.variance = variance
        self.std_error = std_error
        self.profile = profile

    @property
    def is_cross(self) -> bool:
        return len(self.variables) == 2

    def __repr__(self) -> str:
        return f"VarianceTerm({self.group!r}, {self.variables!r}, {self.variance:.4g})"


class MixedFit(FittedModel):
    """
    Adapter for statsmodels ``MixedLMResults``.

    statsmodels does not record the name of the grouping column, so it is
    recovered from the random intercept label used by formula fits, or can
    be given explicitly.
    """

    kind = ModelKind.MIXED
    augment_columns = ('.fitted', '.resid', '.fixed', '.se.fit')
    new_data_columns = ('.fitted', '.resid', '.fixed', '.se.fit')
    prediction_types = ('response',)
    residual_types = ('response', 'pearson')
    default_prediction_type = 'response'
    default_residual_type = 'response'

    def __init__(self, model: Any, group_name: Optional[str] = None):
        super().__init__(model)
        self._group_name = group_name

    @property
    def lmm(self):
        return self.model.model

    @property
    def k_fe(self) -> int:
        return int(self.lmm.k_fe)

    @property
    def k_re(self) -> int:
        return int(self.lmm.k_re)

    @property
    def k_vc(self) -> int:
        return int(getattr(self.lmm, 'k_vc', 0))

    @property
    def nobs(self) -> int:
        return int(self.model.nobs)

    @property
    def fixed_names(self) -> List[str]:
        return [str(name) for name in list(self.lmm.exog_names)[:self.k_fe]]

    @property
    def response_name(self) -> str:
        return str(self.lmm.endog_names)

    @property
    def raw_re_names(self) -> List[str]:
        cov_re = self.model.cov_re
        if isinstance(cov_re, pd.DataFrame):
            return [str(name) for name in cov_re.index]
        names = getattr(self.lmm.data, 'exog_re_names', None)
        if names is not None:
            return [str(name) for name in names]
        return [f"Z{k + 1}" for k in range(self.k_re)]

    @property
    def has_random_intercept(self) -> bool:
        exog_re = np.asarray(self.lmm.exog_re, dtype=float)
        return exog_re.shape[1] > 0 and np.allclose(exog_re[:, 0], 1.0)

    @property
    def group_name(self) -> str:
        if self._group_name is not None:
            return self._group_name
        first = self.raw_re_names[0]
        if self.has_random_intercept and first not in (INTERCEPT_TERM, 'Z1'):
            return first
        return 'Group'

    @property
    def re_names(self) -> List[str]:
        """Random-effect term names with the random intercept labelled ``Intercept``."""
        names = list(self.raw_re_names)
        if self.has_random_intercept:
            names[0] = INTERCEPT_TERM
        return names

    @property
    def vc_names(self) -> List[str]:
        exog_vc = getattr(self.lmm, 'exog_vc', None)
        names = getattr(exog_vc, 'names', None)
        if names is None:
            return [f"VC{k + 1}" for k in range(self.k_vc)]
        return [str(name) for name in names]

    # Fixed effects

    def coefficients(self) -> pd.Series:
        return as_series(np.asarray(self.model.fe_params, dtype=float), self.fixed_names)

    def coefficient_table(self) -> pd.DataFrame:
        k = self.k_fe
        return pd.DataFrame({
            'estimate': np.asarray(self.model.fe_params, dtype=float),
            'std.error': np.asarray(self.model.bse_fe, dtype=float),
            'statistic': np.asarray(self.model.tvalues, dtype=float)[:k],
            'p.value': np.asarray(self.model.pvalues, dtype=float)[:k],
        }, index=self.fixed_names)

    def fixed_conf_int(self, level: float, method: str) -> pd.DataFrame:
        if method == 'profile':
            return self.fixed_profile_interval(level)
        ci = np.asarray(self.model.conf_int(alpha=1 - level), dtype=float)[:self.k_fe]
        return pd.DataFrame(ci, index=self.fixed_names, columns=['conf.low', 'conf.high'])

    def _groups(self) -> np.ndarray:
        groups = getattr(self.lmm, 'groups', None)
        if groups is not None:
            return np.asarray(groups)
        groups = np.empty(self.nobs, dtype=object)
        for label, rows in self.lmm.row_indices.items():
            groups[rows] = label
        return groups

    def fixed_profile_interval(self, level: float) -> pd.DataFrame:
        """
        Profile likelihood intervals for the fixed effects.

        Each coefficient is held fixed by moving its contribution into the
        response and refitting by maximum likelihood.
        """
        if self.k_vc > 0:
            raise UnsupportedOperation("Profile intervals are not available for models with variance components")
        if self.k_fe < 2:
            raise UnsupportedOperation("Profile intervals need at least two fixed-effect terms")

        endog = np.asarray(self.lmm.endog, dtype=float)
        exog = np.asarray(self.lmm.exog, dtype=float)
        exog_re = np.asarray(self.lmm.exog_re, dtype=float)
        groups = self._groups()

        full = MixedLM(endog, exog, groups, exog_re=exog_re).fit(reml=False)
        max_llf = float(full.llf)
        est = np.asarray(full.fe_params, dtype=float)
        se = np.asarray(full.bse_fe, dtype=float)
        critical = stats.norm.ppf((1 + level) / 2)

        bounds = []
        for j, term in enumerate(self.fixed_names):
            rest = np.delete(exog, j, axis=1)

            def signed_root(value, j=j, rest=rest):
                refit = MixedLM(endog - exog[:, j] * value, rest, groups, exog_re=exog_re).fit(reml=False)
                diff = max(2.0 * (max_llf - float(refit.llf)), 0.0)
                return np.sign(value - est[j]) * np.sqrt(diff)

            bounds.append(profile_interval(signed_root, est[j], se[j], critical))
            logger.debug(f"Profile interval for {term}: {bounds[-1]}")

        return pd.DataFrame(bounds, index=self.fixed_names, columns=['conf.low', 'conf.high'])

    # Random-effect parameters

    def variance_terms(self) -> List[VarianceTerm]:
        """
        Random-effect variances and covariances, then the residual variance.

        For the grouping factor the variances come first, then the lower
        triangle of covariances; variance components follow, each its own
        group, and the residual variance comes last.
        """
        cov_re = np.asarray(self.model.cov_re, dtype=float)
        names = self.re_names
        k_re = self.k_re
        group = self.group_name

        ses = np.asarray(getattr(self.model, 'bse_re', []), dtype=float)
        tril = list(zip(*np.tril_indices(k_re)))
        if len(ses) != len(tril) + self.k_vc:
            ses = np.full(len(tril) + self.k_vc, np.nan)
        se_of = {pair: ses[i] for i, pair in enumerate(tril)}

        terms = []
        for i in range(k_re):
            terms.append(VarianceTerm(group, (names[i],), cov_re[i, i], se_of[(i, i)], ('re', i)))
        for i in range(k_re):
            for j in range(i + 1, k_re):
                terms.append(VarianceTerm(group, (names[i], names[j]), cov_re[j, i], se_of[(j, i)]))

        vcomp = np.asarray(getattr(self.model, 'vcomp', []), dtype=float)
        for k, name in enumerate(self.vc_names):
            terms.append(VarianceTerm(name, (INTERCEPT_TERM,), vcomp[k], ses[len(tril) + k], ('vc', k)))

        terms.append(VarianceTerm('Residual', (), float(self.model.scale)))
        return terms

    def variance_profile_interval(self, term: VarianceTerm, level: float) -> Tuple[float, float]:
        """
        Profile likelihood interval for one variance parameter.

        Covariances and the residual variance cannot be profiled and get NaN
        bounds.
        """
        if term.profile is None or not term.variance > 0:
            return np.nan, np.nan

        vtype, index = term.profile
        points = int(get_option('profile.grid-points'))
        spread = 4.0 * term.std_error if np.isfinite(term.std_error) else 0.0
        dist_high = max(3.0 * term.variance, spread, 1e-8)

        grid = np.asarray(self.model.profile_re(
            index, vtype,
            num_low=points, dist_low=0.99 * term.variance,
            num_high=points, dist_high=dist_high,
        ), dtype=float)

        critical = stats.norm.ppf((1 + level) / 2)
        return interpolate_profile(grid[:, 0], grid[:, 1], term.variance, float(self.model.llf), critical)

    # Conditional modes

    def conditional_modes(self) -> List[Tuple[Any, str, float, float]]:
        """(level, term, mode, standard error) for every group level and term."""
        modes = self.model.random_effects
        covs = self.model.random_effects_cov
        rows = []
        for level, values in modes.items():
            values = pd.Series(values)
            cov = np.asarray(covs[level], dtype=float)
            ses = np.sqrt(np.diag(cov)) if cov.size else np.full(len(values), np.nan)
            names = self._mode_names(list(values.index))
            for name, estimate, se in zip(names, values.values, ses):
                rows.append((level, name, float(estimate), float(se)))
        return rows

    def _mode_names(self, names: List[str]) -> List[str]:
        names = [str(name) for name in names]
        if self.has_random_intercept and names and names[0] == self.raw_re_names[0]:
            names[0] = INTERCEPT_TERM
        return names

    # Predictions

    def diagnostic_index(self) -> pd.Index:
        index = getattr(self.model.fittedvalues, 'index', None)
        if index is not None and len(index) == self.nobs:
            return index
        row_labels = getattr(self.lmm.data, 'row_labels', None)
        if row_labels is not None and len(row_labels) == self.nobs:
            return pd.Index(row_labels)
        return pd.RangeIndex(self.nobs)

    def training_frame(self) -> pd.DataFrame:
        frame = getattr(self.lmm.data, 'frame', None)
        if frame is not None:
            return frame

        index = self.diagnostic_index()
        frame = pd.DataFrame(np.asarray(self.lmm.exog, dtype=float),
                             index=index, columns=self.fixed_names)
        const = [name for name in frame.columns
                 if name in ('const', INTERCEPT_TERM) and np.allclose(frame[name], 1.0)]
        frame = frame.drop(columns=const)
        frame.insert(0, self.response_name, np.asarray(self.lmm.endog, dtype=float))
        frame[self.group_name] = self._groups()
        return frame

    def _fixed_cov(self) -> np.ndarray:
        k = self.k_fe
        return np.asarray(self.model.cov_params(), dtype=float)[:k, :k]

    def predict(self, new_data: Any = None) -> Dict[str, Any]:
        """
        Fitted values with and without random effects.

        Returns:
            Mapping with ``fitted``, ``fixed``, ``se_fit`` arrays and ``index``
        """
        fe = self.coefficients().values

        if new_data is None:
            exog = np.asarray(self.lmm.exog, dtype=float)
            fixed = exog @ fe
            fitted = np.asarray(self.model.fittedvalues, dtype=float)
            index = self.diagnostic_index()
        else:
            exog_frame = design_matrix(self.model, new_data)
            exog = exog_frame.to_numpy(dtype=float)[:, :self.k_fe]
            fixed = exog @ fe
            fitted = fixed + self.random_contribution(new_data)
            index = new_data.index if isinstance(new_data, pd.DataFrame) else exog_frame.index

        return {
            'fitted': fitted,
            'fixed': fixed,
            'se_fit': linear_predictor_se(exog, self._fixed_cov()),
            'index': index,
        }

    def random_contribution(self, new_data: Any) -> np.ndarray:
        """
        Random-effect part of the prediction for new observations.

        Rows whose group level was not seen in fitting, or data without the
        group column or the random-effect covariates, contribute zero.
        """
        n = len(new_data)
        contribution = np.zeros(n)
        if not isinstance(new_data, pd.DataFrame) or self.group_name not in new_data.columns:
            logger.debug("New data has no group column; predicting fixed effects only")
            return contribution

        names = self.re_names
        columns = []
        for k, name in enumerate(names):
            if k == 0 and self.has_random_intercept:
                columns.append(np.ones(n))
            elif name in new_data.columns:
                columns.append(new_data[name].to_numpy(dtype=float))
            else:
                logger.debug(f"New data has no column {name}; predicting fixed effects only")
                return contribution
        exog_re = np.column_stack(columns)

        modes = self.model.random_effects
        for i, level in enumerate(new_data[self.group_name].tolist()):
            if level in modes:
                contribution[i] = exog_re[i] @ np.asarray(modes[level], dtype=float)[:self.k_re]
        return contribution

    def residuals(self, residual_type: str = 'response') -> np.ndarray:
        resid = np.asarray(self.model.resid, dtype=float)
        if residual_type == 'pearson':
            return resid / np.sqrt(self.model.scale)
        return resid

    def new_data_response(self, new_data: Any) -> Optional[np.ndarray]:
        if isinstance(new_data, pd.DataFrame) and self.response_name in new_data.columns:
            return new_data[self.response_name].to_numpy(dtype=float)
        return None

    # Summary statistics

    @property
    def n_params(self) -> int:
        """Fixed effects, random-effect covariance parameters, variance components and the residual."""
        return self.k_fe + self.k_re * (self.k_re + 1) // 2 + self.k_vc + 1

    def fit_statistics(self) -> Dict[str, Optional[float]]:
        llf = float(self.model.llf)
        df = self.n_params
        return {
            'logLik': llf,
            'AIC': -2.0 * llf + 2.0 * df,
            'BIC': -2.0 * llf + np.log(self.nobs) * df,
            'deviance': -2.0 * llf,
            'df.residual': self.nobs - df,
        }
