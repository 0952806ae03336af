"""
Adapters for statsmodels linear and generalized linear model results.

``LinearFit`` wraps OLS/WLS/GLS results, ``GeneralizedLinearFit`` wraps GLM
results and ``MultiResponseLinearFit`` groups several single-response fits
that share a design. Each adapter reads coefficients, intervals,
predictions, residuals and influence measures from the wrapped results.
"""

import logging
from typing import Any, Dict, Mapping, Optional, Tuple

import numpy as np
import pandas as pd
import patsy
from scipy import stats
from statsmodels.genmod import families
from statsmodels.genmod.families import links
from statsmodels.genmod.generalized_linear_model import GLM
from statsmodels.regression.linear_model import RegressionResults

from modeltidy.errors import InvalidArgument, UnsupportedOperation
from modeltidy.math.profile import profile_interval
from modeltidy.models.base import FittedModel, ModelKind
from modeltidy.utils.general import finite_or_nan

logger = logging.getLogger(__name__)

COEFFICIENT_COLUMNS = ('estimate', 'std.error', 'statistic', 'p.value')

INTERCEPT_NAMES = ('const', 'Intercept', '(Intercept)')


def as_series(values: Any, names) -> pd.Series:
    """Coerce a parameter vector to a Series labelled by ``names``."""
    if isinstance(values, pd.Series):
        return values.astype(float)
    return pd.Series(np.asarray(values, dtype=float).ravel(), index=list(names))


def formula_design(model: Any) -> Any:
    """
    The stored right-hand-side design of a formula fit, or None for array fits.

    Newer statsmodels keeps it as ``data.model_spec``, older releases as
    ``data.design_info``.
    """
    for name in ('model_spec', 'design_info'):
        design = getattr(model.data, name, None)
        if design is not None:
            return design
    return None


def design_matrix(results: Any, new_data: Any) -> pd.DataFrame:
    """
    Build the design matrix of a fitted model for new observations.

    Formula fits re-evaluate their stored design on ``new_data``, keeping
    rows with missing values so the output lines up with the input. Array
    fits select the exog columns by name, adding the constant if needed.

    Args:
        results: statsmodels results
        new_data: New observations

    Returns:
        Design matrix indexed like ``new_data``
    """
    model = results.model
    exog_names = list(model.exog_names)
    design = formula_design(model)

    if design is not None:
        if not isinstance(new_data, pd.DataFrame):
            raise InvalidArgument("New data for a formula model must be a DataFrame")
        if isinstance(design, patsy.DesignInfo):
            return patsy.dmatrix(design, new_data,
                                 NA_action=patsy.NAAction(NA_types=[]),
                                 return_type='dataframe')
        # Model specs from other formula engines build their own matrices
        matrix = pd.DataFrame(design.get_model_matrix(new_data, na_action='ignore'))
        matrix.index = new_data.index
        return matrix[exog_names]

    if isinstance(new_data, pd.DataFrame):
        frame = new_data.copy()
        for name in exog_names:
            if name not in frame.columns and name in INTERCEPT_NAMES:
                frame[name] = 1.0
        missing = [name for name in exog_names if name not in frame.columns]
        if missing:
            raise InvalidArgument(f"New data is missing model columns: {missing}")
        return frame[exog_names].astype(float)

    values = np.asarray(new_data, dtype=float)
    if values.ndim == 1:
        values = values.reshape(-1, 1)
    if values.shape[1] != len(exog_names):
        raise InvalidArgument(f"New data must have {len(exog_names)} columns")
    return pd.DataFrame(values, columns=exog_names)


def linear_predictor_se(exog: np.ndarray, cov: np.ndarray) -> np.ndarray:
    """Standard error of x'b for each row x of ``exog``."""
    exog = np.asarray(exog, dtype=float)
    return np.sqrt(np.einsum('ij,jk,ik->i', exog, np.asarray(cov, dtype=float), exog))


class LinearFit(FittedModel):
    """
    Adapter for statsmodels ``RegressionResults`` (OLS, WLS, GLS).
    """

    kind = ModelKind.LINEAR
    augment_columns = ('.fitted', '.se.fit', '.resid', '.hat', '.sigma', '.cooksd', '.std.resid')
    new_data_columns = ('.fitted', '.se.fit', '.resid')
    prediction_types = ('response',)
    residual_types = ('response', 'pearson')
    default_prediction_type = 'response'
    default_residual_type = 'response'

    @property
    def term_names(self):
        return list(self.model.model.exog_names)

    @property
    def response_name(self) -> str:
        return str(self.model.model.endog_names)

    @property
    def nobs(self) -> int:
        return int(self.model.nobs)

    @property
    def link(self):
        """Link function, or None when the model is on the identity scale."""
        return None

    def coefficients(self) -> pd.Series:
        return as_series(self.model.params, self.term_names)

    def coefficient_table(self) -> pd.DataFrame:
        """Estimate, standard error, test statistic and p-value per term."""
        names = self.term_names
        table = pd.DataFrame({
            'estimate': as_series(self.model.params, names).values,
            'std.error': as_series(self.model.bse, names).values,
            'statistic': as_series(self.model.tvalues, names).values,
            'p.value': as_series(self.model.pvalues, names).values,
        }, index=names)
        return table

    def wald_interval(self, level: float) -> pd.DataFrame:
        """Symmetric estimate +/- z * std.error intervals."""
        mult = stats.norm.ppf((1 + level) / 2)
        est = self.coefficients()
        se = as_series(self.model.bse, self.term_names)
        return pd.DataFrame({'conf.low': est - mult * se, 'conf.high': est + mult * se})

    def profile_interval(self, level: float) -> pd.DataFrame:
        """The exact t interval, which is the profile interval of a Gaussian linear model."""
        ci = np.asarray(self.model.conf_int(alpha=1 - level), dtype=float)
        return pd.DataFrame(ci, index=self.term_names, columns=['conf.low', 'conf.high'])

    def conf_int(self, level: float, method: str) -> pd.DataFrame:
        if method == 'wald':
            return self.wald_interval(level)
        return self.profile_interval(level)

    def diagnostic_index(self) -> pd.Index:
        index = getattr(self.model.fittedvalues, 'index', None)
        if index is not None and len(index) == self.nobs:
            return index
        row_labels = getattr(self.model.model.data, 'row_labels', None)
        if row_labels is not None and len(row_labels) == self.nobs:
            return pd.Index(row_labels)
        return pd.RangeIndex(self.nobs)

    def training_frame(self) -> pd.DataFrame:
        """
        The data the model was fitted on.

        Formula fits return the original data frame; array fits are rebuilt
        from the response and the non-constant predictor columns.
        """
        frame = getattr(self.model.model.data, 'frame', None)
        if frame is not None:
            return frame

        index = self.diagnostic_index()
        exog = pd.DataFrame(np.asarray(self.model.model.exog, dtype=float),
                            index=index, columns=self.term_names)
        const = [name for name in exog.columns
                 if name in INTERCEPT_NAMES and np.allclose(exog[name], 1.0)]
        frame = exog.drop(columns=const)
        frame.insert(0, self.response_name, np.asarray(self.model.model.endog, dtype=float))
        return frame

    def _linear_offset(self) -> np.ndarray:
        return np.zeros(self.nobs)

    def predict(self, new_data: Any = None,
                prediction_type: str = 'response') -> Tuple[np.ndarray, np.ndarray, pd.Index]:
        """
        Fitted values and their standard errors.

        Args:
            new_data: Observations to predict; None for the training data
            prediction_type: Scale of the predictions

        Returns:
            (fitted, se_fit, index)
        """
        cov = np.asarray(self.model.cov_params(), dtype=float)
        params = self.coefficients().values

        if new_data is None:
            exog = np.asarray(self.model.model.exog, dtype=float)
            index = self.diagnostic_index()
            eta = exog @ params + self._linear_offset()
        else:
            exog_frame = design_matrix(self.model, new_data)
            exog = exog_frame.to_numpy(dtype=float)
            index = new_data.index if isinstance(new_data, pd.DataFrame) else exog_frame.index
            eta = exog @ params

        se_eta = linear_predictor_se(exog, cov)
        fitted, se = self._to_scale(eta, se_eta, prediction_type)
        return fitted, se, index

    def _to_scale(self, eta, se_eta, prediction_type):
        return eta, se_eta

    def residuals(self, residual_type: str = 'response') -> np.ndarray:
        if residual_type == 'pearson':
            return np.asarray(self.model.resid_pearson, dtype=float)
        return np.asarray(self.model.resid, dtype=float)

    def influence(self) -> Dict[str, np.ndarray]:
        """Leverage, leave-one-out sigma, Cook's distance and standardized residuals."""
        infl = self.model.get_influence()
        return {
            '.hat': np.asarray(infl.hat_matrix_diag, dtype=float),
            '.sigma': np.sqrt(np.asarray(infl.sigma2_not_obsi, dtype=float)),
            '.cooksd': np.asarray(infl.cooks_distance[0], dtype=float),
            '.std.resid': np.asarray(infl.resid_studentized_internal, dtype=float),
        }

    def new_data_response(self, new_data: Any) -> Optional[np.ndarray]:
        """Response values in ``new_data``, or None if the column is absent."""
        if isinstance(new_data, pd.DataFrame) and self.response_name in new_data.columns:
            return new_data[self.response_name].to_numpy(dtype=float)
        return None

    @property
    def rank(self) -> int:
        return int(round(self.model.df_model + self.model.model.k_constant))

    def f_test(self) -> Tuple[float, float]:
        """Overall F statistic and its upper-tail p-value, NaN when undefined."""
        df_model = float(self.model.df_model)
        df_resid = float(self.model.df_resid)
        if df_model <= 0 or df_resid <= 0:
            return np.nan, np.nan
        fstat = finite_or_nan(np.squeeze(self.model.fvalue))
        if np.isnan(fstat):
            return np.nan, np.nan
        return fstat, float(stats.f.sf(fstat, df_model, df_resid))

    def glance_row(self) -> Dict[str, Any]:
        fstat, pvalue = self.f_test()
        return {
            'r.squared': float(self.model.rsquared),
            'adj.r.squared': float(self.model.rsquared_adj),
            'sigma': float(np.sqrt(self.model.scale)),
            'statistic': fstat,
            'p.value': pvalue,
            'df': self.rank,
        }

    def fit_statistics(self) -> Dict[str, Optional[float]]:
        return {
            'logLik': float(self.model.llf),
            'AIC': float(self.model.aic),
            'BIC': float(self.model.bic),
            'deviance': float(self.model.ssr),
            'df.residual': int(round(self.model.df_resid)),
        }


class GeneralizedLinearFit(LinearFit):
    """
    Adapter for statsmodels ``GLMResults``.

    GLMs have no leave-one-out residual standard deviation, so their
    augmented table omits ``.sigma``.
    """

    kind = ModelKind.GENERALIZED_LINEAR
    augment_columns = ('.fitted', '.se.fit', '.resid', '.hat', '.cooksd', '.std.resid')
    prediction_types = ('link', 'response')
    residual_types = ('deviance', 'pearson', 'response', 'working', 'anscombe')
    default_prediction_type = 'link'
    default_residual_type = 'deviance'

    @property
    def family(self):
        return self.model.family

    @property
    def link(self):
        link = self.family.link
        if isinstance(link, links.Identity):
            return None
        return link

    @property
    def known_dispersion(self) -> bool:
        return isinstance(self.family, (families.Binomial, families.Poisson, families.NegativeBinomial))

    def _linear_offset(self) -> np.ndarray:
        offset = np.zeros(self.nobs)
        model = self.model.model
        for name in ('offset', 'exposure'):
            # exposure is stored on the log scale
            extra = getattr(model, name, None)
            if extra is not None:
                offset = offset + np.asarray(extra, dtype=float)
        return offset

    def _to_scale(self, eta, se_eta, prediction_type):
        if prediction_type == 'link':
            return eta, se_eta
        link = self.family.link
        return link.inverse(eta), np.abs(link.inverse_deriv(eta)) * se_eta

    def _constrained_deviance(self, j: int, value: float) -> float:
        """Deviance of the refit with coefficient ``j`` held at ``value``."""
        model = self.model.model
        exog = np.asarray(model.exog, dtype=float)
        offset = self._linear_offset() + exog[:, j] * value
        rest = np.delete(exog, j, axis=1)

        if rest.shape[1] == 0:
            mu = self.family.link.inverse(offset)
            return float(self.family.deviance(model.endog, mu, model.var_weights, model.freq_weights))

        start = np.delete(self.coefficients().values, j)
        refit = GLM(model.endog, rest, family=self.family, offset=offset,
                    freq_weights=model.freq_weights, var_weights=model.var_weights).fit(start_params=start)
        return float(refit.deviance)

    def profile_interval(self, level: float) -> pd.DataFrame:
        """
        Profile likelihood intervals for every coefficient.

        The signed root deviance is divided by the dispersion; the critical
        value is normal for families with known dispersion and t with the
        residual degrees of freedom otherwise.
        """
        q = (1 + level) / 2
        if self.known_dispersion:
            critical = stats.norm.ppf(q)
        else:
            critical = stats.t.ppf(q, self.model.df_resid)

        deviance = float(self.model.deviance)
        dispersion = float(self.model.scale)
        est = self.coefficients()
        se = as_series(self.model.bse, self.term_names)

        bounds = []
        for j, term in enumerate(self.term_names):
            def signed_root(value, j=j):
                diff = max(self._constrained_deviance(j, value) - deviance, 0.0)
                return np.sign(value - est.iloc[j]) * np.sqrt(diff / dispersion)

            bounds.append(profile_interval(signed_root, est.iloc[j], se.iloc[j], critical))
            logger.debug(f"Profile interval for {term}: {bounds[-1]}")

        return pd.DataFrame(bounds, index=self.term_names, columns=['conf.low', 'conf.high'])

    def residuals(self, residual_type: str = 'deviance') -> np.ndarray:
        return np.asarray(getattr(self.model, f"resid_{residual_type}"), dtype=float)

    def influence(self) -> Dict[str, np.ndarray]:
        infl = self.model.get_influence()
        hat = np.asarray(infl.hat_matrix_diag, dtype=float)
        # Standardized deviance residuals
        std_resid = np.asarray(self.model.resid_deviance, dtype=float) / np.sqrt(self.model.scale * (1 - hat))
        return {
            '.hat': hat,
            '.cooksd': np.asarray(infl.cooks_distance[0], dtype=float),
            '.std.resid': std_resid,
        }

    def glance_row(self) -> Dict[str, Any]:
        return {
            'null.deviance': float(self.model.null_deviance),
            'df.null': int(round(self.model.df_resid + self.model.df_model)),
        }

    def fit_statistics(self) -> Dict[str, Optional[float]]:
        bic = getattr(self.model, 'bic_llf', None)
        return {
            'logLik': float(self.model.llf),
            'AIC': float(self.model.aic),
            'BIC': float(bic if bic is not None else self.model.bic),
            'deviance': float(self.model.deviance),
            'df.residual': int(round(self.model.df_resid)),
        }


class MultiResponseLinearFit(FittedModel):
    """
    Several linear fits on the same predictors, one per response.

    Only coefficient tables are defined for this variant.
    """

    kind = ModelKind.MULTI_RESPONSE_LINEAR

    def __init__(self, model: Mapping[str, Any]):
        super().__init__(model)
        if not model:
            raise InvalidArgument("A multi-response model needs at least one response")
        self.fits = {}
        for response, results in model.items():
            if isinstance(results, LinearFit) and results.kind is ModelKind.LINEAR:
                fit = results
            elif isinstance(getattr(results, '_results', results), RegressionResults):
                fit = LinearFit(results)
            else:
                raise UnsupportedOperation("Multi-response models must be linear in every response")
            self.fits[str(response).replace('Response ', '')] = fit

    @property
    def responses(self):
        return list(self.fits)

    @property
    def link(self):
        return None
