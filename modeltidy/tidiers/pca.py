"""
Tidiers for principal component analysis.

``tidy_pca`` reshapes scores, loadings or per-component variance into a
long table; ``augment_pca`` attaches component scores to observations.
"""

import logging
import numpy as np
import pandas as pd
from typing import Any, Optional

from modeltidy.components.config import get_option
from modeltidy.errors import InvalidArgument, UnsupportedOperation
from modeltidy.models import ModelKind, PCAFit, as_fitted_model
from modeltidy.utils.general import augment_columns

logger = logging.getLogger(__name__)

MODE_ALIASES = {
    'samples': 'samples', 'u': 'samples', 'x': 'samples',
    'variables': 'variables', 'v': 'variables', 'rotation': 'variables',
    'components': 'components', 'd': 'components', 'pcs': 'components',
}


def resolve_mode(mode: Optional[str], matrix: Optional[str] = None) -> str:
    """
    Resolve a PCA table mode or alias.

    ``matrix`` is accepted as another name for ``mode``; giving both is an
    error unless they name the same table.

    Args:
        mode: One of the names in ``MODE_ALIASES``, or None for the default
        matrix: Alias keyword for ``mode``

    Returns:
        'samples', 'variables' or 'components'
    """
    if mode is not None and matrix is not None:
        if _lookup_mode(mode) != _lookup_mode(matrix):
            raise InvalidArgument(f"Conflicting PCA modes: mode={mode!r}, matrix={matrix!r}")
    mode = get_option('tidy.pca-mode', mode if mode is not None else matrix)
    return _lookup_mode(mode)


def _lookup_mode(mode: Any) -> str:
    key = str(mode).lower()
    if key not in MODE_ALIASES:
        raise InvalidArgument(
            f"Unknown PCA mode {mode!r}; expected one of {sorted(MODE_ALIASES)}"
        )
    return MODE_ALIASES[key]


def as_pca_fit(model: Any, data: Any = None) -> PCAFit:
    fit = as_fitted_model(model, data=data)
    if fit.kind is not ModelKind.PCA:
        raise UnsupportedOperation(f"Expected a PCA result, got {fit.kind.value}")
    return fit


def long_matrix(values: pd.DataFrame, label: str) -> pd.DataFrame:
    """One row per (entity, component) pair, entity-major."""
    n_rows, n_comps = values.shape
    return pd.DataFrame({
        label: np.repeat(np.asarray(values.index, dtype=object), n_comps),
        'PC': np.tile(np.arange(1, n_comps + 1), n_rows),
        'value': values.to_numpy(dtype=float).ravel(),
    })


def tidy_pca(model: Any, mode: Optional[str] = None, data: Any = None,
             matrix: Optional[str] = None) -> pd.DataFrame:
    """
    Tidy a principal component analysis.

    Args:
        model: PCAFit or fitted scikit-learn PCA
        mode: 'samples' (scores), 'variables' (loadings) or 'components'
            (variance explained); aliases u/x, v/rotation and d/pcs
        data: Training data, required for a scikit-learn PCA
        matrix: Alias for ``mode``

    Returns:
        samples: ``row``, ``PC``, ``value``;
        variables: ``column``, ``PC``, ``value``;
        components: ``PC``, ``std.dev``, ``percent``, ``cumulative``
    """
    mode = resolve_mode(mode, matrix)
    fit = as_pca_fit(model, data)
    logger.debug(f"tidy_pca mode={mode} components={fit.n_components}")

    if mode == 'samples':
        return long_matrix(fit.scores, 'row')

    if mode == 'variables':
        return long_matrix(fit.rotation, 'column')

    sdev = np.asarray(fit.sdev, dtype=float)
    variance = sdev ** 2
    percent = variance / variance.sum()
    return pd.DataFrame({
        'PC': np.arange(1, len(sdev) + 1),
        'std.dev': sdev,
        'percent': percent,
        'cumulative': np.cumsum(percent),
    })


def augment_pca(model: Any, data: Any = None, new_data: Any = None) -> pd.DataFrame:
    """
    Attach fitted component scores to observations.

    Args:
        model: PCAFit or fitted scikit-learn PCA
        data: Original observations; the stored scores are attached to them
        new_data: New observations to project onto the components

    Returns:
        The data (if any) with ``.fittedPC1``, ``.fittedPC2``, ... columns
    """
    fit = as_pca_fit(model, data)

    if new_data is not None:
        scores = fit.project(new_data)
        base = new_data if isinstance(new_data, pd.DataFrame) else None
    else:
        scores = fit.scores
        base = data if isinstance(data, pd.DataFrame) else None
        if data is not None and len(data) != len(scores):
            raise InvalidArgument(
                f"Data has {len(data)} rows but the PCA has {len(scores)} observations"
            )

    columns = {f".fitted{name}": scores[name].values for name in scores.columns}
    index = base.index if base is not None else scores.index
    return augment_columns(base, columns, index=index)
