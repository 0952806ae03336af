"""
PCA (Principal Component Analysis) decomposition.

This module provides a prcomp-style decomposition by singular value
decomposition of the centred (and optionally scaled) data matrix.
"""

import logging
import numpy as np
import pandas as pd
from typing import Optional, Union

from modeltidy.errors import InvalidArgument
from modeltidy.models.pca import PCAFit, component_names

logger = logging.getLogger(__name__)


def normalize_signs(rotation: np.ndarray) -> np.ndarray:
    """
    Flip component signs so the largest absolute loading of each is positive.

    SVD leaves the sign of each singular vector arbitrary; fixing it makes
    repeated decompositions of the same data agree.

    Args:
        rotation: Variables x components loading matrix

    Returns:
        Vector of +1/-1 multipliers, one per component
    """
    pivots = np.argmax(np.abs(rotation), axis=0)
    signs = np.sign(rotation[pivots, np.arange(rotation.shape[1])])
    signs[signs == 0] = 1.0
    return signs


def prcomp(data: Union[pd.DataFrame, np.ndarray],
           center: bool = True,
           scale: bool = False,
           n_comps: Optional[int] = None) -> PCAFit:
    """
    Principal components of a data matrix.

    Args:
        data: Observations x variables matrix
        center: Whether to subtract column means
        scale: Whether to divide by column standard deviations
        n_comps: Number of components to keep (defaults to all)

    Returns:
        PCAFit with scores, rotation and component standard deviations
    """
    frame = data if isinstance(data, pd.DataFrame) else pd.DataFrame(np.asarray(data, dtype=float))
    values = frame.to_numpy(dtype=float)

    if values.ndim != 2 or values.shape[0] < 2:
        raise InvalidArgument("PCA needs a 2-d data matrix with at least two observations")
    if np.isnan(values).any():
        raise InvalidArgument("PCA data must not contain missing values")

    variables = [str(col) for col in frame.columns]
    n_rows = values.shape[0]

    center_vec = values.mean(axis=0) if center else None
    if center_vec is not None:
        values = values - center_vec

    scale_vec = None
    if scale:
        # Root mean square matches the standard deviation once centred
        scale_vec = np.sqrt((values ** 2).sum(axis=0) / (n_rows - 1))
        if np.any(scale_vec == 0):
            raise InvalidArgument("Cannot scale a constant column to unit variance")
        values = values / scale_vec

    _, d, vt = np.linalg.svd(values, full_matrices=False)
    rotation = vt.T

    # Limit components to the dimensionality of the data
    n_max = min(values.shape)
    n_comps = n_max if n_comps is None else min(n_comps, n_max)
    rotation = rotation[:, :n_comps]
    rotation = rotation * normalize_signs(rotation)
    sdev = d / np.sqrt(max(n_rows - 1, 1))

    names = component_names(n_comps)
    logger.debug(f"prcomp on {n_rows} x {len(variables)} data, {n_comps} components")

    return PCAFit(
        scores=pd.DataFrame(values @ rotation, index=frame.index, columns=names),
        rotation=pd.DataFrame(rotation, index=variables, columns=names),
        sdev=sdev[:n_comps],
        center=None if center_vec is None else pd.Series(center_vec, index=variables),
        scale=None if scale_vec is None else pd.Series(scale_vec, index=variables),
    )
