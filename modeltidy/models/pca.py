"""
Principal component analysis results.

``PCAFit`` is the common shape for a fitted decomposition: observation
scores, variable loadings and per-component standard deviations, plus
the centring and scaling needed to project new observations.
"""

import logging
from dataclasses import dataclass
from typing import Any, Optional

import numpy as np
import pandas as pd

from modeltidy.errors import InvalidArgument
from modeltidy.models.base import FittedModel, ModelKind

logger = logging.getLogger(__name__)


def component_names(n_comps: int):
    """Column labels PC1..PCn."""
    return [f"PC{i + 1}" for i in range(n_comps)]


@dataclass(frozen=True, eq=False)
class PCAFit(FittedModel):
    """
    A fitted principal component decomposition.

    Attributes:
        scores: Observations x components score matrix
        rotation: Variables x components loading matrix
        sdev: Standard deviation of each component
        center: Column means subtracted before projection, if any
        scale: Column scales divided out before projection, if any
        whiten: Whether projected scores are divided by the component
            standard deviations
    """

    scores: pd.DataFrame
    rotation: pd.DataFrame
    sdev: np.ndarray
    center: Optional[pd.Series] = None
    scale: Optional[pd.Series] = None
    whiten: bool = False

    kind = ModelKind.PCA

    @property
    def model(self) -> 'PCAFit':
        return self

    @property
    def n_components(self) -> int:
        return len(self.sdev)

    @classmethod
    def from_sklearn(cls, pca: Any, data: Any) -> 'PCAFit':
        """
        Wrap a fitted ``sklearn.decomposition.PCA``.

        scikit-learn does not keep the training scores, so the training data
        must be supplied; it is projected with ``pca.transform``.

        Args:
            pca: Fitted PCA estimator
            data: Data the estimator was fitted on

        Returns:
            PCAFit
        """
        if data is None:
            raise InvalidArgument("A scikit-learn PCA needs the data it was fitted on")

        frame = data if isinstance(data, pd.DataFrame) else pd.DataFrame(np.asarray(data, dtype=float))
        names = component_names(pca.n_components_)
        variables = [str(col) for col in frame.columns]

        if len(variables) != pca.components_.shape[1]:
            raise InvalidArgument(
                f"Data has {len(variables)} columns but the PCA was fitted on {pca.components_.shape[1]}"
            )

        scores = pd.DataFrame(pca.transform(frame.values), index=frame.index, columns=names)
        rotation = pd.DataFrame(pca.components_.T, index=variables, columns=names)

        return cls(
            scores=scores,
            rotation=rotation,
            sdev=np.sqrt(pca.explained_variance_),
            center=pd.Series(pca.mean_, index=variables),
            scale=None,
            whiten=bool(getattr(pca, 'whiten', False)),
        )

    def project(self, new_data: Any) -> pd.DataFrame:
        """
        Project new observations onto the fitted component axes.

        Args:
            new_data: Observations with the fitted variables as columns

        Returns:
            Observations x components score matrix
        """
        variables = list(self.rotation.index)
        if isinstance(new_data, pd.DataFrame):
            missing = [v for v in variables if v not in new_data.columns]
            if missing:
                raise InvalidArgument(f"New data is missing PCA variables: {missing}")
            index = new_data.index
            values = new_data[variables].to_numpy(dtype=float)
        else:
            values = np.asarray(new_data, dtype=float)
            if values.ndim != 2 or values.shape[1] != len(variables):
                raise InvalidArgument(f"New data must have {len(variables)} columns")
            index = pd.RangeIndex(values.shape[0])

        if self.center is not None:
            values = values - self.center.to_numpy(dtype=float)
        if self.scale is not None:
            values = values / self.scale.to_numpy(dtype=float)

        scores = values @ self.rotation.values
        if self.whiten:
            scores = scores / np.asarray(self.sdev, dtype=float)
        return pd.DataFrame(scores, index=index, columns=self.rotation.columns)
