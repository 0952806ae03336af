"""
Common definitions for model adapters.

Every fitted model enters the tidiers through an adapter tagged with a
``ModelKind``. The adapters read from the wrapped model and never modify it.
"""

from enum import Enum
from typing import Any, Dict, Optional, Tuple


class ModelKind(Enum):
    """Model families the tidiers know how to read."""

    PCA = 'pca'
    LINEAR = 'lm'
    GENERALIZED_LINEAR = 'glm'
    MULTI_RESPONSE_LINEAR = 'mlm'
    MIXED = 'mixed'


class FittedModel:
    """
    Base class for model adapters.

    Subclasses set ``kind`` and, where they support ``augment``, the
    diagnostic columns their augmented table carries.
    """

    kind: ModelKind = None
    augment_columns: Tuple[str, ...] = ()
    new_data_columns: Tuple[str, ...] = ()

    def __init__(self, model: Any):
        self.model = model

    def fit_statistics(self) -> Dict[str, Optional[float]]:
        """Auxiliary statistics for one-row summaries; None marks unavailable values."""
        return {}

    def __repr__(self) -> str:
        return f"{type(self).__name__}({type(self.model).__name__})"
