"""
Modeltidy package for tidying statistical model results.

Fitted PCA, linear, generalized linear and mixed-effects models are turned
into uniform pandas tables: coefficient tables (tidy), per-observation
tables (augment) and one-row summaries (glance).
"""

__version__ = '0.1.0'

from modeltidy.components.config import Config, ConfigManager, configure_logging
from modeltidy.errors import (
    TidyError,
    InvalidArgument,
    UnsupportedOperation,
    UnsupportedConfidenceMethod,
    TidyWarning,
    NoOpTransformWarning,
    DeprecatedOptionWarning,
)
from modeltidy.models import ModelKind, as_fitted_model
from modeltidy.math.pca import prcomp
from modeltidy.tidiers import (
    tidy, augment, glance,
    tidy_pca, augment_pca,
    tidy_lm, augment_lm, glance_lm,
    tidy_mixed, augment_mixed, glance_mixed,
)

configure_logging()
