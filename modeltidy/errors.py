"""
Exceptions and warnings raised by the tidiers.

Validation errors are raised before any table is assembled, so a failed
call never returns a partial result. Warnings are non-fatal: the call
completes and the condition is reported through the ``warnings`` module.
"""

import logging
import warnings

logger = logging.getLogger(__name__)


class TidyError(Exception):
    """Base class for all tidier errors."""


class InvalidArgument(TidyError, ValueError):
    """An option value is not recognised (mode, effect, scale, method, ...)."""


class UnsupportedOperation(TidyError):
    """The operation is undefined for the given model variant."""


class UnsupportedConfidenceMethod(InvalidArgument, UnsupportedOperation):
    """A confidence interval method that is unavailable for the requested terms."""


class TidyWarning(UserWarning):
    """Base class for non-fatal tidier diagnostics."""


class NoOpTransformWarning(TidyWarning):
    """A back-transform was requested but the model uses an identity link."""


class DeprecatedOptionWarning(TidyWarning, DeprecationWarning):
    """A superseded option name was used."""


def warn(message: str, category=TidyWarning, stacklevel: int = 3) -> None:
    """
    Issue a tidier warning, with a debug record in the module logger.

    Args:
        message: Warning text
        category: Warning class
        stacklevel: Passed to ``warnings.warn`` so the warning points at the caller
    """
    logger.debug(f"{category.__name__}: {message}")
    warnings.warn(message, category, stacklevel=stacklevel)
