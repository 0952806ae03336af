"""
Profile likelihood confidence intervals.

The interval for a single parameter is found where the signed square root
of the likelihood-ratio statistic crosses the critical value on each side
of the estimate. Callers supply the signed root as a function of the
parameter value; this module brackets and solves for the crossings.
"""

import logging
import numpy as np
from typing import Callable, Tuple
from scipy import optimize

from modeltidy.components.config import get_option

logger = logging.getLogger(__name__)


def find_crossing(signed_root: Callable[[float], float],
                  start: float,
                  step: float,
                  target: float,
                  max_steps: int,
                  xtol: float) -> float:
    """
    Find where ``signed_root`` reaches ``target`` moving away from ``start``.

    The bracket grows by doubling ``step`` until the target is passed.

    Args:
        signed_root: Signed root deviance, zero at the estimate
        start: Parameter estimate
        step: Initial signed step (negative for the lower bound)
        target: Critical value to reach
        max_steps: Maximum number of bracket doublings
        xtol: Absolute tolerance of the root

    Returns:
        Parameter value at the crossing, or NaN if it is never reached
    """
    def objective(x):
        return signed_root(x) - target

    a, fa = start, -target
    width = step
    for _ in range(max_steps):
        b = start + width
        fb = objective(b)
        if np.isfinite(fb) and np.sign(fb) != np.sign(fa):
            lo, hi = (a, b) if a < b else (b, a)
            return optimize.brentq(objective, lo, hi, xtol=xtol)
        if np.isfinite(fb):
            a, fa = b, fb
        width *= 2.0

    logger.debug(f"Profile did not reach {target:.3f} within {max_steps} steps of {start:.6g}")
    return np.nan


def profile_interval(signed_root: Callable[[float], float],
                     estimate: float,
                     std_error: float,
                     critical: float) -> Tuple[float, float]:
    """
    Profile likelihood interval for one parameter.

    Args:
        signed_root: Signed root deviance as a function of the parameter
        estimate: Maximum likelihood estimate
        std_error: Standard error used to size the initial bracket
        critical: Positive critical value (normal or t quantile)

    Returns:
        (lower, upper) bounds; a bound that cannot be reached is NaN
    """
    max_steps = int(get_option('profile.max-steps'))
    xtol = float(get_option('profile.xtol'))

    step = std_error if np.isfinite(std_error) and std_error > 0 else max(abs(estimate), 1.0)
    lower = find_crossing(signed_root, estimate, -step, -critical, max_steps, xtol)
    upper = find_crossing(signed_root, estimate, step, critical, max_steps, xtol)
    return lower, upper


def interpolate_profile(values: np.ndarray,
                        loglik: np.ndarray,
                        estimate: float,
                        max_loglik: float,
                        critical: float) -> Tuple[float, float]:
    """
    Interval from a profile evaluated on a grid.

    The bounds are linearly interpolated where the log-likelihood falls
    ``critical ** 2 / 2`` below its maximum.

    Args:
        values: Grid of parameter values
        loglik: Profiled log-likelihood at each grid value
        estimate: Parameter estimate
        max_loglik: Log-likelihood at the estimate
        critical: Positive critical value

    Returns:
        (lower, upper) bounds; a side that never crosses gives NaN, except
        that a profile still above the cutoff at zero gives a lower bound of 0
    """
    order = np.argsort(values)
    values = np.asarray(values, dtype=float)[order]
    drop = max_loglik - np.asarray(loglik, dtype=float)[order] - critical ** 2 / 2.0

    def crossing(side):
        xs, ds = values[side], drop[side]
        for i in range(len(xs) - 1):
            if np.sign(ds[i]) != np.sign(ds[i + 1]):
                return float(np.interp(0.0, [ds[i], ds[i + 1]], [xs[i], xs[i + 1]])
                             if ds[i] < ds[i + 1] else
                             np.interp(0.0, [ds[i + 1], ds[i]], [xs[i + 1], xs[i]]))
        return np.nan

    below = values <= estimate
    above = values >= estimate

    # Walk outwards from the estimate on each side
    lower = crossing(np.flatnonzero(below)[::-1])
    upper = crossing(np.flatnonzero(above))

    if np.isnan(lower) and below.any() and values[below].min() <= 0 and drop[below][0] < 0:
        lower = 0.0
    return lower, upper
