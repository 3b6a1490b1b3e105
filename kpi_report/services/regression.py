"""
Trend regression for evenly spaced series (one value per period).

Two least-squares models are fitted against the series index x = 0..n-1:
    - linear:      y = intercept + slope * x
    - log-linear:  y = intercept * e^(slope * x), fitted on ln(y) for y > 0

Missing values (None/NaN) are skipped but keep their index, and predicted
values are produced for every index so a trend line can span the whole chart.
R-squared is always computed on the original scale. A fit needs at least 3
valid points and a non-degenerate x spread.
"""

import logging
import math
from typing import Optional, Sequence, Tuple

import numpy as np

from kpi_report.models import RegressionResult, RegressionType

logger = logging.getLogger(__name__)


MIN_REGRESSION_POINTS = 3
DEFAULT_R_SQUARED_THRESHOLD = 0.5

_DEGENERATE_EPSILON = 1e-10


def _valid_points(
    values: Sequence[Optional[float]],
    positive_only: bool = False,
) -> Tuple[np.ndarray, np.ndarray]:
    xs = []
    ys = []
    for index, value in enumerate(values):
        if value is None or (isinstance(value, float) and math.isnan(value)):
            continue
        if positive_only and value <= 0:
            continue
        xs.append(float(index))
        ys.append(float(value))
    return np.array(xs), np.array(ys)


def _least_squares(x: np.ndarray, y: np.ndarray) -> Optional[Tuple[float, float]]:
    """Return (slope, intercept) or None when x has no spread."""
    x_mean = x.mean()
    denominator = float(np.sum((x - x_mean) ** 2))
    if abs(denominator) < _DEGENERATE_EPSILON:
        return None
    slope = float(np.sum((x - x_mean) * (y - y.mean())) / denominator)
    intercept = float(y.mean() - slope * x_mean)
    return slope, intercept


def _r_squared(y: np.ndarray, predicted: np.ndarray) -> float:
    ss_tot = float(np.sum((y - y.mean()) ** 2))
    ss_res = float(np.sum((y - predicted) ** 2))
    return 1 - ss_res / ss_tot if ss_tot > 0 else 0.0


def linear_regression(
    values: Sequence[Optional[float]],
    total_points: Optional[int] = None,
) -> Optional[RegressionResult]:
    x, y = _valid_points(values)
    if len(x) < MIN_REGRESSION_POINTS:
        return None
    fit = _least_squares(x, y)
    if fit is None:
        return None
    slope, intercept = fit

    span = np.arange(total_points if total_points is not None else len(values))
    return RegressionResult(
        slope=slope,
        intercept=intercept,
        rSquared=_r_squared(y, intercept + slope * x),
        predictedValues=[float(v) for v in intercept + slope * span],
        type=RegressionType.LINEAR,
        validPointCount=len(x),
    )


def log_linear_regression(
    values: Sequence[Optional[float]],
    total_points: Optional[int] = None,
) -> Optional[RegressionResult]:
    """Exponential fit; `intercept` is the multiplier a in y = a * e^(bx)."""
    x, y = _valid_points(values, positive_only=True)
    if len(x) < MIN_REGRESSION_POINTS:
        return None
    fit = _least_squares(x, np.log(y))
    if fit is None:
        return None
    slope, log_intercept = fit
    multiplier = math.exp(log_intercept)

    span = np.arange(total_points if total_points is not None else len(values))
    return RegressionResult(
        slope=slope,
        intercept=multiplier,
        rSquared=_r_squared(y, multiplier * np.exp(slope * x)),
        predictedValues=[float(v) for v in multiplier * np.exp(slope * span)],
        type=RegressionType.LOG_LINEAR,
        validPointCount=len(x),
    )


def best_regression(
    values: Sequence[Optional[float]],
    total_points: Optional[int] = None,
    r_squared_threshold: float = DEFAULT_R_SQUARED_THRESHOLD,
) -> Optional[RegressionResult]:
    """
    Pick the better of the linear and log-linear fits.

    Only fits with R-squared >= threshold are eligible; when both are,
    the higher R-squared wins (log-linear on ties). None when neither fits.
    """
    candidates = [
        fit for fit in (
            log_linear_regression(values, total_points),
            linear_regression(values, total_points),
        )
        if fit is not None and fit.rSquared >= r_squared_threshold
    ]
    if not candidates:
        return None
    # max() keeps the first of equal elements, so log-linear wins ties
    return max(candidates, key=lambda fit: fit.rSquared)
