"""
Combination of independent test results.

Fisher's method combines p-values through a chi-squared statistic;
Stouffer's method combines Z-scores.
"""

from __future__ import annotations

from typing import Sequence, Union

import numpy as np
import pandas as pd
from scipy import stats

from regactivity.core.errors import TypeMismatchError, check_flag

ArrayLike = Union[Sequence[float], np.ndarray, pd.Series]


def fisher_combine(
    pvalues: ArrayLike,
    lower_tail: bool = False,
    log_p: bool = True,
) -> float:
    """
    Combine p-values using Fisher's method.

    ``X = -2 sum(ln p)`` follows a chi-squared distribution with
    ``2 len(p)`` degrees of freedom under the joint null.

    Args:
        pvalues: P-values to combine (at least two).
        lower_tail: Return ``P[X <= x]`` instead of ``P[X > x]``.
        log_p: Return the natural log of the probability.

    Returns:
        Combined probability (log scale by default).
    """
    values = np.asarray(pvalues)
    if values.dtype.kind not in "iuf":
        raise TypeMismatchError("pvalues must be numeric")
    if values.size <= 1:
        raise ValueError("pvalues must be longer than 1")
    check_flag(lower_tail, "lower_tail")
    check_flag(log_p, "log_p")

    values = values.astype(float).ravel()
    df = 2 * values.size
    statistic = -2 * np.sum(np.log(values))

    if lower_tail:
        combined = stats.chi2.logcdf(statistic, df) if log_p else stats.chi2.cdf(statistic, df)
    else:
        combined = stats.chi2.logsf(statistic, df) if log_p else stats.chi2.sf(statistic, df)
    return float(combined)


def stouffer_combine(zscores: ArrayLike) -> float:
    """
    Combine Z-scores using Stouffer's method.

    Missing values are dropped. The absolute values are summed, so the
    combined score measures evidence strength regardless of direction.

    Args:
        zscores: Z-scores to combine.

    Returns:
        ``sum(|z|) / sqrt(n)``; NaN when no value is available.
    """
    z = np.asarray(zscores, dtype=float).ravel()
    z = z[~np.isnan(z)]
    if z.size == 0:
        return float("nan")
    return float(np.sum(np.abs(z)) / np.sqrt(z.size))
