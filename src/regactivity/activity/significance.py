"""
Significance testing for ridge regression coefficients.

Closed-form standard errors following Cule, Vineis & De Iorio (2011), using
the singular value decomposition of the design. With ``X = U diag(D) V^T``,
``d2 = D^2`` and ``div = d2 + lambda``:

    sigma2 = ||y - U diag(d2/div) U^T y||^2 / (n - sum(d2 (d2 + 2 lambda) / div^2))
    Var(beta) = sigma2 V diag(d2 / div^2) V^T

P-values use the large-sample normal approximation ``2 (1 - Phi(|t|))``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import NamedTuple, Optional, Sequence, Union

import numpy as np
import pandas as pd
from scipy import stats

from regactivity.activity.scaling import scale_columns

COLUMNS = ("coef", "se", "tstat", "pval")


class SVDResult(NamedTuple):
    """Thin singular value decomposition ``x = u @ diag(d) @ vt``."""

    u: np.ndarray
    d: np.ndarray
    vt: np.ndarray


@dataclass(frozen=True, eq=False)
class SignificanceTable:
    """Per-predictor coefficient significance for one fitted model."""

    predictors: tuple[str, ...]
    """Row keys (predictor names)."""

    coef: np.ndarray
    """Coefficient estimates."""

    se: np.ndarray
    """Standard errors."""

    tstat: np.ndarray
    """Absolute test statistics ``|coef| / se``."""

    pval: np.ndarray
    """Two-sided normal-approximation p-values."""

    def __post_init__(self):
        n = len(self.predictors)
        for name in COLUMNS:
            if len(getattr(self, name)) != n:
                raise ValueError(
                    f"Column '{name}' has {len(getattr(self, name))} values, expected {n}"
                )

    @property
    def index(self) -> pd.Index:
        return pd.Index(self.predictors)

    @property
    def columns(self) -> list[str]:
        return list(COLUMNS)

    def __len__(self) -> int:
        return len(self.predictors)

    def __getitem__(self, column: str) -> pd.Series:
        if column not in COLUMNS:
            raise KeyError(column)
        return pd.Series(getattr(self, column), index=self.index, name=column)

    def to_frame(self) -> pd.DataFrame:
        """Convert to a DataFrame indexed by predictor."""
        return pd.DataFrame(
            {name: getattr(self, name) for name in COLUMNS},
            index=self.index,
        )

    @property
    def zscore(self) -> pd.Series:
        """Signed Z-scores ``coef / se``."""
        with np.errstate(divide="ignore", invalid="ignore"):
            return pd.Series(self.coef / self.se, index=self.index, name="zscore")


def compute_svd(
    x: Union[pd.DataFrame, np.ndarray],
    standardize: bool = True,
) -> SVDResult:
    """
    Thin SVD of a design matrix, optionally after column standardization.

    Args:
        x: Design matrix (observations x predictors).
        standardize: Standardize columns first.

    Returns:
        SVDResult.
    """
    xa = np.asarray(x, dtype=float)
    if standardize:
        xa, _, _ = scale_columns(xa)
    u, d, vt = np.linalg.svd(xa, full_matrices=False)
    return SVDResult(u=u, d=d, vt=vt)


def _predictor_names(
    x: Union[pd.DataFrame, np.ndarray],
    beta: Union[pd.Series, np.ndarray, Sequence[float]],
) -> tuple[str, ...]:
    if isinstance(x, pd.DataFrame):
        return tuple(str(c) for c in x.columns)
    if isinstance(beta, pd.Series):
        return tuple(str(i) for i in beta.index)
    return tuple(f"V{i + 1}" for i in range(np.shape(x)[1]))


def ridge_significance(
    x: Union[pd.DataFrame, np.ndarray],
    y: Union[pd.Series, np.ndarray],
    beta: Union[pd.Series, np.ndarray, Sequence[float]],
    lambda_: float,
    standardize_x: bool = True,
    svd: Optional[SVDResult] = None,
) -> SignificanceTable:
    """
    Standard errors, test statistics and p-values for ridge coefficients.

    Args:
        x: Design matrix used for the fit (observations x predictors).
        y: Response, already adjusted for any offset.
        beta: Fitted coefficients without the intercept.
        lambda_: Regularization strength at which ``beta`` was estimated.
        standardize_x: Standardize ``x`` columns before decomposition.
            Ignored when ``svd`` is given.
        svd: Precomputed decomposition of the (standardized) design, for
            repeated calls with the same ``x``.

    Returns:
        SignificanceTable indexed by predictor name.
    """
    predictors = _predictor_names(x, beta)
    y_arr = np.asarray(y, dtype=float).ravel()
    beta_arr = np.asarray(beta, dtype=float).ravel()
    n = y_arr.shape[0]

    if np.shape(x)[0] != n:
        raise ValueError(f"x has {np.shape(x)[0]} rows but y has {n} values")
    if beta_arr.shape[0] != len(predictors):
        raise ValueError(
            f"beta has {beta_arr.shape[0]} values but x has {len(predictors)} columns"
        )
    if not np.isfinite(lambda_) or lambda_ < 0:
        raise ValueError(f"lambda_ must be non-negative, got {lambda_}")

    if svd is None:
        svd = compute_svd(x, standardize=standardize_x)
    u, d, vt = svd

    d2 = d ** 2
    div = d2 + lambda_

    with np.errstate(divide="ignore", invalid="ignore"):
        # Residual variance with effective degrees of freedom
        fitted = u @ ((d2 / div) * (u.T @ y_arr))
        resid = y_arr - fitted
        sigma2 = float(resid @ resid) / (n - np.sum(d2 * (d2 + 2 * lambda_) / div ** 2))

        varmat = sigma2 * ((vt.T * (d2 / div ** 2)) @ vt)
        se = np.sqrt(np.diag(varmat))
        tstat = np.abs(beta_arr / se)
        pval = 2 * (1 - stats.norm.cdf(tstat))

    return SignificanceTable(
        predictors=predictors,
        coef=beta_arr,
        se=se,
        tstat=tstat,
        pval=pval,
    )
