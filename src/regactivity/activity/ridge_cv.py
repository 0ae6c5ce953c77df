"""
Cross-validated ridge regression.

Wraps scikit-learn's ``Ridge`` and ``GridSearchCV`` into a solver that
mirrors the behaviour activity inference needs from a regression backend:
a regularization path, K-fold cross-validation error along it, the
minimal-error lambda, and coefficient extraction at any lambda.

The penalized objective is ``||y - offset - b0 - X b||^2 + lambda ||b||^2``,
the same parameterization the closed-form significance test assumes.
"""

from __future__ import annotations

from typing import Optional, Protocol, Sequence, Union, runtime_checkable

import numpy as np
import pandas as pd
from sklearn.linear_model import Ridge
from sklearn.model_selection import GridSearchCV, KFold

from regactivity.activity.scaling import scale_columns

INTERCEPT = "(Intercept)"


@runtime_checkable
class FittedModel(Protocol):
    """Capabilities the pipeline needs from a fitted regression model."""

    feature_names: list[str]
    lambda_min: float

    def coef(self, s: Union[str, float] = "lambda_min") -> pd.Series:
        """Intercept followed by coefficients at regularization ``s``."""
        ...


class CVRidgeModel:
    """
    Result of one cross-validated ridge fit.

    Keeps the centred cross-products of the (possibly standardized) design
    rather than the design itself, so coefficients can be solved at any
    lambda while the model stays ``O(p^2)`` in size.
    """

    def __init__(
        self,
        xtx: np.ndarray,
        xty: np.ndarray,
        x_mean: np.ndarray,
        y_mean: float,
        n_obs: int,
        feature_names: list[str],
        lambdas: np.ndarray,
        cv_mean: np.ndarray,
        cv_std: np.ndarray,
        nfolds: int,
        center: Optional[np.ndarray] = None,
        scale: Optional[np.ndarray] = None,
    ):
        """
        Args:
            xtx: Centred Gram matrix of the fitted design (p x p).
            xty: Centred design times centred response (p).
            x_mean: Column means of the fitted design.
            y_mean: Mean of the offset-adjusted response.
            n_obs: Number of observations.
            feature_names: Predictor names.
            lambdas: Regularization path (decreasing).
            cv_mean: Mean cross-validated MSE per lambda.
            cv_std: Standard error of the CV MSE per lambda.
            nfolds: Number of folds used.
            center: Column means removed before fitting (if standardized).
            scale: Column standard deviations divided out (if standardized).
        """
        self.xtx = np.asarray(xtx, dtype=float)
        self.xty = np.asarray(xty, dtype=float)
        self.x_mean = np.asarray(x_mean, dtype=float)
        self.y_mean = float(y_mean)
        self.n_obs = int(n_obs)
        self.feature_names = list(feature_names)
        self.lambdas = np.asarray(lambdas, dtype=float)
        self.cv_mean = np.asarray(cv_mean, dtype=float)
        self.cv_std = np.asarray(cv_std, dtype=float)
        self.nfolds = nfolds
        self.center = center
        self.scale = scale
        self._coef_cache: dict[float, pd.Series] = {}

        # Largest lambda reaching the minimal CV error
        best = np.nanmin(self.cv_mean)
        self.lambda_min = float(np.max(self.lambdas[self.cv_mean <= best]))
        threshold = best + self.cv_std[self.lambdas == self.lambda_min][0]
        self.lambda_1se = float(np.max(self.lambdas[self.cv_mean <= threshold]))

    @property
    def standardized(self) -> bool:
        return self.scale is not None

    def _resolve_lambda(self, s: Union[str, float]) -> float:
        if isinstance(s, str):
            if s not in ("lambda_min", "lambda_1se"):
                raise ValueError(f"Unknown lambda selector: {s}")
            return getattr(self, s)
        s = float(s)
        if not np.isfinite(s) or s <= 0:
            raise ValueError(f"lambda must be positive, got {s}")
        return s

    def coef(
        self,
        s: Union[str, float] = "lambda_min",
        original_scale: bool = False,
    ) -> pd.Series:
        """
        Coefficients at a regularization strength.

        Solves ``(X'X + lambda I) b = X'y`` on the centred cross-products;
        the intercept restores the means.

        Args:
            s: ``"lambda_min"``, ``"lambda_1se"`` or a positive lambda.
            original_scale: Back-transform coefficients of a standardized
                fit to the units of the unscaled predictors.

        Returns:
            Series with the intercept first, then one entry per predictor.
        """
        lam = self._resolve_lambda(s)
        if lam not in self._coef_cache:
            penalized = self.xtx + lam * np.eye(self.xtx.shape[0])
            beta = np.linalg.solve(penalized, self.xty)
            intercept = self.y_mean - float(self.x_mean @ beta)
            self._coef_cache[lam] = pd.Series(
                np.concatenate([[intercept], beta]),
                index=[INTERCEPT] + self.feature_names,
            )

        coefs = self._coef_cache[lam].copy()
        if original_scale and self.standardized:
            beta = coefs.iloc[1:] / self.scale
            coefs.iloc[1:] = beta.to_numpy()
            coefs.iloc[0] = coefs.iloc[0] - float(np.sum(beta.to_numpy() * self.center))
        return coefs

    def cv_curve(self) -> pd.DataFrame:
        """Cross-validation error along the lambda path."""
        return pd.DataFrame({
            "lambda": self.lambdas,
            "cv_mean": self.cv_mean,
            "cv_std": self.cv_std,
        })

    def __repr__(self) -> str:
        return (
            f"CVRidgeModel(n_obs={self.n_obs}, n_features={len(self.feature_names)}, "
            f"lambda_min={self.lambda_min:.6g}, nfolds={self.nfolds})"
        )


class RidgeCV:
    """
    Ridge regression with K-fold cross-validated lambda selection.

    Example:
        >>> solver = RidgeCV(nfolds=5, seed=1234)
        >>> model = solver.fit(signature, expression["24hr_rep1"], basal)
        >>> model.lambda_min
        >>> model.coef("lambda_min")
    """

    def __init__(
        self,
        nfolds: int = 10,
        n_lambda: int = 100,
        lambda_min_ratio: float = 1e-4,
        lambdas: Optional[Sequence[float]] = None,
        standardize: bool = True,
        seed: Optional[int] = None,
    ):
        """
        Initialize solver.

        Args:
            nfolds: Number of cross-validation folds (at least 3).
            n_lambda: Length of the automatically generated path.
            lambda_min_ratio: Smallest path value relative to the largest.
            lambdas: Explicit lambda path, overrides the generated one.
            standardize: Standardize predictor columns before fitting.
            seed: Random seed for fold assignment.
        """
        if nfolds < 3:
            raise ValueError(f"nfolds must be at least 3, got {nfolds}")
        if n_lambda < 1:
            raise ValueError(f"n_lambda must be positive, got {n_lambda}")
        if not 0 < lambda_min_ratio < 1:
            raise ValueError(f"lambda_min_ratio must be in (0, 1), got {lambda_min_ratio}")
        if lambdas is not None and np.any(np.asarray(lambdas, dtype=float) <= 0):
            raise ValueError("lambdas must be positive")

        self.nfolds = nfolds
        self.n_lambda = n_lambda
        self.lambda_min_ratio = lambda_min_ratio
        self.lambdas = lambdas
        self.standardize = standardize
        self.seed = seed

    def lambda_path(self, x: np.ndarray, y: np.ndarray) -> np.ndarray:
        """Decreasing regularization path for design ``x`` and response ``y``."""
        if self.lambdas is not None:
            return np.sort(np.asarray(self.lambdas, dtype=float))[::-1]

        centered = y - y.mean()
        # Near-ridge limit of the lasso entry point
        lambda_max = float(np.max(np.abs(x.T @ centered))) / 1e-3
        if not np.isfinite(lambda_max) or lambda_max <= 0:
            lambda_max = 1.0
        return np.geomspace(lambda_max, lambda_max * self.lambda_min_ratio, self.n_lambda)

    def fit(
        self,
        x: Union[pd.DataFrame, np.ndarray],
        y: Union[pd.Series, np.ndarray],
        offset: Optional[Union[pd.Series, np.ndarray]] = None,
    ) -> CVRidgeModel:
        """
        Fit the model.

        Args:
            x: Predictors (observations x predictors).
            y: Response.
            offset: Fixed per-observation term subtracted from ``y``.

        Returns:
            CVRidgeModel.
        """
        if isinstance(x, pd.DataFrame):
            feature_names = [str(c) for c in x.columns]
        else:
            feature_names = [f"V{i + 1}" for i in range(np.shape(x)[1])]

        xa = np.asarray(x, dtype=float)
        ya = np.asarray(y, dtype=float).ravel()
        if xa.shape[0] != ya.shape[0]:
            raise ValueError(
                f"x has {xa.shape[0]} rows but y has {ya.shape[0]} values"
            )
        if offset is not None:
            off = np.asarray(offset, dtype=float).ravel()
            if off.shape[0] != ya.shape[0]:
                raise ValueError(
                    f"offset has {off.shape[0]} values but y has {ya.shape[0]}"
                )
            ya = ya - off

        center = scale = None
        if self.standardize:
            xa, center, scale = scale_columns(xa)

        lambdas = self.lambda_path(xa, ya)
        search = GridSearchCV(
            Ridge(fit_intercept=True),
            param_grid={"alpha": list(lambdas)},
            scoring="neg_mean_squared_error",
            cv=KFold(n_splits=self.nfolds, shuffle=True, random_state=self.seed),
            refit=False,
            error_score="raise",
        )
        search.fit(xa, ya)

        cv_mean = -np.asarray(search.cv_results_["mean_test_score"], dtype=float)
        cv_std = np.asarray(search.cv_results_["std_test_score"], dtype=float) / np.sqrt(self.nfolds)

        x_mean = xa.mean(axis=0)
        y_mean = float(ya.mean())
        xc = xa - x_mean

        return CVRidgeModel(
            xtx=xc.T @ xc,
            xty=xc.T @ (ya - y_mean),
            x_mean=x_mean,
            y_mean=y_mean,
            n_obs=xa.shape[0],
            feature_names=feature_names,
            lambdas=lambdas,
            cv_mean=cv_mean,
            cv_std=cv_std,
            nfolds=self.nfolds,
            center=center,
            scale=scale,
        )
