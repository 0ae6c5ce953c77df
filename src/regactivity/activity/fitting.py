"""
Ridge regression across the signature x sample grid.

One cross-validated ridge model is fit per (signature, sample) pair: the
signature's predictor columns against the sample's expression, with the
basal expression as a fixed offset.
"""

from __future__ import annotations

import functools
import logging
import time
from typing import Any, Mapping, Optional

import pandas as pd

from regactivity.activity.parallel import GridExecutor
from regactivity.activity.ridge_cv import CVRidgeModel, FittedModel, RidgeCV
from regactivity.core.errors import IdentifierConflictError

logger = logging.getLogger(__name__)


def align_features(
    signature: pd.DataFrame,
    features: pd.Index,
    name: str = "signature",
) -> pd.DataFrame:
    """Reorder signature rows to match the expression features."""
    if signature.index.equals(features):
        return signature
    missing = features.difference(signature.index)
    if len(missing) > 0:
        raise IdentifierConflictError(
            f"{name} is missing {len(missing)} expression features"
        )
    return signature.loc[features]


def offset_for_sample(offset: pd.DataFrame, sample: str) -> pd.Series:
    """
    Offset column for a sample.

    Uses the sample's own column when present; a single-column offset is a
    shared baseline applied to every sample.
    """
    if sample in offset.columns:
        return offset[sample]
    if offset.shape[1] == 1:
        return offset.iloc[:, 0]
    raise IdentifierConflictError(
        f"offset has no column for sample '{sample}' and is not a single baseline column"
    )


def _fit_pair(
    x: pd.DataFrame,
    y: pd.Series,
    offset: pd.Series,
    solver: RidgeCV,
) -> CVRidgeModel:
    return solver.fit(x, y, offset)


class RegressionRunner:
    """
    Fits ridge models for every (signature, sample) pair.

    Example:
        >>> runner = RegressionRunner(GridExecutor(backend="thread"))
        >>> models = runner.fit_all(
        ...     {"remap": remap}, expression, basal, groups, nfolds=5, seed=1
        ... )
        >>> models["remap"]["24hr_rep1"].lambda_min
    """

    def __init__(self, executor: Optional[GridExecutor] = None):
        """
        Args:
            executor: Grid executor (serial by default).
        """
        self.executor = executor or GridExecutor()

    def fit_all(
        self,
        signatures: Mapping[str, pd.DataFrame],
        expression: pd.DataFrame,
        offset: pd.DataFrame,
        groups: pd.Series,
        standardize: bool = True,
        precomputed: Optional[Mapping[str, Mapping[str, FittedModel]]] = None,
        **fit_options: Any,
    ) -> dict[str, dict[str, FittedModel]]:
        """
        Fit all models.

        Args:
            signatures: Signature matrices (features x predictors) by name.
            expression: Expression matrix (features x samples).
            offset: Basal expression (per-sample columns or one column).
            groups: Group assignment; its index gives the samples to model.
            standardize: Standardize signature columns.
            precomputed: Models to reuse, ``{signature: {sample: model}}``.
            **fit_options: Passed to ``RidgeCV`` (nfolds, n_lambda,
                lambda_min_ratio, lambdas, seed).

        Returns:
            ``{signature: {sample: model}}`` in signature then group order.
        """
        samples = list(groups.index)
        solver = RidgeCV(standardize=standardize, **fit_options)
        precomputed = precomputed or {}

        tasks = {}
        reused: dict[tuple[str, str], FittedModel] = {}
        for name, signature in signatures.items():
            x = align_features(signature, expression.index, name)
            available = precomputed.get(name, {})
            for sample in samples:
                if sample in available:
                    reused[(name, sample)] = available[sample]
                    continue
                tasks[(name, sample)] = functools.partial(
                    _fit_pair,
                    x,
                    expression[sample],
                    offset_for_sample(offset, sample),
                    solver,
                )

        logger.info(
            "Fitting %d ridge models (%d reused) for %d signature(s) x %d sample(s)",
            len(tasks), len(reused), len(signatures), len(samples),
        )
        start = time.time()
        fitted = self.executor.run(tasks)
        logger.debug("Ridge fits finished in %.1fs", time.time() - start)

        models: dict[str, dict[str, FittedModel]] = {}
        for name in signatures:
            models[name] = {}
            for sample in samples:
                if (name, sample) in reused:
                    models[name][sample] = reused[(name, sample)]
                else:
                    models[name][sample] = fitted[name][sample]

        return models


def fit_all(
    signatures: Mapping[str, pd.DataFrame],
    expression: pd.DataFrame,
    offset: pd.DataFrame,
    groups: pd.Series,
    standardize: bool = True,
    precomputed: Optional[Mapping[str, Mapping[str, FittedModel]]] = None,
    executor: Optional[GridExecutor] = None,
    **fit_options: Any,
) -> dict[str, dict[str, FittedModel]]:
    """
    Convenience function for grid-wide ridge fitting.

    See ``RegressionRunner.fit_all``.
    """
    runner = RegressionRunner(executor)
    return runner.fit_all(
        signatures,
        expression,
        offset,
        groups,
        standardize=standardize,
        precomputed=precomputed,
        **fit_options,
    )
