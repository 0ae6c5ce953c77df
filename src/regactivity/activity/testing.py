"""
Significance testing across the signature x sample grid.

The design (signature matrix) is shared by all samples of a signature, so
its SVD is computed once per signature and reused for every sample.
"""

from __future__ import annotations

import functools
import logging
from typing import Mapping, Optional

import pandas as pd

from regactivity.activity.fitting import align_features, offset_for_sample
from regactivity.activity.parallel import GridExecutor
from regactivity.activity.ridge_cv import FittedModel
from regactivity.activity.significance import (
    SignificanceTable,
    SVDResult,
    compute_svd,
    ridge_significance,
)

logger = logging.getLogger(__name__)


def _test_pair(
    x: pd.DataFrame,
    y: pd.Series,
    model: FittedModel,
    svd: SVDResult,
) -> SignificanceTable:
    lambda_ = model.lambda_min
    beta = model.coef(lambda_).iloc[1:]  # drop intercept
    if [str(i) for i in beta.index] != [str(c) for c in x.columns]:
        raise ValueError("model coefficients do not match signature columns")
    return ridge_significance(
        x=x,
        y=y,
        beta=beta.to_numpy(),
        lambda_=lambda_,
        standardize_x=False,
        svd=svd,
    )


class SignificanceRunner:
    """
    Computes significance tables for every fitted (signature, sample) pair.

    Example:
        >>> runner = SignificanceRunner()
        >>> tables = runner.test_all({"remap": remap}, expression, basal, groups,
        ...                          standardize=True, models=models)
        >>> tables["remap"]["24hr_rep1"].to_frame()
    """

    def __init__(self, executor: Optional[GridExecutor] = None):
        """
        Args:
            executor: Grid executor (serial by default).
        """
        self.executor = executor or GridExecutor()

    def test_all(
        self,
        signatures: Mapping[str, pd.DataFrame],
        expression: pd.DataFrame,
        offset: pd.DataFrame,
        groups: pd.Series,
        standardize: bool,
        models: Mapping[str, Mapping[str, FittedModel]],
    ) -> dict[str, dict[str, SignificanceTable]]:
        """
        Test all fitted models.

        Args:
            signatures: Signature matrices (features x predictors) by name.
            expression: Expression matrix (features x samples).
            offset: Basal expression (per-sample columns or one column).
            groups: Group assignment; its index gives the samples.
            standardize: Whether models were fit on standardized signatures.
            models: Fitted models ``{signature: {sample: model}}``.

        Returns:
            ``{signature: {sample: SignificanceTable}}``.
        """
        samples = list(groups.index)

        aligned = {
            name: align_features(signature, expression.index, name)
            for name, signature in signatures.items()
        }
        svds = {
            name: compute_svd(x, standardize=standardize)
            for name, x in aligned.items()
        }

        tasks = {}
        for name, x in aligned.items():
            for sample in samples:
                y = expression[sample] - offset_for_sample(offset, sample)
                tasks[(name, sample)] = functools.partial(
                    _test_pair, x, y, models[name][sample], svds[name]
                )

        logger.info("Testing significance for %d model(s)", len(tasks))
        return self.executor.run(tasks)


def test_all(
    signatures: Mapping[str, pd.DataFrame],
    expression: pd.DataFrame,
    offset: pd.DataFrame,
    groups: pd.Series,
    standardize: bool,
    models: Mapping[str, Mapping[str, FittedModel]],
    executor: Optional[GridExecutor] = None,
) -> dict[str, dict[str, SignificanceTable]]:
    """
    Convenience function for grid-wide significance testing.

    See ``SignificanceRunner.test_all``.
    """
    runner = SignificanceRunner(executor)
    return runner.test_all(signatures, expression, offset, groups, standardize, models)


# Keep pytest from collecting the module-level helper when imported in tests
test_all.__test__ = False
