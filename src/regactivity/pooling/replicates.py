"""
Pooling of per-sample estimates across replicates.

Replicates of a group are combined by inverse-variance weighting:

    w_i = 1 / se_i^2
    mean_g = sum(coef_i w_i) / sum(w_i)
    se_g = sqrt(1 / sum(w_i))
    z_g = mean_g / se_g
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping, Sequence, Union

import numpy as np
import pandas as pd

from regactivity.activity.significance import SignificanceTable
from regactivity.core.errors import TypeMismatchError
from regactivity.pooling.combine import fisher_combine

TableLike = Union[SignificanceTable, pd.DataFrame]


@dataclass
class PooledStatistics:
    """Group-level statistics for one signature."""

    zscore: pd.DataFrame
    """Variance-weighted Z-scores (predictors x groups)."""

    coef: pd.DataFrame
    """Variance-weighted mean coefficients (predictors x groups)."""

    se: pd.DataFrame
    """Pooled standard errors (predictors x groups)."""

    n_replicates: pd.Series
    """Number of samples per group."""


class ReplicatePooler:
    """
    Inverse-variance pooling of replicate significance tables.

    Columns of every output follow the category order of the group
    assignment.

    Example:
        >>> pooler = ReplicatePooler()
        >>> pooled = pooler.pool(tables["remap"], groups)
        >>> pooled.zscore["24hr"].sort_values()
    """

    def pool(
        self,
        tables: Union[Mapping[str, TableLike], Sequence[TableLike]],
        groups: pd.Series,
    ) -> PooledStatistics:
        """
        Pool coefficients and standard errors per group.

        Args:
            tables: Significance tables keyed by sample name (or a sequence
                in the order of ``groups``), each with ``coef`` and ``se``.
            groups: Categorical group assignment indexed by sample name.

        Returns:
            PooledStatistics.
        """
        frames = self._validate(tables, groups, required=("coef", "se"))
        estimate = self._stack(frames, "coef")
        with np.errstate(divide="ignore"):
            weights = 1 / self._stack(frames, "se") ** 2

        means = {}
        ses = {}
        for group in groups.cat.categories:
            members = list(groups.index[groups == group])
            if len(members) == 1:
                # Single replicate keeps its own estimate and error exactly
                sample = members[0]
                means[group] = estimate[sample]
                ses[group] = frames[sample]["se"]
                continue
            w = weights[members]
            total = w.sum(axis=1, skipna=False)
            means[group] = (estimate[members] * w).sum(axis=1, skipna=False) / total
            with np.errstate(divide="ignore"):
                ses[group] = np.sqrt(1 / total)

        coef = self._frame(means, estimate.index, groups)
        se = self._frame(ses, estimate.index, groups)
        with np.errstate(divide="ignore", invalid="ignore"):
            zscore = coef / se

        return PooledStatistics(
            zscore=zscore,
            coef=coef,
            se=se,
            n_replicates=groups.value_counts(sort=False).reindex(groups.cat.categories),
        )

    def zscores(self, tables, groups: pd.Series) -> pd.DataFrame:
        """Variance-weighted Z-scores (predictors x groups)."""
        return self.pool(tables, groups).zscore

    def coefficients(self, tables, groups: pd.Series) -> pd.DataFrame:
        """Variance-weighted mean coefficients (predictors x groups)."""
        return self.pool(tables, groups).coef

    def pvalues(self, tables, groups: pd.Series) -> pd.DataFrame:
        """
        Fisher-combined replicate p-values per group (linear scale).

        Groups with a single sample carry that sample's own p-value.
        """
        frames = self._validate(tables, groups, required=("pval",))
        pval = self._stack(frames, "pval")

        combined = {}
        for group in groups.cat.categories:
            members = list(groups.index[groups == group])
            if len(members) == 1:
                combined[group] = pval[members[0]]
                continue
            values = pval[members].to_numpy()
            combined[group] = pd.Series(
                [fisher_combine(row, log_p=False) for row in values],
                index=pval.index,
            )

        return self._frame(combined, pval.index, groups)

    @staticmethod
    def _as_frame(table: TableLike) -> pd.DataFrame:
        if isinstance(table, SignificanceTable):
            return table.to_frame()
        if isinstance(table, pd.DataFrame):
            return table
        raise TypeMismatchError(
            "tables elements must be SignificanceTable or DataFrame instances"
        )

    def _validate(
        self,
        tables: Union[Mapping[str, TableLike], Sequence[TableLike]],
        groups: pd.Series,
        required: tuple[str, ...],
    ) -> dict[str, pd.DataFrame]:
        if not isinstance(groups, pd.Series) or not isinstance(groups.dtype, pd.CategoricalDtype):
            raise TypeMismatchError("groups must be a categorical Series")
        if len(groups) != len(tables):
            raise ValueError("groups length must equal number of tables")
        if set(groups.cat.categories) - set(groups.dropna()):
            raise ValueError("groups must not have unused levels")

        if isinstance(tables, Mapping):
            missing = [s for s in groups.index if s not in tables]
            if missing:
                raise ValueError(f"No table for samples: {missing}")
            frames = {s: self._as_frame(tables[s]) for s in groups.index}
        else:
            frames = {s: self._as_frame(t) for s, t in zip(groups.index, tables)}

        columns = " and ".join(f"'{c}'" for c in required)
        for frame in frames.values():
            if not all(c in frame.columns for c in required):
                raise ValueError(f"tables must have {columns} columns")

        first = next(iter(frames.values())).index
        for frame in frames.values():
            if not frame.index.equals(first):
                raise ValueError("tables must share the same predictors in the same order")

        return frames

    @staticmethod
    def _stack(frames: Mapping[str, pd.DataFrame], column: str) -> pd.DataFrame:
        return pd.DataFrame({sample: frame[column] for sample, frame in frames.items()})

    @staticmethod
    def _frame(columns: dict, index: pd.Index, groups: pd.Series) -> pd.DataFrame:
        frame = pd.DataFrame(
            {group: pd.Series(values, index=index) for group, values in columns.items()},
            index=index,
        )
        return frame.reindex(columns=list(groups.cat.categories))


def pool_group_statistics(
    tables: Union[Mapping[str, TableLike], Sequence[TableLike]],
    groups: pd.Series,
) -> PooledStatistics:
    """
    Convenience function for replicate pooling.

    See ``ReplicatePooler.pool``.
    """
    return ReplicatePooler().pool(tables, groups)
