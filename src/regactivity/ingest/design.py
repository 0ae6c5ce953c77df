"""
Experiment design handling.

A design matrix has samples as rows and groups as columns. Each row is
either one-hot (the sample belongs to that group) or all zeros (the sample
is excluded from modelling).
"""

from __future__ import annotations

from typing import Iterable, Mapping, Optional

import numpy as np
import pandas as pd

from regactivity.core.errors import DesignShapeViolationError, TypeMismatchError

# Result table columns that sit next to the per-group columns
RESERVED_GROUP_NAMES = ("name", "z_score")


def _design_values(design: pd.DataFrame) -> np.ndarray:
    try:
        return design.to_numpy(dtype=float)
    except (TypeError, ValueError) as e:
        raise TypeMismatchError("design must contain numeric 0/1 values") from e


def validate_design(
    design: pd.DataFrame,
    samples: Optional[Iterable[str]] = None,
) -> None:
    """
    Check that a design matrix is one-hot-or-empty per row.

    Args:
        design: Design matrix (samples x groups).
        samples: Expression sample names that must all be present as
            design rows, and that every assigned sample must belong to.

    Raises:
        TypeMismatchError: If ``design`` is not a numeric DataFrame.
        DesignShapeViolationError: If any structural condition fails.
    """
    if not isinstance(design, pd.DataFrame):
        raise TypeMismatchError("design must be a DataFrame")
    if design.index.has_duplicates:
        raise DesignShapeViolationError("design rownames must be unique")
    if design.columns.has_duplicates:
        raise DesignShapeViolationError("design group names must be unique")
    reserved = [g for g in design.columns if g in RESERVED_GROUP_NAMES]
    if reserved:
        raise DesignShapeViolationError(
            f"design group names can not be {reserved}, they label result columns"
        )

    if samples is not None:
        samples = list(samples)
        if not all(s in design.index for s in samples):
            raise DesignShapeViolationError(
                "design rownames must correspond to expression columns"
            )

    values = _design_values(design)
    if np.isnan(values).any() or not np.isin(values, (0.0, 1.0)).all():
        raise DesignShapeViolationError("design entries must be 0 or 1")

    row_sums = values.sum(axis=1)
    if not np.all((row_sums == 0) | (row_sums == 1)):
        raise DesignShapeViolationError(
            "each sample in design can be assigned only to one group"
        )
    if row_sums.sum() <= 0:
        raise DesignShapeViolationError(
            "at least one sample in design must be assigned to a group"
        )

    if samples is not None:
        assigned = design.index[row_sums == 1]
        sample_set = set(samples)
        if not all(s in sample_set for s in assigned):
            raise DesignShapeViolationError(
                "design try to use samples not included in expression"
            )


def design_to_groups(design: pd.DataFrame) -> pd.Series:
    """
    Convert a design matrix into a group assignment.

    Rows with exactly one active group are kept, in design row order.
    Categories follow the design column order, restricted to groups that
    have at least one sample.

    Args:
        design: Validated design matrix (samples x groups).

    Returns:
        Categorical Series indexed by sample name.
    """
    values = _design_values(design)
    keep = values.sum(axis=1) == 1
    labels = [design.columns[j] for j in values[keep].argmax(axis=1)]
    used = set(labels)
    levels = [g for g in design.columns if g in used]

    return pd.Series(
        pd.Categorical(labels, categories=levels),
        index=pd.Index(design.index[keep], name="sample"),
        name="group",
    )


def design_from_labels(
    labels: Mapping[str, Optional[str]],
    levels: Optional[list[str]] = None,
) -> pd.DataFrame:
    """
    Build a one-hot design matrix from a sample -> group mapping.

    Args:
        labels: Group label per sample; ``None`` leaves the sample unassigned.
        levels: Group (column) order. Defaults to first-appearance order.

    Returns:
        Design matrix (samples x groups) of 0/1 integers.
    """
    if levels is None:
        levels = []
        for label in labels.values():
            if label is not None and label not in levels:
                levels.append(label)

    unknown = {g for g in labels.values() if g is not None} - set(levels)
    if unknown:
        raise ValueError(f"Labels not in levels: {sorted(unknown)}")

    design = pd.DataFrame(0, index=list(labels.keys()), columns=list(levels), dtype=int)
    for sample, label in labels.items():
        if label is not None:
            design.loc[sample, label] = 1
    return design
