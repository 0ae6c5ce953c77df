"""
Named, row-aligned assay container.

An ``AssayBundle`` holds the expression matrix, the offset (basal
expression) matrix and one or more signature matrices, all indexed by the
same features, plus free-form metadata such as the experiment design.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterator, Mapping

import pandas as pd

from regactivity.core.errors import IdentifierConflictError, TypeMismatchError


@dataclass
class AssayBundle:
    """Feature-aligned assays keyed by name.

    All assays are reindexed to the feature order of the first assay.

    Example:
        >>> bundle = AssayBundle(
        ...     {"Y": expression, "U": basal, "remap": signature},
        ...     metadata={"design": design},
        ... )
        >>> bundle["remap"].shape
    """

    assays: dict[str, pd.DataFrame]
    """Assays (features x columns) keyed by name."""

    metadata: dict[str, Any] = field(default_factory=dict)
    """Bundle-level metadata (e.g. ``"design"``)."""

    def __post_init__(self):
        if not isinstance(self.assays, Mapping):
            raise TypeMismatchError("assays must be a mapping of name to DataFrame")

        assays = dict(self.assays)
        reference = None
        for name, assay in assays.items():
            if not isinstance(name, str):
                raise TypeMismatchError(f"Assay names must be strings, got {name!r}")
            if not isinstance(assay, pd.DataFrame):
                raise TypeMismatchError(f"Assay '{name}' must be a pandas DataFrame")
            if assay.index.has_duplicates:
                raise IdentifierConflictError(f"Assay '{name}' has duplicated feature names")
            if reference is None:
                reference = assay.index
            elif not assay.index.equals(reference):
                if set(assay.index) != set(reference):
                    raise IdentifierConflictError(
                        f"Assay '{name}' features are not aligned with the other assays"
                    )
                assays[name] = assay.loc[reference]

        self.assays = assays

    def __getitem__(self, name: str) -> pd.DataFrame:
        return self.assays[name]

    def __contains__(self, name: object) -> bool:
        return name in self.assays

    def __iter__(self) -> Iterator[str]:
        return iter(self.assays)

    def __len__(self) -> int:
        return len(self.assays)

    def names(self) -> list[str]:
        """Assay names in insertion order."""
        return list(self.assays.keys())

    @property
    def features(self) -> pd.Index:
        """Shared feature index."""
        if not self.assays:
            return pd.Index([])
        return next(iter(self.assays.values())).index

    def with_assay(self, name: str, assay: pd.DataFrame) -> "AssayBundle":
        """Return a new bundle with ``name`` added or replaced."""
        assays = dict(self.assays)
        assays[name] = assay
        return AssayBundle(assays, metadata=dict(self.metadata))

    def select_samples(self, name: str, samples: list[str]) -> "AssayBundle":
        """Return a new bundle keeping only ``samples`` columns of assay ``name``."""
        missing = [s for s in samples if s not in self.assays[name].columns]
        if missing:
            raise IdentifierConflictError(
                f"Samples not found in assay '{name}': {missing}"
            )
        return self.with_assay(name, self.assays[name].loc[:, list(samples)])
