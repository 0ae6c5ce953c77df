"""
Exception hierarchy for regactivity.

Every precondition violation raised by the pipeline derives from
``RegActivityError`` and from the matching builtin (``TypeError``,
``ValueError`` or ``RuntimeError``), so callers can catch either.
"""

from __future__ import annotations

from typing import Any, Optional

import numpy as np


class RegActivityError(Exception):
    """Base class for all regactivity errors."""


class TypeMismatchError(RegActivityError, TypeError):
    """An argument is not of the expected kind."""


class IdentifierConflictError(RegActivityError, ValueError):
    """Assay names overlap or are missing from the input bundle."""


class DegenerateSignatureError(RegActivityError, ValueError):
    """A signature matrix has a zero variance column."""


class DesignShapeViolationError(RegActivityError, ValueError):
    """The design matrix is not one-hot-or-empty per sample."""


class IncompatiblePrecomputedModelError(RegActivityError, ValueError):
    """A precomputed model does not match its signature matrix."""


class FitError(RegActivityError, RuntimeError):
    """A single (signature, sample) work item failed."""

    def __init__(self, signature: str, sample: str, cause: BaseException):
        self.signature = signature
        self.sample = sample
        self.cause = cause
        super().__init__(
            f"Failed on signature '{signature}', sample '{sample}': "
            f"{type(cause).__name__}: {cause}"
        )


class GridExecutionError(RegActivityError, RuntimeError):
    """One or more work items of a grid run failed."""

    def __init__(
        self,
        failures: list[FitError],
        partial: Optional[dict[str, dict[str, Any]]] = None,
    ):
        self.failures = failures
        self.partial = partial or {}
        pairs = ", ".join(f"{f.signature}/{f.sample}" for f in failures)
        super().__init__(f"{len(failures)} work item(s) failed: {pairs}")


def check_flag(value: Any, name: str) -> None:
    """Raise ``TypeMismatchError`` unless ``value`` is a single boolean."""
    if not isinstance(value, (bool, np.bool_)):
        raise TypeMismatchError(f"{name} must be True or False")
