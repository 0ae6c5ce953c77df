"""
Core infrastructure for regactivity.

Provides:
- Configuration management
- Error types
- Logging setup
- Fitted-model caching
"""

from regactivity.core.config import (
    Config,
    RidgeConfig,
    ParallelConfig,
    CacheConfig,
)
from regactivity.core.errors import (
    RegActivityError,
    TypeMismatchError,
    IdentifierConflictError,
    DegenerateSignatureError,
    DesignShapeViolationError,
    IncompatiblePrecomputedModelError,
    FitError,
    GridExecutionError,
    check_flag,
)
from regactivity.core.log import setup_logging
from regactivity.core.cache import ModelCache

__all__ = [
    "Config",
    "RidgeConfig",
    "ParallelConfig",
    "CacheConfig",
    "RegActivityError",
    "TypeMismatchError",
    "IdentifierConflictError",
    "DegenerateSignatureError",
    "DesignShapeViolationError",
    "IncompatiblePrecomputedModelError",
    "FitError",
    "GridExecutionError",
    "check_flag",
    "setup_logging",
    "ModelCache",
]
