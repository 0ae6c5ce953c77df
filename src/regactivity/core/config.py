"""
Pipeline configuration management.

Provides dataclass-based configuration with validation and serialization.
"""

from __future__ import annotations

from dataclasses import dataclass, field, asdict
from pathlib import Path
from typing import Optional, Literal, Any
import json
import os


@dataclass
class RidgeConfig:
    """Cross-validated ridge regression configuration."""

    nfolds: int = 10
    """Number of cross-validation folds."""

    n_lambda: int = 100
    """Length of the regularization path."""

    lambda_min_ratio: float = 1e-4
    """Smallest lambda on the path as a fraction of the largest."""

    seed: Optional[int] = None
    """Random seed for fold assignment (None for nondeterministic folds)."""

    def fit_options(self) -> dict[str, Any]:
        """Keyword arguments accepted by ``RidgeCV``."""
        return {
            "nfolds": self.nfolds,
            "n_lambda": self.n_lambda,
            "lambda_min_ratio": self.lambda_min_ratio,
            "seed": self.seed,
        }


@dataclass
class ParallelConfig:
    """Concurrency backend configuration."""

    backend: Literal["thread", "process"] = "thread"
    """Worker pool used when parallel execution is requested."""

    max_workers: Optional[int] = None
    """Maximum number of workers (None lets concurrent.futures decide)."""

    fail_fast: bool = True
    """Abort on the first failed work item instead of collecting failures."""


@dataclass
class CacheConfig:
    """Fitted-model caching configuration."""

    enabled: bool = False
    """Enable fitted-model caching."""

    cache_dir: Optional[Path] = None
    """Directory for cached models."""

    max_size_gb: float = 10.0
    """Maximum cache size in GB."""

    ttl_hours: float = 24 * 7
    """Time-to-live for cached models in hours."""


@dataclass
class Config:
    """
    Main pipeline configuration.

    Example:
        >>> config = Config(nfolds=5, seed=1234)
        >>> pipeline = Pipeline(config)
    """

    # Convenience shortcuts (these override sub-config values)
    standardize: bool = True
    """Column-standardize signature matrices before fitting."""

    nfolds: int = 10
    """Number of cross-validation folds."""

    seed: Optional[int] = 0
    """Random seed for reproducible cross-validation."""

    # Sub-configurations
    ridge: RidgeConfig = field(default_factory=RidgeConfig)
    parallel: ParallelConfig = field(default_factory=ParallelConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)

    # Output settings
    output_dir: Optional[Path] = None
    """Base output directory."""

    # Logging
    verbose: bool = False
    """Enable verbose logging."""

    log_file: Optional[Path] = None
    """Log file path."""

    def __post_init__(self):
        """Synchronize shortcut values with sub-configs."""
        self.ridge.nfolds = self.nfolds
        self.ridge.seed = self.seed

        if self.ridge.nfolds < 3:
            raise ValueError(f"nfolds must be at least 3, got {self.ridge.nfolds}")
        if self.parallel.backend not in ("thread", "process"):
            raise ValueError(f"Unknown parallel backend: {self.parallel.backend}")

        # Convert paths
        if self.output_dir is not None:
            self.output_dir = Path(self.output_dir)
        if self.cache.cache_dir is not None:
            self.cache.cache_dir = Path(self.cache.cache_dir)
        if self.log_file is not None:
            self.log_file = Path(self.log_file)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        d = asdict(self)
        # Convert Path objects to strings
        for key, value in d.items():
            if isinstance(value, Path):
                d[key] = str(value)
            elif isinstance(value, dict):
                for k, v in value.items():
                    if isinstance(v, Path):
                        d[key][k] = str(v)
        return d

    def to_json(self, path: Path | str) -> None:
        """Save configuration to JSON file."""
        path = Path(path)
        with open(path, "w") as f:
            json.dump(self.to_dict(), f, indent=2)

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> "Config":
        """Create from dictionary."""
        d = dict(d)
        # Handle nested configs
        if "ridge" in d and isinstance(d["ridge"], dict):
            d["ridge"] = RidgeConfig(**d["ridge"])
        if "parallel" in d and isinstance(d["parallel"], dict):
            d["parallel"] = ParallelConfig(**d["parallel"])
        if "cache" in d and isinstance(d["cache"], dict):
            d["cache"] = CacheConfig(**d["cache"])
        return cls(**d)

    @classmethod
    def from_json(cls, path: Path | str) -> "Config":
        """Load configuration from JSON file."""
        path = Path(path)
        with open(path) as f:
            d = json.load(f)
        return cls.from_dict(d)

    @classmethod
    def from_env(cls) -> "Config":
        """Create configuration from environment variables."""
        seed = os.getenv("REGACTIVITY_SEED", "0")
        workers = os.getenv("REGACTIVITY_MAX_WORKERS")
        cache_dir = os.getenv("REGACTIVITY_CACHE_DIR")
        return cls(
            nfolds=int(os.getenv("REGACTIVITY_NFOLDS", "10")),
            seed=None if seed.lower() == "none" else int(seed),
            parallel=ParallelConfig(
                backend=os.getenv("REGACTIVITY_PARALLEL_BACKEND", "thread"),
                max_workers=int(workers) if workers else None,
            ),
            cache=CacheConfig(enabled=cache_dir is not None, cache_dir=cache_dir),
            verbose=os.getenv("REGACTIVITY_VERBOSE", "").lower() in ("1", "true", "yes"),
        )
