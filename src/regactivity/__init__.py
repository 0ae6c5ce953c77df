"""
regactivity - Regulator Activity Estimation from Expression Signatures.

This package provides:
- Cross-validated ridge regression of expression on binary signatures
- Closed-form ridge coefficient significance
- Replicate pooling (inverse-variance weighting, Stouffer, Fisher)

Example:
    >>> from regactivity import AssayBundle, Config, Pipeline
    >>>
    >>> bundle = AssayBundle(
    ...     {"Y": expression, "U": basal, "remap": remap},
    ...     metadata={"design": design},
    ... )
    >>> pipeline = Pipeline(Config(nfolds=5, seed=1234))
    >>> result = pipeline.run(bundle, xnames=["remap"])
    >>> result.results["remap"].head()
"""

__version__ = "0.1.0"

# Core infrastructure
from regactivity.core.config import Config, RidgeConfig, ParallelConfig, CacheConfig
from regactivity.core.errors import RegActivityError
from regactivity.core.log import setup_logging
from regactivity.ingest.bundle import AssayBundle

# Use explicit imports for specific functionality:
#   from regactivity.activity import RidgeCV, ridge_significance
#   from regactivity.pooling import fisher_combine, stouffer_combine
#   from regactivity.export import CSVWriter

# Main Pipeline class
from regactivity.pipeline import Pipeline, PipelineResult, run_pipeline

__all__ = [
    # Version
    "__version__",
    # Pipeline
    "Pipeline",
    "PipelineResult",
    "run_pipeline",
    # Core
    "Config",
    "RidgeConfig",
    "ParallelConfig",
    "CacheConfig",
    "RegActivityError",
    "setup_logging",
    "AssayBundle",
]
