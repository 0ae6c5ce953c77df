"""
Main Pipeline class that orchestrates regression, testing and pooling.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping, Optional, Sequence
import logging
import time

import numpy as np
import pandas as pd

from regactivity.activity.fitting import RegressionRunner, align_features, offset_for_sample
from regactivity.activity.parallel import GridExecutor
from regactivity.activity.ridge_cv import FittedModel
from regactivity.activity.significance import SignificanceTable
from regactivity.activity.testing import SignificanceRunner
from regactivity.core.cache import ModelCache
from regactivity.core.config import Config
from regactivity.core.errors import (
    DegenerateSignatureError,
    IdentifierConflictError,
    IncompatiblePrecomputedModelError,
    TypeMismatchError,
    check_flag,
)
from regactivity.core.log import setup_logging
from regactivity.export.csv_writer import CSVWriter
from regactivity.ingest.bundle import AssayBundle
from regactivity.ingest.design import design_to_groups, validate_design
from regactivity.pooling.combine import stouffer_combine
from regactivity.pooling.replicates import ReplicatePooler

logger = logging.getLogger(__name__)

ModelGrid = dict[str, dict[str, FittedModel]]


@dataclass
class PipelineResult:
    """Result of pipeline execution.

    Pooled outputs (``pvalues`` through ``group_pvalues``) are ``None`` when
    the pipeline ran without significance testing.
    """

    regression_models: ModelGrid = field(default_factory=dict)
    pvalues: Optional[dict[str, dict[str, SignificanceTable]]] = None
    zscore_avg: Optional[dict[str, pd.DataFrame]] = None
    coef_avg: Optional[dict[str, pd.DataFrame]] = None
    results: Optional[dict[str, pd.DataFrame]] = None
    group_pvalues: Optional[dict[str, pd.DataFrame]] = None
    groups: Optional[pd.Series] = None
    output_paths: dict[str, Path] = field(default_factory=dict)
    metrics: dict[str, Any] = field(default_factory=dict)

    def lambda_min(self, xname: str) -> pd.Series:
        """Selected regularization per sample for one signature."""
        models = self.regression_models[xname]
        return pd.Series(
            {sample: model.lambda_min for sample, model in models.items()},
            name="lambda_min",
            dtype=float,
        )

    def save(self, output_dir: Path | str) -> dict[str, Path]:
        """Write all tables as CSV files.

        Parameters
        ----------
        output_dir : Path
            Directory to write into (created if missing)

        Returns
        -------
        dict[str, Path]
            Written paths keyed by ``"<xname>/<kind>"``
        """
        return CSVWriter(output_dir).write_pipeline_result(self)


class Pipeline:
    """Regulator activity estimation from expression and signature matrices.

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

    def __init__(
        self,
        config: Optional[Config] = None,
        output_dir: Optional[Path] = None,
    ):
        """Initialize pipeline.

        Parameters
        ----------
        config : Config, optional
            Pipeline configuration
        output_dir : Path, optional
            Directory to write results to after each run (defaults to
            ``config.output_dir``)
        """
        self.config = config or Config()
        self.pooler = ReplicatePooler()

        output_dir = output_dir or self.config.output_dir
        self.output_dir = Path(output_dir) if output_dir else None

        if self.config.verbose or self.config.log_file is not None:
            setup_logging(self.config.verbose, self.config.log_file)

        self.cache = None
        if self.config.cache.enabled:
            cache_dir = self.config.cache.cache_dir or Path.home() / ".cache" / "regactivity"
            self.cache = ModelCache(
                cache_dir,
                max_size_gb=self.config.cache.max_size_gb,
                ttl_hours=self.config.cache.ttl_hours,
            )

    def run(
        self,
        bundle: AssayBundle,
        yname: str = "Y",
        uname: str = "U",
        xnames: Sequence[str] = (),
        design: Optional[pd.DataFrame] = None,
        standardize: Optional[bool] = None,
        parallel: bool = False,
        pvalues: bool = True,
        precomputed_models: Optional[Mapping[str, Mapping[str, FittedModel]]] = None,
        **fit_options: Any,
    ) -> PipelineResult:
        """Run regression, significance testing and replicate pooling.

        Parameters
        ----------
        bundle : AssayBundle
            Aligned assays holding expression, offset and signatures
        yname : str
            Name of the expression assay (features x samples)
        uname : str
            Name of the offset assay (per-sample columns or one column)
        xnames : sequence of str
            Names of the signature assays
        design : pd.DataFrame, optional
            Design matrix (samples x groups); defaults to
            ``bundle.metadata["design"]``
        standardize : bool, optional
            Standardize signature columns (defaults to ``config.standardize``)
        parallel : bool
            Run the grid on the configured worker pool
        pvalues : bool
            Run significance testing and pooling
        precomputed_models : mapping, optional
            Fitted models to reuse, ``{xname: {sample: model}}``
        **fit_options
            Overrides for the ridge solver (nfolds, n_lambda,
            lambda_min_ratio, lambdas, seed)

        Returns
        -------
        PipelineResult
        """
        start = time.time()

        xnames = self._validate_names(bundle, yname, uname, xnames)
        if standardize is None:
            standardize = self.config.standardize
        check_flag(standardize, "standardize")
        check_flag(parallel, "parallel")
        check_flag(pvalues, "pvalues")

        expression = bundle[yname]
        offset = bundle[uname]
        signatures = {xname: bundle[xname] for xname in xnames}
        for xname, signature in signatures.items():
            self._check_variance(xname, signature)

        if design is None:
            design = bundle.metadata.get("design")
        validate_design(design, samples=expression.columns)
        groups = design_to_groups(design)

        precomputed = self._validate_precomputed(precomputed_models, signatures)
        options = {**self.config.ridge.fit_options(), **fit_options}
        executor = GridExecutor.from_config(self.config.parallel, parallel=parallel)

        logger.info(
            "Running pipeline: %d signature(s), %d sample(s) in %d group(s)",
            len(signatures), len(groups), len(groups.cat.categories),
        )

        result = PipelineResult(groups=groups)
        metrics: dict[str, Any] = {
            "n_signatures": len(signatures),
            "n_samples": len(groups),
            "n_groups": len(groups.cat.categories),
            "n_precomputed": sum(len(m) for m in precomputed.values()),
        }

        # Step 1: Fit
        step = time.time()
        logger.info("Fitting ridge regression models...")
        cache_keys: dict[tuple[str, str], str] = {}
        if self.cache is not None:
            cache_keys = self._cache_keys(
                signatures, expression, offset, groups, standardize, options
            )
            precomputed = self._load_cached(cache_keys, precomputed)
        metrics["n_cache_hits"] = (
            sum(len(m) for m in precomputed.values()) - metrics["n_precomputed"]
        )

        runner = RegressionRunner(executor)
        models = runner.fit_all(
            signatures,
            expression,
            offset,
            groups,
            standardize=standardize,
            precomputed=precomputed,
            **options,
        )
        if self.cache is not None:
            self._store_cached(cache_keys, models, precomputed)

        result.regression_models = models
        metrics["n_models"] = sum(len(m) for m in models.values())
        metrics["fit_seconds"] = time.time() - step
        logger.info("Regression finished in %.1fs", metrics["fit_seconds"])

        if pvalues:
            # Step 2: Test
            step = time.time()
            logger.info("Computing coefficient significance...")
            tester = SignificanceRunner(executor)
            result.pvalues = tester.test_all(
                signatures, expression, offset, groups, standardize, models
            )
            metrics["test_seconds"] = time.time() - step
            logger.info("Significance testing finished in %.1fs", metrics["test_seconds"])

            # Step 3: Pool replicates and rank
            result.zscore_avg = {}
            result.coef_avg = {}
            result.group_pvalues = {}
            result.results = {}
            for xname in signatures:
                tables = result.pvalues[xname]
                pooled = self.pooler.pool(tables, groups)
                result.zscore_avg[xname] = pooled.zscore
                result.coef_avg[xname] = pooled.coef
                result.group_pvalues[xname] = self.pooler.pvalues(tables, groups)
                result.results[xname] = self._result_table(pooled.zscore, pooled.coef)

        if self.output_dir is not None:
            result.output_paths = result.save(self.output_dir)
            logger.info("Wrote %d file(s) to %s", len(result.output_paths), self.output_dir)

        metrics["elapsed_seconds"] = time.time() - start
        result.metrics = metrics
        logger.info("Pipeline finished in %.1fs", metrics["elapsed_seconds"])

        return result

    @staticmethod
    def _validate_names(
        bundle: AssayBundle,
        yname: str,
        uname: str,
        xnames: Sequence[str],
    ) -> list[str]:
        if not isinstance(bundle, AssayBundle):
            raise TypeMismatchError("bundle must be an AssayBundle")
        if not isinstance(yname, str):
            raise TypeMismatchError("yname must be a single string")
        if not isinstance(uname, str):
            raise TypeMismatchError("uname must be a single string")
        if isinstance(xnames, str) or not isinstance(xnames, Sequence):
            raise TypeMismatchError("xnames must be a sequence of strings")
        if not all(isinstance(x, str) for x in xnames):
            raise TypeMismatchError("xnames must be a sequence of strings")

        xnames = list(xnames)
        if not xnames:
            raise IdentifierConflictError("xnames must name at least one signature")
        if len(set(xnames)) != len(xnames):
            raise IdentifierConflictError("xnames must not contain duplicates")
        if yname == uname:
            raise IdentifierConflictError("yname must be distinct from uname")
        if yname in xnames or uname in xnames:
            raise IdentifierConflictError("xnames must be distinct from yname and uname")

        missing = [n for n in [yname, uname] + xnames if n not in bundle]
        if missing:
            raise IdentifierConflictError(
                f"yname, uname and xnames must match bundle names, missing: {missing}"
            )

        return xnames

    @staticmethod
    def _check_variance(xname: str, signature: pd.DataFrame) -> None:
        values = signature.to_numpy(dtype=float)
        sd = values.std(axis=0, ddof=1) if values.shape[0] > 1 else np.zeros(values.shape[1])
        if np.any(~np.isfinite(sd) | (sd == 0)):
            raise DegenerateSignatureError(
                f"{xname} can not contain zero variance signatures"
            )

    @staticmethod
    def _validate_precomputed(
        precomputed_models: Optional[Mapping[str, Mapping[str, FittedModel]]],
        signatures: Mapping[str, pd.DataFrame],
    ) -> dict[str, dict[str, FittedModel]]:
        if precomputed_models is None:
            return {}
        if not isinstance(precomputed_models, Mapping):
            raise TypeMismatchError("precomputed_models must be a mapping")

        unknown = [k for k in precomputed_models if k not in signatures]
        if unknown:
            raise IncompatiblePrecomputedModelError(
                f"precomputed_models has entries for unknown signatures: {unknown}"
            )

        validated: dict[str, dict[str, FittedModel]] = {}
        for xname, models in precomputed_models.items():
            if not isinstance(models, Mapping):
                raise TypeMismatchError(
                    f"precomputed_models['{xname}'] must map sample names to models"
                )
            expected = [str(c) for c in signatures[xname].columns]
            for sample, model in models.items():
                if not isinstance(model, FittedModel):
                    raise IncompatiblePrecomputedModelError(
                        f"Precomputed model for '{xname}', sample '{sample}' "
                        "is not a fitted regression model"
                    )
                if [str(f) for f in model.feature_names] != expected:
                    raise IncompatiblePrecomputedModelError(
                        f"Precomputed model for '{xname}', sample '{sample}' "
                        f"does not match the columns of {xname}"
                    )
            validated[xname] = dict(models)

        return validated

    def _cache_keys(
        self,
        signatures: Mapping[str, pd.DataFrame],
        expression: pd.DataFrame,
        offset: pd.DataFrame,
        groups: pd.Series,
        standardize: bool,
        options: Mapping[str, Any],
    ) -> dict[tuple[str, str], str]:
        keys = {}
        for xname, signature in signatures.items():
            x = align_features(signature, expression.index, xname)
            for sample in groups.index:
                keys[(xname, sample)] = self.cache.make_key(
                    xname,
                    sample,
                    x,
                    expression[sample],
                    offset_for_sample(offset, sample),
                    standardize=standardize,
                    **options,
                )
        return keys

    def _load_cached(
        self,
        keys: Mapping[tuple[str, str], str],
        precomputed: dict[str, dict[str, FittedModel]],
    ) -> dict[str, dict[str, FittedModel]]:
        merged = {xname: dict(models) for xname, models in precomputed.items()}
        for (xname, sample), key in keys.items():
            if sample in merged.get(xname, {}):
                continue
            model = self.cache.get(key)
            if model is not None:
                logger.debug("Cache hit for %s/%s", xname, sample)
                merged.setdefault(xname, {})[sample] = model
        return merged

    def _store_cached(
        self,
        keys: Mapping[tuple[str, str], str],
        models: ModelGrid,
        reused: Mapping[str, Mapping[str, FittedModel]],
    ) -> None:
        for (xname, sample), key in keys.items():
            if sample in reused.get(xname, {}):
                continue
            self.cache.put(key, models[xname][sample], signature=xname, sample=sample)

    @staticmethod
    def _result_table(zscore: pd.DataFrame, coef: pd.DataFrame) -> pd.DataFrame:
        """Ranked table of pooled coefficients and the combined Z-score."""
        if zscore.shape[1] > 1:
            combined = np.array([stouffer_combine(row) for row in zscore.to_numpy()])
        else:
            combined = zscore.iloc[:, 0].to_numpy(dtype=float)

        table = pd.DataFrame({"name": [str(i) for i in coef.index]})
        for group in coef.columns:
            table[group] = coef[group].to_numpy()
        table["z_score"] = combined

        # NaN scores sort last
        order = np.argsort(-np.abs(combined), kind="stable")
        return table.iloc[order].reset_index(drop=True)


def run_pipeline(
    bundle: AssayBundle,
    yname: str = "Y",
    uname: str = "U",
    xnames: Sequence[str] = (),
    design: Optional[pd.DataFrame] = None,
    standardize: Optional[bool] = None,
    parallel: bool = False,
    pvalues: bool = True,
    precomputed_models: Optional[Mapping[str, Mapping[str, FittedModel]]] = None,
    config: Optional[Config] = None,
    **fit_options: Any,
) -> PipelineResult:
    """Convenience function to run the full pipeline.

    See ``Pipeline.run``.
    """
    pipeline = Pipeline(config)
    return pipeline.run(
        bundle,
        yname=yname,
        uname=uname,
        xnames=xnames,
        design=design,
        standardize=standardize,
        parallel=parallel,
        pvalues=pvalues,
        precomputed_models=precomputed_models,
        **fit_options,
    )
