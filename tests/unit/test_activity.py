"""Tests for grid fitting, grid testing and the parallel executor."""

import functools

import pytest
import numpy as np
import pandas as pd

FIT_OPTIONS = {"nfolds": 3, "n_lambda": 10, "seed": 1}


def _square(value):
    return value ** 2


def _fail(message):
    raise ValueError(message)


class TestGridExecutor:
    """Test grid execution backends."""

    @pytest.mark.parametrize("backend", ["serial", "thread"])
    def test_results_keyed_by_name(self, backend):
        from regactivity.activity.parallel import GridExecutor

        tasks = {
            ("sig_b", "s2"): functools.partial(_square, 3),
            ("sig_a", "s1"): functools.partial(_square, 2),
            ("sig_b", "s1"): functools.partial(_square, 4),
        }
        results = GridExecutor(backend=backend, max_workers=2).run(tasks)

        assert list(results) == ["sig_b", "sig_a"]
        assert list(results["sig_b"]) == ["s2", "s1"]
        assert results["sig_b"]["s1"] == 16
        assert results["sig_a"]["s1"] == 4

    def test_empty_grid(self):
        from regactivity.activity.parallel import GridExecutor

        assert GridExecutor().run({}) == {}

    @pytest.mark.parametrize("backend", ["serial", "thread"])
    def test_fail_fast(self, backend):
        from regactivity.activity.parallel import GridExecutor
        from regactivity.core.errors import FitError

        tasks = {
            ("remap", "s1"): functools.partial(_square, 2),
            ("remap", "s2"): functools.partial(_fail, "singular"),
        }
        with pytest.raises(FitError, match="signature 'remap', sample 's2'") as info:
            GridExecutor(backend=backend).run(tasks)

        assert info.value.signature == "remap"
        assert isinstance(info.value.cause, ValueError)

    @pytest.mark.parametrize("backend", ["serial", "thread"])
    def test_collect_failures(self, backend):
        from regactivity.activity.parallel import GridExecutor
        from regactivity.core.errors import GridExecutionError

        tasks = {
            ("remap", "s1"): functools.partial(_fail, "first"),
            ("remap", "s2"): functools.partial(_square, 5),
            ("remap", "s3"): functools.partial(_fail, "second"),
        }
        with pytest.raises(GridExecutionError) as info:
            GridExecutor(backend=backend, fail_fast=False).run(tasks)

        failures = info.value.failures
        assert [(f.signature, f.sample) for f in failures] == [("remap", "s1"), ("remap", "s3")]
        assert info.value.partial == {"remap": {"s2": 25}}

    def test_process_backend(self):
        from regactivity.activity.parallel import GridExecutor
        from regactivity.core.errors import GridExecutionError
        from regactivity.pooling.combine import fisher_combine, stouffer_combine

        tasks = {
            ("remap", "s1"): functools.partial(stouffer_combine, [3.0, 4.0]),
            ("remap", "s2"): functools.partial(fisher_combine, [0.5]),
            ("chip", "s1"): functools.partial(stouffer_combine, [1.0]),
        }
        executor = GridExecutor(backend="process", max_workers=2, fail_fast=False)
        with pytest.raises(GridExecutionError) as info:
            executor.run(tasks)

        assert [(f.signature, f.sample) for f in info.value.failures] == [("remap", "s2")]
        assert isinstance(info.value.failures[0].cause, ValueError)
        assert info.value.partial["remap"]["s1"] == pytest.approx(7 / np.sqrt(2))
        assert info.value.partial["chip"]["s1"] == pytest.approx(1.0)

    def test_from_config(self):
        from regactivity.activity.parallel import GridExecutor
        from regactivity.core.config import ParallelConfig

        config = ParallelConfig(backend="process", max_workers=3, fail_fast=False)

        assert GridExecutor.from_config(config, parallel=True).backend == "process"
        serial = GridExecutor.from_config(config, parallel=False)
        assert serial.backend == "serial"
        assert serial.fail_fast is False

    def test_unknown_backend(self):
        from regactivity.activity.parallel import GridExecutor

        with pytest.raises(ValueError, match="Unknown backend"):
            GridExecutor(backend="gpu")


class TestRegressionRunner:
    """Test grid-wide ridge fitting."""

    def test_one_model_per_pair(self, sample_expression, basal_expression, remap_signature,
                                chip_signature, sample_groups):
        from regactivity.activity.fitting import fit_all

        models = fit_all(
            {"remap": remap_signature, "chip": chip_signature},
            sample_expression,
            basal_expression,
            sample_groups,
            **FIT_OPTIONS,
        )

        assert list(models) == ["remap", "chip"]
        assert list(models["remap"]) == list(sample_groups.index)
        model = models["chip"]["24hr_rep3"]
        assert model.feature_names == list(chip_signature.columns)
        assert model.lambda_min > 0

    def test_precomputed_models_reused(self, sample_expression, basal_expression,
                                       remap_signature, sample_groups):
        from regactivity.activity.fitting import RegressionRunner

        runner = RegressionRunner()
        first = runner.fit_all({"remap": remap_signature}, sample_expression,
                               basal_expression, sample_groups, **FIT_OPTIONS)

        reused = {"remap": {"00hr_rep1": first["remap"]["00hr_rep1"]}}
        second = runner.fit_all({"remap": remap_signature}, sample_expression,
                                basal_expression, sample_groups, precomputed=reused,
                                **FIT_OPTIONS)

        assert second["remap"]["00hr_rep1"] is first["remap"]["00hr_rep1"]
        assert second["remap"]["00hr_rep2"] is not first["remap"]["00hr_rep2"]

    def test_thread_backend_matches_serial(self, sample_expression, basal_expression,
                                           remap_signature, sample_groups):
        from regactivity.activity.fitting import fit_all
        from regactivity.activity.parallel import GridExecutor

        args = ({"remap": remap_signature}, sample_expression, basal_expression, sample_groups)
        serial = fit_all(*args, **FIT_OPTIONS)
        threaded = fit_all(*args, executor=GridExecutor(backend="thread", max_workers=3),
                           **FIT_OPTIONS)

        for sample in sample_groups.index:
            a = serial["remap"][sample]
            b = threaded["remap"][sample]
            assert a.lambda_min == b.lambda_min
            np.testing.assert_array_equal(a.coef().to_numpy(), b.coef().to_numpy())

    def test_process_backend_matches_serial(self, sample_expression, basal_expression,
                                            chip_signature, sample_groups):
        from regactivity.activity.fitting import fit_all
        from regactivity.activity.parallel import GridExecutor

        args = ({"chip": chip_signature}, sample_expression, basal_expression, sample_groups)
        serial = fit_all(*args, **FIT_OPTIONS)
        pooled = fit_all(*args, executor=GridExecutor(backend="process", max_workers=2),
                         **FIT_OPTIONS)

        assert list(pooled["chip"]) == list(sample_groups.index)
        for sample in sample_groups.index:
            np.testing.assert_allclose(
                serial["chip"][sample].coef().to_numpy(),
                pooled["chip"][sample].coef().to_numpy(),
                rtol=1e-12,
            )

    def test_per_sample_offset(self, sample_expression, basal_expression, remap_signature,
                               sample_groups):
        from regactivity.activity.fitting import fit_all

        shared = fit_all({"remap": remap_signature}, sample_expression,
                         basal_expression, sample_groups, **FIT_OPTIONS)
        per_sample = pd.DataFrame(
            {s: basal_expression["basal"] for s in sample_expression.columns}
        )
        explicit = fit_all({"remap": remap_signature}, sample_expression,
                           per_sample, sample_groups, **FIT_OPTIONS)

        assert shared["remap"]["12hr_rep1"].lambda_min == explicit["remap"]["12hr_rep1"].lambda_min

    def test_missing_offset_column(self, sample_expression, remap_signature, sample_groups):
        from regactivity.activity.fitting import fit_all
        from regactivity.core.errors import IdentifierConflictError

        offset = pd.DataFrame(0.0, index=sample_expression.index, columns=["a", "b"])
        with pytest.raises(IdentifierConflictError, match="offset"):
            fit_all({"remap": remap_signature}, sample_expression, offset,
                    sample_groups, **FIT_OPTIONS)

    def test_signature_missing_features(self, sample_expression, basal_expression,
                                        remap_signature, sample_groups):
        from regactivity.activity.fitting import fit_all
        from regactivity.core.errors import IdentifierConflictError

        with pytest.raises(IdentifierConflictError, match="missing"):
            fit_all({"remap": remap_signature.iloc[5:]}, sample_expression,
                    basal_expression, sample_groups, **FIT_OPTIONS)


class TestSignificanceRunner:
    """Test grid-wide significance testing."""

    def test_tables_per_pair(self, sample_expression, basal_expression, remap_signature,
                             sample_groups):
        from regactivity.activity.fitting import fit_all
        from regactivity.activity.significance import ridge_significance
        from regactivity.activity.testing import test_all as run_tests

        signatures = {"remap": remap_signature}
        models = fit_all(signatures, sample_expression, basal_expression,
                         sample_groups, **FIT_OPTIONS)
        tables = run_tests(signatures, sample_expression, basal_expression,
                           sample_groups, True, models)

        assert list(tables["remap"]) == list(sample_groups.index)

        model = models["remap"]["24hr_rep2"]
        y = sample_expression["24hr_rep2"] - basal_expression["basal"]
        expected = ridge_significance(
            remap_signature, y, model.coef().iloc[1:].to_numpy(), model.lambda_min
        )
        np.testing.assert_allclose(tables["remap"]["24hr_rep2"].se, expected.se)

    def test_mismatched_model(self, sample_expression, basal_expression, remap_signature,
                              chip_signature, sample_groups):
        from regactivity.activity.fitting import fit_all
        from regactivity.activity.testing import SignificanceRunner
        from regactivity.core.errors import FitError

        models = fit_all({"remap": chip_signature}, sample_expression,
                         basal_expression, sample_groups, **FIT_OPTIONS)
        # Same predictor count is needed for the name check to be the failure
        signature = remap_signature.iloc[:, :4]
        with pytest.raises(FitError, match="do not match"):
            SignificanceRunner().test_all({"remap": signature}, sample_expression,
                                          basal_expression, sample_groups, True, models)
