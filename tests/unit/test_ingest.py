"""Tests for assay bundles and experiment designs."""

import pytest
import numpy as np
import pandas as pd


class TestValidateDesign:
    """Test design validation."""

    def test_valid_design(self, sample_design, sample_expression):
        from regactivity.ingest.design import validate_design

        validate_design(sample_design, samples=sample_expression.columns)

    def test_not_a_dataframe(self):
        from regactivity.core.errors import TypeMismatchError
        from regactivity.ingest.design import validate_design

        with pytest.raises(TypeMismatchError, match="design must be a DataFrame"):
            validate_design(np.eye(3))
        with pytest.raises(TypeMismatchError, match="design must be a DataFrame"):
            validate_design(None)

    def test_row_assigned_twice(self, sample_design):
        from regactivity.core.errors import DesignShapeViolationError
        from regactivity.ingest.design import validate_design

        design = sample_design.copy()
        design.iloc[0, :2] = 1
        with pytest.raises(DesignShapeViolationError, match="only to one group"):
            validate_design(design)

    def test_all_rows_empty(self, sample_design):
        from regactivity.core.errors import DesignShapeViolationError
        from regactivity.ingest.design import validate_design

        design = sample_design * 0
        with pytest.raises(DesignShapeViolationError, match="at least one sample"):
            validate_design(design)

    def test_non_binary_entries(self, sample_design):
        from regactivity.core.errors import DesignShapeViolationError
        from regactivity.ingest.design import validate_design

        design = sample_design.astype(float)
        design.iloc[0, 0] = 0.5
        with pytest.raises(DesignShapeViolationError, match="0 or 1"):
            validate_design(design)

    def test_rows_must_cover_expression(self, sample_design, sample_expression):
        from regactivity.core.errors import DesignShapeViolationError
        from regactivity.ingest.design import validate_design

        with pytest.raises(DesignShapeViolationError, match="rownames"):
            validate_design(sample_design.iloc[1:], samples=sample_expression.columns)

    def test_assigned_sample_not_in_expression(self, sample_design, sample_expression):
        from regactivity.core.errors import DesignShapeViolationError
        from regactivity.ingest.design import validate_design

        extra = pd.DataFrame([[0, 0, 1]], index=["ghost"], columns=sample_design.columns)
        design = pd.concat([sample_design, extra])
        with pytest.raises(DesignShapeViolationError, match="not included in expression"):
            validate_design(design, samples=sample_expression.columns)

    def test_duplicate_rownames(self, sample_design, sample_expression):
        from regactivity.core.errors import DesignShapeViolationError
        from regactivity.ingest.design import validate_design

        design = pd.concat([sample_design, sample_design.iloc[[0]]])
        with pytest.raises(DesignShapeViolationError, match="rownames must be unique"):
            validate_design(design, samples=sample_expression.columns)

    def test_duplicate_group_names(self, sample_design):
        from regactivity.core.errors import DesignShapeViolationError
        from regactivity.ingest.design import validate_design

        design = sample_design.copy()
        design.columns = ["00hr", "00hr", "24hr"]
        with pytest.raises(DesignShapeViolationError, match="group names must be unique"):
            validate_design(design)

    @pytest.mark.parametrize("group", ["name", "z_score"])
    def test_group_named_like_result_column(self, sample_design, group):
        from regactivity.core.errors import DesignShapeViolationError
        from regactivity.ingest.design import validate_design

        design = sample_design.rename(columns={"12hr": group})
        with pytest.raises(DesignShapeViolationError, match="label result columns"):
            validate_design(design)


class TestDesignToGroups:
    """Test group assignment derivation."""

    def test_order_and_categories(self, sample_design):
        from regactivity.ingest.design import design_to_groups

        groups = design_to_groups(sample_design)

        assert list(groups.index) == list(sample_design.index)
        assert list(groups.cat.categories) == ["00hr", "12hr", "24hr"]
        assert groups["12hr_rep2"] == "12hr"

    def test_unassigned_rows_and_unused_groups_dropped(self):
        from regactivity.ingest.design import design_to_groups

        design = pd.DataFrame(
            [[0, 0, 1], [0, 0, 0], [0, 0, 1], [1, 0, 0]],
            index=["s1", "s2", "s3", "s4"],
            columns=["a", "b", "c"],
        )
        groups = design_to_groups(design)

        assert list(groups.index) == ["s1", "s3", "s4"]
        assert list(groups.cat.categories) == ["a", "c"]

    def test_design_from_labels(self):
        from regactivity.ingest.design import design_from_labels, design_to_groups

        design = design_from_labels({"s1": "ctrl", "s2": None, "s3": "treat", "s4": "ctrl"})

        assert list(design.columns) == ["ctrl", "treat"]
        assert design.loc["s2"].sum() == 0
        groups = design_to_groups(design)
        assert list(groups) == ["ctrl", "treat", "ctrl"]

    def test_design_from_labels_unknown_level(self):
        from regactivity.ingest.design import design_from_labels

        with pytest.raises(ValueError, match="not in levels"):
            design_from_labels({"s1": "x"}, levels=["y"])


class TestAssayBundle:
    """Test assay container."""

    def test_reorders_to_first_assay(self, sample_expression, remap_signature):
        from regactivity.ingest.bundle import AssayBundle

        shuffled = remap_signature.iloc[::-1]
        bundle = AssayBundle({"Y": sample_expression, "remap": shuffled})

        assert bundle["remap"].index.equals(sample_expression.index)
        assert bundle.names() == ["Y", "remap"]
        assert "remap" in bundle
        assert len(bundle) == 2

    def test_misaligned_features(self, sample_expression, remap_signature):
        from regactivity.core.errors import IdentifierConflictError
        from regactivity.ingest.bundle import AssayBundle

        with pytest.raises(IdentifierConflictError, match="not aligned"):
            AssayBundle({"Y": sample_expression, "remap": remap_signature.iloc[1:]})

    def test_non_dataframe_assay(self, sample_expression):
        from regactivity.core.errors import TypeMismatchError
        from regactivity.ingest.bundle import AssayBundle

        with pytest.raises(TypeMismatchError, match="DataFrame"):
            AssayBundle({"Y": sample_expression, "X": np.zeros((3, 3))})

    def test_select_samples(self, sample_bundle):
        from regactivity.core.errors import IdentifierConflictError

        subset = sample_bundle.select_samples("Y", ["00hr_rep1", "24hr_rep1"])
        assert list(subset["Y"].columns) == ["00hr_rep1", "24hr_rep1"]
        assert "design" in subset.metadata

        with pytest.raises(IdentifierConflictError):
            sample_bundle.select_samples("Y", ["nope"])
