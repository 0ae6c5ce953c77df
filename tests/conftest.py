"""Pytest configuration and fixtures."""

import pytest
import numpy as np
import pandas as pd
from pathlib import Path
import tempfile

GROUPS = ["00hr", "12hr", "24hr"]
SAMPLES = [f"{g}_rep{r}" for g in GROUPS for r in range(1, 4)]


def _binary_signature(n_genes, predictors, rate, seed):
    rng = np.random.RandomState(seed)
    values = (rng.rand(n_genes, len(predictors)) < rate).astype(float)
    # Guarantee both levels in every column
    values[0, :] = 1.0
    values[1, :] = 0.0
    return pd.DataFrame(
        values,
        index=[f"gene_{i}" for i in range(n_genes)],
        columns=predictors,
    )


@pytest.fixture
def remap_signature():
    """Binary signature with 6 predictors over 200 genes."""
    return _binary_signature(200, [f"TF{i}" for i in range(1, 7)], 0.3, seed=7)


@pytest.fixture
def chip_signature():
    """Binary signature with 4 predictors over the same genes."""
    return _binary_signature(200, [f"CHIP{i}" for i in range(1, 5)], 0.25, seed=11)


@pytest.fixture
def basal_expression(remap_signature):
    """Shared baseline expression (one column)."""
    np.random.seed(42)
    return pd.DataFrame(
        {"basal": 5 + np.random.randn(len(remap_signature))},
        index=remap_signature.index,
    )


@pytest.fixture
def sample_expression(remap_signature, basal_expression):
    """Expression for 3 groups x 3 replicates driven by TF1 and TF2."""
    np.random.seed(42)
    x = remap_signature.to_numpy()
    effects = {
        "00hr": np.array([0.0, 0.0, 0.0, 0.0, 0.0, 0.0]),
        "12hr": np.array([1.0, -0.5, 0.0, 0.0, 0.0, 0.0]),
        "24hr": np.array([2.0, -1.0, 0.0, 0.0, 0.0, 0.0]),
    }
    data = {}
    for sample in SAMPLES:
        group = sample.split("_")[0]
        noise = 0.3 * np.random.randn(x.shape[0])
        data[sample] = basal_expression["basal"].to_numpy() + x @ effects[group] + noise
    return pd.DataFrame(data, index=remap_signature.index)


@pytest.fixture
def sample_design():
    """One-hot design (samples x groups)."""
    design = pd.DataFrame(0, index=SAMPLES, columns=GROUPS, dtype=int)
    for sample in SAMPLES:
        design.loc[sample, sample.split("_")[0]] = 1
    return design


@pytest.fixture
def sample_bundle(sample_expression, basal_expression, remap_signature, chip_signature, sample_design):
    """Aligned assays with the design in metadata."""
    from regactivity.ingest.bundle import AssayBundle

    return AssayBundle(
        {
            "Y": sample_expression,
            "U": basal_expression,
            "remap": remap_signature,
            "chip": chip_signature,
        },
        metadata={"design": sample_design},
    )


@pytest.fixture
def sample_groups(sample_design):
    """Categorical group assignment for the sample design."""
    from regactivity.ingest.design import design_to_groups

    return design_to_groups(sample_design)


@pytest.fixture
def fast_config():
    """Small CV setup for quick fits."""
    from regactivity.core.config import Config, RidgeConfig

    return Config(nfolds=3, seed=1, ridge=RidgeConfig(n_lambda=15))


@pytest.fixture
def temp_dir():
    """Create temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)
