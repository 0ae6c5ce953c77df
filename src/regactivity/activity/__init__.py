"""
Activity inference.

Cross-validated ridge regression of expression on molecular signatures,
with closed-form significance testing of the coefficients.
"""

from regactivity.activity.ridge_cv import (
    RidgeCV,
    CVRidgeModel,
    FittedModel,
)
from regactivity.activity.significance import (
    SignificanceTable,
    SVDResult,
    compute_svd,
    ridge_significance,
)
from regactivity.activity.parallel import GridExecutor
from regactivity.activity.fitting import (
    RegressionRunner,
    fit_all,
)
from regactivity.activity.testing import (
    SignificanceRunner,
    test_all,
)

__all__ = [
    # Ridge regression
    "RidgeCV",
    "CVRidgeModel",
    "FittedModel",
    # Significance
    "SignificanceTable",
    "SVDResult",
    "compute_svd",
    "ridge_significance",
    # Grid execution
    "GridExecutor",
    "RegressionRunner",
    "fit_all",
    "SignificanceRunner",
    "test_all",
]
