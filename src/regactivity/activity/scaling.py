"""Column standardization shared by model fitting and significance testing."""

from __future__ import annotations

import numpy as np


def scale_columns(x: np.ndarray) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
    """
    Center and scale columns to zero mean and unit sample variance.

    Uses the sample standard deviation (ddof=1). Zero variance columns
    produce non-finite values; callers reject such columns beforehand.

    Args:
        x: Matrix (observations x variables).

    Returns:
        Tuple of (scaled matrix, column means, column standard deviations).
    """
    x = np.asarray(x, dtype=float)
    center = x.mean(axis=0)
    scale = x.std(axis=0, ddof=1)
    with np.errstate(divide="ignore", invalid="ignore"):
        scaled = (x - center) / scale
    return scaled, center, scale
