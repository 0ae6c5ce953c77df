"""
Input containers and experiment design handling.
"""

from regactivity.ingest.bundle import AssayBundle
from regactivity.ingest.design import (
    validate_design,
    design_to_groups,
    design_from_labels,
)

__all__ = [
    "AssayBundle",
    "validate_design",
    "design_to_groups",
    "design_from_labels",
]
