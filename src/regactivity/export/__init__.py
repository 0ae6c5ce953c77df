"""
Export of pipeline results.
"""

from regactivity.export.csv_writer import CSVWriter, write_results_csv

__all__ = [
    "CSVWriter",
    "write_results_csv",
]
