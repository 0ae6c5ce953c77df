"""
CSV output writer for pipeline results.
"""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING, Mapping, Optional

import pandas as pd

from regactivity.activity.significance import SignificanceTable

if TYPE_CHECKING:
    from regactivity.pipeline import PipelineResult


class CSVWriter:
    """Writes pipeline tables to CSV files."""

    def __init__(
        self,
        output_dir: Path,
        float_format: str = "%.6g",
    ):
        self.output_dir = Path(output_dir)
        self.output_dir.mkdir(parents=True, exist_ok=True)
        self.float_format = float_format

    def write_matrix(
        self,
        matrix: pd.DataFrame,
        filename: str,
        index_label: Optional[str] = None,
        index: bool = True,
    ) -> Path:
        """Write matrix to CSV.

        Parameters
        ----------
        matrix : pd.DataFrame
            Matrix to write
        filename : str
            Output filename
        index_label : str, optional
            Label for index column
        index : bool
            Write the row index

        Returns
        -------
        Path
            Path to written file
        """
        path = self.output_dir / filename
        matrix.to_csv(
            path,
            index=index,
            index_label=index_label if index else None,
            float_format=self.float_format,
        )
        return path

    def write_results(
        self,
        results: pd.DataFrame,
        xname: str,
    ) -> Path:
        """Write a ranked result table."""
        return self.write_matrix(results, f"{xname}_results.csv", index=False)

    def write_group_matrix(
        self,
        matrix: pd.DataFrame,
        xname: str,
        kind: str,
    ) -> Path:
        """Write a predictors x groups matrix (zscore, coef, pvalue)."""
        return self.write_matrix(matrix, f"{xname}_{kind}.csv", index_label="name")

    def write_significance(
        self,
        tables: Mapping[str, SignificanceTable],
        xname: str,
    ) -> Path:
        """Write per-sample significance tables in long format.

        One row per (sample, predictor) with columns sample, name, coef,
        se, tstat, pval.
        """
        long = pd.concat(
            [
                table.to_frame().rename_axis("name").reset_index().assign(sample=sample)
                for sample, table in tables.items()
            ],
            ignore_index=True,
        )
        long = long[["sample", "name", "coef", "se", "tstat", "pval"]]

        path = self.output_dir / f"{xname}_significance.csv"
        long.to_csv(path, index=False, float_format=self.float_format)
        return path

    def write_pipeline_result(self, result: "PipelineResult") -> dict[str, Path]:
        """Write every table of a pipeline result.

        Returns
        -------
        dict[str, Path]
            Written paths keyed by ``"<xname>/<kind>"``
        """
        paths: dict[str, Path] = {}

        for xname in result.regression_models:
            lambdas = result.lambda_min(xname).to_frame("lambda_min")
            paths[f"{xname}/lambda_min"] = self.write_matrix(
                lambdas, f"{xname}_lambda_min.csv", index_label="sample"
            )

        if result.results is None:
            return paths

        for xname, table in result.results.items():
            paths[f"{xname}/results"] = self.write_results(table, xname)
            paths[f"{xname}/zscore"] = self.write_group_matrix(
                result.zscore_avg[xname], xname, "zscore"
            )
            paths[f"{xname}/coef"] = self.write_group_matrix(
                result.coef_avg[xname], xname, "coef"
            )
            paths[f"{xname}/pvalue"] = self.write_group_matrix(
                result.group_pvalues[xname], xname, "pvalue"
            )
            paths[f"{xname}/significance"] = self.write_significance(
                result.pvalues[xname], xname
            )

        return paths


def write_results_csv(
    result: "PipelineResult",
    output_dir: Path,
) -> dict[str, Path]:
    """Convenience function to write all pipeline tables as CSV."""
    writer = CSVWriter(output_dir)
    return writer.write_pipeline_result(result)
