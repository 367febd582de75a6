"""Export functions for fold-change analysis results.

Provides a multi-sheet Excel workbook with parameters, the transformed data,
both ANOVA tables, the fold-change table, model coefficients and warnings.
"""

import io

import pandas as pd


def _anova_export(table: pd.DataFrame) -> pd.DataFrame:
    export = table.copy()
    export.index.name = "Term"
    return export.reset_index()


def _coefficient_export(result) -> pd.DataFrame:
    frames = []
    for model in (result.lm_anova, result.lm_ancova):
        coefficients = model.coefficient_table()
        coefficients.insert(0, "Model", model.spec.name.upper())
        coefficients.insert(1, "Formula", model.formula)
        frames.append(coefficients)
    return pd.concat(frames, ignore_index=True)


def export_to_excel(result, params: dict = None) -> bytes:
    """Export an AncovaResult as an xlsx workbook.

    Args:
        result: AncovaResult from AnalysisEngine.run.
        params: Extra parameters (e.g. source file name) written next to the
            analysis options.
    """
    output = io.BytesIO()

    parameters = result.config.as_params()
    parameters["anova_formula"] = result.lm_anova.formula
    parameters["ancova_formula"] = result.lm_ancova.formula
    if params:
        parameters.update(params)

    with pd.ExcelWriter(output, engine="xlsxwriter") as writer:
        # Parameters sheet
        pd.DataFrame([parameters]).to_excel(
            writer, sheet_name="Analysis_Parameters", index=False
        )

        final_data = result.final_data.copy()
        main_factor = final_data.columns[0]
        final_data[main_factor] = final_data[main_factor].astype(str)
        final_data.to_excel(writer, sheet_name="Final_Data", index=False)

        _anova_export(result.anova_table).to_excel(writer, sheet_name="ANOVA_Table", index=False)
        _anova_export(result.ancova_table).to_excel(writer, sheet_name="ANCOVA_Table", index=False)

        fc_export = result.fc_table.copy()
        fc_export["level"] = fc_export["level"].astype(str)
        fc_export.to_excel(writer, sheet_name="FC_Table", index=False)

        _coefficient_export(result).to_excel(writer, sheet_name="Coefficients", index=False)

        pd.DataFrame({"Warning": list(result.warnings)}).to_excel(
            writer, sheet_name="Warnings", index=False
        )

    return output.getvalue()
