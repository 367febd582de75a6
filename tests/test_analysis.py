import numpy as np
import pandas as pd
import plotly.graph_objects as go
import pytest

from qpcr_ancova.analysis import AnalysisConfig, AnalysisEngine, AncovaResult, qpcr_ancova
from qpcr_ancova.contrasts import (
    estimated_marginal_means,
    pairwise_contrasts,
    significance_code,
)
from qpcr_ancova.errors import ConfigurationError, InputShapeError, ModelFitError


def _run_two_ref(data, levels=("Ctrl", "T1", "T2"), **kwargs):
    return qpcr_ancova(
        data,
        number_of_ref_genes=2,
        main_factor_column=2,
        level_order=list(levels),
        replicate_column="Rep",
        **kwargs,
    )


class TestQpcrAncovaFoldChangeTable:
    def test_one_row_per_level_reference_first(self, two_ref_data):
        result = _run_two_ref(two_ref_data)

        fc = result.fc_table
        assert len(fc) == 3
        assert fc["level"].tolist() == ["Ctrl", "T1", "T2"]
        assert fc.loc[0, "FC"] == 1.0
        assert fc.loc[0, "pvalue"] == 1.0
        assert fc.loc[0, "sig"] == ""

    def test_log_fold_change_equals_contrast_estimate(self, two_ref_data):
        result = _run_two_ref(two_ref_data)

        pairs = pairwise_contrasts(estimated_marginal_means(result.lm_ancova, "Treatment"))
        for level in ["T1", "T2"]:
            estimate = pairs.loc[pairs["contrast"] == f"Ctrl - {level}", "estimate"].iloc[0]
            fc = result.fc_table.loc[result.fc_table["level"] == level, "FC"].iloc[0]
            assert np.log10(fc) == pytest.approx(estimate, abs=1e-12)
            assert (fc > 1) == (estimate > 0)

    def test_significance_consistent_with_pvalue(self, two_ref_data):
        result = _run_two_ref(two_ref_data)

        for _, row in result.fc_table.iloc[1:].iterrows():
            assert row["sig"] == significance_code(row["pvalue"])

    def test_efficiency_two_matches_ddct(self, two_level_data):
        result = qpcr_ancova(
            two_level_data, number_of_ref_genes=1, main_factor_column=1,
            level_order=["Control", "Treated"],
        )

        assert result.fc_table.loc[1, "FC"] == pytest.approx(2.0)

    def test_reordering_changes_reference_and_row_order(self, two_ref_data):
        result = _run_two_ref(two_ref_data, levels=("T1", "Ctrl", "T2"))

        fc = result.fc_table
        assert fc["level"].tolist() == ["T1", "Ctrl", "T2"]
        assert fc.loc[0, "FC"] == 1.0
        assert fc.loc[1, "contrast"] == "T1 - Ctrl"

    def test_non_reference_order_does_not_change_estimates(self, two_ref_data):
        first = _run_two_ref(two_ref_data, levels=("Ctrl", "T1", "T2")).fc_table
        second = _run_two_ref(two_ref_data, levels=("Ctrl", "T2", "T1")).fc_table

        assert second["level"].tolist() == ["Ctrl", "T2", "T1"]
        for level in ["T1", "T2"]:
            fc_first = first.loc[first["level"] == level, "FC"].iloc[0]
            fc_second = second.loc[second["level"] == level, "FC"].iloc[0]
            assert fc_first == pytest.approx(fc_second, rel=1e-10)

    def test_unobserved_level_omitted_with_warning(self, two_ref_data):
        result = _run_two_ref(two_ref_data, levels=("Ctrl", "T1", "T2", "T3"))

        assert result.fc_table["level"].tolist() == ["Ctrl", "T1", "T2"]
        assert any("T3" in w for w in result.warnings)

    def test_p_adjust_applied_to_reference_contrasts(self, two_ref_data):
        raw = _run_two_ref(two_ref_data).fc_table
        adjusted = _run_two_ref(two_ref_data, p_adjust="bonferroni").fc_table

        np.testing.assert_allclose(
            adjusted["pvalue"].iloc[1:], np.minimum(raw["pvalue"].iloc[1:] * 2, 1.0)
        )


class TestQpcrAncovaModels:
    def test_both_models_and_tables_returned(self, factorial_data):
        result = qpcr_ancova(
            factorial_data, number_of_ref_genes=1, main_factor_column=1, level_order=["R", "S"]
        )

        assert result.lm_anova.formula == "wDCt ~ Genotype + Drought + Genotype:Drought"
        assert result.lm_ancova.formula == "wDCt ~ Drought + Genotype"
        assert list(result.anova_table.index) == [
            "Genotype", "Drought", "Genotype:Drought", "Residuals",
        ]
        assert list(result.ancova_table.index) == ["Drought", "Genotype", "Residuals"]

    def test_block_adds_exactly_one_row(self, factorial_data, blocked_data):
        plain = qpcr_ancova(
            factorial_data, number_of_ref_genes=1, main_factor_column=1, level_order=["R", "S"]
        )
        blocked = qpcr_ancova(
            blocked_data, number_of_ref_genes=1, main_factor_column=1,
            level_order=["R", "S"], block="Block",
        )

        assert len(blocked.anova_table) == len(plain.anova_table) + 1
        assert len(blocked.ancova_table) == len(plain.ancova_table) + 1
        assert blocked.anova_table.index[0] == "Block"
        assert "Genotype" in blocked.anova_table.index
        assert "Genotype" in blocked.ancova_table.index

    def test_analysis_type_selects_model(self, factorial_data):
        ancova = qpcr_ancova(
            factorial_data, number_of_ref_genes=1, main_factor_column=1, level_order=["R", "S"]
        )
        anova = qpcr_ancova(
            factorial_data, number_of_ref_genes=1, main_factor_column=1,
            level_order=["R", "S"], analysis_type="anova",
        )

        assert ancova.selected_model is ancova.lm_ancova
        assert anova.selected_model is anova.lm_anova
        np.testing.assert_allclose(
            anova.final_data["resid"], anova.lm_anova.residuals.to_numpy()
        )

    def test_replicate_column_is_not_a_model_term(self, two_ref_data):
        result = _run_two_ref(two_ref_data)

        assert "Rep" not in result.lm_anova.formula
        assert result.lm_anova.formula == "wDCt ~ Treatment + Time + Treatment:Time"

    def test_rank_deficient_design_aborts(self, factorial_data):
        incomplete = factorial_data[
            ~((factorial_data["Genotype"] == "S") & (factorial_data["Drought"] == "D1"))
        ]

        with pytest.raises(ModelFitError):
            qpcr_ancova(incomplete, number_of_ref_genes=1, main_factor_column=1, level_order=["R", "S"])


class TestQpcrAncovaResult:
    def test_final_data_has_wdct_and_residuals(self, two_ref_data):
        result = _run_two_ref(two_ref_data)

        final = result.final_data
        assert len(final) == len(two_ref_data)
        assert final.columns[0] == "Treatment"
        assert list(final.columns[-2:]) == ["wDCt", "resid"]
        np.testing.assert_allclose(final["resid"], result.lm_ancova.residuals.to_numpy())

    def test_plot_built_by_default(self, two_ref_data):
        result = _run_two_ref(two_ref_data, ylab="Relative expression")

        assert isinstance(result.plot, go.Figure)
        assert result.plot.layout.yaxis.title.text == "Relative expression"

    def test_plot_skipped(self, two_ref_data):
        assert _run_two_ref(two_ref_data, make_plot=False).plot is None

    def test_idempotent(self, two_ref_data):
        first = _run_two_ref(two_ref_data)
        second = _run_two_ref(two_ref_data)

        pd.testing.assert_frame_equal(first.fc_table, second.fc_table)
        pd.testing.assert_frame_equal(first.anova_table, second.anova_table)
        pd.testing.assert_frame_equal(first.final_data, second.final_data)

    def test_input_not_modified(self, two_ref_data):
        original = two_ref_data.copy()
        _run_two_ref(two_ref_data)

        pd.testing.assert_frame_equal(two_ref_data, original)

    def test_as_dict_keys(self, two_ref_data):
        result = _run_two_ref(two_ref_data)

        assert isinstance(result, AncovaResult)
        assert list(result.as_dict()) == [
            "Final_data", "lm_ANOVA", "lm_ANCOVA", "ANOVA_table",
            "ANCOVA_table", "FC_Table", "Bar_plot_of_FCs",
        ]

    def test_engine_run_with_config(self, two_ref_data):
        config = AnalysisConfig(
            number_of_ref_genes=2,
            main_factor_column=2,
            level_order=["Ctrl", "T1", "T2"],
            replicate_column=3,
            make_plot=False,
        )

        result = AnalysisEngine.run(two_ref_data, config)

        assert result.config is config
        assert result.fc_table["level"].tolist() == ["Ctrl", "T1", "T2"]


class TestAnalysisConfig:
    def test_defaults(self):
        config = AnalysisConfig(number_of_ref_genes=1, main_factor_column=1, level_order=["A", "B"])

        assert config.analysis_type == "ancova"
        assert config.p_adjust == "none"
        assert config.block is None
        assert config.reference_level == "A"
        assert config.level_order == ("A", "B")
        assert config.plot_settings["ylab"] == "Fold Change"

    @pytest.mark.parametrize(
        "overrides",
        [
            {"number_of_ref_genes": 3},
            {"main_factor_column": 0},
            {"main_factor_column": "Genotype"},
            {"level_order": []},
            {"level_order": "AB"},
            {"analysis_type": "manova"},
            {"p_adjust": "tukey"},
            {"conf_level": 1.5},
            {"plot_settings": {"colour": "red"}},
        ],
    )
    def test_invalid_options_raise(self, overrides):
        options = {"number_of_ref_genes": 1, "main_factor_column": 1, "level_order": ["A", "B"]}
        options.update(overrides)

        with pytest.raises(ConfigurationError) as exc_info:
            AnalysisConfig(**options)
        assert str(exc_info.value).startswith("[configuration]")

    def test_unknown_plot_keyword_raises(self, two_level_data):
        with pytest.raises(ConfigurationError):
            qpcr_ancova(
                two_level_data, number_of_ref_genes=1, main_factor_column=1,
                level_order=["Control", "Treated"], bar_colour="red",
            )

    def test_unknown_block_column_raises(self, factorial_data):
        with pytest.raises(InputShapeError):
            qpcr_ancova(
                factorial_data, number_of_ref_genes=1, main_factor_column=1,
                level_order=["R", "S"], block="Plate",
            )
