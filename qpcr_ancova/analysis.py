"""AnalysisEngine: end-to-end fold-change analysis.

Runs normalization, the wDCt transform, both linear models and the contrast
engine in order, and bundles everything into an AncovaResult. Any stage
failure aborts the run; there is no partial result.
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Union

import numpy as np
import pandas as pd

from qpcr_ancova.constants import AnalysisConstants
from qpcr_ancova.contrasts import fold_change_table
from qpcr_ancova.errors import ConfigurationError, InputShapeError
from qpcr_ancova.expression import add_wdct
from qpcr_ancova.graph import GraphGenerator
from qpcr_ancova.models import (
    FittedModel,
    anova_table,
    build_model_specs,
    fit_linear_model,
    select_model,
)
from qpcr_ancova.normalize import normalize_input
from qpcr_ancova.utils import resolve_column

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AnalysisConfig:
    """Validated analysis options; the first entry of ``level_order`` is the reference level."""

    number_of_ref_genes: int
    main_factor_column: int
    level_order: Sequence
    block: Optional[Union[int, str]] = None
    analysis_type: str = "ancova"
    p_adjust: str = "none"
    replicate_column: Optional[Union[int, str]] = None
    conf_level: float = AnalysisConstants.DEFAULT_CONF_LEVEL
    plot_settings: dict = field(default_factory=dict)
    make_plot: bool = True

    def __post_init__(self):
        if isinstance(self.level_order, str):
            raise ConfigurationError("level_order must be a sequence of level labels, not a string.")
        object.__setattr__(self, "level_order", tuple(self.level_order))
        if not self.level_order:
            raise ConfigurationError("level_order must name at least the reference level.")

        if self.number_of_ref_genes not in AnalysisConstants.SUPPORTED_REF_GENES:
            raise ConfigurationError(
                f"number_of_ref_genes must be one of {AnalysisConstants.SUPPORTED_REF_GENES}, "
                f"got {self.number_of_ref_genes!r}."
            )
        if isinstance(self.main_factor_column, bool) or not isinstance(
            self.main_factor_column, (int, np.integer)
        ):
            raise ConfigurationError(
                f"main_factor_column must be a 1-based integer index, got {self.main_factor_column!r}."
            )
        if self.main_factor_column < 1:
            raise ConfigurationError(
                f"main_factor_column is 1-based, got {self.main_factor_column}."
            )
        if self.analysis_type not in AnalysisConstants.ANALYSIS_TYPES:
            raise ConfigurationError(
                f"analysis_type must be one of {AnalysisConstants.ANALYSIS_TYPES}, "
                f"got {self.analysis_type!r}."
            )
        if self.p_adjust not in AnalysisConstants.P_ADJUST_METHODS:
            raise ConfigurationError(
                f"p_adjust must be one of {list(AnalysisConstants.P_ADJUST_METHODS)}, "
                f"got {self.p_adjust!r}."
            )
        if not 0 < self.conf_level < 1:
            raise ConfigurationError(f"conf_level must be between 0 and 1, got {self.conf_level}.")

        object.__setattr__(self, "plot_settings", GraphGenerator.resolve_settings(self.plot_settings))

    @property
    def reference_level(self):
        return self.level_order[0]

    def as_params(self) -> dict:
        """Flat parameter dict for display and export."""
        return {
            "number_of_ref_genes": self.number_of_ref_genes,
            "main_factor_column": self.main_factor_column,
            "level_order": ", ".join(str(lvl) for lvl in self.level_order),
            "reference_level": str(self.reference_level),
            "block": "" if self.block is None else str(self.block),
            "analysis_type": self.analysis_type,
            "p_adjust": self.p_adjust,
            "replicate_column": "" if self.replicate_column is None else str(self.replicate_column),
            "conf_level": self.conf_level,
        }


@dataclass
class AncovaResult:
    final_data: pd.DataFrame
    lm_anova: FittedModel
    lm_ancova: FittedModel
    anova_table: pd.DataFrame
    ancova_table: pd.DataFrame
    fc_table: pd.DataFrame
    plot: object
    config: AnalysisConfig
    warnings: List[str] = field(default_factory=list)

    @property
    def selected_model(self) -> FittedModel:
        return select_model(self.lm_anova, self.lm_ancova, self.config.analysis_type)

    def as_dict(self) -> dict:
        """Result bundle under the names used by the rtpcr R package."""
        return {
            "Final_data": self.final_data,
            "lm_ANOVA": self.lm_anova,
            "lm_ANCOVA": self.lm_ancova,
            "ANOVA_table": self.anova_table,
            "ANCOVA_table": self.ancova_table,
            "FC_Table": self.fc_table,
            "Bar_plot_of_FCs": self.plot,
        }


class AnalysisEngine:
    @staticmethod
    def _drop_incomplete_factors(data: pd.DataFrame, columns: List[str]) -> tuple:
        incomplete = data[columns].isna().any(axis=1)
        if not incomplete.any():
            return data, []
        msg = f"Dropped {int(incomplete.sum())} rows with missing values in {columns}."
        logger.warning(msg)
        return data[~incomplete].reset_index(drop=True), [msg]

    @staticmethod
    def run(data: pd.DataFrame, config: AnalysisConfig) -> AncovaResult:
        """Run the full pipeline on one observation table.

        Args:
            data: Observation table; the last 2 * (1 + number_of_ref_genes)
                columns are efficiency/Ct pairs, target gene first.
            config: Validated analysis options.

        Returns:
            AncovaResult with both fitted models, their ANOVA tables, the
            fold-change table and (unless disabled) the bar chart.
        """
        warnings = []

        # Block/replicate positions refer to the caller's column layout
        block = (
            resolve_column(data, config.block, "configuration") if config.block is not None else None
        )
        replicate = (
            resolve_column(data, config.replicate_column, "configuration")
            if config.replicate_column is not None
            else None
        )
        if block is not None and block == replicate:
            raise ConfigurationError(f"Column '{block}' cannot be both block and replicate column.")

        normalized, stage_warnings = normalize_input(
            data, config.main_factor_column, config.level_order
        )
        warnings.extend(stage_warnings)

        transformed, factors, stage_warnings = add_wdct(
            normalized,
            config.number_of_ref_genes,
            block=block,
            replicate_column=replicate,
        )
        warnings.extend(stage_warnings)

        model_columns = factors + ([block] if block is not None else [])
        transformed, stage_warnings = AnalysisEngine._drop_incomplete_factors(
            transformed, model_columns
        )
        warnings.extend(stage_warnings)
        if transformed.empty:
            raise InputShapeError("No complete rows remain for model fitting.", "expression transform")

        anova_spec, ancova_spec = build_model_specs(factors, block)
        logger.info("ANOVA model: %s", anova_spec.formula)
        logger.info("ANCOVA model: %s", ancova_spec.formula)

        lm_anova = fit_linear_model(transformed, anova_spec)
        lm_ancova = fit_linear_model(transformed, ancova_spec)
        selected = select_model(lm_anova, lm_ancova, config.analysis_type)

        main_factor = factors[0]
        fc_table = fold_change_table(
            selected,
            transformed,
            main_factor,
            config.reference_level,
            p_adjust=config.p_adjust,
            conf_level=config.conf_level,
        )

        undefined_sd = fc_table.loc[fc_table["sd"].isna(), "level"].tolist()
        if undefined_sd:
            msg = f"Standard deviation undefined (single observation) for levels: {undefined_sd}"
            logger.warning(msg)
            warnings.append(msg)

        final_data = transformed.copy()
        final_data[AnalysisConstants.RESIDUAL_COLUMN] = selected.residuals.to_numpy()

        plot = GraphGenerator.create_fc_graph(fc_table, config.plot_settings) if config.make_plot else None

        return AncovaResult(
            final_data=final_data,
            lm_anova=lm_anova,
            lm_ancova=lm_ancova,
            anova_table=anova_table(lm_anova),
            ancova_table=anova_table(lm_ancova),
            fc_table=fc_table,
            plot=plot,
            config=config,
            warnings=warnings,
        )


def qpcr_ancova(
    data: pd.DataFrame,
    number_of_ref_genes: int,
    main_factor_column: int,
    level_order: Sequence,
    block: Optional[Union[int, str]] = None,
    analysis_type: str = "ancova",
    p_adjust: str = "none",
    replicate_column: Optional[Union[int, str]] = None,
    conf_level: float = AnalysisConstants.DEFAULT_CONF_LEVEL,
    make_plot: bool = True,
    **plot_settings,
) -> AncovaResult:
    """Fold-change analysis of a main factor, adjusting for covariates and a block.

    Keyword arguments beyond the analysis options are chart settings (keys of
    ``DEFAULT_PLOT_SETTINGS``, e.g. ``width``, ``fill``, ``ylab``).

    Example:
        >>> result = qpcr_ancova(df, number_of_ref_genes=1, main_factor_column=1,
        ...                      level_order=["Control", "Treated"])
        >>> result.fc_table[["level", "FC", "pvalue", "sig"]]
    """
    config = AnalysisConfig(
        number_of_ref_genes=number_of_ref_genes,
        main_factor_column=main_factor_column,
        level_order=level_order,
        block=block,
        analysis_type=analysis_type,
        p_adjust=p_adjust,
        replicate_column=replicate_column,
        conf_level=conf_level,
        plot_settings=plot_settings,
        make_plot=make_plot,
    )
    return AnalysisEngine.run(data, config)
