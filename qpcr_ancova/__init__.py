"""qPCR fold-change analysis with ANOVA / ANCOVA.

Provides:
- normalize_input / add_wdct: Input ordering and weighted delta-Ct transform
- build_model_specs / fit_linear_model / anova_table: Linear models over wDCt
- estimated_marginal_means / pairwise_contrasts / fold_change_table: Contrasts
- AnalysisEngine / qpcr_ancova: End-to-end pipeline returning AncovaResult
- QPCRParser / mean_technical: Reading and preprocessing input tables
- GraphGenerator: Plotly fold-change bar chart
- export_to_excel: Multi-sheet Excel export
"""

from qpcr_ancova.constants import (
    AnalysisConstants,
    DEFAULT_PLOT_SETTINGS,
    PLOTLY_FONT_FAMILY,
)
from qpcr_ancova.errors import (
    QPCRAnalysisError,
    ConfigurationError,
    InputShapeError,
    ModelFitError,
    ContrastError,
)
from qpcr_ancova.utils import natural_sort_key, format_p_value
from qpcr_ancova.normalize import normalize_input
from qpcr_ancova.expression import add_wdct
from qpcr_ancova.models import (
    ModelSpec,
    FittedModel,
    build_model_specs,
    fit_linear_model,
    anova_table,
    select_model,
)
from qpcr_ancova.contrasts import (
    MarginalMeans,
    estimated_marginal_means,
    pairwise_contrasts,
    reference_contrasts,
    pooled_level_sd,
    significance_code,
    significance_codes,
    adjust_pvalues,
    fold_change_table,
)
from qpcr_ancova.graph import GraphGenerator
from qpcr_ancova.analysis import AnalysisConfig, AncovaResult, AnalysisEngine, qpcr_ancova
from qpcr_ancova.parser import QPCRParser, mean_technical
from qpcr_ancova.export import export_to_excel

__all__ = [
    "AnalysisConstants",
    "DEFAULT_PLOT_SETTINGS",
    "PLOTLY_FONT_FAMILY",
    "QPCRAnalysisError",
    "ConfigurationError",
    "InputShapeError",
    "ModelFitError",
    "ContrastError",
    "natural_sort_key",
    "format_p_value",
    "normalize_input",
    "add_wdct",
    "ModelSpec",
    "FittedModel",
    "build_model_specs",
    "fit_linear_model",
    "anova_table",
    "select_model",
    "MarginalMeans",
    "estimated_marginal_means",
    "pairwise_contrasts",
    "reference_contrasts",
    "pooled_level_sd",
    "significance_code",
    "significance_codes",
    "adjust_pvalues",
    "fold_change_table",
    "GraphGenerator",
    "AnalysisConfig",
    "AncovaResult",
    "AnalysisEngine",
    "qpcr_ancova",
    "QPCRParser",
    "mean_technical",
    "export_to_excel",
]
