"""Constants and configuration for qPCR fold-change analysis.

Contains analysis thresholds, p-value adjustment methods, and chart defaults.
"""

# ==================== COLOR / FONT CONSTANTS ====================
DEFAULT_BAR_FILL = "skyblue"
DEFAULT_BAR_LINE = "#000000"
PLOTLY_FONT_FAMILY = "Arial, sans-serif"


# ==================== ANALYSIS CONSTANTS ====================
class AnalysisConstants:
    RESPONSE_COLUMN = "wDCt"
    RESIDUAL_COLUMN = "resid"
    RESIDUAL_TERM = "Residuals"
    ANALYSIS_TYPES = ("ancova", "anova")
    SUPPORTED_REF_GENES = (1, 2)
    DEFAULT_CONF_LEVEL = 0.95
    # checked in ascending order: the first threshold the p-value falls under wins
    P_VALUE_THRESHOLDS = {"***": 0.001, "**": 0.01, "*": 0.05}
    NOT_SIGNIFICANT = "ns"
    REFERENCE_SIGNIFICANCE = ""
    # R p.adjust names -> statsmodels.stats.multitest.multipletests names
    P_ADJUST_METHODS = {
        "none": None,
        "holm": "holm",
        "hommel": "hommel",
        "hochberg": "simes-hochberg",
        "bonferroni": "bonferroni",
        "BH": "fdr_bh",
        "BY": "fdr_by",
        "fdr": "fdr_bh",
    }


# ==================== CHART DEFAULTS ====================
DEFAULT_PLOT_SETTINGS = {
    "width": 0.5,
    "fill": DEFAULT_BAR_FILL,
    "y_axis_adjust": 1.0,
    "y_axis_by": 1.0,
    "letter_position_adjust": 0.1,
    "ylab": "Fold Change",
    "xlab": "Pairs",
    "fontsize": 12,
    "fontsize_pvalue": 16,
    "axis_text_x_angle": 0,
    "figure_height": 500,
    "figure_width": 700,
    "color_scheme": "plotly_white",
}
