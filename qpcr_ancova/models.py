"""
Model fitting: factorial ANOVA and additive ANCOVA over wDCt.

Both models are described by an explicit list of terms (tuples of factor names)
that is turned into a patsy ModelDesc, so no formula string is ever parsed.
Fits go through the statsmodels formula interface and the variance
decomposition is sequential (Type I) via ``anova_lm``, so the order of terms
decides which one absorbs shared variance.
"""

import keyword
import logging
from dataclasses import dataclass
from itertools import combinations
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd
import patsy
import statsmodels.formula.api as smf
from patsy.desc import INTERCEPT, ModelDesc, Term
from patsy.eval import EvalFactor
from statsmodels.stats.anova import anova_lm

from qpcr_ancova.constants import AnalysisConstants
from qpcr_ancova.errors import ConfigurationError, ModelFitError
from qpcr_ancova.utils import sorted_levels

logger = logging.getLogger(__name__)

FactorTerm = Tuple[str, ...]


# =============================================================================
# Model Specification
# =============================================================================


def _factor_code(name: str) -> str:
    # column names that are not plain identifiers go through patsy's Q()
    if name.isidentifier() and not keyword.iskeyword(name):
        return name
    return f"Q({name!r})"


def patsy_term(term: FactorTerm) -> Term:
    return Term([EvalFactor(_factor_code(str(factor))) for factor in term])


@dataclass(frozen=True)
class ModelSpec:
    """Abstract linear model: response ~ [block] + terms."""

    name: str
    terms: Tuple[FactorTerm, ...]
    block: Optional[str] = None
    response: str = AnalysisConstants.RESPONSE_COLUMN

    @property
    def model_terms(self) -> Tuple[FactorTerm, ...]:
        """Terms in fitting order, block first."""
        if self.block is None:
            return self.terms
        return ((self.block,),) + self.terms

    @property
    def factors(self) -> Tuple[str, ...]:
        """Every column used as a categorical predictor, block included."""
        seen = []
        for term in self.model_terms:
            for factor in term:
                if factor not in seen:
                    seen.append(factor)
        return tuple(seen)

    @property
    def formula(self) -> str:
        """Display form, e.g. ``wDCt ~ Block + A + B + A:B``."""
        return f"{self.response} ~ " + " + ".join(term_label(t) for t in self.model_terms)

    @property
    def model_desc(self) -> ModelDesc:
        """patsy description of the model: intercept first, then terms in fitting order."""
        lhs = [patsy_term((self.response,))]
        rhs = [INTERCEPT] + [patsy_term(term) for term in self.model_terms]
        return ModelDesc(lhs, rhs)

    def term_names(self) -> Dict[str, str]:
        """Map patsy term names to display labels."""
        return {patsy_term(term).name(): term_label(term) for term in self.model_terms}


def term_label(term: FactorTerm) -> str:
    return ":".join(str(factor) for factor in term)


def build_model_specs(
    factors: Sequence[str], block: Optional[str] = None
) -> Tuple[ModelSpec, ModelSpec]:
    """Build the factorial ANOVA and additive ANCOVA specifications.

    ANOVA crosses every factor (all main effects and interactions, by
    degree); ANCOVA lists main effects only, in reverse order so the main
    factor is entered last. A block, if given, is a single additive term
    entered first in both.

    Args:
        factors: Main factor first, then covariates.
        block: Optional blocking column.

    Returns:
        (anova_spec, ancova_spec)

    Example:
        >>> anova, ancova = build_model_specs(["A", "B"])
        >>> anova.formula
        'wDCt ~ A + B + A:B'
        >>> ancova.formula
        'wDCt ~ B + A'
    """
    factors = tuple(factors)
    if not factors:
        raise ModelFitError("At least the main factor is required to build a model.")
    if block is not None and block in factors:
        raise ModelFitError(f"Block column '{block}' cannot also be a factor.")

    anova_terms = tuple(
        combo
        for order in range(1, len(factors) + 1)
        for combo in combinations(factors, order)
    )
    ancova_terms = tuple((factor,) for factor in reversed(factors))

    return (
        ModelSpec(name="anova", terms=anova_terms, block=block),
        ModelSpec(name="ancova", terms=ancova_terms, block=block),
    )


# =============================================================================
# Design Matrix
# =============================================================================


def factor_levels(data: pd.DataFrame, factors: Sequence[str]) -> Dict[str, list]:
    """Observed levels of each factor; categorical order kept, otherwise natural order."""
    levels = {}
    for factor in factors:
        column = data[factor]
        if isinstance(column.dtype, pd.CategoricalDtype):
            present = set(column.dropna().unique())
            levels[factor] = [lvl for lvl in column.cat.categories if lvl in present]
        else:
            levels[factor] = sorted_levels(column)
    return levels


def categorical_factors(data: pd.DataFrame, spec: ModelSpec, levels: Dict[str, list]) -> pd.DataFrame:
    """Every factor of ``spec`` as a categorical over its observed levels only."""
    frame = pd.DataFrame(index=data.index)
    for factor in spec.factors:
        # first category is the treatment-coding baseline
        frame[factor] = pd.Categorical(data[factor].astype(object), categories=levels[factor])
    return frame


def _term_columns(design_info, spec: ModelSpec) -> Dict[str, List[str]]:
    columns = {}
    for term in spec.model_terms:
        span = design_info.slice(patsy_term(term))
        columns[term_label(term)] = design_info.column_names[span]
    return columns


def design_matrix(
    frame: pd.DataFrame, spec: ModelSpec, levels: Dict[str, list]
) -> Tuple[pd.DataFrame, Dict[str, List[str]]]:
    """Treatment-coded design matrix for ``spec`` evaluated on ``frame``.

    Returns:
        (design_df, term_columns) where term_columns maps each term label to
        the design columns it owns, in fitting order.
    """
    rhs = ModelDesc([], spec.model_desc.rhs_termlist)
    design = patsy.dmatrix(
        rhs,
        categorical_factors(frame, spec, levels),
        NA_action="raise",
        return_type="dataframe",
    )
    return design, _term_columns(design.design_info, spec)


# =============================================================================
# Fitted Model
# =============================================================================


@dataclass(frozen=True, eq=False)
class FittedModel:
    """An OLS fit of one ModelSpec; read-only once built."""

    spec: ModelSpec
    results: object
    levels: Dict[str, list]
    design: pd.DataFrame
    design_info: patsy.DesignInfo
    term_columns: Dict[str, List[str]]

    @property
    def params(self) -> pd.Series:
        return self.results.params

    @property
    def residuals(self) -> pd.Series:
        return self.results.resid

    @property
    def df_resid(self) -> float:
        return float(self.results.df_resid)

    @property
    def formula(self) -> str:
        return self.spec.formula

    def design_rows(self, frame: pd.DataFrame) -> pd.DataFrame:
        """Design rows for new level combinations (e.g. a reference grid)."""
        (rows,) = patsy.build_design_matrices(
            [self.design_info], frame, NA_action="raise", return_type="dataframe"
        )
        return rows

    def coefficient_table(self) -> pd.DataFrame:
        """Format model coefficients for output.

        Returns:
            DataFrame with Term, Coefficient, Std_Error, t, P-Value,
            CI_Lower, CI_Upper.
        """
        conf_int = self.results.conf_int()

        return pd.DataFrame(
            {
                "Term": self.params.index.tolist(),
                "Coefficient": self.params.values,
                "Std_Error": self.results.bse.values,
                "t": self.results.tvalues.values,
                "P-Value": self.results.pvalues.values,
                "CI_Lower": conf_int[0].values,
                "CI_Upper": conf_int[1].values,
            }
        )


def fit_linear_model(data: pd.DataFrame, spec: ModelSpec) -> FittedModel:
    """Fit ``spec`` by ordinary least squares.

    Raises:
        ModelFitError: If a column is missing, a factor has fewer than two
            observed levels, the design matrix is rank-deficient, or no
            residual degrees of freedom remain.
    """
    needed = [spec.response] + list(spec.factors)
    missing_cols = [col for col in needed if col not in data.columns]
    if missing_cols:
        raise ModelFitError(f"Columns not found for the {spec.name} model: {missing_cols}")

    if data[needed].isna().any().any():
        raise ModelFitError(
            f"Missing values in {data[needed].columns[data[needed].isna().any()].tolist()}; "
            f"cannot fit the {spec.name} model."
        )

    levels = factor_levels(data, spec.factors)
    for factor, observed in levels.items():
        if len(observed) < 2:
            raise ModelFitError(
                f"Factor '{factor}' has {len(observed)} observed level(s). "
                "Each factor must have at least 2 levels."
            )

    design, term_columns = design_matrix(data, spec, levels)
    frame = categorical_factors(data, spec, levels)
    frame.insert(0, spec.response, data[spec.response].astype(float))

    n_obs, n_params = design.shape
    rank = np.linalg.matrix_rank(design.to_numpy())
    if rank < n_params:
        raise ModelFitError(
            f"The {spec.name} design matrix ({spec.formula}) is rank-deficient: only "
            f"{rank} of {n_params} coefficients are estimable. Some factor-level "
            "combinations have no observations."
        )
    if n_obs <= n_params:
        raise ModelFitError(
            f"The {spec.name} model ({spec.formula}) has {n_params} coefficients for "
            f"{n_obs} observations, leaving no residual degrees of freedom."
        )

    try:
        results = smf.ols(spec.model_desc, data=frame, missing="raise").fit()
    except (np.linalg.LinAlgError, patsy.PatsyError) as e:
        raise ModelFitError(f"Failed to fit the {spec.name} model: {e}") from e

    logger.debug("Fitted %s: %s (n=%d, p=%d)", spec.name, spec.formula, n_obs, n_params)
    return FittedModel(
        spec=spec,
        results=results,
        levels=levels,
        design=design,
        design_info=design.design_info,
        term_columns=term_columns,
    )


def select_model(
    lm_anova: FittedModel, lm_ancova: FittedModel, analysis_type: str
) -> FittedModel:
    """Pick the model that drives the contrasts."""
    if analysis_type == "ancova":
        return lm_ancova
    if analysis_type == "anova":
        return lm_anova
    raise ConfigurationError(
        f"analysis_type must be one of {AnalysisConstants.ANALYSIS_TYPES}, got {analysis_type!r}"
    )


# =============================================================================
# Variance Decomposition
# =============================================================================


def anova_table(model: FittedModel) -> pd.DataFrame:
    """Sequential (Type I) ANOVA table of a fitted model.

    Each term's sum of squares is the drop in residual sum of squares when it
    is added after every term before it; F statistics use the full model's
    residual mean square.

    Returns:
        DataFrame indexed by term label plus ``Residuals`` with columns df,
        sum_sq, mean_sq, F, PR(>F).
    """
    table = anova_lm(model.results, typ=1)

    labels = model.spec.term_names()
    labels["Residual"] = AnalysisConstants.RESIDUAL_TERM
    table = table.rename(index=labels)
    table.index.name = None
    table["df"] = table["df"].round().astype(int)
    return table[["df", "sum_sq", "mean_sq", "F", "PR(>F)"]]
