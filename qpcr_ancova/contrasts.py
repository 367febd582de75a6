"""Estimated marginal means, pairwise contrasts and the fold-change table.

Means are averaged over a reference grid of every observed level combination
of the model's factors, with equal weight per cell. Contrast estimates are on
the wDCt scale; fold change is 10 ** estimate.
"""

from dataclasses import dataclass
from itertools import combinations, product
from typing import Sequence

import numpy as np
import pandas as pd
from scipy import stats
from statsmodels.stats.multitest import multipletests

from qpcr_ancova.constants import AnalysisConstants
from qpcr_ancova.errors import ConfigurationError, ContrastError
from qpcr_ancova.models import FittedModel


FC_COLUMNS = ["level", "contrast", "FC", "sd", "pvalue", "sig", "LCL", "UCL"]


@dataclass(frozen=True, eq=False)
class MarginalMeans:
    """Estimated marginal means of one factor plus what is needed to contrast them."""

    factor: str
    table: pd.DataFrame
    linfct: np.ndarray
    vcov: np.ndarray
    df: float

    @property
    def levels(self) -> list:
        return self.table[self.factor].tolist()


def _t_quantile(conf_level: float, df: float) -> float:
    return stats.t.ppf(0.5 + conf_level / 2, df)


def reference_grid(model: FittedModel) -> pd.DataFrame:
    """Every combination of the observed levels of the model's factors."""
    factors = list(model.spec.factors)
    combos = list(product(*(model.levels[factor] for factor in factors)))
    return pd.DataFrame(combos, columns=factors, dtype=object)


def estimated_marginal_means(
    model: FittedModel,
    factor: str,
    conf_level: float = AnalysisConstants.DEFAULT_CONF_LEVEL,
) -> MarginalMeans:
    """Estimated marginal means of ``factor``, averaged over the other factors.

    Returns:
        MarginalMeans whose ``table`` has one row per observed level (in level
        order) with columns <factor>, emmean, SE, df, lower.CL, upper.CL.
    """
    if factor not in model.levels:
        raise ContrastError(f"Factor '{factor}' is not part of the {model.spec.name} model.")

    grid = reference_grid(model)
    rows_x = model.design_rows(grid)[model.params.index].to_numpy()
    beta = model.params.to_numpy()
    vcov = np.asarray(model.results.cov_params(), dtype=float)
    df = model.df_resid
    t_crit = _t_quantile(conf_level, df)

    linfct = []
    rows = []
    for level in model.levels[factor]:
        mask = (grid[factor] == level).to_numpy()
        weights = rows_x[mask].mean(axis=0)
        estimate = float(weights @ beta)
        se = float(np.sqrt(weights @ vcov @ weights))
        linfct.append(weights)
        rows.append(
            {
                factor: level,
                "emmean": estimate,
                "SE": se,
                "df": df,
                "lower.CL": estimate - t_crit * se,
                "upper.CL": estimate + t_crit * se,
            }
        )

    return MarginalMeans(
        factor=factor,
        table=pd.DataFrame(rows),
        linfct=np.vstack(linfct),
        vcov=vcov,
        df=df,
    )


def pairwise_contrasts(emm: MarginalMeans) -> pd.DataFrame:
    """All pairwise differences ``a - b`` for a before b in level order.

    Returns:
        DataFrame with contrast, group1, group2, estimate, SE, df, t.ratio,
        p.value. p-values are unadjusted two-sided t tests.
    """
    levels = emm.levels
    means = emm.table["emmean"].to_numpy()

    rows = []
    with np.errstate(divide="ignore", invalid="ignore"):
        for i, j in combinations(range(len(levels)), 2):
            weights = emm.linfct[i] - emm.linfct[j]
            estimate = means[i] - means[j]
            se = float(np.sqrt(weights @ emm.vcov @ weights))
            t_ratio = estimate / se
            rows.append(
                {
                    "contrast": f"{levels[i]} - {levels[j]}",
                    "group1": levels[i],
                    "group2": levels[j],
                    "estimate": estimate,
                    "SE": se,
                    "df": emm.df,
                    "t.ratio": t_ratio,
                    "p.value": 2 * stats.t.sf(abs(t_ratio), emm.df),
                }
            )

    columns = ["contrast", "group1", "group2", "estimate", "SE", "df", "t.ratio", "p.value"]
    return pd.DataFrame(rows, columns=columns)


def reference_contrasts(pairs: pd.DataFrame, reference, levels: Sequence) -> pd.DataFrame:
    """Contrasts of the reference level against every other level.

    Rows are oriented as ``reference - other`` and ordered like ``levels``.

    Raises:
        ContrastError: If there are not exactly ``len(levels) - 1`` such
            contrasts.
    """
    others = [lvl for lvl in levels if lvl != reference]

    forward = pairs[pairs["group1"] == reference].copy()
    backward = pairs[pairs["group2"] == reference].copy()
    if not backward.empty:
        # reference listed second; flip to reference - other
        backward = backward.rename(columns={"group1": "group2", "group2": "group1"})
        backward["estimate"] = -backward["estimate"]
        backward["t.ratio"] = -backward["t.ratio"]
        backward["contrast"] = [f"{reference} - {other}" for other in backward["group2"]]

    selected = pd.concat([forward, backward], ignore_index=True)
    if len(selected) != len(others) or set(selected["group2"]) != set(others):
        raise ContrastError(
            f"Expected {len(others)} contrasts against reference level '{reference}', "
            f"found {len(selected)}."
        )

    order = {lvl: i for i, lvl in enumerate(others)}
    selected = selected.sort_values("group2", key=lambda s: s.map(order), kind="stable")
    return selected.reset_index(drop=True)


def pooled_level_sd(
    data: pd.DataFrame,
    factor: str,
    reference,
    response: str = AnalysisConstants.RESPONSE_COLUMN,
) -> pd.Series:
    """Per-level SD for the error bars.

    The reference level keeps its own SD of ``response``; every other level i
    gets ``10 ** -sqrt((var_ref + var_i) / 2)``. Variances use ddof=1, so a
    level with a single observation yields NaN.
    """
    variances = data.groupby(factor, observed=True, sort=False)[response].var()
    if reference not in variances.index:
        raise ContrastError(f"Reference level '{reference}' has no observations in '{factor}'.")

    var_ref = variances.loc[reference]
    sd = {}
    for level, var in variances.items():
        if level == reference:
            sd[level] = np.sqrt(var_ref)
        else:
            sd[level] = 10 ** (-np.sqrt((var_ref + var) / 2))
    return pd.Series(sd, name="sd")


def significance_code(p) -> str:
    """Map a p-value to '***', '**', '*' or 'ns'. Missing p-values are 'ns'."""
    if pd.isna(p):
        return AnalysisConstants.NOT_SIGNIFICANT
    thresholds = sorted(AnalysisConstants.P_VALUE_THRESHOLDS.items(), key=lambda kv: kv[1])
    for code, threshold in thresholds:
        if p < threshold:
            return code
    return AnalysisConstants.NOT_SIGNIFICANT


def significance_codes(pvalues) -> list:
    return [significance_code(p) for p in pvalues]


def adjust_pvalues(pvalues, method: str = "none") -> np.ndarray:
    """Multiple-testing correction with R ``p.adjust`` method names.

    NaN entries are left untouched and excluded from the family.
    """
    if method not in AnalysisConstants.P_ADJUST_METHODS:
        raise ConfigurationError(
            f"Unknown p-value adjustment '{method}'. "
            f"Choose one of {list(AnalysisConstants.P_ADJUST_METHODS)}."
        )

    p_array = np.asarray(pvalues, dtype=float)
    adjusted = p_array.copy()
    sm_method = AnalysisConstants.P_ADJUST_METHODS[method]
    if sm_method is None:
        return adjusted

    valid = ~np.isnan(p_array)
    if valid.any():
        _, corrected, _, _ = multipletests(p_array[valid], method=sm_method)
        adjusted[valid] = corrected
    return adjusted


def fold_change_table(
    model: FittedModel,
    data: pd.DataFrame,
    factor: str,
    reference,
    p_adjust: str = "none",
    conf_level: float = AnalysisConstants.DEFAULT_CONF_LEVEL,
) -> pd.DataFrame:
    """Fold change of every observed level of ``factor`` relative to ``reference``.

    The first row is the reference itself (FC 1, pvalue 1, empty sig, no CI);
    the others follow level order. LCL/UCL are the contrast's confidence limits
    moved to the fold-change scale.

    p-values are unadjusted t tests unless ``p_adjust`` names a method, which
    is then applied across the k - 1 reference contrasts only. This differs
    from rtpcr: R's ``pairs(emmeans(...))`` applies a Tukey adjustment over
    all k(k - 1) / 2 pairs, so with three or more levels its p-values are
    larger than the default ones here.

    Args:
        p_adjust: R ``p.adjust`` method name, ``"none"`` by default.
        conf_level: Confidence level of LCL/UCL.

    Returns:
        DataFrame with level, contrast, FC, sd, pvalue, sig, LCL, UCL.
    """
    emm = estimated_marginal_means(model, factor, conf_level)
    if reference not in emm.levels:
        raise ContrastError(f"Reference level '{reference}' is not an observed level of '{factor}'.")

    pairs = pairwise_contrasts(emm)
    ref_pairs = reference_contrasts(pairs, reference, emm.levels)
    pvalues = adjust_pvalues(ref_pairs["p.value"], p_adjust)
    sd = pooled_level_sd(data, factor, reference)
    t_crit = _t_quantile(conf_level, emm.df)

    rows = [
        {
            "level": reference,
            "contrast": reference,
            "FC": 1.0,
            "sd": sd.get(reference, np.nan),
            "pvalue": 1.0,
            "sig": AnalysisConstants.REFERENCE_SIGNIFICANCE,
            "LCL": np.nan,
            "UCL": np.nan,
        }
    ]
    for (_, contrast), pvalue in zip(ref_pairs.iterrows(), pvalues):
        level = contrast["group2"]
        estimate = contrast["estimate"]
        margin = t_crit * contrast["SE"]
        rows.append(
            {
                "level": level,
                "contrast": contrast["contrast"],
                "FC": 10 ** estimate,
                "sd": sd.get(level, np.nan),
                "pvalue": pvalue,
                "sig": significance_code(pvalue),
                "LCL": 10 ** (estimate - margin),
                "UCL": 10 ** (estimate + margin),
            }
        )

    return pd.DataFrame(rows, columns=FC_COLUMNS)
