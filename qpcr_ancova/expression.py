"""Weighted delta-Ct (wDCt) per observation.

The raw qPCR inputs are the last columns of the table, as efficiency/Ct pairs:
target gene first, then one or two reference genes.

    one reference gene:  wDCt = log10(E_t)*Ct_t - log10(E_r)*Ct_r
    two reference genes: wDCt = log10(E_t)*Ct_t - (log10(E_r)*Ct_r + log10(E_r2)*Ct_r2) / 2

Lower wDCt means higher expression of the target gene.
"""

import logging
from typing import List, Optional, Tuple, Union

import numpy as np
import pandas as pd

from qpcr_ancova.constants import AnalysisConstants
from qpcr_ancova.errors import InputShapeError
from qpcr_ancova.utils import resolve_column

logger = logging.getLogger(__name__)

STAGE = "expression transform"


def raw_input_columns(data: pd.DataFrame, number_of_ref_genes: int) -> List[str]:
    """Names of the efficiency/Ct columns, target gene first."""
    if number_of_ref_genes not in AnalysisConstants.SUPPORTED_REF_GENES:
        raise InputShapeError(
            f"number_of_ref_genes must be one of {AnalysisConstants.SUPPORTED_REF_GENES}, "
            f"got {number_of_ref_genes!r}.",
            STAGE,
        )
    n_raw = 2 * (1 + number_of_ref_genes)
    if data.shape[1] < n_raw + 1:
        raise InputShapeError(
            f"Expected the main factor plus {n_raw} efficiency/Ct columns for "
            f"{number_of_ref_genes} reference gene(s); the table has {data.shape[1]} columns.",
            STAGE,
        )
    return list(data.columns[-n_raw:])


def add_wdct(
    data: pd.DataFrame,
    number_of_ref_genes: int,
    block: Optional[Union[int, str]] = None,
    replicate_column: Optional[Union[int, str]] = None,
) -> Tuple[pd.DataFrame, List[str], List[str]]:
    """Append a ``wDCt`` column and report the factor columns.

    Args:
        data: Normalized table (main factor in the first column).
        number_of_ref_genes: 1 or 2.
        block: Optional blocking column (name or 1-based index); never a factor.
        replicate_column: Optional biological-replicate column; never a factor.

    Returns:
        (table_with_wDCt, factor_columns, warnings). ``factor_columns`` starts
        with the main factor followed by the covariates in table order.
    """
    warnings = []
    response = AnalysisConstants.RESPONSE_COLUMN

    if response in data.columns:
        raise InputShapeError(f"Input already contains a '{response}' column.", STAGE)

    raw_cols = raw_input_columns(data, number_of_ref_genes)
    main_col = data.columns[0]
    if main_col in raw_cols:
        raise InputShapeError(
            f"Main factor '{main_col}' overlaps the efficiency/Ct columns {raw_cols}.", STAGE
        )

    excluded = set(raw_cols)
    for role, column in (("block", block), ("replicate", replicate_column)):
        if column is None:
            continue
        name = resolve_column(data, column, STAGE)
        if name == main_col or name in raw_cols:
            raise InputShapeError(
                f"The {role} column '{name}' must not be the main factor or an efficiency/Ct column.",
                STAGE,
            )
        excluded.add(name)

    df = data.copy()
    raw = df[raw_cols].apply(pd.to_numeric, errors="coerce")

    incomplete = raw.isna().any(axis=1)
    if incomplete.all():
        raise InputShapeError(f"No row has complete numeric values in {raw_cols}.", STAGE)
    if incomplete.any():
        msg = f"Dropped {int(incomplete.sum())} rows with missing or non-numeric efficiency/Ct values."
        logger.warning(msg)
        warnings.append(msg)
        df = df[~incomplete]
        raw = raw[~incomplete]

    efficiency_cols = raw_cols[0::2]
    ct_cols = raw_cols[1::2]
    if (raw[efficiency_cols] <= 0).any().any():
        raise InputShapeError(
            f"Efficiency columns {efficiency_cols} must contain positive values.", STAGE
        )

    # one column per gene: target, ref[, ref2]
    weighted = np.log10(raw[efficiency_cols].to_numpy(dtype=float)) * raw[ct_cols].to_numpy(dtype=float)
    if number_of_ref_genes == 1:
        wdct = weighted[:, 0] - weighted[:, 1]
    else:
        wdct = weighted[:, 0] - weighted[:, 1:].mean(axis=1)

    df[raw_cols] = raw
    df[response] = wdct
    df = df.reset_index(drop=True)

    factors = [col for col in data.columns if col not in excluded]
    logger.debug("wDCt computed for %d rows; factors: %s", len(df), factors)
    return df, factors, warnings
