"""Input normalization: main-factor placement, row ordering and level domain.

Puts the main factor first, sorts rows by the caller's level ordering and turns
the column into a categorical whose categories are exactly that ordering.
"""

import logging
from typing import List, Sequence, Tuple

import numpy as np
import pandas as pd

from qpcr_ancova.errors import InputShapeError
from qpcr_ancova.utils import resolve_column

logger = logging.getLogger(__name__)


def normalize_input(
    data: pd.DataFrame,
    main_factor_column: int,
    level_order: Sequence,
) -> Tuple[pd.DataFrame, List[str]]:
    """Reorder columns and rows so the main factor leads and follows ``level_order``.

    Args:
        data: Raw observation table.
        main_factor_column: 1-based index of the main factor column.
        level_order: Level labels of the main factor; the first one is the
            reference level.

    Returns:
        (normalized_df, warnings_list). Rows whose main-factor value is not in
        ``level_order`` are dropped; levels of ``level_order`` that have no rows
        stay in the categorical domain.

    Raises:
        InputShapeError: If the index is invalid, the ordering is empty or
            duplicated, or the ordering matches no row (or not the reference
            level).
    """
    warnings = []

    if data is None or data.empty:
        raise InputShapeError("Input table is empty.")

    if isinstance(main_factor_column, bool) or not isinstance(main_factor_column, (int, np.integer)):
        raise InputShapeError(
            f"main_factor_column must be a 1-based column index, got {main_factor_column!r}."
        )
    main_col = resolve_column(data, int(main_factor_column))

    levels = list(level_order)
    if not levels:
        raise InputShapeError("level_order is empty; at least the reference level is required.")
    duplicated = pd.Series(levels)[pd.Series(levels).duplicated()].tolist()
    if duplicated:
        raise InputShapeError(f"level_order contains duplicated labels: {duplicated}")

    columns = [main_col] + [col for col in data.columns if col != main_col]
    df = data[columns].copy()

    codes = pd.Index(levels).get_indexer(df[main_col])
    main_values = pd.Categorical.from_codes(codes, categories=levels, ordered=True)
    # unmatched values (code -1) sort after every listed level
    sort_key = np.where(codes < 0, len(levels), codes)
    order = np.argsort(sort_key, kind="stable")
    df = df.iloc[order].reset_index(drop=True)
    df[main_col] = main_values[order]

    unmatched = df[main_col].isna()
    if unmatched.all():
        raise InputShapeError(
            f"None of the levels {levels} occur in column '{main_col}'. "
            f"Observed values: {data[main_col].dropna().unique().tolist()[:10]}"
        )
    if unmatched.any():
        dropped = data[main_col][~data[main_col].isin(levels)].unique().tolist()
        msg = (
            f"Dropped {int(unmatched.sum())} rows whose '{main_col}' value is not in "
            f"level_order: {dropped}"
        )
        logger.warning(msg)
        warnings.append(msg)
        df = df[~unmatched].reset_index(drop=True)

    observed = set(df[main_col].dropna().unique())
    missing_levels = [lvl for lvl in levels if lvl not in observed]
    if levels[0] in missing_levels:
        raise InputShapeError(
            f"Reference level '{levels[0]}' (first entry of level_order) has no rows in "
            f"column '{main_col}'."
        )
    if missing_levels:
        msg = f"Levels without observations in '{main_col}': {missing_levels}"
        logger.warning(msg)
        warnings.append(msg)

    return df, warnings
