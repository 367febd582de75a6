"""Utility functions for qPCR fold-change analysis.

Contains level sorting, column lookup, and p-value formatting helpers.
"""

import re
from typing import List, Sequence, Union

import numpy as np
import pandas as pd

from qpcr_ancova.errors import InputShapeError


def natural_sort_key(label):
    """Extract numbers from a level label for natural sorting (e.g., D7 < D12)"""
    parts = re.split(r"(\d+)", str(label))
    return [int(part) if part.isdigit() else part.lower() for part in parts]


def sorted_levels(values) -> list:
    """Distinct non-missing values of a factor column in natural order."""
    distinct = pd.Series(values).dropna().unique().tolist()
    return sorted(distinct, key=natural_sort_key)


def resolve_column(
    data: pd.DataFrame, column: Union[int, str], stage: str = "normalization"
) -> str:
    """Return the column name for a 1-based index or a column name.

    Raises:
        InputShapeError: If the index is out of range or the name is unknown.
    """
    if isinstance(column, bool):
        raise InputShapeError(f"Column reference must be an index or a name, got {column!r}", stage)

    if isinstance(column, (int, np.integer)):
        column = int(column)
        if not 1 <= column <= data.shape[1]:
            raise InputShapeError(
                f"Column index {column} is out of range; the table has {data.shape[1]} columns "
                "(indices are 1-based).",
                stage,
            )
        return data.columns[column - 1]

    if column not in data.columns:
        raise InputShapeError(f"Column '{column}' not found in input data.", stage)
    return column


def resolve_columns(
    data: pd.DataFrame, columns: Sequence[Union[int, str]], stage: str = "normalization"
) -> List[str]:
    return [resolve_column(data, col, stage) for col in columns]


def format_p_value(p) -> str:
    """
    Format p-value to avoid scientific notation.

    Returns 'NaN' for missing values, '<0.0001' below display precision,
    otherwise formats to 4 decimal places.
    """
    if pd.isna(p):
        return "NaN"
    if p < 0.0001:
        return "<0.0001"
    return f"{p:.4f}"
