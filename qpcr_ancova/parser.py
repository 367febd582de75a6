"""QPCRParser: read observation tables from CSV or Excel uploads.

Also provides technical-replicate averaging, the usual preprocessing step
before a fold-change analysis.
"""

from typing import Sequence, Union

import pandas as pd

from qpcr_ancova.errors import InputShapeError
from qpcr_ancova.utils import resolve_columns

STAGE = "parsing"


class QPCRParser:
    MAX_FILE_SIZE_MB = 50
    EXCEL_SUFFIXES = (".xlsx", ".xls")
    ENCODINGS = ["utf-8", "utf-16", "utf-16-le", "latin-1", "cp1252"]

    @staticmethod
    def _file_size_mb(file) -> float:
        file.seek(0, 2)
        size = file.tell() / (1024 * 1024)
        file.seek(0)
        return size

    @staticmethod
    def _read_csv(file) -> pd.DataFrame:
        seekable = hasattr(file, "seek")
        for enc in QPCRParser.ENCODINGS:
            try:
                return pd.read_csv(file, encoding=enc)
            except (UnicodeDecodeError, UnicodeError):
                if seekable:
                    file.seek(0)
                continue
        raise InputShapeError(f"Could not decode file with any of {QPCRParser.ENCODINGS}.", STAGE)

    @staticmethod
    def parse(file) -> pd.DataFrame:
        """Read an uploaded file (or a path) into an observation table.

        Raises:
            InputShapeError: If the file is too large, unreadable, or has too
                few columns to hold a factor and one efficiency/Ct pair.
        """
        name = str(getattr(file, "name", file))

        if hasattr(file, "seek"):
            file_size_mb = QPCRParser._file_size_mb(file)
            if file_size_mb > QPCRParser.MAX_FILE_SIZE_MB:
                raise InputShapeError(
                    f"File too large ({file_size_mb:.1f} MB). "
                    f"Maximum size is {QPCRParser.MAX_FILE_SIZE_MB} MB.",
                    STAGE,
                )

        try:
            if name.lower().endswith(QPCRParser.EXCEL_SUFFIXES):
                df = pd.read_excel(file)
            else:
                df = QPCRParser._read_csv(file)
        except (pd.errors.ParserError, pd.errors.EmptyDataError) as e:
            raise InputShapeError(f"Could not read '{name}': {e}", STAGE) from e

        df.columns = [str(col).strip() for col in df.columns]
        df = df.dropna(how="all").reset_index(drop=True)

        if df.empty:
            raise InputShapeError(f"'{name}' contains no data rows.", STAGE)
        if df.shape[1] < 3:
            raise InputShapeError(
                f"'{name}' has {df.shape[1]} columns; expected a factor column plus "
                "efficiency/Ct columns.",
                STAGE,
            )
        return df


def mean_technical(data: pd.DataFrame, groups: Sequence[Union[int, str]]) -> pd.DataFrame:
    """
    Average technical replicates.

    Rows sharing the values of ``groups`` (names or 1-based indices) collapse
    to one row: numeric columns are averaged, other columns keep their first
    value. Column order and first-appearance row order are kept.
    """
    if not groups:
        raise InputShapeError("At least one grouping column is required.", "preprocessing")
    group_cols = resolve_columns(data, groups, "preprocessing")

    value_cols = [col for col in data.columns if col not in group_cols]
    agg = {
        col: "mean" if pd.api.types.is_numeric_dtype(data[col]) else "first"
        for col in value_cols
    }
    if not agg:
        averaged = data[group_cols].drop_duplicates()
    else:
        averaged = data.groupby(group_cols, sort=False, dropna=False).agg(agg).reset_index()
    return averaged[list(data.columns)].reset_index(drop=True)
