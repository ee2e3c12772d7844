"""CSV/Excel file parsing and snapshot column normalization."""

import logging
import re
from io import BytesIO
from typing import Optional

import numpy as np
import pandas as pd

from student_risk.errors import InvalidInput

logger = logging.getLogger(__name__)


COLUMN_VARIATIONS = {
    "student_id": ["student_id", "student#", "student number", "student id", "studentid", "id"],
    "gpa": ["gpa", "grade point average", "current gpa", "cumulative gpa"],
    "attendance_rate": [
        "attendance_rate", "attendance rate", "attendance", "attendance %",
        "attendance percent", "attended %", "attended % to date"
    ],
    "activity_count": [
        "activity_count", "activity count", "activities", "extracurricular_count",
        "extracurricular count", "extracurricular activities", "num activities"
    ],
    "first_name": ["first_name", "first name", "firstname", "given name"],
    "last_name": ["last_name", "last name", "lastname", "surname", "family name"],
    "grade_level": ["grade_level", "grade level", "grade", "year level"],
}


def normalize_col_name(col_name) -> str:
    """Normalize a column name for matching (lowercase, no dots, single spaces)."""
    if pd.isna(col_name):
        return ""
    normalized = str(col_name).strip().lower()
    normalized = re.sub(r'[.,]', '', normalized)
    normalized = re.sub(r'\s+', ' ', normalized)
    return normalized.strip()


def normalize_columns(df: pd.DataFrame) -> pd.DataFrame:
    """
    Rename header variations onto the snapshot field names.

    Unrecognised columns are kept as they are. When two columns map onto the
    same field, the first one wins.

    Args:
        df: Raw DataFrame as read from the uploaded file

    Returns:
        DataFrame with normalized column names
    """
    df = df.copy()
    rename = {}
    for orig_col in df.columns:
        normalized = normalize_col_name(orig_col)
        for target, variations in COLUMN_VARIATIONS.items():
            if normalized in variations and target not in rename.values():
                rename[orig_col] = target
                break

    if rename:
        logger.debug("Renaming columns: %s", rename)
        df = df.rename(columns=rename)
    else:
        logger.warning("No recognised columns in upload: %s", list(df.columns))

    if df.columns.duplicated().any():
        logger.warning("Dropping duplicate columns: %s", df.columns[df.columns.duplicated()].tolist())
        df = df.loc[:, ~df.columns.duplicated(keep='first')]
    return df


def normalize_pct(x) -> Optional[float]:
    """
    Normalize a percentage value to the 0-100 range.

    Handles 0-1 decimals (0.88), 0-100 percentages (88) and strings like
    "88%". A value written with a % sign is already a percentage and is
    never rescaled, so "1%" stays 1.0. Blank values return None so they
    stay missing; out-of-range values are passed through for the scorer to
    reject.

    Raises:
        ValueError: the cell is not blank and not a number
    """
    if x is None or (not isinstance(x, str) and pd.isna(x)):
        return None

    if isinstance(x, str):
        has_sign = '%' in x
        val_str = x.strip().replace('%', '').strip()
        if not val_str:
            return None
        val = float(val_str)
        if has_sign:
            return val
    else:
        val = float(x)

    if np.isinf(val):
        return val
    # Values in (0, 1] are fractions; 0 stays 0
    if 0.0 < val <= 1.0:
        return val * 100.0
    return val


def to_number(x) -> Optional[float]:
    """
    Parse a numeric cell; blanks become None.

    Raises:
        ValueError: the cell is not blank and not a number
    """
    if x is None or (not isinstance(x, str) and pd.isna(x)):
        return None
    if isinstance(x, str):
        if not x.strip():
            return None
        return float(x.strip())
    return float(x)


def _parse_column(df: pd.DataFrame, field: str, parser) -> pd.Series:
    """Apply parser to a column, reporting unparseable cells as InvalidInput."""
    values = []
    for student_id, raw in zip(df["student_id"], df[field]):
        try:
            values.append(parser(raw))
        except (TypeError, ValueError):
            raise InvalidInput(field, raw, "value is not numeric", str(student_id))
    return pd.Series(values, index=df.index, dtype=object)


def clean_snapshot_frame(df: pd.DataFrame) -> pd.DataFrame:
    """
    Normalize columns and cell values of an uploaded snapshot table.

    Rows without a student id are dropped. Blank activity counts mean zero
    activities; blank GPA or attendance stay missing. Cells that are filled
    in but not numeric raise InvalidInput naming the student.
    """
    df = normalize_columns(df)
    if "student_id" not in df.columns:
        raise ValueError(f"Could not find a student id column. Columns: {list(df.columns)}")

    df = df[df["student_id"].notna()].copy()
    df = df[df["student_id"].astype(str).str.strip() != ""]

    if "gpa" in df.columns:
        df["gpa"] = _parse_column(df, "gpa", to_number)
    else:
        df["gpa"] = None
    if "attendance_rate" in df.columns:
        df["attendance_rate"] = _parse_column(df, "attendance_rate", normalize_pct)
    else:
        df["attendance_rate"] = None

    if "activity_count" in df.columns:
        counts = _parse_column(df, "activity_count", to_number)
        df["activity_count"] = counts.where(counts.notna(), 0)
    else:
        df["activity_count"] = 0

    logger.info("Parsed %d snapshot rows", len(df))
    return df.reset_index(drop=True)


def load_table(file_bytes: bytes, filename: str) -> pd.DataFrame:
    """
    Read the first sheet of an Excel file, or a CSV file.

    Args:
        file_bytes: Raw bytes of the uploaded file
        filename: Original file name, used to pick the reader

    Returns:
        Raw DataFrame (columns not yet normalized)
    """
    name = filename.lower()
    if name.endswith(".xlsx"):
        return pd.read_excel(BytesIO(file_bytes), sheet_name=0, engine='openpyxl')
    if name.endswith(".csv"):
        return pd.read_csv(BytesIO(file_bytes))
    raise ValueError("Invalid file type. Please upload a CSV or Excel file (.csv or .xlsx)")
