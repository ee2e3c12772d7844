"""Build student snapshots for one reporting period from tabular records."""

import logging
from typing import List, Optional

import pandas as pd

from student_risk.errors import InvalidInput
from student_risk.models import ReportingPeriod, StudentSnapshot

logger = logging.getLogger(__name__)

STUDENT_COLUMNS = ['student_id', 'gpa']
ATTENDANCE_COLUMNS = ['student_id', 'attendance_rate', 'academic_year']
ACTIVITY_COLUMNS = ['student_id']

_OPTIONAL_STUDENT_COLUMNS = ['first_name', 'last_name', 'grade_level']


def require_columns(df: pd.DataFrame, columns: List[str], table: str) -> None:
    """Raise InvalidInput if any of the columns is absent from df."""
    missing = [col for col in columns if col not in df.columns]
    if missing:
        raise InvalidInput(
            f"{table}.{missing[0]}", None,
            f"column is missing (table has {list(df.columns)})"
        )


def filter_period(df: pd.DataFrame, period: ReportingPeriod) -> pd.DataFrame:
    """Keep rows of df belonging to the reporting period."""
    mask = df['academic_year'].astype(str) == period.academic_year
    if period.semester is not None and 'semester' in df.columns:
        mask &= df['semester'].astype(str) == period.semester
    return df[mask]


def active_activity_counts(
    activities: Optional[pd.DataFrame],
    period: ReportingPeriod
) -> pd.Series:
    """
    Count extracurricular activities per student.

    When the period has an ``as_of`` date, only activities still running on
    that date count (no end date, or an end date on/after it).
    """
    if activities is None or activities.empty:
        return pd.Series(dtype=int, name='activity_count')

    require_columns(activities, ACTIVITY_COLUMNS, 'activities')
    active = activities
    if period.as_of is not None and 'end_date' in activities.columns:
        end_dates = pd.to_datetime(activities['end_date'], errors='coerce')
        active = activities[end_dates.isna() | (end_dates >= pd.Timestamp(period.as_of))]

    return active.groupby('student_id').size().rename('activity_count')


def snapshot_frame(
    students: pd.DataFrame,
    attendance: pd.DataFrame,
    activities: Optional[pd.DataFrame],
    period: ReportingPeriod
) -> pd.DataFrame:
    """
    Join students, attendance and activity counts for the period.

    Students without attendance in the period are dropped; students without
    activity records get an activity_count of 0.

    Returns:
        DataFrame with student_id, gpa, attendance_rate, activity_count and
        any descriptive student columns present
    """
    require_columns(students, STUDENT_COLUMNS, 'students')
    require_columns(attendance, ATTENDANCE_COLUMNS, 'attendance')

    attendance = filter_period(attendance, period)
    keep = STUDENT_COLUMNS + [c for c in _OPTIONAL_STUDENT_COLUMNS if c in students.columns]
    merged = students[keep].merge(
        attendance[['student_id', 'attendance_rate']],
        on='student_id',
        how='inner'
    )

    counts = active_activity_counts(activities, period)
    merged = merged.merge(counts, left_on='student_id', right_index=True, how='left')
    merged['activity_count'] = merged['activity_count'].fillna(0).astype(int)

    logger.info(
        "Built %d snapshots for %s%s",
        len(merged), period.academic_year,
        f" {period.semester}" if period.semester else ""
    )
    return merged.reset_index(drop=True)


def build_snapshots(
    students: pd.DataFrame,
    attendance: pd.DataFrame,
    activities: Optional[pd.DataFrame],
    period: ReportingPeriod
) -> List[StudentSnapshot]:
    """Snapshots for every student with attendance in the period."""
    frame = snapshot_frame(students, attendance, activities, period)
    return frame_to_snapshots(frame)


def frame_to_snapshots(frame: pd.DataFrame) -> List[StudentSnapshot]:
    """Convert rows of a snapshot DataFrame into StudentSnapshot models."""
    snapshots = []
    for record in frame.to_dict(orient='records'):
        # NaN cells become None so that score() reports them as missing
        record = {k: (None if _is_blank(v) else v) for k, v in record.items()}
        if record.get('activity_count') is None:
            record['activity_count'] = 0
        snapshots.append(StudentSnapshot(**{
            k: v for k, v in record.items() if k in StudentSnapshot.model_fields
        }))
    return snapshots


def _is_blank(value) -> bool:
    if isinstance(value, str):
        return value.strip() == ''
    try:
        return bool(pd.isna(value))
    except (TypeError, ValueError):
        return False
