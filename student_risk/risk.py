"""Risk scoring logic: banded sub-scores, composite score and categories."""

import logging
import math
from typing import Dict, Iterable, List, Optional

import numpy as np
import pandas as pd

from student_risk.errors import InvalidInput
from student_risk.models import StudentSnapshot, RiskAssessment
from student_risk.policy import RiskPolicy

logger = logging.getLogger(__name__)

GPA_MAX = 4.0
ATTENDANCE_MAX = 100.0


def _check_range(
    field: str,
    value,
    upper: float,
    student_id: Optional[str] = None
) -> float:
    """Return value as float, raising InvalidInput outside [0, upper]."""
    if value is None or value is pd.NA:
        raise InvalidInput(field, value, "value is missing", student_id)
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise InvalidInput(field, value, "value is not numeric", student_id)
    if math.isnan(number):
        raise InvalidInput(field, value, "value is missing", student_id)
    if not 0.0 <= number <= upper:
        raise InvalidInput(field, value, f"must be between 0 and {upper:g}", student_id)
    return number


def _check_count(value, student_id: Optional[str] = None) -> int:
    if value is None or value is pd.NA:
        return 0
    if isinstance(value, float):
        if math.isnan(value):
            return 0
        if not value.is_integer():
            raise InvalidInput('activity_count', value, "must be a whole number", student_id)
    try:
        count = int(value)
    except (TypeError, ValueError):
        raise InvalidInput('activity_count', value, "value is not numeric", student_id)
    if count < 0:
        raise InvalidInput('activity_count', value, "must not be negative", student_id)
    return count


def _band_score(value: float, bands, floor: int) -> int:
    for threshold, points in bands:
        if value >= threshold:
            return points
    return floor


def gpa_risk(gpa: float, policy: RiskPolicy) -> int:
    """GPA sub-score: lower GPA means higher risk."""
    gpa = _check_range('gpa', gpa, GPA_MAX)
    return _band_score(gpa, policy.gpa_bands, policy.gpa_floor)


def attendance_risk(attendance_rate: float, policy: RiskPolicy) -> int:
    """Attendance sub-score: lower attendance means higher risk."""
    attendance_rate = _check_range('attendance_rate', attendance_rate, ATTENDANCE_MAX)
    return _band_score(attendance_rate, policy.attendance_bands, policy.attendance_floor)


def activity_risk(activity_count: int, policy: RiskPolicy) -> int:
    """Extracurricular sub-score: fewer activities means higher risk."""
    count = _check_count(activity_count)
    return _band_score(count, policy.activity_bands, policy.activity_floor)


def risk_category(composite_score: int, policy: RiskPolicy) -> str:
    """
    Map a composite score onto the policy's category bands.

    Args:
        composite_score: Sum of the three sub-scores
        policy: Policy holding the category cutoffs

    Returns:
        Risk category label, e.g. 'Medium Risk'
    """
    for upper, label in policy.category_bands:
        if composite_score <= upper:
            return label
    return policy.top_category


def recommended_intervention(composite_score: int, policy: RiskPolicy) -> Optional[str]:
    """Intervention label for a composite score, or None if the policy has none."""
    if not policy.intervention_bands:
        return None
    for minimum, label in policy.intervention_bands:
        if composite_score >= minimum:
            return label
    return policy.default_intervention


def score(snapshot: StudentSnapshot, policy: RiskPolicy) -> RiskAssessment:
    """
    Score one snapshot under the given policy.

    Args:
        snapshot: Student metrics for one reporting period
        policy: Risk policy (bands and cutoffs) to apply

    Returns:
        RiskAssessment with sub-scores, composite score and category

    Raises:
        InvalidInput: gpa or attendance missing or out of domain, or a
            negative activity count
    """
    sid = snapshot.student_id
    gpa = _check_range('gpa', snapshot.gpa, GPA_MAX, sid)
    rate = _check_range('attendance_rate', snapshot.attendance_rate, ATTENDANCE_MAX, sid)
    count = _check_count(snapshot.activity_count, sid)

    gpa_points = _band_score(gpa, policy.gpa_bands, policy.gpa_floor)
    attendance_points = _band_score(rate, policy.attendance_bands, policy.attendance_floor)
    activity_points = _band_score(count, policy.activity_bands, policy.activity_floor)
    composite = gpa_points + attendance_points + activity_points

    return RiskAssessment(
        student_id=sid,
        policy=policy.name,
        gpa_risk=gpa_points,
        attendance_risk=attendance_points,
        activity_risk=activity_points,
        composite_score=composite,
        risk_category=risk_category(composite, policy),
        recommended_intervention=recommended_intervention(composite, policy),
    )


def score_many(snapshots: Iterable[StudentSnapshot], policy: RiskPolicy) -> List[RiskAssessment]:
    """
    Score a batch of snapshots, highest risk first.

    Ties on composite score are broken by GPA ascending. Stops at the first
    invalid snapshot.
    """
    scored = []
    for snapshot in snapshots:
        scored.append((score(snapshot, policy), snapshot.gpa))

    scored.sort(key=lambda pair: (-pair[0].composite_score, pair[1]))
    logger.debug("Scored %d snapshots under policy %s", len(scored), policy.name)
    return [assessment for assessment, _ in scored]


def score_frame(df: pd.DataFrame, policy: RiskPolicy) -> pd.DataFrame:
    """
    Score every row of a snapshot DataFrame.

    Expects 'student_id', 'gpa' and 'attendance_rate' columns; a missing
    'activity_count' column or blank count means zero activities.

    Returns:
        Copy of df with gpa_risk, attendance_risk, activity_risk,
        composite_score, risk_category and recommended_intervention columns
    """
    for column in ('student_id', 'gpa', 'attendance_rate'):
        if column not in df.columns:
            raise InvalidInput(column, None, "column is missing")

    df = df.copy()
    if 'activity_count' not in df.columns:
        df['activity_count'] = 0

    # Validate row by row so the error names the offending student
    for row in df.itertuples(index=False):
        sid = str(row.student_id)
        _check_range('gpa', row.gpa, GPA_MAX, sid)
        _check_range('attendance_rate', row.attendance_rate, ATTENDANCE_MAX, sid)
        _check_count(row.activity_count, sid)

    gpa = df['gpa'].astype(float).to_numpy()
    rate = df['attendance_rate'].astype(float).to_numpy()
    count = df['activity_count'].fillna(0).astype(int).to_numpy()

    def banded(values, bands, floor):
        conditions = [values >= threshold for threshold, _ in bands]
        choices = [points for _, points in bands]
        return np.select(conditions, choices, default=floor).astype(int)

    df['gpa_risk'] = banded(gpa, policy.gpa_bands, policy.gpa_floor)
    df['attendance_risk'] = banded(rate, policy.attendance_bands, policy.attendance_floor)
    df['activity_risk'] = banded(count, policy.activity_bands, policy.activity_floor)
    df['composite_score'] = df['gpa_risk'] + df['attendance_risk'] + df['activity_risk']
    df['risk_category'] = [risk_category(c, policy) for c in df['composite_score']]
    df['recommended_intervention'] = [
        recommended_intervention(c, policy) for c in df['composite_score']
    ]
    return df


def summarize(assessments: Iterable[RiskAssessment]) -> Dict[str, int]:
    """Count assessments per risk category, plus a 'Total' entry."""
    summary: Dict[str, int] = {}
    total = 0
    for assessment in assessments:
        summary[assessment.risk_category] = summary.get(assessment.risk_category, 0) + 1
        total += 1
    summary['Total'] = total
    return summary


def attendance_category(attendance_rate: float) -> str:
    """Attendance bucket: Excellent/Good/Fair/Poor/Critical."""
    rate = _check_range('attendance_rate', attendance_rate, ATTENDANCE_MAX)
    if rate >= 95:
        return 'Excellent'
    elif rate >= 90:
        return 'Good'
    elif rate >= 80:
        return 'Fair'
    elif rate >= 70:
        return 'Poor'
    else:
        return 'Critical'


def performance_category(gpa: float) -> str:
    """GPA bucket: High Performer/Average Performer/At Risk."""
    gpa = _check_range('gpa', gpa, GPA_MAX)
    if gpa >= 3.5:
        return 'High Performer'
    elif gpa >= 2.5:
        return 'Average Performer'
    else:
        return 'At Risk'


def grade_level_risk_tier(gpa: float, attendance_rate: float) -> str:
    """
    Directly thresholded risk tier, independent of the composite score.

    Critical needs both low GPA and low attendance; the other tiers trigger
    on either one.
    """
    gpa = _check_range('gpa', gpa, GPA_MAX)
    rate = _check_range('attendance_rate', attendance_rate, ATTENDANCE_MAX)
    if gpa < 2.0 and rate < 75:
        return 'Critical Risk'
    elif gpa < 2.5 or rate < 80:
        return 'High Risk'
    elif gpa < 3.0 or rate < 85:
        return 'Moderate Risk'
    else:
        return 'Low Risk'
