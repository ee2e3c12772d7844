"""Reporting aggregates over student, grade, attendance and activity tables.

Every function takes plain DataFrames and an explicit reporting period and
returns a DataFrame; nothing here reads from a database or renders output.

Expected columns:
    students:   student_id, gpa, grade_level (optional: first_name, last_name)
    subjects:   subject_id, subject_name, difficulty_level
    grades:     student_id, subject_id, grade_numeric, academic_year, semester
    attendance: student_id, attendance_rate, academic_year (optional: semester)
    activities: student_id, activity_name (optional: end_date)
"""

import logging
from typing import Optional, Sequence

import pandas as pd

from student_risk.models import ReportingPeriod
from student_risk.provider import active_activity_counts, filter_period, require_columns
from student_risk.risk import attendance_category, grade_level_risk_tier, performance_category

logger = logging.getLogger(__name__)

FAILING_GRADE = 60.0
COST_PER_FAILURE = 2500

TIER_ORDER = {'Critical Risk': 1, 'High Risk': 2, 'Moderate Risk': 3, 'Low Risk': 4}


def letter_grade(grade: float) -> str:
    """Letter for a numeric grade on a 0-100 scale."""
    if grade >= 90:
        return 'A'
    elif grade >= 80:
        return 'B'
    elif grade >= 70:
        return 'C'
    elif grade >= 60:
        return 'D'
    else:
        return 'F'


def subject_performance_rating(mean_grade: float, failure_pct: float) -> str:
    """Curriculum review rating from a subject's mean grade and failure rate."""
    if mean_grade >= 85 and failure_pct <= 5:
        return 'Excellent Performance'
    elif mean_grade >= 75 and failure_pct <= 15:
        return 'Good Performance'
    elif mean_grade >= 65 and failure_pct <= 25:
        return 'Acceptable Performance'
    else:
        return 'Needs Improvement'


def subject_effectiveness_rating(average_grade: float, failure_pct: float) -> str:
    """Effectiveness rating; stricter on failures than the curriculum review rating."""
    if average_grade >= 85 and failure_pct <= 5:
        return 'High Performing'
    elif average_grade >= 75 and failure_pct <= 10:
        return 'Good Performing'
    elif average_grade >= 65 and failure_pct <= 20:
        return 'Average Performing'
    else:
        return 'Needs Improvement'


def attendance_group(attendance_rate: float) -> str:
    """Coarse three-way attendance grouping."""
    if attendance_rate >= 90:
        return 'High (90%+)'
    elif attendance_rate >= 75:
        return 'Medium (75-89%)'
    else:
        return 'Low (<75%)'


def performance_trend(grade_change: float) -> str:
    """Label the change in average grade between consecutive semesters."""
    if grade_change > 2:
        return 'Significant Improvement'
    elif grade_change > 0.5:
        return 'Improvement'
    elif grade_change > -0.5:
        return 'Stable'
    elif grade_change > -2:
        return 'Decline'
    else:
        return 'Significant Decline'


def activity_level(total_activities: int) -> str:
    """Bucket a student's number of extracurricular activities."""
    if total_activities == 0:
        return 'No Activities'
    elif total_activities == 1:
        return '1 Activity'
    elif total_activities <= 3:
        return '2-3 Activities'
    else:
        return '4+ Activities'


def _grades_with_subjects(
    subjects: pd.DataFrame,
    grades: pd.DataFrame,
    period: ReportingPeriod
) -> pd.DataFrame:
    require_columns(subjects, ['subject_id', 'subject_name'], 'subjects')
    require_columns(grades, ['subject_id', 'grade_numeric', 'academic_year'], 'grades')
    merged = subjects.merge(filter_period(grades, period), on='subject_id', how='inner')
    merged['failed'] = merged['grade_numeric'] < FAILING_GRADE
    return merged


def _students_with_attendance(
    students: pd.DataFrame,
    attendance: pd.DataFrame,
    period: ReportingPeriod
) -> pd.DataFrame:
    require_columns(students, ['student_id', 'gpa'], 'students')
    require_columns(attendance, ['student_id', 'attendance_rate', 'academic_year'], 'attendance')
    return students.merge(
        filter_period(attendance, period)[['student_id', 'attendance_rate']],
        on='student_id',
        how='inner'
    )


def subject_failure_rates(
    subjects: pd.DataFrame,
    grades: pd.DataFrame,
    period: ReportingPeriod,
    min_enrollments: int = 30
) -> pd.DataFrame:
    """
    Failure rate per subject, highest first.

    Subjects with fewer than min_enrollments grades in the period are left
    out. The cost impact column is failures times COST_PER_FAILURE.
    """
    merged = _grades_with_subjects(subjects, grades, period)
    stats = merged.groupby(['subject_id', 'subject_name'], as_index=False).agg(
        total_enrollments=('grade_numeric', 'count'),
        failures=('failed', 'sum'),
        average_grade=('grade_numeric', 'mean'),
        grade_std_dev=('grade_numeric', 'std'),
    )
    stats = stats[stats['total_enrollments'] >= min_enrollments].copy()
    stats['failures'] = stats['failures'].astype(int)
    stats['failure_rate_percent'] = (
        stats['failures'] * 100.0 / stats['total_enrollments']
    ).round(2)
    stats['estimated_cost_impact'] = stats['failures'] * COST_PER_FAILURE
    return stats.sort_values('failure_rate_percent', ascending=False).reset_index(drop=True)


def attendance_gpa_breakdown(
    students: pd.DataFrame,
    attendance: pd.DataFrame,
    period: ReportingPeriod
) -> pd.DataFrame:
    """GPA statistics per attendance category, best average GPA first."""
    merged = _students_with_attendance(students, attendance, period)
    merged['attendance_category'] = merged['attendance_rate'].map(attendance_category)
    merged['at_risk'] = merged['gpa'] < 2.0

    stats = merged.groupby('attendance_category', as_index=False).agg(
        student_count=('student_id', 'count'),
        avg_gpa=('gpa', 'mean'),
        min_gpa=('gpa', 'min'),
        max_gpa=('gpa', 'max'),
        gpa_std_dev=('gpa', 'std'),
        at_risk_count=('at_risk', 'sum'),
    )
    stats['at_risk_count'] = stats['at_risk_count'].astype(int)
    stats['at_risk_percentage'] = (
        stats['at_risk_count'] * 100.0 / stats['student_count']
    ).round(2)
    stats = stats.round({'avg_gpa': 2, 'min_gpa': 2, 'max_gpa': 2, 'gpa_std_dev': 2})
    return stats.sort_values('avg_gpa', ascending=False).reset_index(drop=True)


def attendance_impact_summary(
    students: pd.DataFrame,
    attendance: pd.DataFrame,
    period: ReportingPeriod
) -> pd.DataFrame:
    """GPA spread per High/Medium/Low attendance group, best average GPA first."""
    merged = _students_with_attendance(students, attendance, period)
    merged['attendance_group'] = merged['attendance_rate'].map(attendance_group)
    merged['at_risk'] = merged['gpa'] < 2.0

    stats = merged.groupby('attendance_group', as_index=False).agg(
        student_count=('student_id', 'count'),
        avg_gpa=('gpa', 'mean'),
        min_gpa=('gpa', 'min'),
        max_gpa=('gpa', 'max'),
        gpa_std_dev=('gpa', 'std'),
        at_risk_students=('at_risk', 'sum'),
    )
    stats['at_risk_students'] = stats['at_risk_students'].astype(int)
    stats = stats.round({'avg_gpa': 2, 'min_gpa': 2, 'max_gpa': 2, 'gpa_std_dev': 2})
    return stats.sort_values('avg_gpa', ascending=False).reset_index(drop=True)


def grade_level_summary(
    students: pd.DataFrame,
    attendance: pd.DataFrame,
    period: ReportingPeriod
) -> pd.DataFrame:
    """Honor and at-risk counts per grade level."""
    require_columns(students, ['grade_level'], 'students')
    merged = _students_with_attendance(students, attendance, period)

    summary = merged.groupby('grade_level').agg(
        total_students=('student_id', 'nunique'),
        avg_gpa=('gpa', 'mean'),
        avg_attendance=('attendance_rate', 'mean'),
    )
    # Distinct students, so a student with several attendance rows counts once
    summary['honor_students'] = (
        merged[merged['gpa'] >= 3.5].groupby('grade_level')['student_id'].nunique()
        .reindex(summary.index, fill_value=0)
    )
    summary['at_risk_students'] = (
        merged[merged['gpa'] < 2.0].groupby('grade_level')['student_id'].nunique()
        .reindex(summary.index, fill_value=0)
    )
    summary['honor_percentage'] = (
        summary['honor_students'] * 100.0 / summary['total_students']
    ).round(2)
    summary['at_risk_percentage'] = (
        summary['at_risk_students'] * 100.0 / summary['total_students']
    ).round(2)
    summary = summary.round({'avg_gpa': 2, 'avg_attendance': 2})
    return summary.sort_index().reset_index()


def subject_grade_distribution(
    subjects: pd.DataFrame,
    grades: pd.DataFrame,
    period: ReportingPeriod
) -> pd.DataFrame:
    """Letter grade distribution and performance rating per subject."""
    merged = _grades_with_subjects(subjects, grades, period)
    merged['letter'] = merged['grade_numeric'].map(letter_grade)

    group_cols = ['subject_id', 'subject_name']
    if 'difficulty_level' in merged.columns:
        group_cols.append('difficulty_level')

    counts = pd.crosstab(
        [merged[c] for c in group_cols], merged['letter']
    ).reindex(columns=list('ABCDF'), fill_value=0)
    counts.columns = [f"grade_{letter}_count" for letter in counts.columns]

    stats = merged.groupby(group_cols).agg(
        total_students=('grade_numeric', 'count'),
        mean_grade=('grade_numeric', 'mean'),
        median_grade=('grade_numeric', 'median'),
        standard_deviation=('grade_numeric', 'std'),
    ).join(counts)

    stats['percent_A'] = (stats['grade_A_count'] * 100.0 / stats['total_students']).round(1)
    stats['percent_F'] = (stats['grade_F_count'] * 100.0 / stats['total_students']).round(1)
    stats['performance_rating'] = [
        subject_performance_rating(mean, failed * 100.0 / total)
        for mean, failed, total in zip(
            stats['mean_grade'], stats['grade_F_count'], stats['total_students']
        )
    ]
    stats = stats.round({'mean_grade': 2, 'median_grade': 2, 'standard_deviation': 2})
    return stats.sort_values('mean_grade', ascending=False).reset_index()


def subject_effectiveness(
    subjects: pd.DataFrame,
    grades: pd.DataFrame,
    period: ReportingPeriod
) -> pd.DataFrame:
    """
    Consistency and excellence per subject.

    grade_consistency is the standard deviation of grades; excellence_rate is
    the share of grades at 90 or above. Ordered by average grade, highest
    first, then by failure rate, lowest first.
    """
    merged = _grades_with_subjects(subjects, grades, period)
    merged['excellent'] = merged['grade_numeric'] >= 90

    group_cols = ['subject_id', 'subject_name'] + [
        c for c in ('credit_hours', 'difficulty_level') if c in merged.columns
    ]
    stats = merged.groupby(group_cols, as_index=False).agg(
        total_students=('grade_numeric', 'count'),
        average_grade=('grade_numeric', 'mean'),
        grade_consistency=('grade_numeric', 'std'),
        excellent=('excellent', 'sum'),
        failures=('failed', 'sum'),
    )
    failure_pct = stats['failures'] * 100.0 / stats['total_students']
    stats['excellence_rate'] = (stats['excellent'] * 100.0 / stats['total_students']).round(2)
    stats['failure_rate'] = failure_pct.round(2)
    stats['subject_performance_rating'] = [
        subject_effectiveness_rating(avg, pct)
        for avg, pct in zip(stats['average_grade'], failure_pct)
    ]
    stats = stats.drop(columns=['excellent', 'failures'])
    stats = stats.round({'average_grade': 2, 'grade_consistency': 2})
    return stats.sort_values(
        ['average_grade', 'failure_rate'], ascending=[False, True]
    ).reset_index(drop=True)


def semester_trends(grades: pd.DataFrame, periods: Sequence[ReportingPeriod]) -> pd.DataFrame:
    """
    Semester-over-semester grade trend across the given academic years.

    Each row is compared with the previous semester in (academic_year,
    semester) order; the first row has no predecessor and counts as Stable.
    """
    require_columns(grades, ['grade_numeric', 'academic_year', 'semester'], 'grades')
    years = sorted({p.academic_year for p in periods})
    subset = grades[grades['academic_year'].astype(str).isin(years)].copy()
    subset['failed'] = subset['grade_numeric'] < FAILING_GRADE

    trends = subset.groupby(['academic_year', 'semester'], as_index=False).agg(
        total_grades=('grade_numeric', 'count'),
        avg_grade=('grade_numeric', 'mean'),
        failures=('failed', 'sum'),
        grade_std_dev=('grade_numeric', 'std'),
    )
    trends = trends.sort_values(['academic_year', 'semester']).reset_index(drop=True)
    trends['failures'] = trends['failures'].astype(int)
    trends['failure_rate'] = (trends['failures'] * 100.0 / trends['total_grades']).round(2)
    trends['previous_avg_grade'] = trends['avg_grade'].shift(1)
    trends['previous_failure_rate'] = trends['failure_rate'].shift(1)
    trends['grade_change'] = (
        trends['avg_grade'] - trends['previous_avg_grade'].fillna(trends['avg_grade'])
    )
    trends['failure_rate_change'] = (
        trends['failure_rate'] - trends['previous_failure_rate'].fillna(trends['failure_rate'])
    ).round(2)
    trends['performance_trend'] = trends['grade_change'].map(performance_trend)
    return trends.round({
        'avg_grade': 2, 'previous_avg_grade': 2, 'grade_change': 2, 'grade_std_dev': 2
    })


def activity_impact(
    students: pd.DataFrame,
    attendance: pd.DataFrame,
    activities: Optional[pd.DataFrame],
    period: ReportingPeriod
) -> pd.DataFrame:
    """GPA and attendance per extracurricular activity level."""
    merged = _students_with_attendance(students, attendance, period)

    if activities is not None and not activities.empty:
        require_columns(activities, ['student_id'], 'activities')
        if 'activity_name' in activities.columns:
            totals = activities.groupby('student_id')['activity_name'].nunique()
        else:
            totals = activities.groupby('student_id').size()
        merged['total_activities'] = merged['student_id'].map(totals).fillna(0).astype(int)
    else:
        merged['total_activities'] = 0

    merged['activity_level'] = merged['total_activities'].map(activity_level)
    merged['performance'] = merged['gpa'].map(performance_category)
    merged['high'] = merged['performance'] == 'High Performer'
    merged['average'] = merged['performance'] == 'Average Performer'
    merged['at_risk'] = merged['performance'] == 'At Risk'

    stats = merged.groupby('activity_level', as_index=False).agg(
        student_count=('student_id', 'count'),
        avg_gpa=('gpa', 'mean'),
        avg_attendance=('attendance_rate', 'mean'),
        gpa_std_dev=('gpa', 'std'),
        high_performers=('high', 'sum'),
        avg_performers=('average', 'sum'),
        at_risk=('at_risk', 'sum'),
    )
    for col in ('high_performers', 'avg_performers', 'at_risk'):
        stats[col] = stats[col].astype(int)
    stats['high_performer_rate'] = (stats['high_performers'] * 100.0 / stats['student_count']).round(1)
    stats['at_risk_rate'] = (stats['at_risk'] * 100.0 / stats['student_count']).round(1)
    stats = stats.round({'avg_gpa': 3, 'avg_attendance': 2, 'gpa_std_dev': 3})
    return stats.sort_values('avg_gpa', ascending=False).reset_index(drop=True)


def at_risk_students(
    students: pd.DataFrame,
    attendance: pd.DataFrame,
    grades: pd.DataFrame,
    activities: Optional[pd.DataFrame],
    period: ReportingPeriod
) -> pd.DataFrame:
    """
    Students needing intervention in the period.

    A student is listed when they failed any course, have a GPA below 2.5 or
    attendance below 80%. Ordered by risk tier, then GPA ascending.
    """
    require_columns(grades, ['student_id', 'grade_numeric', 'academic_year'], 'grades')
    merged = _students_with_attendance(students, attendance, period)

    period_grades = filter_period(grades, period).copy()
    period_grades['failed'] = period_grades['grade_numeric'] < FAILING_GRADE
    courses = period_grades.groupby('student_id').agg(
        courses_taken=('grade_numeric', 'count'),
        failed_courses=('failed', 'sum'),
    )
    merged = merged.merge(courses, left_on='student_id', right_index=True, how='inner')
    merged['failed_courses'] = merged['failed_courses'].astype(int)
    merged['individual_failure_rate'] = (
        merged['failed_courses'] * 100.0 / merged['courses_taken']
    ).round(2)

    counts = active_activity_counts(activities, period)
    merged['extracurricular_count'] = merged['student_id'].map(counts).fillna(0).astype(int)
    merged['risk_level'] = [
        grade_level_risk_tier(gpa, rate)
        for gpa, rate in zip(merged['gpa'], merged['attendance_rate'])
    ]

    flagged = merged[
        (merged['individual_failure_rate'] > 0)
        | (merged['gpa'] < 2.5)
        | (merged['attendance_rate'] < 80)
    ].copy()
    flagged['_tier'] = flagged['risk_level'].map(TIER_ORDER)
    flagged = flagged.sort_values(['_tier', 'gpa']).drop(columns='_tier')
    logger.info("Flagged %d at-risk students for %s", len(flagged), period.academic_year)
    return flagged.reset_index(drop=True)
