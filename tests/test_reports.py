"""Unit tests for reporting aggregates."""

import pytest
import pandas as pd

from student_risk.models import ReportingPeriod
from student_risk.reports import (
    letter_grade,
    subject_performance_rating,
    subject_effectiveness_rating,
    attendance_group,
    performance_trend,
    activity_level,
    subject_failure_rates,
    attendance_gpa_breakdown,
    attendance_impact_summary,
    grade_level_summary,
    subject_grade_distribution,
    subject_effectiveness,
    semester_trends,
    activity_impact,
    at_risk_students,
)

PERIOD = ReportingPeriod(academic_year='2023-2024')


@pytest.fixture
def students():
    return pd.DataFrame({
        'student_id': [1001, 1002, 1003, 1004, 1005, 1006],
        'grade_level': [10, 11, 9, 12, 10, 11],
        'gpa': [3.45, 3.82, 2.67, 3.91, 1.90, 2.40],
    })


@pytest.fixture
def attendance():
    return pd.DataFrame({
        'student_id': [1001, 1002, 1003, 1004, 1005, 1006],
        'attendance_rate': [92.0, 96.0, 84.0, 99.0, 68.0, 91.0],
        'academic_year': ['2023-2024'] * 6,
    })


@pytest.fixture
def subjects():
    return pd.DataFrame({
        'subject_id': [1, 2],
        'subject_name': ['Mathematics', 'Art'],
        'difficulty_level': ['High', 'Low'],
    })


@pytest.fixture
def grades():
    return pd.DataFrame({
        'student_id': [1001, 1002, 1005, 1006, 1001, 1002, 1005, 1006, 1001, 1005],
        'subject_id': [1, 1, 1, 1, 2, 2, 2, 2, 1, 1],
        'grade_numeric': [72.0, 91.0, 45.0, 58.0, 88.0, 95.0, 65.0, 81.0, 70.0, 50.0],
        'semester': ['Fall'] * 8 + ['Spring', 'Spring'],
        'academic_year': ['2023-2024'] * 8 + ['2022-2023', '2022-2023'],
    })


@pytest.fixture
def activities():
    return pd.DataFrame({
        'student_id': [1001, 1002, 1002, 1004, 1004, 1004, 1004],
        'activity_name': ['Chess', 'Band', 'Debate', 'Soccer', 'Robotics', 'Choir', 'Art'],
    })


def test_letter_grade():
    """Letter grade edges."""
    assert [letter_grade(g) for g in (90, 89.9, 80, 70, 60, 59.9)] == ['A', 'B', 'B', 'C', 'D', 'F']


def test_subject_performance_rating():
    """Ratings need both mean grade and failure rate."""
    assert subject_performance_rating(86, 5) == 'Excellent Performance'
    assert subject_performance_rating(86, 6) == 'Good Performance'
    assert subject_performance_rating(70, 20) == 'Acceptable Performance'
    assert subject_performance_rating(90, 30) == 'Needs Improvement'


def test_performance_trend():
    """Trend labels from grade change."""
    assert performance_trend(2.1) == 'Significant Improvement'
    assert performance_trend(2.0) == 'Improvement'
    assert performance_trend(0.0) == 'Stable'
    assert performance_trend(-0.5) == 'Decline'
    assert performance_trend(-2.0) == 'Significant Decline'


def test_activity_level():
    """Activity level buckets."""
    assert [activity_level(n) for n in (0, 1, 2, 3, 4)] == [
        'No Activities', '1 Activity', '2-3 Activities', '2-3 Activities', '4+ Activities'
    ]


def test_subject_failure_rates(subjects, grades):
    """Failure rates use only the period's grades."""
    report = subject_failure_rates(subjects, grades, PERIOD, min_enrollments=1)
    assert report['subject_name'].tolist() == ['Mathematics', 'Art']

    math = report.iloc[0]
    assert math['total_enrollments'] == 4
    assert math['failures'] == 2
    assert math['failure_rate_percent'] == 50.0
    assert math['estimated_cost_impact'] == 5000

    art = report.iloc[1]
    assert art['failures'] == 0
    assert art['average_grade'] == pytest.approx(82.25)


def test_subject_failure_rates_min_enrollments(subjects, grades):
    """Small subjects are left out."""
    assert subject_failure_rates(subjects, grades, PERIOD).empty


def test_attendance_gpa_breakdown(students, attendance):
    """GPA statistics per attendance category."""
    report = attendance_gpa_breakdown(students, attendance, PERIOD).set_index('attendance_category')

    assert report.loc['Excellent', 'student_count'] == 2
    assert report.loc['Excellent', 'avg_gpa'] == pytest.approx(3.865, abs=0.01)
    assert report.loc['Good', 'student_count'] == 2
    assert report.loc['Critical', 'at_risk_count'] == 1
    assert report.loc['Critical', 'at_risk_percentage'] == 100.0
    assert report.index[0] == 'Excellent'


def test_grade_level_summary(students, attendance):
    """Honor and at-risk counts per grade level."""
    report = grade_level_summary(students, attendance, PERIOD).set_index('grade_level')

    assert report.loc[10, 'total_students'] == 2
    assert report.loc[10, 'at_risk_students'] == 1
    assert report.loc[10, 'at_risk_percentage'] == 50.0
    assert report.loc[11, 'honor_students'] == 1
    assert report.loc[9, 'honor_students'] == 0
    assert list(report.index) == [9, 10, 11, 12]


def test_subject_grade_distribution(subjects, grades):
    """Letter counts, median and rating per subject."""
    report = subject_grade_distribution(subjects, grades, PERIOD).set_index('subject_name')

    math = report.loc['Mathematics']
    assert math['grade_A_count'] == 1
    assert math['grade_C_count'] == 1
    assert math['grade_F_count'] == 2
    assert math['percent_F'] == 50.0
    assert math['median_grade'] == 65.0
    assert math['performance_rating'] == 'Needs Improvement'

    art = report.loc['Art']
    assert art['grade_D_count'] == 1
    assert art['performance_rating'] == 'Good Performance'
    assert report.index[0] == 'Art'


def test_semester_trends(grades):
    """Each semester is compared with the one before it."""
    periods = [ReportingPeriod(academic_year='2022-2023'), PERIOD]
    report = semester_trends(grades, periods)

    assert report[['academic_year', 'semester']].values.tolist() == [
        ['2022-2023', 'Spring'], ['2023-2024', 'Fall']
    ]
    first, second = report.iloc[0], report.iloc[1]
    assert first['grade_change'] == 0
    assert first['performance_trend'] == 'Stable'
    assert first['failure_rate'] == 50.0
    assert second['avg_grade'] == pytest.approx(74.38, abs=0.01)
    assert second['performance_trend'] == 'Significant Improvement'
    assert second['failure_rate_change'] == -25.0


def test_activity_impact(students, attendance, activities):
    """Students group by activity level."""
    report = activity_impact(students, attendance, activities, PERIOD).set_index('activity_level')

    assert report.loc['No Activities', 'student_count'] == 3
    assert report.loc['No Activities', 'at_risk'] == 2
    assert report.loc['4+ Activities', 'high_performers'] == 1
    assert report.loc['4+ Activities', 'high_performer_rate'] == 100.0
    assert report.loc['2-3 Activities', 'avg_gpa'] == 3.82
    assert report.index[0] == '4+ Activities'


def test_activity_impact_without_activities(students, attendance):
    """No activity table: everyone has no activities."""
    report = activity_impact(students, attendance, None, PERIOD)
    assert report['activity_level'].tolist() == ['No Activities']
    assert report.loc[0, 'student_count'] == 6


def test_at_risk_students(students, attendance, grades, activities):
    """Flagged students ordered by risk tier then GPA."""
    report = at_risk_students(students, attendance, grades, activities, PERIOD)

    assert report['student_id'].tolist() == [1005, 1006]
    critical = report.iloc[0]
    assert critical['risk_level'] == 'Critical Risk'
    assert critical['courses_taken'] == 2
    assert critical['failed_courses'] == 1
    assert critical['individual_failure_rate'] == 50.0
    assert critical['extracurricular_count'] == 0
    assert report.iloc[1]['risk_level'] == 'High Risk'


def test_subject_effectiveness_rating():
    """Failure limits are tighter than the curriculum review rating."""
    assert subject_effectiveness_rating(85, 5) == 'High Performing'
    assert subject_effectiveness_rating(85, 6) == 'Good Performing'
    assert subject_effectiveness_rating(80, 12) == 'Average Performing'
    assert subject_effectiveness_rating(70, 20) == 'Average Performing'
    assert subject_effectiveness_rating(70, 21) == 'Needs Improvement'
    assert subject_effectiveness_rating(64.9, 0) == 'Needs Improvement'


def test_subject_effectiveness(subjects, grades):
    """Average grade first, excellence and consistency per subject."""
    report = subject_effectiveness(subjects, grades, PERIOD)
    assert list(report['subject_name']) == ['Art', 'Mathematics']

    art = report.iloc[0]
    assert art['total_students'] == 4
    assert art['average_grade'] == pytest.approx(82.25)
    assert art['excellence_rate'] == pytest.approx(25.0)
    assert art['failure_rate'] == pytest.approx(0.0)
    assert art['subject_performance_rating'] == 'Good Performing'
    assert art['difficulty_level'] == 'Low'

    math = report.iloc[1]
    assert math['average_grade'] == pytest.approx(66.5)
    assert math['excellence_rate'] == pytest.approx(25.0)
    assert math['failure_rate'] == pytest.approx(50.0)
    assert math['grade_consistency'] == pytest.approx(
        pd.Series([72.0, 91.0, 45.0, 58.0]).std(), abs=0.01
    )
    assert math['subject_performance_rating'] == 'Needs Improvement'


def test_subject_effectiveness_ties_on_failure_rate(subjects):
    """Equal averages are ordered by failure rate, lowest first."""
    grades = pd.DataFrame({
        'student_id': [1, 2, 3, 4],
        'subject_id': [1, 1, 2, 2],
        'grade_numeric': [50.0, 90.0, 70.0, 70.0],
        'academic_year': ['2023-2024'] * 4,
    })
    report = subject_effectiveness(subjects, grades, PERIOD)
    assert list(report['subject_name']) == ['Art', 'Mathematics']
    assert list(report['failure_rate']) == [0.0, 50.0]


def test_attendance_group():
    """Three attendance groups."""
    assert attendance_group(90.0) == 'High (90%+)'
    assert attendance_group(89.9) == 'Medium (75-89%)'
    assert attendance_group(75.0) == 'Medium (75-89%)'
    assert attendance_group(74.9) == 'Low (<75%)'


def test_attendance_impact_summary(students, attendance):
    """GPA statistics per attendance group, best average GPA first."""
    report = attendance_impact_summary(students, attendance, PERIOD)
    assert list(report['attendance_group']) == ['High (90%+)', 'Medium (75-89%)', 'Low (<75%)']

    high = report.iloc[0]
    assert high['student_count'] == 4
    assert high['avg_gpa'] == pytest.approx(3.395, abs=0.01)
    assert high['min_gpa'] == pytest.approx(2.40)
    assert high['max_gpa'] == pytest.approx(3.91)
    assert high['at_risk_students'] == 0

    low = report.iloc[2]
    assert low['student_count'] == 1
    assert low['avg_gpa'] == pytest.approx(1.90)
    assert low['at_risk_students'] == 1
    assert report['at_risk_students'].sum() == 1
