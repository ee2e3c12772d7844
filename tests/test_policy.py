"""Unit tests for risk policy presets and validation."""

import pytest
from pydantic import ValidationError

from student_risk.errors import UnknownPolicy
from student_risk.policy import POLICIES, POLICY_A, POLICY_B, RiskPolicy, get_policy


def test_presets_registered():
    """Both presets are available by name."""
    assert set(POLICIES) == {'A', 'B'}
    assert get_policy('A') is POLICY_A
    assert get_policy('b') is POLICY_B
    assert get_policy(' B ') is POLICY_B


def test_unknown_policy():
    """Unknown names raise UnknownPolicy, a KeyError."""
    with pytest.raises(UnknownPolicy) as exc_info:
        get_policy('C')
    assert 'A, B' in str(exc_info.value)

    with pytest.raises(KeyError):
        get_policy('')


def test_composite_ranges():
    """Policy A tops out at 10, policy B at 11."""
    assert POLICY_A.max_composite == 10
    assert POLICY_B.max_composite == 11


def test_categories():
    """Category labels from lowest to highest risk."""
    assert POLICY_A.categories == ('Low Risk', 'Medium Risk', 'High Risk')
    assert POLICY_B.categories == ('Low Risk', 'Medium Risk', 'High Risk', 'Critical Risk')


def test_policies_are_frozen():
    """Policies cannot be mutated after construction."""
    with pytest.raises(ValidationError):
        POLICY_A.gpa_floor = 5


def _policy(**overrides):
    fields = dict(
        name='custom',
        version='1',
        gpa_bands=((3.0, 0),),
        gpa_floor=1,
        attendance_bands=((90.0, 0),),
        attendance_floor=1,
        activity_bands=((1, 0),),
        activity_floor=1,
        category_bands=((1, 'Low Risk'),),
        top_category='High Risk',
    )
    fields.update(overrides)
    return RiskPolicy(**fields)


def test_custom_policy():
    """A custom policy only needs consistent bands."""
    policy = _policy()
    assert policy.max_composite == 3
    assert policy.intervention_bands == ()


def test_rejects_unordered_bands():
    """Band thresholds must be strictly descending."""
    with pytest.raises(ValidationError):
        _policy(gpa_bands=((3.0, 0), (3.5, 1)))
    with pytest.raises(ValidationError):
        _policy(attendance_bands=((90.0, 0), (90.0, 1)))
    with pytest.raises(ValidationError):
        _policy(activity_bands=((1, -1),))


def test_rejects_unordered_categories():
    """Category upper bounds must be strictly ascending."""
    with pytest.raises(ValidationError):
        _policy(category_bands=((5, 'Medium Risk'), (2, 'Low Risk')))


def test_interventions_need_default():
    """Intervention bands require a fallback label."""
    with pytest.raises(ValidationError):
        _policy(intervention_bands=((2, 'Call home'),))

    policy = _policy(intervention_bands=((2, 'Call home'),), default_intervention='Monitor')
    assert policy.default_intervention == 'Monitor'
