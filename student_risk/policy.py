"""Risk scoring policies.

A policy holds every bucket boundary and category cutoff the scorer uses.
Two presets ship with the package. They disagree on the activity bands and
on the category cutoffs, and neither one is the default: callers pick one by
name.
"""

from typing import Dict, Tuple

from pydantic import BaseModel, ConfigDict, model_validator

from student_risk.errors import UnknownPolicy


Band = Tuple[float, int]


def _check_descending(bands, label: str) -> None:
    thresholds = [threshold for threshold, _ in bands]
    if any(a <= b for a, b in zip(thresholds, thresholds[1:])):
        raise ValueError(f"{label} thresholds must be strictly descending: {thresholds}")
    if any(points < 0 for _, points in bands):
        raise ValueError(f"{label} scores must be non-negative")


class RiskPolicy(BaseModel):
    """
    Named, versioned risk scoring configuration.

    Sub-score bands are ``(threshold, score)`` pairs checked highest threshold
    first; a value that clears no threshold gets the floor score. Category
    bands are ``(upper_inclusive_composite, label)`` pairs checked in ascending
    order; anything above the last bound is ``top_category``. Intervention
    bands are ``(min_composite, label)`` pairs checked highest first.
    """
    model_config = ConfigDict(frozen=True)

    name: str
    version: str
    description: str = ""

    gpa_bands: Tuple[Band, ...]
    gpa_floor: int
    attendance_bands: Tuple[Band, ...]
    attendance_floor: int
    activity_bands: Tuple[Band, ...]
    activity_floor: int

    category_bands: Tuple[Tuple[int, str], ...]
    top_category: str

    intervention_bands: Tuple[Tuple[int, str], ...] = ()
    default_intervention: str = ""

    @model_validator(mode='after')
    def _check_bands(self):
        _check_descending(self.gpa_bands, 'gpa_bands')
        _check_descending(self.attendance_bands, 'attendance_bands')
        _check_descending(self.activity_bands, 'activity_bands')

        bounds = [bound for bound, _ in self.category_bands]
        if any(a >= b for a, b in zip(bounds, bounds[1:])):
            raise ValueError(f"category_bands bounds must be strictly ascending: {bounds}")

        minimums = [minimum for minimum, _ in self.intervention_bands]
        if any(a <= b for a, b in zip(minimums, minimums[1:])):
            raise ValueError(f"intervention_bands minimums must be strictly descending: {minimums}")
        if self.intervention_bands and not self.default_intervention:
            raise ValueError("default_intervention is required when intervention_bands are set")
        return self

    @property
    def max_composite(self) -> int:
        """Highest composite score this policy can produce."""
        return self.gpa_floor + self.attendance_floor + self.activity_floor

    @property
    def categories(self) -> Tuple[str, ...]:
        """Category labels from lowest to highest risk."""
        return tuple(label for _, label in self.category_bands) + (self.top_category,)


_GPA_BANDS = ((3.5, 0), (3.0, 1), (2.5, 2), (2.0, 3))
_ATTENDANCE_BANDS = ((95.0, 0), (90.0, 1), (80.0, 2), (70.0, 3))


POLICY_A = RiskPolicy(
    name='A',
    version='1',
    description='3-band activity score, Low/Medium/High categories',
    gpa_bands=_GPA_BANDS,
    gpa_floor=4,
    attendance_bands=_ATTENDANCE_BANDS,
    attendance_floor=4,
    activity_bands=((2, 0), (1, 1)),
    activity_floor=2,
    category_bands=((2, 'Low Risk'), (5, 'Medium Risk')),
    top_category='High Risk',
)

POLICY_B = RiskPolicy(
    name='B',
    version='1',
    description='4-band activity score, Low/Medium/High/Critical categories with interventions',
    gpa_bands=_GPA_BANDS,
    gpa_floor=4,
    attendance_bands=_ATTENDANCE_BANDS,
    attendance_floor=4,
    activity_bands=((3, 0), (2, 1), (1, 2)),
    activity_floor=3,
    category_bands=((2, 'Low Risk'), (5, 'Medium Risk'), (8, 'High Risk')),
    top_category='Critical Risk',
    intervention_bands=(
        (9, 'Immediate counseling + academic support + family meeting'),
        (6, 'Weekly check-ins + tutoring + activity enrollment'),
        (3, 'Monthly monitoring + peer mentoring'),
    ),
    default_intervention='Standard monitoring + recognition programs',
)


POLICIES: Dict[str, RiskPolicy] = {
    POLICY_A.name: POLICY_A,
    POLICY_B.name: POLICY_B,
}


def get_policy(name: str) -> RiskPolicy:
    """Look up a registered policy by name (case-insensitive)."""
    key = str(name).strip().upper()
    if key not in POLICIES:
        raise UnknownPolicy(name, POLICIES.keys())
    return POLICIES[key]
