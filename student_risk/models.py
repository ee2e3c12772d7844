"""Data models for the Student Risk Scorer."""

import re
from datetime import date
from typing import Optional, Dict, List

from pydantic import BaseModel, ConfigDict, Field, field_validator


class StudentSnapshot(BaseModel):
    """One student's metrics for a single reporting period.

    GPA and attendance may be absent here; ``score()`` is the place that
    rejects them.
    """
    model_config = ConfigDict(frozen=True)

    student_id: str
    gpa: Optional[float] = None
    attendance_rate: Optional[float] = None
    activity_count: int = 0
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    grade_level: Optional[int] = None

    @field_validator('student_id', mode='before')
    @classmethod
    def _coerce_student_id(cls, value):
        # Numeric ids from spreadsheets arrive as int/float
        if isinstance(value, float) and value.is_integer():
            value = int(value)
        return str(value).strip()


class RiskAssessment(BaseModel):
    """Scored result for one snapshot."""
    model_config = ConfigDict(frozen=True)

    student_id: str
    policy: str
    gpa_risk: int
    attendance_risk: int
    activity_risk: int
    composite_score: int
    risk_category: str
    recommended_intervention: Optional[str] = None


_ACADEMIC_YEAR = re.compile(r"^(\d{4})-(\d{4})$")


class ReportingPeriod(BaseModel):
    """Academic-year window (optionally narrowed to one semester)."""
    model_config = ConfigDict(frozen=True)

    academic_year: str
    semester: Optional[str] = None
    as_of: Optional[date] = None

    @field_validator('academic_year')
    @classmethod
    def _check_academic_year(cls, value: str) -> str:
        match = _ACADEMIC_YEAR.match(value.strip())
        if not match or int(match.group(2)) != int(match.group(1)) + 1:
            raise ValueError(f"academic_year must look like '2023-2024', got '{value}'")
        return value.strip()


class ScoreRequest(BaseModel):
    """Request body for scoring a single snapshot."""
    snapshot: StudentSnapshot
    policy: Optional[str] = None


class BatchScoreRequest(BaseModel):
    """Request body for scoring many snapshots at once."""
    snapshots: List[StudentSnapshot] = Field(default_factory=list)
    policy: Optional[str] = None


class BatchScoreResponse(BaseModel):
    """Response from batch scoring and file upload endpoints."""
    success: bool
    message: str
    policy: str
    results: List[RiskAssessment]
    summary: Dict[str, int]
