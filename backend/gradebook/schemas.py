"""Pydantic models for service results and request/response payloads."""
from datetime import datetime
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from .models.enums import AssignmentStatus


class TimingSnapshot(BaseModel):
    timed: bool
    started_at: Optional[datetime] = None
    end_time: Optional[datetime] = None
    remaining_seconds: Optional[int] = None
    elapsed_percentage: float = 0.0
    is_expired: bool = False
    is_near_expiration: bool = False
    formatted_remaining: Optional[str] = None


class AssessmentStats(BaseModel):
    total_assigned: int = 0
    not_started: int = 0
    in_progress: int = 0
    submitted: int = 0
    graded: int = 0
    completion_rate: float = 0.0
    average_score: Optional[float] = None


class SubjectGradeLine(BaseModel):
    class_subject_id: int
    subject_name: str
    teacher_name: str
    coefficient: float
    average: Optional[float] = None
    assessments_count: int = 0
    completed_count: int = 0


class GradeBreakdown(BaseModel):
    student_id: int
    student_name: Optional[str] = None
    class_id: int
    class_name: str
    subjects: List[SubjectGradeLine] = []
    annual_average: Optional[float] = None
    total_coefficient: float = 0.0


class StudentProgress(BaseModel):
    total_assessments: int = 0
    graded_assessments: int = 0
    pending_assessments: int = 0
    overall_average: Optional[float] = None


class ViolationOutcome(BaseModel):
    terminated: bool
    violation_type: str


class AnswerRead(BaseModel):
    id: int
    question_id: int
    choice_id: Optional[int] = None
    answer_text: Optional[str] = None
    file_name: Optional[str] = None
    score: Optional[float] = None
    feedback: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class AssignmentRead(BaseModel):
    id: int
    assessment_id: int
    enrollment_id: int
    status: AssignmentStatus
    assigned_at: datetime
    started_at: Optional[datetime] = None
    submitted_at: Optional[datetime] = None
    graded_at: Optional[datetime] = None
    score: Optional[float] = None
    auto_score: Optional[float] = None
    forced_submission: bool = False
    security_violation: Optional[str] = None
    teacher_notes: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class AssignmentSummary(BaseModel):
    """One entry of a student's assessment list; ``assignment`` is None until opened."""
    assessment_id: int
    status: AssignmentStatus
    assignment: Optional[AssignmentRead] = None


# Request payloads

AnswerValue = Union[int, str, List[int], None]


class AnswersPayload(BaseModel):
    answers: Dict[int, AnswerValue] = Field(default_factory=dict)


class SubmitPayload(BaseModel):
    answers: Optional[Dict[int, AnswerValue]] = None


class ViolationPayload(BaseModel):
    violation_type: str
    details: str = ""


class GradePayload(BaseModel):
    scores: Dict[int, float] = Field(default_factory=dict)
    feedback: Dict[int, str] = Field(default_factory=dict)
    notes: Optional[str] = None


class ExceptionPayload(BaseModel):
    reason: Optional[str] = None


class ErrorResponse(BaseModel):
    error: str
    detail: str
    extra: Dict[str, Any] = {}
