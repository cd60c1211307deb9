"""Request/response schemas for the JSON API."""

from datetime import datetime
from typing import Dict, List, Optional, Union

from pydantic import BaseModel, Field

from assessments.models import DeliveryMode


class ChoiceIn(BaseModel):
    content: str = Field(min_length=1, max_length=1000)
    is_correct: bool = False
    order_index: int = 0


class QuestionIn(BaseModel):
    # Kept as a plain string so unsupported types reach the validation
    # strategies instead of failing request parsing
    type: str
    content: str = Field(min_length=1, max_length=5000)
    points: float = Field(allow_inf_nan=False)
    order_index: int = 0
    choices: List[ChoiceIn] = Field(default_factory=list)


class AssessmentCreate(BaseModel):
    title: str = Field(min_length=1, max_length=255)
    description: Optional[str] = None
    course_id: Optional[int] = None
    teacher_id: Optional[int] = None
    delivery_mode: DeliveryMode
    duration_minutes: Optional[int] = None
    scheduled_at: Optional[datetime] = None
    due_date: Optional[datetime] = None
    coefficient: float = Field(default=1.0, ge=0.01)
    shuffle_questions: bool = False
    show_results_immediately: bool = False
    allow_late_submission: bool = False
    is_published: bool = False
    questions: List[QuestionIn] = Field(default_factory=list)


class ScoreIn(BaseModel):
    question_id: int
    score: float = Field(allow_inf_nan=False)
    feedback: Optional[str] = Field(default=None, max_length=5000)


class GradePayload(BaseModel):
    scores: List[ScoreIn]
    teacher_notes: Optional[str] = None


class AnswersPayload(BaseModel):
    # question_id -> choice id, list of choice ids, or free text
    answers: Dict[int, Union[int, List[int], str, None]] = Field(default_factory=dict)


class ViolationPayload(BaseModel):
    violation_type: str = Field(min_length=1, max_length=100)
    details: Optional[str] = Field(default=None, max_length=500)


class AssignmentOut(BaseModel):
    id: int
    assessment_id: int
    student_id: int
    status: str
    started_at: Optional[datetime] = None
    submitted_at: Optional[datetime] = None
    graded_at: Optional[datetime] = None
    score: Optional[float] = None
    forced_submission: bool = False
    security_violation: Optional[str] = None

    model_config = {"from_attributes": True}


class TimerOut(BaseModel):
    assignment_id: int
    status: str
    remaining_seconds: Optional[int] = None
    remaining_display: Optional[str] = None
    deadline: Optional[datetime] = None
    is_expired: bool = False
    is_near_expiration: bool = False
    auto_submitted: bool = False
