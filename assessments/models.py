"""SQLModel models for the assessment scoring & grading service."""

from datetime import datetime
from enum import Enum
from typing import List, Optional

from sqlalchemy import UniqueConstraint
from sqlmodel import Field, Relationship, SQLModel

from assessments.clock import utcnow


class QuestionType(str, Enum):
    BOOLEAN = "boolean"
    ONE_CHOICE = "one_choice"
    MULTIPLE = "multiple"
    TEXT = "text"
    ESSAY = "essay"
    FILE = "file"

    def requires_manual_grading(self) -> bool:
        return self in (QuestionType.TEXT, QuestionType.ESSAY, QuestionType.FILE)

    def is_auto_correctable(self) -> bool:
        return not self.requires_manual_grading()


MANUAL_GRADING_TYPES = frozenset(t.value for t in QuestionType if t.requires_manual_grading())
AUTO_CORRECTABLE_TYPES = frozenset(t.value for t in QuestionType if t.is_auto_correctable())


class DeliveryMode(str, Enum):
    SUPERVISED = "supervised"  # timed, countdown starts when the student starts
    HOMEWORK = "homework"  # due-date based, no countdown


class UserRole(str, Enum):
    ADMIN = "admin"
    TEACHER = "teacher"
    STUDENT = "student"


class AssignmentStatus(str, Enum):
    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    SUBMITTED = "submitted"
    GRADED = "graded"


class User(SQLModel, table=True):
    """Application user owning a role (admin / teacher / student)."""

    __table_args__ = (UniqueConstraint("email", name="uq_user_email"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    name: str
    email: str
    role: str = Field(default=UserRole.STUDENT.value)
    created_at: datetime = Field(default_factory=utcnow)


class Course(SQLModel, table=True):
    """A class/subject offering that students enroll in and assessments belong to."""

    __table_args__ = (UniqueConstraint("code", name="uq_course_code"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    code: str
    name: str
    teacher_id: Optional[int] = Field(default=None, foreign_key="user.id")
    created_at: datetime = Field(default_factory=utcnow)


class Enrollment(SQLModel, table=True):
    __table_args__ = (
        UniqueConstraint("course_id", "student_id", name="uq_course_student"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    course_id: int = Field(foreign_key="course.id")
    student_id: int = Field(foreign_key="user.id")
    status: str = Field(default="active")  # active | withdrawn
    enrolled_at: datetime = Field(default_factory=utcnow)


class Assessment(SQLModel, table=True):
    """An assignable unit of evaluation (exam, homework, quiz...)."""

    id: Optional[int] = Field(default=None, primary_key=True)
    course_id: Optional[int] = Field(default=None, foreign_key="course.id")
    teacher_id: Optional[int] = Field(default=None, foreign_key="user.id")
    title: str
    description: Optional[str] = None
    delivery_mode: str = Field(default=DeliveryMode.SUPERVISED.value)
    # Supervised only
    duration_minutes: Optional[int] = None
    scheduled_at: Optional[datetime] = None
    # Homework only
    due_date: Optional[datetime] = None
    coefficient: float = Field(default=1.0)
    shuffle_questions: bool = Field(default=False)
    show_results_immediately: bool = Field(default=False)
    allow_late_submission: bool = Field(default=False)
    is_published: bool = Field(default=False)
    created_at: datetime = Field(default_factory=utcnow)

    questions: List["Question"] = Relationship(
        back_populates="assessment",
        sa_relationship_kwargs={"order_by": "Question.order_index"},
    )

    def is_supervised(self) -> bool:
        return self.delivery_mode == DeliveryMode.SUPERVISED.value

    def is_homework(self) -> bool:
        return self.delivery_mode == DeliveryMode.HOMEWORK.value


class Question(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    assessment_id: Optional[int] = Field(default=None, foreign_key="assessment.id")
    type: str  # QuestionType value; unknown values are tolerated and left unscored
    content: str = ""
    points: float = Field(default=1.0, gt=0)
    order_index: int = Field(default=0)

    assessment: Optional[Assessment] = Relationship(back_populates="questions")
    choices: List["Choice"] = Relationship(
        back_populates="question",
        sa_relationship_kwargs={"order_by": "Choice.order_index"},
    )


class Choice(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    question_id: Optional[int] = Field(default=None, foreign_key="question.id")
    content: str = ""
    is_correct: bool = Field(default=False)
    order_index: int = Field(default=0)

    question: Optional[Question] = Relationship(back_populates="choices")


class AssessmentAssignment(SQLModel, table=True):
    """One student's instance of an assessment.

    The lifecycle status is never stored: it is derived from the three
    timestamps every time it is read.
    """

    __table_args__ = (
        UniqueConstraint("assessment_id", "student_id", name="uq_assessment_student"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    assessment_id: int = Field(foreign_key="assessment.id")
    student_id: int = Field(foreign_key="user.id")
    started_at: Optional[datetime] = None
    submitted_at: Optional[datetime] = None
    graded_at: Optional[datetime] = None
    score: Optional[float] = None
    teacher_notes: Optional[str] = None
    forced_submission: bool = Field(default=False)
    security_violation: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)

    answers: List["Answer"] = Relationship(back_populates="assignment")

    @property
    def status(self) -> str:
        from assessments.services.timing import derive_status

        return derive_status(self.started_at, self.submitted_at, self.graded_at)


class Answer(SQLModel, table=True):
    """A student's response to one question within one assignment.

    Multi-choice responses are stored as one row per selected choice.
    """

    id: Optional[int] = Field(default=None, primary_key=True)
    assignment_id: int = Field(foreign_key="assessmentassignment.id")
    question_id: int = Field(foreign_key="question.id")
    choice_id: Optional[int] = Field(default=None, foreign_key="choice.id")
    answer_text: Optional[str] = None
    score: Optional[float] = None
    feedback: Optional[str] = None
    saved_at: datetime = Field(default_factory=utcnow)

    assignment: Optional[AssessmentAssignment] = Relationship(back_populates="answers")
