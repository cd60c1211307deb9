"""Integrity checks on teacher-submitted scores.

Strategies are selected by a validation-type key. Every requested strategy
runs, whatever its siblings found, and all errors end up in one bag keyed
by the offending field (``scores.{i}.score``, ``student_id``...).
"""

import logging
import math
from abc import ABC, abstractmethod
from typing import Any, Dict, Iterable, List, Mapping, Optional

from sqlmodel import Session, select

from assessments.errors import ErrorBag, add_error
from assessments.models import Answer, AssessmentAssignment, Question, User, UserRole

logger = logging.getLogger(__name__)


def _score_rows(data: Mapping[str, Any]) -> List[Mapping[str, Any]]:
    return list(data.get("scores") or [])


def _as_number(value: Any) -> Optional[float]:
    """Coerce a score to a finite float, or None when it is not one."""
    if isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def _question_points(session: Session, assessment_id: int) -> Dict[int, float]:
    rows = session.exec(
        select(Question.id, Question.points).where(Question.assessment_id == assessment_id)
    ).all()
    return {qid: points for qid, points in rows}


class ScoreValidationStrategy(ABC):
    validation_type: str = ""

    @abstractmethod
    def validate(self, errors: ErrorBag, data: Mapping[str, Any], context: Mapping[str, Any]) -> None:
        pass


class QuestionExistsInAssessmentStrategy(ScoreValidationStrategy):
    validation_type = "question_exists_in_assessment"

    def validate(self, errors, data, context):
        session: Session = context["session"]
        assessment = context["assessment"]
        known = _question_points(session, assessment.id)
        for index, row in enumerate(_score_rows(data)):
            if row.get("question_id") not in known:
                add_error(
                    errors,
                    f"scores.{index}.question_id",
                    f"Question {row.get('question_id')} does not belong to this assessment.",
                )


class ScoreNotExceedsMaxStrategy(ScoreValidationStrategy):
    validation_type = "score_not_exceeds_max"

    def validate(self, errors, data, context):
        session: Session = context["session"]
        assessment = context["assessment"]
        points_by_question = _question_points(session, assessment.id)
        for index, row in enumerate(_score_rows(data)):
            score = _as_number(row.get("score"))
            if score is None:
                add_error(errors, f"scores.{index}.score", "Score must be a finite number.")
                continue
            max_points = points_by_question.get(row.get("question_id"))
            if max_points is None:
                # Unknown questions are reported by question_exists_in_assessment
                continue
            if score < 0 or score > max_points:
                add_error(
                    errors,
                    f"scores.{index}.score",
                    f"Score {score:g} out of range [0, {max_points:g}].",
                )


class StudentHasAnswerStrategy(ScoreValidationStrategy):
    validation_type = "student_has_answer"

    def validate(self, errors, data, context):
        session: Session = context["session"]
        assignment: AssessmentAssignment = context["assignment"]
        answered = set(
            session.exec(
                select(Answer.question_id).where(Answer.assignment_id == assignment.id)
            ).all()
        )
        for index, row in enumerate(_score_rows(data)):
            if row.get("question_id") not in answered:
                add_error(
                    errors,
                    f"scores.{index}.question_id",
                    f"The student has no answer for question {row.get('question_id')}.",
                )


class SingleQuestionExistsStrategy(ScoreValidationStrategy):
    """Single-score payload: ``{assessment_id, question_id, score}``."""

    validation_type = "single_question_exists"

    def validate(self, errors, data, context):
        session: Session = context["session"]
        question = session.get(Question, data.get("question_id")) if data.get("question_id") else None
        if question is None or question.assessment_id != data.get("assessment_id"):
            add_error(errors, "question_id", "The question does not belong to this assessment.")
            return
        score = _as_number(data.get("score"))
        if score is None or score < 0 or score > question.points:
            add_error(errors, "score", f"Score must be between 0 and {question.points:g}.")


class StudentAssignmentStrategy(ScoreValidationStrategy):
    validation_type = "student_assignment"

    def validate(self, errors, data, context):
        session: Session = context["session"]
        student = session.get(User, data.get("student_id")) if data.get("student_id") else None
        if student is None or student.role != UserRole.STUDENT.value:
            add_error(errors, "student_id", "The selected user is not a student.")
            return
        assignment = session.exec(
            select(AssessmentAssignment).where(
                (AssessmentAssignment.assessment_id == data.get("assessment_id"))
                & (AssessmentAssignment.student_id == student.id)
            )
        ).first()
        if assignment is None:
            add_error(errors, "student_id", "This assessment is not assigned to the student.")


class ScoreValidationContext:
    def __init__(self, strategies: Optional[Iterable[ScoreValidationStrategy]] = None):
        strategies = strategies or [
            QuestionExistsInAssessmentStrategy(),
            ScoreNotExceedsMaxStrategy(),
            StudentHasAnswerStrategy(),
            SingleQuestionExistsStrategy(),
            StudentAssignmentStrategy(),
        ]
        self.strategies: Dict[str, ScoreValidationStrategy] = {
            s.validation_type: s for s in strategies
        }

    def register(self, strategy: ScoreValidationStrategy) -> "ScoreValidationContext":
        self.strategies[strategy.validation_type] = strategy
        return self

    def validate(
        self,
        errors: ErrorBag,
        data: Mapping[str, Any],
        validation_types: Iterable[str],
        context: Mapping[str, Any],
    ) -> ErrorBag:
        for validation_type in validation_types:
            strategy = self.strategies.get(validation_type)
            if strategy is None:
                logger.warning("Ignoring unknown score validation type %r", validation_type)
                continue
            strategy.validate(errors, data, context)
        return errors
