"""Assessment authoring: create an assessment with its questions and choices."""

import logging
import random
from typing import Any, Dict, List

from sqlmodel import Session, select

from assessments.clock import to_naive_utc
from assessments.errors import ErrorBag, NotFoundError, QuestionValidationError, add_error
from assessments.models import Assessment, Choice, Question
from assessments.schemas import AssessmentCreate
from assessments.strategies.question_validation import (
    QuestionValidationContext,
    validate_assessment_fields,
)
from assessments.utils import sanitize_question_text, sanitize_title

logger = logging.getLogger(__name__)


def validate_assessment(payload: AssessmentCreate, context: QuestionValidationContext = None) -> ErrorBag:
    errors: ErrorBag = {}
    validate_assessment_fields(errors, payload)
    if not sanitize_title(payload.title):
        add_error(errors, "title", "Title cannot be empty after sanitization.")
    (context or QuestionValidationContext()).validate_questions(errors, payload.questions)
    for index, question in enumerate(payload.questions):
        if not sanitize_question_text(question.content):
            add_error(errors, f"questions.{index}.content", "Question text cannot be empty after sanitization.")
    return errors


def create_assessment(
    session: Session,
    payload: AssessmentCreate,
    context: QuestionValidationContext = None,
) -> Assessment:
    """Persist an assessment and its questions, or raise with every problem found.

    Raises:
        QuestionValidationError: carrying the collected error bag
    """
    errors = validate_assessment(payload, context)
    if errors:
        raise QuestionValidationError(errors)

    assessment = Assessment(
        **payload.model_dump(
            exclude={"questions", "delivery_mode", "title", "description", "scheduled_at", "due_date"}
        ),
        title=sanitize_title(payload.title),
        description=sanitize_question_text(payload.description) if payload.description else None,
        delivery_mode=payload.delivery_mode.value,
        scheduled_at=to_naive_utc(payload.scheduled_at),
        due_date=to_naive_utc(payload.due_date),
    )
    session.add(assessment)
    session.flush()

    for index, q in enumerate(payload.questions):
        question = Question(
            assessment_id=assessment.id,
            type=q.type,
            content=sanitize_question_text(q.content),
            points=q.points,
            order_index=q.order_index or index,
        )
        session.add(question)
        session.flush()
        for c_index, c in enumerate(q.choices):
            session.add(
                Choice(
                    question_id=question.id,
                    content=sanitize_question_text(c.content),
                    is_correct=c.is_correct,
                    order_index=c.order_index or c_index,
                )
            )

    session.commit()
    session.refresh(assessment)
    logger.info("Created assessment %s with %d questions", assessment.id, len(payload.questions))
    return assessment


def get_assessment(session: Session, assessment_id: int) -> Assessment:
    assessment = session.get(Assessment, assessment_id)
    if assessment is None:
        raise NotFoundError(f"Assessment with id={assessment_id} does not exist")
    return assessment


def list_questions(session: Session, assessment_id: int) -> List[Question]:
    return session.exec(
        select(Question)
        .where(Question.assessment_id == assessment_id)
        .order_by(Question.order_index, Question.id)
    ).all()


def set_published(session: Session, assessment_id: int, published: bool = True) -> Assessment:
    assessment = get_assessment(session, assessment_id)
    assessment.is_published = published
    session.add(assessment)
    session.commit()
    session.refresh(assessment)
    logger.info("Assessment %s %s", assessment.id, "published" if published else "unpublished")
    return assessment


def questions_for_student(session: Session, assessment: Assessment, student_id: int) -> List[Dict[str, Any]]:
    """Questions as a student sees them, without the correct-choice flags.

    With ``shuffle_questions`` the order is shuffled once per student: the
    seed is the (assessment, student) pair, so reloading gives the same order.
    """
    questions = list(list_questions(session, assessment.id))
    if assessment.shuffle_questions:
        random.Random(f"{assessment.id}:{student_id}").shuffle(questions)
    return [
        {
            "id": q.id,
            "type": q.type,
            "content": q.content,
            "points": q.points,
            "choices": [{"id": c.id, "content": c.content} for c in q.choices],
        }
        for q in questions
    ]
