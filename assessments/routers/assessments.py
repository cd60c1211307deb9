"""Teacher-side API: author assessments and read their statistics."""

from typing import Any, Dict

from fastapi import APIRouter, Body, Depends, Query, status
from sqlmodel import Session

from assessments.database import get_session
from assessments.deps import get_assignment_service
from assessments.models import Assessment
from assessments.schemas import AssessmentCreate
from assessments.services.assignment_service import AssignmentService
from assessments.services.question_service import (
    create_assessment,
    get_assessment,
    list_questions,
    set_published,
)
from assessments.services.stats_service import calculate_assessment_stats

router = APIRouter()


def _assessment_json(session: Session, assessment: Assessment) -> Dict[str, Any]:
    return {
        "id": assessment.id,
        "title": assessment.title,
        "description": assessment.description,
        "course_id": assessment.course_id,
        "teacher_id": assessment.teacher_id,
        "delivery_mode": assessment.delivery_mode,
        "duration_minutes": assessment.duration_minutes,
        "scheduled_at": assessment.scheduled_at,
        "due_date": assessment.due_date,
        "coefficient": assessment.coefficient,
        "shuffle_questions": assessment.shuffle_questions,
        "show_results_immediately": assessment.show_results_immediately,
        "allow_late_submission": assessment.allow_late_submission,
        "is_published": assessment.is_published,
        "questions": [
            {
                "id": q.id,
                "type": q.type,
                "content": q.content,
                "points": q.points,
                "order_index": q.order_index,
                "choices": [
                    {"id": c.id, "content": c.content, "is_correct": c.is_correct}
                    for c in q.choices
                ],
            }
            for q in list_questions(session, assessment.id)
        ],
    }


@router.post("", status_code=status.HTTP_201_CREATED)
def api_create_assessment(payload: AssessmentCreate = Body(...), session: Session = Depends(get_session)):
    assessment = create_assessment(session, payload)
    return _assessment_json(session, assessment)


@router.get("/{assessment_id}")
def api_get_assessment(assessment_id: int, session: Session = Depends(get_session)):
    return _assessment_json(session, get_assessment(session, assessment_id))


@router.post("/{assessment_id}/publish")
def api_publish_assessment(
    assessment_id: int,
    published: bool = Query(default=True),
    session: Session = Depends(get_session),
):
    """Open (or, with ``published=false``, close) the assessment to students."""
    return _assessment_json(session, set_published(session, assessment_id, published))


@router.get("/{assessment_id}/stats")
def api_assessment_stats(assessment_id: int, session: Session = Depends(get_session)):
    return calculate_assessment_stats(session, assessment_id)


@router.post("/{assessment_id}/sweep-expired")
def api_sweep_expired(assessment_id: int, service: AssignmentService = Depends(get_assignment_service)):
    """Force-submit every supervised attempt whose time ran out."""
    return {"assessment_id": assessment_id, "auto_submitted": service.sweep_expired(assessment_id)}
