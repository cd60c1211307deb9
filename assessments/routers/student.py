"""Student-side API: take an assessment.

The student is identified by the ``student_id`` query parameter.
"""

from typing import Optional

from fastapi import APIRouter, Body, Depends, HTTPException, Query, status

from assessments.deps import get_assignment_service
from assessments.errors import NotFoundError
from assessments.schemas import AnswersPayload, AssignmentOut, TimerOut, ViolationPayload
from assessments.services.assignment_service import AssignmentService, result_snapshot, timer_snapshot
from assessments.services.question_service import questions_for_student

router = APIRouter()


def _existing_assignment(service: AssignmentService, assessment_id: int, student_id: int):
    assessment = service.get_assessment(assessment_id)
    assignment = service.get_assignment(assessment_id, student_id)
    if assignment is None:
        raise NotFoundError(f"Student {student_id} has no assignment for assessment {assessment_id}")
    return assignment, assessment


def _reject_if_unpublished(assessment) -> None:
    if not assessment.is_published:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Assessment is not published")


def _reject_if_closed(service: AssignmentService, assignment, assessment) -> None:
    if assignment.submitted_at is not None:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Assessment already submitted")
    if assignment.started_at is None:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Assessment not started")
    if service.timer.is_time_expired(assignment, assessment, with_grace=True):
        service.auto_submit_if_expired(assignment, assessment)
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Time is up; the assessment was submitted automatically",
        )
    if service.timer.is_due_date_passed(assessment):
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="The due date has passed")


@router.post("/{assessment_id}/assignments", response_model=AssignmentOut)
def api_get_or_create_assignment(
    assessment_id: int,
    student_id: int = Query(...),
    service: AssignmentService = Depends(get_assignment_service),
):
    return service.get_or_create_assignment(assessment_id, student_id)


@router.post("/{assessment_id}/start", response_model=AssignmentOut)
def api_start(
    assessment_id: int,
    student_id: int = Query(...),
    service: AssignmentService = Depends(get_assignment_service),
):
    """Start (or resume) the attempt. The first call fixes ``started_at``."""
    _reject_if_unpublished(service.get_assessment(assessment_id))
    return service.start(assessment_id, student_id)


@router.get("/{assessment_id}/questions")
def api_student_questions(
    assessment_id: int,
    student_id: int = Query(...),
    service: AssignmentService = Depends(get_assignment_service),
):
    """Questions of a started attempt, without correct answers."""
    assignment, assessment = _existing_assignment(service, assessment_id, student_id)
    _reject_if_unpublished(assessment)
    if assignment.started_at is None:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Assessment not started")
    return {
        "assignment_id": assignment.id,
        "questions": questions_for_student(service.session, assessment, student_id),
    }


@router.get("/{assessment_id}/timer", response_model=TimerOut)
def api_timer(
    assessment_id: int,
    student_id: int = Query(...),
    service: AssignmentService = Depends(get_assignment_service),
):
    assignment, assessment = _existing_assignment(service, assessment_id, student_id)
    auto_submitted = service.auto_submit_if_expired(assignment, assessment)
    return timer_snapshot(service, assignment, assessment, auto_submitted=auto_submitted)


@router.post("/{assessment_id}/answers")
def api_save_answers(
    assessment_id: int,
    student_id: int = Query(...),
    payload: AnswersPayload = Body(...),
    service: AssignmentService = Depends(get_assignment_service),
):
    assignment, assessment = _existing_assignment(service, assessment_id, student_id)
    _reject_if_closed(service, assignment, assessment)
    if not service.save_answers(assignment, payload.answers):
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Assessment already submitted")
    return {"assignment_id": assignment.id, "saved": len(payload.answers)}


@router.post("/{assessment_id}/submit", response_model=AssignmentOut)
def api_submit(
    assessment_id: int,
    student_id: int = Query(...),
    payload: Optional[AnswersPayload] = Body(default=None),
    service: AssignmentService = Depends(get_assignment_service),
):
    assignment, assessment = _existing_assignment(service, assessment_id, student_id)
    _reject_if_closed(service, assignment, assessment)
    answers = payload.answers if payload is not None else None
    if not service.submit_assessment(assignment, assessment, answers):
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Assessment already submitted")
    return assignment


@router.post("/{assessment_id}/violation", response_model=AssignmentOut)
def api_report_violation(
    assessment_id: int,
    student_id: int = Query(...),
    payload: ViolationPayload = Body(...),
    service: AssignmentService = Depends(get_assignment_service),
):
    assignment, assessment = _existing_assignment(service, assessment_id, student_id)
    if not service.terminate_for_violation(assignment, assessment, payload.violation_type, payload.details):
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Only an open supervised attempt can be terminated",
        )
    return assignment


@router.get("/{assessment_id}/result")
def api_result(
    assessment_id: int,
    student_id: int = Query(...),
    service: AssignmentService = Depends(get_assignment_service),
):
    assignment, assessment = _existing_assignment(service, assessment_id, student_id)
    if assignment.submitted_at is None:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Assessment not submitted")
    return result_snapshot(service, assignment, assessment)
