"""Teacher grading API for submitted assignments."""

from fastapi import APIRouter, Body, Depends

from assessments.deps import get_assignment_service, get_grading_service
from assessments.schemas import AssignmentOut, GradePayload
from assessments.services.assignment_service import AssignmentService
from assessments.services.grading_service import GradingService

router = APIRouter()


@router.get("/{assignment_id}")
def api_get_assignment(assignment_id: int, service: AssignmentService = Depends(get_assignment_service)):
    assignment = service.get_assignment_by_id(assignment_id)
    scoring = service.scoring
    answers = scoring.answers_by_question(assignment.id)
    return {
        **AssignmentOut.model_validate(assignment).model_dump(),
        "teacher_notes": assignment.teacher_notes,
        "max_points": scoring.max_points(assignment.assessment_id),
        "answers": [
            {
                "question_id": question.id,
                "type": question.type,
                "choice_ids": [a.choice_id for a in answers[question.id] if a.choice_id is not None],
                "answer_text": answers[question.id][0].answer_text,
                "score": answers[question.id][0].score,
                "feedback": answers[question.id][0].feedback,
                "is_correct": scoring.is_answer_correct(question, answers[question.id]),
            }
            for question in scoring.questions_for(assignment.assessment_id)
            if answers.get(question.id)
        ],
    }


@router.post("/{assignment_id}/grade", response_model=AssignmentOut)
def api_grade(
    assignment_id: int,
    payload: GradePayload = Body(...),
    service: GradingService = Depends(get_grading_service),
):
    return service.save_manual_grades(assignment_id, payload.scores, payload.teacher_notes)


@router.post("/{assignment_id}/grade-zero", response_model=AssignmentOut)
def api_grade_zero(assignment_id: int, service: GradingService = Depends(get_grading_service)):
    return service.auto_grade_zero(assignment_id)
