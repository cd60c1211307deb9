"""Course-level grades built from the weighted assessment scores."""

from fastapi import APIRouter, Depends, Query
from sqlmodel import Session

from assessments.database import get_session
from assessments.services.stats_service import calculate_course_grade

router = APIRouter()


@router.get("/{course_id}/grade")
def api_course_grade(course_id: int, student_id: int = Query(...), session: Session = Depends(get_session)):
    return calculate_course_grade(session, course_id, student_id)
