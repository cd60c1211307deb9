"""Per-assessment grading statistics for teachers."""

from typing import Any, Dict, List, Optional, Sequence

from sqlmodel import Session, select

from assessments.config import settings
from assessments.errors import NotFoundError
from assessments.models import (
    Assessment,
    AssessmentAssignment,
    AssignmentStatus,
    Course,
    Enrollment,
    Question,
)


def score_distribution(
    scores: Sequence[float],
    max_points: float,
    bucket_percent: Optional[int] = None,
) -> List[Dict[str, Any]]:
    """Count scores per percentage range of ``max_points`` (``0-20``, ``20-40``...).

    The last bucket includes 100 %.
    """
    width = bucket_percent or settings.DISTRIBUTION_BUCKET_PERCENT
    bounds = list(range(0, 100, width))
    buckets = [{"range": f"{low}-{min(low + width, 100)}", "count": 0} for low in bounds]
    if max_points <= 0:
        return buckets
    for score in scores:
        percent = max(0.0, min(100.0, score / max_points * 100))
        index = min(int(percent // width), len(buckets) - 1)
        buckets[index]["count"] += 1
    return buckets


def calculate_assessment_stats(session: Session, assessment_id: int) -> Dict[str, Any]:
    """Status counts, average score and completion rate of one assessment.

    ``total_assigned`` covers every student with an assignment record plus
    actively enrolled students who have none yet; the latter count as
    ``not_started``.
    """
    assessment = session.get(Assessment, assessment_id)
    if assessment is None:
        raise NotFoundError(f"Assessment with id={assessment_id} does not exist")

    assignments = session.exec(
        select(AssessmentAssignment).where(AssessmentAssignment.assessment_id == assessment_id)
    ).all()

    student_ids = {a.student_id for a in assignments}
    if assessment.course_id is not None:
        enrolled = session.exec(
            select(Enrollment.student_id).where(
                (Enrollment.course_id == assessment.course_id) & (Enrollment.status == "active")
            )
        ).all()
        student_ids.update(enrolled)
    total_assigned = len(student_ids)

    counts = {status.value: 0 for status in AssignmentStatus}
    for assignment in assignments:
        counts[assignment.status] += 1
    counts[AssignmentStatus.NOT_STARTED.value] += total_assigned - len(assignments)

    graded_scores = [
        a.score
        for a in assignments
        if a.status == AssignmentStatus.GRADED.value and a.score is not None
    ]
    average_score = round(sum(graded_scores) / len(graded_scores), 2) if graded_scores else None

    graded = counts[AssignmentStatus.GRADED.value]
    completion_rate = round(graded / total_assigned * 100, 2) if total_assigned else 0.0

    points = session.exec(
        select(Question.points).where(Question.assessment_id == assessment_id)
    ).all()

    return {
        "assessment_id": assessment_id,
        "total_assigned": total_assigned,
        "not_started": counts[AssignmentStatus.NOT_STARTED.value],
        "in_progress": counts[AssignmentStatus.IN_PROGRESS.value],
        "submitted": counts[AssignmentStatus.SUBMITTED.value],
        "graded": graded,
        "not_submitted": counts[AssignmentStatus.NOT_STARTED.value]
        + counts[AssignmentStatus.IN_PROGRESS.value],
        "average_score": average_score,
        "completion_rate": completion_rate,
        "max_points": round(sum(points), 2),
        "score_distribution": score_distribution(graded_scores, sum(points)),
    }


def calculate_course_grade(session: Session, course_id: int, student_id: int) -> Dict[str, Any]:
    """Coefficient-weighted grade of one student over the graded assessments of a course.

    Each score is first normalised to ``settings.GRADE_SCALE`` and the grade is
    ``sum(coefficient * normalised) / sum(coefficient)``, rounded to 2 dp.
    ``grade`` is None until at least one assessment is graded.
    """
    if session.get(Course, course_id) is None:
        raise NotFoundError(f"Course with id={course_id} does not exist")

    rows = session.exec(
        select(Assessment, AssessmentAssignment)
        .join(AssessmentAssignment, AssessmentAssignment.assessment_id == Assessment.id)
        .where(
            (Assessment.course_id == course_id)
            & (AssessmentAssignment.student_id == student_id)
            & (AssessmentAssignment.graded_at.is_not(None))
        )
        .order_by(Assessment.id)
    ).all()

    breakdown = []
    weighted_total = 0.0
    total_coefficient = 0.0
    for assessment, assignment in rows:
        max_points = sum(
            session.exec(select(Question.points).where(Question.assessment_id == assessment.id)).all()
        )
        if assignment.score is None or max_points <= 0:
            continue
        normalized = assignment.score / max_points * settings.GRADE_SCALE
        weighted_total += assessment.coefficient * normalized
        total_coefficient += assessment.coefficient
        breakdown.append(
            {
                "assessment_id": assessment.id,
                "title": assessment.title,
                "score": assignment.score,
                "max_points": max_points,
                "coefficient": assessment.coefficient,
                "normalized_score": round(normalized, 2),
            }
        )

    return {
        "course_id": course_id,
        "student_id": student_id,
        "grade": round(weighted_total / total_coefficient, 2) if total_coefficient > 0 else None,
        "grade_scale": settings.GRADE_SCALE,
        "total_coefficient": total_coefficient,
        "assessments": breakdown,
    }
