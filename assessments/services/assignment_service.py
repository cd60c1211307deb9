"""Student-side assignment lifecycle: create, start, answer, submit, expire.

State-changing writes on ``started_at`` and ``submitted_at`` go through a
single conditional UPDATE (``... WHERE column IS NULL``) so concurrent
requests cannot restart a timer or submit twice.
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from assessments.clock import Clock, utcnow
from assessments.errors import NotFoundError
from assessments.models import (
    AUTO_CORRECTABLE_TYPES,
    Answer,
    Assessment,
    AssessmentAssignment,
    Enrollment,
    Question,
    User,
)
from assessments.services.scoring_service import ScoringService
from assessments.services.timing import AssignmentTimer

logger = logging.getLogger(__name__)

TIME_EXPIRED = "time_expired"


class AssignmentService:
    def __init__(
        self,
        session: Session,
        clock: Clock = utcnow,
        timer: Optional[AssignmentTimer] = None,
        scoring: Optional[ScoringService] = None,
    ):
        self.session = session
        self.clock = clock
        self.timer = timer or AssignmentTimer(clock=clock)
        self.scoring = scoring or ScoringService(session)

    # --- lookups ---------------------------------------------------------

    def get_assessment(self, assessment_id: int) -> Assessment:
        assessment = self.session.get(Assessment, assessment_id)
        if assessment is None:
            raise NotFoundError(f"Assessment with id={assessment_id} does not exist")
        return assessment

    def get_assignment(self, assessment_id: int, student_id: int) -> Optional[AssessmentAssignment]:
        stmt = select(AssessmentAssignment).where(
            (AssessmentAssignment.assessment_id == assessment_id)
            & (AssessmentAssignment.student_id == student_id)
        )
        return self.session.exec(stmt).first()

    def get_assignment_by_id(self, assignment_id: int) -> AssessmentAssignment:
        assignment = self.session.get(AssessmentAssignment, assignment_id)
        if assignment is None:
            raise NotFoundError(f"Assignment with id={assignment_id} does not exist")
        return assignment

    def _ensure_enrolled(self, assessment: Assessment, student_id: int) -> None:
        if self.session.get(User, student_id) is None:
            raise NotFoundError(f"Student with id={student_id} does not exist")
        if assessment.course_id is None:
            return
        enrollment = self.session.exec(
            select(Enrollment).where(
                (Enrollment.course_id == assessment.course_id)
                & (Enrollment.student_id == student_id)
                & (Enrollment.status == "active")
            )
        ).first()
        if enrollment is None:
            raise NotFoundError(
                f"Student {student_id} is not enrolled in the course of assessment {assessment.id}"
            )

    # --- lifecycle -------------------------------------------------------

    def get_or_create_assignment(self, assessment_id: int, student_id: int) -> AssessmentAssignment:
        """Return the student's assignment, creating it on first access.

        Creating the record never starts the timer.
        """
        existing = self.get_assignment(assessment_id, student_id)
        if existing is not None:
            return existing

        assessment = self.get_assessment(assessment_id)
        self._ensure_enrolled(assessment, student_id)

        assignment = AssessmentAssignment(assessment_id=assessment_id, student_id=student_id)
        self.session.add(assignment)
        try:
            self.session.commit()
        except IntegrityError:
            # Another request created it first
            self.session.rollback()
            existing = self.get_assignment(assessment_id, student_id)
            if existing is None:
                raise
            return existing
        self.session.refresh(assignment)
        return assignment

    def start_assignment(self, assignment: AssessmentAssignment) -> AssessmentAssignment:
        """Set ``started_at`` on the first call only; later calls keep the original value."""
        result = self.session.exec(
            update(AssessmentAssignment)
            .where(AssessmentAssignment.id == assignment.id)
            .where(AssessmentAssignment.started_at.is_(None))
            .values(started_at=self.clock())
        )
        self.session.commit()
        self.session.refresh(assignment)
        if result.rowcount:
            logger.info("Assignment %s started at %s", assignment.id, assignment.started_at)
        return assignment

    def start(self, assessment_id: int, student_id: int) -> AssessmentAssignment:
        return self.start_assignment(self.get_or_create_assignment(assessment_id, student_id))

    def _mark_submitted(self, assignment: AssessmentAssignment, **values: Any) -> bool:
        result = self.session.exec(
            update(AssessmentAssignment)
            .where(AssessmentAssignment.id == assignment.id)
            .where(AssessmentAssignment.submitted_at.is_(None))
            .values(**values)
        )
        if result.rowcount != 1:
            self.session.rollback()
            self.session.refresh(assignment)
            return False
        return True

    def auto_submit_if_expired(self, assignment: AssessmentAssignment, assessment: Assessment) -> bool:
        """Force-submit an expired supervised assignment at its exact deadline.

        Returns False when time remains or the assignment is already submitted.
        """
        if assignment.submitted_at is not None:
            return False
        if not self.timer.is_time_expired(assignment, assessment):
            return False

        deadline = self.timer.deadline(assignment, assessment)
        if not self._mark_submitted(
            assignment,
            submitted_at=deadline,
            forced_submission=True,
            security_violation=TIME_EXPIRED,
        ):
            return False

        self.scoring.auto_score_assignment(assignment, self.clock())
        self.session.commit()
        self.session.refresh(assignment)
        logger.info("Assignment %s auto-submitted at deadline %s", assignment.id, deadline)
        return True

    def sweep_expired(self, assessment_id: int) -> int:
        """Auto-submit every expired in-progress assignment of an assessment."""
        assessment = self.get_assessment(assessment_id)
        pending = self.session.exec(
            select(AssessmentAssignment).where(
                (AssessmentAssignment.assessment_id == assessment_id)
                & (AssessmentAssignment.started_at.is_not(None))
                & (AssessmentAssignment.submitted_at.is_(None))
            )
        ).all()
        return sum(1 for a in pending if self.auto_submit_if_expired(a, assessment))

    def save_answers(self, assignment: AssessmentAssignment, answers: Mapping[int, Any]) -> bool:
        """Replace the stored answers for each given question. False once submitted."""
        if assignment.submitted_at is not None:
            return False
        self._write_answers(assignment, answers)
        self.session.commit()
        return True

    def submit_assessment(
        self,
        assignment: AssessmentAssignment,
        assessment: Assessment,
        answers: Optional[Mapping[int, Any]] = None,
    ) -> bool:
        if assignment.submitted_at is not None:
            return False
        if answers:
            self._write_answers(assignment, answers)

        now = self.clock()
        if not self._mark_submitted(assignment, submitted_at=now):
            return False
        self.scoring.auto_score_assignment(assignment, now)
        self.session.commit()
        self.session.refresh(assignment)
        return True

    def terminate_for_violation(
        self,
        assignment: AssessmentAssignment,
        assessment: Assessment,
        violation_type: str,
        details: Optional[str] = None,
    ) -> bool:
        """End a supervised attempt early because of an anti-cheating violation."""
        if not assessment.is_supervised() or assignment.submitted_at is not None:
            return False
        violation = f"{violation_type}: {details}" if details else violation_type
        now = self.clock()
        if not self._mark_submitted(
            assignment,
            submitted_at=now,
            forced_submission=True,
            security_violation=violation,
        ):
            return False
        self.scoring.auto_score_assignment(assignment, now)
        self.session.commit()
        self.session.refresh(assignment)
        logger.warning("Assignment %s terminated for violation %r", assignment.id, violation)
        return True

    # --- answers ---------------------------------------------------------

    @staticmethod
    def _choice_ids(value: Any) -> List[int]:
        values = value if isinstance(value, (list, tuple, set)) else [value]
        ids: List[int] = []
        for item in values:
            if isinstance(item, bool):
                continue
            if isinstance(item, int):
                ids.append(item)
            elif isinstance(item, str) and item.strip().isdigit():
                ids.append(int(item.strip()))
        return ids

    def _write_answers(self, assignment: AssessmentAssignment, answers: Mapping[int, Any]) -> None:
        questions: Dict[int, Question] = {
            q.id: q for q in self.scoring.questions_for(assignment.assessment_id)
        }
        for raw_question_id, value in answers.items():
            question_id = int(raw_question_id)
            question = questions.get(question_id)
            if question is None:
                logger.warning(
                    "Ignoring answer for question %s outside assessment %s",
                    question_id,
                    assignment.assessment_id,
                )
                continue

            for old in self.session.exec(
                select(Answer).where(
                    (Answer.assignment_id == assignment.id) & (Answer.question_id == question_id)
                )
            ).all():
                self.session.delete(old)

            if value is None:
                continue
            now = self.clock()
            if question.type not in AUTO_CORRECTABLE_TYPES:
                text = value if isinstance(value, str) else str(value)
                self.session.add(
                    Answer(assignment_id=assignment.id, question_id=question_id, answer_text=text, saved_at=now)
                )
            else:
                valid_choices = {c.id for c in question.choices}
                for choice_id in self._choice_ids(value):
                    if choice_id not in valid_choices:
                        continue
                    self.session.add(
                        Answer(assignment_id=assignment.id, question_id=question_id, choice_id=choice_id, saved_at=now)
                    )
        self.session.flush()


def timer_snapshot(
    service: AssignmentService,
    assignment: AssessmentAssignment,
    assessment: Assessment,
    auto_submitted: bool = False,
) -> Dict[str, Any]:
    timer = service.timer
    deadline: Optional[datetime] = timer.deadline(assignment, assessment)
    return {
        "assignment_id": assignment.id,
        "status": assignment.status,
        "remaining_seconds": timer.remaining_seconds(assignment, assessment),
        "remaining_display": timer.format_remaining(assignment, assessment),
        "deadline": deadline,
        "is_expired": timer.is_time_expired(assignment, assessment),
        "is_near_expiration": timer.is_near_expiration(assignment, assessment),
        "auto_submitted": auto_submitted,
    }


def result_snapshot(
    service: AssignmentService,
    assignment: AssessmentAssignment,
    assessment: Assessment,
) -> Dict[str, Any]:
    """What a student may see of a submitted attempt.

    Scores and correctness are released once the attempt is graded, or right
    after submission when the assessment shows results immediately.
    """
    released = assessment.show_results_immediately or assignment.graded_at is not None
    result: Dict[str, Any] = {
        "assignment_id": assignment.id,
        "status": assignment.status,
        "results_available": released,
    }
    if not released:
        return result

    scoring = service.scoring
    answers = scoring.answers_by_question(assignment.id)
    result["score"] = assignment.score
    result["max_points"] = scoring.max_points(assessment.id)
    result["answers"] = [
        {
            "question_id": question.id,
            "score": answers[question.id][0].score,
            "feedback": answers[question.id][0].feedback,
            "is_correct": scoring.is_answer_correct(question, answers[question.id]),
        }
        for question in scoring.questions_for(assessment.id)
        if answers.get(question.id)
    ]
    return result
