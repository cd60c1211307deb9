"""Manual grading of submitted assignments."""

import logging
from typing import Any, Dict, Iterable, List, Mapping, Optional

from sqlmodel import Session, select

from assessments.clock import Clock, utcnow
from assessments.errors import ErrorBag, NotFoundError, ScoreValidationError
from assessments.models import Answer, Assessment, AssessmentAssignment
from assessments.services.scoring_service import ScoringService
from assessments.strategies.score_validation import ScoreValidationContext
from assessments.utils import sanitize_feedback

logger = logging.getLogger(__name__)

MANUAL_GRADE_VALIDATIONS = (
    "question_exists_in_assessment",
    "score_not_exceeds_max",
    "student_has_answer",
)


def normalize_scores(raw: Any) -> List[Dict[str, Any]]:
    """Turn the accepted grading payload shapes into ``[{question_id, score, feedback}]``.

    Accepted: a list of row dicts (or pydantic models), ``{"scores": [...]}``,
    or a flat ``{question_id: score}`` mapping.
    """
    if raw is None:
        return []
    if isinstance(raw, Mapping) and "scores" in raw:
        raw = raw["scores"]
    if isinstance(raw, Mapping):
        return [
            {"question_id": int(qid), "score": score, "feedback": None}
            for qid, score in raw.items()
        ]

    rows = []
    for item in raw:
        if hasattr(item, "model_dump"):
            item = item.model_dump()
        rows.append(
            {
                "question_id": item.get("question_id"),
                "score": item.get("score"),
                "feedback": item.get("feedback"),
            }
        )
    return rows


class GradingService:
    def __init__(
        self,
        session: Session,
        clock: Clock = utcnow,
        scoring: Optional[ScoringService] = None,
        validation_context: Optional[ScoreValidationContext] = None,
    ):
        self.session = session
        self.clock = clock
        self.scoring = scoring or ScoringService(session)
        self.validation_context = validation_context or ScoreValidationContext()

    def _load(self, assignment_id: int):
        assignment = self.session.get(AssessmentAssignment, assignment_id)
        if assignment is None:
            raise NotFoundError(f"Assignment with id={assignment_id} does not exist")
        assessment = self.session.get(Assessment, assignment.assessment_id)
        if assessment is None:
            raise NotFoundError(f"Assessment with id={assignment.assessment_id} does not exist")
        return assignment, assessment

    def validate_scores(
        self,
        assignment: AssessmentAssignment,
        assessment: Assessment,
        rows: List[Dict[str, Any]],
        validation_types: Iterable[str] = MANUAL_GRADE_VALIDATIONS,
    ) -> ErrorBag:
        errors: ErrorBag = {}
        context = {"session": self.session, "assessment": assessment, "assignment": assignment}
        return self.validation_context.validate(errors, {"scores": rows}, validation_types, context)

    def save_manual_grades(
        self,
        assignment_id: int,
        data: Any,
        teacher_notes: Optional[str] = None,
    ) -> AssessmentAssignment:
        """Record teacher scores, recompute the total and mark the assignment graded.

        Re-grading an already graded assignment is allowed and refreshes
        ``graded_at``.

        Raises:
            NotFoundError: unknown assignment
            ScoreValidationError: any score row failed validation, or the
                assignment was never submitted
        """
        assignment, assessment = self._load(assignment_id)
        if assignment.submitted_at is None:
            raise ScoreValidationError(
                {"assignment": ["Only submitted assignments can be graded."]}
            )

        rows = normalize_scores(data)
        errors = self.validate_scores(assignment, assessment, rows)
        if errors:
            logger.info("Rejected grades for assignment %s: %s", assignment.id, errors)
            raise ScoreValidationError(errors)

        answers_by_question = self.scoring.answers_by_question(assignment.id)
        for row in rows:
            answers = answers_by_question[row["question_id"]]
            first, extras = answers[0], answers[1:]
            first.score = float(row["score"])
            if row.get("feedback") is not None:
                first.feedback = sanitize_feedback(row["feedback"])
            for extra in extras:
                extra.score = 0.0
            self.session.add_all(answers)
        self.session.flush()

        assignment.score = self.scoring.calculate_assignment_score(assignment)
        assignment.graded_at = self.clock()
        if teacher_notes is not None:
            assignment.teacher_notes = sanitize_feedback(teacher_notes)
        self.session.add(assignment)
        self.session.commit()
        self.session.refresh(assignment)
        logger.info("Assignment %s graded with score %s", assignment.id, assignment.score)
        return assignment

    def auto_grade_zero(self, assignment_id: int, teacher_notes: Optional[str] = None) -> AssessmentAssignment:
        """Grade an assignment that holds no answers with a score of 0."""
        assignment, _ = self._load(assignment_id)
        has_answers = self.session.exec(
            select(Answer.id).where(Answer.assignment_id == assignment.id)
        ).first()
        if has_answers is not None:
            raise ScoreValidationError(
                {"assignment": ["The assignment has answers and must be graded normally."]}
            )
        now = self.clock()
        assignment.score = 0.0
        assignment.graded_at = now
        if assignment.submitted_at is None:
            assignment.submitted_at = now
        if teacher_notes is not None:
            assignment.teacher_notes = sanitize_feedback(teacher_notes)
        self.session.add(assignment)
        self.session.commit()
        self.session.refresh(assignment)
        logger.info("Assignment %s graded zero (no answers)", assignment.id)
        return assignment
