"""Scoring orchestration: resolves strategies and totals assignment scores."""

import logging
from collections import defaultdict
from datetime import datetime
from typing import Dict, List, Optional, Sequence

from sqlmodel import Session, select

from assessments.models import (
    AUTO_CORRECTABLE_TYPES,
    MANUAL_GRADING_TYPES,
    Answer,
    AssessmentAssignment,
    Question,
)
from assessments.strategies.scoring import ScoringStrategyRegistry

logger = logging.getLogger(__name__)


class ScoringService:
    def __init__(self, session: Session, registry: Optional[ScoringStrategyRegistry] = None):
        self.session = session
        self.registry = registry or ScoringStrategyRegistry()

    def questions_for(self, assessment_id: int) -> List[Question]:
        return self.session.exec(
            select(Question)
            .where(Question.assessment_id == assessment_id)
            .order_by(Question.order_index, Question.id)
        ).all()

    def answers_by_question(self, assignment_id: int) -> Dict[int, List[Answer]]:
        answers = self.session.exec(
            select(Answer).where(Answer.assignment_id == assignment_id).order_by(Answer.id)
        ).all()
        grouped: Dict[int, List[Answer]] = defaultdict(list)
        for answer in answers:
            grouped[answer.question_id].append(answer)
        return grouped

    def calculate_score_for_question(self, question: Question, answers: Sequence[Answer]) -> float:
        """Score one question; 0.0 when no strategy handles its type."""
        strategy = self.registry.resolve(question.type)
        if strategy is None:
            return 0.0
        return strategy.calculate_score(question, answers)

    def is_answer_correct(self, question: Question, answers: Sequence[Answer]) -> bool:
        strategy = self.registry.resolve(question.type)
        if strategy is None:
            return False
        return strategy.is_correct(question, answers)

    def _total(self, assignment: AssessmentAssignment, only_types=None) -> float:
        answers_by_question = self.answers_by_question(assignment.id)
        total = 0.0
        for question in self.questions_for(assignment.assessment_id):
            if only_types is not None and question.type not in only_types:
                continue
            answers = answers_by_question.get(question.id)
            if not answers:
                continue
            total += self.calculate_score_for_question(question, answers)
        return round(total, 2)

    def calculate_assignment_score(self, assignment: AssessmentAssignment) -> float:
        """Total earned score over every question of the assessment."""
        return self._total(assignment)

    def calculate_auto_correctable_score(self, assignment: AssessmentAssignment) -> float:
        """Total over choice-based questions only (no manual grading involved)."""
        return self._total(assignment, only_types=AUTO_CORRECTABLE_TYPES)

    def has_manual_correction_questions(self, assessment_id: int) -> bool:
        return any(q.type in MANUAL_GRADING_TYPES for q in self.questions_for(assessment_id))

    def max_points(self, assessment_id: int) -> float:
        return round(sum(q.points for q in self.questions_for(assessment_id)), 2)

    def auto_score_assignment(self, assignment: AssessmentAssignment, now: datetime) -> None:
        """Write scores for choice-based answers; grade outright if nothing needs a teacher.

        The first answer row of a question carries its score, extra rows get 0.
        Changes are flushed, not committed.
        """
        questions = self.questions_for(assignment.assessment_id)
        answers_by_question = self.answers_by_question(assignment.id)

        for question in questions:
            if question.type not in AUTO_CORRECTABLE_TYPES:
                continue
            answers = answers_by_question.get(question.id)
            if not answers:
                continue
            score = self.calculate_score_for_question(question, answers)
            answers[0].score = score
            for extra in answers[1:]:
                extra.score = 0.0
            self.session.add_all(answers)

        # Unknown types are left for manual review like text questions
        if questions and all(q.type in AUTO_CORRECTABLE_TYPES for q in questions):
            self.session.flush()
            assignment.score = self.calculate_assignment_score(assignment)
            assignment.graded_at = now
            self.session.add(assignment)
            logger.info(
                "Assignment %s auto-graded with score %s", assignment.id, assignment.score
            )
        self.session.flush()
