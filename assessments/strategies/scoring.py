"""Per-question-type scoring strategies and the registry that resolves them."""

import logging
from abc import ABC, abstractmethod
from typing import FrozenSet, List, Optional, Sequence

from assessments.models import Answer, Question, QuestionType

logger = logging.getLogger(__name__)


class ScoringStrategy(ABC):
    """Scores one question from the answer rows a student submitted for it."""

    question_types: FrozenSet[str] = frozenset()

    def supports(self, question_type: str) -> bool:
        return getattr(question_type, "value", question_type) in self.question_types

    @abstractmethod
    def is_correct(self, question: Question, answers: Sequence[Answer]) -> bool:
        pass

    @abstractmethod
    def calculate_score(self, question: Question, answers: Sequence[Answer]) -> float:
        pass

    @abstractmethod
    def describe(self) -> str:
        pass


class _SingleChoiceScoringStrategy(ScoringStrategy):
    """Exactly one answer row whose choice is the correct one."""

    def is_correct(self, question: Question, answers: Sequence[Answer]) -> bool:
        if len(answers) != 1:
            return False
        choice_id = answers[0].choice_id
        if choice_id is None:
            return False
        return any(c.id == choice_id and c.is_correct for c in question.choices)

    def calculate_score(self, question: Question, answers: Sequence[Answer]) -> float:
        if not answers:
            return 0.0
        return float(question.points) if self.is_correct(question, answers) else 0.0


class OneChoiceScoringStrategy(_SingleChoiceScoringStrategy):
    question_types = frozenset({QuestionType.ONE_CHOICE.value})

    def describe(self) -> str:
        return "Single choice: full points when the selected choice is the correct one"


class BooleanScoringStrategy(_SingleChoiceScoringStrategy):
    question_types = frozenset({QuestionType.BOOLEAN.value})

    def describe(self) -> str:
        return "True/false: full points when the selected choice is the correct one"


class MultipleChoiceScoringStrategy(ScoringStrategy):
    """All-or-nothing: the selected set must equal the correct set."""

    question_types = frozenset({QuestionType.MULTIPLE.value})

    def is_correct(self, question: Question, answers: Sequence[Answer]) -> bool:
        selected = {a.choice_id for a in answers if a.choice_id is not None}
        if not selected:
            return False
        correct = {c.id for c in question.choices if c.is_correct}
        return selected == correct

    def calculate_score(self, question: Question, answers: Sequence[Answer]) -> float:
        if not answers:
            return 0.0
        return float(question.points) if self.is_correct(question, answers) else 0.0

    def describe(self) -> str:
        return "Multiple choice: full points only for the exact set of correct choices"


class _ManualScoringStrategy(ScoringStrategy):
    """Returns whatever the teacher assigned on the first answer row."""

    @staticmethod
    def _manual_score(answers: Sequence[Answer]) -> Optional[float]:
        if not answers:
            return None
        return answers[0].score

    def is_correct(self, question: Question, answers: Sequence[Answer]) -> bool:
        score = self._manual_score(answers)
        return score is not None and score > 0

    def calculate_score(self, question: Question, answers: Sequence[Answer]) -> float:
        score = self._manual_score(answers)
        return float(score) if score is not None else 0.0


class TextQuestionScoringStrategy(_ManualScoringStrategy):
    question_types = frozenset({QuestionType.TEXT.value, QuestionType.ESSAY.value})

    def describe(self) -> str:
        return "Free text: manually graded by the teacher"


class FileQuestionScoringStrategy(_ManualScoringStrategy):
    question_types = frozenset({QuestionType.FILE.value})

    def describe(self) -> str:
        return "File upload: manually graded by the teacher"


def default_strategies() -> List[ScoringStrategy]:
    return [
        OneChoiceScoringStrategy(),
        MultipleChoiceScoringStrategy(),
        BooleanScoringStrategy(),
        TextQuestionScoringStrategy(),
        FileQuestionScoringStrategy(),
    ]


class ScoringStrategyRegistry:
    """Ordered strategy list; the first strategy supporting a type wins."""

    def __init__(self, strategies: Optional[List[ScoringStrategy]] = None):
        self._strategies = list(strategies) if strategies is not None else default_strategies()

    @property
    def strategies(self) -> List[ScoringStrategy]:
        return list(self._strategies)

    def resolve(self, question_type: str) -> Optional[ScoringStrategy]:
        for strategy in self._strategies:
            if strategy.supports(question_type):
                return strategy
        logger.warning("No scoring strategy for question type %r", question_type)
        return None

    def add_strategy(self, strategy: ScoringStrategy) -> "ScoringStrategyRegistry":
        self._strategies.append(strategy)
        return self
