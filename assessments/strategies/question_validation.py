"""Authoring-time validation of submitted questions.

Each strategy inspects one question payload and adds field-keyed errors to
a shared bag. Nothing raises: the whole question list is always checked so
the author sees every problem at once.
"""

import math
from abc import ABC, abstractmethod
from typing import Any, List, Mapping, Optional, Sequence

from assessments.errors import ErrorBag, add_error
from assessments.models import DeliveryMode, QuestionType

MIN_CHOICES = 2
MIN_CORRECT_MULTIPLE = 2


def _is_truthy(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "on", "yes"}
    return bool(value)


def _get(obj: Any, key: str, default: Any = None) -> Any:
    if isinstance(obj, Mapping):
        return obj.get(key, default)
    return getattr(obj, key, default)


def _choices(question: Any) -> List[Any]:
    return list(_get(question, "choices") or [])


def _correct_count(choices: Sequence[Any]) -> int:
    return sum(1 for c in choices if _is_truthy(_get(c, "is_correct", False)))


class QuestionValidationStrategy(ABC):
    question_types: frozenset = frozenset()

    def supports(self, question_type: Optional[str]) -> bool:
        return getattr(question_type, "value", question_type) in self.question_types

    @abstractmethod
    def validate(self, errors: ErrorBag, question: Any, index: int) -> None:
        pass


class MultipleChoiceValidationStrategy(QuestionValidationStrategy):
    question_types = frozenset({QuestionType.MULTIPLE.value})

    def validate(self, errors: ErrorBag, question: Any, index: int) -> None:
        choices = _choices(question)
        key = f"questions.{index}.choices"
        if len(choices) < MIN_CHOICES:
            add_error(errors, key, f"Question {index + 1} must have at least {MIN_CHOICES} choices.")
            return
        if _correct_count(choices) < MIN_CORRECT_MULTIPLE:
            add_error(
                errors,
                key,
                f"Question {index + 1} must have at least {MIN_CORRECT_MULTIPLE} correct choices.",
            )


class SingleChoiceValidationStrategy(QuestionValidationStrategy):
    """One-choice and true/false questions: exactly one correct choice."""

    question_types = frozenset({QuestionType.ONE_CHOICE.value, QuestionType.BOOLEAN.value})

    def validate(self, errors: ErrorBag, question: Any, index: int) -> None:
        choices = _choices(question)
        key = f"questions.{index}.choices"
        if len(choices) < MIN_CHOICES:
            add_error(errors, key, f"Question {index + 1} must have at least {MIN_CHOICES} choices.")
            return
        if _correct_count(choices) != 1:
            add_error(errors, key, f"Question {index + 1} must have exactly one correct choice.")


class TextQuestionValidationStrategy(QuestionValidationStrategy):
    question_types = frozenset(
        {QuestionType.TEXT.value, QuestionType.ESSAY.value, QuestionType.FILE.value}
    )

    def validate(self, errors: ErrorBag, question: Any, index: int) -> None:
        return None


class QuestionValidationContext:
    def __init__(self, strategies: Optional[List[QuestionValidationStrategy]] = None):
        self.strategies = strategies or [
            MultipleChoiceValidationStrategy(),
            SingleChoiceValidationStrategy(),
            TextQuestionValidationStrategy(),
        ]

    def validate_questions(self, errors: ErrorBag, questions: Sequence[Any]) -> ErrorBag:
        for index, question in enumerate(questions):
            question_type = _get(question, "type")
            if not question_type:
                continue
            for strategy in self.strategies:
                if strategy.supports(question_type):
                    strategy.validate(errors, question, index)
                    break
        return errors


def validate_assessment_fields(errors: ErrorBag, payload: Any) -> ErrorBag:
    """Check that only the temporal fields matching the delivery mode are set."""
    mode = getattr(_get(payload, "delivery_mode"), "value", _get(payload, "delivery_mode"))
    duration = _get(payload, "duration_minutes")
    scheduled_at = _get(payload, "scheduled_at")
    due_date = _get(payload, "due_date")

    if mode == DeliveryMode.SUPERVISED.value:
        if not duration or duration < 1:
            add_error(errors, "duration_minutes", "A supervised assessment needs a duration of at least 1 minute.")
        if scheduled_at is None:
            add_error(errors, "scheduled_at", "A supervised assessment needs a scheduled start.")
        if due_date is not None:
            add_error(errors, "due_date", "A supervised assessment cannot have a due date.")
    elif mode == DeliveryMode.HOMEWORK.value:
        if due_date is None:
            add_error(errors, "due_date", "A homework assessment needs a due date.")
        if duration is not None:
            add_error(errors, "duration_minutes", "A homework assessment cannot have a duration.")
        if scheduled_at is not None:
            add_error(errors, "scheduled_at", "A homework assessment cannot have a scheduled start.")
    else:
        add_error(errors, "delivery_mode", "Delivery mode must be 'supervised' or 'homework'.")

    for index, question in enumerate(_get(payload, "questions") or []):
        points = _get(question, "points")
        if not _is_positive_number(points):
            add_error(errors, f"questions.{index}.points", f"Question {index + 1} must be worth more than 0 points.")
    return errors


def _is_positive_number(value: Any) -> bool:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return math.isfinite(value) and value > 0
