"""Error types and the field-keyed error bag used by validation."""

from typing import Dict, List

ErrorBag = Dict[str, List[str]]


def add_error(errors: ErrorBag, field: str, message: str) -> None:
    errors.setdefault(field, []).append(message)


class NotFoundError(LookupError):
    """A referenced row (assessment, assignment, question...) does not exist."""


class ValidationFailed(ValueError):
    """Carries a collected error bag back to the caller."""

    def __init__(self, errors: ErrorBag):
        self.errors = errors
        super().__init__("; ".join(f"{k}: {' '.join(v)}" for k, v in errors.items()))


class QuestionValidationError(ValidationFailed):
    pass


class ScoreValidationError(ValidationFailed):
    pass
