"""Assessment scoring & grading service."""

from .main import app  # noqa: F401
