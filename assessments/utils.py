"""bleach cleaning for teacher-authored text.

Question and choice bodies keep light formatting. Titles, grader feedback
and notes are reduced to plain text.
"""

import re

import bleach

QUESTION_TAGS = frozenset({"b", "i", "u", "em", "strong", "p", "br", "code", "pre", "ul", "ol", "li", "sub", "sup"})

_WHITESPACE = re.compile(r"\s+")


def sanitize_question_text(text: str) -> str:
    """Clean question, choice or description content, keeping formatting tags only."""
    return bleach.clean(text or "", tags=QUESTION_TAGS, attributes={}, strip=True).strip()


def sanitize_plain_text(text: str) -> str:
    return bleach.clean(text or "", tags=set(), strip=True).strip()


def sanitize_title(text: str) -> str:
    """Plain text on a single line."""
    return _WHITESPACE.sub(" ", sanitize_plain_text(text))


def sanitize_feedback(text: str) -> str:
    return sanitize_plain_text(text)
