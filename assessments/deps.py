"""Shared FastAPI dependencies for database access, time and services."""

from fastapi import Depends
from sqlmodel import Session

from assessments.clock import Clock, utcnow
from assessments.database import get_session
from assessments.services.assignment_service import AssignmentService
from assessments.services.grading_service import GradingService


def get_clock() -> Clock:
    """Time source for request handlers; tests override it with a frozen clock."""
    return utcnow


def get_assignment_service(
    session: Session = Depends(get_session), clock: Clock = Depends(get_clock)
) -> AssignmentService:
    return AssignmentService(session, clock=clock)


def get_grading_service(
    session: Session = Depends(get_session), clock: Clock = Depends(get_clock)
) -> GradingService:
    return GradingService(session, clock=clock)
