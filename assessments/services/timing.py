"""Assignment status derivation and supervised-assessment timer arithmetic.

Nothing in here touches the database: every function works on the
timestamps already loaded on an assignment and on the assessment's
delivery settings, with "now" coming from an injected clock.
"""

from datetime import datetime, timedelta
from typing import Optional

from assessments.clock import Clock, utcnow
from assessments.config import settings
from assessments.models import Assessment, AssessmentAssignment, AssignmentStatus

NOT_SUBMITTED_STATUSES = frozenset(
    {AssignmentStatus.NOT_STARTED.value, AssignmentStatus.IN_PROGRESS.value}
)
COMPLETED_STATUSES = frozenset(
    {AssignmentStatus.SUBMITTED.value, AssignmentStatus.GRADED.value}
)


def derive_status(
    started_at: Optional[datetime],
    submitted_at: Optional[datetime],
    graded_at: Optional[datetime],
) -> str:
    """Return the lifecycle status implied by an assignment's timestamps.

    Precedence is graded > submitted > in_progress > not_started. A score
    without ``graded_at`` does not make an assignment graded.
    """
    if graded_at is not None:
        return AssignmentStatus.GRADED.value
    if submitted_at is not None:
        return AssignmentStatus.SUBMITTED.value
    if started_at is not None:
        return AssignmentStatus.IN_PROGRESS.value
    return AssignmentStatus.NOT_STARTED.value


def is_not_submitted(status: str) -> bool:
    return status in NOT_SUBMITTED_STATUSES


class AssignmentTimer:
    """Deadline math for supervised assessments.

    Homework assessments have no countdown: they never expire here and
    report no remaining time.
    """

    def __init__(
        self,
        clock: Clock = utcnow,
        grace_period_seconds: Optional[int] = None,
        near_expiration_ratio: Optional[float] = None,
    ):
        self.clock = clock
        self.grace_period_seconds = (
            settings.GRACE_PERIOD_SECONDS if grace_period_seconds is None else grace_period_seconds
        )
        self.near_expiration_ratio = (
            settings.NEAR_EXPIRATION_RATIO if near_expiration_ratio is None else near_expiration_ratio
        )

    @staticmethod
    def _is_timed(assignment: AssessmentAssignment, assessment: Assessment) -> bool:
        return bool(
            assessment.is_supervised()
            and assignment.started_at is not None
            and assessment.duration_minutes
            and assessment.duration_minutes > 0
        )

    def deadline(self, assignment: AssessmentAssignment, assessment: Assessment) -> Optional[datetime]:
        """``started_at + duration``, or None when no countdown applies."""
        if not self._is_timed(assignment, assessment):
            return None
        return assignment.started_at + timedelta(minutes=assessment.duration_minutes)

    def remaining_seconds(self, assignment: AssessmentAssignment, assessment: Assessment) -> Optional[int]:
        """Seconds left before the deadline, floored at 0. Excludes the grace period."""
        if not self._is_timed(assignment, assessment):
            return None
        elapsed = int((self.clock() - assignment.started_at).total_seconds())
        remaining = assessment.duration_minutes * 60 - elapsed
        return max(0, remaining)

    def is_time_expired(
        self,
        assignment: AssessmentAssignment,
        assessment: Assessment,
        with_grace: bool = False,
    ) -> bool:
        deadline = self.deadline(assignment, assessment)
        if deadline is None:
            return False
        if with_grace:
            deadline += timedelta(seconds=self.grace_period_seconds)
        return self.clock() >= deadline

    def format_remaining(self, assignment: AssessmentAssignment, assessment: Assessment) -> Optional[str]:
        """Remaining time as ``HH:MM:SS``."""
        remaining = self.remaining_seconds(assignment, assessment)
        if remaining is None:
            return None
        hours, rest = divmod(remaining, 3600)
        minutes, seconds = divmod(rest, 60)
        return f"{hours:02d}:{minutes:02d}:{seconds:02d}"

    def elapsed_percentage(self, assignment: AssessmentAssignment, assessment: Assessment) -> float:
        remaining = self.remaining_seconds(assignment, assessment)
        if remaining is None:
            return 0.0
        total = assessment.duration_minutes * 60
        return round(min(100.0, max(0.0, (total - remaining) / total * 100)), 2)

    def is_near_expiration(self, assignment: AssessmentAssignment, assessment: Assessment) -> bool:
        remaining = self.remaining_seconds(assignment, assessment)
        if remaining is None:
            return False
        threshold = assessment.duration_minutes * 60 * self.near_expiration_ratio
        return 0 < remaining <= threshold

    def is_due_date_passed(self, assessment: Assessment) -> bool:
        """Homework lateness check; late submission, when allowed, is never "passed"."""
        if not assessment.is_homework() or assessment.due_date is None:
            return False
        if assessment.allow_late_submission:
            return False
        return self.clock() > assessment.due_date
