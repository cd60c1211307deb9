"""
Assignment lifecycle and supervised timer.

Covers:
- status derived from timestamps, never stored
- creating an assignment never starts the timer
- starting is idempotent: the first start time is kept
- remaining time, grace period and expiry at the deadline
- auto-submission stamps the deadline, not the time it was noticed
"""

from datetime import timedelta

import pytest
from conftest import T0, correct_ids, make_user, test_engine, wrong_ids

from assessments.errors import NotFoundError
from assessments.models import AssessmentAssignment, AssignmentStatus, Question
from assessments.services.assignment_service import AssignmentService, timer_snapshot
from assessments.services.timing import AssignmentTimer, derive_status, is_not_submitted
from sqlmodel import Session, select


def _service(session, clock, grace=30):
    return AssignmentService(session, clock=clock, timer=AssignmentTimer(clock=clock, grace_period_seconds=grace))


def _questions(session, assessment):
    return {
        q.type: q
        for q in session.exec(select(Question).where(Question.assessment_id == assessment.id)).all()
    }


class TestDeriveStatus:
    def test_precedence(self):
        assert derive_status(None, None, None) == "not_started"
        assert derive_status(T0, None, None) == "in_progress"
        assert derive_status(T0, T0, None) == "submitted"
        assert derive_status(T0, T0, T0) == "graded"

    def test_graded_wins_even_without_other_timestamps(self):
        assert derive_status(None, None, T0) == AssignmentStatus.GRADED.value

    def test_not_submitted_umbrella(self):
        assert is_not_submitted("not_started")
        assert is_not_submitted("in_progress")
        assert not is_not_submitted("submitted")
        assert not is_not_submitted("graded")


class TestCreateAndStart:
    def test_creation_never_sets_started_at(self, session, clock, supervised_assessment, enrolled_student):
        service = _service(session, clock)
        assignment = service.get_or_create_assignment(supervised_assessment.id, enrolled_student.id)
        assert assignment.started_at is None
        assert assignment.status == "not_started"

    def test_get_or_create_returns_existing(self, session, clock, supervised_assessment, enrolled_student):
        service = _service(session, clock)
        first = service.get_or_create_assignment(supervised_assessment.id, enrolled_student.id)
        second = service.get_or_create_assignment(supervised_assessment.id, enrolled_student.id)
        assert first.id == second.id

    def test_not_enrolled_student_is_refused(self, session, clock, supervised_assessment):
        outsider = make_user(session, "Bob Outsider", "bob@example.com")
        with pytest.raises(NotFoundError):
            _service(session, clock).get_or_create_assignment(supervised_assessment.id, outsider.id)

    def test_start_is_idempotent(self, session, clock, supervised_assessment, enrolled_student):
        service = _service(session, clock)
        assignment = service.start(supervised_assessment.id, enrolled_student.id)
        assert assignment.started_at == T0
        assert assignment.status == "in_progress"

        clock.advance(minutes=30)
        again = service.start(supervised_assessment.id, enrolled_student.id)
        assert again.id == assignment.id
        assert again.started_at == T0

    def test_homework_start_sets_started_at_without_countdown(
        self, session, clock, homework_assessment, enrolled_student
    ):
        service = _service(session, clock)
        assignment = service.start(homework_assessment.id, enrolled_student.id)
        assert assignment.started_at == T0
        assert service.timer.remaining_seconds(assignment, homework_assessment) is None
        assert service.timer.deadline(assignment, homework_assessment) is None
        clock.advance(days=30)
        assert not service.timer.is_time_expired(assignment, homework_assessment)


class TestTimer:
    def test_remaining_seconds(self, session, clock, supervised_assessment, enrolled_student):
        service = _service(session, clock)
        assignment = service.start(supervised_assessment.id, enrolled_student.id)

        clock.advance(minutes=20)
        assert service.timer.remaining_seconds(assignment, supervised_assessment) == 2400
        assert service.timer.format_remaining(assignment, supervised_assessment) == "00:40:00"

        clock.set(T0 + timedelta(hours=1, minutes=30))
        assert service.timer.remaining_seconds(assignment, supervised_assessment) == 0

    def test_not_started_has_no_remaining_time(self, session, clock, supervised_assessment, enrolled_student):
        service = _service(session, clock)
        assignment = service.get_or_create_assignment(supervised_assessment.id, enrolled_student.id)
        assert service.timer.remaining_seconds(assignment, supervised_assessment) is None
        assert not service.timer.is_time_expired(assignment, supervised_assessment)

    def test_expiry_at_deadline_and_grace(self, session, clock, supervised_assessment, enrolled_student):
        service = _service(session, clock, grace=30)
        assignment = service.start(supervised_assessment.id, enrolled_student.id)
        timer = service.timer

        clock.set(T0 + timedelta(minutes=59, seconds=59))
        assert not timer.is_time_expired(assignment, supervised_assessment)

        clock.set(T0 + timedelta(minutes=60))
        assert timer.is_time_expired(assignment, supervised_assessment)
        assert not timer.is_time_expired(assignment, supervised_assessment, with_grace=True)

        clock.set(T0 + timedelta(minutes=60, seconds=30))
        assert timer.is_time_expired(assignment, supervised_assessment, with_grace=True)

    def test_near_expiration_and_elapsed(self, session, clock, supervised_assessment, enrolled_student):
        service = _service(session, clock)
        assignment = service.start(supervised_assessment.id, enrolled_student.id)

        clock.advance(minutes=30)
        assert service.timer.elapsed_percentage(assignment, supervised_assessment) == 50.0
        assert not service.timer.is_near_expiration(assignment, supervised_assessment)

        clock.advance(minutes=25)
        assert service.timer.is_near_expiration(assignment, supervised_assessment)

    def test_due_date_passed(self, session, clock, homework_assessment):
        timer = AssignmentTimer(clock=clock)
        assert not timer.is_due_date_passed(homework_assessment)
        clock.set(homework_assessment.due_date + timedelta(seconds=1))
        assert timer.is_due_date_passed(homework_assessment)

        homework_assessment.allow_late_submission = True
        assert not timer.is_due_date_passed(homework_assessment)


class TestAutoSubmit:
    def test_auto_submit_uses_deadline(self, session, clock, supervised_assessment, enrolled_student):
        service = _service(session, clock)
        assignment = service.start(supervised_assessment.id, enrolled_student.id)

        clock.set(T0 + timedelta(hours=2))
        assert service.auto_submit_if_expired(assignment, supervised_assessment) is True
        assert assignment.submitted_at == T0 + timedelta(minutes=60)
        assert assignment.forced_submission is True
        assert assignment.security_violation == "time_expired"
        assert assignment.status == "submitted"

        # Second call is a no-op
        assert service.auto_submit_if_expired(assignment, supervised_assessment) is False
        assert assignment.submitted_at == T0 + timedelta(minutes=60)

    def test_no_auto_submit_before_deadline(self, session, clock, supervised_assessment, enrolled_student):
        service = _service(session, clock)
        assignment = service.start(supervised_assessment.id, enrolled_student.id)
        clock.advance(minutes=10)
        assert service.auto_submit_if_expired(assignment, supervised_assessment) is False
        assert assignment.submitted_at is None

    def test_auto_submit_scores_objective_answers(self, session, clock, objective_assessment, enrolled_student):
        service = _service(session, clock)
        assignment = service.start(objective_assessment.id, enrolled_student.id)
        questions = _questions(session, objective_assessment)
        service.save_answers(
            assignment,
            {
                questions["boolean"].id: correct_ids(questions["boolean"])[0],
                questions["one_choice"].id: wrong_ids(questions["one_choice"])[0],
            },
        )

        clock.advance(minutes=45)
        assert service.auto_submit_if_expired(assignment, objective_assessment)
        assert assignment.score == 4.0
        assert assignment.graded_at == T0 + timedelta(minutes=45)
        assert assignment.status == "graded"

    def test_sweep_expired(self, session, clock, supervised_assessment, enrolled_student):
        service = _service(session, clock)
        service.start(supervised_assessment.id, enrolled_student.id)
        clock.advance(minutes=61)
        assert service.sweep_expired(supervised_assessment.id) == 1
        assert service.sweep_expired(supervised_assessment.id) == 0

    def test_timer_snapshot(self, session, clock, supervised_assessment, enrolled_student):
        service = _service(session, clock)
        assignment = service.start(supervised_assessment.id, enrolled_student.id)
        clock.advance(minutes=15)
        snapshot = timer_snapshot(service, assignment, supervised_assessment)
        assert snapshot["remaining_seconds"] == 2700
        assert snapshot["deadline"] == T0 + timedelta(hours=1)
        assert snapshot["is_expired"] is False


class TestAnswersAndSubmit:
    def test_save_answers_replaces_previous(self, session, clock, supervised_assessment, enrolled_student):
        service = _service(session, clock)
        assignment = service.start(supervised_assessment.id, enrolled_student.id)
        questions = _questions(session, supervised_assessment)
        multiple = questions["multiple"]

        service.save_answers(assignment, {multiple.id: wrong_ids(multiple)})
        service.save_answers(assignment, {multiple.id: correct_ids(multiple), questions["text"].id: "Because"})

        by_question = service.scoring.answers_by_question(assignment.id)
        assert sorted(a.choice_id for a in by_question[multiple.id]) == sorted(correct_ids(multiple))
        assert by_question[questions["text"].id][0].answer_text == "Because"

    def test_foreign_choice_ids_are_ignored(self, session, clock, supervised_assessment, enrolled_student):
        service = _service(session, clock)
        assignment = service.start(supervised_assessment.id, enrolled_student.id)
        one_choice = _questions(session, supervised_assessment)["one_choice"]
        service.save_answers(assignment, {one_choice.id: [999999]})
        assert service.scoring.answers_by_question(assignment.id) == {}

    def test_submit_once(self, session, clock, supervised_assessment, enrolled_student):
        service = _service(session, clock)
        assignment = service.start(supervised_assessment.id, enrolled_student.id)
        clock.advance(minutes=20)

        assert service.submit_assessment(assignment, supervised_assessment) is True
        assert assignment.submitted_at == T0 + timedelta(minutes=20)
        assert assignment.forced_submission is False
        # Text question present: waits for the teacher
        assert assignment.status == "submitted"

        clock.advance(minutes=1)
        assert service.submit_assessment(assignment, supervised_assessment) is False
        assert service.save_answers(assignment, {}) is False
        assert assignment.submitted_at == T0 + timedelta(minutes=20)

    def test_terminate_for_violation(self, session, clock, supervised_assessment, homework_assessment, enrolled_student):
        service = _service(session, clock)
        assignment = service.start(supervised_assessment.id, enrolled_student.id)
        clock.advance(minutes=5)
        assert service.terminate_for_violation(assignment, supervised_assessment, "tab_switch", "left 3 times")
        assert assignment.forced_submission is True
        assert assignment.security_violation == "tab_switch: left 3 times"
        assert assignment.submitted_at == T0 + timedelta(minutes=5)

        homework = service.start(homework_assessment.id, enrolled_student.id)
        assert service.terminate_for_violation(homework, homework_assessment, "tab_switch") is False


class TestSeparateSessions:
    """Two sessions working on the same assignment, as two concurrent requests would."""

    def test_timestamps_round_trip_as_naive_utc(self, session, clock, supervised_assessment, enrolled_student):
        assignment = _service(session, clock).start(supervised_assessment.id, enrolled_student.id)

        with Session(test_engine) as other_session:
            stored = other_session.get(AssessmentAssignment, assignment.id)
            assert stored.started_at == T0
            assert stored.started_at.tzinfo is None
            assert stored.created_at.tzinfo is None

    def test_late_start_keeps_first_started_at(self, session, clock, supervised_assessment, enrolled_student):
        first = _service(session, clock)
        assignment = first.get_or_create_assignment(supervised_assessment.id, enrolled_student.id)

        with Session(test_engine) as other_session:
            second = _service(other_session, clock)
            stale = second.get_assignment_by_id(assignment.id)
            assert stale.started_at is None

            first.start_assignment(assignment)
            clock.advance(minutes=5)
            second.start_assignment(stale)

            assert stale.started_at == T0
            assert assignment.started_at == T0

    def test_stale_submit_is_refused(self, session, clock, supervised_assessment, enrolled_student):
        first = _service(session, clock)
        assignment = first.start(supervised_assessment.id, enrolled_student.id)

        with Session(test_engine) as other_session:
            second = _service(other_session, clock)
            stale = second.get_assignment_by_id(assignment.id)
            other_assessment = second.get_assessment(supervised_assessment.id)

            clock.advance(minutes=15)
            assert first.submit_assessment(assignment, supervised_assessment) is True
            assert stale.submitted_at is None

            clock.advance(minutes=1)
            assert second.submit_assessment(stale, other_assessment) is False
            assert stale.submitted_at == T0 + timedelta(minutes=15)
