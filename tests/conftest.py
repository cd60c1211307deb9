import asyncio
from datetime import datetime, timedelta

import httpx
import pytest
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, text

from assessments.database import build_engine, create_db_and_tables
from assessments.models import (
    Answer,
    Assessment,
    AssessmentAssignment,
    Choice,
    Course,
    DeliveryMode,
    Enrollment,
    Question,
    QuestionType,
    User,
    UserRole,
)

# ============================================================================
# IN-MEMORY DATABASE FOR TESTING
# ============================================================================

# StaticPool: every connection shares the same in-memory database
test_engine = build_engine("sqlite:///:memory:", poolclass=StaticPool)

T0 = datetime(2025, 1, 15, 14, 0, 0)


@pytest.fixture(scope="session", autouse=True)
def setup_test_db():
    """Create all tables in the test database once per session."""
    create_db_and_tables(test_engine)
    yield
    SQLModel.metadata.drop_all(test_engine)


@pytest.fixture(autouse=True)
def cleanup_db_between_tests():
    """Clean up test data after each test."""
    yield

    # FK-safe order
    with Session(test_engine) as session:
        session.exec(text("DELETE FROM answer"))
        session.exec(text("DELETE FROM assessmentassignment"))
        session.exec(text("DELETE FROM choice"))
        session.exec(text("DELETE FROM question"))
        session.exec(text("DELETE FROM assessment"))
        session.exec(text("DELETE FROM enrollment"))
        session.exec(text("DELETE FROM course"))
        session.exec(text("DELETE FROM user"))
        session.commit()


# ============================================================================
# CLOCK
# ============================================================================


class FrozenClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now

    def set(self, now: datetime) -> None:
        self.now = now


@pytest.fixture
def clock():
    return FrozenClock(T0)


# ============================================================================
# FASTAPI APP & TEST CLIENT
# ============================================================================

from assessments.database import get_session  # noqa: E402
from assessments.deps import get_clock  # noqa: E402
from assessments.main import app  # noqa: E402


@pytest.fixture
def client(clock):
    """Create test client using httpx AsyncClient with sync wrapper."""

    def override_get_session():
        with Session(test_engine) as session:
            yield session

    app.dependency_overrides[get_session] = override_get_session
    app.dependency_overrides[get_clock] = lambda: clock

    loop = asyncio.new_event_loop()
    transport = httpx.ASGITransport(app=app)
    async_client = httpx.AsyncClient(transport=transport, base_url="http://testserver")

    class SyncClientWrapper:
        def __init__(self, async_client, loop):
            self.async_client = async_client
            self.loop = loop

        def get(self, *args, **kwargs):
            return self.loop.run_until_complete(self.async_client.get(*args, **kwargs))

        def post(self, *args, **kwargs):
            return self.loop.run_until_complete(self.async_client.post(*args, **kwargs))

    yield SyncClientWrapper(async_client, loop)

    loop.run_until_complete(async_client.aclose())
    loop.close()
    app.dependency_overrides.clear()


@pytest.fixture
def session():
    """Provide a database session for tests."""
    with Session(test_engine) as session:
        yield session


# ============================================================================
# ENTITY FIXTURES
# ============================================================================


def make_user(session, name, email, role=UserRole.STUDENT.value):
    user = User(name=name, email=email, role=role)
    session.add(user)
    session.commit()
    session.refresh(user)
    return user


def make_question(session, assessment_id, qtype, points, choices=(), order_index=0):
    """``choices`` is a sequence of ``(content, is_correct)`` pairs."""
    question = Question(
        assessment_id=assessment_id,
        type=getattr(qtype, "value", qtype),
        content=f"{getattr(qtype, 'value', qtype)} question",
        points=points,
        order_index=order_index,
    )
    session.add(question)
    session.commit()
    session.refresh(question)
    for index, (content, is_correct) in enumerate(choices):
        session.add(
            Choice(question_id=question.id, content=content, is_correct=is_correct, order_index=index)
        )
    session.commit()
    session.refresh(question)
    return question


def make_answers(session, assignment_id, question, choice_ids=(), text=None):
    rows = []
    if text is not None:
        rows.append(Answer(assignment_id=assignment_id, question_id=question.id, answer_text=text))
    for choice_id in choice_ids:
        rows.append(Answer(assignment_id=assignment_id, question_id=question.id, choice_id=choice_id))
    session.add_all(rows)
    session.commit()
    return rows


def correct_ids(question):
    return [c.id for c in question.choices if c.is_correct]


def wrong_ids(question):
    return [c.id for c in question.choices if not c.is_correct]


@pytest.fixture
def teacher_user(session):
    return make_user(session, "Dr. Jane Teacher", "teacher@example.com", UserRole.TEACHER.value)


@pytest.fixture
def student_user(session):
    return make_user(session, "Alice Student", "alice@example.com")


@pytest.fixture
def course(session, teacher_user):
    course = Course(code="SWE101", name="Software Engineering", teacher_id=teacher_user.id)
    session.add(course)
    session.commit()
    session.refresh(course)
    return course


@pytest.fixture
def enrolled_student(session, course, student_user):
    session.add(Enrollment(course_id=course.id, student_id=student_user.id))
    session.commit()
    return student_user


@pytest.fixture
def supervised_assessment(session, course, teacher_user):
    """60-minute supervised exam scheduled at T0 with one question of each main kind."""
    assessment = Assessment(
        course_id=course.id,
        teacher_id=teacher_user.id,
        title="Midterm",
        delivery_mode=DeliveryMode.SUPERVISED.value,
        duration_minutes=60,
        scheduled_at=T0,
        is_published=True,
    )
    session.add(assessment)
    session.commit()
    session.refresh(assessment)
    make_question(
        session, assessment.id, QuestionType.ONE_CHOICE, 2,
        [("Paris", True), ("Lyon", False), ("Nice", False)], order_index=1,
    )
    make_question(
        session, assessment.id, QuestionType.MULTIPLE, 3,
        [("2", True), ("3", True), ("4", False)], order_index=2,
    )
    make_question(session, assessment.id, QuestionType.TEXT, 5, order_index=3)
    session.refresh(assessment)
    return assessment


@pytest.fixture
def objective_assessment(session, course, teacher_user):
    """Supervised quiz made only of auto-correctable questions."""
    assessment = Assessment(
        course_id=course.id,
        teacher_id=teacher_user.id,
        title="Quiz",
        delivery_mode=DeliveryMode.SUPERVISED.value,
        duration_minutes=30,
        scheduled_at=T0,
        is_published=True,
    )
    session.add(assessment)
    session.commit()
    session.refresh(assessment)
    make_question(
        session, assessment.id, QuestionType.BOOLEAN, 4,
        [("True", True), ("False", False)], order_index=1,
    )
    make_question(
        session, assessment.id, QuestionType.ONE_CHOICE, 6,
        [("A", False), ("B", True)], order_index=2,
    )
    session.refresh(assessment)
    return assessment


@pytest.fixture
def homework_assessment(session, course, teacher_user):
    assessment = Assessment(
        course_id=course.id,
        teacher_id=teacher_user.id,
        title="Essay homework",
        delivery_mode=DeliveryMode.HOMEWORK.value,
        due_date=T0 + timedelta(days=7),
        is_published=True,
    )
    session.add(assessment)
    session.commit()
    session.refresh(assessment)
    make_question(session, assessment.id, QuestionType.ESSAY, 10)
    session.refresh(assessment)
    return assessment


@pytest.fixture
def assignment_factory(session):
    def factory(assessment, student, **timestamps):
        assignment = AssessmentAssignment(
            assessment_id=assessment.id, student_id=student.id, **timestamps
        )
        session.add(assignment)
        session.commit()
        session.refresh(assignment)
        return assignment

    return factory
