"""Test configuration and fixtures."""

import os

os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("CACHE_BACKEND", "memory")

from datetime import datetime, timedelta

import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from gradebook.database import Base
from gradebook.models import (
    AcademicYear, Assessment, AssessmentType, Choice, ClassSubject, DeliveryMode,
    Enrollment, EnrollmentStatus, Question, QuestionType, SchoolClass, Subject, User,
    UserRole,
)
from gradebook.services.assignments import AssignmentService
from gradebook.services.cache import InMemoryCache


# Use in-memory SQLite for testing
TEST_DATABASE_URL = "sqlite:///:memory:"

NOW = datetime(2024, 3, 4, 9, 0, 0)

ONE_CHOICE = (QuestionType.one_choice, 10, [("A", True), ("B", False)])
MULTIPLE = (QuestionType.multiple, 10, [("C1", False), ("C2", False), ("C3", True), ("C4", True)])
BOOLEAN = (QuestionType.boolean, 2, [("true", True), ("false", False)])
TEXT = (QuestionType.text, 5, [])
FILE = (QuestionType.file, 5, [])


class FrozenClock:
    """Callable clock the services read instead of the wall clock."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


@pytest.fixture
def engine():
    """Create a fresh test database engine per test."""
    engine = create_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    @event.listens_for(engine, "connect")
    def enable_foreign_keys(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def db_session(engine):
    """Create test database session."""
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = TestingSessionLocal()
    yield session
    session.close()


def _save(db_session, *objects):
    db_session.add_all(objects)
    db_session.commit()
    for obj in objects:
        db_session.refresh(obj)


@pytest.fixture
def clock():
    """A clock frozen at ``NOW`` that tests can advance."""
    return FrozenClock(NOW)


@pytest.fixture
def academic_year(db_session):
    year = AcademicYear(name="2023-2024", is_current=True)
    _save(db_session, year)
    return year


@pytest.fixture
def school_class(db_session, academic_year):
    school_class = SchoolClass(name="6A", academic_year_id=academic_year.id)
    _save(db_session, school_class)
    return school_class


@pytest.fixture
def teacher(db_session):
    user = User(email="teacher@school.test", name="Ms Martin", role=UserRole.teacher)
    _save(db_session, user)
    return user


@pytest.fixture
def other_teacher(db_session):
    user = User(email="other@school.test", name="Mr Petit", role=UserRole.teacher)
    _save(db_session, user)
    return user


@pytest.fixture
def admin(db_session):
    user = User(email="admin@school.test", name="Admin", role=UserRole.admin)
    _save(db_session, user)
    return user


@pytest.fixture
def students(db_session):
    """Five students."""
    users = [
        User(email=f"student{i}@school.test", name=f"Student {i}", role=UserRole.student)
        for i in range(1, 6)
    ]
    _save(db_session, *users)
    return users


@pytest.fixture
def student(students):
    return students[0]


@pytest.fixture
def enrollments(db_session, students, school_class):
    """Every student actively enrolled in the class."""
    rows = [
        Enrollment(student_id=s.id, class_id=school_class.id, status=EnrollmentStatus.active)
        for s in students
    ]
    _save(db_session, *rows)
    return rows


@pytest.fixture
def class_subject(db_session, school_class, teacher):
    """Mathematics taught by ``teacher`` with coefficient 3."""
    subject = Subject(name="Mathematics", code="MATH")
    _save(db_session, subject)
    row = ClassSubject(
        class_id=school_class.id, subject_id=subject.id, teacher_id=teacher.id, coefficient=3.0
    )
    _save(db_session, row)
    return row


@pytest.fixture
def make_class_subject(db_session, school_class, teacher):
    """Factory for additional subjects of the class."""
    def factory(name, code, coefficient=1.0, teacher_id=None):
        subject = Subject(name=name, code=code)
        _save(db_session, subject)
        row = ClassSubject(
            class_id=school_class.id,
            subject_id=subject.id,
            teacher_id=teacher_id or teacher.id,
            coefficient=coefficient,
        )
        _save(db_session, row)
        return row
    return factory


@pytest.fixture
def make_assessment(db_session, class_subject, teacher):
    """Factory building a published assessment from ``(type, points, choices)`` specs."""
    def factory(questions, **fields):
        values = dict(
            class_subject_id=class_subject.id,
            teacher_id=teacher.id,
            title="Chapter test",
            type=AssessmentType.exam,
            delivery_mode=DeliveryMode.supervised,
            coefficient=1.0,
            duration_minutes=60,
            is_published=True,
            settings={},
        )
        values.update(fields)
        assessment = Assessment(**values)
        for index, (question_type, points, choices) in enumerate(questions):
            assessment.questions.append(Question(
                content=f"Question {index + 1}",
                type=question_type,
                points=points,
                order_index=index,
                choices=[
                    Choice(content=content, is_correct=is_correct, order_index=i)
                    for i, (content, is_correct) in enumerate(choices)
                ],
            ))
        _save(db_session, assessment)
        return assessment
    return factory


@pytest.fixture
def objective_assessment(make_assessment, enrollments):
    """One one_choice and one multiple question, 10 points each, coefficient 2."""
    return make_assessment([ONE_CHOICE, MULTIPLE], coefficient=2.0)


@pytest.fixture
def mixed_assessment(make_assessment, enrollments):
    """The objective questions plus a 5 point text question."""
    return make_assessment([ONE_CHOICE, MULTIPLE, TEXT], title="Mixed test")


@pytest.fixture
def choice_id():
    """Look up a choice id of a question by its content."""
    def lookup(question, content):
        for choice in question.choices:
            if choice.content == content:
                return choice.id
        raise LookupError(content)
    return lookup


@pytest.fixture
def cache():
    return InMemoryCache(default_ttl=600)


@pytest.fixture
def assignment_service(db_session, cache, clock):
    return AssignmentService(db_session, cache=cache, clock=clock)


@pytest.fixture
def started(assignment_service):
    """Open and start an assignment for a student."""
    def start(student, assessment):
        assignment = assignment_service.get_or_create(student.id, assessment.id)
        return assignment_service.start(assignment.id)
    return start
