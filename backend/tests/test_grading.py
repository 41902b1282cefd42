"""Test cases for teacher grading."""

from datetime import timedelta

import pytest

from conftest import NOW
from gradebook.errors import (
    AlreadyGradedError, NotFoundError, NotSubmittedError, PermissionDeniedError, ValidationError,
)
from gradebook.models import Answer, AssignmentStatus
from gradebook.services.cache import subject_grade_key
from gradebook.services.grading import GradingService
from gradebook.services.permissions import RolePermissions


@pytest.fixture
def grading(db_session, cache, clock):
    return GradingService(db_session, cache=cache, clock=clock)


@pytest.fixture
def submitted(assignment_service, student, mixed_assessment, started, choice_id, clock):
    """A mixed attempt with Q1 correct, Q2 partial and a text answer, submitted at NOW + 30min."""
    assignment = started(student, mixed_assessment)
    q1, q2, q3 = mixed_assessment.questions
    clock.advance(minutes=30)
    return assignment_service.submit(assignment.id, {
        q1.id: choice_id(q1, "A"),
        q2.id: [choice_id(q2, "C3")],
        q3.id: "Photosynthesis turns light into chemical energy.",
    })


class TestGrade:
    """Test cases for grading a submitted assignment."""

    def test_grade_sums_answer_scores(self, db_session, grading, submitted, mixed_assessment, clock):
        """Test the final score adds manual scores to the automatic ones."""
        q3 = mixed_assessment.questions[2]
        clock.advance(hours=1)

        assignment = grading.grade(
            submitted.id, {q3.id: 4}, feedback={q3.id: "Good"}, notes="Well done"
        )

        assert assignment.score == 14.0
        assert assignment.status == AssignmentStatus.graded
        assert assignment.graded_at == NOW + timedelta(minutes=90)
        assert assignment.teacher_notes == "Well done"
        text_answer = db_session.query(Answer).filter(Answer.question_id == q3.id).one()
        assert text_answer.score == 4.0
        assert text_answer.feedback == "Good"

    def test_teacher_can_override_objective_score(self, grading, submitted, mixed_assessment):
        """Test an explicit score replaces the automatic one."""
        q2, q3 = mixed_assessment.questions[1:]
        assignment = grading.grade(submitted.id, {q2.id: 5, q3.id: 5})
        assert assignment.score == 20.0

    def test_string_question_ids(self, grading, submitted, mixed_assessment):
        """Test JSON-style keys are accepted."""
        q3 = mixed_assessment.questions[2]
        assignment = grading.grade(submitted.id, {str(q3.id): "2.5"})
        assert assignment.score == 12.5

    def test_score_above_points(self, grading, submitted, mixed_assessment):
        """Test a score above the question's points is rejected."""
        q3 = mixed_assessment.questions[2]
        with pytest.raises(ValidationError):
            grading.grade(submitted.id, {q3.id: 6})

    def test_negative_score(self, grading, submitted, mixed_assessment):
        """Test a negative score is rejected."""
        with pytest.raises(ValidationError):
            grading.grade(submitted.id, {mixed_assessment.questions[2].id: -1})

    def test_foreign_question(self, grading, submitted):
        """Test scoring a question of another assessment fails."""
        with pytest.raises(NotFoundError):
            grading.grade(submitted.id, {999999: 1})

    def test_not_submitted(self, grading, assignment_service, student, mixed_assessment, started):
        """Test grading an in-progress attempt fails."""
        assignment = started(student, mixed_assessment)
        with pytest.raises(NotSubmittedError):
            grading.grade(assignment.id, {})

    def test_grade_twice(self, grading, submitted):
        """Test a graded attempt cannot be graded again."""
        grading.grade(submitted.id, {})
        with pytest.raises(AlreadyGradedError):
            grading.grade(submitted.id, {})

    def test_forced_submission_is_graded_by_teacher(self, grading, assignment_service, student,
                                                    objective_assessment, started, choice_id):
        """Test a forced objective attempt gets its automatic score on review."""
        assignment = started(student, objective_assessment)
        q1 = objective_assessment.questions[0]
        assignment_service.record_answers(assignment.id, {q1.id: choice_id(q1, "A")})
        assignment_service.force_submit(assignment.id, "tab_switch")

        assignment = grading.grade(assignment.id, {})
        assert assignment.score == 10.0

    def test_grade_invalidates_cache(self, grading, cache, submitted, student, mixed_assessment):
        """Test grading drops the student's cached subject grade."""
        key = subject_grade_key(student.id, mixed_assessment.class_subject_id)
        cache.set(key, {"value": 1.0})
        grading.grade(submitted.id, {})
        assert cache.get(key) is None


class TestGradeZero:
    """Test cases for closing an attempt with zero."""

    def test_grade_zero(self, grading, submitted):
        """Test every answer and the total become 0."""
        assignment = grading.grade_zero(submitted.id, notes="Cheating")

        assert assignment.score == 0.0
        assert assignment.teacher_notes == "Cheating"
        assert all(a.score == 0.0 for a in assignment.answers)


class TestGradingPermissions:
    """Test cases for the capability check."""

    def test_class_teacher_may_grade(self, db_session, cache, clock, submitted, teacher):
        """Test the class-subject's teacher can grade."""
        grading = GradingService(db_session, cache=cache, permissions=RolePermissions(), clock=clock)
        assert grading.grade(submitted.id, {}, grader=teacher).score == 10.0

    def test_other_teacher_may_not_grade(self, db_session, cache, clock, submitted, other_teacher):
        """Test a teacher of another subject is refused."""
        grading = GradingService(db_session, cache=cache, permissions=RolePermissions(), clock=clock)
        with pytest.raises(PermissionDeniedError):
            grading.grade(submitted.id, {}, grader=other_teacher)

    def test_admin_may_grade(self, db_session, cache, clock, submitted, admin):
        """Test administrators can grade anything."""
        grading = GradingService(db_session, cache=cache, permissions=RolePermissions(), clock=clock)
        assert grading.grade_zero(submitted.id, grader=admin).score == 0.0

    def test_student_may_not_grade(self, db_session, cache, clock, submitted, student):
        """Test students are refused."""
        grading = GradingService(db_session, cache=cache, permissions=RolePermissions(), clock=clock)
        with pytest.raises(PermissionDeniedError):
            grading.grade(submitted.id, {}, grader=student)
