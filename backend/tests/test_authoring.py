"""Test cases for assessment authoring."""

from datetime import timedelta

import pytest

from conftest import NOW, TEXT
from gradebook.errors import AssessmentLockedError, NotFoundError, ValidationError
from gradebook.models import Answer, AssessmentType, DeliveryMode, QuestionType
from gradebook.services.aggregation import GradeAggregator
from gradebook.services.authoring import AuthoringService
from gradebook.services.cache import assessment_stats_key, student_progress_key


@pytest.fixture
def authoring(db_session, cache, clock):
    return AuthoringService(db_session, cache=cache, clock=clock)


@pytest.fixture
def draft(authoring, class_subject):
    return authoring.create_assessment(class_subject.id, "  Fractions quiz ", type="quiz", duration_minutes=20)


class TestCreateAssessment:
    """Test cases for creating assessments."""

    def test_defaults(self, draft, teacher):
        """Test a new assessment is an unpublished draft owned by the subject's teacher."""
        assert draft.title == "Fractions quiz"
        assert draft.type == AssessmentType.quiz
        assert draft.delivery_mode == DeliveryMode.supervised
        assert draft.teacher_id == teacher.id
        assert draft.is_published is False
        assert draft.settings == {}

    def test_title_required(self, authoring, class_subject):
        """Test a blank title is rejected."""
        with pytest.raises(ValidationError):
            authoring.create_assessment(class_subject.id, "   ")

    def test_unknown_type(self, authoring, class_subject):
        """Test an unknown assessment type is rejected."""
        with pytest.raises(ValidationError):
            authoring.create_assessment(class_subject.id, "Test", type="lab")

    def test_due_date_before_start(self, authoring, class_subject):
        """Test the window must not be reversed."""
        with pytest.raises(ValidationError):
            authoring.create_assessment(
                class_subject.id, "Test", scheduled_at=NOW, due_date=NOW - timedelta(days=1)
            )

    def test_unknown_class_subject(self, authoring):
        """Test creating under a missing class-subject fails."""
        with pytest.raises(NotFoundError):
            authoring.create_assessment(98765, "Test")


class TestQuestions:
    """Test cases for adding and removing questions."""

    def test_boolean_choices_created(self, authoring, draft):
        """Test a boolean question gets its true and false choices."""
        question = authoring.add_question(draft.id, "boolean", "The earth is round.", points=2, correct_answer=True)

        choices = {c.content: c.is_correct for c in question.choices}
        assert choices == {"true": True, "false": False}
        assert question.order_index == 0

    def test_boolean_needs_answer(self, authoring, draft):
        """Test a boolean question without a correct answer is rejected."""
        with pytest.raises(ValidationError):
            authoring.add_question(draft.id, QuestionType.boolean, "Is it?")

    def test_one_choice_needs_single_correct(self, authoring, draft):
        """Test a one_choice question with two correct choices is rejected."""
        with pytest.raises(ValidationError):
            authoring.add_question(draft.id, "one_choice", "Pick one", choices=[
                {"content": "A", "is_correct": True},
                {"content": "B", "is_correct": True},
            ])

    def test_multiple_needs_two_correct(self, authoring, draft):
        """Test a multiple question with one correct choice is rejected."""
        with pytest.raises(ValidationError):
            authoring.add_question(draft.id, "multiple", "Pick some", choices=[
                {"content": "A", "is_correct": True},
                {"content": "B", "is_correct": False},
            ])

    def test_text_rejects_choices(self, authoring, draft):
        """Test a text question cannot carry choices."""
        with pytest.raises(ValidationError):
            authoring.add_question(draft.id, "text", "Explain", choices=[{"content": "A", "is_correct": True}])

    def test_negative_points(self, authoring, draft):
        """Test negative points are rejected."""
        with pytest.raises(ValidationError):
            authoring.add_question(draft.id, "text", "Explain", points=-1)

    def test_remove_question_drops_answers(self, db_session, authoring, make_assessment, enrollments,
                                           assignment_service, started, student):
        """Test removing a question deletes in-progress answers to it."""
        assessment = make_assessment([TEXT])
        question = assessment.questions[0]
        assignment = started(student, assessment)
        assignment_service.record_answers(assignment.id, {question.id: "draft"})

        authoring.remove_question(question.id)

        assert db_session.query(Answer).filter(Answer.assignment_id == assignment.id).count() == 0


class TestLocking:
    """Test cases for the edit lock after submissions."""

    def test_locked_after_submission(self, authoring, make_assessment, enrollments, assignment_service,
                                     started, student):
        """Test a submitted assessment refuses edits."""
        assessment = make_assessment([TEXT])
        assignment = started(student, assessment)
        assert authoring.is_locked(assessment) is False

        assignment_service.submit(assignment.id, {})

        assert authoring.is_locked(assessment) is True
        with pytest.raises(AssessmentLockedError):
            authoring.update_assessment(assessment.id, title="Renamed")
        with pytest.raises(AssessmentLockedError):
            authoring.add_question(assessment.id, "text", "One more")
        with pytest.raises(AssessmentLockedError):
            authoring.remove_question(assessment.questions[0].id)

    def test_in_progress_does_not_lock(self, authoring, make_assessment, enrollments, started, student):
        """Test a started but unsubmitted attempt leaves the assessment editable."""
        assessment = make_assessment([TEXT])
        started(student, assessment)
        assert authoring.update_assessment(assessment.id, title="Renamed").title == "Renamed"


class TestUpdateAssessment:
    """Test cases for editing assessment fields."""

    def test_update(self, authoring, draft):
        """Test editable fields are written."""
        updated = authoring.update_assessment(draft.id, coefficient=2.5, delivery_mode="homework")
        assert updated.coefficient == 2.5
        assert updated.delivery_mode == DeliveryMode.homework

    def test_protected_field(self, authoring, draft):
        """Test publishing state cannot be edited directly."""
        with pytest.raises(ValidationError):
            authoring.update_assessment(draft.id, is_published=True)

    def test_coefficient_must_be_positive(self, authoring, draft):
        """Test a zero coefficient is rejected."""
        with pytest.raises(ValidationError):
            authoring.update_assessment(draft.id, coefficient=0)


class TestPublishAndDelete:
    """Test cases for publishing and soft deletion."""

    def test_publish(self, authoring, draft):
        """Test an assessment with valid questions can be published."""
        authoring.add_question(draft.id, "text", "Explain fractions", points=5)
        assert authoring.publish(draft.id).is_published is True

    def test_publish_empty(self, authoring, draft):
        """Test an assessment without questions cannot be published."""
        with pytest.raises(ValidationError):
            authoring.publish(draft.id)

    def test_soft_delete(self, authoring, draft, clock):
        """Test soft deletion stamps the time and hides the assessment."""
        deleted = authoring.soft_delete(draft.id)
        assert deleted.deleted_at == clock()
        with pytest.raises(NotFoundError):
            authoring.get_assessment(draft.id)

    def test_soft_delete_drops_cached_grades(self, db_session, cache, authoring, assignment_service,
                                             started, student, objective_assessment):
        """Test a deleted assessment no longer counts in a cached subject grade."""
        assignment = started(student, objective_assessment)
        assignment_service.submit(assignment.id, {})
        aggregator = GradeAggregator(db_session, cache)
        class_subject_id = objective_assessment.class_subject_id
        assert aggregator.subject_grade(student.id, class_subject_id) is not None

        authoring.soft_delete(objective_assessment.id)

        assert aggregator.subject_grade(student.id, class_subject_id) is None

    def test_publish_drops_cached_progress(self, cache, authoring, draft, students, enrollments):
        """Test publishing clears the statistics and progress cached for the class."""
        authoring.add_question(draft.id, "text", "Explain fractions", points=5)
        cache.set(assessment_stats_key(draft.id), {"not_started": 0})
        for student in students:
            cache.set(student_progress_key(student.id), {"total_assessments": 0})

        authoring.publish(draft.id)

        assert cache.get(assessment_stats_key(draft.id)) is None
        assert all(cache.get(student_progress_key(s.id)) is None for s in students)
