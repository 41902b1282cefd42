"""Test cases for the exam security monitor."""

import logging

import pytest

from conftest import NOW
from gradebook.errors import AlreadySubmittedError, NotFoundError, ValidationError
from gradebook.models import AssignmentStatus, ViolationType
from gradebook.services.security import SecurityMonitor


@pytest.fixture
def monitor(assignment_service):
    return SecurityMonitor(assignment_service)


@pytest.fixture
def attempt(started, student, objective_assessment, assignment_service, choice_id):
    """An in-progress objective attempt with the first question answered correctly."""
    assignment = started(student, objective_assessment)
    q1 = objective_assessment.questions[0]
    return assignment_service.record_answers(assignment.id, {q1.id: choice_id(q1, "A")})


class TestClassification:
    """Test cases for violation classification."""

    @pytest.mark.parametrize("violation", ["tab_switch", "fullscreen_exit", "browser_change"])
    def test_terminal(self, violation):
        """Test leaving the exam window is terminal."""
        assert SecurityMonitor.is_terminal(violation)

    @pytest.mark.parametrize("violation", ["copy_paste", "suspicious_activity", "network_disconnect"])
    def test_not_terminal(self, violation):
        """Test the remaining violations are only recorded."""
        assert not SecurityMonitor.is_terminal(violation)

    def test_unknown_type(self):
        """Test an unknown tag is a validation error."""
        with pytest.raises(ValidationError):
            SecurityMonitor.is_terminal("screenshot")

    def test_supported_types(self):
        """Test the reportable list excludes the automatic expiry tag."""
        supported = SecurityMonitor.supported_violation_types()
        assert len(supported) == 6
        assert "time_expired" not in supported
        assert set(SecurityMonitor.terminal_violation_types()) == {
            "tab_switch", "fullscreen_exit", "browser_change",
        }


class TestHandleViolation:
    """Test cases for handling a reported violation."""

    def test_terminal_violation_forces_submission(self, db_session, monitor, attempt):
        """Test a tab switch ends the attempt and leaves it for the teacher."""
        outcome = monitor.handle_violation(attempt.id, "tab_switch", "left for 3s")

        db_session.refresh(attempt)
        assert outcome.terminated is True
        assert outcome.violation_type == "tab_switch"
        assert attempt.forced_submission is True
        assert attempt.security_violation == "tab_switch"
        assert attempt.submitted_at == NOW
        assert attempt.score is None
        assert attempt.auto_score == 10.0
        assert attempt.status == AssignmentStatus.submitted

    def test_non_terminal_violation_is_logged(self, db_session, monitor, attempt, caplog):
        """Test a copy-paste is logged and the attempt goes on."""
        with caplog.at_level(logging.WARNING, logger="gradebook.services.security"):
            outcome = monitor.handle_violation(attempt.id, ViolationType.copy_paste, "ctrl+v")

        db_session.refresh(attempt)
        assert outcome.terminated is False
        assert attempt.submitted_at is None
        assert attempt.security_violation is None
        assert "copy_paste" in caplog.text
        assert "ctrl+v" in caplog.text

    def test_time_expired_cannot_be_reported(self, monitor, attempt):
        """Test the expiry tag is reserved for automatic submission."""
        with pytest.raises(ValidationError):
            monitor.handle_violation(attempt.id, "time_expired")

    def test_unknown_violation(self, monitor, attempt):
        """Test an unknown tag is rejected."""
        with pytest.raises(ValidationError):
            monitor.handle_violation(attempt.id, "screenshot")

    def test_unknown_assignment(self, monitor):
        """Test reporting on a missing assignment fails."""
        with pytest.raises(NotFoundError):
            monitor.handle_violation(424242, "tab_switch")

    def test_terminal_after_submission(self, monitor, assignment_service, attempt):
        """Test a late terminal violation cannot reopen or overwrite the submission."""
        assignment_service.submit(attempt.id)
        with pytest.raises(AlreadySubmittedError):
            monitor.handle_violation(attempt.id, "fullscreen_exit")


class TestViolationHistory:
    """Test cases for the recorded violation list."""

    def test_empty(self, attempt):
        """Test a clean attempt has no history."""
        assert SecurityMonitor.violation_history(attempt) == []

    def test_terminal_violation_recorded(self, monitor, attempt):
        """Test the violation that ended the attempt is listed."""
        monitor.handle_violation(attempt.id, "browser_change")
        history = SecurityMonitor.violation_history(attempt)
        assert history == [{"type": "browser_change", "recorded_at": NOW.isoformat()}]
