"""Typed errors raised by the assessment core.

The web layer maps each family to an HTTP status; services only raise them.
"""

from typing import Any, Optional


class GradebookError(Exception):
    """Base exception for all assessment core errors."""

    def __init__(self, message: str = ""):
        self.message = message or self.__class__.__name__
        super().__init__(self.message)


class ValidationError(GradebookError):
    """Raised when input is malformed or breaks a data invariant."""
    pass


class StateConflictError(GradebookError):
    """Raised when an operation is illegal in the assignment's current state."""

    def __init__(self, message: str = "", state: Optional[str] = None):
        self.state = state
        super().__init__(message)


class AlreadySubmittedError(StateConflictError):
    """Raised when an assignment has already been submitted.

    ``concurrent`` is true when another request won the submit transition
    between our read and our write, i.e. the work was already handled.
    """

    def __init__(self, assignment_id: Any = None, concurrent: bool = False):
        self.assignment_id = assignment_id
        self.concurrent = concurrent
        message = f"Assignment {assignment_id} has already been submitted"
        if concurrent:
            message += " by a concurrent request"
        super().__init__(message, state="submitted")


class NotStartedError(StateConflictError):
    """Raised when an action requires a started assignment."""

    def __init__(self, assignment_id: Any = None):
        self.assignment_id = assignment_id
        super().__init__(f"Assignment {assignment_id} has not been started", state="not_started")


class NotSubmittedError(StateConflictError):
    """Raised when grading is attempted before submission."""

    def __init__(self, assignment_id: Any = None, state: Optional[str] = None):
        self.assignment_id = assignment_id
        super().__init__(f"Assignment {assignment_id} has not been submitted yet", state=state)


class AlreadyGradedError(StateConflictError):
    """Raised when a graded assignment is graded again."""

    def __init__(self, assignment_id: Any = None):
        self.assignment_id = assignment_id
        super().__init__(f"Assignment {assignment_id} has already been graded", state="graded")


class AssessmentLockedError(StateConflictError):
    """Raised when an assessment is edited after students have submitted."""

    def __init__(self, assessment_id: Any = None):
        self.assessment_id = assessment_id
        super().__init__(
            f"Assessment {assessment_id} has submissions and can no longer be modified"
        )


class AccessDeniedError(GradebookError):
    """Raised when a timing window, enrollment or capability check fails."""
    pass


class AssessmentNotAccessibleError(AccessDeniedError):
    """Raised when an assessment is outside its availability window."""
    pass


class AssessmentExpiredError(AccessDeniedError):
    """Raised when the time limit of a started assignment has elapsed."""
    pass


class NotEnrolledError(AccessDeniedError):
    """Raised when a student has no active enrollment for an assessment."""
    pass


class PermissionDeniedError(AccessDeniedError):
    """Raised when the permission check refuses an action."""
    pass


class NotFoundError(GradebookError):
    """Raised when a referenced record does not exist or has another parent."""

    def __init__(self, entity: str, entity_id: Any = None, message: str = ""):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(message or f"{entity} {entity_id} not found")
