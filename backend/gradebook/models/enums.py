"""Shared enums for models and services."""
import enum


class UserRole(enum.Enum):
    student = "student"
    teacher = "teacher"
    admin = "admin"


class EnrollmentStatus(enum.Enum):
    active = "active"
    inactive = "inactive"
    withdrawn = "withdrawn"


class AssessmentType(enum.Enum):
    exam = "exam"
    quiz = "quiz"
    homework = "homework"
    project = "project"
    oral = "oral"
    practical = "practical"


class DeliveryMode(enum.Enum):
    """How an assessment is taken: timed in class, or at home by a due date."""
    supervised = "supervised"
    homework = "homework"


class QuestionType(enum.Enum):
    text = "text"
    one_choice = "one_choice"
    multiple = "multiple"
    boolean = "boolean"
    file = "file"

    @property
    def requires_manual_grading(self) -> bool:
        return self in (QuestionType.text, QuestionType.file)

    @property
    def is_auto_scorable(self) -> bool:
        return not self.requires_manual_grading

    @property
    def is_single_valued(self) -> bool:
        return self is not QuestionType.multiple


class AssignmentStatus(enum.Enum):
    not_started = "not_started"
    in_progress = "in_progress"
    submitted = "submitted"
    graded = "graded"


class ViolationType(enum.Enum):
    tab_switch = "tab_switch"
    copy_paste = "copy_paste"
    fullscreen_exit = "fullscreen_exit"
    suspicious_activity = "suspicious_activity"
    browser_change = "browser_change"
    network_disconnect = "network_disconnect"
    # Recorded by the automatic expiry path, never reported by the browser
    time_expired = "time_expired"
