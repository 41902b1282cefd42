"""SQLAlchemy models for the assessment gradebook."""

from .user import User
from .enums import (
    UserRole, EnrollmentStatus, AssessmentType, DeliveryMode,
    QuestionType, AssignmentStatus, ViolationType,
)
from .academic import (
    AcademicYear, SchoolClass, Subject, ClassSubject, Enrollment, Group, GroupMember,
    assessment_groups,
)
from .assessment import Assessment, Question, Choice
from .assignment import AssessmentAssignment, Answer

__all__ = [
    "User",
    "UserRole",
    "EnrollmentStatus",
    "AssessmentType",
    "DeliveryMode",
    "QuestionType",
    "AssignmentStatus",
    "ViolationType",
    "AcademicYear",
    "SchoolClass",
    "Subject",
    "ClassSubject",
    "Enrollment",
    "Group",
    "GroupMember",
    "assessment_groups",
    "Assessment",
    "Question",
    "Choice",
    "AssessmentAssignment",
    "Answer",
]
