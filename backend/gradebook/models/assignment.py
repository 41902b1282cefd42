"""AssessmentAssignment and Answer models."""

from sqlalchemy import (
    Boolean, Column, DateTime, Float, ForeignKey, Integer, String, Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from ..database import Base
from .enums import AssignmentStatus


class AssessmentAssignment(Base):
    """A student's attempt at an assessment, linked through their enrollment.

    The status is derived from the timestamps and never stored.
    """
    __tablename__ = "assessment_assignments"
    __table_args__ = (
        UniqueConstraint("assessment_id", "enrollment_id", name="uq_assignment_enrollment"),
    )

    id = Column(Integer, primary_key=True, index=True)
    assessment_id = Column(Integer, ForeignKey("assessments.id"), nullable=False, index=True)
    enrollment_id = Column(Integer, ForeignKey("enrollments.id"), nullable=False, index=True)
    assigned_at = Column(DateTime, nullable=False)
    started_at = Column(DateTime)
    submitted_at = Column(DateTime)
    graded_at = Column(DateTime)
    score = Column(Float)
    auto_score = Column(Float)
    forced_submission = Column(Boolean, default=False, nullable=False)
    security_violation = Column(String(100))
    teacher_notes = Column(Text)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Relationships
    assessment = relationship("Assessment", back_populates="assignments")
    enrollment = relationship("Enrollment", back_populates="assignments")
    answers = relationship(
        "Answer",
        back_populates="assignment",
        cascade="all, delete-orphan",
        order_by="Answer.id",
    )

    def __repr__(self):
        return f"<AssessmentAssignment(id={self.id}, status={self.status.value})>"

    @property
    def status(self) -> AssignmentStatus:
        if self.graded_at is not None:
            return AssignmentStatus.graded
        if self.submitted_at is not None:
            return AssignmentStatus.submitted
        if self.started_at is not None:
            return AssignmentStatus.in_progress
        return AssignmentStatus.not_started

    @property
    def student_id(self):
        return self.enrollment.student_id if self.enrollment else None

    @property
    def is_submitted(self) -> bool:
        return self.submitted_at is not None

    @property
    def answers_total(self) -> float:
        """Sum of per-answer scores; unscored answers count as nothing."""
        return sum(a.score for a in self.answers if a.score is not None)


class Answer(Base):
    """One recorded answer row; multi-select questions have one row per selected choice."""
    __tablename__ = "answers"

    id = Column(Integer, primary_key=True, index=True)
    assignment_id = Column(
        Integer, ForeignKey("assessment_assignments.id", ondelete="CASCADE"), nullable=False, index=True
    )
    question_id = Column(Integer, ForeignKey("questions.id"), nullable=False, index=True)
    choice_id = Column(Integer, ForeignKey("choices.id"), nullable=True)
    answer_text = Column(Text, nullable=True)
    file_name = Column(String(255))
    file_path = Column(String(500))
    file_size = Column(Integer)
    mime_type = Column(String(100))
    score = Column(Float)
    feedback = Column(Text)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Relationships
    assignment = relationship("AssessmentAssignment", back_populates="answers")
    question = relationship("Question", back_populates="answers")
    choice = relationship("Choice")

    def __repr__(self):
        return f"<Answer(id={self.id}, question_id={self.question_id})>"

    @property
    def has_file(self) -> bool:
        return self.file_path is not None
