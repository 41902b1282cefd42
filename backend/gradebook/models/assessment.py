"""Assessment, Question and Choice models."""

from sqlalchemy import (
    Boolean, CheckConstraint, Column, DateTime, Enum as SQLEnum, Float, ForeignKey, Integer, JSON,
    String, Text,
)
from sqlalchemy.orm import relationship, validates
from sqlalchemy.sql import func

from ..database import Base
from ..errors import ValidationError
from .academic import assessment_groups
from .enums import AssessmentType, DeliveryMode, QuestionType


class Assessment(Base):
    """A gradable unit of work authored by a teacher for one class-subject."""
    __tablename__ = "assessments"
    __table_args__ = (CheckConstraint("coefficient > 0", name="ck_assessment_coefficient_positive"),)

    id = Column(Integer, primary_key=True, index=True)
    class_subject_id = Column(Integer, ForeignKey("class_subjects.id"), nullable=False)
    teacher_id = Column(Integer, ForeignKey("users.id"))
    title = Column(String(255), nullable=False)
    description = Column(Text)
    type = Column(SQLEnum(AssessmentType), nullable=False, default=AssessmentType.exam)
    delivery_mode = Column(SQLEnum(DeliveryMode), nullable=False, default=DeliveryMode.supervised)
    coefficient = Column(Float, nullable=False, default=1.0)
    duration_minutes = Column(Integer, nullable=True)
    scheduled_at = Column(DateTime)
    due_date = Column(DateTime)
    is_published = Column(Boolean, default=False)
    settings = Column(JSON, default={})
    deleted_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Relationships
    class_subject = relationship("ClassSubject", back_populates="assessments")
    teacher = relationship("User")
    questions = relationship(
        "Question",
        back_populates="assessment",
        order_by="Question.order_index",
        cascade="all, delete-orphan",
    )
    assignments = relationship("AssessmentAssignment", back_populates="assessment")
    groups = relationship("Group", secondary=assessment_groups, back_populates="assessments")

    def __repr__(self):
        return f"<Assessment(id={self.id}, title='{self.title}')>"

    @validates("coefficient")
    def validate_coefficient(self, key, value):
        if value is None or value <= 0:
            raise ValidationError("Assessment coefficient must be positive")
        return value

    @property
    def total_points(self) -> float:
        """Maximum raw score of this assessment."""
        return sum(q.points or 0 for q in self.questions)

    @property
    def has_manual_questions(self) -> bool:
        return any(q.type.requires_manual_grading for q in self.questions)

    @property
    def is_supervised(self) -> bool:
        return self.delivery_mode == DeliveryMode.supervised

    @property
    def is_homework(self) -> bool:
        return self.delivery_mode == DeliveryMode.homework

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    @property
    def allows_late_submission(self) -> bool:
        return bool((self.settings or {}).get("allow_late_submission", False))

    def get_question(self, question_id: int):
        """Get one of this assessment's questions by id."""
        for question in self.questions:
            if question.id == question_id:
                return question
        return None


class Question(Base):
    """Question model."""
    __tablename__ = "questions"
    __table_args__ = (CheckConstraint("points >= 0", name="ck_question_points_non_negative"),)

    id = Column(Integer, primary_key=True, index=True)
    assessment_id = Column(Integer, ForeignKey("assessments.id", ondelete="CASCADE"), nullable=False)
    content = Column(Text, nullable=False)
    type = Column(SQLEnum(QuestionType), nullable=False)
    points = Column(Float, nullable=False, default=1.0)
    order_index = Column(Integer, default=0)

    # Relationships
    assessment = relationship("Assessment", back_populates="questions")
    choices = relationship(
        "Choice",
        back_populates="question",
        order_by="Choice.order_index",
        cascade="all, delete-orphan",
    )
    answers = relationship("Answer", back_populates="question")

    def __repr__(self):
        return f"<Question(id={self.id}, type={self.type})>"

    @validates("points")
    def validate_points(self, key, value):
        if value is None or value < 0:
            raise ValidationError("Question points must be zero or more")
        return value

    @property
    def correct_choice_ids(self) -> set:
        return {c.id for c in self.choices if c.is_correct}

    @property
    def choice_ids(self) -> set:
        return {c.id for c in self.choices}

    def validate_choices(self):
        """Validate the choice set against the question type."""
        correct_count = sum(1 for c in self.choices if c.is_correct)

        if self.type.requires_manual_grading:
            if self.choices:
                return False, f"{self.type.value} questions cannot have choices"
            return True, "Valid choices"

        if self.type == QuestionType.boolean:
            contents = sorted((c.content or "").lower() for c in self.choices)
            if contents != ["false", "true"]:
                return False, "Boolean questions must have exactly the choices 'true' and 'false'"

        if self.type == QuestionType.multiple:
            if len(self.choices) < 2:
                return False, "Multiple choice questions need at least 2 choices"
            if correct_count < 2:
                return False, "Multiple choice questions need at least 2 correct choices"
        elif correct_count != 1:
            return False, f"{self.type.value} questions need exactly 1 correct choice"

        return True, "Valid choices"


class Choice(Base):
    """Choice model."""
    __tablename__ = "choices"

    id = Column(Integer, primary_key=True, index=True)
    question_id = Column(Integer, ForeignKey("questions.id", ondelete="CASCADE"), nullable=False)
    content = Column(Text, nullable=False)
    is_correct = Column(Boolean, default=False, nullable=False)
    order_index = Column(Integer, default=0)

    # Relationships
    question = relationship("Question", back_populates="choices")

    def __repr__(self):
        return f"<Choice(id={self.id}, is_correct={self.is_correct})>"
