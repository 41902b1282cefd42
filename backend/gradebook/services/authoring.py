"""Assessment authoring with the invariants grading relies on."""

import logging
from datetime import datetime
from typing import Any, Dict, Iterable, Optional

from sqlalchemy.orm import Session

from ..database import atomic
from ..errors import AssessmentLockedError, NotFoundError, ValidationError
from ..models import (
    Answer, Assessment, AssessmentAssignment, AssessmentType, Choice, ClassSubject, DeliveryMode,
    Question, QuestionType,
)
from . import timing
from .cache import Cache, invalidate_for_assessment

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = (
    "title", "description", "type", "delivery_mode", "coefficient", "duration_minutes",
    "scheduled_at", "due_date", "settings",
)


def _enum(enum_cls, value, label: str):
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(value)
    except ValueError:
        raise ValidationError(f"Unknown {label}: {value!r}")


class AuthoringService:
    """Create and edit assessments while they have no submissions."""

    def __init__(self, db: Session, cache: Optional[Cache] = None, clock=timing.utcnow):
        self.db = db
        self.cache = cache
        self.clock = clock

    def get_assessment(self, assessment_id: int) -> Assessment:
        assessment = self.db.get(Assessment, assessment_id)
        if assessment is None or assessment.is_deleted:
            raise NotFoundError("Assessment", assessment_id)
        return assessment

    def is_locked(self, assessment: Assessment) -> bool:
        """An assessment is locked once any student has submitted it."""
        return (
            self.db.query(AssessmentAssignment.id)
            .filter(
                AssessmentAssignment.assessment_id == assessment.id,
                AssessmentAssignment.submitted_at.isnot(None),
            )
            .first()
            is not None
        )

    def _ensure_editable(self, assessment: Assessment) -> None:
        if self.is_locked(assessment):
            raise AssessmentLockedError(assessment.id)

    def create_assessment(
        self,
        class_subject_id: int,
        title: str,
        teacher_id: Optional[int] = None,
        type: Any = AssessmentType.exam,
        delivery_mode: Any = DeliveryMode.supervised,
        coefficient: float = 1.0,
        duration_minutes: Optional[int] = None,
        scheduled_at: Optional[datetime] = None,
        due_date: Optional[datetime] = None,
        description: Optional[str] = None,
        settings: Optional[Dict[str, Any]] = None,
    ) -> Assessment:
        class_subject = self.db.get(ClassSubject, class_subject_id)
        if class_subject is None:
            raise NotFoundError("ClassSubject", class_subject_id)
        if not title or not title.strip():
            raise ValidationError("Assessment title is required")
        if scheduled_at and due_date and due_date < scheduled_at:
            raise ValidationError("Due date must not be before the scheduled start")

        assessment = Assessment(
            class_subject_id=class_subject.id,
            teacher_id=teacher_id if teacher_id is not None else class_subject.teacher_id,
            title=title.strip(),
            description=description,
            type=_enum(AssessmentType, type, "assessment type"),
            delivery_mode=_enum(DeliveryMode, delivery_mode, "delivery mode"),
            coefficient=coefficient,
            duration_minutes=duration_minutes,
            scheduled_at=scheduled_at,
            due_date=due_date,
            settings=settings or {},
        )
        with atomic(self.db):
            self.db.add(assessment)
        self.db.refresh(assessment)

        logger.info(f"Created assessment {assessment.id} '{assessment.title}'")
        return assessment

    def update_assessment(self, assessment_id: int, **fields) -> Assessment:
        assessment = self.get_assessment(assessment_id)
        self._ensure_editable(assessment)

        unknown = set(fields) - set(EDITABLE_FIELDS)
        if unknown:
            raise ValidationError(f"Fields cannot be edited: {', '.join(sorted(unknown))}")
        if "type" in fields:
            fields["type"] = _enum(AssessmentType, fields["type"], "assessment type")
        if "delivery_mode" in fields:
            fields["delivery_mode"] = _enum(DeliveryMode, fields["delivery_mode"], "delivery mode")
        if "coefficient" in fields and (fields["coefficient"] is None or fields["coefficient"] <= 0):
            raise ValidationError("Assessment coefficient must be positive")

        with atomic(self.db):
            for name, value in fields.items():
                setattr(assessment, name, value)
        invalidate_for_assessment(self.cache, assessment)
        return assessment

    def add_question(
        self,
        assessment_id: int,
        type: Any,
        content: str,
        points: float = 1.0,
        choices: Optional[Iterable[Dict[str, Any]]] = None,
        correct_answer: Optional[bool] = None,
        order_index: Optional[int] = None,
    ) -> Question:
        """Add a question with its choices.

        ``choices`` is a list of ``{"content": ..., "is_correct": ...}``.
        Boolean questions may instead pass ``correct_answer`` and get the
        ``true``/``false`` choices created for them.
        """
        assessment = self.get_assessment(assessment_id)
        self._ensure_editable(assessment)

        question_type = _enum(QuestionType, type, "question type")
        if not content or not content.strip():
            raise ValidationError("Question content is required")
        if points is None or points < 0:
            raise ValidationError("Question points must be zero or more")

        if question_type == QuestionType.boolean and choices is None:
            if correct_answer is None:
                raise ValidationError("Boolean questions need a correct answer")
            choices = [
                {"content": "true", "is_correct": bool(correct_answer)},
                {"content": "false", "is_correct": not correct_answer},
            ]

        question = Question(
            content=content,
            type=question_type,
            points=points,
            order_index=order_index if order_index is not None else len(assessment.questions),
            choices=[
                Choice(content=c["content"], is_correct=bool(c.get("is_correct")), order_index=i)
                for i, c in enumerate(choices or [])
            ],
        )
        valid, message = question.validate_choices()
        if not valid:
            raise ValidationError(message)

        with atomic(self.db):
            assessment.questions.append(question)
        self.db.refresh(question)

        logger.info(f"Added {question_type.value} question {question.id} to assessment {assessment.id}")
        return question

    def remove_question(self, question_id: int) -> None:
        question = self.db.get(Question, question_id)
        if question is None:
            raise NotFoundError("Question", question_id)
        self._ensure_editable(question.assessment)

        with atomic(self.db):
            # In-progress answers to this question go with it
            self.db.query(Answer).filter(Answer.question_id == question.id).delete(
                synchronize_session=False
            )
            self.db.delete(question)

    def publish(self, assessment_id: int) -> Assessment:
        assessment = self.get_assessment(assessment_id)
        if not assessment.questions:
            raise ValidationError("Cannot publish an assessment without questions")
        for question in assessment.questions:
            valid, message = question.validate_choices()
            if not valid:
                raise ValidationError(f"Question {question.id}: {message}")

        with atomic(self.db):
            assessment.is_published = True
        invalidate_for_assessment(self.cache, assessment)
        logger.info(f"Published assessment {assessment.id}")
        return assessment

    def soft_delete(self, assessment_id: int) -> Assessment:
        """Hide an assessment while keeping its grade history."""
        assessment = self.get_assessment(assessment_id)
        with atomic(self.db):
            assessment.deleted_at = self.clock()
        invalidate_for_assessment(self.cache, assessment)
        logger.info(f"Soft-deleted assessment {assessment.id}")
        return assessment
