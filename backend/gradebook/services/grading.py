"""Teacher grading of submitted assignments."""

import logging
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from ..database import atomic
from ..errors import AlreadyGradedError, NotFoundError, NotSubmittedError, ValidationError
from ..models import AssessmentAssignment, User
from . import timing
from .cache import Cache, invalidate_for_assignment
from .permissions import GRADE, AllowAll, Permissions
from .recorder import AnswerRecorder
from .scoring import AutoScorer

logger = logging.getLogger(__name__)


class GradingService:
    """Writes per-answer scores and closes the assignment as graded."""

    def __init__(
        self,
        db: Session,
        cache: Optional[Cache] = None,
        permissions: Optional[Permissions] = None,
        scorer: Optional[AutoScorer] = None,
        clock=timing.utcnow,
    ):
        self.db = db
        self.cache = cache
        self.permissions = permissions or AllowAll()
        self.scorer = scorer or AutoScorer()
        self.recorder = AnswerRecorder(db)
        self.clock = clock

    def _get_assignment(self, assignment_id: int) -> AssessmentAssignment:
        assignment = self.db.get(AssessmentAssignment, assignment_id)
        if assignment is None:
            raise NotFoundError("Assignment", assignment_id)
        return assignment

    @staticmethod
    def _ensure_gradable(assignment: AssessmentAssignment) -> None:
        if assignment.graded_at is not None:
            raise AlreadyGradedError(assignment.id)
        if assignment.submitted_at is None:
            raise NotSubmittedError(assignment.id, state=assignment.status.value)

    def grade(
        self,
        assignment_id: int,
        scores: Dict[Any, Any],
        feedback: Optional[Dict[Any, str]] = None,
        notes: Optional[str] = None,
        grader: Optional[User] = None,
    ) -> AssessmentAssignment:
        """Grade a submitted assignment.

        ``scores`` and ``feedback`` are keyed by question id. Objective
        questions the teacher does not score keep their automatic score;
        the assignment score is the sum of all answer scores.
        """
        assignment = self._get_assignment(assignment_id)
        self.permissions.require(grader, GRADE, assignment)
        self._ensure_gradable(assignment)

        assessment = assignment.assessment
        manual_scores = self._validate_scores(assessment, scores or {})
        comments = self._validate_feedback(assessment, feedback or {})
        answers_by_question = self.recorder.answers_by_question(assignment)

        with atomic(self.db):
            total = 0.0
            for question in assessment.questions:
                rows = answers_by_question.get(question.id, [])

                if question.id in manual_scores:
                    if not rows:
                        logger.warning(
                            f"Score for unanswered question {question.id} on assignment "
                            f"{assignment.id} ignored"
                        )
                        continue
                    rows[0].score = manual_scores[question.id]
                    for extra in rows[1:]:
                        extra.score = 0.0
                elif question.type.is_auto_scorable and rows:
                    self.scorer.apply(question, rows)

                if question.id in comments and rows:
                    rows[0].feedback = comments[question.id]

                total += sum(row.score for row in rows if row.score is not None)

            assignment.score = round(total, 2)
            assignment.graded_at = max(self.clock(), assignment.submitted_at)
            if notes is not None:
                assignment.teacher_notes = notes

        invalidate_for_assignment(self.cache, assignment)
        logger.info(
            f"Assignment {assignment.id} graded: score={assignment.score} "
            f"by={grader.id if grader is not None else None}"
        )
        return assignment

    def grade_zero(self, assignment_id: int, notes: Optional[str] = None,
                   grader: Optional[User] = None) -> AssessmentAssignment:
        """Close a submitted attempt with a score of 0."""
        assignment = self._get_assignment(assignment_id)
        self.permissions.require(grader, GRADE, assignment)
        self._ensure_gradable(assignment)

        with atomic(self.db):
            for answer in assignment.answers:
                answer.score = 0.0
            assignment.score = 0.0
            assignment.graded_at = max(self.clock(), assignment.submitted_at)
            if notes is not None:
                assignment.teacher_notes = notes

        invalidate_for_assignment(self.cache, assignment)
        logger.info(f"Assignment {assignment.id} graded with zero")
        return assignment

    # Validation

    @staticmethod
    def _question_id(assessment, raw_id: Any):
        try:
            question_id = int(raw_id)
        except (TypeError, ValueError):
            raise ValidationError(f"Invalid question id: {raw_id!r}")
        question = assessment.get_question(question_id)
        if question is None:
            raise NotFoundError(
                "Question", question_id,
                f"Question {question_id} does not belong to assessment {assessment.id}",
            )
        return question

    def _validate_scores(self, assessment, scores: Dict[Any, Any]) -> Dict[int, float]:
        validated = {}
        for raw_id, raw_score in scores.items():
            question = self._question_id(assessment, raw_id)
            try:
                value = float(raw_score)
            except (TypeError, ValueError):
                raise ValidationError(f"Invalid score for question {question.id}: {raw_score!r}")
            if value < 0 or value > question.points:
                raise ValidationError(
                    f"Score {value} for question {question.id} must be between 0 and {question.points}"
                )
            validated[question.id] = value
        return validated

    def _validate_feedback(self, assessment, feedback: Dict[Any, str]) -> Dict[int, str]:
        return {self._question_id(assessment, raw_id).id: text for raw_id, text in feedback.items()}
