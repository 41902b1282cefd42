"""Assignment lifecycle: not_started -> in_progress -> submitted -> graded.

The status is derived from timestamps. Every transition is validated before
anything is written; the submit transitions claim the assignment with a
compare-and-set on ``submitted_at IS NULL`` so concurrent submits cannot both
win.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional, Union

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..database import atomic
from ..errors import (
    AlreadySubmittedError, AlreadyGradedError, AssessmentExpiredError,
    AssessmentNotAccessibleError, NotEnrolledError, NotFoundError, NotStartedError,
    StateConflictError, ValidationError,
)
from ..models import (
    Assessment, AssessmentAssignment, AssignmentStatus, ClassSubject, Enrollment,
    EnrollmentStatus, SchoolClass, ViolationType,
)
from ..schemas import TimingSnapshot
from . import timing
from .cache import Cache, invalidate_for_assignment
from .recorder import AnswerRecorder
from .scoring import AutoScorer
from .storage import FileStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PersistedAssignment:
    """An assignment row that exists in the database."""
    assignment: AssessmentAssignment

    @property
    def assessment_id(self) -> int:
        return self.assignment.assessment_id

    @property
    def status(self) -> AssignmentStatus:
        return self.assignment.status


@dataclass(frozen=True)
class VirtualAssignment:
    """An accessible assessment the student has not opened yet (no row exists)."""
    assessment_id: int
    student_id: int
    enrollment_id: Optional[int] = None

    @property
    def status(self) -> AssignmentStatus:
        return AssignmentStatus.not_started


AssignmentView = Union[PersistedAssignment, VirtualAssignment]


def parse_violation(value: Any) -> ViolationType:
    if isinstance(value, ViolationType):
        return value
    try:
        return ViolationType(value)
    except ValueError:
        raise ValidationError(f"Unknown violation type: {value!r}")


class AssignmentService:
    """Student-side state machine for assessment assignments."""

    def __init__(
        self,
        db: Session,
        cache: Optional[Cache] = None,
        file_store: Optional[FileStore] = None,
        scorer: Optional[AutoScorer] = None,
        clock=timing.utcnow,
    ):
        self.db = db
        self.cache = cache
        self.recorder = AnswerRecorder(db, file_store)
        self.scorer = scorer or AutoScorer()
        self.clock = clock

    # Lookups

    def get_assignment(self, assignment_id: int) -> AssessmentAssignment:
        assignment = self.db.get(AssessmentAssignment, assignment_id)
        if assignment is None:
            raise NotFoundError("Assignment", assignment_id)
        return assignment

    def _get_assessment(self, assessment_id: int) -> Assessment:
        assessment = self.db.get(Assessment, assessment_id)
        if assessment is None or assessment.is_deleted:
            raise NotFoundError("Assessment", assessment_id)
        return assessment

    def _active_enrollment(self, student_id: int, assessment: Assessment) -> Optional[Enrollment]:
        return (
            self.db.query(Enrollment)
            .filter(
                Enrollment.student_id == student_id,
                Enrollment.class_id == assessment.class_subject.class_id,
                Enrollment.status == EnrollmentStatus.active,
            )
            .first()
        )

    # Transitions

    def get_or_create(self, student_id: int, assessment_id: int) -> AssessmentAssignment:
        """Return the student's assignment for an assessment, creating it on first access."""
        assessment = self._get_assessment(assessment_id)
        if not assessment.is_published:
            raise AssessmentNotAccessibleError(f"Assessment {assessment_id} is not published")

        enrollment = self._active_enrollment(student_id, assessment)
        if enrollment is None:
            raise NotEnrolledError(
                f"Student {student_id} has no active enrollment for assessment {assessment_id}"
            )

        existing = self._find(assessment.id, enrollment.id)
        if existing is not None:
            return existing

        assignment = AssessmentAssignment(
            assessment_id=assessment.id,
            enrollment_id=enrollment.id,
            assigned_at=self.clock(),
        )
        self.db.add(assignment)
        try:
            self.db.commit()
        except IntegrityError:
            # Another request created it first
            self.db.rollback()
            existing = self._find(assessment.id, enrollment.id)
            if existing is None:
                raise
            return existing

        self.db.refresh(assignment)
        logger.info(
            f"Created assignment {assignment.id} for student {student_id} "
            f"on assessment {assessment_id}"
        )
        return assignment

    def _find(self, assessment_id: int, enrollment_id: int) -> Optional[AssessmentAssignment]:
        return (
            self.db.query(AssessmentAssignment)
            .filter(
                AssessmentAssignment.assessment_id == assessment_id,
                AssessmentAssignment.enrollment_id == enrollment_id,
            )
            .first()
        )

    def start(self, assignment_id: int) -> AssessmentAssignment:
        """Record the start time. Starting an in-progress assignment is a no-op."""
        assignment = self.get_assignment(assignment_id)
        if assignment.submitted_at is not None:
            raise AlreadySubmittedError(assignment.id)
        if assignment.started_at is not None:
            return assignment

        assessment = assignment.assessment
        now = self.clock()
        if not timing.is_accessible(assessment, now):
            raise AssessmentNotAccessibleError(
                f"Assessment {assessment.id} is not accessible at {now.isoformat()}"
            )

        with atomic(self.db):
            assignment.started_at = now

        invalidate_for_assignment(self.cache, assignment)
        logger.info(f"Assignment {assignment.id} started")
        return assignment

    def record_answers(self, assignment_id: int, answers: Dict[Any, Any]) -> AssessmentAssignment:
        """Save in-progress answers without changing the assignment state."""
        assignment = self.get_assignment(assignment_id)
        self._ensure_in_progress(assignment)
        assessment = assignment.assessment
        self._ensure_within_time(assessment, assignment)

        prepared = self.recorder.prepare_answers(assessment, answers)
        with atomic(self.db):
            self.recorder.write_prepared(assignment, prepared)
        return assignment

    def submit(self, assignment_id: int, answers: Optional[Dict[Any, Any]] = None) -> AssessmentAssignment:
        """Save the final answers, auto-score and submit.

        A fully objective assessment is graded on the spot; any text or file
        question leaves ``score`` empty for the teacher.
        """
        assignment = self.get_assignment(assignment_id)
        self._ensure_in_progress(assignment)
        assessment = assignment.assessment
        self._ensure_within_time(assessment, assignment)

        prepared = self.recorder.prepare_answers(assessment, answers or {})
        now = self.clock()
        self._claim(assignment, submitted_at=now)

        with atomic(self.db):
            self.recorder.write_prepared(assignment, prepared)
            auto_score = self._auto_score(assessment, assignment)
            assignment.auto_score = auto_score
            if assessment.has_manual_questions:
                assignment.score = None
            else:
                assignment.score = auto_score
                assignment.graded_at = now

        invalidate_for_assignment(self.cache, assignment)
        logger.info(
            f"Assignment {assignment.id} submitted (auto_score={assignment.auto_score}, "
            f"status={assignment.status.value})"
        )
        return assignment

    def force_submit(self, assignment_id: int, violation_type: Any,
                     details: Optional[str] = None) -> AssessmentAssignment:
        """End an in-progress attempt immediately; the teacher must review it."""
        violation = parse_violation(violation_type)
        assignment = self.get_assignment(assignment_id)
        self._ensure_in_progress(assignment)
        self._force(assignment, violation, self.clock())
        logger.warning(
            f"Assignment {assignment.id} force-submitted: violation={violation.value} "
            f"details={details or ''}"
        )
        return assignment

    def auto_submit_if_expired(self, assignment_id: int) -> bool:
        """Force-submit a timed attempt whose deadline has passed.

        The submission is stamped at the deadline, not at the time of the call.
        """
        assignment = self.get_assignment(assignment_id)
        if assignment.submitted_at is not None or assignment.started_at is None:
            return False

        assessment = assignment.assessment
        now = self.clock()
        if not timing.is_expired(assessment, assignment, now):
            return False

        end_time = timing.compute_end_time(assessment, assignment, now)
        try:
            self._force(assignment, ViolationType.time_expired, end_time)
        except AlreadySubmittedError:
            return False

        logger.info(f"Assignment {assignment.id} auto-submitted at its deadline {end_time.isoformat()}")
        return True

    # Teacher exceptions

    def reopen(self, assignment_id: int, reason: Optional[str] = None) -> int:
        """Give an interrupted supervised attempt back to the student.

        Returns the seconds the student still has.
        """
        assignment = self.get_assignment(assignment_id)
        assessment = assignment.assessment

        if not assessment.is_supervised:
            raise StateConflictError("Only supervised assessments can be reopened", state="not_supervised")
        if assignment.started_at is None:
            raise NotStartedError(assignment.id)
        if assignment.graded_at is not None:
            raise AlreadyGradedError(assignment.id)
        if assignment.submitted_at is None and not assignment.forced_submission:
            raise StateConflictError(
                f"Assignment {assignment.id} was not interrupted", state=assignment.status.value
            )

        remaining = timing.remaining_seconds(assessment, assignment, self.clock()) or 0
        if remaining <= 0:
            raise StateConflictError(
                f"Assignment {assignment.id} has no time left", state="time_fully_elapsed"
            )

        with atomic(self.db):
            assignment.submitted_at = None
            assignment.forced_submission = False
            assignment.security_violation = None
            assignment.score = None
            assignment.auto_score = None

        invalidate_for_assignment(self.cache, assignment)
        logger.info(
            f"Assignment {assignment.id} reopened with {remaining}s remaining (reason: {reason})"
        )
        return remaining

    def reassign(self, assignment_id: int, reason: Optional[str] = None) -> AssessmentAssignment:
        """Wipe an attempt so the student can take the assessment again."""
        assignment = self.get_assignment(assignment_id)

        with atomic(self.db):
            self.recorder.clear_answers(assignment)
            assignment.started_at = None
            assignment.submitted_at = None
            assignment.graded_at = None
            assignment.score = None
            assignment.auto_score = None
            assignment.teacher_notes = None
            assignment.forced_submission = False
            assignment.security_violation = None

        invalidate_for_assignment(self.cache, assignment)
        logger.info(f"Assignment {assignment.id} reassigned (reason: {reason})")
        return assignment

    # Read side

    def timing(self, assignment_id: int) -> TimingSnapshot:
        assignment = self.get_assignment(assignment_id)
        return timing.timing_snapshot(assignment.assessment, assignment, self.clock())

    def list_for_student(self, student_id: int, academic_year_id: Optional[int] = None) -> List[AssignmentView]:
        """Every published assessment of the student's class, opened or not."""
        query = (
            self.db.query(Enrollment)
            .filter(Enrollment.student_id == student_id, Enrollment.status == EnrollmentStatus.active)
        )
        if academic_year_id is not None:
            query = query.join(SchoolClass, SchoolClass.id == Enrollment.class_id).filter(
                SchoolClass.academic_year_id == academic_year_id
            )
        enrollment = query.first()
        if enrollment is None:
            return []

        assessments = (
            self.db.query(Assessment)
            .join(ClassSubject, ClassSubject.id == Assessment.class_subject_id)
            .filter(
                ClassSubject.class_id == enrollment.class_id,
                Assessment.is_published.is_(True),
                Assessment.deleted_at.is_(None),
            )
            .order_by(Assessment.scheduled_at, Assessment.id)
            .all()
        )
        existing = {
            a.assessment_id: a
            for a in self.db.query(AssessmentAssignment)
            .filter(AssessmentAssignment.enrollment_id == enrollment.id)
            .all()
        }

        views: List[AssignmentView] = []
        for assessment in assessments:
            assignment = existing.get(assessment.id)
            if assignment is not None:
                views.append(PersistedAssignment(assignment))
            else:
                views.append(VirtualAssignment(assessment.id, student_id, enrollment.id))
        return views

    # Internal helpers

    @staticmethod
    def _ensure_in_progress(assignment: AssessmentAssignment) -> None:
        if assignment.submitted_at is not None:
            raise AlreadySubmittedError(assignment.id)
        if assignment.started_at is None:
            raise NotStartedError(assignment.id)

    def _ensure_within_time(self, assessment: Assessment, assignment: AssessmentAssignment) -> None:
        now = self.clock()
        if timing.is_past_grace(assessment, assignment, now):
            raise AssessmentExpiredError(f"Time limit for assignment {assignment.id} has elapsed")
        if timing.is_due_date_passed(assessment, now):
            raise AssessmentExpiredError(f"Due date for assessment {assessment.id} has passed")

    def _claim(self, assignment: AssessmentAssignment, submitted_at: datetime, **values) -> None:
        """Set ``submitted_at`` only if nobody else has; raise if the race was lost."""
        values["submitted_at"] = submitted_at
        claimed = (
            self.db.query(AssessmentAssignment)
            .filter(
                AssessmentAssignment.id == assignment.id,
                AssessmentAssignment.submitted_at.is_(None),
            )
            .update(values, synchronize_session="evaluate")
        )
        if claimed == 0:
            logger.info(f"Submit race lost for assignment {assignment.id}")
            raise AlreadySubmittedError(assignment.id, concurrent=True)

    def _force(self, assignment: AssessmentAssignment, violation: ViolationType,
               submitted_at: datetime) -> None:
        self._claim(
            assignment,
            submitted_at=submitted_at,
            forced_submission=True,
            security_violation=violation.value,
        )
        with atomic(self.db):
            assignment.auto_score = self._auto_score(assignment.assessment, assignment)
            assignment.score = None
        invalidate_for_assignment(self.cache, assignment)

    def _auto_score(self, assessment: Assessment, assignment: AssessmentAssignment) -> float:
        answers_by_question = self.recorder.answers_by_question(assignment)
        return self.scorer.auto_score_total(assessment, answers_by_question)
