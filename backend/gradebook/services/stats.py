"""Completion statistics for assessments and progress for students.

Populations always come from active enrollments or group memberships.
Assignments are created lazily, so a student without an assignment row is
counted as not started rather than left out.
"""

import logging
from typing import Iterable, List, Optional, Tuple

from sqlalchemy import and_, func
from sqlalchemy.orm import Session

from ..errors import NotFoundError
from ..models import (
    Answer, Assessment, AssessmentAssignment, ClassSubject, Enrollment, EnrollmentStatus,
    Group, SchoolClass,
)
from ..schemas import AssessmentStats, StudentProgress
from .aggregation import GradeAggregator
from .cache import Cache, assessment_stats_key, student_progress_key

logger = logging.getLogger(__name__)


def _tally(rows: Iterable[Tuple[Optional[AssessmentAssignment], Optional[float]]]) -> AssessmentStats:
    """Build stats from ``(assignment or None, summed answer score)`` pairs, one per student."""
    stats = AssessmentStats()
    graded_totals: List[float] = []

    for assignment, answer_total in rows:
        stats.total_assigned += 1
        if assignment is None or assignment.started_at is None:
            stats.not_started += 1
        elif assignment.submitted_at is None:
            stats.in_progress += 1
        elif assignment.graded_at is None:
            stats.submitted += 1
        else:
            stats.graded += 1
            graded_totals.append(float(answer_total or 0.0))

    if stats.total_assigned:
        stats.completion_rate = round(stats.graded / stats.total_assigned * 100, 2)
    if graded_totals:
        stats.average_score = round(sum(graded_totals) / len(graded_totals), 2)
    return stats


class StatsService:
    """Read-only statistics over assignments."""

    def __init__(self, db: Session, cache: Optional[Cache] = None):
        self.db = db
        self.cache = cache
        self.aggregator = GradeAggregator(db, cache)

    def get_assessment(self, assessment_id: int) -> Assessment:
        assessment = self.db.get(Assessment, assessment_id)
        if assessment is None:
            raise NotFoundError("Assessment", assessment_id)
        return assessment

    def _answer_totals(self):
        return (
            self.db.query(
                Answer.assignment_id.label("assignment_id"),
                func.sum(Answer.score).label("total"),
            )
            .group_by(Answer.assignment_id)
            .subquery()
        )

    def assessment_stats(self, assessment_id: int) -> AssessmentStats:
        """Counts per state over the class's active enrollments."""
        key = assessment_stats_key(assessment_id)
        if self.cache is not None:
            hit = self.cache.get(key)
            if hit is not None:
                return AssessmentStats(**hit)

        assessment = self.get_assessment(assessment_id)
        totals = self._answer_totals()
        rows = (
            self.db.query(Enrollment.id, AssessmentAssignment, totals.c.total)
            .select_from(Enrollment)
            .outerjoin(
                AssessmentAssignment,
                and_(
                    AssessmentAssignment.enrollment_id == Enrollment.id,
                    AssessmentAssignment.assessment_id == assessment.id,
                ),
            )
            .outerjoin(totals, totals.c.assignment_id == AssessmentAssignment.id)
            .filter(
                Enrollment.class_id == assessment.class_subject.class_id,
                Enrollment.status == EnrollmentStatus.active,
            )
            .all()
        )
        # One row per active enrollment
        stats = _tally((assignment, total) for _, assignment, total in rows)

        if self.cache is not None:
            self.cache.set(key, stats.model_dump())
        return stats

    def _stats_for_students(self, assessment: Assessment, student_ids: Iterable[int]) -> AssessmentStats:
        student_ids = list(dict.fromkeys(student_ids))
        if not student_ids:
            return AssessmentStats()

        totals = self._answer_totals()
        found = {}
        rows = (
            self.db.query(Enrollment.student_id, AssessmentAssignment, totals.c.total)
            .join(AssessmentAssignment, AssessmentAssignment.enrollment_id == Enrollment.id)
            .outerjoin(totals, totals.c.assignment_id == AssessmentAssignment.id)
            .filter(
                AssessmentAssignment.assessment_id == assessment.id,
                Enrollment.student_id.in_(student_ids),
            )
            .all()
        )
        for student_id, assignment, total in rows:
            found.setdefault(student_id, (assignment, total))

        return _tally(found.get(student_id, (None, None)) for student_id in student_ids)

    def group_stats(self, assessment_id: int, group_id: int) -> AssessmentStats:
        """Stats over the active members of one group."""
        assessment = self.get_assessment(assessment_id)
        group = self.db.get(Group, group_id)
        if group is None:
            raise NotFoundError("Group", group_id)
        return self._stats_for_students(assessment, group.active_student_ids)

    def assessment_stats_with_groups(self, assessment_id: int,
                                     group_ids: Optional[List[int]] = None) -> AssessmentStats:
        """Stats over the union of several groups; students in two groups count once.

        Defaults to the groups the assessment is assigned to.
        """
        assessment = self.get_assessment(assessment_id)
        if group_ids is None:
            groups = list(assessment.groups)
        else:
            groups = self.db.query(Group).filter(Group.id.in_(group_ids)).all()

        student_ids = [sid for group in groups for sid in group.active_student_ids]
        return self._stats_for_students(assessment, student_ids)

    def student_progress(self, student_id: int, academic_year_id: Optional[int] = None) -> StudentProgress:
        """How much of the published work of the student's class has been graded."""
        key = student_progress_key(student_id, academic_year_id)
        if self.cache is not None:
            hit = self.cache.get(key)
            if hit is not None:
                return StudentProgress(**hit)

        query = self.db.query(Enrollment).filter(
            Enrollment.student_id == student_id,
            Enrollment.status == EnrollmentStatus.active,
        )
        if academic_year_id is not None:
            query = query.join(SchoolClass, SchoolClass.id == Enrollment.class_id).filter(
                SchoolClass.academic_year_id == academic_year_id
            )
        enrollment = query.first()
        if enrollment is None:
            return StudentProgress()

        total = (
            self.db.query(Assessment)
            .join(ClassSubject, ClassSubject.id == Assessment.class_subject_id)
            .filter(
                ClassSubject.class_id == enrollment.class_id,
                Assessment.is_published.is_(True),
                Assessment.deleted_at.is_(None),
            )
            .count()
        )
        graded = (
            self.db.query(AssessmentAssignment)
            .join(Assessment, Assessment.id == AssessmentAssignment.assessment_id)
            .filter(
                AssessmentAssignment.enrollment_id == enrollment.id,
                AssessmentAssignment.graded_at.isnot(None),
                Assessment.is_published.is_(True),
                Assessment.deleted_at.is_(None),
            )
            .count()
        )

        year_id = enrollment.school_class.academic_year_id
        progress = StudentProgress(
            total_assessments=total,
            graded_assessments=graded,
            pending_assessments=max(total - graded, 0),
            overall_average=self.aggregator.annual_average(student_id, year_id),
        )

        if self.cache is not None:
            self.cache.set(key, progress.model_dump())
        return progress
