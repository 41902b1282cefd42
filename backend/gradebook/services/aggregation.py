"""Subject grades and annual averages.

Two levels of coefficient weighting: assessments within a subject, then
subjects within the year. Missing or ungraded work is left out of both the
numerator and the denominator; it never counts as zero.
"""

import logging
from typing import List, Optional

from sqlalchemy.orm import Session

from .. import config
from ..errors import NotFoundError
from ..models import (
    Assessment, AssessmentAssignment, ClassSubject, Enrollment, EnrollmentStatus,
    SchoolClass, User,
)
from ..schemas import GradeBreakdown, SubjectGradeLine
from .cache import (
    Cache, annual_average_key, class_subject_average_key, subject_grade_key,
)

logger = logging.getLogger(__name__)


def weighted_average(pairs) -> Optional[float]:
    """Average of ``(weight, value)`` pairs, skipping ``None`` values."""
    numerator = 0.0
    denominator = 0.0
    for weight, value in pairs:
        if value is None:
            continue
        numerator += weight * value
        denominator += weight
    if denominator == 0:
        return None
    return numerator / denominator


class GradeAggregator:
    """Read-only grade computations with optional caching."""

    def __init__(self, db: Session, cache: Optional[Cache] = None):
        self.db = db
        self.cache = cache

    def _cached(self, key: str, compute):
        if self.cache is not None:
            hit = self.cache.get(key)
            if hit is not None:
                return hit["value"]
        value = compute()
        if self.cache is not None:
            self.cache.set(key, {"value": value})
        return value

    def subject_grade(self, student_id: int, class_subject_id: int) -> Optional[float]:
        """Coefficient-weighted average of the student's graded assessments, on ``GRADE_SCALE``."""
        return self._cached(
            subject_grade_key(student_id, class_subject_id),
            lambda: self._compute_subject_grade(student_id, class_subject_id),
        )

    def _compute_subject_grade(self, student_id: int, class_subject_id: int) -> Optional[float]:
        assignments = (
            self.db.query(AssessmentAssignment)
            .join(Enrollment, Enrollment.id == AssessmentAssignment.enrollment_id)
            .join(Assessment, Assessment.id == AssessmentAssignment.assessment_id)
            .filter(
                Enrollment.student_id == student_id,
                Assessment.class_subject_id == class_subject_id,
                Assessment.deleted_at.is_(None),
                AssessmentAssignment.graded_at.isnot(None),
                AssessmentAssignment.score.isnot(None),
            )
            .all()
        )

        pairs = []
        for assignment in assignments:
            assessment = assignment.assessment
            total_points = assessment.total_points
            if total_points <= 0:
                logger.debug(f"Skipping assessment {assessment.id} with no points")
                continue
            normalized = assignment.score / total_points * config.GRADE_SCALE
            pairs.append((assessment.coefficient, normalized))

        average = weighted_average(pairs)
        return round(average, 2) if average is not None else None

    def annual_average(self, student_id: int, academic_year_id: int) -> Optional[float]:
        """Coefficient-weighted average of subject grades for the year."""
        return self._cached(
            annual_average_key(student_id, academic_year_id),
            lambda: self._compute_annual_average(student_id, academic_year_id),
        )

    def _compute_annual_average(self, student_id: int, academic_year_id: int) -> Optional[float]:
        enrollment = (
            self.db.query(Enrollment)
            .join(SchoolClass, SchoolClass.id == Enrollment.class_id)
            .filter(
                Enrollment.student_id == student_id,
                Enrollment.status == EnrollmentStatus.active,
                SchoolClass.academic_year_id == academic_year_id,
            )
            .first()
        )
        if enrollment is None:
            return None

        pairs = [
            (class_subject.coefficient, self.subject_grade(student_id, class_subject.id))
            for class_subject in self._active_class_subjects(enrollment.class_id)
        ]
        average = weighted_average(pairs)
        return round(average, 2) if average is not None else None

    def class_average_for_subject(self, class_subject_id: int) -> Optional[float]:
        """Mean subject grade of the actively enrolled students who have one."""
        return self._cached(
            class_subject_average_key(class_subject_id),
            lambda: self._compute_class_average(class_subject_id),
        )

    def _compute_class_average(self, class_subject_id: int) -> Optional[float]:
        class_subject = self.db.get(ClassSubject, class_subject_id)
        if class_subject is None:
            raise NotFoundError("ClassSubject", class_subject_id)

        grades = [
            self.subject_grade(enrollment.student_id, class_subject.id)
            for enrollment in class_subject.school_class.active_enrollments
        ]
        grades = [g for g in grades if g is not None]
        if not grades:
            return None
        return round(sum(grades) / len(grades), 2)

    def grade_breakdown(self, student_id: int, class_id: int) -> GradeBreakdown:
        """Per-subject report card for one student in one class."""
        school_class = self.db.get(SchoolClass, class_id)
        if school_class is None:
            raise NotFoundError("Class", class_id)
        student = self.db.get(User, student_id)

        lines: List[SubjectGradeLine] = []
        for class_subject in self._active_class_subjects(class_id):
            published = [
                a for a in class_subject.assessments
                if a.is_published and not a.is_deleted
            ]
            completed = (
                self.db.query(AssessmentAssignment)
                .join(Enrollment, Enrollment.id == AssessmentAssignment.enrollment_id)
                .filter(
                    Enrollment.student_id == student_id,
                    AssessmentAssignment.assessment_id.in_([a.id for a in published]),
                    AssessmentAssignment.graded_at.isnot(None),
                )
                .count() if published else 0
            )
            lines.append(SubjectGradeLine(
                class_subject_id=class_subject.id,
                subject_name=class_subject.subject.name,
                teacher_name=class_subject.teacher.name if class_subject.teacher else "",
                coefficient=class_subject.coefficient,
                average=self.subject_grade(student_id, class_subject.id),
                assessments_count=len(published),
                completed_count=completed,
            ))

        annual = weighted_average((line.coefficient, line.average) for line in lines)
        return GradeBreakdown(
            student_id=student_id,
            student_name=student.name if student else None,
            class_id=school_class.id,
            class_name=school_class.name,
            subjects=lines,
            annual_average=round(annual, 2) if annual is not None else None,
            total_coefficient=sum(line.coefficient for line in lines if line.average is not None),
        )

    def _active_class_subjects(self, class_id: int) -> List[ClassSubject]:
        return (
            self.db.query(ClassSubject)
            .filter(ClassSubject.class_id == class_id, ClassSubject.is_active.is_(True))
            .order_by(ClassSubject.id)
            .all()
        )
