"""HTTP endpoints over the assessment core.

Authentication is handled upstream; the caller is identified by the
``X-User-Id`` header.
"""
import logging
from functools import lru_cache
from typing import List, Optional

from fastapi import APIRouter, Depends, File, Header, HTTPException, Query, UploadFile, status
from sqlalchemy.orm import Session

from ..database import get_db
from ..errors import PermissionDeniedError
from ..models import AssessmentAssignment, User, UserRole
from ..schemas import (
    AnswerRead, AnswersPayload, AssessmentStats, AssignmentRead, AssignmentSummary,
    ExceptionPayload, GradeBreakdown, GradePayload, StudentProgress, SubmitPayload,
    TimingSnapshot, ViolationOutcome, ViolationPayload,
)
from ..services.aggregation import GradeAggregator
from ..services.assignments import AssignmentService, PersistedAssignment
from ..services.cache import Cache, build_cache
from ..services.grading import GradingService
from ..services.permissions import GRADE, VIEW_STATS, Permissions, RolePermissions
from ..services.security import SecurityMonitor
from ..services.stats import StatsService
from ..services.storage import FileStore, FileUpload, LocalFileStore

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Assessments"])


# Dependencies

@lru_cache()
def get_cache() -> Cache:
    return build_cache()


@lru_cache()
def get_file_store() -> FileStore:
    return LocalFileStore()


def get_permissions() -> Permissions:
    return RolePermissions()


def get_current_user(
    x_user_id: Optional[int] = Header(None),
    db: Session = Depends(get_db),
) -> User:
    """Resolve the calling user from the ``X-User-Id`` header."""
    if x_user_id is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing X-User-Id header")
    user = db.get(User, x_user_id)
    if user is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unknown user")
    return user


def get_assignment_service(
    db: Session = Depends(get_db),
    cache: Cache = Depends(get_cache),
    file_store: FileStore = Depends(get_file_store),
) -> AssignmentService:
    return AssignmentService(db, cache=cache, file_store=file_store)


def get_grading_service(
    db: Session = Depends(get_db),
    cache: Cache = Depends(get_cache),
    permissions: Permissions = Depends(get_permissions),
) -> GradingService:
    return GradingService(db, cache=cache, permissions=permissions)


def get_stats_service(db: Session = Depends(get_db), cache: Cache = Depends(get_cache)) -> StatsService:
    return StatsService(db, cache=cache)


def get_aggregator(db: Session = Depends(get_db), cache: Cache = Depends(get_cache)) -> GradeAggregator:
    return GradeAggregator(db, cache=cache)


# Access helpers

def _own_assignment(service: AssignmentService, assignment_id: int, user: User) -> AssessmentAssignment:
    assignment = service.get_assignment(assignment_id)
    if assignment.student_id != user.id:
        raise PermissionDeniedError(f"Assignment {assignment_id} belongs to another student")
    return assignment


def _require_self_or_staff(user: User, student_id: int) -> None:
    if user.id != student_id and user.role not in (UserRole.teacher, UserRole.admin):
        raise PermissionDeniedError("Students can only see their own grades")


# Student workflow

@router.post("/assessments/{assessment_id}/assignment", response_model=AssignmentRead)
def open_assignment(
    assessment_id: int,
    user: User = Depends(get_current_user),
    service: AssignmentService = Depends(get_assignment_service),
):
    """Get or create the caller's assignment for an assessment."""
    return service.get_or_create(user.id, assessment_id)


@router.get("/me/assignments", response_model=List[AssignmentSummary])
def list_my_assignments(
    academic_year_id: Optional[int] = None,
    user: User = Depends(get_current_user),
    service: AssignmentService = Depends(get_assignment_service),
):
    summaries = []
    for view in service.list_for_student(user.id, academic_year_id):
        assignment = view.assignment if isinstance(view, PersistedAssignment) else None
        summaries.append(AssignmentSummary(
            assessment_id=view.assessment_id,
            status=view.status,
            assignment=AssignmentRead.model_validate(assignment) if assignment else None,
        ))
    return summaries


@router.post("/assignments/{assignment_id}/start", response_model=AssignmentRead)
def start_assignment(
    assignment_id: int,
    user: User = Depends(get_current_user),
    service: AssignmentService = Depends(get_assignment_service),
):
    _own_assignment(service, assignment_id, user)
    return service.start(assignment_id)


@router.put("/assignments/{assignment_id}/answers", response_model=AssignmentRead)
def record_answers(
    assignment_id: int,
    payload: AnswersPayload,
    user: User = Depends(get_current_user),
    service: AssignmentService = Depends(get_assignment_service),
):
    _own_assignment(service, assignment_id, user)
    return service.record_answers(assignment_id, payload.answers)


@router.post("/assignments/{assignment_id}/answers/{question_id}/file", response_model=List[AnswerRead])
def upload_file_answer(
    assignment_id: int,
    question_id: int,
    file: UploadFile = File(...),
    user: User = Depends(get_current_user),
    service: AssignmentService = Depends(get_assignment_service),
):
    _own_assignment(service, assignment_id, user)
    upload = FileUpload(file.filename, file.file, file.content_type)
    assignment = service.record_answers(assignment_id, {question_id: upload})
    return [a for a in assignment.answers if a.question_id == question_id]


@router.post("/assignments/{assignment_id}/submit", response_model=AssignmentRead)
def submit_assignment(
    assignment_id: int,
    payload: Optional[SubmitPayload] = None,
    user: User = Depends(get_current_user),
    service: AssignmentService = Depends(get_assignment_service),
):
    _own_assignment(service, assignment_id, user)
    answers = payload.answers if payload is not None else None
    return service.submit(assignment_id, answers)


@router.post("/assignments/{assignment_id}/violations", response_model=ViolationOutcome)
def report_violation(
    assignment_id: int,
    payload: ViolationPayload,
    user: User = Depends(get_current_user),
    service: AssignmentService = Depends(get_assignment_service),
):
    _own_assignment(service, assignment_id, user)
    return SecurityMonitor(service).handle_violation(
        assignment_id, payload.violation_type, payload.details
    )


@router.get("/assignments/{assignment_id}/timing", response_model=TimingSnapshot)
def assignment_timing(
    assignment_id: int,
    user: User = Depends(get_current_user),
    service: AssignmentService = Depends(get_assignment_service),
):
    _own_assignment(service, assignment_id, user)
    service.auto_submit_if_expired(assignment_id)
    return service.timing(assignment_id)


# Teacher workflow

@router.post("/assignments/{assignment_id}/grade", response_model=AssignmentRead)
def grade_assignment(
    assignment_id: int,
    payload: GradePayload,
    user: User = Depends(get_current_user),
    grading: GradingService = Depends(get_grading_service),
):
    return grading.grade(assignment_id, payload.scores, payload.feedback, payload.notes, grader=user)


@router.post("/assignments/{assignment_id}/grade-zero", response_model=AssignmentRead)
def grade_assignment_zero(
    assignment_id: int,
    payload: ExceptionPayload,
    user: User = Depends(get_current_user),
    grading: GradingService = Depends(get_grading_service),
):
    return grading.grade_zero(assignment_id, notes=payload.reason, grader=user)


@router.post("/assignments/{assignment_id}/reopen")
def reopen_assignment(
    assignment_id: int,
    payload: ExceptionPayload,
    user: User = Depends(get_current_user),
    service: AssignmentService = Depends(get_assignment_service),
    permissions: Permissions = Depends(get_permissions),
):
    permissions.require(user, GRADE, service.get_assignment(assignment_id))
    remaining = service.reopen(assignment_id, payload.reason)
    return {"assignment_id": assignment_id, "remaining_seconds": remaining}


@router.post("/assignments/{assignment_id}/reassign", response_model=AssignmentRead)
def reassign_assignment(
    assignment_id: int,
    payload: ExceptionPayload,
    user: User = Depends(get_current_user),
    service: AssignmentService = Depends(get_assignment_service),
    permissions: Permissions = Depends(get_permissions),
):
    permissions.require(user, GRADE, service.get_assignment(assignment_id))
    return service.reassign(assignment_id, payload.reason)


@router.get("/assessments/{assessment_id}/stats", response_model=AssessmentStats)
def assessment_stats(
    assessment_id: int,
    group_ids: Optional[List[int]] = Query(None),
    user: User = Depends(get_current_user),
    stats: StatsService = Depends(get_stats_service),
    permissions: Permissions = Depends(get_permissions),
):
    """Completion statistics; pass ``group_ids`` to count group members instead of the class."""
    permissions.require(user, VIEW_STATS, stats.get_assessment(assessment_id))
    if group_ids:
        return stats.assessment_stats_with_groups(assessment_id, group_ids)
    return stats.assessment_stats(assessment_id)


# Grades

@router.get("/students/{student_id}/subjects/{class_subject_id}/grade")
def subject_grade(
    student_id: int,
    class_subject_id: int,
    user: User = Depends(get_current_user),
    aggregator: GradeAggregator = Depends(get_aggregator),
):
    _require_self_or_staff(user, student_id)
    return {
        "student_id": student_id,
        "class_subject_id": class_subject_id,
        "grade": aggregator.subject_grade(student_id, class_subject_id),
    }


@router.get("/students/{student_id}/years/{academic_year_id}/average")
def annual_average(
    student_id: int,
    academic_year_id: int,
    user: User = Depends(get_current_user),
    aggregator: GradeAggregator = Depends(get_aggregator),
):
    _require_self_or_staff(user, student_id)
    return {
        "student_id": student_id,
        "academic_year_id": academic_year_id,
        "average": aggregator.annual_average(student_id, academic_year_id),
    }


@router.get("/students/{student_id}/classes/{class_id}/breakdown", response_model=GradeBreakdown)
def grade_breakdown(
    student_id: int,
    class_id: int,
    user: User = Depends(get_current_user),
    aggregator: GradeAggregator = Depends(get_aggregator),
):
    _require_self_or_staff(user, student_id)
    return aggregator.grade_breakdown(student_id, class_id)


@router.get("/students/{student_id}/progress", response_model=StudentProgress)
def student_progress(
    student_id: int,
    academic_year_id: Optional[int] = None,
    user: User = Depends(get_current_user),
    stats: StatsService = Depends(get_stats_service),
):
    _require_self_or_staff(user, student_id)
    return stats.student_progress(student_id, academic_year_id)
