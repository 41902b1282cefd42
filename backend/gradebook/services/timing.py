"""Timing rules for assessments and assignments.

Every function here is pure: it reads timestamps and durations and never
touches the database. All datetimes are handled as naive UTC; aware values
are converted on the way in so callers can pass either.
"""

from datetime import datetime, timedelta, UTC
from typing import Optional

from .. import config
from ..schemas import TimingSnapshot


def utcnow() -> datetime:
    """Current time as naive UTC, matching what the database stores."""
    return datetime.now(UTC).replace(tzinfo=None)


def _naive(value: Optional[datetime]) -> Optional[datetime]:
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(UTC).replace(tzinfo=None)


def _now(now: Optional[datetime]) -> datetime:
    return _naive(now) if now is not None else utcnow()


def is_accessible(assessment, now: Optional[datetime] = None) -> bool:
    """Check whether an assessment can be opened at ``now``.

    Each bound is checked on its own: no bound means always open, a start
    bound alone opens the assessment from that point, an end bound alone
    closes it after that point. Both bounds are inclusive. Homework that
    accepts late submissions ignores its end bound.
    """
    now = _now(now)
    start = _naive(assessment.scheduled_at)
    end = _naive(assessment.due_date)

    if end is not None and assessment.is_homework and assessment.allows_late_submission:
        end = None

    if start is not None and now < start:
        return False
    if end is not None and now > end:
        return False
    return True


def is_timed(assessment) -> bool:
    """Whether attempts at this assessment run against a clock.

    ``None`` means untimed. Zero or negative durations are timed and fall back
    to the default duration.
    """
    if assessment.is_homework:
        return False
    return assessment.duration_minutes is not None


def effective_duration_minutes(assessment) -> int:
    duration = assessment.duration_minutes
    if duration is None or duration <= 0:
        return config.DEFAULT_DURATION_MINUTES
    return duration


def compute_end_time(assessment, assignment, now: Optional[datetime] = None) -> datetime:
    """Deadline of an attempt: its start plus the effective duration."""
    started_at = _naive(assignment.started_at) or _now(now)
    return started_at + timedelta(minutes=effective_duration_minutes(assessment))


def remaining_seconds(assessment, assignment, now: Optional[datetime] = None) -> Optional[int]:
    """Seconds left before the deadline, never negative.

    Returns None when the assessment is untimed or the attempt has not started.
    """
    if not is_timed(assessment) or assignment.started_at is None:
        return None

    now = _now(now)
    end_time = compute_end_time(assessment, assignment, now)
    if now >= end_time:
        return 0
    return int((end_time - now).total_seconds())


def is_expired(assessment, assignment, now: Optional[datetime] = None) -> bool:
    remaining = remaining_seconds(assessment, assignment, now)
    if remaining is None:
        return False
    return remaining <= 0


def is_past_grace(assessment, assignment, now: Optional[datetime] = None) -> bool:
    """Expired and beyond the grace period allowed for in-flight submissions."""
    if not is_timed(assessment) or assignment.started_at is None:
        return False
    now = _now(now)
    deadline = compute_end_time(assessment, assignment, now) + timedelta(
        seconds=config.GRACE_PERIOD_SECONDS
    )
    return now > deadline


def elapsed_percentage(assessment, assignment, now: Optional[datetime] = None) -> float:
    if not is_timed(assessment) or assignment.started_at is None:
        return 0.0

    now = _now(now)
    total_seconds = effective_duration_minutes(assessment) * 60
    elapsed = (now - _naive(assignment.started_at)).total_seconds()
    percentage = (elapsed / total_seconds) * 100
    return min(100.0, max(0.0, percentage))


def is_near_expiration(assessment, assignment, now: Optional[datetime] = None) -> bool:
    remaining = remaining_seconds(assessment, assignment, now)
    if remaining is None:
        return False
    threshold = effective_duration_minutes(assessment) * 60 * config.NEAR_EXPIRATION_RATIO
    return 0 < remaining <= threshold


def format_remaining(assessment, assignment, now: Optional[datetime] = None) -> Optional[str]:
    """Remaining time as ``HH:MM:SS``."""
    remaining = remaining_seconds(assessment, assignment, now)
    if remaining is None:
        return None

    hours, rest = divmod(remaining, 3600)
    minutes, seconds = divmod(rest, 60)
    return f"{hours:02d}:{minutes:02d}:{seconds:02d}"


def is_due_date_passed(assessment, now: Optional[datetime] = None) -> bool:
    if not assessment.is_homework or assessment.due_date is None:
        return False
    if assessment.allows_late_submission:
        return False
    return _now(now) > _naive(assessment.due_date)


def timing_snapshot(assessment, assignment, now: Optional[datetime] = None) -> TimingSnapshot:
    now = _now(now)
    timed = is_timed(assessment)
    started = assignment.started_at is not None
    return TimingSnapshot(
        timed=timed,
        started_at=assignment.started_at,
        end_time=compute_end_time(assessment, assignment, now) if timed and started else None,
        remaining_seconds=remaining_seconds(assessment, assignment, now),
        elapsed_percentage=round(elapsed_percentage(assessment, assignment, now), 2),
        is_expired=is_expired(assessment, assignment, now),
        is_near_expiration=is_near_expiration(assessment, assignment, now),
        formatted_remaining=format_remaining(assessment, assignment, now),
    )
