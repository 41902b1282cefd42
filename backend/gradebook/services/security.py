"""Exam security: classifies browser-reported violations and ends attempts on terminal ones."""

import logging
from typing import Any, Dict, List, Optional

from ..errors import ValidationError
from ..models import ViolationType
from ..schemas import ViolationOutcome
from .assignments import AssignmentService, parse_violation

logger = logging.getLogger(__name__)

TERMINAL_VIOLATIONS = frozenset({
    ViolationType.tab_switch,
    ViolationType.fullscreen_exit,
    ViolationType.browser_change,
})

REPORTABLE_VIOLATIONS = (
    ViolationType.tab_switch,
    ViolationType.copy_paste,
    ViolationType.fullscreen_exit,
    ViolationType.suspicious_activity,
    ViolationType.browser_change,
    ViolationType.network_disconnect,
)


class SecurityMonitor:
    def __init__(self, assignment_service: AssignmentService):
        self.assignments = assignment_service

    @staticmethod
    def is_terminal(violation_type: Any) -> bool:
        return parse_violation(violation_type) in TERMINAL_VIOLATIONS

    @staticmethod
    def supported_violation_types() -> List[str]:
        return [v.value for v in REPORTABLE_VIOLATIONS]

    @staticmethod
    def terminal_violation_types() -> List[str]:
        return [v.value for v in REPORTABLE_VIOLATIONS if v in TERMINAL_VIOLATIONS]

    def handle_violation(self, assignment_id: int, violation_type: Any,
                         details: str = "") -> ViolationOutcome:
        """Log a violation and force submission when it is terminal.

        Every call is logged on its own; there is no counting threshold.
        """
        violation = parse_violation(violation_type)
        if violation not in REPORTABLE_VIOLATIONS:
            raise ValidationError(f"Violation type {violation.value} cannot be reported")

        assignment = self.assignments.get_assignment(assignment_id)
        logger.warning(
            f"Security violation: assignment={assignment.id} "
            f"assessment={assignment.assessment_id} student={assignment.student_id} "
            f"type={violation.value} details={details or ''}"
        )

        if violation not in TERMINAL_VIOLATIONS:
            return ViolationOutcome(terminated=False, violation_type=violation.value)

        self.assignments.force_submit(assignment.id, violation, details)
        return ViolationOutcome(terminated=True, violation_type=violation.value)

    @staticmethod
    def violation_history(assignment) -> List[Dict[str, Optional[str]]]:
        """Violations recorded on the assignment.

        Non-terminal violations are only logged, so at most the one that
        ended the attempt is stored.
        """
        if not assignment.security_violation:
            return []
        return [{
            "type": assignment.security_violation,
            "recorded_at": assignment.submitted_at.isoformat() if assignment.submitted_at else None,
        }]
