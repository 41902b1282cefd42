"""Assessment core services."""
from .assignments import AssignmentService, PersistedAssignment, VirtualAssignment
from .grading import GradingService
from .aggregation import GradeAggregator
from .stats import StatsService
from .security import SecurityMonitor
from .authoring import AuthoringService
from .scoring import AutoScorer
from .recorder import AnswerRecorder
from .cache import build_cache
from .storage import LocalFileStore, FileUpload
from .permissions import RolePermissions

__all__ = [
    'AssignmentService',
    'PersistedAssignment',
    'VirtualAssignment',
    'GradingService',
    'GradeAggregator',
    'StatsService',
    'SecurityMonitor',
    'AuthoringService',
    'AutoScorer',
    'AnswerRecorder',
    'build_cache',
    'LocalFileStore',
    'FileUpload',
    'RolePermissions',
]
