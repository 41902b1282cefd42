"""Capability checks consumed by the services as ``can(user, action, resource)``."""

import logging
from abc import ABC, abstractmethod
from typing import Optional

from ..errors import PermissionDeniedError
from ..models import Assessment, AssessmentAssignment, ClassSubject, User, UserRole

logger = logging.getLogger(__name__)

GRADE = "grade"
VIEW_STATS = "view_stats"
AUTHOR = "author"


class Permissions(ABC):
    """Answers whether a user may perform an action on a resource."""

    @abstractmethod
    def can(self, user: Optional[User], action: str, resource=None) -> bool:
        pass

    def require(self, user: Optional[User], action: str, resource=None) -> None:
        if not self.can(user, action, resource):
            user_id = user.id if user is not None else None
            logger.warning(f"Permission denied: user={user_id} action={action}")
            raise PermissionDeniedError(f"User {user_id} may not {action} this resource")


class AllowAll(Permissions):
    """Grants everything; used when no policy is configured."""

    def can(self, user, action, resource=None) -> bool:
        return True


class RolePermissions(Permissions):
    """Admins may do anything; teachers only within the class-subjects they teach."""

    def can(self, user, action, resource=None) -> bool:
        if user is None:
            return False
        if user.role == UserRole.admin:
            return True
        if user.role != UserRole.teacher:
            return False
        if resource is None:
            return True

        class_subject = self._class_subject_of(resource)
        if class_subject is None:
            return False
        return class_subject.teacher_id == user.id

    @staticmethod
    def _class_subject_of(resource) -> Optional[ClassSubject]:
        if isinstance(resource, ClassSubject):
            return resource
        if isinstance(resource, Assessment):
            return resource.class_subject
        if isinstance(resource, AssessmentAssignment):
            return resource.assessment.class_subject
        return None
