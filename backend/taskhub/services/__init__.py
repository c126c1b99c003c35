"""Services package."""

from taskhub.services.auth import AuthService
from taskhub.services.comment import CommentService
from taskhub.services.custom_property import CustomPropertyService
from taskhub.services.organization import OrganizationService
from taskhub.services.project import ProjectService
from taskhub.services.task import TaskService

__all__ = [
    "AuthService",
    "CommentService",
    "CustomPropertyService",
    "OrganizationService",
    "ProjectService",
    "TaskService",
]
