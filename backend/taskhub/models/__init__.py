"""SQLAlchemy models package."""

from taskhub.models.organization import (
    ROLE_HIERARCHY,
    MemberRole,
    Organization,
    OrganizationMember,
)
from taskhub.models.user import User
from taskhub.models.project import Project, Task, TaskPriority, TaskStatus
from taskhub.models.comment import Comment, Mention
from taskhub.models.custom_property import (
    CHOICE_TYPES,
    CustomProperty,
    CustomPropertyValue,
    EntityType,
    PropertyType,
)

__all__ = [
    # User & Organization
    "User",
    "Organization",
    "OrganizationMember",
    "MemberRole",
    "ROLE_HIERARCHY",
    # Projects & Tasks
    "Project",
    "Task",
    "TaskStatus",
    "TaskPriority",
    # Comments
    "Comment",
    "Mention",
    # Custom properties
    "CustomProperty",
    "CustomPropertyValue",
    "EntityType",
    "PropertyType",
    "CHOICE_TYPES",
]
