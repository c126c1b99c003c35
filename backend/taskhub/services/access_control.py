"""Organization-scoped access control.

Every resource belongs to exactly one organization, reached through an ownership
chain (comment -> task -> project -> organization). The resolvers below walk that
chain one hop at a time and raise ``NotFoundError`` at the first missing link;
``authorize`` then checks the actor's membership role in the organization at the
end of the chain. An existing resource in an organization the actor does not
belong to is always reported as ``ForbiddenError``.
"""

from collections.abc import Collection
from uuid import UUID

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from taskhub.exceptions import ForbiddenError, NotFoundError
from taskhub.models.comment import Comment
from taskhub.models.custom_property import CustomProperty, EntityType
from taskhub.models.organization import (
    ROLE_HIERARCHY,
    MemberRole,
    Organization,
    OrganizationMember,
)
from taskhub.models.project import Project, Task

logger = structlog.get_logger()


def has_sufficient_role(user_role: MemberRole, required_role: MemberRole) -> bool:
    """Check if user_role meets or exceeds required_role."""
    return ROLE_HIERARCHY[user_role] >= ROLE_HIERARCHY[required_role]


def roles_at_least(required_role: MemberRole) -> frozenset[MemberRole]:
    """Every role that meets or exceeds ``required_role``."""
    return frozenset(role for role in MemberRole if has_sufficient_role(role, required_role))


# Role sets used by the services
READ_ROLES = roles_at_least(MemberRole.VIEWER)
WRITE_ROLES = roles_at_least(MemberRole.MEMBER)
MANAGE_ROLES = roles_at_least(MemberRole.ADMIN)
OWNER_ROLES = roles_at_least(MemberRole.OWNER)


async def get_membership(
    db: AsyncSession,
    user_id: UUID,
    organization_id: UUID,
) -> OrganizationMember | None:
    """Get a user's membership row in an organization, if any."""
    result = await db.execute(
        select(OrganizationMember).where(
            OrganizationMember.user_id == user_id,
            OrganizationMember.organization_id == organization_id,
        )
    )
    return result.scalar_one_or_none()


async def authorize(
    db: AsyncSession,
    actor_id: UUID,
    organization_id: UUID,
    allowed_roles: Collection[MemberRole],
) -> OrganizationMember:
    """Return the actor's membership when its role is one of ``allowed_roles``.

    Raises:
        ForbiddenError: if the actor is not a member, or holds another role.
    """
    membership = await get_membership(db, actor_id, organization_id)
    if membership is None:
        logger.info(
            "access_denied",
            reason="not_a_member",
            user_id=str(actor_id),
            organization_id=str(organization_id),
        )
        raise ForbiddenError("You are not a member of this organization.")

    if membership.role not in allowed_roles:
        logger.info(
            "access_denied",
            reason="insufficient_role",
            user_id=str(actor_id),
            organization_id=str(organization_id),
            role=membership.role.value,
        )
        raise ForbiddenError("Your role does not allow this operation.")

    return membership


# =========================================================================
# Ownership chain resolution
# =========================================================================


async def resolve_organization(db: AsyncSession, organization_id: UUID) -> Organization:
    organization = await db.get(Organization, organization_id)
    if organization is None:
        raise NotFoundError("Organization")
    return organization


async def resolve_project(db: AsyncSession, project_id: UUID) -> Project:
    project = await db.get(Project, project_id)
    if project is None:
        raise NotFoundError("Project")
    return project


async def resolve_task_chain(db: AsyncSession, task_id: UUID) -> tuple[Task, Project]:
    """Load a task and its project."""
    task = await db.get(Task, task_id)
    if task is None:
        raise NotFoundError("Task")
    project = await resolve_project(db, task.project_id)
    return task, project


async def resolve_comment_chain(
    db: AsyncSession, comment_id: UUID
) -> tuple[Comment, Task, Project]:
    """Load a comment, its task and the task's project."""
    comment = await db.get(Comment, comment_id)
    if comment is None:
        raise NotFoundError("Comment")
    task, project = await resolve_task_chain(db, comment.task_id)
    return comment, task, project


async def resolve_property(db: AsyncSession, property_id: UUID) -> CustomProperty:
    custom_property = await db.get(CustomProperty, property_id)
    if custom_property is None:
        raise NotFoundError("Custom property")
    return custom_property


async def resolve_entity_organization(
    db: AsyncSession,
    entity_type: EntityType,
    entity_id: UUID,
) -> UUID:
    """Organization ID owning a task or project, by discriminant."""
    if entity_type == EntityType.TASK:
        _, project = await resolve_task_chain(db, entity_id)
        return project.organization_id
    project = await resolve_project(db, entity_id)
    return project.organization_id
