"""Organization and membership management."""

from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

import structlog
from sqlalchemy import delete, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased

from taskhub.db.transaction import atomic
from taskhub.exceptions import ConflictError, ForbiddenError, InvalidInputError, NotFoundError
from taskhub.models.custom_property import CustomProperty
from taskhub.models.organization import MemberRole, Organization, OrganizationMember
from taskhub.models.project import Project
from taskhub.models.user import User
from taskhub.services.access_control import (
    MANAGE_ROLES,
    OWNER_ROLES,
    READ_ROLES,
    authorize,
    get_membership,
    resolve_organization,
)
from taskhub.services.cascade import delete_projects
from taskhub.services.pagination import PageParams, PaginatedResult, paginate
from taskhub.utils.text import slugify

logger = structlog.get_logger()

LAST_OWNER_MESSAGE = "An organization must keep at least one owner."


@dataclass
class OrganizationSummary:
    """An organization as listed for one of its members."""

    organization: Organization
    role: MemberRole
    member_count: int


@dataclass
class OrganizationDetail:
    organization: Organization
    role: MemberRole
    member_count: int
    project_count: int


@dataclass
class MemberView:
    """A membership row joined with the member's public identity."""

    user_id: UUID
    username: str
    email: str
    role: MemberRole
    joined_at: datetime

    @classmethod
    def build(cls, membership: OrganizationMember, user: User) -> "MemberView":
        return cls(
            user_id=user.id,
            username=user.username,
            email=user.email,
            role=membership.role,
            joined_at=membership.joined_at,
        )


class OrganizationService:
    """Service for organizations, their members and member roles."""

    def __init__(self, db: AsyncSession):
        self.db = db

    # =========================================================================
    # Organizations
    # =========================================================================

    async def create_organization(self, actor_id: UUID, name: str) -> Organization:
        """Create an organization with the actor as its sole owner.

        The organization row and the owner membership are written together.
        """
        name = name.strip()
        slug = slugify(name)
        if not slug:
            raise InvalidInputError("Organization name must contain letters or digits.")

        await self._ensure_name_available(name, slug)

        async with atomic(self.db, "An organization with this name already exists."):
            organization = Organization(name=name, slug=slug)
            self.db.add(organization)
            await self.db.flush()
            self.db.add(
                OrganizationMember(
                    organization_id=organization.id,
                    user_id=actor_id,
                    role=MemberRole.OWNER,
                )
            )

        logger.info(
            "organization_created",
            organization_id=str(organization.id),
            slug=slug,
            owner_id=str(actor_id),
        )
        return organization

    async def list_user_organizations(
        self,
        actor_id: UUID,
        page: int | None = None,
        limit: int | None = None,
    ) -> PaginatedResult[OrganizationSummary]:
        """Organizations the actor belongs to, with the actor's role and member counts."""
        counted = aliased(OrganizationMember)
        member_count = (
            select(func.count())
            .select_from(counted)
            .where(counted.organization_id == Organization.id)
            .correlate(Organization)
            .scalar_subquery()
        )
        statement = (
            select(Organization, OrganizationMember.role, member_count.label("member_count"))
            .join(OrganizationMember, OrganizationMember.organization_id == Organization.id)
            .where(OrganizationMember.user_id == actor_id)
        )

        result = await paginate(
            self.db,
            statement,
            PageParams.normalize(page, limit),
            order_by=[Organization.created_at.desc(), Organization.id.desc()],
            scalars=False,
        )
        return result.map(
            lambda row: OrganizationSummary(
                organization=row[0], role=row[1], member_count=row[2]
            )
        )

    async def get_organization(self, actor_id: UUID, organization_id: UUID) -> OrganizationDetail:
        organization = await resolve_organization(self.db, organization_id)
        membership = await authorize(self.db, actor_id, organization_id, READ_ROLES)

        member_count = await self.db.scalar(
            select(func.count())
            .select_from(OrganizationMember)
            .where(OrganizationMember.organization_id == organization_id)
        )
        project_count = await self.db.scalar(
            select(func.count())
            .select_from(Project)
            .where(Project.organization_id == organization_id)
        )

        return OrganizationDetail(
            organization=organization,
            role=membership.role,
            member_count=member_count or 0,
            project_count=project_count or 0,
        )

    async def update_organization(
        self,
        actor_id: UUID,
        organization_id: UUID,
        name: str | None = None,
    ) -> Organization:
        """Rename an organization; the slug follows the name."""
        organization = await resolve_organization(self.db, organization_id)
        await authorize(self.db, actor_id, organization_id, MANAGE_ROLES)

        if name is not None and name.strip() != organization.name:
            name = name.strip()
            slug = slugify(name)
            if not slug:
                raise InvalidInputError("Organization name must contain letters or digits.")
            await self._ensure_name_available(name, slug, exclude_id=organization_id)

            async with atomic(self.db, "An organization with this name already exists."):
                organization.name = name
                organization.slug = slug

            logger.info("organization_updated", organization_id=str(organization_id), slug=slug)

        return organization

    async def delete_organization(self, actor_id: UUID, organization_id: UUID) -> None:
        """Delete an organization and everything it owns. Owners only."""
        await resolve_organization(self.db, organization_id)
        await authorize(self.db, actor_id, organization_id, OWNER_ROLES)

        async with atomic(self.db):
            await delete_projects(
                self.db,
                select(Project.id).where(Project.organization_id == organization_id),
            )
            await self.db.execute(
                delete(CustomProperty).where(CustomProperty.organization_id == organization_id)
            )
            await self.db.execute(
                delete(OrganizationMember).where(
                    OrganizationMember.organization_id == organization_id
                )
            )
            await self.db.execute(delete(Organization).where(Organization.id == organization_id))

        logger.info(
            "organization_deleted",
            organization_id=str(organization_id),
            deleted_by=str(actor_id),
        )

    async def _ensure_name_available(
        self,
        name: str,
        slug: str,
        exclude_id: UUID | None = None,
    ) -> None:
        query = select(Organization.id).where(
            or_(func.lower(Organization.name) == name.lower(), Organization.slug == slug)
        )
        if exclude_id is not None:
            query = query.where(Organization.id != exclude_id)

        if (await self.db.execute(query.limit(1))).first() is not None:
            raise ConflictError("An organization with this name already exists.")

    # =========================================================================
    # Members
    # =========================================================================

    async def list_members(
        self,
        actor_id: UUID,
        organization_id: UUID,
        page: int | None = None,
        limit: int | None = None,
    ) -> PaginatedResult[MemberView]:
        await resolve_organization(self.db, organization_id)
        await authorize(self.db, actor_id, organization_id, READ_ROLES)

        statement = (
            select(OrganizationMember, User)
            .join(User, User.id == OrganizationMember.user_id)
            .where(OrganizationMember.organization_id == organization_id)
        )
        result = await paginate(
            self.db,
            statement,
            PageParams.normalize(page, limit),
            order_by=[OrganizationMember.joined_at.asc(), OrganizationMember.user_id.asc()],
            scalars=False,
        )
        return result.map(lambda row: MemberView.build(row[0], row[1]))

    async def invite_member(
        self,
        actor_id: UUID,
        organization_id: UUID,
        email: str,
        role: MemberRole = MemberRole.MEMBER,
    ) -> MemberView:
        """Add an existing user, found by email, to the organization."""
        await resolve_organization(self.db, organization_id)
        actor = await authorize(self.db, actor_id, organization_id, MANAGE_ROLES)

        if role == MemberRole.OWNER and actor.role != MemberRole.OWNER:
            raise ForbiddenError("Only owners can grant the owner role.")

        result = await self.db.execute(
            select(User).where(func.lower(User.email) == email.strip().lower())
        )
        user = result.scalar_one_or_none()
        if user is None:
            raise NotFoundError("User", "No user with this email exists.")

        if await get_membership(self.db, user.id, organization_id) is not None:
            raise ConflictError("User is already a member of this organization.")

        membership = OrganizationMember(
            organization_id=organization_id,
            user_id=user.id,
            role=role,
        )
        async with atomic(self.db, "User is already a member of this organization."):
            self.db.add(membership)

        logger.info(
            "member_invited",
            organization_id=str(organization_id),
            user_id=str(user.id),
            role=role.value,
            invited_by=str(actor_id),
        )
        return MemberView.build(membership, user)

    async def update_member_role(
        self,
        actor_id: UUID,
        organization_id: UUID,
        user_id: UUID,
        role: MemberRole,
    ) -> MemberView:
        """Change a member's role, keeping at least one owner."""
        await resolve_organization(self.db, organization_id)
        actor = await authorize(self.db, actor_id, organization_id, MANAGE_ROLES)
        target = await self._get_target_member(actor, organization_id, user_id)

        if role == MemberRole.OWNER and actor.role != MemberRole.OWNER:
            raise ForbiddenError("Only owners can grant the owner role.")

        if target.role != role:
            demoting_owner = target.role == MemberRole.OWNER
            if demoting_owner:
                await self._ensure_other_owner(organization_id)

            async with atomic(self.db):
                if demoting_owner:
                    await self._ensure_other_owner(organization_id, lock=True)
                previous = target.role
                target.role = role

            logger.info(
                "member_role_updated",
                organization_id=str(organization_id),
                user_id=str(user_id),
                old_role=previous.value,
                new_role=role.value,
                updated_by=str(actor_id),
            )

        user = await self.db.get(User, user_id)
        return MemberView.build(target, user)

    async def remove_member(self, actor_id: UUID, organization_id: UUID, user_id: UUID) -> None:
        """Remove a member, keeping at least one owner."""
        await resolve_organization(self.db, organization_id)
        actor = await authorize(self.db, actor_id, organization_id, MANAGE_ROLES)
        target = await self._get_target_member(actor, organization_id, user_id)

        removing_owner = target.role == MemberRole.OWNER
        if removing_owner:
            await self._ensure_other_owner(organization_id)

        async with atomic(self.db):
            if removing_owner:
                await self._ensure_other_owner(organization_id, lock=True)
            await self.db.delete(target)

        logger.info(
            "member_removed",
            organization_id=str(organization_id),
            user_id=str(user_id),
            removed_by=str(actor_id),
        )

    async def _get_target_member(
        self,
        actor: OrganizationMember,
        organization_id: UUID,
        user_id: UUID,
    ) -> OrganizationMember:
        target = await get_membership(self.db, user_id, organization_id)
        if target is None:
            raise NotFoundError("Member", "Member not found in this organization.")
        if target.role == MemberRole.OWNER and actor.role != MemberRole.OWNER:
            raise ForbiddenError("Only owners can change another owner's membership.")
        return target

    async def _ensure_other_owner(self, organization_id: UUID, lock: bool = False) -> None:
        """Raise unless the organization has an owner besides the one being changed.

        With ``lock`` the owner rows are read ``FOR UPDATE`` so concurrent demotions
        serialize on them.
        """
        query = select(OrganizationMember.user_id).where(
            OrganizationMember.organization_id == organization_id,
            OrganizationMember.role == MemberRole.OWNER,
        )
        if lock:
            query = query.with_for_update()

        owners = (await self.db.execute(query)).scalars().all()
        if len(owners) <= 1:
            raise ConflictError(LAST_OWNER_MESSAGE, code="LAST_OWNER")
