"""Organization and membership endpoints."""

from datetime import datetime
from uuid import UUID

import structlog
from fastapi import APIRouter, status
from pydantic import BaseModel, EmailStr, Field

from taskhub.api.v1.auth import CurrentUser
from taskhub.api.v1.common import Page
from taskhub.db.session import DBSession
from taskhub.models.organization import MemberRole, Organization
from taskhub.services.organization import (
    MemberView,
    OrganizationDetail,
    OrganizationService,
    OrganizationSummary,
)

router = APIRouter()
logger = structlog.get_logger()


class OrganizationCreate(BaseModel):
    """Organization create request. The slug is derived from the name."""

    name: str = Field(..., min_length=1, max_length=100)


class OrganizationUpdate(BaseModel):
    name: str | None = Field(None, min_length=1, max_length=100)


class OrganizationResponse(BaseModel):
    """Organization response."""

    id: UUID
    name: str
    slug: str
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class OrganizationListItem(OrganizationResponse):
    """Organization as seen by one of its members."""

    role: MemberRole
    member_count: int

    @classmethod
    def from_summary(cls, summary: OrganizationSummary) -> "OrganizationListItem":
        base = OrganizationResponse.model_validate(summary.organization)
        return cls(**base.model_dump(), role=summary.role, member_count=summary.member_count)


class OrganizationDetailResponse(OrganizationListItem):
    project_count: int

    @classmethod
    def from_detail(cls, detail: OrganizationDetail) -> "OrganizationDetailResponse":
        base = OrganizationResponse.model_validate(detail.organization)
        return cls(
            **base.model_dump(),
            role=detail.role,
            member_count=detail.member_count,
            project_count=detail.project_count,
        )


class MemberResponse(BaseModel):
    """Organization member response."""

    user_id: UUID
    username: str
    email: str
    role: MemberRole
    joined_at: datetime

    class Config:
        from_attributes = True


class MemberInvite(BaseModel):
    """Member invite request."""

    email: EmailStr
    role: MemberRole = MemberRole.MEMBER


class MemberRoleUpdate(BaseModel):
    role: MemberRole


@router.post("", response_model=OrganizationResponse, status_code=status.HTTP_201_CREATED)
async def create_organization(
    org_data: OrganizationCreate,
    current_user: CurrentUser,
    db: DBSession,
) -> Organization:
    """Create an organization owned by the current user."""
    return await OrganizationService(db).create_organization(current_user.id, org_data.name)


@router.get("", response_model=Page[OrganizationListItem])
async def list_my_organizations(
    current_user: CurrentUser,
    db: DBSession,
    page: int | None = None,
    limit: int | None = None,
) -> Page[OrganizationListItem]:
    """List organizations the current user belongs to."""
    result = await OrganizationService(db).list_user_organizations(current_user.id, page, limit)
    return Page[OrganizationListItem].build(result, OrganizationListItem.from_summary)


@router.get("/{org_id}", response_model=OrganizationDetailResponse)
async def get_organization(
    org_id: UUID,
    current_user: CurrentUser,
    db: DBSession,
) -> OrganizationDetailResponse:
    detail = await OrganizationService(db).get_organization(current_user.id, org_id)
    return OrganizationDetailResponse.from_detail(detail)


@router.put("/{org_id}", response_model=OrganizationResponse)
async def update_organization(
    org_id: UUID,
    updates: OrganizationUpdate,
    current_user: CurrentUser,
    db: DBSession,
) -> Organization:
    """Rename an organization. Requires owner or admin."""
    return await OrganizationService(db).update_organization(
        current_user.id, org_id, name=updates.name
    )


@router.delete("/{org_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_organization(
    org_id: UUID,
    current_user: CurrentUser,
    db: DBSession,
) -> None:
    """Delete an organization and everything in it. Requires owner."""
    await OrganizationService(db).delete_organization(current_user.id, org_id)


@router.post(
    "/{org_id}/invite",
    response_model=MemberResponse,
    status_code=status.HTTP_201_CREATED,
)
async def invite_member(
    org_id: UUID,
    invite: MemberInvite,
    current_user: CurrentUser,
    db: DBSession,
) -> MemberView:
    """Add a registered user to the organization."""
    return await OrganizationService(db).invite_member(
        current_user.id, org_id, invite.email, invite.role
    )


@router.get("/{org_id}/members", response_model=Page[MemberResponse])
async def list_members(
    org_id: UUID,
    current_user: CurrentUser,
    db: DBSession,
    page: int | None = None,
    limit: int | None = None,
) -> Page[MemberResponse]:
    result = await OrganizationService(db).list_members(current_user.id, org_id, page, limit)
    return Page[MemberResponse].build(result, MemberResponse.model_validate)


@router.put("/{org_id}/members/{user_id}", response_model=MemberResponse)
async def update_member_role(
    org_id: UUID,
    user_id: UUID,
    update: MemberRoleUpdate,
    current_user: CurrentUser,
    db: DBSession,
) -> MemberView:
    """Change a member's role. The last owner cannot be demoted."""
    return await OrganizationService(db).update_member_role(
        current_user.id, org_id, user_id, update.role
    )


@router.delete("/{org_id}/members/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_member(
    org_id: UUID,
    user_id: UUID,
    current_user: CurrentUser,
    db: DBSession,
) -> None:
    """Remove a member. The last owner cannot be removed."""
    await OrganizationService(db).remove_member(current_user.id, org_id, user_id)
