"""Project endpoints."""

from datetime import datetime
from uuid import UUID

import structlog
from fastapi import APIRouter, status
from pydantic import BaseModel, Field

from taskhub.api.v1.auth import CurrentUser
from taskhub.api.v1.common import Page
from taskhub.db.session import DBSession
from taskhub.models.project import Project, TaskPriority, TaskStatus
from taskhub.services.filters import ProjectFilters
from taskhub.services.project import ProjectDetail, ProjectService, ProjectStats, ProjectSummary

router = APIRouter()
logger = structlog.get_logger()


class ProjectCreate(BaseModel):
    """Project create request."""

    name: str = Field(..., min_length=1, max_length=255)
    description: str | None = Field(None, max_length=2000)


class ProjectUpdate(BaseModel):
    name: str | None = Field(None, min_length=1, max_length=255)
    description: str | None = Field(None, max_length=2000)


class ProjectResponse(BaseModel):
    """Project response."""

    id: UUID
    organization_id: UUID
    name: str
    description: str | None
    created_by_id: UUID | None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class ProjectListItem(ProjectResponse):
    task_count: int
    completion_rate: float

    @classmethod
    def from_summary(cls, summary: ProjectSummary) -> "ProjectListItem":
        base = ProjectResponse.model_validate(summary.project)
        return cls(
            **base.model_dump(),
            task_count=summary.task_count,
            completion_rate=summary.completion_rate,
        )


class AssigneeWorkloadResponse(BaseModel):
    user_id: UUID
    username: str
    task_count: int

    class Config:
        from_attributes = True


class ProjectStatsResponse(BaseModel):
    """Task statistics for a project."""

    total_tasks: int
    completed_tasks: int
    overdue_tasks: int
    completion_rate: float
    status_breakdown: dict[TaskStatus, int]
    priority_breakdown: dict[TaskPriority, int]
    assignees: list[AssigneeWorkloadResponse]

    class Config:
        from_attributes = True


class ProjectDetailResponse(ProjectResponse):
    stats: ProjectStatsResponse

    @classmethod
    def from_detail(cls, detail: ProjectDetail) -> "ProjectDetailResponse":
        base = ProjectResponse.model_validate(detail.project)
        return cls(**base.model_dump(), stats=ProjectStatsResponse.model_validate(detail.stats))


@router.post(
    "/organizations/{org_id}/projects",
    response_model=ProjectResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_project(
    org_id: UUID,
    project_data: ProjectCreate,
    current_user: CurrentUser,
    db: DBSession,
) -> Project:
    """Create a project in an organization."""
    return await ProjectService(db).create_project(
        current_user.id,
        org_id,
        name=project_data.name,
        description=project_data.description,
    )


@router.get("/organizations/{org_id}/projects", response_model=Page[ProjectListItem])
async def list_organization_projects(
    org_id: UUID,
    current_user: CurrentUser,
    db: DBSession,
    name: str | None = None,
    created_by: UUID | None = None,
    sort_by: str | None = None,
    sort_order: str | None = None,
    page: int | None = None,
    limit: int | None = None,
) -> Page[ProjectListItem]:
    """List an organization's projects with task counts and completion rates."""
    result = await ProjectService(db).list_organization_projects(
        current_user.id,
        org_id,
        filters=ProjectFilters(name=name, created_by_id=created_by),
        sort_by=sort_by,
        sort_order=sort_order,
        page=page,
        limit=limit,
    )
    return Page[ProjectListItem].build(result, ProjectListItem.from_summary)


@router.get("/projects/{project_id}", response_model=ProjectDetailResponse)
async def get_project(
    project_id: UUID,
    current_user: CurrentUser,
    db: DBSession,
) -> ProjectDetailResponse:
    """Get a project with its statistics."""
    detail = await ProjectService(db).get_project(current_user.id, project_id)
    return ProjectDetailResponse.from_detail(detail)


@router.get("/projects/{project_id}/stats", response_model=ProjectStatsResponse)
async def get_project_stats(
    project_id: UUID,
    current_user: CurrentUser,
    db: DBSession,
) -> ProjectStats:
    return await ProjectService(db).get_project_stats(current_user.id, project_id)


@router.put("/projects/{project_id}", response_model=ProjectResponse)
async def update_project(
    project_id: UUID,
    updates: ProjectUpdate,
    current_user: CurrentUser,
    db: DBSession,
) -> Project:
    return await ProjectService(db).update_project(
        current_user.id, project_id, updates.model_dump(exclude_unset=True)
    )


@router.delete("/projects/{project_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_project(
    project_id: UUID,
    current_user: CurrentUser,
    db: DBSession,
) -> None:
    """Delete a project and all of its tasks. Requires owner or admin."""
    await ProjectService(db).delete_project(current_user.id, project_id)
