"""Project management and project statistics."""

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any
from uuid import UUID

import structlog
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from taskhub.db.base import utcnow
from taskhub.db.transaction import atomic
from taskhub.exceptions import InvalidInputError
from taskhub.models.project import Project, Task, TaskPriority, TaskStatus
from taskhub.models.user import User
from taskhub.services.access_control import (
    MANAGE_ROLES,
    READ_ROLES,
    WRITE_ROLES,
    authorize,
    resolve_organization,
    resolve_project,
)
from taskhub.services.cascade import delete_projects
from taskhub.services.filters import PROJECT_SORT_FIELDS, ProjectFilters
from taskhub.services.pagination import PageParams, PaginatedResult, SortSpec, paginate

logger = structlog.get_logger()

UPDATABLE_FIELDS = frozenset({"name", "description"})


def completion_rate(completed: int, total: int) -> float:
    """Percentage of completed tasks, 0 for an empty project."""
    if total == 0:
        return 0.0
    return round(completed * 100.0 / total, 2)


@dataclass
class AssigneeWorkload:
    user_id: UUID
    username: str
    task_count: int


@dataclass
class ProjectStats:
    """Task statistics for a single project."""

    total_tasks: int = 0
    completed_tasks: int = 0
    overdue_tasks: int = 0
    completion_rate: float = 0.0
    status_breakdown: dict[TaskStatus, int] = field(default_factory=dict)
    priority_breakdown: dict[TaskPriority, int] = field(default_factory=dict)
    assignees: list[AssigneeWorkload] = field(default_factory=list)


@dataclass
class ProjectSummary:
    """A project as listed within its organization."""

    project: Project
    task_count: int
    completion_rate: float


@dataclass
class ProjectDetail:
    project: Project
    stats: ProjectStats


class ProjectService:
    """Service for projects within an organization."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def create_project(
        self,
        actor_id: UUID,
        organization_id: UUID,
        name: str,
        description: str | None = None,
    ) -> Project:
        await resolve_organization(self.db, organization_id)
        await authorize(self.db, actor_id, organization_id, WRITE_ROLES)

        name = name.strip()
        if not name:
            raise InvalidInputError("Project name must not be empty.")

        project = Project(
            organization_id=organization_id,
            name=name,
            description=description,
            created_by_id=actor_id,
        )
        async with atomic(self.db):
            self.db.add(project)

        logger.info(
            "project_created",
            project_id=str(project.id),
            organization_id=str(organization_id),
            created_by=str(actor_id),
        )
        return project

    async def list_organization_projects(
        self,
        actor_id: UUID,
        organization_id: UUID,
        filters: ProjectFilters | None = None,
        sort_by: str | None = None,
        sort_order: str | None = None,
        page: int | None = None,
        limit: int | None = None,
    ) -> PaginatedResult[ProjectSummary]:
        """Filtered, sorted page of an organization's projects with task counts."""
        await resolve_organization(self.db, organization_id)
        await authorize(self.db, actor_id, organization_id, READ_ROLES)

        sort = SortSpec.parse(sort_by, sort_order, PROJECT_SORT_FIELDS)

        task_count = (
            select(func.count(Task.id))
            .where(Task.project_id == Project.id)
            .correlate(Project)
            .scalar_subquery()
        )
        done_count = (
            select(func.count(Task.id))
            .where(Task.project_id == Project.id, Task.status == TaskStatus.DONE)
            .correlate(Project)
            .scalar_subquery()
        )
        statement = select(
            Project,
            task_count.label("task_count"),
            done_count.label("done_count"),
        ).where(Project.organization_id == organization_id)
        statement = (filters or ProjectFilters()).apply(statement)

        result = await paginate(
            self.db,
            statement,
            PageParams.normalize(page, limit),
            order_by=sort.order_by(PROJECT_SORT_FIELDS, Project.id),
            scalars=False,
        )
        return result.map(
            lambda row: ProjectSummary(
                project=row[0],
                task_count=row[1],
                completion_rate=completion_rate(row[2], row[1]),
            )
        )

    async def get_project(self, actor_id: UUID, project_id: UUID) -> ProjectDetail:
        project = await resolve_project(self.db, project_id)
        await authorize(self.db, actor_id, project.organization_id, READ_ROLES)
        return ProjectDetail(project=project, stats=await self._compute_stats(project_id))

    async def get_project_stats(self, actor_id: UUID, project_id: UUID) -> ProjectStats:
        project = await resolve_project(self.db, project_id)
        await authorize(self.db, actor_id, project.organization_id, READ_ROLES)
        return await self._compute_stats(project_id)

    async def update_project(
        self,
        actor_id: UUID,
        project_id: UUID,
        changes: Mapping[str, Any],
    ) -> Project:
        """Apply a partial update; only keys present in ``changes`` are written."""
        project = await resolve_project(self.db, project_id)
        await authorize(self.db, actor_id, project.organization_id, WRITE_ROLES)

        unknown = set(changes) - UPDATABLE_FIELDS
        if unknown:
            raise InvalidInputError(f"Cannot update project fields: {', '.join(sorted(unknown))}.")

        name = None
        if "name" in changes:
            name = (changes["name"] or "").strip()
            if not name:
                raise InvalidInputError("Project name must not be empty.")

        async with atomic(self.db):
            if name is not None:
                project.name = name
            if "description" in changes:
                project.description = changes["description"]

        logger.info("project_updated", project_id=str(project_id), fields=sorted(changes))
        return project

    async def delete_project(self, actor_id: UUID, project_id: UUID) -> None:
        """Delete a project with its tasks, comments, mentions and property values."""
        project = await resolve_project(self.db, project_id)
        await authorize(self.db, actor_id, project.organization_id, MANAGE_ROLES)

        async with atomic(self.db):
            await delete_projects(self.db, select(Project.id).where(Project.id == project_id))

        logger.info("project_deleted", project_id=str(project_id), deleted_by=str(actor_id))

    async def _compute_stats(self, project_id: UUID) -> ProjectStats:
        in_project = Task.project_id == project_id

        status_rows = await self.db.execute(
            select(Task.status, func.count(Task.id)).where(in_project).group_by(Task.status)
        )
        status_breakdown = {status: 0 for status in TaskStatus}
        status_breakdown.update({status: count for status, count in status_rows.all()})

        priority_rows = await self.db.execute(
            select(Task.priority, func.count(Task.id)).where(in_project).group_by(Task.priority)
        )
        priority_breakdown = {priority: 0 for priority in TaskPriority}
        priority_breakdown.update({priority: count for priority, count in priority_rows.all()})

        overdue = await self.db.scalar(
            select(func.count(Task.id)).where(
                in_project,
                Task.due_date.is_not(None),
                Task.due_date < utcnow(),
                Task.status != TaskStatus.DONE,
            )
        )

        assignee_rows = await self.db.execute(
            select(User.id, User.username, func.count(Task.id).label("task_count"))
            .join(Task, Task.assignee_id == User.id)
            .where(in_project)
            .group_by(User.id, User.username)
            .order_by(func.count(Task.id).desc(), User.username.asc())
        )

        total = sum(status_breakdown.values())
        completed = status_breakdown[TaskStatus.DONE]
        return ProjectStats(
            total_tasks=total,
            completed_tasks=completed,
            overdue_tasks=overdue or 0,
            completion_rate=completion_rate(completed, total),
            status_breakdown=status_breakdown,
            priority_breakdown=priority_breakdown,
            assignees=[
                AssigneeWorkload(user_id=user_id, username=username, task_count=count)
                for user_id, username, count in assignee_rows.all()
            ],
        )
