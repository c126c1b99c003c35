"""Task management, including the status/completion lifecycle."""

from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime
from typing import Any
from uuid import UUID

import structlog
from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import with_expression

from taskhub.db.base import as_utc, utcnow
from taskhub.db.transaction import atomic
from taskhub.exceptions import InvalidInputError
from taskhub.models.comment import Comment
from taskhub.models.custom_property import EntityType
from taskhub.models.organization import OrganizationMember
from taskhub.models.project import Project, Task, TaskPriority, TaskStatus
from taskhub.models.user import User
from taskhub.services.access_control import (
    READ_ROLES,
    WRITE_ROLES,
    authorize,
    get_membership,
    resolve_project,
    resolve_task_chain,
)
from taskhub.services.cascade import delete_tasks
from taskhub.services.custom_property import PropertyValueView, load_entity_values
from taskhub.services.filters import (
    LIKE_ESCAPE,
    TASK_SORT_FIELDS,
    TaskFilters,
    contains_pattern,
)
from taskhub.services.pagination import PageParams, PaginatedResult, SortSpec, paginate

logger = structlog.get_logger()

UPDATABLE_FIELDS = frozenset(
    {"title", "description", "status", "priority", "assignee_id", "due_date"}
)


def parse_status(value: TaskStatus | str) -> TaskStatus:
    try:
        return TaskStatus(value)
    except ValueError:
        raise InvalidInputError(f"Invalid task status: {value!r}.") from None


def parse_priority(value: TaskPriority | str) -> TaskPriority:
    try:
        return TaskPriority(value)
    except ValueError:
        raise InvalidInputError(f"Invalid task priority: {value!r}.") from None


def apply_status(task: Task, status: TaskStatus, now: datetime | None = None) -> None:
    """Set ``status`` and keep ``completed_at`` non-null exactly while DONE.

    Entering DONE stamps the completion time; staying in DONE keeps the original
    stamp; any other status clears it.
    """
    if status == TaskStatus.DONE:
        if task.status != TaskStatus.DONE or task.completed_at is None:
            task.completed_at = now or utcnow()
    else:
        task.completed_at = None
    task.status = status


def with_assignee_username():
    """Loader option filling ``Task.assignee_username``."""
    return with_expression(
        Task.assignee_username,
        select(User.username)
        .where(User.id == Task.assignee_id)
        .correlate(Task)
        .scalar_subquery(),
    )


@dataclass
class TaskDetail:
    task: Task
    comment_count: int
    property_values: list[PropertyValueView]


@dataclass
class TaskSearchHit:
    """A search match with enough context to navigate to it."""

    task: Task
    project_name: str
    organization_id: UUID


class TaskService:
    """Service for tasks within a project."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def create_task(
        self,
        actor_id: UUID,
        project_id: UUID,
        title: str,
        description: str | None = None,
        status: TaskStatus | str = TaskStatus.TODO,
        priority: TaskPriority | str = TaskPriority.MEDIUM,
        assignee_id: UUID | None = None,
        due_date: datetime | None = None,
    ) -> Task:
        project = await resolve_project(self.db, project_id)
        await authorize(self.db, actor_id, project.organization_id, WRITE_ROLES)

        title = title.strip()
        if not title:
            raise InvalidInputError("Task title must not be empty.")
        if assignee_id is not None:
            await self._ensure_assignable(project.organization_id, assignee_id)

        task = Task(
            project_id=project_id,
            title=title,
            description=description,
            priority=parse_priority(priority),
            assignee_id=assignee_id,
            due_date=as_utc(due_date),
            created_by_id=actor_id,
        )
        apply_status(task, parse_status(status))

        async with atomic(self.db):
            self.db.add(task)

        logger.info(
            "task_created",
            task_id=str(task.id),
            project_id=str(project_id),
            created_by=str(actor_id),
        )
        return await self._load(task.id)

    async def list_project_tasks(
        self,
        actor_id: UUID,
        project_id: UUID,
        filters: TaskFilters | None = None,
        sort_by: str | None = None,
        sort_order: str | None = None,
        page: int | None = None,
        limit: int | None = None,
    ) -> PaginatedResult[Task]:
        """Filtered, sorted page of a project's tasks."""
        project = await resolve_project(self.db, project_id)
        await authorize(self.db, actor_id, project.organization_id, READ_ROLES)

        sort = SortSpec.parse(sort_by, sort_order, TASK_SORT_FIELDS)
        statement = (filters or TaskFilters()).apply(
            select(Task).where(Task.project_id == project_id)
        )

        return await paginate(
            self.db,
            statement,
            PageParams.normalize(page, limit),
            order_by=sort.order_by(TASK_SORT_FIELDS, Task.id),
            options=[with_assignee_username()],
        )

    async def get_task(self, actor_id: UUID, task_id: UUID) -> TaskDetail:
        """A task with its comment count and custom property values."""
        _, project = await resolve_task_chain(self.db, task_id)
        await authorize(self.db, actor_id, project.organization_id, READ_ROLES)
        task = await self._load(task_id)

        comment_count = await self.db.scalar(
            select(func.count(Comment.id)).where(Comment.task_id == task_id)
        )
        values = await load_entity_values(self.db, EntityType.TASK, task_id)

        return TaskDetail(task=task, comment_count=comment_count or 0, property_values=values)

    async def update_task(
        self,
        actor_id: UUID,
        task_id: UUID,
        changes: Mapping[str, Any],
    ) -> Task:
        """Apply a partial update; only keys present in ``changes`` are written.

        A ``None`` assignee or due date clears it.
        """
        task, project = await resolve_task_chain(self.db, task_id)
        await authorize(self.db, actor_id, project.organization_id, WRITE_ROLES)

        unknown = set(changes) - UPDATABLE_FIELDS
        if unknown:
            raise InvalidInputError(f"Cannot update task fields: {', '.join(sorted(unknown))}.")

        # Validate everything before touching the task
        title = None
        if "title" in changes:
            title = (changes["title"] or "").strip()
            if not title:
                raise InvalidInputError("Task title must not be empty.")
        status = parse_status(changes["status"]) if "status" in changes else None
        priority = parse_priority(changes["priority"]) if "priority" in changes else None
        if changes.get("assignee_id") is not None:
            await self._ensure_assignable(project.organization_id, changes["assignee_id"])

        previous_status = task.status
        async with atomic(self.db):
            if title is not None:
                task.title = title
            if "description" in changes:
                task.description = changes["description"]
            if priority is not None:
                task.priority = priority
            if "assignee_id" in changes:
                task.assignee_id = changes["assignee_id"]
            if "due_date" in changes:
                task.due_date = as_utc(changes["due_date"])
            if status is not None:
                apply_status(task, status)

        logger.info(
            "task_updated",
            task_id=str(task_id),
            fields=sorted(changes),
            old_status=previous_status.value,
            new_status=task.status.value,
        )
        return await self._load(task_id)

    async def assign_task(self, actor_id: UUID, task_id: UUID, assignee_id: UUID | None) -> Task:
        """Assign a task to an organization member, or unassign it with ``None``."""
        return await self.update_task(actor_id, task_id, {"assignee_id": assignee_id})

    async def update_task_status(
        self, actor_id: UUID, task_id: UUID, status: TaskStatus | str
    ) -> Task:
        return await self.update_task(actor_id, task_id, {"status": status})

    async def delete_task(self, actor_id: UUID, task_id: UUID) -> None:
        """Delete a task with its comments, mentions and property values."""
        _, project = await resolve_task_chain(self.db, task_id)
        await authorize(self.db, actor_id, project.organization_id, WRITE_ROLES)

        async with atomic(self.db):
            await delete_tasks(self.db, select(Task.id).where(Task.id == task_id))

        logger.info("task_deleted", task_id=str(task_id), deleted_by=str(actor_id))

    async def search_tasks(
        self,
        actor_id: UUID,
        query: str,
        page: int | None = None,
        limit: int | None = None,
    ) -> PaginatedResult[TaskSearchHit]:
        """Case-insensitive substring search over every organization the actor belongs to."""
        query = query.strip()
        if not query:
            raise InvalidInputError("Search query must not be empty.")

        pattern = contains_pattern(query)
        actor_organizations = select(OrganizationMember.organization_id).where(
            OrganizationMember.user_id == actor_id
        )
        statement = (
            select(Task, Project.name, Project.organization_id)
            .join(Project, Project.id == Task.project_id)
            .where(
                Project.organization_id.in_(actor_organizations),
                or_(
                    Task.title.ilike(pattern, escape=LIKE_ESCAPE),
                    Task.description.ilike(pattern, escape=LIKE_ESCAPE),
                ),
            )
        )

        result = await paginate(
            self.db,
            statement,
            PageParams.normalize(page, limit),
            order_by=[Task.created_at.desc(), Task.id.desc()],
            scalars=False,
            options=[with_assignee_username()],
        )
        return result.map(
            lambda row: TaskSearchHit(task=row[0], project_name=row[1], organization_id=row[2])
        )

    async def _load(self, task_id: UUID) -> Task:
        result = await self.db.execute(
            select(Task)
            .where(Task.id == task_id)
            .options(with_assignee_username())
            .execution_options(populate_existing=True)
        )
        return result.scalar_one()

    async def _ensure_assignable(self, organization_id: UUID, assignee_id: UUID) -> None:
        if await get_membership(self.db, assignee_id, organization_id) is None:
            raise InvalidInputError(
                "Assignee is not a member of this organization.", code="INVALID_ASSIGNEE"
            )
