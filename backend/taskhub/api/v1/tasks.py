"""Task endpoints."""

from datetime import datetime
from uuid import UUID

import structlog
from fastapi import APIRouter, Query, status
from pydantic import BaseModel, Field

from taskhub.api.v1.auth import CurrentUser
from taskhub.api.v1.common import Page
from taskhub.api.v1.custom_properties import PropertyValueResponse
from taskhub.db.session import DBSession
from taskhub.models.project import Task, TaskPriority, TaskStatus
from taskhub.services.filters import TaskFilters
from taskhub.services.task import TaskDetail, TaskSearchHit, TaskService

router = APIRouter()
logger = structlog.get_logger()


class TaskCreate(BaseModel):
    """Task create request."""

    title: str = Field(..., min_length=1, max_length=255)
    description: str | None = Field(None, max_length=2000)
    status: TaskStatus = TaskStatus.TODO
    priority: TaskPriority = TaskPriority.MEDIUM
    assignee_id: UUID | None = None
    due_date: datetime | None = None


class TaskUpdate(BaseModel):
    """Partial task update; omitted fields are left unchanged."""

    title: str | None = Field(None, min_length=1, max_length=255)
    description: str | None = Field(None, max_length=2000)
    status: TaskStatus | None = None
    priority: TaskPriority | None = None
    assignee_id: UUID | None = None
    due_date: datetime | None = None


class TaskAssign(BaseModel):
    """Assign request; a null assignee unassigns the task."""

    assignee_id: UUID | None


class TaskStatusUpdate(BaseModel):
    status: TaskStatus


class TaskResponse(BaseModel):
    """Task response."""

    id: UUID
    project_id: UUID
    title: str
    description: str | None
    status: TaskStatus
    priority: TaskPriority
    assignee_id: UUID | None
    assignee_username: str | None = None
    created_by_id: UUID | None
    due_date: datetime | None
    completed_at: datetime | None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class TaskDetailResponse(TaskResponse):
    comment_count: int
    property_values: list[PropertyValueResponse]

    @classmethod
    def from_detail(cls, detail: TaskDetail) -> "TaskDetailResponse":
        base = TaskResponse.model_validate(detail.task)
        return cls(
            **base.model_dump(),
            comment_count=detail.comment_count,
            property_values=[
                PropertyValueResponse.model_validate(value) for value in detail.property_values
            ],
        )


class TaskSearchResult(TaskResponse):
    project_name: str
    organization_id: UUID

    @classmethod
    def from_hit(cls, hit: TaskSearchHit) -> "TaskSearchResult":
        base = TaskResponse.model_validate(hit.task)
        return cls(
            **base.model_dump(),
            project_name=hit.project_name,
            organization_id=hit.organization_id,
        )


@router.post(
    "/projects/{project_id}/tasks",
    response_model=TaskResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_task(
    project_id: UUID,
    task_data: TaskCreate,
    current_user: CurrentUser,
    db: DBSession,
) -> Task:
    """Create a task in a project."""
    return await TaskService(db).create_task(
        current_user.id,
        project_id,
        title=task_data.title,
        description=task_data.description,
        status=task_data.status,
        priority=task_data.priority,
        assignee_id=task_data.assignee_id,
        due_date=task_data.due_date,
    )


@router.get("/projects/{project_id}/tasks", response_model=Page[TaskResponse])
async def list_project_tasks(
    project_id: UUID,
    current_user: CurrentUser,
    db: DBSession,
    status_filter: list[TaskStatus] | None = Query(None, alias="status"),
    priority: list[TaskPriority] | None = Query(None),
    assignee_id: list[UUID] | None = Query(None),
    due_from: datetime | None = None,
    due_to: datetime | None = None,
    search: str | None = Query(None, max_length=100),
    sort_by: str | None = None,
    sort_order: str | None = None,
    page: int | None = None,
    limit: int | None = None,
) -> Page[TaskResponse]:
    """List a project's tasks with filtering, sorting and pagination.

    Repeat ``status``, ``priority`` or ``assignee_id`` to match any of several values.
    """
    filters = TaskFilters(
        statuses=status_filter,
        priorities=priority,
        assignee_ids=assignee_id,
        due_from=due_from,
        due_to=due_to,
        search=search,
    )
    result = await TaskService(db).list_project_tasks(
        current_user.id,
        project_id,
        filters=filters,
        sort_by=sort_by,
        sort_order=sort_order,
        page=page,
        limit=limit,
    )
    return Page[TaskResponse].build(result, TaskResponse.model_validate)


@router.get("/tasks/search", response_model=Page[TaskSearchResult])
async def search_tasks(
    current_user: CurrentUser,
    db: DBSession,
    q: str = Query(..., min_length=1, max_length=100),
    page: int | None = None,
    limit: int | None = None,
) -> Page[TaskSearchResult]:
    """Search task titles and descriptions across the user's organizations."""
    result = await TaskService(db).search_tasks(current_user.id, q, page, limit)
    return Page[TaskSearchResult].build(result, TaskSearchResult.from_hit)


@router.get("/tasks/{task_id}", response_model=TaskDetailResponse)
async def get_task(
    task_id: UUID,
    current_user: CurrentUser,
    db: DBSession,
) -> TaskDetailResponse:
    """Get a task with its comment count and custom property values."""
    detail = await TaskService(db).get_task(current_user.id, task_id)
    return TaskDetailResponse.from_detail(detail)


@router.put("/tasks/{task_id}", response_model=TaskResponse)
async def update_task(
    task_id: UUID,
    updates: TaskUpdate,
    current_user: CurrentUser,
    db: DBSession,
) -> Task:
    """Update a task."""
    return await TaskService(db).update_task(
        current_user.id, task_id, updates.model_dump(exclude_unset=True)
    )


@router.post("/tasks/{task_id}/assign", response_model=TaskResponse)
async def assign_task(
    task_id: UUID,
    assignment: TaskAssign,
    current_user: CurrentUser,
    db: DBSession,
) -> Task:
    return await TaskService(db).assign_task(current_user.id, task_id, assignment.assignee_id)


@router.put("/tasks/{task_id}/status", response_model=TaskResponse)
async def update_task_status(
    task_id: UUID,
    status_update: TaskStatusUpdate,
    current_user: CurrentUser,
    db: DBSession,
) -> Task:
    return await TaskService(db).update_task_status(
        current_user.id, task_id, status_update.status
    )


@router.delete("/tasks/{task_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_task(
    task_id: UUID,
    current_user: CurrentUser,
    db: DBSession,
) -> None:
    await TaskService(db).delete_task(current_user.id, task_id)
