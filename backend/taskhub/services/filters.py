"""Typed filters and sort whitelists for task and project queries.

Filters compile to parameterized SQLAlchemy expressions. Multi-value filters are
OR'd within a field and AND'd across fields; an empty or absent filter places no
constraint.
"""

from collections.abc import Collection
from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from sqlalchemy import Select, case, or_

from taskhub.db.base import as_utc
from taskhub.models.project import Project, Task, TaskPriority, TaskStatus
from taskhub.utils.text import escape_like

LIKE_ESCAPE = "\\"

# Workflow order for sorting by status
STATUS_ORDER = case(
    {status: position for position, status in enumerate(TaskStatus)},
    value=Task.status,
)

# Severity order for sorting by priority
PRIORITY_ORDER = case(
    {priority: position for position, priority in enumerate(TaskPriority)},
    value=Task.priority,
)

TASK_SORT_FIELDS = {
    "created_at": Task.created_at,
    "updated_at": Task.updated_at,
    "due_date": Task.due_date,
    "title": Task.title,
    "status": STATUS_ORDER,
    "priority": PRIORITY_ORDER,
}

PROJECT_SORT_FIELDS = {
    "created_at": Project.created_at,
    "updated_at": Project.updated_at,
    "name": Project.name,
}


def contains_pattern(term: str) -> str:
    """LIKE pattern matching ``term`` anywhere, with its wildcards escaped."""
    return f"%{escape_like(term, LIKE_ESCAPE)}%"


@dataclass(frozen=True)
class TaskFilters:
    """Filter set for task listings."""

    statuses: Collection[TaskStatus] | None = None
    priorities: Collection[TaskPriority] | None = None
    assignee_ids: Collection[UUID] | None = None
    due_from: datetime | None = None
    due_to: datetime | None = None
    search: str | None = None

    def apply(self, statement: Select) -> Select:
        if self.statuses:
            statement = statement.where(Task.status.in_(list(self.statuses)))
        if self.priorities:
            statement = statement.where(Task.priority.in_(list(self.priorities)))
        if self.assignee_ids:
            statement = statement.where(Task.assignee_id.in_(list(self.assignee_ids)))
        if self.due_from is not None:
            statement = statement.where(Task.due_date >= as_utc(self.due_from))
        if self.due_to is not None:
            statement = statement.where(Task.due_date <= as_utc(self.due_to))
        if self.search:
            pattern = contains_pattern(self.search)
            statement = statement.where(
                or_(
                    Task.title.ilike(pattern, escape=LIKE_ESCAPE),
                    Task.description.ilike(pattern, escape=LIKE_ESCAPE),
                )
            )
        return statement


@dataclass(frozen=True)
class ProjectFilters:
    """Filter set for project listings."""

    name: str | None = None
    created_by_id: UUID | None = None

    def apply(self, statement: Select) -> Select:
        if self.name:
            statement = statement.where(
                Project.name.ilike(contains_pattern(self.name), escape=LIKE_ESCAPE)
            )
        if self.created_by_id is not None:
            statement = statement.where(Project.created_by_id == self.created_by_id)
        return statement
