"""Project and Task models."""

import enum
from datetime import datetime
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import DateTime, ForeignKey, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column, query_expression, relationship

from taskhub.db.base import BaseModel, enum_type

if TYPE_CHECKING:
    from taskhub.models.comment import Comment
    from taskhub.models.organization import Organization
    from taskhub.models.user import User


class TaskStatus(str, enum.Enum):
    """Task workflow status."""

    TODO = "todo"
    IN_PROGRESS = "in_progress"
    REVIEW = "review"
    DONE = "done"
    ARCHIVED = "archived"


class TaskPriority(str, enum.Enum):
    """Task priority, from least to most severe."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class Project(BaseModel):
    """Project within an organization."""

    __tablename__ = "projects"

    organization_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_by_id: Mapped[UUID | None] = mapped_column(
        Uuid,
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    # Relationships
    organization: Mapped["Organization"] = relationship("Organization")
    created_by: Mapped["User | None"] = relationship("User", foreign_keys=[created_by_id])
    tasks: Mapped[list["Task"]] = relationship("Task", back_populates="project")

    def __repr__(self) -> str:
        try:
            return f"<Project {self.name}>"
        except Exception:
            return f"<Project id={self.id}>"


class Task(BaseModel):
    """Task within a project.

    ``completed_at`` is non-null exactly when ``status`` is DONE; the task service
    maintains this on every write that can change the status.
    """

    __tablename__ = "tasks"

    project_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Status and priority
    status: Mapped[TaskStatus] = mapped_column(
        enum_type(TaskStatus), nullable=False, default=TaskStatus.TODO, index=True
    )
    priority: Mapped[TaskPriority] = mapped_column(
        enum_type(TaskPriority), nullable=False, default=TaskPriority.MEDIUM
    )

    # Ownership and assignment
    created_by_id: Mapped[UUID | None] = mapped_column(
        Uuid,
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )
    assignee_id: Mapped[UUID | None] = mapped_column(
        Uuid,
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    # Timeline
    due_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    # Filled in by queries that ask for it; None otherwise
    assignee_username: Mapped[str | None] = query_expression()

    # Relationships
    project: Mapped["Project"] = relationship("Project", back_populates="tasks")
    created_by: Mapped["User | None"] = relationship("User", foreign_keys=[created_by_id])
    assignee: Mapped["User | None"] = relationship("User", foreign_keys=[assignee_id])
    comments: Mapped[list["Comment"]] = relationship(
        "Comment", back_populates="task", passive_deletes=True
    )

    def __repr__(self) -> str:
        try:
            return f"<Task {self.title} [{self.status}]>"
        except Exception:
            return f"<Task id={self.id}>"
