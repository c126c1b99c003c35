"""Comment and mention models."""

from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import ForeignKey, Text, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from taskhub.db.base import BaseModel

if TYPE_CHECKING:
    from taskhub.models.project import Task
    from taskhub.models.user import User


class Comment(BaseModel):
    """Comment on a task."""

    __tablename__ = "comments"

    task_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("tasks.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    user_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    content: Mapped[str] = mapped_column(Text, nullable=False)

    # Relationships
    task: Mapped["Task"] = relationship("Task", back_populates="comments")
    user: Mapped["User"] = relationship("User")
    mentions: Mapped[list["Mention"]] = relationship(
        "Mention", back_populates="comment", passive_deletes=True
    )

    def __repr__(self) -> str:
        return f"<Comment {self.id} on task={self.task_id}>"


class Mention(BaseModel):
    """@mention of a user in a comment."""

    __tablename__ = "mentions"
    __table_args__ = (
        UniqueConstraint("comment_id", "mentioned_user_id", name="uq_comment_mention"),
    )

    comment_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("comments.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    mentioned_user_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    # Relationships
    comment: Mapped["Comment"] = relationship("Comment", back_populates="mentions")
    mentioned_user: Mapped["User"] = relationship("User")

    def __repr__(self) -> str:
        return f"<Mention user={self.mentioned_user_id} in comment={self.comment_id}>"
