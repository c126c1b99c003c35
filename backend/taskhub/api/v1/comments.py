"""Task comment and mention endpoints."""

from datetime import datetime
from uuid import UUID

import structlog
from fastapi import APIRouter, status
from pydantic import BaseModel, Field

from taskhub.api.v1.auth import CurrentUser
from taskhub.api.v1.common import Page
from taskhub.db.session import DBSession
from taskhub.models.comment import Comment
from taskhub.services.comment import CommentService

router = APIRouter()
logger = structlog.get_logger()


class CommentCreate(BaseModel):
    """Comment body. Mention users as @[username] or @[user:<id>]."""

    content: str = Field(..., min_length=1, max_length=10000)


class CommentUpdate(BaseModel):
    content: str = Field(..., min_length=1, max_length=10000)


class MentionedUser(BaseModel):
    user_id: UUID
    username: str


class CommentResponse(BaseModel):
    """Comment response with the users it mentions."""

    id: UUID
    task_id: UUID
    user_id: UUID
    content: str
    mentions: list[MentionedUser]
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_comment(cls, comment: Comment) -> "CommentResponse":
        return cls(
            id=comment.id,
            task_id=comment.task_id,
            user_id=comment.user_id,
            content=comment.content,
            mentions=sorted(
                (
                    MentionedUser(
                        user_id=mention.mentioned_user_id,
                        username=mention.mentioned_user.username,
                    )
                    for mention in comment.mentions
                ),
                key=lambda user: user.username,
            ),
            created_at=comment.created_at,
            updated_at=comment.updated_at,
        )


class MentionResponse(BaseModel):
    """A mention of the current user."""

    mention_id: UUID
    mentioned_at: datetime
    comment_id: UUID
    comment_content: str
    author_id: UUID
    task_id: UUID
    task_title: str
    project_id: UUID
    project_name: str

    class Config:
        from_attributes = True


@router.post(
    "/tasks/{task_id}/comments",
    response_model=CommentResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_comment(
    task_id: UUID,
    comment_data: CommentCreate,
    current_user: CurrentUser,
    db: DBSession,
) -> CommentResponse:
    comment = await CommentService(db).create_comment(
        current_user.id, task_id, comment_data.content
    )
    return CommentResponse.from_comment(comment)


@router.get("/tasks/{task_id}/comments", response_model=Page[CommentResponse])
async def list_task_comments(
    task_id: UUID,
    current_user: CurrentUser,
    db: DBSession,
    page: int | None = None,
    limit: int | None = None,
) -> Page[CommentResponse]:
    """List a task's comments, newest first."""
    result = await CommentService(db).list_task_comments(current_user.id, task_id, page, limit)
    return Page[CommentResponse].build(result, CommentResponse.from_comment)


@router.get("/comments/mentions/me", response_model=Page[MentionResponse])
async def get_my_mentions(
    current_user: CurrentUser,
    db: DBSession,
    page: int | None = None,
    limit: int | None = None,
) -> Page[MentionResponse]:
    """List comments that mention the current user, newest first."""
    result = await CommentService(db).get_user_mentions(current_user.id, page, limit)
    return Page[MentionResponse].build(result, MentionResponse.model_validate)


@router.put("/comments/{comment_id}", response_model=CommentResponse)
async def update_comment(
    comment_id: UUID,
    updates: CommentUpdate,
    current_user: CurrentUser,
    db: DBSession,
) -> CommentResponse:
    """Edit a comment. Only its author may do so; mentions are regenerated."""
    comment = await CommentService(db).update_comment(current_user.id, comment_id, updates.content)
    return CommentResponse.from_comment(comment)


@router.delete("/comments/{comment_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_comment(
    comment_id: UUID,
    current_user: CurrentUser,
    db: DBSession,
) -> None:
    await CommentService(db).delete_comment(current_user.id, comment_id)
