"""Task comments and the mentions they carry."""

from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

import structlog
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from taskhub.db.transaction import atomic
from taskhub.exceptions import ForbiddenError, InvalidInputError
from taskhub.models.comment import Comment, Mention
from taskhub.models.organization import OrganizationMember
from taskhub.models.project import Project, Task
from taskhub.services.access_control import (
    MANAGE_ROLES,
    READ_ROLES,
    WRITE_ROLES,
    authorize,
    resolve_comment_chain,
    resolve_task_chain,
)
from taskhub.services.mentions import replace_mentions
from taskhub.services.pagination import PageParams, PaginatedResult, paginate

logger = structlog.get_logger()


@dataclass
class MentionView:
    """A mention of the current user with the context needed to find it."""

    mention_id: UUID
    mentioned_at: datetime
    comment_id: UUID
    comment_content: str
    author_id: UUID
    task_id: UUID
    task_title: str
    project_id: UUID
    project_name: str


def _clean_content(content: str | None) -> str:
    if content is None or not content.strip():
        raise InvalidInputError("Comment content must not be empty.")
    return content


class CommentService:
    """Service for task comments."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def create_comment(self, actor_id: UUID, task_id: UUID, content: str) -> Comment:
        """Create a comment and its mentions in one transaction."""
        _, project = await resolve_task_chain(self.db, task_id)
        await authorize(self.db, actor_id, project.organization_id, WRITE_ROLES)
        content = _clean_content(content)

        async with atomic(self.db):
            comment = Comment(task_id=task_id, user_id=actor_id, content=content)
            self.db.add(comment)
            await self.db.flush()
            mentioned = await replace_mentions(self.db, comment, project.organization_id)

        logger.info(
            "comment_created",
            comment_id=str(comment.id),
            task_id=str(task_id),
            author_id=str(actor_id),
            mentions=len(mentioned),
        )
        return await self._load(comment.id)

    async def list_task_comments(
        self,
        actor_id: UUID,
        task_id: UUID,
        page: int | None = None,
        limit: int | None = None,
    ) -> PaginatedResult[Comment]:
        _, project = await resolve_task_chain(self.db, task_id)
        await authorize(self.db, actor_id, project.organization_id, READ_ROLES)

        statement = (
            select(Comment)
            .where(Comment.task_id == task_id)
            .options(selectinload(Comment.mentions).selectinload(Mention.mentioned_user))
        )
        return await paginate(
            self.db,
            statement,
            PageParams.normalize(page, limit),
            order_by=[Comment.created_at.desc(), Comment.id.desc()],
        )

    async def update_comment(self, actor_id: UUID, comment_id: UUID, content: str) -> Comment:
        """Replace a comment's content and regenerate its mentions. Author only."""
        comment, _, project = await resolve_comment_chain(self.db, comment_id)
        await authorize(self.db, actor_id, project.organization_id, READ_ROLES)
        if comment.user_id != actor_id:
            raise ForbiddenError("Only the author can edit this comment.")
        content = _clean_content(content)

        async with atomic(self.db):
            comment.content = content
            await self.db.flush()
            mentioned = await replace_mentions(self.db, comment, project.organization_id)

        logger.info("comment_updated", comment_id=str(comment_id), mentions=len(mentioned))
        return await self._load(comment_id)

    async def delete_comment(self, actor_id: UUID, comment_id: UUID) -> None:
        """Delete a comment. Allowed for its author and for organization admins."""
        comment, _, project = await resolve_comment_chain(self.db, comment_id)
        membership = await authorize(self.db, actor_id, project.organization_id, READ_ROLES)
        if comment.user_id != actor_id and membership.role not in MANAGE_ROLES:
            raise ForbiddenError("You do not have permission to delete this comment.")

        async with atomic(self.db):
            await self.db.execute(delete(Mention).where(Mention.comment_id == comment_id))
            await self.db.execute(delete(Comment).where(Comment.id == comment_id))

        logger.info("comment_deleted", comment_id=str(comment_id), deleted_by=str(actor_id))

    async def get_user_mentions(
        self,
        actor_id: UUID,
        page: int | None = None,
        limit: int | None = None,
    ) -> PaginatedResult[MentionView]:
        """Mentions of the actor, newest first, within organizations they still belong to."""
        actor_organizations = select(OrganizationMember.organization_id).where(
            OrganizationMember.user_id == actor_id
        )
        statement = (
            select(
                Mention.id,
                Mention.created_at,
                Comment.id,
                Comment.content,
                Comment.user_id,
                Task.id,
                Task.title,
                Project.id,
                Project.name,
            )
            .join(Comment, Comment.id == Mention.comment_id)
            .join(Task, Task.id == Comment.task_id)
            .join(Project, Project.id == Task.project_id)
            .where(
                Mention.mentioned_user_id == actor_id,
                Project.organization_id.in_(actor_organizations),
            )
        )

        result = await paginate(
            self.db,
            statement,
            PageParams.normalize(page, limit),
            order_by=[Mention.created_at.desc(), Mention.id.desc()],
            scalars=False,
        )
        return result.map(lambda row: MentionView(*row))

    async def _load(self, comment_id: UUID) -> Comment:
        result = await self.db.execute(
            select(Comment)
            .where(Comment.id == comment_id)
            .options(selectinload(Comment.mentions).selectinload(Mention.mentioned_user))
            .execution_options(populate_existing=True)
        )
        return result.scalar_one()
