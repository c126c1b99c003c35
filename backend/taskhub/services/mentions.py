"""Mention resolution and persistence for comments."""

from uuid import UUID

import structlog
from sqlalchemy import delete, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from taskhub.models.comment import Comment, Mention
from taskhub.models.organization import OrganizationMember
from taskhub.models.user import User
from taskhub.utils.mentions import parse_mentions

logger = structlog.get_logger()


async def resolve_mentioned_users(
    db: AsyncSession,
    organization_id: UUID,
    content: str,
) -> set[UUID]:
    """IDs of the organization members mentioned in ``content``.

    Tokens naming a user outside the organization, or no user at all, are dropped.
    """
    usernames, user_ids = parse_mentions(content)
    if not usernames and not user_ids:
        return set()

    conditions = []
    if usernames:
        conditions.append(User.username.in_(usernames))
    if user_ids:
        conditions.append(User.id.in_(user_ids))

    result = await db.execute(
        select(User.id)
        .join(OrganizationMember, OrganizationMember.user_id == User.id)
        .where(
            OrganizationMember.organization_id == organization_id,
            or_(*conditions),
        )
    )
    resolved = set(result.scalars().all())

    logger.debug(
        "mentions_resolved",
        organization_id=str(organization_id),
        tokens=len(usernames) + len(user_ids),
        resolved=len(resolved),
    )
    return resolved


async def replace_mentions(
    db: AsyncSession,
    comment: Comment,
    organization_id: UUID,
) -> set[UUID]:
    """Regenerate the comment's mention rows from its current content.

    Must run inside the same transaction as the content write.
    """
    mentioned = await resolve_mentioned_users(db, organization_id, comment.content)

    await db.execute(delete(Mention).where(Mention.comment_id == comment.id))
    db.add_all(
        Mention(comment_id=comment.id, mentioned_user_id=user_id) for user_id in mentioned
    )
    await db.flush()

    return mentioned
