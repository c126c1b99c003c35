"""Bulk deletion of everything hanging off a set of projects or tasks.

Dependents are removed before their parents so that the statements succeed on
stores that do not cascade foreign keys themselves. Callers run these inside
``atomic`` so a failure part-way leaves nothing deleted.
"""

from sqlalchemy import Select, delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from taskhub.models.comment import Comment, Mention
from taskhub.models.custom_property import CustomPropertyValue, EntityType
from taskhub.models.project import Project, Task


async def delete_entity_values(
    db: AsyncSession, entity_type: EntityType, entity_ids: Select
) -> None:
    """Delete custom property values attached to the selected entities."""
    await db.execute(
        delete(CustomPropertyValue).where(
            CustomPropertyValue.entity_type == entity_type,
            CustomPropertyValue.entity_id.in_(entity_ids),
        )
    )


async def delete_tasks(db: AsyncSession, task_ids: Select) -> None:
    """Delete the tasks selected by ``task_ids`` with their comments, mentions and values."""
    comment_ids = select(Comment.id).where(Comment.task_id.in_(task_ids))

    await db.execute(delete(Mention).where(Mention.comment_id.in_(comment_ids)))
    await db.execute(delete(Comment).where(Comment.task_id.in_(task_ids)))
    await delete_entity_values(db, EntityType.TASK, task_ids)
    await db.execute(delete(Task).where(Task.id.in_(task_ids)))


async def delete_projects(db: AsyncSession, project_ids: Select) -> None:
    """Delete the projects selected by ``project_ids`` and everything beneath them."""
    await delete_tasks(db, select(Task.id).where(Task.project_id.in_(project_ids)))
    await delete_entity_values(db, EntityType.PROJECT, project_ids)
    await db.execute(delete(Project).where(Project.id.in_(project_ids)))
