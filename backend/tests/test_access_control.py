"""
Tests for organization-scoped access control.

Tests cover:
- Role sets and role comparison
- Chain resolution (missing links are NotFound)
- Cross-tenant isolation (non-members get Forbidden for existing resources)
- Role requirements for writes and management operations
"""

from uuid import uuid4

import pytest
import pytest_asyncio

from taskhub.exceptions import ForbiddenError, NotFoundError
from taskhub.models import EntityType, MemberRole, PropertyType
from taskhub.services.access_control import (
    MANAGE_ROLES,
    OWNER_ROLES,
    READ_ROLES,
    WRITE_ROLES,
    authorize,
    has_sufficient_role,
    roles_at_least,
)


# ============== Role rules ==============


def test_role_sets():
    assert READ_ROLES == set(MemberRole)
    assert MemberRole.VIEWER not in WRITE_ROLES
    assert MANAGE_ROLES == {MemberRole.OWNER, MemberRole.ADMIN}
    assert OWNER_ROLES == {MemberRole.OWNER}


def test_role_hierarchy():
    assert has_sufficient_role(MemberRole.OWNER, MemberRole.ADMIN)
    assert has_sufficient_role(MemberRole.MEMBER, MemberRole.MEMBER)
    assert not has_sufficient_role(MemberRole.VIEWER, MemberRole.MEMBER)
    assert roles_at_least(MemberRole.MEMBER) == {
        MemberRole.OWNER,
        MemberRole.ADMIN,
        MemberRole.MEMBER,
    }


async def test_authorize_returns_membership(db_session, acme):
    membership = await authorize(db_session, acme.member.id, acme.id, WRITE_ROLES)

    assert membership.role == MemberRole.MEMBER


async def test_authorize_rejects_insufficient_role(db_session, acme):
    with pytest.raises(ForbiddenError):
        await authorize(db_session, acme.viewer.id, acme.id, WRITE_ROLES)


async def test_authorize_rejects_non_member(db_session, acme):
    with pytest.raises(ForbiddenError):
        await authorize(db_session, acme.outsider.id, acme.id, READ_ROLES)


# ============== Chain resolution ==============


async def test_missing_resources_are_not_found(services, acme):
    with pytest.raises(NotFoundError):
        await services.projects.get_project(acme.owner.id, uuid4())
    with pytest.raises(NotFoundError):
        await services.tasks.get_task(acme.owner.id, uuid4())
    with pytest.raises(NotFoundError):
        await services.comments.update_comment(acme.owner.id, uuid4(), "hello")
    with pytest.raises(NotFoundError):
        await services.organizations.get_organization(acme.owner.id, uuid4())


async def test_missing_resource_is_not_found_even_for_outsiders(services, acme):
    with pytest.raises(NotFoundError):
        await services.tasks.get_task(acme.outsider.id, uuid4())


# ============== Cross-tenant isolation ==============


@pytest_asyncio.fixture
async def acme_content(services, acme):
    project = await services.projects.create_project(acme.owner.id, acme.id, "Website")
    task = await services.tasks.create_task(acme.owner.id, project.id, "Fix bug")
    comment = await services.comments.create_comment(acme.owner.id, task.id, "Looking into it")
    prop = await services.properties.define_property(
        acme.owner.id, acme.id, "Estimate", PropertyType.NUMBER, EntityType.TASK
    )
    return project, task, comment, prop


async def test_outsider_cannot_read_anything(services, acme, acme_content):
    project, task, _, prop = acme_content
    outsider = acme.outsider.id

    reads = [
        services.organizations.get_organization(outsider, acme.id),
        services.organizations.list_members(outsider, acme.id),
        services.projects.get_project(outsider, project.id),
        services.projects.get_project_stats(outsider, project.id),
        services.projects.list_organization_projects(outsider, acme.id),
        services.tasks.get_task(outsider, task.id),
        services.tasks.list_project_tasks(outsider, project.id),
        services.comments.list_task_comments(outsider, task.id),
        services.properties.get_property(outsider, prop.id),
        services.properties.list_organization_properties(outsider, acme.id, EntityType.TASK),
        services.properties.get_entity_property_values(outsider, task.id, EntityType.TASK),
    ]
    for read in reads:
        with pytest.raises(ForbiddenError):
            await read


async def test_outsider_cannot_write_anything(services, acme, acme_content):
    project, task, comment, prop = acme_content
    outsider = acme.outsider.id

    writes = [
        services.projects.create_project(outsider, acme.id, "Intruder"),
        services.projects.update_project(outsider, project.id, {"name": "Hacked"}),
        services.projects.delete_project(outsider, project.id),
        services.tasks.create_task(outsider, project.id, "Intruder"),
        services.tasks.update_task(outsider, task.id, {"title": "Hacked"}),
        services.tasks.delete_task(outsider, task.id),
        services.comments.create_comment(outsider, task.id, "Hello"),
        services.comments.update_comment(outsider, comment.id, "Hacked"),
        services.comments.delete_comment(outsider, comment.id),
        services.properties.update_property(outsider, prop.id, {"name": "Hacked"}),
        services.properties.delete_property(outsider, prop.id),
        services.properties.set_property_value(outsider, task.id, prop.id, 3),
    ]
    for write in writes:
        with pytest.raises(ForbiddenError):
            await write

    # Nothing changed
    detail = await services.tasks.get_task(acme.owner.id, task.id)
    assert detail.task.title == "Fix bug"
    assert detail.comment_count == 1
    assert detail.property_values == []


async def test_outsider_search_finds_nothing(services, acme, acme_content):
    result = await services.tasks.search_tasks(acme.outsider.id, "bug")

    assert result.total == 0


async def test_viewer_can_read_but_not_write(services, acme, acme_content):
    project, task, _, prop = acme_content
    viewer = acme.viewer.id

    detail = await services.tasks.get_task(viewer, task.id)
    assert detail.task.id == task.id

    with pytest.raises(ForbiddenError):
        await services.tasks.create_task(viewer, project.id, "Not allowed")
    with pytest.raises(ForbiddenError):
        await services.tasks.update_task_status(viewer, task.id, "done")
    with pytest.raises(ForbiddenError):
        await services.comments.create_comment(viewer, task.id, "Not allowed")
    with pytest.raises(ForbiddenError):
        await services.properties.set_property_value(viewer, task.id, prop.id, 2)


async def test_member_cannot_manage(services, acme, acme_content):
    project, _, _, prop = acme_content
    member = acme.member.id

    with pytest.raises(ForbiddenError):
        await services.projects.delete_project(member, project.id)
    with pytest.raises(ForbiddenError):
        await services.properties.define_property(
            member, acme.id, "Risk", PropertyType.TEXT, EntityType.TASK
        )
    with pytest.raises(ForbiddenError):
        await services.properties.delete_property(member, prop.id)
    with pytest.raises(ForbiddenError):
        await services.organizations.update_organization(member, acme.id, name="Acme 2")


async def test_removed_member_loses_access(services, acme, acme_content):
    _, task, _, _ = acme_content
    await services.organizations.remove_member(acme.owner.id, acme.id, acme.member.id)

    with pytest.raises(ForbiddenError):
        await services.tasks.get_task(acme.member.id, task.id)
