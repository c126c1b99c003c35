"""
Tests for organizations and membership management.

Tests cover:
- Creation with the creator as owner, slug derivation, duplicate names
- Listing the user's organizations and members
- Invites and role changes, including owner-only rules
- The last-owner invariant
- Organization deletion
"""

import random

import pytest
from sqlalchemy import select

from taskhub.exceptions import ConflictError, ForbiddenError, InvalidInputError, NotFoundError
from taskhub.models import MemberRole, OrganizationMember


# ============== Creation ==============


async def test_create_organization_makes_actor_owner(services, make_user):
    alice = await make_user("alice")

    organization = await services.organizations.create_organization(alice.id, "Acme")
    detail = await services.organizations.get_organization(alice.id, organization.id)

    assert organization.slug == "acme"
    assert detail.role == MemberRole.OWNER
    assert detail.member_count == 1
    assert detail.project_count == 0


async def test_duplicate_organization_name_conflicts(services, make_user):
    alice = await make_user("alice")
    bob = await make_user("bob")
    await services.organizations.create_organization(alice.id, "Acme")

    with pytest.raises(ConflictError):
        await services.organizations.create_organization(bob.id, "Acme")
    with pytest.raises(ConflictError):
        await services.organizations.create_organization(bob.id, "ACME")

    result = await services.organizations.list_user_organizations(bob.id)
    assert result.total == 0


async def test_colliding_slug_conflicts(services, make_user):
    alice = await make_user("alice")
    await services.organizations.create_organization(alice.id, "Acme Corp")

    with pytest.raises(ConflictError):
        await services.organizations.create_organization(alice.id, "acme-corp")


async def test_name_without_slug_characters_is_rejected(services, make_user):
    alice = await make_user("alice")

    with pytest.raises(InvalidInputError):
        await services.organizations.create_organization(alice.id, "!!!")


async def test_rename_updates_slug(services, acme):
    organization = await services.organizations.update_organization(
        acme.admin.id, acme.id, name="Acme Labs"
    )

    assert organization.name == "Acme Labs"
    assert organization.slug == "acme-labs"


# ============== Listing ==============


async def test_list_user_organizations(services, acme):
    other = await services.organizations.create_organization(acme.member.id, "Globex")

    result = await services.organizations.list_user_organizations(acme.member.id)

    assert result.total == 2
    by_id = {summary.organization.id: summary for summary in result.data}
    assert by_id[acme.id].role == MemberRole.MEMBER
    assert by_id[acme.id].member_count == 4
    assert by_id[other.id].role == MemberRole.OWNER
    assert by_id[other.id].member_count == 1


async def test_list_members_in_join_order(services, acme):
    result = await services.organizations.list_members(acme.viewer.id, acme.id)

    assert [member.username for member in result.data] == ["alice", "bob", "carol", "dave"]
    assert [member.role for member in result.data] == [
        MemberRole.OWNER,
        MemberRole.ADMIN,
        MemberRole.MEMBER,
        MemberRole.VIEWER,
    ]


# ============== Invites ==============


async def test_invite_unknown_email_is_not_found(services, acme):
    with pytest.raises(NotFoundError):
        await services.organizations.invite_member(acme.owner.id, acme.id, "nobody@example.com")


async def test_invite_existing_member_conflicts(services, acme):
    with pytest.raises(ConflictError):
        await services.organizations.invite_member(acme.owner.id, acme.id, acme.member.email)


async def test_invite_is_case_insensitive_on_email(services, acme):
    member = await services.organizations.invite_member(
        acme.admin.id, acme.id, acme.outsider.email.upper()
    )

    assert member.user_id == acme.outsider.id
    assert member.role == MemberRole.MEMBER


async def test_member_cannot_invite(services, acme):
    with pytest.raises(ForbiddenError):
        await services.organizations.invite_member(acme.member.id, acme.id, acme.outsider.email)


async def test_only_owner_can_grant_owner(services, acme):
    with pytest.raises(ForbiddenError):
        await services.organizations.invite_member(
            acme.admin.id, acme.id, acme.outsider.email, MemberRole.OWNER
        )
    with pytest.raises(ForbiddenError):
        await services.organizations.update_member_role(
            acme.admin.id, acme.id, acme.member.id, MemberRole.OWNER
        )

    promoted = await services.organizations.update_member_role(
        acme.owner.id, acme.id, acme.member.id, MemberRole.OWNER
    )
    assert promoted.role == MemberRole.OWNER


async def test_admin_cannot_touch_owner(services, acme):
    with pytest.raises(ForbiddenError):
        await services.organizations.update_member_role(
            acme.admin.id, acme.id, acme.owner.id, MemberRole.MEMBER
        )
    with pytest.raises(ForbiddenError):
        await services.organizations.remove_member(acme.admin.id, acme.id, acme.owner.id)


async def test_remove_non_member_is_not_found(services, acme):
    with pytest.raises(NotFoundError):
        await services.organizations.remove_member(acme.owner.id, acme.id, acme.outsider.id)


# ============== Last owner ==============


async def test_last_owner_cannot_be_demoted_or_removed(services, acme):
    with pytest.raises(ConflictError) as exc_info:
        await services.organizations.update_member_role(
            acme.owner.id, acme.id, acme.owner.id, MemberRole.ADMIN
        )
    assert exc_info.value.code == "LAST_OWNER"

    with pytest.raises(ConflictError):
        await services.organizations.remove_member(acme.owner.id, acme.id, acme.owner.id)

    detail = await services.organizations.get_organization(acme.owner.id, acme.id)
    assert detail.role == MemberRole.OWNER


async def test_owner_can_step_down_once_another_owner_exists(services, acme):
    await services.organizations.update_member_role(
        acme.owner.id, acme.id, acme.admin.id, MemberRole.OWNER
    )

    demoted = await services.organizations.update_member_role(
        acme.owner.id, acme.id, acme.owner.id, MemberRole.MEMBER
    )

    assert demoted.role == MemberRole.MEMBER
    with pytest.raises(ConflictError):
        await services.organizations.remove_member(acme.admin.id, acme.id, acme.admin.id)


async def _owner_ids(session_factory, organization_id):
    async with session_factory() as session:
        result = await session.execute(
            select(OrganizationMember.user_id).where(
                OrganizationMember.organization_id == organization_id,
                OrganizationMember.role == MemberRole.OWNER,
            )
        )
        return list(result.scalars().all())


async def test_random_role_changes_never_remove_every_owner(services, session_factory, acme):
    rng = random.Random(1234)
    users = [acme.owner, acme.admin, acme.member, acme.viewer]
    roles = list(MemberRole)

    for _ in range(40):
        actor_id = rng.choice(await _owner_ids(session_factory, acme.id))
        target = rng.choice(users)
        try:
            if rng.random() < 0.8:
                await services.organizations.update_member_role(
                    actor_id, acme.id, target.id, rng.choice(roles)
                )
            else:
                await services.organizations.remove_member(actor_id, acme.id, target.id)
                await services.organizations.invite_member(
                    actor_id, acme.id, target.email, rng.choice(roles)
                )
        except (ConflictError, ForbiddenError, NotFoundError):
            pass

        assert len(await _owner_ids(session_factory, acme.id)) >= 1

# ============== Deletion ==============


async def test_only_owner_deletes_organization(services, acme):
    project = await services.projects.create_project(acme.member.id, acme.id, "Website")
    await services.tasks.create_task(acme.member.id, project.id, "Fix bug")

    with pytest.raises(ForbiddenError):
        await services.organizations.delete_organization(acme.admin.id, acme.id)

    await services.organizations.delete_organization(acme.owner.id, acme.id)

    with pytest.raises(NotFoundError):
        await services.organizations.get_organization(acme.owner.id, acme.id)
    with pytest.raises(NotFoundError):
        await services.projects.get_project(acme.owner.id, project.id)
    result = await services.organizations.list_user_organizations(acme.member.id)
    assert result.total == 0
