"""
Tests for custom property definitions and values.

Tests cover:
- Definition validation (options, duplicate names)
- Type-directed value validation for every property type
- Upsert semantics and value listing
- Entity-type and organization checks on the value target
- Cascading deletes
"""

from uuid import uuid4

import pytest
import pytest_asyncio
from sqlalchemy import func, select

from taskhub.exceptions import ConflictError, InvalidInputError, NotFoundError
from taskhub.models import CustomProperty, CustomPropertyValue, EntityType, PropertyType
from taskhub.services.custom_property import CustomPropertyService


@pytest_asyncio.fixture
async def project(services, acme):
    return await services.projects.create_project(acme.owner.id, acme.id, "Website")


@pytest_asyncio.fixture
async def task(services, acme, project):
    return await services.tasks.create_task(acme.owner.id, project.id, "Fix bug")


async def define(services, acme, name, property_type, entity_type=EntityType.TASK, options=None):
    return await services.properties.define_property(
        acme.owner.id, acme.id, name, property_type, entity_type, options=options
    )


# ============== Definitions ==============


async def test_define_and_list_properties(services, acme):
    await define(services, acme, "Story points", PropertyType.NUMBER)
    await define(services, acme, "area", PropertyType.SELECT, options=["web", "api"])
    await define(services, acme, "Budget", PropertyType.NUMBER, entity_type=EntityType.PROJECT)

    task_properties = await services.properties.list_organization_properties(
        acme.viewer.id, acme.id, EntityType.TASK
    )

    assert [p.name for p in task_properties] == ["area", "Story points"]
    assert task_properties[0].options == ["web", "api"]
    assert task_properties[1].options is None


async def test_duplicate_name_conflicts_ignoring_case(services, acme):
    await define(services, acme, "Estimate", PropertyType.NUMBER)

    with pytest.raises(ConflictError):
        await define(services, acme, "estimate", PropertyType.TEXT)

    # Same name on the other entity type is fine
    other = await define(services, acme, "Estimate", PropertyType.NUMBER, EntityType.PROJECT)
    assert other.entity_type == EntityType.PROJECT


async def test_rename_into_existing_name_conflicts(services, acme):
    await define(services, acme, "Estimate", PropertyType.NUMBER)
    prop = await define(services, acme, "Effort", PropertyType.NUMBER)

    with pytest.raises(ConflictError):
        await services.properties.update_property(acme.owner.id, prop.id, {"name": "ESTIMATE"})

    renamed = await services.properties.update_property(acme.owner.id, prop.id, {"name": "EFFORT"})
    assert renamed.name == "EFFORT"


@pytest.mark.parametrize(
    ("property_type", "options"),
    [
        (PropertyType.SELECT, None),
        (PropertyType.SELECT, []),
        (PropertyType.MULTI_SELECT, ["a", "a"]),
        (PropertyType.SELECT, ["a", " "]),
        (PropertyType.TEXT, ["a"]),
    ],
)
async def test_invalid_options_are_rejected(services, acme, property_type, options):
    with pytest.raises(InvalidInputError):
        await define(services, acme, "Broken", property_type, options=options)


async def test_options_in_use_cannot_be_removed(services, acme, task):
    area = await define(services, acme, "Area", PropertyType.SELECT, options=["web", "api"])
    tags = await define(services, acme, "Tags", PropertyType.MULTI_SELECT, options=["a", "b", "c"])
    await services.properties.set_property_value(acme.member.id, task.id, area.id, "web")
    await services.properties.set_property_value(acme.member.id, task.id, tags.id, ["a", "b"])

    with pytest.raises(ConflictError) as exc_info:
        await services.properties.update_property(acme.owner.id, area.id, {"options": ["api"]})
    assert exc_info.value.code == "OPTION_IN_USE"
    with pytest.raises(ConflictError):
        await services.properties.update_property(acme.owner.id, tags.id, {"options": ["a", "c"]})

    # Unused choices can go, and new ones can be added
    await services.properties.update_property(acme.owner.id, area.id, {"options": ["web", "mobile"]})
    await services.properties.update_property(acme.owner.id, tags.id, {"options": ["b", "a"]})

    values = await services.properties.get_entity_property_values(
        acme.owner.id, task.id, EntityType.TASK
    )
    assert [(v.name, v.value, v.options) for v in values] == [
        ("Area", "web", ["web", "mobile"]),
        ("Tags", ["a", "b"], ["b", "a"]),
    ]


async def test_type_and_entity_are_fixed(services, acme):
    prop = await define(services, acme, "Estimate", PropertyType.NUMBER)

    with pytest.raises(InvalidInputError):
        await services.properties.update_property(
            acme.owner.id, prop.id, {"property_type": PropertyType.TEXT}
        )


# ============== Value validation ==============


def make_property(property_type, options=None):
    return CustomProperty(
        id=uuid4(),
        organization_id=uuid4(),
        entity_type=EntityType.TASK,
        name="Field",
        property_type=property_type,
        options=options,
    )


@pytest.mark.parametrize(
    ("property_type", "options", "value", "expected"),
    [
        (PropertyType.TEXT, None, "hello", "hello"),
        (PropertyType.NUMBER, None, 3, 3),
        (PropertyType.NUMBER, None, 2.5, 2.5),
        (PropertyType.DATE, None, "2024-03-01", "2024-03-01"),
        (PropertyType.DATETIME, None, "2024-03-01T10:00:00Z", "2024-03-01T10:00:00Z"),
        (PropertyType.DATETIME, None, "2024-03-01 10:00:00+02:00", "2024-03-01 10:00:00+02:00"),
        (PropertyType.SELECT, ["low", "high"], "high", "high"),
        (PropertyType.MULTI_SELECT, ["a", "b", "c"], ["b", "a", "b"], ["b", "a"]),
        (PropertyType.MULTI_SELECT, ["a"], [], []),
    ],
)
async def test_valid_values(db_session, property_type, options, value, expected):
    service = CustomPropertyService(db_session)

    assert await service.validate_value(make_property(property_type, options), value) == expected


@pytest.mark.parametrize(
    ("property_type", "options", "value"),
    [
        (PropertyType.TEXT, None, 5),
        (PropertyType.TEXT, None, None),
        (PropertyType.NUMBER, None, "5"),
        (PropertyType.NUMBER, None, True),
        (PropertyType.NUMBER, None, float("nan")),
        (PropertyType.DATE, None, "01/03/2024"),
        (PropertyType.DATE, None, 20240301),
        (PropertyType.DATETIME, None, "yesterday"),
        (PropertyType.DATETIME, None, "2024-03-01"),
        (PropertyType.SELECT, ["low", "high"], "medium"),
        (PropertyType.SELECT, ["low", "high"], ["low"]),
        (PropertyType.MULTI_SELECT, ["a", "b"], "a"),
        (PropertyType.MULTI_SELECT, ["a", "b"], ["a", "z"]),
        (PropertyType.USER, None, "not-a-uuid"),
    ],
)
async def test_invalid_values(db_session, property_type, options, value):
    service = CustomPropertyService(db_session)

    with pytest.raises(InvalidInputError):
        await service.validate_value(make_property(property_type, options), value)


# ============== Setting values ==============


async def test_set_value_is_an_upsert(services, acme, task):
    prop = await define(services, acme, "Estimate", PropertyType.NUMBER)

    first = await services.properties.set_property_value(acme.member.id, task.id, prop.id, 3)
    second = await services.properties.set_property_value(acme.member.id, task.id, prop.id, 5)

    assert (first.value, second.value) == (3, 5)
    values = await services.properties.get_entity_property_values(
        acme.viewer.id, task.id, EntityType.TASK
    )
    assert [(v.name, v.value) for v in values] == [("Estimate", 5)]


async def test_values_appear_on_task_detail(services, acme, task):
    estimate = await define(services, acme, "Estimate", PropertyType.NUMBER)
    area = await define(services, acme, "Area", PropertyType.SELECT, options=["web", "api"])
    await services.properties.set_property_value(acme.member.id, task.id, estimate.id, 8)
    await services.properties.set_property_value(acme.member.id, task.id, area.id, "api")

    detail = await services.tasks.get_task(acme.viewer.id, task.id)

    assert [(v.name, v.property_type, v.value) for v in detail.property_values] == [
        ("Area", PropertyType.SELECT, "api"),
        ("Estimate", PropertyType.NUMBER, 8),
    ]


async def test_user_value_must_be_member(services, acme, task):
    prop = await define(services, acme, "Reviewer", PropertyType.USER)

    with pytest.raises(InvalidInputError):
        await services.properties.set_property_value(
            acme.member.id, task.id, prop.id, str(acme.outsider.id)
        )

    view = await services.properties.set_property_value(
        acme.member.id, task.id, prop.id, str(acme.viewer.id)
    )
    assert view.value == str(acme.viewer.id)


async def test_value_target_must_match_entity_type(services, acme, project, task):
    task_prop = await define(services, acme, "Estimate", PropertyType.NUMBER)
    project_prop = await define(services, acme, "Budget", PropertyType.NUMBER, EntityType.PROJECT)

    with pytest.raises(NotFoundError):
        await services.properties.set_property_value(acme.member.id, project.id, task_prop.id, 1)
    with pytest.raises(NotFoundError):
        await services.properties.set_property_value(acme.member.id, task.id, project_prop.id, 1)

    view = await services.properties.set_property_value(
        acme.member.id, project.id, project_prop.id, 1000
    )
    assert view.value == 1000


async def test_value_target_must_be_in_the_property_organization(services, acme, make_user):
    frank = await make_user("frank")
    globex = await services.organizations.create_organization(frank.id, "Globex")
    globex_project = await services.projects.create_project(frank.id, globex.id, "Infra")
    globex_task = await services.tasks.create_task(frank.id, globex_project.id, "Deploy")
    acme_prop = await define(services, acme, "Estimate", PropertyType.NUMBER)

    with pytest.raises(NotFoundError):
        await services.properties.set_property_value(acme.owner.id, globex_task.id, acme_prop.id, 1)


async def test_delete_value(services, acme, task):
    prop = await define(services, acme, "Estimate", PropertyType.NUMBER)
    await services.properties.set_property_value(acme.member.id, task.id, prop.id, 3)

    await services.properties.delete_property_value(acme.member.id, task.id, prop.id)

    with pytest.raises(NotFoundError):
        await services.properties.delete_property_value(acme.member.id, task.id, prop.id)
    values = await services.properties.get_entity_property_values(
        acme.owner.id, task.id, EntityType.TASK
    )
    assert values == []


# ============== Cascades ==============


async def test_deleting_property_removes_its_values(services, acme, task):
    prop = await define(services, acme, "Estimate", PropertyType.NUMBER)
    other = await define(services, acme, "Area", PropertyType.TEXT)
    await services.properties.set_property_value(acme.member.id, task.id, prop.id, 3)
    await services.properties.set_property_value(acme.member.id, task.id, other.id, "web")

    await services.properties.delete_property(acme.admin.id, prop.id)

    with pytest.raises(NotFoundError):
        await services.properties.get_property(acme.owner.id, prop.id)
    values = await services.properties.get_entity_property_values(
        acme.owner.id, task.id, EntityType.TASK
    )
    assert [v.name for v in values] == ["Area"]


async def test_deleting_task_removes_its_values(services, session_factory, acme, task):
    prop = await define(services, acme, "Estimate", PropertyType.NUMBER)
    await services.properties.set_property_value(acme.member.id, task.id, prop.id, 3)

    await services.tasks.delete_task(acme.member.id, task.id)

    async with session_factory() as session:
        remaining = await session.scalar(
            select(func.count()).select_from(CustomPropertyValue)
        )
    assert remaining == 0
