"""Tests for page normalization, sort validation and page partitioning."""

import pytest

from taskhub.exceptions import InvalidInputError
from taskhub.services.filters import TASK_SORT_FIELDS
from taskhub.services.pagination import PageParams, PaginatedResult, SortDirection, SortSpec


@pytest.mark.parametrize(
    ("page", "limit", "expected"),
    [
        (None, None, (1, 10)),
        (0, 10, (1, 10)),
        (-3, 10, (1, 10)),
        (2, 500, (2, 100)),
        (1, 0, (1, 1)),
        (4, 25, (4, 25)),
    ],
)
def test_normalize_clamps(page, limit, expected):
    params = PageParams.normalize(page, limit)

    assert (params.page, params.limit) == expected


def test_offset():
    assert PageParams.normalize(3, 20).offset == 40


def test_page_beyond_addressable_offset_is_rejected():
    last_page = (2**63 - 1) // 100 + 1
    assert PageParams.normalize(last_page, 100).offset <= 2**63 - 1

    with pytest.raises(InvalidInputError):
        PageParams.normalize(10**20, 10)
    with pytest.raises(InvalidInputError):
        PageParams.normalize(last_page + 1, 100)


def test_result_metadata():
    result = PaginatedResult(data=[1, 2], total=12, page=2, limit=5)

    assert result.total_pages == 3
    assert result.has_next_page is True
    assert result.has_previous_page is True


def test_empty_result_metadata():
    result = PaginatedResult(data=[], total=0, page=1, limit=10)

    assert result.total_pages == 0
    assert result.has_next_page is False
    assert result.has_previous_page is False


def test_map_keeps_metadata():
    result = PaginatedResult(data=[1, 2], total=7, page=1, limit=2).map(str)

    assert result.data == ["1", "2"]
    assert (result.total, result.page, result.limit, result.total_pages) == (7, 1, 2, 4)


def test_sort_defaults_to_newest_first():
    sort = SortSpec.parse(None, None, TASK_SORT_FIELDS)

    assert sort.field == "created_at"
    assert sort.direction == SortDirection.DESC


def test_sort_order_is_case_insensitive():
    assert SortSpec.parse("title", "ASC", TASK_SORT_FIELDS).direction == SortDirection.ASC


def test_sort_rejects_unknown_field():
    with pytest.raises(InvalidInputError):
        SortSpec.parse("password_hash", "asc", TASK_SORT_FIELDS)


def test_sort_rejects_unknown_direction():
    with pytest.raises(InvalidInputError):
        SortSpec.parse("title", "sideways", TASK_SORT_FIELDS)


async def test_pages_partition_the_result_set(services, acme):
    project = await services.projects.create_project(acme.owner.id, acme.id, "Website")
    created = [
        await services.tasks.create_task(acme.owner.id, project.id, f"Task {i:02d}")
        for i in range(23)
    ]

    seen = []
    page = 1
    while True:
        result = await services.tasks.list_project_tasks(
            acme.owner.id, project.id, sort_by="title", sort_order="asc", page=page, limit=5
        )
        assert result.total == 23
        assert result.total_pages == 5
        seen.extend(task.id for task in result.data)
        if not result.has_next_page:
            break
        page += 1

    assert page == 5
    assert seen == [task.id for task in sorted(created, key=lambda t: t.title)]


async def test_page_past_the_end_is_empty(services, acme):
    project = await services.projects.create_project(acme.owner.id, acme.id, "Website")
    await services.tasks.create_task(acme.owner.id, project.id, "Only task")

    result = await services.tasks.list_project_tasks(acme.owner.id, project.id, page=3)

    assert result.data == []
    assert result.total == 1
    assert result.has_previous_page is True
    assert result.has_next_page is False
