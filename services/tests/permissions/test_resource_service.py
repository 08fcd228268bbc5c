"""Tests for entity to resource lookup."""

from taskgate.services.resource_service import get_entity_resource_id


async def test_direct_match(project_tree):
    assert await get_entity_resource_id(project_tree, 7, "task") == 3
    assert await get_entity_resource_id(project_tree, 11, "file") == 5


async def test_kind_must_match(project_tree):
    assert await get_entity_resource_id(project_tree, 7, "subtask") is None


async def test_missing_entity_id(project_tree):
    assert await get_entity_resource_id(project_tree, None, "task") is None
    assert await get_entity_resource_id(project_tree, 0, "task") is None
    assert project_tree.calls["find_by_entity"] == 0


async def test_folder_resolves_to_container(project_tree):
    # file 107 is the folder of task 7 and has no resource of its own
    assert await get_entity_resource_id(project_tree, 107, "file") == 3
    assert await get_entity_resource_id(project_tree, 100, "file") == 1


async def test_folder_fallback_only_for_files(project_tree):
    assert await get_entity_resource_id(project_tree, 107, "task") is None
    assert project_tree.calls["find_by_corresponding_folder"] == 0


async def test_unknown_file(project_tree):
    assert await get_entity_resource_id(project_tree, 999, "file") is None
