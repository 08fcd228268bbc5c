"""Tests for permission decision and grant management endpoints."""

import pytest

from taskgate.permissions.protocol import GrantHolder, HolderKind

ADMIN = GrantHolder(HolderKind.USER, "admin")
ALICE = GrantHolder(HolderKind.USER, "alice")
BOB = GrantHolder(HolderKind.USER, "bob")
DEV = GrantHolder(HolderKind.POSITION, "pos-dev")
ROLE = GrantHolder(HolderKind.PROJECT_ROLE, 21)

AS_ADMIN = {"X-Actor-ID": "admin"}
AS_ALICE = {"X-Actor-ID": "alice"}


@pytest.fixture(autouse=True)
def admin(project_tree):
    """An administrator of users and positions who may read and edit project 1."""
    project_tree.add_actor("admin")
    project_tree.add_actor("bob")
    project_tree.grant_local(ADMIN, 1, can_read=True, can_edit=True)
    project_tree.grant_global(ADMIN, "user", can_read=True, can_edit=True)
    project_tree.grant_global(ADMIN, "position", can_read=True, can_edit=True)
    return project_tree


def _changes(add=None, remove=None) -> dict:
    attrs = {}
    if add is not None:
        attrs["add"] = add
    if remove is not None:
        attrs["remove"] = remove
    return {"data": {"attributes": attrs}}


class TestCheckLocal:
    async def test_decides_each_action(self, client, project_tree):
        project_tree.grant_local(DEV, 3, can_read=True)

        response = await client.get(
            "/api/v1/permissions/check/local",
            params=[("resource-id", 4), ("action", "read"), ("action", "delete")],
            headers=AS_ALICE,
        )

        assert response.status_code == 200
        assert response.json() == {
            "data": {"resource-id": 4, "permissions": {"read": True, "delete": False}}
        }

    async def test_unauthenticated_gets_nulls(self, client):
        response = await client.get(
            "/api/v1/permissions/check/local",
            params=[("resource-id", 4), ("action", "read")],
        )

        assert response.status_code == 200
        assert response.json()["data"]["permissions"] == {"read": None}

    async def test_unknown_resource(self, client):
        response = await client.get(
            "/api/v1/permissions/check/local",
            params=[("resource-id", 404), ("action", "read")],
            headers=AS_ALICE,
        )
        assert response.status_code == 404

    async def test_unknown_actor(self, client):
        response = await client.get(
            "/api/v1/permissions/check/local",
            params=[("resource-id", 4), ("action", "read")],
            headers={"X-Actor-ID": "ghost"},
        )
        assert response.status_code == 404
        assert response.json()["detail"] == "Actor not found: ghost"

    async def test_invalid_action(self, client):
        response = await client.get(
            "/api/v1/permissions/check/local",
            params=[("resource-id", 4), ("action", "approve")],
            headers=AS_ALICE,
        )
        assert response.status_code == 422


class TestCheckGlobal:
    async def test_decides_each_action(self, client):
        response = await client.get(
            "/api/v1/permissions/check/global",
            params=[("subject", "user"), ("action", "read"), ("action", "delete")],
            headers=AS_ADMIN,
        )

        assert response.status_code == 200
        assert response.json() == {
            "data": {"subject": "user", "permissions": {"read": True, "delete": False}}
        }

    async def test_invalid_subject(self, client):
        response = await client.get(
            "/api/v1/permissions/check/global",
            params=[("subject", "workspace"), ("action", "read")],
            headers=AS_ADMIN,
        )
        assert response.status_code == 422


class TestUserPermissions:
    async def test_show(self, client, project_tree):
        project_tree.grant_local(DEV, 3, can_read=True)
        project_tree.grant_global(ALICE, "template", can_read=True)

        response = await client.get("/api/v1/users/alice/permissions", headers=AS_ADMIN)

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["local-permissions"]["user"] == []
        assert [e["resource-id"] for e in data["local-permissions"]["position"]] == [3, 4, 5]
        assert data["local-permissions"]["position"][1] == {
            "resource-id": 4,
            "resource-kind": "subtask",
            "entity-id": 9,
            "can-read": True,
            "can-create": None,
            "can-edit": None,
            "can-delete": None,
        }
        assert data["global-permissions"]["user"][0]["subject"] == "template"
        assert data["global-permissions"]["position"] == []

    async def test_show_requires_global_read(self, client):
        response = await client.get("/api/v1/users/admin/permissions", headers=AS_ALICE)
        assert response.status_code == 403
        assert response.json() == {"detail": "Forbidden"}

    async def test_show_unknown_user(self, client):
        response = await client.get("/api/v1/users/ghost/permissions", headers=AS_ADMIN)
        assert response.status_code == 404

    async def test_update_local(self, client, project_tree, mock_db):
        response = await client.patch(
            "/api/v1/users/bob/permissions/local",
            json=_changes(add=[{"resource-id": 3, "can-read": True, "can-edit": False}]),
            headers=AS_ADMIN,
        )

        assert response.status_code == 200
        attrs = response.json()["data"][0]["attributes"]
        assert attrs["holder"] == "user:bob"
        assert attrs["resource-id"] == 3
        assert (attrs["can-read"], attrs["can-edit"], attrs["can-delete"]) == (True, False, None)
        assert (await project_tree.get_local_grant(BOB, 3)).can_read is True
        mock_db.commit.assert_awaited_once()

    async def test_update_local_remove(self, client, project_tree):
        project_tree.grant_local(BOB, 3, can_read=True)

        response = await client.patch(
            "/api/v1/users/bob/permissions/local",
            json=_changes(remove=[{"resource-id": 3, "can-read": True}]),
            headers=AS_ADMIN,
        )

        assert response.status_code == 200
        assert response.json() == {"data": []}
        assert await project_tree.get_local_grant(BOB, 3) is None

    async def test_update_local_action_not_held(self, client, project_tree, mock_db):
        response = await client.patch(
            "/api/v1/users/bob/permissions/local",
            json=_changes(add=[{"resource-id": 6, "can-read": True}]),
            headers=AS_ADMIN,
        )

        assert response.status_code == 403
        assert response.json()["detail"] == (
            "You do not have sufficient permissions to assign 'read' for resource ID 6"
        )
        assert await project_tree.get_local_grant(BOB, 6) is None
        mock_db.commit.assert_not_awaited()

    async def test_update_requires_changes(self, client):
        response = await client.patch(
            "/api/v1/users/bob/permissions/local",
            json={"data": {"attributes": {}}},
            headers=AS_ADMIN,
        )
        assert response.status_code == 422

    async def test_update_rejects_non_boolean_flag(self, client):
        response = await client.patch(
            "/api/v1/users/bob/permissions/local",
            json=_changes(add=[{"resource-id": 3, "can-read": "yes"}]),
            headers=AS_ADMIN,
        )
        assert response.status_code == 422
        assert "can-read" in response.json()["detail"]

    async def test_update_unknown_user(self, client):
        response = await client.patch(
            "/api/v1/users/ghost/permissions/local",
            json=_changes(add=[{"resource-id": 3, "can-read": True}]),
            headers=AS_ADMIN,
        )
        assert response.status_code == 404

    async def test_update_unauthenticated(self, client):
        response = await client.patch(
            "/api/v1/users/bob/permissions/local",
            json=_changes(add=[{"resource-id": 3, "can-read": True}]),
        )
        assert response.status_code == 403

    async def test_update_global(self, client, project_tree):
        response = await client.patch(
            "/api/v1/users/bob/permissions/global",
            json=_changes(add=[{"subject": "user", "can-read": True}]),
            headers=AS_ADMIN,
        )

        assert response.status_code == 200
        assert response.json() == {
            "data": [
                {
                    "subject": "user",
                    "can-read": True,
                    "can-create": False,
                    "can-edit": False,
                    "can-delete": False,
                }
            ]
        }
        assert (await project_tree.get_global_grant(BOB, "user")).can_read is True

    async def test_update_global_subject_not_held(self, client):
        response = await client.patch(
            "/api/v1/users/bob/permissions/global",
            json=_changes(add=[{"subject": "*", "can-read": True}]),
            headers=AS_ADMIN,
        )
        assert response.status_code == 403

    async def test_update_global_unknown_subject(self, client):
        response = await client.patch(
            "/api/v1/users/bob/permissions/global",
            json=_changes(add=[{"subject": "workspace", "can-read": True}]),
            headers=AS_ADMIN,
        )
        assert response.status_code == 422


class TestPositionPermissions:
    async def test_show(self, client, project_tree):
        project_tree.grant_local(DEV, 4, can_edit=True)
        project_tree.grant_global(DEV, "file", can_read=True)

        response = await client.get("/api/v1/positions/pos-dev/permissions", headers=AS_ADMIN)

        assert response.status_code == 200
        data = response.json()["data"]
        assert [e["resource-id"] for e in data["local-permissions"]] == [4, 5]
        assert data["local-permissions"][1]["can-delete"] is True
        assert [g["subject"] for g in data["global-permissions"]] == ["file"]

    async def test_show_unknown_position(self, client):
        response = await client.get("/api/v1/positions/pos-none/permissions", headers=AS_ADMIN)
        assert response.status_code == 404

    async def test_update_local(self, client, project_tree):
        response = await client.patch(
            "/api/v1/positions/pos-dev/permissions/local",
            json=_changes(add=[{"resource-id": 2, "can-edit": True}]),
            headers=AS_ADMIN,
        )

        assert response.status_code == 200
        assert (await project_tree.get_local_grant(DEV, 2)).can_edit is True

    async def test_update_global(self, client, project_tree):
        project_tree.grant_global(DEV, "position", can_read=True, can_edit=True)

        response = await client.patch(
            "/api/v1/positions/pos-dev/permissions/global",
            json=_changes(remove=[{"subject": "position", "can-edit": True}]),
            headers=AS_ADMIN,
        )

        assert response.status_code == 200
        grant = await project_tree.get_global_grant(DEV, "position")
        assert (grant.can_read, grant.can_edit) == (True, False)

    async def test_update_requires_global_edit(self, client):
        response = await client.patch(
            "/api/v1/positions/pos-dev/permissions/local",
            json=_changes(add=[{"resource-id": 2, "can-edit": True}]),
            headers=AS_ALICE,
        )
        assert response.status_code == 403


class TestProjectRolePermissions:
    async def test_show(self, client, project_tree):
        project_tree.grant_local(ALICE, 1, can_read=True)
        project_tree.grant_local(ROLE, 4, can_read=True)

        response = await client.get("/api/v1/project-roles/21/permissions", headers=AS_ALICE)

        assert response.status_code == 200
        entries = response.json()["data"]["local-permissions"]
        assert [e["resource-id"] for e in entries] == [4, 5]

    async def test_show_requires_project_read(self, client):
        response = await client.get("/api/v1/project-roles/21/permissions", headers=AS_ALICE)
        assert response.status_code == 403

    async def test_unknown_role(self, client):
        response = await client.get("/api/v1/project-roles/99/permissions", headers=AS_ADMIN)
        assert response.status_code == 404
        assert response.json()["detail"] == "Project role 99 not found"

    async def test_update_local(self, client, project_tree, mock_db):
        response = await client.patch(
            "/api/v1/project-roles/21/permissions/local",
            json=_changes(add=[{"resource-id": 4, "can-edit": True}]),
            headers=AS_ADMIN,
        )

        assert response.status_code == 200
        assert response.json()["data"][0]["attributes"]["holder"] == "project_role:21"
        assert (await project_tree.get_local_grant(ROLE, 4)).can_edit is True
        mock_db.commit.assert_awaited_once()

    async def test_no_global_endpoint(self, client):
        response = await client.patch(
            "/api/v1/project-roles/21/permissions/global",
            json=_changes(add=[{"subject": "project", "can-read": True}]),
            headers=AS_ADMIN,
        )
        assert response.status_code in (404, 405)


class TestMalformedEnvelope:
    @pytest.mark.parametrize(
        "path",
        [
            "/api/v1/users/bob/permissions/local",
            "/api/v1/users/bob/permissions/global",
            "/api/v1/positions/pos-dev/permissions/local",
            "/api/v1/positions/pos-dev/permissions/global",
            "/api/v1/project-roles/21/permissions/local",
        ],
    )
    @pytest.mark.parametrize("data", [[], None, "x"])
    async def test_data_must_be_object(self, client, mock_db, path, data):
        response = await client.patch(path, json={"data": data}, headers=AS_ADMIN)

        assert response.status_code == 422
        assert response.json()["detail"] == "'data' must be an object"
        mock_db.commit.assert_not_awaited()

    async def test_attributes_must_be_object(self, client):
        response = await client.patch(
            "/api/v1/users/bob/permissions/local",
            json={"data": {"attributes": ["add"]}},
            headers=AS_ADMIN,
        )

        assert response.status_code == 422
        assert response.json()["detail"] == "'data.attributes' must be an object"
