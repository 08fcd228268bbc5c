"""Tests for global (category-scoped) permission resolution."""

import pytest

from taskgate.auth.permission_types import GlobalPermissionSubject, PermissionAction
from taskgate.permissions.protocol import (
    ActorNotFoundError,
    GlobalGrant,
    GrantHolder,
    HolderKind,
)
from taskgate.services.global_permission_service import (
    check_global_permission,
    gather_global_grants,
    has_global_permission,
    has_global_permissions,
)

ALICE = GrantHolder(HolderKind.USER, "alice")
DEV = GrantHolder(HolderKind.POSITION, "pos-dev")


class TestCheckGlobalPermission:
    def test_matching_subject(self):
        grants = [GlobalGrant(subject="project", holder=ALICE, can_read=True)]
        assert check_global_permission(grants, "project", PermissionAction.READ) is True
        assert check_global_permission(grants, "project", PermissionAction.EDIT) is False

    def test_other_subject_does_not_match(self):
        grants = [GlobalGrant(subject="template", holder=ALICE, can_read=True)]
        assert check_global_permission(grants, "project", PermissionAction.READ) is False

    def test_wildcard_matches_every_subject(self):
        grants = [GlobalGrant(subject="*", holder=ALICE, can_edit=True)]
        for subject in GlobalPermissionSubject:
            assert check_global_permission(grants, subject, PermissionAction.EDIT) is True

    def test_no_grants(self):
        assert check_global_permission([], "project", PermissionAction.READ) is False


class TestHasGlobalPermission:
    async def test_unauthenticated_is_denied(self, store):
        assert await has_global_permission(store, None, "project", PermissionAction.READ) is False
        assert await has_global_permission(store, "", "project", PermissionAction.READ) is False

    async def test_unknown_actor_raises(self, store):
        with pytest.raises(ActorNotFoundError) as exc_info:
            await has_global_permission(store, "ghost", "project", PermissionAction.READ)
        assert exc_info.value.actor_id == "ghost"

    async def test_own_grant(self, store):
        store.add_actor("alice")
        store.grant_global(ALICE, "user", can_create=True)

        assert await has_global_permission(store, "alice", "user", PermissionAction.CREATE) is True
        assert await has_global_permission(store, "alice", "user", PermissionAction.DELETE) is False

    async def test_position_grant(self, store):
        store.add_actor("alice", position_id="pos-dev")
        store.grant_global(DEV, "position", can_read=True)

        assert (
            await has_global_permission(store, "alice", "position", PermissionAction.READ) is True
        )

    async def test_other_users_grants_do_not_apply(self, store):
        store.add_actor("alice")
        store.add_actor("bob")
        store.grant_global(GrantHolder(HolderKind.USER, "bob"), "*", can_read=True)

        result = await has_global_permission(store, "alice", "project", PermissionAction.READ)
        assert result is False


class TestGatherGlobalGrants:
    async def test_actor_grants_then_position_grants(self, store):
        actor = store.add_actor("alice", position_id="pos-dev")
        own = store.grant_global(ALICE, "project", can_read=True)
        inherited = store.grant_global(DEV, "file", can_read=True)

        assert await gather_global_grants(store, actor) == [own, inherited]

    async def test_no_position_skips_lookup(self, store):
        actor = store.add_actor("alice")
        await gather_global_grants(store, actor)
        assert store.calls["find_global_grants_for_position"] == 0


class TestHasGlobalPermissions:
    async def test_unauthenticated_maps_to_none(self, store):
        actions = [PermissionAction.READ, PermissionAction.EDIT]
        results = await has_global_permissions(store, None, "project", actions)
        assert results == {PermissionAction.READ: None, PermissionAction.EDIT: None}

    async def test_every_action_decided(self, store):
        store.add_actor("alice", position_id="pos-dev")
        store.grant_global(ALICE, "project", can_read=True)
        store.grant_global(DEV, "*", can_delete=True)

        results = await has_global_permissions(store, "alice", "project", list(PermissionAction))
        assert results == {
            PermissionAction.READ: True,
            PermissionAction.CREATE: False,
            PermissionAction.EDIT: False,
            PermissionAction.DELETE: True,
        }
        assert store.calls["find_global_grants_for_actor"] == 1
