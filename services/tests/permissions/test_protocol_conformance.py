"""Both store implementations must satisfy the permission Protocols."""

from unittest.mock import AsyncMock

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from taskgate.permissions.protocol import (
    ActorStore,
    GrantAuthorizationError,
    GrantHolder,
    GrantStore,
    GrantWriter,
    HolderKind,
    LocalGrant,
    PermissionStore,
    ResourceHierarchyStore,
)
from taskgate.permissions.sql import SQLPermissionStore

PROTOCOLS = [ResourceHierarchyStore, GrantStore, ActorStore, GrantWriter, PermissionStore]


@pytest.mark.parametrize("protocol", PROTOCOLS)
def test_in_memory_store(store, protocol):
    assert isinstance(store, protocol)


@pytest.mark.parametrize("protocol", PROTOCOLS)
def test_sql_store(protocol):
    assert isinstance(SQLPermissionStore(AsyncMock(spec=AsyncSession)), protocol)


def test_holder_str():
    assert str(GrantHolder(HolderKind.PROJECT_ROLE, 4)) == "project_role:4"


def test_local_grant_tri_state():
    grant = LocalGrant(resource_id=1, holder=GrantHolder(HolderKind.USER, "u"), can_read=False)
    assert grant.permission_for("read") is False
    assert grant.permission_for("edit") is None
    assert not grant.is_empty()


def test_authorization_error_message():
    err = GrantAuthorizationError("edit", "subject project", removing=True)
    assert str(err) == (
        "You do not have sufficient permissions to remove 'edit' for subject project"
    )
