"""Effective permission listing.

Expands stored local grants down the resource tree so administrators can see
what a user, position or project role can do on every descendant. Derived
entries follow the inheritance rule

    read   = read OR edit
    create = edit
    edit   = edit
    delete = delete OR edit

using three-valued OR, so unspecified flags stay unspecified.
"""

from collections.abc import Sequence
from dataclasses import dataclass

from taskgate.auth.permission_types import tri_or
from taskgate.config import settings
from taskgate.logging_config import get_logger
from taskgate.permissions.protocol import (
    GlobalGrant,
    GrantHolder,
    GrantHolderNotFoundError,
    HolderKind,
    LocalGrant,
    PermissionStore,
    ResolvedPermissionEntry,
    ResourceHierarchyStore,
    ResourceNode,
)
from taskgate.services.global_permission_service import load_actor

logger = get_logger(__name__)


@dataclass(frozen=True)
class UserPermissions:
    """Everything a user holds, split by grant source."""

    local_user: list[ResolvedPermissionEntry]
    local_position: list[ResolvedPermissionEntry]
    local_project_roles: list[ResolvedPermissionEntry]
    global_user: list[GlobalGrant]
    global_position: list[GlobalGrant]


@dataclass(frozen=True)
class PositionPermissions:
    local: list[ResolvedPermissionEntry]
    global_: list[GlobalGrant]


def derive_child_entry(
    parent: ResolvedPermissionEntry, child: ResourceNode
) -> ResolvedPermissionEntry:
    """Entry a child inherits from its parent's effective flags."""
    return ResolvedPermissionEntry(
        resource_id=child.id,
        resource_kind=child.kind,
        entity_id=child.entity_id,
        can_read=tri_or(parent.can_read, parent.can_edit),
        can_create=parent.can_edit,
        can_edit=parent.can_edit,
        can_delete=tri_or(parent.can_delete, parent.can_edit),
    )


async def _expand(
    store: ResourceHierarchyStore,
    entry: ResolvedPermissionEntry,
    resolved: list[ResolvedPermissionEntry],
    visited: set[int],
    depth: int,
) -> None:
    resolved.append(entry)
    visited.add(entry.resource_id)

    if depth + 1 >= settings.permissions.max_hierarchy_depth:
        logger.warning(
            "Permission expansion stopped at depth cap",
            resource_id=entry.resource_id,
            depth=depth,
        )
        return

    for child in await store.find_children(entry.resource_id):
        if child.id in visited:
            logger.warning(
                "Cycle detected in resource hierarchy",
                resource_id=entry.resource_id,
                child_id=child.id,
            )
            continue
        await _expand(store, derive_child_entry(entry, child), resolved, visited, depth + 1)


async def list_effective_permissions(
    store: ResourceHierarchyStore,
    grants: Sequence[LocalGrant],
) -> list[ResolvedPermissionEntry]:
    """Expand starting grants to effective entries on them and all descendants.

    Starting grants are emitted as stored. A grant whose resource has since
    been deleted is skipped. Overlapping subtrees produce one entry per
    starting grant.
    """
    resolved: list[ResolvedPermissionEntry] = []

    for grant in grants:
        resource = await store.find_by_id(grant.resource_id)
        if resource is None:
            logger.debug("Skipping grant on missing resource", resource_id=grant.resource_id)
            continue

        start = ResolvedPermissionEntry(
            resource_id=resource.id,
            resource_kind=resource.kind,
            entity_id=resource.entity_id,
            can_read=grant.can_read,
            can_create=grant.can_create,
            can_edit=grant.can_edit,
            can_delete=grant.can_delete,
        )
        await _expand(store, start, resolved, visited=set(), depth=0)

    return resolved


async def get_user_permissions(store: PermissionStore, user_id: str) -> UserPermissions:
    """List a user's effective local and global permissions per source."""
    actor = await load_actor(store, user_id)

    position_local: list[LocalGrant] = []
    position_global: list[GlobalGrant] = []
    if actor.position_id is not None:
        position_local = await store.find_grants_for_position(actor.position_id)
        position_global = await store.find_global_grants_for_position(actor.position_id)

    return UserPermissions(
        local_user=await list_effective_permissions(
            store, await store.find_grants_for_actor(actor.id)
        ),
        local_position=await list_effective_permissions(store, position_local),
        local_project_roles=await list_effective_permissions(
            store, await store.find_grants_for_roles(actor.project_role_ids)
        ),
        global_user=await store.find_global_grants_for_actor(actor.id),
        global_position=position_global,
    )


async def get_position_permissions(store: PermissionStore, position_id: str) -> PositionPermissions:
    """List a position's effective local permissions and its global grants."""
    holder = GrantHolder(HolderKind.POSITION, position_id)
    if not await store.holder_exists(holder):
        raise GrantHolderNotFoundError(holder)

    return PositionPermissions(
        local=await list_effective_permissions(
            store, await store.find_grants_for_position(position_id)
        ),
        global_=await store.find_global_grants_for_position(position_id),
    )


async def get_project_role_permissions(
    store: PermissionStore, role_id: int
) -> list[ResolvedPermissionEntry]:
    """List a project role's effective local permissions."""
    holder = GrantHolder(HolderKind.PROJECT_ROLE, role_id)
    if not await store.holder_exists(holder):
        raise GrantHolderNotFoundError(holder)

    return await list_effective_permissions(store, await store.find_grants_for_roles([role_id]))
