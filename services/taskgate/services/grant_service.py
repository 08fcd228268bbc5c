"""Grant management.

Applies add/remove change sets to the grants of a user, position or project
role. The acting user may only hand out or take away an action they hold
themselves: local changes are authorized with the local resolver on the
target resource, global changes with the global resolver on the subject.

Removals run before additions. Removing a local action clears it back to
"unspecified"; removing a global action sets it to False. Grants left with no
flags are deleted.
"""

from collections.abc import Iterable
from dataclasses import dataclass, replace
from typing import Any

from taskgate.auth.permission_types import (
    ACTION_FIELDS,
    GlobalPermissionSubject,
    PermissionAction,
)
from taskgate.logging_config import get_logger
from taskgate.permissions.protocol import (
    GlobalGrant,
    GrantAuthorizationError,
    GrantHolder,
    GrantHolderNotFoundError,
    HolderKind,
    InvalidGrantError,
    LocalGrant,
    PermissionStore,
)
from taskgate.services.global_permission_service import has_global_permissions
from taskgate.services.local_permission_service import has_local_permissions

logger = get_logger(__name__)

# Payload keys, JSON:API style
FLAG_KEYS: dict[PermissionAction, str] = {
    PermissionAction.READ: "can-read",
    PermissionAction.CREATE: "can-create",
    PermissionAction.EDIT: "can-edit",
    PermissionAction.DELETE: "can-delete",
}


@dataclass(frozen=True)
class LocalGrantChange:
    resource_id: int
    flags: dict[PermissionAction, bool | None]


@dataclass(frozen=True)
class GlobalGrantChange:
    subject: str
    flags: dict[PermissionAction, bool]


def _parse_flags(entry: dict[str, Any], allow_null: bool) -> dict[PermissionAction, bool | None]:
    flags: dict[PermissionAction, bool | None] = {}
    for action, key in FLAG_KEYS.items():
        if key not in entry:
            continue
        value = entry[key]
        if value is None and not allow_null:
            continue
        if value is not None and not isinstance(value, bool):
            raise InvalidGrantError(f"'{key}' must be a boolean or null")
        flags[action] = value
    return flags


def _require_list(entries: Any, name: str) -> list[dict[str, Any]]:
    if entries is None:
        return []
    if not isinstance(entries, list) or not all(isinstance(e, dict) for e in entries):
        raise InvalidGrantError(f"'{name}' must be a list of objects")
    return entries


def parse_local_changes(
    entries: Any, name: str = "data", allow_null: bool = True
) -> list[LocalGrantChange]:
    """Parse ``[{"resource-id": 1, "can-read": true, ...}, ...]``.

    For additions a null flag resets it to unspecified; for removals only the
    non-null keys name actions to remove.
    """
    changes = []
    for entry in _require_list(entries, name):
        resource_id = entry.get("resource-id")
        if not isinstance(resource_id, int) or isinstance(resource_id, bool):
            raise InvalidGrantError("'resource-id' must be an integer")
        changes.append(LocalGrantChange(resource_id, _parse_flags(entry, allow_null)))
    return changes


def parse_global_changes(entries: Any, name: str = "data") -> list[GlobalGrantChange]:
    """Parse ``[{"subject": "project", "can-read": true, ...}, ...]``."""
    changes = []
    for entry in _require_list(entries, name):
        raw = entry.get("subject")
        try:
            subject = GlobalPermissionSubject(raw)
        except ValueError:
            raise InvalidGrantError(f"Unknown global permission subject: {raw!r}") from None
        flags = _parse_flags(entry, allow_null=False)
        changes.append(GlobalGrantChange(str(subject), flags))  # type: ignore[arg-type]
    return changes


async def _require_holder(store: PermissionStore, holder: GrantHolder) -> None:
    if not await store.holder_exists(holder):
        raise GrantHolderNotFoundError(holder)


async def _authorize_local(
    store: PermissionStore,
    current_actor_id: str | None,
    change: LocalGrantChange,
    removing: bool,
) -> None:
    actions = list(change.flags)
    if not actions:
        return
    results = await has_local_permissions(store, current_actor_id, change.resource_id, actions)
    for action in actions:
        if results[action] is not True:
            raise GrantAuthorizationError(
                action, f"resource ID {change.resource_id}", removing=removing
            )


async def _authorize_global(
    store: PermissionStore,
    current_actor_id: str | None,
    change: GlobalGrantChange,
    removing: bool,
) -> None:
    actions = list(change.flags)
    if not actions:
        return
    results = await has_global_permissions(store, current_actor_id, change.subject, actions)
    for action in actions:
        if results[action] is not True:
            raise GrantAuthorizationError(
                action, f"subject {change.subject}", removing=removing
            )


def _with_flags(grant, flags: dict[PermissionAction, Any]):  # type: ignore[no-untyped-def]
    return replace(grant, **{ACTION_FIELDS[action]: value for action, value in flags.items()})


async def update_local_grants(
    store: PermissionStore,
    current_actor_id: str | None,
    holder: GrantHolder,
    add: Iterable[LocalGrantChange] = (),
    remove: Iterable[LocalGrantChange] = (),
) -> list[LocalGrant]:
    """
    Apply local grant changes to a holder.

    Args:
        store: Permission store
        current_actor_id: User making the change
        holder: User, position or project role receiving the change
        add: Flags to write, per resource
        remove: Actions to clear, per resource

    Returns:
        The holder's grants written by the additions

    Raises:
        GrantHolderNotFoundError: If the holder does not exist
        GrantAuthorizationError: If the current actor lacks an action being changed
        ResourceNotFoundError: If a change names an unknown resource
    """
    await _require_holder(store, holder)

    for change in remove:
        await _authorize_local(store, current_actor_id, change, removing=True)
        grant = await store.get_local_grant(holder, change.resource_id)
        if grant is None:
            continue
        grant = _with_flags(grant, {action: None for action in change.flags})
        if grant.is_empty():
            await store.delete_local_grant(holder, change.resource_id)
            logger.info("Local grant removed", holder=str(holder), resource_id=change.resource_id)
        else:
            await store.save_local_grant(grant)

    saved: list[LocalGrant] = []
    for change in add:
        await _authorize_local(store, current_actor_id, change, removing=False)
        grant = await store.get_local_grant(holder, change.resource_id) or LocalGrant(
            resource_id=change.resource_id, holder=holder
        )
        grant = _with_flags(grant, change.flags)
        if grant.is_empty():
            await store.delete_local_grant(holder, change.resource_id)
            continue
        saved.append(await store.save_local_grant(grant))
        logger.info(
            "Local grant updated",
            holder=str(holder),
            resource_id=change.resource_id,
            by=current_actor_id,
        )

    return saved


async def update_global_grants(
    store: PermissionStore,
    current_actor_id: str | None,
    holder: GrantHolder,
    add: Iterable[GlobalGrantChange] = (),
    remove: Iterable[GlobalGrantChange] = (),
) -> list[GlobalGrant]:
    """Apply global grant changes to a user or position.

    Same flow as update_local_grants, authorized with the global resolver.
    """
    if holder.kind == HolderKind.PROJECT_ROLE:
        raise InvalidGrantError("Project roles cannot hold global permissions")
    await _require_holder(store, holder)

    for change in remove:
        await _authorize_global(store, current_actor_id, change, removing=True)
        grant = await store.get_global_grant(holder, change.subject)
        if grant is None:
            continue
        grant = _with_flags(grant, {action: False for action in change.flags})
        if grant.is_empty():
            await store.delete_global_grant(holder, change.subject)
            logger.info("Global grant removed", holder=str(holder), subject=change.subject)
        else:
            await store.save_global_grant(grant)

    saved: list[GlobalGrant] = []
    for change in add:
        await _authorize_global(store, current_actor_id, change, removing=False)
        grant = await store.get_global_grant(holder, change.subject) or GlobalGrant(
            subject=change.subject, holder=holder
        )
        grant = _with_flags(grant, change.flags)
        if grant.is_empty():
            await store.delete_global_grant(holder, change.subject)
            continue
        saved.append(await store.save_global_grant(grant))
        logger.info(
            "Global grant updated",
            holder=str(holder),
            subject=change.subject,
            by=current_actor_id,
        )

    return saved
