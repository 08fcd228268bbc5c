"""Global (category-scoped) permission resolution.

A global grant names a subject category (projects, templates, files, ...) or
the wildcard "*" and carries plain booleans. A user holds a global permission
when any of their own grants or their position's grants matches the category
(or is the wildcard) and has the action's flag set.
"""

from collections.abc import Iterable, Sequence

from taskgate.auth.permission_types import GlobalPermissionSubject, PermissionAction
from taskgate.logging_config import get_logger
from taskgate.permissions.protocol import (
    Actor,
    ActorNotFoundError,
    ActorStore,
    GlobalGrant,
    GrantStore,
    PermissionStore,
)

logger = get_logger(__name__)


async def load_actor(store: ActorStore, actor_id: str) -> Actor:
    """Look up an actor, raising ActorNotFoundError if the id is unknown."""
    actor = await store.find_actor_by_id(actor_id)
    if actor is None:
        raise ActorNotFoundError(actor_id)
    return actor


async def gather_global_grants(store: GrantStore, actor: Actor) -> list[GlobalGrant]:
    """The actor's own global grants followed by their position's."""
    grants = list(await store.find_global_grants_for_actor(actor.id))
    if actor.position_id is not None:
        grants.extend(await store.find_global_grants_for_position(actor.position_id))
    return grants


def check_global_permission(
    grants: Iterable[GlobalGrant],
    subject: str,
    action: PermissionAction,
) -> bool:
    """True if any grant for ``subject`` or the wildcard allows ``action``."""
    return any(
        grant.allows(action)
        and grant.subject in (subject, GlobalPermissionSubject.EVERYTHING)
        for grant in grants
    )


async def has_global_permission(
    store: PermissionStore,
    actor_id: str | None,
    subject: str,
    action: PermissionAction,
) -> bool:
    """
    Check whether an actor holds a global permission.

    Args:
        store: Permission store
        actor_id: Acting user id; None or empty means unauthenticated
        subject: Global subject category being accessed
        action: Required action

    Returns:
        True if access is granted, False otherwise

    Raises:
        ActorNotFoundError: If actor_id is given but unknown
    """
    if not actor_id:
        return False

    actor = await load_actor(store, actor_id)
    grants = await gather_global_grants(store, actor)
    allowed = check_global_permission(grants, subject, action)

    logger.debug(
        "Global permission resolved",
        actor=actor_id,
        subject=subject,
        action=action,
        allowed=allowed,
    )
    return allowed


async def has_global_permissions(
    store: PermissionStore,
    actor_id: str | None,
    subject: str,
    actions: Sequence[PermissionAction],
) -> dict[PermissionAction, bool | None]:
    """Batch variant of has_global_permission over one gathered grant set.

    Every requested action maps to True/False. For an unauthenticated caller
    every action maps to None.
    """
    if not actor_id:
        return {action: None for action in actions}

    actor = await load_actor(store, actor_id)
    grants = await gather_global_grants(store, actor)
    return {action: check_global_permission(grants, subject, action) for action in actions}
