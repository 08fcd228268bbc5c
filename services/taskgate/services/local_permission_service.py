"""Local (resource-scoped) permission resolution.

Resolves whether a user may perform an action on one resource of the
hierarchy. Each level of the resource's ancestry is evaluated in order:

1. Global grant for the level's subject category and the action -> ALLOW
   (global grants override every local denial)
2. Position grant denies -> DENY
3. User grant denies -> DENY
4. Any of position, user or project-role grants allows -> ALLOW
5. Project-role grants deny (and nothing allowed) -> DENY
6. No opinion at this level -> next ancestor, with create/delete
   checked as edit on the container
7. Top of the chain reached without an opinion -> DENY

The ancestry chain and all grants along it are fetched once per call.
"""

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field, replace

from taskgate.auth.permission_types import (
    ACTION_FIELDS,
    PermissionAction,
    parent_action,
    subject_for_kind,
)
from taskgate.config import settings
from taskgate.logging_config import get_logger
from taskgate.permissions.protocol import (
    GlobalGrant,
    LocalGrant,
    PermissionStore,
    ResourceNode,
    ResourceNotFoundError,
)
from taskgate.services.global_permission_service import (
    check_global_permission,
    gather_global_grants,
    load_actor,
)

logger = get_logger(__name__)


def check_local_permission(grant: LocalGrant | None, action: PermissionAction) -> bool | None:
    """Tri-state opinion of a single grant (None when there is no grant)."""
    if grant is None:
        return None
    return grant.permission_for(action)


def check_role_permissions(grants: Iterable[LocalGrant], action: PermissionAction) -> bool | None:
    """Union of project-role grants: any allow wins, then any deny, else no opinion."""
    opinions = [grant.permission_for(action) for grant in grants]
    if any(opinion is True for opinion in opinions):
        return True
    if any(opinion is False for opinion in opinions):
        return False
    return None


@dataclass
class _ResolutionContext:
    """Everything fetched for one check: ancestry plus grants along it."""

    chain: list[ResourceNode]
    global_grants: list[GlobalGrant]
    user_grants: dict[int, LocalGrant] = field(default_factory=dict)
    position_grants: dict[int, LocalGrant] = field(default_factory=dict)
    role_grants: dict[int, list[LocalGrant]] = field(default_factory=dict)

    def resolve_level(self, node: ResourceNode, action: PermissionAction) -> bool | None:
        """Tri-state decision at one resource; None defers to the parent."""
        if check_global_permission(self.global_grants, subject_for_kind(node.kind), action):
            return True

        position_result = check_local_permission(self.position_grants.get(node.id), action)
        if position_result is False:
            return False

        user_result = check_local_permission(self.user_grants.get(node.id), action)
        if user_result is False:
            return False

        role_result = check_role_permissions(self.role_grants.get(node.id, []), action)

        if position_result is True or user_result is True or role_result is True:
            return True
        if role_result is False:
            return False
        return None


def _deny_wins(left: bool | None, right: bool | None) -> bool | None:
    if left is False or right is False:
        return False
    if left is True or right is True:
        return True
    return None


def _merge_per_resource(grants: Iterable[LocalGrant]) -> dict[int, LocalGrant]:
    """One grant per resource. Duplicate rows for a holder fold flag by flag, deny first."""
    indexed: dict[int, LocalGrant] = {}
    for grant in grants:
        seen = indexed.get(grant.resource_id)
        if seen is None:
            indexed[grant.resource_id] = grant
            continue
        indexed[grant.resource_id] = replace(
            seen,
            **{
                name: _deny_wins(getattr(seen, name), getattr(grant, name))
                for name in ACTION_FIELDS.values()
            },
        )
    return indexed


async def _load_context(
    store: PermissionStore, actor_id: str, resource_id: int
) -> _ResolutionContext:
    actor = await load_actor(store, actor_id)

    max_depth = settings.permissions.max_hierarchy_depth
    chain = await store.find_parent_chain(resource_id, max_depth)
    if not chain:
        raise ResourceNotFoundError(resource_id)
    if chain[-1].parent_id is not None:
        logger.warning(
            "Resource ancestry truncated",
            resource_id=resource_id,
            depth=len(chain),
            max_depth=max_depth,
        )

    resource_ids = [node.id for node in chain]

    context = _ResolutionContext(
        chain=chain,
        global_grants=await gather_global_grants(store, actor),
        user_grants=_merge_per_resource(await store.find_grants_for_actor(actor.id, resource_ids)),
    )
    if actor.position_id is not None:
        context.position_grants = _merge_per_resource(
            await store.find_grants_for_position(actor.position_id, resource_ids)
        )
    if actor.project_role_ids:
        for grant in await store.find_grants_for_roles(actor.project_role_ids, resource_ids):
            context.role_grants.setdefault(grant.resource_id, []).append(grant)
    return context


async def has_local_permission(
    store: PermissionStore,
    actor_id: str | None,
    resource_id: int,
    action: PermissionAction,
) -> bool:
    """
    Check if a user may perform an action on a resource.

    Args:
        store: Permission store
        actor_id: Acting user id; None or empty means unauthenticated
        resource_id: Resource being accessed
        action: Required action

    Returns:
        True if access is granted, False otherwise

    Raises:
        ActorNotFoundError: If actor_id is given but unknown
        ResourceNotFoundError: If the resource does not exist
    """
    if not actor_id:
        return False

    context = await _load_context(store, actor_id, resource_id)

    current = action
    for node in context.chain:
        result = context.resolve_level(node, current)
        if result is not None:
            logger.debug(
                "Local permission resolved",
                actor=actor_id,
                resource=resource_id,
                action=action,
                decided_at=node.id,
                allowed=result,
            )
            return result
        current = parent_action(current)

    logger.debug(
        "Local permission denied: no grant in ancestry",
        actor=actor_id,
        resource=resource_id,
        action=action,
    )
    return False


async def has_local_permissions(
    store: PermissionStore,
    actor_id: str | None,
    resource_id: int,
    actions: Sequence[PermissionAction],
) -> dict[PermissionAction, bool | None]:
    """Batch variant of has_local_permission.

    All requested actions walk the ancestry together. An action resolved at
    one level is carried forward untouched; the others move up with their own
    remapped action. The walk stops once every action has a decision, and
    actions still undecided at the top are denied. For an unauthenticated
    caller every action maps to None.
    """
    results: dict[PermissionAction, bool | None] = {action: None for action in actions}
    if not actor_id:
        return results

    context = await _load_context(store, actor_id, resource_id)

    effective = {action: action for action in results}
    for node in context.chain:
        pending = [action for action, result in results.items() if result is None]
        if not pending:
            break
        for action in pending:
            results[action] = context.resolve_level(node, effective[action])
            effective[action] = parent_action(effective[action])

    for action, result in results.items():
        if result is None:
            results[action] = False

    logger.debug(
        "Local permissions resolved",
        actor=actor_id,
        resource=resource_id,
        results={str(action): result for action, result in results.items()},
    )
    return results
