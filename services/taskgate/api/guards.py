"""Authorization guards for route handlers.

Each factory returns a FastAPI dependency that resolves the caller's
permission and raises 403 when it is denied:

    @router.delete("/tasks/{task_id}")
    async def delete_task(
        _: None = Depends(
            require_local_permission(PermissionAction.DELETE, ResourceKind.TASK, "task_id")
        ),
    ): ...

Unknown resources are reported as 404, never as denial.
"""

from collections.abc import Awaitable, Callable
from json import JSONDecodeError

from fastapi import Depends, HTTPException, Request

from taskgate.api.dependencies import get_current_actor_id
from taskgate.auth.permission_types import PermissionAction, ResourceKind
from taskgate.logging_config import get_logger
from taskgate.permissions import get_permission_store
from taskgate.permissions.protocol import PermissionStore
from taskgate.services.global_permission_service import has_global_permission
from taskgate.services.local_permission_service import has_local_permission
from taskgate.services.resource_service import get_entity_resource_id

logger = get_logger(__name__)

Guard = Callable[..., Awaitable[None]]

# Body field holding the parent entity id for each kind
_PARENT_BODY_FIELDS: dict[ResourceKind, tuple[ResourceKind, str]] = {
    ResourceKind.FILE: (ResourceKind.SUBTASK, "subtask-id"),
    ResourceKind.SUBTASK: (ResourceKind.TASK, "task-id"),
    ResourceKind.TASK: (ResourceKind.PROJECT_PHASE, "project-phase-id"),
    ResourceKind.PROJECT_PHASE: (ResourceKind.PROJECT, "project-id"),
}


def _forbidden() -> HTTPException:
    return HTTPException(status_code=403, detail="Forbidden")


def _parse_entity_id(raw: object, name: str) -> int:
    # Path parameters arrive as strings; body values must already be integers
    if isinstance(raw, int) and not isinstance(raw, bool):
        return raw
    invalid = HTTPException(status_code=422, detail=f"'{name}' must be an integer")
    if not isinstance(raw, str):
        raise invalid
    try:
        return int(raw)
    except ValueError:
        raise invalid from None


def _body_hop_action(action: PermissionAction) -> PermissionAction:
    """Creating inside a container needs edit on it; other actions carry over."""
    if action == PermissionAction.CREATE:
        return PermissionAction.EDIT
    return action


async def _authorize_entity(
    store: PermissionStore,
    actor_id: str | None,
    action: PermissionAction,
    kind: ResourceKind,
    entity_id: int,
) -> None:
    resource_id = await get_entity_resource_id(store, entity_id, kind)
    if resource_id is None:
        raise HTTPException(
            status_code=404,
            detail=f"Resource with the type {kind} for entity with id {entity_id} not found",
        )
    if not await has_local_permission(store, actor_id, resource_id, action):
        raise _forbidden()


def require_global_permission(action: PermissionAction, subject: str) -> Guard:
    """Require a global permission on a subject category."""

    async def guard(
        actor_id: str | None = Depends(get_current_actor_id),
        store: PermissionStore = Depends(get_permission_store),
    ) -> None:
        if not await has_global_permission(store, actor_id, subject, action):
            raise _forbidden()

    return guard


def require_local_permission(
    action: PermissionAction, kind: ResourceKind, path_param: str
) -> Guard:
    """Require a local permission on the entity named by a path parameter."""

    async def guard(
        request: Request,
        actor_id: str | None = Depends(get_current_actor_id),
        store: PermissionStore = Depends(get_permission_store),
    ) -> None:
        raw = request.path_params.get(path_param)
        if raw is None:
            raise _forbidden()
        entity_id = _parse_entity_id(raw, path_param)
        await _authorize_entity(store, actor_id, action, kind, entity_id)

    return guard


def require_resource_permission(action: PermissionAction, path_param: str) -> Guard:
    """Require a local permission on a resource id taken from the path."""

    async def guard(
        request: Request,
        actor_id: str | None = Depends(get_current_actor_id),
        store: PermissionStore = Depends(get_permission_store),
    ) -> None:
        raw = request.path_params.get(path_param)
        if raw is None:
            raise _forbidden()
        resource_id = _parse_entity_id(raw, path_param)
        if not await has_local_permission(store, actor_id, resource_id, action):
            raise _forbidden()

    return guard


def require_project_role_permission(action: PermissionAction, path_param: str) -> Guard:
    """Require a local permission on the project a project role belongs to."""

    async def guard(
        request: Request,
        actor_id: str | None = Depends(get_current_actor_id),
        store: PermissionStore = Depends(get_permission_store),
    ) -> None:
        raw = request.path_params.get(path_param)
        if raw is None:
            raise _forbidden()
        role_id = _parse_entity_id(raw, path_param)
        project_id = await store.find_role_project_id(role_id)
        if project_id is None:
            raise HTTPException(status_code=404, detail=f"Project role {role_id} not found")
        await _authorize_entity(store, actor_id, action, ResourceKind.PROJECT, project_id)

    return guard


def require_body_permission(
    action: PermissionAction, kind: ResourceKind, body_field: str
) -> Guard:
    """Require a local permission on the entity named in the JSON body.

    When ``body_field`` is absent (typically on create, before the entity
    exists) the guard falls back to the parent entity's field, climbing
    file -> subtask -> task -> project phase -> project. Each hop checks
    create as edit on the container. Other actions carry over unchanged.
    """

    async def guard(
        request: Request,
        actor_id: str | None = Depends(get_current_actor_id),
        store: PermissionStore = Depends(get_permission_store),
    ) -> None:
        try:
            body = await request.json()
        except JSONDecodeError:
            raise HTTPException(status_code=422, detail="Request body must be JSON") from None
        if not isinstance(body, dict):
            raise HTTPException(status_code=422, detail="Request body must be a JSON object")

        current_kind, field, current_action = kind, body_field, action
        raw = body.get(field)
        while not raw and current_kind in _PARENT_BODY_FIELDS:
            current_kind, field = _PARENT_BODY_FIELDS[current_kind]
            current_action = _body_hop_action(current_action)
            raw = body.get(field)

        if not raw:
            raise HTTPException(status_code=400, detail="Entity id is missing in the request body")

        entity_id = _parse_entity_id(raw, field)
        logger.debug(
            "Authorizing from request body",
            kind=current_kind,
            entity_id=entity_id,
            action=current_action,
        )
        await _authorize_entity(store, actor_id, current_action, current_kind, entity_id)

    return guard
