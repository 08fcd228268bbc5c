"""Permission decision and grant management endpoints.

Endpoints:
    GET    /permissions/check/local                       caller's local decision(s)
    GET    /permissions/check/global                      caller's global decision(s)
    GET    /users/{user_id}/permissions                   effective permissions of a user
    PATCH  /users/{user_id}/permissions/local             add/remove local grants
    PATCH  /users/{user_id}/permissions/global            add/remove global grants
    GET    /positions/{position_id}/permissions           effective permissions of a position
    PATCH  /positions/{position_id}/permissions/local     add/remove local grants
    PATCH  /positions/{position_id}/permissions/global    add/remove global grants
    GET    /project-roles/{role_id}/permissions           effective permissions of a project role
    PATCH  /project-roles/{role_id}/permissions/local     add/remove local grants

Grant changes use the body

    {"data": {"attributes": {
        "add":    [{"resource-id": 4, "can-read": true, "can-edit": false}],
        "remove": [{"resource-id": 9, "can-delete": true}]
    }}}

with ``"subject"`` in place of ``"resource-id"`` for global grants.
"""

from fastapi import APIRouter, Body, Depends, HTTPException, Path, Query
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from taskgate.api.dependencies import get_current_actor_id, require_actor
from taskgate.api.guards import require_global_permission, require_project_role_permission
from taskgate.api.jsonapi import get_attributes
from taskgate.auth.permission_types import GlobalPermissionSubject, PermissionAction
from taskgate.db.session import get_db
from taskgate.logging_config import get_logger
from taskgate.permissions import get_permission_store
from taskgate.permissions.protocol import (
    GlobalGrant,
    GrantHolder,
    HolderKind,
    LocalGrant,
    PermissionStore,
    ResolvedPermissionEntry,
)
from taskgate.services import grant_service, permission_listing_service
from taskgate.services.global_permission_service import has_global_permissions
from taskgate.services.local_permission_service import has_local_permissions

router = APIRouter(tags=["permissions"])
logger = get_logger(__name__)


def _entry_json(entry: ResolvedPermissionEntry) -> dict:
    return {
        "resource-id": entry.resource_id,
        "resource-kind": entry.resource_kind,
        "entity-id": entry.entity_id,
        "can-read": entry.can_read,
        "can-create": entry.can_create,
        "can-edit": entry.can_edit,
        "can-delete": entry.can_delete,
    }


def _global_json(grant: GlobalGrant) -> dict:
    return {
        "subject": grant.subject,
        "can-read": grant.can_read,
        "can-create": grant.can_create,
        "can-edit": grant.can_edit,
        "can-delete": grant.can_delete,
    }


def _local_json(grant: LocalGrant) -> dict:
    return {
        "id": grant.id,
        "type": "local-permissions",
        "attributes": {
            "resource-id": grant.resource_id,
            "holder": str(grant.holder),
            "can-read": grant.can_read,
            "can-create": grant.can_create,
            "can-edit": grant.can_edit,
            "can-delete": grant.can_delete,
        },
    }


def _parse_actions(raw: list[str]) -> list[PermissionAction]:
    try:
        return [PermissionAction(a) for a in raw]
    except ValueError:
        raise HTTPException(status_code=422, detail=f"Invalid action in {raw}") from None


def _change_sets(body: dict) -> tuple[list, list]:
    attrs = get_attributes(body)
    if "add" not in attrs and "remove" not in attrs:
        raise HTTPException(status_code=422, detail="'add' or 'remove' is required")
    return attrs.get("add"), attrs.get("remove")


async def _apply_local(
    store: PermissionStore,
    db: AsyncSession,
    actor_id: str,
    holder: GrantHolder,
    body: dict,
) -> JSONResponse:
    add, remove = _change_sets(body)
    saved = await grant_service.update_local_grants(
        store,
        actor_id,
        holder,
        add=grant_service.parse_local_changes(add, "add"),
        remove=grant_service.parse_local_changes(remove, "remove", allow_null=False),
    )
    await db.commit()
    logger.info("Local permissions updated", holder=str(holder), by=actor_id)
    return JSONResponse(content={"data": [_local_json(g) for g in saved]})


async def _apply_global(
    store: PermissionStore,
    db: AsyncSession,
    actor_id: str,
    holder: GrantHolder,
    body: dict,
) -> JSONResponse:
    add, remove = _change_sets(body)
    saved = await grant_service.update_global_grants(
        store,
        actor_id,
        holder,
        add=grant_service.parse_global_changes(add, "add"),
        remove=grant_service.parse_global_changes(remove, "remove"),
    )
    await db.commit()
    logger.info("Global permissions updated", holder=str(holder), by=actor_id)
    return JSONResponse(content={"data": [_global_json(g) for g in saved]})


# --- Decisions ---


@router.get("/permissions/check/local")
async def check_local(
    resource_id: int = Query(..., alias="resource-id"),
    actions: list[str] = Query(..., alias="action"),
    actor_id: str | None = Depends(get_current_actor_id),
    store: PermissionStore = Depends(get_permission_store),
) -> JSONResponse:
    """Decide the caller's actions on a resource. Unauthenticated callers get nulls."""
    results = await has_local_permissions(store, actor_id, resource_id, _parse_actions(actions))
    return JSONResponse(
        content={
            "data": {
                "resource-id": resource_id,
                "permissions": {str(a): allowed for a, allowed in results.items()},
            }
        }
    )


@router.get("/permissions/check/global")
async def check_global(
    subject: str = Query(...),
    actions: list[str] = Query(..., alias="action"),
    actor_id: str | None = Depends(get_current_actor_id),
    store: PermissionStore = Depends(get_permission_store),
) -> JSONResponse:
    """Decide the caller's actions on a global subject category."""
    try:
        subject = GlobalPermissionSubject(subject)
    except ValueError:
        raise HTTPException(status_code=422, detail=f"Invalid subject: {subject}") from None
    results = await has_global_permissions(store, actor_id, subject, _parse_actions(actions))
    return JSONResponse(
        content={
            "data": {
                "subject": str(subject),
                "permissions": {str(a): allowed for a, allowed in results.items()},
            }
        }
    )


# --- Users ---


@router.get(
    "/users/{user_id}/permissions",
    dependencies=[
        Depends(require_global_permission(PermissionAction.READ, GlobalPermissionSubject.USERS))
    ],
)
async def show_user_permissions(
    user_id: str = Path(...),
    store: PermissionStore = Depends(get_permission_store),
) -> JSONResponse:
    """Effective permissions of a user, per grant source."""
    perms = await permission_listing_service.get_user_permissions(store, user_id)
    return JSONResponse(
        content={
            "data": {
                "local-permissions": {
                    "user": [_entry_json(e) for e in perms.local_user],
                    "position": [_entry_json(e) for e in perms.local_position],
                    "project-roles": [_entry_json(e) for e in perms.local_project_roles],
                },
                "global-permissions": {
                    "user": [_global_json(g) for g in perms.global_user],
                    "position": [_global_json(g) for g in perms.global_position],
                },
            }
        }
    )


@router.patch(
    "/users/{user_id}/permissions/local",
    dependencies=[
        Depends(require_global_permission(PermissionAction.EDIT, GlobalPermissionSubject.USERS))
    ],
)
async def update_user_local_permissions(
    user_id: str = Path(...),
    body: dict = Body(...),
    actor_id: str = Depends(require_actor),
    store: PermissionStore = Depends(get_permission_store),
    db: AsyncSession = Depends(get_db),
) -> JSONResponse:
    """Add or remove a user's local grants."""
    return await _apply_local(store, db, actor_id, GrantHolder(HolderKind.USER, user_id), body)


@router.patch(
    "/users/{user_id}/permissions/global",
    dependencies=[
        Depends(require_global_permission(PermissionAction.EDIT, GlobalPermissionSubject.USERS))
    ],
)
async def update_user_global_permissions(
    user_id: str = Path(...),
    body: dict = Body(...),
    actor_id: str = Depends(require_actor),
    store: PermissionStore = Depends(get_permission_store),
    db: AsyncSession = Depends(get_db),
) -> JSONResponse:
    """Add or remove a user's global grants."""
    return await _apply_global(store, db, actor_id, GrantHolder(HolderKind.USER, user_id), body)


# --- Positions ---


@router.get(
    "/positions/{position_id}/permissions",
    dependencies=[
        Depends(
            require_global_permission(PermissionAction.READ, GlobalPermissionSubject.POSITIONS)
        )
    ],
)
async def show_position_permissions(
    position_id: str = Path(...),
    store: PermissionStore = Depends(get_permission_store),
) -> JSONResponse:
    """Effective permissions of a position."""
    perms = await permission_listing_service.get_position_permissions(store, position_id)
    return JSONResponse(
        content={
            "data": {
                "local-permissions": [_entry_json(e) for e in perms.local],
                "global-permissions": [_global_json(g) for g in perms.global_],
            }
        }
    )


@router.patch(
    "/positions/{position_id}/permissions/local",
    dependencies=[
        Depends(
            require_global_permission(PermissionAction.EDIT, GlobalPermissionSubject.POSITIONS)
        )
    ],
)
async def update_position_local_permissions(
    position_id: str = Path(...),
    body: dict = Body(...),
    actor_id: str = Depends(require_actor),
    store: PermissionStore = Depends(get_permission_store),
    db: AsyncSession = Depends(get_db),
) -> JSONResponse:
    """Add or remove a position's local grants."""
    holder = GrantHolder(HolderKind.POSITION, position_id)
    return await _apply_local(store, db, actor_id, holder, body)


@router.patch(
    "/positions/{position_id}/permissions/global",
    dependencies=[
        Depends(
            require_global_permission(PermissionAction.EDIT, GlobalPermissionSubject.POSITIONS)
        )
    ],
)
async def update_position_global_permissions(
    position_id: str = Path(...),
    body: dict = Body(...),
    actor_id: str = Depends(require_actor),
    store: PermissionStore = Depends(get_permission_store),
    db: AsyncSession = Depends(get_db),
) -> JSONResponse:
    """Add or remove a position's global grants."""
    holder = GrantHolder(HolderKind.POSITION, position_id)
    return await _apply_global(store, db, actor_id, holder, body)


# --- Project roles ---


@router.get(
    "/project-roles/{role_id}/permissions",
    dependencies=[Depends(require_project_role_permission(PermissionAction.READ, "role_id"))],
)
async def show_project_role_permissions(
    role_id: int = Path(...),
    store: PermissionStore = Depends(get_permission_store),
) -> JSONResponse:
    """Effective local permissions of a project role."""
    entries = await permission_listing_service.get_project_role_permissions(store, role_id)
    return JSONResponse(content={"data": {"local-permissions": [_entry_json(e) for e in entries]}})


@router.patch(
    "/project-roles/{role_id}/permissions/local",
    dependencies=[Depends(require_project_role_permission(PermissionAction.EDIT, "role_id"))],
)
async def update_project_role_local_permissions(
    role_id: int = Path(...),
    body: dict = Body(...),
    actor_id: str = Depends(require_actor),
    store: PermissionStore = Depends(get_permission_store),
    db: AsyncSession = Depends(get_db),
) -> JSONResponse:
    """Add or remove a project role's local grants."""
    holder = GrantHolder(HolderKind.PROJECT_ROLE, role_id)
    return await _apply_local(store, db, actor_id, holder, body)
