"""Resource hierarchy endpoints.

Endpoints:
    GET    /resources                              list all resources (global read on *)
    GET    /resources/lookup/{kind}/{entity_id}    resource tracking an entity
    GET    /resources/{resource_id}                show resource (local read)
    PUT    /resources/sync                         create or re-parent an entity's resource
    PUT    /resources/{resource_id}/folder         link the container's folder
    DELETE /resources/{kind}/{entity_id}           delete an entity's resource
"""

from fastapi import APIRouter, Body, Depends, HTTPException, Path
from fastapi.responses import JSONResponse, Response
from sqlalchemy.ext.asyncio import AsyncSession

from taskgate.api.dependencies import require_actor
from taskgate.api.guards import require_global_permission, require_resource_permission
from taskgate.api.jsonapi import get_attributes
from taskgate.auth.permission_types import (
    GlobalPermissionSubject,
    PermissionAction,
    ResourceKind,
)
from taskgate.db.session import get_db
from taskgate.logging_config import get_logger
from taskgate.permissions import get_permission_store
from taskgate.permissions.protocol import PermissionStore, ResourceNode, ResourceNotFoundError
from taskgate.permissions.sql import to_node
from taskgate.services import resource_sync_service
from taskgate.services.resource_service import get_entity_resource_id

router = APIRouter(tags=["resources"])
logger = get_logger(__name__)


def _resource_json(node: ResourceNode) -> dict:
    return {
        "id": node.id,
        "type": "resources",
        "attributes": {
            "kind": node.kind,
            "entity-id": node.entity_id,
            "parent-id": node.parent_id,
            "corresponding-folder-id": node.corresponding_folder_id,
        },
    }


def _validate_kind(kind: str) -> ResourceKind:
    try:
        return ResourceKind(kind)
    except ValueError:
        raise HTTPException(status_code=422, detail=f"Invalid resource kind: {kind}") from None


def _optional_int(attrs: dict, key: str) -> int | None:
    value = attrs.get(key)
    if value is None:
        return None
    if not isinstance(value, int) or isinstance(value, bool):
        raise HTTPException(status_code=422, detail=f"'{key}' must be an integer")
    return value


@router.get(
    "/resources",
    dependencies=[
        Depends(
            require_global_permission(PermissionAction.READ, GlobalPermissionSubject.EVERYTHING)
        )
    ],
)
async def list_resources(
    store: PermissionStore = Depends(get_permission_store),
) -> JSONResponse:
    """List every resource of the hierarchy. Needs read on every global subject."""
    nodes = await store.list_resources()
    return JSONResponse(content={"data": [_resource_json(n) for n in nodes]})


@router.get("/resources/lookup/{kind}/{entity_id}")
async def lookup_resource(
    kind: str = Path(...),
    entity_id: int = Path(...),
    actor_id: str = Depends(require_actor),
    store: PermissionStore = Depends(get_permission_store),
) -> JSONResponse:
    """Find the resource tracking an entity. Files fall back to their container."""
    resource_kind = _validate_kind(kind)
    resource_id = await get_entity_resource_id(store, entity_id, resource_kind)
    if resource_id is None:
        raise HTTPException(
            status_code=404,
            detail=f"Resource with the type {resource_kind} for entity {entity_id} not found",
        )
    node = await store.find_by_id(resource_id)
    if node is None:
        raise ResourceNotFoundError(resource_id)
    return JSONResponse(content={"data": _resource_json(node)})


@router.get(
    "/resources/{resource_id}",
    dependencies=[Depends(require_resource_permission(PermissionAction.READ, "resource_id"))],
)
async def show_resource(
    resource_id: int = Path(...),
    store: PermissionStore = Depends(get_permission_store),
) -> JSONResponse:
    """Show a resource the caller may read."""
    node = await store.find_by_id(resource_id)
    if node is None:
        raise ResourceNotFoundError(resource_id)
    return JSONResponse(content={"data": _resource_json(node)})


@router.put(
    "/resources/sync",
    dependencies=[
        Depends(
            require_global_permission(PermissionAction.EDIT, GlobalPermissionSubject.EVERYTHING)
        )
    ],
)
async def sync_resource(
    body: dict = Body(...),
    db: AsyncSession = Depends(get_db),
) -> JSONResponse:
    """Create the resource for an entity, or move it under a new parent."""
    attrs = get_attributes(body)
    kind = _validate_kind(attrs.get("kind", ""))
    entity_id = _optional_int(attrs, "entity-id")
    if not entity_id:
        raise HTTPException(status_code=422, detail="'entity-id' is required")
    parent_id = _optional_int(attrs, "parent-resource-id")

    resource = await resource_sync_service.create_or_update_resource(
        db, kind, entity_id, parent_id
    )
    await db.commit()

    return JSONResponse(content={"data": _resource_json(to_node(resource))})


@router.put(
    "/resources/{resource_id}/folder",
    dependencies=[Depends(require_resource_permission(PermissionAction.EDIT, "resource_id"))],
)
async def set_resource_folder(
    resource_id: int = Path(...),
    body: dict = Body(...),
    db: AsyncSession = Depends(get_db),
) -> JSONResponse:
    """Link (or unlink with null) the folder mirroring a container resource."""
    attrs = get_attributes(body)
    folder_id = _optional_int(attrs, "folder-id")

    resource = await resource_sync_service.set_corresponding_folder(db, resource_id, folder_id)
    await db.commit()

    return JSONResponse(content={"data": _resource_json(to_node(resource))})


@router.delete(
    "/resources/{kind}/{entity_id}",
    status_code=204,
    dependencies=[
        Depends(
            require_global_permission(
                PermissionAction.DELETE, GlobalPermissionSubject.EVERYTHING
            )
        )
    ],
)
async def delete_resource(
    kind: str = Path(...),
    entity_id: int = Path(...),
    db: AsyncSession = Depends(get_db),
) -> Response:
    """Delete an entity's resource together with its subtree and grants."""
    deleted = await resource_sync_service.delete_resource(db, _validate_kind(kind), entity_id)
    if not deleted:
        raise HTTPException(
            status_code=404,
            detail=f"Resource with the type {kind} for entity with id {entity_id} not found",
        )
    await db.commit()
    return Response(status_code=204)
