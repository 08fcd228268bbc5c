"""Resource hierarchy synchronisation.

Domain services call these whenever a project, phase, task, subtask, file or
template is created, moved or deleted, so the authorization tree mirrors the
domain tree.
"""

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from taskgate.auth.permission_types import ResourceKind
from taskgate.config import settings
from taskgate.db.models import Resource
from taskgate.logging_config import get_logger
from taskgate.permissions.protocol import InvalidGrantError, ResourceNotFoundError
from taskgate.permissions.sql import SQLPermissionStore

logger = get_logger(__name__)


def _validate_kind(kind: str) -> ResourceKind:
    try:
        return ResourceKind(kind)
    except ValueError:
        raise InvalidGrantError(f"Unknown resource kind: {kind!r}") from None


async def find_resource(db: AsyncSession, kind: str, entity_id: int) -> Resource | None:
    """Get the resource tracking an entity."""
    if not entity_id:
        raise InvalidGrantError("Entity id is required")
    result = await db.execute(
        select(Resource).where(Resource.type == kind, Resource.entity_id == entity_id)
    )
    return result.scalar_one_or_none()


async def get_resource(db: AsyncSession, resource_id: int) -> Resource:
    """Get a resource by id, raising ResourceNotFoundError if missing."""
    result = await db.execute(select(Resource).where(Resource.id == resource_id))
    resource = result.scalar_one_or_none()
    if resource is None:
        raise ResourceNotFoundError(resource_id)
    return resource


async def create_or_update_resource(
    db: AsyncSession,
    kind: str,
    entity_id: int,
    parent_resource_id: int | None = None,
) -> Resource:
    """
    Create the resource for an entity, or re-parent the existing one.

    Args:
        db: Database session
        kind: Resource kind of the entity
        entity_id: Domain entity id
        parent_resource_id: New parent resource; None makes it a root

    Returns:
        The created or updated resource

    Raises:
        InvalidGrantError: For an unknown kind or a move that would create a cycle
        ResourceNotFoundError: If the parent resource does not exist
    """
    kind = _validate_kind(kind)
    resource = await find_resource(db, kind, entity_id)
    created = resource is None
    if resource is None:
        resource = Resource(type=kind, entity_id=entity_id)
        db.add(resource)

    if parent_resource_id is not None:
        parent = await get_resource(db, parent_resource_id)
        if not created:
            # The new parent may not sit below the resource being moved
            ancestry = await SQLPermissionStore(db).find_parent_chain(
                parent.id, settings.permissions.max_hierarchy_depth
            )
            if any(node.id == resource.id for node in ancestry):
                raise InvalidGrantError(
                    f"Resource {resource.id} cannot be moved below its own descendant {parent.id}"
                )
        resource.parent_id = parent.id
    else:
        resource.parent_id = None

    await db.flush()
    logger.info(
        "Resource created" if created else "Resource updated",
        resource_id=resource.id,
        kind=kind,
        entity_id=entity_id,
        parent_id=resource.parent_id,
    )
    return resource


async def set_corresponding_folder(
    db: AsyncSession, resource_id: int, folder_id: int | None
) -> Resource:
    """Link (or unlink with None) the folder mirroring a container resource."""
    resource = await get_resource(db, resource_id)
    if resource.type == ResourceKind.FILE:
        raise InvalidGrantError("File resources cannot have corresponding folders")
    resource.corresponding_folder_id = folder_id
    await db.flush()
    logger.info("Corresponding folder set", resource_id=resource_id, folder_id=folder_id)
    return resource


async def delete_resource(db: AsyncSession, kind: str, entity_id: int) -> bool:
    """Delete an entity's resource. Descendants and grants cascade in the database.

    Returns False if the entity had no resource.
    """
    kind = _validate_kind(kind)
    resource = await find_resource(db, kind, entity_id)
    if resource is None:
        return False
    await db.delete(resource)
    await db.flush()
    logger.info("Resource deleted", resource_id=resource.id, kind=kind, entity_id=entity_id)
    return True
