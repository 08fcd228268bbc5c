"""Entity to resource lookup."""

from taskgate.auth.permission_types import ResourceKind
from taskgate.logging_config import get_logger
from taskgate.permissions.protocol import ResourceHierarchyStore

logger = get_logger(__name__)


async def get_entity_resource_id(
    store: ResourceHierarchyStore,
    entity_id: int | None,
    kind: str,
) -> int | None:
    """Resource id tracking a domain entity, or None.

    A file entity may have no resource of its own when it is the folder of a
    container; in that case the container's resource is returned.
    """
    if not entity_id:
        return None

    resource = await store.find_by_entity(kind, entity_id)
    if resource is not None:
        return resource.id

    if kind == ResourceKind.FILE:
        container = await store.find_by_corresponding_folder(entity_id)
        if container is not None:
            logger.debug(
                "Resolved folder to container resource",
                folder_id=entity_id,
                resource_id=container.id,
                resource_kind=container.kind,
            )
            return container.id

    return None
