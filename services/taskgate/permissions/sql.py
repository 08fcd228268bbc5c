"""
PostgreSQL-backed permission store.

Implements every permission Protocol on top of the request's AsyncSession.
Each call is its own point-in-time read; nothing is cached.
"""

from collections.abc import Sequence

from sqlalchemy import Select, delete, literal, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased

from taskgate.db.models import (
    GlobalPermission,
    LocalPermission,
    Position,
    ProjectRole,
    ProjectRoleAssignment,
    Resource,
    User,
)
from taskgate.logging_config import get_logger
from taskgate.permissions.protocol import (
    Actor,
    GlobalGrant,
    GrantHolder,
    HolderKind,
    LocalGrant,
    ResourceNode,
)

logger = get_logger(__name__)

_LOCAL_HOLDER_COLUMNS = {
    HolderKind.USER: LocalPermission.user_id,
    HolderKind.POSITION: LocalPermission.position_id,
    HolderKind.PROJECT_ROLE: LocalPermission.project_role_id,
}

_GLOBAL_HOLDER_COLUMNS = {
    HolderKind.USER: GlobalPermission.user_id,
    HolderKind.POSITION: GlobalPermission.position_id,
}


def to_node(resource: Resource) -> ResourceNode:
    return ResourceNode(
        id=resource.id,
        kind=resource.type,
        entity_id=resource.entity_id,
        parent_id=resource.parent_id,
        corresponding_folder_id=resource.corresponding_folder_id,
    )


def _local_holder(row: LocalPermission) -> GrantHolder:
    if row.user_id is not None:
        return GrantHolder(HolderKind.USER, row.user_id)
    if row.position_id is not None:
        return GrantHolder(HolderKind.POSITION, row.position_id)
    return GrantHolder(HolderKind.PROJECT_ROLE, row.project_role_id)


def _to_local_grant(row: LocalPermission) -> LocalGrant:
    return LocalGrant(
        id=row.id,
        resource_id=row.resource_id,
        holder=_local_holder(row),
        can_read=row.can_read,
        can_create=row.can_create,
        can_edit=row.can_edit,
        can_delete=row.can_delete,
    )


def _to_global_grant(row: GlobalPermission) -> GlobalGrant:
    holder = (
        GrantHolder(HolderKind.USER, row.user_id)
        if row.user_id is not None
        else GrantHolder(HolderKind.POSITION, row.position_id)
    )
    return GlobalGrant(
        id=row.id,
        subject=row.subject,
        holder=holder,
        can_read=bool(row.can_read),
        can_create=bool(row.can_create),
        can_edit=bool(row.can_edit),
        can_delete=bool(row.can_delete),
    )


def _global_holder_column(holder: GrantHolder):  # type: ignore[no-untyped-def]
    column = _GLOBAL_HOLDER_COLUMNS.get(holder.kind)
    if column is None:
        raise ValueError(f"{holder.kind} cannot hold global grants")
    return column


class SQLPermissionStore:
    """Permission store over a single AsyncSession."""

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    # --- Resource hierarchy ---

    async def find_by_id(self, resource_id: int) -> ResourceNode | None:
        result = await self.db.execute(select(Resource).where(Resource.id == resource_id))
        resource = result.scalar_one_or_none()
        return to_node(resource) if resource is not None else None

    async def find_children(self, resource_id: int) -> list[ResourceNode]:
        result = await self.db.execute(
            select(Resource).where(Resource.parent_id == resource_id).order_by(Resource.id)
        )
        return [to_node(r) for r in result.scalars().all()]

    async def find_parent_chain(self, resource_id: int, max_depth: int) -> list[ResourceNode]:
        # Recursive CTE walking parent_id upward; the depth column bounds it
        # even if the stored hierarchy contains a cycle.
        chain = (
            select(Resource.id, Resource.parent_id, literal(0).label("depth"))
            .where(Resource.id == resource_id)
            .cte("ancestry", recursive=True)
        )
        parent = aliased(Resource)
        chain = chain.union_all(
            select(parent.id, parent.parent_id, chain.c.depth + 1).where(
                parent.id == chain.c.parent_id,
                chain.c.depth < max_depth - 1,
            )
        )
        result = await self.db.execute(
            select(Resource)
            .join(chain, Resource.id == chain.c.id)
            .order_by(chain.c.depth)
        )

        nodes: list[ResourceNode] = []
        seen: set[int] = set()
        for resource in result.scalars().all():
            if resource.id in seen:
                logger.warning(
                    "Cycle detected in resource hierarchy",
                    resource_id=resource_id,
                    repeated_id=resource.id,
                )
                break
            seen.add(resource.id)
            nodes.append(to_node(resource))
        return nodes

    async def find_by_entity(self, kind: str, entity_id: int) -> ResourceNode | None:
        result = await self.db.execute(
            select(Resource).where(Resource.type == kind, Resource.entity_id == entity_id)
        )
        resource = result.scalar_one_or_none()
        return to_node(resource) if resource is not None else None

    async def find_by_corresponding_folder(self, folder_id: int) -> ResourceNode | None:
        result = await self.db.execute(
            select(Resource).where(Resource.corresponding_folder_id == folder_id)
        )
        resource = result.scalar_one_or_none()
        return to_node(resource) if resource is not None else None

    async def list_resources(self) -> list[ResourceNode]:
        result = await self.db.execute(select(Resource).order_by(Resource.id))
        return [to_node(r) for r in result.scalars().all()]

    # --- Grants ---

    async def _find_local(
        self, stmt: Select, resource_ids: Sequence[int] | None
    ) -> list[LocalGrant]:
        if resource_ids is not None:
            stmt = stmt.where(LocalPermission.resource_id.in_(list(resource_ids)))
        result = await self.db.execute(stmt.order_by(LocalPermission.id))
        return [_to_local_grant(row) for row in result.scalars().all()]

    async def find_grants_for_actor(
        self, actor_id: str, resource_ids: Sequence[int] | None = None
    ) -> list[LocalGrant]:
        stmt = select(LocalPermission).where(LocalPermission.user_id == actor_id)
        return await self._find_local(stmt, resource_ids)

    async def find_grants_for_position(
        self, position_id: str, resource_ids: Sequence[int] | None = None
    ) -> list[LocalGrant]:
        stmt = select(LocalPermission).where(LocalPermission.position_id == position_id)
        return await self._find_local(stmt, resource_ids)

    async def find_grants_for_roles(
        self, role_ids: Sequence[int], resource_ids: Sequence[int] | None = None
    ) -> list[LocalGrant]:
        if not role_ids:
            return []
        stmt = select(LocalPermission).where(LocalPermission.project_role_id.in_(list(role_ids)))
        return await self._find_local(stmt, resource_ids)

    async def find_global_grants_for_actor(self, actor_id: str) -> list[GlobalGrant]:
        result = await self.db.execute(
            select(GlobalPermission)
            .where(GlobalPermission.user_id == actor_id)
            .order_by(GlobalPermission.id)
        )
        return [_to_global_grant(row) for row in result.scalars().all()]

    async def find_global_grants_for_position(self, position_id: str) -> list[GlobalGrant]:
        result = await self.db.execute(
            select(GlobalPermission)
            .where(GlobalPermission.position_id == position_id)
            .order_by(GlobalPermission.id)
        )
        return [_to_global_grant(row) for row in result.scalars().all()]

    # --- Actors ---

    async def find_actor_by_id(self, actor_id: str) -> Actor | None:
        result = await self.db.execute(select(User).where(User.id == actor_id))
        user = result.scalar_one_or_none()
        if user is None:
            return None

        result = await self.db.execute(
            select(ProjectRoleAssignment.project_role_id)
            .where(ProjectRoleAssignment.user_id == actor_id)
            .order_by(ProjectRoleAssignment.project_role_id)
        )
        role_ids = tuple(result.scalars().all())
        return Actor(id=user.id, position_id=user.position_id, project_role_ids=role_ids)

    async def find_role_project_id(self, role_id: int) -> int | None:
        result = await self.db.execute(
            select(ProjectRole.project_id).where(ProjectRole.id == role_id)
        )
        return result.scalar_one_or_none()

    # --- Grant writes ---

    async def holder_exists(self, holder: GrantHolder) -> bool:
        model = {
            HolderKind.USER: User,
            HolderKind.POSITION: Position,
            HolderKind.PROJECT_ROLE: ProjectRole,
        }[holder.kind]
        result = await self.db.execute(select(model.id).where(model.id == holder.id))
        return result.scalar_one_or_none() is not None

    async def _local_row(self, holder: GrantHolder, resource_id: int) -> LocalPermission | None:
        result = await self.db.execute(
            select(LocalPermission).where(
                _LOCAL_HOLDER_COLUMNS[holder.kind] == holder.id,
                LocalPermission.resource_id == resource_id,
            )
        )
        return result.scalars().first()

    async def get_local_grant(self, holder: GrantHolder, resource_id: int) -> LocalGrant | None:
        row = await self._local_row(holder, resource_id)
        return _to_local_grant(row) if row is not None else None

    async def save_local_grant(self, grant: LocalGrant) -> LocalGrant:
        row = await self._local_row(grant.holder, grant.resource_id)
        if row is None:
            row = LocalPermission(resource_id=grant.resource_id)
            setattr(row, _LOCAL_HOLDER_COLUMNS[grant.holder.kind].key, grant.holder.id)
            self.db.add(row)
        row.can_read = grant.can_read
        row.can_create = grant.can_create
        row.can_edit = grant.can_edit
        row.can_delete = grant.can_delete
        await self.db.flush()
        return _to_local_grant(row)

    async def delete_local_grant(self, holder: GrantHolder, resource_id: int) -> None:
        await self.db.execute(
            delete(LocalPermission).where(
                _LOCAL_HOLDER_COLUMNS[holder.kind] == holder.id,
                LocalPermission.resource_id == resource_id,
            )
        )

    async def _global_row(self, holder: GrantHolder, subject: str) -> GlobalPermission | None:
        result = await self.db.execute(
            select(GlobalPermission).where(
                _global_holder_column(holder) == holder.id,
                GlobalPermission.subject == subject,
            )
        )
        return result.scalars().first()

    async def get_global_grant(self, holder: GrantHolder, subject: str) -> GlobalGrant | None:
        row = await self._global_row(holder, subject)
        return _to_global_grant(row) if row is not None else None

    async def save_global_grant(self, grant: GlobalGrant) -> GlobalGrant:
        row = await self._global_row(grant.holder, grant.subject)
        if row is None:
            row = GlobalPermission(subject=grant.subject)
            setattr(row, _global_holder_column(grant.holder).key, grant.holder.id)
            self.db.add(row)
        row.can_read = grant.can_read
        row.can_create = grant.can_create
        row.can_edit = grant.can_edit
        row.can_delete = grant.can_delete
        await self.db.flush()
        return _to_global_grant(row)

    async def delete_global_grant(self, holder: GrantHolder, subject: str) -> None:
        await self.db.execute(
            delete(GlobalPermission).where(
                _global_holder_column(holder) == holder.id,
                GlobalPermission.subject == subject,
            )
        )
