"""
Permission store protocol and types for Taskgate.

Defines the read Protocols the permission resolvers consume (resource
hierarchy, grants, actors), the write Protocol used by grant management, and
the shared data types and exceptions.
"""

from collections.abc import Sequence
from dataclasses import dataclass
from enum import StrEnum
from typing import Protocol, runtime_checkable

from taskgate.auth.permission_types import ACTION_FIELDS, PermissionAction

# --- Data Types ---


class HolderKind(StrEnum):
    """Who a grant is attached to."""

    USER = "user"
    POSITION = "position"
    PROJECT_ROLE = "project_role"


@dataclass(frozen=True)
class GrantHolder:
    """The single user, position or project role holding a grant."""

    kind: HolderKind
    id: str | int

    def __str__(self) -> str:
        return f"{self.kind}:{self.id}"


@dataclass(frozen=True)
class ResourceNode:
    """A node of the resource hierarchy."""

    id: int
    kind: str
    entity_id: int
    parent_id: int | None = None
    corresponding_folder_id: int | None = None


@dataclass(frozen=True)
class Actor:
    """The acting user with everything grant lookups need."""

    id: str
    position_id: str | None = None
    project_role_ids: tuple[int, ...] = ()


@dataclass(frozen=True)
class GlobalGrant:
    """Category-scoped grant. Flags are plain booleans."""

    subject: str
    holder: GrantHolder
    can_read: bool = False
    can_create: bool = False
    can_edit: bool = False
    can_delete: bool = False
    id: int | None = None

    def allows(self, action: PermissionAction) -> bool:
        return getattr(self, ACTION_FIELDS[action]) is True

    def is_empty(self) -> bool:
        return not (self.can_read or self.can_create or self.can_edit or self.can_delete)


@dataclass(frozen=True)
class LocalGrant:
    """Resource-scoped grant. Flags are tri-state (True / False / None)."""

    resource_id: int
    holder: GrantHolder
    can_read: bool | None = None
    can_create: bool | None = None
    can_edit: bool | None = None
    can_delete: bool | None = None
    id: int | None = None

    def permission_for(self, action: PermissionAction) -> bool | None:
        """Tri-state opinion of this grant on one action."""
        value = getattr(self, ACTION_FIELDS[action])
        if value is True:
            return True
        if value is False:
            return False
        return None

    def is_empty(self) -> bool:
        return (
            self.can_read is None
            and self.can_create is None
            and self.can_edit is None
            and self.can_delete is None
        )


@dataclass(frozen=True)
class ResolvedPermissionEntry:
    """Effective tri-state CRUD flags of one holder on one resource."""

    resource_id: int
    resource_kind: str
    entity_id: int
    can_read: bool | None
    can_create: bool | None
    can_edit: bool | None
    can_delete: bool | None


# --- Exceptions ---


class PermissionStoreError(Exception):
    """Base exception for permission store and resolver errors."""


class ResourceNotFoundError(PermissionStoreError):
    """Raised when a resource id does not exist (maps to 404, not 403)."""

    def __init__(self, resource_id: int) -> None:
        self.resource_id = resource_id
        super().__init__(f"Resource not found: {resource_id}")


class ActorNotFoundError(PermissionStoreError):
    """Raised when an actor id is given but no such user exists."""

    def __init__(self, actor_id: str) -> None:
        self.actor_id = actor_id
        super().__init__(f"Actor not found: {actor_id}")


class GrantHolderNotFoundError(PermissionStoreError):
    """Raised when the target user, position or project role does not exist."""

    def __init__(self, holder: GrantHolder) -> None:
        self.holder = holder
        super().__init__(f"Grant holder not found: {holder}")


class InvalidGrantError(PermissionStoreError):
    """Raised for malformed grant payloads or hierarchy invariant violations."""


class GrantAuthorizationError(PermissionStoreError):
    """Raised when the current actor may not assign or revoke an action."""

    def __init__(self, action: PermissionAction, target: str, removing: bool = False) -> None:
        self.action = action
        self.target = target
        verb = "remove" if removing else "assign"
        super().__init__(
            f"You do not have sufficient permissions to {verb} '{action}' for {target}"
        )


# --- Protocols ---


@runtime_checkable
class ResourceHierarchyStore(Protocol):
    """Read access to the resource tree."""

    async def find_by_id(self, resource_id: int) -> ResourceNode | None:
        """Return the resource, or None if it does not exist."""
        ...

    async def find_children(self, resource_id: int) -> list[ResourceNode]:
        """Return the direct children of a resource."""
        ...

    async def find_parent_chain(self, resource_id: int, max_depth: int) -> list[ResourceNode]:
        """Return the resource followed by its ancestors, root last.

        At most ``max_depth`` nodes are returned and a node is never returned
        twice. Returns an empty list if the resource does not exist.
        """
        ...

    async def find_by_entity(self, kind: str, entity_id: int) -> ResourceNode | None:
        """Return the resource tracking a domain entity."""
        ...

    async def find_by_corresponding_folder(self, folder_id: int) -> ResourceNode | None:
        """Return the container resource whose folder is the given file entity."""
        ...

    async def list_resources(self) -> list[ResourceNode]:
        """Return every resource, ordered by id."""
        ...


@runtime_checkable
class GrantStore(Protocol):
    """Read access to local and global grants.

    ``resource_ids=None`` means grants on every resource.
    """

    async def find_grants_for_actor(
        self, actor_id: str, resource_ids: Sequence[int] | None = None
    ) -> list[LocalGrant]: ...

    async def find_grants_for_position(
        self, position_id: str, resource_ids: Sequence[int] | None = None
    ) -> list[LocalGrant]: ...

    async def find_grants_for_roles(
        self, role_ids: Sequence[int], resource_ids: Sequence[int] | None = None
    ) -> list[LocalGrant]: ...

    async def find_global_grants_for_actor(self, actor_id: str) -> list[GlobalGrant]: ...

    async def find_global_grants_for_position(self, position_id: str) -> list[GlobalGrant]: ...


@runtime_checkable
class ActorStore(Protocol):
    """Identity and membership lookup."""

    async def find_actor_by_id(self, actor_id: str) -> Actor | None:
        """Return the actor with its position and project role memberships."""
        ...

    async def find_role_project_id(self, role_id: int) -> int | None:
        """Return the project entity id a project role belongs to."""
        ...


@runtime_checkable
class GrantWriter(Protocol):
    """Write access used by grant management endpoints, never by resolvers."""

    async def holder_exists(self, holder: GrantHolder) -> bool: ...

    async def get_local_grant(self, holder: GrantHolder, resource_id: int) -> LocalGrant | None: ...

    async def save_local_grant(self, grant: LocalGrant) -> LocalGrant:
        """Insert or update the grant of ``grant.holder`` on ``grant.resource_id``."""
        ...

    async def delete_local_grant(self, holder: GrantHolder, resource_id: int) -> None: ...

    async def get_global_grant(self, holder: GrantHolder, subject: str) -> GlobalGrant | None: ...

    async def save_global_grant(self, grant: GlobalGrant) -> GlobalGrant:
        """Insert or update the grant of ``grant.holder`` on ``grant.subject``."""
        ...

    async def delete_global_grant(self, holder: GrantHolder, subject: str) -> None: ...


@runtime_checkable
class PermissionStore(ResourceHierarchyStore, GrantStore, ActorStore, GrantWriter, Protocol):
    """Everything the permission services need from persistence."""
