"""
SQLAlchemy database models for Taskgate.

All models use:
- String UUIDv7 primary keys for identities (users, positions)
- Integer primary keys for resources, project roles and grants
- snake_case column names
- Plural table names
- TIMESTAMPTZ with UTC for all timestamps
- Hard deletes (no soft delete columns); grants and child resources cascade
"""

import uuid
from datetime import UTC, datetime

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship, validates

from taskgate.auth.permission_types import ResourceKind


def generate_uuid7() -> uuid.UUID:
    """Generate a UUIDv7 (time-sortable UUID)."""
    import time

    timestamp_ms = int(time.time() * 1000)
    rand_bytes = uuid.uuid4().bytes[6:]

    uuid_bytes = (
        timestamp_ms.to_bytes(6, "big")
        + bytes([0x70 | (rand_bytes[0] & 0x0F)])  # Version 7
        + bytes([0x80 | (rand_bytes[1] & 0x3F)])  # Variant
        + rand_bytes[2:]
    )
    return uuid.UUID(bytes=uuid_bytes)


def generate_id() -> str:
    return str(generate_uuid7())


def utc_now() -> datetime:
    """Get current UTC datetime."""
    return datetime.now(UTC)


class Base(DeclarativeBase):
    """Base class for all models."""


class Position(Base):
    """Organisational position (job title). Users inherit its grants."""

    __tablename__ = "positions"

    id: Mapped[str] = mapped_column(String(63), primary_key=True, default=generate_id)
    name: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_protected: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, onupdate=utc_now, nullable=False
    )

    users: Mapped[list["User"]] = relationship(back_populates="position")


class User(Base):
    """User account model (the acting identity of permission checks).

    Credentials are owned by the upstream authentication gateway; this table
    only carries what permission resolution needs.
    """

    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(63), primary_key=True, default=generate_id)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    display_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    is_protected: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    position_id: Mapped[str | None] = mapped_column(
        String(63), ForeignKey("positions.id", ondelete="SET NULL"), nullable=True
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, onupdate=utc_now, nullable=False
    )

    position: Mapped[Position | None] = relationship(back_populates="users")


class ProjectRole(Base):
    """Role inside one project (e.g. Coordinator, Mentor, Participant)."""

    __tablename__ = "project_roles"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    project_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    is_managing_team: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, onupdate=utc_now, nullable=False
    )


class ProjectRoleAssignment(Base):
    """Maps users to the project roles they hold."""

    __tablename__ = "project_role_assignments"

    user_id: Mapped[str] = mapped_column(
        String(63), ForeignKey("users.id", ondelete="CASCADE"), primary_key=True
    )
    project_role_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("project_roles.id", ondelete="CASCADE"), primary_key=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, nullable=False
    )


class Resource(Base):
    """Node of the authorization hierarchy, one per domain entity.

    Resources exist purely for permission scoping: the entity itself lives in
    the owning service and is referenced by (type, entity_id).
    """

    __tablename__ = "resources"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    type: Mapped[str] = mapped_column(String(20), nullable=False)
    entity_id: Mapped[int] = mapped_column(Integer, nullable=False)
    parent_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("resources.id", ondelete="CASCADE"), nullable=True
    )
    # File entity id of the folder that mirrors this container in the file tree
    corresponding_folder_id: Mapped[int | None] = mapped_column(
        Integer, unique=True, nullable=True
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, onupdate=utc_now, nullable=False
    )

    __table_args__ = (
        UniqueConstraint("type", "entity_id", name="uq_resources_type_entity_id"),
        CheckConstraint(
            "type <> 'file' OR corresponding_folder_id IS NULL",
            name="ck_resources_file_without_folder",
        ),
        Index("ix_resources_parent_id", "parent_id"),
    )

    @validates("corresponding_folder_id")
    def _validate_folder(self, key: str, value: int | None) -> int | None:
        if value is not None and self.type == ResourceKind.FILE:
            raise ValueError("File resources cannot have corresponding folders")
        return value


class GlobalPermission(Base):
    """Category-scoped grant held by exactly one user or position.

    Flags are plain booleans: a missing flag means no permission.
    """

    __tablename__ = "global_permissions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    subject: Mapped[str] = mapped_column(String(20), nullable=False)

    can_read: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    can_create: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    can_edit: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    can_delete: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    user_id: Mapped[str | None] = mapped_column(
        String(63), ForeignKey("users.id", ondelete="CASCADE"), nullable=True
    )
    position_id: Mapped[str | None] = mapped_column(
        String(63), ForeignKey("positions.id", ondelete="CASCADE"), nullable=True
    )

    __table_args__ = (
        CheckConstraint(
            "(user_id IS NULL) <> (position_id IS NULL)",
            name="ck_global_permissions_single_holder",
        ),
        Index("ix_global_permissions_user_id", "user_id"),
        Index("ix_global_permissions_position_id", "position_id"),
    )


class LocalPermission(Base):
    """Resource-scoped grant held by exactly one user, position or project role.

    Flags are tri-state: True allows, False denies, NULL defers to other
    sources and to the parent resource.
    """

    __tablename__ = "local_permissions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    resource_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("resources.id", ondelete="CASCADE"), nullable=False
    )

    can_read: Mapped[bool | None] = mapped_column(Boolean, nullable=True, default=None)
    can_create: Mapped[bool | None] = mapped_column(Boolean, nullable=True, default=None)
    can_edit: Mapped[bool | None] = mapped_column(Boolean, nullable=True, default=None)
    can_delete: Mapped[bool | None] = mapped_column(Boolean, nullable=True, default=None)

    user_id: Mapped[str | None] = mapped_column(
        String(63), ForeignKey("users.id", ondelete="CASCADE"), nullable=True
    )
    position_id: Mapped[str | None] = mapped_column(
        String(63), ForeignKey("positions.id", ondelete="CASCADE"), nullable=True
    )
    project_role_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("project_roles.id", ondelete="CASCADE"), nullable=True
    )

    resource: Mapped[Resource] = relationship()

    __table_args__ = (
        CheckConstraint(
            "(CASE WHEN user_id IS NULL THEN 0 ELSE 1 END"
            " + CASE WHEN position_id IS NULL THEN 0 ELSE 1 END"
            " + CASE WHEN project_role_id IS NULL THEN 0 ELSE 1 END) = 1",
            name="ck_local_permissions_single_holder",
        ),
        UniqueConstraint("user_id", "resource_id", name="uq_local_permissions_user_resource"),
        UniqueConstraint(
            "position_id", "resource_id", name="uq_local_permissions_position_resource"
        ),
        UniqueConstraint(
            "project_role_id", "resource_id", name="uq_local_permissions_role_resource"
        ),
        Index("ix_local_permissions_resource_id", "resource_id"),
        Index("ix_local_permissions_user_id", "user_id"),
        Index("ix_local_permissions_position_id", "position_id"),
        Index("ix_local_permissions_project_role_id", "project_role_id"),
    )
