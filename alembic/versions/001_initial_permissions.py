"""Initial permission models: positions, users, project roles, resources, grants.

Revision ID: 001
Revises: None
Create Date: 2026-10-17
"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
    ]


def upgrade() -> None:
    op.create_table(
        "positions",
        sa.Column("id", sa.String(63), primary_key=True),
        sa.Column("name", sa.String(255), unique=True, nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column(
            "is_protected", sa.Boolean(), nullable=False, server_default=sa.text("false")
        ),
        *_timestamps(),
    )

    op.create_table(
        "users",
        sa.Column("id", sa.String(63), primary_key=True),
        sa.Column("email", sa.String(255), unique=True, nullable=False),
        sa.Column("display_name", sa.String(255), nullable=True),
        sa.Column(
            "is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")
        ),
        sa.Column(
            "is_protected", sa.Boolean(), nullable=False, server_default=sa.text("false")
        ),
        sa.Column(
            "position_id",
            sa.String(63),
            sa.ForeignKey("positions.id", ondelete="SET NULL"),
            nullable=True,
        ),
        *_timestamps(),
    )

    op.create_table(
        "project_roles",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("project_id", sa.Integer(), nullable=True),
        sa.Column(
            "is_managing_team", sa.Boolean(), nullable=False, server_default=sa.text("false")
        ),
        *_timestamps(),
    )

    op.create_table(
        "project_role_assignments",
        sa.Column(
            "user_id",
            sa.String(63),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column(
            "project_role_id",
            sa.Integer(),
            sa.ForeignKey("project_roles.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
    )

    op.create_table(
        "resources",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("type", sa.String(20), nullable=False),
        sa.Column("entity_id", sa.Integer(), nullable=False),
        sa.Column(
            "parent_id",
            sa.Integer(),
            sa.ForeignKey("resources.id", ondelete="CASCADE"),
            nullable=True,
        ),
        sa.Column("corresponding_folder_id", sa.Integer(), unique=True, nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("type", "entity_id", name="uq_resources_type_entity_id"),
        sa.CheckConstraint(
            "type <> 'file' OR corresponding_folder_id IS NULL",
            name="ck_resources_file_without_folder",
        ),
    )
    op.create_index("ix_resources_parent_id", "resources", ["parent_id"])

    op.create_table(
        "global_permissions",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("subject", sa.String(20), nullable=False),
        sa.Column("can_read", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("can_create", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("can_edit", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("can_delete", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column(
            "user_id",
            sa.String(63),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=True,
        ),
        sa.Column(
            "position_id",
            sa.String(63),
            sa.ForeignKey("positions.id", ondelete="CASCADE"),
            nullable=True,
        ),
        sa.CheckConstraint(
            "(user_id IS NULL) <> (position_id IS NULL)",
            name="ck_global_permissions_single_holder",
        ),
    )
    op.create_index("ix_global_permissions_user_id", "global_permissions", ["user_id"])
    op.create_index("ix_global_permissions_position_id", "global_permissions", ["position_id"])

    op.create_table(
        "local_permissions",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "resource_id",
            sa.Integer(),
            sa.ForeignKey("resources.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("can_read", sa.Boolean(), nullable=True),
        sa.Column("can_create", sa.Boolean(), nullable=True),
        sa.Column("can_edit", sa.Boolean(), nullable=True),
        sa.Column("can_delete", sa.Boolean(), nullable=True),
        sa.Column(
            "user_id",
            sa.String(63),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=True,
        ),
        sa.Column(
            "position_id",
            sa.String(63),
            sa.ForeignKey("positions.id", ondelete="CASCADE"),
            nullable=True,
        ),
        sa.Column(
            "project_role_id",
            sa.Integer(),
            sa.ForeignKey("project_roles.id", ondelete="CASCADE"),
            nullable=True,
        ),
        sa.CheckConstraint(
            "(CASE WHEN user_id IS NULL THEN 0 ELSE 1 END"
            " + CASE WHEN position_id IS NULL THEN 0 ELSE 1 END"
            " + CASE WHEN project_role_id IS NULL THEN 0 ELSE 1 END) = 1",
            name="ck_local_permissions_single_holder",
        ),
        sa.UniqueConstraint(
            "user_id", "resource_id", name="uq_local_permissions_user_resource"
        ),
        sa.UniqueConstraint(
            "position_id", "resource_id", name="uq_local_permissions_position_resource"
        ),
        sa.UniqueConstraint(
            "project_role_id", "resource_id", name="uq_local_permissions_role_resource"
        ),
    )
    op.create_index("ix_local_permissions_resource_id", "local_permissions", ["resource_id"])
    op.create_index("ix_local_permissions_user_id", "local_permissions", ["user_id"])
    op.create_index("ix_local_permissions_position_id", "local_permissions", ["position_id"])
    op.create_index(
        "ix_local_permissions_project_role_id", "local_permissions", ["project_role_id"]
    )


def downgrade() -> None:
    op.drop_table("local_permissions")
    op.drop_table("global_permissions")
    op.drop_table("resources")
    op.drop_table("project_role_assignments")
    op.drop_table("project_roles")
    op.drop_table("users")
    op.drop_table("positions")
