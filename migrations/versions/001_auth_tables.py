"""Create auth tables and seed the default roles.

Revision ID: 001_auth_tables
Revises:
Create Date: 2026-10-18

- users, passwords, sessions, connections
- roles, permissions, user_roles, role_permissions
- verifications (one-time codes)
- notes
- seed: "user" role with every ``own`` permission, "admin" role with every
  ``any`` permission, over entities user and note
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects.postgresql import UUID

revision: str = "001_auth_tables"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

_ENTITIES = ("user", "note")
_ACTIONS = ("create", "read", "update", "delete")
_ROLE_SCOPES = {"user": "own", "admin": "any"}


def _id_column() -> sa.Column:
    return sa.Column(
        "id",
        UUID(as_uuid=True),
        server_default=sa.text("gen_random_uuid()"),
        primary_key=True,
    )


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
    ]


def _user_fk(name: str = "user_id", *, primary_key: bool = False) -> sa.Column:
    return sa.Column(
        name,
        UUID(as_uuid=True),
        sa.ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        primary_key=primary_key,
    )


def upgrade() -> None:
    # pgcrypto provides gen_random_uuid() for UUID primary keys
    op.execute("CREATE EXTENSION IF NOT EXISTS pgcrypto")

    # =========================================================================
    # Identity
    # =========================================================================
    op.create_table(
        "users",
        _id_column(),
        sa.Column("email", sa.String(255), nullable=False, unique=True),
        sa.Column("username", sa.String(40), nullable=False, unique=True),
        sa.Column("name", sa.String(255), nullable=True),
        *_timestamps(),
    )

    op.create_table(
        "passwords",
        _user_fk(primary_key=True),
        sa.Column("hash", sa.String(255), nullable=False),
    )

    op.create_table(
        "sessions",
        _id_column(),
        _user_fk(),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        *_timestamps(),
    )
    op.create_index("ix_sessions_user_id", "sessions", ["user_id"])
    op.create_index("ix_sessions_expires_at", "sessions", ["expires_at"])

    op.create_table(
        "connections",
        _id_column(),
        sa.Column("provider_name", sa.String(50), nullable=False),
        sa.Column("provider_id", sa.String(255), nullable=False),
        _user_fk(),
        *_timestamps(),
        sa.UniqueConstraint(
            "provider_name", "provider_id", name="uq_connections_provider"
        ),
    )
    op.create_index("ix_connections_user_id", "connections", ["user_id"])

    # =========================================================================
    # Authorization
    # =========================================================================
    roles = op.create_table(
        "roles",
        _id_column(),
        sa.Column("name", sa.String(50), nullable=False, unique=True),
        sa.Column("description", sa.String(255), nullable=False, server_default=""),
        *_timestamps(),
    )

    permissions = op.create_table(
        "permissions",
        _id_column(),
        sa.Column("action", sa.String(50), nullable=False),
        sa.Column("entity", sa.String(50), nullable=False),
        sa.Column("access", sa.String(10), nullable=False),
        sa.Column("description", sa.String(255), nullable=False, server_default=""),
        *_timestamps(),
        sa.UniqueConstraint(
            "action", "entity", "access", name="uq_permissions_action_entity_access"
        ),
        sa.CheckConstraint("access IN ('own', 'any')", name="ck_permissions_access"),
    )

    op.create_table(
        "user_roles",
        _user_fk(primary_key=True),
        sa.Column(
            "role_id",
            UUID(as_uuid=True),
            sa.ForeignKey("roles.id", ondelete="CASCADE"),
            primary_key=True,
        ),
    )

    op.create_table(
        "role_permissions",
        sa.Column(
            "role_id",
            UUID(as_uuid=True),
            sa.ForeignKey("roles.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column(
            "permission_id",
            UUID(as_uuid=True),
            sa.ForeignKey("permissions.id", ondelete="CASCADE"),
            primary_key=True,
        ),
    )

    # =========================================================================
    # One-time codes
    # =========================================================================
    op.create_table(
        "verifications",
        _id_column(),
        sa.Column("type", sa.String(30), nullable=False),
        sa.Column("target", sa.String(255), nullable=False),
        sa.Column("secret", sa.String(255), nullable=False),
        sa.Column("algorithm", sa.String(20), nullable=False),
        sa.Column("digits", sa.Integer(), nullable=False),
        sa.Column("period", sa.Integer(), nullable=False),
        sa.Column("char_set", sa.String(100), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.UniqueConstraint("type", "target", name="uq_verifications_type_target"),
    )

    # =========================================================================
    # Notes
    # =========================================================================
    op.create_table(
        "notes",
        _id_column(),
        sa.Column("title", sa.String(100), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        _user_fk("owner_id"),
        *_timestamps(),
    )
    op.create_index("ix_notes_owner_id", "notes", ["owner_id"])

    _seed_roles(roles, permissions)


def _seed_roles(roles: sa.Table, permissions: sa.Table) -> None:
    op.bulk_insert(
        roles,
        [{"name": name, "description": ""} for name in _ROLE_SCOPES],
    )
    op.bulk_insert(
        permissions,
        [
            {"action": action, "entity": entity, "access": access, "description": ""}
            for entity in _ENTITIES
            for action in _ACTIONS
            for access in ("own", "any")
        ],
    )
    for role_name, access in _ROLE_SCOPES.items():
        op.execute(
            sa.text(
                "INSERT INTO role_permissions (role_id, permission_id) "
                "SELECT r.id, p.id FROM roles r, permissions p "
                "WHERE r.name = :role AND p.access = :access"
            ).bindparams(role=role_name, access=access)
        )


def downgrade() -> None:
    op.drop_table("notes")
    op.drop_table("verifications")
    op.drop_table("role_permissions")
    op.drop_table("user_roles")
    op.drop_table("permissions")
    op.drop_table("roles")
    op.drop_table("connections")
    op.drop_table("sessions")
    op.drop_table("passwords")
    op.drop_table("users")
