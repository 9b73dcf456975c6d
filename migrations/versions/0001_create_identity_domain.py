"""create identity domain tables

Revision ID: 0001_create_identity_domain
Revises:
Create Date: 2026-10-17 09:00:00.000000
"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = "0001_create_identity_domain"
down_revision = None
branch_labels = None
depends_on = None

uuid_type = postgresql.UUID(as_uuid=True).with_variant(sa.CHAR(36), "sqlite")
json_type = postgresql.JSONB().with_variant(sa.JSON(), "sqlite")


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


def _enum(name: str, *values: str) -> sa.Enum:
    return sa.Enum(*values, name=name, native_enum=False)


def upgrade() -> None:
    op.create_table(
        "auth_users",
        sa.Column("id", uuid_type, primary_key=True),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("hashed_password", sa.String(length=255), nullable=False),
        sa.Column("first_name", sa.String(length=100), nullable=False),
        sa.Column("last_name", sa.String(length=100), nullable=False),
        sa.Column("phone", sa.String(length=32), nullable=True),
        sa.Column(
            "is_active", sa.Boolean(), nullable=False, server_default=sa.true()
        ),
        sa.Column(
            "is_verified", sa.Boolean(), nullable=False, server_default=sa.false()
        ),
        sa.Column(
            "is_2fa_enabled", sa.Boolean(), nullable=False, server_default=sa.false()
        ),
        sa.Column(
            "failed_login_attempts",
            sa.Integer(),
            nullable=False,
            server_default=sa.text("0"),
        ),
        sa.Column("locked_until", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_login_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_login_ip", sa.String(length=45), nullable=True),
        sa.Column("password_changed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("terms_accepted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "marketing_accepted",
            sa.Boolean(),
            nullable=False,
            server_default=sa.false(),
        ),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name="pk_auth_users"),
        sa.UniqueConstraint("email", name="uq_auth_users_email"),
    )
    op.create_index("ix_auth_users_email", "auth_users", ["email"])

    op.create_table(
        "rbac_permissions",
        sa.Column("id", uuid_type, primary_key=True),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("resource", sa.String(length=50), nullable=False),
        sa.Column("action", sa.String(length=50), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name="pk_rbac_permissions"),
        sa.UniqueConstraint("name", name="uq_rbac_permissions_name"),
    )

    op.create_table(
        "rbac_roles",
        sa.Column("id", uuid_type, primary_key=True),
        sa.Column("name", sa.String(length=50), nullable=False),
        sa.Column("display_name", sa.String(length=100), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("level", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column(
            "is_system", sa.Boolean(), nullable=False, server_default=sa.true()
        ),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name="pk_rbac_roles"),
        sa.UniqueConstraint("name", name="uq_rbac_roles_name"),
    )

    op.create_table(
        "rbac_role_permissions",
        sa.Column("role_id", uuid_type, nullable=False),
        sa.Column("permission_id", uuid_type, nullable=False),
        sa.ForeignKeyConstraint(
            ["role_id"],
            ["rbac_roles.id"],
            name="fk_rbac_role_permissions_role_id_rbac_roles",
            ondelete="CASCADE",
        ),
        sa.ForeignKeyConstraint(
            ["permission_id"],
            ["rbac_permissions.id"],
            name="fk_rbac_role_permissions_permission_id_rbac_permissions",
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint(
            "role_id", "permission_id", name="pk_rbac_role_permissions"
        ),
    )

    op.create_table(
        "rbac_user_roles",
        sa.Column("user_id", uuid_type, nullable=False),
        sa.Column("role_id", uuid_type, nullable=False),
        sa.ForeignKeyConstraint(
            ["user_id"],
            ["auth_users.id"],
            name="fk_rbac_user_roles_user_id_auth_users",
            ondelete="CASCADE",
        ),
        sa.ForeignKeyConstraint(
            ["role_id"],
            ["rbac_roles.id"],
            name="fk_rbac_user_roles_role_id_rbac_roles",
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("user_id", "role_id", name="pk_rbac_user_roles"),
    )

    op.create_table(
        "auth_user_sessions",
        sa.Column("id", uuid_type, primary_key=True),
        sa.Column("user_id", uuid_type, nullable=False),
        sa.Column("refresh_token_hash", sa.String(length=128), nullable=True),
        sa.Column("user_agent", sa.String(length=512), nullable=True),
        sa.Column("ip_address", sa.String(length=45), nullable=True),
        sa.Column(
            "device_type",
            _enum("auth_device_type", "desktop", "mobile", "tablet", "unknown"),
            nullable=False,
            server_default=sa.text("'unknown'"),
        ),
        sa.Column("os", sa.String(length=64), nullable=True),
        sa.Column("browser", sa.String(length=64), nullable=True),
        sa.Column(
            "login_method",
            _enum("auth_login_method", "password", "2fa"),
            nullable=False,
            server_default=sa.text("'password'"),
        ),
        sa.Column(
            "remember_me", sa.Boolean(), nullable=False, server_default=sa.false()
        ),
        sa.Column(
            "is_active", sa.Boolean(), nullable=False, server_default=sa.true()
        ),
        sa.Column(
            "last_activity_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("revoked_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("rotated_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "ended_reason",
            _enum(
                "auth_session_end_reason",
                "logout",
                "user_terminated",
                "admin_terminated",
                "session_limit",
                "password_changed",
                "password_reset",
                "token_reuse",
                "account_disabled",
                "expired",
            ),
            nullable=True,
        ),
        *_timestamps(),
        sa.ForeignKeyConstraint(
            ["user_id"],
            ["auth_users.id"],
            name="fk_auth_user_sessions_user_id_auth_users",
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("id", name="pk_auth_user_sessions"),
    )
    op.create_index(
        "ix_auth_user_sessions_user_id", "auth_user_sessions", ["user_id"]
    )
    op.create_index(
        "ix_auth_user_sessions_expires_at", "auth_user_sessions", ["expires_at"]
    )
    op.create_index(
        "ix_auth_user_sessions_user_active",
        "auth_user_sessions",
        ["user_id", "is_active"],
    )

    for table in ("auth_verification_tokens", "auth_password_reset_tokens"):
        op.create_table(
            table,
            sa.Column("id", uuid_type, primary_key=True),
            sa.Column("user_id", uuid_type, nullable=False),
            sa.Column("token_hash", sa.String(length=128), nullable=False),
            sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
            sa.Column("used_at", sa.DateTime(timezone=True), nullable=True),
            *_timestamps(),
            sa.ForeignKeyConstraint(
                ["user_id"],
                ["auth_users.id"],
                name=f"fk_{table}_user_id_auth_users",
                ondelete="CASCADE",
            ),
            sa.PrimaryKeyConstraint("id", name=f"pk_{table}"),
            sa.UniqueConstraint("token_hash", name=f"uq_{table}_token_hash"),
        )
        op.create_index(f"ix_{table}_user_id", table, ["user_id"])

    op.create_table(
        "auth_two_factor",
        sa.Column("id", uuid_type, primary_key=True),
        sa.Column("user_id", uuid_type, nullable=False),
        sa.Column(
            "method",
            _enum("auth_two_factor_method", "totp", "sms", "email"),
            nullable=False,
            server_default=sa.text("'totp'"),
        ),
        sa.Column("secret", sa.String(length=64), nullable=True),
        sa.Column("backup_codes", json_type, nullable=False),
        sa.Column("phone_number", sa.String(length=32), nullable=True),
        sa.Column("email_address", sa.String(length=255), nullable=True),
        sa.Column(
            "is_enabled", sa.Boolean(), nullable=False, server_default=sa.false()
        ),
        sa.Column("enabled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_used_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "failed_attempts", sa.Integer(), nullable=False, server_default=sa.text("0")
        ),
        sa.Column("locked_until", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(
            ["user_id"],
            ["auth_users.id"],
            name="fk_auth_two_factor_user_id_auth_users",
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("id", name="pk_auth_two_factor"),
        sa.UniqueConstraint("user_id", name="uq_auth_two_factor_user_id"),
    )

    op.create_table(
        "audit_logs",
        sa.Column("id", uuid_type, primary_key=True),
        sa.Column("user_id", uuid_type, nullable=True),
        sa.Column("action", sa.String(length=100), nullable=False),
        sa.Column("resource", sa.String(length=50), nullable=False),
        sa.Column("resource_id", sa.String(length=100), nullable=True),
        sa.Column("old_values", json_type, nullable=True),
        sa.Column("new_values", json_type, nullable=True),
        sa.Column("ip_address", sa.String(length=45), nullable=True),
        sa.Column("user_agent", sa.Text(), nullable=True),
        sa.Column(
            "severity",
            _enum("audit_severity", "low", "medium", "high", "critical"),
            nullable=False,
            server_default=sa.text("'low'"),
        ),
        sa.Column(
            "status",
            _enum("audit_status", "success", "failure", "warning"),
            nullable=False,
            server_default=sa.text("'success'"),
        ),
        sa.Column(
            "metadata",
            json_type,
            nullable=False,
            server_default=sa.text("'{}'"),
        ),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.ForeignKeyConstraint(
            ["user_id"],
            ["auth_users.id"],
            name="fk_audit_logs_user_id_auth_users",
            ondelete="SET NULL",
        ),
        sa.PrimaryKeyConstraint("id", name="pk_audit_logs"),
    )
    for column in (
        "user_id",
        "action",
        "resource",
        "resource_id",
        "ip_address",
        "severity",
        "status",
        "created_at",
    ):
        op.create_index(f"ix_audit_logs_{column}", "audit_logs", [column])
    op.create_index(
        "ix_audit_logs_user_id_created_at", "audit_logs", ["user_id", "created_at"]
    )
    op.create_index(
        "ix_audit_logs_action_created_at", "audit_logs", ["action", "created_at"]
    )
    op.create_index(
        "ix_audit_logs_resource_created_at", "audit_logs", ["resource", "created_at"]
    )

    op.create_table(
        "system_configs",
        sa.Column("id", uuid_type, primary_key=True),
        sa.Column("key", sa.String(length=100), nullable=False),
        sa.Column("value", json_type, nullable=True),
        sa.Column(
            "category",
            _enum(
                "system_config_category",
                "general",
                "security",
                "payment",
                "notification",
                "email",
                "integration",
                "ui",
                "performance",
            ),
            nullable=False,
            server_default=sa.text("'general'"),
        ),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column(
            "is_public", sa.Boolean(), nullable=False, server_default=sa.false()
        ),
        sa.Column(
            "is_active", sa.Boolean(), nullable=False, server_default=sa.true()
        ),
        sa.Column("created_by", uuid_type, nullable=True),
        sa.Column("updated_by", uuid_type, nullable=True),
        sa.Column(
            "metadata",
            json_type,
            nullable=False,
            server_default=sa.text("'{}'"),
        ),
        *_timestamps(),
        sa.ForeignKeyConstraint(
            ["created_by"],
            ["auth_users.id"],
            name="fk_system_configs_created_by_auth_users",
            ondelete="SET NULL",
        ),
        sa.ForeignKeyConstraint(
            ["updated_by"],
            ["auth_users.id"],
            name="fk_system_configs_updated_by_auth_users",
            ondelete="SET NULL",
        ),
        sa.PrimaryKeyConstraint("id", name="pk_system_configs"),
        sa.UniqueConstraint("key", name="uq_system_configs_key"),
    )
    op.create_index("ix_system_configs_category", "system_configs", ["category"])


def downgrade() -> None:
    op.drop_index("ix_system_configs_category", table_name="system_configs")
    op.drop_table("system_configs")

    op.drop_index("ix_audit_logs_resource_created_at", table_name="audit_logs")
    op.drop_index("ix_audit_logs_action_created_at", table_name="audit_logs")
    op.drop_index("ix_audit_logs_user_id_created_at", table_name="audit_logs")
    for column in (
        "created_at",
        "status",
        "severity",
        "ip_address",
        "resource_id",
        "resource",
        "action",
        "user_id",
    ):
        op.drop_index(f"ix_audit_logs_{column}", table_name="audit_logs")
    op.drop_table("audit_logs")

    op.drop_table("auth_two_factor")

    for table in ("auth_password_reset_tokens", "auth_verification_tokens"):
        op.drop_index(f"ix_{table}_user_id", table_name=table)
        op.drop_table(table)

    op.drop_index("ix_auth_user_sessions_user_active", table_name="auth_user_sessions")
    op.drop_index("ix_auth_user_sessions_expires_at", table_name="auth_user_sessions")
    op.drop_index("ix_auth_user_sessions_user_id", table_name="auth_user_sessions")
    op.drop_table("auth_user_sessions")

    op.drop_table("rbac_user_roles")
    op.drop_table("rbac_role_permissions")
    op.drop_table("rbac_roles")
    op.drop_table("rbac_permissions")

    op.drop_index("ix_auth_users_email", table_name="auth_users")
    op.drop_table("auth_users")
