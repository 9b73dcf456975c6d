from __future__ import annotations

from sqlalchemy import Boolean, Column, ForeignKey, Integer, String, Table, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from tradeconnect.db.base import Base, TimestampMixin, UUIDPrimaryKeyMixin, metadata
from tradeconnect.db.types import GUID

role_permissions = Table(
    "rbac_role_permissions",
    metadata,
    Column(
        "role_id",
        GUID(),
        ForeignKey("rbac_roles.id", ondelete="CASCADE"),
        primary_key=True,
    ),
    Column(
        "permission_id",
        GUID(),
        ForeignKey("rbac_permissions.id", ondelete="CASCADE"),
        primary_key=True,
    ),
)

user_roles = Table(
    "rbac_user_roles",
    metadata,
    Column(
        "user_id",
        GUID(),
        ForeignKey("auth_users.id", ondelete="CASCADE"),
        primary_key=True,
    ),
    Column(
        "role_id",
        GUID(),
        ForeignKey("rbac_roles.id", ondelete="CASCADE"),
        primary_key=True,
    ),
)


class PermissionModel(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """A single grantable capability such as ``view_audit_logs``."""

    __tablename__ = "rbac_permissions"

    name: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    resource: Mapped[str] = mapped_column(String(50), nullable=False)
    action: Mapped[str] = mapped_column(String(50), nullable=False)
    description: Mapped[str | None] = mapped_column(Text)


class Role(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """Named bundle of permissions; users may hold several roles."""

    __tablename__ = "rbac_roles"

    name: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    display_name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    level: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_system: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    permissions: Mapped[list[PermissionModel]] = relationship(
        secondary=role_permissions,
        lazy="selectin",
        order_by="PermissionModel.name",
    )

    @property
    def permission_names(self) -> set[str]:
        return {permission.name for permission in self.permissions}
