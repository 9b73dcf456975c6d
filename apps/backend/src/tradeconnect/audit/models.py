from __future__ import annotations

import uuid
from typing import Any

from sqlalchemy import Enum, ForeignKey, Index, String, Text, event
from sqlalchemy.orm import Mapped, mapped_column, relationship

from tradeconnect.audit.enums import AuditSeverity, AuditStatus
from tradeconnect.audit.exceptions import AuditLogImmutableError
from tradeconnect.auth.models import User
from tradeconnect.db.base import (
    Base,
    CreatedAtMixin,
    MetadataAliasMixin,
    UUIDPrimaryKeyMixin,
)
from tradeconnect.db.types import GUID, JSONType, enum_values

ACTION_DESCRIPTIONS: dict[str, str] = {
    "user_registered": "User registered",
    "login_success": "Successful sign-in",
    "login_failed": "Failed sign-in attempt",
    "login_blocked": "Sign-in blocked after repeated failures",
    "logout": "Signed out",
    "password_change": "Password changed",
    "password_reset_request": "Password reset requested",
    "password_reset_complete": "Password reset completed",
    "2fa_enabled": "Two-factor authentication enabled",
    "2fa_disabled": "Two-factor authentication disabled",
    "2fa_verification_failed": "Two-factor verification failed",
    "email_verification": "E-mail verification completed",
    "account_locked": "Account locked",
    "account_unlocked": "Account unlocked",
    "token_refresh": "Access token refreshed",
    "user_created": "User created",
    "user_updated": "User updated",
    "user_deleted": "User deleted",
    "user_role_assigned": "Role assigned to user",
    "user_role_revoked": "Role revoked from user",
    "role_created": "Role created",
    "role_updated": "Role updated",
    "role_deleted": "Role deleted",
    "permission_assigned": "Permission assigned",
    "permission_revoked": "Permission revoked",
    "system_config_updated": "System configuration updated",
    "security_alert": "Security alert",
    "suspicious_activity": "Suspicious activity",
}


class AuditLog(UUIDPrimaryKeyMixin, CreatedAtMixin, MetadataAliasMixin, Base):
    """Append-only record of a security relevant action."""

    __tablename__ = "audit_logs"
    __table_args__ = (
        Index("ix_audit_logs_user_id_created_at", "user_id", "created_at"),
        Index("ix_audit_logs_action_created_at", "action", "created_at"),
        Index("ix_audit_logs_resource_created_at", "resource", "created_at"),
    )

    user_id: Mapped[uuid.UUID | None] = mapped_column(
        GUID(), ForeignKey("auth_users.id", ondelete="SET NULL"), index=True
    )
    action: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    resource: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    resource_id: Mapped[str | None] = mapped_column(String(100), index=True)
    old_values: Mapped[dict[str, Any] | None] = mapped_column(JSONType())
    new_values: Mapped[dict[str, Any] | None] = mapped_column(JSONType())
    ip_address: Mapped[str | None] = mapped_column(String(45), index=True)
    user_agent: Mapped[str | None] = mapped_column(Text)
    severity: Mapped[AuditSeverity] = mapped_column(
        Enum(
            AuditSeverity,
            name="audit_severity",
            native_enum=False,
            values_callable=enum_values,
        ),
        nullable=False,
        default=AuditSeverity.LOW,
        index=True,
    )
    status: Mapped[AuditStatus] = mapped_column(
        Enum(
            AuditStatus,
            name="audit_status",
            native_enum=False,
            values_callable=enum_values,
        ),
        nullable=False,
        default=AuditStatus.SUCCESS,
        index=True,
    )

    user: Mapped[User | None] = relationship(lazy="selectin", viewonly=True)

    @property
    def is_critical(self) -> bool:
        return self.severity is AuditSeverity.CRITICAL or (
            self.severity is AuditSeverity.HIGH and self.status is AuditStatus.FAILURE
        )

    @property
    def description(self) -> str:
        return ACTION_DESCRIPTIONS.get(self.action, f"{self.action} on {self.resource}")


@event.listens_for(AuditLog, "before_update")
def _reject_audit_update(_mapper: Any, _connection: Any, target: AuditLog) -> None:
    raise AuditLogImmutableError(f"Audit log {target.id} cannot be modified")
