from __future__ import annotations

import datetime as dt
import uuid

from sqlalchemy import (
    Boolean,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from tradeconnect.auth.enums import (
    DeviceType,
    LoginMethod,
    SessionEndReason,
    SessionStatus,
)
from tradeconnect.db.base import Base, TimestampMixin, UUIDPrimaryKeyMixin
from tradeconnect.db.types import GUID, UTCDateTime, enum_values
from tradeconnect.rbac.models import Role, user_roles

MAX_FAILED_ATTEMPTS = 5
LOCKOUT_DURATION = dt.timedelta(minutes=30)


def _now() -> dt.datetime:
    return dt.datetime.now(dt.UTC)


class User(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """Registered user capable of authenticating with the platform."""

    __tablename__ = "auth_users"
    __table_args__ = (UniqueConstraint("email", name="uq_auth_users_email"),)

    email: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    hashed_password: Mapped[str] = mapped_column(String(255), nullable=False)
    first_name: Mapped[str] = mapped_column(String(100), nullable=False, default="")
    last_name: Mapped[str] = mapped_column(String(100), nullable=False, default="")
    phone: Mapped[str | None] = mapped_column(String(32))
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    is_verified: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_2fa_enabled: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False
    )
    failed_login_attempts: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0
    )
    locked_until: Mapped[dt.datetime | None] = mapped_column(UTCDateTime())
    last_login_at: Mapped[dt.datetime | None] = mapped_column(UTCDateTime())
    last_login_ip: Mapped[str | None] = mapped_column(String(45))
    password_changed_at: Mapped[dt.datetime | None] = mapped_column(UTCDateTime())
    terms_accepted_at: Mapped[dt.datetime | None] = mapped_column(UTCDateTime())
    marketing_accepted: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False
    )

    roles: Mapped[list[Role]] = relationship(
        secondary=user_roles,
        lazy="selectin",
        order_by=Role.level.desc(),
    )
    sessions: Mapped[list[UserSession]] = relationship(
        back_populates="user",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    @property
    def role_names(self) -> list[str]:
        return [role.name for role in self.roles]

    @property
    def permission_names(self) -> set[str]:
        permissions: set[str] = set()
        for role in self.roles:
            permissions |= role.permission_names
        return permissions

    def is_locked(self, now: dt.datetime | None = None) -> bool:
        return self.locked_until is not None and self.locked_until > (now or _now())

    def register_failed_login(
        self,
        *,
        max_attempts: int = MAX_FAILED_ATTEMPTS,
        lockout: dt.timedelta = LOCKOUT_DURATION,
        now: dt.datetime | None = None,
    ) -> bool:
        """Count a failed password check; ``True`` means this one locked the account."""
        self.failed_login_attempts = (self.failed_login_attempts or 0) + 1
        if self.failed_login_attempts >= max_attempts:
            self.locked_until = (now or _now()) + lockout
            return True
        return False

    def reset_failed_logins(self) -> None:
        self.failed_login_attempts = 0
        self.locked_until = None


class UserSession(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """One authenticated device; its id is the ``sid`` claim of issued JWTs."""

    __tablename__ = "auth_user_sessions"
    __table_args__ = (
        Index("ix_auth_user_sessions_user_id", "user_id"),
        Index("ix_auth_user_sessions_expires_at", "expires_at"),
        Index("ix_auth_user_sessions_user_active", "user_id", "is_active"),
    )

    user_id: Mapped[uuid.UUID] = mapped_column(
        GUID(), ForeignKey("auth_users.id", ondelete="CASCADE"), nullable=False
    )
    refresh_token_hash: Mapped[str | None] = mapped_column(String(128))
    user_agent: Mapped[str | None] = mapped_column(String(512))
    ip_address: Mapped[str | None] = mapped_column(String(45))
    device_type: Mapped[DeviceType] = mapped_column(
        Enum(
            DeviceType,
            name="auth_device_type",
            native_enum=False,
            values_callable=enum_values,
        ),
        nullable=False,
        default=DeviceType.UNKNOWN,
    )
    os: Mapped[str | None] = mapped_column(String(64))
    browser: Mapped[str | None] = mapped_column(String(64))
    login_method: Mapped[LoginMethod] = mapped_column(
        Enum(
            LoginMethod,
            name="auth_login_method",
            native_enum=False,
            values_callable=enum_values,
        ),
        nullable=False,
        default=LoginMethod.PASSWORD,
    )
    remember_me: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    last_activity_at: Mapped[dt.datetime] = mapped_column(
        UTCDateTime(), nullable=False, default=_now
    )
    expires_at: Mapped[dt.datetime] = mapped_column(UTCDateTime(), nullable=False)
    revoked_at: Mapped[dt.datetime | None] = mapped_column(UTCDateTime())
    rotated_at: Mapped[dt.datetime | None] = mapped_column(UTCDateTime())
    ended_reason: Mapped[SessionEndReason | None] = mapped_column(
        Enum(
            SessionEndReason,
            name="auth_session_end_reason",
            native_enum=False,
            values_callable=enum_values,
        )
    )

    user: Mapped[User] = relationship(back_populates="sessions")

    def is_usable(self, now: dt.datetime | None = None) -> bool:
        return (
            self.is_active
            and self.revoked_at is None
            and self.expires_at > (now or _now())
        )

    def status(self, now: dt.datetime | None = None) -> SessionStatus:
        if not self.is_active or self.revoked_at is not None:
            return SessionStatus.TERMINATED
        if self.expires_at <= (now or _now()):
            return SessionStatus.EXPIRED
        return SessionStatus.ACTIVE

    def terminate(
        self, reason: SessionEndReason, now: dt.datetime | None = None
    ) -> bool:
        """End the session; ended sessions stay ended and keep their first reason."""
        if not self.is_active:
            return False
        self.is_active = False
        self.revoked_at = self.revoked_at or (now or _now())
        self.ended_reason = self.ended_reason or reason
        self.refresh_token_hash = None
        return True


class _SingleUseToken(UUIDPrimaryKeyMixin, TimestampMixin):
    user_id: Mapped[uuid.UUID] = mapped_column(
        GUID(), ForeignKey("auth_users.id", ondelete="CASCADE"), nullable=False
    )
    token_hash: Mapped[str] = mapped_column(String(128), nullable=False)
    expires_at: Mapped[dt.datetime] = mapped_column(UTCDateTime(), nullable=False)
    used_at: Mapped[dt.datetime | None] = mapped_column(UTCDateTime())

    def is_redeemable(self, now: dt.datetime | None = None) -> bool:
        return self.used_at is None and self.expires_at > (now or _now())


class VerificationToken(_SingleUseToken, Base):
    """E-mail verification tokens issued at registration."""

    __tablename__ = "auth_verification_tokens"
    __table_args__ = (
        UniqueConstraint("token_hash", name="uq_auth_verification_tokens_token_hash"),
        Index("ix_auth_verification_tokens_user_id", "user_id"),
    )


class PasswordResetToken(_SingleUseToken, Base):
    """Password reset tokens issued by the forgot-password flow."""

    __tablename__ = "auth_password_reset_tokens"
    __table_args__ = (
        UniqueConstraint(
            "token_hash", name="uq_auth_password_reset_tokens_token_hash"
        ),
        Index("ix_auth_password_reset_tokens_user_id", "user_id"),
    )
