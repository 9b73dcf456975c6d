from __future__ import annotations

import datetime as dt
import uuid

from sqlalchemy import Boolean, Enum, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from tradeconnect.db.base import Base, TimestampMixin, UUIDPrimaryKeyMixin
from tradeconnect.db.types import GUID, JSONType, UTCDateTime, enum_values
from tradeconnect.two_factor.enums import TwoFactorMethod


def _now() -> dt.datetime:
    return dt.datetime.now(dt.UTC)


class TwoFactorAuth(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """Second factor configuration; one row per user, pending until enabled."""

    __tablename__ = "auth_two_factor"
    __table_args__ = (UniqueConstraint("user_id", name="uq_auth_two_factor_user_id"),)

    user_id: Mapped[uuid.UUID] = mapped_column(
        GUID(), ForeignKey("auth_users.id", ondelete="CASCADE"), nullable=False
    )
    method: Mapped[TwoFactorMethod] = mapped_column(
        Enum(
            TwoFactorMethod,
            name="auth_two_factor_method",
            native_enum=False,
            values_callable=enum_values,
        ),
        nullable=False,
        default=TwoFactorMethod.TOTP,
    )
    secret: Mapped[str | None] = mapped_column(String(64))
    # argon2 hashes; lists are replaced wholesale so the ORM sees the change.
    backup_codes: Mapped[list[str]] = mapped_column(
        JSONType(), nullable=False, default=list
    )
    phone_number: Mapped[str | None] = mapped_column(String(32))
    email_address: Mapped[str | None] = mapped_column(String(255))
    is_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    enabled_at: Mapped[dt.datetime | None] = mapped_column(UTCDateTime())
    last_used_at: Mapped[dt.datetime | None] = mapped_column(UTCDateTime())
    failed_attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    locked_until: Mapped[dt.datetime | None] = mapped_column(UTCDateTime())

    def is_locked(self, now: dt.datetime | None = None) -> bool:
        return self.locked_until is not None and self.locked_until > (now or _now())

    def register_failure(
        self,
        *,
        max_attempts: int,
        lockout: dt.timedelta,
        now: dt.datetime | None = None,
    ) -> bool:
        """Count a failed verification; return ``True`` when this locks the factor."""
        self.failed_attempts = (self.failed_attempts or 0) + 1
        if self.failed_attempts >= max_attempts:
            self.locked_until = (now or _now()) + lockout
            return True
        return False

    def register_success(self, now: dt.datetime | None = None) -> None:
        self.failed_attempts = 0
        self.locked_until = None
        self.last_used_at = now or _now()

    def clear(self) -> None:
        self.is_enabled = False
        self.enabled_at = None
        self.secret = None
        self.backup_codes = []
        self.failed_attempts = 0
        self.locked_until = None
