from __future__ import annotations

import base64
import datetime as dt
import io
import secrets
import uuid
from dataclasses import dataclass
from typing import Any

import pyotp
import qrcode
import structlog
from redis.asyncio import Redis
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from tradeconnect.audit.context import ClientInfo
from tradeconnect.audit.enums import AuditAction, AuditSeverity, AuditStatus
from tradeconnect.audit.service import AuditService
from tradeconnect.auth.exceptions import (
    InvalidCredentialsError,
    PhoneNumberRequiredError,
    TwoFactorAlreadyEnabledError,
    TwoFactorInvalidError,
    TwoFactorLockedError,
    TwoFactorNotEnabledError,
    TwoFactorSetupRequiredError,
    UserNotFoundError,
)
from tradeconnect.auth.models import User
from tradeconnect.auth.passwords import hash_password, verify_password
from tradeconnect.core.config import TwoFactorSettings
from tradeconnect.core.constants import TWO_FACTOR_CODE_KEY_PREFIX
from tradeconnect.notifications import AuthNotifier
from tradeconnect.observability import metrics_service
from tradeconnect.two_factor.enums import TwoFactorMethod, VerificationSource
from tradeconnect.two_factor.models import TwoFactorAuth

logger = structlog.get_logger(__name__)


def _now() -> dt.datetime:
    return dt.datetime.now(dt.UTC)


def _normalize_code(code: str) -> str:
    return code.replace(" ", "").replace("-", "").strip()


def _random_digits(length: int) -> str:
    return "".join(str(secrets.randbelow(10)) for _ in range(length))


def _qr_data_url(uri: str) -> str:
    image = qrcode.make(uri)
    buffer = io.BytesIO()
    image.save(buffer, format="PNG")
    encoded = base64.b64encode(buffer.getvalue()).decode("ascii")
    return f"data:image/png;base64,{encoded}"


@dataclass(frozen=True)
class TwoFactorSetupResult:
    method: TwoFactorMethod
    backup_codes: list[str]
    secret: str | None = None
    provisioning_uri: str | None = None
    qr_code: str | None = None
    destination: str | None = None


class TwoFactorService:
    """Enrolment, verification and administration of second factors.

    A configuration starts pending after ``setup`` and only protects the
    account once ``enable`` has verified a first code against it.
    """

    def __init__(
        self,
        settings: TwoFactorSettings,
        *,
        redis: Redis,
        notifier: AuthNotifier,
        audit_service: AuditService,
    ) -> None:
        self._settings = settings
        self._redis = redis
        self._notifier = notifier
        self._audit = audit_service
        self._lockout = dt.timedelta(minutes=settings.lockout_minutes)

    async def _get_config(
        self, session: AsyncSession, user_id: uuid.UUID
    ) -> TwoFactorAuth | None:
        return await session.scalar(
            select(TwoFactorAuth).where(TwoFactorAuth.user_id == user_id)
        )

    def _code_key(self, user_id: uuid.UUID) -> str:
        return f"{TWO_FACTOR_CODE_KEY_PREFIX}:{user_id}"

    def _generate_backup_codes(self) -> tuple[list[str], list[str]]:
        codes = [
            _random_digits(self._settings.backup_code_length)
            for _ in range(self._settings.backup_codes_count)
        ]
        return codes, [hash_password(code) for code in codes]

    def _is_backup_code(self, code: str) -> bool:
        return code.isdigit() and len(code) == self._settings.backup_code_length

    async def setup(
        self,
        session: AsyncSession,
        *,
        user: User,
        method: TwoFactorMethod,
        phone_number: str | None = None,
        email_address: str | None = None,
        client: ClientInfo,
    ) -> TwoFactorSetupResult:
        config = await self._get_config(session, user.id)
        if config is not None and config.is_enabled:
            raise TwoFactorAlreadyEnabledError
        if config is not None and config.is_locked():
            raise TwoFactorLockedError

        phone = phone_number or user.phone
        if method is TwoFactorMethod.SMS and not phone:
            raise PhoneNumberRequiredError

        if config is None:
            config = TwoFactorAuth(user_id=user.id)
            session.add(config)

        plain_codes, hashed_codes = self._generate_backup_codes()
        config.clear()
        config.method = method
        config.backup_codes = hashed_codes
        config.phone_number = phone if method is TwoFactorMethod.SMS else None
        config.email_address = (
            (email_address or user.email) if method is TwoFactorMethod.EMAIL else None
        )

        result = TwoFactorSetupResult(method=method, backup_codes=plain_codes)
        if method is TwoFactorMethod.TOTP:
            secret = pyotp.random_base32()
            config.secret = secret
            uri = pyotp.TOTP(secret).provisioning_uri(
                name=user.email, issuer_name=self._settings.issuer_name
            )
            result = TwoFactorSetupResult(
                method=method,
                backup_codes=plain_codes,
                secret=secret,
                provisioning_uri=uri,
                qr_code=_qr_data_url(uri),
            )

        self._audit.log(
            session,
            action=AuditAction.TWO_FACTOR_SETUP,
            resource="user",
            resource_id=user.id,
            user_id=user.id,
            new_values={"method": method.value},
            client=client,
        )
        await session.commit()

        if method is not TwoFactorMethod.TOTP:
            destination = await self._deliver_code(user, config)
            result = TwoFactorSetupResult(
                method=method, backup_codes=plain_codes, destination=destination
            )

        logger.info(
            "two_factor_setup_started", user_id=str(user.id), method=method.value
        )
        return result

    async def send_code(self, session: AsyncSession, *, user: User) -> str:
        """Deliver a fresh one-time code for SMS/e-mail configurations."""
        config = await self._get_config(session, user.id)
        if config is None or config.method is TwoFactorMethod.TOTP:
            raise TwoFactorNotEnabledError(
                "No SMS or e-mail second factor is configured"
            )
        if config.is_locked():
            raise TwoFactorLockedError
        return await self._deliver_code(user, config)

    async def issue_login_challenge(
        self, session: AsyncSession, *, user: User
    ) -> str | None:
        """Send a one-time code when a login stops at the second factor.

        TOTP users already hold their code, so nothing is sent for them.
        """
        config = await self._get_config(session, user.id)
        if (
            config is None
            or not config.is_enabled
            or config.method is TwoFactorMethod.TOTP
            or config.is_locked()
        ):
            return None
        return await self._deliver_code(user, config)

    async def _deliver_code(self, user: User, config: TwoFactorAuth) -> str:
        code = _random_digits(self._settings.code_length)
        await self._redis.setex(
            self._code_key(user.id), self._settings.code_ttl_seconds, code
        )
        destination = (
            config.phone_number
            if config.method is TwoFactorMethod.SMS
            else config.email_address or user.email
        )
        await self._notifier.send_two_factor_code(
            user, config.method, destination or "", code
        )
        return destination or ""

    async def _check_code(self, config: TwoFactorAuth, code: str) -> bool:
        if config.method is TwoFactorMethod.TOTP:
            if not config.secret:
                return False
            return pyotp.TOTP(config.secret).verify(
                code, valid_window=self._settings.totp_valid_window
            )

        key = self._code_key(config.user_id)
        stored = await self._redis.get(key)
        if stored is None or not secrets.compare_digest(str(stored), code):
            return False
        await self._redis.delete(key)
        return True

    def _consume_backup_code(self, config: TwoFactorAuth, code: str) -> bool:
        remaining = list(config.backup_codes or [])
        for index, hashed in enumerate(remaining):
            if verify_password(code, hashed):
                del remaining[index]
                config.backup_codes = remaining
                return True
        return False

    async def _register_failure(
        self,
        session: AsyncSession,
        config: TwoFactorAuth,
        *,
        client: ClientInfo | None,
    ) -> None:
        locked = config.register_failure(
            max_attempts=self._settings.max_failed_attempts, lockout=self._lockout
        )
        metrics_service.record_two_factor_verification(config.method.value, "failure")
        self._audit.log(
            session,
            action=AuditAction.TWO_FACTOR_VERIFICATION_FAILED,
            resource="auth",
            resource_id=config.user_id,
            user_id=config.user_id,
            metadata={"attempts": config.failed_attempts},
            severity=AuditSeverity.MEDIUM,
            status=AuditStatus.FAILURE,
            client=client,
        )
        if locked:
            metrics_service.record_lockout("two_factor")
            self._audit.log(
                session,
                action=AuditAction.TWO_FACTOR_LOCKED,
                resource="auth",
                resource_id=config.user_id,
                user_id=config.user_id,
                metadata={"locked_until": config.locked_until},
                severity=AuditSeverity.HIGH,
                status=AuditStatus.FAILURE,
                client=client,
            )
            logger.warning("two_factor_locked", user_id=str(config.user_id))
        await session.commit()

    async def verify(
        self,
        session: AsyncSession,
        *,
        user_id: uuid.UUID,
        code: str,
        client: ClientInfo | None = None,
    ) -> VerificationSource:
        """Check a second-factor code for an enabled configuration.

        Backup codes are consumed on success. Failures are counted and lock
        the factor once the configured threshold is reached.
        """
        config = await self._get_config(session, user_id)
        if config is None or not config.is_enabled:
            raise TwoFactorNotEnabledError
        if config.is_locked():
            raise TwoFactorLockedError

        normalized = _normalize_code(code)
        source: VerificationSource | None = None
        if self._is_backup_code(normalized) and self._consume_backup_code(
            config, normalized
        ):
            source = VerificationSource.BACKUP_CODE
        elif await self._check_code(config, normalized):
            source = (
                VerificationSource.TOTP
                if config.method is TwoFactorMethod.TOTP
                else VerificationSource.ONE_TIME_CODE
            )

        if source is None:
            await self._register_failure(session, config, client=client)
            raise TwoFactorInvalidError

        config.register_success()
        metrics_service.record_two_factor_verification(config.method.value, "success")
        await session.commit()
        return source

    async def enable(
        self,
        session: AsyncSession,
        *,
        user: User,
        code: str,
        client: ClientInfo,
    ) -> None:
        config = await self._get_config(session, user.id)
        if config is None:
            raise TwoFactorSetupRequiredError
        if config.is_enabled:
            raise TwoFactorAlreadyEnabledError
        if config.is_locked():
            raise TwoFactorLockedError

        if not await self._check_code(config, _normalize_code(code)):
            await self._register_failure(session, config, client=client)
            raise TwoFactorInvalidError

        now = _now()
        config.is_enabled = True
        config.enabled_at = now
        config.register_success(now)
        user.is_2fa_enabled = True
        self._audit.log(
            session,
            action=AuditAction.TWO_FACTOR_ENABLED,
            resource="user",
            resource_id=user.id,
            user_id=user.id,
            new_values={"method": config.method.value, "enabled": True},
            severity=AuditSeverity.MEDIUM,
            client=client,
        )
        await session.commit()
        logger.info(
            "two_factor_enabled", user_id=str(user.id), method=config.method.value
        )

    async def disable(
        self,
        session: AsyncSession,
        *,
        user: User,
        password: str,
        code: str | None = None,
        client: ClientInfo,
    ) -> None:
        config = await self._get_config(session, user.id)
        if config is None or not config.is_enabled:
            raise TwoFactorNotEnabledError
        if not verify_password(password, user.hashed_password):
            raise InvalidCredentialsError("Incorrect password")
        if code:
            await self.verify(session, user_id=user.id, code=code, client=client)

        config.clear()
        user.is_2fa_enabled = False
        self._audit.log(
            session,
            action=AuditAction.TWO_FACTOR_DISABLED,
            resource="user",
            resource_id=user.id,
            user_id=user.id,
            old_values={"is_2fa_enabled": True},
            new_values={"is_2fa_enabled": False},
            severity=AuditSeverity.MEDIUM,
            client=client,
        )
        await session.commit()
        await self._redis.delete(self._code_key(user.id))
        logger.info("two_factor_disabled", user_id=str(user.id))

    async def regenerate_backup_codes(
        self, session: AsyncSession, *, user: User, client: ClientInfo
    ) -> list[str]:
        config = await self._get_config(session, user.id)
        if config is None or not config.is_enabled:
            raise TwoFactorNotEnabledError

        plain_codes, hashed_codes = self._generate_backup_codes()
        config.backup_codes = hashed_codes
        self._audit.log(
            session,
            action=AuditAction.TWO_FACTOR_BACKUP_CODES_REGENERATED,
            resource="user",
            resource_id=user.id,
            user_id=user.id,
            client=client,
        )
        await session.commit()
        return plain_codes

    async def status(
        self, session: AsyncSession, *, user_id: uuid.UUID
    ) -> dict[str, Any]:
        config = await self._get_config(session, user_id)
        if config is None:
            return {
                "is_enabled": False,
                "method": None,
                "last_used_at": None,
                "backup_codes_count": 0,
                "is_locked": False,
                "failed_attempts": 0,
            }
        return {
            "is_enabled": config.is_enabled,
            "method": config.method.value,
            "last_used_at": config.last_used_at,
            "backup_codes_count": len(config.backup_codes or []),
            "is_locked": config.is_locked(),
            "failed_attempts": config.failed_attempts,
        }

    async def stats(self, session: AsyncSession) -> dict[str, Any]:
        rows = await session.execute(
            select(TwoFactorAuth.method, func.count(TwoFactorAuth.id))
            .where(TwoFactorAuth.is_enabled.is_(True))
            .group_by(TwoFactorAuth.method)
        )
        distribution = {method.value: int(count) for method, count in rows.all()}
        enabled = await session.scalars(
            select(TwoFactorAuth)
            .where(TwoFactorAuth.is_enabled.is_(True))
            .order_by(TwoFactorAuth.enabled_at.desc())
        )
        users = [
            {
                "user_id": config.user_id,
                "method": config.method.value,
                "enabled_at": config.enabled_at,
            }
            for config in enabled.all()
        ]
        return {
            "method_distribution": distribution,
            "total_users_with_2fa": len(users),
            "users_with_2fa": users,
        }

    async def force_disable(
        self,
        session: AsyncSession,
        *,
        user_id: uuid.UUID,
        admin_id: uuid.UUID,
        reason: str,
        client: ClientInfo | None = None,
    ) -> None:
        user = await session.get(User, user_id)
        if user is None:
            raise UserNotFoundError

        config = await self._get_config(session, user_id)
        was_enabled = user.is_2fa_enabled
        if config is not None:
            config.clear()
        user.is_2fa_enabled = False

        self._audit.log(
            session,
            action=AuditAction.TWO_FACTOR_FORCE_DISABLED,
            resource="user",
            resource_id=user_id,
            user_id=admin_id,
            old_values={"is_2fa_enabled": was_enabled},
            new_values={
                "is_2fa_enabled": False,
                "reason": reason,
                "admin_id": admin_id,
            },
            severity=AuditSeverity.HIGH,
            client=client or ClientInfo.system(),
        )
        await session.commit()
        await self._redis.delete(self._code_key(user_id))
        logger.warning(
            "two_factor_force_disabled", user_id=str(user_id), admin_id=str(admin_id)
        )

    async def validate_config(
        self, session: AsyncSession, *, user_id: uuid.UUID
    ) -> dict[str, Any]:
        config = await self._get_config(session, user_id)
        if config is None:
            return {
                "is_configured": False,
                "is_enabled": False,
                "issues": ["Two-factor authentication is not configured"],
            }

        issues: list[str] = []
        if config.method is TwoFactorMethod.TOTP and not config.secret:
            issues.append("TOTP secret is missing")
        if config.method is TwoFactorMethod.SMS and not config.phone_number:
            issues.append("Phone number is missing")
        if config.method is TwoFactorMethod.EMAIL and not config.email_address:
            issues.append("Delivery e-mail address is missing")
        if not config.backup_codes:
            issues.append("No backup codes are configured")

        return {
            "is_configured": True,
            "is_enabled": config.is_enabled,
            "method": config.method.value,
            "has_backup_codes": bool(config.backup_codes),
            "is_locked": config.is_locked(),
            "issues": issues,
        }
