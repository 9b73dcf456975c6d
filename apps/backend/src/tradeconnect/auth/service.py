from __future__ import annotations

import hashlib
import secrets
import uuid
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

import structlog
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from tradeconnect.audit.context import ClientInfo
from tradeconnect.audit.enums import AuditAction, AuditSeverity, AuditStatus
from tradeconnect.audit.service import AuditService
from tradeconnect.auth.enums import LoginMethod, SessionEndReason
from tradeconnect.auth.exceptions import (
    AccountDisabledError,
    AccountLockedError,
    AccountNotVerifiedError,
    EmailAlreadyRegisteredError,
    EmailAlreadyVerifiedError,
    InvalidCredentialsError,
    InvalidTokenError,
    PasswordMismatchError,
    ResetTokenInvalidError,
    SessionExpiredError,
    TermsNotAcceptedError,
    TwoFactorRequiredError,
    VerificationTokenInvalidError,
)
from tradeconnect.auth.models import (
    PasswordResetToken,
    User,
    UserSession,
    VerificationToken,
)
from tradeconnect.auth.passwords import hash_password, needs_rehash, verify_password
from tradeconnect.auth.sessions import SessionService
from tradeconnect.auth.tokens import TokenPair, TokenService
from tradeconnect.core.config import Settings
from tradeconnect.notifications import AuthNotifier
from tradeconnect.observability import metrics_service
from tradeconnect.rbac.service import RoleService
from tradeconnect.two_factor.service import TwoFactorService

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class AuthResult:
    """Result of an authentication workflow."""

    user: User
    tokens: TokenPair
    session: UserSession
    evicted_sessions: tuple[uuid.UUID, ...] = ()


@dataclass(frozen=True)
class RegistrationData:
    email: str
    password: str
    confirm_password: str
    first_name: str
    last_name: str
    phone: str | None = None
    terms_accepted: bool = False
    marketing_accepted: bool = False


def _now() -> datetime:
    return datetime.now(UTC)


def _hash_token(token: str) -> str:
    digest = hashlib.sha256(token.encode("utf-8")).hexdigest()
    return digest


def _normalize_email(email: str) -> str:
    return email.strip().lower()


class AuthService:
    """High-level authentication workflows around users and sessions."""

    def __init__(
        self,
        settings: Settings,
        *,
        token_service: TokenService,
        session_service: SessionService,
        two_factor_service: TwoFactorService,
        role_service: RoleService,
        audit_service: AuditService,
        notifier: AuthNotifier,
    ) -> None:
        self._settings = settings.auth
        self._token_service = token_service
        self._sessions = session_service
        self._two_factor = two_factor_service
        self._roles = role_service
        self._audit = audit_service
        self._notifier = notifier
        self._verification_expiry = timedelta(
            hours=self._settings.verification_token_ttl_hours
        )
        self._reset_expiry = timedelta(
            minutes=self._settings.password_reset_ttl_minutes
        )
        self._lockout = timedelta(minutes=self._settings.lockout_minutes)

    async def _find_user(self, session: AsyncSession, email: str) -> User | None:
        return await session.scalar(
            select(User).where(User.email == _normalize_email(email))
        )

    def _issue_verification_token(self, session: AsyncSession, user: User) -> str:
        token = secrets.token_urlsafe(32)
        session.add(
            VerificationToken(
                user_id=user.id,
                token_hash=_hash_token(token),
                expires_at=_now() + self._verification_expiry,
            )
        )
        return token

    async def register(
        self,
        session: AsyncSession,
        *,
        data: RegistrationData,
        client: ClientInfo,
    ) -> User:
        if data.password != data.confirm_password:
            raise PasswordMismatchError
        if not data.terms_accepted:
            raise TermsNotAcceptedError

        normalized_email = _normalize_email(data.email)
        if await self._find_user(session, normalized_email) is not None:
            raise EmailAlreadyRegisteredError

        now = _now()
        user = User(
            email=normalized_email,
            hashed_password=hash_password(data.password),
            first_name=data.first_name.strip(),
            last_name=data.last_name.strip(),
            phone=data.phone,
            is_active=True,
            is_verified=not self._settings.require_email_verification,
            terms_accepted_at=now,
            marketing_accepted=data.marketing_accepted,
            password_changed_at=now,
        )
        user.roles = [await self._roles.get_role(session, self._settings.default_role)]
        session.add(user)
        await session.flush()

        token = self._issue_verification_token(session, user)
        self._audit.log(
            session,
            action=AuditAction.USER_REGISTERED,
            resource="user",
            resource_id=user.id,
            user_id=user.id,
            new_values={"email": user.email, "roles": user.role_names},
            client=client,
        )
        await session.commit()

        await self._notifier.send_verification_email(user, token)
        logger.info("user_registered", user_id=str(user.id))
        return user

    async def verify_email(
        self, session: AsyncSession, *, token: str, client: ClientInfo
    ) -> User:
        verification = await session.scalar(
            select(VerificationToken).where(
                VerificationToken.token_hash == _hash_token(token)
            )
        )
        if verification is None or not verification.is_redeemable():
            raise VerificationTokenInvalidError

        user = await session.get(User, verification.user_id)
        if user is None:
            raise VerificationTokenInvalidError

        user.is_verified = True
        verification.used_at = _now()
        self._audit.log(
            session,
            action=AuditAction.EMAIL_VERIFICATION,
            resource="user",
            resource_id=user.id,
            user_id=user.id,
            new_values={"is_verified": True},
            client=client,
        )
        await session.commit()
        return user

    async def resend_verification(self, session: AsyncSession, *, email: str) -> None:
        user = await self._find_user(session, email)
        if user is None:
            return
        if user.is_verified:
            raise EmailAlreadyVerifiedError

        await session.execute(
            update(VerificationToken)
            .where(VerificationToken.user_id == user.id)
            .where(VerificationToken.used_at.is_(None))
            .values(used_at=_now())
        )
        token = self._issue_verification_token(session, user)
        await session.commit()
        await self._notifier.send_verification_email(user, token)

    def _audit_login_failure(
        self,
        session: AsyncSession,
        *,
        action: AuditAction,
        email: str,
        client: ClientInfo,
        user_id: uuid.UUID | None = None,
        reason: str,
        severity: AuditSeverity = AuditSeverity.MEDIUM,
    ) -> None:
        self._audit.log(
            session,
            action=action,
            resource="auth",
            resource_id=user_id,
            user_id=user_id,
            metadata={"email": email, "reason": reason},
            severity=severity,
            status=AuditStatus.FAILURE,
            client=client,
        )

    async def login(
        self,
        session: AsyncSession,
        *,
        email: str,
        password: str,
        client: ClientInfo,
        two_factor_code: str | None = None,
        remember_me: bool = False,
    ) -> AuthResult:
        normalized_email = _normalize_email(email)
        user = await self._find_user(session, normalized_email)
        if user is None:
            self._audit_login_failure(
                session,
                action=AuditAction.LOGIN_FAILED,
                email=normalized_email,
                client=client,
                reason="unknown_email",
            )
            await session.commit()
            metrics_service.record_login("invalid_credentials")
            raise InvalidCredentialsError

        if user.is_locked():
            self._audit_login_failure(
                session,
                action=AuditAction.LOGIN_BLOCKED,
                email=normalized_email,
                client=client,
                user_id=user.id,
                reason="account_locked",
                severity=AuditSeverity.HIGH,
            )
            await session.commit()
            metrics_service.record_login("locked")
            raise AccountLockedError

        if not user.is_active:
            metrics_service.record_login("disabled")
            raise AccountDisabledError

        if not verify_password(password, user.hashed_password):
            await self._register_failed_password(session, user, client=client)
            metrics_service.record_login("invalid_credentials")
            raise InvalidCredentialsError

        if self._settings.require_email_verification and not user.is_verified:
            metrics_service.record_login("unverified")
            raise AccountNotVerifiedError

        login_method = LoginMethod.PASSWORD
        if user.is_2fa_enabled:
            if not two_factor_code:
                await self._two_factor.issue_login_challenge(session, user=user)
                metrics_service.record_login("two_factor_required")
                raise TwoFactorRequiredError
            await self._two_factor.verify(
                session, user_id=user.id, code=two_factor_code, client=client
            )
            login_method = LoginMethod.TWO_FACTOR

        if needs_rehash(user.hashed_password):
            user.hashed_password = hash_password(password)

        user.reset_failed_logins()
        user.last_login_at = _now()
        user.last_login_ip = client.ip_address

        record = await self._sessions.create(
            session,
            user=user,
            client=client,
            login_method=login_method,
            remember_me=remember_me,
            expires_at=_now()
            + self._token_service.refresh_ttl(remember_me=remember_me),
        )
        tokens = self._issue_tokens(user, record)
        evicted = await self._sessions.enforce_limit(
            session, user_id=user.id, client=client
        )
        self._audit.log(
            session,
            action=AuditAction.LOGIN_SUCCESS,
            resource="auth",
            resource_id=record.id,
            user_id=user.id,
            metadata={
                "login_method": login_method.value,
                "device_type": record.device_type.value,
                "remember_me": remember_me,
            },
            client=client,
        )
        await session.commit()

        metrics_service.record_login("success")
        logger.info("login_succeeded", user_id=str(user.id), session_id=str(record.id))
        return AuthResult(
            user=user, tokens=tokens, session=record, evicted_sessions=tuple(evicted)
        )

    async def _register_failed_password(
        self, session: AsyncSession, user: User, *, client: ClientInfo
    ) -> None:
        locked = user.register_failed_login(
            max_attempts=self._settings.max_failed_attempts, lockout=self._lockout
        )
        self._audit_login_failure(
            session,
            action=AuditAction.LOGIN_FAILED,
            email=user.email,
            client=client,
            user_id=user.id,
            reason="invalid_password",
        )
        if locked:
            self._audit.log(
                session,
                action=AuditAction.ACCOUNT_LOCKED,
                resource="user",
                resource_id=user.id,
                user_id=user.id,
                metadata={
                    "failed_attempts": user.failed_login_attempts,
                    "locked_until": user.locked_until,
                },
                severity=AuditSeverity.HIGH,
                status=AuditStatus.WARNING,
                client=client,
            )
            metrics_service.record_lockout("account")
            logger.warning("account_locked", user_id=str(user.id))
        logger.info(
            "login_failed",
            user_id=str(user.id),
            failed_attempts=user.failed_login_attempts,
        )
        await session.commit()

    def _issue_tokens(self, user: User, record: UserSession) -> TokenPair:
        tokens = self._token_service.create_token_pair(
            user_id=user.id,
            session_id=record.id,
            roles=user.role_names,
            remember_me=record.remember_me,
        )
        record.refresh_token_hash = _hash_token(tokens.refresh_token)
        record.expires_at = tokens.refresh_expires_at
        return tokens

    async def refresh(
        self,
        session: AsyncSession,
        *,
        refresh_token: str,
        client: ClientInfo,
    ) -> AuthResult:
        payload = self._token_service.decode_refresh_token(refresh_token)

        record = await session.get(UserSession, payload.session_id)
        if (
            record is None
            or record.user_id != payload.subject
            or not record.is_usable()
        ):
            raise SessionExpiredError

        token_hash = _hash_token(refresh_token)
        if record.refresh_token_hash is None or not secrets.compare_digest(
            record.refresh_token_hash, token_hash
        ):
            await self._sessions.end_one(record, SessionEndReason.TOKEN_REUSE)
            self._audit.log(
                session,
                action=AuditAction.TOKEN_REUSE_DETECTED,
                resource="session",
                resource_id=record.id,
                user_id=record.user_id,
                severity=AuditSeverity.HIGH,
                status=AuditStatus.FAILURE,
                client=client,
            )
            await session.commit()
            logger.warning(
                "refresh_token_reuse_detected",
                user_id=str(record.user_id),
                session_id=str(record.id),
            )
            raise InvalidTokenError("Refresh token reuse detected")

        user = await session.get(User, payload.subject)
        if user is None:
            raise SessionExpiredError
        if not user.is_active:
            raise AccountDisabledError

        now = _now()
        tokens = self._issue_tokens(user, record)
        record.rotated_at = now
        record.last_activity_at = now
        if client.ip_address:
            record.ip_address = client.ip_address
        self._audit.log(
            session,
            action=AuditAction.TOKEN_REFRESH,
            resource="session",
            resource_id=record.id,
            user_id=user.id,
            client=client,
        )
        await session.commit()
        return AuthResult(user=user, tokens=tokens, session=record)

    async def logout(
        self,
        session: AsyncSession,
        *,
        session_id: uuid.UUID,
        client: ClientInfo,
    ) -> bool:
        record = await session.get(UserSession, session_id)
        if record is None or not record.is_active:
            return False

        await self._sessions.end_one(record, SessionEndReason.LOGOUT)
        self._audit.log(
            session,
            action=AuditAction.LOGOUT,
            resource="session",
            resource_id=record.id,
            user_id=record.user_id,
            client=client,
        )
        await session.commit()
        return True

    async def forgot_password(
        self, session: AsyncSession, *, email: str, client: ClientInfo
    ) -> None:
        user = await self._find_user(session, email)
        if user is None:
            logger.info("password_reset_unknown_email")
            return
        if not user.is_active:
            raise AccountDisabledError

        await session.execute(
            update(PasswordResetToken)
            .where(PasswordResetToken.user_id == user.id)
            .where(PasswordResetToken.used_at.is_(None))
            .values(used_at=_now())
        )
        token = secrets.token_urlsafe(32)
        session.add(
            PasswordResetToken(
                user_id=user.id,
                token_hash=_hash_token(token),
                expires_at=_now() + self._reset_expiry,
            )
        )
        self._audit.log(
            session,
            action=AuditAction.PASSWORD_RESET_REQUEST,
            resource="user",
            resource_id=user.id,
            user_id=user.id,
            severity=AuditSeverity.MEDIUM,
            client=client,
        )
        await session.commit()
        await self._notifier.send_password_reset(user, token)

    async def reset_password(
        self,
        session: AsyncSession,
        *,
        token: str,
        new_password: str,
        confirm_password: str,
        client: ClientInfo,
    ) -> User:
        if new_password != confirm_password:
            raise PasswordMismatchError

        reset = await session.scalar(
            select(PasswordResetToken).where(
                PasswordResetToken.token_hash == _hash_token(token)
            )
        )
        if reset is None or not reset.is_redeemable():
            raise ResetTokenInvalidError

        user = await session.get(User, reset.user_id)
        if user is None:
            raise ResetTokenInvalidError

        now = _now()
        user.hashed_password = hash_password(new_password)
        user.password_changed_at = now
        user.reset_failed_logins()
        reset.used_at = now
        ended = await self._sessions.end_all(
            session, user_id=user.id, reason=SessionEndReason.PASSWORD_RESET
        )
        self._audit.log(
            session,
            action=AuditAction.PASSWORD_RESET_COMPLETE,
            resource="user",
            resource_id=user.id,
            user_id=user.id,
            metadata={"terminated_sessions": len(ended)},
            severity=AuditSeverity.HIGH,
            client=client,
        )
        await session.commit()
        logger.info("password_reset_completed", user_id=str(user.id))
        return user

    async def change_password(
        self,
        session: AsyncSession,
        *,
        user_id: uuid.UUID,
        current_password: str,
        new_password: str,
        confirm_password: str,
        client: ClientInfo,
    ) -> int:
        if new_password != confirm_password:
            raise PasswordMismatchError

        user = await session.get(User, user_id)
        if user is None or not verify_password(current_password, user.hashed_password):
            raise InvalidCredentialsError("Current password is incorrect")

        user.hashed_password = hash_password(new_password)
        user.password_changed_at = _now()
        ended = await self._sessions.end_all(
            session, user_id=user.id, reason=SessionEndReason.PASSWORD_CHANGED
        )
        self._audit.log(
            session,
            action=AuditAction.PASSWORD_CHANGE,
            resource="user",
            resource_id=user.id,
            user_id=user.id,
            metadata={"terminated_sessions": len(ended)},
            severity=AuditSeverity.MEDIUM,
            client=client,
        )
        await session.commit()
        return len(ended)
