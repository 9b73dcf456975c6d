from __future__ import annotations

import datetime as dt
import math
import uuid
from collections import Counter
from dataclasses import dataclass
from typing import Any

import structlog
from sqlalchemy import distinct, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from tradeconnect.audit.context import ClientInfo
from tradeconnect.audit.enums import AuditAction, AuditSeverity, AuditStatus
from tradeconnect.audit.service import AuditService
from tradeconnect.auth.blacklist import TokenBlacklist
from tradeconnect.auth.enums import LoginMethod, SessionEndReason
from tradeconnect.auth.exceptions import SessionNotFoundError
from tradeconnect.auth.models import User, UserSession
from tradeconnect.auth.user_agent import parse_user_agent
from tradeconnect.core.config import AuthSettings
from tradeconnect.db.pagination import PaginationMeta, PaginationParams, paginate_query
from tradeconnect.observability import metrics_service

logger = structlog.get_logger(__name__)

SUSPICIOUS_IP_THRESHOLD = 3


def _now() -> dt.datetime:
    return dt.datetime.now(dt.UTC)


@dataclass(frozen=True)
class SuspiciousSessions:
    sessions: list[UserSession]

    @property
    def is_suspicious(self) -> bool:
        return bool(self.sessions)

    @property
    def risk_level(self) -> str:
        if len(self.sessions) > 2:
            return "high"
        if self.sessions:
            return "medium"
        return "low"


class SessionService:
    """Lifecycle of per-device sessions.

    Every path that ends a session also blacklists its id so access tokens
    already handed out for it stop working before they expire.
    """

    def __init__(
        self,
        settings: AuthSettings,
        *,
        blacklist: TokenBlacklist,
        audit_service: AuditService,
    ) -> None:
        self._settings = settings
        self._blacklist = blacklist
        self._audit = audit_service

    async def create(
        self,
        session: AsyncSession,
        *,
        user: User,
        client: ClientInfo,
        login_method: LoginMethod,
        remember_me: bool,
        expires_at: dt.datetime,
    ) -> UserSession:
        device = parse_user_agent(client.user_agent)
        record = UserSession(
            user_id=user.id,
            user_agent=client.user_agent,
            ip_address=client.ip_address,
            device_type=device.device_type,
            os=device.os,
            browser=device.browser,
            login_method=login_method,
            remember_me=remember_me,
            is_active=True,
            last_activity_at=_now(),
            expires_at=expires_at,
        )
        session.add(record)
        await session.flush()
        metrics_service.record_session_created(login_method.value)
        return record

    async def _active_sessions(
        self, session: AsyncSession, user_id: uuid.UUID
    ) -> list[UserSession]:
        result = await session.scalars(
            select(UserSession)
            .where(UserSession.user_id == user_id)
            .where(UserSession.is_active.is_(True))
            .where(UserSession.expires_at > _now())
            .order_by(UserSession.last_activity_at.desc())
        )
        return list(result.all())

    async def _end(
        self,
        records: list[UserSession],
        reason: SessionEndReason,
    ) -> list[uuid.UUID]:
        now = _now()
        ended = [record.id for record in records if record.terminate(reason, now)]
        await self._blacklist.add_many(ended)
        metrics_service.record_sessions_terminated(reason.value, len(ended))
        return ended

    async def enforce_limit(
        self,
        session: AsyncSession,
        *,
        user_id: uuid.UUID,
        client: ClientInfo | None = None,
    ) -> list[uuid.UUID]:
        """Terminate the least recently used sessions beyond the per-user cap."""
        active = await self._active_sessions(session, user_id)
        overflow = active[self._settings.max_sessions_per_user :]
        if not overflow:
            return []

        evicted = await self._end(overflow, SessionEndReason.SESSION_LIMIT)
        for session_id in evicted:
            self._audit.log(
                session,
                action=AuditAction.SESSION_EVICTED,
                resource="session",
                resource_id=session_id,
                user_id=user_id,
                metadata={"limit": self._settings.max_sessions_per_user},
                severity=AuditSeverity.MEDIUM,
                status=AuditStatus.WARNING,
                client=client,
            )
            logger.info(
                "session_evicted", user_id=str(user_id), session_id=str(session_id)
            )
        return evicted

    async def end_all(
        self,
        session: AsyncSession,
        *,
        user_id: uuid.UUID,
        reason: SessionEndReason,
        exclude: uuid.UUID | None = None,
    ) -> list[uuid.UUID]:
        """Terminate every live session of a user; the caller commits."""
        result = await session.scalars(
            select(UserSession)
            .where(UserSession.user_id == user_id)
            .where(UserSession.is_active.is_(True))
        )
        records = [record for record in result.all() if record.id != exclude]
        return await self._end(records, reason)

    async def end_one(self, record: UserSession, reason: SessionEndReason) -> bool:
        return bool(await self._end([record], reason))

    async def list_active(
        self,
        session: AsyncSession,
        *,
        user_id: uuid.UUID,
        current_session_id: uuid.UUID | None = None,
    ) -> list[tuple[UserSession, bool]]:
        active = await self._active_sessions(session, user_id)
        return [(record, record.id == current_session_id) for record in active]

    async def history(
        self,
        session: AsyncSession,
        *,
        user_id: uuid.UUID,
        params: PaginationParams,
        start_date: dt.datetime | None = None,
        end_date: dt.datetime | None = None,
    ) -> tuple[list[UserSession], PaginationMeta]:
        stmt = select(UserSession).where(UserSession.user_id == user_id)
        if start_date is not None:
            stmt = stmt.where(UserSession.created_at >= start_date)
        if end_date is not None:
            stmt = stmt.where(UserSession.created_at <= end_date)
        stmt = stmt.order_by(UserSession.created_at.desc())
        return await paginate_query(session, stmt, params)

    async def terminate(
        self,
        session: AsyncSession,
        *,
        user_id: uuid.UUID,
        session_id: uuid.UUID,
        client: ClientInfo,
    ) -> None:
        record = await session.get(UserSession, session_id)
        if record is None or record.user_id != user_id or not record.is_active:
            raise SessionNotFoundError

        await self.end_one(record, SessionEndReason.USER_TERMINATED)
        self._audit.log(
            session,
            action=AuditAction.SESSION_TERMINATED,
            resource="session",
            resource_id=session_id,
            user_id=user_id,
            client=client,
        )
        await session.commit()
        logger.info(
            "session_terminated", user_id=str(user_id), session_id=str(session_id)
        )

    async def terminate_others(
        self,
        session: AsyncSession,
        *,
        user_id: uuid.UUID,
        current_session_id: uuid.UUID,
        client: ClientInfo,
    ) -> int:
        ended = await self.end_all(
            session,
            user_id=user_id,
            reason=SessionEndReason.USER_TERMINATED,
            exclude=current_session_id,
        )
        self._audit.log(
            session,
            action=AuditAction.SESSIONS_TERMINATED,
            resource="session",
            user_id=user_id,
            metadata={
                "terminated_count": len(ended),
                "kept_session_id": current_session_id,
            },
            client=client,
        )
        await session.commit()
        return len(ended)

    async def force_terminate(
        self,
        session: AsyncSession,
        *,
        session_id: uuid.UUID,
        admin_id: uuid.UUID,
        reason: str | None,
        client: ClientInfo,
    ) -> UserSession:
        record = await session.get(UserSession, session_id)
        if record is None:
            raise SessionNotFoundError

        await self.end_one(record, SessionEndReason.ADMIN_TERMINATED)
        self._audit.log(
            session,
            action=AuditAction.SESSION_FORCE_TERMINATED,
            resource="session",
            resource_id=session_id,
            user_id=admin_id,
            metadata={"target_user_id": record.user_id, "reason": reason},
            severity=AuditSeverity.HIGH,
            client=client,
        )
        await session.commit()
        logger.warning(
            "session_force_terminated",
            session_id=str(session_id),
            admin_id=str(admin_id),
        )
        return record

    async def cleanup_expired(self, session: AsyncSession) -> int:
        result = await session.scalars(
            select(UserSession)
            .where(UserSession.is_active.is_(True))
            .where(UserSession.expires_at <= _now())
        )
        records = list(result.all())
        if not records:
            return 0

        now = _now()
        cleaned = sum(
            1 for record in records if record.terminate(SessionEndReason.EXPIRED, now)
        )
        metrics_service.record_sessions_terminated(
            SessionEndReason.EXPIRED.value, cleaned
        )
        self._audit.log(
            session,
            action=AuditAction.EXPIRED_SESSIONS_CLEANED,
            resource="session",
            metadata={"cleaned_count": cleaned},
            client=ClientInfo.system(),
        )
        await session.commit()
        logger.info("expired_sessions_cleaned", count=cleaned)
        return cleaned

    async def detect_suspicious(
        self, session: AsyncSession, *, user_id: uuid.UUID
    ) -> SuspiciousSessions:
        active = await self._active_sessions(session, user_id)
        by_ip: dict[str, list[UserSession]] = {}
        for record in active:
            by_ip.setdefault(record.ip_address or "unknown", []).append(record)

        if len(by_ip) <= SUSPICIOUS_IP_THRESHOLD:
            return SuspiciousSessions(sessions=[])

        frequency = Counter({ip: len(records) for ip, records in by_ip.items()})
        least_common = sorted(frequency, key=frequency.__getitem__)
        flagged_ips = least_common[: math.ceil(len(least_common) / 2)]
        flagged = [record for ip in flagged_ips for record in by_ip[ip]]
        return SuspiciousSessions(sessions=flagged)

    async def stats(self, session: AsyncSession, *, days: int = 30) -> dict[str, Any]:
        now = _now()
        since = now - dt.timedelta(days=days)

        active = await session.scalar(
            select(func.count(UserSession.id))
            .where(UserSession.is_active.is_(True))
            .where(UserSession.expires_at > now)
        )
        expired_pending = await session.scalar(
            select(func.count(UserSession.id))
            .where(UserSession.is_active.is_(True))
            .where(UserSession.expires_at <= now)
        )
        unique_users = await session.scalar(
            select(func.count(distinct(UserSession.user_id))).where(
                UserSession.created_at >= since
            )
        )
        total = await session.scalar(
            select(func.count(UserSession.id)).where(UserSession.created_at >= since)
        )

        day = func.date(UserSession.created_at)
        daily_rows = await session.execute(
            select(
                day,
                func.count(UserSession.id),
                func.count(distinct(UserSession.user_id)),
            )
            .where(UserSession.created_at >= since)
            .group_by(day)
            .order_by(day)
        )
        device_count = func.count(UserSession.id)
        device_rows = await session.execute(
            select(
                UserSession.device_type,
                device_count,
                func.count(distinct(UserSession.user_id)),
            )
            .where(UserSession.created_at >= since)
            .group_by(UserSession.device_type)
            .order_by(device_count.desc())
        )

        return {
            "period_days": days,
            "overview": {
                "active_sessions": int(active or 0),
                "expired_sessions": int(expired_pending or 0),
                "unique_users": int(unique_users or 0),
                "total_sessions": int(total or 0),
            },
            "daily": [
                {"date": str(date), "sessions": int(count), "unique_users": int(users)}
                for date, count, users in daily_rows.all()
            ],
            "devices": [
                {
                    "device_type": str(device),
                    "count": int(count),
                    "unique_users": int(users),
                }
                for device, count, users in device_rows.all()
            ],
        }
