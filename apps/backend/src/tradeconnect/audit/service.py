from __future__ import annotations

import datetime as dt
import uuid
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any

import structlog
from sqlalchemy import ColumnElement, Select, and_, case, delete, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from tradeconnect.audit.context import ClientInfo
from tradeconnect.audit.enums import (
    LEVEL_SEVERITIES,
    SECURITY_ACTIONS,
    SYSTEM_RESOURCES,
    AuditAction,
    AuditSeverity,
    AuditStatus,
    ExportFormat,
    SystemLogLevel,
)
from tradeconnect.audit.exceptions import (
    AuditLogNotFoundError,
    UnsupportedExportFormatError,
)
from tradeconnect.audit.export import serialize_rows
from tradeconnect.audit.models import AuditLog
from tradeconnect.core.config import AuditSettings
from tradeconnect.db.pagination import (
    PaginationMeta,
    PaginationParams,
    count_rows,
    paginate_query,
)
from tradeconnect.observability import metrics_service

logger = structlog.get_logger(__name__)

STATS_PERIODS: dict[str, dt.timedelta] = {
    "1h": dt.timedelta(hours=1),
    "24h": dt.timedelta(hours=24),
    "7d": dt.timedelta(days=7),
    "30d": dt.timedelta(days=30),
    "90d": dt.timedelta(days=90),
}
DEFAULT_STATS_PERIOD = "24h"
RELATED_LOG_WINDOW = dt.timedelta(minutes=5)
RELATED_LOG_LIMIT = 10
TOP_ITEMS_LIMIT = 10

FAILED_LOGIN_ACTIONS = (
    AuditAction.LOGIN_FAILED,
    AuditAction.TWO_FACTOR_VERIFICATION_FAILED,
)


def _now() -> dt.datetime:
    return dt.datetime.now(dt.UTC)


def _critical_clause() -> ColumnElement[bool]:
    return or_(
        AuditLog.severity == AuditSeverity.CRITICAL,
        and_(
            AuditLog.severity == AuditSeverity.HIGH,
            AuditLog.status == AuditStatus.FAILURE,
        ),
    )


def _elevated_clause() -> ColumnElement[bool]:
    return AuditLog.severity.in_((AuditSeverity.CRITICAL, AuditSeverity.HIGH))


def _count_where(condition: ColumnElement[bool]) -> Any:
    return func.coalesce(func.sum(case((condition, 1), else_=0)), 0)


def calculate_risk_level(log: AuditLog) -> str:
    if (
        log.action == AuditAction.SUSPICIOUS_ACTIVITY
        or log.severity is AuditSeverity.CRITICAL
    ):
        return "high"
    attempts = int(log.metadata_dict.get("attempts", 0))
    if log.action == AuditAction.LOGIN_FAILED and attempts > 5:
        return "high"
    if log.action == AuditAction.ACCOUNT_LOCKED or log.severity is AuditSeverity.HIGH:
        return "medium"
    return "low"


@dataclass(frozen=True)
class AuditFilters:
    user_id: uuid.UUID | None = None
    action: str | None = None
    resource: str | None = None
    severity: AuditSeverity | None = None
    status: AuditStatus | None = None
    ip_address: str | None = None
    start_date: dt.datetime | None = None
    end_date: dt.datetime | None = None

    def apply(self, stmt: Select[Any]) -> Select[Any]:
        if self.user_id is not None:
            stmt = stmt.where(AuditLog.user_id == self.user_id)
        if self.action:
            stmt = stmt.where(AuditLog.action == self.action)
        if self.resource:
            stmt = stmt.where(AuditLog.resource == self.resource)
        if self.severity is not None:
            stmt = stmt.where(AuditLog.severity == self.severity)
        if self.status is not None:
            stmt = stmt.where(AuditLog.status == self.status)
        if self.ip_address:
            stmt = stmt.where(AuditLog.ip_address == self.ip_address)
        if self.start_date is not None:
            stmt = stmt.where(AuditLog.created_at >= self.start_date)
        if self.end_date is not None:
            stmt = stmt.where(AuditLog.created_at <= self.end_date)
        return stmt


@dataclass(frozen=True)
class AuditLogPage:
    items: list[AuditLog]
    pagination: PaginationMeta
    summary: dict[str, int] = field(default_factory=dict)


@dataclass(frozen=True)
class AuditLogDetail:
    log: AuditLog
    related: list[AuditLog]


@dataclass(frozen=True)
class ExportResult:
    format: ExportFormat
    content: str
    row_count: int

    @property
    def media_type(self) -> str:
        return "text/csv" if self.format is ExportFormat.CSV else "application/json"

    @property
    def filename(self) -> str:
        stamp = _now().strftime("%Y%m%d%H%M%S")
        return f"audit_logs_{stamp}.{self.format.value}"


@dataclass(frozen=True)
class CleanupResult:
    deleted_count: int
    would_delete_count: int
    cutoff_date: dt.datetime
    dry_run: bool


@dataclass(frozen=True)
class SuspiciousActivityReport:
    user_id: uuid.UUID
    hours: int
    failed_logins: int
    different_ips: int
    critical_events: int
    is_suspicious: bool


class AuditService:
    """Writes and queries the append-only audit trail.

    ``log`` only adds the record to the caller's unit of work, so an audit row
    is persisted exactly when the change it describes is committed.
    """

    def __init__(self, settings: AuditSettings | None = None) -> None:
        self._settings = settings or AuditSettings()

    def log(
        self,
        session: AsyncSession,
        *,
        action: str,
        resource: str,
        user_id: uuid.UUID | None = None,
        resource_id: str | uuid.UUID | None = None,
        old_values: dict[str, Any] | None = None,
        new_values: dict[str, Any] | None = None,
        client: ClientInfo | None = None,
        ip_address: str | None = None,
        user_agent: str | None = None,
        metadata: dict[str, Any] | None = None,
        severity: AuditSeverity = AuditSeverity.LOW,
        status: AuditStatus = AuditStatus.SUCCESS,
    ) -> AuditLog:
        if client is not None:
            ip_address = ip_address or client.ip_address
            user_agent = user_agent or client.user_agent
        entry = AuditLog(
            user_id=user_id,
            action=str(action),
            resource=resource,
            resource_id=str(resource_id) if resource_id is not None else None,
            old_values=old_values,
            new_values=new_values,
            ip_address=ip_address,
            user_agent=user_agent,
            metadata=metadata or {},
            severity=severity,
            status=status,
        )
        session.add(entry)
        metrics_service.record_audit_event(severity.value, status.value)
        logger.info(
            "audit_event",
            action=str(action),
            resource=resource,
            severity=severity.value,
            status=status.value,
            audit_user_id=str(user_id) if user_id else None,
        )
        return entry

    async def list_logs(
        self,
        session: AsyncSession,
        *,
        filters: AuditFilters,
        params: PaginationParams,
    ) -> AuditLogPage:
        stmt = filters.apply(select(AuditLog)).order_by(AuditLog.created_at.desc())
        items, meta = await paginate_query(session, stmt, params)

        summary_stmt = filters.apply(
            select(
                func.count(AuditLog.id),
                _count_where(_elevated_clause()),
                _count_where(AuditLog.action.in_(SECURITY_ACTIONS)),
                _count_where(AuditLog.user_id.is_(None)),
            )
        )
        total, critical, security, system = (await session.execute(summary_stmt)).one()
        summary = {
            "total_logs": int(total),
            "critical_events": int(critical),
            "security_events": int(security),
            "system_events": int(system),
        }
        return AuditLogPage(items=items, pagination=meta, summary=summary)

    async def get_log(self, session: AsyncSession, log_id: uuid.UUID) -> AuditLogDetail:
        log = await session.get(AuditLog, log_id)
        if log is None:
            raise AuditLogNotFoundError
        return AuditLogDetail(log=log, related=await self._related_logs(session, log))

    async def _related_logs(
        self, session: AsyncSession, log: AuditLog
    ) -> list[AuditLog]:
        conditions: list[ColumnElement[bool]] = [
            and_(
                AuditLog.resource == log.resource,
                AuditLog.created_at >= log.created_at - RELATED_LOG_WINDOW,
                AuditLog.created_at <= log.created_at + RELATED_LOG_WINDOW,
            )
        ]
        if log.user_id is not None:
            conditions.append(AuditLog.user_id == log.user_id)
        if log.resource_id is not None:
            conditions.append(AuditLog.resource_id == log.resource_id)

        result = await session.scalars(
            select(AuditLog)
            .where(or_(*conditions), AuditLog.id != log.id)
            .order_by(AuditLog.created_at.desc())
            .limit(RELATED_LOG_LIMIT)
        )
        return list(result.all())

    async def stats(self, session: AsyncSession, *, period: str) -> dict[str, Any]:
        if period not in STATS_PERIODS:
            period = DEFAULT_STATS_PERIOD
        since = _now() - STATS_PERIODS[period]
        in_period = AuditLog.created_at >= since

        total, critical, security = (
            await session.execute(
                select(
                    func.count(AuditLog.id),
                    _count_where(_elevated_clause()),
                    _count_where(AuditLog.action.in_(SECURITY_ACTIONS)),
                ).where(in_period)
            )
        ).one()
        total = int(total)
        critical = int(critical)

        by_severity = await self._grouped_counts(session, AuditLog.severity, in_period)
        by_status = await self._grouped_counts(session, AuditLog.status, in_period)
        top_actions = await self._grouped_counts(
            session, AuditLog.action, in_period, limit=TOP_ITEMS_LIMIT
        )
        top_resources = await self._grouped_counts(
            session, AuditLog.resource, in_period, limit=TOP_ITEMS_LIMIT
        )

        success_rate = ((total - critical) / total) * 100 if total else 0.0
        return {
            "period": period,
            "overview": {
                "total_logs": total,
                "critical_logs": critical,
                "security_logs": int(security),
                "success_rate": round(success_rate, 2),
            },
            "distribution": {
                "by_severity": [
                    {"severity": str(value), "count": count}
                    for value, count in by_severity
                ],
                "by_status": [
                    {"status": str(value), "count": count}
                    for value, count in by_status
                ],
            },
            "top_items": {
                "actions": [
                    {"action": value, "count": count}
                    for value, count in top_actions
                ],
                "resources": [
                    {"resource": value, "count": count}
                    for value, count in top_resources
                ],
            },
        }

    @staticmethod
    async def _grouped_counts(
        session: AsyncSession,
        column: Any,
        condition: ColumnElement[bool],
        *,
        limit: int | None = None,
    ) -> list[tuple[Any, int]]:
        count = func.count(AuditLog.id)
        stmt = (
            select(column, count)
            .where(condition)
            .group_by(column)
            .order_by(count.desc(), column)
        )
        if limit is not None:
            stmt = stmt.limit(limit)
        result = await session.execute(stmt)
        return [(value, int(total)) for value, total in result.all()]

    async def critical_events(
        self, session: AsyncSession, *, hours: int = 24, limit: int = 50
    ) -> list[AuditLog]:
        since = _now() - dt.timedelta(hours=hours)
        result = await session.scalars(
            select(AuditLog)
            .where(AuditLog.created_at >= since, _critical_clause())
            .order_by(AuditLog.created_at.desc())
            .limit(limit)
        )
        return list(result.all())

    async def security_logs(
        self,
        session: AsyncSession,
        *,
        params: PaginationParams,
        event_type: str | None = None,
        start_date: dt.datetime | None = None,
        end_date: dt.datetime | None = None,
    ) -> AuditLogPage:
        filters = AuditFilters(start_date=start_date, end_date=end_date)
        stmt = filters.apply(select(AuditLog))
        if event_type:
            stmt = stmt.where(AuditLog.action == event_type)
        else:
            stmt = stmt.where(AuditLog.action.in_(SECURITY_ACTIONS))

        items, meta = await paginate_query(
            session, stmt.order_by(AuditLog.created_at.desc()), params
        )

        counts_stmt = stmt.with_only_columns(
            _count_where(AuditLog.action == AuditAction.LOGIN_FAILED),
            _count_where(AuditLog.action == AuditAction.SUSPICIOUS_ACTIVITY),
            _count_where(AuditLog.action == AuditAction.ACCOUNT_LOCKED),
        )
        failed, suspicious, locks = (await session.execute(counts_stmt)).one()
        summary = {
            "total_events": meta.total,
            "failed_logins": int(failed),
            "suspicious_activities": int(suspicious),
            "account_locks": int(locks),
        }
        return AuditLogPage(items=items, pagination=meta, summary=summary)

    async def system_logs(
        self,
        session: AsyncSession,
        *,
        params: PaginationParams,
        level: SystemLogLevel | None = None,
        start_date: dt.datetime | None = None,
        end_date: dt.datetime | None = None,
    ) -> AuditLogPage:
        filters = AuditFilters(start_date=start_date, end_date=end_date)
        stmt = filters.apply(select(AuditLog)).where(
            AuditLog.user_id.is_(None),
            AuditLog.resource.in_(SYSTEM_RESOURCES),
        )
        if level is not None:
            stmt = stmt.where(AuditLog.severity.in_(LEVEL_SEVERITIES[level]))

        items, meta = await paginate_query(
            session, stmt.order_by(AuditLog.created_at.desc()), params
        )
        return AuditLogPage(items=items, pagination=meta)

    async def export(
        self,
        session: AsyncSession,
        *,
        export_format: str,
        filters: AuditFilters,
    ) -> ExportResult:
        try:
            fmt = ExportFormat(export_format.lower())
        except ValueError as exc:
            raise UnsupportedExportFormatError(
                f"Unsupported export format: {export_format}"
            ) from exc

        stmt = (
            filters.apply(select(AuditLog))
            .order_by(AuditLog.created_at.desc())
            .limit(self._settings.export_max_rows)
        )
        logs = list((await session.scalars(stmt)).all())
        rows = [
            {
                "id": str(log.id),
                "user_id": str(log.user_id) if log.user_id else "",
                "user_email": log.user.email if log.user is not None else "",
                "action": log.action,
                "resource": log.resource,
                "resource_id": log.resource_id or "",
                "severity": log.severity.value,
                "status": log.status.value,
                "description": log.description,
                "ip_address": log.ip_address or "",
                "created_at": log.created_at.isoformat(),
            }
            for log in logs
        ]
        logger.info("audit_exported", format=fmt.value, rows=len(rows))
        return ExportResult(
            format=fmt, content=serialize_rows(rows, fmt), row_count=len(rows)
        )

    async def cleanup(
        self,
        session: AsyncSession,
        *,
        days_to_keep: int | None = None,
        dry_run: bool = True,
    ) -> CleanupResult:
        days = days_to_keep or self._settings.retention_days
        cutoff = _now() - dt.timedelta(days=days)
        condition = and_(
            AuditLog.created_at < cutoff,
            AuditLog.severity != AuditSeverity.CRITICAL,
        )

        would_delete = await count_rows(session, select(AuditLog.id).where(condition))
        deleted = 0
        if not dry_run:
            result = await session.execute(
                delete(AuditLog).where(condition).execution_options(
                    synchronize_session=False
                )
            )
            deleted = int(result.rowcount or 0)
            self.log(
                session,
                action=AuditAction.AUDIT_CLEANUP,
                resource="system",
                resource_id="audit_logs",
                client=ClientInfo.system(),
                metadata={
                    "days_to_keep": days,
                    "cutoff_date": cutoff.isoformat(),
                    "deleted_count": deleted,
                },
            )
            await session.commit()
            logger.info("audit_cleanup_completed", deleted=deleted, days_to_keep=days)

        return CleanupResult(
            deleted_count=deleted,
            would_delete_count=would_delete,
            cutoff_date=cutoff,
            dry_run=dry_run,
        )

    async def detect_suspicious_activity(
        self, session: AsyncSession, *, user_id: uuid.UUID, hours: int = 1
    ) -> SuspiciousActivityReport:
        since = _now() - dt.timedelta(hours=hours)
        failed, critical = (
            await session.execute(
                select(
                    _count_where(AuditLog.action.in_(FAILED_LOGIN_ACTIONS)),
                    _count_where(_critical_clause()),
                ).where(AuditLog.user_id == user_id, AuditLog.created_at >= since)
            )
        ).one()
        different_ips = await session.scalar(
            select(func.count(func.distinct(AuditLog.ip_address))).where(
                AuditLog.user_id == user_id, AuditLog.created_at >= since
            )
        )

        failed = int(failed)
        ips = int(different_ips or 0)
        critical = int(critical)
        is_suspicious = (
            failed > 5 or ips > 3 or critical > 2 or (failed > 2 and ips > 1)
        )
        if is_suspicious:
            logger.warning(
                "suspicious_activity_detected",
                audit_user_id=str(user_id),
                failed_logins=failed,
                different_ips=ips,
                critical_events=critical,
            )
        return SuspiciousActivityReport(
            user_id=user_id,
            hours=hours,
            failed_logins=failed,
            different_ips=ips,
            critical_events=critical,
            is_suspicious=is_suspicious,
        )

    async def user_activity(
        self,
        session: AsyncSession,
        *,
        user_id: uuid.UUID,
        params: PaginationParams,
        actions: Sequence[str] | None = None,
    ) -> AuditLogPage:
        stmt = select(AuditLog).where(AuditLog.user_id == user_id)
        if actions:
            stmt = stmt.where(AuditLog.action.in_(actions))
        items, meta = await paginate_query(
            session, stmt.order_by(AuditLog.created_at.desc()), params
        )
        return AuditLogPage(items=items, pagination=meta)
