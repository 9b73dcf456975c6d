from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from tradeconnect.audit.enums import (
    AuditSeverity,
    AuditStatus,
    ExportFormat,
    SystemLogLevel,
)
from tradeconnect.db.pagination import PaginationMeta


class AuditLogRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    user_id: uuid.UUID | None
    action: str
    resource: str
    resource_id: str | None
    description: str
    old_values: dict[str, Any] | None
    new_values: dict[str, Any] | None
    ip_address: str | None
    user_agent: str | None
    severity: AuditSeverity
    status: AuditStatus
    metadata: dict[str, Any] = Field(
        validation_alias=AliasChoices("metadata_dict", "metadata")
    )
    created_at: datetime


class AuditLogListResponse(BaseModel):
    items: list[AuditLogRead]
    pagination: PaginationMeta
    summary: dict[str, int] = Field(default_factory=dict)


class AuditLogDetailResponse(BaseModel):
    log: AuditLogRead
    related: list[AuditLogRead]
    risk_level: str


class CriticalEventsResponse(BaseModel):
    hours: int
    events: list[AuditLogRead]


class AuditExportRequest(BaseModel):
    format: str = Field(default=ExportFormat.CSV.value)
    user_id: uuid.UUID | None = None
    action: str | None = None
    resource: str | None = None
    severity: AuditSeverity | None = None
    status: AuditStatus | None = None
    start_date: datetime | None = None
    end_date: datetime | None = None


class AuditCleanupRequest(BaseModel):
    days_to_keep: int | None = Field(default=None, ge=1, le=3650)
    dry_run: bool = True


class AuditCleanupResponse(BaseModel):
    deleted_count: int
    would_delete_count: int
    cutoff_date: datetime
    dry_run: bool


class SuspiciousActivityResponse(BaseModel):
    user_id: uuid.UUID
    hours: int
    failed_logins: int
    different_ips: int
    critical_events: int
    is_suspicious: bool


class SystemLogRead(AuditLogRead):
    level: SystemLogLevel


class SystemLogListResponse(BaseModel):
    items: list[SystemLogRead]
    pagination: PaginationMeta
