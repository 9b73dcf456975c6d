from __future__ import annotations

from typing import ClassVar


class AuditError(Exception):
    """Base class for audit trail errors."""

    code: ClassVar[str] = "AUDIT_ERROR"
    default_message: ClassVar[str] = "Audit error"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class AuditLogNotFoundError(AuditError):
    code = "AUDIT_LOG_NOT_FOUND"
    default_message = "Audit log not found"


class AuditLogImmutableError(AuditError):
    """Raised when something tries to rewrite a persisted audit record."""

    code = "AUDIT_LOG_IMMUTABLE"
    default_message = "Audit logs are write-once"


class UnsupportedExportFormatError(AuditError):
    code = "UNSUPPORTED_EXPORT_FORMAT"
    default_message = "Unsupported export format"
