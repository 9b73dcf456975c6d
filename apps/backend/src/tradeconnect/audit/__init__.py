"""Append-only audit trail."""

from .enums import AuditAction, AuditSeverity, AuditStatus
from .models import AuditLog

__all__ = ["AuditAction", "AuditLog", "AuditSeverity", "AuditStatus"]
