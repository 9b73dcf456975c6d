from __future__ import annotations

from enum import StrEnum


class AuditSeverity(StrEnum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class AuditStatus(StrEnum):
    SUCCESS = "success"
    FAILURE = "failure"
    WARNING = "warning"


class ExportFormat(StrEnum):
    CSV = "csv"
    JSON = "json"


class SystemLogLevel(StrEnum):
    ERROR = "error"
    WARN = "warn"
    INFO = "info"
    DEBUG = "debug"


class AuditAction(StrEnum):
    """Well-known audit actions written by the identity service."""

    USER_REGISTERED = "user_registered"
    EMAIL_VERIFICATION = "email_verification"
    LOGIN_SUCCESS = "login_success"
    LOGIN_FAILED = "login_failed"
    LOGIN_BLOCKED = "login_blocked"
    LOGOUT = "logout"
    TOKEN_REFRESH = "token_refresh"
    TOKEN_REUSE_DETECTED = "token_reuse_detected"
    PASSWORD_CHANGE = "password_change"
    PASSWORD_RESET_REQUEST = "password_reset_request"
    PASSWORD_RESET_COMPLETE = "password_reset_complete"
    ACCOUNT_LOCKED = "account_locked"
    ACCOUNT_UNLOCKED = "account_unlocked"
    SESSION_TERMINATED = "session_terminated"
    SESSIONS_TERMINATED = "sessions_terminated"
    SESSION_EVICTED = "session_evicted"
    SESSION_FORCE_TERMINATED = "session_force_terminated"
    EXPIRED_SESSIONS_CLEANED = "expired_sessions_cleaned"
    TWO_FACTOR_SETUP = "2fa_setup"
    TWO_FACTOR_ENABLED = "2fa_enabled"
    TWO_FACTOR_DISABLED = "2fa_disabled"
    TWO_FACTOR_VERIFICATION_FAILED = "2fa_verification_failed"
    TWO_FACTOR_LOCKED = "2fa_locked"
    TWO_FACTOR_BACKUP_CODES_REGENERATED = "2fa_backup_codes_regenerated"
    TWO_FACTOR_FORCE_DISABLED = "2fa_force_disabled"
    USER_CREATED = "user_created"
    USER_UPDATED = "user_updated"
    USER_DELETED = "user_deleted"
    USER_ROLE_ASSIGNED = "user_role_assigned"
    USER_ROLE_REVOKED = "user_role_revoked"
    SYSTEM_CONFIG_CREATED = "system_config_created"
    SYSTEM_CONFIG_UPDATED = "system_config_updated"
    SYSTEM_CONFIG_DELETED = "system_config_deleted"
    SYSTEM_CONFIG_INITIALIZED = "system_config_initialized"
    AUDIT_EXPORTED = "audit_exported"
    AUDIT_CLEANUP = "audit_cleanup"
    SECURITY_ALERT = "security_alert"
    SUSPICIOUS_ACTIVITY = "suspicious_activity"


SECURITY_ACTIONS: tuple[str, ...] = (
    AuditAction.LOGIN_SUCCESS,
    AuditAction.LOGIN_FAILED,
    AuditAction.LOGIN_BLOCKED,
    AuditAction.LOGOUT,
    AuditAction.TOKEN_REUSE_DETECTED,
    AuditAction.PASSWORD_CHANGE,
    AuditAction.PASSWORD_RESET_REQUEST,
    AuditAction.PASSWORD_RESET_COMPLETE,
    AuditAction.TWO_FACTOR_ENABLED,
    AuditAction.TWO_FACTOR_DISABLED,
    AuditAction.TWO_FACTOR_VERIFICATION_FAILED,
    AuditAction.TWO_FACTOR_LOCKED,
    AuditAction.EMAIL_VERIFICATION,
    AuditAction.ACCOUNT_LOCKED,
    AuditAction.ACCOUNT_UNLOCKED,
    AuditAction.SUSPICIOUS_ACTIVITY,
)

SYSTEM_RESOURCES: tuple[str, ...] = ("system", "admin", "config", "maintenance")

LEVEL_SEVERITIES: dict[SystemLogLevel, tuple[AuditSeverity, ...]] = {
    SystemLogLevel.ERROR: (AuditSeverity.CRITICAL, AuditSeverity.HIGH),
    SystemLogLevel.WARN: (AuditSeverity.MEDIUM,),
    SystemLogLevel.INFO: (AuditSeverity.LOW,),
    SystemLogLevel.DEBUG: (AuditSeverity.LOW,),
}


def severity_to_level(severity: AuditSeverity) -> SystemLogLevel:
    if severity in (AuditSeverity.CRITICAL, AuditSeverity.HIGH):
        return SystemLogLevel.ERROR
    if severity is AuditSeverity.MEDIUM:
        return SystemLogLevel.WARN
    return SystemLogLevel.INFO
