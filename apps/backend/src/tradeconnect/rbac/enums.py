from __future__ import annotations

from enum import StrEnum


class UserRole(StrEnum):
    """Roles recognised by the authorisation layer."""

    SUPER_ADMIN = "super_admin"
    ADMIN = "admin"
    MANAGER = "manager"
    OPERATOR = "operator"
    USER = "user"
    SPEAKER = "speaker"
    PARTICIPANT = "participant"
    CLIENT = "client"


class Permission(StrEnum):
    """Permission names granted to roles."""

    CREATE_USER = "create_user"
    READ_USER = "read_user"
    UPDATE_USER = "update_user"
    DELETE_USER = "delete_user"
    MANAGE_USER_ROLES = "manage_user_roles"
    VIEW_USER_AUDIT = "view_user_audit"
    VIEW_AUDIT_LOGS = "view_audit_logs"
    EXPORT_AUDIT_LOGS = "export_audit_logs"
    MANAGE_AUDIT_LOGS = "manage_audit_logs"
    MANAGE_SESSIONS = "manage_sessions"
    MANAGE_TWO_FACTOR = "manage_two_factor"
    VIEW_SYSTEM_CONFIG = "view_system_config"
    MANAGE_SYSTEM_CONFIG = "manage_system_config"

    @property
    def resource(self) -> str:
        if self.name.endswith("_USER") or self is Permission.MANAGE_USER_ROLES:
            return "user"
        if "AUDIT" in self.name:
            return "audit"
        if self is Permission.MANAGE_SESSIONS:
            return "session"
        if self is Permission.MANAGE_TWO_FACTOR:
            return "two_factor"
        return "system"


# Roles allowed to act on other users' resources.
ADMIN_ROLES: frozenset[UserRole] = frozenset(
    {UserRole.SUPER_ADMIN, UserRole.ADMIN, UserRole.MANAGER}
)

ROLE_LEVELS: dict[UserRole, int] = {
    UserRole.SUPER_ADMIN: 100,
    UserRole.ADMIN: 90,
    UserRole.MANAGER: 70,
    UserRole.OPERATOR: 50,
    UserRole.SPEAKER: 30,
    UserRole.CLIENT: 20,
    UserRole.PARTICIPANT: 20,
    UserRole.USER: 10,
}

_ALL_PERMISSIONS = frozenset(Permission)

ROLE_PERMISSIONS: dict[UserRole, frozenset[Permission]] = {
    UserRole.SUPER_ADMIN: _ALL_PERMISSIONS,
    UserRole.ADMIN: _ALL_PERMISSIONS - {Permission.MANAGE_SYSTEM_CONFIG},
    UserRole.MANAGER: frozenset(
        {
            Permission.READ_USER,
            Permission.UPDATE_USER,
            Permission.VIEW_USER_AUDIT,
            Permission.VIEW_AUDIT_LOGS,
            Permission.MANAGE_SESSIONS,
            Permission.VIEW_SYSTEM_CONFIG,
        }
    ),
    UserRole.OPERATOR: frozenset({Permission.READ_USER, Permission.VIEW_SYSTEM_CONFIG}),
    UserRole.SPEAKER: frozenset(),
    UserRole.CLIENT: frozenset(),
    UserRole.PARTICIPANT: frozenset(),
    UserRole.USER: frozenset(),
}
