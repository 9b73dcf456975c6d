"""Role and permission administration."""

from .enums import ADMIN_ROLES, Permission, UserRole
from .models import PermissionModel, Role

__all__ = [
    "ADMIN_ROLES",
    "Permission",
    "PermissionModel",
    "Role",
    "UserRole",
]
