from enum import Enum


class Role(str, Enum):
    OWNER = "owner"
    ADMIN = "admin"
    VIEWER = "viewer"


# Roles that may appear in the permission table (owner bypasses it entirely)
DEPARTMENT_ROLES: frozenset["Role"] = frozenset({Role.ADMIN, Role.VIEWER})


class PermissionAction(str, Enum):
    CREATE = "create"
    READ = "read"
    UPDATE = "update"
    DELETE = "delete"
    INVITE = "invite"


class PermissionResource(str, Enum):
    TASK = "task"
    DEPARTMENT = "department"
    USER = "user"
