from collections.abc import Iterable

from .models import Role, User


ADMIN_WILDCARD = "admin:*"

ROLE_PERMISSIONS: dict[Role, tuple[str, ...]] = {
    Role.STUDENT: ("messages:read", "attendance:read", "leave:submit", "course:enroll"),
    Role.TEACHER: (
        "messages:read",
        "messages:write",
        "attendance:read",
        "attendance:mark",
        "leave:approve",
        "course:manage",
    ),
    Role.HOD: (
        "messages:read",
        "messages:write",
        "attendance:read",
        "attendance:mark",
        "leave:approve",
        "course:manage",
        "kpi:view",
    ),
    Role.PRINCIPAL: ("messages:read", "messages:write", "kpi:view", "admin:view"),
    Role.ADMIN: (ADMIN_WILDCARD, "messages:read", "messages:write", "kpi:view", "attendance:read", "leave:approve"),
}


def permissions_for(roles: Iterable[str]) -> list[str]:
    """Flatten the permissions of every role, keeping first-seen order."""
    granted: list[str] = []
    for role in roles:
        try:
            role_permissions = ROLE_PERMISSIONS[Role(role)]
        except ValueError:
            continue
        for permission in role_permissions:
            if permission not in granted:
                granted.append(permission)
    return granted


def has_permission(user: User | None, permission: str) -> bool:
    if user is None:
        return False
    granted = set(permissions_for(user.roles or []))
    return permission in granted or ADMIN_WILDCARD in granted
