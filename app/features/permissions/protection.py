"""
Protection rules for privileged entities.

Every mutating operation goes through the guards below instead of checking
names or flags itself.
"""
from typing import Iterable

from app.core.acl import AclSettings
from app.features.permissions.exceptions import Forbidden
from app.features.permissions.models import Permission, Role


def is_protected_role(role: Role, settings: AclSettings) -> bool:
    """The super-admin role cannot be renamed, deleted or have its permissions changed."""
    return role.name == settings.super_admin_role


def is_protected_permission(permission: Permission) -> bool:
    """System permissions cannot be updated or deleted."""
    return bool(permission.is_system)


def guard_role(role: Role, settings: AclSettings, message: str) -> None:
    if is_protected_role(role, settings):
        raise Forbidden(message, label=role.display_name or role.name)


def guard_roles(roles: Iterable[Role], settings: AclSettings, message: str) -> None:
    for role in roles:
        guard_role(role, settings, message)


def guard_permission(permission: Permission, message: str) -> None:
    if is_protected_permission(permission):
        raise Forbidden(message, label=permission.display_name or permission.name)
