"""
FastAPI dependencies wiring the permission core into routes.

Provides:
- Per-request resolver, gate and managers bound to the request's session
- A dependency factory for route protection
"""
from typing import Annotated, Optional

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.acl import AclSettings, get_acl_settings
from app.core.database.engine import get_db
from app.features.permissions.gate import AuthorizationGate
from app.features.permissions.grant_manager import UserGrantManager
from app.features.permissions.permission_manager import PermissionManager
from app.features.permissions.resolver import PermissionResolver
from app.features.permissions.role_manager import RoleManager
from app.features.users.dependencies import get_current_actor
from app.features.users.lifecycle import UserLifecycle
from app.features.users.models import User


DbSession = Annotated[AsyncSession, Depends(get_db)]
Acl = Annotated[AclSettings, Depends(get_acl_settings)]


# ============================================================================
# Components
# ============================================================================

def get_resolver(db: DbSession, settings: Acl) -> PermissionResolver:
    return PermissionResolver(db, settings)


def get_gate(
    resolver: Annotated[PermissionResolver, Depends(get_resolver)],
    settings: Acl,
) -> AuthorizationGate:
    return AuthorizationGate(resolver, settings)


def get_role_manager(db: DbSession, settings: Acl) -> RoleManager:
    return RoleManager(db, settings)


def get_permission_manager(db: DbSession, settings: Acl) -> PermissionManager:
    return PermissionManager(db, settings)


def get_grant_manager(db: DbSession, settings: Acl) -> UserGrantManager:
    return UserGrantManager(db, settings)


def get_user_lifecycle(db: DbSession) -> UserLifecycle:
    return UserLifecycle(db)


# ============================================================================
# Route protection
# ============================================================================

def require_permission(name: str):
    """
    FastAPI dependency to require a specific permission.

    Usage:
        @router.post("/roles")
        async def create_role(
            user: User = Depends(require_permission("role_create"))
        ):
            # User has permission to create roles
            pass

    Returns:
        Dependency function that returns the current user if they have permission

    Raises:
        Unauthenticated: if there is no actor
        Forbidden: if the actor lacks the permission
    """
    async def permission_dependency(
        gate: Annotated[AuthorizationGate, Depends(get_gate)],
        actor: Annotated[Optional[User], Depends(get_current_actor)],
    ) -> User:
        await gate.require_permission(actor, name)
        return actor

    return permission_dependency

