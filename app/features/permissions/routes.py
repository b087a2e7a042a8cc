"""
Permission management API routes.

Provides endpoints for managing permissions, roles, user grants and the audit
trail. Every route is guarded by a named permission through the gate.
"""
from typing import Annotated, List, Optional
from fastapi import APIRouter, Depends, Query, status

from app.features.permissions import store
from app.features.permissions.audit import list_audit_logs
from app.features.permissions.dependencies import (
    DbSession,
    get_gate,
    get_grant_manager,
    get_permission_manager,
    get_resolver,
    get_role_manager,
    require_permission,
)
from app.features.permissions.gate import AuthorizationGate
from app.features.permissions.grant_manager import UserGrantManager
from app.features.permissions.permission_manager import PermissionManager
from app.features.permissions.resolver import PermissionResolver
from app.features.permissions.role_manager import RoleManager
from app.features.permissions.schemas import (
    AuditLogListResponse,
    AuditLogResponse,
    PermissionCreate,
    PermissionNames,
    PermissionResponse,
    PermissionUpdate,
    PermissionWithRoles,
    RoleCreate,
    RoleNames,
    RoleResponse,
    RoleUpdate,
    RoleWithPermissions,
    UserPermissionsResponse,
)
from app.features.users.dependencies import get_current_user
from app.features.users.models import User
from app.features.users.schemas import UserWithGrants


router = APIRouter()

Permissions = Annotated[PermissionManager, Depends(get_permission_manager)]
Roles = Annotated[RoleManager, Depends(get_role_manager)]
Grants = Annotated[UserGrantManager, Depends(get_grant_manager)]


# ============================================================================
# Permission Routes
# ============================================================================

@router.get("/permissions", response_model=List[PermissionResponse], tags=["permissions"])
async def list_permissions(
    manager: Permissions,
    current_user: Annotated[User, Depends(require_permission("permission_view"))],
    search: Optional[str] = None,
    skip: int = Query(default=0, ge=0),
    limit: int = Query(default=100, ge=1, le=500),
):
    """List permissions ordered by name, optionally filtered by a search term."""
    return await manager.list_permissions(search=search, skip=skip, limit=limit)


@router.get("/permissions/all", response_model=List[PermissionResponse], tags=["permissions"])
async def list_all_permissions(
    manager: Permissions,
    current_user: Annotated[User, Depends(require_permission("permission_view"))],
):
    """Every permission, unpaginated."""
    return await manager.list_all()


@router.post(
    "/permissions",
    response_model=PermissionWithRoles,
    status_code=status.HTTP_201_CREATED,
    tags=["permissions"],
)
async def create_permission(
    payload: PermissionCreate,
    manager: Permissions,
    current_user: Annotated[User, Depends(require_permission("permission_create"))],
):
    return await manager.create_permission(
        current_user,
        name=payload.name,
        display_name=payload.display_name,
        description=payload.description,
        role_names=payload.roles,
    )


@router.get("/permissions/{permission_id}", response_model=PermissionWithRoles, tags=["permissions"])
async def get_permission(
    permission_id: str,
    manager: Permissions,
    current_user: Annotated[User, Depends(require_permission("permission_view"))],
):
    return await manager.get_permission(permission_id)


@router.put("/permissions/{permission_id}", response_model=PermissionWithRoles, tags=["permissions"])
async def update_permission(
    permission_id: str,
    payload: PermissionUpdate,
    manager: Permissions,
    current_user: Annotated[User, Depends(require_permission("permission_update"))],
):
    permission = await manager.get_permission(permission_id)
    return await manager.update_permission(
        current_user,
        permission,
        name=payload.name,
        display_name=payload.display_name,
        description=payload.description,
        role_names=payload.roles,
    )


@router.delete("/permissions/{permission_id}", status_code=status.HTTP_204_NO_CONTENT, tags=["permissions"])
async def delete_permission(
    permission_id: str,
    manager: Permissions,
    current_user: Annotated[User, Depends(require_permission("permission_delete"))],
):
    permission = await manager.get_permission(permission_id)
    await manager.delete_permission(current_user, permission)


# ============================================================================
# Role Routes
# ============================================================================

@router.get("/roles", response_model=List[RoleResponse], tags=["roles"])
async def list_roles(
    manager: Roles,
    current_user: Annotated[User, Depends(require_permission("role_view"))],
    search: Optional[str] = None,
    skip: int = Query(default=0, ge=0),
    limit: int = Query(default=100, ge=1, le=500),
):
    """List roles. The super admin role is only listed for its holders."""
    return await manager.list_roles(current_user, search=search, skip=skip, limit=limit)


@router.post("/roles", response_model=RoleWithPermissions, status_code=status.HTTP_201_CREATED, tags=["roles"])
async def create_role(
    payload: RoleCreate,
    manager: Roles,
    current_user: Annotated[User, Depends(require_permission("role_create"))],
):
    return await manager.create_role(
        current_user,
        name=payload.name,
        display_name=payload.display_name,
        description=payload.description,
        permission_names=payload.permissions,
    )


@router.get("/roles/{role_id}", response_model=RoleWithPermissions, tags=["roles"])
async def get_role(
    role_id: str,
    manager: Roles,
    current_user: Annotated[User, Depends(require_permission("role_view"))],
):
    return await manager.get_role(current_user, role_id)


@router.put("/roles/{role_id}", response_model=RoleWithPermissions, tags=["roles"])
async def update_role(
    role_id: str,
    payload: RoleUpdate,
    manager: Roles,
    current_user: Annotated[User, Depends(require_permission("role_update"))],
):
    role = await manager.get_role(current_user, role_id)
    return await manager.update_role(
        current_user,
        role,
        name=payload.name,
        display_name=payload.display_name,
        description=payload.description,
        permission_names=payload.permissions,
    )


@router.delete("/roles/{role_id}", status_code=status.HTTP_204_NO_CONTENT, tags=["roles"])
async def delete_role(
    role_id: str,
    manager: Roles,
    current_user: Annotated[User, Depends(require_permission("role_delete"))],
):
    role = await manager.get_role(current_user, role_id)
    await manager.delete_role(current_user, role)


@router.post("/roles/{role_id}/permissions", response_model=RoleWithPermissions, tags=["roles"])
async def assign_permissions_to_role(
    role_id: str,
    payload: PermissionNames,
    manager: Roles,
    current_user: Annotated[User, Depends(require_permission("role_update"))],
):
    role = await manager.get_role(current_user, role_id)
    return await manager.assign_permissions_to_role(current_user, role, payload.permissions)


@router.delete("/roles/{role_id}/permissions", response_model=RoleWithPermissions, tags=["roles"])
async def remove_permissions_from_role(
    role_id: str,
    payload: PermissionNames,
    manager: Roles,
    current_user: Annotated[User, Depends(require_permission("role_update"))],
):
    role = await manager.get_role(current_user, role_id)
    return await manager.remove_permissions_from_role(current_user, role, payload.permissions)


# ============================================================================
# User Grant Routes
# ============================================================================

@router.get("/users/{user_id}/permissions", response_model=UserPermissionsResponse, tags=["users"])
async def get_user_permissions(
    user_id: str,
    db: DbSession,
    resolver: Annotated[PermissionResolver, Depends(get_resolver)],
    gate: Annotated[AuthorizationGate, Depends(get_gate)],
    current_user: Annotated[User, Depends(get_current_user)],
):
    """Get everything a user may do. Users can always see their own."""
    if user_id != current_user.id:
        await gate.require_permission(current_user, "user_view")

    user = await store.get_user(db, user_id)
    direct = await resolver.direct_permissions(user)
    via_roles = await resolver.role_permissions(user)

    return UserPermissionsResponse(
        user_id=user.id,
        is_super_admin=await resolver.is_super_admin(user),
        roles=sorted(await resolver.role_names(user)),
        direct_permissions=sorted(direct),
        role_permissions=sorted(via_roles),
        all_permissions=sorted(direct | via_roles),
    )


@router.put("/users/{user_id}/roles", response_model=UserWithGrants, tags=["users"])
async def assign_roles_to_user(
    user_id: str,
    payload: RoleNames,
    db: DbSession,
    manager: Grants,
    current_user: Annotated[User, Depends(require_permission("assign_role"))],
):
    """Replace the user's roles and merge their permissions into the user's direct grants."""
    user = await store.get_user(db, user_id)
    return await manager.assign_roles_to_user(current_user, user, payload.roles)


@router.post("/users/{user_id}/roles/{role_name}", response_model=UserWithGrants, tags=["users"])
async def add_role_to_user(
    user_id: str,
    role_name: str,
    db: DbSession,
    manager: Grants,
    current_user: Annotated[User, Depends(require_permission("assign_role"))],
):
    user = await store.get_user(db, user_id)
    return await manager.add_role(current_user, user, role_name)


@router.delete("/users/{user_id}/roles/{role_name}", response_model=UserWithGrants, tags=["users"])
async def remove_role_from_user(
    user_id: str,
    role_name: str,
    db: DbSession,
    manager: Grants,
    current_user: Annotated[User, Depends(require_permission("remove_role"))],
):
    user = await store.get_user(db, user_id)
    return await manager.remove_role(current_user, user, role_name)


@router.post("/users/{user_id}/permissions", response_model=UserWithGrants, tags=["users"])
async def give_permissions_to_user(
    user_id: str,
    payload: PermissionNames,
    db: DbSession,
    manager: Grants,
    current_user: Annotated[User, Depends(require_permission("give_permission"))],
):
    user = await store.get_user(db, user_id)
    return await manager.give_permissions_to_user(current_user, user, payload.permissions)


@router.delete("/users/{user_id}/permissions", response_model=UserWithGrants, tags=["users"])
async def revoke_permissions_from_user(
    user_id: str,
    payload: PermissionNames,
    db: DbSession,
    manager: Grants,
    current_user: Annotated[User, Depends(require_permission("revoke_permission"))],
):
    user = await store.get_user(db, user_id)
    return await manager.revoke_permissions_from_user(current_user, user, payload.permissions)


# ============================================================================
# Audit Log Routes
# ============================================================================

@router.get("/audit-logs", response_model=AuditLogListResponse, tags=["audit"])
async def get_audit_logs(
    db: DbSession,
    current_user: Annotated[User, Depends(require_permission("audit_log_view"))],
    skip: int = Query(default=0, ge=0),
    limit: int = Query(default=50, ge=1, le=500),
    actor_id: Optional[str] = None,
    action: Optional[str] = None,
    resource_type: Optional[str] = None,
):
    """List audit logs with optional filtering, newest first."""
    logs, total = await list_audit_logs(
        db, skip=skip, limit=limit, actor_id=actor_id, action=action, resource_type=resource_type
    )

    pages = (total + limit - 1) // limit
    page = (skip // limit) + 1

    return AuditLogListResponse(
        items=[AuditLogResponse.model_validate(entry) for entry in logs],
        total=total,
        page=page,
        page_size=limit,
        pages=pages,
    )
