"""
Pydantic schemas for permission management.

Request and response models for permissions, roles, user grants, and audit logs.
"""
from datetime import datetime
from typing import Dict, Any, List, Optional
from pydantic import BaseModel, Field, ConfigDict, field_validator


def _check_name(v: str, extra: str, what: str) -> str:
    if not v.replace('_', '').replace(extra, '').isalnum():
        raise ValueError(f'{what} name must contain only alphanumeric characters, underscores, and {extra!r}')
    return v


# ============================================================================
# Permission Schemas
# ============================================================================

class PermissionBase(BaseModel):
    """Base permission schema."""
    name: str = Field(..., min_length=1, max_length=255, description="Unique permission name")
    display_name: Optional[str] = Field(None, max_length=255, description="Human-readable label")
    description: Optional[str] = Field(None, max_length=1000, description="Permission description")


class PermissionCreate(PermissionBase):
    """Schema for creating a new permission."""
    roles: Optional[List[str]] = Field(None, description="Names of the roles to attach it to")

    @field_validator('name')
    @classmethod
    def name_format(cls, v: str) -> str:
        """Validate permission name format."""
        return _check_name(v, '.', 'Permission')


class PermissionUpdate(BaseModel):
    """Schema for updating a permission. Omitted fields are kept."""
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    display_name: Optional[str] = Field(None, max_length=255)
    description: Optional[str] = Field(None, max_length=1000)
    roles: Optional[List[str]] = Field(None, description="Replaces the attached roles when given")

    @field_validator('name')
    @classmethod
    def name_format(cls, v: Optional[str]) -> Optional[str]:
        return v if v is None else _check_name(v, '.', 'Permission')


class PermissionResponse(PermissionBase):
    """Schema for permission response."""
    id: str
    is_system: bool
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


# ============================================================================
# Role Schemas
# ============================================================================

class RoleBase(BaseModel):
    """Base role schema."""
    name: str = Field(..., min_length=1, max_length=255, description="Unique role name")
    display_name: Optional[str] = Field(None, max_length=255)
    description: Optional[str] = Field(None, max_length=1000, description="Role description")


class RoleCreate(RoleBase):
    """Schema for creating a new role."""
    permissions: Optional[List[str]] = Field(None, description="Names of the permissions to attach")

    @field_validator('name')
    @classmethod
    def name_format(cls, v: str) -> str:
        """Validate role name format."""
        return _check_name(v, '-', 'Role')


class RoleUpdate(BaseModel):
    """Schema for updating a role. Omitted fields are kept."""
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    display_name: Optional[str] = Field(None, max_length=255)
    description: Optional[str] = Field(None, max_length=1000)
    permissions: Optional[List[str]] = Field(None, description="Replaces the role's permissions when given")

    @field_validator('name')
    @classmethod
    def name_format(cls, v: Optional[str]) -> Optional[str]:
        return v if v is None else _check_name(v, '-', 'Role')


class RoleResponse(RoleBase):
    """Schema for role response."""
    id: str
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class RoleWithPermissions(RoleResponse):
    """Schema for role with permissions."""
    permissions: List[PermissionResponse] = []

    model_config = ConfigDict(from_attributes=True)


class PermissionWithRoles(PermissionResponse):
    """Schema for permission with the roles carrying it."""
    roles: List[RoleResponse] = []

    model_config = ConfigDict(from_attributes=True)


# ============================================================================
# Assignment Schemas
# ============================================================================

class PermissionNames(BaseModel):
    """A non-empty list of permission names."""
    permissions: List[str] = Field(..., min_length=1)


class RoleNames(BaseModel):
    """A list of role names; an empty list clears the user's roles."""
    roles: List[str] = Field(...)


# ============================================================================
# User Permissions Response
# ============================================================================

class UserPermissionsResponse(BaseModel):
    """Everything a user is allowed to do, broken down by source."""
    user_id: str
    is_super_admin: bool
    roles: List[str] = []
    direct_permissions: List[str] = []
    role_permissions: List[str] = []
    all_permissions: List[str] = []  # Deduplicated union of direct and role permissions


# ============================================================================
# Audit Log Schemas
# ============================================================================

class AuditLogResponse(BaseModel):
    """Schema for audit log response."""
    id: str
    actor_id: Optional[str]
    action: str
    resource_type: str
    resource_id: Optional[str]
    details: Optional[Dict[str, Any]]
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class AuditLogListResponse(BaseModel):
    """Schema for paginated audit log list."""
    items: List[AuditLogResponse]
    total: int
    page: int
    page_size: int
    pages: int
