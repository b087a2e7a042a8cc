"""
Pydantic schemas for user-related requests and responses.
"""
from datetime import datetime
from pydantic import BaseModel, EmailStr

from app.features.permissions.schemas import PermissionResponse, RoleResponse
from app.features.users.models import UserState, UserStatus


class UserResponse(BaseModel):
    """Schema for user responses."""
    id: str
    email: EmailStr
    name: str
    status: UserStatus
    state: UserState
    trashed_at: datetime | None = None
    last_login_at: datetime | None = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class UserWithGrants(UserResponse):
    """A user together with its roles and direct permissions."""
    roles: list[RoleResponse] = []
    permissions: list[PermissionResponse] = []


class UserStatusUpdate(BaseModel):
    """Schema for changing a user's status."""
    status: UserStatus
