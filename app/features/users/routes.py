"""
User feature routes.
"""
from typing import Annotated
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy import select

from app.features.permissions import store
from app.features.permissions.dependencies import DbSession, get_user_lifecycle, require_permission
from app.features.users.dependencies import get_current_user
from app.features.users.lifecycle import UserLifecycle
from app.features.users.models import User, UserState
from app.features.users.schemas import UserResponse, UserStatusUpdate, UserWithGrants


router = APIRouter(tags=["users"])

Lifecycle = Annotated[UserLifecycle, Depends(get_user_lifecycle)]


@router.get("/me", response_model=UserWithGrants)
async def get_current_user_profile(
    user: Annotated[User, Depends(get_current_user)]
):
    """Get current authenticated user's profile."""
    return user


@router.get("", response_model=list[UserResponse])
async def list_users(
    db: DbSession,
    current_user: Annotated[User, Depends(require_permission("user_view"))],
    trashed_only: bool = False,
    skip: int = Query(default=0, ge=0),
    limit: int = Query(default=50, ge=1, le=500)
):
    """List users ordered by name; trashed_only lists the trash instead."""
    state = UserState.TRASHED if trashed_only else UserState.ACTIVE
    result = await db.execute(
        select(User)
        .where(User.state == state)
        .order_by(User.name, User.id)
        .offset(skip)
        .limit(limit)
    )
    return result.scalars().all()


@router.get("/{user_id}", response_model=UserWithGrants)
async def get_user_by_id(
    user_id: str,
    db: DbSession,
    current_user: Annotated[User, Depends(require_permission("user_view"))],
):
    return await store.get_user(db, user_id)


@router.delete("/{user_id}", response_model=UserResponse)
async def trash_user(
    user_id: str,
    db: DbSession,
    lifecycle: Lifecycle,
    current_user: Annotated[User, Depends(require_permission("user_delete"))],
):
    """Move a user to the trash. Roles and permissions are kept."""
    user = await store.get_user(db, user_id)
    return await lifecycle.trash(current_user, user)


@router.post("/{user_id}/restore", response_model=UserResponse)
async def restore_user(
    user_id: str,
    db: DbSession,
    lifecycle: Lifecycle,
    current_user: Annotated[User, Depends(require_permission("user_restore"))],
):
    user = await store.get_user(db, user_id)
    return await lifecycle.restore(current_user, user)


@router.delete("/{user_id}/purge", status_code=status.HTTP_204_NO_CONTENT)
async def purge_user(
    user_id: str,
    db: DbSession,
    lifecycle: Lifecycle,
    current_user: Annotated[User, Depends(require_permission("user_force_delete"))],
):
    """Permanently delete a user."""
    user = await store.get_user(db, user_id)
    await lifecycle.purge(current_user, user)


@router.patch("/{user_id}/status", response_model=UserResponse)
async def change_user_status(
    user_id: str,
    payload: UserStatusUpdate,
    db: DbSession,
    lifecycle: Lifecycle,
    current_user: Annotated[User, Depends(require_permission("change_status"))],
):
    user = await store.get_user(db, user_id)
    return await lifecycle.change_status(current_user, user, payload.status)
