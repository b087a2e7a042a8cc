"""
User lifecycle: trash, restore, purge and status changes.
"""
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from app.features.permissions import store
from app.features.permissions.audit import record_audit
from app.features.users.models import User, UserState, UserStatus
from app.utils import get_logger


log = get_logger(__name__)


class UserLifecycle:
    """
    Soft and hard deletion of users.

    Trashing keeps every role and permission row so that a restore brings the
    user back exactly as it was. Purging removes the user together with those
    rows and cannot be undone.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def trash(self, actor: Optional[User], user: User) -> User:
        if user.is_trashed:
            return user

        async with store.atomic(self.db):
            user.state = UserState.TRASHED
            user.trashed_at = datetime.now(timezone.utc)
            record_audit(self.db, actor, "trash", "user", user.id)

        log.info(f"Trashed user {user.id}")
        await self.db.refresh(user)
        return user

    async def restore(self, actor: Optional[User], user: User) -> User:
        if not user.is_trashed:
            return user

        async with store.atomic(self.db):
            user.state = UserState.ACTIVE
            user.trashed_at = None
            record_audit(self.db, actor, "restore", "user", user.id)

        log.info(f"Restored user {user.id}")
        await self.db.refresh(user)
        return user

    async def purge(self, actor: Optional[User], user: User) -> None:
        """Delete the user and its role and permission rows for good."""
        user_id, email = user.id, user.email

        async with store.atomic(self.db):
            user.roles.clear()
            user.permissions.clear()
            await self.db.delete(user)
            record_audit(self.db, actor, "purge", "user", user_id, {"email": email})

        log.info(f"Purged user {user_id}")

    async def change_status(self, actor: Optional[User], user: User, status: UserStatus) -> User:
        previous = user.status

        async with store.atomic(self.db):
            user.status = status
            record_audit(
                self.db, actor, "change_status", "user", user.id,
                {"from": previous.value, "to": status.value},
            )

        log.info(f"User {user.id} status {previous.value} -> {status.value}")
        await self.db.refresh(user)
        return user
