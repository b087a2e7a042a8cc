"""
User model with ULID primary keys.
"""
import enum
from datetime import datetime
from sqlalchemy import String, DateTime, Enum
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.core.database.base import Base, TimestampMixin, generate_ulid
from app.features.permissions.models import Permission, Role, user_permission, user_role


class UserStatus(str, enum.Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    SUSPENDED = "suspended"
    PENDING = "pending"


class UserState(str, enum.Enum):
    """Lifecycle state. Trashed users keep their grants until purged."""
    ACTIVE = "active"
    TRASHED = "trashed"


class User(Base, TimestampMixin):
    """
    User model representing the actors the permission core reasons about.

    Uses ULID instead of auto-incrementing integers for better distributed systems support.
    """
    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)

    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)

    status: Mapped[UserStatus] = mapped_column(
        Enum(UserStatus, native_enum=False, length=20),
        default=UserStatus.ACTIVE,
        nullable=False,
    )
    state: Mapped[UserState] = mapped_column(
        Enum(UserState, native_enum=False, length=20),
        default=UserState.ACTIVE,
        nullable=False,
        index=True,
    )
    trashed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    # Track last login
    last_login_at: Mapped[datetime | None] = mapped_column(nullable=True)

    # Relationships
    roles: Mapped[list[Role]] = relationship(
        Role,
        secondary=user_role,
        lazy="selectin",
        order_by=Role.name,
    )

    # Direct grants only; role-derived permissions are resolved separately
    permissions: Mapped[list[Permission]] = relationship(
        Permission,
        secondary=user_permission,
        lazy="selectin",
        order_by=Permission.name,
    )

    @property
    def is_active(self) -> bool:
        return self.status == UserStatus.ACTIVE

    @property
    def is_trashed(self) -> bool:
        return self.state == UserState.TRASHED

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email={self.email!r})>"
