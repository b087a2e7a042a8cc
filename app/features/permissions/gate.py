"""
Request-facing authorization checks.

Turns resolver answers into either ``True`` or a typed failure the HTTP layer
maps onto 401/403.
"""
from typing import Iterable, List, Optional

from app.core.acl import AclSettings
from app.features.permissions.exceptions import Forbidden, Unauthenticated
from app.features.permissions.resolver import PermissionResolver
from app.features.users.models import User
from app.utils import get_logger


log = get_logger(__name__)


class AuthorizationGate:
    """Check-and-raise façade over PermissionResolver."""

    def __init__(self, resolver: PermissionResolver, settings: AclSettings):
        self.resolver = resolver
        self.settings = settings

    def _authenticated(self, actor: Optional[User]) -> User:
        if actor is None:
            raise Unauthenticated()
        return actor

    def _labels(self, names: List[str]) -> str:
        return ", ".join(self.settings.permission_label(name) for name in names)

    def _deny(self, actor: User, message: str, label: Optional[str]) -> Forbidden:
        log.warning(f"Denied user {actor.id}: {message}")
        return Forbidden(message, label=label)

    async def require_permission(self, actor: Optional[User], name: str) -> bool:
        """
        Require a single permission.

        Raises:
            Unauthenticated: if there is no actor
            Forbidden: if the actor lacks the permission; the message carries
                the permission's display name
        """
        actor = self._authenticated(actor)
        if not await self.resolver.has_permission(actor, name):
            label = self.settings.permission_label(name)
            raise self._deny(actor, f"You do not have permission to {label}.", label)
        return True

    async def require_any_permission(self, actor: Optional[User], names: Iterable[str]) -> bool:
        actor = self._authenticated(actor)
        names = list(names)
        if not await self.resolver.has_any_permission(actor, names):
            if not names:
                raise self._deny(actor, "You do not have any of the required permissions.", None)
            label = self._labels(names)
            raise self._deny(actor, f"You do not have any of the required permissions: {label}.", label)
        return True

    async def require_all_permissions(self, actor: Optional[User], names: Iterable[str]) -> bool:
        actor = self._authenticated(actor)
        names = list(names)
        if not await self.resolver.has_all_permissions(actor, names):
            label = self._labels(names)
            raise self._deny(actor, f"You do not have all the required permissions: {label}.", label)
        return True

    async def require_role(self, actor: Optional[User], name: str) -> bool:
        actor = self._authenticated(actor)
        if not await self.resolver.has_role(actor, name):
            raise self._deny(actor, f"You do not have the required role: {name}.", name)
        return True

    async def require_any_role(self, actor: Optional[User], names: Iterable[str]) -> bool:
        actor = self._authenticated(actor)
        names = list(names)
        if not await self.resolver.has_any_role(actor, names):
            if not names:
                raise self._deny(actor, "You do not have any of the required roles.", None)
            label = ", ".join(names)
            raise self._deny(actor, f"You do not have any of the required roles: {label}.", label)
        return True
