"""
Error taxonomy of the permission core.

Every error is a final, caller-visible decision. The HTTP layer maps them to
status codes through ``status_code``; nothing here is retried.
"""
from typing import Iterable, Optional

from fastapi import status


class AuthorizationError(Exception):
    """Base class for authorization and integrity outcomes."""
    status_code: int = status.HTTP_400_BAD_REQUEST
    default_message: str = "Authorization error."

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class Unauthenticated(AuthorizationError):
    """No actor is present."""
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Unauthenticated."


class Forbidden(AuthorizationError):
    """
    A valid actor lacks the required privilege, or a protected entity was
    about to be mutated.

    ``label`` is the human-readable name of the privilege or entity involved.
    """
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "This action is forbidden."

    def __init__(self, message: Optional[str] = None, label: Optional[str] = None):
        super().__init__(message)
        self.label = label


class ReservedName(Forbidden):
    """A create or rename collides with a reserved identifier."""
    default_message = "This name is reserved for system use."


class Conflict(AuthorizationError):
    """A delete or create is blocked by existing state."""
    status_code = status.HTTP_409_CONFLICT
    default_message = "The request conflicts with existing data."


class NotFound(AuthorizationError):
    """A referenced role, permission or user does not exist."""
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Resource not found."

    def __init__(self, message: Optional[str] = None, missing: Iterable[str] = ()):
        super().__init__(message)
        self.missing = sorted(missing)
