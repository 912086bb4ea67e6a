"""
Explicit caller identity passed from views into services.

Views build one AuthContext per request and hand it to every service call.
Services never read request.user or any module-level "current user", which
keeps them callable from Celery tasks and trivially testable.

Usage:
    from authentication.context import AuthContext

    # In a view
    ctx = AuthContext.from_request(request)
    result = VisitAuthorizationService.create_authorization(ctx, job_id)

    # In a test
    ctx = AuthContext.for_user(client_user)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from core.exceptions import AuthenticationError, PermissionDeniedError

if TYPE_CHECKING:
    from typing import Any

ADMIN_REQUIRED_MESSAGE = "Forbidden: Admin access required"


@dataclass(frozen=True)
class AuthContext:
    """
    Immutable identity of the caller.

    Attributes:
        user_id: Primary key of the authenticated user (None if anonymous)
        email: Email of the authenticated user
        roles: Role names from stored UserRole rows
    """

    user_id: Any = None
    email: str = ""
    roles: frozenset[str] = field(default_factory=frozenset)

    @classmethod
    def anonymous(cls) -> AuthContext:
        return cls()

    @classmethod
    def for_user(cls, user) -> AuthContext:
        """Build a context from a User, loading its roles from UserRole."""
        if user is None or not user.is_authenticated:
            return cls.anonymous()

        from authentication.models import UserRole

        roles = frozenset(
            UserRole.objects.filter(user_id=user.pk).values_list("role", flat=True)
        )
        return cls(user_id=user.pk, email=user.email, roles=roles)

    @classmethod
    def from_request(cls, request) -> AuthContext:
        return cls.for_user(getattr(request, "user", None))

    @property
    def is_authenticated(self) -> bool:
        return self.user_id is not None

    @property
    def is_admin(self) -> bool:
        from authentication.models import UserRole

        return UserRole.Role.ADMIN.value in self.roles

    def require_authenticated(self) -> None:
        if not self.is_authenticated:
            raise AuthenticationError("No autenticado")

    def require_admin(self) -> None:
        """
        Raises:
            AuthenticationError: Anonymous caller (401)
            PermissionDeniedError: Caller without the admin role (403)
        """
        self.require_authenticated()
        if not self.is_admin:
            raise PermissionDeniedError(
                ADMIN_REQUIRED_MESSAGE,
                error_code="ADMIN_REQUIRED",
            )

    def is_user(self, user_id) -> bool:
        """True if the caller is the given user (ids compared as strings)."""
        return self.is_authenticated and user_id is not None and str(user_id) == str(
            self.user_id
        )
