"""Security collaborator used to check access to nodes and widgets."""

from typing import Any, Protocol, runtime_checkable

from pagetree.core.models import split_list

# Everybody can view the node
SECURITY_EVERYBODY = "everybody"

# Only anonymous users can view the node
SECURITY_ANONYMOUS = "anonymous"

# Only authenticated users can view the node
SECURITY_AUTHENTICATED = "authenticated"


class AuthenticationError(Exception):
    """Raised by a security manager when the current user can't be resolved."""


@runtime_checkable
class SecurityManager(Protocol):
    """Protocol for the security layer of the surrounding application."""

    def get_user(self) -> Any | None:
        """Get the current user. Returns None for anonymous users."""
        ...

    def is_permission_granted(self, permission: str) -> bool:
        """Check if the current user is granted the permission."""
        ...


def is_security_allowed(security: str | None, security_manager: SecurityManager) -> bool:
    """Check a security property value against the current user.

    The value is one of everybody, anonymous, authenticated or a comma
    separated list of permissions which must all be granted.
    """
    if not security or security == SECURITY_EVERYBODY:
        return True

    try:
        user = security_manager.get_user()
    except AuthenticationError:
        user = None

    if security == SECURITY_ANONYMOUS:
        return user is None

    if user is None:
        return False

    if security == SECURITY_AUTHENTICATED:
        return True

    return all(
        security_manager.is_permission_granted(permission)
        for permission in split_list(security)
    )
