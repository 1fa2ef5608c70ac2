"""Role checks for privileged batch operations.

Authentication lives outside this package; callers pass the role of the
authenticated user and the services only decide whether that role may
perform the operation.
"""

from typing import Optional

from ..utils.constants import ELEVATED_ROLES
from .exceptions import PermissionDeniedError


def is_elevated(role: Optional[str]) -> bool:
    """True when the role may perform irreversible administrative operations."""
    return role is not None and role.upper() in ELEVATED_ROLES


def require_elevated(role: Optional[str], operation: str) -> None:
    """
    Ensure the caller's role is elevated.

    Args:
        role: Role of the caller (e.g. "ADMIN", "OPERATOR")
        operation: Operation name used in the error message

    Raises:
        PermissionDeniedError: If the role is not elevated
    """
    if not is_elevated(role):
        raise PermissionDeniedError(operation, role)
