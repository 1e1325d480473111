"""
Domain exceptions for the RBAC backend.

Services raise these; ``app.main`` maps each one to an HTTP response.
Unknown principals during resolution are *not* errors: the resolver
returns ``None`` instead.
"""
from fastapi import status


class RBACError(Exception):
    """Base class for all domain errors."""
    status_code: int = status.HTTP_400_BAD_REQUEST
    code: str = "rbac_error"

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail


class NotFoundError(RBACError):
    """A principal, role or permission id does not exist."""
    status_code = status.HTTP_404_NOT_FOUND
    code = "not_found"


class InvalidReferenceError(RBACError):
    """An assignment names an id that is missing or disabled."""
    status_code = status.HTTP_400_BAD_REQUEST
    code = "invalid_reference"


class CircularAssignmentError(RBACError):
    """A permission would become its own ancestor."""
    status_code = status.HTTP_409_CONFLICT
    code = "circular_assignment"


class ConflictError(RBACError):
    """Uniqueness or in-use constraint violated."""
    status_code = status.HTTP_409_CONFLICT
    code = "conflict"


class AuthenticationError(RBACError):
    """No principal, or the principal could not be verified."""
    status_code = status.HTTP_401_UNAUTHORIZED
    code = "authentication_required"


class AuthorizationError(RBACError):
    """The principal is known but lacks the required permission or role."""
    status_code = status.HTTP_403_FORBIDDEN
    code = "insufficient_permissions"
