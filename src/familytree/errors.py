"""Domain exceptions raised by services and mapped to HTTP responses by the API."""


class FamilyTreeError(Exception):
    """Base class for expected, user-facing failures."""

    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(FamilyTreeError):
    """Request is well-formed but violates a business rule."""

    status_code = 400


class AuthenticationError(FamilyTreeError):
    """Caller could not be identified."""

    status_code = 401


class PermissionDeniedError(FamilyTreeError):
    """Caller is identified but not allowed to perform the operation."""

    status_code = 403


class NotFoundError(FamilyTreeError):
    """Requested entity does not exist (or is soft-deleted)."""

    status_code = 404


class ConflictError(FamilyTreeError):
    """Operation would duplicate an existing record or state transition is invalid."""

    status_code = 409
