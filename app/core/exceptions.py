"""
Centralised custom exceptions.

Every domain failure the services raise is one of the HTTPException
subclasses below; each carries a machine-checkable `kind` that the handler in
main.py renders next to the human-readable detail.

StoreError is different: it is raised by the record-store adapters, is not an
HTTP concept, and only turns into a response through the global 500 handler
unless a service translates it first.
"""
from fastapi import HTTPException, status


class AppException(HTTPException):
    kind: str = "error"


class ValidationException(AppException):
    kind = "validation_error"

    def __init__(self, detail: str = "Invalid request"):
        super().__init__(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)


class CredentialsException(AppException):
    kind = "authentication_error"

    def __init__(self, detail: str = "Could not validate credentials"):
        super().__init__(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=detail,
            headers={"WWW-Authenticate": "Bearer"},
        )


class InvalidOTPException(CredentialsException):
    def __init__(self):
        super().__init__("Invalid or expired OTP")


class ForbiddenException(AppException):
    kind = "authorization_error"

    def __init__(self, detail: str = "You do not have permission to perform this action"):
        super().__init__(status_code=status.HTTP_403_FORBIDDEN, detail=detail)


class NotFoundException(AppException):
    kind = "not_found"

    def __init__(self, resource: str = "Resource"):
        super().__init__(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"{resource} not found",
        )


class ProvisioningException(AppException):
    kind = "provisioning_error"

    def __init__(self, detail: str = "Account provisioning failed"):
        super().__init__(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=detail)


# ── Store errors ──────────────────────────────────────────────────────────────

class StoreError(Exception):
    """A record-store round trip failed."""


class DuplicateRecordError(StoreError):
    """An insert or update collided with a unique constraint."""
