"""Exceptions raised by the curfew service."""

from typing import Optional


class CurfewServiceError(Exception):
    """Base class for curfew service exceptions."""

    pass


class SurePetError(CurfewServiceError):
    """Raised when a call to the Sure Petcare API fails."""

    pass


class AuthError(SurePetError):
    """Raised when credentials are rejected or a token cannot be obtained."""

    pass


class RemoteApiError(SurePetError):
    """Raised when the Sure Petcare API answers with a non-2xx status."""

    def __init__(self, status_code: Optional[int], body: str, method: str = "", path: str = ""):
        self.status_code = status_code
        self.body = body
        self.method = method
        self.path = path
        super().__init__(f"API {method} {path} failed: {status_code} {body}")


class NotFoundError(CurfewServiceError):
    """Raised when an unknown cat, device or schedule id is referenced."""

    pass


class ValidationError(CurfewServiceError, ValueError):
    """Raised when schedule fields or a lock mode are malformed."""

    pass
