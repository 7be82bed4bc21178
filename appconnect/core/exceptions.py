"""Custom exception classes for the connection manager."""

from enum import Enum
from typing import Optional

from fastapi import HTTPException, status


class ErrorKind(str, Enum):
    """Closed set of failure kinds surfaced to the UI layer."""
    validation = "validation"
    timeout = "timeout"
    unreachable = "unreachable"
    unauthorized = "unauthorized"
    forbidden = "forbidden"
    upstream = "upstream"
    duplicate = "duplicate"


class AppConnectError(Exception):
    """Base exception for the connection manager."""

    kind: Optional[ErrorKind] = None

    def __init__(self, message: str = "An error occurred"):
        self.message = message
        super().__init__(self.message)


class ValidationError(AppConnectError):
    """Raised when credentials are missing or malformed. Never reaches the network."""

    kind = ErrorKind.validation

    def __init__(self, message: str, field: Optional[str] = None):
        self.field = field
        super().__init__(message)


class DuplicateError(AppConnectError):
    """Raised when a singleton family is already configured."""

    kind = ErrorKind.duplicate


class ConnectionNotFoundError(AppConnectError):
    """Raised when a connection id is not in the registry."""
    pass


class RemoteSyncError(AppConnectError):
    """Raised when the remote record store cannot be read or written."""
    pass


class ConnectorError(AppConnectError):
    """Raised when a connector probe fails. Subclasses carry the failure kind."""

    kind = ErrorKind.upstream


class ProbeTimeout(ConnectorError):
    """Probe exceeded its deadline."""

    kind = ErrorKind.timeout


class UnreachableError(ConnectorError):
    """Transport-level failure (DNS, connection refused, fetch failure)."""

    kind = ErrorKind.unreachable


class UnauthorizedError(ConnectorError):
    """Upstream rejected the credentials (401)."""

    kind = ErrorKind.unauthorized


class ForbiddenError(ConnectorError):
    """Upstream refused access with the given credentials (403)."""

    kind = ErrorKind.forbidden


class UpstreamError(ConnectorError):
    """Upstream reachable but returned a non-2xx or malformed body."""

    kind = ErrorKind.upstream


# HTTP exception shortcuts
def not_found(detail: str = "Resource not found") -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=detail)


def forbidden(detail: str = "Insufficient permissions") -> HTTPException:
    return HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=detail)


def bad_request(detail: str = "Bad request") -> HTTPException:
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)


def unauthorized(detail: str = "Not authenticated") -> HTTPException:
    return HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=detail)


def payload_too_large(detail: str = "Request body too large") -> HTTPException:
    return HTTPException(status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE, detail=detail)
