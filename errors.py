# errors.py
from __future__ import annotations

from typing import Optional


class DashboardError(Exception):
    """Base class for errors that map onto an HTTP response."""

    status_code: int = 500
    default_message: str = "Internal server error"

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or self.default_message)
        self.message = message or self.default_message


class ValidationError(DashboardError):
    status_code = 400
    default_message = "Invalid configuration"


class AlreadyConfiguredError(ValidationError):
    default_message = "Application is already configured"


class NotConfiguredError(DashboardError):
    status_code = 400
    default_message = "Application is not configured"


class InvalidRequest(DashboardError):
    status_code = 400
    default_message = "Username and password are required"


class AuthDisabled(DashboardError):
    # 400 rather than 401: there is nothing to authenticate against
    status_code = 400
    default_message = "Authentication is not enabled"


class InvalidCredentials(DashboardError):
    status_code = 401
    default_message = "Invalid credentials"


class MissingToken(DashboardError):
    status_code = 401
    default_message = "Access token required"


class InvalidOrExpiredToken(DashboardError):
    status_code = 403
    default_message = "Invalid or expired token"


class ServerMisconfigured(DashboardError):
    status_code = 500
    default_message = "JWT secret not configured"


class NotFound(DashboardError):
    status_code = 404
    default_message = "Not found"


class FeatureDisabled(NotFound):
    default_message = "Mining core integration is not enabled"


class UpstreamUnavailable(DashboardError):
    status_code = 500
    default_message = "Upstream unavailable"


class MappingConfigError(Exception):
    """A mapping catalog or type table document is malformed."""
