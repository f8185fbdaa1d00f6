"""Shared error taxonomy and logging helpers (no HTTP or service imports)."""

from .errors import (
    AuthenticationError,
    BadRequestError,
    ConfigurationError,
    ErrorInfo,
    GatewayError,
    MetadataParseError,
    ResponseParseError,
    RetryExhaustedError,
    ServerError,
    TargetProcessHTTPError,
    TransientNetworkError,
    ValidationError,
    http_error_for_status,
)
from .logging import LogfmtFormatter, setup_logging
from .observability import log_event

__all__ = [
    # Errors
    "ErrorInfo",
    "GatewayError",
    "ValidationError",
    "ConfigurationError",
    "TransientNetworkError",
    "TargetProcessHTTPError",
    "BadRequestError",
    "AuthenticationError",
    "ServerError",
    "RetryExhaustedError",
    "ResponseParseError",
    "MetadataParseError",
    "http_error_for_status",
    # Logging
    "LogfmtFormatter",
    "setup_logging",
    "log_event",
]
