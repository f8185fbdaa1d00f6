"""Error taxonomy shared by every gateway component."""

from __future__ import annotations

from typing import Any, Dict, Iterable, List, Optional

from pydantic import BaseModel, Field


class ErrorInfo(BaseModel):
    """Structured error payload handed to external collaborators."""

    kind: str
    message: str
    details: Dict[str, Any] = Field(default_factory=dict)


class GatewayError(Exception):
    """Base error for gateway failures."""

    kind = "gateway_error"

    def __init__(self, message: str, *, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = dict(details or {})

    def to_info(self) -> ErrorInfo:
        return ErrorInfo(kind=self.kind, message=self.message, details=self.details)


class ValidationError(GatewayError, ValueError):
    """Bad entity type, bad id, or malformed where/include/orderBy input."""

    kind = "validation_error"

    def __init__(self, message: str, *, valid_options: Optional[Iterable[str]] = None):
        options: List[str] = list(valid_options) if valid_options is not None else []
        super().__init__(
            message, details={"valid_options": options} if options else None
        )
        self.valid_options = options


class ConfigurationError(GatewayError, ValueError):
    kind = "configuration_error"


class TransientNetworkError(GatewayError):
    """Connection failures and 5xx responses; retried by the client."""

    kind = "transient_network_error"


class TargetProcessHTTPError(GatewayError):
    kind = "http_error"

    def __init__(
        self,
        *,
        status_code: int,
        method: str,
        url: str,
        message: str,
        response_json: Optional[Dict[str, Any]] = None,
        response_text: Optional[str] = None,
    ):
        super().__init__(
            f"{status_code} {method} {url}: {message}",
            details={"status_code": status_code, "method": method, "url": url},
        )
        self.status_code = status_code
        self.method = method
        self.url = url
        self.reason = message
        self.response_json = response_json
        self.response_text = response_text


class BadRequestError(TargetProcessHTTPError):
    kind = "bad_request"


class AuthenticationError(TargetProcessHTTPError):
    kind = "authentication_error"


class ServerError(TargetProcessHTTPError, TransientNetworkError):
    kind = "transient_network_error"


class RetryExhaustedError(GatewayError):
    """Raised once every attempt allowed by the retry policy has failed."""

    kind = "retry_exhausted"

    def __init__(self, *, operation: str, attempts: int, last_error: BaseException):
        super().__init__(
            f"Failed to {operation} after {attempts} attempts: {last_error}",
            details={"operation": operation, "attempts": attempts},
        )
        self.operation = operation
        self.attempts = attempts
        self.last_error = last_error

    @property
    def status_code(self) -> Optional[int]:
        return getattr(self.last_error, "status_code", None)


class ResponseParseError(GatewayError):
    kind = "parse_error"


class MetadataParseError(ResponseParseError):
    """The secondary metadata feed could not be parsed, even after repair."""

    kind = "metadata_parse_error"


def http_error_for_status(status_code: int) -> type[TargetProcessHTTPError]:
    if status_code == 400:
        return BadRequestError
    if status_code == 401:
        return AuthenticationError
    if status_code >= 500:
        return ServerError
    return TargetProcessHTTPError


__all__ = [
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
]
