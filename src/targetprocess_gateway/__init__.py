"""Async gateway to the TargetProcess REST API."""

from .client import AuthConfig, RetryConfig, TargetProcessClient
from .core.config import GatewaySettings, create_client_from_env, load_env_config
from .core.errors import (
    AuthenticationError,
    BadRequestError,
    ConfigurationError,
    GatewayError,
    MetadataParseError,
    ResponseParseError,
    RetryExhaustedError,
    ServerError,
    TargetProcessHTTPError,
    TransientNetworkError,
    ValidationError,
)
from .entity_registry import EntityCategory, EntityRegistry, EntityTypeDescriptor
from .gateway import TargetProcessGateway

__version__ = "0.1.0"

__all__ = [
    "TargetProcessGateway",
    "TargetProcessClient",
    "AuthConfig",
    "RetryConfig",
    "GatewaySettings",
    "create_client_from_env",
    "load_env_config",
    "EntityCategory",
    "EntityRegistry",
    "EntityTypeDescriptor",
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
]
