from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Any, Optional

from dotenv import load_dotenv

from ..client import AuthConfig, RetryConfig, TargetProcessClient
from .errors import ConfigurationError

DEFAULT_CACHE_TTL_SECONDS = 3600.0


@dataclass(frozen=True)
class GatewaySettings:
    domain: str
    auth: AuthConfig
    retry: RetryConfig
    timeout_seconds: float = 30.0
    entity_cache_ttl: float = DEFAULT_CACHE_TTL_SECONDS
    log_level: str = "INFO"


def _env(name: str) -> str:
    return os.getenv(name, "").strip()


def _env_number(name: str, default: float, cast: Any = float) -> Any:
    raw = _env(name)
    if not raw:
        return default
    try:
        return cast(raw)
    except ValueError as exc:
        raise ConfigurationError(f"{name} must be a number, got {raw!r}") from exc


def _auth_from_env() -> AuthConfig:
    api_key = _env("TP_API_KEY")
    if api_key:
        location = _env("TP_API_KEY_LOCATION") or "query"
        return AuthConfig.api_key(api_key, location=location)  # type: ignore[arg-type]

    username = _env("TP_USERNAME")
    password = _env("TP_PASSWORD")
    if not username or not password:
        raise ConfigurationError(
            "Missing TP_API_KEY or TP_USERNAME/TP_PASSWORD in environment."
        )
    return AuthConfig.basic(username, password)


def load_env_config(*, use_dotenv: bool = True) -> GatewaySettings:
    """Load TargetProcess settings from environment (optional .env)."""
    if use_dotenv:
        load_dotenv()

    domain = _env("TP_DOMAIN")
    if not domain:
        raise ConfigurationError("Missing TP_DOMAIN in environment.")

    retry = RetryConfig(
        max_retries=_env_number("TP_MAX_RETRIES", 3, int),
        initial_delay=_env_number("TP_RETRY_DELAY", 1.0),
        backoff_factor=_env_number("TP_BACKOFF_FACTOR", 2.0),
    )
    return GatewaySettings(
        domain=domain,
        auth=_auth_from_env(),
        retry=retry,
        timeout_seconds=_env_number("TP_TIMEOUT_SECONDS", 30.0),
        entity_cache_ttl=_env_number("TP_ENTITY_CACHE_TTL", DEFAULT_CACHE_TTL_SECONDS),
        log_level=_env("TP_LOG_LEVEL") or "INFO",
    )


def create_client_from_env(
    settings: Optional[GatewaySettings] = None, **kwargs: Any
) -> TargetProcessClient:
    """Create a TargetProcessClient from environment variables."""
    settings = settings or load_env_config()
    return TargetProcessClient(
        auth=settings.auth,
        domain=settings.domain,
        retry=settings.retry,
        timeout_seconds=settings.timeout_seconds,
        **kwargs,
    )


__all__ = ["GatewaySettings", "load_env_config", "create_client_from_env"]
