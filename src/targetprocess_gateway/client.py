import asyncio
import base64
import logging
import mimetypes
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Literal, Optional, Type, TypeVar

import httpx
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from .core.errors import (
    ConfigurationError,
    GatewayError,
    ResponseParseError,
    RetryExhaustedError,
    TargetProcessHTTPError,
    TransientNetworkError,
    http_error_for_status,
)
from .models import ApiErrorBody

T = TypeVar("T", bound=BaseModel)
R = TypeVar("R")

AuthMode = Literal["basic", "api-key"]
ApiKeyLocation = Literal["query", "header"]

API_KEY_PARAM = "access_token"


@dataclass(frozen=True)
class RetryConfig:
    max_retries: int = 3  # total attempts, including the first
    initial_delay: float = 1.0  # 1.0, 2.0, 4.0...
    backoff_factor: float = 2.0
    non_retryable_statuses: frozenset[int] = frozenset({400, 401})

    def __post_init__(self) -> None:
        if self.max_retries < 1:
            raise ConfigurationError("max_retries must be >= 1")
        if self.initial_delay < 0:
            raise ConfigurationError("initial_delay must be >= 0")
        if self.backoff_factor <= 1:
            raise ConfigurationError("backoff_factor must be > 1")


@dataclass(frozen=True)
class AuthConfig:
    mode: AuthMode
    token: str
    api_key_location: ApiKeyLocation = "query"

    def __post_init__(self) -> None:
        if self.mode not in ("basic", "api-key"):
            raise ConfigurationError(f"Unsupported auth mode: {self.mode!r}")
        if not self.token:
            raise ConfigurationError("Auth token must be provided.")
        if self.api_key_location not in ("query", "header"):
            raise ConfigurationError(
                f"Unsupported api key location: {self.api_key_location!r}"
            )

    @classmethod
    def basic(cls, username: str, password: str) -> "AuthConfig":
        raw = f"{username}:{password}".encode("utf-8")
        return cls(mode="basic", token=base64.b64encode(raw).decode("ascii"))

    @classmethod
    def api_key(
        cls, token: str, *, location: ApiKeyLocation = "query"
    ) -> "AuthConfig":
        return cls(mode="api-key", token=token, api_key_location=location)

    def __repr__(self) -> str:
        return (
            f"AuthConfig(mode={self.mode!r}, token='***', "
            f"api_key_location={self.api_key_location!r})"
        )


class TargetProcessClient:
    """
    Shared HTTP client for the TargetProcess REST API (v1).
    - Handles auth, base URL, timeouts, retries
    - Classifies failures into the gateway error taxonomy
    - Returns raw dict payloads, optional Pydantic-validated models, or bytes
    - No business logic; services own domain decisions
    """

    def __init__(
        self,
        *,
        auth: AuthConfig,
        domain: Optional[str] = None,
        base_url: Optional[str] = None,
        retry: Optional[RetryConfig] = None,
        timeout_seconds: float = 30.0,
        logger: Optional[logging.Logger] = None,
        http: Optional[httpx.AsyncClient] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        if base_url is None and domain:
            base_url = f"https://{domain.strip().strip('/')}/api/v1"
        base_url = (base_url or "").rstrip("/")
        if not base_url:
            raise ConfigurationError("domain or base_url must be provided.")

        self.base_url = base_url
        self.site_url = _site_root(base_url)
        self.auth = auth
        self.timeout_seconds = timeout_seconds
        self.retry = retry if retry is not None else RetryConfig()
        self.log = logger or logging.getLogger("targetprocess_gateway.client")
        self._sleep = sleep

        headers = {"Accept": "application/json"}
        params: Dict[str, str] = {}
        if auth.mode == "basic":
            headers["Authorization"] = f"Basic {auth.token}"
        elif auth.api_key_location == "header":
            headers["Authorization"] = f"Bearer {auth.token}"
        else:
            params[API_KEY_PARAM] = auth.token

        self._owns_http = http is None
        self.http = http or httpx.AsyncClient(
            base_url=self.base_url,
            headers=headers,
            params=params,
            timeout=timeout_seconds,
        )

    @classmethod
    def from_env(cls, **kwargs: Any) -> "TargetProcessClient":
        from .core.config import create_client_from_env

        return create_client_from_env(**kwargs)

    def with_auth(self, auth: AuthConfig) -> "TargetProcessClient":
        """Build a sibling client with different credentials."""
        return TargetProcessClient(
            auth=auth,
            base_url=self.base_url,
            retry=self.retry,
            timeout_seconds=self.timeout_seconds,
            logger=self.log,
            sleep=self._sleep,
        )

    def is_configured(self) -> bool:
        return bool(self.base_url and self.auth.token)

    @property
    def auth_mode(self) -> AuthMode:
        return self.auth.mode

    async def aclose(self) -> None:
        if self._owns_http:
            await self.http.aclose()

    async def __aenter__(self) -> "TargetProcessClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    # --- retry core ---

    def _is_retryable(self, exc: GatewayError) -> bool:
        if isinstance(exc, TargetProcessHTTPError):
            return exc.status_code not in self.retry.non_retryable_statuses
        return isinstance(exc, TransientNetworkError)

    async def execute_with_retry(
        self, operation: Callable[[], Awaitable[R]], context: str
    ) -> R:
        """
        Run `operation` under the retry policy.
        - 400/401 (and any other configured status) are re-raised immediately
        - other HTTP errors and transport failures are retried with backoff
        - exhaustion raises RetryExhaustedError naming `context`
        """
        delay = self.retry.initial_delay
        last_error: Optional[GatewayError] = None

        for attempt in range(1, self.retry.max_retries + 1):
            try:
                return await operation()
            except GatewayError as exc:
                if not self._is_retryable(exc):
                    raise
                last_error = exc

            if attempt == self.retry.max_retries:
                break

            self.log.warning(
                "tp.retry",
                extra={
                    "operation": context,
                    "attempt": attempt,
                    "delay_seconds": delay,
                    "error": str(last_error),
                },
            )
            await self._sleep(delay)
            delay *= self.retry.backoff_factor

        assert last_error is not None
        raise RetryExhaustedError(
            operation=context, attempts=self.retry.max_retries, last_error=last_error
        ) from last_error

    async def _send(
        self,
        method: str,
        url: str,
        *,
        params: Optional[Any] = None,
        json: Optional[Any] = None,
        headers: Optional[Dict[str, str]] = None,
        operation: str,
    ) -> httpx.Response:
        start = time.perf_counter()
        try:
            resp = await self.http.request(
                method, url, params=params, json=json, headers=headers
            )
        except httpx.TransportError as exc:
            raise TransientNetworkError(
                f"Network/timeout error calling {method} {url}: {exc}"
            ) from exc
        except httpx.HTTPError as exc:
            # Other httpx exceptions (rare) - do not blindly retry
            raise GatewayError(f"HTTPX error calling {method} {url}: {exc}") from exc

        duration_ms = int((time.perf_counter() - start) * 1000)
        # structured-ish log without secrets
        self.log.debug(
            "tp.request",
            extra={
                "operation": operation,
                "method": method,
                "url": _redact(resp.request.url),
                "status": resp.status_code,
                "duration_ms": duration_ms,
            },
        )

        if resp.status_code < 200 or resp.status_code >= 300:
            raise self._to_http_error(resp, method=method)
        return resp

    async def _execute(
        self,
        method: str,
        url: str,
        parse: Callable[[httpx.Response], R],
        *,
        params: Optional[Any] = None,
        json: Optional[Any] = None,
        headers: Optional[Dict[str, str]] = None,
        operation: Optional[str] = None,
    ) -> R:
        method = method.upper()
        context = operation or f"{method} {url}"

        async def attempt() -> R:
            resp = await self._send(
                method,
                url,
                params=params,
                json=json,
                headers=headers,
                operation=context,
            )
            return parse(resp)

        return await self.execute_with_retry(attempt, context)

    # --- public request surface ---

    async def request(
        self,
        method: str,
        url: str,
        *,
        params: Optional[Any] = None,
        json: Optional[Any] = None,
        operation: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Core request method.
        - url can be relative to base_url ("UserStories/42") or absolute
        - Raises BadRequestError/AuthenticationError immediately on 400/401
        - Raises RetryExhaustedError once the retry policy gives up
        - Raises ResponseParseError if the response isn't a JSON object
        - Returns parsed JSON dict on success ({} for empty bodies)
        """
        return await self._execute(
            method, url, self._safe_json, params=params, json=json, operation=operation
        )

    async def request_text(
        self,
        method: str,
        url: str,
        *,
        params: Optional[Any] = None,
        operation: Optional[str] = None,
    ) -> str:
        """Like request() but returns the undecoded body text."""
        return await self._execute(
            method, url, lambda resp: resp.text, params=params, operation=operation
        )

    async def download(self, url: str, *, operation: Optional[str] = None) -> bytes:
        """Fetch raw bytes (attachment content) with the same auth and retry policy."""
        return await self._execute(
            "GET",
            url,
            lambda resp: resp.content,
            headers={"Accept": "*/*"},
            operation=operation or f"download binary from {url}",
        )

    async def get(
        self,
        url: str,
        *,
        params: Optional[Any] = None,
        operation: Optional[str] = None,
    ) -> Dict[str, Any]:
        return await self.request("GET", url, params=params, operation=operation)

    async def post(
        self,
        url: str,
        *,
        json: Optional[Any] = None,
        params: Optional[Any] = None,
        operation: Optional[str] = None,
    ) -> Dict[str, Any]:
        return await self.request(
            "POST", url, json=json, params=params, operation=operation
        )

    async def delete(
        self,
        url: str,
        *,
        params: Optional[Any] = None,
        operation: Optional[str] = None,
    ) -> Dict[str, Any]:
        return await self.request("DELETE", url, params=params, operation=operation)

    async def post_file(
        self,
        url: str,
        *,
        content: bytes,
        filename: str,
        field_name: str = "file",
        content_type: Optional[str] = None,
        data: Optional[Dict[str, Any]] = None,
        operation: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Upload bytes using multipart/form-data.
        - Returns parsed JSON if present; {} on empty body.
        - Retries are NOT applied to avoid duplicate uploads.
        """
        ctype = (
            content_type
            or mimetypes.guess_type(filename)[0]
            or "application/octet-stream"
        )
        context = operation or f"upload {filename}"
        start = time.perf_counter()
        try:
            resp = await self.http.post(
                url,
                data=data,
                files={field_name: (filename, content, ctype)},
            )
        except httpx.TransportError as exc:
            raise TransientNetworkError(
                f"Network/timeout error calling POST {url}: {exc}"
            ) from exc
        except httpx.HTTPError as exc:
            raise GatewayError(f"HTTPX error calling POST {url}: {exc}") from exc

        duration_ms = int((time.perf_counter() - start) * 1000)
        self.log.debug(
            "tp.upload",
            extra={
                "operation": context,
                "method": "POST",
                "url": _redact(resp.request.url),
                "status": resp.status_code,
                "duration_ms": duration_ms,
            },
        )

        if resp.status_code < 200 or resp.status_code >= 300:
            raise self._to_http_error(resp, method="POST")

        return self._safe_json(resp)

    async def request_model(
        self, model: Type[T], method: str, url: str, **kwargs: Any
    ) -> T:
        payload = await self.request(method, url, **kwargs)
        try:
            return model.model_validate(payload)
        except PydanticValidationError as exc:
            raise ResponseParseError(
                f"Response did not match model {model.__name__}: {exc}"
            ) from exc

    async def test_connection(self) -> bool:
        try:
            await self.get(
                "EntityTypes",
                params={"format": "json", "take": 1},
                operation="test connection",
            )
        except GatewayError:
            return False
        return True

    # --- response handling ---

    def _safe_json(self, resp: httpx.Response) -> Dict[str, Any]:
        # Handle empty responses (204 No Content, etc.)
        if not resp.content:
            return {}

        try:
            data = resp.json()
        except ValueError as exc:
            snippet = (resp.text or "")[:500]
            raise ResponseParseError(
                f"Expected JSON from {resp.request.method} "
                f"{_redact(resp.request.url)}, got non-JSON body snippet: "
                f"{snippet!r}"
            ) from exc

        if not isinstance(data, dict):
            raise ResponseParseError(
                f"Expected top-level JSON object from "
                f"{resp.request.method} {_redact(resp.request.url)}, "
                f"got {type(data).__name__}"
            )
        return data

    def _to_http_error(
        self, resp: httpx.Response, *, method: str
    ) -> TargetProcessHTTPError:
        url = _redact(resp.request.url)
        response_json: Optional[Dict[str, Any]] = None
        response_text: Optional[str] = None
        message = resp.reason_phrase or "request failed"

        try:
            parsed = resp.json()
        except ValueError:
            response_text = (resp.text or "")[:500]
        else:
            if isinstance(parsed, dict):
                response_json = parsed
                body = ApiErrorBody.model_validate(parsed)
                message = body.best_message() or message

        error_cls = http_error_for_status(resp.status_code)
        return error_cls(
            status_code=resp.status_code,
            method=method,
            url=url,
            message=message,
            response_json=response_json,
            response_text=response_text,
        )


def _site_root(base_url: str) -> str:
    url = httpx.URL(base_url)
    return f"{url.scheme}://{url.netloc.decode('ascii')}"


def _redact(url: httpx.URL) -> str:
    if API_KEY_PARAM in url.params:
        url = url.copy_set_param(API_KEY_PARAM, "***")
    return str(url)


__all__ = [
    "TargetProcessClient",
    "RetryConfig",
    "AuthConfig",
    "API_KEY_PARAM",
]
