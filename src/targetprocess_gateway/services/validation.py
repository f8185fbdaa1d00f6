from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, FrozenSet, Iterable, List, Optional

from targetprocess_gateway.core.errors import ValidationError
from targetprocess_gateway.core.observability import log_event
from targetprocess_gateway.entity_registry import (
    EntityCategory,
    EntityRegistry,
    EntityTypeDescriptor,
)

FetchTypes = Callable[[], Awaitable[Iterable[str]]]

DEFAULT_TTL_SECONDS = 3600.0  # 1 hour

# Irregular endpoint names; every other type is pluralised with "s".
ENDPOINT_OVERRIDES = {"TimeSheet": "time"}

log = logging.getLogger("targetprocess_gateway.validation")


@dataclass(frozen=True)
class TypeCache:
    valid_names: FrozenSet[str]
    captured_at: float
    ttl: float

    def is_expired(self, now: float) -> bool:
        return (now - self.captured_at) > self.ttl


def endpoint_for_type(entity_type: str) -> str:
    return ENDPOINT_OVERRIDES.get(entity_type, f"{entity_type}s")


def validate_id(value: Any, *, label: str = "Entity ID") -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ValidationError(f"{label} must be a positive integer")
    return value


class EntityTypeValidator:
    """
    Validates entity type names against a TTL-bound cache of valid names.

    The cache is filled from `fetch_types` (normally the metadata service) and
    falls back to the registry when the callback fails. Concurrent callers that
    find the cache missing or expired share a single in-flight refresh.
    """

    def __init__(
        self,
        fetch_types: Optional[FetchTypes] = None,
        *,
        registry: Optional[EntityRegistry] = None,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._fetch_types = fetch_types
        self.registry = registry if registry is not None else EntityRegistry()
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._cache: Optional[TypeCache] = None
        self._inflight: Optional[asyncio.Task[TypeCache]] = None

    @property
    def cache(self) -> Optional[TypeCache]:
        return self._cache

    async def _load_names(self) -> List[str]:
        if self._fetch_types is None:
            return self.registry.all_names()

        log.info("Fetching valid entity types from external source")
        try:
            names = [n for n in await self._fetch_types() if n]
        except Exception as exc:
            log_event(
                "entity_types.refresh_failed",
                log,
                level=logging.WARNING,
                source="static",
                error=str(exc),
            )
            return self.registry.all_names()

        if not names:
            log_event(
                "entity_types.refresh_empty",
                log,
                level=logging.WARNING,
                source="static",
            )
            return self.registry.all_names()
        return names

    async def _refresh(self) -> TypeCache:
        task = asyncio.current_task()
        try:
            names = await self._load_names()
            for name in names:
                if not self.registry.is_known(name):
                    self.registry.register_custom(name)
            cache = TypeCache(
                valid_names=frozenset(names),
                captured_at=self._clock(),
                ttl=self.ttl_seconds,
            )
            # after clear() this task is detached; only its own awaiters see the result
            if self._inflight is task:
                self._cache = cache
            log_event("entity_types.refreshed", log, count=len(names))
            return cache
        finally:
            if self._inflight is task:
                self._inflight = None

    async def _ensure_cache(self) -> TypeCache:
        cache = self._cache
        if cache is not None and not cache.is_expired(self._clock()):
            return cache

        if self._inflight is None:
            self._inflight = asyncio.ensure_future(self._refresh())
        # shield: one caller giving up must not cancel the refresh for the others
        return await asyncio.shield(self._inflight)

    async def get_valid_types(self) -> List[str]:
        cache = await self._ensure_cache()
        return sorted(cache.valid_names)

    async def validate_type(self, entity_type: str) -> str:
        """Return `entity_type` unchanged, or raise ValidationError listing valid names."""
        cache = await self._ensure_cache()
        if entity_type not in cache.valid_names:
            valid = sorted(cache.valid_names)
            raise ValidationError(
                f"Invalid entity type: '{entity_type}'. "
                f"Valid entity types are: {', '.join(valid)}",
                valid_options=valid,
            )
        return entity_type

    def validate_id(self, value: Any) -> int:
        return validate_id(value)

    def endpoint_for_type(self, entity_type: str) -> str:
        return endpoint_for_type(entity_type)

    async def initialize(self) -> None:
        """Pre-warm the cache so the first request does not pay for the refresh."""
        if self._cache is None:
            await self._ensure_cache()

    def clear(self) -> None:
        self._cache = None
        self._inflight = None

    reset = clear

    def is_assignable(self, entity_type: str) -> bool:
        info = self.registry.get(entity_type)
        return bool(info and info.category == EntityCategory.ASSIGNABLE)

    def supports_custom_fields(self, entity_type: str) -> bool:
        return self.registry.supports_custom_fields(entity_type)

    def get_type_info(self, entity_type: str) -> Optional[EntityTypeDescriptor]:
        return self.registry.get(entity_type)


__all__ = [
    "EntityTypeValidator",
    "TypeCache",
    "DEFAULT_TTL_SECONDS",
    "endpoint_for_type",
    "validate_id",
]
