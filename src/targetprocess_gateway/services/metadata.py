from __future__ import annotations

import json
import logging
import re
from typing import Any, Dict, List, Optional, Tuple

from pydantic import ValidationError as PydanticValidationError

from targetprocess_gateway.client import TargetProcessClient
from targetprocess_gateway.core.errors import GatewayError, MetadataParseError
from targetprocess_gateway.core.observability import log_event
from targetprocess_gateway.entity_registry import EntityCategory, EntityRegistry
from targetprocess_gateway.models import EntityTypeItem, EntityTypeMetadata, MetaEntry
from targetprocess_gateway.services._collections import collection_items

DEFAULT_PAGE_SIZE = 100
DEFAULT_MAX_PAGES = 50

PRIMARY_ENDPOINT = "EntityTypes"
SECONDARY_ENDPOINT = "meta"

log = logging.getLogger("targetprocess_gateway.metadata")

# --- secondary feed parsing ---

_TRAILING_COMMA_RE = re.compile(r",(\s*[}\]])")
_ADJACENT_OBJECTS_RE = re.compile(r"}(\s*){")


def _merge_duplicate_keys(pairs: List[Tuple[str, Any]]) -> Dict[str, Any]:
    """
    object_pairs_hook that keeps data from duplicated keys.
    Two objects are merged, two lists concatenated; otherwise the last value wins.
    """
    result: Dict[str, Any] = {}
    for key, value in pairs:
        if key not in result:
            result[key] = value
            continue
        current = result[key]
        if isinstance(current, dict) and isinstance(value, dict):
            result[key] = {**current, **value}
        elif isinstance(current, list) and isinstance(value, list):
            result[key] = current + value
        else:
            result[key] = value
    return result


def _repair(text: str) -> str:
    # strip BOM, drop trailing commas, join adjacent objects left without a comma
    repaired = text.lstrip("\ufeff")
    repaired = _TRAILING_COMMA_RE.sub(r"\1", repaired)
    repaired = _ADJACENT_OBJECTS_RE.sub(r"},\1{", repaired)
    return repaired


def _entries_from_document(doc: Any) -> Dict[str, MetaEntry]:
    if isinstance(doc, dict) and isinstance(doc.get("Items"), list):
        raw_entries = doc["Items"]
    elif isinstance(doc, list):
        raw_entries = doc
    elif isinstance(doc, dict):
        # {"UserStory": {...}, "Bug": {...}}
        raw_entries = [
            {"Name": key, **val} for key, val in doc.items() if isinstance(val, dict)
        ]
    else:
        raise MetadataParseError(
            f"Unexpected metadata document type: {type(doc).__name__}"
        )

    entries: Dict[str, MetaEntry] = {}
    for raw in raw_entries:
        if not isinstance(raw, dict):
            continue
        try:
            entry = MetaEntry.model_validate(raw)
        except PydanticValidationError:
            continue
        if entry.name and entry.name not in entries:
            entries[entry.name] = entry
    return entries


def parse_metadata_document(text: str) -> Dict[str, MetaEntry]:
    """
    Parse the secondary metadata feed into entries keyed by type name.
    A direct parse is tried first, then one repair pass; if both fail a
    MetadataParseError is raised.
    """
    try:
        doc = json.loads(text, object_pairs_hook=_merge_duplicate_keys)
    except ValueError as direct_exc:
        log.debug("metadata.direct_parse_failed", extra={"error": str(direct_exc)})
        try:
            doc = json.loads(
                _repair(text), object_pairs_hook=_merge_duplicate_keys, strict=False
            )
        except ValueError as exc:
            raise MetadataParseError(
                f"Secondary metadata is not valid JSON even after repair: {exc}"
            ) from exc
    return _entries_from_document(doc)


# --- service ---


class MetadataService:
    """
    Builds the hybrid view of entity types from:
      - the paginated `EntityTypes` catalog (primary)
      - the `meta` feed (secondary; richer, occasionally malformed)
      - the static registry's system types (baseline; the full registry
        when the primary catalog is unavailable)
    """

    def __init__(
        self,
        client: TargetProcessClient,
        *,
        registry: Optional[EntityRegistry] = None,
        page_size: int = DEFAULT_PAGE_SIZE,
        max_pages: int = DEFAULT_MAX_PAGES,
    ):
        if page_size < 1:
            raise ValueError("page_size must be >= 1")
        self.client = client
        self.registry = registry if registry is not None else EntityRegistry()
        self.page_size = page_size
        self.max_pages = max_pages
        self._snapshot: Dict[str, EntityTypeMetadata] = {}

    async def fetch_primary_types(self) -> List[EntityTypeItem]:
        items: List[EntityTypeItem] = []
        skip = 0
        for _ in range(self.max_pages):
            payload = await self.client.get(
                PRIMARY_ENDPOINT,
                params={"take": self.page_size, "skip": skip, "format": "json"},
                operation="fetch entity types",
            )
            batch = collection_items(payload)
            for raw in batch:
                try:
                    items.append(EntityTypeItem.model_validate(raw))
                except PydanticValidationError:
                    log.debug("metadata.skip_primary_item", extra={"error": repr(raw)})
            if len(batch) < self.page_size:
                break
            skip += self.page_size
        return items

    async def fetch_secondary_metadata(self) -> Optional[Dict[str, MetaEntry]]:
        """Returns None when the secondary feed is unavailable or unparseable."""
        try:
            text = await self.client.request_text(
                "GET",
                SECONDARY_ENDPOINT,
                params={"format": "json"},
                operation="fetch metadata",
            )
            return parse_metadata_document(text)
        except MetadataParseError as exc:
            log_event(
                "metadata.secondary_unparseable",
                log,
                level=logging.WARNING,
                source="secondary",
                error=str(exc),
            )
        except GatewayError as exc:
            log_event(
                "metadata.secondary_unavailable",
                log,
                level=logging.WARNING,
                source="secondary",
                error=str(exc),
            )
        return None

    async def get_hybrid_metadata(self) -> List[EntityTypeMetadata]:
        try:
            primary = await self.fetch_primary_types()
        except GatewayError as exc:
            log_event(
                "metadata.primary_unavailable",
                log,
                level=logging.WARNING,
                source="primary",
                error=str(exc),
            )
            primary = []
        secondary = await self.fetch_secondary_metadata() or {}

        # without the primary catalog the whole static registry is the baseline
        baseline = (
            self.registry.system_names() if primary else self.registry.all_names()
        )
        merged = self._merge(primary, secondary, baseline)
        self._snapshot = {m.name: m for m in merged}
        log_event(
            "metadata.merged",
            log,
            count=len(merged),
            source=f"primary={len(primary)} secondary={len(secondary)}",
        )
        return merged

    def _merge(
        self,
        primary: List[EntityTypeItem],
        secondary: Dict[str, MetaEntry],
        baseline: List[str],
    ) -> List[EntityTypeMetadata]:
        merged: Dict[str, EntityTypeMetadata] = {}

        for item in primary:
            if item.name in merged:
                continue
            entry = EntityTypeMetadata(
                name=item.name,
                source="primary",
                id=item.id,
                description=item.description,
                category=self._category(item.name),
            )
            detail = secondary.get(item.name)
            merged[item.name] = entry.with_detail(detail) if detail else entry

        for name, detail in secondary.items():
            if name in merged:
                continue
            merged[name] = EntityTypeMetadata(
                name=name, source="secondary", category=self._category(name)
            ).with_detail(detail)

        # system types are always present even if both feeds omit them
        for name in baseline:
            if name in merged:
                continue
            info = self.registry.get(name)
            merged[name] = EntityTypeMetadata(
                name=name,
                source="static",
                description=info.description if info else None,
                category=self._category(name),
            )

        return list(merged.values())

    def _category(self, name: str) -> str:
        info = self.registry.get(name)
        return (info.category if info else EntityCategory.CUSTOM).value

    async def get_valid_type_names(self) -> List[str]:
        """De-duplicated, sorted type names. Never raises for remote failures."""
        merged = await self.get_hybrid_metadata()
        return sorted({m.name for m in merged})

    def get_type_details(self, name: str) -> Optional[EntityTypeMetadata]:
        """Detail from the last merge, if any."""
        return self._snapshot.get(name)


__all__ = [
    "MetadataService",
    "parse_metadata_document",
    "DEFAULT_PAGE_SIZE",
    "PRIMARY_ENDPOINT",
    "SECONDARY_ENDPOINT",
]
