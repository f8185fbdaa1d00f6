"""
Shared helpers for working with TargetProcess collection payloads.
"""

from typing import Any, Dict, List

from pydantic import ValidationError as PydanticValidationError

from targetprocess_gateway.core.errors import ResponseParseError
from targetprocess_gateway.models import PagedCollection


def parse_collection(payload: Dict[str, Any]) -> PagedCollection:
    """
    Validate a `{Items, Next}` payload.
    Raises ResponseParseError if the expected structure is malformed.
    """
    try:
        return PagedCollection.model_validate(payload)
    except PydanticValidationError as exc:
        raise ResponseParseError(f"Malformed collection payload: {exc}") from exc


def collection_items(payload: Dict[str, Any]) -> List[Dict[str, Any]]:
    return parse_collection(payload).items
