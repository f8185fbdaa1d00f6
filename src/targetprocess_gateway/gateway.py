"""
High-level entry point: validated, escaped and retried access to TargetProcess
entities, comments and attachments.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Sequence, Union

from .client import TargetProcessClient
from .core.errors import ValidationError
from .core.logging import setup_logging
from .entity_registry import EntityRegistry
from .models import AttachmentContent, Comment, EntityRef, EntityTypeMetadata
from .services._collections import collection_items
from .services.attachments import AttachmentService
from .services.comments import CommentService
from .services.metadata import MetadataService
from .services.validation import EntityTypeValidator
from .utils.query_parser import build_query_params, format_include

DEFAULT_TAKE = 25
MAX_TAKE = 1000


def _require_body(data: Any) -> Dict[str, Any]:
    if not isinstance(data, dict) or not data:
        raise ValidationError("Entity data must be a non-empty object")
    return data


class TargetProcessGateway:
    """
    Composes the entity registry, metadata service, type validator and HTTP
    client. Every operation validates the entity type first, then serializes
    its query and sends it under the client's retry policy.
    """

    def __init__(
        self,
        client: TargetProcessClient,
        *,
        registry: Optional[EntityRegistry] = None,
        metadata: Optional[MetadataService] = None,
        validator: Optional[EntityTypeValidator] = None,
        cache_ttl_seconds: Optional[float] = None,
    ):
        self.client = client
        self.registry = registry if registry is not None else EntityRegistry()
        self.metadata = metadata or MetadataService(client, registry=self.registry)
        if validator is None:
            kwargs: Dict[str, Any] = {}
            if cache_ttl_seconds is not None:
                kwargs["ttl_seconds"] = cache_ttl_seconds
            validator = EntityTypeValidator(
                self.metadata.get_valid_type_names, registry=self.registry, **kwargs
            )
        self.validator = validator
        self._comments = CommentService(client, self.validator)
        self._attachments = AttachmentService(client, self.validator)

    @classmethod
    def from_env(
        cls, *, configure_logging: bool = True, **kwargs: Any
    ) -> "TargetProcessGateway":
        """
        Build a gateway from TP_* environment variables (and .env).
        Installs the logfmt root handler at TP_LOG_LEVEL unless
        `configure_logging` is False.
        """
        from .core.config import create_client_from_env, load_env_config

        settings = load_env_config()
        if configure_logging:
            setup_logging(settings.log_level)
        client = create_client_from_env(settings)
        return cls(client, cache_ttl_seconds=settings.entity_cache_ttl, **kwargs)

    @property
    def comments(self) -> CommentService:
        return self._comments

    @property
    def attachments(self) -> AttachmentService:
        return self._attachments

    async def aclose(self) -> None:
        await self.client.aclose()

    async def __aenter__(self) -> "TargetProcessGateway":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    # --- entities ---

    async def search_entities(
        self,
        entity_type: str,
        where: Optional[str] = None,
        include: Optional[Sequence[str]] = None,
        take: int = DEFAULT_TAKE,
        order_by: Optional[Sequence[str]] = None,
        skip: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        validated = await self.validator.validate_type(entity_type)
        if not 1 <= take <= MAX_TAKE:
            raise ValidationError(f"take must be between 1 and {MAX_TAKE}")
        if skip is not None and skip < 0:
            raise ValidationError("skip must be >= 0")

        params = build_query_params(
            where=where, include=include, take=take, skip=skip, order_by=order_by
        )
        payload = await self.client.get(
            self.validator.endpoint_for_type(validated),
            params=params,
            operation=f"search {validated}",
        )
        return collection_items(payload)

    async def get_entity(
        self,
        entity_type: str,
        entity_id: int,
        include: Optional[Sequence[str]] = None,
    ) -> Dict[str, Any]:
        validated = await self.validator.validate_type(entity_type)
        self.validator.validate_id(entity_id)

        params: List[Any] = [("format", "json")]
        if include:
            params.append(("include", format_include(include)))
        entity = await self.client.request_model(
            EntityRef,
            "GET",
            f"{self.validator.endpoint_for_type(validated)}/{entity_id}",
            params=params,
            operation=f"get {validated} {entity_id}",
        )
        return entity.to_body()

    async def create_entity(self, entity_type: str, data: Dict[str, Any]) -> Dict[str, Any]:
        validated = await self.validator.validate_type(entity_type)
        body = _require_body(data)
        entity = await self.client.request_model(
            EntityRef,
            "POST",
            self.validator.endpoint_for_type(validated),
            json=body,
            params={"format": "json"},
            operation=f"create {validated}",
        )
        return entity.to_body()

    async def update_entity(
        self, entity_type: str, entity_id: int, data: Dict[str, Any]
    ) -> Dict[str, Any]:
        validated = await self.validator.validate_type(entity_type)
        self.validator.validate_id(entity_id)
        body = _require_body(data)
        entity = await self.client.request_model(
            EntityRef,
            "POST",
            f"{self.validator.endpoint_for_type(validated)}/{entity_id}",
            json=body,
            params={"format": "json"},
            operation=f"update {validated} {entity_id}",
        )
        return entity.to_body()

    # --- type introspection ---

    async def get_valid_entity_types(self) -> List[str]:
        return await self.validator.get_valid_types()

    async def inspect_entity_type(self, entity_type: str) -> EntityTypeMetadata:
        """Merged metadata for one type; static registry data when no remote detail exists."""
        validated = await self.validator.validate_type(entity_type)

        detail = self.metadata.get_type_details(validated)
        if detail is None:
            for entry in await self.metadata.get_hybrid_metadata():
                if entry.name == validated:
                    return entry
            info = self.registry.get(validated)
            detail = EntityTypeMetadata(
                name=validated,
                source="static",
                description=info.description if info else None,
                category=info.category.value if info else None,
            )
        return detail

    # --- pass-throughs ---

    async def add_comment(
        self,
        entity_id: int,
        description: str,
        *,
        is_private: bool = False,
        parent_comment_id: Optional[int] = None,
    ) -> Comment:
        return await self._comments.create_comment(
            entity_id,
            description,
            is_private=is_private,
            parent_comment_id=parent_comment_id,
        )

    async def get_comments(self, entity_type: str, entity_id: int) -> List[Comment]:
        return await self._comments.get_comments(entity_type, entity_id)

    async def download_attachment(self, attachment_id: int) -> AttachmentContent:
        return await self._attachments.download_attachment(attachment_id)

    async def upload_attachment(
        self,
        entity_id: int,
        content: Union[bytes, str],
        filename: str,
        **kwargs: Any,
    ):
        return await self._attachments.upload_attachment(
            entity_id, content, filename, **kwargs
        )


__all__ = ["TargetProcessGateway", "DEFAULT_TAKE", "MAX_TAKE"]
