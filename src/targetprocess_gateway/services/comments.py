from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from targetprocess_gateway.client import TargetProcessClient
from targetprocess_gateway.core.errors import GatewayError, ValidationError
from targetprocess_gateway.models import Comment, CommentStats, parse_tp_date
from targetprocess_gateway.services._collections import collection_items
from targetprocess_gateway.services.validation import EntityTypeValidator, validate_id

COMMENTS_ENDPOINT = "Comments"


def _created(comment: Comment) -> datetime:
    return parse_tp_date(comment.create_date) or datetime.min


def sort_comments_hierarchically(comments: List[Comment]) -> List[Comment]:
    """Parents by creation date, each followed by its replies; orphaned replies last."""
    parents = sorted((c for c in comments if not c.parent_id), key=_created)
    replies = [c for c in comments if c.parent_id]
    parent_ids = {p.id for p in parents}

    ordered: List[Comment] = []
    for parent in parents:
        ordered.append(parent)
        ordered.extend(
            sorted((r for r in replies if r.parent_id == parent.id), key=_created)
        )
    ordered.extend(r for r in replies if r.parent_id not in parent_ids)
    return ordered


def _require_text(description: Optional[str]) -> str:
    if not description or not description.strip():
        raise ValidationError("Comment description cannot be empty")
    return description.strip()


class CommentService:
    """Comment CRUD on any commentable entity, with reply threading."""

    def __init__(self, client: TargetProcessClient, validator: EntityTypeValidator):
        self.client = client
        self.validator = validator

    async def get_comments(self, entity_type: str, entity_id: int) -> List[Comment]:
        validated = await self.validator.validate_type(entity_type)
        validate_id(entity_id)
        endpoint = self.validator.endpoint_for_type(validated)

        payload = await self.client.get(
            f"{endpoint}/{entity_id}/{COMMENTS_ENDPOINT}",
            params={"format": "json"},
            operation=f"get comments for {validated} {entity_id}",
        )
        comments = [Comment.model_validate(c) for c in collection_items(payload)]
        return sort_comments_hierarchically(comments)

    async def get_comment(self, comment_id: int) -> Comment:
        validate_id(comment_id, label="Comment ID")
        payload = await self.client.get(
            f"{COMMENTS_ENDPOINT}/{comment_id}",
            params={"format": "json"},
            operation=f"get comment {comment_id}",
        )
        return Comment.model_validate(payload)

    async def get_comment_replies(self, parent_comment_id: int) -> List[Comment]:
        validate_id(parent_comment_id, label="Comment ID")
        payload = await self.client.get(
            f"{COMMENTS_ENDPOINT}/{parent_comment_id}/Replies",
            params={"format": "json"},
            operation=f"get replies for comment {parent_comment_id}",
        )
        return [Comment.model_validate(c) for c in collection_items(payload)]

    async def create_comment(
        self,
        entity_id: int,
        description: str,
        *,
        is_private: bool = False,
        parent_comment_id: Optional[int] = None,
    ) -> Comment:
        validate_id(entity_id)
        text = _require_text(description)
        if parent_comment_id is not None:
            validate_id(parent_comment_id, label="Parent comment ID")

        body: Dict[str, Any] = {"General": {"Id": entity_id}, "Description": text}
        if is_private:
            body["IsPrivate"] = True
        if parent_comment_id:
            body["ParentId"] = parent_comment_id

        payload = await self.client.post(
            COMMENTS_ENDPOINT,
            json=body,
            params={"format": "json"},
            operation=f"create comment on entity {entity_id}",
        )
        return Comment.model_validate(payload)

    async def update_comment(self, comment_id: int, description: str) -> Comment:
        validate_id(comment_id, label="Comment ID")
        text = _require_text(description)
        payload = await self.client.post(
            f"{COMMENTS_ENDPOINT}/{comment_id}",
            json={"Description": text},
            params={"format": "json"},
            operation=f"update comment {comment_id}",
        )
        return Comment.model_validate(payload)

    async def delete_comment(self, comment_id: int) -> bool:
        validate_id(comment_id, label="Comment ID")
        await self.client.delete(
            f"{COMMENTS_ENDPOINT}/{comment_id}",
            operation=f"delete comment {comment_id}",
        )
        return True

    async def is_comment_on_entity(self, comment_id: int, entity_id: int) -> bool:
        try:
            comment = await self.get_comment(comment_id)
        except GatewayError:
            return False
        return comment.general is not None and comment.general.id == entity_id

    async def get_comment_stats(self, entity_type: str, entity_id: int) -> CommentStats:
        comments = await self.get_comments(entity_type, entity_id)
        private = sum(1 for c in comments if c.is_private)
        return CommentStats(
            total=len(comments),
            public=len(comments) - private,
            private=private,
            replies=sum(1 for c in comments if c.parent_id),
        )


__all__ = ["CommentService", "sort_comments_hierarchically", "COMMENTS_ENDPOINT"]
