from __future__ import annotations

import base64
import binascii
import logging
import mimetypes
from typing import Any, Dict, List, Optional, Union

from targetprocess_gateway.client import TargetProcessClient
from targetprocess_gateway.core.errors import ResponseParseError, ValidationError
from targetprocess_gateway.core.observability import log_event
from targetprocess_gateway.models import Attachment, AttachmentContent
from targetprocess_gateway.services._collections import collection_items
from targetprocess_gateway.services.validation import EntityTypeValidator, validate_id

ATTACHMENTS_ENDPOINT = "Attachments"
UPLOAD_PATH = "UploadFile.ashx"

MAX_FILE_SIZE = 50 * 1024 * 1024  # 50 MB
LARGE_FILE_WARNING = 10 * 1024 * 1024

ALLOWED_MIME_TYPES = frozenset(
    {
        # images
        "image/jpeg",
        "image/png",
        "image/gif",
        "image/webp",
        "image/svg+xml",
        # documents
        "application/pdf",
        "text/plain",
        "text/csv",
        "application/msword",
        "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
        "application/vnd.ms-excel",
        "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        "application/vnd.ms-powerpoint",
        "application/vnd.openxmlformats-officedocument.presentationml.presentation",
        # archives
        "application/zip",
        "application/x-rar-compressed",
        "application/x-7z-compressed",
        # code
        "text/javascript",
        "text/typescript",
        "text/html",
        "text/css",
        "application/json",
        "application/xml",
        "text/xml",
    }
)

log = logging.getLogger("targetprocess_gateway.attachments")


def detect_mime_type(filename: str) -> str:
    return mimetypes.guess_type(filename)[0] or "application/octet-stream"


def _decode_content(content: Union[bytes, str]) -> bytes:
    if isinstance(content, bytes):
        return content
    try:
        return base64.b64decode(content, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise ValidationError(f"Invalid base64 content: {exc}") from exc


class AttachmentService:
    """
    Attachment lookup, listing, download and upload.
    Uploads are checked against MAX_FILE_SIZE and ALLOWED_MIME_TYPES before
    any bytes are sent.
    """

    def __init__(self, client: TargetProcessClient, validator: EntityTypeValidator):
        self.client = client
        self.validator = validator

    async def get_attachment_info(self, attachment_id: int) -> Attachment:
        validate_id(attachment_id, label="Attachment ID")
        payload = await self.client.get(
            f"{ATTACHMENTS_ENDPOINT}/{attachment_id}",
            params={"format": "json"},
            operation=f"get attachment {attachment_id}",
        )
        return Attachment.model_validate(payload)

    async def list_attachments(self, entity_type: str, entity_id: int) -> List[Attachment]:
        validated = await self.validator.validate_type(entity_type)
        validate_id(entity_id)
        endpoint = self.validator.endpoint_for_type(validated)
        payload = await self.client.get(
            f"{endpoint}/{entity_id}/{ATTACHMENTS_ENDPOINT}",
            params={"format": "json"},
            operation=f"list attachments for {validated} {entity_id}",
        )
        return [Attachment.model_validate(a) for a in collection_items(payload)]

    async def download_attachment(self, attachment_id: int) -> AttachmentContent:
        info = await self.get_attachment_info(attachment_id)
        if not info.uri:
            raise ResponseParseError(
                f"Attachment {attachment_id} has no download URI"
            )

        content = await self.client.download(
            info.uri, operation=f"download attachment {attachment_id}"
        )
        return AttachmentContent(
            attachment_id=info.id,
            filename=info.name,
            mime_type=info.mime_type or detect_mime_type(info.name),
            size=len(content),
            content=content,
            description=info.description,
            upload_date=info.date,
        )

    async def upload_attachment(
        self,
        entity_id: int,
        content: Union[bytes, str],
        filename: str,
        *,
        description: Optional[str] = None,
        mime_type: Optional[str] = None,
    ) -> Attachment:
        """
        Upload `content` (bytes, or a base64 string) and attach it to `entity_id`.
        Not retried, so a transient failure never produces a duplicate file.
        """
        validate_id(entity_id)
        if not filename or not filename.strip():
            raise ValidationError("Filename cannot be empty")

        data = _decode_content(content)
        if not data:
            raise ValidationError("Attachment content is empty; refusing to upload.")
        if len(data) > MAX_FILE_SIZE:
            raise ValidationError(
                f"File size ({len(data)} bytes) exceeds maximum allowed size "
                f"({MAX_FILE_SIZE} bytes)"
            )

        ctype = mime_type or detect_mime_type(filename)
        if ctype not in ALLOWED_MIME_TYPES:
            allowed = sorted(ALLOWED_MIME_TYPES)
            raise ValidationError(
                f"File type '{ctype}' is not allowed. "
                f"Allowed types: {', '.join(allowed)}",
                valid_options=allowed,
            )

        if len(data) > LARGE_FILE_WARNING:
            log_event(
                "attachments.large_upload",
                log,
                level=logging.WARNING,
                operation=f"upload {filename}",
                count=len(data),
            )

        form: Dict[str, Any] = {"generalId": str(entity_id)}
        if description:
            form["description"] = description

        payload = await self.client.post_file(
            f"{self.client.site_url}/{UPLOAD_PATH}",
            content=data,
            filename=filename.strip(),
            content_type=ctype,
            data=form,
            operation=f"upload attachment to entity {entity_id}",
        )
        if "Id" not in payload:
            raise ResponseParseError(
                f"Upload of {filename!r} returned no attachment id"
            )
        return Attachment.model_validate(payload)


__all__ = [
    "AttachmentService",
    "ALLOWED_MIME_TYPES",
    "MAX_FILE_SIZE",
    "detect_mime_type",
]
