from .attachments import AttachmentService
from .comments import CommentService
from .metadata import MetadataService, parse_metadata_document
from .validation import EntityTypeValidator, endpoint_for_type, validate_id

__all__ = [
    "AttachmentService",
    "CommentService",
    "MetadataService",
    "parse_metadata_document",
    "EntityTypeValidator",
    "endpoint_for_type",
    "validate_id",
]
