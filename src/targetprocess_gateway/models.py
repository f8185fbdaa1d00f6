from __future__ import annotations

import base64
from datetime import datetime, timezone
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ApiErrorBody(BaseModel):
    """Error body returned by TargetProcess on non-2xx responses."""

    message: Optional[str] = Field(default=None, alias="Message")
    error_message: Optional[str] = Field(default=None, alias="ErrorMessage")
    description: Optional[str] = Field(default=None, alias="Description")

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    @field_validator("message", "error_message", "description", mode="before")
    @classmethod
    def _coerce_text(cls, value: Any) -> Optional[str]:
        if value is None or isinstance(value, str):
            return value
        return str(value)

    def best_message(self) -> Optional[str]:
        return self.message or self.error_message or self.description


class PagedCollection(BaseModel):
    """`{Items: [...], Next: "..."}` envelope returned by collection endpoints."""

    kind: Literal["collection"] = "collection"
    items: List[Dict[str, Any]] = Field(default_factory=list, alias="Items")
    next: Optional[str] = Field(default=None, alias="Next")
    prev: Optional[str] = Field(default=None, alias="Prev")

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    @field_validator("items", mode="before")
    @classmethod
    def _drop_non_objects(cls, value: Any) -> List[Dict[str, Any]]:
        if value is None:
            return []
        if not isinstance(value, list):
            raise ValueError("Expected Items to be a list.")
        return [v for v in value if isinstance(v, dict)]


class EntityRef(BaseModel):
    """Single entity body; only the identity fields are typed."""

    kind: Literal["entity"] = "entity"
    id: int = Field(alias="Id")
    resource_type: Optional[str] = Field(default=None, alias="ResourceType")
    name: Optional[str] = Field(default=None, alias="Name")

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    def to_body(self) -> Dict[str, Any]:
        """The entity keyed by its wire names, untyped fields included as received."""
        body: Dict[str, Any] = {"Id": self.id}
        if "resource_type" in self.model_fields_set:
            body["ResourceType"] = self.resource_type
        if "name" in self.model_fields_set:
            body["Name"] = self.name
        body.update(self.model_extra or {})
        return body


# --- Type catalog feeds ---


class EntityTypeItem(BaseModel):
    """Element of the primary `EntityTypes` catalog."""

    id: Optional[int] = Field(default=None, alias="Id")
    name: str = Field(alias="Name")
    description: Optional[str] = Field(default=None, alias="Description")
    is_extendable: Optional[bool] = Field(default=None, alias="IsExtendable")
    is_searchable: Optional[bool] = Field(default=None, alias="IsSearchable")

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    @field_validator("name")
    @classmethod
    def _strip_name(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Entity type name must not be empty.")
        return value


class MetaProperty(BaseModel):
    name: str = Field(alias="Name")
    type: Optional[str] = Field(default=None, alias="Type")
    is_required: Optional[bool] = Field(default=None, alias="IsRequired")
    is_read_only: Optional[bool] = Field(default=None, alias="IsReadOnly")
    description: Optional[str] = Field(default=None, alias="Description")

    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class MetaEntry(BaseModel):
    """Entry of the secondary `meta` feed (richer, less reliable)."""

    name: str = Field(alias="Name")
    description: Optional[str] = Field(default=None, alias="Description")
    can_create: Optional[bool] = Field(default=None, alias="CanCreate")
    can_update: Optional[bool] = Field(default=None, alias="CanUpdate")
    can_delete: Optional[bool] = Field(default=None, alias="CanDelete")
    properties: List[MetaProperty] = Field(default_factory=list, alias="Properties")
    relations: List[str] = Field(default_factory=list, alias="Relations")
    hierarchy: List[str] = Field(default_factory=list, alias="Hierarchy")

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    @field_validator("properties", mode="before")
    @classmethod
    def _properties_list(cls, value: Any) -> List[Any]:
        if value is None:
            return []
        if isinstance(value, dict):
            # {"Name": {...}} form
            return [
                {"Name": key, **(val if isinstance(val, dict) else {})}
                for key, val in value.items()
            ]
        if not isinstance(value, list):
            return []
        return [v for v in value if isinstance(v, dict)]

    @field_validator("relations", "hierarchy", mode="before")
    @classmethod
    def _name_list(cls, value: Any) -> List[str]:
        if value is None:
            return []
        if isinstance(value, dict):
            value = list(value.keys())
        elif not isinstance(value, list):
            return []
        names: List[str] = []
        for v in value:
            if isinstance(v, dict):
                v = v.get("Name") or v.get("Type")
            if isinstance(v, str) and v and v not in names:
                names.append(v)
        return names


MetadataSource = Literal["primary", "secondary", "static"]


class EntityTypeMetadata(BaseModel):
    """Merged (hybrid) view of one entity type."""

    name: str
    source: MetadataSource
    id: Optional[int] = None
    description: Optional[str] = None
    category: Optional[str] = None
    can_create: Optional[bool] = None
    can_update: Optional[bool] = None
    can_delete: Optional[bool] = None
    properties: List[MetaProperty] = Field(default_factory=list)
    relations: List[str] = Field(default_factory=list)
    hierarchy: List[str] = Field(default_factory=list)

    def with_detail(self, entry: MetaEntry) -> "EntityTypeMetadata":
        return self.model_copy(
            update={
                "description": self.description or entry.description,
                "can_create": entry.can_create,
                "can_update": entry.can_update,
                "can_delete": entry.can_delete,
                "properties": list(entry.properties),
                "relations": list(entry.relations),
                "hierarchy": list(entry.hierarchy),
            }
        )


# --- Sub-resources ---


class PersonRef(BaseModel):
    id: int = Field(alias="Id")
    first_name: Optional[str] = Field(default=None, alias="FirstName")
    last_name: Optional[str] = Field(default=None, alias="LastName")

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    @property
    def full_name(self) -> str:
        return " ".join(p for p in (self.first_name, self.last_name) if p)


class GeneralRef(BaseModel):
    id: int = Field(alias="Id")
    name: Optional[str] = Field(default=None, alias="Name")
    resource_type: Optional[str] = Field(default=None, alias="ResourceType")

    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class Comment(BaseModel):
    id: int = Field(alias="Id")
    description: str = Field(default="", alias="Description")
    is_private: bool = Field(default=False, alias="IsPrivate")
    create_date: Optional[str] = Field(default=None, alias="CreateDate")
    parent_id: Optional[int] = Field(default=None, alias="ParentId")
    owner: Optional[PersonRef] = Field(default=None, alias="Owner")
    general: Optional[GeneralRef] = Field(default=None, alias="General")

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    @field_validator("description", mode="before")
    @classmethod
    def _none_to_empty(cls, value: Any) -> str:
        return value or ""


class Attachment(BaseModel):
    id: int = Field(alias="Id")
    name: str = Field(default="", alias="Name")
    description: Optional[str] = Field(default=None, alias="Description")
    date: Optional[str] = Field(default=None, alias="Date")
    mime_type: Optional[str] = Field(default=None, alias="MimeType")
    uri: Optional[str] = Field(default=None, alias="Uri")
    thumbnail_uri: Optional[str] = Field(default=None, alias="ThumbnailUri")
    size: Optional[int] = Field(default=None, alias="Size")
    owner: Optional[PersonRef] = Field(default=None, alias="Owner")
    general: Optional[GeneralRef] = Field(default=None, alias="General")

    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class AttachmentContent(BaseModel):
    attachment_id: int
    filename: str
    mime_type: str
    size: int
    content: bytes = Field(repr=False)
    description: Optional[str] = None
    upload_date: Optional[str] = None

    @property
    def content_base64(self) -> str:
        return base64.b64encode(self.content).decode("ascii")


class CommentStats(BaseModel):
    total: int
    public: int
    private: int
    replies: int


def parse_tp_date(value: Optional[str]) -> Optional[datetime]:
    """
    Parse TargetProcess dates: ISO strings or the legacy `/Date(1700000000000+0000)/`.
    Returns None when the value is missing or unreadable.
    """
    if not value:
        return None
    if value.startswith("/Date(") and value.endswith(")/"):
        inner = value[len("/Date(") : -len(")/")]
        millis = ""
        for ch in inner:
            if ch.isdigit() or (ch == "-" and not millis):
                millis += ch
            else:
                break
        try:
            return datetime.fromtimestamp(int(millis) / 1000, tz=timezone.utc).replace(
                tzinfo=None
            )
        except (ValueError, OverflowError):
            return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc)
    return parsed.replace(tzinfo=None)
