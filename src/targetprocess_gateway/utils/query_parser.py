"""
Where-clause, include and orderBy formatting for TargetProcess collection queries.

Grammar accepted by `validate_where_clause`:

    clause    := condition ( " and " condition )*
    condition := field "is null" | field "is not null" | field OP value
    OP        := eq | ne | gt | gte | lt | lte | in | contains | not contains

Only top-level `and` is decomposed; `or` and parenthesised groups are treated
as part of a condition's value. Values are always emitted as single-quoted
literals.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Any, Iterable, List, Optional, Sequence, Tuple

from targetprocess_gateway.core.errors import ValidationError

OPERATORS = ("eq", "ne", "gt", "gte", "lt", "lte", "in", "contains", "not contains")
NULL_OPERATORS = ("is null", "is not null")

_QUOTES = ("'", '"')
_AND_SPLIT_RE = re.compile(r"\s+and(?:\s+|$)", re.IGNORECASE)
_IS_NULL_RE = re.compile(r"^(?P<field>.+?)\s+is\s+null$", re.IGNORECASE | re.DOTALL)
_IS_NOT_NULL_RE = re.compile(
    r"^(?P<field>.+?)\s+is\s+not\s+null$", re.IGNORECASE | re.DOTALL
)
_CONDITION_RE = re.compile(
    r"^(?P<field>\S+)\s+"
    r"(?P<op>eq|ne|gte|gt|lte|lt|in|not\s+contains|contains)\s+"
    r"(?P<value>.+)$",
    re.IGNORECASE | re.DOTALL,
)
_INCLUDE_RE = re.compile(r"^[A-Za-z.]+$")
_ORDER_DIRECTION_RE = re.compile(r"\s+(desc|asc)$", re.IGNORECASE)
_WHITESPACE_RE = re.compile(r"\s+")

CUSTOM_FIELD_PREFIX = "CustomField."


@dataclass(frozen=True)
class QueryCondition:
    field: str
    operator: str
    value: Any = None

    def format(self) -> str:
        field = format_where_field(self.field)
        if self.operator in NULL_OPERATORS:
            return f"{field} {self.operator}"
        return f"{field} {self.operator} {format_where_value(self.value)}"


def split_top_level_and(raw: str) -> List[str]:
    """
    Split `raw` on `and` keywords that sit outside quoted literals.
    Quotes preceded by a backslash do not open or close a literal.
    """
    segments: List[str] = []
    current: List[str] = []
    quote: Optional[str] = None
    i = 0
    n = len(raw)

    while i < n:
        ch = raw[i]
        escaped = i > 0 and raw[i - 1] == "\\"

        if ch in _QUOTES and not escaped:
            if quote is None:
                quote = ch
            elif ch == quote:
                quote = None

        if quote is None and ch.isspace():
            match = _AND_SPLIT_RE.match(raw, i)
            if match:
                segments.append("".join(current).strip())
                current = []
                i = match.end()
                continue

        current.append(ch)
        i += 1

    segments.append("".join(current).strip())
    return segments


def format_where_field(field: str) -> str:
    if field.startswith(CUSTOM_FIELD_PREFIX):
        field = "cf_" + field[len(CUSTOM_FIELD_PREFIX) :]
    return _WHITESPACE_RE.sub("", field)


def format_where_value(value: Any) -> str:
    """Render a where-clause literal: null, true/false, dates, lists, quoted text."""
    if value is None:
        return "null"

    if isinstance(value, bool):
        return "true" if value else "false"

    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc)
        return f"'{value.date().isoformat()}'"

    if isinstance(value, date):
        return f"'{value.isoformat()}'"

    if isinstance(value, (list, tuple)):
        return "[" + ",".join(format_where_value(v) for v in value) + "]"

    text = str(value)
    already_quoted = len(text) >= 2 and text[0] == text[-1] == "'"

    if text[:1] in _QUOTES:
        text = text[1:]
    if text[-1:] in _QUOTES:
        text = text[:-1]
    if already_quoted:
        # collapse escapes so normalising an already-quoted literal is stable
        text = text.replace("''", "'")

    escaped = text.replace("'", "''")
    return f"'{escaped}'"


def _normalize_operator(op: str) -> str:
    return " ".join(op.lower().split())


def _parse_condition(segment: str) -> QueryCondition:
    match = _IS_NOT_NULL_RE.match(segment)
    if match:
        return QueryCondition(match.group("field").strip(), "is not null")

    match = _IS_NULL_RE.match(segment)
    if match:
        return QueryCondition(match.group("field").strip(), "is null")

    match = _CONDITION_RE.match(segment)
    if not match:
        raise ValidationError(f"Invalid condition format: {segment}")

    return QueryCondition(
        field=match.group("field"),
        operator=_normalize_operator(match.group("op")),
        value=match.group("value").strip(),
    )


def parse_where_clause(raw: str) -> List[QueryCondition]:
    if not raw or not raw.strip():
        raise ValidationError("Empty where clause")
    return [_parse_condition(segment) for segment in split_top_level_and(raw)]


def validate_where_clause(raw: str) -> str:
    """
    Validate and normalise a where clause.
    Raises ValidationError on empty input or a segment that matches no condition form.
    """
    return " and ".join(c.format() for c in parse_where_clause(raw))


def format_order_by(field: str) -> str:
    """The API accepts bare field names only; a trailing asc/desc is dropped."""
    return _ORDER_DIRECTION_RE.sub("", field.strip()).strip()


def format_order_by_params(fields: Sequence[str]) -> List[Tuple[str, str]]:
    cleaned = [format_order_by(f) for f in fields if f and f.strip()]
    if len(cleaned) == 1:
        return [("orderBy", cleaned[0])]
    return [(f"orderBy[{i}]", f) for i, f in enumerate(cleaned)]


def format_include(includes: Iterable[str]) -> str:
    formatted = [format_where_field(i.strip()) for i in includes if i]
    for inc in formatted:
        if not _INCLUDE_RE.match(inc):
            raise ValidationError(f"Invalid include parameter: {inc}")
    return "[" + ",".join(formatted) + "]"


def build_query_params(
    *,
    where: Optional[str] = None,
    include: Optional[Sequence[str]] = None,
    take: Optional[int] = None,
    skip: Optional[int] = None,
    order_by: Optional[Sequence[str]] = None,
    fmt: str = "json",
) -> List[Tuple[str, str]]:
    """Assemble ordered query parameters for a collection or single-entity request."""
    params: List[Tuple[str, str]] = [("format", fmt or "json")]

    if take is not None and take > 0:
        params.append(("take", str(take)))
    if skip is not None and skip > 0:
        params.append(("skip", str(skip)))
    if where:
        params.append(("where", validate_where_clause(where)))
    if include:
        params.append(("include", format_include(include)))
    if order_by:
        params.extend(format_order_by_params(order_by))

    return params


__all__ = [
    "OPERATORS",
    "NULL_OPERATORS",
    "QueryCondition",
    "split_top_level_and",
    "format_where_field",
    "format_where_value",
    "parse_where_clause",
    "validate_where_clause",
    "format_order_by",
    "format_order_by_params",
    "format_include",
    "build_query_params",
]
