"""Request and response models for the Skald API.

Requests serialize to wire payloads with to_dict(); optional fields are
only sent when set. Responses are built from decoded JSON with from_dict()
and fall back to the service defaults for missing keys.

Stream events are a closed variant keyed on the "type" discriminator:
token (optional content) or done (no payload).
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

TOKEN = "token"
DONE = "done"


# ── Enums ─────────────────────────────────────────────────────────────


class FilterOperator(str, enum.Enum):
    EQ = "eq"
    NEQ = "neq"
    CONTAINS = "contains"
    STARTSWITH = "startswith"
    ENDSWITH = "endswith"
    IN = "in"
    NOT_IN = "not_in"


class FilterType(str, enum.Enum):
    NATIVE_FIELD = "native_field"
    CUSTOM_METADATA = "custom_metadata"


class SearchMethod(str, enum.Enum):
    CHUNK_SEMANTIC_SEARCH = "chunk_semantic_search"


class IdType(str, enum.Enum):
    """How a memo identifier in a URL path is interpreted."""

    MEMO_UUID = "memo_uuid"
    REFERENCE_ID = "reference_id"


# ── Requests ──────────────────────────────────────────────────────────


@dataclass(frozen=True)
class Filter:
    """Narrows search, chat and generation context. Filters are ANDed."""

    field: str
    operator: FilterOperator
    value: Any
    filter_type: FilterType

    @classmethod
    def native_field(cls, field: str, operator: FilterOperator, value: Any) -> Filter:
        """Filter on title, source, client_reference_id or tags."""
        return cls(field, operator, value, FilterType.NATIVE_FIELD)

    @classmethod
    def custom_metadata(cls, field: str, operator: FilterOperator, value: Any) -> Filter:
        return cls(field, operator, value, FilterType.CUSTOM_METADATA)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "field": self.field,
            "operator": FilterOperator(self.operator).value,
            "value": self.value,
            "filter_type": FilterType(self.filter_type).value,
        }


def _filters_payload(filters: Optional[List[Filter]]) -> Optional[List[Dict[str, Any]]]:
    if filters is None:
        return None
    return [f.to_dict() for f in filters]


@dataclass(frozen=True)
class MemoData:
    """A new memo. title and content are required."""

    title: str
    content: str
    metadata: Optional[Dict[str, Any]] = None
    reference_id: Optional[str] = None
    tags: Optional[List[str]] = None
    source: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "title": self.title,
            "content": self.content,
            "metadata": self.metadata if self.metadata is not None else {},
        }
        if self.reference_id is not None:
            data["reference_id"] = self.reference_id
        if self.tags is not None:
            data["tags"] = self.tags
        if self.source is not None:
            data["source"] = self.source
        return data


@dataclass(frozen=True)
class UpdateMemoData:
    """Partial update of a memo. Only fields that are set are sent.

    Updating content makes the service reprocess the memo (summary, tags
    and chunks are regenerated).
    """

    title: Optional[str] = None
    content: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None
    client_reference_id: Optional[str] = None
    source: Optional[str] = None
    expiration_date: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {}
        for name in (
            "title",
            "content",
            "metadata",
            "client_reference_id",
            "source",
            "expiration_date",
        ):
            value = getattr(self, name)
            if value is not None:
                data[name] = value
        return data


@dataclass(frozen=True)
class SearchRequest:
    query: str
    search_method: SearchMethod = SearchMethod.CHUNK_SEMANTIC_SEARCH
    limit: Optional[int] = None
    filters: Optional[List[Filter]] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "query": self.query,
            "search_method": SearchMethod(self.search_method).value,
        }
        if self.limit is not None:
            data["limit"] = self.limit
        if self.filters is not None:
            data["filters"] = _filters_payload(self.filters)
        return data


@dataclass(frozen=True)
class ChatRequest:
    query: str
    filters: Optional[List[Filter]] = None

    def to_dict(self, stream: bool = False) -> Dict[str, Any]:
        data: Dict[str, Any] = {"query": self.query, "stream": stream}
        if self.filters is not None:
            data["filters"] = _filters_payload(self.filters)
        return data


@dataclass(frozen=True)
class GenerateDocRequest:
    prompt: str
    rules: Optional[str] = None
    filters: Optional[List[Filter]] = None

    def to_dict(self, stream: bool = False) -> Dict[str, Any]:
        data: Dict[str, Any] = {"prompt": self.prompt, "stream": stream}
        if self.rules is not None:
            data["rules"] = self.rules
        if self.filters is not None:
            data["filters"] = _filters_payload(self.filters)
        return data


# ── Responses ─────────────────────────────────────────────────────────


@dataclass(frozen=True)
class CreateMemoResponse:
    ok: bool

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> CreateMemoResponse:
        return cls(ok=bool(data.get("ok", False)))


@dataclass(frozen=True)
class MemoStatusResponse:
    """Processing state of a memo: processing, processed or error."""

    memo_uuid: str
    status: str
    error_reason: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> MemoStatusResponse:
        return cls(
            memo_uuid=data.get("memo_uuid", ""),
            status=data.get("status", "unknown"),
            error_reason=data.get("error_reason"),
        )

    def is_processing(self) -> bool:
        return self.status == "processing"

    def is_processed(self) -> bool:
        return self.status == "processed"

    def is_error(self) -> bool:
        return self.status == "error"


@dataclass(frozen=True)
class SearchResult:
    uuid: str
    title: str
    summary: str
    content_snippet: str
    distance: Optional[float] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> SearchResult:
        return cls(
            uuid=data["uuid"],
            title=data["title"],
            summary=data["summary"],
            content_snippet=data["content_snippet"],
            distance=data.get("distance"),
        )


@dataclass(frozen=True)
class SearchResponse:
    results: List[SearchResult] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> SearchResponse:
        return cls(results=[SearchResult.from_dict(r) for r in data.get("results") or []])


@dataclass(frozen=True)
class ChatResponse:
    ok: bool
    response: str
    intermediate_steps: List[Any] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> ChatResponse:
        return cls(
            ok=bool(data.get("ok", False)),
            response=data.get("response", "") or "",
            intermediate_steps=data.get("intermediate_steps") or [],
        )


class GenerateDocResponse(ChatResponse):
    """Same envelope as ChatResponse, returned by /api/v1/generate."""


# ── Stream events ─────────────────────────────────────────────────────


@dataclass(frozen=True)
class StreamEvent:
    """A decoded SSE event: type is "token" or "done".

    Token events may carry a text fragment in content. Done events never
    carry a payload and end the stream.
    """

    type: str
    content: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]):
        """Validate the "type" discriminator, then decode the variant's fields.

        Raises ValueError for an unknown type or non-string token content;
        the stream controller skips such lines.
        """
        kind = data.get("type")
        if kind == TOKEN:
            content = data.get("content")
            if content is not None and not isinstance(content, str):
                raise ValueError(
                    f"token content must be a string, got {type(content).__name__}"
                )
            return cls(type=TOKEN, content=content)
        if kind == DONE:
            return cls(type=DONE)
        raise ValueError(f"unknown stream event type: {kind!r}")

    def is_token(self) -> bool:
        return self.type == TOKEN

    def is_done(self) -> bool:
        return self.type == DONE


class ChatStreamEvent(StreamEvent):
    """Event yielded by streamed_chat()."""


class GenerateDocStreamEvent(StreamEvent):
    """Event yielded by streamed_generate_doc()."""
