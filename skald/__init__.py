"""Python client for the Skald knowledge-base API."""

__version__ = "0.1.0"

from .client import AsyncSkald, Skald  # noqa: E402
from .errors import (  # noqa: E402
    ConfigError,
    HttpStatusError,
    ResponseDecodeError,
    SkaldError,
    TransportInitError,
    TransportReadError,
)
from .frame_decoder import FrameDecoder  # noqa: E402
from .models import (  # noqa: E402
    ChatRequest,
    ChatResponse,
    ChatStreamEvent,
    CreateMemoResponse,
    Filter,
    FilterOperator,
    FilterType,
    GenerateDocRequest,
    GenerateDocResponse,
    GenerateDocStreamEvent,
    IdType,
    MemoData,
    MemoStatusResponse,
    SearchMethod,
    SearchRequest,
    SearchResponse,
    SearchResult,
    StreamEvent,
    UpdateMemoData,
)
from .stream import AsyncEventStream, EventStream  # noqa: E402

__all__ = [
    "AsyncEventStream",
    "AsyncSkald",
    "ChatRequest",
    "ChatResponse",
    "ChatStreamEvent",
    "ConfigError",
    "CreateMemoResponse",
    "EventStream",
    "Filter",
    "FilterOperator",
    "FilterType",
    "FrameDecoder",
    "GenerateDocRequest",
    "GenerateDocResponse",
    "GenerateDocStreamEvent",
    "HttpStatusError",
    "IdType",
    "MemoData",
    "MemoStatusResponse",
    "ResponseDecodeError",
    "SearchMethod",
    "SearchRequest",
    "SearchResponse",
    "SearchResult",
    "Skald",
    "SkaldError",
    "StreamEvent",
    "TransportInitError",
    "TransportReadError",
    "UpdateMemoData",
]
