"""
client.py — Skald API client (sync and async)

Skald stores memos, processes them (summary, tags, chunks) and serves
semantic search, chat and document generation over them.

  with Skald("sk_proj_...") as skald:
      skald.create_memo(MemoData(title="Meeting Notes", content="..."))
      with skald.streamed_chat(ChatRequest(query="What are our goals?")) as stream:
          for event in stream:
              if event.is_token():
                  print(event.content, end="")

Blocking calls raise HttpStatusError for any non-2xx answer. Streaming
calls check the status before returning the event sequence and raise the
same error, so both paths fail the same way.
"""

import logging
from typing import Any, Dict, Optional, Tuple, Union
from urllib.parse import quote

import httpx

from . import __version__
from .config import ClientConfig, load_config, redact_headers
from .errors import (
    HttpStatusError,
    ResponseDecodeError,
    TransportInitError,
    TransportReadError,
)
from .models import (
    ChatRequest,
    ChatResponse,
    ChatStreamEvent,
    CreateMemoResponse,
    GenerateDocRequest,
    GenerateDocResponse,
    GenerateDocStreamEvent,
    IdType,
    MemoData,
    MemoStatusResponse,
    SearchRequest,
    SearchResponse,
    UpdateMemoData,
)
from .stream import AsyncEventStream, EventDecoder, EventStream, aopen_stream, open_stream

logger = logging.getLogger("skald.client")

MEMO_PATH = "/api/v1/memo"
SEARCH_PATH = "/api/v1/search"
CHAT_PATH = "/api/v1/chat"
GENERATE_PATH = "/api/v1/generate"

USER_AGENT = f"skald-python/{__version__}"


# ── Shared request building ───────────────────────────────────────────


def _memo_target(
    memo_id: str, id_type: Union[IdType, str], suffix: str = ""
) -> Tuple[str, Dict[str, str]]:
    """Return (path, query params) for a memo addressed by uuid or reference id.

    id_type is only sent when it is not the default; values are passed
    through unchecked so the service reports invalid ones.
    """
    path = f"{MEMO_PATH}/{quote(memo_id, safe='')}{suffix}"
    params: Dict[str, str] = {}
    if id_type != IdType.MEMO_UUID:
        params["id_type"] = id_type.value if isinstance(id_type, IdType) else id_type
    return path, params


def _transport_error(e: httpx.TransportError, path: str):
    if isinstance(e, (httpx.ConnectError, httpx.ConnectTimeout, httpx.UnsupportedProtocol)):
        return TransportInitError(f"Request to {path} failed: {e}")
    return TransportReadError(f"Request to {path} failed: {e}")


def _decode_body(response: httpx.Response) -> Dict[str, Any]:
    if not response.is_success:
        raise HttpStatusError(response.status_code, response.text or "Unknown error")
    try:
        data = response.json()
    except ValueError as e:
        raise ResponseDecodeError(
            "Failed to decode API response as JSON",
            status_code=response.status_code,
            body=response.text[:200],
        ) from e
    if not isinstance(data, dict):
        raise ResponseDecodeError(
            "API response is not a JSON object",
            status_code=response.status_code,
            body=response.text[:200],
        )
    return data


def _check_status(response: httpx.Response) -> None:
    # DELETE answers 204 No Content on success
    if not response.is_success:
        raise HttpStatusError(response.status_code, response.text or "Unknown error")


class _SkaldBase:
    def __init__(
        self,
        api_key: Optional[str],
        base_url: Optional[str],
        timeout: Optional[float],
        stream_idle_timeout: Optional[float],
        config_path: Optional[str],
    ):
        overrides: Dict[str, Any] = {
            "api_key": api_key,
            "base_url": base_url,
            "timeout": timeout,
        }
        if stream_idle_timeout is not None:
            overrides["stream"] = {"idle_timeout": stream_idle_timeout}
        self.config: ClientConfig = load_config(overrides, config_path=config_path)

    @property
    def base_url(self) -> str:
        return self.config.base_url

    def _url(self, path: str) -> str:
        return f"{self.config.base_url}{path}"

    def _headers(self, json_body: bool = False, stream: bool = False) -> Dict[str, str]:
        headers = {
            "Authorization": f"Bearer {self.config.api_key}",
            "User-Agent": USER_AGENT,
        }
        if json_body:
            headers["Content-Type"] = "application/json"
        if stream:
            headers["Accept"] = "text/event-stream"
        return headers

    def _log_request(self, method: str, url: str, headers: Dict[str, str]) -> None:
        logger.debug("%s %s headers=%s", method, url, redact_headers(headers))


# ── Sync client ───────────────────────────────────────────────────────


class Skald(_SkaldBase):
    """Synchronous Skald client backed by httpx.Client.

    Pass http_client to reuse a configured httpx.Client (proxies, mounts,
    test transports); a client passed in is never closed by Skald.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        *,
        http_client: Optional[httpx.Client] = None,
        timeout: Optional[float] = None,
        stream_idle_timeout: Optional[float] = None,
        config_path: Optional[str] = None,
    ):
        super().__init__(api_key, base_url, timeout, stream_idle_timeout, config_path)
        self._owns_http = http_client is None
        self._http = http_client or httpx.Client(timeout=self.config.timeout)

    def close(self) -> None:
        if self._owns_http:
            self._http.close()

    def __enter__(self) -> "Skald":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    # --- Memos ---

    def create_memo(self, memo_data: MemoData) -> CreateMemoResponse:
        """Create a memo; the service processes it asynchronously."""
        data = self._send("POST", MEMO_PATH, json=memo_data.to_dict())
        return CreateMemoResponse.from_dict(data)

    def update_memo(
        self,
        memo_id: str,
        update_data: UpdateMemoData,
        id_type: Union[IdType, str] = IdType.MEMO_UUID,
    ) -> CreateMemoResponse:
        """Update the fields set on update_data. New content triggers reprocessing."""
        path, params = _memo_target(memo_id, id_type)
        data = self._send("PATCH", path, json=update_data.to_dict(), params=params)
        return CreateMemoResponse.from_dict(data)

    def delete_memo(self, memo_id: str, id_type: Union[IdType, str] = IdType.MEMO_UUID) -> None:
        """Delete a memo and all its associated data."""
        path, params = _memo_target(memo_id, id_type)
        _check_status(self._request("DELETE", path, params=params))

    def check_memo_status(
        self, memo_id: str, id_type: Union[IdType, str] = IdType.MEMO_UUID
    ) -> MemoStatusResponse:
        path, params = _memo_target(memo_id, id_type, "/status")
        data = self._send("GET", path, params=params)
        return MemoStatusResponse.from_dict(data)

    # --- Search, chat, generation ---

    def search(self, search_params: SearchRequest) -> SearchResponse:
        data = self._send("POST", SEARCH_PATH, json=search_params.to_dict())
        return SearchResponse.from_dict(data)

    def chat(self, chat_params: ChatRequest) -> ChatResponse:
        data = self._send("POST", CHAT_PATH, json=chat_params.to_dict(stream=False))
        return ChatResponse.from_dict(data)

    def streamed_chat(self, chat_params: ChatRequest) -> EventStream:
        """Ask a question and stream the answer as ChatStreamEvent tokens."""
        return self._stream(CHAT_PATH, chat_params.to_dict(stream=True), ChatStreamEvent.from_dict)

    def generate_doc(self, generate_params: GenerateDocRequest) -> GenerateDocResponse:
        data = self._send("POST", GENERATE_PATH, json=generate_params.to_dict(stream=False))
        return GenerateDocResponse.from_dict(data)

    def streamed_generate_doc(self, generate_params: GenerateDocRequest) -> EventStream:
        """Generate a document and stream it as GenerateDocStreamEvent tokens."""
        return self._stream(
            GENERATE_PATH,
            generate_params.to_dict(stream=True),
            GenerateDocStreamEvent.from_dict,
        )

    # --- Transport ---

    def _request(
        self,
        method: str,
        path: str,
        json: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, str]] = None,
    ) -> httpx.Response:
        url = self._url(path)
        headers = self._headers(json_body=json is not None)
        self._log_request(method, url, headers)
        try:
            return self._http.request(method, url, json=json, params=params or None, headers=headers)
        except httpx.TransportError as e:
            raise _transport_error(e, path) from e

    def _send(self, method: str, path: str, **kwargs: Any) -> Dict[str, Any]:
        return _decode_body(self._request(method, path, **kwargs))

    def _stream(self, path: str, payload: Dict[str, Any], decode_event: EventDecoder) -> EventStream:
        url = self._url(path)
        headers = self._headers(json_body=True, stream=True)
        self._log_request("POST", url, headers)
        return open_stream(
            self._http,
            "POST",
            url,
            decode_event=decode_event,
            json=payload,
            headers=headers,
            idle_timeout=self.config.stream_idle_timeout,
        )


# ── Async client ──────────────────────────────────────────────────────


class AsyncSkald(_SkaldBase):
    """Asynchronous Skald client backed by httpx.AsyncClient."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        *,
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: Optional[float] = None,
        stream_idle_timeout: Optional[float] = None,
        config_path: Optional[str] = None,
    ):
        super().__init__(api_key, base_url, timeout, stream_idle_timeout, config_path)
        self._owns_http = http_client is None
        self._http = http_client or httpx.AsyncClient(timeout=self.config.timeout)

    async def aclose(self) -> None:
        if self._owns_http:
            await self._http.aclose()

    async def __aenter__(self) -> "AsyncSkald":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def create_memo(self, memo_data: MemoData) -> CreateMemoResponse:
        data = await self._send("POST", MEMO_PATH, json=memo_data.to_dict())
        return CreateMemoResponse.from_dict(data)

    async def update_memo(
        self,
        memo_id: str,
        update_data: UpdateMemoData,
        id_type: Union[IdType, str] = IdType.MEMO_UUID,
    ) -> CreateMemoResponse:
        path, params = _memo_target(memo_id, id_type)
        data = await self._send("PATCH", path, json=update_data.to_dict(), params=params)
        return CreateMemoResponse.from_dict(data)

    async def delete_memo(
        self, memo_id: str, id_type: Union[IdType, str] = IdType.MEMO_UUID
    ) -> None:
        path, params = _memo_target(memo_id, id_type)
        _check_status(await self._request("DELETE", path, params=params))

    async def check_memo_status(
        self, memo_id: str, id_type: Union[IdType, str] = IdType.MEMO_UUID
    ) -> MemoStatusResponse:
        path, params = _memo_target(memo_id, id_type, "/status")
        data = await self._send("GET", path, params=params)
        return MemoStatusResponse.from_dict(data)

    async def search(self, search_params: SearchRequest) -> SearchResponse:
        data = await self._send("POST", SEARCH_PATH, json=search_params.to_dict())
        return SearchResponse.from_dict(data)

    async def chat(self, chat_params: ChatRequest) -> ChatResponse:
        data = await self._send("POST", CHAT_PATH, json=chat_params.to_dict(stream=False))
        return ChatResponse.from_dict(data)

    async def streamed_chat(self, chat_params: ChatRequest) -> AsyncEventStream:
        return await self._stream(
            CHAT_PATH, chat_params.to_dict(stream=True), ChatStreamEvent.from_dict
        )

    async def generate_doc(self, generate_params: GenerateDocRequest) -> GenerateDocResponse:
        data = await self._send(
            "POST", GENERATE_PATH, json=generate_params.to_dict(stream=False)
        )
        return GenerateDocResponse.from_dict(data)

    async def streamed_generate_doc(
        self, generate_params: GenerateDocRequest
    ) -> AsyncEventStream:
        return await self._stream(
            GENERATE_PATH,
            generate_params.to_dict(stream=True),
            GenerateDocStreamEvent.from_dict,
        )

    async def _request(
        self,
        method: str,
        path: str,
        json: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, str]] = None,
    ) -> httpx.Response:
        url = self._url(path)
        headers = self._headers(json_body=json is not None)
        self._log_request(method, url, headers)
        try:
            return await self._http.request(
                method, url, json=json, params=params or None, headers=headers
            )
        except httpx.TransportError as e:
            raise _transport_error(e, path) from e

    async def _send(self, method: str, path: str, **kwargs: Any) -> Dict[str, Any]:
        return _decode_body(await self._request(method, path, **kwargs))

    async def _stream(
        self, path: str, payload: Dict[str, Any], decode_event: EventDecoder
    ) -> AsyncEventStream:
        url = self._url(path)
        headers = self._headers(json_body=True, stream=True)
        self._log_request("POST", url, headers)
        return await aopen_stream(
            self._http,
            "POST",
            url,
            decode_event=decode_event,
            json=payload,
            headers=headers,
            idle_timeout=self.config.stream_idle_timeout,
        )
