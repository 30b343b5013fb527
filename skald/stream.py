"""
stream.py — Stream controller for Skald's SSE endpoints

Drives one streaming request to completion and exposes it as a lazy,
cancellable sequence of typed events:

  httpx bytes -> FrameDecoder lines -> data records -> JSON -> decode_event()

Termination paths:
  - a record with "type": "done"   (yielded, then the stream stops)
  - clean end of body              (buffered tail flushed once, no error)
  - idle timeout                   (no bytes for idle_timeout seconds, no error)
  - transport failure              (TransportReadError)
  - consumer cancellation          (close()/aclose() or leaving a with-block)

The response is released exactly once on every path.

The idle timeout is a soft end: a stalled stream finishes the
sequence instead of raising. Callers that need a hard deadline should track
elapsed wall-clock time themselves and treat the idle timeout as a lower
bound.
"""

import json
import logging
from typing import Any, AsyncIterator, Callable, Dict, Generic, Iterator, Optional, Tuple, TypeVar

import httpx

from .errors import HttpStatusError, TransportInitError, TransportReadError
from .frame_decoder import FrameDecoder

logger = logging.getLogger("skald.stream")

DATA_PREFIX = "data: "
DONE_TYPE = "done"
DEFAULT_IDLE_TIMEOUT = 30.0

E = TypeVar("E")
EventDecoder = Callable[[Dict[str, Any]], E]


def parse_data_line(line: str) -> Optional[Dict[str, Any]]:
    """Classify one framed line and return its JSON object payload, if any.

    Blank lines, comments (":") and non-data fields yield None. A data
    line whose payload is not a JSON object also yields None: a stray
    malformed line must not abort an otherwise healthy stream.
    """
    if not line.strip() or line.startswith(":"):
        return None
    if not line.startswith(DATA_PREFIX):
        return None

    payload = line[len(DATA_PREFIX):]
    try:
        data = json.loads(payload)
    except ValueError:
        logger.debug("Skipping malformed data line: %.200s", payload)
        return None

    if not isinstance(data, dict):
        logger.debug("Skipping non-object data line: %.200s", payload)
        return None
    return data


def _stream_timeout(base: httpx.Timeout, idle_timeout: Optional[float]) -> httpx.Timeout:
    # httpx's read timeout is per read call, i.e. "no bytes for N seconds"
    return httpx.Timeout(
        connect=base.connect,
        read=idle_timeout,
        write=base.write,
        pool=base.pool,
    )


class _EventStreamBase(Generic[E]):
    def __init__(
        self,
        response: httpx.Response,
        decode_event: EventDecoder,
        chunk_size: Optional[int] = None,
    ):
        self.response = response
        self._decode_event = decode_event
        self._chunk_size = chunk_size
        self._released = False

    @property
    def released(self) -> bool:
        """True once the underlying response has been closed."""
        return self._released

    def _decode_line(self, line: str) -> Optional[Tuple[E, bool]]:
        """Return (event, is_terminal) for a qualifying line, else None."""
        data = parse_data_line(line)
        if data is None:
            return None
        try:
            event = self._decode_event(data)
        except ValueError as e:
            logger.debug("Skipping undecodable event: %s", e)
            return None
        return event, data.get("type") == DONE_TYPE

    def _log_idle_timeout(self) -> None:
        logger.warning(
            "No data from %s within the idle timeout; ending stream",
            self.response.url,
        )


class EventStream(_EventStreamBase[E]):
    """Synchronous event sequence over a streaming httpx.Response.

    Iterate it directly; use it as a context manager (or call close()) to
    release the connection when stopping early. A stream abandoned without
    either holds its connection until the cycle garbage collector runs.
    """

    def __init__(
        self,
        response: httpx.Response,
        decode_event: EventDecoder,
        chunk_size: Optional[int] = None,
    ):
        super().__init__(response, decode_event, chunk_size)
        self._events = self._iter_events()

    def __iter__(self) -> Iterator[E]:
        return self

    def __next__(self) -> E:
        return next(self._events)

    def __enter__(self) -> "EventStream[E]":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def close(self) -> None:
        self._events.close()
        self._release()

    def _release(self) -> None:
        if self._released:
            return
        self._released = True
        self.response.close()
        logger.debug("Released stream response for %s", self.response.url)

    def _iter_events(self) -> Iterator[E]:
        decoder = FrameDecoder()
        try:
            try:
                for chunk in self.response.iter_bytes(self._chunk_size):
                    for line in decoder.ingest(chunk):
                        decoded = self._decode_line(line)
                        if decoded is None:
                            continue
                        event, terminal = decoded
                        yield event
                        if terminal:
                            return
            except httpx.ReadTimeout:
                self._log_idle_timeout()
                return
            except httpx.TransportError as e:
                raise TransportReadError(f"Stream read failed: {e}") from e

            tail = decoder.flush()
            if tail is not None:
                decoded = self._decode_line(tail)
                if decoded is not None:
                    yield decoded[0]
        finally:
            self._release()


class AsyncEventStream(_EventStreamBase[E]):
    """Asynchronous event sequence over a streaming httpx.Response.

    Use ``async with`` (or call aclose()) when stopping early: an abandoned
    async generator is otherwise only finalized by the event loop.
    """

    def __init__(
        self,
        response: httpx.Response,
        decode_event: EventDecoder,
        chunk_size: Optional[int] = None,
    ):
        super().__init__(response, decode_event, chunk_size)
        self._events = self._aiter_events()

    def __aiter__(self) -> AsyncIterator[E]:
        return self

    async def __anext__(self) -> E:
        return await self._events.__anext__()

    async def __aenter__(self) -> "AsyncEventStream[E]":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._events.aclose()
        await self._release()

    async def _release(self) -> None:
        if self._released:
            return
        self._released = True
        await self.response.aclose()
        logger.debug("Released stream response for %s", self.response.url)

    async def _aiter_events(self) -> AsyncIterator[E]:
        decoder = FrameDecoder()
        try:
            try:
                async for chunk in self.response.aiter_bytes(self._chunk_size):
                    for line in decoder.ingest(chunk):
                        decoded = self._decode_line(line)
                        if decoded is None:
                            continue
                        event, terminal = decoded
                        yield event
                        if terminal:
                            return
            except httpx.ReadTimeout:
                self._log_idle_timeout()
                return
            except httpx.TransportError as e:
                raise TransportReadError(f"Stream read failed: {e}") from e

            tail = decoder.flush()
            if tail is not None:
                decoded = self._decode_line(tail)
                if decoded is not None:
                    yield decoded[0]
        finally:
            await self._release()


# ── Opening ───────────────────────────────────────────────────────────


def _error_body(raw: bytes) -> str:
    return raw.decode("utf-8", errors="replace") or "Unknown error"


def open_stream(
    client: httpx.Client,
    method: str,
    url: str,
    *,
    decode_event: EventDecoder,
    json: Optional[Dict[str, Any]] = None,
    headers: Optional[Dict[str, str]] = None,
    idle_timeout: Optional[float] = DEFAULT_IDLE_TIMEOUT,
    chunk_size: Optional[int] = None,
) -> EventStream:
    """Send a streaming request and return its event sequence.

    The status is checked before any body is consumed: a non-2xx answer
    raises HttpStatusError carrying the raw body text.

    chunk_size=None surfaces bytes as soon as the transport delivers
    them; a fixed size makes httpx hold data back until it fills a chunk.
    """
    request = client.build_request(
        method,
        url,
        json=json,
        headers=headers,
        timeout=_stream_timeout(client.timeout, idle_timeout),
    )
    try:
        response = client.send(request, stream=True)
    except httpx.TransportError as e:
        raise TransportInitError(f"Failed to open stream to API: {e}") from e

    if not response.is_success:
        try:
            body = _error_body(response.read())
        except httpx.TransportError as e:
            raise TransportReadError(f"Failed to read error body: {e}") from e
        finally:
            response.close()
        raise HttpStatusError(response.status_code, body)

    return EventStream(response, decode_event, chunk_size)


async def aopen_stream(
    client: httpx.AsyncClient,
    method: str,
    url: str,
    *,
    decode_event: EventDecoder,
    json: Optional[Dict[str, Any]] = None,
    headers: Optional[Dict[str, str]] = None,
    idle_timeout: Optional[float] = DEFAULT_IDLE_TIMEOUT,
    chunk_size: Optional[int] = None,
) -> AsyncEventStream:
    """Async twin of open_stream()."""
    request = client.build_request(
        method,
        url,
        json=json,
        headers=headers,
        timeout=_stream_timeout(client.timeout, idle_timeout),
    )
    try:
        response = await client.send(request, stream=True)
    except httpx.TransportError as e:
        raise TransportInitError(f"Failed to open stream to API: {e}") from e

    if not response.is_success:
        try:
            body = _error_body(await response.aread())
        except httpx.TransportError as e:
            raise TransportReadError(f"Failed to read error body: {e}") from e
        finally:
            await response.aclose()
        raise HttpStatusError(response.status_code, body)

    return AsyncEventStream(response, decode_event, chunk_size)
