"""
frame_decoder.py — Incremental line framer for text/event-stream bodies

Turns arbitrarily sized byte chunks (httpx response.iter_bytes()) into
complete logical lines. Pure state machine: no I/O, no event semantics.

Handles: lines split across chunks, many lines per chunk, empty chunks,
CRLF line endings, multi-byte UTF-8 characters split across chunks.
"""

from typing import List, Optional


class FrameDecoder:
    """Owned line buffer with two operations: ingest() and flush().

    Lines are split on LF. A CR immediately before the LF is dropped so
    CRLF streams produce the same lines as LF streams. Bytes are decoded
    as UTF-8 only after a line is complete.
    """

    def __init__(self) -> None:
        self._buffer = bytearray()

    @property
    def pending(self) -> int:
        """Number of buffered bytes not yet terminated by a line break."""
        return len(self._buffer)

    def ingest(self, chunk: bytes) -> List[str]:
        """Consume a chunk and return every line it completes, in order."""
        if not chunk:
            return []

        # Earlier bytes hold no line break; only the new chunk needs scanning
        start = len(self._buffer)
        self._buffer += chunk

        last_newline = self._buffer.rfind(b"\n", start)
        if last_newline == -1:
            return []

        complete = bytes(self._buffer[:last_newline])
        del self._buffer[: last_newline + 1]

        return [_decode_line(raw) for raw in complete.split(b"\n")]

    def flush(self) -> Optional[str]:
        """Return the unterminated remainder as a final line, if any.

        Called once at end of stream; a body may end without a trailing
        line break.
        """
        if not self._buffer:
            return None
        remainder = bytes(self._buffer)
        self._buffer.clear()
        return remainder.decode("utf-8", errors="replace")


def _decode_line(raw: bytes) -> str:
    if raw.endswith(b"\r"):
        raw = raw[:-1]
    return raw.decode("utf-8", errors="replace")
