"""Incremental server-sent-event frame parser over a blocking byte source."""

from __future__ import annotations

from collections.abc import Iterator
from enum import Enum
from typing import Protocol

import structlog

logger = structlog.get_logger()

DELIMITER = b"\n\n"
FIELD_NAME = b"data:"
DONE_SENTINEL = "[DONE]"


class ByteSource(Protocol):
    """Anything with a blocking ``read(size) -> bytes``."""

    def read(self, size: int, /) -> bytes: ...


class StreamStatus(str, Enum):
    OPEN = "open"
    COMPLETED = "completed"
    ABORTED = "aborted"


class ResponseReader:
    """Adapts an iterator of byte chunks to the blocking ``read`` protocol.

    Returns at most ``size`` bytes per read and keeps the rest for the
    next call. An empty chunk reads as ``b""``; exhaustion of the
    iterator raises ``EOFError``.
    """

    def __init__(self, chunks: Iterator[bytes]) -> None:
        self._chunks = iter(chunks)
        self._pending = b""

    def read(self, size: int, /) -> bytes:
        if not self._pending:
            try:
                self._pending = next(self._chunks)
            except StopIteration:
                raise EOFError("byte stream exhausted before end-of-stream sentinel") from None
        data, self._pending = self._pending[:size], self._pending[size:]
        return data


class SSEStream:
    """Iterator of event payloads decoded from a chunked byte source.

    Frames look like ``data: <payload>\\n\\n``. A ``[DONE]`` payload ends
    the stream normally; a failing read ends it as aborted. Either way
    iteration just stops; :attr:`status` and :attr:`error` tell the two
    apart afterwards.
    """

    def __init__(
        self,
        source: ByteSource,
        initial_capacity: int = 4 * 1024,
        min_slack: int = 128,
    ) -> None:
        if initial_capacity <= 0:
            raise ValueError("initial_capacity must be positive")
        self._source = source
        self._buf = bytearray(initial_capacity)
        self._filled = 0
        self._min_slack = min_slack
        self._frames = 0
        self.status = StreamStatus.OPEN
        self.error: BaseException | None = None

    @property
    def capacity(self) -> int:
        return len(self._buf)

    def __iter__(self) -> SSEStream:
        return self

    def __next__(self) -> str:
        while self.status is StreamStatus.OPEN:
            payload = self._take_frame()
            if payload is not None:
                return payload
            if self.status is not StreamStatus.OPEN:
                break
            self._fill()
        raise StopIteration

    def _take_frame(self) -> str | None:
        """Pop the first complete frame in the buffer and return its payload.

        Returns None when no complete data frame is buffered yet.
        """
        while True:
            pos = self._buf.find(DELIMITER, 0, self._filled)
            if pos < 0:
                return None

            frame = bytes(self._buf[:pos])
            consumed = pos + len(DELIMITER)
            self._buf[: self._filled - consumed] = self._buf[consumed : self._filled]
            self._filled -= consumed

            if not frame.startswith(FIELD_NAME):
                logger.debug("sse_frame_skipped", frame_length=len(frame))
                continue

            value = frame[len(FIELD_NAME) :]
            if value.startswith(b" "):
                value = value[1:]
            payload = value.decode("utf-8", errors="replace")
            if payload == DONE_SENTINEL:
                self.status = StreamStatus.COMPLETED
                logger.debug("sse_stream_completed", frames=self._frames)
                return None

            self._frames += 1
            return payload

    def _fill(self) -> None:
        while len(self._buf) - self._filled < self._min_slack:
            self._buf.extend(bytes(len(self._buf)))

        try:
            data = self._source.read(len(self._buf) - self._filled)
        except Exception as e:
            self.status = StreamStatus.ABORTED
            self.error = e
            logger.warning(
                "sse_stream_aborted",
                frames=self._frames,
                buffered=self._filled,
                error=str(e),
                error_type=type(e).__name__,
            )
            return

        end = self._filled + len(data)
        self._buf[self._filled : end] = data
        self._filled = end
