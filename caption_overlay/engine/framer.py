"""Line framing for the engine's output streams."""

import asyncio
from collections.abc import AsyncIterator

DEFAULT_CHUNK_SIZE = 4096


class LineFramer:
    """
    Turns arbitrary byte chunks into complete text lines.

    A trailing partial line is kept between chunks and emitted either when its
    newline arrives or when the stream ends (flush). Buffering happens on bytes
    so multi-byte UTF-8 characters split across chunks decode correctly.

    Usage:
        framer = LineFramer()
        for line in framer.feed(chunk):
            handle(line)
        for line in framer.flush():
            handle(line)
    """

    def __init__(self, encoding: str = "utf-8"):
        self.encoding = encoding
        self._buffer = bytearray()

    @property
    def pending(self) -> int:
        """Number of buffered bytes not yet terminated by a newline."""
        return len(self._buffer)

    def feed(self, chunk: bytes) -> list[str]:
        """
        Add a chunk and return every line it completes.

        Args:
            chunk: Raw bytes as read from the pipe

        Returns:
            Completed lines without their line terminator.
        """
        if not chunk:
            return []

        # Only the new bytes are scanned; a long line costs linear time
        end = chunk.rfind(b"\n")
        if end < 0:
            self._buffer.extend(chunk)
            return []

        self._buffer.extend(chunk[:end])
        complete = self._buffer.split(b"\n")
        self._buffer = bytearray(chunk[end + 1 :])
        return [self._decode(raw) for raw in complete]

    def flush(self) -> list[str]:
        """Emit the buffered partial line, if any (end of stream)."""
        if not self._buffer:
            return []
        line = self._decode(self._buffer)
        self._buffer = bytearray()
        return [line]

    def reset(self):
        """Drop buffered state."""
        self._buffer = bytearray()

    def _decode(self, raw: bytes | bytearray) -> str:
        if raw.endswith(b"\r"):
            raw = raw[:-1]
        return bytes(raw).decode(self.encoding, errors="replace")


async def iter_lines(
    reader: asyncio.StreamReader, chunk_size: int = DEFAULT_CHUNK_SIZE
) -> AsyncIterator[str]:
    """
    Lazily yield lines from a stream until EOF.

    Reads raw chunks instead of StreamReader.readline(), which rejects
    lines longer than the reader's limit.

    Args:
        reader: Stream to read (e.g. a subprocess stdout)
        chunk_size: Maximum bytes per read

    Yields:
        Complete lines, then the unterminated tail at EOF.
    """
    framer = LineFramer()
    while True:
        chunk = await reader.read(chunk_size)
        if not chunk:
            break
        for line in framer.feed(chunk):
            yield line

    for line in framer.flush():
        yield line
