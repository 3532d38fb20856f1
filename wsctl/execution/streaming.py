"""Forward a child's output streams to ours while it runs."""

from __future__ import annotations

import logging
import queue
import threading
from typing import IO, Any, Iterable, Iterator, Optional

logger = logging.getLogger(__name__)

CHUNK_SIZE = 8192


def pipe_chunks(pipe: IO[bytes], size: int = CHUNK_SIZE) -> Iterator[bytes]:
    """Yield whatever is available on a pipe until EOF."""
    read = getattr(pipe, "read1", pipe.read)
    try:
        while True:
            chunk = read(size)
            if not chunk:
                break
            yield chunk
    finally:
        pipe.close()


class StreamForwarder:
    """
    Copy one byte source to one sink on background threads.

    Reading and writing run on separate threads joined by an unbounded
    queue, so the child's pipe keeps draining even while the sink is slow.
    Each stream keeps its own write order; nothing is promised about the
    order of lines across two forwarders.
    """

    def __init__(self, name: str, source: Iterable[bytes], sink: Any):
        self.name = name
        self._source = source
        self._sink = sink
        self._queue: queue.Queue[Optional[bytes]] = queue.Queue()
        self._reader = threading.Thread(target=self._read, name=f"{name}-reader", daemon=True)
        self._writer = threading.Thread(target=self._write, name=f"{name}-writer", daemon=True)

    def start(self) -> "StreamForwarder":
        self._reader.start()
        self._writer.start()
        return self

    def _read(self) -> None:
        try:
            for chunk in self._source:
                if chunk:
                    self._queue.put(chunk)
        except (OSError, ValueError) as e:
            logger.debug("%s reader ended: %s", self.name, e)
        finally:
            self._queue.put(None)

    def _write(self) -> None:
        sink_open = True
        while True:
            chunk = self._queue.get()
            if chunk is None:
                break
            if not sink_open:
                continue
            try:
                _write_chunk(self._sink, chunk)
            except (OSError, ValueError) as e:
                # Keep draining so the reader never blocks on a dead sink.
                logger.debug("%s sink closed: %s", self.name, e)
                sink_open = False

    def join(self, timeout: Optional[float] = None) -> None:
        self._reader.join(timeout)
        self._writer.join(timeout)


def _write_chunk(sink: Any, chunk: bytes) -> None:
    binary = getattr(sink, "buffer", None)
    if binary is not None:
        # Text streams buffer separately from their byte buffer.
        sink.flush()
        binary.write(chunk)
        binary.flush()
    elif hasattr(sink, "encoding"):
        sink.write(chunk.decode(sink.encoding or "utf-8", errors="replace"))
        sink.flush()
    else:
        sink.write(chunk)
        sink.flush()


def forward(streams: dict[str, tuple[Iterable[bytes], Any]]) -> list[StreamForwarder]:
    """Start one forwarder per named (source, sink) pair."""
    return [StreamForwarder(name, source, sink).start() for name, (source, sink) in streams.items()]
