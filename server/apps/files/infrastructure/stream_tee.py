"""Fan one byte stream out to several readers without buffering it.

The source is read exactly once, by the primary reader. Every chunk
the primary reader pulls is also handed to each side reader through a
bounded queue. A side reader that has seen enough closes itself and
stops receiving chunks, so it never holds the primary reader back
after that point.
"""

import io
import logging
import queue
import threading
from typing import BinaryIO, Final, final, override

from server.apps.files.exceptions import StreamAbortedError

logger = logging.getLogger(__name__)

_DEFAULT_CHUNK_SIZE: Final = 64 * 1024
_DEFAULT_SIDE_BUFFER_CHUNKS: Final = 16
_PUT_POLL_SECONDS: Final = 0.05

# Queue markers
_END_OF_STREAM: Final = object()
_ABORTED: Final = object()


@final
class SideReader(io.RawIOBase):
    """Read-only view of the chunks a ``StreamTee`` forwards to it."""

    def __init__(self, max_chunks: int) -> None:
        """Initialize SideReader.

        Args:
            max_chunks: Queue capacity, in chunks.
        """
        super().__init__()
        self._chunks: queue.Queue[object] = queue.Queue(maxsize=max_chunks)
        self._pending = memoryview(b'')
        self._finished = False
        self._detached = threading.Event()

    @override
    def readable(self) -> bool:
        return True

    @override
    def readinto(self, buffer: bytearray | memoryview) -> int:  # type: ignore[override]
        """Copy the next available bytes into ``buffer``.

        Blocks until the primary reader forwards a chunk or finishes.

        Raises:
            StreamAbortedError: If the primary reader stopped before
                the end of the source.
        """
        if not self._pending and not self._finished:
            item = self._chunks.get()
            if item is _ABORTED:
                self._finished = True
                raise StreamAbortedError('Source stream was abandoned')
            if item is _END_OF_STREAM:
                self._finished = True
            else:
                self._pending = memoryview(item)  # type: ignore[arg-type]

        size = min(len(buffer), len(self._pending))
        buffer[:size] = self._pending[:size]
        self._pending = self._pending[size:]
        return size

    @override
    def close(self) -> None:
        """Stop receiving chunks and drop the ones already queued."""
        self._detached.set()
        while True:
            try:
                self._chunks.get_nowait()
            except queue.Empty:
                break
        super().close()

    def offer(self, item: object) -> None:
        """Queue an item, waiting while the queue is full.

        Returns as soon as the reader is closed, whatever the queue
        state, so a closed reader never blocks the producer.
        """
        while not self._detached.is_set():
            try:
                self._chunks.put(item, timeout=_PUT_POLL_SECONDS)
            except queue.Full:
                continue
            return


@final
class PrimaryReader(io.RawIOBase):
    """Reader that pulls from the source on behalf of the whole tee."""

    def __init__(self, tee: 'StreamTee') -> None:
        """Initialize PrimaryReader.

        Args:
            tee: Owning tee.
        """
        super().__init__()
        self._tee = tee
        self._pending = memoryview(b'')
        self.bytes_read = 0

    @override
    def readable(self) -> bool:
        return True

    @override
    def readinto(self, buffer: bytearray | memoryview) -> int:  # type: ignore[override]
        """Copy source bytes into ``buffer``, forwarding new chunks."""
        if not self._pending:
            chunk = self._tee.pull()
            if not chunk:
                return 0
            self._pending = memoryview(chunk)

        size = min(len(buffer), len(self._pending))
        buffer[:size] = self._pending[:size]
        self._pending = self._pending[size:]
        self.bytes_read += size
        return size


@final
class StreamTee:
    """Duplicate one source stream into a primary and side readers.

    Usage::

        tee = StreamTee(upload)
        header_reader = tee.side()
        ...  # hand header_reader to a worker thread
        try:
            storage.save(name, tee.primary)
        finally:
            tee.close()

    ``close`` must always run: it tells side readers that no more data
    will come, which is what lets their consumers finish.
    """

    def __init__(
        self,
        source: BinaryIO,
        chunk_size: int = _DEFAULT_CHUNK_SIZE,
        side_buffer_chunks: int = _DEFAULT_SIDE_BUFFER_CHUNKS,
    ) -> None:
        """Initialize StreamTee.

        Args:
            source: Readable binary stream, read once.
            chunk_size: Bytes requested from the source per read.
            side_buffer_chunks: Queue capacity of each side reader.
        """
        self._source = source
        self._chunk_size = chunk_size
        self._side_buffer_chunks = side_buffer_chunks
        self._sides: list[SideReader] = []
        self._lock = threading.Lock()
        self._finished = False
        self.primary = PrimaryReader(self)

    @property
    def bytes_read(self) -> int:
        """Bytes delivered to the primary reader so far."""
        return self.primary.bytes_read

    def side(self) -> SideReader:
        """Create a side reader. Must be called before reading starts.

        Returns:
            New side reader receiving every chunk from now on.
        """
        reader = SideReader(self._side_buffer_chunks)
        self._sides.append(reader)
        return reader

    def pull(self) -> bytes:
        """Read the next chunk from the source and forward it.

        Returns:
            Chunk of bytes, empty at end of stream.
        """
        with self._lock:
            if self._finished:
                return b''
            chunk = self._source.read(self._chunk_size)
            if not chunk:
                self._finish(_END_OF_STREAM)
                return b''
            for reader in self._sides:
                reader.offer(chunk)
            return chunk

    def close(self) -> None:
        """Finish the tee, aborting side readers if data is left."""
        with self._lock:
            if not self._finished:
                logger.debug('Stream tee closed before end of source')
                self._finish(_ABORTED)
        self.primary.close()

    def _finish(self, marker: object) -> None:
        self._finished = True
        for reader in self._sides:
            reader.offer(marker)
