"""File assembly: one continuous stream over all chunks of a file."""

import io
from typing import BinaryIO, Optional

from ..formats.index import IndexEntry
from .chunk import ChunkStream
from .data import DataSource

COPY_BLOCK_SIZE = 1024 * 1024


class FileStream(io.RawIOBase):
    """Readable stream of a file's decoded bytes, in chunk order.

    Only one chunk is decoded at a time. Its stream is closed as soon as it
    is exhausted, or when this stream is closed early.
    """

    def __init__(self, entry: IndexEntry, source: DataSource, key: Optional[bytes] = None):
        super().__init__()
        self.entry = entry
        self._source = source
        self._key = key
        self._chunk_index = 0
        self._current: Optional[ChunkStream] = None

    def readable(self) -> bool:
        return True

    def _next_chunk(self) -> Optional[ChunkStream]:
        chunks = self.entry.chunks
        while self._chunk_index < len(chunks):
            chunk = chunks[self._chunk_index]
            self._chunk_index += 1
            # Zero-length chunks carry nothing and never need a key
            if chunk.length == 0:
                continue
            raw = self._source.read_at(chunk.offset, chunk.length)
            return ChunkStream(raw, self.entry.mode, self._key)
        return None

    def readinto(self, b) -> int:
        if self.closed:
            raise ValueError("I/O operation on closed file stream")
        if not len(b):
            return 0

        while True:
            if self._current is None:
                self._current = self._next_chunk()
                if self._current is None:
                    return 0

            n = self._current.readinto(b)
            if n:
                return n
            self._current.close()
            self._current = None

    def copy_to(self, dst: BinaryIO, block_size: int = COPY_BLOCK_SIZE) -> int:
        """Write the whole stream into ``dst``. Returns bytes written."""
        total = 0
        while True:
            data = self.read(block_size)
            if not data:
                break
            dst.write(data)
            total += len(data)
        return total

    def close(self) -> None:
        current = getattr(self, "_current", None)
        if current is not None:
            current.close()
            self._current = None
        super().close()
