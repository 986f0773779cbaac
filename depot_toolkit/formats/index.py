"""Depot index format parser.

The index maps each manifest item id to the chunks holding its content in
the data blob. Unlike the manifest it is big-endian 64-bit throughout:

- record header (24 bytes): id, chunk table byte length, mode
- chunk table: (offset, length) pairs, 16 bytes each

Records repeat until the stream ends on a record boundary.
"""

from dataclasses import dataclass, field
from enum import IntEnum
from io import BytesIO
from pathlib import Path
from typing import BinaryIO, Dict, Iterator, List, Optional, Union

from ..errors import FormatError
from ..utils.binary import BinaryReader

RECORD_HEADER_SIZE = 24
CHUNK_RECORD_SIZE = 16


class Mode(IntEnum):
    """Transform applied to every chunk of a file."""

    RAW = 0
    COMPRESSED = 1
    ENCRYPTED_COMPRESSED = 2
    ENCRYPTED = 3

    @property
    def is_encrypted(self) -> bool:
        return self in (Mode.ENCRYPTED, Mode.ENCRYPTED_COMPRESSED)

    @property
    def is_compressed(self) -> bool:
        return self in (Mode.COMPRESSED, Mode.ENCRYPTED_COMPRESSED)


@dataclass(frozen=True)
class Chunk:
    """A byte range in the data blob."""

    offset: int
    length: int


@dataclass
class IndexEntry:
    """Mode and ordered chunks for one file id."""

    mode: Mode = Mode.RAW
    chunks: List[Chunk] = field(default_factory=list)

    @property
    def stored_size(self) -> int:
        return sum(chunk.length for chunk in self.chunks)

    def to_dict(self) -> dict:
        return {
            "mode": int(self.mode),
            "chunks": [{"offset": c.offset, "length": c.length} for c in self.chunks],
        }


class Index:
    """Parsed depot index, keyed by file id."""

    def __init__(self, entries: Optional[Dict[int, IndexEntry]] = None):
        self._entries: Dict[int, IndexEntry] = dict(entries or {})

    def __getitem__(self, file_id: int) -> IndexEntry:
        return self._entries[file_id]

    def __contains__(self, file_id: int) -> bool:
        return file_id in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[int]:
        return iter(self._entries)

    def get(self, file_id: int, default: Optional[IndexEntry] = None) -> Optional[IndexEntry]:
        return self._entries.get(file_id, default)

    def to_dict(self) -> dict:
        return {str(file_id): entry.to_dict() for file_id, entry in self._entries.items()}

    @classmethod
    def from_file(cls, storage_dir: Union[str, Path], depot: int) -> "Index":
        """Load ``{depot}.index`` from ``storage_dir``."""
        path = Path(storage_dir) / f"{depot}.index"
        with open(path, "rb") as f:
            return cls.from_stream(f, source=str(path))

    @classmethod
    def from_bytes(cls, data: bytes) -> "Index":
        return cls.from_stream(BytesIO(data))

    @classmethod
    def from_stream(cls, stream: BinaryIO, source: Optional[str] = None) -> "Index":
        """Parse index records until the stream ends on a record boundary."""
        reader = BinaryReader(stream)
        entries: Dict[int, IndexEntry] = {}
        offset = 0

        while True:
            try:
                header = reader.try_read_u64_be_list(3)
            except EOFError:
                raise FormatError("truncated index record header", source, offset) from None
            if header is None:
                break

            file_id, table_length, mode_value = header
            try:
                mode = Mode(mode_value)
            except ValueError:
                raise FormatError(f"unknown mode {mode_value} for file {file_id}", source, offset) from None
            if table_length % CHUNK_RECORD_SIZE:
                raise FormatError(
                    f"chunk table length {table_length} for file {file_id} is not a multiple of {CHUNK_RECORD_SIZE}",
                    source,
                    offset,
                )

            offset += RECORD_HEADER_SIZE
            chunks = []
            for _ in range(table_length // CHUNK_RECORD_SIZE):
                try:
                    chunk_offset, chunk_length = reader.read_u64_be_list(2)
                except EOFError:
                    raise FormatError(f"truncated chunk table for file {file_id}", source, offset) from None
                chunks.append(Chunk(offset=chunk_offset, length=chunk_length))
                offset += CHUNK_RECORD_SIZE

            entries[file_id] = IndexEntry(mode=mode, chunks=chunks)

        return cls(entries)
