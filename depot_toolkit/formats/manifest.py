"""Depot manifest format parser.

A manifest lists every item (file or directory) of one depot version.

Layout (little-endian 32-bit words throughout):
- 56-byte header (14 words)
- ``num_items`` item records of 28 bytes (7 words)
- name blob: null-terminated names addressed by each item's name offset

The hierarchy is encoded with parent indices into the item array, so paths
can only be built once every item has been read.
"""

import logging
import os
from dataclasses import asdict, dataclass, field
from io import BytesIO
from pathlib import Path
from typing import BinaryIO, Iterator, List, Optional, Union

from ..errors import FormatError
from ..utils.binary import BinaryReader

logger = logging.getLogger(__name__)

HEADER_SIZE = 56
ITEM_SIZE = 28
MAX_NAME_LENGTH = 255
NO_PARENT = 0xFFFFFFFF
FILE_TYPE_FLAG = 0x4000

# Characters Windows refuses in file names
ILLEGAL_NAME_CHARS = '\\/:*"<>|'
_SANITIZE_TABLE = str.maketrans("", "", ILLEGAL_NAME_CHARS)


def sanitize_name(name: str) -> str:
    """Strip characters that are illegal in Windows file names."""
    return name.translate(_SANITIZE_TABLE)


@dataclass(frozen=True)
class ManifestHeader:
    """Manifest header (56 bytes).

    Only ``depot_id``, ``depot_version`` and ``num_items`` are interpreted;
    the rest are carried through for dumps and debugging.
    """

    dummy1: int
    depot_id: int
    depot_version: int
    num_items: int
    num_files: int
    block_size: int
    dir_size: int
    dir_name_size: int
    info_count: int
    copy_count: int
    local_count: int
    dummy2: int
    dummy3: int
    checksum: int


@dataclass
class Item:
    """A manifest item record (28 bytes) plus its decoded name and path."""

    size: int
    id: int
    type: int
    parent_index: int
    next_index: int
    first_index: int
    name: str = ""
    path: str = ""  # Not stored in the file

    @property
    def is_directory(self) -> bool:
        return self.type & FILE_TYPE_FLAG == 0

    @property
    def is_root(self) -> bool:
        return self.parent_index == NO_PARENT


@dataclass
class Manifest:
    """Parsed depot manifest."""

    header: ManifestHeader
    items: List[Item] = field(default_factory=list)

    @property
    def depot_id(self) -> int:
        return self.header.depot_id

    @property
    def depot_version(self) -> int:
        return self.header.depot_version

    def files(self) -> Iterator[Item]:
        return (item for item in self.items if not item.is_directory)

    def directories(self) -> Iterator[Item]:
        return (item for item in self.items if item.is_directory)

    def to_dict(self) -> dict:
        data = asdict(self.header)
        data["items"] = [asdict(item) for item in self.items]
        return data

    @classmethod
    def from_file(cls, manifest_dir: Union[str, Path], depot: int, version: int, **kwargs) -> "Manifest":
        """Load ``{depot}_{version}.manifest`` from ``manifest_dir``."""
        path = Path(manifest_dir) / f"{depot}_{version}.manifest"
        with open(path, "rb") as f:
            return cls.from_stream(f, source=str(path), **kwargs)

    @classmethod
    def from_bytes(cls, data: bytes, **kwargs) -> "Manifest":
        return cls.from_stream(BytesIO(data), **kwargs)

    @classmethod
    def from_stream(
        cls,
        stream: BinaryIO,
        source: Optional[str] = None,
        sanitize: Optional[bool] = None,
    ) -> "Manifest":
        """Parse a manifest from a seekable binary stream.

        Args:
            stream: Seekable stream positioned anywhere
            source: Name used in error messages
            sanitize: Strip illegal path characters from names
                (default: only on Windows)
        """
        if sanitize is None:
            sanitize = os.name == "nt"
        return _ManifestParser(stream, source, sanitize).parse()


class _ManifestParser:
    def __init__(self, stream: BinaryIO, source: Optional[str], sanitize: bool):
        self.reader = BinaryReader(stream)
        self.source = source
        self.sanitize = sanitize
        self.size = self.reader.size()

    def _error(self, message: str, offset: Optional[int] = None) -> FormatError:
        return FormatError(message, source=self.source, offset=offset)

    def parse(self) -> Manifest:
        header = self._read_header()
        items = [self._read_item(header.num_items, i) for i in range(header.num_items)]
        manifest = Manifest(header=header, items=items)
        self._resolve_paths(manifest)
        return manifest

    def _read_header(self) -> ManifestHeader:
        self.reader.seek(0)
        try:
            values = self.reader.read_u32_le_list(14)
        except EOFError:
            raise self._error(f"truncated manifest header ({self.size} bytes)", 0) from None
        return ManifestHeader(*values)

    def _read_item(self, num_items: int, i: int) -> Item:
        offset = HEADER_SIZE + i * ITEM_SIZE
        self.reader.seek(offset)
        try:
            name_offset, *fields = self.reader.read_u32_le_list(7)
        except EOFError:
            raise self._error(f"truncated item record {i}", offset) from None

        item = Item(*fields)
        item.name = self._read_name(HEADER_SIZE + num_items * ITEM_SIZE + name_offset, i)
        return item

    def _read_name(self, offset: int, i: int) -> str:
        if offset >= self.size:
            raise self._error(f"name offset of item {i} is outside the manifest", offset)

        self.reader.seek(offset)
        try:
            raw, terminated = self.reader.read_cstring(MAX_NAME_LENGTH)
        except EOFError:
            raise self._error(f"unterminated name for item {i}", offset) from None
        if not terminated:
            logger.warning("Name of item %d is longer than %d bytes, truncating", i, MAX_NAME_LENGTH)

        name = raw.decode("utf-8", errors="replace")
        if self.sanitize:
            name = sanitize_name(name)
        return name

    def _resolve_paths(self, manifest: Manifest) -> None:
        """Join each item's name chain from its root down to the item."""
        items = manifest.items
        count = len(items)

        for i, item in enumerate(items):
            names = [item.name]
            current = item
            steps = 0
            while not current.is_root:
                if current.parent_index >= count:
                    raise self._error(
                        f"item {i} has parent index {current.parent_index} out of range",
                        HEADER_SIZE + i * ITEM_SIZE,
                    )
                steps += 1
                if steps > count:
                    raise self._error(f"cycle in parent chain of item {i}", HEADER_SIZE + i * ITEM_SIZE)
                current = items[current.parent_index]
                names.append(current.name)

            # Empty names (an unnamed root) contribute no path component
            names.reverse()
            item.path = "/".join(name for name in names if name)
