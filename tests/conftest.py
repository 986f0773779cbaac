"""Synthetic depot fixtures."""

import zlib
from pathlib import Path
from typing import List, Optional, Tuple

import pytest
from Crypto.Cipher import AES

from depot_toolkit.formats.index import Mode
from depot_toolkit.formats.manifest import FILE_TYPE_FLAG, NO_PARENT
from depot_toolkit.utils.binary import write_u32_le, write_u64_be

TEST_KEY = bytes(range(16))


def encrypt(data: bytes, key: bytes) -> bytes:
    return AES.new(key, AES.MODE_CFB, iv=bytes(16), segment_size=128).encrypt(data)


def encode_chunk(data: bytes, mode: Mode, key: Optional[bytes] = None) -> bytes:
    """Encode content the way a depot stores it for ``mode``."""
    if mode == Mode.RAW:
        return data
    if mode == Mode.COMPRESSED:
        return zlib.compress(data)
    if mode == Mode.ENCRYPTED:
        return encrypt(data, key)
    compressed = zlib.compress(data)
    return write_u32_le(len(compressed)) + write_u32_le(len(data)) + encrypt(compressed, key)


def build_manifest(
    items: List[Tuple[str, int, int, int]],
    depot_id: int = 7,
    depot_version: int = 3,
    info_count: int = 0,
    num_items: Optional[int] = None,
) -> bytes:
    """Build manifest bytes from (name, id, type, parent_index) tuples."""
    records = b""
    names = b""
    for name, file_id, item_type, parent in items:
        fields = [len(names), 0, file_id, item_type, parent, NO_PARENT, NO_PARENT]
        records += b"".join(write_u32_le(v) for v in fields)
        names += name.encode("utf-8") + b"\x00"

    num_files = sum(1 for item in items if item[2] & FILE_TYPE_FLAG)
    header = [
        0,
        depot_id,
        depot_version,
        len(items) if num_items is None else num_items,
        num_files,
        0x2000,
        0,
        len(names),
        info_count,
        0,
        0,
        0,
        0,
        0,
    ]
    return b"".join(write_u32_le(v) for v in header) + records + names


def build_index(entries: List[Tuple[int, int, List[Tuple[int, int]]]]) -> bytes:
    """Build index bytes from (id, mode, [(offset, length), ...]) tuples."""
    out = b""
    for file_id, mode, chunks in entries:
        out += write_u64_be(file_id) + write_u64_be(len(chunks) * 16) + write_u64_be(int(mode))
        for offset, length in chunks:
            out += write_u64_be(offset) + write_u64_be(length)
    return out


class DepotBuilder:
    """Accumulates items and chunk data for a synthetic depot."""

    def __init__(self, depot_id: int = 7, depot_version: int = 3, key: Optional[bytes] = TEST_KEY):
        self.depot_id = depot_id
        self.depot_version = depot_version
        self.key = key
        self.info_count = 0
        self.items: List[Tuple[str, int, int, int]] = []
        self.entries: List[Tuple[int, int, List[Tuple[int, int]]]] = []
        self.data = bytearray()
        self._next_id = 1

    def add_dir(self, name: str, parent: int = NO_PARENT) -> int:
        self.items.append((name, 0, 0, parent))
        return len(self.items) - 1

    def add_file(
        self,
        name: str,
        content: bytes,
        parent: int = NO_PARENT,
        mode: Mode = Mode.RAW,
        chunk_size: Optional[int] = None,
        indexed: bool = True,
    ) -> int:
        file_id = self._next_id
        self._next_id += 1
        self.items.append((name, file_id, FILE_TYPE_FLAG, parent))

        if indexed:
            chunks = []
            size = chunk_size or max(len(content), 1)
            for start in range(0, len(content), size):
                chunks.append(self.add_chunk(content[start : start + size], mode))
            self.entries.append((file_id, mode, chunks))
        return file_id

    def add_chunk(self, content: bytes, mode: Mode) -> Tuple[int, int]:
        encoded = encode_chunk(content, mode, self.key)
        offset = len(self.data)
        self.data.extend(encoded)
        return offset, len(encoded)

    def manifest_bytes(self) -> bytes:
        return build_manifest(self.items, self.depot_id, self.depot_version, self.info_count)

    def index_bytes(self) -> bytes:
        return build_index(self.entries)

    def write(self, root: Path) -> Tuple[Path, Path]:
        """Write manifests/ and storages/ under ``root``."""
        manifest_dir = root / "manifests"
        storage_dir = root / "storages"
        manifest_dir.mkdir(parents=True, exist_ok=True)
        storage_dir.mkdir(parents=True, exist_ok=True)
        (manifest_dir / f"{self.depot_id}_{self.depot_version}.manifest").write_bytes(self.manifest_bytes())
        (storage_dir / f"{self.depot_id}.index").write_bytes(self.index_bytes())
        (storage_dir / f"{self.depot_id}.data").write_bytes(bytes(self.data))
        return manifest_dir, storage_dir


@pytest.fixture
def builder() -> DepotBuilder:
    return DepotBuilder()


@pytest.fixture
def sample_depot(builder: DepotBuilder) -> DepotBuilder:
    """A small tree touching every mode.

    data/
      a.txt           raw
      sub/
        packed.bin    compressed, 3 chunks
        secret.bin    encrypted
        both.bin      encrypted + compressed
      empty/
    """
    root = builder.add_dir("data")
    builder.add_file("a.txt", b"hello depot\n", parent=root)
    sub = builder.add_dir("sub", parent=root)
    builder.add_file("packed.bin", bytes(range(256)) * 40, parent=sub, mode=Mode.COMPRESSED, chunk_size=4096)
    builder.add_file("secret.bin", b"top secret " * 30, parent=sub, mode=Mode.ENCRYPTED)
    builder.add_file("both.bin", b"layered " * 500, parent=sub, mode=Mode.ENCRYPTED_COMPRESSED, chunk_size=1000)
    builder.add_dir("empty", parent=root)
    return builder
