"""Binary reading utilities for depot files.

Manifests are little-endian 32-bit words; index files are big-endian
64-bit words. The readers name their byte order explicitly.
"""

import struct
from io import BytesIO
from typing import BinaryIO, List, Optional, Tuple, Union

_U32_LE = struct.Struct("<I")
_U64_BE = struct.Struct(">Q")


class BinaryReader:
    """Helper for reading fixed-width integers from a byte stream."""

    def __init__(self, data: Union[bytes, BinaryIO]):
        if isinstance(data, (bytes, bytearray, memoryview)):
            self._stream = BytesIO(data)
        else:
            self._stream = data

    @property
    def stream(self) -> BinaryIO:
        return self._stream

    def tell(self) -> int:
        return self._stream.tell()

    def seek(self, offset: int, whence: int = 0) -> int:
        return self._stream.seek(offset, whence)

    def read(self, size: int = -1) -> bytes:
        return self._stream.read(size)

    def read_bytes(self, size: int) -> bytes:
        data = self._stream.read(size)
        if len(data) < size:
            raise EOFError(f"Expected {size} bytes, got {len(data)}")
        return data

    def read_u32_le(self) -> int:
        return _U32_LE.unpack(self.read_bytes(4))[0]

    def read_u64_be(self) -> int:
        return _U64_BE.unpack(self.read_bytes(8))[0]

    def read_u32_le_list(self, count: int) -> List[int]:
        """Read ``count`` consecutive little-endian 32-bit words."""
        return list(struct.unpack(f"<{count}I", self.read_bytes(4 * count)))

    def read_u64_be_list(self, count: int) -> List[int]:
        """Read ``count`` consecutive big-endian 64-bit words."""
        return list(struct.unpack(f">{count}Q", self.read_bytes(8 * count)))

    def try_read_u64_be_list(self, count: int) -> Optional[List[int]]:
        """Like read_u64_be_list, but return None at a clean end of stream.

        A partial record still raises EOFError.
        """
        data = self._stream.read(8 * count)
        if not data:
            return None
        if len(data) < 8 * count:
            raise EOFError(f"Expected {8 * count} bytes, got {len(data)}")
        return list(struct.unpack(f">{count}Q", data))

    def read_cstring(self, max_length: int = 255) -> Tuple[bytes, bool]:
        """Read a null-terminated byte string of at most ``max_length`` bytes.

        Returns the bytes (without terminator) and whether a terminator was
        found before the cap. Running out of data before either raises EOFError.
        """
        chars = []
        for _ in range(max_length):
            byte = self._stream.read(1)
            if not byte:
                raise EOFError("Unterminated string at end of data")
            if byte == b"\x00":
                return b"".join(chars), True
            chars.append(byte)
        return b"".join(chars), False

    def skip(self, count: int) -> None:
        """Skip forward by count bytes."""
        self._stream.seek(count, 1)

    def size(self) -> int:
        """Return the total stream length without moving the cursor."""
        current = self.tell()
        end = self._stream.seek(0, 2)
        self._stream.seek(current)
        return end

    def remaining(self) -> int:
        """Return number of bytes remaining in stream."""
        return self.size() - self.tell()


def read_u32_le(data: bytes, offset: int = 0) -> int:
    """Read a little-endian 32-bit unsigned integer from bytes."""
    return _U32_LE.unpack_from(data, offset)[0]


def write_u32_le(value: int) -> bytes:
    """Write a little-endian 32-bit unsigned integer."""
    return _U32_LE.pack(value)


def write_u64_be(value: int) -> bytes:
    """Write a big-endian 64-bit unsigned integer."""
    return _U64_BE.pack(value)
