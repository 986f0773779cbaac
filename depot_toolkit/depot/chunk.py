"""Per-chunk decode pipeline.

Each chunk of a file is decoded according to the file's mode:

- RAW: bytes as stored
- COMPRESSED: zlib stream
- ENCRYPTED: AES-CFB, zero IV
- ENCRYPTED_COMPRESSED: 8-byte size header, then AES-CFB over a zlib stream

Decryption always happens before decompression. Decompression is streamed
so a chunk's output is never held in memory all at once.
"""

import io
import zlib
from typing import Optional

from Crypto.Cipher import AES

from ..errors import FormatError, KeyFileError, MissingKeyError
from ..formats.index import Mode
from ..utils.binary import read_u32_le

# Encrypted+compressed chunks start with encoded and decoded sizes (unused)
SIZE_HEADER_LENGTH = 8
AES_IV = bytes(16)
INFLATE_INPUT_BLOCK = 64 * 1024


def decrypt_chunk(data: bytes, key: bytes) -> bytes:
    """Decrypt with AES in full-block (128-bit segment) CFB mode and a zero IV."""
    try:
        cipher = AES.new(key, AES.MODE_CFB, iv=AES_IV, segment_size=128)
    except ValueError as e:
        raise KeyFileError(f"Invalid AES key ({len(key)} bytes): {e}") from None
    return cipher.decrypt(data)


class ChunkStream(io.RawIOBase):
    """Readable stream of one chunk's decoded bytes."""

    def __init__(self, raw: bytes, mode: Mode, key: Optional[bytes] = None):
        super().__init__()
        self.mode = Mode(mode)
        self.encoded_size: Optional[int] = None
        self.decoded_size: Optional[int] = None
        payload = raw

        if self.mode == Mode.ENCRYPTED_COMPRESSED:
            if len(raw) < SIZE_HEADER_LENGTH:
                raise FormatError(f"encrypted chunk too short for size header: {len(raw)} bytes")
            # Declared sizes are kept for debugging only, never validated
            self.encoded_size = read_u32_le(raw, 0)
            self.decoded_size = read_u32_le(raw, 4)
            payload = raw[SIZE_HEADER_LENGTH:]

        if self.mode.is_encrypted:
            if key is None:
                raise MissingKeyError("missing decryption key")
            payload = decrypt_chunk(payload, key)
            if self.mode == Mode.ENCRYPTED:
                payload = payload[: len(raw)]

        self._input = memoryview(payload)
        self._pos = 0
        self._inflater = zlib.decompressobj() if self.mode.is_compressed else None

    def readable(self) -> bool:
        return True

    def readinto(self, b) -> int:
        if self.closed:
            raise ValueError("I/O operation on closed chunk stream")
        if not len(b):
            return 0

        if self._inflater is None:
            data = self._input[self._pos : self._pos + len(b)]
            self._pos += len(data)
        else:
            data = self._inflate(len(b))

        n = len(data)
        b[:n] = data
        return n

    def _inflate(self, size: int) -> bytes:
        inflater = self._inflater
        try:
            while not inflater.eof:
                data = inflater.unconsumed_tail
                if not data:
                    data = self._input[self._pos : self._pos + INFLATE_INPUT_BLOCK]
                    self._pos += len(data)

                out = inflater.decompress(data, size)
                if out:
                    return out
                if not data:
                    raise FormatError("zlib stream ended before end of data")
        except zlib.error as e:
            raise FormatError(f"failed to decompress chunk: {e}") from None
        return b""

    def close(self) -> None:
        self._input = memoryview(b"")
        self._inflater = None
        super().close()
