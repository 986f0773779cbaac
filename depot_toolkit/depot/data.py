"""Shared read-only access to a depot data blob."""

import mmap
import os
from pathlib import Path
from typing import Optional, Union

from ..errors import DataSourceError


class DataSource:
    """Positional reader over a depot's ``.data`` file.

    Reads take an explicit offset and never move a shared cursor, so one
    instance can serve every extraction worker at once.
    """

    def __init__(self, data: Union[bytes, mmap.mmap], name: Optional[str] = None):
        self._data = data
        self.name = name or "<memory>"

    @classmethod
    def open(cls, path: Union[str, Path]) -> "DataSource":
        """Memory-map a data file read-only."""
        path = Path(path)
        with open(path, "rb") as f:
            if os.fstat(f.fileno()).st_size == 0:
                return cls(b"", str(path))
            return cls(mmap.mmap(f.fileno(), 0, access=mmap.ACCESS_READ), str(path))

    def __enter__(self) -> "DataSource":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def __len__(self) -> int:
        return len(self._data)

    def close(self) -> None:
        if isinstance(self._data, mmap.mmap):
            self._data.close()

    def read_at(self, offset: int, length: int) -> bytes:
        """Return exactly ``length`` bytes starting at ``offset``."""
        end = offset + length
        if end > len(self._data):
            raise DataSourceError(
                f"read of {length} bytes at offset 0x{offset:X} runs past end of {self.name} "
                f"({len(self._data)} bytes)"
            )
        try:
            return self._data[offset:end]
        except ValueError as e:
            raise DataSourceError(f"failed to read {self.name}: {e}") from e
