"""Exception types raised while decoding and extracting depots."""

from typing import List, Optional


class DepotError(Exception):
    """Base class for all depot errors."""


class FormatError(DepotError, ValueError):
    """Malformed manifest, index or chunk data."""

    def __init__(self, message: str, source: Optional[str] = None, offset: Optional[int] = None):
        self.message = message
        self.source = source
        self.offset = offset
        super().__init__(str(self))

    def __str__(self) -> str:
        context = []
        if self.source:
            context.append(str(self.source))
        if self.offset is not None:
            context.append(f"offset 0x{self.offset:X}")
        if context:
            return f"{self.message} ({', '.join(context)})"
        return self.message


class MissingKeyError(DepotError):
    """A chunk needs decryption but no key is available."""


class KeyFileError(DepotError):
    """The key file could not be decoded."""


class IdentityMismatchError(DepotError):
    """The manifest describes a different depot or version than requested."""


class DataSourceError(DepotError, OSError):
    """Reading the data blob failed."""


class ExtractionError(DepotError):
    """One or more extraction jobs failed."""

    def __init__(self, failures: List):
        self.failures = failures
        first = failures[0]
        message = f"failed to extract {first.path}: {first.error}"
        if len(failures) > 1:
            message += f" (and {len(failures) - 1} more)"
        super().__init__(message)
