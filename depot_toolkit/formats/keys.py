"""Depot key file loader.

Key files are JSON: ``{"keys": {"<depot id>": "<hex key>"}}``.
"""

import binascii
import json
import logging
from enum import Enum
from pathlib import Path
from typing import Dict, Mapping, Optional, Union

from ..errors import KeyFileError
from .manifest import Manifest

logger = logging.getLogger(__name__)


class KeyField(Enum):
    """Manifest header field used to look up a depot's key."""

    DEPOT_ID = "depot-id"
    INFO_COUNT = "info-count"

    def select(self, manifest: Manifest) -> int:
        if self is KeyField.INFO_COUNT:
            return manifest.header.info_count
        return manifest.header.depot_id


class KeyTable:
    """Mapping of depot id to raw AES key bytes."""

    def __init__(self, keys: Optional[Dict[int, bytes]] = None):
        self._keys: Dict[int, bytes] = dict(keys or {})

    def __len__(self) -> int:
        return len(self._keys)

    def __contains__(self, depot_id: int) -> bool:
        return depot_id in self._keys

    def get(self, depot_id: int) -> Optional[bytes]:
        return self._keys.get(depot_id)

    def key_for(self, manifest: Manifest, key_field: KeyField = KeyField.DEPOT_ID) -> Optional[bytes]:
        """Return the key for a manifest's depot, or None with a warning."""
        lookup = key_field.select(manifest)
        key = self.get(lookup)
        if key is None:
            logger.warning("No key for depot %d (%s %d)", manifest.depot_id, key_field.value, lookup)
        return key

    @classmethod
    def from_dict(cls, data: Mapping[str, str]) -> "KeyTable":
        keys = {}
        for depot, key in data.items():
            try:
                depot_id = int(depot)
            except ValueError:
                raise KeyFileError(f"Invalid depot id in key file: {depot!r}") from None
            try:
                keys[depot_id] = binascii.unhexlify(key)
            except (ValueError, TypeError) as e:
                raise KeyFileError(f"Invalid key for depot {depot}: {e}") from None
        return cls(keys)

    @classmethod
    def from_file(cls, path: Union[str, Path]) -> "KeyTable":
        path = Path(path)
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as e:
            raise KeyFileError(f"Failed to decode key file {path}: {e}") from None

        if not isinstance(data, dict) or not isinstance(data.get("keys", {}), dict):
            raise KeyFileError(f"Key file {path} has no 'keys' object")
        return cls.from_dict(data.get("keys", {}))
