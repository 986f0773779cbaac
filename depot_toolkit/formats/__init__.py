"""Depot file format parsers."""

from .index import Chunk, Index, IndexEntry, Mode
from .keys import KeyField, KeyTable
from .manifest import Item, Manifest, ManifestHeader

__all__ = [
    "Chunk",
    "Index",
    "IndexEntry",
    "Mode",
    "KeyField",
    "KeyTable",
    "Item",
    "Manifest",
    "ManifestHeader",
]
