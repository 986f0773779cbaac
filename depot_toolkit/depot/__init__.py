"""Depot decoding and extraction."""

from .chunk import ChunkStream, decrypt_chunk
from .data import DataSource
from .extract import ExtractionJob, ExtractionReport, Extractor, JobResult
from .file import FileStream
from .reader import DepotReader

__all__ = [
    "ChunkStream",
    "decrypt_chunk",
    "DataSource",
    "ExtractionJob",
    "ExtractionReport",
    "Extractor",
    "JobResult",
    "FileStream",
    "DepotReader",
]
