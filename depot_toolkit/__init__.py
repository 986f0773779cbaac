"""Depot Toolkit - Decode depot manifest, index and data files into a directory tree."""

__version__ = "0.1.0"
