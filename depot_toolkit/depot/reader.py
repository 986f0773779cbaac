"""Depot reader: loads manifest, index and keys for one depot version."""

from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Iterator, Optional, Tuple, Union

from ..errors import IdentityMismatchError
from ..formats.index import Index
from ..formats.keys import KeyField, KeyTable
from ..formats.manifest import Manifest
from .data import DataSource
from .extract import ExtractionReport, Extractor, ProgressCallback
from .file import FileStream


class DepotReader:
    """Reader for one version of a depot.

    Expects ``{depot}_{version}.manifest`` in ``manifest_dir`` and
    ``{depot}.index`` / ``{depot}.data`` in ``storage_dir``.
    """

    def __init__(
        self,
        manifest_dir: Union[str, Path],
        storage_dir: Union[str, Path],
        depot: int,
        version: int,
        key_file: Optional[Union[str, Path]] = None,
        key_field: KeyField = KeyField.DEPOT_ID,
        sanitize: Optional[bool] = None,
    ):
        self.manifest_dir = Path(manifest_dir)
        self.storage_dir = Path(storage_dir)
        self.depot = depot
        self.version = version
        self.key_file = Path(key_file) if key_file is not None else None
        self.key_field = key_field
        self.sanitize = sanitize
        self._manifest: Optional[Manifest] = None
        self._index: Optional[Index] = None
        self._keys: Optional[KeyTable] = None
        self._key: Optional[bytes] = None
        self._source: Optional[DataSource] = None

    def __enter__(self) -> "DepotReader":
        self.open()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def open(self) -> None:
        """Load manifest, index and keys in parallel, then check identity."""
        with ThreadPoolExecutor(max_workers=3, thread_name_prefix="load") as executor:
            manifest = executor.submit(
                Manifest.from_file, self.manifest_dir, self.depot, self.version, sanitize=self.sanitize
            )
            index = executor.submit(Index.from_file, self.storage_dir, self.depot)
            keys = executor.submit(self._load_keys)

            self._manifest = manifest.result()
            self._index = index.result()
            self._keys = keys.result()

        self.check_identity()
        self._key = self._keys.key_for(self._manifest, self.key_field)

    def _load_keys(self) -> KeyTable:
        if self.key_file is None:
            return KeyTable()
        return KeyTable.from_file(self.key_file)

    def check_identity(self) -> None:
        """Refuse a manifest that belongs to another depot or version."""
        manifest = self.manifest
        if manifest.depot_id != self.depot:
            raise IdentityMismatchError(
                f"manifest depot id {manifest.depot_id} does not match input {self.depot}"
            )
        if manifest.depot_version != self.version:
            raise IdentityMismatchError(
                f"manifest depot version {manifest.depot_version} does not match input {self.version}"
            )

    def close(self) -> None:
        if self._source is not None:
            self._source.close()
            self._source = None

    @property
    def manifest(self) -> Manifest:
        if self._manifest is None:
            raise RuntimeError("Depot not opened")
        return self._manifest

    @property
    def index(self) -> Index:
        if self._index is None:
            raise RuntimeError("Depot not opened")
        return self._index

    @property
    def key(self) -> Optional[bytes]:
        if self._keys is None:
            raise RuntimeError("Depot not opened")
        return self._key

    @property
    def source(self) -> DataSource:
        """The data blob, opened on first use."""
        if self._source is None:
            self._source = DataSource.open(self.storage_dir / f"{self.depot}.data")
        return self._source

    def items(self) -> Iterator[Tuple[int, bool, str]]:
        """Yield (id, is_directory, path) for every manifest item."""
        for item in self.manifest.items:
            yield item.id, item.is_directory, item.path

    def open_file(self, file_id: int) -> FileStream:
        """Return a stream of a file's decoded content."""
        entry = self.index.get(file_id)
        if entry is None:
            raise KeyError(f"No index entry for file id {file_id}")
        return FileStream(entry, self.source, self.key)

    def read_file(self, file_id: int) -> bytes:
        with self.open_file(file_id) as stream:
            return stream.read()

    def extract(
        self,
        output_dir: Union[str, Path],
        workers: Optional[int] = None,
        fail_fast: bool = True,
        progress_callback: Optional[ProgressCallback] = None,
    ) -> ExtractionReport:
        """Extract every item of this depot version under ``output_dir``."""
        extractor = Extractor(self.source, self.key, workers=workers, fail_fast=fail_fast)
        return extractor.extract(self.manifest, self.index, output_dir, progress_callback)
