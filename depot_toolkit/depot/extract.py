"""Parallel extraction of a depot into a directory tree."""

import logging
import os
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Iterable, Iterator, List, Optional, Set, Union

from ..errors import DepotError, ExtractionError, FormatError
from ..formats.index import Index, IndexEntry
from ..formats.manifest import Item, Manifest
from .data import DataSource
from .file import FileStream

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int, str], None]


def output_path(output_dir: Path, item: Item) -> Path:
    """Join ``item.path`` onto ``output_dir``, refusing paths that leave it."""
    path = output_dir / item.path
    root = output_dir.resolve()
    resolved = path.resolve()
    if resolved != root and root not in resolved.parents:
        raise FormatError(f"item {item.id} path {item.path!r} escapes the output directory")
    return path


@dataclass
class ExtractionJob:
    """One file to write."""

    path: Path
    item: Item
    entry: IndexEntry


@dataclass
class JobResult:
    """Outcome of a single extraction job."""

    job: ExtractionJob
    bytes_written: int = 0
    error: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def path(self) -> Path:
        return self.job.path


@dataclass
class ExtractionReport:
    """Summary of an extraction run."""

    directories: int = 0
    results: List[JobResult] = field(default_factory=list)

    @property
    def succeeded(self) -> List[JobResult]:
        return [r for r in self.results if r.ok]

    @property
    def failed(self) -> List[JobResult]:
        return [r for r in self.results if not r.ok]

    @property
    def bytes_written(self) -> int:
        return sum(r.bytes_written for r in self.results)


class Extractor:
    """Writes every manifest item to disk using a pool of worker threads.

    Directories are created first, in manifest order, on the calling thread.
    Files are then decoded concurrently; each worker owns its output file and
    shares only the read-only data source.
    """

    def __init__(
        self,
        source: DataSource,
        key: Optional[bytes] = None,
        workers: Optional[int] = None,
        fail_fast: bool = True,
    ):
        """Create an extractor.

        Args:
            source: Data blob shared by all workers
            key: AES key for encrypted files, if any
            workers: Number of worker threads (None = CPU count)
            fail_fast: Stop at the first failed job and raise ExtractionError;
                otherwise extract everything and report failures
        """
        self.source = source
        self.key = key
        self.workers = max(1, workers or os.cpu_count() or 1)
        self.fail_fast = fail_fast

    def plan(self, manifest: Manifest, index: Index, output_dir: Union[str, Path]) -> Iterator[ExtractionJob]:
        """Yield one job per file item.

        Raises:
            FormatError: an item path does not stay under ``output_dir``
        """
        output_dir = Path(output_dir)
        for item in manifest.files():
            path = output_path(output_dir, item)
            if path == output_dir:
                raise FormatError(f"file item {item.id} has an empty path")
            entry = index.get(item.id)
            if entry is None:
                logger.warning("No index entry for %s (id %d), writing empty file", item.path, item.id)
                entry = IndexEntry()
            yield ExtractionJob(path=path, item=item, entry=entry)

    def create_directories(self, manifest: Manifest, output_dir: Union[str, Path]) -> int:
        """Create every directory item. Returns the number of directories."""
        output_dir = Path(output_dir)
        paths = [output_path(output_dir, item) for item in manifest.directories()]
        for path in paths:
            path.mkdir(parents=True, exist_ok=True)
        return len(paths)

    def run_job(self, job: ExtractionJob) -> JobResult:
        """Decode one file into its output path."""
        try:
            with open(job.path, "wb") as out, FileStream(job.entry, self.source, self.key) as stream:
                written = stream.copy_to(out)
                out.flush()
                os.fsync(out.fileno())
        except (DepotError, OSError) as e:
            return JobResult(job=job, error=e)
        return JobResult(job=job, bytes_written=written)

    def extract(
        self,
        manifest: Manifest,
        index: Index,
        output_dir: Union[str, Path],
        progress_callback: Optional[ProgressCallback] = None,
    ) -> ExtractionReport:
        """Extract all items of ``manifest`` under ``output_dir``.

        ``progress_callback(done, total, path)`` is called on this thread
        after each finished file.

        Raises:
            FormatError: an item path leaves ``output_dir``; nothing is written
            ExtractionError: a job failed and ``fail_fast`` is set
        """
        output_dir = Path(output_dir)
        jobs = list(self.plan(manifest, index, output_dir))
        report = ExtractionReport(directories=self.create_directories(manifest, output_dir))
        output_dir.mkdir(parents=True, exist_ok=True)
        total = len(jobs)
        logger.info(
            "Extracting %d files into %s with %d workers", total, output_dir, self.workers
        )

        with ThreadPoolExecutor(max_workers=self.workers, thread_name_prefix="extract") as executor:
            self._run(executor, jobs, report, total, progress_callback)

        failed = report.failed
        logger.info(
            "Extracted %d files (%d bytes), %d failed",
            len(report.succeeded),
            report.bytes_written,
            len(failed),
        )
        if failed and self.fail_fast:
            raise ExtractionError(failed)
        return report

    def _run(
        self,
        executor: ThreadPoolExecutor,
        jobs: Iterable[ExtractionJob],
        report: ExtractionReport,
        total: int,
        progress_callback: Optional[ProgressCallback],
    ) -> None:
        in_flight: Set[Future] = set()

        for job in jobs:
            # Hold the producer until a worker frees up
            if len(in_flight) >= self.workers:
                done, in_flight = wait(in_flight, return_when=FIRST_COMPLETED)
                self._collect(done, report, total, progress_callback)
                if report.failed and self.fail_fast:
                    break
            in_flight.add(executor.submit(self.run_job, job))

        done, _ = wait(in_flight)
        self._collect(done, report, total, progress_callback)

    def _collect(
        self,
        done: Iterable[Future],
        report: ExtractionReport,
        total: int,
        progress_callback: Optional[ProgressCallback],
    ) -> None:
        for future in done:
            result = future.result()
            report.results.append(result)
            if not result.ok:
                logger.error("Failed to extract %s: %s", result.path, result.error)
            if progress_callback:
                progress_callback(len(report.results), total, result.job.item.path)
