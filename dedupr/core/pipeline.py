"""The traverse -> hash -> resolve pipeline."""

import logging
import os
import threading
from collections.abc import Iterable
from pathlib import Path

from ..config.settings import DedupConfig
from .channel import Channel, WorkerPool
from .errors import FileIOError, PartialDuplicateFailure, StoreError, TraversalError
from .hasher import ContentHasher
from .index import FingerprintIndex, KeyedLocks
from .models import ErrorKind, FileRecord, LinkStyle, RunReport
from .resolver import DedupResolver
from .scanner import TreeScanner

logger = logging.getLogger(__name__)


class HashingStage:
    """Worker pool that turns file paths into fingerprint records."""

    def __init__(self, hasher: ContentHasher, workers: int, report: RunReport):
        self.hasher = hasher
        self.workers = workers
        self.report = report

    def start(self, paths: Channel[str], records: Channel[FileRecord]) -> WorkerPool[str]:
        """Drain ``paths`` into ``records``; ``records`` is closed once all workers finish."""

        def handle(path: str) -> None:
            logger.debug(f"Hashing {path}")
            try:
                fingerprint = self.hasher.hash_file(path)
            except FileIOError as e:
                logger.error(f"Error calculating hash for {e.path}: {e.message}")
                self.report.add_error(ErrorKind.IO, e.path, e.message)
                return
            self.report.count_hashed()
            records.put(FileRecord(path=path, fingerprint=fingerprint))

        def failed(path: str, error: Exception) -> None:
            self.report.add_error(ErrorKind.INTERNAL, path, str(error))

        return WorkerPool(
            "hash", self.workers, paths, handle, on_done=records.close, on_error=failed
        ).start()


class ResolverStage:
    """Worker pool that feeds fingerprint records to the resolver."""

    def __init__(self, resolver: DedupResolver, workers: int, report: RunReport):
        self.resolver = resolver
        self.workers = workers
        self.report = report

    def start(self, records: Channel[FileRecord]) -> WorkerPool[FileRecord]:
        def handle(record: FileRecord) -> None:
            try:
                outcome = self.resolver.resolve(record)
            except PartialDuplicateFailure as e:
                logger.critical(
                    f"DATA LOSS: {e.path} was deleted but its link to "
                    f"{e.canonical_path} could not be created: {e.message}"
                )
                self.report.add_error(ErrorKind.PARTIAL_DUPLICATE, e.path, e.message)
                return
            except FileIOError as e:
                logger.error(f"Error replacing duplicate {e.path}: {e.message}")
                self.report.add_error(ErrorKind.IO, e.path, e.message)
                return
            except StoreError as e:
                logger.error(f"Index error for {record.path}: {e}")
                self.report.add_error(ErrorKind.STORE, record.path, str(e))
                return
            self.report.add_outcome(outcome)

        def failed(record: FileRecord, error: Exception) -> None:
            self.report.add_error(ErrorKind.INTERNAL, record.path, str(error))

        return WorkerPool("resolve", self.workers, records, handle, on_error=failed).start()


class DedupPipeline:
    """Runs traversal, hashing and resolution concurrently over one tree.

    Shutdown is driven from the front: traversal finishing closes the path
    channel, the last hashing worker closes the record channel, and the run
    is over once the resolver workers have drained it.
    """

    def __init__(
        self,
        index: FingerprintIndex,
        hasher: ContentHasher | None = None,
        traversal_workers: int = 4,
        hash_workers: int = 5,
        resolve_workers: int = 5,
        queue_size: int = 1024,
        lock_shards: int = 64,
        link_style: LinkStyle = LinkStyle.ABSOLUTE,
        atomic_replace: bool = True,
        dry_run: bool = False,
        exclude: tuple[str | Path, ...] = (),
    ):
        self.index = index
        self.hasher = hasher or ContentHasher()
        self.traversal_workers = traversal_workers
        self.hash_workers = hash_workers
        self.resolve_workers = resolve_workers
        self.queue_size = queue_size
        self.exclude = exclude
        self.resolver = DedupResolver(
            index,
            locks=KeyedLocks(lock_shards),
            link_style=link_style,
            atomic_replace=atomic_replace,
            dry_run=dry_run,
        )
        self.report = RunReport()
        self._scanner: TreeScanner | None = None
        self._channels: list[Channel] = []
        self._cancel_lock = threading.Lock()
        self._cancelled = False

    @classmethod
    def from_config(
        cls,
        index: FingerprintIndex,
        config: DedupConfig,
        exclude: Iterable[str | Path] = (),
    ) -> "DedupPipeline":
        """Build a pipeline from a ``DedupConfig``."""
        return cls(
            index,
            hasher=ContentHasher(config.hashing.algorithm, config.hashing.buffer_size),
            traversal_workers=config.pipeline.traversal_workers,
            hash_workers=config.pipeline.hash_workers,
            resolve_workers=config.pipeline.resolve_workers,
            queue_size=config.pipeline.queue_size,
            lock_shards=config.pipeline.lock_shards,
            link_style=LinkStyle(config.linking.style),
            atomic_replace=config.linking.atomic_replace,
            dry_run=config.dry_run,
            exclude=tuple(exclude),
        )

    def run(self, root: str | Path) -> RunReport:
        """Deduplicate everything under ``root`` and return what happened."""
        root = os.path.realpath(root)
        if not os.path.isdir(root):
            raise NotADirectoryError(root)

        paths: Channel[str] = Channel(maxsize=self.queue_size, name="paths")
        records: Channel[FileRecord] = Channel(maxsize=self.queue_size, name="records")
        scanner = TreeScanner(
            workers=self.traversal_workers,
            on_error=self._on_traversal_error,
            on_directory=lambda _: self.report.count_directory(),
            exclude=self.exclude,
        )
        with self._cancel_lock:
            self._scanner = scanner
            self._channels = [paths, records]
            if self._cancelled:
                self.report.cancelled = True
                return self.report

        logger.info(f"Scanning {root}")
        hashers = HashingStage(self.hasher, self.hash_workers, self.report).start(paths, records)
        resolvers = ResolverStage(self.resolver, self.resolve_workers, self.report).start(records)

        def emit(path: str) -> bool:
            if not paths.put(path):
                return False
            self.report.count_file()
            return True

        try:
            scanner.scan(root, emit)
        except KeyboardInterrupt:
            self.cancel()
            raise
        finally:
            paths.close()
            hashers.join()
            resolvers.join()

        self.report.cancelled = self._cancelled
        logger.info(f"Finished {root}: {self.report.summary()}")
        return self.report

    def cancel(self) -> None:
        """Stop the run: no new directories, files or records are started."""
        with self._cancel_lock:
            self._cancelled = True
            if self._scanner is not None:
                self._scanner.cancel()
            for channel in self._channels:
                channel.cancel()
        logger.warning("Run cancelled")

    def _on_traversal_error(self, error: TraversalError) -> None:
        self.report.add_error(ErrorKind.TRAVERSAL, error.path, error.message)
