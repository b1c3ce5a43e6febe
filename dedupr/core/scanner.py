"""Concurrent directory tree traversal."""

import logging
import os
import threading
from collections.abc import Callable, Iterable, Iterator
from pathlib import Path

from .channel import Channel, WorkerPool
from .errors import TraversalError

logger = logging.getLogger(__name__)


class TreeScanner:
    """Finds every regular file under a root directory.

    Directories are listed by a fixed pool of worker threads that pull from a
    pending-directory channel. Each subdirectory bumps the outstanding count
    before it is queued and drops it once listed; the scan is finished when
    the count returns to zero. Symbolic links are never followed, emitted or
    descended into.
    """

    def __init__(
        self,
        workers: int = 4,
        on_error: Callable[[TraversalError], None] | None = None,
        on_directory: Callable[[str], None] | None = None,
        exclude: Iterable[str | Path] = (),
    ):
        self.workers = workers
        self.on_error = on_error
        self.on_directory = on_directory
        self.exclude = {os.path.realpath(p) for p in exclude}
        self._cancelled = threading.Event()
        self._pending: Channel[str] | None = None

    def scan(self, root: str | Path, emit: Callable[[str], bool | None]) -> None:
        """
        Walk ``root`` and call ``emit`` with the absolute path of each regular file.

        ``root`` is resolved through any symlinks first, so every emitted path
        is spelled from the real directory.

        ``emit`` may return False to stop the scan early. Returns when every
        directory has been listed or the scan was cancelled.
        """
        root = os.path.realpath(root)
        pending: Channel[str] = Channel(name="pending-directories")
        self._pending = pending
        if self._cancelled.is_set():
            return

        lock = threading.Lock()
        outstanding = 1

        def directory_done() -> None:
            nonlocal outstanding
            with lock:
                outstanding -= 1
                finished = outstanding == 0
            if finished:
                pending.close()

        def handle(directory: str) -> None:
            nonlocal outstanding
            try:
                for subdirectory in self._list_directory(directory, emit):
                    with lock:
                        outstanding += 1
                    if not pending.put(subdirectory):
                        with lock:
                            outstanding -= 1
            finally:
                directory_done()

        def failed(directory: str, error: Exception) -> None:
            self._report(TraversalError(directory, str(error)))

        pending.put(root)
        pool = WorkerPool("traverse", self.workers, pending, handle, on_error=failed).start()
        pool.join()
        logger.debug(f"Traversal of {root} finished")

    def iter_files(self, root: str | Path, buffer: int = 1024) -> Iterator[str]:
        """Lazily yield regular files under ``root`` as the scan finds them."""
        paths: Channel[str] = Channel(maxsize=buffer, name="paths")

        def run() -> None:
            try:
                self.scan(root, paths.put)
            finally:
                paths.close()

        thread = threading.Thread(target=run, name="traverse-feeder", daemon=True)
        thread.start()
        try:
            yield from paths
        finally:
            if thread.is_alive():
                self.cancel()
                paths.cancel()
            thread.join()

    def cancel(self) -> None:
        """Stop listing new directories; directories in progress may finish."""
        self._cancelled.set()
        if self._pending is not None:
            self._pending.cancel()

    def _list_directory(
        self, directory: str, emit: Callable[[str], bool | None]
    ) -> list[str]:
        """Emit the regular files of one directory and return its subdirectories."""
        try:
            with os.scandir(directory) as it:
                entries = list(it)
        except OSError as e:
            self._report(TraversalError(directory, e.strerror or str(e)))
            return []

        if self.on_directory is not None:
            self.on_directory(directory)

        subdirectories = []
        for entry in entries:
            try:
                if entry.is_dir(follow_symlinks=False):
                    subdirectories.append(entry.path)
                elif entry.is_file(follow_symlinks=False):
                    if entry.path in self.exclude:
                        continue
                    if emit(entry.path) is False:
                        self.cancel()
                        return []
            except OSError as e:
                logger.warning(f"Cannot read file info for {entry.path}: {e}")
        return subdirectories

    def _report(self, error: TraversalError) -> None:
        logger.warning(f"Skipping unreadable directory {error.path}: {error.message}")
        if self.on_error is not None:
            self.on_error(error)
