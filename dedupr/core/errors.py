"""Error taxonomy for the dedup pipeline."""


class DedupError(Exception):
    """Base class for all dedupr errors."""


class FileIOError(DedupError):
    """Open, read, delete or link failure on a single file."""

    def __init__(self, path: str, message: str):
        super().__init__(f"{path}: {message}")
        self.path = path
        self.message = message


class TraversalError(DedupError):
    """A directory could not be listed; its subtree is skipped."""

    def __init__(self, path: str, message: str):
        super().__init__(f"{path}: {message}")
        self.path = path
        self.message = message


class StoreError(DedupError):
    """The fingerprint index could not be read or written."""


class PartialDuplicateFailure(FileIOError):
    """A duplicate was deleted but the replacement link could not be created.

    The duplicate path no longer holds any content. The canonical copy is
    intact, so the data can be recovered by hand from ``canonical_path``.
    """

    def __init__(self, path: str, canonical_path: str, message: str):
        super().__init__(path, message)
        self.canonical_path = canonical_path
