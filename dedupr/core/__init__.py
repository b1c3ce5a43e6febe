"""Traversal, hashing, index and resolution pipeline."""

from .errors import (
    DedupError,
    FileIOError,
    PartialDuplicateFailure,
    StoreError,
    TraversalError,
)
from .hasher import ContentHasher
from .index import InMemoryFingerprintIndex, KeyedLocks, SqliteFingerprintIndex
from .models import FileRecord, LinkStyle, Resolution, RunReport
from .pipeline import DedupPipeline
from .resolver import DedupResolver
from .scanner import TreeScanner

__all__ = [
    "ContentHasher",
    "DedupError",
    "DedupPipeline",
    "DedupResolver",
    "FileIOError",
    "FileRecord",
    "InMemoryFingerprintIndex",
    "KeyedLocks",
    "LinkStyle",
    "PartialDuplicateFailure",
    "Resolution",
    "RunReport",
    "SqliteFingerprintIndex",
    "StoreError",
    "TraversalError",
    "TreeScanner",
]
