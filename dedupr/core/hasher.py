"""Streaming content fingerprints."""

import hashlib
from pathlib import Path

from .errors import FileIOError

DEFAULT_ALGORITHM = "sha256"
DEFAULT_BUFFER_SIZE = 64 * 1024  # 64 KiB
MIN_DIGEST_SIZE = 32


class ContentHasher:
    """Computes the fingerprint of a file's full byte content.

    The file is read in ``buffer_size`` chunks, so memory use does not depend
    on file size. The hasher holds no per-file state and can be shared by any
    number of threads.
    """

    def __init__(
        self, algorithm: str = DEFAULT_ALGORITHM, buffer_size: int = DEFAULT_BUFFER_SIZE
    ):
        if buffer_size <= 0:
            raise ValueError(f"buffer_size must be positive, got {buffer_size}")
        try:
            sample = hashlib.new(algorithm)
        except ValueError as e:
            raise ValueError(f"Unsupported hash algorithm: {algorithm}") from e
        # shake_* report digest_size 0; variable-length digests are not fingerprints
        if sample.digest_size < MIN_DIGEST_SIZE:
            raise ValueError(
                f"Hash algorithm {algorithm} is too weak for fingerprints "
                f"({sample.digest_size * 8} bits, need at least {MIN_DIGEST_SIZE * 8})"
            )
        self.algorithm = algorithm
        self.buffer_size = buffer_size
        self.digest_size = sample.digest_size

    def hash_file(self, path: str | Path) -> bytes:
        """
        Fingerprint a file.

        Args:
            path: File to read

        Returns:
            Raw digest bytes, ``digest_size`` long

        Raises:
            FileIOError: The file could not be opened or a read failed
        """
        digest = hashlib.new(self.algorithm)
        buffer = bytearray(self.buffer_size)
        view = memoryview(buffer)
        try:
            with open(path, "rb", buffering=0) as f:
                while n := f.readinto(buffer):
                    digest.update(view[:n])
        except OSError as e:
            raise FileIOError(str(path), e.strerror or str(e)) from e
        return digest.digest()

    def hash_bytes(self, data: bytes) -> bytes:
        """Fingerprint an in-memory byte string with the same algorithm."""
        return hashlib.new(self.algorithm, data).digest()
