"""Test content fingerprinting."""

import hashlib
import threading
from unittest.mock import patch

import pytest

from dedupr.core.errors import FileIOError
from dedupr.core.hasher import ContentHasher


class TestContentHasher:
    """Test streaming file hashing."""

    def test_matches_hashlib_digest(self, temp_dir):
        """The fingerprint is the raw sha256 digest of the whole file."""
        path = temp_dir / "data.bin"
        content = bytes(range(256)) * 1000
        path.write_bytes(content)

        fingerprint = ContentHasher().hash_file(path)

        assert fingerprint == hashlib.sha256(content).digest()
        assert len(fingerprint) == 32

    def test_empty_file(self, temp_dir):
        path = temp_dir / "empty"
        path.touch()

        assert ContentHasher().hash_file(path) == hashlib.sha256(b"").digest()

    def test_buffer_boundaries_do_not_change_result(self, temp_dir):
        """Files shorter, equal to and longer than the buffer hash correctly."""
        for size in (0, 1, 511, 512, 513, 4096):
            path = temp_dir / f"f{size}"
            content = b"x" * size
            path.write_bytes(content)

            small = ContentHasher(buffer_size=512).hash_file(path)
            large = ContentHasher(buffer_size=1024 * 1024).hash_file(path)

            assert small == large == hashlib.sha256(content).digest()

    def test_identical_content_identical_fingerprint(self, temp_dir):
        first = temp_dir / "first.txt"
        second = temp_dir / "second.txt"
        first.write_bytes(b"hello")
        second.write_bytes(b"hello")
        hasher = ContentHasher()

        assert hasher.hash_file(first) == hasher.hash_file(second)

    def test_different_content_different_fingerprint(self, temp_dir):
        first = temp_dir / "first.txt"
        second = temp_dir / "second.txt"
        first.write_bytes(b"hello")
        second.write_bytes(b"world")
        hasher = ContentHasher()

        assert hasher.hash_file(first) != hasher.hash_file(second)

    def test_concurrent_hashing_is_deterministic(self, temp_dir):
        """Many threads hashing the same file all get the same bytes."""
        path = temp_dir / "shared.bin"
        path.write_bytes(b"concurrent" * 50000)
        hasher = ContentHasher(buffer_size=4096)
        results = []
        lock = threading.Lock()

        def work():
            fingerprint = hasher.hash_file(path)
            with lock:
                results.append(fingerprint)

        threads = [threading.Thread(target=work) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(results) == 8
        assert len(set(results)) == 1

    def test_streams_in_fixed_chunks(self, temp_dir):
        """The file is never read in one call larger than the buffer."""
        path = temp_dir / "big.bin"
        path.write_bytes(b"z" * 10000)
        hasher = ContentHasher(buffer_size=1000)
        sizes = []
        real_open = open

        def tracking_open(*args, **kwargs):
            handle = real_open(*args, **kwargs)
            real_readinto = handle.readinto

            class Wrapper:
                def __enter__(self):
                    return self

                def __exit__(self, *exc):
                    handle.close()

                def readinto(self, buffer):
                    sizes.append(len(buffer))
                    return real_readinto(buffer)

            return Wrapper()

        with patch("builtins.open", tracking_open):
            hasher.hash_file(path)

        assert sizes
        assert max(sizes) == 1000

    def test_missing_file_raises(self, temp_dir):
        with pytest.raises(FileIOError) as excinfo:
            ContentHasher().hash_file(temp_dir / "gone.txt")

        assert excinfo.value.path == str(temp_dir / "gone.txt")

    def test_read_failure_raises(self, temp_dir):
        path = temp_dir / "data.bin"
        path.write_bytes(b"data")

        with patch("builtins.open", side_effect=PermissionError(13, "Permission denied")):
            with pytest.raises(FileIOError, match="Permission denied"):
                ContentHasher().hash_file(path)

    def test_weak_algorithm_rejected(self):
        with pytest.raises(ValueError, match="too weak"):
            ContentHasher(algorithm="md5")

    def test_unknown_algorithm_rejected(self):
        with pytest.raises(ValueError, match="Unsupported"):
            ContentHasher(algorithm="not-a-hash")

    def test_other_strong_algorithm(self, temp_dir):
        path = temp_dir / "data.bin"
        path.write_bytes(b"abc")

        fingerprint = ContentHasher(algorithm="sha512").hash_file(path)

        assert fingerprint == hashlib.sha512(b"abc").digest()

    def test_hash_bytes_matches_hash_file(self, temp_dir):
        path = temp_dir / "data.bin"
        path.write_bytes(b"same bytes")
        hasher = ContentHasher()

        assert hasher.hash_bytes(b"same bytes") == hasher.hash_file(path)
