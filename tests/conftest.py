"""Pytest configuration and fixtures."""

import shutil
import tempfile
from pathlib import Path

import pytest

from dedupr.config.settings import DedupConfig
from dedupr.core.index import SqliteFingerprintIndex


@pytest.fixture
def temp_dir():
    """Create a temporary directory for tests."""
    temp_path = Path(tempfile.mkdtemp()).resolve()
    yield temp_path
    shutil.rmtree(temp_path, ignore_errors=True)


@pytest.fixture
def test_config():
    """Create a test configuration."""
    return DedupConfig()


@pytest.fixture
def index_path(temp_dir):
    """Index database location outside the scanned tree."""
    return temp_dir / "state" / "file_hashes.db"


@pytest.fixture
def sqlite_index(index_path):
    """An open on-disk fingerprint index, closed after the test."""
    index = SqliteFingerprintIndex.open(index_path)
    yield index
    index.close()


@pytest.fixture
def hello_tree(temp_dir):
    """
    The basic scenario tree:
    - a/x.txt and b/y.txt both contain "hello"
    - c/z.txt contains "world"
    """
    root = temp_dir / "tree"
    for rel, content in [
        ("a/x.txt", b"hello"),
        ("b/y.txt", b"hello"),
        ("c/z.txt", b"world"),
    ]:
        path = root / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(content)
    return root


@pytest.fixture
def nested_tree(temp_dir):
    """A deeper tree with several duplicate groups, uniques and a symlink."""
    root = temp_dir / "nested"
    files = {
        "one.bin": b"A" * 1024,
        "d1/one-copy.bin": b"A" * 1024,
        "d1/d2/one-again.bin": b"A" * 1024,
        "d1/d2/d3/two.bin": b"B" * 70000,
        "d4/two-copy.bin": b"B" * 70000,
        "d4/unique.bin": b"C" * 1500,
        "d5/empty-1": b"",
        "d5/d6/empty-2": b"",
    }
    for rel, content in files.items():
        path = root / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(content)
    (root / "d4" / "existing-link").symlink_to(root / "d4" / "unique.bin")
    return root
