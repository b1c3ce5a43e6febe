"""Tests for the dedupr command-line interface."""

import logging
import os
from unittest.mock import patch

import pytest
from click.testing import CliRunner

from dedupr.cli import EXIT_DATA_LOSS, EXIT_FATAL, format_size, index_sidecars, main
from dedupr.core.errors import StoreError
from dedupr.core.index import SqliteFingerprintIndex


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture(autouse=True)
def restore_logging():
    """The CLI reconfigures the root logger; put it back after each test."""
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


def _links(root):
    return sorted(p for p in root.rglob("*") if p.is_symlink())


class TestFormatSize:
    def test_bytes(self):
        assert format_size(100) == "100.0 B"

    def test_kilobytes(self):
        assert format_size(1536) == "1.5 KB"

    def test_megabytes(self):
        assert format_size(1024 * 1024) == "1.0 MB"


class TestMain:
    """Test the dedupr command."""

    def test_deduplicates_tree(self, runner, hello_tree, index_path):
        result = runner.invoke(main, [str(hello_tree), "--index", str(index_path)])

        assert result.exit_code == 0, result.output
        assert "Duplicates linked: 1" in result.output
        assert "New canonical files: 2" in result.output
        assert len(_links(hello_tree)) == 1
        with SqliteFingerprintIndex.open(index_path) as index:
            assert len(index) == 2

    def test_second_run_reports_no_changes(self, runner, hello_tree, index_path):
        runner.invoke(main, [str(hello_tree), "--index", str(index_path)])

        result = runner.invoke(main, [str(hello_tree), "--index", str(index_path)])

        assert result.exit_code == 0, result.output
        assert "Duplicates linked: 0" in result.output
        assert "Already canonical: 2" in result.output

    def test_dry_run(self, runner, hello_tree, index_path):
        result = runner.invoke(
            main, [str(hello_tree), "--index", str(index_path), "--dry-run"]
        )

        assert result.exit_code == 0, result.output
        assert "DRY RUN MODE" in result.output
        assert "Duplicates that would be linked: 1" in result.output
        assert _links(hello_tree) == []
        with SqliteFingerprintIndex.open(index_path) as index:
            assert len(index) == 0

    def test_relative_links(self, runner, hello_tree, index_path):
        result = runner.invoke(
            main, [str(hello_tree), "--index", str(index_path), "--relative-links"]
        )

        assert result.exit_code == 0, result.output
        [link] = _links(hello_tree)
        assert not os.path.isabs(os.readlink(link))

    def test_missing_root_is_usage_error(self, runner, temp_dir, index_path):
        result = runner.invoke(main, [str(temp_dir / "nope"), "--index", str(index_path)])

        assert result.exit_code == 2
        assert not index_path.exists()

    def test_file_root_is_usage_error(self, runner, temp_dir, index_path):
        path = temp_dir / "file.txt"
        path.write_text("x")

        result = runner.invoke(main, [str(path), "--index", str(index_path)])

        assert result.exit_code == 2

    def test_index_open_failure_is_fatal(self, runner, hello_tree, temp_dir):
        blocker = temp_dir / "blocker"
        blocker.write_text("not a directory")

        result = runner.invoke(main, [str(hello_tree), "--index", str(blocker / "index.db")])

        assert result.exit_code == EXIT_FATAL
        assert "Error:" in result.output
        assert _links(hello_tree) == []

    def test_prune_stale(self, runner, hello_tree, index_path):
        with SqliteFingerprintIndex.open(index_path) as index:
            index.lookup_or_insert(b"\x01" * 32, str(hello_tree / "gone.txt"))

        result = runner.invoke(
            main, [str(hello_tree), "--index", str(index_path), "--prune-stale"]
        )

        assert result.exit_code == 0, result.output
        assert "Pruned 1 stale index entry" in result.output
        with SqliteFingerprintIndex.open(index_path) as index:
            assert len(index) == 2

    def test_index_inside_root_is_not_deduplicated(self, runner, hello_tree):
        db = hello_tree / "file_hashes.db"

        result = runner.invoke(main, [str(hello_tree), "--index", str(db)])

        assert result.exit_code == 0, result.output
        assert "Files found: 3" in result.output
        assert not db.is_symlink()

    def test_config_file_overrides(self, runner, hello_tree, temp_dir, index_path):
        config_path = temp_dir / "dedupr.yaml"
        config_path.write_text(
            f"index:\n  path: {index_path}\nlinking:\n  style: relative\n"
        )

        result = runner.invoke(main, [str(hello_tree), "--config", str(config_path)])

        assert result.exit_code == 0, result.output
        assert index_path.exists()
        [link] = _links(hello_tree)
        assert not os.path.isabs(os.readlink(link))

    def test_data_loss_exit_code(self, runner, hello_tree, index_path):
        with patch("dedupr.core.resolver.os.symlink", side_effect=OSError(28, "No space left")):
            result = runner.invoke(
                main, [str(hello_tree), "--index", str(index_path), "--no-atomic"]
            )

        assert result.exit_code == EXIT_DATA_LOSS
        assert "DATA LOSS" in result.output

    def test_per_file_errors_do_not_fail_run(self, runner, hello_tree, index_path):
        with patch("dedupr.core.resolver.os.symlink", side_effect=OSError(28, "No space left")):
            result = runner.invoke(main, [str(hello_tree), "--index", str(index_path)])

        assert result.exit_code == 0, result.output
        assert "Errors: 1" in result.output
        assert "[IO]" in result.output

    def test_unexpected_errors_are_listed(self, runner, hello_tree, index_path):
        with patch("dedupr.core.pipeline.DedupResolver.resolve", side_effect=RuntimeError("boom")):
            result = runner.invoke(main, [str(hello_tree), "--index", str(index_path)])

        assert result.exit_code == 0, result.output
        assert "Errors: 3" in result.output
        assert "[INTERNAL]" in result.output

    def test_store_error_during_prune_is_fatal(self, runner, hello_tree, index_path):
        with patch.object(
            SqliteFingerprintIndex, "prune_missing", side_effect=StoreError("disk I/O error")
        ):
            result = runner.invoke(
                main, [str(hello_tree), "--index", str(index_path), "--prune-stale"]
            )

        assert result.exit_code == EXIT_FATAL
        assert "disk I/O error" in result.output

    def test_worker_options(self, runner, hello_tree, index_path):
        result = runner.invoke(
            main,
            [
                str(hello_tree),
                "--index",
                str(index_path),
                "--hash-workers",
                "1",
                "--resolve-workers",
                "1",
                "-v",
            ],
        )

        assert result.exit_code == 0, result.output
        assert len(_links(hello_tree)) == 1

    def test_invalid_worker_count(self, runner, hello_tree, index_path):
        result = runner.invoke(
            main, [str(hello_tree), "--index", str(index_path), "--hash-workers", "0"]
        )

        assert result.exit_code == 2


def test_index_sidecars(temp_dir):
    db = temp_dir / "file_hashes.db"

    names = [p.name for p in index_sidecars(db)]

    assert names == [
        "file_hashes.db",
        "file_hashes.db-wal",
        "file_hashes.db-shm",
        "file_hashes.db-journal",
    ]
