"""Duplicate resolution against the fingerprint index."""

import logging
import os
import uuid

from .errors import FileIOError, PartialDuplicateFailure
from .index import FingerprintIndex, KeyedLocks, is_regular_file, same_file
from .models import FileRecord, LinkStyle, Resolution, ResolutionOutcome

logger = logging.getLogger(__name__)

TEMP_LINK_PREFIX = ".dedupr-"


def link_target(canonical_path: str, link_path: str, style: LinkStyle) -> str:
    """Spell the symlink target so it resolves from any working directory."""
    if style is LinkStyle.RELATIVE:
        return os.path.relpath(canonical_path, os.path.dirname(link_path))
    return os.path.abspath(canonical_path)


class DedupResolver:
    """Decides what each hashed file is and replaces duplicates with symlinks.

    All work for one fingerprint, from the index lookup to the filesystem
    change, happens while holding that fingerprint's lock, so two files with
    the same content can never both become canonical or both be replaced.
    """

    def __init__(
        self,
        index: FingerprintIndex,
        locks: KeyedLocks | None = None,
        link_style: LinkStyle = LinkStyle.ABSOLUTE,
        atomic_replace: bool = True,
        dry_run: bool = False,
    ):
        self.index = index
        self.locks = locks or KeyedLocks()
        self.link_style = link_style
        self.atomic_replace = atomic_replace
        self.dry_run = dry_run

    def resolve(self, record: FileRecord) -> ResolutionOutcome:
        """
        Register or replace one file.

        Returns:
            The resolution taken and the canonical path it was taken against

        Raises:
            StoreError: The index lookup or update failed
            FileIOError: The duplicate could not be replaced; it is left intact
            PartialDuplicateFailure: The duplicate was deleted but not linked
        """
        with self.locks.lock_for(record.fingerprint):
            canonical, inserted = self.index.lookup_or_insert(
                record.fingerprint, record.path
            )
            if inserted:
                logger.debug(f"Registered canonical {record.path} ({record.hex[:12]})")
                return ResolutionOutcome(record, Resolution.CANONICAL, record.path)

            if canonical == record.path:
                return ResolutionOutcome(record, Resolution.ALREADY_CANONICAL, canonical)

            if not is_regular_file(canonical):
                # Stale entry from an earlier run
                logger.warning(
                    f"Canonical {canonical} is gone, {record.path} takes its place"
                )
                if not self.dry_run:
                    self.index.replace(record.fingerprint, record.path)
                return ResolutionOutcome(record, Resolution.RECLAIMED, record.path)

            if same_file(canonical, record.path):
                # Same inode under another name: a symlinked parent or a hard link
                if not self.dry_run and os.path.realpath(canonical) != canonical:
                    logger.info(f"Canonical {canonical} is now reached as {record.path}")
                    self.index.replace(record.fingerprint, record.path)
                    canonical = record.path
                return ResolutionOutcome(record, Resolution.ALREADY_CANONICAL, canonical)

            try:
                size = os.lstat(record.path).st_size
            except OSError:
                size = 0
            if not is_regular_file(record.path):
                logger.info(f"Skipping {record.path}: no longer a regular file")
                return ResolutionOutcome(record, Resolution.SKIPPED, canonical)

            if self.dry_run:
                logger.info(f"Would replace duplicate {record.path} -> {canonical}")
                return ResolutionOutcome(record, Resolution.WOULD_LINK, canonical, size)

            self._replace_with_link(record.path, canonical)
            logger.info(f"Replaced duplicate {record.path} with symlink to {canonical}")
            return ResolutionOutcome(record, Resolution.LINKED, canonical, size)

    def _replace_with_link(self, path: str, canonical: str) -> None:
        target = link_target(canonical, path, self.link_style)
        if self.atomic_replace:
            self._swap_in_link(path, target)
        else:
            self._delete_then_link(path, canonical, target)

    def _swap_in_link(self, path: str, target: str) -> None:
        """Create the link beside ``path`` and rename it over the duplicate."""
        temp_path = os.path.join(
            os.path.dirname(path), f"{TEMP_LINK_PREFIX}{uuid.uuid4().hex}"
        )
        try:
            os.symlink(target, temp_path)
        except OSError as e:
            raise FileIOError(path, f"cannot create link: {e.strerror or e}") from e
        try:
            os.replace(temp_path, path)
        except OSError as e:
            try:
                os.unlink(temp_path)
            except OSError:
                logger.warning(f"Could not remove temporary link {temp_path}")
            raise FileIOError(path, f"cannot replace with link: {e.strerror or e}") from e

    def _delete_then_link(self, path: str, canonical: str, target: str) -> None:
        try:
            os.unlink(path)
        except OSError as e:
            raise FileIOError(path, f"cannot remove duplicate: {e.strerror or e}") from e
        try:
            os.symlink(target, path)
        except OSError as e:
            raise PartialDuplicateFailure(
                path, canonical, f"removed but link failed: {e.strerror or e}"
            ) from e
