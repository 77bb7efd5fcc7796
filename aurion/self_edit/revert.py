# aurion/self_edit/revert.py
from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator, Sequence

from loguru import logger

from aurion.self_edit.backup_manager import BackupManager
from aurion.self_edit.errors import PatchApplyError
from aurion.self_edit.models import BackupRecord, CreatePatch, Patch
from aurion.self_edit.patch_engine import PatchEngine


def undo_record(backups: BackupManager, record: BackupRecord) -> None:
    """Undo one mutation: restore its snapshot, or delete the file if the mutation created it."""
    if record.backup_path is not None:
        backups.restore(record.backup_path, record.target)
        return
    backups.abs_target(record.target).unlink(missing_ok=True)
    # deepest first; only directories this create introduced, and only if now empty
    for rel in record.created_dirs:
        try:
            backups.abs_target(rel).rmdir()
        except OSError:
            break
    logger.debug(f"[revert] removed created file {record.target}")


def undo_records(backups: BackupManager, records: Sequence[BackupRecord]) -> None:
    """Undo records latest-first. Every record is attempted; the first failure is re-raised after."""
    first_error: BaseException | None = None
    for record in reversed(records):
        try:
            undo_record(backups, record)
        except Exception as e:
            logger.error(f"[revert] could not undo {record.target} from {record.backup_path}: {e}")
            if first_error is None:
                first_error = e
    if first_error is not None:
        raise first_error


class ChangeJournal:
    """Ordered record of the mutations made in one call, so they can be undone latest-first."""

    def __init__(self, engine: PatchEngine):
        self.engine = engine
        self.backups = engine.backups
        self._records: list[BackupRecord] = []

    @property
    def records(self) -> list[BackupRecord]:
        return list(self._records)

    def _missing_parents(self, target: str) -> tuple[str, ...]:
        root = self.backups.root
        missing: list[str] = []
        parent = self.backups.abs_target(target).parent
        while parent != root and not parent.exists():
            missing.append(parent.relative_to(root).as_posix())
            parent = parent.parent
        return tuple(missing)  # deepest first

    def apply(self, patch: Patch, index: int | None = None) -> BackupRecord:
        created_dirs = self._missing_parents(patch.target) if isinstance(patch, CreatePatch) else ()
        try:
            record = self.engine.apply(patch)
        except PatchApplyError as e:
            e.index = index
            raise
        if record is None:
            record = BackupRecord(target=patch.target, backup_path=None, created_dirs=created_dirs)
        self._records.append(record)
        return record

    def revert(self) -> None:
        """Undo everything journaled so far, latest-first. Safe to call more than once."""
        records, self._records = self._records, []
        undo_records(self.backups, records)


@contextmanager
def revert_on_error(engine: PatchEngine) -> Iterator[ChangeJournal]:
    """
    Scope a batch of patch applications. Any exception escaping the block, including
    KeyboardInterrupt, first undoes every mutation made inside it, then propagates.
    """
    journal = ChangeJournal(engine)
    try:
        yield journal
    except BaseException as e:
        pending = len(journal.records)
        if pending:
            if isinstance(e, PatchApplyError):
                logger.warning(f"[revert] patch failed ({e.reason}); reverting {pending} change(s)")
            else:
                logger.error(f"[revert] {type(e).__name__} mid-batch; reverting {pending} change(s)")
        journal.revert()
        raise
