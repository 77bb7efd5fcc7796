# aurion/self_edit/patch_engine.py
from __future__ import annotations

from pathlib import Path

from loguru import logger

from aurion.self_edit.backup_manager import BackupManager, atomic_write_bytes
from aurion.self_edit.errors import (
    AnchorNotFound,
    NoMatchForFind,
    TargetAlreadyExists,
    TargetNotFound,
)
from aurion.self_edit.models import (
    AppendPatch,
    BackupRecord,
    CreatePatch,
    InsertAfterPatch,
    Patch,
    ReplacePatch,
)


def read_text(path: Path) -> str:
    # newline="" keeps CRLF files byte-exact through a read/modify/write cycle
    with open(path, "r", encoding="utf-8", newline="") as f:
        return f.read()


class PatchEngine:
    """Applies one structured edit to one file. All writes to existing files go through the BackupManager."""

    def __init__(self, backups: BackupManager):
        self.backups = backups

    def apply(self, patch: Patch) -> BackupRecord | None:
        path = self.backups.abs_target(patch.target)

        if isinstance(patch, CreatePatch):
            if path.exists():
                raise TargetAlreadyExists(patch.target)
            atomic_write_bytes(path, patch.snippet.encode("utf-8"))
            logger.debug(f"[patch] create {patch.target}")
            return None

        if not path.is_file():
            raise TargetNotFound(patch.target)
        current = read_text(path)

        if isinstance(patch, AppendPatch):
            nxt = current + "\n" + patch.snippet
        elif isinstance(patch, InsertAfterPatch):
            idx = current.find(patch.anchor)
            if idx == -1:
                raise AnchorNotFound(patch.target)
            pos = idx + len(patch.anchor)
            nxt = current[:pos] + "\n" + patch.snippet + current[pos:]
        elif isinstance(patch, ReplacePatch):
            nxt = current.replace(patch.find, patch.replace, 1)
            if nxt == current:
                raise NoMatchForFind(patch.target)
        else:
            raise TypeError(f"Unknown patch type: {type(patch).__name__}")

        record = self.backups.write_with_backup(patch.target, nxt)
        logger.debug(f"[patch] {patch.action} {patch.target} (backup={record.backup_path})")
        return record
