# aurion/self_edit/backup_manager.py
from __future__ import annotations

import os
import shutil
import tempfile
from datetime import datetime, timezone
from pathlib import Path

from loguru import logger

from aurion.self_edit.errors import BackupNotFound
from aurion.self_edit.models import BackupRecord


def _stamp() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H-%M-%S-%fZ")


def atomic_write_bytes(path: Path, data: bytes) -> None:
    """Write via a sibling temp file + rename so a crash never leaves a half-written target."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp, path)
    except BaseException:
        try:
            os.unlink(tmp)
        except FileNotFoundError:
            pass
        raise


class BackupManager:
    """
    Snapshots files under `repo_root` into `backups_dir` before they are overwritten.

    Backup names are `<relative target>.backup.<utc stamp>`; a name is claimed with an
    exclusive create so an existing snapshot is never overwritten.
    """

    def __init__(self, repo_root: str | Path, backups_dir: str | Path):
        self.root = Path(repo_root).resolve()
        self.backups_dir = Path(backups_dir).resolve()
        self.backups_dir.mkdir(parents=True, exist_ok=True)

    def abs_target(self, target: str) -> Path:
        return self.root / target

    def _claim(self, target: str) -> tuple[Path, object]:
        base = self.backups_dir / f"{target}.backup.{_stamp()}"
        base.parent.mkdir(parents=True, exist_ok=True)
        candidate = base
        n = 0
        while True:
            try:
                return candidate, open(candidate, "xb")
            except FileExistsError:
                n += 1
                candidate = base.with_name(f"{base.name}-{n}")

    def snapshot(self, target: str) -> str | None:
        """Copy the current bytes of `target` to a fresh backup file. None if there is nothing to preserve."""
        src = self.abs_target(target)
        if not src.exists():
            return None
        dest, handle = self._claim(target)
        try:
            with handle, open(src, "rb") as f:
                shutil.copyfileobj(f, handle)
                handle.flush()
                os.fsync(handle.fileno())
        except BaseException:
            dest.unlink(missing_ok=True)
            raise
        logger.debug(f"[backup] {target} -> {dest}")
        return str(dest)

    def write_with_backup(self, target: str, content: str) -> BackupRecord:
        """Backup-then-overwrite: the snapshot is durable before the target is touched."""
        backup_path = self.snapshot(target)
        atomic_write_bytes(self.abs_target(target), content.encode("utf-8"))
        return BackupRecord(target=target, backup_path=backup_path)

    def restore(self, backup_path: str, target: str) -> None:
        """Copy a snapshot back over `target`. Idempotent."""
        src = Path(backup_path)
        if not src.is_file():
            raise BackupNotFound(backup_path)
        atomic_write_bytes(self.abs_target(target), src.read_bytes())
        logger.debug(f"[restore] {backup_path} -> {target}")

    def list_backups(self, target: str) -> list[str]:
        """All snapshots of `target`, oldest first."""
        pattern_dir = (self.backups_dir / target).parent
        prefix = f"{Path(target).name}.backup."
        if not pattern_dir.is_dir():
            return []
        found = [p for p in pattern_dir.iterdir() if p.is_file() and p.name.startswith(prefix)]
        return [str(p) for p in sorted(found, key=lambda p: p.name)]

    def latest_backup(self, target: str) -> str | None:
        backups = self.list_backups(target)
        return backups[-1] if backups else None
