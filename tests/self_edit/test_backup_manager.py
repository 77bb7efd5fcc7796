from pathlib import Path

import pytest

from aurion.self_edit.backup_manager import BackupManager
from aurion.self_edit.errors import BackupNotFound


@pytest.fixture()
def backups(repo: Path, tmp_path: Path) -> BackupManager:
    return BackupManager(repo, tmp_path / "backups")


def test_snapshot_of_missing_file_is_none(backups):
    assert backups.snapshot("addons/ghost.txt") is None


def test_snapshot_names_encode_target(backups, tmp_path):
    path = backups.snapshot("addons/note.txt")
    p = Path(path)
    assert p.is_relative_to((tmp_path / "backups").resolve())
    assert p.parent.name == "addons"
    assert p.name.startswith("note.txt.backup.")
    assert p.read_text(encoding="utf-8") == "first line"


def test_snapshots_never_collide(backups):
    paths = [backups.snapshot("addons/note.txt") for _ in range(5)]
    assert len(set(paths)) == 5
    assert backups.list_backups("addons/note.txt") == sorted(paths)


def test_write_with_backup_preserves_previous_bytes(backups, repo):
    rec = backups.write_with_backup("addons/note.txt", "changed")
    assert (repo / "addons/note.txt").read_text(encoding="utf-8") == "changed"
    assert Path(rec.backup_path).read_text(encoding="utf-8") == "first line"


def test_restore_is_idempotent(backups, repo):
    rec = backups.write_with_backup("addons/note.txt", "changed")
    backups.restore(rec.backup_path, "addons/note.txt")
    first = (repo / "addons/note.txt").read_bytes()
    backups.restore(rec.backup_path, "addons/note.txt")
    assert (repo / "addons/note.txt").read_bytes() == first == b"first line"


def test_restore_missing_backup(backups):
    with pytest.raises(BackupNotFound):
        backups.restore("/definitely/not/here", "addons/note.txt")


def test_latest_backup(backups, repo):
    assert backups.latest_backup("addons/note.txt") is None
    backups.write_with_backup("addons/note.txt", "v2")
    second = backups.write_with_backup("addons/note.txt", "v3")
    assert backups.latest_backup("addons/note.txt") == second.backup_path
    assert Path(second.backup_path).read_text(encoding="utf-8") == "v2"
