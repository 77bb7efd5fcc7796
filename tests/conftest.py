from __future__ import annotations

import hashlib
import shlex
import sys
from pathlib import Path

import pytest

from aurion.memory.journal import MemoryJournal
from aurion.self_edit.orchestrator import SelfEditOrchestrator
from config.config import Settings


PY = shlex.quote(sys.executable)
PASS_CMD = f'{PY} -c "pass"'
FAIL_CMD = f'{PY} -c "import sys; sys.exit(3)"'


def sha(path: Path) -> str | None:
    if not path.exists():
        return None
    return hashlib.sha256(path.read_bytes()).hexdigest()


class FakeGenerator:
    """Scripted stand-in for the LLM generator: returns queued proposal dicts in order."""

    def __init__(self, *replies: dict):
        self.replies = list(replies)
        self.calls: list[tuple[str, str]] = []

    def queue(self, reply: dict) -> None:
        self.replies.append(reply)

    def generate(self, goal: str, context: str) -> dict:
        self.calls.append((goal, context))
        return self.replies.pop(0)


@pytest.fixture()
def repo(tmp_path: Path) -> Path:
    root = tmp_path / "repo"
    (root / "addons").mkdir(parents=True)
    (root / "addons" / "note.txt").write_text("first line", encoding="utf-8")
    (root / "addons" / "x.txt").write_text("alpha\nbeta\n", encoding="utf-8")
    (root / "core.json").write_text('{"core": ["be kind"]}', encoding="utf-8")
    (root / "server.js").write_text("console.log('hi');\n", encoding="utf-8")
    return root


@pytest.fixture()
def cfg(tmp_path: Path, repo: Path) -> Settings:
    data = tmp_path / "data"
    return Settings(
        repo_root=str(repo),
        data_dir=str(data),
        proposals_dir=str(data / "proposals"),
        backups_dir=str(data / "backups"),
        core_file=str(repo / "core.json"),
        memory_db_path=str(data / "memory.db"),
        selfedit_allowlist=["core.json", "addons/"],
        build_cmd=PASS_CMD,
        validation_timeout_sec=30,
    )


@pytest.fixture()
def generator() -> FakeGenerator:
    return FakeGenerator()


@pytest.fixture()
def journal(tmp_path: Path):
    j = MemoryJournal(tmp_path / "journal.db")
    yield j
    j.close()


@pytest.fixture()
def orch(cfg: Settings, generator: FakeGenerator, journal: MemoryJournal) -> SelfEditOrchestrator:
    return SelfEditOrchestrator.from_settings(cfg, generator=generator, journal=journal)


@pytest.fixture()
def file_sha():
    return sha
