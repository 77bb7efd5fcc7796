import json

import pytest

from cli import selfedit_cli


@pytest.fixture()
def cli_orch(orch, monkeypatch):
    monkeypatch.setattr(selfedit_cli.SelfEditOrchestrator, "from_settings", staticmethod(lambda *a, **k: orch))
    return orch


def _queue_append(generator, snippet="hello"):
    generator.queue({"goal": "greet", "patches": [{"target": "addons/note.txt", "action": "append", "snippet": snippet}]})


def test_list_empty(cli_orch, capsys):
    assert selfedit_cli.main(["list"]) == 0
    assert "No proposals yet" in capsys.readouterr().out


def test_propose_then_list_and_show(cli_orch, generator, capsys):
    _queue_append(generator)
    assert selfedit_cli.main(["propose", "greet", "--context", "anchor"]) == 0
    body = json.loads(capsys.readouterr().out)
    pid = body["id"]
    assert body["proposal"]["goal"] == "greet"
    assert generator.calls[-1] == ("greet", "anchor")

    assert selfedit_cli.main(["list"]) == 0
    out = capsys.readouterr().out
    assert pid in out and "proposed" in out

    assert selfedit_cli.main(["show", pid]) == 0
    assert json.loads(capsys.readouterr().out)["status"] == "proposed"


def test_full_lifecycle_through_cli(cli_orch, generator, repo, capsys):
    _queue_append(generator)
    selfedit_cli.main(["propose", "greet"])
    pid = json.loads(capsys.readouterr().out)["id"]

    assert selfedit_cli.main(["validate", pid]) == 0
    assert json.loads(capsys.readouterr().out)["allOk"] is True

    assert selfedit_cli.main(["approve", pid]) == 0
    assert json.loads(capsys.readouterr().out)["buildOk"] is True
    assert (repo / "addons/note.txt").read_text(encoding="utf-8").endswith("hello")

    assert selfedit_cli.main(["rollback", pid]) == 0
    assert json.loads(capsys.readouterr().out) == {"id": pid, "buildOk": True}
    assert (repo / "addons/note.txt").read_text(encoding="utf-8") == "first line"


def test_errors_print_body_and_exit_nonzero(cli_orch, generator, capsys):
    generator.queue({"patches": [{"target": "server.js", "action": "append", "snippet": "x"}]})
    selfedit_cli.main(["propose", "sneaky"])
    pid = json.loads(capsys.readouterr().out)["id"]

    assert selfedit_cli.main(["approve", pid]) == 1
    body = json.loads(capsys.readouterr().out)
    assert body["error"] == "Path not allowed"
    assert "server.js" in body["detail"]

    assert selfedit_cli.main(["rollback", "0123456789abcdef"]) == 1
    assert json.loads(capsys.readouterr().out)["error"] == "Proposal not found"


def test_restore_latest(cli_orch, generator, repo, capsys):
    _queue_append(generator, "later")
    selfedit_cli.main(["propose", "greet"])
    pid = json.loads(capsys.readouterr().out)["id"]
    selfedit_cli.main(["approve", pid])
    capsys.readouterr()

    assert selfedit_cli.main(["restore-latest", "addons/note.txt"]) == 0
    assert "Restored addons/note.txt" in capsys.readouterr().out
    assert (repo / "addons/note.txt").read_text(encoding="utf-8") == "first line"


def test_commands_cheat_sheet(capsys):
    assert selfedit_cli.main(["commands"]) == 0
    assert "restore-latest" in capsys.readouterr().out


def test_io_errors_print_generic_body(cli_orch, generator, repo, capsys):
    (repo / "addons/latin1.txt").write_bytes(b"caf\xe9\n")
    generator.queue({"patches": [{"target": "addons/latin1.txt", "action": "append", "snippet": "x"}]})
    selfedit_cli.main(["propose", "edit binary-ish file"])
    pid = json.loads(capsys.readouterr().out)["id"]

    assert selfedit_cli.main(["approve", pid]) == 1
    body = json.loads(capsys.readouterr().out)
    assert body["error"] == "Self-edit failed"
    assert "UnicodeDecodeError" in body["detail"]
    assert (repo / "addons/latin1.txt").read_bytes() == b"caf\xe9\n"


def test_os_errors_print_generic_body(cli_orch, monkeypatch, capsys):
    def full_disk(proposal_id):
        raise OSError(28, "No space left on device")

    monkeypatch.setattr(cli_orch, "validate", full_disk)
    assert selfedit_cli.main(["validate", "0123456789abcdef"]) == 1
    body = json.loads(capsys.readouterr().out)
    assert body["error"] == "Self-edit failed"
    assert "No space left on device" in body["detail"]
