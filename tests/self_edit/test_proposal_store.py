import json

import pytest

from aurion.self_edit.errors import ProposalNotFound
from aurion.self_edit.models import (
    ApplyRecord,
    BackupRecord,
    Proposal,
    Status,
    parse_proposal_body,
)
from aurion.self_edit.proposal_store import JsonFileProposalStore


def _body(goal="g"):
    return parse_proposal_body(
        {"goal": goal, "patches": [{"target": "addons/a.txt", "action": "append", "snippet": "x"}]}
    )


@pytest.fixture()
def store(tmp_path):
    return JsonFileProposalStore(tmp_path / "proposals")


def test_create_persists_proposed_record(store, tmp_path):
    p = store.create(_body())
    assert p.status == Status.PROPOSED
    on_disk = json.loads((tmp_path / "proposals" / f"{p.id}.json").read_text(encoding="utf-8"))
    assert on_disk["status"] == "proposed"
    assert on_disk["createdAt"] == p.created_at
    assert on_disk["proposal"]["patches"][0]["action"] == "append"


def test_ids_are_unique(store):
    ids = {store.create(_body()).id for _ in range(20)}
    assert len(ids) == 20


def test_save_and_load_roundtrip_with_apply_record(store):
    p = store.create(_body())
    p.status = Status.APPLIED
    p.apply = ApplyRecord(
        backups=[BackupRecord("addons/a.txt", "/b/a.txt.backup.1"), BackupRecord("addons/new.txt", None)],
        build_ok=True,
    )
    store.save(p)
    loaded = store.load(p.id)
    assert loaded.status == Status.APPLIED
    assert loaded.apply.backups == p.apply.backups
    assert loaded.apply.to_dict()["backups"][1] == {"file": "addons/new.txt", "backup": None}


def test_load_is_always_from_disk(store, tmp_path):
    p = store.create(_body())
    path = tmp_path / "proposals" / f"{p.id}.json"
    data = json.loads(path.read_text(encoding="utf-8"))
    data["status"] = "validated"
    path.write_text(json.dumps(data), encoding="utf-8")
    assert store.load(p.id).status == Status.VALIDATED


@pytest.mark.parametrize("bad_id", ["nope", "../../etc/passwd", "a/b", ""])
def test_unknown_or_malformed_id(store, bad_id):
    with pytest.raises(ProposalNotFound):
        store.load(bad_id)


def test_list_is_newest_first(store, tmp_path):
    older = store.create(_body("older"))
    newer = store.create(_body("newer"))
    # force distinct, known timestamps
    for p, ts in ((older, "2024-01-01T00:00:00+00:00"), (newer, "2025-06-01T00:00:00+00:00")):
        p.created_at = ts
        store.save(p)
    assert [p.proposal.goal for p in store.list_all()] == ["newer", "older"]


def test_list_skips_unreadable_records(store, tmp_path):
    store.create(_body())
    (tmp_path / "proposals" / "broken.json").write_text("{not json", encoding="utf-8")
    assert len(store.list_all()) == 1


def test_proposal_dict_shape(store):
    p = store.create(_body())
    data = p.to_dict()
    assert set(data) == {"id", "createdAt", "status", "proposal"}
    assert set(data["proposal"]) == {"goal", "rationale", "patches", "tests", "risk", "revert"}
    assert Proposal.from_dict(data).id == p.id
