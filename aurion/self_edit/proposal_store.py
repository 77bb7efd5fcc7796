# aurion/self_edit/proposal_store.py
from __future__ import annotations

import json
import re
import secrets
from abc import ABC, abstractmethod
from pathlib import Path

from loguru import logger

from aurion.self_edit.backup_manager import atomic_write_bytes
from aurion.self_edit.errors import InvalidProposal, ProposalNotFound
from aurion.self_edit.models import Proposal, ProposalBody, Status, utc_now_iso

_ID_RE = re.compile(r"^[A-Za-z0-9_-]{1,64}$")


class ProposalRepository(ABC):
    """Storage seam for proposal records. The on-disk record is the only source of truth for status."""

    @abstractmethod
    def create(self, body: ProposalBody) -> Proposal: ...

    @abstractmethod
    def load(self, proposal_id: str) -> Proposal: ...

    @abstractmethod
    def save(self, proposal: Proposal) -> None: ...

    @abstractmethod
    def list_all(self) -> list[Proposal]: ...


class JsonFileProposalStore(ProposalRepository):
    """One pretty-printed JSON file per proposal: `<proposals_dir>/<id>.json`."""

    def __init__(self, proposals_dir: str | Path):
        self.dir = Path(proposals_dir)
        self.dir.mkdir(parents=True, exist_ok=True)

    def _path(self, proposal_id: str) -> Path:
        if not isinstance(proposal_id, str) or not _ID_RE.match(proposal_id):
            raise ProposalNotFound(str(proposal_id))
        return self.dir / f"{proposal_id}.json"

    def _write(self, proposal: Proposal) -> None:
        payload = json.dumps(proposal.to_dict(), indent=2, ensure_ascii=False)
        atomic_write_bytes(self._path(proposal.id), payload.encode("utf-8"))

    def create(self, body: ProposalBody) -> Proposal:
        while True:
            proposal_id = secrets.token_hex(8)
            if not self._path(proposal_id).exists():
                break
        proposal = Proposal(
            id=proposal_id,
            created_at=utc_now_iso(),
            status=Status.PROPOSED,
            proposal=body,
        )
        self._write(proposal)
        logger.debug(f"[store] created {proposal_id}")
        return proposal

    def load(self, proposal_id: str) -> Proposal:
        path = self._path(proposal_id)
        if not path.is_file():
            raise ProposalNotFound(proposal_id)
        data = json.loads(path.read_text(encoding="utf-8"))
        return Proposal.from_dict(data)

    def save(self, proposal: Proposal) -> None:
        if not self._path(proposal.id).is_file():
            raise ProposalNotFound(proposal.id)
        self._write(proposal)
        logger.debug(f"[store] saved {proposal.id} status={proposal.status.value}")

    def list_all(self) -> list[Proposal]:
        """Every stored proposal, newest first by createdAt."""
        items: list[Proposal] = []
        for p in self.dir.glob("*.json"):
            try:
                items.append(Proposal.from_dict(json.loads(p.read_text(encoding="utf-8"))))
            except (ValueError, KeyError, InvalidProposal) as e:
                logger.warning(f"[store] skipping unreadable record {p.name}: {e}")
        items.sort(key=lambda pr: pr.created_dt, reverse=True)
        return items
