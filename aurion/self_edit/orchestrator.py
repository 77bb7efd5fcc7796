# aurion/self_edit/orchestrator.py
"""
Lifecycle orchestrator for self-edit proposals.

    proposed -> validated | failed_validation -> applied | applied_with_build_errors -> rolled_back

`validate` is a dry run (apply, test, always revert). `approve` applies for good and records the
backups `rollback` will later restore. Any failure while patches are being applied undoes the
changes made so far in that call before the error reaches the caller.
"""
from __future__ import annotations

import sqlite3
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Sequence

from loguru import logger

from aurion.memory.journal import MemoryJournal
from aurion.self_edit.backup_manager import BackupManager
from aurion.self_edit.errors import (
    AlreadyApplied,
    AlreadyRolledBack,
    BackupNotFound,
    InvalidProposal,
    InvalidTransition,
    NothingToRollBack,
    PathNotAllowed,
)
from aurion.self_edit.generator import ProposalGenerator, ProposalSource
from aurion.self_edit.locks import LockRegistry
from aurion.self_edit.models import (
    ApplyRecord,
    BackupRecord,
    Proposal,
    RollbackRecord,
    RunReport,
    Status,
    TestStep,
    ValidationRecord,
    parse_proposal_body,
)
from aurion.self_edit.patch_engine import PatchEngine
from aurion.self_edit.proposal_store import JsonFileProposalStore, ProposalRepository
from aurion.self_edit.revert import revert_on_error, undo_records
from aurion.self_edit.validation_runner import ValidationRunner
from aurion.self_edit.write_fence import WriteFence, normalize_target
from config.config import Settings, settings as default_settings

APPLIED_STATES = {Status.APPLIED, Status.APPLIED_WITH_BUILD_ERRORS}
VALIDATABLE_STATES = {Status.PROPOSED, Status.VALIDATED, Status.FAILED_VALIDATION}
APPROVABLE_STATES = {Status.PROPOSED, Status.VALIDATED}


# ---------- responses ----------

@dataclass(frozen=True)
class ProposeResult:
    proposal: Proposal

    def to_response(self) -> dict[str, Any]:
        return {"id": self.proposal.id, "proposal": self.proposal.proposal.to_dict()}


@dataclass(frozen=True)
class ValidateResult:
    id: str
    status: Status
    report: RunReport

    @property
    def all_ok(self) -> bool:
        return self.report.all_ok

    def to_response(self) -> dict[str, Any]:
        return {"id": self.id, **self.report.to_dict()}


@dataclass(frozen=True)
class ApproveResult:
    id: str
    status: Status
    build_ok: bool
    backups: list[BackupRecord]

    def to_response(self) -> dict[str, Any]:
        return {"id": self.id, "buildOk": self.build_ok, "backups": [b.to_dict() for b in self.backups]}


@dataclass(frozen=True)
class RollbackResult:
    id: str
    build_ok: bool

    def to_response(self) -> dict[str, Any]:
        return {"id": self.id, "buildOk": self.build_ok}


class SelfEditOrchestrator:
    def __init__(
        self,
        store: ProposalRepository,
        engine: PatchEngine,
        fence: WriteFence,
        runner: ValidationRunner,
        build_step: TestStep,
        generator: ProposalSource | None = None,
        journal: MemoryJournal | None = None,
        locks: LockRegistry | None = None,
    ):
        self.store = store
        self.engine = engine
        self.backups: BackupManager = engine.backups
        self.fence = fence
        self.runner = runner
        self.build_step = build_step
        self.generator = generator
        self.journal = journal
        self.locks = locks or LockRegistry(self.backups.backups_dir.parent / "locks")

    @classmethod
    def from_settings(
        cls,
        cfg: Settings | None = None,
        generator: ProposalSource | None = None,
        journal: MemoryJournal | None = None,
    ) -> "SelfEditOrchestrator":
        cfg = cfg or default_settings
        cfg.ensure_dirs()
        backups = BackupManager(cfg.repo_root, cfg.backups_dir)
        return cls(
            store=JsonFileProposalStore(cfg.proposals_dir),
            engine=PatchEngine(backups),
            fence=WriteFence(
                cfg.selfedit_allowlist,
                repo_root=cfg.repo_root,
                protected_dirs=[cfg.proposals_dir, cfg.backups_dir, cfg.lock_dir()],
            ),
            runner=ValidationRunner(cwd=cfg.repo_root, timeout=cfg.validation_timeout_sec),
            build_step=TestStep(cmd=cfg.build_cmd, description=cfg.build_description),
            generator=generator or ProposalGenerator.from_settings(cfg),
            journal=journal if journal is not None else MemoryJournal(cfg.memory_db_path),
            locks=LockRegistry(cfg.lock_dir(), timeout=cfg.lock_timeout_sec),
        )

    # ---------- helpers ----------

    def _remember(self, content: str, tags: list[str]) -> None:
        if self.journal is None:
            return
        try:
            self.journal.add(content, tags)
        except sqlite3.Error as e:
            logger.warning(f"[selfedit] memory journal write failed: {e}")

    def _context_for(self, goal: str, context: str | Sequence[str] | None) -> str:
        if context is None:
            if self.journal is None:
                return ""
            try:
                return "\n".join(self.journal.recall_for(goal))
            except sqlite3.Error as e:
                logger.warning(f"[selfedit] memory recall failed: {e}")
                return ""
        if isinstance(context, str):
            return context
        return "\n".join(context)

    @staticmethod
    def _guard_not_applied(proposal: Proposal, operation: str) -> None:
        if proposal.status in APPLIED_STATES:
            raise AlreadyApplied(proposal.id, proposal.status.value, operation)
        if proposal.status == Status.ROLLED_BACK:
            raise AlreadyRolledBack(proposal.id, proposal.status.value, operation)

    def _steps_for(self, proposal: Proposal) -> list[TestStep]:
        return list(proposal.proposal.tests) or [self.build_step]

    def _lock_keys(self, proposal: Proposal) -> list[str]:
        return [normalize_target(p.target) or p.target for p in proposal.proposal.patches]

    # ---------- operations ----------

    def propose(self, goal: str, context: str | Sequence[str] | None = None) -> ProposeResult:
        if not isinstance(goal, str) or not goal.strip():
            raise InvalidProposal(["'goal' is required"])
        if self.generator is None:
            raise RuntimeError("No proposal generator configured")

        raw = self.generator.generate(goal, self._context_for(goal, context))
        body = parse_proposal_body(raw, default_goal=goal)
        proposal = self.store.create(body)

        logger.info(f"[selfedit] proposed #{proposal.id}: {goal} ({len(body.patches)} patch(es))")
        self._remember(f"Self-edit proposed: {goal} (#{proposal.id})", ["selfedit", "proposed"])
        return ProposeResult(proposal)

    def validate(self, proposal_id: str) -> ValidateResult:
        """Dry run: apply every patch, run the tests, then put every touched file back as it was."""
        with self.locks.proposal(proposal_id):
            proposal = self.store.load(proposal_id)
            self._guard_not_applied(proposal, "validate")
            if proposal.status not in VALIDATABLE_STATES:
                raise InvalidTransition(proposal.id, proposal.status.value, "validate")

            patches = proposal.proposal.patches
            self.fence.check_batch(patches)

            with self.locks.targets(self._lock_keys(proposal)):
                with revert_on_error(self.engine) as journal:
                    for i, patch in enumerate(patches):
                        journal.apply(patch, index=i)
                    try:
                        report = self.runner.run(self._steps_for(proposal))
                    finally:
                        journal.revert()

            proposal.status = Status.VALIDATED if report.all_ok else Status.FAILED_VALIDATION
            proposal.validation = ValidationRecord(all_ok=report.all_ok, results=report.results)
            self.store.save(proposal)

        if report.all_ok:
            logger.info(f"[selfedit] #{proposal_id} validated")
        else:
            failed = [r.step for r in report.results if not r.ok]
            logger.warning(f"[selfedit] #{proposal_id} failed validation: {failed}")
        return ValidateResult(id=proposal_id, status=proposal.status, report=report)

    def approve(self, proposal_id: str) -> ApproveResult:
        """Permanent apply. The build check afterwards is diagnostic only."""
        with self.locks.proposal(proposal_id):
            proposal = self.store.load(proposal_id)
            self._guard_not_applied(proposal, "approve")
            if proposal.status not in APPROVABLE_STATES:
                raise InvalidTransition(proposal.id, proposal.status.value, "approve")

            patches = proposal.proposal.patches
            self.fence.check_batch(patches)

            with self.locks.targets(self._lock_keys(proposal)):
                # The apply record is persisted inside the scope: if it cannot be saved,
                # rollback would have nothing to work from, so the patches are undone instead.
                with revert_on_error(self.engine) as journal:
                    for i, patch in enumerate(patches):
                        journal.apply(patch, index=i)

                    build = self.runner.run_step(self.build_step)
                    backups = journal.records
                    proposal.status = Status.APPLIED if build.ok else Status.APPLIED_WITH_BUILD_ERRORS
                    proposal.apply = ApplyRecord(
                        backups=backups,
                        build_ok=build.ok,
                        stdout=build.stdout,
                        stderr=build.stderr,
                    )
                    self.store.save(proposal)

        if build.ok:
            logger.info(f"[selfedit] #{proposal_id} applied ({len(backups)} file change(s))")
        else:
            logger.warning(f"[selfedit] #{proposal_id} applied with build errors (exit={build.exit_code})")
        self._remember(f"Self-edit approved (#{proposal_id}). BuildOK={build.ok}", ["selfedit", "approved"])
        return ApproveResult(id=proposal_id, status=proposal.status, build_ok=build.ok, backups=backups)

    def rollback(self, proposal_id: str) -> RollbackResult:
        with self.locks.proposal(proposal_id):
            proposal = self.store.load(proposal_id)
            if proposal.status == Status.ROLLED_BACK:
                raise AlreadyRolledBack(proposal.id, proposal.status.value, "roll back")
            if proposal.apply is None:
                raise NothingToRollBack(proposal.id)

            records = proposal.apply.backups
            # check every snapshot up front so a missing one fails with nothing restored
            missing = [r.backup_path for r in records if r.backup_path is not None and not Path(r.backup_path).is_file()]
            if missing:
                raise BackupNotFound(missing[0])

            with self.locks.targets(normalize_target(r.target) or r.target for r in records):
                undo_records(self.backups, records)

            build = self.runner.run_step(self.build_step)
            proposal.status = Status.ROLLED_BACK
            proposal.rollback = RollbackRecord(build_ok=build.ok)
            self.store.save(proposal)

        logger.info(f"[selfedit] #{proposal_id} rolled back (buildOk={build.ok})")
        self._remember(f"Self-edit rolled back (#{proposal_id}).", ["selfedit", "rollback"])
        return RollbackResult(id=proposal_id, build_ok=build.ok)

    def list(self) -> list[Proposal]:
        return self.store.list_all()

    def get(self, proposal_id: str) -> Proposal:
        return self.store.load(proposal_id)

    def restore_latest(self, target: str) -> BackupRecord:
        """Put the newest snapshot of an allowed target back in place."""
        norm = normalize_target(target)
        if norm is None or not self.fence.is_allowed(norm):
            raise PathNotAllowed([target])
        with self.locks.targets([norm]):
            latest = self.backups.latest_backup(norm)
            if latest is None:
                raise BackupNotFound(f"No backups for {norm}")
            self.backups.restore(latest, norm)
        logger.info(f"[selfedit] restored {norm} from {latest}")
        return BackupRecord(target=norm, backup_path=latest)
