# aurion/self_edit/models.py
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, ClassVar, Union

from aurion.self_edit.errors import InvalidProposal


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class Status(str, Enum):
    PROPOSED = "proposed"
    VALIDATED = "validated"
    FAILED_VALIDATION = "failed_validation"
    APPLIED = "applied"
    APPLIED_WITH_BUILD_ERRORS = "applied_with_build_errors"
    ROLLED_BACK = "rolled_back"


VALID_RISKS = {"low", "medium", "high"}


# ---------- patches ----------

@dataclass(frozen=True)
class CreatePatch:
    target: str
    snippet: str
    action: ClassVar[str] = "create"


@dataclass(frozen=True)
class AppendPatch:
    target: str
    snippet: str
    action: ClassVar[str] = "append"


@dataclass(frozen=True)
class InsertAfterPatch:
    target: str
    anchor: str
    snippet: str
    action: ClassVar[str] = "insertAfter"


@dataclass(frozen=True)
class ReplacePatch:
    target: str
    find: str
    replace: str
    action: ClassVar[str] = "replace"


Patch = Union[CreatePatch, AppendPatch, InsertAfterPatch, ReplacePatch]

# action -> (class, required string fields besides target)
PATCH_TYPES: dict[str, tuple[type, tuple[str, ...]]] = {
    "create": (CreatePatch, ("snippet",)),
    "append": (AppendPatch, ("snippet",)),
    "insertAfter": (InsertAfterPatch, ("anchor", "snippet")),
    "replace": (ReplacePatch, ("find", "replace")),
}


def patch_to_dict(patch: Patch) -> dict[str, Any]:
    data: dict[str, Any] = {"target": patch.target, "action": patch.action}
    _, fields = PATCH_TYPES[patch.action]
    for name in fields:
        data[name] = getattr(patch, name)
    return data


def _parse_patch(raw: Any, index: int, problems: list[str]) -> Patch | None:
    where = f"patches[{index}]"
    if not isinstance(raw, dict):
        problems.append(f"{where}: must be an object")
        return None

    target = raw.get("target")
    action = raw.get("action")
    ok = True
    if not isinstance(target, str) or not target.strip():
        problems.append(f"{where}: 'target' must be a non-empty string")
        ok = False
    if action not in PATCH_TYPES:
        problems.append(f"{where}: unrecognized action {action!r}")
        return None

    cls, required = PATCH_TYPES[action]
    values: dict[str, str] = {}
    for name in required:
        value = raw.get(name)
        if not isinstance(value, str):
            problems.append(f"{where}: '{action}' requires string '{name}'")
            ok = False
            continue
        values[name] = value
    if action == "insertAfter" and values.get("anchor") == "":
        problems.append(f"{where}: 'anchor' must not be empty")
        ok = False
    if action == "replace" and values.get("find") == "":
        problems.append(f"{where}: 'find' must not be empty")
        ok = False

    if not ok:
        return None
    return cls(target=target.strip(), **values)


# ---------- proposal body ----------

@dataclass(frozen=True)
class TestStep:
    cmd: str
    description: str = ""

    __test__ = False  # keep pytest from collecting this as a test class

    @property
    def label(self) -> str:
        return self.description or self.cmd

    def to_dict(self) -> dict[str, str]:
        return {"cmd": self.cmd, "description": self.description}


@dataclass
class ProposalBody:
    goal: str
    patches: list[Patch]
    tests: list[TestStep] = field(default_factory=list)
    rationale: str = ""
    risk: str | None = None
    revert: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "goal": self.goal,
            "rationale": self.rationale,
            "patches": [patch_to_dict(p) for p in self.patches],
            "tests": [t.to_dict() for t in self.tests],
            "risk": self.risk,
            "revert": self.revert,
        }


def parse_proposal_body(raw: Any, default_goal: str = "") -> ProposalBody:
    """
    Structurally validate a generator (or stored) proposal and build the typed body.
    Collects every problem before raising so the caller sees the whole picture.
    """
    if not isinstance(raw, dict):
        raise InvalidProposal(["proposal must be a JSON object"])

    problems: list[str] = []

    raw_patches = raw.get("patches")
    patches: list[Patch] = []
    if not isinstance(raw_patches, list) or not raw_patches:
        problems.append("'patches' must be a non-empty list")
    else:
        for i, rp in enumerate(raw_patches):
            parsed = _parse_patch(rp, i, problems)
            if parsed is not None:
                patches.append(parsed)

    raw_tests = raw.get("tests") or []
    tests: list[TestStep] = []
    if not isinstance(raw_tests, list):
        problems.append("'tests' must be a list")
    else:
        for i, rt in enumerate(raw_tests):
            if not isinstance(rt, dict) or not isinstance(rt.get("cmd"), str) or not rt["cmd"].strip():
                problems.append(f"tests[{i}]: 'cmd' must be a non-empty string")
                continue
            desc = rt.get("description") or ""
            tests.append(TestStep(cmd=rt["cmd"], description=str(desc)))

    risk = raw.get("risk")
    if risk is not None:
        if not isinstance(risk, str) or risk.lower() not in VALID_RISKS:
            problems.append(f"'risk' must be one of {sorted(VALID_RISKS)}")
        else:
            risk = risk.lower()

    goal = raw.get("goal") or default_goal
    if not isinstance(goal, str):
        problems.append("'goal' must be a string")

    if problems:
        raise InvalidProposal(problems)

    return ProposalBody(
        goal=goal,
        patches=patches,
        tests=tests,
        rationale=str(raw.get("rationale") or ""),
        risk=risk,
        revert=str(raw.get("revert") or ""),
    )


# ---------- results ----------

@dataclass(frozen=True)
class BackupRecord:
    """Pointer from a mutated target to its pre-write snapshot. backup_path None = file was created."""

    target: str
    backup_path: str | None
    # repo-relative dirs a create introduced, deepest first; removed again when the create is undone
    created_dirs: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {"file": self.target, "backup": self.backup_path}
        if self.created_dirs:
            body["createdDirs"] = list(self.created_dirs)
        return body

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "BackupRecord":
        return cls(
            target=data["file"],
            backup_path=data.get("backup"),
            created_dirs=tuple(data.get("createdDirs") or ()),
        )


@dataclass(frozen=True)
class StepResult:
    step: str
    ok: bool
    exit_code: int | None
    stdout: str = ""
    stderr: str = ""
    timed_out: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "step": self.step,
            "ok": self.ok,
            "exitCode": self.exit_code,
            "stdout": self.stdout,
            "stderr": self.stderr,
            "timedOut": self.timed_out,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "StepResult":
        return cls(
            step=data["step"],
            ok=bool(data["ok"]),
            exit_code=data.get("exitCode"),
            stdout=data.get("stdout", ""),
            stderr=data.get("stderr", ""),
            timed_out=bool(data.get("timedOut", False)),
        )


@dataclass(frozen=True)
class RunReport:
    all_ok: bool
    results: list[StepResult]

    def to_dict(self) -> dict[str, Any]:
        return {"allOk": self.all_ok, "results": [r.to_dict() for r in self.results]}


@dataclass
class ValidationRecord:
    all_ok: bool
    results: list[StepResult]
    ran_at: str = field(default_factory=utc_now_iso)

    def to_dict(self) -> dict[str, Any]:
        return {"allOk": self.all_ok, "results": [r.to_dict() for r in self.results], "ranAt": self.ran_at}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ValidationRecord":
        return cls(
            all_ok=bool(data["allOk"]),
            results=[StepResult.from_dict(r) for r in data.get("results", [])],
            ran_at=data["ranAt"],
        )


@dataclass
class ApplyRecord:
    backups: list[BackupRecord]
    build_ok: bool
    stdout: str = ""
    stderr: str = ""
    applied_at: str = field(default_factory=utc_now_iso)

    def to_dict(self) -> dict[str, Any]:
        return {
            "appliedAt": self.applied_at,
            "backups": [b.to_dict() for b in self.backups],
            "buildOk": self.build_ok,
            "stdout": self.stdout,
            "stderr": self.stderr,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ApplyRecord":
        return cls(
            backups=[BackupRecord.from_dict(b) for b in data.get("backups", [])],
            build_ok=bool(data["buildOk"]),
            stdout=data.get("stdout", ""),
            stderr=data.get("stderr", ""),
            applied_at=data["appliedAt"],
        )


@dataclass
class RollbackRecord:
    build_ok: bool
    at: str = field(default_factory=utc_now_iso)

    def to_dict(self) -> dict[str, Any]:
        return {"at": self.at, "buildOk": self.build_ok}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "RollbackRecord":
        return cls(build_ok=bool(data["buildOk"]), at=data["at"])


# ---------- proposal ----------

@dataclass
class Proposal:
    id: str
    created_at: str
    status: Status
    proposal: ProposalBody
    validation: ValidationRecord | None = None
    apply: ApplyRecord | None = None
    rollback: RollbackRecord | None = None

    @property
    def created_dt(self) -> datetime:
        return datetime.fromisoformat(self.created_at)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "id": self.id,
            "createdAt": self.created_at,
            "status": self.status.value,
            "proposal": self.proposal.to_dict(),
        }
        if self.validation is not None:
            data["validation"] = self.validation.to_dict()
        if self.apply is not None:
            data["apply"] = self.apply.to_dict()
        if self.rollback is not None:
            data["rollback"] = self.rollback.to_dict()
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Proposal":
        validation = data.get("validation")
        apply = data.get("apply")
        rollback = data.get("rollback")
        return cls(
            id=data["id"],
            created_at=data["createdAt"],
            status=Status(data["status"]),
            proposal=parse_proposal_body(data["proposal"]),
            validation=ValidationRecord.from_dict(validation) if validation else None,
            apply=ApplyRecord.from_dict(apply) if apply else None,
            rollback=RollbackRecord.from_dict(rollback) if rollback else None,
        )
