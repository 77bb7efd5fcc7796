# aurion/self_edit/errors.py
from __future__ import annotations

from typing import Any


class SelfEditError(RuntimeError):
    """Root of every error the self-edit pipeline surfaces to a caller."""

    status_code: int = 500

    def __init__(self, message: str, detail: Any = None):
        super().__init__(message)
        self.message = message
        self.detail = detail

    def to_response(self) -> dict[str, Any]:
        body: dict[str, Any] = {"error": self.message}
        if self.detail is not None:
            body["detail"] = self.detail
        return body


# ---------- propose ----------

class GenerationError(SelfEditError):
    status_code = 502


class InvalidProposal(SelfEditError):
    status_code = 400

    def __init__(self, problems: list[str]):
        super().__init__("Invalid proposal", detail=list(problems))
        self.problems = list(problems)


class ProposalNotFound(SelfEditError):
    status_code = 404

    def __init__(self, proposal_id: str):
        super().__init__("Proposal not found", detail=proposal_id)
        self.proposal_id = proposal_id


# ---------- write fence ----------

class PathNotAllowed(SelfEditError):
    status_code = 422

    def __init__(self, targets: list[str]):
        super().__init__(
            "Path not allowed", detail=f"Targets outside the write fence: {', '.join(targets)}"
        )
        self.targets = list(targets)


# ---------- patch engine ----------

class PatchApplyError(SelfEditError):
    status_code = 422

    def __init__(self, target: str, reason: str):
        super().__init__("Patch failed to apply", detail=reason)
        self.target = target
        self.reason = reason
        self.index: int | None = None

    def to_response(self) -> dict[str, Any]:
        body = super().to_response()
        body["kind"] = type(self).__name__
        if self.index is not None:
            body["patch"] = self.index
        return body


class TargetNotFound(PatchApplyError):
    def __init__(self, target: str):
        super().__init__(target, f"File not found: {target}")


class TargetAlreadyExists(PatchApplyError):
    def __init__(self, target: str):
        super().__init__(target, f"File already exists: {target}")


class AnchorNotFound(PatchApplyError):
    def __init__(self, target: str):
        super().__init__(target, f"Anchor not found in {target}")


class NoMatchForFind(PatchApplyError):
    def __init__(self, target: str):
        super().__init__(target, f'No match for "find" in {target}')


# ---------- backups ----------

class BackupNotFound(SelfEditError):
    status_code = 500

    def __init__(self, backup_path: str):
        super().__init__("Backup missing", detail=backup_path)
        self.backup_path = backup_path


# ---------- lifecycle guards ----------

class InvalidTransition(SelfEditError):
    status_code = 409

    def __init__(self, proposal_id: str, status: str, operation: str):
        super().__init__(
            "Invalid transition", detail=f"Cannot {operation} proposal {proposal_id} in status '{status}'"
        )
        self.proposal_id = proposal_id
        self.status = status
        self.operation = operation


class AlreadyApplied(InvalidTransition):
    pass


class AlreadyRolledBack(InvalidTransition):
    pass


class NothingToRollBack(SelfEditError):
    status_code = 409

    def __init__(self, proposal_id: str):
        super().__init__("No backups recorded.", detail=proposal_id)
        self.proposal_id = proposal_id


# ---------- concurrency ----------

class LockTimeout(SelfEditError):
    status_code = 409

    def __init__(self, key: str, timeout: float):
        super().__init__("Busy", detail=f"Could not lock {key} within {timeout}s")
        self.key = key
        self.timeout = timeout
