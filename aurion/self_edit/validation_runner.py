# aurion/self_edit/validation_runner.py
from __future__ import annotations

import os
import subprocess
from pathlib import Path
from typing import Sequence

from loguru import logger

from aurion.self_edit.models import RunReport, StepResult, TestStep


def _to_text(out: str | bytes | None) -> str:
    if out is None:
        return ""
    if isinstance(out, bytes):
        return out.decode("utf-8", errors="replace")
    return out


class ValidationRunner:
    """
    Runs verification commands as shell subprocesses in `cwd` with the process environment.
    Every step runs even after a failure; a step that outlives `timeout` is killed and counted as failed.
    """

    def __init__(self, cwd: str | Path = ".", timeout: float = 300.0):
        self.cwd = Path(cwd).resolve()
        self.timeout = timeout

    def run_step(self, step: TestStep) -> StepResult:
        logger.debug(f"[validate] $ {step.cmd}")
        try:
            res = subprocess.run(
                step.cmd,
                shell=True,
                cwd=self.cwd,
                env=os.environ.copy(),
                capture_output=True,
                text=True,
                timeout=self.timeout,
            )
        except subprocess.TimeoutExpired as e:
            logger.warning(f"[validate] '{step.label}' timed out after {self.timeout}s")
            stderr = _to_text(e.stderr)
            note = f"Timed out after {self.timeout}s"
            return StepResult(
                step=step.label,
                ok=False,
                exit_code=None,
                stdout=_to_text(e.stdout),
                stderr=f"{stderr}\n{note}" if stderr else note,
                timed_out=True,
            )
        except OSError as e:
            logger.error(f"[validate] '{step.label}' could not start: {e}")
            return StepResult(step=step.label, ok=False, exit_code=None, stderr=str(e))

        ok = res.returncode == 0
        if not ok:
            logger.debug(f"[validate] '{step.label}' exited {res.returncode}")
        return StepResult(
            step=step.label,
            ok=ok,
            exit_code=res.returncode,
            stdout=res.stdout or "",
            stderr=res.stderr or "",
        )

    def run(self, steps: Sequence[TestStep]) -> RunReport:
        results = [self.run_step(s) for s in steps]
        return RunReport(all_ok=all(r.ok for r in results), results=results)
