# cli/selfedit_cli.py
from __future__ import annotations

import argparse
import json
import sys

from loguru import logger
from tabulate import tabulate

from aurion.self_edit.errors import SelfEditError
from aurion.self_edit.orchestrator import SelfEditOrchestrator
from config.config import settings


REMINDER = """
Available commands:
  python -m cli.selfedit_cli propose "<goal>" [--context "<snippets>"]
  python -m cli.selfedit_cli validate <id>
  python -m cli.selfedit_cli approve <id>
  python -m cli.selfedit_cli rollback <id>
  python -m cli.selfedit_cli list
  python -m cli.selfedit_cli show <id>
  python -m cli.selfedit_cli restore-latest <target>
"""


def _print_reminder():
    print(REMINDER.strip())


def _emit(body: dict) -> None:
    print(json.dumps(body, indent=2, ensure_ascii=False))


def _short(text: str, n: int = 48) -> str:
    text = " ".join((text or "").split())
    return text if len(text) <= n else text[: n - 1] + "…"


def cmd_list(orch: SelfEditOrchestrator) -> None:
    items = orch.list()
    if not items:
        print("✅ No proposals yet.")
        return
    print(tabulate(
        [
            (p.id, p.created_at[:19], p.status.value, len(p.proposal.patches), p.proposal.risk or "-", _short(p.proposal.goal))
            for p in items
        ],
        headers=["ID", "Created", "Status", "Patches", "Risk", "Goal"],
    ))


def cmd_restore_latest(orch: SelfEditOrchestrator, target: str) -> None:
    record = orch.restore_latest(target)
    print(f"✅ Restored {record.target} from backup: {record.backup_path}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Aurion self-edit CLI")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    sub = parser.add_subparsers(dest="cmd", required=True)

    pp = sub.add_parser("propose", help="Draft a proposal for a goal")
    pp.add_argument("goal")
    pp.add_argument("--context", default=None, help="Code context / anchors for the generator")

    for name, help_text in (
        ("validate", "Dry-run a proposal: apply, test, revert"),
        ("approve", "Apply a proposal permanently"),
        ("rollback", "Restore the backups recorded at approve time"),
        ("show", "Print the stored proposal record"),
    ):
        sp = sub.add_parser(name, help=help_text)
        sp.add_argument("id")

    sub.add_parser("list", help="List proposals, newest first")
    sub.add_parser("commands", help="Show command cheat-sheet")

    rp = sub.add_parser("restore-latest", help="Restore the newest backup of an allowed file")
    rp.add_argument("target")
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    logger.remove()
    logger.add(sys.stderr, level="DEBUG" if args.verbose else "INFO")

    if args.cmd == "commands":
        _print_reminder()
        return 0

    orch = SelfEditOrchestrator.from_settings(settings)
    try:
        if args.cmd == "propose":
            _emit(orch.propose(args.goal, args.context).to_response())
        elif args.cmd == "validate":
            _emit(orch.validate(args.id).to_response())
        elif args.cmd == "approve":
            _emit(orch.approve(args.id).to_response())
        elif args.cmd == "rollback":
            _emit(orch.rollback(args.id).to_response())
        elif args.cmd == "show":
            _emit(orch.get(args.id).to_dict())
        elif args.cmd == "list":
            cmd_list(orch)
        elif args.cmd == "restore-latest":
            cmd_restore_latest(orch, args.target)
        else:
            _print_reminder()
    except SelfEditError as e:
        _emit(e.to_response())
        return 1
    except (OSError, ValueError) as e:
        # disk / permission / encoding trouble; any partial batch was already reverted
        logger.error(f"[selfedit] {args.cmd} failed: {type(e).__name__}: {e}")
        _emit({"error": "Self-edit failed", "detail": f"{type(e).__name__}: {e}"})
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
