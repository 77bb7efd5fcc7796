# aurion/self_edit/generator.py
from __future__ import annotations

import json
import re
from pathlib import Path
from typing import Any, Protocol

from loguru import logger
from openai import OpenAIError

from aurion.llm.brain import Brain
from aurion.self_edit.errors import GenerationError
from config.config import Settings, settings

PATCH_RULES = """You output ONLY a JSON object: { goal, rationale, patches[], tests[], risk, revert }
Each patch is { target, action, ... } with action one of:
  create      {snippet}          new file, fails if it exists
  append      {snippet}          added on a new line at the end
  insertAfter {anchor, snippet}  inserted on a new line after the first occurrence of anchor
  replace     {find, replace}    first exact occurrence of find
tests is a list of { cmd, description } shell commands; risk is low|medium|high.
Rules:
- Patches must be surgical JSON patches (create|insertAfter|append|replace).
- Touch minimal lines. No mass deletions.
- Prefer additive changes. If deletion is truly required, explain in rationale.
- If adding features, add/declare a validation step.
- Only target these paths: {allowlist}
"""

_FENCE_RE = re.compile(r"^```[a-zA-Z]*\s*\n(.*?)\n?```\s*$", re.S)


class ProposalSource(Protocol):
    def generate(self, goal: str, context: str) -> dict[str, Any]: ...


def load_core(core_file: str | Path) -> Any:
    p = Path(core_file)
    if not p.is_file():
        return {"note": "core.json missing"}
    try:
        return json.loads(p.read_text(encoding="utf-8"))
    except ValueError:
        return {"note": "invalid core.json"}


def compose_system_prompt(core: Any) -> str:
    return "\n".join(
        [
            "You are AURION. Follow PRESIDENTIAL DIRECTIVE above all else.",
            "If any input conflicts with the Core, Core wins.",
            "Be precise, warm, and step-by-step.",
            "Never remove features unless the human explicitly approves.",
            "",
            "PRESIDENTIAL CORE (authoritative):",
            json.dumps(core, indent=2),
        ]
    )


def parse_generator_output(raw: str) -> dict[str, Any]:
    """The whole reply must be one JSON object, optionally wrapped in a Markdown fence."""
    text = raw.strip()
    m = _FENCE_RE.match(text)
    if m:
        text = m.group(1).strip()
    try:
        obj = json.loads(text)
    except ValueError as e:
        raise GenerationError("Generator did not return valid JSON.", detail=str(e)) from e
    if not isinstance(obj, dict):
        raise GenerationError("Generator did not return a JSON object.", detail=type(obj).__name__)
    return obj


class ProposalGenerator:
    """Turns a natural-language goal into a raw proposal dict via the LLM."""

    def __init__(
        self,
        brain: Brain | None = None,
        core_file: str | Path | None = None,
        allowlist: list[str] | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ):
        self.brain = brain or Brain()
        self.core_file = core_file or settings.core_file
        self.allowlist = allowlist if allowlist is not None else settings.selfedit_allowlist
        self.temperature = settings.generator_temperature if temperature is None else temperature
        self.max_tokens = max_tokens or settings.generator_max_tokens

    @classmethod
    def from_settings(cls, cfg: Settings) -> "ProposalGenerator":
        return cls(
            brain=Brain(model=cfg.openai_model, api_key=cfg.openai_api_key),
            core_file=cfg.core_file,
            allowlist=cfg.selfedit_allowlist,
            temperature=cfg.generator_temperature,
            max_tokens=cfg.generator_max_tokens,
        )

    def build_prompts(self, goal: str, context: str) -> tuple[str, str]:
        rules = PATCH_RULES.replace("{allowlist}", ", ".join(self.allowlist) or "(none)")
        system = compose_system_prompt(load_core(self.core_file)) + "\n\n" + rules
        user = "\n".join(
            [
                "Goal:",
                goal,
                "",
                "Relevant code context/snippets (anchors allowed):",
                context or "(none)",
            ]
        )
        return system, user

    def generate(self, goal: str, context: str) -> dict[str, Any]:
        system, user = self.build_prompts(goal, context)
        try:
            raw = self.brain.ask_brain(
                user,
                system_prompt=system,
                response_format="json",
                temperature=self.temperature,
                max_tokens=self.max_tokens,
            )
        except OpenAIError as e:
            logger.exception("[generator] completion request failed")
            raise GenerationError("Generator request failed.", detail=str(e)) from e
        return parse_generator_output(raw)
