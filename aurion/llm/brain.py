# aurion/llm/brain.py
from __future__ import annotations

from typing import Any

from loguru import logger
from openai import OpenAI

from config.config import settings


class Brain:
    """Thin chat-completion wrapper. The OpenAI client is built on first use so imports stay offline-safe."""

    def __init__(self, client: OpenAI | None = None, model: str | None = None, api_key: str | None = None):
        self._client = client
        self.model = model or settings.openai_model
        self.api_key = api_key or settings.openai_api_key

    @property
    def client(self) -> OpenAI:
        if self._client is None:
            self._client = OpenAI(api_key=self.api_key)
        return self._client

    def ask_brain(
        self,
        prompt: str,
        system_prompt: str | None = None,
        response_format: str = "text",
        temperature: float = 0.6,
        max_tokens: int | None = None,
    ) -> str:
        """
        Send a prompt to OpenAI. Supports text or JSON output.
        Errors from the API propagate; callers decide how to surface them.
        """
        messages: list[dict[str, Any]] = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        if response_format == "json":
            messages.append({"role": "system", "content": "Respond ONLY in strict JSON."})
        messages.append({"role": "user", "content": prompt})

        kwargs: dict[str, Any] = {"model": self.model, "messages": messages, "temperature": temperature}
        if max_tokens is not None:
            kwargs["max_tokens"] = max_tokens
        if response_format == "json":
            kwargs["response_format"] = {"type": "json_object"}

        logger.debug(f"[brain] {self.model} <- {len(prompt)} chars ({response_format})")
        completion = self.client.chat.completions.create(**kwargs)
        return (completion.choices[0].message.content or "").strip()
