from __future__ import annotations

import os
from pathlib import Path

from dotenv import find_dotenv, load_dotenv
from pydantic import BaseModel, Field, field_validator


env_override = os.getenv("AURION_ENV_PATH")
if env_override and os.path.exists(env_override):
    load_dotenv(env_override, override=True)
else:
    # Otherwise, find the nearest .env (project root)
    found = find_dotenv(filename=".env", usecwd=True)
    if found:
        load_dotenv(found, override=False)


def _split_list(raw: str) -> list[str]:
    return [item.strip() for item in raw.split(",") if item.strip()]


_DATA_DIR = os.getenv("AURION_DATA_DIR", "./data")


class Settings(BaseModel):
    # --- Paths ---
    repo_root: str = Field(default=os.getenv("AURION_REPO_ROOT", "."))
    data_dir: str = Field(default=_DATA_DIR)
    proposals_dir: str = Field(
        default=os.getenv("AURION_PROPOSALS_DIR", os.path.join(_DATA_DIR, "proposals"))
    )
    backups_dir: str = Field(
        default=os.getenv("AURION_BACKUPS_DIR", os.path.join(_DATA_DIR, "backups"))
    )
    core_file: str = Field(default=os.getenv("AURION_CORE_FILE", "core.json"))
    memory_db_path: str = Field(
        default=os.getenv("AURION_MEMORY_DB", os.path.join(_DATA_DIR, "aurion_memory.db"))
    )
    # None: `<data_dir>/locks`
    locks_dir: str | None = os.getenv("AURION_LOCKS_DIR")

    # --- Write fence ---
    # Entries ending in "/" allow a whole directory tree, anything else is an exact file.
    selfedit_allowlist: list[str] = Field(
        default_factory=lambda: _split_list(
            os.getenv("AURION_SELFEDIT_ALLOWLIST", "core.json,addons/")
        )
    )

    # --- Validation ---
    build_cmd: str = os.getenv("AURION_BUILD_CMD", "python -m compileall -q .")
    build_description: str = "Build should pass"
    validation_timeout_sec: float = float(os.getenv("AURION_VALIDATION_TIMEOUT_SEC", "300"))
    lock_timeout_sec: float = float(os.getenv("AURION_LOCK_TIMEOUT_SEC", "600"))

    # --- LLM ---
    openai_api_key: str | None = os.getenv("OPENAI_API_KEY")
    openai_model: str = os.getenv("OPENAI_MODEL", "gpt-4o-mini")
    generator_temperature: float = 0.3
    generator_max_tokens: int = 1200

    @field_validator("selfedit_allowlist", mode="before")
    @classmethod
    def _coerce_allowlist(cls, value):
        if isinstance(value, str):
            return _split_list(value)
        return value

    @field_validator("validation_timeout_sec", "lock_timeout_sec")
    @classmethod
    def _positive_timeout(cls, value: float, info) -> float:
        if value <= 0:
            raise ValueError(f"{info.field_name} must be > 0")
        return value

    def lock_dir(self) -> str:
        return self.locks_dir or os.path.join(self.data_dir, "locks")

    def ensure_dirs(self) -> None:
        """Create the persistent data directories if they are missing."""
        for p in (self.data_dir, self.proposals_dir, self.backups_dir, self.lock_dir()):
            Path(p).mkdir(parents=True, exist_ok=True)


settings = Settings()
