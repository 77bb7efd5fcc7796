# aurion/self_edit/write_fence.py
from __future__ import annotations

import posixpath
from pathlib import Path, PureWindowsPath
from typing import Iterable

from loguru import logger

from aurion.self_edit.errors import PathNotAllowed
from aurion.self_edit.models import Patch


def normalize_target(target: str) -> str | None:
    """Repo-relative POSIX form of `target`, or None if it is absolute or escapes the root."""
    t = target.strip().replace("\\", "/")
    if not t or t.startswith("/") or PureWindowsPath(target).drive:
        return None
    norm = posixpath.normpath(t)
    if norm in (".", "..") or norm.startswith("../"):
        return None
    return norm


class WriteFence:
    """
    Allow-list gate for every path the patch engine may touch.

    Entries ending in "/" admit a directory tree, anything else admits one exact file.
    Paths inside `protected_dirs` (proposal records, backups) are never admitted.
    """

    def __init__(
        self,
        allowlist: Iterable[str],
        repo_root: str | Path = ".",
        protected_dirs: Iterable[str | Path] = (),
    ):
        self.root = Path(repo_root).resolve()
        self.protected = [Path(p).resolve() for p in protected_dirs]
        self.prefixes: list[str] = []
        self.exact: set[str] = set()
        for entry in allowlist:
            is_dir = entry.replace("\\", "/").endswith("/")
            norm = normalize_target(entry)
            if norm is None:
                logger.warning(f"[fence] ignoring allow-list entry {entry!r}")
                continue
            if is_dir:
                self.prefixes.append(norm + "/")
            else:
                self.exact.add(norm)

    def _listed(self, norm: str) -> bool:
        return norm in self.exact or any(norm.startswith(p) for p in self.prefixes)

    def _inside_root(self, norm: str) -> bool:
        resolved = (self.root / norm).resolve()
        if not resolved.is_relative_to(self.root):
            return False
        return not any(resolved == p or resolved.is_relative_to(p) for p in self.protected)

    def is_allowed(self, target: str) -> bool:
        norm = normalize_target(target)
        if norm is None:
            return False
        return self._listed(norm) and self._inside_root(norm)

    def check_batch(self, patches: Iterable[Patch]) -> None:
        """Raise PathNotAllowed naming every disallowed target; nothing is written either way."""
        denied = [p.target for p in patches if not self.is_allowed(p.target)]
        if denied:
            logger.warning(f"[fence] rejected targets: {denied}")
            raise PathNotAllowed(denied)
