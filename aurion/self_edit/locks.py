# aurion/self_edit/locks.py
from __future__ import annotations

import hashlib
import re
from contextlib import ExitStack, contextmanager
from pathlib import Path
from typing import Iterable, Iterator

from filelock import FileLock, Timeout
from loguru import logger

from aurion.self_edit.errors import LockTimeout

_UNSAFE = re.compile(r"[^A-Za-z0-9_.-]+")


class LockRegistry:
    """
    Named cross-process locks, one lock file per key under `lock_dir`.
    Keys are always taken in sorted order so overlapping sets cannot deadlock.
    """

    def __init__(self, lock_dir: str | Path, timeout: float = 600.0):
        self.lock_dir = Path(lock_dir)
        self.lock_dir.mkdir(parents=True, exist_ok=True)
        self.timeout = timeout

    def lock_path(self, key: str) -> Path:
        # readable prefix plus a digest so "a/b" and "a_b" never share a file
        digest = hashlib.sha1(key.encode("utf-8")).hexdigest()[:16]
        return self.lock_dir / f"{_UNSAFE.sub('_', key)[:80]}.{digest}.lock"

    @contextmanager
    def hold(self, keys: Iterable[str]) -> Iterator[None]:
        with ExitStack() as stack:
            for key in sorted(set(keys)):
                lock = FileLock(str(self.lock_path(key)), timeout=self.timeout)
                try:
                    lock.acquire()
                except Timeout as e:
                    logger.warning(f"[locks] timed out waiting for {key}")
                    raise LockTimeout(key, self.timeout) from e
                stack.callback(lock.release)
            yield

    def proposal(self, proposal_id: str):
        return self.hold([f"proposal:{proposal_id}"])

    def targets(self, targets: Iterable[str]):
        return self.hold(f"target:{t}" for t in targets)
