# aurion/memory/journal.py
from __future__ import annotations

import json
import re
import sqlite3
import threading
from datetime import datetime, timezone
from pathlib import Path


class MemoryJournal:
    """
    Append-only memory log backed by SQLite.
    Entries are free text plus tags; recall is a case-insensitive keyword match, newest first.
    """

    def __init__(self, db: str | Path | sqlite3.Connection):
        if isinstance(db, sqlite3.Connection):
            self.conn = db
        else:
            Path(db).parent.mkdir(parents=True, exist_ok=True)
            self.conn = sqlite3.connect(str(db), check_same_thread=False)
        self.conn.row_factory = sqlite3.Row
        self._lock = threading.Lock()
        self._ensure_schema()

    def _ensure_schema(self) -> None:
        self.conn.execute(
            """
            CREATE TABLE IF NOT EXISTS memories (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                ts TEXT NOT NULL,
                content TEXT NOT NULL,
                tags_json TEXT NOT NULL DEFAULT '[]'
            )
            """
        )
        self.conn.commit()

    def add(self, content: str, tags: list[str] | None = None) -> int:
        ts = datetime.now(timezone.utc).isoformat()
        with self._lock:
            cur = self.conn.execute(
                "INSERT INTO memories(ts, content, tags_json) VALUES(?,?,?)",
                (ts, content, json.dumps(tags or [])),
            )
            self.conn.commit()
        return int(cur.lastrowid)

    def recall(self, keyword: str, limit: int = 6) -> list[str]:
        if not keyword.strip():
            return []
        with self._lock:
            rows = self.conn.execute(
                "SELECT content FROM memories WHERE lower(content) LIKE ? ORDER BY id DESC LIMIT ?",
                (f"%{keyword.lower()}%", limit),
            ).fetchall()
        return [r["content"] for r in rows]

    def recall_for(self, text: str, limit: int = 6) -> list[str]:
        """Recall across the significant words of `text`, de-duplicated, newest hits first."""
        hits: list[str] = []
        for word in re.findall(r"[A-Za-z0-9_]{4,}", text):
            for content in self.recall(word, limit):
                if content not in hits:
                    hits.append(content)
            if len(hits) >= limit:
                break
        return hits[:limit]

    def entries(self, tag: str | None = None) -> list[dict]:
        with self._lock:
            rows = self.conn.execute("SELECT ts, content, tags_json FROM memories ORDER BY id").fetchall()
        out = [{"timestamp": r["ts"], "content": r["content"], "tags": json.loads(r["tags_json"])} for r in rows]
        if tag is not None:
            out = [e for e in out if tag in e["tags"]]
        return out

    def close(self) -> None:
        self.conn.close()
