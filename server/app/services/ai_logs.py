"""
SQLite store for AI diagnostic log rows (failed or degraded analysis/chat calls).

Append-only from the request path: every write is an independent INSERT, so
concurrent requests never contend on a read-modify-write.
"""

from __future__ import annotations

import asyncio
import functools
import json
import logging
import sqlite3
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from server.app.config import settings
from server.providers.vision.base import ProviderErrorRecord, truncate

logger = logging.getLogger(__name__)

RAW_MAX_CHARS = 4000
LIST_DEFAULT = 100
LIST_MAX = 500


def clamp_limit(limit: Any, default: int = LIST_DEFAULT, maximum: int = LIST_MAX) -> int:
    try:
        value = int(limit)
    except (TypeError, ValueError):
        return default
    return max(1, min(maximum, value))


def serialize_errors(errors: Sequence[ProviderErrorRecord], max_chars: int = RAW_MAX_CHARS) -> str:
    """Ordered provider error records as JSON text, cut to `max_chars`."""
    return truncate(
        json.dumps([e.to_dict() for e in errors], ensure_ascii=False), max_chars
    )


class AiLogStore:
    """SQLite-backed `ai_logs` table; the file and schema are created on first use."""

    def __init__(self, db_path: str | Path, raw_max_chars: int = RAW_MAX_CHARS):
        self.db_path = Path(db_path)
        self.raw_max_chars = raw_max_chars
        self._schema_ready = False

    def _open(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def _connect(self) -> sqlite3.Connection:
        if not self._schema_ready:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            self._init_database()
            self._schema_ready = True
        return self._open()

    def _init_database(self) -> None:
        with self._open() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS ai_logs (
                    id TEXT PRIMARY KEY,
                    user_id TEXT,
                    type TEXT NOT NULL,
                    status_code INTEGER,
                    message TEXT,
                    raw TEXT,
                    created_at TEXT NOT NULL
                )
                """
            )
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_ai_logs_user_id ON ai_logs(user_id)"
            )
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_ai_logs_created_at ON ai_logs(created_at DESC)"
            )

    def create(
        self,
        *,
        type: str,
        user_id: Optional[str] = None,
        status_code: Optional[int] = None,
        message: Optional[str] = None,
        raw: Optional[str] = None,
    ) -> str:
        log_id = str(uuid.uuid4())
        if raw is not None:
            raw = truncate(raw, self.raw_max_chars)
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO ai_logs (id, user_id, type, status_code, message, raw, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    log_id,
                    user_id,
                    type,
                    status_code,
                    message,
                    raw,
                    datetime.now(timezone.utc).isoformat(),
                ),
            )
        return log_id

    def list(self, user_id: Optional[str] = None, limit: Any = LIST_DEFAULT) -> List[Dict[str, Any]]:
        safe_limit = clamp_limit(limit)
        with self._connect() as conn:
            if user_id:
                rows = conn.execute(
                    "SELECT * FROM ai_logs WHERE user_id = ? ORDER BY created_at DESC LIMIT ?",
                    (user_id, safe_limit),
                ).fetchall()
            else:
                rows = conn.execute(
                    "SELECT * FROM ai_logs ORDER BY created_at DESC LIMIT ?",
                    (safe_limit,),
                ).fetchall()
        return [dict(r) for r in rows]

    def count(self) -> int:
        with self._connect() as conn:
            return int(conn.execute("SELECT COUNT(*) FROM ai_logs").fetchone()[0])


def record_ai_log(store: AiLogStore, **fields: Any) -> Optional[str]:
    """Write a row; a storage failure is logged and never reaches the caller."""
    try:
        return store.create(**fields)
    except (sqlite3.Error, OSError) as e:
        logger.warning("[ai_logs] failed to persist %s log: %s", fields.get("type"), e)
        return None


async def record_ai_log_async(store: AiLogStore, **fields: Any) -> Optional[str]:
    """`record_ai_log` on the default executor so request handlers never block on sqlite."""
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(None, functools.partial(record_ai_log, store, **fields))


_store: AiLogStore | None = None


def get_ai_log_store() -> AiLogStore:
    """FastAPI dependency: one store per process, created on first use."""
    global _store
    if _store is None:
        _store = AiLogStore(settings.DB_PATH, raw_max_chars=settings.AI_LOG_RAW_MAX_CHARS)
    return _store
