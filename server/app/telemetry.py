# server/app/telemetry.py
from __future__ import annotations

import json
import threading
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

import logging

from server.app.config import settings

log = logging.getLogger(__name__)

COUNTERS = (
    "analyze_total",
    "analyze_fallback_total",
    "analyze_degraded_total",
    "provider_failures_total",
    "chat_total",
)


class Telemetry:
    """
    Thread-safe telemetry singleton for the server.

    Provides in-memory counters and structured JSON logging to <LOG_DIR>/server.jsonl.
    All operations are wrapped in try/except so telemetry failures never crash a request.
    """

    def __init__(self, log_dir: str | Path = "data/logs", max_log_mb: int = 16):
        self._lock = threading.Lock()
        self._uptime_start = time.time()
        self._counters: Dict[str, int] = {name: 0 for name in COUNTERS}
        self._last_error: Optional[str] = None

        # Log file configuration
        self._log_dir = Path(log_dir)
        self._log_file = self._log_dir / "server.jsonl"
        self._max_log_bytes = int(max_log_mb) * 1024 * 1024

        try:
            self._log_dir.mkdir(parents=True, exist_ok=True)
        except Exception as e:
            log.warning(f"Failed to create log directory {self._log_dir}: {e}")

    def increment(self, counter_name: str, amount: int = 1) -> None:
        """Thread-safe counter increment; unknown names are ignored."""
        try:
            with self._lock:
                if counter_name in self._counters:
                    self._counters[counter_name] += amount
        except Exception as e:
            log.debug(f"Telemetry increment failed for {counter_name}: {e}")

    def set_error(self, error: str) -> None:
        """Set the last error message."""
        try:
            with self._lock:
                self._last_error = str(error)
        except Exception as e:
            log.debug(f"Telemetry set_error failed: {e}")

    def log_json(self, event: str, level: str = "info", **fields: Any) -> None:
        """
        Write structured JSON log entry to server.jsonl.

        Fields: ts, level, subsystem="server", event, plus any kwargs.
        """
        try:
            log_entry = {
                "ts": datetime.now(timezone.utc).isoformat(),
                "level": level,
                "subsystem": "server",
                "event": event,
                **fields,
            }

            self._maybe_rotate_log()

            with self._lock:
                with open(self._log_file, "a", encoding="utf-8") as f:
                    f.write(json.dumps(log_entry, ensure_ascii=False) + "\n")

        except Exception as e:
            log.debug(f"Telemetry log_json failed: {e}")

    def _maybe_rotate_log(self) -> None:
        """Rotate log file if it exceeds size limit (2-deep: .1, .2)."""
        try:
            if (
                self._log_file.exists()
                and self._log_file.stat().st_size > self._max_log_bytes
            ):
                log_file_2 = self._log_file.with_suffix(".jsonl.2")
                log_file_1 = self._log_file.with_suffix(".jsonl.1")

                if log_file_2.exists():
                    log_file_2.unlink()
                if log_file_1.exists():
                    log_file_1.rename(log_file_2)
                self._log_file.rename(log_file_1)
        except Exception as e:
            log.warning(f"Log rotation failed: {e}")

    def get_stats(self) -> Dict[str, Any]:
        """Get current telemetry statistics."""
        try:
            with self._lock:
                return {
                    "uptime_s": int(time.time() - self._uptime_start),
                    **self._counters,
                    "last_error": self._last_error,
                }
        except Exception as e:
            log.debug(f"Telemetry get_stats failed: {e}")
            return {
                "uptime_s": 0,
                **{name: 0 for name in COUNTERS},
                "last_error": None,
            }


# Singleton instance
telemetry = Telemetry(settings.LOG_DIR, settings.MAX_LOG_MB)
