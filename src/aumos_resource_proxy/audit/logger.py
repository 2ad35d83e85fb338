"""Append-only JSONL log of proxy access decisions.

Every gate decision and every lifecycle failure a proxy observes can be
written as one newline-delimited JSON record carrying a UTC ISO-8601
timestamp and a session identifier.

Thread-safety is achieved with a threading.Lock so concurrent proxies may
share one log.

Example
-------
>>> from pathlib import Path
>>> audit = AccessAuditLog(Path("/tmp/access.jsonl"))
>>> audit.log({"event": "access", "resource": "Pedro Silva", "allowed": True})
>>> audit.count()
1
"""
from __future__ import annotations

import json
import logging
import threading
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterator

logger = logging.getLogger(__name__)


class AccessAuditLog:
    """Append-only JSONL access log.

    Parameters
    ----------
    log_path:
        Path to the ``.jsonl`` file.  Parent directories are created on
        first write.
    session_id:
        Identifier stamped on every record.  A random UUID when omitted.
    """

    def __init__(
        self,
        log_path: Path,
        session_id: str | None = None,
    ) -> None:
        self._log_path = Path(log_path)
        self._session_id: str = session_id or str(uuid.uuid4())
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Write API
    # ------------------------------------------------------------------

    def log(self, entry: dict[str, object]) -> None:
        """Append a record.  ``timestamp`` and ``session_id`` are added."""
        record: dict[str, object] = {
            "timestamp": datetime.now(tz=timezone.utc).isoformat(),
            "session_id": self._session_id,
            **entry,
        }
        self._write(record)

    def record_decision(
        self,
        resource: str,
        subject: str,
        operation: str,
        allowed: bool,
        reason: str,
    ) -> None:
        """Append an ``access`` record for one gate decision."""
        self.log(
            {
                "event": "access",
                "resource": resource,
                "subject": subject,
                "operation": operation,
                "allowed": allowed,
                "reason": reason,
            }
        )

    def record_failure(
        self,
        event: str,
        resource: str,
        subject: str,
        operation: str,
        error: BaseException,
    ) -> None:
        """Append an ``init_failed`` or ``operation_failed`` record."""
        self.log(
            {
                "event": event,
                "resource": resource,
                "subject": subject,
                "operation": operation,
                "error": repr(error),
            }
        )

    # ------------------------------------------------------------------
    # Read API
    # ------------------------------------------------------------------

    def read_all(self) -> list[dict[str, object]]:
        """Return all records; an empty list when the file does not exist."""
        return list(self._iter_records())

    def query(self, filters: dict[str, object]) -> list[dict[str, object]]:
        """Return records whose top-level fields equal every filter value."""
        return [
            record
            for record in self._iter_records()
            if all(record.get(k) == v for k, v in filters.items())
        ]

    def count(self) -> int:
        return sum(1 for _ in self._iter_records())

    def last_n(self, n: int) -> list[dict[str, object]]:
        """Return the ``n`` most recent records."""
        all_records = list(self._iter_records())
        return all_records[-n:] if n < len(all_records) else all_records

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _write(self, record: dict[str, object]) -> None:
        with self._lock:
            self._log_path.parent.mkdir(parents=True, exist_ok=True)
            with self._log_path.open("a", encoding="utf-8") as fh:
                fh.write(json.dumps(record, default=str) + "\n")

    def _iter_records(self) -> Iterator[dict[str, object]]:
        if not self._log_path.exists():
            return
        with self._lock:
            with self._log_path.open("r", encoding="utf-8") as fh:
                lines = fh.readlines()
        for number, line in enumerate(lines, start=1):
            line = line.strip()
            if not line:
                continue
            try:
                yield json.loads(line)
            except json.JSONDecodeError:
                logger.warning("Skipping malformed audit line %d in %s", number, self._log_path)

    @property
    def log_path(self) -> Path:
        return self._log_path

    @property
    def session_id(self) -> str:
        return self._session_id
