"""Structured per-operation log files.

Every sync operation appends JSON lines (one per event) to
``<root>/log/<operation>-<timestamp>.log``.  These files are written
regardless of how the application logger is configured, so a failed run
can be diagnosed after the fact.  Credentials are masked before writing.
"""

from __future__ import annotations

import json
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from ..core.async_utils import IOOptions, run_sync

logger = logging.getLogger(__name__)

MASK = "***MASKED***"

SENSITIVE_KEYS = (
    "token",
    "password",
    "apitoken",
    "api_token",
    "email",
    "secret",
    "authorization",
)


def _is_sensitive(key: str) -> bool:
    lowered = key.lower()
    return any(marker in lowered for marker in SENSITIVE_KEYS)


def mask_sensitive(value: Any) -> Any:
    """Return a copy of *value* with sensitive dict keys masked at any depth."""
    if isinstance(value, dict):
        return {
            key: MASK if _is_sensitive(str(key)) else mask_sensitive(item)
            for key, item in value.items()
        }
    if isinstance(value, (list, tuple)):
        return [mask_sensitive(item) for item in value]
    return value


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


class OperationLog:
    """Append-only JSON-lines log for a single sync operation."""

    def __init__(
        self, log_dir: Path, operation: str, correlation_id: str
    ) -> None:
        stamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%S%fZ")
        self.path = log_dir / f"{operation}-{stamp}.log"
        self.operation = operation
        self.correlation_id = correlation_id

    def _append(self, line: str) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, "a", encoding="utf-8") as fh:
            fh.write(line)

    async def write(self, status: str, **fields: Any) -> str:
        """Append one event and return the log file path."""
        entry = mask_sensitive(
            {
                "event": self.operation,
                "status": status,
                **fields,
            }
        )
        entry["correlationId"] = self.correlation_id
        entry["timestamp"] = _utc_now()
        line = json.dumps(entry, ensure_ascii=False, default=str) + "\n"
        await run_sync(self._append, line)
        return str(self.path)


@dataclass
class SyncContext:
    """Per-call context handed to every sync operation.

    Attributes:
        correlation_id: Identifier shared by all log records of the call.
        options: Timeout and cancellation for remote calls.
    """

    correlation_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    options: IOOptions = field(default_factory=IOOptions)

    def open_log(self, log_dir: Path, operation: str) -> OperationLog:
        logger.debug(
            "[%s] %s: logging to %s", self.correlation_id, operation, log_dir
        )
        return OperationLog(log_dir, operation, self.correlation_id)
