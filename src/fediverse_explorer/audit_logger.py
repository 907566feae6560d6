"""
Audit Logger module for the fediverse explorer pipeline.

Every stage reports through one AuditLogger: per-stage record counts, drop
statistics, skipped storage keys and run failures. Entries are written as
JSON lines, as text lines, or both, and entries below the configured level
are dropped before formatting.
"""

import json
import sys
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional, TextIO

from fediverse_explorer.enums import LogLevel

LEVEL_ORDER = {
    LogLevel.DEBUG: 0,
    LogLevel.INFO: 1,
    LogLevel.WARN: 2,
    LogLevel.ERROR: 3,
}

OUTPUT_FORMATS = ("json", "text", "both")

# Substrings of data keys whose values never reach the log stream
SENSITIVE_KEYS = frozenset({
    'token', 'secret', 'password', 'api_key', 'webhook_url',
    'auth', 'authorization', 'credential', 'private_key',
})

MASK_VALUE = "***MASKED***"


def is_sensitive_key(key: Any) -> bool:
    lowered = str(key).lower()
    return any(pattern in lowered for pattern in SENSITIVE_KEYS)


def mask_sensitive(value: Any) -> Any:
    """
    Replace the values of sensitive keys, recursing into dicts and lists.

    Returns:
        A masked copy; the input is not modified
    """
    if isinstance(value, dict):
        return {
            key: MASK_VALUE if is_sensitive_key(key) else mask_sensitive(item)
            for key, item in value.items()
        }
    if isinstance(value, list):
        return [mask_sensitive(item) for item in value]
    return value


@dataclass
class LogEntry:
    """One emitted log line."""

    timestamp: str
    level: LogLevel
    component: str
    message: str
    data: dict = field(default_factory=dict)

    def to_json(self) -> str:
        return json.dumps(
            {
                "timestamp": self.timestamp,
                "level": self.level.value,
                "component": self.component,
                "message": self.message,
                "data": self.data,
            },
            ensure_ascii=False,
            default=str,
        )

    def to_text(self) -> str:
        # [timestamp] LEVEL [component] message {data}
        line = f"[{self.timestamp}] {self.level.value.upper()} [{self.component}] {self.message}"
        if self.data:
            line += " " + json.dumps(self.data, ensure_ascii=False, default=str)
        return line


class AuditLogger:
    """
    Structured logger shared by every pipeline stage.

    Components hold an optional logger and stay silent without one.
    Values under sensitive keys (webhook URLs, tokens) are masked before an
    entry is stored or written.
    """

    SENSITIVE_KEYS = SENSITIVE_KEYS
    MASK_VALUE = MASK_VALUE

    def __init__(
        self,
        output_format: str = "both",
        output_stream: Optional[TextIO] = None,
        min_level: LogLevel = LogLevel.DEBUG,
    ):
        """
        Initialize the audit logger.

        Args:
            output_format: 'json', 'text', or 'both'
            output_stream: Destination stream (defaults to sys.stderr)
            min_level: Entries below this level are dropped
        """
        if output_format not in OUTPUT_FORMATS:
            raise ValueError(f"Invalid output_format: {output_format}")

        self._output_format = output_format
        self._stream = output_stream or sys.stderr
        self._min_level = min_level
        self._entries: list[LogEntry] = []

    @classmethod
    def from_level_name(
        cls,
        level: str,
        output_format: str = "text",
        output_stream: Optional[TextIO] = None,
    ) -> "AuditLogger":
        """Create a logger from a configured level name such as 'info'."""
        try:
            min_level = LogLevel(level.lower())
        except ValueError:
            raise ValueError(f"Invalid log level: {level}")
        return cls(output_format=output_format, output_stream=output_stream, min_level=min_level)

    @property
    def output_format(self) -> str:
        return self._output_format

    @property
    def min_level(self) -> LogLevel:
        return self._min_level

    @property
    def entries(self) -> list[LogEntry]:
        """Entries emitted so far, oldest first."""
        return list(self._entries)

    def is_enabled(self, level: LogLevel) -> bool:
        return LEVEL_ORDER[level] >= LEVEL_ORDER[self._min_level]

    def log(
        self,
        level: LogLevel,
        component: str,
        message: str,
        data: Optional[dict] = None,
    ) -> Optional[LogEntry]:
        """
        Record and write one entry.

        Returns:
            The entry, or None if its level is below the minimum
        """
        if not self.is_enabled(level):
            return None

        entry = LogEntry(
            timestamp=datetime.now(timezone.utc).isoformat(),
            level=level,
            component=component,
            message=message,
            data=mask_sensitive(data or {}),
        )
        self._entries.append(entry)
        self._write(entry)
        return entry

    def log_error(
        self,
        component: str,
        message: str,
        error: Optional[Exception] = None,
        additional_data: Optional[dict] = None,
    ) -> Optional[LogEntry]:
        """
        Log an ERROR entry describing an exception.

        The exception's type and message are added to the data, along with
        ``details`` when the exception carries them (ExplorerError does).
        """
        data = dict(additional_data or {})

        if error is not None:
            data["error_type"] = type(error).__name__
            data["error_message"] = str(error)
            details = getattr(error, "details", None)
            if details:
                data["error_details"] = details

        return self.log(LogLevel.ERROR, component, message, data)

    def mask_sensitive_data(self, data: dict) -> dict:
        return mask_sensitive(data)

    def _write(self, entry: LogEntry) -> None:
        lines = []
        if self._output_format in ("json", "both"):
            lines.append(entry.to_json())
        if self._output_format in ("text", "both"):
            lines.append(entry.to_text())

        self._stream.write("".join(line + "\n" for line in lines))
        self._stream.flush()
