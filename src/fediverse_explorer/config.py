"""
Configuration dataclasses for the fediverse explorer pipeline.

This module defines all configuration structures used throughout the system:
where raw crawl data is read from, where snapshots are published, the
staleness window, run notifications and logging. Each section maps to one
object of the JSON config file through ``from_dict``/``to_dict``.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

# Records not crawled within this window are treated as abandoned.
DEFAULT_MAX_AGE_MS = 24 * 60 * 60 * 1000


def _section(data: dict, name: str) -> dict:
    value = data.get(name, {})
    if not isinstance(value, dict):
        raise TypeError(f"section '{name}' must be an object, got {type(value).__name__}")
    return value


@dataclass
class StorageConfig:
    """Location of the raw crawl data dump."""

    dump_directory: Path

    @classmethod
    def from_dict(cls, data: dict, default: "StorageConfig") -> "StorageConfig":
        return cls(dump_directory=Path(data.get("dump_directory", default.dump_directory)))

    def to_dict(self) -> dict:
        return {"dump_directory": str(self.dump_directory)}


@dataclass
class OutputConfig:
    """Where and how snapshot artifacts are published."""

    directory: Path
    atomic_publish: bool = True  # stage all artifacts, then move into place
    indent: Optional[int] = None  # None writes compact JSON

    @classmethod
    def from_dict(cls, data: dict, default: "OutputConfig") -> "OutputConfig":
        indent = data.get("indent", default.indent)
        return cls(
            directory=Path(data.get("directory", default.directory)),
            atomic_publish=bool(data.get("atomic_publish", default.atomic_publish)),
            indent=None if indent is None else int(indent),
        )

    def to_dict(self) -> dict:
        return {
            "directory": str(self.directory),
            "atomic_publish": self.atomic_publish,
            "indent": self.indent,
        }


@dataclass
class FilterConfig:
    """Staleness filter configuration."""

    max_age_ms: int = DEFAULT_MAX_AGE_MS

    @classmethod
    def from_dict(cls, data: dict) -> "FilterConfig":
        return cls(max_age_ms=int(data.get("max_age_ms", DEFAULT_MAX_AGE_MS)))

    def to_dict(self) -> dict:
        return {"max_age_ms": self.max_age_ms}


@dataclass
class WebhookConfig:
    """Generic webhook notification channel configuration."""

    url: str
    headers: dict[str, str] = field(default_factory=dict)
    timeout_seconds: float = 30.0
    max_retries: int = 2
    base_delay_seconds: float = 1.0

    @classmethod
    def from_dict(cls, data: dict) -> Optional["WebhookConfig"]:
        """Build a webhook config, or None when the webhook is disabled."""
        if not data.get("enabled") or not data.get("url"):
            return None
        return cls(
            url=str(data["url"]),
            headers=dict(data.get("headers", {})),
            timeout_seconds=float(data.get("timeout_seconds", 30.0)),
            max_retries=int(data.get("max_retries", 2)),
            base_delay_seconds=float(data.get("base_delay_seconds", 1.0)),
        )

    def to_dict(self) -> dict:
        return {
            "enabled": True,
            "url": self.url,
            "headers": dict(self.headers),
            "timeout_seconds": self.timeout_seconds,
            "max_retries": self.max_retries,
            "base_delay_seconds": self.base_delay_seconds,
        }


@dataclass
class NotificationConfig:
    """Run notification configuration."""

    webhook: Optional[WebhookConfig] = None

    @classmethod
    def from_dict(cls, data: dict) -> "NotificationConfig":
        return cls(webhook=WebhookConfig.from_dict(_section(data, "webhook")))

    def to_dict(self) -> dict:
        return {"webhook": self.webhook.to_dict() if self.webhook else {"enabled": False}}


@dataclass
class LoggingConfig:
    """Logging configuration."""

    level: str = "info"
    output_format: str = "text"  # 'json', 'text', 'both'

    @classmethod
    def from_dict(cls, data: dict) -> "LoggingConfig":
        return cls(
            level=str(data.get("level", "info")),
            output_format=str(data.get("output_format", "text")),
        )

    def to_dict(self) -> dict:
        return {"level": self.level, "output_format": self.output_format}


@dataclass
class ExplorerConfig:
    """Main configuration combining all sub-configurations."""

    storage: StorageConfig
    output: OutputConfig
    filters: FilterConfig = field(default_factory=FilterConfig)
    notifications: NotificationConfig = field(default_factory=NotificationConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @classmethod
    def from_dict(cls, data: Any, defaults: "ExplorerConfig") -> "ExplorerConfig":
        """
        Build a configuration from parsed JSON.

        Missing sections and keys fall back to ``defaults``.

        Raises:
            TypeError, ValueError: If a section or value has the wrong shape
        """
        if not isinstance(data, dict):
            raise TypeError(f"config must be an object, got {type(data).__name__}")
        return cls(
            storage=StorageConfig.from_dict(_section(data, "storage"), defaults.storage),
            output=OutputConfig.from_dict(_section(data, "output"), defaults.output),
            filters=FilterConfig.from_dict(_section(data, "filters")),
            notifications=NotificationConfig.from_dict(_section(data, "notifications")),
            logging=LoggingConfig.from_dict(_section(data, "logging")),
        )

    def to_dict(self) -> dict:
        return {
            "storage": self.storage.to_dict(),
            "output": self.output.to_dict(),
            "filters": self.filters.to_dict(),
            "notifications": self.notifications.to_dict(),
            "logging": self.logging.to_dict(),
        }
