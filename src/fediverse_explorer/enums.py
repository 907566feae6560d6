"""
Enumeration types for the fediverse explorer pipeline.

These enums provide type-safe constants for record kinds, artifact names,
filter outcomes and logging levels throughout the system.
"""

from enum import Enum


class RecordKind(Enum):
    """Record family a failure marker belongs to."""

    INSTANCE = "instance"
    COMMUNITY = "community"


class Artifact(Enum):
    """Published snapshot artifacts, one file each per run."""

    INSTANCES = "instances"
    COMMUNITIES = "communities"
    FEDIVERSE = "fediverse"
    META = "meta"
    OVERVIEW = "overview"

    @property
    def filename(self) -> str:
        return f"{self.value}.json"


class DropReason(Enum):
    """Why the staleness/failure filter removed a record."""

    FAILED_AFTER_CRAWL = "failed_after_crawl"
    NO_TIMESTAMP = "no_timestamp"
    TOO_OLD = "too_old"
    EMPTY = "empty"


class RunStatus(Enum):
    """Outcome of a pipeline run."""

    SUCCESS = "success"
    FAILURE = "failure"


class LogLevel(Enum):
    """Logging severity levels."""

    DEBUG = "debug"
    INFO = "info"
    WARN = "warn"
    ERROR = "error"
