"""
Exception classes for the fediverse explorer pipeline.

All exceptions inherit from ExplorerError and provide structured
error information with codes, messages, and optional details.
"""

from typing import Optional


class ExplorerError(Exception):
    """Base exception for all fediverse explorer errors."""

    def __init__(
        self,
        code: str,
        message: str,
        details: Optional[dict] = None,
    ) -> None:
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(code={self.code!r}, message={self.message!r})"

    def to_dict(self) -> dict:
        """Convert exception to dictionary for serialization."""
        return {
            "error_type": self.__class__.__name__,
            "code": self.code,
            "message": self.message,
            "details": self.details,
        }


class SourceUnavailableError(ExplorerError):
    """Raised when a storage read fails (missing, unreadable or malformed source)."""

    pass


class KeyFormatError(ExplorerError):
    """Raised when a composite storage key does not match its expected format."""

    pass


class SnapshotWriteError(ExplorerError):
    """Raised when an artifact cannot be written or published."""

    pass


class ConfigError(ExplorerError):
    """Raised when configuration cannot be loaded or holds invalid values."""

    pass


class NotificationError(ExplorerError):
    """Raised when run notification delivery fails."""

    pass
