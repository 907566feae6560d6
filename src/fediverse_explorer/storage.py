"""
Read-only access to the crawler's stored data.

The pipeline consumes storage through the StorageReader protocol. Two
adapters are provided:
- JsonDumpStorage reads a directory of JSON files exported from the
  key-value store.
- InMemoryStorage serves records held in memory.

Every read is a suspension point; the orchestrator issues independent reads
concurrently.
"""

import asyncio
import json
from abc import abstractmethod
from pathlib import Path
from typing import Any, Optional, Protocol, runtime_checkable

from .enums import RecordKind
from .exceptions import KeyFormatError, SourceUnavailableError
from .storage_keys import decode_failure_key


@runtime_checkable
class StorageReader(Protocol):
    """Protocol defining the storage accessors the pipeline consumes."""

    @abstractmethod
    async def list_instance_data(self) -> list[dict]:
        """Return every stored instance snapshot."""
        ...

    @abstractmethod
    async def list_community_data(self) -> list[dict]:
        """Return every stored community snapshot."""
        ...

    @abstractmethod
    async def list_fediverse_data(self) -> dict[str, dict]:
        """Return fediverse server records keyed by ``fediverse:<host>``."""
        ...

    @abstractmethod
    async def list_failure_data(self, kind: RecordKind) -> dict[str, dict]:
        """Return failure markers of one kind keyed by ``error:<kind>:<host>``."""
        ...

    @abstractmethod
    async def get_latest_uptime_data(self) -> dict:
        """Return the latest uptime check as ``{"nodes": [...]}``."""
        ...


def _select_failures(failures: dict, kind: RecordKind) -> dict[str, dict]:
    """
    Keep the markers of one record kind.

    Keys that do not decode are passed through with the instance markers
    only, so the consumer reports each of them once.
    """
    selected = {}
    for key, value in failures.items():
        try:
            matches = decode_failure_key(key).kind == kind
        except KeyFormatError:
            matches = kind == RecordKind.INSTANCE
        if matches:
            selected[key] = value
    return selected


class InMemoryStorage:
    """Storage reader over records held in memory."""

    def __init__(
        self,
        instances: Optional[list] = None,
        communities: Optional[list] = None,
        fediverse: Optional[dict] = None,
        failures: Optional[dict] = None,
        uptime: Optional[dict] = None,
    ) -> None:
        self._instances = instances or []
        self._communities = communities or []
        self._fediverse = fediverse or {}
        self._failures = failures or {}
        self._uptime = uptime if uptime is not None else {"nodes": []}

    async def list_instance_data(self) -> list[dict]:
        return list(self._instances)

    async def list_community_data(self) -> list[dict]:
        return list(self._communities)

    async def list_fediverse_data(self) -> dict[str, dict]:
        return dict(self._fediverse)

    async def list_failure_data(self, kind: RecordKind) -> dict[str, dict]:
        return _select_failures(self._failures, kind)

    async def get_latest_uptime_data(self) -> dict:
        return self._uptime


class JsonDumpStorage:
    """
    Storage reader over a JSON export of the key-value store.

    Expected files in the dump directory:
    - instances.json: list of instance snapshots
    - communities.json: list of community snapshots
    - fediverse.json: object keyed by ``fediverse:<host>``
    - failures.json: object keyed by ``error:<kind>:<host>``
    - uptime.json: object with a ``nodes`` list
    """

    INSTANCES_FILE = "instances.json"
    COMMUNITIES_FILE = "communities.json"
    FEDIVERSE_FILE = "fediverse.json"
    FAILURES_FILE = "failures.json"
    UPTIME_FILE = "uptime.json"

    def __init__(self, directory: Path) -> None:
        """
        Initialize the reader.

        Args:
            directory: Directory containing the exported JSON files
        """
        self._directory = Path(directory)

    @property
    def directory(self) -> Path:
        return self._directory

    def _read_sync(self, filename: str) -> Any:
        path = self._directory / filename
        try:
            with open(path, "r", encoding="utf-8") as f:
                return json.load(f)
        except FileNotFoundError:
            raise SourceUnavailableError(
                code="missing_source",
                message=f"Storage source not found: {path}",
                details={"file_path": str(path)},
            )
        except json.JSONDecodeError as e:
            raise SourceUnavailableError(
                code="parse_error",
                message=f"Failed to parse storage source {path}: {e}",
                details={"file_path": str(path)},
            )
        except OSError as e:
            raise SourceUnavailableError(
                code="io_error",
                message=f"Failed to read storage source {path}: {e}",
                details={"file_path": str(path)},
            )

    async def _read(self, filename: str, expected: type) -> Any:
        data = await asyncio.to_thread(self._read_sync, filename)
        if not isinstance(data, expected):
            raise SourceUnavailableError(
                code="unexpected_shape",
                message=f"Storage source {filename} is not a JSON {expected.__name__}",
                details={"file_path": str(self._directory / filename)},
            )
        return data

    async def list_instance_data(self) -> list[dict]:
        return await self._read(self.INSTANCES_FILE, list)

    async def list_community_data(self) -> list[dict]:
        return await self._read(self.COMMUNITIES_FILE, list)

    async def list_fediverse_data(self) -> dict[str, dict]:
        return await self._read(self.FEDIVERSE_FILE, dict)

    async def list_failure_data(self, kind: RecordKind) -> dict[str, dict]:
        failures = await self._read(self.FAILURES_FILE, dict)
        return _select_failures(failures, kind)

    async def get_latest_uptime_data(self) -> dict:
        return await self._read(self.UPTIME_FILE, dict)
