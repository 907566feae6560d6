"""
Snapshot Writer module for publishing pipeline artifacts.

Each artifact is serialized in full before a file handle is acquired, and the
handle is always released, whether the write succeeds or fails. Readers never
observe a partially written artifact: content goes to a temporary location
and is moved into place with an atomic rename.

Two publication policies are supported:
- staged (default): all artifacts of a run are written to a staging directory
  and moved into place only after every write succeeded. A failed run leaves
  the previously published set untouched and mutually consistent.
  Staging directories left by a killed run are removed when the next
  transaction begins.
- direct: each artifact is moved into place as soon as it is written. A run
  that fails partway can leave artifacts from different runs side by side.
"""

import json
import os
import shutil
import tempfile
from pathlib import Path
from typing import Any, Optional

from .audit_logger import AuditLogger
from .enums import Artifact, LogLevel
from .exceptions import SnapshotWriteError

STAGING_PREFIX = ".staging-"


def serialize_artifact(data: Any, indent: Optional[int] = None) -> str:
    """
    Serialize artifact data to JSON text.

    Raises:
        SnapshotWriteError: If the data is not JSON serializable
    """
    try:
        if indent is None:
            return json.dumps(data, ensure_ascii=False, separators=(",", ":"))
        return json.dumps(data, ensure_ascii=False, indent=indent)
    except (TypeError, ValueError) as e:
        raise SnapshotWriteError(
            code="serialize_error",
            message=f"Artifact data is not serializable: {e}",
            details={},
        )


def write_file(path: Path, content: str) -> None:
    """
    Write the full content to a file through a scoped handle.

    Raises:
        SnapshotWriteError: If the file cannot be opened or written
    """
    try:
        with open(path, "w", encoding="utf-8") as f:
            f.write(content)
    except OSError as e:
        raise SnapshotWriteError(
            code="io_error",
            message=f"Failed to write artifact file: {e}",
            details={"file_path": str(path)},
        )


def replace_file(source: Path, destination: Path) -> None:
    """Atomically move a written file over its destination."""
    try:
        os.replace(source, destination)
    except OSError as e:
        raise SnapshotWriteError(
            code="publish_error",
            message=f"Failed to publish artifact: {e}",
            details={"source": str(source), "file_path": str(destination)},
        )


class SnapshotTransaction:
    """
    One run's worth of artifact writes.

    Use as a context manager; call commit() once every artifact is written.
    Leaving the context without committing discards staged artifacts.
    """

    def __init__(
        self,
        output_dir: Path,
        atomic_publish: bool,
        indent: Optional[int],
        logger: Optional[AuditLogger] = None,
    ) -> None:
        self._output_dir = output_dir
        self._atomic_publish = atomic_publish
        self._indent = indent
        self._logger = logger
        self._staging_dir: Optional[Path] = None
        self._written: list[Artifact] = []
        self._published: list[Path] = []
        self._committed = False

    def __enter__(self) -> "SnapshotTransaction":
        try:
            self._output_dir.mkdir(parents=True, exist_ok=True)
            self._sweep_orphaned_staging()
            if self._atomic_publish:
                self._staging_dir = Path(
                    tempfile.mkdtemp(prefix=STAGING_PREFIX, dir=self._output_dir)
                )
        except OSError as e:
            raise SnapshotWriteError(
                code="io_error",
                message=f"Output directory is not writable: {e}",
                details={"file_path": str(self._output_dir)},
            )
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        if not self._committed and self._written and self._atomic_publish:
            self._log(
                LogLevel.WARN,
                "Run aborted, staged artifacts discarded",
                {"artifacts": [artifact.value for artifact in self._written]},
            )
        self._discard_staging()

    @property
    def staging_dir(self) -> Optional[Path]:
        return self._staging_dir

    @property
    def published(self) -> list[Path]:
        """Paths that have been moved into place so far."""
        return self._published.copy()

    def write(self, artifact: Artifact, data: Any) -> None:
        """
        Serialize and write one artifact.

        In staged mode the artifact only becomes visible on commit().

        Raises:
            SnapshotWriteError: If serialization or the write fails
        """
        if self._committed:
            raise SnapshotWriteError(
                code="already_committed",
                message="Transaction already committed",
                details={"artifact": artifact.value},
            )

        content = serialize_artifact(data, self._indent)
        destination = self._output_dir / artifact.filename

        if self._atomic_publish:
            write_file(self._staging_dir / artifact.filename, content)
        else:
            temp_path = self._output_dir / f"{artifact.filename}.tmp"
            try:
                write_file(temp_path, content)
                replace_file(temp_path, destination)
            finally:
                if temp_path.exists():
                    temp_path.unlink()
            self._published.append(destination)

        self._written.append(artifact)
        self._log(
            LogLevel.DEBUG,
            f"Wrote {artifact.filename}",
            {"bytes": len(content.encode("utf-8")), "staged": self._atomic_publish},
        )

    def commit(self) -> list[Path]:
        """
        Move every staged artifact into place.

        Returns:
            Paths of all published artifacts

        Raises:
            SnapshotWriteError: If an artifact cannot be moved into place
        """
        if self._atomic_publish and not self._committed:
            for artifact in self._written:
                destination = self._output_dir / artifact.filename
                replace_file(self._staging_dir / artifact.filename, destination)
                self._published.append(destination)
            self._discard_staging()

        self._committed = True
        self._log(
            LogLevel.INFO,
            "Snapshot published",
            {"artifacts": [artifact.value for artifact in self._written]},
        )
        return self._published.copy()

    def _sweep_orphaned_staging(self) -> None:
        """Remove staging directories left behind by runs that were killed."""
        orphans = [
            path for path in self._output_dir.glob(f"{STAGING_PREFIX}*")
            if path.is_dir()
        ]
        for path in orphans:
            shutil.rmtree(path, ignore_errors=True)
        if orphans:
            self._log(
                LogLevel.WARN,
                "Removed orphaned staging directories",
                {"directories": sorted(path.name for path in orphans)},
            )

    def _discard_staging(self) -> None:
        if self._staging_dir is not None:
            shutil.rmtree(self._staging_dir, ignore_errors=True)
            self._staging_dir = None

    def _log(self, level: LogLevel, message: str, data: dict) -> None:
        if self._logger:
            self._logger.log(level, "SnapshotWriter", message, data)


class SnapshotWriter:
    """
    Publishes snapshot artifacts into an output directory.

    The writer owns the artifact files exclusively for the duration of a
    transaction; concurrent writers to the same directory are not supported.
    """

    def __init__(
        self,
        output_dir: Path,
        atomic_publish: bool = True,
        indent: Optional[int] = None,
        logger: Optional[AuditLogger] = None,
    ) -> None:
        """
        Initialize the snapshot writer.

        Args:
            output_dir: Directory the presentation layer reads artifacts from
            atomic_publish: Stage all artifacts and publish them together
            indent: JSON indent; None writes compact JSON
            logger: Optional audit logger
        """
        self._output_dir = Path(output_dir)
        self._atomic_publish = atomic_publish
        self._indent = indent
        self._logger = logger

    @property
    def output_dir(self) -> Path:
        return self._output_dir

    @property
    def atomic_publish(self) -> bool:
        return self._atomic_publish

    def begin(self) -> SnapshotTransaction:
        """Start a transaction for one run."""
        return SnapshotTransaction(
            output_dir=self._output_dir,
            atomic_publish=self._atomic_publish,
            indent=self._indent,
            logger=self._logger,
        )

    def read(self, artifact: Artifact) -> Optional[Any]:
        """
        Load a published artifact.

        Returns:
            Parsed artifact, or None if it has not been published yet

        Raises:
            SnapshotWriteError: If the published file cannot be parsed
        """
        path = self._output_dir / artifact.filename
        if not path.exists():
            return None
        try:
            with open(path, "r", encoding="utf-8") as f:
                return json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise SnapshotWriteError(
                code="read_error",
                message=f"Failed to read published artifact: {e}",
                details={"file_path": str(path)},
            )
