"""
Snapshot Orchestrator for the fediverse explorer pipeline.

This module sequences one batch run:
- concurrent reads of uptime data, failure markers and instances
- federation tally built once from every instance record
- normalization, scoring and filtering of instances, then communities,
  both against the same tally
- reduction of the fediverse server list
- meta and overview summaries
- publication of the five artifacts through the snapshot writer

A run either completes or aborts. Storage read failures and write failures
abort the run and propagate to the caller; nothing is retried here.
"""

import asyncio
import time
from typing import Any, Awaitable, Callable, Optional

from .audit_logger import AuditLogger
from .enums import Artifact, LogLevel, RecordKind, RunStatus
from .exceptions import ExplorerError, SourceUnavailableError
from .fediverse import reduce_fediverse
from .filters import FailureIndex, filter_records
from .models import (
    CommunityRecord,
    FederationTally,
    InstanceRecord,
    RunReport,
)
from .normalizer import UptimeIndex, normalize_community, normalize_instance
from .notifications import RunNotifier
from .snapshot_writer import SnapshotWriter
from .storage import StorageReader
from .tally import build_tally


def epoch_ms() -> int:
    """Current time in milliseconds since the Unix epoch."""
    return int(time.time() * 1000)


def build_meta(instances: int, communities: int, fediverse: int, run_time: int) -> dict:
    return {
        "instances": instances,
        "communities": communities,
        "fediverse": fediverse,
        "time": run_time,
    }


def build_overview(instances: int, communities: int, tally: FederationTally) -> dict:
    return {
        "instances": instances,
        "communities": communities,
        "linked": dict(tally.linked),
        "allowed": dict(tally.allowed),
        "blocked": dict(tally.blocked),
    }


class SnapshotOrchestrator:
    """
    Main orchestrator for snapshot generation.

    Coordinates storage reads, the transformation stages and the snapshot
    writer for a single run. Holds no state between runs.
    """

    async def __aenter__(self) -> "SnapshotOrchestrator":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        pass

    def __init__(
        self,
        storage: StorageReader,
        writer: SnapshotWriter,
        max_age_ms: int,
        logger: Optional[AuditLogger] = None,
        notifier: Optional[RunNotifier] = None,
        clock: Callable[[], int] = epoch_ms,
    ) -> None:
        """
        Initialize the snapshot orchestrator.

        Args:
            storage: Read-only storage reader
            writer: Snapshot writer for the output directory
            max_age_ms: Records crawled longer ago than this are dropped
            logger: Optional audit logger
            notifier: Optional run notifier
            clock: Returns the current time in epoch milliseconds
        """
        self._storage = storage
        self._writer = writer
        self._max_age_ms = max_age_ms
        self._logger = logger
        self._notifier = notifier
        self._clock = clock

    async def run(self) -> RunReport:
        """
        Execute one full run and publish the snapshot set.

        Returns:
            RunReport with published counts and filter statistics

        Raises:
            SourceUnavailableError: If a storage read fails
            SnapshotWriteError: If an artifact cannot be written or published
        """
        now = self._clock()
        report = RunReport(status=RunStatus.FAILURE, time=now)

        try:
            await self._run(report, now)
        except Exception as e:
            report.error = str(e)
            self._log_error("Run failed, previous snapshot left in place", e)
            await self._notify(report)
            raise

        report.status = RunStatus.SUCCESS
        self._log_info(
            "Run completed",
            {
                "instances": report.instances,
                "communities": report.communities,
                "fediverse": report.fediverse,
            },
        )
        await self._notify(report)
        return report

    async def _run(self, report: RunReport, now: int) -> None:
        with self._writer.begin() as transaction:
            # Instances
            uptime_raw, instance_failures_raw, community_failures_raw, instances_raw = (
                await asyncio.gather(
                    self._read("uptime", self._storage.get_latest_uptime_data()),
                    self._read("instance failures", self._storage.list_failure_data(RecordKind.INSTANCE)),
                    self._read("community failures", self._storage.list_failure_data(RecordKind.COMMUNITY)),
                    self._read("instances", self._storage.list_instance_data()),
                )
            )

            uptime = UptimeIndex.from_raw(uptime_raw)
            failures = FailureIndex.from_raw(instance_failures_raw, self._logger)
            failures.merge(FailureIndex.from_raw(community_failures_raw, self._logger))
            self._log_info(f"Uptime: {len(uptime)}", {"nodes": len(uptime)})
            self._log_info(f"Failures: {len(failures)}", {"markers": len(failures)})

            instances = [InstanceRecord.from_raw(raw) for raw in instances_raw]
            tally = build_tally(instances)

            public_instances, instance_stats = filter_records(
                (normalize_instance(record, tally, uptime) for record in instances),
                lambda identity: failures.latest(identity, RecordKind.INSTANCE),
                now,
                self._max_age_ms,
            )
            report.instances = len(public_instances)
            report.instance_filter = instance_stats
            self._log_info(
                f"Instances {len(instances)} -> {len(public_instances)}",
                instance_stats.to_dict(),
            )
            transaction.write(Artifact.INSTANCES, [item.to_dict() for item in public_instances])

            # Communities
            communities_raw = await self._read("communities", self._storage.list_community_data())
            communities = [CommunityRecord.from_raw(raw) for raw in communities_raw]

            public_communities, community_stats = filter_records(
                (normalize_community(record, tally) for record in communities),
                lambda identity: failures.latest(identity, RecordKind.INSTANCE, RecordKind.COMMUNITY),
                now,
                self._max_age_ms,
            )
            report.communities = len(public_communities)
            report.community_filter = community_stats
            self._log_info(
                f"Communities {len(communities)} -> {len(public_communities)}",
                community_stats.to_dict(),
            )
            transaction.write(Artifact.COMMUNITIES, [item.to_dict() for item in public_communities])

            # Fediverse servers
            fediverse_raw = await self._read("fediverse", self._storage.list_fediverse_data())
            fediverse = reduce_fediverse(fediverse_raw, self._logger)
            report.fediverse = len(fediverse)
            self._log_info(f"Fediverse Servers {len(fediverse)}", {"keys": len(fediverse_raw)})
            transaction.write(Artifact.FEDIVERSE, [item.to_dict() for item in fediverse])

            # Summaries
            transaction.write(
                Artifact.META,
                build_meta(report.instances, report.communities, report.fediverse, now),
            )
            transaction.write(
                Artifact.OVERVIEW,
                build_overview(report.instances, report.communities, tally),
            )

            report.artifacts = [str(path) for path in transaction.commit()]

    async def _read(self, source: str, read: Awaitable[Any]) -> Any:
        """Await a storage read, reporting any failure as SourceUnavailableError."""
        try:
            return await read
        except SourceUnavailableError:
            raise
        except ExplorerError as e:
            raise SourceUnavailableError(
                code=e.code,
                message=f"Failed to read {source}: {e.message}",
                details={"source": source, **e.details},
            )
        except Exception as e:
            raise SourceUnavailableError(
                code="read_error",
                message=f"Failed to read {source}: {e}",
                details={"source": source, "error_type": type(e).__name__},
            )

    async def _notify(self, report: RunReport) -> None:
        if self._notifier:
            await self._notifier.notify(report)

    def _log_info(self, message: str, data: dict) -> None:
        if self._logger:
            self._logger.log(LogLevel.INFO, "SnapshotOrchestrator", message, data)

    def _log_error(self, message: str, error: Exception) -> None:
        if self._logger:
            self._logger.log_error("SnapshotOrchestrator", message, error=error)
