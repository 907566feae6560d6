"""
Property-based tests for the Snapshot Orchestrator.

Uses Hypothesis for property-based testing to verify complete runs against
in-memory storage: scoring from the full tally, filtering, the summaries,
and that failed runs publish nothing.
"""

import asyncio
import tempfile
from io import StringIO
from pathlib import Path
from typing import Optional

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from fediverse_explorer.audit_logger import AuditLogger
from fediverse_explorer.enums import Artifact, DropReason, LogLevel, RecordKind, RunStatus
from fediverse_explorer.exceptions import SnapshotWriteError, SourceUnavailableError
from fediverse_explorer.models import RunReport
from fediverse_explorer.notifications import RunNotifier
from fediverse_explorer.orchestrator import SnapshotOrchestrator
from fediverse_explorer.snapshot_writer import SnapshotTransaction, SnapshotWriter
from fediverse_explorer.storage import InMemoryStorage

NOW = 1700000000000
MAX_AGE = 24 * 60 * 60 * 1000
FRESH = NOW - 60 * 1000


def run_async(coro):
    """Helper to run async code in tests."""
    return asyncio.run(coro)


def instance_raw(
    host: str,
    last_crawled: Optional[int] = FRESH,
    linked: Optional[list] = None,
    allowed: Optional[list] = None,
    blocked: Optional[list] = None,
) -> dict:
    return {
        "siteData": {
            "site": {"actor_id": f"https://{host}/", "name": host},
            "federated": {
                "linked": linked or [],
                "allowed": allowed,
                "blocked": blocked,
            },
        },
        "nodeData": {"software": {"name": "lemmy", "version": "0.19.3"}},
        "lastCrawled": last_crawled,
    }


def community_raw(host: str, name: str, subscribers: int = 1, last_crawled: int = FRESH) -> dict:
    return {
        "community": {
            "actor_id": f"https://{host}/c/{name}",
            "name": name,
            "title": name.title(),
        },
        "counts": {"subscribers": subscribers},
        "lastCrawled": last_crawled,
    }


def make_orchestrator(storage, output_dir: Path, **kwargs) -> SnapshotOrchestrator:
    return SnapshotOrchestrator(
        storage=storage,
        writer=kwargs.pop("writer", None) or SnapshotWriter(output_dir),
        max_age_ms=MAX_AGE,
        clock=lambda: NOW,
        **kwargs,
    )


class UnavailableStorage(InMemoryStorage):
    """Storage whose community read fails."""

    async def list_community_data(self) -> list:
        raise ConnectionError("connection refused")


class FailingTransaction(SnapshotTransaction):
    """Transaction that cannot write one artifact."""

    fail_on = Artifact.FEDIVERSE

    def write(self, artifact, data) -> None:
        if artifact == self.fail_on:
            raise SnapshotWriteError(code="io_error", message="disk full", details={})
        super().write(artifact, data)


class FailingWriter(SnapshotWriter):
    def begin(self) -> SnapshotTransaction:
        return FailingTransaction(self.output_dir, self.atomic_publish, None)


class RecordingChannel:
    """Notification channel that records every payload."""

    def __init__(self) -> None:
        self.payloads = []

    async def send(self, payload) -> bool:
        self.payloads.append(payload)
        return True

    def get_name(self) -> str:
        return "recording"


@st.composite
def network_strategy(draw) -> list:
    """Generate instance lists whose federation lists point at each other."""
    hosts = ["a.social", "b.social", "c.social", "d.social", "e.social"]
    related = st.lists(st.sampled_from(hosts), max_size=4)
    return [
        instance_raw(
            host,
            last_crawled=draw(st.sampled_from([FRESH, NOW - 2 * MAX_AGE, None])),
            linked=draw(related),
            allowed=draw(st.one_of(st.none(), related)),
            blocked=draw(st.one_of(st.none(), related)),
        )
        for host in hosts
    ]


class TestEndToEndRun:
    """
    Tests for complete runs.

    **Feature: fediverse-explorer, Property 17: A run publishes a consistent snapshot set**
    """

    def test_scores_use_full_tally(self) -> None:
        storage = InMemoryStorage(
            instances=[
                instance_raw("a.social", linked=["b.social"], blocked=["b.social"]),
                instance_raw("b.social"),
                instance_raw("c.social", blocked=["b.social"]),
                # Stale, but its block list still counts
                instance_raw("d.social", last_crawled=NOW - 2 * MAX_AGE, blocked=["b.social"]),
            ],
            communities=[
                community_raw("b.social", "linux", subscribers=2),
                community_raw("a.social", "empty", subscribers=0),
            ],
            fediverse={
                "fediverse:b.social": {"name": "lemmy", "version": "0.19.3"},
                "fediverse:a.social": {"name": "mastodon", "version": "4.2.1"},
                "fediverse:z.social": {"version": "1.0"},
            },
            uptime={"nodes": [{"domain": "b.social", "uptime_alltime": "99.5"}]},
        )

        with tempfile.TemporaryDirectory() as tmpdir:
            output_dir = Path(tmpdir)
            report = run_async(make_orchestrator(storage, output_dir).run())
            writer = SnapshotWriter(output_dir)

            instances = {item["baseurl"]: item for item in writer.read(Artifact.INSTANCES)}
            assert set(instances) == {"a.social", "b.social", "c.social"}
            assert instances["b.social"]["score"] == 1 - 3 * 10
            assert instances["b.social"]["blocks"] == {"incoming": 3, "outgoing": 0}
            assert instances["b.social"]["uptime"] == {"domain": "b.social", "uptime_alltime": "99.5"}
            assert instances["a.social"]["blocks"] == {"incoming": 0, "outgoing": 1}

            communities = writer.read(Artifact.COMMUNITIES)
            assert [(c["name"], c["score"]) for c in communities] == [("linux", -58), ("empty", 0)]

            assert writer.read(Artifact.FEDIVERSE) == [
                {"url": "a.social", "software": "mastodon", "version": "4.2.1"},
                {"url": "b.social", "software": "lemmy", "version": "0.19.3"},
            ]
            assert writer.read(Artifact.META) == {
                "instances": 3,
                "communities": 2,
                "fediverse": 2,
                "time": NOW,
            }
            overview = writer.read(Artifact.OVERVIEW)
            assert overview["instances"] == 3
            assert overview["communities"] == 2
            assert overview["linked"] == {"b.social": 1}
            assert overview["blocked"] == {"b.social": 3}
            assert overview["allowed"] == {}

        assert report.status == RunStatus.SUCCESS
        assert (report.instances, report.communities, report.fediverse) == (3, 2, 2)
        assert report.instance_filter.dropped == {DropReason.TOO_OLD: 1}
        assert len(report.artifacts) == len(Artifact)

    def test_failed_instance_excludes_its_communities(self) -> None:
        storage = InMemoryStorage(
            instances=[instance_raw("a.social"), instance_raw("b.social")],
            communities=[
                community_raw("a.social", "linux"),
                community_raw("b.social", "rust"),
                community_raw("c.social", "go"),
            ],
            failures={
                "error:instance:a.social": {"time": FRESH + 1},
                "error:community:c.social": {"time": FRESH + 1},
                "error:community:b.social": {"time": FRESH - 1},
            },
        )

        with tempfile.TemporaryDirectory() as tmpdir:
            report = run_async(make_orchestrator(storage, Path(tmpdir)).run())
            writer = SnapshotWriter(Path(tmpdir))

            assert [i["baseurl"] for i in writer.read(Artifact.INSTANCES)] == ["b.social"]
            assert [c["name"] for c in writer.read(Artifact.COMMUNITIES)] == ["rust"]

        assert report.instance_filter.dropped == {DropReason.FAILED_AFTER_CRAWL: 1}
        assert report.community_filter.dropped == {DropReason.FAILED_AFTER_CRAWL: 2}

    def test_undecodable_failure_key_is_reported_once(self) -> None:
        logger = AuditLogger(output_format="json", output_stream=StringIO())
        storage = InMemoryStorage(
            instances=[instance_raw("a.social"), instance_raw("b.social")],
            failures={
                "error:instance:A.Social": {"time": FRESH + 1},
                "garbage": {"time": FRESH + 1},
            },
        )

        with tempfile.TemporaryDirectory() as tmpdir:
            run_async(make_orchestrator(storage, Path(tmpdir), logger=logger).run())
            writer = SnapshotWriter(Path(tmpdir))

            assert [i["baseurl"] for i in writer.read(Artifact.INSTANCES)] == ["b.social"]

        warnings = [
            entry for entry in logger.entries
            if entry.level == LogLevel.WARN and entry.component == "FailureIndex"
        ]
        assert [entry.data["key"] for entry in warnings] == ["garbage"]

    @given(data=st.data(), instances=network_strategy())
    @settings(max_examples=25)
    def test_published_instances_do_not_depend_on_input_order(self, data, instances: list) -> None:
        """
        Property 17: A run publishes a consistent snapshot set.

        *For any* set of instances, permuting the storage order SHALL not
        change which instances are published or their scores.

        **Feature: fediverse-explorer, Property 17: A run publishes a consistent snapshot set**
        """
        shuffled = data.draw(st.permutations(instances))

        def published(raw_instances: list) -> dict:
            with tempfile.TemporaryDirectory() as tmpdir:
                run_async(make_orchestrator(InMemoryStorage(instances=raw_instances), Path(tmpdir)).run())
                return {
                    item["baseurl"]: (item["score"], item["blocks"]["incoming"])
                    for item in SnapshotWriter(Path(tmpdir)).read(Artifact.INSTANCES)
                }

        assert published(instances) == published(shuffled)


class TestFailedRunProperty:
    """
    Tests for aborted runs.

    **Feature: fediverse-explorer, Property 18: A failed run publishes nothing**
    """

    def test_source_unavailable_publishes_nothing(self) -> None:
        storage = UnavailableStorage(instances=[instance_raw("a.social")])

        with tempfile.TemporaryDirectory() as tmpdir:
            output_dir = Path(tmpdir)
            with pytest.raises(SourceUnavailableError) as exc_info:
                run_async(make_orchestrator(storage, output_dir).run())

            assert exc_info.value.details["source"] == "communities"
            assert list(output_dir.iterdir()) == []

    def test_source_unavailable_keeps_previous_snapshot(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            output_dir = Path(tmpdir)
            run_async(make_orchestrator(
                InMemoryStorage(instances=[instance_raw("a.social")]), output_dir
            ).run())

            with pytest.raises(SourceUnavailableError):
                run_async(make_orchestrator(
                    UnavailableStorage(instances=[instance_raw("b.social")]), output_dir
                ).run())

            writer = SnapshotWriter(output_dir)
            assert [i["baseurl"] for i in writer.read(Artifact.INSTANCES)] == ["a.social"]
            assert writer.read(Artifact.META)["instances"] == 1

    def test_write_failure_propagates(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            output_dir = Path(tmpdir)
            orchestrator = make_orchestrator(
                InMemoryStorage(instances=[instance_raw("a.social")]),
                output_dir,
                writer=FailingWriter(output_dir),
            )
            with pytest.raises(SnapshotWriteError):
                run_async(orchestrator.run())

            assert not (output_dir / "instances.json").exists()

    def test_failure_is_notified(self) -> None:
        channel = RecordingChannel()
        notifier = RunNotifier(base_delay_seconds=0.001)
        notifier.register_channel(channel)

        with tempfile.TemporaryDirectory() as tmpdir:
            with pytest.raises(SourceUnavailableError):
                run_async(make_orchestrator(
                    UnavailableStorage(), Path(tmpdir), notifier=notifier
                ).run())

        assert len(channel.payloads) == 1
        assert channel.payloads[0].status == RunStatus.FAILURE.value
        assert "connection refused" in channel.payloads[0].error

    def test_success_is_notified(self) -> None:
        channel = RecordingChannel()
        notifier = RunNotifier()
        notifier.register_channel(channel)

        with tempfile.TemporaryDirectory() as tmpdir:
            report = run_async(make_orchestrator(
                InMemoryStorage(instances=[instance_raw("a.social")]),
                Path(tmpdir),
                notifier=notifier,
            ).run())

        assert isinstance(report, RunReport)
        assert channel.payloads[0].status == RunStatus.SUCCESS.value
        assert channel.payloads[0].instances == 1
