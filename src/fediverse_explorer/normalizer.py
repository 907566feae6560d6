"""
Record normalizer.

Projects parsed crawl records into the public shapes consumed by the
presentation layer, joining in uptime data and the federation tally.
No filtering happens here.
"""

from typing import Iterable, Optional

from .models import (
    CommunityRecord,
    FederationTally,
    InstanceRecord,
    PublicCommunity,
    PublicInstance,
    UptimeRecord,
)
from .scoring import calculate_score


class UptimeIndex:
    """Latest uptime node per domain."""

    def __init__(self, records: Iterable[UptimeRecord]) -> None:
        self._by_domain: dict[str, UptimeRecord] = {}
        for record in records:
            # First node wins, matching a linear search over the node list
            self._by_domain.setdefault(record.domain, record)

    @classmethod
    def from_raw(cls, raw: object) -> "UptimeIndex":
        nodes = raw.get("nodes") if isinstance(raw, dict) else None
        records = []
        for node in nodes if isinstance(nodes, list) else []:
            record = UptimeRecord.from_raw(node)
            if record is not None:
                records.append(record)
        return cls(records)

    def lookup(self, identity: Optional[str]) -> Optional[dict]:
        if identity is None:
            return None
        record = self._by_domain.get(identity)
        return record.node if record is not None else None

    def __len__(self) -> int:
        return len(self._by_domain)


def normalize_instance(
    record: InstanceRecord,
    tally: FederationTally,
    uptime: UptimeIndex,
) -> PublicInstance:
    """Flatten an instance record and attach uptime, block counts and score."""
    identity = record.identity
    incoming = tally.blocked.get(identity, 0) if identity is not None else 0

    return PublicInstance(
        baseurl=identity,
        url=record.url,
        name=record.name,
        desc=record.description,
        downvotes=record.enable_downvotes,
        nsfw=record.enable_nsfw,
        create_admin=record.community_creation_admin_only,
        private=record.private_instance,
        fed=record.federation_enabled,
        date=record.published,
        version=record.software_version,
        open=record.open_registrations,
        usage=record.usage,
        counts=record.counts,
        icon=record.icon,
        banner=record.banner,
        langs=record.languages,
        time=record.last_crawled,
        score=calculate_score(identity, tally),
        uptime=uptime.lookup(identity),
        incoming_blocks=incoming,
        outgoing_blocks=record.outgoing_blocks,
    )


def normalize_community(
    record: CommunityRecord,
    tally: FederationTally,
) -> PublicCommunity:
    """Flatten a community record and score it by its host and subscribers."""
    return PublicCommunity(
        baseurl=record.identity,
        url=record.url,
        name=record.name,
        title=record.title,
        desc=record.description,
        icon=record.icon,
        banner=record.banner,
        nsfw=record.nsfw,
        counts=record.counts,
        time=record.last_crawled,
        score=calculate_score(record.identity, tally, multiplier=record.subscribers),
    )
