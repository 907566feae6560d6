"""
Data models for the fediverse explorer pipeline.

This module defines the parsed forms of the raw records written by the
crawler, the federation tally, the public record shapes published to the
presentation layer, and run bookkeeping.

Raw records are loosely-typed JSON documents. Each family has a ``from_raw``
parser built on ``dig`` so that absent or wrongly-typed fields become None
instead of raising.
"""

from dataclasses import dataclass, field
from typing import Any, Optional

from .enums import DropReason, RecordKind, RunStatus
from .identity import extract_identity, normalize_host


def dig(raw: Any, *path: str) -> Any:
    """
    Follow a key path through nested mappings.

    Returns:
        The value at the end of the path, or None if any step is missing
        or is not a mapping
    """
    current = raw
    for key in path:
        if not isinstance(current, dict):
            return None
        current = current.get(key)
    return current


def as_int(value: Any) -> Optional[int]:
    """Timestamps and counts are JSON numbers; booleans are not."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return int(value)


def _as_str(value: Any) -> Optional[str]:
    return value if isinstance(value, str) else None


def _as_list(value: Any) -> Optional[list]:
    return value if isinstance(value, list) else None


def _as_dict(value: Any) -> Optional[dict]:
    return value if isinstance(value, dict) else None


@dataclass
class FederationLists:
    """Relationships one server declares toward others."""

    linked: list = field(default_factory=list)
    allowed: Optional[list] = None
    blocked: Optional[list] = None

    @classmethod
    def from_raw(cls, raw: Any) -> Optional["FederationLists"]:
        if not isinstance(raw, dict):
            return None
        return cls(
            linked=_as_list(raw.get("linked")) or [],
            allowed=_as_list(raw.get("allowed")),
            blocked=_as_list(raw.get("blocked")),
        )


@dataclass
class InstanceRecord:
    """Parsed instance snapshot as stored by the crawler."""

    identity: Optional[str]
    url: Optional[str]
    name: Optional[str]
    description: Optional[str]
    icon: Optional[str]
    banner: Optional[str]
    published: Optional[str]
    counts: Optional[dict]
    enable_downvotes: Optional[bool]
    enable_nsfw: Optional[bool]
    community_creation_admin_only: Optional[bool]
    private_instance: Optional[bool]
    federation_enabled: Optional[bool]
    software_name: Optional[str]
    software_version: Optional[str]
    open_registrations: Optional[bool]
    usage: Optional[dict]
    languages: Optional[list]
    federation: Optional[FederationLists]
    last_crawled: Optional[int]

    @classmethod
    def from_raw(cls, raw: Any) -> "InstanceRecord":
        site = _as_dict(dig(raw, "siteData", "site")) or {}
        config = _as_dict(dig(raw, "siteData", "config")) or {}
        url = _as_str(site.get("actor_id"))
        return cls(
            identity=extract_identity(url),
            url=url,
            name=_as_str(site.get("name")),
            description=_as_str(site.get("description")),
            icon=_as_str(site.get("icon")),
            banner=_as_str(site.get("banner")),
            published=_as_str(site.get("published")),
            counts=_as_dict(dig(raw, "siteData", "counts")),
            enable_downvotes=config.get("enable_downvotes"),
            enable_nsfw=config.get("enable_nsfw"),
            community_creation_admin_only=config.get("community_creation_admin_only"),
            private_instance=config.get("private_instance"),
            federation_enabled=config.get("federation_enabled"),
            software_name=_as_str(dig(raw, "nodeData", "software", "name")),
            software_version=_as_str(dig(raw, "nodeData", "software", "version")),
            open_registrations=dig(raw, "nodeData", "openRegistrations"),
            usage=_as_dict(dig(raw, "nodeData", "usage")),
            languages=_as_list(dig(raw, "langs")),
            federation=FederationLists.from_raw(dig(raw, "siteData", "federated")),
            last_crawled=as_int(dig(raw, "lastCrawled")),
        )

    @property
    def outgoing_blocks(self) -> int:
        if self.federation is None or self.federation.blocked is None:
            return 0
        return len(self.federation.blocked)


@dataclass
class CommunityRecord:
    """Parsed community snapshot as stored by the crawler."""

    identity: Optional[str]
    url: Optional[str]
    name: Optional[str]
    title: Optional[str]
    description: Optional[str]
    icon: Optional[str]
    banner: Optional[str]
    nsfw: Optional[bool]
    counts: Optional[dict]
    last_crawled: Optional[int]

    @classmethod
    def from_raw(cls, raw: Any) -> "CommunityRecord":
        community = _as_dict(dig(raw, "community")) or {}
        url = _as_str(community.get("actor_id"))
        return cls(
            identity=extract_identity(url),
            url=url,
            name=_as_str(community.get("name")),
            title=_as_str(community.get("title")),
            description=_as_str(community.get("description")),
            icon=_as_str(community.get("icon")),
            banner=_as_str(community.get("banner")),
            nsfw=community.get("nsfw"),
            counts=_as_dict(dig(raw, "counts")),
            last_crawled=as_int(dig(raw, "lastCrawled")),
        )

    @property
    def subscribers(self) -> int:
        return as_int(dig(self.counts, "subscribers")) or 0


@dataclass
class FediverseRecord:
    """Software reported by a fediverse server's nodeinfo."""

    identity: str
    software_name: Optional[str]
    software_version: Optional[str]

    @classmethod
    def from_raw(cls, identity: str, raw: Any) -> "FediverseRecord":
        return cls(
            identity=identity,
            software_name=_as_str(dig(raw, "name")) or None,
            software_version=_as_str(dig(raw, "version")),
        )

    @property
    def is_complete(self) -> bool:
        return self.software_name is not None


@dataclass
class FailureMarker:
    """Most recent failed crawl attempt for an identity."""

    kind: RecordKind
    identity: str
    time: int


@dataclass
class UptimeRecord:
    """Latest uptime-check result for a domain; published verbatim."""

    domain: str
    date_created: Optional[str]
    node: dict

    @classmethod
    def from_raw(cls, raw: Any) -> Optional["UptimeRecord"]:
        domain = normalize_host(dig(raw, "domain"))
        if domain is None:
            return None
        return cls(
            domain=domain,
            date_created=_as_str(dig(raw, "date_created")),
            node=raw,
        )


@dataclass
class FederationTally:
    """How often each identity appears on other servers' federation lists."""

    linked: dict[str, int] = field(default_factory=dict)
    allowed: dict[str, int] = field(default_factory=dict)
    blocked: dict[str, int] = field(default_factory=dict)


@dataclass
class PublicInstance:
    """Instance record in the shape published to the presentation layer."""

    baseurl: Optional[str]
    url: Optional[str]
    name: Optional[str]
    desc: Optional[str]
    downvotes: Optional[bool]
    nsfw: Optional[bool]
    create_admin: Optional[bool]
    private: Optional[bool]
    fed: Optional[bool]
    date: Optional[str]
    version: Optional[str]
    open: Optional[bool]
    usage: Optional[dict]
    counts: Optional[dict]
    icon: Optional[str]
    banner: Optional[str]
    langs: Optional[list]
    time: Optional[int]
    score: int
    uptime: Optional[dict]
    incoming_blocks: int
    outgoing_blocks: int

    def identifying_fields(self) -> tuple:
        return (self.url, self.name)

    def to_dict(self) -> dict:
        return {
            "baseurl": self.baseurl,
            "url": self.url,
            "name": self.name,
            "desc": self.desc,
            "downvotes": self.downvotes,
            "nsfw": self.nsfw,
            "create_admin": self.create_admin,
            "private": self.private,
            "fed": self.fed,
            "date": self.date,
            "version": self.version,
            "open": self.open,
            "usage": self.usage,
            "counts": self.counts,
            "icon": self.icon,
            "banner": self.banner,
            "langs": self.langs,
            "time": self.time,
            "score": self.score,
            "uptime": self.uptime,
            "blocks": {
                "incoming": self.incoming_blocks,
                "outgoing": self.outgoing_blocks,
            },
        }


@dataclass
class PublicCommunity:
    """Community record in the shape published to the presentation layer."""

    baseurl: Optional[str]
    url: Optional[str]
    name: Optional[str]
    title: Optional[str]
    desc: Optional[str]
    icon: Optional[str]
    banner: Optional[str]
    nsfw: Optional[bool]
    counts: Optional[dict]
    time: Optional[int]
    score: int

    def identifying_fields(self) -> tuple:
        return (self.url, self.name, self.title)

    def to_dict(self) -> dict:
        return {
            "baseurl": self.baseurl,
            "url": self.url,
            "name": self.name,
            "title": self.title,
            "desc": self.desc,
            "icon": self.icon,
            "banner": self.banner,
            "nsfw": self.nsfw,
            "counts": self.counts,
            "time": self.time,
            "score": self.score,
        }


@dataclass
class FediverseStat:
    """One entry of the fediverse software list."""

    url: str
    software: str
    version: Optional[str]

    def to_dict(self) -> dict:
        return {"url": self.url, "software": self.software, "version": self.version}


@dataclass
class FilterStats:
    """Per-reason drop counts of one filter pass."""

    total: int = 0
    kept: int = 0
    dropped: dict[DropReason, int] = field(default_factory=dict)

    def record_drop(self, reason: DropReason) -> None:
        self.dropped[reason] = self.dropped.get(reason, 0) + 1

    def to_dict(self) -> dict:
        return {
            "total": self.total,
            "kept": self.kept,
            "dropped": {reason.value: count for reason, count in self.dropped.items()},
        }


@dataclass
class RunReport:
    """Summary of a completed or failed pipeline run."""

    status: RunStatus
    time: int
    instances: int = 0
    communities: int = 0
    fediverse: int = 0
    instance_filter: Optional[FilterStats] = None
    community_filter: Optional[FilterStats] = None
    artifacts: list[str] = field(default_factory=list)
    error: Optional[str] = None
