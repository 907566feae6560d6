"""
Fediverse Explorer - snapshot generator for a fediverse server directory.

This package reads crawled instance, community and fediverse server records,
scores servers from how the rest of the network federates with them, drops
stale and failed records, and publishes a consistent set of JSON artifacts
for the presentation layer.
"""

__version__ = "0.1.0"
__author__ = "Fediverse Explorer Team"

from fediverse_explorer.exceptions import (
    ExplorerError,
    SourceUnavailableError,
    KeyFormatError,
    SnapshotWriteError,
    ConfigError,
    NotificationError,
)
from fediverse_explorer.enums import (
    RecordKind,
    Artifact,
    DropReason,
    RunStatus,
    LogLevel,
)
from fediverse_explorer.config import (
    DEFAULT_MAX_AGE_MS,
    StorageConfig,
    OutputConfig,
    FilterConfig,
    WebhookConfig,
    NotificationConfig,
    LoggingConfig,
    ExplorerConfig,
)
from fediverse_explorer.identity import (
    extract_identity,
    normalize_host,
)
from fediverse_explorer.storage_keys import (
    FailureKey,
    decode_fediverse_key,
    decode_failure_key,
    encode_failure_key,
    encode_fediverse_key,
)
from fediverse_explorer.models import (
    InstanceRecord,
    CommunityRecord,
    FediverseRecord,
    FailureMarker,
    UptimeRecord,
    FederationTally,
    PublicInstance,
    PublicCommunity,
    FediverseStat,
    FilterStats,
    RunReport,
)
from fediverse_explorer.tally import (
    build_tally,
)
from fediverse_explorer.scoring import (
    calculate_score,
)
from fediverse_explorer.normalizer import (
    UptimeIndex,
    normalize_instance,
    normalize_community,
)
from fediverse_explorer.filters import (
    FailureIndex,
    filter_records,
)
from fediverse_explorer.fediverse import (
    reduce_fediverse,
)
from fediverse_explorer.storage import (
    StorageReader,
    InMemoryStorage,
    JsonDumpStorage,
)
from fediverse_explorer.snapshot_writer import (
    SnapshotWriter,
    SnapshotTransaction,
)
from fediverse_explorer.audit_logger import (
    AuditLogger,
    LogEntry,
)
from fediverse_explorer.notifications import (
    RunPayload,
    NotificationResult,
    NotificationChannel,
    WebhookChannel,
    RunNotifier,
)
from fediverse_explorer.orchestrator import (
    SnapshotOrchestrator,
)
from fediverse_explorer.cli import (
    main as cli_main,
    create_parser,
    create_default_config,
    load_config_from_file,
    save_config_to_file,
)

__all__ = [
    # Exceptions
    "ExplorerError",
    "SourceUnavailableError",
    "KeyFormatError",
    "SnapshotWriteError",
    "ConfigError",
    "NotificationError",
    # Enums
    "RecordKind",
    "Artifact",
    "DropReason",
    "RunStatus",
    "LogLevel",
    # Configuration
    "DEFAULT_MAX_AGE_MS",
    "StorageConfig",
    "OutputConfig",
    "FilterConfig",
    "WebhookConfig",
    "NotificationConfig",
    "LoggingConfig",
    "ExplorerConfig",
    # Identity
    "extract_identity",
    "normalize_host",
    # Storage keys
    "FailureKey",
    "decode_fediverse_key",
    "decode_failure_key",
    "encode_failure_key",
    "encode_fediverse_key",
    # Models
    "InstanceRecord",
    "CommunityRecord",
    "FediverseRecord",
    "FailureMarker",
    "UptimeRecord",
    "FederationTally",
    "PublicInstance",
    "PublicCommunity",
    "FediverseStat",
    "FilterStats",
    "RunReport",
    # Pipeline stages
    "build_tally",
    "calculate_score",
    "UptimeIndex",
    "normalize_instance",
    "normalize_community",
    "FailureIndex",
    "filter_records",
    "reduce_fediverse",
    # Storage
    "StorageReader",
    "InMemoryStorage",
    "JsonDumpStorage",
    # Snapshot Writer
    "SnapshotWriter",
    "SnapshotTransaction",
    # Audit Logger
    "AuditLogger",
    "LogEntry",
    # Notifications
    "RunPayload",
    "NotificationResult",
    "NotificationChannel",
    "WebhookChannel",
    "RunNotifier",
    # Orchestrator
    "SnapshotOrchestrator",
    # CLI
    "cli_main",
    "create_parser",
    "create_default_config",
    "load_config_from_file",
    "save_config_to_file",
]
