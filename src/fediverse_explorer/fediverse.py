"""
Fediverse stats reducer.

Reduces the ``fediverse:<host>`` key space to a flat, sorted list of
software/version entries. Servers whose nodeinfo did not report a software
name are left out.
"""

from typing import Optional

from .audit_logger import AuditLogger
from .enums import LogLevel
from .exceptions import KeyFormatError
from .models import FediverseRecord, FediverseStat
from .storage_keys import decode_fediverse_key


def parse_fediverse_records(
    raw: dict,
    logger: Optional[AuditLogger] = None,
) -> list[FediverseRecord]:
    """Decode every key; undecodable keys are logged and skipped."""
    records = []
    for key, value in raw.items():
        try:
            identity = decode_fediverse_key(key)
        except KeyFormatError as e:
            if logger:
                logger.log(LogLevel.WARN, "FediverseReducer", e.message, e.details)
            continue
        records.append(FediverseRecord.from_raw(identity, value))
    return records


def reduce_fediverse(
    raw: dict,
    logger: Optional[AuditLogger] = None,
) -> list[FediverseStat]:
    """
    Build the fediverse software list.

    Args:
        raw: Mapping of ``fediverse:<host>`` keys to nodeinfo software data
        logger: Optional audit logger

    Returns:
        One FediverseStat per complete record, sorted by url
    """
    stats = [
        FediverseStat(
            url=record.identity,
            software=record.software_name,
            version=record.software_version,
        )
        for record in parse_fediverse_records(raw, logger)
        if record.is_complete
    ]
    stats.sort(key=lambda stat: stat.url)
    return stats
