"""
Federation tally builder.

Scans every instance record once and counts how often each server identity
appears on other servers' linked, allowed and blocked lists. The tally is
returned as a value and threaded through scoring and normalization.
"""

from typing import Iterable, Optional

from .identity import normalize_host
from .models import FederationTally, InstanceRecord


def _add_all(counts: dict[str, int], hosts: Optional[list]) -> None:
    """Count each host once per occurrence under its canonical identity."""
    if not hosts:
        return
    for host in hosts:
        identity = normalize_host(host)
        if identity is None:
            continue
        counts[identity] = counts.get(identity, 0) + 1


def build_tally(instances: Iterable[InstanceRecord]) -> FederationTally:
    """
    Build linked/allowed/blocked counts across all instances.

    Args:
        instances: Every instance record of the run, before filtering

    Returns:
        FederationTally with cumulative, non-negative counts
    """
    tally = FederationTally()
    for instance in instances:
        federation = instance.federation
        if federation is None:
            continue
        _add_all(tally.linked, federation.linked)
        _add_all(tally.allowed, federation.allowed)
        _add_all(tally.blocked, federation.blocked)
    return tally
