"""
Reputation score derived from the federation tally.

A server gains for every other server that links or allows it and loses
heavily for every server that blocks it. Community scores scale the score
of their host by the subscriber count.
"""

from typing import Optional

from .models import FederationTally

# Weight per appearance on another server's list
LINKED_WEIGHT = 1
ALLOWED_WEIGHT = 2
BLOCKED_WEIGHT = 10


def calculate_score(
    identity: Optional[str],
    tally: FederationTally,
    multiplier: Optional[int] = None,
) -> int:
    """
    Score a server from how the rest of the network federates with it.

    score = linked * 1 + allowed * 2 - blocked * 10

    For communities the owning server's score is multiplied by the
    subscriber count, so a community without subscribers scores 0.
    """
    if identity is None:
        return 0

    score = (
        tally.linked.get(identity, 0) * LINKED_WEIGHT
        + tally.allowed.get(identity, 0) * ALLOWED_WEIGHT
        - tally.blocked.get(identity, 0) * BLOCKED_WEIGHT
    )

    if multiplier is not None:
        score *= multiplier

    return score
