"""
Typed decoding of composite storage keys.

The crawler namespaces its keys: fediverse servers live under
``fediverse:<host>`` and failure markers under ``error:<kind>:<host>``.
Decoded hosts are canonical server identities. Decoding fails explicitly
with KeyFormatError instead of tolerating unexpected prefixes.
"""

from dataclasses import dataclass

from .enums import RecordKind
from .exceptions import KeyFormatError
from .identity import normalize_host

FEDIVERSE_PREFIX = "fediverse"
FAILURE_PREFIX = "error"
SEPARATOR = ":"


@dataclass(frozen=True)
class FailureKey:
    """Decoded failure marker key."""

    kind: RecordKind
    identity: str


def _canonical_identity(key: str, host: str) -> str:
    identity = normalize_host(host)
    if identity is None:
        raise KeyFormatError(
            code="invalid_identity",
            message=f"Key {key!r} holds a host that cannot be normalized",
            details={"key": key},
        )
    return identity


def decode_fediverse_key(key: str) -> str:
    """
    Decode a ``fediverse:<host>`` key into its server identity.

    Raises:
        KeyFormatError: If the key has another namespace or an empty host
    """
    if not isinstance(key, str):
        raise KeyFormatError(
            code="not_a_string",
            message="Storage key must be a string",
            details={"key": repr(key)},
        )

    namespace, sep, identity = key.partition(SEPARATOR)
    if not sep or namespace != FEDIVERSE_PREFIX:
        raise KeyFormatError(
            code="unexpected_namespace",
            message=f"Expected '{FEDIVERSE_PREFIX}{SEPARATOR}' key, got {key!r}",
            details={"key": key, "expected": FEDIVERSE_PREFIX},
        )
    if not identity:
        raise KeyFormatError(
            code="empty_identity",
            message=f"Key {key!r} has no server identity",
            details={"key": key},
        )

    return _canonical_identity(key, identity)


def decode_failure_key(key: str) -> FailureKey:
    """
    Decode an ``error:<kind>:<host>`` key.

    Raises:
        KeyFormatError: If the namespace, kind or host is not as expected
    """
    if not isinstance(key, str):
        raise KeyFormatError(
            code="not_a_string",
            message="Storage key must be a string",
            details={"key": repr(key)},
        )

    parts = key.split(SEPARATOR, 2)
    if len(parts) != 3 or parts[0] != FAILURE_PREFIX:
        raise KeyFormatError(
            code="unexpected_namespace",
            message=f"Expected '{FAILURE_PREFIX}{SEPARATOR}<kind>{SEPARATOR}<host>' key, got {key!r}",
            details={"key": key, "expected": FAILURE_PREFIX},
        )

    _, raw_kind, identity = parts
    try:
        kind = RecordKind(raw_kind)
    except ValueError:
        raise KeyFormatError(
            code="unknown_kind",
            message=f"Unknown record kind {raw_kind!r} in key {key!r}",
            details={"key": key, "kind": raw_kind},
        )

    if not identity:
        raise KeyFormatError(
            code="empty_identity",
            message=f"Key {key!r} has no server identity",
            details={"key": key},
        )

    return FailureKey(kind=kind, identity=_canonical_identity(key, identity))


def encode_failure_key(kind: RecordKind, identity: str) -> str:
    """Build the storage key for a failure marker."""
    return SEPARATOR.join((FAILURE_PREFIX, kind.value, identity))


def encode_fediverse_key(identity: str) -> str:
    """Build the storage key for a fediverse server record."""
    return f"{FEDIVERSE_PREFIX}{SEPARATOR}{identity}"
