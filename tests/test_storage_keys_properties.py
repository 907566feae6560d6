"""
Property-based tests for storage key decoding.

Uses Hypothesis for property-based testing to verify that namespaced keys
decode into typed values and that foreign keys fail explicitly.
"""

import pytest
from hypothesis import assume, given, settings
from hypothesis import strategies as st

from fediverse_explorer.enums import RecordKind
from fediverse_explorer.exceptions import KeyFormatError
from fediverse_explorer.storage_keys import (
    FailureKey,
    decode_failure_key,
    decode_fediverse_key,
    encode_failure_key,
    encode_fediverse_key,
)


@st.composite
def host_strategy(draw) -> str:
    """Generate lowercase hosts, optionally with a port."""
    name = draw(st.text(
        alphabet=st.sampled_from("abcdefghijklmnopqrstuvwxyz0123456789-"),
        min_size=1,
        max_size=20,
    ))
    tld = draw(st.sampled_from(["social", "world", "ml", "org"]))
    port = draw(st.one_of(st.none(), st.integers(min_value=1, max_value=65535)))
    host = f"{name}.{tld}"
    return host if port is None else f"{host}:{port}"


class TestFailureKeyProperty:
    """
    Property-based tests for failure marker keys.

    **Feature: fediverse-explorer, Property 3: Failure keys decode to kind and identity**
    """

    @given(host=host_strategy(), kind=st.sampled_from(list(RecordKind)))
    @settings(max_examples=100)
    def test_encoded_key_decodes(self, host: str, kind: RecordKind) -> None:
        """
        Property 3: Failure keys decode to kind and identity.

        *For any* record kind and host, decoding the encoded key SHALL yield
        the same kind and host, including hosts that carry a port.

        **Feature: fediverse-explorer, Property 3: Failure keys decode to kind and identity**
        """
        decoded = decode_failure_key(encode_failure_key(kind, host))
        assert decoded == FailureKey(kind=kind, identity=host)

    @given(host=host_strategy())
    @settings(max_examples=100)
    def test_identity_is_lowercased(self, host: str) -> None:
        """
        Property 3b: Decoded identities are lowercase.

        **Feature: fediverse-explorer, Property 3: Failure keys decode to kind and identity**
        """
        decoded = decode_failure_key(f"error:instance:{host.upper()}")
        assert decoded.identity == host

    def test_example(self) -> None:
        assert decode_failure_key("error:community:lemmy.ml") == FailureKey(
            kind=RecordKind.COMMUNITY, identity="lemmy.ml"
        )

    @pytest.mark.parametrize(
        "key,code",
        [
            ("fediverse:lemmy.ml", "unexpected_namespace"),
            ("error:lemmy.ml", "unexpected_namespace"),
            ("error:user:lemmy.ml", "unknown_kind"),
            ("error:instance:", "empty_identity"),
            (42, "not_a_string"),
        ],
    )
    def test_malformed_keys_raise(self, key, code: str) -> None:
        with pytest.raises(KeyFormatError) as exc_info:
            decode_failure_key(key)
        assert exc_info.value.code == code


class TestFediverseKeyProperty:
    """
    Property-based tests for fediverse server keys.

    **Feature: fediverse-explorer, Property 4: Fediverse keys decode to identity**
    """

    @given(host=host_strategy())
    @settings(max_examples=100)
    def test_encoded_key_decodes(self, host: str) -> None:
        """
        Property 4: Fediverse keys decode to identity.

        *For any* host, decoding ``fediverse:<host>`` SHALL yield the host.

        **Feature: fediverse-explorer, Property 4: Fediverse keys decode to identity**
        """
        assert decode_fediverse_key(encode_fediverse_key(host)) == host

    @given(
        prefix=st.text(
            alphabet=st.sampled_from("abcdefghijklmnopqrstuvwxyz"),
            min_size=1,
            max_size=12,
        ),
        host=host_strategy(),
    )
    @settings(max_examples=100)
    def test_foreign_namespace_raises(self, prefix: str, host: str) -> None:
        """
        Property 4b: Keys from another namespace are rejected.

        *For any* prefix other than 'fediverse', decoding SHALL raise
        KeyFormatError instead of guessing an identity.

        **Feature: fediverse-explorer, Property 4: Fediverse keys decode to identity**
        """
        assume(prefix != "fediverse")
        with pytest.raises(KeyFormatError) as exc_info:
            decode_fediverse_key(f"{prefix}:{host}")
        assert exc_info.value.code == "unexpected_namespace"

    def test_missing_separator_raises(self) -> None:
        with pytest.raises(KeyFormatError):
            decode_fediverse_key("lemmy.ml")

    def test_empty_identity_raises(self) -> None:
        with pytest.raises(KeyFormatError) as exc_info:
            decode_fediverse_key("fediverse:")
        assert exc_info.value.code == "empty_identity"
