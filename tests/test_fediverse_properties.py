"""
Property-based tests for the fediverse stats reducer.

Uses Hypothesis for property-based testing to verify the reduction of
``fediverse:<host>`` records to the published software list.
"""

from io import StringIO

from hypothesis import given, settings
from hypothesis import strategies as st

from fediverse_explorer.audit_logger import AuditLogger
from fediverse_explorer.enums import LogLevel
from fediverse_explorer.fediverse import reduce_fediverse


@st.composite
def fediverse_data_strategy(draw) -> dict:
    """Generate fediverse key spaces with complete and incomplete records."""
    hosts = draw(st.lists(
        st.text(
            alphabet=st.sampled_from("abcdefghijklmnopqrstuvwxyz"),
            min_size=1,
            max_size=12,
        ).map(lambda name: f"{name}.social"),
        unique=True,
        max_size=10,
    ))
    data = {}
    for host in hosts:
        data[f"fediverse:{host}"] = draw(st.fixed_dictionaries(
            {},
            optional={
                "name": st.sampled_from(["lemmy", "mastodon", "kbin", "misskey", ""]),
                "version": st.sampled_from(["0.19.3", "4.2.1", "1.0"]),
            },
        ))
    return data


class TestFediverseReductionProperty:
    """
    Property-based tests for fediverse reduction.

    **Feature: fediverse-explorer, Property 13: Only servers with a software name are listed**
    """

    @given(data=fediverse_data_strategy())
    @settings(max_examples=100)
    def test_only_complete_records_are_listed(self, data: dict) -> None:
        """
        Property 13: Only servers with a software name are listed.

        *For any* fediverse key space, the output SHALL contain exactly the
        records with a non-empty software name, sorted by url.

        **Feature: fediverse-explorer, Property 13: Only servers with a software name are listed**
        """
        stats = reduce_fediverse(data)

        expected = sorted(
            key.split(":", 1)[1]
            for key, value in data.items()
            if value.get("name")
        )
        assert [stat.url for stat in stats] == expected
        for stat in stats:
            source = data[f"fediverse:{stat.url}"]
            assert stat.software == source["name"]
            assert stat.version == source.get("version")

    def test_example(self) -> None:
        stats = reduce_fediverse({
            "fediverse:example.org": {"name": "lemmy", "version": "0.19"},
            "fediverse:nameless.org": {"version": "1.0"},
        })
        assert [stat.to_dict() for stat in stats] == [
            {"url": "example.org", "software": "lemmy", "version": "0.19"},
        ]

    def test_identity_is_lowercased(self) -> None:
        stats = reduce_fediverse({"fediverse:Example.ORG": {"name": "lemmy"}})
        assert stats[0].url == "example.org"
        assert stats[0].version is None

    def test_foreign_keys_are_logged_and_skipped(self) -> None:
        output = StringIO()
        logger = AuditLogger(output_format="json", output_stream=output)

        stats = reduce_fediverse(
            {
                "error:instance:lemmy.ml": {"name": "lemmy"},
                "fediverse:lemmy.ml": {"name": "lemmy", "version": "0.19.3"},
            },
            logger,
        )

        assert [stat.url for stat in stats] == ["lemmy.ml"]
        warnings = [entry for entry in logger.entries if entry.level == LogLevel.WARN]
        assert len(warnings) == 1
        assert warnings[0].component == "FediverseReducer"

    def test_empty_key_space(self) -> None:
        assert reduce_fediverse({}) == []
