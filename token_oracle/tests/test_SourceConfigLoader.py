"""Unit tests for SourceConfigLoader."""

import json

import pytest
from conftest import BTC_FEED, FEED, POOL, STETH

from token_oracle.src.AssetPriceConfig import SourceKind
from token_oracle.src.SourceConfigLoader import load_sources, parse_entry
from token_oracle.src.SourceRegistry import ConfigurationError


class TestParseEntry:
    """Test single entry parsing."""

    def test_protocol_call(self) -> None:
        entry = parse_entry(
            {
                "asset": STETH,
                "kind": "protocol_call",
                "primary_provider": STETH,
                "primary_selector": "getPooledEthByShares(uint256)",
                "needs_argument": True,
                "decimals": 18,
                "volatility_threshold": "50000000000000000",
            }
        )

        assert entry.asset_id == STETH
        assert entry.config.source_kind is SourceKind.PROTOCOL_CALL
        assert entry.config.needs_argument
        assert entry.volatility_threshold == 5 * 10**16

    def test_camel_case_kind(self) -> None:
        entry = parse_entry(
            {
                "asset": STETH,
                "kind": "BtcChained",
                "primary_provider": FEED,
                "btc_pair_provider": BTC_FEED,
            }
        )
        assert entry.config.source_kind is SourceKind.BTC_CHAINED
        assert entry.config.btc_pair_provider == BTC_FEED

    def test_defaults(self) -> None:
        entry = parse_entry({"asset": STETH, "kind": "native"})
        assert entry.decimals == 18
        assert entry.volatility_threshold == 0

    def test_missing_asset(self) -> None:
        with pytest.raises(ConfigurationError, match="without 'asset'"):
            parse_entry({"kind": "native"})

    def test_missing_kind(self) -> None:
        with pytest.raises(ConfigurationError, match="missing 'kind'"):
            parse_entry({"asset": STETH})

    def test_unknown_kind(self) -> None:
        with pytest.raises(ConfigurationError, match="Unknown source kind"):
            parse_entry({"asset": STETH, "kind": "magic"})

    def test_unknown_key(self) -> None:
        """Typos in field names should not be silently ignored."""
        with pytest.raises(ConfigurationError, match="primary_selecter"):
            parse_entry({"asset": STETH, "kind": "protocol_call", "primary_selecter": "x()"})

    def test_string_flag_rejected(self) -> None:
        """A quoted boolean should fail at load time, not be stored as truthy."""
        with pytest.raises(ConfigurationError, match="needs_argument"):
            parse_entry(
                {
                    "asset": STETH,
                    "kind": "protocol_call",
                    "primary_provider": STETH,
                    "primary_selector": "getPooledEthByShares(uint256)",
                    "needs_argument": "false",
                }
            )

    def test_string_twap_window_rejected(self) -> None:
        with pytest.raises(ConfigurationError, match="twap_window_minutes"):
            parse_entry(
                {
                    "asset": STETH,
                    "kind": "twap_pool",
                    "primary_provider": POOL,
                    "twap_window_minutes": "15",
                }
            )

    def test_inconsistent_config_rejected(self) -> None:
        """Entries should be checked against their kind when parsed."""
        with pytest.raises(ConfigurationError, match="requires a primary provider"):
            parse_entry({"asset": STETH, "kind": "direct_feed"})

    def test_non_string_asset_rejected(self) -> None:
        with pytest.raises(ConfigurationError, match="must be a string"):
            parse_entry({"asset": 1, "kind": "native"})

    def test_not_an_object(self) -> None:
        with pytest.raises(ConfigurationError, match="must be an object"):
            parse_entry([STETH])


class TestLoadSources:
    """Test reading source files."""

    def test_load(self, tmp_path) -> None:
        path = tmp_path / "sources.json"
        path.write_text(
            json.dumps(
                [
                    {"asset": "0xEeeeeEeeeEeEeeEeEeEeeEEEeeeeEeeeeeeeEEeE", "kind": "native"},
                    {"asset": STETH, "kind": "direct_feed", "primary_provider": FEED},
                ]
            )
        )

        entries = load_sources(path)

        assert [e.config.source_kind for e in entries] == [
            SourceKind.NATIVE,
            SourceKind.DIRECT_FEED,
        ]

    def test_duplicate_asset(self, tmp_path) -> None:
        path = tmp_path / "sources.json"
        path.write_text(
            json.dumps(
                [
                    {"asset": STETH, "kind": "native"},
                    {"asset": STETH.upper().replace("0X", "0x"), "kind": "native"},
                ]
            )
        )
        with pytest.raises(ConfigurationError, match="duplicate"):
            load_sources(path)

    def test_missing_file(self, tmp_path) -> None:
        with pytest.raises(ConfigurationError, match="Cannot load"):
            load_sources(tmp_path / "missing.json")

    def test_invalid_json(self, tmp_path) -> None:
        path = tmp_path / "sources.json"
        path.write_text("[{")
        with pytest.raises(ConfigurationError, match="Cannot load"):
            load_sources(path)

    def test_not_a_list(self, tmp_path) -> None:
        path = tmp_path / "sources.json"
        path.write_text(json.dumps({"asset": STETH}))
        with pytest.raises(ConfigurationError, match="expected a list"):
            load_sources(path)
