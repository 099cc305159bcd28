"""SourceConfigLoader: Reads asset source definitions from a JSON file.

The file holds a list of objects, one per asset:

.. code-block:: json

    [
        {"asset": "0xeeee...", "kind": "native"},
        {
            "asset": "0xae7a...",
            "kind": "protocol_call",
            "primary_provider": "0xae7a...",
            "primary_selector": "getPooledEthByShares(uint256)",
            "needs_argument": true,
            "decimals": 18,
            "volatility_threshold": "50000000000000000"
        }
    ]

``decimals`` and ``volatility_threshold`` are optional ledger metadata used
when running against the in-memory ledger.
"""

import json
import logging
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any

from .AssetPriceConfig import PRICE_DECIMALS, AssetPriceConfig, SourceKind, normalize_asset_id
from .SourceRegistry import ConfigurationError, validate_config

logger = logging.getLogger(__name__)

_CONFIG_FIELDS = {f.name for f in fields(AssetPriceConfig)} - {"source_kind"}
_LEDGER_FIELDS = {"decimals", "volatility_threshold"}


@dataclass(frozen=True)
class SourceEntry:
    """One asset definition read from a sources file."""

    asset_id: str
    config: AssetPriceConfig
    decimals: int = PRICE_DECIMALS
    volatility_threshold: int = 0


def parse_entry(raw: dict[str, Any]) -> SourceEntry:
    """Build a SourceEntry from one decoded JSON object.

    :param raw: Object with ``asset``, ``kind`` and config fields.
    :returns: Parsed entry, validated against its kind.
    :raises ConfigurationError: On missing, unknown or mistyped keys.
    """
    if not isinstance(raw, dict):
        raise ConfigurationError(f"Source entry must be an object, got {type(raw).__name__}")

    asset_id = raw.get("asset")
    if not asset_id:
        raise ConfigurationError(f"Source entry without 'asset': {raw}")
    if not isinstance(asset_id, str):
        raise ConfigurationError(f"Asset id must be a string, got {asset_id!r}")

    kind_name = raw.get("kind")
    if not kind_name:
        raise ConfigurationError(f"{asset_id}: missing 'kind'")
    if not isinstance(kind_name, str):
        raise ConfigurationError(f"{asset_id}: kind must be a string, got {kind_name!r}")
    try:
        kind = SourceKind.from_string(kind_name)
    except ValueError as e:
        raise ConfigurationError(f"{asset_id}: {e}") from e

    unknown = set(raw) - _CONFIG_FIELDS - _LEDGER_FIELDS - {"asset", "kind"}
    if unknown:
        raise ConfigurationError(f"{asset_id}: unknown keys {sorted(unknown)}")

    config = AssetPriceConfig(
        source_kind=kind, **{k: v for k, v in raw.items() if k in _CONFIG_FIELDS}
    )
    validate_config(asset_id, config)
    try:
        return SourceEntry(
            asset_id=asset_id,
            config=config,
            decimals=int(raw.get("decimals", PRICE_DECIMALS)),
            volatility_threshold=int(raw.get("volatility_threshold", 0)),
        )
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"{asset_id}: invalid ledger metadata: {e}") from e


def load_sources(path: str | Path) -> list[SourceEntry]:
    """Load every asset definition from a JSON file.

    :param path: Path to the sources file.
    :returns: Entries in file order.
    :raises ConfigurationError: If the file cannot be read or parsed.
    """
    path = Path(path)
    try:
        data = json.loads(path.read_text())
    except (OSError, ValueError) as e:
        raise ConfigurationError(f"Cannot load sources from {path}: {e}") from e

    if not isinstance(data, list):
        raise ConfigurationError(f"{path}: expected a list of source entries")

    entries = [parse_entry(raw) for raw in data]
    seen: set[str] = set()
    for entry in entries:
        key = normalize_asset_id(entry.asset_id)
        if key in seen:
            raise ConfigurationError(f"{path}: duplicate asset {entry.asset_id}")
        seen.add(key)

    logger.info(f"Loaded {len(entries)} source entries from {path}")
    return entries
