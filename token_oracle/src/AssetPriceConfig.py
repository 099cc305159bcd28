"""AssetPriceConfig: Per-asset price source description and cached price record.

Every rate handled by the engine is a fixed-point integer expressing how many
units of account one whole unit of the asset is worth, scaled by 10**18.

.. code-block:: python

    >>> cfg = AssetPriceConfig(
    ...     source_kind=SourceKind.DIRECT_FEED,
    ...     primary_provider="0x86392dC19c0b719886221c78AB11eb8Cf5c52812",
    ... )
    >>> cfg.has_fallback
    False
    >>> AssetPriceConfig.native().source_kind
    <SourceKind.NATIVE: 'native'>
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

# Number of fractional digits of every stored rate.
PRICE_DECIMALS = 18
SCALE = 10**PRICE_DECIMALS

# One unit of account per unit of asset.
ONE_UNIT = SCALE

DEFAULT_UPDATE_INTERVAL = 12 * 60 * 60  # 12 hours
DEFAULT_TWAP_WINDOW_MINUTES = 15


def normalize_asset_id(asset_id: str) -> str:
    """Normalize an asset identifier for use as a store key.

    Hex addresses are compared case-insensitively; other identifiers are
    only stripped.

    .. code-block:: python

        >>> normalize_asset_id(" 0xAbC ")
        '0xabc'
    """
    key = asset_id.strip()
    if key.startswith("0x") or key.startswith("0X"):
        return key.lower()
    return key


class SourceKind(Enum):
    """Protocol shape of a price provider."""

    NATIVE = "native"
    DIRECT_FEED = "direct_feed"
    POOL_DERIVED = "pool_derived"
    PROTOCOL_CALL = "protocol_call"
    BTC_CHAINED = "btc_chained"
    TWAP_POOL = "twap_pool"

    @classmethod
    def from_string(cls, value: str) -> SourceKind:
        """Parse a kind name such as ``"direct_feed"`` or ``"DirectFeed"``.

        :param value: Kind name, snake_case or CamelCase.
        :returns: Matching SourceKind.
        :raises ValueError: If the name is unknown.
        """
        raw = value.strip()
        snake = "".join(f"_{c.lower()}" if c.isupper() else c for c in raw).lstrip("_")
        for candidate in (raw.lower(), snake):
            for kind in cls:
                if kind.value == candidate:
                    return kind
        raise ValueError(
            f"Unknown source kind '{value}'. "
            f"Available: {', '.join(k.value for k in cls)}"
        )


@dataclass(frozen=True)
class AssetPriceConfig:
    """How to obtain the rate of one asset.

    :ivar source_kind: Provider protocol shape.
    :ivar primary_provider: Address or endpoint URL of the primary source.
    :ivar primary_selector: Read operation on the primary provider.
    :ivar needs_argument: Pass the one-unit argument to the primary call.
    :ivar fallback_provider: Optional secondary source.
    :ivar fallback_selector: Read operation on the fallback provider.
    :ivar fallback_needs_argument: Pass the one-unit argument to the fallback call.
    :ivar btc_pair_provider: BTC to unit-of-account source (BTC_CHAINED only).
    :ivar btc_pair_selector: Read operation on the BTC pair provider.
    :ivar twap_window_minutes: Averaging window (TWAP_POOL only).
    """

    source_kind: SourceKind
    primary_provider: str | None = None
    primary_selector: str | None = None
    needs_argument: bool = False
    fallback_provider: str | None = None
    fallback_selector: str | None = None
    fallback_needs_argument: bool = False
    btc_pair_provider: str | None = None
    btc_pair_selector: str | None = None
    twap_window_minutes: int | None = None

    @classmethod
    def native(cls) -> AssetPriceConfig:
        """Config of an asset that is the unit of account itself."""
        return cls(source_kind=SourceKind.NATIVE)

    @property
    def has_fallback(self) -> bool:
        """Check if a fallback provider is configured."""
        return bool(self.fallback_provider)

    @property
    def twap_window_seconds(self) -> int:
        """Averaging window in seconds, defaulting to 15 minutes."""
        minutes = self.twap_window_minutes or DEFAULT_TWAP_WINDOW_MINUTES
        return minutes * 60

    def providers(self) -> list[str]:
        """Return every provider reference this config points to."""
        refs = [self.primary_provider, self.fallback_provider, self.btc_pair_provider]
        return [r for r in refs if r]


@dataclass
class PriceRecord:
    """Last written rate of an asset.

    :ivar rate: Fixed-point rate scaled by 10**18.
    :ivar last_update_timestamp: Unix time of the last successful write.
    """

    rate: int
    last_update_timestamp: float = field(default=0.0)

    def is_stale(self, now: float, update_interval: float) -> bool:
        """Check whether this record is older than the update interval."""
        return now - self.last_update_timestamp > update_interval
