"""SourceRegistry: Per-asset price source configuration.

Configuration is validated in two steps before it is stored:
    1. Field consistency with the source kind (no network access).
    2. Reachability of every provider reference, checked through the
       RemoteCaller without holding the mutation lock.

Re-configuring an asset replaces its config atomically. It neither resets the
asset's cached price nor triggers a lookup.

.. code-block:: python

    >>> registry = SourceRegistry(caller, lock)
    >>> await registry.configure("0xae7a...", AssetPriceConfig(
    ...     source_kind=SourceKind.PROTOCOL_CALL,
    ...     primary_provider="0xae7a...",
    ...     primary_selector="getPooledEthByShares(uint256)",
    ...     needs_argument=True,
    ... ))
    >>> registry.is_configured("0xAE7A...")
    True
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from .AssetPriceConfig import AssetPriceConfig, SourceKind, normalize_asset_id

if TYPE_CHECKING:
    from .RemoteCaller import RemoteCaller

logger = logging.getLogger(__name__)


class ConfigurationError(ValueError):
    """Raised when an asset price config is invalid."""

    pass


_STR_FIELDS = (
    "primary_provider",
    "primary_selector",
    "fallback_provider",
    "fallback_selector",
    "btc_pair_provider",
    "btc_pair_selector",
)
_BOOL_FIELDS = ("needs_argument", "fallback_needs_argument")

# Fields that only make sense for one source kind.
_KIND_ONLY_FIELDS: dict[str, SourceKind] = {
    "btc_pair_provider": SourceKind.BTC_CHAINED,
    "btc_pair_selector": SourceKind.BTC_CHAINED,
    "twap_window_minutes": SourceKind.TWAP_POOL,
}


def _check_field_types(asset_id: str, config: AssetPriceConfig) -> None:
    for name in _STR_FIELDS:
        value = getattr(config, name)
        if value is not None and not isinstance(value, str):
            raise ConfigurationError(f"{asset_id}: {name} must be a string, got {value!r}")
    for name in _BOOL_FIELDS:
        value = getattr(config, name)
        if not isinstance(value, bool):
            raise ConfigurationError(f"{asset_id}: {name} must be true or false, got {value!r}")
    window = config.twap_window_minutes
    if window is not None and (isinstance(window, bool) or not isinstance(window, int)):
        raise ConfigurationError(
            f"{asset_id}: twap_window_minutes must be an integer, got {window!r}"
        )


def validate_config(asset_id: str, config: AssetPriceConfig) -> None:
    """Check that the populated fields match the source kind.

    :param asset_id: Asset being configured (for error messages).
    :param config: Config to validate.
    :raises ConfigurationError: On any inconsistency.
    """
    if not isinstance(asset_id, str) or not asset_id.strip():
        raise ConfigurationError("Asset id must not be empty")

    kind = config.source_kind
    if not isinstance(kind, SourceKind):
        raise ConfigurationError(f"{asset_id}: unknown source kind {kind!r}")

    _check_field_types(asset_id, config)

    if kind is SourceKind.NATIVE:
        populated = [
            name
            for name in (
                "primary_provider",
                "primary_selector",
                "fallback_provider",
                "fallback_selector",
                "btc_pair_provider",
                "btc_pair_selector",
                "twap_window_minutes",
            )
            if getattr(config, name)
        ]
        if config.needs_argument or config.fallback_needs_argument:
            populated.append("needs_argument")
        if populated:
            raise ConfigurationError(
                f"{asset_id}: native source must not set {', '.join(populated)}"
            )
        return

    if not config.primary_provider:
        raise ConfigurationError(f"{asset_id}: {kind.value} source requires a primary provider")

    for name, owner in _KIND_ONLY_FIELDS.items():
        if getattr(config, name) and kind is not owner:
            raise ConfigurationError(
                f"{asset_id}: {name} is only valid for {owner.value} sources"
            )

    if kind is SourceKind.PROTOCOL_CALL and not config.primary_selector:
        raise ConfigurationError(f"{asset_id}: protocol_call source requires a selector")

    if kind is SourceKind.PROTOCOL_CALL and config.fallback_provider and not config.fallback_selector:
        raise ConfigurationError(
            f"{asset_id}: protocol_call fallback requires a fallback selector"
        )

    if kind is SourceKind.POOL_DERIVED and (config.primary_selector or config.fallback_selector):
        raise ConfigurationError(
            f"{asset_id}: pool_derived sources use get_virtual_price() and take no selector"
        )

    if kind is SourceKind.BTC_CHAINED and not config.btc_pair_provider:
        raise ConfigurationError(f"{asset_id}: btc_chained source requires btc_pair_provider")

    if kind is SourceKind.TWAP_POOL and config.twap_window_minutes is not None:
        if config.twap_window_minutes <= 0:
            raise ConfigurationError(f"{asset_id}: twap_window_minutes must be positive")

    if (config.fallback_selector or config.fallback_needs_argument) and not config.fallback_provider:
        raise ConfigurationError(
            f"{asset_id}: fallback selector/argument set without a fallback provider"
        )


class SourceRegistry:
    """Keyed store of AssetPriceConfig by asset id.

    :ivar caller: Transport used to check provider reachability, or None to
        skip the check.
    :ivar lock: Mutation lock shared with the rest of the engine.
    """

    def __init__(self, caller: RemoteCaller | None, lock: asyncio.Lock | None = None) -> None:
        """Initialize the registry.

        :param caller: Transport for reachability checks.
        :param lock: Shared mutation lock (a private one is created if None).
        """
        self.caller = caller
        self.lock = lock or asyncio.Lock()
        self._configs: dict[str, AssetPriceConfig] = {}

    async def configure(self, asset_id: str, config: AssetPriceConfig) -> None:
        """Validate and store the config of an asset.

        :param asset_id: Asset to configure.
        :param config: New config; replaces any previous one.
        :raises ConfigurationError: If the config is invalid or a provider is
            unreachable.
        """
        validate_config(asset_id, config)
        await self._check_reachable(asset_id, config)

        key = normalize_asset_id(asset_id)
        async with self.lock:
            previous = self._configs.get(key)
            self._configs[key] = config

        if previous is None:
            logger.info(f"[{key}] Configured {config.source_kind.value} source")
        elif previous != config:
            logger.info(
                f"[{key}] Reconfigured {previous.source_kind.value} -> "
                f"{config.source_kind.value} source"
            )

    async def configure_btc_chained(
        self,
        asset_id: str,
        primary_provider: str,
        primary_selector: str | None,
        btc_pair_provider: str,
        *,
        btc_pair_selector: str | None = None,
        needs_argument: bool = False,
        fallback_provider: str | None = None,
        fallback_selector: str | None = None,
        fallback_needs_argument: bool = False,
    ) -> None:
        """Configure an asset priced in BTC and chained through a BTC pair.

        :param asset_id: Asset to configure.
        :param primary_provider: Source of the asset's BTC rate.
        :param primary_selector: Operation on the primary (None for a push feed).
        :param btc_pair_provider: Source of the BTC to unit-of-account rate.
        :param btc_pair_selector: Operation on the BTC pair (None for a push feed).
        :param needs_argument: Pass the one-unit argument to the primary.
        :param fallback_provider: Optional secondary source of the BTC rate.
        :param fallback_selector: Operation on the fallback.
        :param fallback_needs_argument: Pass the one-unit argument to the fallback.
        :raises ConfigurationError: If the config is invalid.
        """
        await self.configure(
            asset_id,
            AssetPriceConfig(
                source_kind=SourceKind.BTC_CHAINED,
                primary_provider=primary_provider,
                primary_selector=primary_selector,
                needs_argument=needs_argument,
                fallback_provider=fallback_provider,
                fallback_selector=fallback_selector,
                fallback_needs_argument=fallback_needs_argument,
                btc_pair_provider=btc_pair_provider,
                btc_pair_selector=btc_pair_selector,
            ),
        )

    def is_configured(self, asset_id: str) -> bool:
        """Check whether an asset has an explicit config."""
        return normalize_asset_id(asset_id) in self._configs

    def get_config(self, asset_id: str) -> AssetPriceConfig | None:
        """Get the config of an asset, or None if it is implicitly native."""
        return self._configs.get(normalize_asset_id(asset_id))

    def configured_assets(self) -> list[str]:
        """Get every configured asset id, in configuration order."""
        return list(self._configs)

    async def _check_reachable(self, asset_id: str, config: AssetPriceConfig) -> None:
        if self.caller is None or config.source_kind is SourceKind.NATIVE:
            return
        for provider in config.providers():
            if not await self.caller.is_reachable(provider):
                raise ConfigurationError(
                    f"{asset_id}: provider {provider} is not reachable or has no code"
                )
