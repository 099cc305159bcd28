"""PriceEngine: Facade over price resolution and rate updates.

Wires together the source registry, provider dispatcher, fallback resolver,
rate cache and batch scheduler around one mutation lock, and guards
mutating operations with role checks.

.. code-block:: python

    >>> engine = PriceEngine(caller, LocalLedger(), admin="0xAdmin")
    >>> await engine.configure(steth, AssetPriceConfig(
    ...     source_kind=SourceKind.PROTOCOL_CALL,
    ...     primary_provider=steth,
    ...     primary_selector="getPooledEthByShares(uint256)",
    ...     needs_argument=True,
    ... ), caller="0xAdmin")
    >>> await engine.update_all_if_needed(caller="0xAdmin")
    True
    >>> await engine.get_token_price(steth)
    1150000000000000000
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable, Sequence
from typing import TYPE_CHECKING

from .AccessControl import (
    DEFAULT_ADMIN_ROLE,
    ORACLE_ADMIN_ROLE,
    RATE_UPDATER_ROLE,
    AccessControl,
)
from .AssetPriceConfig import DEFAULT_UPDATE_INTERVAL, AssetPriceConfig, PriceRecord
from .BatchScheduler import DEFAULT_MAX_CONCURRENCY, AssetUpdateResult, BatchScheduler
from .FallbackResolver import FallbackResolver, Resolution
from .ProviderDispatcher import ProviderDispatcher
from .RateCache import PriceUnavailableError, RateCache
from .RemoteCaller import HttpRemoteCaller
from .SourceRegistry import SourceRegistry

if TYPE_CHECKING:
    from .Ledger import Ledger
    from .RemoteCaller import RemoteCaller

logger = logging.getLogger(__name__)


class PriceEngine:
    """Price resolution and update engine.

    :ivar ledger: Ledger receiving every committed rate.
    :ivar access: Role membership.
    :ivar registry: Per-asset source configs.
    :ivar dispatcher: Runs single provider lookups.
    :ivar resolver: Applies the fallback chain.
    :ivar cache: Last written rate per asset.
    :ivar scheduler: Staleness and batch updates.
    :ivar check_period: Seconds between staleness checks in run().
    """

    def __init__(
        self,
        caller: RemoteCaller,
        ledger: Ledger,
        admin: str,
        clock: Callable[[], float] = time.time,
        update_interval: float = DEFAULT_UPDATE_INTERVAL,
        call_timeout: float = ProviderDispatcher.DEFAULT_CALL_TIMEOUT,
        max_concurrency: int = DEFAULT_MAX_CONCURRENCY,
        check_period: float = 60.0,
        check_reachability: bool = True,
    ) -> None:
        """Initialize the engine.

        :param caller: Transport for every provider call.
        :param ledger: External ledger.
        :param admin: Account initially holding every role.
        :param clock: Returns the current Unix time.
        :param update_interval: Default staleness interval in seconds.
        :param call_timeout: Timeout of a single provider lookup.
        :param max_concurrency: Concurrent lookups per batch.
        :param check_period: Seconds between staleness checks in run().
        :param check_reachability: Probe providers when configuring.
        """
        self.lock = asyncio.Lock()
        self.ledger = ledger
        self.check_period = check_period

        self.access = AccessControl(admin)
        self.registry = SourceRegistry(caller if check_reachability else None, self.lock)
        self.cache = RateCache(ledger, clock)
        self.dispatcher = ProviderDispatcher(
            caller,
            decimals_fn=self._asset_decimals,
            clock=clock,
            max_feed_age=update_interval,
            call_timeout=call_timeout,
        )
        self.resolver = FallbackResolver(self.registry, self.dispatcher, self.cache)
        self.scheduler = BatchScheduler(
            self.registry,
            self.resolver,
            self.cache,
            self.lock,
            clock=clock,
            update_interval=update_interval,
            max_concurrency=max_concurrency,
        )

    async def _asset_decimals(self, asset_id: str) -> int:
        info = await self.ledger.get_asset_info(asset_id)
        return info.decimals

    # Reads

    async def get_token_price(self, asset_id: str) -> int:
        """Get the current rate of an asset.

        Live lookups are preferred, then the cached rate. Unconfigured and
        native assets are worth exactly one unit. Never mutates state.

        :param asset_id: Asset to price.
        :returns: Rate scaled by 10**18.
        :raises PriceUnavailableError: If a configured asset has no live rate
            and has never been priced.
        """
        rate, ok = await self.resolver.resolve(asset_id)
        if not ok:
            raise PriceUnavailableError(f"No price available for {asset_id}")
        return rate

    async def resolve(self, asset_id: str) -> Resolution:
        """Resolve an asset, reporting where the rate came from."""
        return await self.resolver.resolve_detailed(asset_id)

    def is_configured(self, asset_id: str) -> bool:
        return self.registry.is_configured(asset_id)

    def get_config(self, asset_id: str) -> AssetPriceConfig | None:
        return self.registry.get_config(asset_id)

    def get_record(self, asset_id: str) -> PriceRecord | None:
        return self.cache.get_record(asset_id)

    def are_prices_stale(self) -> bool:
        return self.scheduler.are_prices_stale()

    def last_global_update(self) -> float:
        return self.scheduler.last_global_update

    def update_interval(self) -> float:
        return self.scheduler.update_interval

    @property
    def emergency_mode(self) -> bool:
        return self.scheduler.emergency_mode

    @property
    def last_results(self) -> list[AssetUpdateResult]:
        return self.scheduler.last_results

    # Configuration (ORACLE_ADMIN_ROLE)

    async def configure(self, asset_id: str, config: AssetPriceConfig, caller: str) -> None:
        """Set or replace the price source of an asset.

        :raises AccessDeniedError: If ``caller`` lacks ORACLE_ADMIN_ROLE.
        :raises ConfigurationError: If the config is invalid.
        """
        self.access.require(ORACLE_ADMIN_ROLE, caller)
        await self.registry.configure(asset_id, config)

    async def configure_btc_chained(
        self,
        asset_id: str,
        primary_provider: str,
        primary_selector: str | None,
        btc_pair_provider: str,
        caller: str,
        **kwargs,
    ) -> None:
        """Configure an asset priced through a BTC pair.

        Keyword arguments are passed to SourceRegistry.configure_btc_chained().

        :raises AccessDeniedError: If ``caller`` lacks ORACLE_ADMIN_ROLE.
        :raises ConfigurationError: If the config is invalid.
        """
        self.access.require(ORACLE_ADMIN_ROLE, caller)
        await self.registry.configure_btc_chained(
            asset_id, primary_provider, primary_selector, btc_pair_provider, **kwargs
        )

    async def set_price_update_interval(self, interval: float, caller: str) -> None:
        """Install an emergency staleness interval.

        :raises AccessDeniedError: If ``caller`` lacks ORACLE_ADMIN_ROLE.
        :raises ValueError: If ``interval`` is not positive.
        """
        self.access.require(ORACLE_ADMIN_ROLE, caller)
        await self.scheduler.set_update_interval(interval)

    async def disable_emergency_interval(self, caller: str) -> None:
        """Restore the default staleness interval.

        :raises AccessDeniedError: If ``caller`` lacks ORACLE_ADMIN_ROLE.
        """
        self.access.require(ORACLE_ADMIN_ROLE, caller)
        await self.scheduler.disable_emergency_interval()

    # Updates (RATE_UPDATER_ROLE)

    async def update_all_if_needed(self, caller: str) -> bool:
        """Run a batch update if prices are stale.

        :returns: True if at least one asset's rate was written.
        :raises AccessDeniedError: If ``caller`` lacks RATE_UPDATER_ROLE.
        """
        self.access.require(RATE_UPDATER_ROLE, caller)
        return await self.scheduler.update_all_if_needed()

    async def update_one(self, asset_id: str, rate: int, caller: str) -> PriceRecord:
        """Write a rate directly.

        :raises AccessDeniedError: If ``caller`` lacks RATE_UPDATER_ROLE.
        :raises InvalidRateError: If ``rate`` is not positive.
        :raises LedgerRejectedError: If the ledger refuses the rate.
        """
        self.access.require(RATE_UPDATER_ROLE, caller)
        return await self.scheduler.update_one(asset_id, rate)

    async def update_many(
        self, asset_ids: Sequence[str], rates: Sequence[int], caller: str
    ) -> list[PriceRecord]:
        """Write several rates directly.

        :raises AccessDeniedError: If ``caller`` lacks RATE_UPDATER_ROLE.
        :raises ValueError: If the sequences differ in length.
        :raises InvalidRateError: If any rate is not positive.
        :raises LedgerRejectedError: If the ledger refuses a rate.
        """
        self.access.require(RATE_UPDATER_ROLE, caller)
        return await self.scheduler.update_many(asset_ids, rates)

    # Roles (DEFAULT_ADMIN_ROLE)

    def grant_role(self, role: str, account: str, caller: str) -> None:
        self.access.grant_role(role, account, caller)

    def revoke_role(self, role: str, account: str, caller: str) -> None:
        self.access.revoke_role(role, account, caller)

    def has_role(self, role: str, account: str) -> bool:
        return self.access.has_role(role, account)

    def is_admin(self, account: str) -> bool:
        return self.access.has_role(DEFAULT_ADMIN_ROLE, account)

    # Run loop

    async def run_once(self, caller: str) -> bool:
        """Run a single staleness check and batch, if needed."""
        updated = await self.update_all_if_needed(caller)
        if updated:
            for result in self.last_results:
                if result.written:
                    logger.info(f"[{result.asset_id}] {result.rate} ({result.source.value})")
        return updated

    async def run(self, caller: str) -> None:
        """Check staleness every ``check_period`` seconds until cancelled.

        :param caller: Account holding RATE_UPDATER_ROLE.
        :raises AccessDeniedError: If ``caller`` lacks RATE_UPDATER_ROLE.
        """
        self.access.require(RATE_UPDATER_ROLE, caller)
        logger.info(
            f"Starting update loop for {len(self.registry.configured_assets())} assets, "
            f"interval={self.update_interval()}s, check period={self.check_period}s"
        )
        try:
            while True:
                try:
                    await self.run_once(caller)
                except Exception as e:
                    logger.error(f"Update cycle failed: {type(e).__name__}: {e}")
                await asyncio.sleep(self.check_period)
        finally:
            await HttpRemoteCaller.close_shared_client()
