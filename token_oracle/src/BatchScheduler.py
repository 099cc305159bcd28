"""BatchScheduler: Staleness tracking and batch rate updates.

Prices are considered stale once ``update_interval`` seconds have passed since
the last completed batch. A batch:

    1. Resolves every configured asset concurrently, bounded by a semaphore
       and without holding the mutation lock.
    2. Commits each fresh rate through the RateCache under the mutation lock,
       one asset at a time.
    3. Stamps ``last_global_update`` regardless of individual outcomes.

A failing asset never stops the others. Rates served from the cache are not
re-submitted, since the ledger already holds them.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING

from .AssetPriceConfig import DEFAULT_UPDATE_INTERVAL, PriceRecord, normalize_asset_id
from .FallbackResolver import Resolution, ResolutionSource
from .Ledger import LedgerRejectedError
from .RateCache import InvalidRateError, validate_rate

if TYPE_CHECKING:
    from .FallbackResolver import FallbackResolver
    from .RateCache import RateCache
    from .SourceRegistry import SourceRegistry

logger = logging.getLogger(__name__)

DEFAULT_MAX_CONCURRENCY = 8


@dataclass(frozen=True)
class AssetUpdateResult:
    """Outcome of one asset within a batch.

    :ivar asset_id: Asset the result refers to.
    :ivar rate: Resolved rate, 0 if resolution failed.
    :ivar source: Origin of the rate, None if resolution raised.
    :ivar written: Whether the rate was committed to the ledger.
    :ivar error: Failure description, if any.
    """

    asset_id: str
    rate: int
    source: ResolutionSource | None
    written: bool
    error: str | None = None


class BatchScheduler:
    """Runs batch updates and tracks global freshness.

    :ivar last_global_update: Unix time of the last completed batch.
    :ivar last_results: Per-asset results of the last completed batch.
    :ivar max_concurrency: Maximum concurrent lookups within a batch.
    """

    def __init__(
        self,
        registry: SourceRegistry,
        resolver: FallbackResolver,
        cache: RateCache,
        lock: asyncio.Lock,
        clock: Callable[[], float] = time.time,
        update_interval: float = DEFAULT_UPDATE_INTERVAL,
        max_concurrency: int = DEFAULT_MAX_CONCURRENCY,
    ) -> None:
        """Initialize the scheduler.

        :param registry: Source configs (defines the batch's asset set).
        :param resolver: Resolves each asset's rate.
        :param cache: Commits rates to the ledger and records them.
        :param lock: Mutation lock shared with the rest of the engine.
        :param clock: Returns the current Unix time.
        :param update_interval: Default staleness interval in seconds.
        :param max_concurrency: Concurrent lookups per batch (default: 8).
        """
        if update_interval <= 0:
            raise ValueError("update_interval must be positive")
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be at least 1")

        self.registry = registry
        self.resolver = resolver
        self.cache = cache
        self.lock = lock
        self.clock = clock
        self.default_interval = update_interval
        self.max_concurrency = max_concurrency

        self.last_global_update: float = 0.0
        self.last_results: list[AssetUpdateResult] = []
        self._emergency_interval: float | None = None
        self._batch_lock = asyncio.Lock()

    @property
    def update_interval(self) -> float:
        """Effective staleness interval in seconds."""
        if self._emergency_interval is not None:
            return self._emergency_interval
        return self.default_interval

    @property
    def emergency_mode(self) -> bool:
        return self._emergency_interval is not None

    @property
    def batch_running(self) -> bool:
        return self._batch_lock.locked()

    def are_prices_stale(self) -> bool:
        """Check if the last batch is older than the update interval."""
        return self.clock() - self.last_global_update > self.update_interval

    async def set_update_interval(self, interval: float) -> None:
        """Install an emergency staleness interval.

        :param interval: New interval in seconds.
        :raises ValueError: If ``interval`` is not positive.
        """
        if interval <= 0:
            raise ValueError("Update interval must be positive")
        async with self.lock:
            self._emergency_interval = interval
        logger.warning(f"Emergency update interval set to {interval}s")

    async def disable_emergency_interval(self) -> None:
        """Restore the default staleness interval."""
        async with self.lock:
            self._emergency_interval = None
        logger.info(f"Emergency interval disabled, using default {self.default_interval}s")

    async def update_all_if_needed(self) -> bool:
        """Run a batch if prices are stale.

        :returns: True if at least one asset's rate was written.
        """
        if not self.are_prices_stale():
            return False

        if self._batch_lock.locked():
            logger.warning("Batch update already in progress, request rejected")
            return False

        async with self._batch_lock:
            return await self._run_batch()

    async def _run_batch(self) -> bool:
        assets = self.registry.configured_assets()
        logger.info(f"Starting batch update of {len(assets)} assets")

        semaphore = asyncio.Semaphore(self.max_concurrency)

        async def resolve_one(asset_id: str) -> Resolution:
            async with semaphore:
                return await self.resolver.resolve_detailed(asset_id)

        resolutions = await asyncio.gather(
            *(resolve_one(asset_id) for asset_id in assets), return_exceptions=True
        )

        results: list[AssetUpdateResult] = []
        async with self.lock:
            for asset_id, resolution in zip(assets, resolutions, strict=True):
                results.append(await self._commit(asset_id, resolution))
            self.last_global_update = self.clock()

        self.last_results = results
        written = sum(1 for r in results if r.written)
        failed = sum(1 for r in results if r.error is not None)
        logger.info(
            f"Batch complete: {written} written, {failed} failed, "
            f"{len(results) - written - failed} unchanged"
        )
        return written > 0

    async def _commit(
        self, asset_id: str, resolution: Resolution | BaseException
    ) -> AssetUpdateResult:
        if isinstance(resolution, BaseException):
            logger.warning(f"[{asset_id}] Resolution raised: {resolution}")
            return AssetUpdateResult(asset_id, 0, None, False, error=str(resolution))

        if not resolution.ok:
            return AssetUpdateResult(
                asset_id, 0, resolution.source, False, error="no rate available"
            )

        if resolution.source is ResolutionSource.CACHE:
            logger.info(f"[{asset_id}] Keeping cached rate {resolution.rate}")
            return AssetUpdateResult(asset_id, resolution.rate, resolution.source, False)

        # Native rates never change, so only the first one reaches the ledger
        if (
            resolution.source is ResolutionSource.NATIVE
            and self.cache.get_record(asset_id) is not None
        ):
            return AssetUpdateResult(asset_id, resolution.rate, resolution.source, False)

        try:
            await self.cache.update_rate(asset_id, resolution.rate)
        except (LedgerRejectedError, InvalidRateError) as e:
            logger.warning(f"[{asset_id}] Update skipped: {e}")
            return AssetUpdateResult(
                asset_id, resolution.rate, resolution.source, False, error=str(e)
            )
        except Exception as e:
            logger.error(f"[{asset_id}] Ledger update failed: {type(e).__name__}: {e}")
            return AssetUpdateResult(
                asset_id, resolution.rate, resolution.source, False, error=str(e)
            )

        return AssetUpdateResult(asset_id, resolution.rate, resolution.source, True)

    async def update_one(self, asset_id: str, rate: int) -> PriceRecord:
        """Write a rate for one asset, bypassing resolution.

        :param asset_id: Asset to update.
        :param rate: New 18-decimal rate.
        :returns: The new record.
        :raises InvalidRateError: If ``rate`` is not positive.
        :raises LedgerRejectedError: If the ledger refuses the rate.
        """
        validate_rate(asset_id, rate)
        async with self.lock:
            return await self.cache.update_rate(asset_id, rate)

    async def update_many(
        self, asset_ids: Sequence[str], rates: Sequence[int]
    ) -> list[PriceRecord]:
        """Write rates for several assets, bypassing resolution.

        The whole input is validated before anything is written. A ledger
        rejection stops the loop; assets written before it keep their rates.

        :param asset_ids: Assets to update.
        :param rates: New rates, aligned with ``asset_ids``.
        :returns: The new records in input order.
        :raises ValueError: If the sequences differ in length.
        :raises InvalidRateError: If any rate is not positive.
        :raises LedgerRejectedError: If the ledger refuses a rate.
        """
        if len(asset_ids) != len(rates):
            raise ValueError(
                f"Length mismatch: {len(asset_ids)} assets, {len(rates)} rates"
            )
        for asset_id, rate in zip(asset_ids, rates, strict=True):
            validate_rate(normalize_asset_id(asset_id), rate)

        records = []
        async with self.lock:
            for asset_id, rate in zip(asset_ids, rates, strict=True):
                records.append(await self.cache.update_rate(asset_id, rate))
        return records
