"""FallbackResolver: Primary, then fallback, then cached rate.

Resolution order for an asset:
    1. No config: implicitly native, ONE_UNIT.
    2. Primary provider.
    3. Fallback provider, if configured.
    4. Last cached rate, if non-zero.
    5. Failure.

Fresh beats stale and stale beats failure, so pricing never hard-fails just
because an upstream provider is temporarily down, as long as some earlier
rate exists. The resolver only reads state.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

from .AssetPriceConfig import ONE_UNIT, SourceKind, normalize_asset_id

if TYPE_CHECKING:
    from .ProviderDispatcher import ProviderDispatcher
    from .RateCache import RateCache
    from .SourceRegistry import SourceRegistry

logger = logging.getLogger(__name__)


class ResolutionSource(Enum):
    """Where a resolved rate came from."""

    NATIVE = "native"
    PRIMARY = "primary"
    FALLBACK = "fallback"
    CACHE = "cache"
    FAILED = "failed"


@dataclass(frozen=True)
class Resolution:
    """Outcome of resolving one asset.

    :ivar asset_id: Normalized asset id.
    :ivar rate: Resolved rate, 0 on failure.
    :ivar source: Step of the fallback chain that produced the rate.
    """

    asset_id: str
    rate: int
    source: ResolutionSource

    @property
    def ok(self) -> bool:
        """Check if a usable rate was produced."""
        return self.source is not ResolutionSource.FAILED

    @property
    def is_fresh(self) -> bool:
        """Check if the rate came from a live lookup or is native."""
        return self.source in (
            ResolutionSource.NATIVE,
            ResolutionSource.PRIMARY,
            ResolutionSource.FALLBACK,
        )


class FallbackResolver:
    """Resolves asset rates through the fallback chain.

    :ivar registry: Source configs.
    :ivar dispatcher: Performs provider lookups.
    :ivar cache: Last written rates.
    """

    def __init__(
        self,
        registry: SourceRegistry,
        dispatcher: ProviderDispatcher,
        cache: RateCache,
    ) -> None:
        self.registry = registry
        self.dispatcher = dispatcher
        self.cache = cache

    async def resolve(self, asset_id: str) -> tuple[int, bool]:
        """Resolve an asset's rate.

        :param asset_id: Asset to price.
        :returns: Tuple of (rate, ok).
        """
        resolution = await self.resolve_detailed(asset_id)
        return resolution.rate, resolution.ok

    async def resolve_detailed(self, asset_id: str) -> Resolution:
        """Resolve an asset's rate, reporting which step produced it.

        :param asset_id: Asset to price.
        :returns: Resolution with rate and origin.
        """
        key = normalize_asset_id(asset_id)
        config = self.registry.get_config(key)

        if config is None or config.source_kind is SourceKind.NATIVE:
            return Resolution(key, ONE_UNIT, ResolutionSource.NATIVE)

        rate, ok = await self.dispatcher.dispatch(
            key,
            config,
            config.primary_provider,
            config.primary_selector,
            config.needs_argument,
        )
        if ok:
            return Resolution(key, rate, ResolutionSource.PRIMARY)

        if config.has_fallback:
            rate, ok = await self.dispatcher.dispatch(
                key,
                config,
                config.fallback_provider,
                config.fallback_selector,
                config.fallback_needs_argument,
            )
            if ok:
                logger.info(f"[{key}] Primary failed, using fallback rate {rate}")
                return Resolution(key, rate, ResolutionSource.FALLBACK)

        cached = self.cache.cached_rate(key)
        if cached > 0:
            logger.warning(f"[{key}] All providers failed, using cached rate {cached}")
            return Resolution(key, cached, ResolutionSource.CACHE)

        logger.warning(f"[{key}] All providers failed and no cached rate exists")
        return Resolution(key, 0, ResolutionSource.FAILED)
