"""ProviderDispatcher: One bounded-time lookup against one provider.

The dispatcher selects the strategy registered for the asset's SourceKind and
runs it under a timeout. Every failure mode (unreachable provider, timeout,
malformed response, rejected value) collapses to ``(0, False)``; nothing is
raised to the caller.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING

from .AssetPriceConfig import DEFAULT_UPDATE_INTERVAL, ONE_UNIT, AssetPriceConfig, SourceKind
from .providers import BaseProvider, ProviderError, ProviderQuery, get_provider

if TYPE_CHECKING:
    from .RemoteCaller import RemoteCaller

logger = logging.getLogger(__name__)


class ProviderDispatcher:
    """Runs provider strategies with a per-call timeout.

    :ivar call_timeout: Seconds allowed for a single lookup.
    :ivar providers: Strategy instance per SourceKind.
    """

    DEFAULT_CALL_TIMEOUT = 10.0

    def __init__(
        self,
        caller: RemoteCaller,
        decimals_fn: Callable[[str], Awaitable[int]] | None = None,
        clock: Callable[[], float] = time.time,
        max_feed_age: float = DEFAULT_UPDATE_INTERVAL,
        call_timeout: float = DEFAULT_CALL_TIMEOUT,
    ) -> None:
        """Initialize the dispatcher.

        :param caller: Transport shared by all strategies.
        :param decimals_fn: Coroutine returning an asset's decimals.
        :param clock: Returns the current Unix time.
        :param max_feed_age: Oldest acceptable push-feed update in seconds.
        :param call_timeout: Timeout for a single lookup (default: 10.0).
        """
        self.call_timeout = call_timeout
        self.providers: dict[SourceKind, BaseProvider] = {
            kind: get_provider(
                kind,
                caller,
                decimals_fn=decimals_fn,
                clock=clock,
                max_feed_age=max_feed_age,
            )
            for kind in SourceKind
        }

    async def dispatch(
        self,
        asset_id: str,
        config: AssetPriceConfig,
        provider: str | None,
        selector: str | None,
        needs_argument: bool,
    ) -> tuple[int, bool]:
        """Perform exactly one lookup.

        :param asset_id: Asset being priced.
        :param config: Asset config (selects the strategy).
        :param provider: Provider to query (primary or fallback).
        :param selector: Read operation on that provider.
        :param needs_argument: Pass the one-unit argument.
        :returns: Tuple of (rate, ok). ``rate`` is 0 when ``ok`` is False.
        """
        kind = config.source_kind
        if kind is SourceKind.NATIVE:
            return ONE_UNIT, True

        if not provider:
            logger.warning(f"[{asset_id}] No provider for {kind.value} lookup")
            return 0, False

        query = ProviderQuery(
            asset_id=asset_id,
            provider=provider,
            selector=selector,
            needs_argument=needs_argument,
            config=config,
        )
        strategy = self.providers[kind]

        try:
            rate = await asyncio.wait_for(strategy.fetch(query), timeout=self.call_timeout)
        except asyncio.TimeoutError:
            logger.warning(f"[{asset_id}] Timeout querying {provider} ({kind.value})")
            return 0, False
        except ProviderError as e:
            logger.warning(f"[{asset_id}] {kind.value} lookup on {provider} failed: {e}")
            return 0, False
        except Exception as e:
            logger.warning(
                f"[{asset_id}] {kind.value} lookup on {provider} raised "
                f"{type(e).__name__}: {e}"
            )
            return 0, False

        if not isinstance(rate, int) or rate <= 0:
            logger.warning(f"[{asset_id}] {provider} produced invalid rate {rate!r}")
            return 0, False

        return rate, True
