"""Chainlink-style push oracles.

Operation: ``latestRoundData()`` returning
``(roundId, answer, startedAt, updatedAt, answeredInRound)``. A custom
selector may be configured instead, in which case it must return
``(answer, updatedAt)``.

The answer is rejected when non-positive, or when ``updatedAt`` is older than
the protocol staleness window (a frozen upstream feed). Accepted answers are
rescaled from the feed's ``decimals()`` to 18 decimals.
"""

import logging

from ..AssetPriceConfig import SourceKind
from .base import (
    BaseProvider,
    ProviderQuery,
    ProviderValueError,
    register_provider,
    rescale,
)

logger = logging.getLogger(__name__)

LATEST_ROUND_DATA = "latestRoundData()"
LATEST_ROUND_DATA_SELECTOR = "0xfeaf968c"
ROUND_DATA_TYPES = ("uint80", "int256", "uint256", "uint256", "uint80")


def is_round_data_selector(selector: str | None) -> bool:
    """Check whether a selector is absent or means ``latestRoundData()``."""
    if not selector:
        return True
    normalized = selector.replace(" ", "").lower()
    return normalized in (LATEST_ROUND_DATA.lower(), LATEST_ROUND_DATA_SELECTOR)


@register_provider
class DirectFeedProvider(BaseProvider):
    """Reads the latest answer of a push price feed."""

    kind = SourceKind.DIRECT_FEED

    async def fetch(self, query: ProviderQuery) -> int:
        return await self.read_feed(query, query.provider, query.selector)

    async def read_feed(
        self, query: ProviderQuery, endpoint: str, selector: str | None = None
    ) -> int:
        """Read, validate and rescale the latest answer of a feed.

        :param query: Originating query (for the asset and error messages).
        :param endpoint: Feed to read.
        :param selector: Optional custom ``(answer, updatedAt)`` operation.
        :returns: Positive 18-decimal rate.
        :raises ProviderError: On call failure, bad answer or stale feed.
        """
        if is_round_data_selector(selector):
            _, answer, _, updated_at, _ = await self._call(
                endpoint, LATEST_ROUND_DATA, returns=ROUND_DATA_TYPES
            )
        else:
            answer, updated_at = await self._call(
                endpoint, selector, returns=("int256", "uint256")
            )

        if answer <= 0:
            raise ProviderValueError(f"{endpoint} answered {answer} for {query.asset_id}")

        age = self.clock() - updated_at
        if updated_at == 0 or age > self.max_feed_age:
            raise ProviderValueError(
                f"{endpoint} last updated {age:.0f}s ago "
                f"(limit {self.max_feed_age:.0f}s) for {query.asset_id}"
            )

        (feed_decimals,) = await self._call(endpoint, "decimals()", returns=("uint8",))
        rate = rescale(answer, feed_decimals)
        logger.debug(
            f"[{query.asset_id}] {endpoint} answer={answer} decimals={feed_decimals} "
            f"age={age:.0f}s -> {rate}"
        )
        return self._require_positive(rate, query)
