"""Time-weighted average price from a concentrated-liquidity pool.

Algorithm (Uniswap V3 oracle):
    1. ``observe([window, 0])`` returns the cumulative tick at ``now - window``
       and at ``now``.
    2. The average tick is their difference divided by the window, rounded
       toward negative infinity.
    3. ``1.0001 ** tick`` is the price of one raw unit of token0 in raw units
       of token1.
    4. When the priced asset is token1 the ratio is inverted.
    5. The raw ratio is adjusted by the decimal difference of the two tokens
       and scaled to 18 decimals.

.. code-block:: python

    >>> tick_to_rate(0, base_decimals=18, quote_decimals=18)
    1000000000000000000
"""

import logging
from decimal import Decimal, localcontext

from ..AssetPriceConfig import PRICE_DECIMALS, SourceKind
from .base import (
    BaseProvider,
    ProviderQuery,
    ProviderValueError,
    register_provider,
)

logger = logging.getLogger(__name__)

TICK_BASE = Decimal("1.0001")


def average_tick(tick_then: int, tick_now: int, window_seconds: int) -> int:
    """Time-weighted average tick, rounded toward negative infinity.

    .. code-block:: python

        >>> average_tick(0, -7, 2)
        -4
    """
    return (tick_now - tick_then) // window_seconds


def tick_to_rate(
    tick: int, base_decimals: int, quote_decimals: int, invert: bool = False
) -> int:
    """Convert a pool tick into an 18-decimal rate of the base token.

    :param tick: Average tick (price of token0 in token1).
    :param base_decimals: Decimals of the priced token.
    :param quote_decimals: Decimals of the other token.
    :param invert: True when the priced token is token1.
    :returns: Whole quote tokens per whole base token, scaled by 10**18.
    """
    with localcontext() as ctx:
        ctx.prec = 78
        ratio = TICK_BASE**tick
        if invert:
            ratio = 1 / ratio
        price = ratio * Decimal(10) ** (base_decimals - quote_decimals)
        return int(price * Decimal(10) ** PRICE_DECIMALS)


@register_provider
class TwapPoolProvider(BaseProvider):
    """Reads a TWAP over ``twap_window_minutes`` from a pool."""

    kind = SourceKind.TWAP_POOL

    async def fetch(self, query: ProviderQuery) -> int:
        pool = query.provider
        window = query.config.twap_window_seconds

        tick_cumulatives, _ = await self._call(
            pool,
            "observe(uint32[])",
            args=[("uint32[]", [window, 0])],
            returns=("int56[]", "uint160[]"),
        )
        if len(tick_cumulatives) != 2:
            raise ProviderValueError(
                f"{pool} returned {len(tick_cumulatives)} observations, expected 2"
            )
        tick = average_tick(tick_cumulatives[0], tick_cumulatives[1], window)

        (token0,) = await self._call(pool, "token0()", returns=("address",))
        (token1,) = await self._call(pool, "token1()", returns=("address",))

        asset = query.asset_id.lower()
        if asset == str(token0).lower():
            base, quote, invert = token0, token1, False
        elif asset == str(token1).lower():
            base, quote, invert = token1, token0, True
        else:
            raise ProviderValueError(
                f"{query.asset_id} is neither token of pool {pool} ({token0}, {token1})"
            )

        (base_decimals,) = await self._call(base, "decimals()", returns=("uint8",))
        (quote_decimals,) = await self._call(quote, "decimals()", returns=("uint8",))

        rate = tick_to_rate(tick, base_decimals, quote_decimals, invert=invert)
        logger.debug(
            f"[{query.asset_id}] {pool} tick={tick} window={window}s "
            f"invert={invert} -> {rate}"
        )
        return self._require_positive(rate, query)
