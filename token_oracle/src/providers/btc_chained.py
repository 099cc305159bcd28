"""Assets priced in BTC, chained through a BTC to unit-of-account rate.

Two hops are resolved:
    1. The asset's BTC rate through its own provider. A provider with no
       selector or ``latestRoundData()`` is read as a push feed, any other
       selector as a protocol call.
    2. The BTC rate in unit of account through ``btc_pair_provider``, read
       the same way using ``btc_pair_selector``.

The result is ``asset_btc * btc_unit // SCALE``. Either hop failing fails
the lookup.
"""

import logging

from ..AssetPriceConfig import SCALE, SourceKind
from .base import BaseProvider, ProviderQuery, ProviderValueError, register_provider
from .direct_feed import DirectFeedProvider, is_round_data_selector
from .protocol_call import ProtocolCallProvider

logger = logging.getLogger(__name__)


@register_provider
class BtcChainedProvider(BaseProvider):
    """Multiplies an asset/BTC rate by the BTC/unit-of-account rate."""

    kind = SourceKind.BTC_CHAINED

    async def fetch(self, query: ProviderQuery) -> int:
        btc_pair = query.config.btc_pair_provider
        if not btc_pair:
            raise ProviderValueError(f"No BTC pair provider configured for {query.asset_id}")

        asset_btc = await self._read_hop(
            query, query.provider, query.selector, query.needs_argument
        )
        btc_unit = await self._read_hop(
            query, btc_pair, query.config.btc_pair_selector, False
        )

        rate = asset_btc * btc_unit // SCALE
        logger.debug(
            f"[{query.asset_id}] asset/btc={asset_btc} btc/unit={btc_unit} -> {rate}"
        )
        return self._require_positive(rate, query)

    async def _read_hop(
        self,
        query: ProviderQuery,
        endpoint: str,
        selector: str | None,
        needs_argument: bool,
    ) -> int:
        if is_round_data_selector(selector):
            feed = self.spawn(DirectFeedProvider)
            return await feed.read_feed(query, endpoint, selector)
        call = self.spawn(ProtocolCallProvider)
        return await call.read_call(query, endpoint, selector, needs_argument)
