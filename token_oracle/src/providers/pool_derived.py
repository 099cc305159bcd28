"""Curve-style pools exposing a virtual share price.

Operation: ``get_virtual_price()`` returning an 18-decimal uint256 already
expressed in unit-of-account terms.
"""

import logging

from ..AssetPriceConfig import SourceKind
from .base import BaseProvider, ProviderQuery, register_provider

logger = logging.getLogger(__name__)

GET_VIRTUAL_PRICE = "get_virtual_price()"


@register_provider
class PoolDerivedProvider(BaseProvider):
    """Reads the share price of a stable-swap pool."""

    kind = SourceKind.POOL_DERIVED

    async def fetch(self, query: ProviderQuery) -> int:
        (value,) = await self._call(query.provider, GET_VIRTUAL_PRICE)
        logger.debug(f"[{query.asset_id}] {query.provider} virtual price {value}")
        return self._require_positive(value, query)
