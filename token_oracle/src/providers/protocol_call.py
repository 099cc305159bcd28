"""Arbitrary read-only call on a protocol contract.

The configured selector is invoked on the provider. When ``needs_argument``
is set, the canonical one-unit amount (``10**decimals`` of the asset) is
passed, so the provider answers with a per-unit conversion such as
``convertToAssets(1e18)`` or ``getPooledEthByShares(1e18)``.

The single uint256 returned is taken as an 18-decimal rate.
"""

import logging

from ..AssetPriceConfig import SourceKind
from .base import BaseProvider, ProviderQuery, ProviderValueError, register_provider

logger = logging.getLogger(__name__)


@register_provider
class ProtocolCallProvider(BaseProvider):
    """Invokes a configured read operation on a protocol contract."""

    kind = SourceKind.PROTOCOL_CALL

    async def fetch(self, query: ProviderQuery) -> int:
        return await self.read_call(
            query, query.provider, query.selector, query.needs_argument
        )

    async def read_call(
        self,
        query: ProviderQuery,
        endpoint: str,
        selector: str | None,
        needs_argument: bool,
    ) -> int:
        """Invoke ``selector`` on ``endpoint`` and decode one uint256.

        :param query: Originating query (for the asset and error messages).
        :param endpoint: Provider to call.
        :param selector: Operation to invoke.
        :param needs_argument: Pass ``10**decimals`` of the asset.
        :returns: Positive rate.
        :raises ProviderError: On call failure or non-positive result.
        """
        if not selector:
            raise ProviderValueError(f"No selector configured for {endpoint}")

        args = []
        if needs_argument:
            decimals = await self.decimals_fn(query.asset_id)
            args.append(("uint256", 10**decimals))

        (value,) = await self._call(endpoint, selector, args)
        logger.debug(f"[{query.asset_id}] {endpoint}.{selector} -> {value}")
        return self._require_positive(value, query)
