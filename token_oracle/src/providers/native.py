"""Native assets: the unit of account itself.

No remote call is made; the rate is always exactly one unit.
"""

from ..AssetPriceConfig import ONE_UNIT, SourceKind
from .base import BaseProvider, ProviderQuery, register_provider


@register_provider
class NativeProvider(BaseProvider):
    """Returns ONE_UNIT for every query."""

    kind = SourceKind.NATIVE

    async def fetch(self, query: ProviderQuery) -> int:
        return ONE_UNIT
