"""
Provider strategies, one per price source kind.

Usage:
    from token_oracle.src.providers import get_provider

    provider = get_provider(SourceKind.DIRECT_FEED, caller=remote_caller)
    rate = await provider.fetch(query)
"""

# Import base classes and utilities
from .base import (
    PROVIDER_REGISTRY,
    BaseProvider,
    ProviderCallError,
    ProviderError,
    ProviderQuery,
    ProviderValueError,
    get_available_providers,
    get_provider,
    register_provider,
    rescale,
)

# Import all provider implementations to trigger registration
from .btc_chained import BtcChainedProvider
from .direct_feed import DirectFeedProvider
from .native import NativeProvider
from .pool_derived import PoolDerivedProvider
from .protocol_call import ProtocolCallProvider
from .twap_pool import TwapPoolProvider

__all__ = [
    # Base classes
    "BaseProvider",
    "ProviderError",
    "ProviderCallError",
    "ProviderValueError",
    "ProviderQuery",
    # Registry functions
    "register_provider",
    "get_provider",
    "get_available_providers",
    "rescale",
    "PROVIDER_REGISTRY",
    # Provider implementations
    "BtcChainedProvider",
    "DirectFeedProvider",
    "NativeProvider",
    "PoolDerivedProvider",
    "ProtocolCallProvider",
    "TwapPoolProvider",
]
