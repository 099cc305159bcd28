"""
Token Price Oracle - Price Resolution & Update Engine

This module resolves and publishes exchange rates of liquid-staking assets:
- AssetPriceConfig: Source kinds, per-asset configs and price records
- SourceRegistry: Validated per-asset source configuration
- ProviderDispatcher: Bounded-time lookups through provider strategies
- FallbackResolver: Primary, fallback, cached rate ordering
- RateCache: Last written rates, forwarded to the ledger
- BatchScheduler: Staleness tracking and batch updates
- PriceEngine: Facade with role checks and the update loop
- providers: Per-kind provider strategy implementations
"""

from .AccessControl import (
    DEFAULT_ADMIN_ROLE,
    ORACLE_ADMIN_ROLE,
    RATE_UPDATER_ROLE,
    AccessControl,
    AccessDeniedError,
)
from .AssetPriceConfig import (
    DEFAULT_UPDATE_INTERVAL,
    ONE_UNIT,
    SCALE,
    AssetPriceConfig,
    PriceRecord,
    SourceKind,
)
from .BatchScheduler import AssetUpdateResult, BatchScheduler
from .FallbackResolver import FallbackResolver, Resolution, ResolutionSource
from .Ledger import AssetInfo, ContractLedger, Ledger, LedgerRejectedError, LocalLedger
from .PriceEngine import PriceEngine
from .ProviderDispatcher import ProviderDispatcher
from .RateCache import InvalidRateError, PriceUnavailableError, RateCache
from .SourceRegistry import ConfigurationError, SourceRegistry

__all__ = [
    "DEFAULT_ADMIN_ROLE",
    "DEFAULT_UPDATE_INTERVAL",
    "ONE_UNIT",
    "ORACLE_ADMIN_ROLE",
    "RATE_UPDATER_ROLE",
    "SCALE",
    "AccessControl",
    "AccessDeniedError",
    "AssetInfo",
    "AssetPriceConfig",
    "AssetUpdateResult",
    "BatchScheduler",
    "ConfigurationError",
    "ContractLedger",
    "FallbackResolver",
    "InvalidRateError",
    "Ledger",
    "LedgerRejectedError",
    "LocalLedger",
    "PriceEngine",
    "PriceRecord",
    "PriceUnavailableError",
    "ProviderDispatcher",
    "RateCache",
    "Resolution",
    "ResolutionSource",
    "SourceKind",
    "SourceRegistry",
]
