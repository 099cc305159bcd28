"""Base provider interface and strategy registry.

One provider strategy exists per SourceKind. Each strategy implements
fetch(), which performs the lookup for one (provider, selector,
needs_argument) query and returns a positive 18-decimal rate, or raises
ProviderError. Strategies never see transport details: they call
``self._call()``, which goes through the shared RemoteCaller.

.. code-block:: python

    @register_provider
    class MyProvider(BaseProvider):
        kind = SourceKind.POOL_DERIVED

        async def fetch(self, query: ProviderQuery) -> int:
            (value,) = await self._call(query.provider, "getRate()")
            return self._require_positive(value, query)
"""

import logging
import time
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from typing import ClassVar

from ..AssetPriceConfig import (
    DEFAULT_UPDATE_INTERVAL,
    PRICE_DECIMALS,
    AssetPriceConfig,
    SourceKind,
)
from ..RemoteCaller import CallArg, RemoteCallError, RemoteCaller

logger = logging.getLogger(__name__)


class ProviderError(Exception):
    """Base exception for provider lookups."""

    pass


class ProviderCallError(ProviderError):
    """Raised when the remote call itself fails (unreachable, revert, decode)."""

    pass


class ProviderValueError(ProviderError):
    """Raised when the provider answered with a value that must not be trusted."""

    pass


@dataclass(frozen=True)
class ProviderQuery:
    """A single lookup request.

    :ivar asset_id: Asset being priced.
    :ivar provider: Provider reference to query.
    :ivar selector: Read operation, or None for the kind's default.
    :ivar needs_argument: Pass the one-unit argument.
    :ivar config: Full config of the asset (for kind-specific fields).
    """

    asset_id: str
    provider: str
    selector: str | None
    needs_argument: bool
    config: AssetPriceConfig


def rescale(value: int, from_decimals: int, to_decimals: int = PRICE_DECIMALS) -> int:
    """Rescale a fixed-point integer between precisions.

    .. code-block:: python

        >>> rescale(104_000_000, 8)
        1040000000000000000
    """
    if from_decimals == to_decimals:
        return value
    if from_decimals < to_decimals:
        return value * 10 ** (to_decimals - from_decimals)
    return value // 10 ** (from_decimals - to_decimals)


async def _default_decimals(asset_id: str) -> int:
    return PRICE_DECIMALS


class BaseProvider(ABC):
    """Abstract base class for provider strategies.

    :cvar kind: SourceKind handled by this strategy.
    :ivar caller: Transport used for every remote call.
    :ivar decimals_fn: Coroutine returning the decimals of an asset.
    :ivar clock: Returns the current Unix time.
    :ivar max_feed_age: Oldest acceptable upstream update, in seconds.
    """

    kind: ClassVar[SourceKind | None] = None

    def __init__(
        self,
        caller: RemoteCaller,
        decimals_fn: Callable[[str], Awaitable[int]] | None = None,
        clock: Callable[[], float] = time.time,
        max_feed_age: float = DEFAULT_UPDATE_INTERVAL,
    ) -> None:
        self.caller = caller
        self.decimals_fn = decimals_fn or _default_decimals
        self.clock = clock
        self.max_feed_age = max_feed_age

    @abstractmethod
    async def fetch(self, query: ProviderQuery) -> int:
        """Look up the rate of ``query.asset_id``.

        :param query: Lookup request.
        :returns: Positive rate scaled by 10**18.
        :raises ProviderError: On any failure.
        """
        pass

    def spawn(self, cls: "type[BaseProvider]") -> "BaseProvider":
        """Create a sibling strategy sharing this one's dependencies."""
        return cls(
            self.caller,
            decimals_fn=self.decimals_fn,
            clock=self.clock,
            max_feed_age=self.max_feed_age,
        )

    async def _call(
        self,
        endpoint: str,
        operation: str,
        args: Sequence[CallArg] = (),
        returns: Sequence[str] = ("uint256",),
    ) -> tuple:
        try:
            return await self.caller.call(endpoint, operation, args, returns)
        except RemoteCallError as e:
            raise ProviderCallError(str(e)) from e

    @staticmethod
    def _require_positive(value: int, query: ProviderQuery) -> int:
        if value <= 0:
            raise ProviderValueError(
                f"{query.provider} returned non-positive rate {value} for {query.asset_id}"
            )
        return value


# Registry of provider strategies (populated by subclass imports)
PROVIDER_REGISTRY: dict[SourceKind, type[BaseProvider]] = {}


def register_provider(cls: type[BaseProvider]) -> type[BaseProvider]:
    """Decorator to register a provider strategy for its SourceKind.

    :param cls: Provider class to register.
    :returns: The registered class (unchanged).
    :raises ValueError: If the provider has no kind defined.
    """
    if cls.kind is None:
        raise ValueError(f"Provider {cls.__name__} must define a 'kind' class variable")
    PROVIDER_REGISTRY[cls.kind] = cls
    return cls


def get_provider(kind: SourceKind, caller: RemoteCaller, **kwargs) -> BaseProvider:
    """Get a provider strategy instance for a source kind.

    :param kind: Source kind.
    :param caller: Transport for remote calls.
    :param kwargs: Extra BaseProvider constructor arguments.
    :returns: Provider instance.
    :raises ValueError: If no strategy is registered for the kind.
    """
    if kind not in PROVIDER_REGISTRY:
        available = ", ".join(sorted(k.value for k in PROVIDER_REGISTRY))
        raise ValueError(f"No provider for kind '{kind.value}'. Available: {available}")
    return PROVIDER_REGISTRY[kind](caller, **kwargs)


def get_available_providers() -> list[SourceKind]:
    """Get the source kinds that have a registered strategy."""
    return sorted(PROVIDER_REGISTRY, key=lambda k: k.value)
