"""Unit tests for ProviderDispatcher."""

import asyncio
import logging

import pytest
from conftest import FEED, NOW, POOL, STETH, FakeClock, FakeRemoteCaller, rate

from token_oracle.src.AssetPriceConfig import ONE_UNIT, AssetPriceConfig, SourceKind
from token_oracle.src.ProviderDispatcher import ProviderDispatcher


class SlowRemoteCaller(FakeRemoteCaller):
    """Remote caller that never answers in time."""

    async def call(self, endpoint, operation, args=(), returns=("uint256",)):
        await asyncio.sleep(10)
        return await super().call(endpoint, operation, args, returns)


class BrokenRemoteCaller(FakeRemoteCaller):
    """Remote caller raising an unexpected exception type."""

    async def call(self, endpoint, operation, args=(), returns=("uint256",)):
        raise RuntimeError("socket exploded")


POOL_CONFIG = AssetPriceConfig(source_kind=SourceKind.POOL_DERIVED, primary_provider=POOL)


class TestDispatch:
    """Test single lookups."""

    @pytest.mark.asyncio
    async def test_native_no_call(self, caller) -> None:
        dispatcher = ProviderDispatcher(caller)
        result = await dispatcher.dispatch(STETH, AssetPriceConfig.native(), None, None, False)
        assert result == (ONE_UNIT, True)
        assert caller.calls == []

    @pytest.mark.asyncio
    async def test_success(self, caller) -> None:
        caller.set(POOL, "get_virtual_price()", (rate(1.02),))
        dispatcher = ProviderDispatcher(caller)
        assert await dispatcher.dispatch(STETH, POOL_CONFIG, POOL, None, False) == (
            rate(1.02),
            True,
        )

    @pytest.mark.asyncio
    async def test_uses_strategy_for_kind(self, caller) -> None:
        """The config's kind should select the strategy."""
        caller.set_feed(FEED, 104_000_000, NOW)
        dispatcher = ProviderDispatcher(caller, clock=FakeClock())
        config = AssetPriceConfig(source_kind=SourceKind.DIRECT_FEED, primary_provider=FEED)

        rate_, ok = await dispatcher.dispatch(STETH, config, FEED, None, False)

        assert ok
        assert rate_ == 1_040_000_000_000_000_000

    @pytest.mark.asyncio
    async def test_remote_failure_collapses(self, caller, caplog) -> None:
        """A failing call should return (0, False) and log a warning."""
        caller.fail(POOL, "get_virtual_price()")
        dispatcher = ProviderDispatcher(caller)

        with caplog.at_level(logging.WARNING):
            result = await dispatcher.dispatch(STETH, POOL_CONFIG, POOL, None, False)

        assert result == (0, False)
        assert "execution reverted" in caplog.text

    @pytest.mark.asyncio
    async def test_zero_value_collapses(self, caller) -> None:
        caller.set(POOL, "get_virtual_price()", (0,))
        dispatcher = ProviderDispatcher(caller)
        assert await dispatcher.dispatch(STETH, POOL_CONFIG, POOL, None, False) == (0, False)

    @pytest.mark.asyncio
    async def test_timeout_collapses(self) -> None:
        """A lookup exceeding the timeout should fail, not hang."""
        dispatcher = ProviderDispatcher(SlowRemoteCaller(), call_timeout=0.01)
        assert await dispatcher.dispatch(STETH, POOL_CONFIG, POOL, None, False) == (0, False)

    @pytest.mark.asyncio
    async def test_unexpected_exception_collapses(self) -> None:
        dispatcher = ProviderDispatcher(BrokenRemoteCaller())
        assert await dispatcher.dispatch(STETH, POOL_CONFIG, POOL, None, False) == (0, False)

    @pytest.mark.asyncio
    async def test_missing_provider(self, caller) -> None:
        dispatcher = ProviderDispatcher(caller)
        assert await dispatcher.dispatch(STETH, POOL_CONFIG, None, None, False) == (0, False)
        assert caller.calls == []

    @pytest.mark.asyncio
    async def test_decimals_fn_forwarded(self, caller) -> None:
        """The decimals lookup should reach protocol-call strategies."""
        caller.set(STETH, "convertToAssets(uint256)", (rate(1.1),))

        async def decimals(asset_id: str) -> int:
            assert asset_id == STETH
            return 8

        dispatcher = ProviderDispatcher(caller, decimals_fn=decimals)
        config = AssetPriceConfig(
            source_kind=SourceKind.PROTOCOL_CALL,
            primary_provider=STETH,
            primary_selector="convertToAssets(uint256)",
            needs_argument=True,
        )

        await dispatcher.dispatch(STETH, config, STETH, "convertToAssets(uint256)", True)

        assert caller.calls[0][2] == (("uint256", 10**8),)
