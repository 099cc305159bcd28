"""Unit tests for provider strategies."""

import pytest
from conftest import BTC_FEED, FEED, NOW, POOL, STETH, WBTC_LST, FakeClock, rate

from token_oracle.src.AssetPriceConfig import ONE_UNIT, SCALE, AssetPriceConfig, SourceKind
from token_oracle.src.providers import (
    PROVIDER_REGISTRY,
    BtcChainedProvider,
    DirectFeedProvider,
    NativeProvider,
    PoolDerivedProvider,
    ProtocolCallProvider,
    ProviderCallError,
    ProviderQuery,
    ProviderValueError,
    TwapPoolProvider,
    get_available_providers,
    get_provider,
    rescale,
)
from token_oracle.src.providers.direct_feed import is_round_data_selector
from token_oracle.src.providers.twap_pool import average_tick, tick_to_rate

TOKEN_A = "0x1111111111111111111111111111111111111111"
TOKEN_B = "0x2222222222222222222222222222222222222222"


def query(asset_id: str, config: AssetPriceConfig, **overrides) -> ProviderQuery:
    fields = dict(
        asset_id=asset_id,
        provider=config.primary_provider,
        selector=config.primary_selector,
        needs_argument=config.needs_argument,
        config=config,
    )
    fields.update(overrides)
    return ProviderQuery(**fields)


class TestRegistry:
    """Test the strategy registry."""

    def test_every_kind_registered(self) -> None:
        """Each source kind should have exactly one strategy."""
        assert set(PROVIDER_REGISTRY) == set(SourceKind)
        assert len(get_available_providers()) == len(SourceKind)

    def test_get_provider(self, caller) -> None:
        provider = get_provider(SourceKind.DIRECT_FEED, caller)
        assert isinstance(provider, DirectFeedProvider)
        assert provider.caller is caller


class TestRescale:
    def test_up(self) -> None:
        assert rescale(104_000_000, 8) == 1_040_000_000_000_000_000

    def test_down(self) -> None:
        assert rescale(10**20, 20) == 10**18

    def test_same(self) -> None:
        assert rescale(5, 18) == 5


class TestNativeProvider:
    @pytest.mark.asyncio
    async def test_returns_one_unit_without_calls(self, caller) -> None:
        """Native assets should never touch the network."""
        provider = NativeProvider(caller)
        config = AssetPriceConfig.native()
        assert await provider.fetch(query(STETH, config, provider="")) == ONE_UNIT
        assert caller.calls == []


class TestDirectFeedProvider:
    """Test push-feed reads."""

    config = AssetPriceConfig(source_kind=SourceKind.DIRECT_FEED, primary_provider=FEED)

    @pytest.mark.asyncio
    async def test_rescales_feed_answer(self, caller) -> None:
        """A 1.04 answer with 8 decimals should become 1.04 * 10**18."""
        caller.set_feed(FEED, 104_000_000, NOW - 60, decimals=8)
        provider = DirectFeedProvider(caller, clock=FakeClock())

        result = await provider.fetch(query(STETH, self.config))

        assert result == 1_040_000_000_000_000_000
        assert abs(result - int(1.04 * SCALE)) <= SCALE // 100

    @pytest.mark.asyncio
    async def test_negative_answer_rejected(self, caller) -> None:
        caller.set_feed(FEED, -1, NOW)
        provider = DirectFeedProvider(caller, clock=FakeClock())
        with pytest.raises(ProviderValueError, match="answered -1"):
            await provider.fetch(query(STETH, self.config))

    @pytest.mark.asyncio
    async def test_zero_answer_rejected(self, caller) -> None:
        caller.set_feed(FEED, 0, NOW)
        provider = DirectFeedProvider(caller, clock=FakeClock())
        with pytest.raises(ProviderValueError):
            await provider.fetch(query(STETH, self.config))

    @pytest.mark.asyncio
    async def test_frozen_feed_rejected(self, caller) -> None:
        """A feed not updated within the staleness window should be rejected."""
        caller.set_feed(FEED, 104_000_000, NOW - 3601)
        provider = DirectFeedProvider(caller, clock=FakeClock(), max_feed_age=3600)
        with pytest.raises(ProviderValueError, match="last updated"):
            await provider.fetch(query(STETH, self.config))

    @pytest.mark.asyncio
    async def test_never_updated_feed_rejected(self, caller) -> None:
        caller.set_feed(FEED, 104_000_000, 0)
        provider = DirectFeedProvider(caller, clock=FakeClock(), max_feed_age=10**12)
        with pytest.raises(ProviderValueError):
            await provider.fetch(query(STETH, self.config))

    @pytest.mark.asyncio
    async def test_custom_selector(self, caller) -> None:
        """A custom selector should return (answer, updatedAt)."""
        caller.set(FEED, "latestPrice()", (2_000_000, int(NOW)))
        caller.set(FEED, "decimals()", (6,))
        provider = DirectFeedProvider(caller, clock=FakeClock())

        result = await provider.fetch(query(STETH, self.config, selector="latestPrice()"))

        assert result == 2 * SCALE

    @pytest.mark.asyncio
    async def test_call_failure(self, caller) -> None:
        caller.fail(FEED, "latestRoundData()")
        provider = DirectFeedProvider(caller, clock=FakeClock())
        with pytest.raises(ProviderCallError, match="execution reverted"):
            await provider.fetch(query(STETH, self.config))

    def test_round_data_selector_detection(self) -> None:
        assert is_round_data_selector(None)
        assert is_round_data_selector("latestRoundData()")
        assert is_round_data_selector("0xFEAF968C")
        assert not is_round_data_selector("getRate()")


class TestPoolDerivedProvider:
    config = AssetPriceConfig(source_kind=SourceKind.POOL_DERIVED, primary_provider=POOL)

    @pytest.mark.asyncio
    async def test_reads_virtual_price(self, caller) -> None:
        caller.set(POOL, "get_virtual_price()", (rate(1.02),))
        provider = PoolDerivedProvider(caller)
        assert await provider.fetch(query(STETH, self.config)) == rate(1.02)

    @pytest.mark.asyncio
    async def test_zero_rejected(self, caller) -> None:
        caller.set(POOL, "get_virtual_price()", (0,))
        provider = PoolDerivedProvider(caller)
        with pytest.raises(ProviderValueError, match="non-positive"):
            await provider.fetch(query(STETH, self.config))


class TestProtocolCallProvider:
    """Test arbitrary protocol calls."""

    config = AssetPriceConfig(
        source_kind=SourceKind.PROTOCOL_CALL,
        primary_provider=STETH,
        primary_selector="getPooledEthByShares(uint256)",
        needs_argument=True,
    )

    @pytest.mark.asyncio
    async def test_passes_one_unit_argument(self, caller) -> None:
        """needs_argument should pass 10**decimals of the asset."""
        caller.set(STETH, "getPooledEthByShares(uint256)", (rate(1.15),))

        async def decimals(asset_id: str) -> int:
            return 6

        provider = ProtocolCallProvider(caller, decimals_fn=decimals)
        assert await provider.fetch(query(STETH, self.config)) == rate(1.15)
        assert caller.calls[0][2] == (("uint256", 10**6),)

    @pytest.mark.asyncio
    async def test_default_decimals(self, caller) -> None:
        caller.set(STETH, "getPooledEthByShares(uint256)", (rate(1.15),))
        provider = ProtocolCallProvider(caller)
        await provider.fetch(query(STETH, self.config))
        assert caller.calls[0][2] == (("uint256", 10**18),)

    @pytest.mark.asyncio
    async def test_no_argument(self, caller) -> None:
        caller.set(STETH, "getRate()", (rate(1.05),))
        provider = ProtocolCallProvider(caller)
        result = await provider.fetch(
            query(STETH, self.config, selector="getRate()", needs_argument=False)
        )
        assert result == rate(1.05)
        assert caller.calls[0][2] == ()

    @pytest.mark.asyncio
    async def test_missing_selector(self, caller) -> None:
        provider = ProtocolCallProvider(caller)
        with pytest.raises(ProviderValueError, match="No selector"):
            await provider.fetch(query(STETH, self.config, selector=None))


class TestBtcChainedProvider:
    """Test two-hop BTC pricing."""

    config = AssetPriceConfig(
        source_kind=SourceKind.BTC_CHAINED,
        primary_provider=FEED,
        btc_pair_provider=BTC_FEED,
    )

    @pytest.mark.asyncio
    async def test_chains_two_feeds(self, caller) -> None:
        """0.99 BTC at 30 units per BTC should be 29.7 units."""
        caller.set_feed(FEED, 99_000_000, NOW, decimals=8)
        caller.set_feed(BTC_FEED, 3_000_000_000, NOW, decimals=8)
        provider = BtcChainedProvider(caller, clock=FakeClock())

        result = await provider.fetch(query(WBTC_LST, self.config))

        assert result == rate(0.99) * rate(30) // SCALE
        assert abs(result - rate(29.7)) <= rate(29.7) * 2 // 100

    @pytest.mark.asyncio
    async def test_protocol_call_first_hop(self, caller) -> None:
        """A non-feed selector should read the first hop as a protocol call."""
        config = AssetPriceConfig(
            source_kind=SourceKind.BTC_CHAINED,
            primary_provider=WBTC_LST,
            primary_selector="getRate()",
            btc_pair_provider=BTC_FEED,
        )
        caller.set(WBTC_LST, "getRate()", (rate(1.01),))
        caller.set_feed(BTC_FEED, 3_000_000_000, NOW, decimals=8)
        provider = BtcChainedProvider(caller, clock=FakeClock())

        assert await provider.fetch(query(WBTC_LST, config)) == rate(30.3)

    @pytest.mark.asyncio
    async def test_btc_hop_failure_fails(self, caller) -> None:
        """Either hop failing should fail the lookup."""
        caller.set_feed(FEED, 99_000_000, NOW)
        caller.fail(BTC_FEED, "latestRoundData()")
        provider = BtcChainedProvider(caller, clock=FakeClock())
        with pytest.raises(ProviderCallError):
            await provider.fetch(query(WBTC_LST, self.config))

    @pytest.mark.asyncio
    async def test_stale_first_hop_fails(self, caller) -> None:
        caller.set_feed(FEED, 99_000_000, NOW - 100)
        caller.set_feed(BTC_FEED, 3_000_000_000, NOW)
        provider = BtcChainedProvider(caller, clock=FakeClock(), max_feed_age=50)
        with pytest.raises(ProviderValueError):
            await provider.fetch(query(WBTC_LST, self.config))


class TestTwapMath:
    """Test tick arithmetic."""

    def test_average_tick_rounds_toward_negative_infinity(self) -> None:
        assert average_tick(0, -7, 2) == -4
        assert average_tick(0, 7, 2) == 3

    def test_tick_zero_is_parity(self) -> None:
        assert tick_to_rate(0, 18, 18) == SCALE

    def test_positive_tick(self) -> None:
        """1.0001**100 is about 1.01005."""
        result = tick_to_rate(100, 18, 18)
        assert abs(result - 1_010_049_662_092_876_534) < 10**6

    def test_invert(self) -> None:
        forward = tick_to_rate(100, 18, 18)
        inverted = tick_to_rate(100, 18, 18, invert=True)
        assert abs(forward * inverted // SCALE - SCALE) < 10**3

    def test_decimal_adjustment(self) -> None:
        """Raw parity between 6 and 18 decimal tokens is 1e-12 whole units."""
        assert tick_to_rate(0, 6, 18) == 10**6
        assert tick_to_rate(0, 18, 6) == 10**30


class TestTwapPoolProvider:
    """Test pool TWAP reads."""

    config = AssetPriceConfig(
        source_kind=SourceKind.TWAP_POOL,
        primary_provider=POOL,
        twap_window_minutes=15,
    )

    def setup_pool(self, caller, tick: int) -> None:
        caller.set(POOL, "observe(uint32[])", ((0, tick * 900), (0, 0)))
        caller.set(POOL, "token0()", (TOKEN_A,))
        caller.set(POOL, "token1()", (TOKEN_B,))
        caller.set(TOKEN_A, "decimals()", (18,))
        caller.set(TOKEN_B, "decimals()", (18,))

    @pytest.mark.asyncio
    async def test_observes_configured_window(self, caller) -> None:
        self.setup_pool(caller, 0)
        provider = TwapPoolProvider(caller)

        assert await provider.fetch(query(TOKEN_A, self.config)) == SCALE
        assert caller.calls[0][2] == (("uint32[]", [900, 0]),)

    @pytest.mark.asyncio
    async def test_token0_uses_tick_directly(self, caller) -> None:
        self.setup_pool(caller, 100)
        provider = TwapPoolProvider(caller)
        assert await provider.fetch(query(TOKEN_A, self.config)) == tick_to_rate(100, 18, 18)

    @pytest.mark.asyncio
    async def test_token1_inverts(self, caller) -> None:
        """Pricing token1 should invert the pool ratio."""
        self.setup_pool(caller, 100)
        provider = TwapPoolProvider(caller)
        result = await provider.fetch(query(TOKEN_B, self.config))
        assert result == tick_to_rate(100, 18, 18, invert=True)
        assert result < SCALE

    @pytest.mark.asyncio
    async def test_asset_not_in_pool(self, caller) -> None:
        self.setup_pool(caller, 0)
        provider = TwapPoolProvider(caller)
        with pytest.raises(ProviderValueError, match="neither token"):
            await provider.fetch(query(STETH, self.config))

    @pytest.mark.asyncio
    async def test_wrong_observation_count(self, caller) -> None:
        caller.set(POOL, "observe(uint32[])", ((0,), (0,)))
        provider = TwapPoolProvider(caller)
        with pytest.raises(ProviderValueError, match="observations"):
            await provider.fetch(query(TOKEN_A, self.config))
