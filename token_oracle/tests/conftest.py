"""Shared test doubles for the price engine tests."""

from collections.abc import Sequence
from typing import Any

import pytest

from token_oracle.src.AssetPriceConfig import SCALE
from token_oracle.src.RemoteCaller import CallArg, RemoteCallError, RemoteCaller

NOW = 1_700_000_000.0

STETH = "0xae7ab96520de3a18e5e111b5eaab095312d7fe84"
WBTC_LST = "0x8236a87084f8b84306f72007f36f2618a5634494"
FEED = "0x86392dc19c0b719886221c78ab11eb8cf5c52812"
FEED_FALLBACK = "0x536218f9e9eb48863970252233c8f271f554c2d0"
BTC_FEED = "0xf4030086522a5beea4988f8ca5b36dbc97bee88c"
POOL = "0xdc24316b9ae028f1497c275eb9192a3ea0f67022"


class FakeClock:
    """Manually advanced clock."""

    def __init__(self, now: float = NOW) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeRemoteCaller(RemoteCaller):
    """In-memory RemoteCaller.

    Responses are keyed by (endpoint, operation). A response can be a tuple
    of values, an exception instance to raise, or a callable receiving the
    call arguments.
    """

    def __init__(self) -> None:
        self.responses: dict[tuple[str, str], Any] = {}
        self.unreachable: set[str] = set()
        self.calls: list[tuple[str, str, tuple]] = []

    def set(self, endpoint: str, operation: str, response: Any) -> None:
        self.responses[(endpoint.lower(), operation)] = response

    def fail(self, endpoint: str, operation: str, message: str = "execution reverted") -> None:
        self.set(endpoint, operation, RemoteCallError(message))

    def set_feed(
        self,
        endpoint: str,
        answer: int,
        updated_at: float,
        decimals: int = 8,
    ) -> None:
        """Answer latestRoundData() and decimals() like a push feed."""
        self.set(endpoint, "latestRoundData()", (1, answer, int(updated_at), int(updated_at), 1))
        self.set(endpoint, "decimals()", (decimals,))

    def calls_to(self, endpoint: str) -> list[tuple[str, str, tuple]]:
        return [c for c in self.calls if c[0] == endpoint.lower()]

    async def call(
        self,
        endpoint: str,
        operation: str,
        args: Sequence[CallArg] = (),
        returns: Sequence[str] = ("uint256",),
    ) -> tuple:
        key = (endpoint.lower(), operation)
        self.calls.append((key[0], operation, tuple(args)))
        if key not in self.responses:
            raise RemoteCallError(f"No response for {operation} on {endpoint}")
        response = self.responses[key]
        if isinstance(response, BaseException):
            raise response
        if callable(response):
            return response(args)
        return response

    async def is_reachable(self, endpoint: str) -> bool:
        return endpoint.lower() not in self.unreachable


def rate(value: float) -> int:
    """Convert a decimal rate into an 18-decimal integer."""
    return int(round(value * 10**6)) * SCALE // 10**6


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def caller() -> FakeRemoteCaller:
    return FakeRemoteCaller()
