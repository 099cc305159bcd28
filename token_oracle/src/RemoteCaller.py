"""RemoteCaller: Invoke a named read operation on a remote endpoint.

Providers never talk to web3 or HTTP directly. They go through a RemoteCaller,
which takes an endpoint, an operation and typed arguments and returns a tuple
of typed results, or raises RemoteCallError.

Two transports are provided:
    - Web3RemoteCaller: on-chain contracts addressed by ``0x...``. The
      operation is a function signature (``"decimals()"``) or a 4-byte hex
      selector. Arguments and results are ABI-coded with eth_abi.
    - HttpRemoteCaller: JSON endpoints addressed by ``http(s)://...``. The
      request body is ``{"operation": ..., "args": [...]}`` and the response
      is ``{"result": [...]}``.

RoutingRemoteCaller picks the transport from the shape of the endpoint.

.. code-block:: python

    >>> caller = RoutingRemoteCaller(web3_caller=Web3RemoteCaller(w3))
    >>> (answer,) = await caller.call(feed, "latestAnswer()", returns=("int256",))
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Sequence
from typing import TYPE_CHECKING, Any, ClassVar

import aiohttp
import httpx
from eth_abi import decode as abi_decode
from eth_abi import encode as abi_encode
from eth_abi.exceptions import DecodingError, EncodingError
from web3 import Web3
from web3.exceptions import Web3Exception

if TYPE_CHECKING:
    from web3 import AsyncWeb3

logger = logging.getLogger(__name__)

# Typed call argument: (abi type, value), e.g. ("uint256", 10**18).
CallArg = tuple[str, Any]


class RemoteCallError(Exception):
    """Raised when a remote call cannot be performed or decoded."""

    pass


def resolve_selector(operation: str) -> bytes:
    """Turn an operation into its 4-byte function selector.

    :param operation: Function signature like ``"getRate()"`` or a hex
        selector like ``"0x679aefce"``.
    :returns: 4-byte selector.
    :raises RemoteCallError: If the operation is neither.

    .. code-block:: python

        >>> resolve_selector("decimals()").hex()
        '313ce567'
        >>> resolve_selector("0x313ce567").hex()
        '313ce567'
    """
    op = operation.strip()
    if op.startswith("0x") and len(op) == 10:
        try:
            return bytes.fromhex(op[2:])
        except ValueError as e:
            raise RemoteCallError(f"Invalid selector {operation!r}") from e
    if "(" not in op or not op.endswith(")"):
        raise RemoteCallError(
            f"Invalid operation {operation!r}. Expected 'name(types)' or '0x' + 8 hex chars"
        )
    return bytes(Web3.keccak(text=op)[:4])


def is_http_endpoint(endpoint: str) -> bool:
    """Check whether an endpoint reference is an HTTP(S) URL."""
    return endpoint.startswith("http://") or endpoint.startswith("https://")


class RemoteCaller(ABC):
    """Abstract transport for read-only provider calls."""

    @abstractmethod
    async def call(
        self,
        endpoint: str,
        operation: str,
        args: Sequence[CallArg] = (),
        returns: Sequence[str] = ("uint256",),
    ) -> tuple:
        """Invoke ``operation`` on ``endpoint``.

        :param endpoint: Provider reference.
        :param operation: Operation to invoke.
        :param args: Typed arguments.
        :param returns: ABI types of the returned values.
        :returns: Decoded return values, one per entry in ``returns``.
        :raises RemoteCallError: On transport, revert or decode failure.
        """
        pass

    @abstractmethod
    async def is_reachable(self, endpoint: str) -> bool:
        """Check that the endpoint exists and can serve calls.

        :param endpoint: Provider reference.
        :returns: False for plain accounts, empty contracts or dead URLs.
        """
        pass


class Web3RemoteCaller(RemoteCaller):
    """Performs ``eth_call`` against contracts through an AsyncWeb3 instance.

    :ivar w3: Connected AsyncWeb3 instance.
    """

    def __init__(self, w3: AsyncWeb3) -> None:
        self.w3 = w3

    async def call(
        self,
        endpoint: str,
        operation: str,
        args: Sequence[CallArg] = (),
        returns: Sequence[str] = ("uint256",),
    ) -> tuple:
        selector = resolve_selector(operation)
        try:
            encoded = abi_encode([t for t, _ in args], [v for _, v in args])
            to = Web3.to_checksum_address(endpoint)
        except (EncodingError, ValueError, TypeError) as e:
            raise RemoteCallError(f"Cannot encode call {operation} to {endpoint}: {e}") from e

        try:
            raw = await self.w3.eth.call({"to": to, "data": selector + encoded})
        except (Web3Exception, aiohttp.ClientError, OSError, ValueError) as e:
            raise RemoteCallError(f"eth_call {operation} on {endpoint} failed: {e}") from e

        if not raw:
            raise RemoteCallError(f"Empty response from {operation} on {endpoint}")

        try:
            return tuple(abi_decode(list(returns), bytes(raw)))
        except (DecodingError, ValueError) as e:
            raise RemoteCallError(
                f"Cannot decode {operation} response from {endpoint} as {list(returns)}: {e}"
            ) from e

    async def is_reachable(self, endpoint: str) -> bool:
        try:
            code = await self.w3.eth.get_code(Web3.to_checksum_address(endpoint))
        except (Web3Exception, aiohttp.ClientError, OSError, ValueError) as e:
            logger.warning(f"get_code failed for {endpoint}: {e}")
            return False
        return len(code) > 0


class HttpRemoteCaller(RemoteCaller):
    """Calls JSON price endpoints over HTTP.

    A shared httpx.AsyncClient is reused across instances to avoid
    connection overhead.

    :cvar DEFAULT_TIMEOUT: Default request timeout in seconds.
    :ivar timeout: Request timeout in seconds.
    :ivar headers: Extra request headers (e.g. API keys).
    """

    _shared_client: ClassVar[httpx.AsyncClient | None] = None

    DEFAULT_TIMEOUT = 10.0

    def __init__(
        self, timeout: float | None = None, headers: dict[str, str] | None = None
    ) -> None:
        self.timeout = timeout or self.DEFAULT_TIMEOUT
        self.headers = headers or {}

    @classmethod
    def get_shared_client(cls) -> httpx.AsyncClient:
        """Get or create the shared HTTP client.

        :returns: Shared httpx.AsyncClient instance.
        """
        if cls._shared_client is None or cls._shared_client.is_closed:
            cls._shared_client = httpx.AsyncClient(
                timeout=httpx.Timeout(30.0, connect=10.0),
                limits=httpx.Limits(max_connections=50, max_keepalive_connections=20),
                follow_redirects=True,
            )
        return cls._shared_client

    @classmethod
    async def close_shared_client(cls) -> None:
        """Close the shared HTTP client."""
        if cls._shared_client is not None and not cls._shared_client.is_closed:
            await cls._shared_client.aclose()
            cls._shared_client = None

    async def call(
        self,
        endpoint: str,
        operation: str,
        args: Sequence[CallArg] = (),
        returns: Sequence[str] = ("uint256",),
    ) -> tuple:
        client = self.get_shared_client()
        payload = {"operation": operation, "args": [_jsonable(v) for _, v in args]}
        try:
            response = await client.post(
                endpoint, json=payload, headers=self.headers, timeout=self.timeout
            )
        except httpx.TimeoutException as e:
            raise RemoteCallError(f"Request timeout: {e}") from e
        except httpx.RequestError as e:
            raise RemoteCallError(f"Request failed: {e}") from e

        if not response.is_success:
            logger.debug(
                "HTTP POST %s failed with status %s: %s",
                endpoint,
                response.status_code,
                response.text[:200],
            )
            raise RemoteCallError(f"HTTP {response.status_code}: {response.text[:200]}")

        try:
            result = response.json()["result"]
        except (KeyError, TypeError, ValueError) as e:
            raise RemoteCallError(f"Malformed response from {endpoint}: {e}") from e

        if not isinstance(result, list):
            result = [result]
        if len(result) != len(returns):
            raise RemoteCallError(
                f"Expected {len(returns)} values from {operation}, got {len(result)}"
            )
        try:
            return tuple(_coerce(t, v) for t, v in zip(returns, result, strict=True))
        except (TypeError, ValueError) as e:
            raise RemoteCallError(f"Cannot decode {operation} response: {e}") from e

    async def is_reachable(self, endpoint: str) -> bool:
        client = self.get_shared_client()
        try:
            response = await client.get(endpoint, headers=self.headers, timeout=self.timeout)
        except httpx.RequestError as e:
            logger.warning(f"Endpoint {endpoint} unreachable: {e}")
            return False
        # Calls are POSTed, so 405 on GET still means the route exists.
        if response.status_code >= 400 and response.status_code != 405:
            logger.warning(f"Endpoint {endpoint} answered HTTP {response.status_code}")
            return False
        return True


class RoutingRemoteCaller(RemoteCaller):
    """Dispatches to the HTTP or web3 transport based on the endpoint.

    :ivar web3_caller: Transport for ``0x`` addresses, or None if no chain
        connection is configured.
    :ivar http_caller: Transport for ``http(s)://`` endpoints.
    """

    def __init__(
        self,
        web3_caller: RemoteCaller | None = None,
        http_caller: RemoteCaller | None = None,
    ) -> None:
        self.web3_caller = web3_caller
        self.http_caller = http_caller or HttpRemoteCaller()

    def _select(self, endpoint: str) -> RemoteCaller:
        if is_http_endpoint(endpoint):
            return self.http_caller
        if self.web3_caller is None:
            raise RemoteCallError(f"No chain connection configured for {endpoint}")
        return self.web3_caller

    async def call(
        self,
        endpoint: str,
        operation: str,
        args: Sequence[CallArg] = (),
        returns: Sequence[str] = ("uint256",),
    ) -> tuple:
        return await self._select(endpoint).call(endpoint, operation, args, returns)

    async def is_reachable(self, endpoint: str) -> bool:
        try:
            caller = self._select(endpoint)
        except RemoteCallError:
            return False
        return await caller.is_reachable(endpoint)


def _jsonable(value: Any) -> Any:
    # JSON numbers lose precision past 2**53
    if isinstance(value, int) and not isinstance(value, bool) and abs(value) > 2**53:
        return str(value)
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    return value


def _coerce(abi_type: str, value: Any) -> Any:
    if abi_type.endswith("[]"):
        if not isinstance(value, list):
            raise TypeError(f"Expected list for {abi_type}, got {type(value).__name__}")
        return tuple(_coerce(abi_type[:-2], v) for v in value)
    if abi_type.startswith(("uint", "int")):
        if isinstance(value, bool) or isinstance(value, float):
            raise TypeError(f"Expected integer for {abi_type}, got {value!r}")
        return int(value)
    if abi_type == "bool":
        return bool(value)
    return value
