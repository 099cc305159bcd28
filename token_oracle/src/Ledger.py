"""Ledger: The external accounting ledger that consumes resolved rates.

The ledger owns per-asset metadata (decimals, prior rate, volatility
threshold) and accepts price updates. It may reject an update whose change
versus the prior rate exceeds the asset's volatility threshold.

Implementations:
    - ContractLedger: a LiquidTokenManager-style contract reached through web3.
    - LocalLedger: in-memory ledger for localnet and dry runs.

Volatility thresholds are fixed-point ratios scaled by 10**18
(``5 * 10**16`` is 5%). A threshold of zero disables the check.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, replace
from typing import TYPE_CHECKING

from web3 import Web3
from web3.exceptions import Web3Exception

from .AssetPriceConfig import PRICE_DECIMALS, SCALE, normalize_asset_id
from .ContractUtility import ContractUtility

if TYPE_CHECKING:
    from web3 import AsyncWeb3
    from web3.contract import AsyncContract

    from .GasTracker import GasTracker

logger = logging.getLogger(__name__)


class LedgerRejectedError(Exception):
    """Raised when the ledger refuses a price update.

    :ivar asset_id: Asset whose update was refused.
    :ivar reason: Reason given by the ledger.
    """

    def __init__(self, asset_id: str, reason: str):
        """Initialize the rejection.

        :param asset_id: Asset whose update was refused.
        :param reason: Reason given by the ledger.
        """
        self.asset_id = asset_id
        self.reason = reason
        super().__init__(f"Ledger rejected update for {asset_id}: {reason}")


@dataclass(frozen=True)
class AssetInfo:
    """Ledger-side metadata of an asset.

    :ivar decimals: Token decimals.
    :ivar prior_rate: Rate currently held by the ledger (0 if never set).
    :ivar volatility_threshold: Max relative change per update, scaled by 1e18.
    """

    decimals: int = PRICE_DECIMALS
    prior_rate: int = 0
    volatility_threshold: int = 0


def change_ratio(old_rate: int, new_rate: int) -> int:
    """Relative change between two rates, scaled by 10**18.

    .. code-block:: python

        >>> change_ratio(100, 105)
        50000000000000000
    """
    return abs(new_rate - old_rate) * SCALE // old_rate


def within_volatility(info: AssetInfo, new_rate: int) -> bool:
    """Check whether ``new_rate`` respects the asset's volatility threshold.

    No prior rate or a zero threshold always passes.
    """
    if info.volatility_threshold == 0 or info.prior_rate == 0:
        return True
    return change_ratio(info.prior_rate, new_rate) <= info.volatility_threshold


class Ledger(ABC):
    """Abstract accounting ledger.

    :ivar volatility_threshold_bypass: Skip the local volatility pre-check.
    """

    def __init__(self, volatility_threshold_bypass: bool = False) -> None:
        self.volatility_threshold_bypass = volatility_threshold_bypass

    @abstractmethod
    async def update_price(self, asset_id: str, rate: int) -> None:
        """Push a new rate for an asset.

        :param asset_id: Asset to update.
        :param rate: New 18-decimal rate.
        :raises LedgerRejectedError: If the ledger refuses the update.
        """
        pass

    @abstractmethod
    async def get_asset_info(self, asset_id: str) -> AssetInfo:
        """Fetch ledger metadata for an asset.

        :param asset_id: Asset to look up.
        :returns: AssetInfo of the asset.
        """
        pass

    async def check_volatility(self, asset_id: str, rate: int) -> bool:
        """Pre-empt updates the ledger would reject for volatility.

        Errors while reading asset info pass the check, leaving the final
        decision to the ledger itself.

        :param asset_id: Asset to update.
        :param rate: Candidate rate.
        :returns: True if the update may be submitted.
        """
        if self.volatility_threshold_bypass:
            return True
        try:
            info = await self.get_asset_info(asset_id)
        except (Web3Exception, OSError, ValueError) as e:
            logger.error(f"Volatility check failed for {asset_id}: {e}")
            return True

        passed = within_volatility(info, rate)
        if info.prior_rate and info.volatility_threshold:
            ratio = change_ratio(info.prior_rate, rate)
            logger.info(
                f"Volatility check for {asset_id}: old={info.prior_rate}, new={rate}, "
                f"change={ratio * 100 / SCALE:.2f}%, "
                f"threshold={info.volatility_threshold * 100 / SCALE:.2f}%, passed={passed}"
            )
        return passed


class LocalLedger(Ledger):
    """In-memory ledger enforcing volatility thresholds.

    Unknown assets report default metadata and are registered on their
    first accepted update.

    :ivar updates: Every accepted (asset_id, rate) in order.
    """

    def __init__(
        self,
        assets: dict[str, AssetInfo] | None = None,
        volatility_threshold_bypass: bool = False,
    ) -> None:
        super().__init__(volatility_threshold_bypass)
        self._assets: dict[str, AssetInfo] = {
            normalize_asset_id(k): v for k, v in (assets or {}).items()
        }
        self.updates: list[tuple[str, int]] = []

    def register_asset(
        self,
        asset_id: str,
        decimals: int = PRICE_DECIMALS,
        volatility_threshold: int = 0,
        prior_rate: int = 0,
    ) -> None:
        """Add or replace an asset's metadata."""
        self._assets[normalize_asset_id(asset_id)] = AssetInfo(
            decimals=decimals,
            prior_rate=prior_rate,
            volatility_threshold=volatility_threshold,
        )

    async def get_asset_info(self, asset_id: str) -> AssetInfo:
        return self._assets.get(normalize_asset_id(asset_id), AssetInfo())

    async def update_price(self, asset_id: str, rate: int) -> None:
        if rate <= 0:
            raise LedgerRejectedError(asset_id, f"invalid rate {rate}")
        info = await self.get_asset_info(asset_id)
        # The ledger enforces its bound even when the pre-check is bypassed
        if not within_volatility(info, rate):
            raise LedgerRejectedError(asset_id, "volatility threshold exceeded")
        key = normalize_asset_id(asset_id)
        self._assets[key] = replace(info, prior_rate=rate)
        self.updates.append((key, rate))


class ContractLedger(Ledger):
    """Ledger backed by a LiquidTokenManager contract.

    Uses ``getTokenInfo(address)`` for metadata and sends
    ``updatePrice(address,uint256)`` transactions from the web3 default
    account. A reverted estimate or a receipt with status 0 is a rejection.

    :ivar contract: AsyncContract instance of the manager.
    :ivar gas_tracker: Optional gas accounting for sent transactions.
    """

    def __init__(
        self,
        w3: AsyncWeb3,
        address: str,
        abi: list | None = None,
        gas_tracker: GasTracker | None = None,
        volatility_threshold_bypass: bool = False,
    ) -> None:
        super().__init__(volatility_threshold_bypass)
        self.w3 = w3
        if abi is None:
            abi = ContractUtility.get_abi("LiquidTokenManager")
        self.contract: AsyncContract = w3.eth.contract(
            address=Web3.to_checksum_address(address), abi=abi
        )
        self.gas_tracker = gas_tracker

    async def get_asset_info(self, asset_id: str) -> AssetInfo:
        decimals, price_per_unit, volatility_threshold = (
            await self.contract.functions.getTokenInfo(
                Web3.to_checksum_address(asset_id)
            ).call()
        )
        return AssetInfo(
            decimals=decimals,
            prior_rate=price_per_unit,
            volatility_threshold=volatility_threshold,
        )

    async def update_price(self, asset_id: str, rate: int) -> None:
        token = Web3.to_checksum_address(asset_id)
        try:
            tx_params = await self.contract.functions.updatePrice(
                token, rate
            ).build_transaction({"gasPrice": await self.w3.eth.gas_price})
        except Web3Exception as e:
            raise LedgerRejectedError(asset_id, str(e)) from e

        tx_hash = await self.w3.eth.send_transaction(tx_params)
        tx_receipt = await self.w3.eth.wait_for_transaction_receipt(tx_hash)

        if self.gas_tracker is not None:
            self.gas_tracker.record_transaction(
                tx_hash.hex(),
                int(tx_receipt["gasUsed"]),
                int(tx_receipt.get("effectiveGasPrice", tx_params["gasPrice"])),
                [asset_id],
            )

        if tx_receipt["status"] != 1:
            raise LedgerRejectedError(asset_id, f"transaction {tx_hash.hex()} reverted")
        logger.info(f"Ledger price for {asset_id} set to {rate} (tx {tx_hash.hex()})")
