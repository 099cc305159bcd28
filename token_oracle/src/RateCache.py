"""RateCache: Last-known rate per asset, written through to the ledger.

update_rate() is the only writer of PriceRecords. A record is written only
after the ledger accepted the rate, so the local cache never holds a value
the ledger refused. Callers must hold the engine's mutation lock.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import replace
from typing import TYPE_CHECKING

from .AssetPriceConfig import PriceRecord, normalize_asset_id
from .Ledger import LedgerRejectedError

if TYPE_CHECKING:
    from .Ledger import Ledger

logger = logging.getLogger(__name__)


class InvalidRateError(ValueError):
    """Raised when a rate is zero, negative or not an integer."""

    pass


class PriceUnavailableError(LookupError):
    """Raised when a configured asset has never been priced."""

    pass


def validate_rate(asset_id: str, rate: int) -> None:
    """Reject rates that must never be persisted.

    :raises InvalidRateError: If ``rate`` is not a positive integer.
    """
    if isinstance(rate, bool) or not isinstance(rate, int):
        raise InvalidRateError(f"Rate for {asset_id} must be an integer, got {rate!r}")
    if rate <= 0:
        raise InvalidRateError(f"Rate for {asset_id} must be positive, got {rate}")


class RateCache:
    """Keyed store of PriceRecord by asset id plus the ledger bridge.

    :ivar ledger: External ledger receiving every accepted rate.
    :ivar clock: Returns the current Unix time.
    """

    def __init__(self, ledger: Ledger, clock: Callable[[], float] = time.time) -> None:
        self.ledger = ledger
        self.clock = clock
        self._records: dict[str, PriceRecord] = {}

    def get_record(self, asset_id: str) -> PriceRecord | None:
        """Get a copy of an asset's record, or None if never priced."""
        record = self._records.get(normalize_asset_id(asset_id))
        return replace(record) if record is not None else None

    def cached_rate(self, asset_id: str) -> int:
        """Get the last written rate of an asset, or 0 if never priced."""
        record = self._records.get(normalize_asset_id(asset_id))
        return record.rate if record is not None else 0

    def all_records(self) -> dict[str, PriceRecord]:
        """Get copies of every record."""
        return {k: replace(v) for k, v in self._records.items()}

    async def update_rate(self, asset_id: str, rate: int) -> PriceRecord:
        """Validate a rate, push it to the ledger and record it locally.

        :param asset_id: Asset to update.
        :param rate: New 18-decimal rate.
        :returns: The new record.
        :raises InvalidRateError: If the rate is not positive.
        :raises LedgerRejectedError: If the ledger refuses the rate.
        """
        validate_rate(asset_id, rate)
        key = normalize_asset_id(asset_id)

        if not await self.ledger.check_volatility(key, rate):
            raise LedgerRejectedError(key, "volatility threshold exceeded")
        await self.ledger.update_price(key, rate)

        previous = self._records.get(key)
        record = PriceRecord(rate=rate, last_update_timestamp=self.clock())
        self._records[key] = record

        if previous is None:
            logger.info(f"[{key}] Rate set to {rate}")
        else:
            logger.info(f"[{key}] Rate {previous.rate} -> {rate}")
        return replace(record)
