"""GasTracker: Gas accounting for ledger update transactions.

Each sent transaction is recorded with its gas use and cost. Totals are kept
in memory and, when a path is configured, persisted as JSON so that the
history survives restarts.
"""

from __future__ import annotations

import json
import logging
import time
from dataclasses import asdict, dataclass, field
from pathlib import Path

from web3 import Web3

logger = logging.getLogger(__name__)


@dataclass
class GasTransaction:
    """One recorded transaction.

    :ivar tx_hash: Transaction hash (hex).
    :ivar timestamp: Unix time the transaction was recorded.
    :ivar gas_used: Gas consumed.
    :ivar gas_price_wei: Effective gas price in wei.
    :ivar cost_wei: ``gas_used * gas_price_wei``.
    :ivar assets_updated: Number of assets the transaction updated.
    """

    tx_hash: str
    timestamp: float
    gas_used: int
    gas_price_wei: int
    cost_wei: int
    assets_updated: int

    @property
    def gas_per_asset(self) -> int:
        """Gas attributed to each updated asset."""
        return self.gas_used // max(1, self.assets_updated)


@dataclass
class GasTracker:
    """Accumulates gas usage of sent transactions.

    :ivar path: Optional JSON file the history is saved to.
    :ivar transactions: Recorded transactions, oldest first.
    """

    path: Path | None = None
    transactions: list[GasTransaction] = field(default_factory=list)

    @property
    def total_gas_used(self) -> int:
        return sum(tx.gas_used for tx in self.transactions)

    @property
    def total_cost_wei(self) -> int:
        return sum(tx.cost_wei for tx in self.transactions)

    @property
    def average_gas_per_tx(self) -> int:
        if not self.transactions:
            return 0
        return self.total_gas_used // len(self.transactions)

    def record_transaction(
        self, tx_hash: str, gas_used: int, gas_price_wei: int, assets: list[str]
    ) -> GasTransaction:
        """Record a sent transaction and persist the history.

        :param tx_hash: Transaction hash.
        :param gas_used: Gas consumed by the transaction.
        :param gas_price_wei: Effective gas price in wei.
        :param assets: Assets updated by the transaction.
        :returns: The recorded entry.
        """
        tx = GasTransaction(
            tx_hash=tx_hash,
            timestamp=time.time(),
            gas_used=gas_used,
            gas_price_wei=gas_price_wei,
            cost_wei=gas_used * gas_price_wei,
            assets_updated=len(assets),
        )
        self.transactions.append(tx)
        logger.debug(
            f"Recorded tx {tx_hash}: gas={gas_used}, "
            f"cost={Web3.from_wei(tx.cost_wei, 'ether')} ETH"
        )
        if self.path is not None:
            self.save_to_file()
        return tx

    def log_stats(self) -> None:
        """Log accumulated usage statistics."""
        logger.info("=== Gas Usage Statistics ===")
        logger.info(f"Total transactions: {len(self.transactions)}")
        logger.info(f"Total gas used: {self.total_gas_used}")
        logger.info(f"Total ETH spent: {Web3.from_wei(self.total_cost_wei, 'ether')}")
        logger.info(f"Average gas per transaction: {self.average_gas_per_tx}")

    def save_to_file(self) -> None:
        """Write the history to ``path``."""
        if self.path is None:
            return
        data = {
            "total_gas_used": self.total_gas_used,
            "total_cost_wei": str(self.total_cost_wei),
            "transactions": [asdict(tx) for tx in self.transactions],
        }
        try:
            self.path.write_text(json.dumps(data, indent=2))
        except OSError as e:
            logger.error(f"Error saving gas tracker data to {self.path}: {e}")

    @classmethod
    def load_from_file(cls, path: Path) -> GasTracker:
        """Load a tracker from ``path``, or start empty if it does not exist.

        :param path: JSON file written by save_to_file().
        :returns: Tracker bound to ``path``.
        """
        tracker = cls(path=path)
        if not path.exists():
            return tracker
        try:
            data = json.loads(path.read_text())
            tracker.transactions = [GasTransaction(**tx) for tx in data["transactions"]]
            logger.info(f"Loaded {len(tracker.transactions)} gas tracker entries from {path}")
        except (OSError, ValueError, KeyError, TypeError) as e:
            logger.error(f"Error loading gas tracker data from {path}: {e}")
        return tracker
