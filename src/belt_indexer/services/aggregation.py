# services/aggregation.py
"""
Running per-account statistics (total ops, total gas spent).
"""

import logging
from dataclasses import dataclass
from typing import Optional

from belt_indexer.services.store import StateStore


@dataclass(frozen=True)
class AccountSnapshot:
    """Post-update view of a tracked account, handed to the notifier"""

    address: str
    factory: str
    entry_point_version: str
    deployed_at_block: int
    deployed_at: int
    total_user_ops: int
    total_gas_spent: int


class AccountStatsAggregator:
    """Increments smart_account counters as qualifying operations arrive"""

    def __init__(self, store: StateStore, logger: logging.Logger):
        self.store = store
        self.logger = logger

    def record_operation(self, account: str, gas_cost: int) -> Optional[AccountSnapshot]:
        """
        Add one operation and its gas cost to the account's running totals.

        The read and the write happen under a row lock inside the caller's
        transaction, so sequential or concurrent updates for the same account
        never lose an increment.

        Args:
            account: Smart account address (lowercase)
            gas_cost: Actual gas cost of the operation in wei

        Returns:
            The updated snapshot, or None if the account is not tracked
        """
        if gas_cost < 0:
            raise ValueError(f"Gas cost must be non-negative, got {gas_cost}")

        row = self.store.accounts.find_for_update(account)
        if row is None:
            # Not tracked yet - picked up once its AccountDeployed is indexed
            self.logger.debug(f"Skipping stats for untracked account {account}")
            return None

        total_user_ops = row.total_user_ops + 1
        total_gas_spent = row.total_gas_spent + gas_cost

        self.store.accounts.update_by_key(
            account,
            {"total_user_ops": total_user_ops, "total_gas_spent": total_gas_spent},
        )

        return AccountSnapshot(
            address=row.address,
            factory=row.factory,
            entry_point_version=row.entry_point_version,
            deployed_at_block=row.deployed_at_block,
            deployed_at=row.deployed_at,
            total_user_ops=total_user_ops,
            total_gas_spent=total_gas_spent,
        )
