# services/classifier.py
"""
Ecosystem membership checks.

A UserOp is Belt-related if any of these are true (first match wins):

1. sender is a known Belt executor/utility wallet
2. sender is a known Belt account implementation
3. paymaster is a known Belt executor/utility wallet
4. sender was deployed by a Belt factory (tracked in smart_account)

Rules 1-3 are static allow-lists. Rule 4 asks the state store; a failed lookup
counts as "not tracked" so ingestion keeps progressing on the static rules.
"""

import logging
from typing import Callable, Optional

from belt_indexer.constants import (
    BELT_IMPLEMENTATIONS,
    is_belt_executor,
    is_belt_factory,
)
from belt_indexer.services.store import LookupResult

TrackedAccountLookup = Callable[[str], LookupResult]

logger = logging.getLogger(__name__)


def is_ecosystem_member(
    sender: str,
    paymaster: str,
    lookup_tracked_account: TrackedAccountLookup,
    log: Optional[logging.Logger] = None,
) -> bool:
    """
    Decide whether a UserOperation belongs to the Belt ecosystem.

    Args:
        sender: Account that sent the UserOperation
        paymaster: Paymaster address (zero address when self-sponsored)
        lookup_tracked_account: Keyed lookup into the tracked accounts
        log: Logger for degraded lookups

    Returns:
        True if the operation should be indexed
    """
    sender_lower = sender.lower()

    if is_belt_executor(sender_lower):
        return True

    if sender_lower in BELT_IMPLEMENTATIONS:
        return True

    if is_belt_executor(paymaster):
        return True

    result = lookup_tracked_account(sender_lower)
    if result.is_failed:
        (log or logger).warning(
            f"Tracked account lookup failed for {sender_lower}, "
            f"treating as not tracked: {result.error}"
        )
        return False

    return result.is_found


def is_qualifying_factory(factory: str) -> bool:
    """Only accounts deployed by Belt factories are tracked"""
    return is_belt_factory(factory)
