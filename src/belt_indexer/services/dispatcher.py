# services/dispatcher.py
"""
Routes decoded EntryPoint logs to their handlers.

One handler is registered per (EntryPoint contract, event name); the EntryPoint
version is bound at registration because a contract address maps to exactly
one version for the lifetime of the deployment.
"""

import functools
import logging
from contextlib import AbstractContextManager
from dataclasses import dataclass
from typing import Callable, Dict, Mapping, Optional, Tuple

from belt_indexer.constants import (
    ACCOUNT_DEPLOYED_EVENT,
    ENTRY_POINTS,
    USER_OPERATION_EVENT,
)
from belt_indexer.services.aggregation import AccountSnapshot, AccountStatsAggregator
from belt_indexer.services.classifier import is_ecosystem_member, is_qualifying_factory
from belt_indexer.services.events import LogEvent
from belt_indexer.services.notifications import (
    DeployInfo,
    Notification,
    UserOpInfo,
    WebhookNotifier,
    notification_scope,
)
from belt_indexer.services.store import StateStore

SessionScope = Callable[[], AbstractContextManager]


@dataclass(frozen=True)
class DispatchResult:
    event_name: str
    retained: bool
    inserted: bool = False
    snapshot: Optional[AccountSnapshot] = None


class EventDispatcher:
    """Classify, persist, aggregate, then hand off to the notifier"""

    def __init__(
        self,
        session_scope: SessionScope,
        logger: logging.Logger,
        notifier: Optional[WebhookNotifier] = None,
        entry_points: Mapping[str, str] = ENTRY_POINTS,
    ):
        self.session_scope = session_scope
        self.logger = logger
        self.notifier = notifier
        self._handlers: Dict[Tuple[str, str], Callable[[LogEvent], DispatchResult]] = {}

        for version, address in entry_points.items():
            self.register(address, USER_OPERATION_EVENT, self.handle_user_operation, version)
            self.register(address, ACCOUNT_DEPLOYED_EVENT, self.handle_account_deployed, version)

    def register(self, contract_address: str, event_name: str, handler, version: str) -> None:
        key = (contract_address.lower(), event_name)
        self._handlers[key] = functools.partial(handler, version=version)

    def dispatch(self, event: LogEvent) -> DispatchResult:
        handler = self._handlers.get((event.address.lower(), event.event_name))
        if handler is None:
            self.logger.debug(
                f"No handler for {event.event_name} from {event.address}, skipping"
            )
            return DispatchResult(event.event_name, retained=False)
        return handler(event)

    # -----------------------------
    # UserOperationEvent
    # -----------------------------

    def handle_user_operation(self, event: LogEvent, version: str) -> DispatchResult:
        user_op_hash = event.hash_arg("userOpHash")
        sender = event.address_arg("sender")
        paymaster = event.optional_address_arg("paymaster")
        gas_cost = event.int_arg("actualGasCost")

        with self.session_scope() as session:
            store = StateStore(session)

            # Filter: only index Belt-related UserOps
            if not is_ecosystem_member(
                sender, paymaster, store.accounts.find_by_key, self.logger
            ):
                return DispatchResult(event.event_name, retained=False)

            operation = {
                "id": user_op_hash,
                "chain_id": event.chain_id,
                "sender": sender,
                "paymaster": paymaster,
                "nonce": event.int_arg("nonce"),
                "success": event.bool_arg("success"),
                "actual_gas_cost": gas_cost,
                "actual_gas_used": event.int_arg("actualGasUsed"),
                "entry_point_version": version,
                "entry_point": event.address.lower(),
                **self._block_columns(event),
            }
            inserted = store.operations.insert_if_absent(operation)

            store.activities.insert_if_absent(
                {
                    "id": event.activity_id,
                    "chain_id": event.chain_id,
                    "account": sender,
                    "user_op_hash": user_op_hash,
                    "success": operation["success"],
                    "gas_cost": gas_cost,
                    "entry_point_version": version,
                    **self._block_columns(event),
                }
            )

            # A redelivered event must not be counted twice
            snapshot = None
            if inserted:
                snapshot = AccountStatsAggregator(store, self.logger).record_operation(
                    sender, gas_cost
                )

        if inserted:
            self._notify(
                Notification(
                    event_id=f"{USER_OPERATION_EVENT}:{user_op_hash}",
                    scope=notification_scope(event.chain_id, event.address),
                    block_number=event.block_number,
                    subject=UserOpInfo(
                        user_op_hash=user_op_hash,
                        sender=sender,
                        paymaster=paymaster,
                        success=operation["success"],
                        actual_gas_cost=gas_cost,
                        actual_gas_used=operation["actual_gas_used"],
                        entry_point_version=version,
                        tx_hash=event.transaction_hash,
                        block_number=event.block_number,
                        timestamp=event.block_timestamp,
                    ),
                    wallet=snapshot,
                )
            )

        return DispatchResult(
            event.event_name, retained=True, inserted=inserted, snapshot=snapshot
        )

    # -----------------------------
    # AccountDeployed
    # -----------------------------

    def handle_account_deployed(self, event: LogEvent, version: str) -> DispatchResult:
        user_op_hash = event.hash_arg("userOpHash")
        account = event.address_arg("sender")
        factory = event.optional_address_arg("factory")
        paymaster = event.optional_address_arg("paymaster")

        # Filter: only index accounts deployed by Belt factories
        if not is_qualifying_factory(factory):
            return DispatchResult(event.event_name, retained=False)

        with self.session_scope() as session:
            store = StateStore(session)

            inserted = store.deployments.insert_if_absent(
                {
                    "id": user_op_hash,
                    "chain_id": event.chain_id,
                    "account": account,
                    "factory": factory,
                    "paymaster": paymaster,
                    "entry_point_version": version,
                    "entry_point": event.address.lower(),
                    **self._block_columns(event),
                }
            )

            # Insert if absent: a replay must never reset advanced counters
            store.accounts.insert_if_absent(
                {
                    "address": account,
                    "chain_id": event.chain_id,
                    "factory": factory,
                    "entry_point_version": version,
                    "deployed_at_block": event.block_number,
                    "deployed_at": event.block_timestamp,
                    "total_user_ops": 0,
                    "total_gas_spent": 0,
                }
            )

        if inserted:
            self._notify(
                Notification(
                    event_id=f"{ACCOUNT_DEPLOYED_EVENT}:{user_op_hash}",
                    scope=notification_scope(event.chain_id, event.address),
                    block_number=event.block_number,
                    subject=DeployInfo(
                        user_op_hash=user_op_hash,
                        account=account,
                        factory=factory,
                        paymaster=paymaster,
                        entry_point_version=version,
                        tx_hash=event.transaction_hash,
                        block_number=event.block_number,
                        timestamp=event.block_timestamp,
                    ),
                )
            )

        return DispatchResult(event.event_name, retained=True, inserted=inserted)

    # -----------------------------
    # Helpers
    # -----------------------------

    @staticmethod
    def _block_columns(event: LogEvent) -> dict:
        return {
            "tx_hash": event.transaction_hash,
            "block_hash": event.block_hash,
            "block_number": event.block_number,
            "timestamp": event.block_timestamp,
        }

    def _notify(self, notification: Notification) -> None:
        if self.notifier is None:
            return
        try:
            self.notifier.submit(notification)
        except Exception as exc:
            # Notification problems never abort ingestion
            self.logger.warning(
                f"Could not queue notification {notification.event_id}: {exc}"
            )
