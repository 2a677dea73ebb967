# services/events.py
"""
Decoded log events and the upstream feed that delivers them.

The chain sync engine writes decoded EntryPoint logs into the events database
(``decoded_log_events``). This module only reads that table, in
(block_number, log_index) order, after a cursor.
"""

import json
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

import pandas as pd
from sqlalchemy import text
from sqlalchemy.engine import Engine

from belt_indexer.utils.normalizers import (
    normalize_address,
    normalize_bytes_columns,
    normalize_hash,
    normalize_optional_address,
    to_bool,
    to_int,
)
from belt_indexer.utils.sql_queries import fetch_decoded_logs_after_cursor


@dataclass(frozen=True)
class LogEvent:
    """One decoded log with its block / transaction metadata"""

    event_name: str
    args: Mapping[str, Any]
    address: str
    transaction_hash: str
    log_index: int
    block_number: int
    block_timestamp: int
    chain_id: int
    block_hash: Optional[str] = None

    @property
    def activity_id(self) -> str:
        # Unique per log entry, distinguishes multiple ops in one tx
        return f"{self.transaction_hash}-{self.log_index}"

    def _require(self, name: str) -> Any:
        if name not in self.args:
            raise ValueError(
                f"{self.event_name} at {self.activity_id} is missing argument '{name}'"
            )
        return self.args[name]

    def address_arg(self, name: str) -> str:
        return normalize_address(self._require(name))

    def optional_address_arg(self, name: str) -> str:
        return normalize_optional_address(self.args.get(name))

    def hash_arg(self, name: str) -> str:
        return normalize_hash(self._require(name))

    def int_arg(self, name: str) -> int:
        return to_int(self._require(name))

    def bool_arg(self, name: str) -> bool:
        return to_bool(self._require(name))


@dataclass
class Cursor:
    """Last processed position in the feed; (0, -1) means genesis"""

    block_number: int = 0
    log_index: int = -1
    events_processed: int = field(default=0, compare=False)

    def advance(self, event: LogEvent) -> None:
        self.block_number = event.block_number
        self.log_index = event.log_index
        self.events_processed += 1


class EventFeed:
    """Pages through ``decoded_log_events`` for one chain"""

    def __init__(self, engine: Engine, chain_id: int):
        self.engine = engine
        self.chain_id = chain_id

    def fetch_after(self, last_block: int, last_log_index: int, limit: int) -> List[LogEvent]:
        """
        Fetch the next page of events strictly after the cursor.

        Args:
            last_block: Block number of the last processed event
            last_log_index: Log index of the last processed event
            limit: Maximum number of events to return

        Returns:
            Events ordered by (block_number, log_index)
        """
        with self.engine.connect() as conn:
            df = pd.read_sql(
                text(fetch_decoded_logs_after_cursor),
                conn,
                params={
                    "chain_id": self.chain_id,
                    "last_block": last_block,
                    "last_log_index": last_log_index,
                    "limit": limit,
                },
            )

        if df.empty:
            return []

        df = normalize_bytes_columns(df)
        return [self.row_to_event(row) for row in df.to_dict(orient="records")]

    @staticmethod
    def row_to_event(row: Dict[str, Any]) -> LogEvent:
        args = row["args"]
        if isinstance(args, (str, bytes)):
            args = json.loads(args)

        block_hash = row.get("block_hash")
        if block_hash is None or (isinstance(block_hash, float) and pd.isna(block_hash)):
            block_hash = None
        else:
            block_hash = normalize_hash(block_hash)

        return LogEvent(
            event_name=row["event_name"],
            args=args,
            address=normalize_address(row["address"]),
            transaction_hash=normalize_hash(row["transaction_hash"]),
            log_index=int(row["log_index"]),
            block_number=int(row["block_number"]),
            block_timestamp=int(row["block_timestamp"]),
            chain_id=int(row["chain_id"]),
            block_hash=block_hash,
        )
