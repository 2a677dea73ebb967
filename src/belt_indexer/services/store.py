# services/store.py
"""
State Store - narrow repositories over the indexer tables.

Each entity type exposes exactly three operations:

- ``find_by_key``: explicit lookup result (found / not found / failed)
- ``insert_if_absent``: idempotent insert, returns True only for a new row
- ``update_by_key``: keyed update, returns True if a row changed

Repositories are bound to a SQLAlchemy session; the caller owns the
transaction (see ``DatabaseResource.get_state_session``).
"""

import enum
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Type

from sqlalchemy import func, select, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from belt_indexer.db.models import (
    AccountActivity,
    AccountDeployed,
    PipelineCheckpoint,
    SmartAccount,
    UserOperation,
)


class LookupStatus(enum.Enum):
    FOUND = "found"
    NOT_FOUND = "not_found"
    FAILED = "failed"


@dataclass(frozen=True)
class LookupResult:
    """Outcome of a keyed lookup. ``value`` is only set when found."""

    status: LookupStatus
    value: Any = None
    error: Optional[BaseException] = None

    @classmethod
    def found(cls, value: Any) -> "LookupResult":
        return cls(LookupStatus.FOUND, value=value)

    @classmethod
    def not_found(cls) -> "LookupResult":
        return cls(LookupStatus.NOT_FOUND)

    @classmethod
    def failed(cls, error: BaseException) -> "LookupResult":
        return cls(LookupStatus.FAILED, error=error)

    @property
    def is_found(self) -> bool:
        return self.status is LookupStatus.FOUND

    @property
    def is_failed(self) -> bool:
        return self.status is LookupStatus.FAILED


def _dialect_insert(session: Session, model):
    dialect = session.get_bind().dialect.name
    if dialect == "postgresql":
        return postgresql.insert(model)
    if dialect == "sqlite":
        return sqlite.insert(model)
    raise NotImplementedError(f"Unsupported state store dialect: {dialect}")


class EntityRepository:
    """Keyed access to one table with insert-if-absent semantics"""

    def __init__(self, session: Session, model: Type, key_column: str):
        self.session = session
        self.model = model
        self.key_column = key_column

    def find_by_key(self, key: str) -> LookupResult:
        try:
            row = self.session.get(self.model, key)
        except SQLAlchemyError as exc:
            return LookupResult.failed(exc)
        if row is None:
            return LookupResult.not_found()
        return LookupResult.found(row)

    def insert_if_absent(self, values: Dict[str, Any]) -> bool:
        """
        Insert a row unless one with the same key already exists.

        Returns:
            True if the row was inserted, False if the key was already present
        """
        stmt = (
            _dialect_insert(self.session, self.model)
            .values(**values)
            .on_conflict_do_nothing(index_elements=[self.key_column])
        )
        result = self.session.connection().execute(stmt)
        return result.rowcount == 1

    def update_by_key(self, key: str, values: Dict[str, Any]) -> bool:
        key_attr = getattr(self.model, self.key_column)
        result = self.session.execute(
            update(self.model).where(key_attr == key).values(**values)
        )
        return result.rowcount == 1


class SmartAccountRepository(EntityRepository):
    def __init__(self, session: Session):
        super().__init__(session, SmartAccount, "address")

    def find_for_update(self, address: str) -> Optional[SmartAccount]:
        """Row-locked read used by the aggregation read-modify-write"""
        stmt = (
            select(SmartAccount)
            .where(SmartAccount.address == address)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return self.session.execute(stmt).scalar_one_or_none()


class CheckpointRepository:
    """Ingestion cursor stored next to the derived state"""

    def __init__(self, session: Session):
        self.session = session

    def get(self, pipeline_name: str) -> Optional[PipelineCheckpoint]:
        return self.session.get(PipelineCheckpoint, pipeline_name)

    def save(
        self,
        pipeline_name: str,
        last_processed_block: int,
        last_processed_log_index: int,
        events_processed: int,
        run_duration_seconds: Optional[int] = None,
        run_metadata: Optional[Dict[str, Any]] = None,
    ) -> None:
        now = datetime.now(timezone.utc)
        stmt = _dialect_insert(self.session, PipelineCheckpoint).values(
            pipeline_name=pipeline_name,
            last_processed_at=now,
            last_processed_block=last_processed_block,
            last_processed_log_index=last_processed_log_index,
            total_events_processed=events_processed,
            run_duration_seconds=run_duration_seconds,
            run_metadata=run_metadata,
            created_at=now,
            updated_at=now,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["pipeline_name"],
            set_={
                "last_processed_at": now,
                "last_processed_block": last_processed_block,
                "last_processed_log_index": last_processed_log_index,
                "total_events_processed": PipelineCheckpoint.total_events_processed
                + events_processed,
                "run_duration_seconds": run_duration_seconds,
                "run_metadata": run_metadata,
                "updated_at": now,
            },
        )
        self.session.connection().execute(stmt)


class StateStore:
    """All repositories for one session, plus the read-side queries"""

    def __init__(self, session: Session):
        self.session = session
        self.accounts = SmartAccountRepository(session)
        self.operations = EntityRepository(session, UserOperation, "id")
        self.deployments = EntityRepository(session, AccountDeployed, "id")
        self.activities = EntityRepository(session, AccountActivity, "id")
        self.checkpoints = CheckpointRepository(session)

    # -----------------------------
    # Read side (HTTP API / summaries)
    # -----------------------------

    def count(self, model) -> int:
        return self.session.execute(select(func.count()).select_from(model)).scalar_one()

    def stats(self) -> Dict[str, int]:
        return {
            "totalAccounts": self.count(SmartAccount),
            "totalUserOps": self.count(UserOperation),
            "totalDeployments": self.count(AccountDeployed),
        }

    def recent_activity(self, account: str, limit: int = 20) -> List[AccountActivity]:
        stmt = (
            select(AccountActivity)
            .where(AccountActivity.account == account)
            .order_by(AccountActivity.timestamp.desc(), AccountActivity.id.desc())
            .limit(limit)
        )
        return list(self.session.execute(stmt).scalars())

    def list_operations(
        self,
        sender: Optional[str] = None,
        from_block: Optional[int] = None,
        to_block: Optional[int] = None,
        since: Optional[int] = None,
        until: Optional[int] = None,
        limit: int = 100,
    ) -> List[UserOperation]:
        stmt = select(UserOperation)
        if sender is not None:
            stmt = stmt.where(UserOperation.sender == sender)
        stmt = _apply_ranges(stmt, UserOperation, from_block, to_block, since, until)
        stmt = stmt.order_by(UserOperation.block_number.asc()).limit(limit)
        return list(self.session.execute(stmt).scalars())

    def list_deployments(
        self,
        factory: Optional[str] = None,
        from_block: Optional[int] = None,
        to_block: Optional[int] = None,
        since: Optional[int] = None,
        until: Optional[int] = None,
        limit: int = 100,
    ) -> List[AccountDeployed]:
        stmt = select(AccountDeployed)
        if factory is not None:
            stmt = stmt.where(AccountDeployed.factory == factory)
        stmt = _apply_ranges(stmt, AccountDeployed, from_block, to_block, since, until)
        stmt = stmt.order_by(AccountDeployed.block_number.asc()).limit(limit)
        return list(self.session.execute(stmt).scalars())


def _apply_ranges(stmt, model, from_block, to_block, since, until):
    # Both bounds inclusive
    if from_block is not None:
        stmt = stmt.where(model.block_number >= from_block)
    if to_block is not None:
        stmt = stmt.where(model.block_number <= to_block)
    if since is not None:
        stmt = stmt.where(model.timestamp >= since)
    if until is not None:
        stmt = stmt.where(model.timestamp <= until)
    return stmt
