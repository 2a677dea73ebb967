# CORE ACCOUNT ABSTRACTION TABLES
from sqlalchemy import (
    BigInteger,
    Boolean,
    Column,
    DateTime,
    Enum,
    Index,
    Integer,
    String,
)
from sqlalchemy.types import JSON

from belt_indexer.constants import ENTRY_POINT_VERSION_NAMES
from .base import Base, TimestampMixin, Uint256

entry_point_version = Enum(
    *ENTRY_POINT_VERSION_NAMES,
    name="entry_point_version",
    native_enum=False,
    validate_strings=True,
)


class PipelineCheckpoint(Base, TimestampMixin):
    __tablename__ = "pipeline_checkpoints"

    pipeline_name = Column(String(100), primary_key=True)
    last_processed_at = Column(DateTime(timezone=True), nullable=False)
    last_processed_block = Column(BigInteger, nullable=False, default=0)
    last_processed_log_index = Column(Integer, nullable=False, default=-1)
    total_events_processed = Column(BigInteger, nullable=False, default=0)
    run_duration_seconds = Column(Integer)
    run_metadata = Column(JSON)


class SmartAccount(Base, TimestampMixin):
    """Smart accounts deployed through a Belt factory"""

    __tablename__ = "smart_account"

    address = Column(String(42), primary_key=True)
    chain_id = Column(Integer, nullable=False)
    factory = Column(String(42), nullable=False)
    entry_point_version = Column(entry_point_version, nullable=False)

    # Deployment
    deployed_at_block = Column(BigInteger, nullable=False)
    deployed_at = Column(BigInteger, nullable=False)  # unix seconds

    # Running stats
    total_user_ops = Column(Integer, nullable=False, default=0)
    total_gas_spent = Column(Uint256, nullable=False, default=0)  # wei

    __table_args__ = (
        Index("idx_smart_account_chain", "chain_id"),
        Index("idx_smart_account_factory", "factory"),
    )


class UserOperation(Base, TimestampMixin):
    """Every Belt-related UserOperationEvent"""

    __tablename__ = "user_operation"

    id = Column(String(66), primary_key=True)  # userOpHash
    chain_id = Column(Integer, nullable=False)
    sender = Column(String(42), nullable=False)
    paymaster = Column(String(42), nullable=False)
    nonce = Column(Uint256, nullable=False)
    success = Column(Boolean, nullable=False)
    actual_gas_cost = Column(Uint256, nullable=False)
    actual_gas_used = Column(Uint256, nullable=False)
    entry_point_version = Column(entry_point_version, nullable=False)
    entry_point = Column(String(42), nullable=False)

    # Transaction / block metadata
    tx_hash = Column(String(66), nullable=False)
    block_hash = Column(String(66))
    block_number = Column(BigInteger, nullable=False)
    timestamp = Column(BigInteger, nullable=False)

    __table_args__ = (
        Index("idx_user_operation_chain", "chain_id"),
        Index("idx_user_operation_sender", "sender"),
        Index("idx_user_operation_paymaster", "paymaster"),
        Index("idx_user_operation_block", "block_number"),
        Index("idx_user_operation_timestamp", "timestamp"),
    )


class AccountDeployed(Base, TimestampMixin):
    """AccountDeployed events emitted for Belt factories"""

    __tablename__ = "account_deployed"

    id = Column(String(66), primary_key=True)  # userOpHash of the deploying op
    chain_id = Column(Integer, nullable=False)
    account = Column(String(42), nullable=False)
    factory = Column(String(42), nullable=False)
    paymaster = Column(String(42), nullable=False)
    entry_point_version = Column(entry_point_version, nullable=False)
    entry_point = Column(String(42), nullable=False)

    tx_hash = Column(String(66), nullable=False)
    block_hash = Column(String(66))
    block_number = Column(BigInteger, nullable=False)
    timestamp = Column(BigInteger, nullable=False)

    __table_args__ = (
        Index("idx_account_deployed_chain", "chain_id"),
        Index("idx_account_deployed_account", "account"),
        Index("idx_account_deployed_factory", "factory"),
        Index("idx_account_deployed_block", "block_number"),
        Index("idx_account_deployed_timestamp", "timestamp"),
    )


class AccountActivity(Base, TimestampMixin):
    """Activity log, one row per Belt UserOperation"""

    __tablename__ = "account_activity"

    id = Column(String(80), primary_key=True)  # txHash-logIndex
    chain_id = Column(Integer, nullable=False)
    account = Column(String(42), nullable=False)
    user_op_hash = Column(String(66), nullable=False)
    success = Column(Boolean, nullable=False)
    gas_cost = Column(Uint256, nullable=False)
    entry_point_version = Column(entry_point_version, nullable=False)

    tx_hash = Column(String(66), nullable=False)
    block_hash = Column(String(66))
    block_number = Column(BigInteger, nullable=False)
    timestamp = Column(BigInteger, nullable=False)

    __table_args__ = (
        Index("idx_account_activity_chain", "chain_id"),
        Index("idx_account_activity_account", "account"),
        Index("idx_account_activity_block", "block_number"),
        Index("idx_account_activity_timestamp", "timestamp"),
    )
