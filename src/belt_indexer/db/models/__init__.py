from .base import Base, TimestampMixin, Uint256
from .accounts import (
    AccountActivity,
    AccountDeployed,
    PipelineCheckpoint,
    SmartAccount,
    UserOperation,
)

__all__ = [
    "Base",
    "TimestampMixin",
    "Uint256",
    "AccountActivity",
    "AccountDeployed",
    "PipelineCheckpoint",
    "SmartAccount",
    "UserOperation",
]
