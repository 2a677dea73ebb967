from typing import Any, Optional

import pandas as pd
from web3 import Web3

from belt_indexer.constants import ZERO_ADDRESS


def normalize_bytes_columns(df: pd.DataFrame) -> pd.DataFrame:
    """Convert all bytes-like columns in a DataFrame to hex strings using Web3.to_hex."""
    for col in df.columns:
        df[col] = df[col].apply(
            lambda x: (
                Web3.to_hex(x) if isinstance(x, (bytes, bytearray, memoryview)) else x
            )
        )
    return df


def normalize_address(value: Any, default: Optional[str] = None) -> str:
    """
    Lowercase hex address. ``None`` falls back to ``default`` (or raises when no
    default is given). Bytes are hex-encoded first.
    """
    if value is None:
        if default is None:
            raise ValueError("Address is required")
        return default.lower()
    if isinstance(value, (bytes, bytearray, memoryview)):
        value = Web3.to_hex(bytes(value))
    # Lowercase first: is_address rejects mixed case with a bad checksum
    value = str(value).lower()
    if not Web3.is_address(value):
        raise ValueError(f"Invalid address: {value}")
    return value


def normalize_optional_address(value: Any) -> str:
    """Missing paymaster / factory means the zero address"""
    return normalize_address(value, default=ZERO_ADDRESS)


def normalize_hash(value: Any) -> str:
    """Lowercase 0x-prefixed hex for tx / block / userOp hashes"""
    if isinstance(value, (bytes, bytearray, memoryview)):
        return Web3.to_hex(bytes(value))
    value = str(value).lower()
    if not value.startswith("0x"):
        value = f"0x{value}"
    return value


def to_int(value: Any) -> int:
    """uint256 values arrive as ints, decimal strings or 0x-hex strings"""
    if isinstance(value, bool):
        raise ValueError(f"Expected integer, got bool {value}")
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        value = value.strip()
        if value.lower().startswith("0x"):
            return int(value, 16)
        return int(value)
    # numpy integers, Decimal
    return int(value)


def to_bool(value: Any) -> bool:
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in ("true", "1"):
            return True
        if lowered in ("false", "0"):
            return False
        raise ValueError(f"Expected boolean, got {value!r}")
    return bool(value)
