# services/notifications/render.py
"""
Discord embed builders for indexed Belt events. Pure functions, no I/O.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from belt_indexer.constants import EXPLORER_URL, ZERO_ADDRESS
from belt_indexer.services.aggregation import AccountSnapshot

WEI_PER_PLS = 10**18

SUCCESS_COLOR = 0x00CC66
FAILURE_COLOR = 0xFF3333
DEPLOY_COLOR = 0x5865F2


@dataclass(frozen=True)
class UserOpInfo:
    user_op_hash: str
    sender: str
    paymaster: str
    success: bool
    actual_gas_cost: int
    actual_gas_used: int
    entry_point_version: str
    tx_hash: str
    block_number: int
    timestamp: int


@dataclass(frozen=True)
class DeployInfo:
    user_op_hash: str
    account: str
    factory: str
    paymaster: str
    entry_point_version: str
    tx_hash: str
    block_number: int
    timestamp: int


# -----------------------------
# Formatting helpers
# -----------------------------


def shorten_address(address: Optional[str]) -> str:
    if not address or address == ZERO_ADDRESS:
        return "none"
    return f"{address[:6]}…{address[-4:]}"


def format_pls(wei: int) -> str:
    pls = wei / WEI_PER_PLS
    if pls < 0.001:
        return f"{pls * 1e6:.2f} μPLS"
    if pls < 1:
        return f"{pls:.6f} PLS"
    return f"{pls:.4f} PLS"


def format_timestamp(ts: int) -> str:
    return datetime.fromtimestamp(ts, tz=timezone.utc).isoformat().replace("+00:00", "Z")


def time_since(start_ts: int, now_ts: int) -> str:
    diff = now_ts - start_ts
    if diff < 60:
        return f"{diff}s"
    if diff < 3600:
        return f"{diff // 60}m"
    if diff < 86400:
        return f"{diff // 3600}h"
    return f"{diff // 86400}d"


def _address_link(address: str, explorer_url: str, shorten: bool = True) -> str:
    label = shorten_address(address) if shorten else address
    return f"[`{label}`]({explorer_url}/address/{address})"


def _tx_link(tx_hash: str, explorer_url: str) -> str:
    return f"[`{shorten_address(tx_hash)}`]({explorer_url}/tx/{tx_hash})"


def _paymaster_value(paymaster: str, explorer_url: str) -> str:
    if paymaster == ZERO_ADDRESS:
        return "Self-sponsored"
    return _address_link(paymaster, explorer_url)


# -----------------------------
# Embed builders
# -----------------------------


def build_user_op_embed(
    op: UserOpInfo,
    wallet: Optional[AccountSnapshot] = None,
    explorer_url: str = EXPLORER_URL,
) -> Dict[str, Any]:
    status_emoji = "✅" if op.success else "❌"
    fields: List[Dict[str, Any]] = [
        {"name": "Sender", "value": _address_link(op.sender, explorer_url), "inline": True},
        {
            "name": "Paymaster",
            "value": _paymaster_value(op.paymaster, explorer_url),
            "inline": True,
        },
        {"name": "Gas Cost", "value": format_pls(op.actual_gas_cost), "inline": True},
        {"name": "Tx", "value": _tx_link(op.tx_hash, explorer_url), "inline": True},
        {"name": "Block", "value": str(op.block_number), "inline": True},
        {"name": "EntryPoint", "value": op.entry_point_version, "inline": True},
    ]

    # Wallet state summary if the sender is a tracked account
    if wallet is not None:
        age = time_since(wallet.deployed_at, op.timestamp)
        fields.append(
            {
                "name": "📊 Wallet Summary",
                "value": " • ".join(
                    [
                        f"**Total Ops:** {wallet.total_user_ops}",
                        f"**Total Gas:** {format_pls(wallet.total_gas_spent)}",
                        f"**Account Age:** {age}",
                        f"**Factory:** {wallet.entry_point_version}",
                    ]
                ),
                "inline": False,
            }
        )

    return {
        "title": f"{status_emoji} UserOperation · {op.entry_point_version}",
        "color": SUCCESS_COLOR if op.success else FAILURE_COLOR,
        "fields": fields,
        "timestamp": format_timestamp(op.timestamp),
        "footer": {"text": f"UserOp {shorten_address(op.user_op_hash)}"},
    }


def build_deploy_embed(dep: DeployInfo, explorer_url: str = EXPLORER_URL) -> Dict[str, Any]:
    return {
        "title": f"🚀 New Account Deployed · {dep.entry_point_version}",
        "color": DEPLOY_COLOR,
        "description": "A new Belt smart account has been created on PulseChain.",
        "fields": [
            {
                "name": "Account",
                "value": _address_link(dep.account, explorer_url, shorten=False),
                "inline": False,
            },
            {
                "name": "Factory",
                "value": _address_link(dep.factory, explorer_url),
                "inline": True,
            },
            {
                "name": "Paymaster",
                "value": _paymaster_value(dep.paymaster, explorer_url),
                "inline": True,
            },
            {"name": "EntryPoint", "value": dep.entry_point_version, "inline": True},
            {"name": "Tx", "value": _tx_link(dep.tx_hash, explorer_url), "inline": True},
            {"name": "Block", "value": str(dep.block_number), "inline": True},
        ],
        "timestamp": format_timestamp(dep.timestamp),
        "footer": {"text": f"Deploy {shorten_address(dep.user_op_hash)}"},
    }
