# belt_indexer/constants.py
"""
Belt ecosystem addresses on PulseChain.

All address sets are lowercase so membership checks can normalise the
candidate with a single ``.lower()``.
"""

from typing import Dict, Optional

# -----------------------------
# EntryPoint versions
# -----------------------------

V0_7 = "v0_7"
V0_8 = "v0_8"
V0_9 = "v0_9"

ENTRY_POINT_VERSION_NAMES = (V0_7, V0_8, V0_9)

# version -> EntryPoint contract address
ENTRY_POINTS: Dict[str, str] = {
    V0_7: "0x0000000071727De22E5E9d8BAf0edAc6f37da032",
    V0_8: "0x4337084D9E255Ff0702461CF8895CE9E3b5Ff108",
    V0_9: "0x433709009B8330FDa32311DF1C2AFA402eD8D009",
}

CHAIN_IDS: Dict[str, int] = {
    "pulsechain": 369,
}

DEFAULT_CHAIN_ID = CHAIN_IDS["pulsechain"]

EXPLORER_URL = "https://scan.pulsechain.com"

# -----------------------------
# Belt allow-lists
# -----------------------------

# SimpleAccountFactory deployments
BELT_FACTORIES = frozenset(
    {
        "0xc03f10876b6f9b2c6927ea8b2ac9552c6bb2ce68",  # v0.7
        "0x13e9ed32155810fdbd067d4522c492d6f68e5944",  # v0.8
        "0xad07bbb7bea77e323c838481f668d22864e9f66e",  # v0.9
    }
)

# Executor & utility wallets
BELT_EXECUTORS = frozenset(
    {
        "0x1071ce6fcc1a042208ccb60d5d417c2ba9c8e750",  # executor1
        "0x668e2e474f7c602e86d256a85a2890a0eadf205f",  # executor2
        "0x1bbc4b7cb2eb49480c200eae411750572e6f30d9",  # utility
    }
)

# Account implementations
BELT_IMPLEMENTATIONS = frozenset(
    {
        "0x28426d752372d68d34340bd94390950dce3c9ec3",  # v0.8
        "0xcc5c9b932f18d8dd08ee2fffef52b09583e247c0",  # v0.9
    }
)

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"

# Event names emitted by the EntryPoint contracts
USER_OPERATION_EVENT = "UserOperationEvent"
ACCOUNT_DEPLOYED_EVENT = "AccountDeployed"


def is_belt_factory(address: str) -> bool:
    """Returns True if the given address is a known Belt factory"""
    return address.lower() in BELT_FACTORIES


def is_belt_executor(address: str) -> bool:
    """Returns True if the given address is a known Belt executor/utility"""
    return address.lower() in BELT_EXECUTORS


def get_entry_point_version(address: str) -> Optional[str]:
    """Returns the EntryPoint version for a given contract address"""
    lower = address.lower()
    for version, entry_point in ENTRY_POINTS.items():
        if entry_point.lower() == lower:
            return version
    return None
