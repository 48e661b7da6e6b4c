"""Registry contract ABI.

The built-in ABI covers the read/write/event surface the oracle uses. A
deployment with a different layout can point ``CONTRACT_ABI_PATH`` at its
own ABI or build artifact.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, List, Optional

from charity_oracle.errors import ConfigurationError

# Function and event names on the deployed registry.
REGISTERED_EVENT = "CharityRegistered"
FN_TOTAL_COUNT = "getTotalCharities"
FN_GET_RECORD = "getCharity"
FN_UPDATE_SCORE = "updateAiScore"
FN_APPROVE = "approveCharity"
FN_REJECT = "rejectCharity"
FN_REQUIRED_APPROVALS = "requiredApprovals"
FN_SET_REQUIRED_APPROVALS = "setRequiredApprovals"
FN_APPROVAL_COUNT = "approvalCount"
FN_APPROVALS = "approvals"
FN_GRANT_ROLE = "grantRole"
FN_HAS_ROLE = "hasRole"


def _fn(name: str, inputs: List[Dict[str, str]], outputs: List[Dict[str, Any]], mutability: str) -> Dict[str, Any]:
    return {
        "inputs": inputs,
        "name": name,
        "outputs": outputs,
        "stateMutability": mutability,
        "type": "function",
    }


_CHARITY_COMPONENTS = [
    {"name": "name", "type": "string"},
    {"name": "description", "type": "string"},
    {"name": "ipfsHash", "type": "string"},
    {"name": "walletAddress", "type": "address"},
    {"name": "aiScore", "type": "uint256"},
    {"name": "status", "type": "uint8"},
    {"name": "registeredAt", "type": "uint256"},
    {"name": "verifiedAt", "type": "uint256"},
    {"name": "verifiedBy", "type": "address"},
    {"name": "totalDonationsReceived", "type": "uint256"},
    {"name": "donorCount", "type": "uint256"},
    {"name": "fundingGoal", "type": "uint256"},
    {"name": "deadline", "type": "uint256"},
    {"name": "isActive", "type": "bool"},
]

_ID = {"name": "_charityId", "type": "uint256"}

REGISTRY_ABI: List[Dict[str, Any]] = [
    {
        "anonymous": False,
        "inputs": [
            {"indexed": True, "name": "charityId", "type": "uint256"},
            {"indexed": True, "name": "registrant", "type": "address"},
            {"indexed": False, "name": "name", "type": "string"},
            {"indexed": False, "name": "timestamp", "type": "uint256"},
        ],
        "name": REGISTERED_EVENT,
        "type": "event",
    },
    _fn(FN_TOTAL_COUNT, [], [{"name": "", "type": "uint256"}], "view"),
    _fn(
        FN_GET_RECORD,
        [_ID],
        [{"components": _CHARITY_COMPONENTS, "name": "charity", "type": "tuple"}],
        "view",
    ),
    _fn(FN_UPDATE_SCORE, [_ID, {"name": "_score", "type": "uint256"}], [], "nonpayable"),
    _fn(FN_APPROVE, [_ID], [], "nonpayable"),
    _fn(FN_REJECT, [_ID], [], "nonpayable"),
    _fn(FN_REQUIRED_APPROVALS, [], [{"name": "", "type": "uint256"}], "view"),
    _fn(FN_SET_REQUIRED_APPROVALS, [{"name": "_newCount", "type": "uint256"}], [], "nonpayable"),
    _fn(FN_APPROVAL_COUNT, [_ID], [{"name": "", "type": "uint256"}], "view"),
    _fn(
        FN_APPROVALS,
        [_ID, {"name": "_verifier", "type": "address"}],
        [{"name": "", "type": "bool"}],
        "view",
    ),
    _fn(
        FN_GRANT_ROLE,
        [{"name": "role", "type": "bytes32"}, {"name": "account", "type": "address"}],
        [],
        "nonpayable",
    ),
    _fn(
        FN_HAS_ROLE,
        [{"name": "role", "type": "bytes32"}, {"name": "account", "type": "address"}],
        [{"name": "", "type": "bool"}],
        "view",
    ),
]


def load_abi(abi_path: Optional[str]) -> List[Dict[str, Any]]:
    """Load an ABI JSON file, or return the built-in ABI when no path is given.

    Accepts either a bare ABI list or a build artifact with an ``abi`` key.
    """
    if not abi_path:
        return REGISTRY_ABI

    path = Path(abi_path).expanduser().resolve()
    if not path.is_file():
        raise ConfigurationError(f"ABI file not found: {path}")
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"ABI file is not valid JSON: {path} - {e}")

    if isinstance(data, dict) and isinstance(data.get("abi"), list):
        return data["abi"]
    if isinstance(data, list):
        return data
    raise ConfigurationError(
        f"ABI file does not contain a valid ABI (expected dict with 'abi' key or list): {path}"
    )
