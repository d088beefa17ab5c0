"""Network table, contract addresses, minimal ABIs and write-call descriptors."""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Any

# ---------------------------------------------------------------------------
# Networks
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class NetworkConfig:
    """Deployment of the staking system on one chain."""

    name: str
    chain_id: int
    rpc_url: str
    block_explorer: str
    token_address: str
    staking_address: str

    def tx_url(self, tx_hash: str) -> str:
        if not self.block_explorer:
            return ""
        return f"{self.block_explorer}/tx/{tx_hash}"

    def address_url(self, address: str) -> str:
        if not self.block_explorer:
            return ""
        return f"{self.block_explorer}/address/{address}"


NETWORKS: dict[str, NetworkConfig] = {
    "sepolia": NetworkConfig(
        name="Sepolia Testnet",
        chain_id=11_155_111,
        rpc_url="https://ethereum-sepolia-rpc.publicnode.com",
        block_explorer="https://sepolia.etherscan.io",
        token_address="0x5cfeEc46ABeD58db87a1e2e1873efeecE26a6484",
        staking_address="0x3c122D7571F76a32bE8dbC33255E97156f3A9576",
    ),
    "mainnet": NetworkConfig(
        name="Ethereum Mainnet",
        chain_id=1,
        rpc_url="https://ethereum-rpc.publicnode.com",
        block_explorer="https://etherscan.io",
        token_address="",  # Not deployed yet
        staking_address="",
    ),
    "localhost": NetworkConfig(
        name="Localhost",
        chain_id=31_337,
        rpc_url="http://127.0.0.1:8545",
        block_explorer="",
        token_address="",  # Set after local deployment
        staking_address="",
    ),
}

DEFAULT_NETWORK = "sepolia"


def get_network(name: str | None = None) -> NetworkConfig:
    """Resolve a network by name, falling back to ``STAKING_NETWORK``."""
    key = name or os.environ.get("STAKING_NETWORK", DEFAULT_NETWORK)
    try:
        return NETWORKS[key]
    except KeyError:
        raise ValueError(f"Unknown network: {key}") from None


def network_for_chain(chain_id: int) -> NetworkConfig | None:
    for network in NETWORKS.values():
        if network.chain_id == chain_id:
            return network
    return None


# ---------------------------------------------------------------------------
# Typed write-call descriptors
# ---------------------------------------------------------------------------

_UINT_TYPES = {"uint8", "uint40", "uint256"}


@dataclass(frozen=True)
class WriteCall:
    """A state-changing contract call.

    Attributes:
        contract: Contract role the call targets ("token" or "staking").
        function: ABI function name.
        arg_types: Solidity ABI types of the positional arguments.
    """

    contract: str
    function: str
    arg_types: tuple[str, ...]

    def check_args(self, args: tuple[Any, ...]) -> tuple[Any, ...]:
        """Validate *args* against the declared ABI types."""
        if len(args) != len(self.arg_types):
            raise TypeError(
                f"{self.function} expects {len(self.arg_types)} args, got {len(args)}"
            )
        for value, abi_type in zip(args, self.arg_types):
            if abi_type in _UINT_TYPES:
                if isinstance(value, bool) or not isinstance(value, int) or value < 0:
                    raise TypeError(f"{self.function}: {value!r} is not a valid {abi_type}")
            elif abi_type == "address":
                if not isinstance(value, str) or not value.startswith("0x") or len(value) != 42:
                    raise TypeError(f"{self.function}: {value!r} is not an address")
        return args

    def abi(self) -> dict[str, Any]:
        """Single-function ABI fragment for this call."""
        return {
            "inputs": [{"name": f"arg{i}", "type": t} for i, t in enumerate(self.arg_types)],
            "name": self.function,
            "outputs": [],
            "stateMutability": "nonpayable",
            "type": "function",
        }


APPROVE = WriteCall("token", "approve", ("address", "uint256"))
STAKE = WriteCall("staking", "stake", ("uint256", "uint256"))
UNSTAKE = WriteCall("staking", "unstake", ("uint256", "uint256"))
EMERGENCY_UNSTAKE = WriteCall("staking", "emergencyUnstake", ("uint256",))
CLAIM_REWARDS = WriteCall("staking", "claimRewards", ("uint256",))

# ---------------------------------------------------------------------------
# Minimal ABIs: only the functions we call
# ---------------------------------------------------------------------------

_POOL_TUPLE = {
    "components": [
        {"name": "stakingToken", "type": "address"},
        {"name": "totalStaked", "type": "uint256"},
        {"name": "maxStakeLimit", "type": "uint256"},
        {"name": "minStakeAmount", "type": "uint256"},
        {"name": "rewardRate", "type": "uint256"},
        {"name": "lockPeriod", "type": "uint256"},
        {"name": "isActive", "type": "bool"},
        {"name": "totalRewardsDistributed", "type": "uint256"},
    ],
    "name": "",
    "type": "tuple[]",
}

STAKING_ABI = [
    {
        "inputs": [],
        "name": "getAllPools",
        "outputs": [_POOL_TUPLE],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "inputs": [
            {"name": "_poolId", "type": "uint256"},
            {"name": "_user", "type": "address"},
        ],
        "name": "getUserInfo",
        "outputs": [
            {"name": "stakedAmount", "type": "uint256"},
            {"name": "lastStakeTime", "type": "uint256"},
            {"name": "pendingRewards", "type": "uint256"},
            {"name": "totalRewardsClaimed", "type": "uint256"},
        ],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "inputs": [
            {"name": "_poolId", "type": "uint256"},
            {"name": "_user", "type": "address"},
        ],
        "name": "pendingRewards",
        "outputs": [{"name": "", "type": "uint256"}],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "inputs": [{"name": "_user", "type": "address"}],
        "name": "getUserStakedPools",
        "outputs": [{"name": "", "type": "uint256[]"}],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "inputs": [],
        "name": "emergencyWithdrawFee",
        "outputs": [{"name": "", "type": "uint256"}],
        "stateMutability": "view",
        "type": "function",
    },
    STAKE.abi(),
    UNSTAKE.abi(),
    EMERGENCY_UNSTAKE.abi(),
    CLAIM_REWARDS.abi(),
]

TOKEN_ABI = [
    {
        "inputs": [{"name": "account", "type": "address"}],
        "name": "balanceOf",
        "outputs": [{"name": "", "type": "uint256"}],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "inputs": [
            {"name": "owner", "type": "address"},
            {"name": "spender", "type": "address"},
        ],
        "name": "allowance",
        "outputs": [{"name": "", "type": "uint256"}],
        "stateMutability": "view",
        "type": "function",
    },
    APPROVE.abi(),
]
