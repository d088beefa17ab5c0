"""Abstract ledger gateway interface and the raw ledger data model."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum


@dataclass(frozen=True)
class Pool:
    """A staking pool as stored by the ledger program.

    Amounts are integral base units (wei). ``total_staked`` may exceed
    ``max_stake_limit``; the ledger is authoritative and the client only
    reports what it reads.
    """

    id: int
    staking_asset_ref: str  # Token contract address
    total_staked: int
    max_stake_limit: int
    min_stake_amount: int
    reward_rate: float  # Tokens per second per token staked
    lock_period: int  # Seconds
    is_active: bool


@dataclass(frozen=True)
class UserStake:
    """A user's position in one pool. ``staked_amount == 0`` means not staked."""

    pool_id: int
    staked_amount: int
    last_stake_timestamp: int  # Epoch seconds
    pending_rewards: int
    total_rewards_claimed: int
    as_of_block: int | None = None  # Block the read reflects, when known


class ReceiptStatus(str, Enum):
    PENDING = "pending"
    SUCCESS = "success"
    FAILURE = "failure"


@dataclass(frozen=True)
class Receipt:
    """Outcome of a broadcast write."""

    status: ReceiptStatus
    block_number: int | None = None
    reason: str | None = None  # Revert reason, if the node reports one

    @property
    def is_terminal(self) -> bool:
        return self.status is not ReceiptStatus.PENDING


PENDING_RECEIPT = Receipt(ReceiptStatus.PENDING)


class LedgerGateway(ABC):
    """Abstract interface to the staking ledger program.

    Reads may fail independently with :class:`~stakeflow.errors.ReadFailure`.
    Writes return an opaque handle once broadcast, or raise
    :class:`~stakeflow.errors.WriteRejected` if the signer/node refuses.
    """

    # --- Reads -----------------------------------------------------------

    @abstractmethod
    async def get_all_pools(self) -> list[Pool]:
        """Get the full pool table."""

    @abstractmethod
    async def get_user_stake(self, pool_id: int, user_id: str) -> UserStake:
        """Get the user's stake record for a pool."""

    @abstractmethod
    async def get_pending_rewards(self, pool_id: int, user_id: str) -> int:
        """Get rewards accrued but not yet claimed (base units)."""

    @abstractmethod
    async def get_user_staked_pools(self, user_id: str) -> list[int]:
        """Get ids of pools the user has staked into."""

    @abstractmethod
    async def get_emergency_withdraw_fee(self) -> int:
        """Get the early-unstake fee in basis points."""

    # --- Writes ----------------------------------------------------------

    @abstractmethod
    async def approve(self, spender: str, amount: int, token: str | None = None) -> str:
        """Allow *spender* to transfer *amount* of *token* on the user's behalf."""

    @abstractmethod
    async def stake(self, pool_id: int, amount: int) -> str:
        """Deposit *amount* into a pool."""

    @abstractmethod
    async def unstake(self, pool_id: int, amount: int) -> str:
        """Withdraw a matured stake."""

    @abstractmethod
    async def emergency_unstake(self, pool_id: int) -> str:
        """Withdraw the whole position before maturity, paying the fee."""

    @abstractmethod
    async def claim(self, pool_id: int) -> str:
        """Claim pending rewards."""

    @abstractmethod
    async def get_receipt(self, handle: str) -> Receipt:
        """Get the current outcome of a broadcast write."""

    @property
    @abstractmethod
    def spender_address(self) -> str:
        """Address that must be approved before staking (the staking contract)."""


class IdentityProvider(ABC):
    """Source of the connected user and the wallet's active chain."""

    @abstractmethod
    def current_user(self) -> str | None:
        """Connected account, or None when no wallet is connected."""

    @abstractmethod
    def current_chain_id(self) -> int | None:
        """Chain the wallet is on, or None if unknown."""


@dataclass
class StaticIdentity(IdentityProvider):
    """Fixed identity, e.g. a configured signing account."""

    user_id: str | None
    chain_id: int | None

    def current_user(self) -> str | None:
        return self.user_id

    def current_chain_id(self) -> int | None:
        return self.chain_id
