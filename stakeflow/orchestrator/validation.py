"""Guards checked before any write is issued."""

from __future__ import annotations

import logging

from stakeflow.data.interfaces import IdentityProvider, Pool, UserStake
from stakeflow.errors import BelowMinimumStake, WalletNotConnected, WrongNetwork
from stakeflow.rewards.formatting import from_base_units

logger = logging.getLogger(__name__)


def require_wallet(identity: IdentityProvider) -> str:
    """Return the connected account or raise ``WalletNotConnected``."""
    user = identity.current_user()
    if not user:
        raise WalletNotConnected("Connect a wallet to continue")
    return user


def require_network(identity: IdentityProvider, expected_chain_id: int) -> None:
    """Refuse writes unless the wallet is on the pool's chain."""
    chain_id = identity.current_chain_id()
    if chain_id is None:
        raise WrongNetwork(f"Unknown network; switch to chain {expected_chain_id}")
    if chain_id != expected_chain_id:
        raise WrongNetwork(f"Connected to chain {chain_id}, expected {expected_chain_id}")


def validate_stake_amount(pool: Pool, amount: int, balance: int | None = None) -> None:
    """Check a stake of *amount* base units into *pool*.

    Raises:
        ValueError: Non-positive amount, inactive pool, or more than the
            known balance.
        BelowMinimumStake: Amount under the pool's minimum.
    """
    if amount <= 0:
        raise ValueError("Stake amount must be positive")
    if not pool.is_active:
        raise ValueError(f"Pool {pool.id} is not active")
    if amount < pool.min_stake_amount:
        raise BelowMinimumStake(
            f"Minimum stake for pool {pool.id} is {from_base_units(pool.min_stake_amount):g}"
        )
    if balance is not None and amount > balance:
        raise ValueError("Stake amount exceeds wallet balance")
    if pool.total_staked + amount > pool.max_stake_limit:
        # The ledger decides; a full pool may still accept the write
        logger.warning(
            "Stake of %d into pool %d would exceed its limit (%d of %d staked)",
            amount, pool.id, pool.total_staked, pool.max_stake_limit,
        )


def validate_unstake_amount(stake: UserStake, amount: int) -> None:
    if stake.staked_amount <= 0:
        raise ValueError(f"Nothing staked in pool {stake.pool_id}")
    if amount <= 0:
        raise ValueError("Unstake amount must be positive")
    if amount > stake.staked_amount:
        raise ValueError("Unstake amount exceeds staked amount")
