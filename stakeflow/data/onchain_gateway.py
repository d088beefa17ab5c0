"""On-chain ledger gateway driving the staking contract via web3.py."""

from __future__ import annotations

import logging
import time
from typing import Any

from web3.exceptions import TransactionNotFound

from stakeflow.data.constants import WEI
from stakeflow.data.contracts import (
    APPROVE,
    CLAIM_REWARDS,
    EMERGENCY_UNSTAKE,
    STAKE,
    STAKING_ABI,
    TOKEN_ABI,
    UNSTAKE,
    NetworkConfig,
    WriteCall,
)
from stakeflow.data.interfaces import (
    PENDING_RECEIPT,
    LedgerGateway,
    Pool,
    Receipt,
    ReceiptStatus,
    StaticIdentity,
    UserStake,
)
from stakeflow.errors import ReadFailure, WriteRejected

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# TTL cache
# ---------------------------------------------------------------------------

class _TTLCache:
    """Dict-based cache with per-entry TTL expiry."""

    def __init__(self, ttl: float) -> None:
        self._ttl = ttl
        self._store: dict[str, tuple[float, Any]] = {}

    def get(self, key: str) -> Any | None:
        entry = self._store.get(key)
        if entry is None:
            return None
        ts, value = entry
        if time.monotonic() - ts > self._ttl:
            del self._store[key]
            return None
        return value

    def set(self, key: str, value: Any) -> None:
        self._store[key] = (time.monotonic(), value)

    def clear(self) -> None:
        self._store.clear()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _wei_rate_to_float(raw: int) -> float:
    """Convert a 1e18-scaled per-second reward rate to tokens/sec/token."""
    return raw / WEI


def _decode_pool(pool_id: int, raw: tuple) -> Pool:
    """Decode one ``getAllPools`` tuple."""
    return Pool(
        id=pool_id,
        staking_asset_ref=raw[0],
        total_staked=int(raw[1]),
        max_stake_limit=int(raw[2]),
        min_stake_amount=int(raw[3]),
        reward_rate=_wei_rate_to_float(int(raw[4])),
        lock_period=int(raw[5]),
        is_active=bool(raw[6]),
    )


# ---------------------------------------------------------------------------
# OnChainLedgerGateway
# ---------------------------------------------------------------------------

class OnChainLedgerGateway(LedgerGateway):
    """Live gateway to the staking contract via ``web3.AsyncWeb3``.

    Parameters
    ----------
    network : NetworkConfig
        Deployment to talk to (contract addresses, chain id).
    rpc_url : str | None
        JSON-RPC endpoint; defaults to ``network.rpc_url``.
    private_key : str | None
        Key of the signing account.  Without one the gateway is read-only
        and every write raises ``WriteRejected``.
    cache_ttl : float
        Seconds before the cached pool table and fee expire (default 30).
    w3 : Any
        Pre-built ``AsyncWeb3`` instance (mainly for tests).
    """

    def __init__(
        self,
        network: NetworkConfig,
        rpc_url: str | None = None,
        private_key: str | None = None,
        cache_ttl: float = 30.0,
        w3: Any = None,
    ) -> None:
        if not network.staking_address:
            raise ValueError(f"Staking contract is not deployed on {network.name}")

        if w3 is None:
            from web3 import AsyncWeb3

            w3 = AsyncWeb3(AsyncWeb3.AsyncHTTPProvider(rpc_url or network.rpc_url))
        self._w3 = w3
        self._network = network
        self._cache = _TTLCache(cache_ttl)

        self._account = None
        if private_key:
            from eth_account import Account

            self._account = Account.from_key(private_key)

        # Contract objects (no RPC calls here)
        self._staking_address = self._w3.to_checksum_address(network.staking_address)
        self._staking = self._w3.eth.contract(address=self._staking_address, abi=STAKING_ABI)
        self._token_contracts: dict[str, Any] = {}

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    @property
    def account_address(self) -> str | None:
        return self._account.address if self._account is not None else None

    def _token(self, address: str | None) -> Any:
        """Lazily build and cache the ERC-20 contract at *address*."""
        addr = self._w3.to_checksum_address(address or self._network.token_address)
        if addr not in self._token_contracts:
            self._token_contracts[addr] = self._w3.eth.contract(address=addr, abi=TOKEN_ABI)
        return self._token_contracts[addr]

    async def _read(self, label: str, call: Any, **kwargs: Any) -> Any:
        try:
            return await call.call(**kwargs)
        except Exception as exc:
            logger.warning("RPC read failed for %s", label, exc_info=True)
            raise ReadFailure(f"{label}: {exc}") from exc

    async def _send(self, write: WriteCall, contract: Any, *args: Any) -> str:
        """Check, sign and broadcast a write; return the transaction hash."""
        write.check_args(args)
        if self._account is None:
            raise WriteRejected("No signing account configured")

        sender = self._account.address
        try:
            fn = getattr(contract.functions, write.function)(*args)
            nonce = await self._w3.eth.get_transaction_count(sender, "pending")
            tx = await fn.build_transaction(
                {"from": sender, "nonce": nonce, "chainId": self._network.chain_id}
            )
            signed = self._account.sign_transaction(tx)
            tx_hash = await self._w3.eth.send_raw_transaction(signed.raw_transaction)
        except Exception as exc:
            # Gas estimation reverts and RPC refusals both land here
            logger.warning("Write %s%r was rejected", write.function, args, exc_info=True)
            raise WriteRejected(str(exc)) from exc

        handle = self._w3.to_hex(tx_hash)
        logger.info("Broadcast %s%r as %s", write.function, args, handle)
        return handle

    # ------------------------------------------------------------------
    # LedgerGateway interface: reads
    # ------------------------------------------------------------------

    @property
    def spender_address(self) -> str:
        return self._staking_address

    async def get_all_pools(self) -> list[Pool]:
        cached = self._cache.get("pools")
        if cached is not None:
            return cached
        raw = await self._read("getAllPools", self._staking.functions.getAllPools())
        pools = [_decode_pool(i, item) for i, item in enumerate(raw)]
        self._cache.set("pools", pools)
        return pools

    async def get_user_stake(self, pool_id: int, user_id: str) -> UserStake:
        user = self._w3.to_checksum_address(user_id)
        try:
            block = await self._w3.eth.block_number
        except Exception as exc:
            raise ReadFailure(f"block_number: {exc}") from exc
        data = await self._read(
            f"getUserInfo({pool_id})",
            self._staking.functions.getUserInfo(pool_id, user),
            block_identifier=block,
        )
        return UserStake(
            pool_id=pool_id,
            staked_amount=int(data[0]),
            last_stake_timestamp=int(data[1]),
            pending_rewards=int(data[2]),
            total_rewards_claimed=int(data[3]),
            as_of_block=int(block),
        )

    async def get_pending_rewards(self, pool_id: int, user_id: str) -> int:
        user = self._w3.to_checksum_address(user_id)
        value = await self._read(
            f"pendingRewards({pool_id})",
            self._staking.functions.pendingRewards(pool_id, user),
        )
        return int(value)

    async def get_user_staked_pools(self, user_id: str) -> list[int]:
        user = self._w3.to_checksum_address(user_id)
        raw = await self._read("getUserStakedPools", self._staking.functions.getUserStakedPools(user))
        return [int(pool_id) for pool_id in raw]

    async def get_emergency_withdraw_fee(self) -> int:
        cached = self._cache.get("emergency_fee")
        if cached is not None:
            return cached
        fee = int(await self._read("emergencyWithdrawFee", self._staking.functions.emergencyWithdrawFee()))
        self._cache.set("emergency_fee", fee)
        return fee

    # ------------------------------------------------------------------
    # LedgerGateway interface: writes
    # ------------------------------------------------------------------

    async def approve(self, spender: str, amount: int, token: str | None = None) -> str:
        return await self._send(APPROVE, self._token(token), self._w3.to_checksum_address(spender), amount)

    async def stake(self, pool_id: int, amount: int) -> str:
        return await self._send(STAKE, self._staking, pool_id, amount)

    async def unstake(self, pool_id: int, amount: int) -> str:
        return await self._send(UNSTAKE, self._staking, pool_id, amount)

    async def emergency_unstake(self, pool_id: int) -> str:
        return await self._send(EMERGENCY_UNSTAKE, self._staking, pool_id)

    async def claim(self, pool_id: int) -> str:
        return await self._send(CLAIM_REWARDS, self._staking, pool_id)

    async def get_receipt(self, handle: str) -> Receipt:
        try:
            receipt = await self._w3.eth.get_transaction_receipt(handle)
        except TransactionNotFound:
            return PENDING_RECEIPT
        except Exception as exc:
            raise ReadFailure(f"receipt {handle}: {exc}") from exc

        block = receipt.get("blockNumber")
        if receipt.get("status") == 1:
            return Receipt(ReceiptStatus.SUCCESS, block_number=block)
        return Receipt(ReceiptStatus.FAILURE, block_number=block, reason="execution reverted")

    # ------------------------------------------------------------------
    # Session helpers
    # ------------------------------------------------------------------

    async def identity(self) -> StaticIdentity:
        """Identity of the signing account on the node's current chain."""
        try:
            chain_id = int(await self._w3.eth.chain_id)
        except Exception:
            logger.warning("Could not read chain id", exc_info=True)
            chain_id = None
        return StaticIdentity(user_id=self.account_address, chain_id=chain_id)

    def refresh(self) -> None:
        """Invalidate cached pool table and fee, forcing fresh RPC calls."""
        self._cache.clear()

    async def is_connected(self) -> bool:
        try:
            return bool(await self._w3.is_connected())
        except Exception:
            return False
