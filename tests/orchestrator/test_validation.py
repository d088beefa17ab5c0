"""Tests for pre-write guards."""

import logging
from dataclasses import replace

import pytest

from stakeflow.data.constants import WEI
from stakeflow.data.interfaces import Pool, StaticIdentity, UserStake
from stakeflow.errors import BelowMinimumStake, WalletNotConnected, WrongNetwork
from stakeflow.orchestrator.validation import (
    require_network,
    require_wallet,
    validate_stake_amount,
    validate_unstake_amount,
)

POOL = Pool(0, "0xtoken", 900 * WEI, 1_000 * WEI, 10 * WEI, 1e-8, 86_400, True)
USER = "0x9965507D1a55bcC2695C58ba16FB37d819B0A4dc"


class TestIdentity:
    def test_connected(self) -> None:
        assert require_wallet(StaticIdentity(USER, 1)) == USER

    def test_not_connected(self) -> None:
        with pytest.raises(WalletNotConnected):
            require_wallet(StaticIdentity(None, 1))

    def test_right_chain(self) -> None:
        require_network(StaticIdentity(USER, 11_155_111), 11_155_111)

    def test_wrong_chain(self) -> None:
        with pytest.raises(WrongNetwork, match="chain 1, expected 11155111"):
            require_network(StaticIdentity(USER, 1), 11_155_111)

    def test_unknown_chain(self) -> None:
        with pytest.raises(WrongNetwork):
            require_network(StaticIdentity(USER, None), 11_155_111)


class TestStakeAmount:
    def test_valid(self) -> None:
        validate_stake_amount(POOL, 10 * WEI, balance=100 * WEI)

    @pytest.mark.parametrize("amount", [0, -1])
    def test_non_positive(self, amount) -> None:
        with pytest.raises(ValueError, match="positive"):
            validate_stake_amount(POOL, amount)

    def test_below_minimum(self) -> None:
        with pytest.raises(BelowMinimumStake, match="Minimum stake for pool 0 is 10"):
            validate_stake_amount(POOL, 10 * WEI - 1)

    def test_inactive(self) -> None:
        with pytest.raises(ValueError, match="not active"):
            validate_stake_amount(replace(POOL, is_active=False), 10 * WEI)

    def test_exceeds_balance(self) -> None:
        with pytest.raises(ValueError, match="balance"):
            validate_stake_amount(POOL, 50 * WEI, balance=20 * WEI)

    def test_over_limit_only_warns(self, caplog) -> None:
        with caplog.at_level(logging.WARNING, logger="stakeflow.orchestrator.validation"):
            validate_stake_amount(POOL, 500 * WEI)
        assert "would exceed its limit" in caplog.text


class TestUnstakeAmount:
    STAKE = UserStake(0, 100 * WEI, 0, 0, 0)

    def test_valid(self) -> None:
        validate_unstake_amount(self.STAKE, 100 * WEI)

    def test_nothing_staked(self) -> None:
        with pytest.raises(ValueError, match="Nothing staked"):
            validate_unstake_amount(UserStake(0, 0, 0, 0, 0), 1)

    def test_too_much(self) -> None:
        with pytest.raises(ValueError, match="exceeds"):
            validate_unstake_amount(self.STAKE, 101 * WEI)

    def test_zero(self) -> None:
        with pytest.raises(ValueError, match="positive"):
            validate_unstake_amount(self.STAKE, 0)
