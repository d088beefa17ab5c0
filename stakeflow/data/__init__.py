"""Ledger gateways for the multi-pool staking contract."""

from stakeflow.data.gateway_factory import create_gateway

__all__ = ["create_gateway"]
