"""Factory for creating the appropriate LedgerGateway."""

from __future__ import annotations

import logging
import os

from stakeflow.data.contracts import NetworkConfig, get_network
from stakeflow.data.interfaces import LedgerGateway
from stakeflow.data.static_ledger import StaticLedgerGateway

logger = logging.getLogger(__name__)

DEMO_ACCOUNT = "0x9965507D1a55bcC2695C58ba16FB37d819B0A4dc"


def create_gateway(
    use_onchain: bool = False,
    rpc_url: str | None = None,
    private_key: str | None = None,
    network: NetworkConfig | None = None,
    cache_ttl: float = 30.0,
) -> LedgerGateway:
    """Create a ledger gateway, selecting simulated or on-chain.

    Parameters
    ----------
    use_onchain : bool
        If True, attempt to create an ``OnChainLedgerGateway``.
    rpc_url : str | None
        JSON-RPC URL.  Falls back to ``STAKING_RPC_URL``, then to the
        network's public endpoint.
    private_key : str | None
        Signing key.  Falls back to ``STAKING_PRIVATE_KEY``; without one the
        on-chain gateway is read-only.
    network : NetworkConfig | None
        Deployment to use (defaults to ``STAKING_NETWORK``).
    cache_ttl : float
        TTL in seconds for the on-chain pool-table cache.

    Returns
    -------
    LedgerGateway
        ``OnChainLedgerGateway`` when requested and available, otherwise a
        ``StaticLedgerGateway`` for a demo account.
    """
    if not use_onchain:
        return StaticLedgerGateway(account=DEMO_ACCOUNT)

    net = network or get_network()
    resolved_url = rpc_url or os.environ.get("STAKING_RPC_URL") or net.rpc_url
    key = private_key or os.environ.get("STAKING_PRIVATE_KEY")
    if not resolved_url:
        logger.warning("On-chain gateway requested but no RPC URL available; using simulated ledger")
        return StaticLedgerGateway(account=DEMO_ACCOUNT)
    if not key:
        logger.info("No STAKING_PRIVATE_KEY set; on-chain gateway will be read-only")

    from stakeflow.data.onchain_gateway import OnChainLedgerGateway

    try:
        return OnChainLedgerGateway(
            network=net,
            rpc_url=resolved_url,
            private_key=key,
            cache_ttl=cache_ttl,
        )
    except ValueError:
        # Contract not deployed on this network, or a malformed key
        logger.warning("Failed to create OnChainLedgerGateway; using simulated ledger", exc_info=True)
        return StaticLedgerGateway(account=DEMO_ACCOUNT)
