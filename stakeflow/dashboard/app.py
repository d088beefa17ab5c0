"""W3E Staking Dashboard: main Streamlit entry point."""

import asyncio
import logging
import os
import time
from pathlib import Path

import streamlit as st

logger = logging.getLogger(__name__)

# Load .env file if present (STAKING_RPC_URL, STAKING_NETWORK, ...)
_env_path = Path(__file__).resolve().parents[2] / ".env"
if _env_path.exists():
    for line in _env_path.read_text().splitlines():
        line = line.strip()
        if line and not line.startswith("#") and "=" in line:
            key, _, value = line.partition("=")
            os.environ.setdefault(key.strip(), value.strip())

# Bridge Streamlit secrets into os.environ so create_gateway can read them
try:
    for key in st.secrets:
        if isinstance(st.secrets[key], str):
            os.environ.setdefault(key, st.secrets[key])
except FileNotFoundError:
    logger.debug("No Streamlit secrets configured")

from stakeflow.dashboard.portfolio import load_portfolio
from stakeflow.dashboard.tabs.actions import render_actions
from stakeflow.dashboard.tabs.rewards import render_rewards
from stakeflow.dashboard.tabs.stakes import render_stakes
from stakeflow.data.constants import DEFAULT_TOKEN_SYMBOL, SECONDS_PER_DAY, WEI
from stakeflow.data.contracts import get_network
from stakeflow.data.gateway_factory import DEMO_ACCOUNT, create_gateway
from stakeflow.data.interfaces import StaticIdentity
from stakeflow.data.onchain_gateway import OnChainLedgerGateway
from stakeflow.data.static_ledger import StaticLedgerGateway
from stakeflow.rewards.formatting import truncate_address


def _seed_demo(gateway: StaticLedgerGateway) -> None:
    """Give the demo account a few positions in different lock states."""
    now = int(time.time())
    gateway.seed_stake(0, DEMO_ACCOUNT, 1_500 * WEI, now - 40 * SECONDS_PER_DAY, accrued=12 * WEI, claimed=3 * WEI)
    gateway.seed_stake(1, DEMO_ACCOUNT, 12_000 * WEI, now - 10 * SECONDS_PER_DAY, accrued=45 * WEI)
    gateway.seed_stake(2, DEMO_ACCOUNT, 0, now - 60 * SECONDS_PER_DAY, claimed=7 * WEI)


def _session_gateway(use_onchain: bool):
    """Gateway and identity, kept across reruns until the data source changes."""
    cached = st.session_state.get("gateway")
    if cached is not None and st.session_state.get("gateway_onchain") == use_onchain:
        return cached

    network = get_network()
    gateway = create_gateway(use_onchain=use_onchain, network=network)
    if isinstance(gateway, OnChainLedgerGateway):
        identity = asyncio.run(gateway.identity())
    else:
        _seed_demo(gateway)
        identity = StaticIdentity(user_id=DEMO_ACCOUNT, chain_id=network.chain_id)

    st.session_state["gateway"] = (gateway, identity, network)
    st.session_state["gateway_onchain"] = use_onchain
    st.session_state.pop("orchestrator", None)
    return gateway, identity, network


def main() -> None:
    st.set_page_config(
        page_title="W3E Staking Dashboard",
        page_icon="🔒",
        layout="wide",
    )

    st.title("W3E Staking Dashboard")

    st.sidebar.header("Data Source")
    use_onchain = st.sidebar.checkbox("Use On-Chain Data", value=False, key="use_onchain")
    gateway, identity, network = _session_gateway(use_onchain)

    if isinstance(gateway, OnChainLedgerGateway):
        if asyncio.run(gateway.is_connected()):
            st.sidebar.success(f"On-chain: connected to {network.name}")
        else:
            st.sidebar.error("On-chain: cannot reach RPC endpoint")
        if st.sidebar.button("Refresh On-Chain Data"):
            gateway.refresh()
            st.rerun()
    else:
        if use_onchain:
            st.sidebar.error("Fell back to simulated ledger")
        st.sidebar.caption("Simulated ledger with demo positions")

    user = identity.current_user()
    if user:
        st.sidebar.caption(f"Account: {truncate_address(user)}")
        st.caption(f"{network.name}: {truncate_address(user)}")
    else:
        st.sidebar.warning("No signing account; read-only")

    st.sidebar.header("Pricing")
    usd_price = st.sidebar.number_input(
        f"{DEFAULT_TOKEN_SYMBOL} price (USD)",
        min_value=0.0,
        value=0.25,
        step=0.01,
        format="%.4f",
    )

    if not user:
        st.info("Connect a signing account (STAKING_PRIVATE_KEY) to view positions.")
        return

    view = asyncio.run(load_portfolio(gateway, user, usd_price, DEFAULT_TOKEN_SYMBOL))

    tab1, tab2, tab3 = st.tabs(["Rewards", "My Stakes", "Stake / Unstake"])

    with tab1:
        render_rewards(view, DEFAULT_TOKEN_SYMBOL)

    with tab2:
        render_stakes(view)

    with tab3:
        render_actions(gateway, identity, network, view)


if __name__ == "__main__":
    main()
