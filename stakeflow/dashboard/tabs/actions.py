"""Stake / Unstake / Claim page driving the operation orchestrator."""

import asyncio

import streamlit as st

from stakeflow.dashboard.components.charts import reward_projection_chart
from stakeflow.dashboard.components.metrics_cards import kpi_row
from stakeflow.dashboard.portfolio import PortfolioView
from stakeflow.data.constants import SECONDS_PER_DAY
from stakeflow.data.contracts import NetworkConfig
from stakeflow.data.interfaces import IdentityProvider, LedgerGateway
from stakeflow.errors import StakingError
from stakeflow.orchestrator.operation import OperationOrchestrator
from stakeflow.orchestrator.states import OperationState, TransactionRecord
from stakeflow.rewards.engine import AggregatedSnapshot, compute_apy, estimate_rewards, pool_status, project_rewards
from stakeflow.rewards.formatting import (
    format_duration,
    format_percentage,
    format_reward,
    from_base_units,
    to_base_units,
)


def _orchestrator(gateway: LedgerGateway, identity: IdentityProvider, network: NetworkConfig) -> OperationOrchestrator:
    orch = st.session_state.get("orchestrator")
    if orch is None or orch.disposed:
        orch = OperationOrchestrator(gateway, identity, network)
        st.session_state["orchestrator"] = orch
    return orch


def _show_record(record: TransactionRecord | None, network: NetworkConfig) -> None:
    if record is None:
        return
    if record.state is OperationState.FAILED:
        st.error(record.error_message)
    elif record.state is OperationState.SUCCESS:
        st.success(f"{record.kind.value} confirmed in block {record.block_number}")
    else:
        st.info(f"{record.kind.value}: {record.state.value}")
    url = record.explorer_url(network)
    if url:
        st.markdown(f"[View transaction]({url})")
    elif record.handle:
        st.code(record.handle)


def _run(coro) -> None:
    """Run one orchestrator step; guard errors are shown, not raised."""
    try:
        asyncio.run(coro)
    except (StakingError, ValueError) as exc:
        st.error(str(exc))
    else:
        st.rerun()


def render_actions(
    gateway: LedgerGateway,
    identity: IdentityProvider,
    network: NetworkConfig,
    view: PortfolioView,
) -> None:
    """Render the staking actions page."""
    st.header("Stake / Unstake")
    orch = _orchestrator(gateway, identity, network)

    st.caption(f"Operation state: **{orch.state.value}**")
    _show_record(orch.record, network)
    if orch.state.is_terminal or orch.state is OperationState.READY_TO_SUBMIT:
        if st.button("Start over"):
            orch.reset()
            st.rerun()

    tab_stake, tab_unstake, tab_claim = st.tabs(["Stake", "Unstake", "Claim"])

    # --- Stake -----------------------------------------------------------
    with tab_stake:
        active = [p for p in view.pools if p.is_active]
        if not active:
            st.info("No active pools.")
        else:
            pool = st.selectbox(
                "Pool",
                active,
                format_func=lambda p: f"Pool {p.id} ({format_percentage(compute_apy(p.reward_rate) or 0.0)} APY, "
                f"{format_duration(p.lock_period)} lock, {pool_status(p)})",
            )
            text = st.text_input("Amount", value=f"{from_base_units(pool.min_stake_amount):g}")
            try:
                amount = to_base_units(text)
            except ValueError:
                st.error("Enter a valid amount")
                amount = 0

            tokens = from_base_units(amount)
            kpi_row(
                [
                    ("Minimum", f"{from_base_units(pool.min_stake_amount):g}", None),
                    ("Lock Period", format_duration(pool.lock_period), None),
                    ("Rewards at Unlock", format_reward(estimate_rewards(tokens, pool)), None),
                ]
            )
            days, rewards = project_rewards(tokens, pool.reward_rate, pool.lock_period * 2)
            st.plotly_chart(
                reward_projection_chart(days, rewards, lock_days=pool.lock_period / SECONDS_PER_DAY),
                use_container_width=True,
            )

            if orch.state is OperationState.READY_TO_SUBMIT:
                st.warning("Approval confirmed. Confirm again to stake.")
                if st.button("Confirm stake", type="primary"):
                    _run(orch.submit_stake())
            elif st.button("Approve", disabled=amount <= 0):
                _run(orch.begin_stake(pool, amount))

    # --- Unstake ---------------------------------------------------------
    with tab_unstake:
        staked = [s for s in view.loaded if s.staked_amount > 0]
        if not staked:
            st.info("Nothing staked.")
        else:
            snap: AggregatedSnapshot = st.selectbox(
                "Position",
                staked,
                format_func=lambda s: f"Pool {s.pool_id}: {format_reward(s.staked_amount, s.token_symbol)}",
            )
            pool = view.pool(snap.pool_id)
            user = identity.current_user()
            stake = asyncio.run(gateway.get_user_stake(snap.pool_id, user))
            quote = asyncio.run(orch.quote_unstake(pool, stake))
            kpi_row(
                [
                    ("Staked", format_reward(from_base_units(quote.staked_amount)), None),
                    ("Pending Rewards", format_reward(from_base_units(quote.pending_rewards)), None),
                    ("Early Exit Fee", format_reward(from_base_units(quote.early_fee)), None),
                    ("You Receive", format_reward(from_base_units(quote.total_receivable)), None),
                ]
            )
            if quote.is_matured:
                st.success("Matured: no fee")
            else:
                st.warning(f"Locked for {format_duration(quote.time_remaining)}; emergency unstake applies the fee")
            if st.button("Unstake"):
                _run(orch.unstake(pool, stake))

    # --- Claim -----------------------------------------------------------
    with tab_claim:
        claimable = [s for s in view.loaded if s.available_rewards > 0]
        if not claimable:
            st.info("No rewards to claim yet.")
        else:
            snap = st.selectbox(
                "Pool",
                claimable,
                format_func=lambda s: f"Pool {s.pool_id}: {format_reward(s.available_rewards, s.token_symbol)}",
                key="claim_pool",
            )
            if st.button("Claim rewards"):
                _run(orch.claim(snap.pool_id))
