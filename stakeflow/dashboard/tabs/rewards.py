"""Rewards page: portfolio totals, per-pool rewards and pool overview."""

import pandas as pd
import streamlit as st

from stakeflow.dashboard.components.charts import pool_utilization_chart, rewards_breakdown_chart
from stakeflow.dashboard.components.metrics_cards import portfolio_kpis
from stakeflow.dashboard.portfolio import PortfolioView
from stakeflow.rewards.engine import Loading, apy_warning, compute_apy, pool_status
from stakeflow.rewards.formatting import (
    format_duration,
    format_large_number,
    format_percentage,
    format_reward,
    format_usd,
    from_base_units,
)


def render_rewards(view: PortfolioView, symbol: str) -> None:
    """Render the rewards page."""
    st.header("Rewards")

    portfolio_kpis(view.totals, symbol)

    for pool_id, message in view.errors.items():
        st.warning(f"Pool {pool_id}: {message}")

    st.divider()

    st.subheader("Rewards by Pool")
    rows = []
    for pool_id, snap in view.snapshots.items():
        if isinstance(snap, Loading):
            rows.append({"Pool": pool_id, "Status": "loading"})
            continue
        rows.append(
            {
                "Pool": pool_id,
                "Staked": format_reward(snap.staked_amount, symbol),
                "Available": format_reward(snap.available_rewards, symbol),
                "Total Earned": format_reward(snap.total_earned, symbol),
                "APY": format_percentage(snap.apy_percent) if snap.apy_percent is not None else "n/a",
                "Value": format_usd(snap.usd_value),
                "Status": snap.status.value,
                "Unlocks In": "matured" if snap.is_matured else format_duration(snap.time_remaining),
            }
        )
    if rows:
        st.dataframe(pd.DataFrame(rows), use_container_width=True, hide_index=True)
        loaded = view.loaded
        if loaded:
            st.plotly_chart(rewards_breakdown_chart(loaded), use_container_width=True)
    else:
        st.info("No positions yet. Stake into a pool to start earning.")

    st.divider()

    st.subheader("Pools")
    pool_rows = []
    for pool in view.pools:
        apy = compute_apy(pool.reward_rate)
        warning = apy_warning(apy)
        pool_rows.append(
            {
                "Pool": pool.id,
                "APY": format_percentage(apy) if apy is not None else "n/a",
                "Lock": format_duration(pool.lock_period),
                "Min Stake": format_large_number(from_base_units(pool.min_stake_amount)),
                "Total Staked": format_large_number(from_base_units(pool.total_staked)),
                "Limit": format_large_number(from_base_units(pool.max_stake_limit)),
                "Status": pool_status(pool),
                "Note": f"{warning} APY" if warning else "",
            }
        )
    st.dataframe(pd.DataFrame(pool_rows), use_container_width=True, hide_index=True)
    if view.pools:
        st.plotly_chart(pool_utilization_chart(view.pools), use_container_width=True)
