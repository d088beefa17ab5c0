"""Metric cards for portfolio and pool figures."""

import streamlit as st

from stakeflow.registry.snapshot_registry import PortfolioTotals
from stakeflow.rewards.formatting import format_reward, format_usd

LOADING_TEXT = "Loading…"


def kpi_row(metrics: list[tuple[str, str | None, str | None]]) -> None:
    """Display a row of KPI cards.

    Args:
        metrics: List of (label, value, delta) tuples.  A value of None is
            still loading and is shown as such, never as zero.
    """
    cols = st.columns(len(metrics))
    for col, (label, value, delta) in zip(cols, metrics):
        with col:
            st.metric(label=label, value=LOADING_TEXT if value is None else value, delta=delta)


def portfolio_kpis(totals: PortfolioTotals, symbol: str) -> None:
    """Totals row; figures stay "loading" until every pool has reported."""
    ready = totals.is_complete
    kpi_row(
        [
            ("Claimable Rewards", format_reward(totals.total_claimable, symbol) if ready else None, None),
            ("Total Earned", format_reward(totals.total_earned, symbol) if ready else None, None),
            ("Rewards Value", format_usd(totals.total_usd_value) if ready else None, None),
            ("Pools", str(totals.pool_count), f"{totals.loading_count} loading" if totals.loading_count else None),
        ]
    )
