"""Plotly charts for the staking dashboard."""

import numpy as np
import plotly.graph_objects as go

from stakeflow.data.interfaces import Pool
from stakeflow.rewards.engine import AggregatedSnapshot, compute_apy, pool_utilization


def reward_projection_chart(
    days: np.ndarray,
    rewards: np.ndarray,
    lock_days: float | None = None,
    symbol: str = "W3E",
    title: str = "Projected Rewards",
) -> go.Figure:
    """Cumulative rewards over time for a prospective stake.

    Args:
        days: Time axis in days.
        rewards: Cumulative rewards at each point.
        lock_days: If provided, marks the end of the lock period.
    """
    fig = go.Figure()

    fig.add_trace(
        go.Scatter(
            x=days,
            y=rewards,
            mode="lines",
            name="Rewards",
            line=dict(color="#22c55e", width=2),
            fill="tozeroy",
            fillcolor="rgba(34,197,94,0.15)",
            hovertemplate=f"Day %{{x:.0f}}<br>Rewards: %{{y:,.4f}} {symbol}<extra></extra>",
        )
    )

    if lock_days is not None:
        fig.add_vline(
            x=lock_days,
            line_dash="dash",
            line_color="#6b7280",
            annotation_text=f"Unlock: day {lock_days:.0f}",
        )

    fig.update_layout(
        title=title,
        xaxis_title="Day",
        yaxis_title=f"Rewards ({symbol})",
        template="plotly_dark",
        height=400,
    )

    return fig


def pool_utilization_chart(pools: list[Pool]) -> go.Figure:
    """Bar chart of pool fill level, coloured by capacity."""
    labels = [f"Pool {p.id}" for p in pools]
    util = np.array([pool_utilization(p) * 100 for p in pools])
    colors = ["#ef4444" if u >= 100 else "#f59e0b" if u >= 90 else "#3b82f6" for u in util]
    apys = [compute_apy(p.reward_rate) or 0.0 for p in pools]

    fig = go.Figure(
        go.Bar(
            x=labels,
            y=util,
            marker_color=colors,
            customdata=apys,
            hovertemplate="%{x}<br>Utilization: %{y:.1f}%<br>APY: %{customdata:.2f}%<extra></extra>",
        )
    )

    # Capacity line at 100 %
    fig.add_hline(y=100, line_dash="dash", line_color="#ef4444", annotation_text="Max stake limit")

    fig.update_layout(
        title="Pool Utilization",
        yaxis_title="Utilization (%)",
        template="plotly_dark",
        height=350,
    )

    return fig


def rewards_breakdown_chart(snapshots: list[AggregatedSnapshot]) -> go.Figure:
    """Claimed vs pending rewards per pool (stacked)."""
    labels = [f"Pool {s.pool_id}" for s in snapshots]

    fig = go.Figure()
    fig.add_trace(
        go.Bar(
            x=labels,
            y=[s.total_claimed for s in snapshots],
            name="Claimed",
            marker_color="#3b82f6",
        )
    )
    fig.add_trace(
        go.Bar(
            x=labels,
            y=[s.available_rewards for s in snapshots],
            name="Pending",
            marker_color="#22c55e",
        )
    )

    fig.update_layout(
        title="Rewards by Pool",
        barmode="stack",
        yaxis_title="Rewards",
        template="plotly_dark",
        height=350,
    )

    return fig
