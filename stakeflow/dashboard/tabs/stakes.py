"""My Stakes page: filter, sort, select and export positions."""

import os
from pathlib import Path

import streamlit as st

from stakeflow.dashboard.portfolio import PortfolioView
from stakeflow.rewards.formatting import format_percentage, format_reward
from stakeflow.stakes.export import MIME_TYPES, ExportFormat, export_filename, to_dataframe
from stakeflow.stakes.filtering import AmountBucket, QuickFilter, StatusFilter
from stakeflow.stakes.preferences import StakesPreferences
from stakeflow.stakes.processor import StakeListProcessor
from stakeflow.stakes.sorting import SortField

_PREFS_PATH = Path(os.environ.get("STAKING_PREFS_PATH", Path.home() / ".stakeflow" / "stakes_prefs.json"))

_QUICK_LABELS = {
    QuickFilter.READY_TO_UNSTAKE: "Ready to unstake",
    QuickFilter.HIGH_REWARDS: "High rewards",
    QuickFilter.LARGE_STAKES: "Large stakes",
    QuickFilter.HIGH_APY: "High APY",
    QuickFilter.TOP_PERFORMERS: "Top performers",
}

_SORT_LABELS = {
    SortField.AMOUNT: "Amount",
    SortField.APY: "APY",
    SortField.REWARDS: "Rewards",
    SortField.EARNED: "Earned",
    SortField.USD_VALUE: "USD",
}


def _processor(view: PortfolioView) -> StakeListProcessor:
    """Processor kept in session state so sort and selection survive reruns."""
    proc = st.session_state.get("stake_list")
    if proc is None:
        prefs = StakesPreferences.load(_PREFS_PATH)
        st.session_state["stake_prefs"] = prefs
        proc = StakeListProcessor.from_preferences(view.snapshots, prefs)
        st.session_state["stake_list"] = proc
    else:
        proc.update(view.snapshots)
    return proc


def render_stakes(view: PortfolioView) -> None:
    """Render the stake list page."""
    st.header("My Stakes")
    proc = _processor(view)
    counts = proc.filter_counts()

    # Filters
    col1, col2, col3 = st.columns(3)
    with col1:
        status = st.selectbox(
            "Status",
            list(StatusFilter),
            index=list(StatusFilter).index(proc.criteria.status),
            format_func=lambda s: f"{s.value.title()} ({counts['status'][s.value]})",
        )
    with col2:
        amount = st.selectbox(
            "Amount",
            list(AmountBucket),
            index=list(AmountBucket).index(proc.criteria.amount),
            format_func=lambda b: f"{b.value.title()} ({counts['amount'][b.value]})",
        )
    with col3:
        search = st.text_input("Search pool or token", value=proc.criteria.search)
    proc.set_filters(status=status, amount=amount, search=search)

    quick_cols = st.columns(len(_QUICK_LABELS) + 1)
    for col, (quick, label) in zip(quick_cols, _QUICK_LABELS.items()):
        with col:
            active = proc.criteria.quick is quick
            if st.button(("✓ " if active else "") + label, key=f"quick-{quick.value}"):
                proc.apply_quick_filter(quick)
                st.rerun()
    with quick_cols[-1]:
        if proc.has_active_filters and st.button("Clear filters"):
            proc.clear_filters()
            st.rerun()

    # Sorting
    sort_cols = st.columns(len(_SORT_LABELS))
    for col, (field, label) in zip(sort_cols, _SORT_LABELS.items()):
        with col:
            arrow = ""
            if proc.sort_state.field is field and proc.sort_state.order is not None:
                arrow = " ↓" if proc.sort_state.order.value == "desc" else " ↑"
            if st.button(label + arrow, key=f"sort-{field.value}"):
                proc.toggle_sort(field)
                st.rerun()

    visible = proc.visible()
    if not visible:
        st.info("No stakes match the current filters.")
        return

    # Table with selection column
    table = to_dataframe(visible)
    table.insert(0, "selected", [s.pool_id in proc.selection for s in visible])
    table["pendingRewards"] = [format_reward(s.available_rewards, s.token_symbol) for s in visible]
    table["apy"] = [format_percentage(s.apy_percent) if s.apy_percent is not None else "n/a" for s in visible]
    edited = st.data_editor(
        table,
        hide_index=True,
        use_container_width=True,
        disabled=[c for c in table.columns if c != "selected"],
        key="stake_table",
    )
    chosen = {int(pid) for pid, sel in zip(edited["poolId"], edited["selected"]) if sel}
    for snap in visible:
        if (snap.pool_id in proc.selection) != (snap.pool_id in chosen):
            proc.toggle_selection(snap.pool_id)

    col1, col2 = st.columns(2)
    with col1:
        if st.button("Select all shown"):
            proc.select_all()
            st.rerun()
    with col2:
        if st.button("Clear selection"):
            proc.clear_selection()
            st.rerun()

    summary = proc.selection_summary()
    if summary.count:
        st.caption(
            f"{summary.count} selected: {summary.total_staked:,.2f} staked, "
            f"{summary.total_pending_rewards:,.4f} pending, "
            f"{summary.claimable_count} claimable, {summary.matured_count} matured"
        )

    # Export
    st.subheader("Export")
    selected_only = st.checkbox("Selected only", value=False, disabled=not summary.count)
    col1, col2 = st.columns(2)
    for col, fmt in zip((col1, col2), ExportFormat):
        with col:
            st.download_button(
                f"Download {fmt.value.upper()}",
                data=proc.export(fmt, selected_only=selected_only),
                file_name=export_filename(fmt),
                mime=MIME_TYPES[fmt],
            )

    with st.expander("Summary"):
        st.json(proc.summary())
    prefs = proc.preferences(st.session_state["stake_prefs"])
    if prefs != st.session_state["stake_prefs"]:
        prefs.save(_PREFS_PATH)
        st.session_state["stake_prefs"] = prefs
