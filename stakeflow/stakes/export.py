"""CSV / JSON export of the displayed stake list."""

from __future__ import annotations

import json
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Sequence

import pandas as pd

from stakeflow.rewards.engine import AggregatedSnapshot, SnapshotStatus


class ExportFormat(str, Enum):
    CSV = "csv"
    JSON = "json"


EXPORT_COLUMNS = [
    "poolId",
    "symbol",
    "amount",
    "pendingRewards",
    "totalEarned",
    "apy",
    "status",
]

MIME_TYPES = {
    ExportFormat.CSV: "text/csv",
    ExportFormat.JSON: "application/json",
}


def to_dataframe(snapshots: Sequence[AggregatedSnapshot]) -> pd.DataFrame:
    """One row per snapshot with the fixed export columns, order preserved."""
    rows = [
        {
            "poolId": s.pool_id,
            "symbol": s.token_symbol,
            "amount": s.staked_amount,
            "pendingRewards": s.available_rewards,
            "totalEarned": s.total_earned,
            "apy": s.apy_percent,
            "status": s.status.value,
        }
        for s in snapshots
    ]
    return pd.DataFrame(rows, columns=EXPORT_COLUMNS)


def generate_summary(snapshots: Sequence[AggregatedSnapshot]) -> dict[str, Any]:
    """Aggregate figures written alongside a JSON export."""
    apys = [s.apy_percent for s in snapshots if s.apy_percent is not None]
    return {
        "totalStakes": len(snapshots),
        "totalStakedAmount": sum(s.staked_amount for s in snapshots),
        "totalPendingRewards": sum(s.available_rewards for s in snapshots),
        "totalEarned": sum(s.total_earned for s in snapshots),
        "averageApy": sum(apys) / len(apys) if apys else None,
        "claimableCount": sum(1 for s in snapshots if s.status is SnapshotStatus.CLAIMABLE),
    }


def export_csv(snapshots: Sequence[AggregatedSnapshot]) -> bytes:
    return to_dataframe(snapshots).to_csv(index=False).encode("utf-8")


def export_json(
    snapshots: Sequence[AggregatedSnapshot],
    include_summary: bool = False,
    now: datetime | None = None,
) -> bytes:
    """JSON array of rows, or an object with ``summary`` and ``stakes``."""
    records = json.loads(to_dataframe(snapshots).to_json(orient="records"))
    if not include_summary:
        return json.dumps(records, indent=2).encode("utf-8")
    payload = {
        "exportDate": (now or datetime.now(timezone.utc)).isoformat(),
        "summary": generate_summary(snapshots),
        "stakes": records,
    }
    return json.dumps(payload, indent=2).encode("utf-8")


def export_snapshots(
    snapshots: Sequence[AggregatedSnapshot],
    fmt: ExportFormat | str = ExportFormat.CSV,
) -> bytes:
    """Serialize the (already filtered and sorted) snapshots."""
    fmt = ExportFormat(fmt)
    if fmt is ExportFormat.CSV:
        return export_csv(snapshots)
    return export_json(snapshots)


def export_filename(fmt: ExportFormat | str, now: datetime | None = None) -> str:
    fmt = ExportFormat(fmt)
    stamp = (now or datetime.now(timezone.utc)).strftime("%Y-%m-%d")
    return f"stakes-export-{stamp}.{fmt.value}"
