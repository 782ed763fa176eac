"""Report export — JSON documents and flat CSV tables built from a snapshot.

The flat form has one row per department and per user (plus summary and
distribution rows), all sharing a single column set so the table loads into
any spreadsheet.
"""

from __future__ import annotations

import json
from datetime import datetime
from typing import Any, Optional, Union

import pandas as pd

from analytics_engine.metrics.schemas import DistributionEntry, Snapshot, SnapshotView

ROW_COLUMNS = [
    "section",
    "key",
    "name",
    "department",
    "totalTasks",
    "completedTasks",
    "completionRate",
    "memberCount",
    "value",
]

SnapshotLike = Union[Snapshot, SnapshotView]


class ReportExporter:
    """Serializes snapshots for download."""

    @staticmethod
    def to_json(snapshot: SnapshotLike, *, generated_at: Optional[datetime] = None) -> str:
        document: dict[str, Any] = {"snapshot": snapshot.to_wire()}
        if generated_at is not None:
            document["generatedAt"] = generated_at.isoformat()
        return json.dumps(document, indent=2)

    @staticmethod
    def to_rows(snapshot: SnapshotLike) -> list[dict[str, Any]]:
        """Flatten every group into rows sharing ``ROW_COLUMNS``."""
        rows: list[dict[str, Any]] = []

        if snapshot.summary is not None:
            for key, value in snapshot.summary.to_wire().items():
                rows.append(_row("summary", key=key, name=key, value=value))

        for section, entries in (
            ("status", snapshot.status_distribution),
            ("priority", snapshot.priority_distribution),
            ("role", snapshot.role_distribution),
        ):
            rows.extend(_distribution_rows(section, entries))

        for dept in snapshot.department_rollups or ():
            rows.append(_row(
                "department",
                key=dept.department_id,
                name=dept.name,
                department=dept.name,
                totalTasks=dept.total_tasks,
                completedTasks=dept.completed_tasks,
                completionRate=dept.completion_rate,
                memberCount=dept.member_count,
            ))

        for user in snapshot.user_rankings or ():
            rows.append(_row(
                "user",
                key=user.user_id,
                name=user.name,
                department=user.department,
                totalTasks=user.total_tasks,
                completedTasks=user.completed_tasks,
                completionRate=user.completion_rate,
            ))

        if snapshot.leave_summary is not None:
            rows.extend(_distribution_rows("leave_status", snapshot.leave_summary.by_status))
            rows.extend(_distribution_rows("leave_type", snapshot.leave_summary.by_type))
        return rows

    @staticmethod
    def to_dataframe(snapshot: SnapshotLike) -> pd.DataFrame:
        return pd.DataFrame(ReportExporter.to_rows(snapshot), columns=ROW_COLUMNS)

    @staticmethod
    def to_csv(snapshot: SnapshotLike) -> bytes:
        """CSV bytes (UTF-8, header row, no index)."""
        return ReportExporter.to_dataframe(snapshot).to_csv(index=False).encode("utf-8")

    @staticmethod
    def filename(extension: str, generated_at: datetime) -> str:
        return f"analytics_{generated_at.strftime('%Y%m%d_%H%M%S')}.{extension}"


def _row(section: str, **values: Any) -> dict[str, Any]:
    row = dict.fromkeys(ROW_COLUMNS)
    row["section"] = section
    row.update(values)
    return row


def _distribution_rows(section: str, entries: Optional[list[DistributionEntry]]) -> list[dict[str, Any]]:
    return [_row(section, key=e.key, name=e.name, value=e.value) for e in entries or ()]
