"""Metric Pydantic v2 schemas — the snapshot consumed by charts and exporters.

Every field is JSON-native so a snapshot serializes losslessly to JSON and to
flat tables (see ``analytics_engine.reports``).
"""

from __future__ import annotations

from typing import Optional

from pydantic import ConfigDict, Field

from analytics_engine.common.models import ApiModel


class _Frozen(ApiModel):
    model_config = ConfigDict(frozen=True)


# ═════════════════════════════════════════════════════════════════════
# Chart entries
# ═════════════════════════════════════════════════════════════════════


class DistributionEntry(_Frozen):
    """One slice of a status / priority / role / leave distribution."""

    key: Optional[str] = Field(None, description="Enum value (absent in some remote payloads)")
    name: str = Field(..., description="Display label")
    value: int = 0


class TrendPoint(_Frozen):
    """Tasks created / completed in one period bucket."""

    period: str = Field(..., description="ISO date (day/week start) or YYYY-MM")
    created: int = 0
    completed: int = 0


class PerformancePoint(_Frozen):
    """Cumulative efficiency for one period bucket."""

    period: str
    efficiency: int = 0
    productivity: int = 0
    engagement: int = 0


# ═════════════════════════════════════════════════════════════════════
# Rollups
# ═════════════════════════════════════════════════════════════════════


class DepartmentRollup(_Frozen):
    """Task completion for a single department."""

    department_id: Optional[str] = None
    name: str
    total_tasks: int = 0
    completed_tasks: int = 0
    completion_rate: int = Field(0, description="Integer percentage 0-100")
    member_count: int = 0


class UserRanking(_Frozen):
    """Task completion for a single assignee."""

    user_id: Optional[str] = None
    name: str
    department: Optional[str] = None
    total_tasks: int = 0
    completed_tasks: int = 0
    completion_rate: int = Field(0, description="Integer percentage 0-100")


# ═════════════════════════════════════════════════════════════════════
# Summary / leave
# ═════════════════════════════════════════════════════════════════════


class SummaryMetrics(_Frozen):
    """Top-level KPI cards."""

    total_tasks: int = 0
    completed_tasks: int = 0
    in_progress_tasks: int = 0
    assigned_tasks: int = 0
    blocked_tasks: int = 0
    completion_rate: int = 0
    on_time_rate: int = 0
    urgent_tasks: int = Field(0, description="Urgent and not completed")
    overdue_tasks: int = Field(0, description="Past due and not completed")
    total_members: int = 0
    active_members: int = 0
    avg_tasks_per_member: int = 0
    engagement_rate: int = Field(0, description="Active members as a percentage")


class LeaveSummary(_Frozen):
    """Leave requests by status and by type."""

    total: int = 0
    by_status: list[DistributionEntry] = Field(default_factory=list)
    by_type: list[DistributionEntry] = Field(default_factory=list)
    approval_rate: int = 0


# ═════════════════════════════════════════════════════════════════════
# Snapshot
# ═════════════════════════════════════════════════════════════════════


class Snapshot(_Frozen):
    """Fully-resolved metric snapshot; derived fresh on every recomputation."""

    summary: SummaryMetrics = Field(default_factory=SummaryMetrics)
    status_distribution: list[DistributionEntry] = Field(default_factory=list)
    priority_distribution: list[DistributionEntry] = Field(default_factory=list)
    role_distribution: list[DistributionEntry] = Field(default_factory=list)
    department_rollups: list[DepartmentRollup] = Field(default_factory=list)
    user_rankings: list[UserRanking] = Field(default_factory=list)
    trend: list[TrendPoint] = Field(default_factory=list)
    performance: list[PerformancePoint] = Field(default_factory=list)
    leave_summary: LeaveSummary = Field(default_factory=LeaveSummary)


class PartialSummary(ApiModel):
    """Summary numbers from the remote API; any field may be missing."""

    total_tasks: Optional[int] = None
    completed_tasks: Optional[int] = None
    in_progress_tasks: Optional[int] = None
    assigned_tasks: Optional[int] = None
    blocked_tasks: Optional[int] = None
    completion_rate: Optional[int] = None
    on_time_rate: Optional[int] = None
    urgent_tasks: Optional[int] = None
    overdue_tasks: Optional[int] = None
    total_members: Optional[int] = None
    active_members: Optional[int] = None
    avg_tasks_per_member: Optional[int] = None
    engagement_rate: Optional[int] = None


class PartialSnapshot(ApiModel):
    """Authoritative (remote) payload; absent groups fall back to local values."""

    summary: Optional[PartialSummary] = None
    status_distribution: Optional[list[DistributionEntry]] = None
    priority_distribution: Optional[list[DistributionEntry]] = None
    role_distribution: Optional[list[DistributionEntry]] = None
    department_rollups: Optional[list[DepartmentRollup]] = None
    user_rankings: Optional[list[UserRanking]] = None
    trend: Optional[list[TrendPoint]] = None
    performance: Optional[list[PerformancePoint]] = None
    leave_summary: Optional[LeaveSummary] = None


class SnapshotView(_Frozen):
    """Snapshot as emitted to renderers; a group is ``None`` when it is in the explicit empty state."""

    summary: Optional[SummaryMetrics] = None
    status_distribution: Optional[list[DistributionEntry]] = None
    priority_distribution: Optional[list[DistributionEntry]] = None
    role_distribution: Optional[list[DistributionEntry]] = None
    department_rollups: Optional[list[DepartmentRollup]] = None
    user_rankings: Optional[list[UserRanking]] = None
    trend: Optional[list[TrendPoint]] = None
    performance: Optional[list[PerformancePoint]] = None
    leave_summary: Optional[LeaveSummary] = None
