"""Merge/fallback resolver — authoritative remote aggregates over local fallbacks.

Each top-level metric group is resolved independently; ``summary`` is merged
field by field.  A missing authoritative payload (``None``) resolves to the
fallback snapshot unchanged.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any, Callable, Optional, TypeVar

from pydantic import ValidationError

from analytics_engine.common.constants import GroupState, MetricGroup, MetricSource
from analytics_engine.common.formatting import (
    clamp_percent,
    format_label,
    normalize_key,
    percentage,
    to_count,
)
from analytics_engine.merge.schemas import GroupStatus
from analytics_engine.metrics.schemas import (
    DepartmentRollup,
    DistributionEntry,
    LeaveSummary,
    PartialSnapshot,
    PartialSummary,
    PerformancePoint,
    Snapshot,
    SnapshotView,
    SummaryMetrics,
    TrendPoint,
    UserRanking,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Metric group → attribute name on Snapshot / PartialSnapshot
GROUP_FIELDS: dict[MetricGroup, str] = {
    MetricGroup.summary: "summary",
    MetricGroup.status_distribution: "status_distribution",
    MetricGroup.priority_distribution: "priority_distribution",
    MetricGroup.role_distribution: "role_distribution",
    MetricGroup.department_rollups: "department_rollups",
    MetricGroup.user_rankings: "user_rankings",
    MetricGroup.trend: "trend",
    MetricGroup.performance: "performance",
    MetricGroup.leave_summary: "leave_summary",
}

SUMMARY_RATES = frozenset({"completion_rate", "on_time_rate", "engagement_rate"})

# Group source state machine
TRANSITIONS: dict[GroupState, frozenset[GroupState]] = {
    GroupState.no_data: frozenset({GroupState.loading}),
    GroupState.loading: frozenset({GroupState.authoritative, GroupState.fallback, GroupState.error_empty}),
    GroupState.authoritative: frozenset({GroupState.loading}),
    GroupState.fallback: frozenset({GroupState.loading}),
    GroupState.error_empty: frozenset({GroupState.loading}),
}


def advance_state(current: GroupState, target: GroupState) -> GroupState:
    """Move a group's source state; raises ``ValueError`` on an illegal transition."""
    current, target = GroupState(current), GroupState(target)
    if target not in TRANSITIONS[current]:
        raise ValueError(f"Invalid group state transition: {current.value} → {target.value}")
    return target


# ═════════════════════════════════════════════════════════════════════
# Resolver
# ═════════════════════════════════════════════════════════════════════


class MergeResolver:
    """Combines authoritative and fallback snapshots."""

    @staticmethod
    def resolve(authoritative: Optional[PartialSnapshot], fallback: Snapshot) -> Snapshot:
        """Authoritative value where present and non-null, else the fallback value."""
        if authoritative is None:
            return fallback

        update: dict[str, Any] = {}
        for group, name in GROUP_FIELDS.items():
            value = getattr(authoritative, name)
            if value is None:
                continue
            if group == MetricGroup.summary:
                update[name] = MergeResolver.resolve_summary(value, fallback.summary)
            else:
                update[name] = value
        if not update:
            return fallback
        return fallback.model_copy(update=update)

    @staticmethod
    def resolve_summary(authoritative: PartialSummary, fallback: SummaryMetrics) -> SummaryMetrics:
        merged: dict[str, int] = {}
        for name in SummaryMetrics.model_fields:
            value = getattr(authoritative, name)
            merged[name] = value if value is not None else getattr(fallback, name)
        merged["completed_tasks"] = min(merged["completed_tasks"], merged["total_tasks"])
        merged["active_members"] = min(merged["active_members"], merged["total_members"])
        return SummaryMetrics(**merged)

    @staticmethod
    def provenance(
        authoritative: Optional[PartialSnapshot],
        *,
        fallback_available: bool = True,
    ) -> dict[MetricGroup, GroupStatus]:
        """Per-group source tag and terminal state for a resolution."""
        statuses: dict[MetricGroup, GroupStatus] = {}
        for group, name in GROUP_FIELDS.items():
            value = getattr(authoritative, name) if authoritative is not None else None
            if value is None:
                state = GroupState.fallback if fallback_available else GroupState.error_empty
                statuses[group] = GroupStatus(source=MetricSource.computed, state=state)
                continue
            source = MetricSource.live
            if group == MetricGroup.summary:
                present = [getattr(value, f) is not None for f in PartialSummary.model_fields]
                if not all(present):
                    source = MetricSource.mixed if any(present) else MetricSource.computed
            state = GroupState.authoritative if source != MetricSource.computed else GroupState.fallback
            statuses[group] = GroupStatus(source=source, state=state)
        return statuses

    @staticmethod
    def view(snapshot: Snapshot, statuses: Mapping[MetricGroup, GroupStatus]) -> SnapshotView:
        """Blank out the groups that are in the explicit empty state."""
        data = {
            name: getattr(snapshot, name)
            for group, name in GROUP_FIELDS.items()
            if statuses[group].state != GroupState.error_empty
        }
        return SnapshotView(**data)


# ═════════════════════════════════════════════════════════════════════
# Authoritative payload coercion
# ═════════════════════════════════════════════════════════════════════


def coerce_authoritative(raw: Any) -> Optional[PartialSnapshot]:
    """Coerce a loosely-shaped remote payload into a ``PartialSnapshot``.

    Accepts the canonical camelCase/snake_case group names as well as the
    legacy dashboard shapes (``summary``/``overview`` blocks, ``charts``
    sub-objects, ``tasksByStatus`` mappings, ``topPerformers``,
    ``departmentStats``).  A group that cannot be coerced is left absent so
    it falls back locally.  Returns ``None`` for anything that is not a
    mapping.
    """
    if isinstance(raw, PartialSnapshot):
        return raw
    if not isinstance(raw, Mapping):
        return None

    data = raw.get("data") if isinstance(raw.get("data"), Mapping) else raw
    charts = data.get("charts") if isinstance(data.get("charts"), Mapping) else {}

    def pick(keys: tuple[str, ...], chart_keys: tuple[str, ...] = ()) -> Any:
        value = _first(data, *keys)
        return value if value is not None else _first(charts, *chart_keys)

    groups = {
        "summary": _group(_summary, _summary_source(data)),
        "status_distribution": _group(
            _distribution,
            pick(("statusDistribution", "status_distribution", "tasksByStatus"), ("taskStatusData",)),
        ),
        "priority_distribution": _group(
            _distribution,
            pick(("priorityDistribution", "priority_distribution", "tasksByPriority"), ("priorityData",)),
        ),
        "role_distribution": _group(
            _distribution,
            pick(("roleDistribution", "role_distribution"), ("roleData",)),
        ),
        "department_rollups": _group(
            lambda v: _entries(v, _rollup),
            pick(("departmentRollups", "department_rollups", "departmentStats"), ("departmentData",)),
        ),
        "user_rankings": _group(
            lambda v: _entries(v, _ranking),
            pick(("userRankings", "user_rankings", "topPerformers"), ("topPerformers", "userPerformance")),
        ),
        "trend": _group(
            lambda v: _entries(v, _trend_point),
            pick(("trend", "trendData"), ("taskTrendData", "trendData")),
        ),
        "performance": _group(
            lambda v: _entries(v, _performance_point),
            pick(("performance",), ("performanceData",)),
        ),
        "leave_summary": _group(_leave_summary, pick(("leaveSummary", "leave_summary", "leaveStats"))),
    }
    return PartialSnapshot(**groups)


def _group(coerce: Callable[[Any], Optional[T]], value: Any) -> Optional[T]:
    if value is None:
        return None
    try:
        return coerce(value)
    except (TypeError, ValueError, ValidationError) as exc:
        logger.debug("Dropping malformed authoritative group: %s", exc)
        return None


def _summary_source(data: Mapping) -> Optional[Mapping]:
    for key in ("summary", "overview"):
        if isinstance(data.get(key), Mapping):
            return data[key]
    if any(k in data for k in ("totalTasks", "total_tasks", "completionRate", "completion_rate")):
        return data
    return None


_SUMMARY_KEYS: dict[str, tuple[str, ...]] = {
    "total_tasks": ("totalTasks", "total_tasks"),
    "completed_tasks": ("completedTasks", "completed_tasks"),
    "in_progress_tasks": ("inProgressTasks", "in_progress_tasks"),
    "assigned_tasks": ("assignedTasks", "assigned_tasks"),
    "blocked_tasks": ("blockedTasks", "blocked_tasks"),
    "completion_rate": ("completionRate", "completion_rate"),
    "on_time_rate": ("onTimeRate", "on_time_rate"),
    "urgent_tasks": ("urgentTasks", "urgent_tasks"),
    "overdue_tasks": ("overdueTasks", "overdue_tasks", "overdue"),
    "total_members": ("totalMembers", "total_members"),
    "active_members": ("activeMembers", "active_members"),
    "avg_tasks_per_member": ("avgTasksPerMember", "avg_tasks_per_member"),
    "engagement_rate": ("engagementRate", "engagement_rate"),
}


def _summary(source: Mapping) -> PartialSummary:
    if not isinstance(source, Mapping):
        raise TypeError("summary must be a mapping")
    values: dict[str, Optional[int]] = {}
    for name, keys in _SUMMARY_KEYS.items():
        raw = next((source[k] for k in keys if source.get(k) is not None), None)
        if raw is None:
            values[name] = None
        elif name in SUMMARY_RATES:
            values[name] = clamp_percent(raw)
        else:
            values[name] = to_count(raw)
    if values["total_tasks"] is not None and values["completed_tasks"] is not None:
        values["completed_tasks"] = min(values["completed_tasks"], values["total_tasks"])
    return PartialSummary(**values)


def _distribution(value: Any) -> list[DistributionEntry]:
    """``{"completed": 3}`` or ``[{"name": "Completed", "value": 3}]``."""
    if isinstance(value, Mapping):
        return [
            DistributionEntry(key=normalize_key(k), name=format_label(k), value=to_count(v))
            for k, v in value.items()
        ]
    if not isinstance(value, list):
        raise TypeError("distribution must be a mapping or a list")
    entries: list[DistributionEntry] = []
    for item in value:
        if not isinstance(item, Mapping):
            continue
        name = item.get("name") or item.get("label") or item.get("key") or item.get("status")
        key = item.get("key")
        entries.append(DistributionEntry(
            key=normalize_key(key) if key else None,
            name=str(name) if name else format_label(key),
            value=to_count(item.get("value", item.get("count"))),
        ))
    return entries


def _entries(value: Any, coerce: Callable[[Mapping], T]) -> list[T]:
    if not isinstance(value, list):
        raise TypeError("expected a list")
    return [coerce(item) for item in value if isinstance(item, Mapping)]


def _counts(item: Mapping) -> tuple[int, int, int]:
    """``(total, completed, rate)`` from loose rollup keys; completed never exceeds total."""
    total = to_count(_first(item, "totalTasks", "total_tasks", "total", "count", "tasks"))
    completed = min(to_count(_first(item, "completedTasks", "completed_tasks", "completed")), total)
    raw_rate = _first(item, "completionRate", "completion_rate", "rate")
    rate = clamp_percent(raw_rate) if raw_rate is not None else percentage(completed, total)
    return total, completed, rate


def _rollup(item: Mapping) -> DepartmentRollup:
    total, completed, rate = _counts(item)
    department = item.get("department")
    name = _first(item, "name", "departmentName", "department_name")
    if name is None and isinstance(department, Mapping):
        name = department.get("name")
    members = _first(item, "memberCount", "member_count", "members", "totalMembers")
    return DepartmentRollup(
        department_id=_text(_first(item, "departmentId", "department_id", "_id", "id")),
        name=str(name or "Unknown"),
        total_tasks=total,
        completed_tasks=completed,
        completion_rate=rate,
        member_count=len(members) if isinstance(members, list) else to_count(members),
    )


def _ranking(item: Mapping) -> UserRanking:
    total, completed, rate = _counts(item)
    user = item.get("user") if isinstance(item.get("user"), Mapping) else {}
    full_name = " ".join(
        str(part) for part in (user.get("firstName"), user.get("lastName")) if part
    )
    name = _first(item, "name", "userName", "user_name") or full_name or user.get("name") or user.get("email")
    department = item.get("department")
    if isinstance(department, Mapping):
        department = department.get("name")
    user_id = _first(item, "userId", "user_id", "_id", "id") or _first(user, "_id", "id")
    return UserRanking(
        user_id=_text(user_id),
        name=str(name or "Unknown"),
        department=_text(department or item.get("departmentName")),
        total_tasks=total,
        completed_tasks=completed,
        completion_rate=rate,
    )


def _trend_point(item: Mapping) -> TrendPoint:
    return TrendPoint(
        period=str(_first(item, "period", "date", "day", "name", "label") or ""),
        created=to_count(item.get("created")),
        completed=to_count(item.get("completed")),
    )


def _performance_point(item: Mapping) -> PerformancePoint:
    return PerformancePoint(
        period=str(_first(item, "period", "date", "day", "name", "label") or ""),
        efficiency=clamp_percent(item.get("efficiency")),
        productivity=clamp_percent(item.get("productivity")),
        engagement=clamp_percent(item.get("engagement")),
    )


def _leave_summary(value: Any) -> LeaveSummary:
    if not isinstance(value, Mapping):
        raise TypeError("leave summary must be a mapping")
    by_status = _first(value, "byStatus", "by_status")
    by_type = _first(value, "byType", "by_type")
    return LeaveSummary(
        total=to_count(value.get("total")),
        by_status=_distribution(by_status) if by_status is not None else [],
        by_type=_distribution(by_type) if by_type is not None else [],
        approval_rate=clamp_percent(_first(value, "approvalRate", "approval_rate")),
    )


def _first(item: Mapping, *keys: str) -> Any:
    for key in keys:
        if item.get(key) is not None:
            return item[key]
    return None


def _text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None
