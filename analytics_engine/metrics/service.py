"""Metric calculators — pure functions over filtered records and a population.

All methods are static, following the project convention.  None of them
mutates its inputs; each call returns freshly built schema objects.
"""

from __future__ import annotations

from collections import Counter, OrderedDict
from datetime import date, datetime, timedelta, timezone
from typing import Callable, Hashable, Iterable, Optional, Sequence
from zoneinfo import ZoneInfo

from analytics_engine.common.constants import (
    OVERDUE_KEY,
    PRODUCTIVITY_WEIGHT,
    LeaveStatus,
    TaskPriority,
    TaskStatus,
    TrendGranularity,
    UserRole,
)
from analytics_engine.common.formatting import format_label, percentage, rank, ratio
from analytics_engine.config import settings
from analytics_engine.metrics.schemas import (
    DepartmentRollup,
    DistributionEntry,
    LeaveSummary,
    PerformancePoint,
    Snapshot,
    SummaryMetrics,
    TrendPoint,
    UserRanking,
)
from analytics_engine.records.schemas import Department, Member, Record

# Chart order for sparse distributions
STATUS_ORDER: tuple[TaskStatus, ...] = (
    TaskStatus.completed,
    TaskStatus.in_progress,
    TaskStatus.assigned,
    TaskStatus.blocked,
)
PRIORITY_ORDER: tuple[TaskPriority, ...] = (
    TaskPriority.urgent,
    TaskPriority.high,
    TaskPriority.medium,
    TaskPriority.low,
)
LEAVE_STATUS_ORDER: tuple[LeaveStatus, ...] = tuple(LeaveStatus)
ROLE_ORDER: tuple[UserRole, ...] = tuple(UserRole)


class MetricCalculator:
    """Stateless metric calculators."""

    # ═════════════════════════════════════════════════════════════════
    # Distributions
    # ═════════════════════════════════════════════════════════════════

    @staticmethod
    def distribution(
        values: Iterable[Optional[Hashable]],
        order: Sequence[Hashable],
        *,
        categories: Optional[Sequence[Hashable]] = None,
        label: Callable[[Hashable], str] = format_label,
    ) -> list[DistributionEntry]:
        """Group-count *values*.

        Sparse by default (zero categories omitted, in *order*, unknown values
        after in first-seen order).  With *categories*, exactly those entries
        are returned, zero-filled.
        """
        counts = Counter(v for v in values if v is not None)
        if categories is not None:
            keys = list(categories)
        else:
            keys = [k for k in order if counts.get(k)]
            keys += [k for k in counts if k not in keys]
        return [
            DistributionEntry(key=_key_text(k), name=label(k), value=counts.get(k, 0))
            for k in keys
        ]

    @staticmethod
    def status_distribution(
        records: Sequence[Record],
        *,
        categories: Optional[Sequence[TaskStatus]] = None,
        include_overdue: bool = False,
        now: Optional[datetime] = None,
    ) -> list[DistributionEntry]:
        """Counts per task status; the status entries always sum to ``len(records)``.

        With *include_overdue* an ``overdue`` entry is appended when positive.
        It is an overlay, not a partition: overdue tasks are also counted under
        their own status, so consumers summing the distribution must skip the
        ``overdue`` key.
        """
        entries = MetricCalculator.distribution(
            (r.status for r in records), STATUS_ORDER, categories=categories,
        )
        if include_overdue and now is not None:
            overdue = MetricCalculator.overdue_count(records, now)
            if overdue > 0:
                entries.append(
                    DistributionEntry(key=OVERDUE_KEY, name=format_label(OVERDUE_KEY), value=overdue)
                )
        return entries

    @staticmethod
    def priority_distribution(
        records: Sequence[Record],
        *,
        categories: Optional[Sequence[TaskPriority]] = None,
    ) -> list[DistributionEntry]:
        return MetricCalculator.distribution(
            (r.priority for r in records), PRIORITY_ORDER, categories=categories,
        )

    @staticmethod
    def role_distribution(members: Sequence[Member]) -> list[DistributionEntry]:
        return MetricCalculator.distribution(
            (m.role for m in members), ROLE_ORDER, label=lambda role: UserRole(role).label,
        )

    # ═════════════════════════════════════════════════════════════════
    # Rates and counts
    # ═════════════════════════════════════════════════════════════════

    @staticmethod
    def completion_rate(records: Sequence[Record]) -> int:
        """``round(100 * completed / total)``; ``0`` for an empty set."""
        completed = sum(1 for r in records if r.is_completed)
        return percentage(completed, len(records))

    @staticmethod
    def overdue_count(records: Iterable[Record], now: datetime) -> int:
        now = _aware(now)
        return sum(
            1 for r in records
            if r.due_at is not None and r.due_at < now and not r.is_completed
        )

    @staticmethod
    def urgent_open_count(records: Iterable[Record]) -> int:
        return sum(
            1 for r in records
            if r.priority == TaskPriority.urgent and not r.is_completed
        )

    @staticmethod
    def on_time_rate(records: Sequence[Record]) -> int:
        """Share of completed tasks finished on or before their due date."""
        completed = [r for r in records if r.is_completed]
        on_time = sum(1 for r in completed if r.due_at is None or r.updated_at <= r.due_at)
        return percentage(on_time, len(completed))

    @staticmethod
    def workload(total_tasks: int, total_members: int, active_members: int) -> tuple[int, int]:
        """Return ``(avgTasksPerMember, engagement%)``, both ``0`` without members."""
        return ratio(total_tasks, total_members), percentage(active_members, total_members)

    @staticmethod
    def summary(
        records: Sequence[Record],
        members: Sequence[Member],
        now: datetime,
    ) -> SummaryMetrics:
        status_counts = Counter(r.status for r in records)
        total_members = len(members)
        active_members = sum(1 for m in members if m.is_active)
        avg_tasks, engagement = MetricCalculator.workload(len(records), total_members, active_members)
        return SummaryMetrics(
            total_tasks=len(records),
            completed_tasks=status_counts.get(TaskStatus.completed, 0),
            in_progress_tasks=status_counts.get(TaskStatus.in_progress, 0),
            assigned_tasks=status_counts.get(TaskStatus.assigned, 0),
            blocked_tasks=status_counts.get(TaskStatus.blocked, 0),
            completion_rate=MetricCalculator.completion_rate(records),
            on_time_rate=MetricCalculator.on_time_rate(records),
            urgent_tasks=MetricCalculator.urgent_open_count(records),
            overdue_tasks=MetricCalculator.overdue_count(records, now),
            total_members=total_members,
            active_members=active_members,
            avg_tasks_per_member=avg_tasks,
            engagement_rate=engagement,
        )

    # ═════════════════════════════════════════════════════════════════
    # Rollups / rankings
    # ═════════════════════════════════════════════════════════════════

    @staticmethod
    def department_rollups(
        records: Sequence[Record],
        members: Sequence[Member],
        departments: Sequence[Department] = (),
    ) -> list[DepartmentRollup]:
        """Per-department completion; ``memberCount`` comes from the population."""
        names = {d.id: d.name for d in departments}
        member_counts = Counter(m.department_id for m in members if m.department_id)

        groups: "OrderedDict[str, list[Record]]" = OrderedDict((d.id, []) for d in departments)
        for record in records:
            if record.department_id:
                groups.setdefault(record.department_id, []).append(record)

        rollups = [
            DepartmentRollup(
                department_id=department_id,
                name=names.get(department_id, department_id),
                total_tasks=len(tasks),
                completed_tasks=sum(1 for t in tasks if t.is_completed),
                completion_rate=MetricCalculator.completion_rate(tasks),
                member_count=member_counts.get(department_id, 0),
            )
            for department_id, tasks in groups.items()
        ]
        return rank(rollups, rate=lambda r: r.completion_rate, total=lambda r: r.total_tasks)

    @staticmethod
    def user_rankings(
        records: Sequence[Record],
        members: Sequence[Member],
        departments: Sequence[Department] = (),
        *,
        limit: Optional[int] = None,
    ) -> list[UserRanking]:
        """Rank primary assignees by completion rate, then total tasks, then population order.

        Owners missing from the population rank after every member with the
        same rate and total, in first-seen order.
        """
        by_id = {m.id: m for m in members}
        department_names = {d.id: d.name for d in departments}

        groups: "OrderedDict[str, list[Record]]" = OrderedDict((m.id, []) for m in members)
        for record in records:
            if record.owner_id:
                groups.setdefault(record.owner_id, []).append(record)

        rankings: list[UserRanking] = []
        for user_id, tasks in groups.items():
            if not tasks:
                continue
            member = by_id.get(user_id)
            department_id = member.department_id if member else None
            rankings.append(UserRanking(
                user_id=user_id,
                name=member.name if member else user_id,
                department=department_names.get(department_id, department_id) if department_id else None,
                total_tasks=len(tasks),
                completed_tasks=sum(1 for t in tasks if t.is_completed),
                completion_rate=MetricCalculator.completion_rate(tasks),
            ))

        ordered = rank(rankings, rate=lambda r: r.completion_rate, total=lambda r: r.total_tasks)
        return ordered[:limit] if limit else ordered

    # ═════════════════════════════════════════════════════════════════
    # Time series
    # ═════════════════════════════════════════════════════════════════

    @staticmethod
    def trend_series(
        records: Sequence[Record],
        now: datetime,
        *,
        granularity: TrendGranularity = TrendGranularity.day,
        periods: int = 7,
        tz: Optional[str] = None,
    ) -> list[TrendPoint]:
        """Zero-filled created/completed counts for the last *periods* buckets.

        ``created`` buckets by ``createdAt``; ``completed`` buckets completed
        records by ``updatedAt`` only, so each record lands in one bucket.
        """
        zone = _zone(tz)
        bucket = _bucketer(granularity, zone)
        keys = _window(now, granularity, periods, zone)

        created = Counter(bucket(r.created_at) for r in records)
        completed = Counter(bucket(r.updated_at) for r in records if r.is_completed)
        return [
            TrendPoint(period=_period_label(k, granularity), created=created.get(k, 0), completed=completed.get(k, 0))
            for k in keys
        ]

    @staticmethod
    def performance_series(
        records: Sequence[Record],
        members: Sequence[Member],
        now: datetime,
        *,
        granularity: TrendGranularity = TrendGranularity.day,
        periods: int = 7,
        tz: Optional[str] = None,
    ) -> list[PerformancePoint]:
        """Per bucket: efficiency over tasks touched up to that bucket, plus productivity/engagement."""
        zone = _zone(tz)
        bucket = _bucketer(granularity, zone)
        keys = _window(now, granularity, periods, zone)

        total_members = len(members)
        _, engagement = MetricCalculator.workload(0, total_members, sum(1 for m in members if m.is_active))
        touched = sorted((bucket(r.updated_at), r.is_completed) for r in records)

        points: list[PerformancePoint] = []
        for key in keys:
            upto = [done for k, done in touched if k <= key]
            done = sum(1 for d in upto if d)
            points.append(PerformancePoint(
                period=_period_label(key, granularity),
                efficiency=percentage(done, len(upto)),
                productivity=min(100, ratio(done * PRODUCTIVITY_WEIGHT, max(1, total_members))),
                engagement=engagement,
            ))
        return points

    # ═════════════════════════════════════════════════════════════════
    # Leave
    # ═════════════════════════════════════════════════════════════════

    @staticmethod
    def leave_summary(records: Sequence[Record]) -> LeaveSummary:
        approved = sum(1 for r in records if r.status == LeaveStatus.approved)
        return LeaveSummary(
            total=len(records),
            by_status=MetricCalculator.distribution((r.status for r in records), LEAVE_STATUS_ORDER),
            by_type=MetricCalculator.distribution((r.category for r in records), ()),
            approval_rate=percentage(approved, len(records)),
        )

    # ═════════════════════════════════════════════════════════════════
    # Full snapshot
    # ═════════════════════════════════════════════════════════════════

    @staticmethod
    def snapshot(
        records: Sequence[Record],
        members: Sequence[Member],
        now: datetime,
        *,
        leaves: Sequence[Record] = (),
        departments: Sequence[Department] = (),
        granularity: TrendGranularity = TrendGranularity.day,
        periods: int = 7,
        include_overdue: bool = False,
        ranking_limit: Optional[int] = None,
        tz: Optional[str] = None,
        status_categories: Optional[Sequence[TaskStatus]] = None,
        priority_categories: Optional[Sequence[TaskPriority]] = None,
    ) -> Snapshot:
        """Compute every metric group locally (the fallback snapshot)."""
        now = _aware(now)
        return Snapshot(
            summary=MetricCalculator.summary(records, members, now),
            status_distribution=MetricCalculator.status_distribution(
                records, categories=status_categories, include_overdue=include_overdue, now=now,
            ),
            priority_distribution=MetricCalculator.priority_distribution(
                records, categories=priority_categories,
            ),
            role_distribution=MetricCalculator.role_distribution(members),
            department_rollups=MetricCalculator.department_rollups(records, members, departments),
            user_rankings=MetricCalculator.user_rankings(
                records, members, departments, limit=ranking_limit,
            ),
            trend=MetricCalculator.trend_series(
                records, now, granularity=granularity, periods=periods, tz=tz,
            ),
            performance=MetricCalculator.performance_series(
                records, members, now, granularity=granularity, periods=periods, tz=tz,
            ),
            leave_summary=MetricCalculator.leave_summary(leaves),
        )


# ═════════════════════════════════════════════════════════════════════
# Helpers
# ═════════════════════════════════════════════════════════════════════


def _key_text(key: Hashable) -> str:
    value = getattr(key, "value", key)
    return str(value)


def _zone(tz: Optional[str]) -> ZoneInfo:
    return ZoneInfo(tz or settings.TIMEZONE)


def _aware(moment: datetime) -> datetime:
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment


def _local_date(moment: datetime, zone: ZoneInfo) -> date:
    return _aware(moment).astimezone(zone).date()


def _bucketer(granularity: TrendGranularity, zone: ZoneInfo) -> Callable[[datetime], date]:
    """Map a timestamp to the first calendar day of its bucket."""
    granularity = TrendGranularity(granularity)
    if granularity == TrendGranularity.week:
        return lambda moment: _week_start(_local_date(moment, zone))
    if granularity == TrendGranularity.month:
        return lambda moment: _local_date(moment, zone).replace(day=1)
    return lambda moment: _local_date(moment, zone)


def _window(now: datetime, granularity: TrendGranularity, periods: int, zone: ZoneInfo) -> list[date]:
    """Bucket keys for the last *periods* buckets, oldest first, ending at *now*."""
    granularity = TrendGranularity(granularity)
    today = _local_date(now, zone)
    if granularity == TrendGranularity.week:
        start = _week_start(today)
        return [start - timedelta(weeks=periods - 1 - i) for i in range(periods)]
    if granularity == TrendGranularity.month:
        keys: list[date] = []
        year, month = today.year, today.month
        for _ in range(periods):
            keys.append(date(year, month, 1))
            year, month = (year, month - 1) if month > 1 else (year - 1, 12)
        return keys[::-1]
    return [today - timedelta(days=periods - 1 - i) for i in range(periods)]


def _week_start(day: date) -> date:
    return day - timedelta(days=day.weekday())


def _period_label(key: date, granularity: TrendGranularity) -> str:
    if TrendGranularity(granularity) == TrendGranularity.month:
        return key.strftime("%Y-%m")
    return key.isoformat()
