"""Filter engine — time-range, status and ownership scoping over normalized records.

Every filter is a pure predicate, so application order does not change the
result.  ``"all"`` / ``None`` criteria are no-ops.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Callable, Iterable, Optional, Sequence

from pydantic import Field, field_validator

from analytics_engine.common.constants import ALL, TaskPriority, TaskStatus, TimeRange, TrendGranularity
from analytics_engine.common.formatting import normalize_key
from analytics_engine.common.models import ApiModel
from analytics_engine.config import settings
from analytics_engine.records.schemas import Member, Record

Predicate = Callable[[Record], bool]


# ── Criteria ────────────────────────────────────────────────────────

class OwnerScope(ApiModel):
    """Ownership restrictions applied on top of time/status filters."""

    exclude_user_id: Optional[str] = None
    restrict_to_department_id: Optional[str] = None
    restrict_to_manager_id: Optional[str] = None


class FilterCriteria(ApiModel):
    """Active dashboard filters."""

    time_range: TimeRange = Field(default_factory=lambda: TimeRange(settings.DEFAULT_TIME_RANGE))
    status: str = ALL
    owner_scope: OwnerScope = Field(default_factory=OwnerScope)
    include_overdue: bool = False
    trend_granularity: TrendGranularity = TrendGranularity.day
    trend_periods: int = Field(default_factory=lambda: settings.TREND_DAYS, ge=1, le=366)
    ranking_limit: Optional[int] = Field(None, ge=0)
    # Fixed category lists zero-fill the distributions; None keeps them sparse
    status_categories: Optional[list[TaskStatus]] = None
    priority_categories: Optional[list[TaskPriority]] = None

    @field_validator("status", mode="before")
    @classmethod
    def _normalize_status(cls, v):
        return normalize_key(v) or ALL

    @field_validator("status_categories", "priority_categories", mode="before")
    @classmethod
    def _normalize_categories(cls, v):
        if v is None or isinstance(v, str):
            return v
        return [normalize_key(item) for item in v]


# ── Record filtering ────────────────────────────────────────────────

def apply_filters(
    records: Iterable[Record],
    criteria: FilterCriteria,
    now: datetime,
    *,
    include_status: bool = True,
) -> list[Record]:
    """
    Return the working subset of *records* for *criteria*.

    ============================  ==========================================
    Criterion                     Predicate
    ============================  ==========================================
    ``timeRange``                 ``createdAt >= now - N days``
    ``status``                    exact match on the normalized status
    ``ownerScope.excludeUserId``  no resolved assignee equals the id
    ``restrictToDepartmentId``    ``departmentId`` equals the id
    ``restrictToManagerId``       ``managerId`` equals the id
    ============================  ==========================================

    *include_status* is ``False`` for record kinds whose status enum differs
    from the filter's (leave requests under a task status filter).
    """
    predicates: list[Predicate] = []

    cutoff = time_range_cutoff(criteria.time_range, now)
    if cutoff is not None:
        predicates.append(lambda r: r.created_at >= cutoff)

    if include_status and criteria.status != ALL:
        status = criteria.status
        predicates.append(lambda r: r.status == status)

    scope = criteria.owner_scope
    if scope.exclude_user_id:
        excluded = scope.exclude_user_id
        predicates.append(lambda r: excluded not in r.assignee_ids)
    if scope.restrict_to_department_id:
        department_id = scope.restrict_to_department_id
        predicates.append(lambda r: r.department_id == department_id)
    if scope.restrict_to_manager_id:
        manager_id = scope.restrict_to_manager_id
        predicates.append(lambda r: r.manager_id == manager_id)

    return [r for r in records if all(p(r) for p in predicates)]


def time_range_cutoff(time_range: TimeRange, now: datetime) -> Optional[datetime]:
    """Oldest ``createdAt`` kept by *time_range*; ``None`` for ``"all"``."""
    days = TimeRange(time_range).days
    if days is None:
        return None
    return _aware(now) - timedelta(days=days)


# ── Population scoping ─────────────────────────────────────────────

def scope_population(
    members: Sequence[Member],
    scope: OwnerScope,
    *,
    exclude_member_id: Optional[str] = None,
) -> list[Member]:
    """Restrict the measured population the same way records are restricted.

    Population order is preserved; it is the final ranking tie-break.
    """
    scoped: list[Member] = []
    for member in members:
        if scope.restrict_to_department_id and member.department_id != scope.restrict_to_department_id:
            continue
        if scope.restrict_to_manager_id and member.manager_id != scope.restrict_to_manager_id:
            continue
        if exclude_member_id and member.id == exclude_member_id:
            continue
        scoped.append(member)
    return scoped


# ── Internal helper ─────────────────────────────────────────────────

def _aware(moment: datetime) -> datetime:
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment
