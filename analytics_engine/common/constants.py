"""Enums and constants for the analytics engine — matching the remote API values."""

from __future__ import annotations

import enum


# ── Tasks ───────────────────────────────────────────────────────────

class TaskStatus(str, enum.Enum):
    assigned = "assigned"
    in_progress = "in_progress"
    completed = "completed"
    blocked = "blocked"


class TaskPriority(str, enum.Enum):
    low = "low"
    medium = "medium"
    high = "high"
    urgent = "urgent"


# ── Leave ───────────────────────────────────────────────────────────

class LeaveStatus(str, enum.Enum):
    pending = "pending"
    approved = "approved"
    rejected = "rejected"
    cancelled = "cancelled"


class RecordKind(str, enum.Enum):
    task = "task"
    leave = "leave"


# ── Auth / Roles ────────────────────────────────────────────────────

class UserRole(str, enum.Enum):
    super_admin = "super_admin"
    admin = "admin"
    department_head = "department_head"
    manager = "manager"
    hr_manager = "hr_manager"
    hr = "hr"
    member = "member"
    person = "person"

    @property
    def label(self) -> str:
        return ROLE_LABELS[self]

    @property
    def is_self_measurable(self) -> bool:
        """True when holders of this role are counted inside the population they lead."""
        return self in SELF_MEASURABLE_ROLES


# Legacy backend role names → canonical role
ROLE_ALIASES: dict[str, UserRole] = {
    "hod": UserRole.department_head,
    "employee": UserRole.member,
}

ROLE_LABELS: dict[UserRole, str] = {
    UserRole.super_admin: "Super Admins",
    UserRole.admin: "Admins",
    UserRole.department_head: "Head",
    UserRole.manager: "Managers",
    UserRole.hr_manager: "HR Managers",
    UserRole.hr: "HR",
    UserRole.member: "Members",
    UserRole.person: "People",
}

SELF_MEASURABLE_ROLES: frozenset[UserRole] = frozenset({UserRole.department_head})


# ── Filters ─────────────────────────────────────────────────────────

class TimeRange(str, enum.Enum):
    last_7_days = "7d"
    last_30_days = "30d"
    last_90_days = "90d"
    all = "all"

    @property
    def days(self) -> int | None:
        return TIME_RANGE_DAYS[self]


TIME_RANGE_DAYS: dict[TimeRange, int | None] = {
    TimeRange.last_7_days: 7,
    TimeRange.last_30_days: 30,
    TimeRange.last_90_days: 90,
    TimeRange.all: None,
}

ALL = "all"


class TrendGranularity(str, enum.Enum):
    day = "day"
    week = "week"
    month = "month"


# ── Provenance ──────────────────────────────────────────────────────

class MetricSource(str, enum.Enum):
    live = "live"
    computed = "computed"
    mixed = "mixed"


class GroupState(str, enum.Enum):
    no_data = "no_data"
    loading = "loading"
    authoritative = "authoritative"
    fallback = "fallback"
    error_empty = "error_empty"


class MetricGroup(str, enum.Enum):
    summary = "summary"
    status_distribution = "statusDistribution"
    priority_distribution = "priorityDistribution"
    role_distribution = "roleDistribution"
    department_rollups = "departmentRollups"
    user_rankings = "userRankings"
    trend = "trend"
    performance = "performance"
    leave_summary = "leaveSummary"


class DiagnosticCode(str, enum.Enum):
    malformed_record = "malformed_record"
    fetch_failure = "fetch_failure"
    empty_population = "empty_population"
    inconsistent_adjustment = "inconsistent_adjustment"


# ── Misc constants ──────────────────────────────────────────────────

OVERDUE_KEY = "overdue"
PRODUCTIVITY_WEIGHT = 20  # productivity points per completed task per member
EPOCH_MILLIS_THRESHOLD = 10**11  # larger epoch numbers are milliseconds


def coerce_role(value: object) -> UserRole:
    """Map a raw role string (``"hod"``, ``"Manager"``) onto ``UserRole``; unknown → ``person``."""
    if isinstance(value, UserRole):
        return value
    key = str(value or "").strip().lower().replace(" ", "_").replace("-", "_")
    if key in ROLE_ALIASES:
        return ROLE_ALIASES[key]
    try:
        return UserRole(key)
    except ValueError:
        return UserRole.person
