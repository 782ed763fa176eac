"""Common module — shared enums, errors and formatting rules for the analytics engine."""

from analytics_engine.common.constants import (
    ALL,
    DiagnosticCode,
    GroupState,
    LeaveStatus,
    MetricGroup,
    MetricSource,
    RecordKind,
    TaskPriority,
    TaskStatus,
    TimeRange,
    TrendGranularity,
    UserRole,
    coerce_role,
)
from analytics_engine.common.exceptions import (
    AppException,
    FetchFailure,
    MalformedRecordError,
    ValidationException,
    register_exception_handlers,
)
from analytics_engine.common.formatting import (
    clamp_percent,
    format_label,
    normalize_key,
    percentage,
    rank,
    ratio,
    round_half_up,
    to_count,
)
from analytics_engine.common.models import ApiModel

__all__ = [
    # Constants / Enums
    "ALL",
    "DiagnosticCode",
    "GroupState",
    "LeaveStatus",
    "MetricGroup",
    "MetricSource",
    "RecordKind",
    "TaskPriority",
    "TaskStatus",
    "TimeRange",
    "TrendGranularity",
    "UserRole",
    "coerce_role",
    # Exceptions
    "AppException",
    "FetchFailure",
    "MalformedRecordError",
    "ValidationException",
    "register_exception_handlers",
    # Formatting
    "clamp_percent",
    "format_label",
    "normalize_key",
    "percentage",
    "rank",
    "ratio",
    "round_half_up",
    "to_count",
    # Models
    "ApiModel",
]
