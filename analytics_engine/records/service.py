"""Record normalizer — coerce heterogeneous upstream shapes into canonical records.

Upstream payloads encode the same facts in several ways:

* identities as a bare id, an embedded object (``_id`` / ``id`` / ``userId``,
  with ``email`` as a last resort) or a list of either (assignee lists);
* dates as ``datetime``, ISO-8601 strings or epoch numbers;
* roles with legacy labels (``hod``) and statuses with mixed casing.

Single-record functions raise ``MalformedRecordError``; the batch entry point
skips and counts such records so one bad row never aborts an aggregation.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Any, Callable, Generic, Iterable, Optional, TypeVar

from pydantic import ValidationError

from analytics_engine.common.constants import (
    EPOCH_MILLIS_THRESHOLD,
    LeaveStatus,
    RecordKind,
    TaskPriority,
    TaskStatus,
    coerce_role,
)
from analytics_engine.common.exceptions import MalformedRecordError
from analytics_engine.common.formatting import normalize_key
from analytics_engine.records.schemas import Department, Member, Record

logger = logging.getLogger(__name__)

T = TypeVar("T")

_IDENTITY_KEYS = ("_id", "id", "userId")
_TASK_ASSIGNEE_KEYS = ("assignedTo", "assigned_to", "assignedToList", "assigned_to_list", "assignees")
_LEAVE_OWNER_KEYS = ("userId", "user_id", "employeeId", "employee_id", "user", "employee", "requestedBy")
_DEPARTMENT_KEYS = ("departmentId", "department_id", "department")
_MANAGER_KEYS = ("managerId", "manager_id", "assignedBy", "assigned_by")
_TRUE_FLAGS = frozenset({"true", "1", "yes", "y", "active"})


# ═════════════════════════════════════════════════════════════════════
# Identity resolution
# ═════════════════════════════════════════════════════════════════════


def resolve_identity(value: Any) -> Optional[str]:
    """Resolve a bare id or an embedded object to a single identity string."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (str, int)):
        text = str(value).strip()
        return text or None
    if isinstance(value, dict):
        for key in _IDENTITY_KEYS:
            resolved = resolve_identity(value.get(key))
            if resolved:
                return resolved
        return resolve_identity(value.get("email"))
    return None


def collect_assignee_ids(*values: Any) -> list[str]:
    """Flatten ids / objects / (nested) lists into unique identities, order kept."""
    ids: list[str] = []

    def _walk(value: Any) -> None:
        if isinstance(value, (list, tuple)):
            for item in value:
                _walk(item)
            return
        resolved = resolve_identity(value)
        if resolved and resolved not in ids:
            ids.append(resolved)

    for value in values:
        _walk(value)
    return ids


# ═════════════════════════════════════════════════════════════════════
# Timestamps / enums
# ═════════════════════════════════════════════════════════════════════


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Normalize ``datetime`` / ``date`` / ISO string / epoch to an aware UTC datetime."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)
    if isinstance(value, (int, float)):
        return _from_epoch(value)
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            return _from_epoch(float(text))
        except ValueError:
            pass
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        try:
            return parse_timestamp(datetime.fromisoformat(text))
        except ValueError:
            return None
    return None


def _from_epoch(value: float) -> Optional[datetime]:
    seconds = value / 1000 if abs(value) >= EPOCH_MILLIS_THRESHOLD else value
    try:
        return datetime.fromtimestamp(seconds, tz=timezone.utc)
    except (OverflowError, OSError, ValueError):
        return None


def parse_task_status(value: Any) -> Optional[TaskStatus]:
    try:
        return TaskStatus(normalize_key(value))
    except ValueError:
        return None


def parse_leave_status(value: Any) -> Optional[LeaveStatus]:
    try:
        return LeaveStatus(normalize_key(value))
    except ValueError:
        return None


def parse_priority(value: Any) -> Optional[TaskPriority]:
    if value is None:
        return None
    try:
        return TaskPriority(normalize_key(value))
    except ValueError:
        return None


# ═════════════════════════════════════════════════════════════════════
# Single-record normalizers
# ═════════════════════════════════════════════════════════════════════


def normalize_task(raw: Any) -> Record:
    """Normalize one raw task; raises ``MalformedRecordError``."""
    if isinstance(raw, Record):
        return raw
    if not isinstance(raw, dict):
        raise MalformedRecordError("task", "not an object", raw)

    record_id = resolve_identity(_pick(raw, *_IDENTITY_KEYS[:2]))
    if not record_id:
        raise MalformedRecordError("task", "missing id")

    status = parse_task_status(raw.get("status"))
    if status is None:
        raise MalformedRecordError("task", f"unknown status {raw.get('status')!r}", record_id)

    created_at, updated_at = _lifecycle_dates("task", raw, record_id)
    assignees = collect_assignee_ids(*(raw.get(key) for key in _TASK_ASSIGNEE_KEYS))

    return Record(
        id=record_id,
        kind=RecordKind.task,
        owner_id=assignees[0] if assignees else None,
        assignee_ids=tuple(assignees),
        status=status,
        priority=parse_priority(raw.get("priority")),
        department_id=resolve_identity(_pick(raw, *_DEPARTMENT_KEYS)),
        manager_id=resolve_identity(_pick(raw, *_MANAGER_KEYS)),
        title=_text(_pick(raw, "title", "name")),
        created_at=created_at,
        updated_at=updated_at,
        due_at=parse_timestamp(_pick(raw, "dueDate", "due_date", "dueAt", "due_at")),
    )


def normalize_leave(raw: Any) -> Record:
    """Normalize one raw leave request; raises ``MalformedRecordError``."""
    if isinstance(raw, Record):
        return raw
    if not isinstance(raw, dict):
        raise MalformedRecordError("leave", "not an object", raw)

    record_id = resolve_identity(_pick(raw, *_IDENTITY_KEYS[:2]))
    if not record_id:
        raise MalformedRecordError("leave", "missing id")

    status = parse_leave_status(raw.get("status"))
    if status is None:
        raise MalformedRecordError("leave", f"unknown status {raw.get('status')!r}", record_id)

    created_at, updated_at = _lifecycle_dates("leave", raw, record_id)
    owners = collect_assignee_ids(_pick(raw, *_LEAVE_OWNER_KEYS))
    category = _pick(raw, "leaveType", "leave_type", "type", "category")
    if isinstance(category, dict):
        category = category.get("code") or category.get("name")

    return Record(
        id=record_id,
        kind=RecordKind.leave,
        owner_id=owners[0] if owners else None,
        assignee_ids=tuple(owners),
        status=status,
        department_id=resolve_identity(_pick(raw, *_DEPARTMENT_KEYS)),
        manager_id=resolve_identity(_pick(raw, *_MANAGER_KEYS)),
        category=normalize_key(category) if category else None,
        title=_text(raw.get("reason")),
        created_at=created_at,
        updated_at=updated_at,
        due_at=parse_timestamp(_pick(raw, "startDate", "start_date")),
    )


def normalize_member(raw: Any) -> Member:
    """Normalize one raw user into a population member."""
    if isinstance(raw, Member):
        return raw
    if not isinstance(raw, dict):
        raise MalformedRecordError("user", "not an object", raw)

    member_id = resolve_identity(_pick(raw, *_IDENTITY_KEYS))
    if not member_id:
        raise MalformedRecordError("user", "missing id")

    if "isActive" in raw or "is_active" in raw:
        is_active = _flag(_pick(raw, "isActive", "is_active"))
    elif "status" in raw:
        is_active = normalize_key(raw.get("status")) == "active"
    else:
        is_active = True

    full_name = " ".join(
        part for part in (_text(raw.get("firstName")), _text(raw.get("lastName"))) if part
    )
    email = _text(raw.get("email"))
    return Member(
        id=member_id,
        name=_text(_pick(raw, "name", "fullName", "displayName")) or full_name or email or member_id,
        email=email,
        role=coerce_role(raw.get("role")),
        is_active=is_active,
        department_id=resolve_identity(_pick(raw, *_DEPARTMENT_KEYS)),
        manager_id=resolve_identity(_pick(raw, "managerId", "manager_id", "manager")),
    )


def normalize_department(raw: Any) -> Department:
    if isinstance(raw, Department):
        return raw
    if not isinstance(raw, dict):
        raise MalformedRecordError("department", "not an object", raw)
    department_id = resolve_identity(_pick(raw, "_id", "id"))
    if not department_id:
        raise MalformedRecordError("department", "missing id")
    return Department(
        id=department_id,
        name=_text(raw.get("name")) or department_id,
        head_id=resolve_identity(_pick(raw, "headId", "head_id", "hod", "head")),
    )


# ═════════════════════════════════════════════════════════════════════
# Batch normalization
# ═════════════════════════════════════════════════════════════════════


@dataclass
class NormalizationResult(Generic[T]):
    """Normalized items plus the number of malformed inputs that were skipped."""

    items: list[T] = field(default_factory=list)
    skipped: int = 0


class RecordNormalizer:
    """Batch normalization with skip-and-continue semantics."""

    @staticmethod
    def tasks(raws: Optional[Iterable[Any]]) -> NormalizationResult[Record]:
        return _normalize_many(raws, normalize_task)

    @staticmethod
    def leaves(raws: Optional[Iterable[Any]]) -> NormalizationResult[Record]:
        return _normalize_many(raws, normalize_leave)

    @staticmethod
    def members(raws: Optional[Iterable[Any]]) -> NormalizationResult[Member]:
        result = _normalize_many(raws, normalize_member)
        # Duplicate users (same id listed twice) count once
        seen: set[str] = set()
        unique: list[Member] = []
        for member in result.items:
            if member.id in seen:
                continue
            seen.add(member.id)
            unique.append(member)
        result.items = unique
        return result

    @staticmethod
    def departments(raws: Optional[Iterable[Any]]) -> NormalizationResult[Department]:
        return _normalize_many(raws, normalize_department)

    @staticmethod
    def inherit_owner_scope(records: Iterable[Record], members: Iterable[Member]) -> list[Record]:
        """Fill a missing department/manager from the owner's population entry.

        Leave requests usually carry only the requesting user, so department
        and manager restrictions can only be applied through the owner.
        """
        by_id = {m.id: m for m in members}
        scoped: list[Record] = []
        for record in records:
            owner = by_id.get(record.owner_id) if record.owner_id else None
            if owner is None or (record.department_id and record.manager_id):
                scoped.append(record)
                continue
            scoped.append(record.model_copy(update={
                "department_id": record.department_id or owner.department_id,
                "manager_id": record.manager_id or owner.manager_id,
            }))
        return scoped


def _normalize_many(
    raws: Optional[Iterable[Any]],
    normalize: Callable[[Any], T],
) -> NormalizationResult[T]:
    result: NormalizationResult[T] = NormalizationResult()
    for raw in raws or ():
        try:
            result.items.append(normalize(raw))
        except (MalformedRecordError, ValidationError) as exc:
            result.skipped += 1
            logger.debug("Skipping record: %s", exc)
    return result


# ═════════════════════════════════════════════════════════════════════
# Helpers
# ═════════════════════════════════════════════════════════════════════


def _pick(raw: dict, *keys: str) -> Any:
    """First non-empty value among *keys*."""
    for key in keys:
        value = raw.get(key)
        if value not in (None, ""):
            return value
    return None


def _flag(value: Any) -> bool:
    # "false" / "0" from form-encoded or CSV-sourced payloads
    if isinstance(value, str):
        return normalize_key(value) in _TRUE_FLAGS
    return bool(value)


def _text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _lifecycle_dates(kind: str, raw: dict, record_id: str) -> tuple[datetime, datetime]:
    created_at = parse_timestamp(_pick(raw, "createdAt", "created_at"))
    if created_at is None:
        raise MalformedRecordError(kind, "unparseable createdAt", record_id)
    updated_at = parse_timestamp(_pick(raw, "updatedAt", "updated_at")) or created_at
    return created_at, updated_at
