"""Record normalizer tests — identity resolution, timestamps, skip-and-count."""

from __future__ import annotations

from datetime import date, datetime, timezone

import pytest

from analytics_engine.common.constants import LeaveStatus, RecordKind, TaskPriority, TaskStatus, UserRole
from analytics_engine.common.exceptions import MalformedRecordError
from analytics_engine.records.service import (
    RecordNormalizer,
    collect_assignee_ids,
    normalize_leave,
    normalize_member,
    normalize_task,
    parse_timestamp,
    resolve_identity,
)
from tests.conftest import NOW, _make_leave, _make_task, _make_user


# ═════════════════════════════════════════════════════════════════════
# IDENTITY
# ═════════════════════════════════════════════════════════════════════


class TestIdentity:
    def test_bare_string(self):
        assert resolve_identity(" u1 ") == "u1"

    def test_embedded_object_prefers_underscore_id(self):
        assert resolve_identity({"_id": "a", "id": "b"}) == "a"

    def test_email_is_last_resort(self):
        assert resolve_identity({"email": "x@example.com"}) == "x@example.com"

    def test_unresolvable_is_none(self):
        assert resolve_identity({"name": "nobody"}) is None
        assert resolve_identity(None) is None
        assert resolve_identity("") is None

    def test_collect_flattens_and_dedupes(self):
        ids = collect_assignee_ids([{"_id": "a"}, "b", {"id": "a"}, [None, {"email": "c@x"}]])
        assert ids == ["a", "b", "c@x"]


# ═════════════════════════════════════════════════════════════════════
# TIMESTAMPS
# ═════════════════════════════════════════════════════════════════════


class TestTimestamps:
    def test_iso_with_z(self):
        assert parse_timestamp("2026-03-16T12:00:00Z") == NOW

    def test_naive_datetime_is_utc(self):
        assert parse_timestamp(datetime(2026, 3, 16, 12)) == NOW

    def test_date(self):
        assert parse_timestamp(date(2026, 3, 16)) == datetime(2026, 3, 16, tzinfo=timezone.utc)

    def test_epoch_seconds_and_millis(self):
        seconds = NOW.timestamp()
        assert parse_timestamp(seconds) == NOW
        assert parse_timestamp(seconds * 1000) == NOW

    def test_garbage(self):
        assert parse_timestamp("not a date") is None
        assert parse_timestamp(True) is None


# ═════════════════════════════════════════════════════════════════════
# SINGLE RECORDS
# ═════════════════════════════════════════════════════════════════════


class TestNormalizeTask:
    def test_canonical_shape(self):
        record = normalize_task(_make_task(
            "t1", status="In Progress", priority="URGENT",
            assigned_to=[{"_id": "alice"}, "bob"], assigned_by={"_id": "mgr"},
        ))
        assert record.kind == RecordKind.task
        assert record.status == TaskStatus.in_progress
        assert record.priority == TaskPriority.urgent
        assert record.owner_id == "alice"
        assert record.assignee_ids == ("alice", "bob")
        assert record.manager_id == "mgr"
        assert record.department_id == "dept-eng"

    def test_unresolvable_assignee_degrades_to_empty(self):
        record = normalize_task(_make_task("t1", assigned_to={"name": "??"}))
        assert record.owner_id is None
        assert record.assignee_ids == ()

    def test_updated_defaults_to_created(self):
        raw = _make_task("t1")
        del raw["updatedAt"]
        record = normalize_task(raw)
        assert record.updated_at == record.created_at

    @pytest.mark.parametrize("mutate", [
        lambda raw: raw.pop("_id"),
        lambda raw: raw.update(status="archived"),
        lambda raw: raw.update(createdAt="yesterday-ish"),
    ])
    def test_malformed(self, mutate):
        raw = _make_task("t1")
        mutate(raw)
        with pytest.raises(MalformedRecordError):
            normalize_task(raw)


class TestNormalizeLeaveAndMember:
    def test_leave(self):
        record = normalize_leave(_make_leave("l1", status="Approved", leave_type="Sick"))
        assert record.kind == RecordKind.leave
        assert record.status == LeaveStatus.approved
        assert record.owner_id == "alice"
        assert record.category == "sick"

    def test_member_role_alias_and_activity(self):
        member = normalize_member(_make_user("h1", role="hod", is_active=False))
        assert member.role == UserRole.department_head
        assert member.is_active is False

    def test_member_status_field(self):
        raw = _make_user("u1")
        del raw["isActive"]
        raw["status"] = "inactive"
        assert normalize_member(raw).is_active is False

    @pytest.mark.parametrize("flag,expected", [
        ("false", False), ("False", False), ("0", False), ("no", False), ("", False), (0, False),
        ("true", True), ("1", True), ("yes", True), (1, True), (True, True),
    ])
    def test_member_string_flags(self, flag, expected):
        raw = _make_user("u1")
        raw["isActive"] = flag
        assert normalize_member(raw).is_active is expected

    def test_member_name_fallback(self):
        raw = {"id": "u9", "firstName": "Ada", "lastName": "Lovelace", "role": "Manager"}
        member = normalize_member(raw)
        assert member.name == "Ada Lovelace"
        assert member.role == UserRole.manager


# ═════════════════════════════════════════════════════════════════════
# BATCH
# ═════════════════════════════════════════════════════════════════════


class TestBatch:
    def test_skips_and_counts_malformed(self):
        raws = [_make_task("t1"), {"status": "completed"}, "garbage", _make_task("t2", status="bogus")]
        result = RecordNormalizer.tasks(raws)
        assert [r.id for r in result.items] == ["t1"]
        assert result.skipped == 3

    def test_none_input(self):
        result = RecordNormalizer.tasks(None)
        assert result.items == [] and result.skipped == 0

    def test_duplicate_members_count_once(self):
        result = RecordNormalizer.members([_make_user("a"), _make_user("a"), _make_user("b")])
        assert [m.id for m in result.items] == ["a", "b"]

    def test_leave_inherits_owner_department_and_manager(self):
        leaves = RecordNormalizer.leaves([
            _make_leave("l1", user_id="a"),
            _make_leave("l2", user_id="b", department_id="dept-sales"),
            _make_leave("l3", user_id="nobody"),
        ]).items
        members = RecordNormalizer.members([
            _make_user("a", manager_id="mgr"), _make_user("b", manager_id="mgr"),
        ]).items
        scoped = RecordNormalizer.inherit_owner_scope(leaves, members)
        assert [(r.department_id, r.manager_id) for r in scoped] == [
            ("dept-eng", "mgr"), ("dept-sales", "mgr"), (None, None),
        ]
