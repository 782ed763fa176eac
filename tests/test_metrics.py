"""Metric calculator tests — distributions, rates, rollups, rankings, series."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from analytics_engine.common.constants import TaskStatus, TrendGranularity
from analytics_engine.common.formatting import clamp_percent, format_label, percentage, rank, round_half_up
from analytics_engine.metrics.service import MetricCalculator
from analytics_engine.records.service import RecordNormalizer
from tests.conftest import NOW, _make_department, _make_leave, _make_task, _make_user


def _records(*raws):
    return RecordNormalizer.tasks(raws).items


def _members(*raws):
    return RecordNormalizer.members(raws).items


# ═════════════════════════════════════════════════════════════════════
# FORMATTING RULES
# ═════════════════════════════════════════════════════════════════════


class TestFormatting:
    @pytest.mark.parametrize("value,expected", [(62.5, 63), (0.5, 1), (2.4999, 2), (-0.5, -1)])
    def test_round_half_up(self, value, expected):
        assert round_half_up(value) == expected

    def test_percentages_are_bounded(self):
        assert clamp_percent(140) == 100
        assert clamp_percent(-3) == 0
        assert clamp_percent("77.6%") == 78
        assert clamp_percent(float("nan")) == 0
        assert percentage(5, 0) == 0

    def test_labels(self):
        assert format_label("in_progress") == "In Progress"
        assert format_label(TaskStatus.completed) == "Completed"
        assert format_label("") == "Unknown"

    def test_rank_total_order(self):
        items = [("a", 50, 2), ("b", 50, 4), ("c", 90, 1), ("d", 50, 4)]
        ordered = rank(items, rate=lambda i: i[1], total=lambda i: i[2])
        assert [i[0] for i in ordered] == ["c", "b", "d", "a"]


# ═════════════════════════════════════════════════════════════════════
# DISTRIBUTIONS / RATES
# ═════════════════════════════════════════════════════════════════════


class TestDistributions:
    def test_scenario_a(self):
        records = _records(
            _make_task("1", status="completed"),
            _make_task("2", status="completed"),
            _make_task("3", status="in_progress"),
            _make_task("4", status="blocked"),
        )
        entries = MetricCalculator.status_distribution(records)
        assert {e.key: e.value for e in entries} == {"completed": 2, "in_progress": 1, "blocked": 1}
        assert sum(e.value for e in entries) == len(records)
        assert MetricCalculator.completion_rate(records) == 50

    def test_sparse_unless_categories_requested(self):
        records = _records(_make_task("1", status="assigned"))
        assert [e.key for e in MetricCalculator.status_distribution(records)] == ["assigned"]
        fixed = MetricCalculator.status_distribution(records, categories=list(TaskStatus))
        assert [(e.key, e.value) for e in fixed] == [
            ("assigned", 1), ("in_progress", 0), ("completed", 0), ("blocked", 0),
        ]

    def test_overdue_slice(self):
        records = _records(
            _make_task("1", status="assigned", due_in_days=-1),
            _make_task("2", status="completed", due_in_days=-1),
        )
        entries = MetricCalculator.status_distribution(records, include_overdue=True, now=NOW)
        assert entries[-1].key == "overdue" and entries[-1].value == 1
        # overlay: status entries alone still add up to the task count
        assert sum(e.value for e in entries if e.key != "overdue") == len(records)

    def test_priority_order(self):
        records = _records(
            _make_task("1", priority="low"), _make_task("2", priority="urgent"), _make_task("3", priority=None),
        )
        assert [e.key for e in MetricCalculator.priority_distribution(records)] == ["urgent", "low"]

    def test_role_distribution_labels(self):
        members = _members(_make_user("h", role="hod"), _make_user("a"), _make_user("b"))
        entries = MetricCalculator.role_distribution(members)
        assert [(e.name, e.value) for e in entries] == [("Head", 1), ("Members", 2)]


class TestSummary:
    def test_scenario_e_empty(self):
        summary = MetricCalculator.summary([], [], NOW)
        assert summary.completion_rate == 0
        assert summary.avg_tasks_per_member == 0
        assert summary.engagement_rate == 0

    def test_counts_and_ratios(self):
        records = _records(
            _make_task("1", status="completed", due_in_days=2, updated_days_ago=0.5),
            _make_task("2", status="completed", due_in_days=-3, updated_days_ago=0),
            _make_task("3", status="assigned", priority="urgent", due_in_days=-1),
        )
        members = _members(_make_user("a"), _make_user("b", is_active=False))
        summary = MetricCalculator.summary(records, members, NOW)
        assert summary.total_tasks == 3
        assert summary.completed_tasks == 2
        assert summary.completion_rate == 67
        assert summary.on_time_rate == 50
        assert summary.urgent_tasks == 1
        assert summary.overdue_tasks == 1
        assert summary.avg_tasks_per_member == 2  # 1.5 rounds up
        assert summary.engagement_rate == 50

    def test_naive_now_is_treated_as_utc(self):
        records = _records(_make_task("1", status="assigned", due_in_days=-1))
        naive = NOW.replace(tzinfo=None)
        assert MetricCalculator.summary(records, [], naive).overdue_tasks == 1
        snapshot = MetricCalculator.snapshot(records, [], naive, include_overdue=True)
        assert snapshot == MetricCalculator.snapshot(records, [], NOW, include_overdue=True)


# ═════════════════════════════════════════════════════════════════════
# ROLLUPS / RANKINGS
# ═════════════════════════════════════════════════════════════════════


class TestRollups:
    def test_department_rollup_member_count_from_population(self):
        records = _records(
            _make_task("1", status="completed", department_id="d1"),
            _make_task("2", status="assigned", department_id="d1"),
            _make_task("3", status="completed", department_id="d2"),
            _make_task("4", status="completed", department_id=None),
        )
        members = _members(_make_user("a", department_id="d1"), _make_user("b", department_id="d1"))
        departments = RecordNormalizer.departments([_make_department("d1", name="Design")]).items
        rollups = MetricCalculator.department_rollups(records, members, departments)
        assert [(r.name, r.total_tasks, r.completion_rate, r.member_count) for r in rollups] == [
            ("d2", 1, 100, 0),
            ("Design", 2, 50, 2),
        ]
        for r in rollups:
            assert 0 <= r.completed_tasks <= r.total_tasks

    def test_user_ranking_tie_breaks(self):
        members = _members(_make_user("u1"), _make_user("u2"), _make_user("u3"), _make_user("idle"))
        records = _records(
            _make_task("1", status="completed", assigned_to="u1"),
            _make_task("2", status="assigned", assigned_to="u1"),
            _make_task("3", status="completed", assigned_to="u2"),
            _make_task("4", status="assigned", assigned_to="u2"),
            _make_task("5", status="completed", assigned_to="u3"),
            _make_task("6", status="completed", assigned_to="ghost"),
        )
        rankings = MetricCalculator.user_rankings(records, members)
        assert [r.user_id for r in rankings] == ["u3", "ghost", "u1", "u2"]
        assert rankings == MetricCalculator.user_rankings(records, members)
        assert len(MetricCalculator.user_rankings(records, members, limit=2)) == 2


# ═════════════════════════════════════════════════════════════════════
# SERIES
# ═════════════════════════════════════════════════════════════════════


class TestTrend:
    def test_zero_filled_daily_window(self):
        records = _records(
            _make_task("1", status="completed", created_days_ago=3, updated_days_ago=0),
            _make_task("2", status="assigned", created_days_ago=0),
        )
        trend = MetricCalculator.trend_series(records, NOW)
        assert [p.period for p in trend] == [
            "2026-03-10", "2026-03-11", "2026-03-12", "2026-03-13", "2026-03-14", "2026-03-15", "2026-03-16",
        ]
        assert [p.created for p in trend] == [0, 0, 0, 1, 0, 0, 1]
        # completed only on its updatedAt day, not every day since creation
        assert [p.completed for p in trend] == [0, 0, 0, 0, 0, 0, 1]

    def test_weekly_and_monthly_labels(self):
        weekly = MetricCalculator.trend_series([], NOW, granularity=TrendGranularity.week, periods=3)
        assert [p.period for p in weekly] == ["2026-03-02", "2026-03-09", "2026-03-16"]
        monthly = MetricCalculator.trend_series([], NOW, granularity="month", periods=4)
        assert [p.period for p in monthly] == ["2025-12", "2026-01", "2026-02", "2026-03"]

    def test_timezone_moves_day_boundary(self):
        late = datetime(2026, 3, 15, 23, 30, tzinfo=timezone.utc)
        records = _records({"_id": "x", "status": "assigned", "createdAt": late.isoformat()})
        utc = MetricCalculator.trend_series(records, NOW, periods=2)
        kolkata = MetricCalculator.trend_series(records, NOW, periods=2, tz="Asia/Kolkata")
        assert [p.created for p in utc] == [1, 0]
        assert [p.created for p in kolkata] == [0, 1]

    def test_performance_series(self):
        members = _members(_make_user("a"), _make_user("b", is_active=False))
        records = _records(
            _make_task("1", status="completed", created_days_ago=5, updated_days_ago=2),
            _make_task("2", status="assigned", created_days_ago=5, updated_days_ago=1),
        )
        points = MetricCalculator.performance_series(records, members, NOW, periods=3)
        assert [p.efficiency for p in points] == [100, 50, 50]
        assert [p.productivity for p in points] == [10, 10, 10]
        assert all(p.engagement == 50 for p in points)


class TestLeaveSummary:
    def test_by_status_and_type(self):
        leaves = RecordNormalizer.leaves([
            _make_leave("l1", status="approved", leave_type="annual"),
            _make_leave("l2", status="pending", leave_type="sick"),
            _make_leave("l3", status="approved", leave_type="annual"),
        ]).items
        summary = MetricCalculator.leave_summary(leaves)
        assert summary.total == 3
        assert [(e.key, e.value) for e in summary.by_status] == [("pending", 1), ("approved", 2)]
        assert [(e.key, e.value) for e in summary.by_type] == [("annual", 2), ("sick", 1)]
        assert summary.approval_rate == 67
