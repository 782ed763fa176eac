"""Self-exclusion adjuster tests — headcount, role distribution, flooring."""

from __future__ import annotations

from analytics_engine.common.constants import DiagnosticCode, UserRole
from analytics_engine.exclusion.service import SelfExclusionAdjuster
from analytics_engine.metrics.schemas import (
    DistributionEntry,
    PartialSnapshot,
    PartialSummary,
    Snapshot,
    SummaryMetrics,
)
from analytics_engine.metrics.service import MetricCalculator
from analytics_engine.records.schemas import Actor
from analytics_engine.records.service import RecordNormalizer
from tests.conftest import NOW, _make_user


def _department_with_head():
    return RecordNormalizer.members([
        _make_user("head", role="department_head"),
        _make_user("m1"), _make_user("m2"), _make_user("m3"), _make_user("m4", is_active=False),
    ]).items


class TestShouldExclude:
    def test_only_self_measurable_roles_on_request(self):
        head = Actor(id="head", role="hod")
        assert SelfExclusionAdjuster.should_exclude(head, True) is True
        assert SelfExclusionAdjuster.should_exclude(head, False) is False
        assert SelfExclusionAdjuster.should_exclude(Actor(id="m", role="manager"), True) is False
        assert SelfExclusionAdjuster.should_exclude(Actor(role="department_head"), True) is False
        assert SelfExclusionAdjuster.should_exclude(None, True) is False

    def test_role_match_by_key_or_label(self):
        role = UserRole.department_head
        assert SelfExclusionAdjuster.matches_role(DistributionEntry(key="department_head", name="x"), role)
        assert SelfExclusionAdjuster.matches_role(DistributionEntry(name="HEAD"), role)
        assert not SelfExclusionAdjuster.matches_role(DistributionEntry(name="Head of Sales"), role)


class TestScenarioD:
    def test_population_path(self):
        members = _department_with_head()
        population = SelfExclusionAdjuster.exclude_actor(members, "head")
        snapshot = MetricCalculator.snapshot([], population, NOW)
        assert snapshot.summary.total_members == 4
        assert all(e.key != "department_head" for e in snapshot.role_distribution)

    def test_snapshot_path_matches_population_path(self):
        members = _department_with_head()
        full = MetricCalculator.snapshot([], members, NOW)
        adjusted = SelfExclusionAdjuster.adjust(full, UserRole.department_head, True)
        expected = MetricCalculator.snapshot([], SelfExclusionAdjuster.exclude_actor(members, "head"), NOW)

        assert adjusted.warnings == []
        assert adjusted.value.summary == expected.summary
        assert adjusted.value.role_distribution == expected.role_distribution

    def test_not_applied_when_population_excludes_actor(self):
        snapshot = MetricCalculator.snapshot([], _department_with_head(), NOW)
        assert SelfExclusionAdjuster.adjust(snapshot, UserRole.department_head, False).value is snapshot


class TestFlooring:
    def test_role_entry_decremented_not_removed(self):
        entries = [DistributionEntry(name="Head", value=2), DistributionEntry(name="Members", value=3)]
        adjusted = SelfExclusionAdjuster.adjust_role_distribution(entries, UserRole.department_head)
        assert [(e.name, e.value) for e in adjusted.value] == [("Head", 1), ("Members", 3)]

    def test_zero_counts_floor_and_report(self):
        snapshot = Snapshot(
            summary=SummaryMetrics(total_members=0, active_members=0),
            role_distribution=[DistributionEntry(name="Head", value=0)],
        )
        adjusted = SelfExclusionAdjuster.adjust(snapshot, UserRole.department_head, True)
        assert adjusted.value.summary.total_members == 0
        assert adjusted.value.summary.active_members == 0
        assert adjusted.value.role_distribution == []
        assert DiagnosticCode.inconsistent_adjustment in adjusted.warnings

    def test_monotonic_non_increasing(self):
        summary = SummaryMetrics(total_tasks=9, total_members=3, active_members=1)
        adjusted = SelfExclusionAdjuster.adjust_summary(summary).value
        assert adjusted.total_members <= summary.total_members
        assert adjusted.active_members <= summary.active_members
        assert adjusted.avg_tasks_per_member == 5  # 9 / 2 → 4.5 rounds up
        assert adjusted.engagement_rate == 0


class TestAuthoritativePayload:
    def test_detects_actor_in_remote_role_data(self):
        role = UserRole.department_head
        with_head = PartialSnapshot(role_distribution=[DistributionEntry(name="head", value=1)])
        zero_head = PartialSnapshot(role_distribution=[DistributionEntry(name="Head", value=0)])
        assert SelfExclusionAdjuster.authoritative_includes_actor(with_head, role)
        assert not SelfExclusionAdjuster.authoritative_includes_actor(zero_head, role)
        assert not SelfExclusionAdjuster.authoritative_includes_actor(PartialSnapshot(), role)
        assert not SelfExclusionAdjuster.authoritative_includes_actor(None, role)

    def test_partial_summary_recomputes_or_clears_ratios(self):
        partial = PartialSnapshot(
            summary=PartialSummary(total_tasks=12, total_members=5, active_members=5, avg_tasks_per_member=2),
            role_distribution=[DistributionEntry(name="Head", value=1), DistributionEntry(name="Members", value=4)],
        )
        adjusted = SelfExclusionAdjuster.adjust_partial(partial, UserRole.department_head).value
        assert adjusted.summary.total_members == 4
        assert adjusted.summary.active_members == 4
        assert adjusted.summary.avg_tasks_per_member == 3
        assert adjusted.summary.engagement_rate == 100
        assert [e.name for e in adjusted.role_distribution] == ["Members"]

        sparse = PartialSnapshot(summary=PartialSummary(total_members=5, avg_tasks_per_member=2))
        cleared = SelfExclusionAdjuster.adjust_partial(sparse, UserRole.department_head).value
        assert cleared.summary.total_members == 4
        assert cleared.summary.avg_tasks_per_member is None
        assert cleared.summary.engagement_rate is None
