"""Dashboard service — the analytics engine's public entry point.

Data flow: normalize → scope population → filter records → calculate the
local fallback → adjust the authoritative payload for self-exclusion →
resolve per group → tag provenance.

No exception escapes ``AnalyticsEngine.build_snapshot``; an unexpected
failure is logged and reported as an explicit empty snapshot.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Optional

from analytics_engine.common.constants import DiagnosticCode, GroupState, MetricGroup, MetricSource
from analytics_engine.common.filters import apply_filters, scope_population
from analytics_engine.config import settings
from analytics_engine.dashboard.schemas import Diagnostics, SnapshotRequest, SnapshotResponse
from analytics_engine.exclusion.service import SelfExclusionAdjuster
from analytics_engine.merge.schemas import GroupStatus
from analytics_engine.merge.service import MergeResolver, coerce_authoritative
from analytics_engine.metrics.schemas import SnapshotView
from analytics_engine.metrics.service import MetricCalculator
from analytics_engine.records.service import RecordNormalizer

logger = logging.getLogger(__name__)


class AnalyticsEngine:
    """Builds role-scoped metric snapshots."""

    @staticmethod
    def build_snapshot(request: SnapshotRequest, now: Optional[datetime] = None) -> SnapshotResponse:
        """Compute, adjust and resolve one snapshot.  Never raises."""
        now = _aware(now or datetime.now(timezone.utc))
        try:
            return AnalyticsEngine._build(request, now)
        except Exception:
            logger.exception("Snapshot computation failed; returning empty snapshot")
            return AnalyticsEngine.empty_response(now)

    @staticmethod
    def empty_response(now: datetime, diagnostics: Optional[Diagnostics] = None) -> SnapshotResponse:
        """Every group in the explicit empty state."""
        status = GroupStatus(source=MetricSource.computed, state=GroupState.error_empty)
        return SnapshotResponse(
            snapshot=SnapshotView(),
            groups={group.value: status for group in MetricGroup},
            diagnostics=diagnostics or Diagnostics(),
            generated_at=now,
        )

    # ── Internal helper ─────────────────────────────────────────────

    @staticmethod
    def _build(request: SnapshotRequest, now: datetime) -> SnapshotResponse:
        warnings: list[DiagnosticCode] = []

        # Normalize
        tasks = RecordNormalizer.tasks(request.raw_records)
        leaves = RecordNormalizer.leaves(request.leave_records)
        members = RecordNormalizer.members(request.population)
        departments = RecordNormalizer.departments(request.departments)
        skipped = tasks.skipped + leaves.skipped + members.skipped + departments.skipped
        if skipped:
            warnings.append(DiagnosticCode.malformed_record)

        # Scope
        criteria = request.filters
        actor = request.actor
        excluding = SelfExclusionAdjuster.should_exclude(actor, request.exclude_self)
        if excluding and not criteria.owner_scope.exclude_user_id:
            criteria = criteria.model_copy(update={
                "owner_scope": criteria.owner_scope.model_copy(update={"exclude_user_id": actor.id}),
            })
        population = scope_population(
            members.items,
            criteria.owner_scope,
            exclude_member_id=actor.id if excluding else None,
        )

        # Filter
        records = apply_filters(tasks.items, criteria, now)
        leave_records = apply_filters(
            RecordNormalizer.inherit_owner_scope(leaves.items, members.items),
            criteria,
            now,
            include_status=False,
        )

        # Local fallback
        limit = criteria.ranking_limit if criteria.ranking_limit is not None else settings.RANKING_LIMIT
        fallback = MetricCalculator.snapshot(
            records,
            population,
            now,
            leaves=leave_records,
            departments=departments.items,
            granularity=criteria.trend_granularity,
            periods=criteria.trend_periods,
            include_overdue=criteria.include_overdue,
            ranking_limit=limit or None,
            tz=settings.TIMEZONE,
            status_categories=criteria.status_categories,
            priority_categories=criteria.priority_categories,
        )
        if not population and not records:
            warnings.append(DiagnosticCode.empty_population)

        # Authoritative
        authoritative = coerce_authoritative(request.authoritative)
        if authoritative is None:
            logger.warning("No authoritative payload; using local computation")
            warnings.append(DiagnosticCode.fetch_failure)
        elif excluding and SelfExclusionAdjuster.authoritative_includes_actor(authoritative, actor.role):
            adjusted = SelfExclusionAdjuster.adjust_partial(authoritative, actor.role)
            authoritative = adjusted.value
            warnings += adjusted.warnings

        # Resolve
        resolved = MergeResolver.resolve(authoritative, fallback)
        fallback_available = bool(tasks.items or leaves.items or members.items)
        statuses = MergeResolver.provenance(authoritative, fallback_available=fallback_available)

        return SnapshotResponse(
            snapshot=MergeResolver.view(resolved, statuses),
            groups={group.value: status for group, status in statuses.items()},
            diagnostics=Diagnostics(skipped_records=skipped, warnings=list(dict.fromkeys(warnings))),
            generated_at=now,
        )


def _aware(moment: datetime) -> datetime:
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment
