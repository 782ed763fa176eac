"""Self-exclusion adjuster.

A department head measuring their own department is part of the population
the "team" view summarizes.  The adjustment removes that one person from the
headcount and from their role's distribution entry.

It must be applied exactly once per set of numbers: either to the population
before calculation (``exclude_actor``) or to a finished snapshot / remote
payload (``adjust`` / ``adjust_partial``), never both.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Generic, Optional, Sequence, TypeVar

from analytics_engine.common.constants import DiagnosticCode, UserRole
from analytics_engine.common.formatting import percentage, ratio
from analytics_engine.metrics.schemas import (
    DistributionEntry,
    PartialSnapshot,
    PartialSummary,
    Snapshot,
    SummaryMetrics,
)
from analytics_engine.records.schemas import Actor, Member

logger = logging.getLogger(__name__)

S = TypeVar("S")


@dataclass
class Adjustment(Generic[S]):
    """An adjusted value plus any flooring that happened on the way."""

    value: S
    warnings: list[DiagnosticCode] = field(default_factory=list)


class SelfExclusionAdjuster:
    """Removes the viewing actor from headcount and role metrics."""

    # ── Decision ────────────────────────────────────────────────────

    @staticmethod
    def should_exclude(actor: Optional[Actor], exclude_self: bool) -> bool:
        """Only self-measurable roles are ever excluded, and only on request."""
        return bool(
            exclude_self
            and actor is not None
            and actor.id
            and UserRole(actor.role).is_self_measurable
        )

    @staticmethod
    def exclude_actor(population: Sequence[Member], actor_id: str) -> list[Member]:
        """Population without the actor (preferred path: adjust before calculating)."""
        return [m for m in population if m.id != actor_id]

    @staticmethod
    def matches_role(entry: DistributionEntry, role: UserRole) -> bool:
        """Match on the enum value, else on the role's display label (case-insensitive)."""
        role = UserRole(role)
        if entry.key is not None and entry.key.strip().lower() == role.value:
            return True
        return entry.name.strip().lower() == role.label.lower()

    @staticmethod
    def authoritative_includes_actor(partial: Optional[PartialSnapshot], role: UserRole) -> bool:
        """A remote payload still counts the actor when it reports a positive entry for their role."""
        if partial is None or not partial.role_distribution:
            return False
        return any(
            SelfExclusionAdjuster.matches_role(entry, role) and entry.value > 0
            for entry in partial.role_distribution
        )

    # ── Role distribution ───────────────────────────────────────────

    @staticmethod
    def adjust_role_distribution(
        entries: Sequence[DistributionEntry],
        role: UserRole,
    ) -> Adjustment[list[DistributionEntry]]:
        """Decrement the actor's role entry by one; drop it when it reaches zero."""
        adjusted: list[DistributionEntry] = []
        warnings: list[DiagnosticCode] = []
        done = False
        for entry in entries:
            if done or not SelfExclusionAdjuster.matches_role(entry, role):
                adjusted.append(entry)
                continue
            done = True
            if entry.value <= 0:
                warnings.append(DiagnosticCode.inconsistent_adjustment)
                continue
            if entry.value > 1:
                adjusted.append(entry.model_copy(update={"value": entry.value - 1}))
        return Adjustment(adjusted, warnings)

    # ── Summary ─────────────────────────────────────────────────────

    @staticmethod
    def adjust_summary(summary: SummaryMetrics) -> Adjustment[SummaryMetrics]:
        """Headcount minus one (floored at 0); dependent ratios recomputed."""
        warnings: list[DiagnosticCode] = []
        total_members = _decrement(summary.total_members, warnings)
        active_members = _decrement(summary.active_members, warnings)
        avg_tasks, engagement = (
            ratio(summary.total_tasks, total_members),
            percentage(active_members, total_members),
        )
        return Adjustment(
            summary.model_copy(update={
                "total_members": total_members,
                "active_members": min(active_members, total_members),
                "avg_tasks_per_member": avg_tasks,
                "engagement_rate": engagement,
            }),
            warnings,
        )

    @staticmethod
    def adjust_partial_summary(summary: PartialSummary) -> Adjustment[PartialSummary]:
        """Same as ``adjust_summary`` for a remote summary whose fields may be missing.

        Derived ratios that cannot be recomputed from the remote numbers are
        cleared so the resolver falls back to the local value.
        """
        warnings: list[DiagnosticCode] = []
        update: dict = {}
        if summary.total_members is not None:
            update["total_members"] = _decrement(summary.total_members, warnings)
        if summary.active_members is not None:
            update["active_members"] = _decrement(summary.active_members, warnings)

        total_members = update.get("total_members")
        if total_members is not None and summary.total_tasks is not None:
            update["avg_tasks_per_member"] = ratio(summary.total_tasks, total_members)
        else:
            update["avg_tasks_per_member"] = None
        active_members = update.get("active_members")
        if total_members is not None and active_members is not None:
            update["engagement_rate"] = percentage(active_members, total_members)
        else:
            update["engagement_rate"] = None
        return Adjustment(summary.model_copy(update=update), warnings)

    # ── Whole snapshots ─────────────────────────────────────────────

    @staticmethod
    def adjust(
        snapshot: Snapshot,
        role: UserRole,
        population_includes_actor: bool,
    ) -> Adjustment[Snapshot]:
        """Adjust a finished snapshot whose population still contains the actor."""
        if not population_includes_actor:
            return Adjustment(snapshot)
        summary = SelfExclusionAdjuster.adjust_summary(snapshot.summary)
        roles = SelfExclusionAdjuster.adjust_role_distribution(snapshot.role_distribution, role)
        return Adjustment(
            snapshot.model_copy(update={
                "summary": summary.value,
                "role_distribution": roles.value,
            }),
            summary.warnings + roles.warnings,
        )

    @staticmethod
    def adjust_partial(partial: PartialSnapshot, role: UserRole) -> Adjustment[PartialSnapshot]:
        """Adjust a remote payload that still counts the actor."""
        warnings: list[DiagnosticCode] = []
        update: dict = {}
        if partial.summary is not None:
            summary = SelfExclusionAdjuster.adjust_partial_summary(partial.summary)
            update["summary"] = summary.value
            warnings += summary.warnings
        if partial.role_distribution is not None:
            roles = SelfExclusionAdjuster.adjust_role_distribution(partial.role_distribution, role)
            update["role_distribution"] = roles.value
            warnings += roles.warnings
        if warnings:
            logger.warning("Self-exclusion floored a count at zero (role=%s)", UserRole(role).value)
        return Adjustment(partial.model_copy(update=update), warnings)


def _decrement(value: int, warnings: list[DiagnosticCode]) -> int:
    if value <= 0:
        warnings.append(DiagnosticCode.inconsistent_adjustment)
        return 0
    return value - 1
