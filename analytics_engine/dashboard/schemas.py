"""Dashboard Pydantic v2 schemas — request/response models for the analytics endpoints."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from pydantic import Field

from analytics_engine.common.constants import DiagnosticCode
from analytics_engine.common.filters import FilterCriteria
from analytics_engine.common.models import ApiModel
from analytics_engine.merge.schemas import GroupStatus
from analytics_engine.metrics.schemas import SnapshotView
from analytics_engine.records.schemas import Actor


# ═════════════════════════════════════════════════════════════════════
# POST /snapshot
# ═════════════════════════════════════════════════════════════════════


class SnapshotRequest(ApiModel):
    """Everything the fetch layer hands the engine for one recomputation.

    Records, population and departments are passed raw; the engine
    normalizes them and skips whatever it cannot resolve.
    """

    authoritative: Optional[dict[str, Any]] = Field(
        None, description="Pre-aggregated remote payload; null when the fetch failed"
    )
    raw_records: list[Any] = Field(default_factory=list, description="Task records")
    leave_records: list[Any] = Field(default_factory=list)
    population: list[Any] = Field(default_factory=list, description="Users being measured")
    departments: list[Any] = Field(default_factory=list)
    filters: FilterCriteria = Field(default_factory=FilterCriteria)
    actor: Optional[Actor] = None
    exclude_self: bool = Field(False, description="Hide the actor from their own team view")


class Diagnostics(ApiModel):
    """Non-fatal problems met while building a snapshot."""

    skipped_records: int = 0
    warnings: list[DiagnosticCode] = Field(default_factory=list)


class SnapshotResponse(ApiModel):
    """Resolved snapshot plus per-group provenance."""

    snapshot: SnapshotView
    groups: dict[str, GroupStatus] = Field(default_factory=dict, description="Keyed by metric group")
    diagnostics: Diagnostics = Field(default_factory=Diagnostics)
    generated_at: datetime
