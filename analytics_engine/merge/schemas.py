"""Merge/provenance Pydantic v2 schemas."""

from __future__ import annotations

from pydantic import ConfigDict

from analytics_engine.common.constants import GroupState, MetricSource
from analytics_engine.common.models import ApiModel


class GroupStatus(ApiModel):
    """Where one metric group's numbers came from."""

    model_config = ConfigDict(frozen=True)

    source: MetricSource
    state: GroupState
