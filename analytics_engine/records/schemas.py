"""Canonical record shapes produced by the normalizer.

Downstream code (filters, calculators, adjuster) only ever sees these models;
it never branches on the raw upstream shape again.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional, Union

from pydantic import ConfigDict, Field, field_validator

from analytics_engine.common.constants import (
    LeaveStatus,
    RecordKind,
    TaskPriority,
    TaskStatus,
    UserRole,
    coerce_role,
)
from analytics_engine.common.models import ApiModel


class Record(ApiModel):
    """A task or leave request after normalization (read-only)."""

    model_config = ConfigDict(frozen=True)

    id: str
    kind: RecordKind = RecordKind.task
    owner_id: Optional[str] = Field(None, description="Primary assignee / requester")
    assignee_ids: tuple[str, ...] = Field(
        default=(), description="Every resolved assignee, primary first"
    )
    status: Union[TaskStatus, LeaveStatus]
    priority: Optional[TaskPriority] = None
    department_id: Optional[str] = None
    manager_id: Optional[str] = None
    category: Optional[str] = Field(None, description="Leave type for leave records")
    title: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    due_at: Optional[datetime] = None

    @property
    def is_completed(self) -> bool:
        return self.status == TaskStatus.completed


class Member(ApiModel):
    """A user in the measured population."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    email: Optional[str] = None
    role: UserRole = UserRole.member
    is_active: bool = True
    department_id: Optional[str] = None
    manager_id: Optional[str] = None

    @field_validator("role", mode="before")
    @classmethod
    def _coerce_role(cls, v):
        return coerce_role(v)


class Department(ApiModel):
    """Department lookup used to label rollups."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    head_id: Optional[str] = None


class Actor(ApiModel):
    """The viewing user."""

    id: Optional[str] = None
    role: UserRole = UserRole.member
    department_id: Optional[str] = None

    @field_validator("role", mode="before")
    @classmethod
    def _coerce_role(cls, v):
        return coerce_role(v)
