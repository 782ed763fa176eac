"""Shared test fixtures — fixed clock, app/client, raw record factories.

Factories build *raw* upstream payloads (camelCase, string dates) so every
test also goes through the normalizer the way production data does.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import AsyncGenerator

import pytest
from httpx import ASGITransport, AsyncClient

from analytics_engine.main import create_app

# A fixed 'now' for deterministic tests (a Monday)
NOW = datetime(2026, 3, 16, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture(autouse=True)
def _reset_rate_limiter():
    """Reset rate limiter storage between tests to prevent cross-test interference."""
    from analytics_engine.common.rate_limit import limiter

    limiter.reset()
    yield


# ── FastAPI test client ─────────────────────────────────────────────

@pytest.fixture
async def app():
    yield create_app()


@pytest.fixture
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client wired to the test app."""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac


# ── Raw payload factories ───────────────────────────────────────────

def _iso(moment: datetime) -> str:
    return moment.isoformat().replace("+00:00", "Z")


def _make_task(
    task_id: str,
    *,
    status: str = "assigned",
    assigned_to=None,
    priority: str | None = "medium",
    department_id: str | None = "dept-eng",
    assigned_by: str | None = None,
    created_days_ago: float = 1,
    updated_days_ago: float | None = None,
    due_in_days: float | None = None,
) -> dict:
    created = NOW - timedelta(days=created_days_ago)
    updated = NOW - timedelta(days=updated_days_ago) if updated_days_ago is not None else created
    task = {
        "_id": task_id,
        "title": f"Task {task_id}",
        "status": status,
        "priority": priority,
        "assignedTo": assigned_to,
        "departmentId": department_id,
        "createdAt": _iso(created),
        "updatedAt": _iso(updated),
    }
    if assigned_by is not None:
        task["assignedBy"] = assigned_by
    if due_in_days is not None:
        task["dueDate"] = _iso(NOW + timedelta(days=due_in_days))
    return task


def _make_user(
    user_id: str,
    *,
    name: str | None = None,
    role: str = "member",
    is_active: bool = True,
    department_id: str | None = "dept-eng",
    manager_id: str | None = None,
) -> dict:
    return {
        "_id": user_id,
        "name": name or user_id.title(),
        "email": f"{user_id}@example.com",
        "role": role,
        "isActive": is_active,
        "departmentId": department_id,
        "managerId": manager_id,
    }


def _make_leave(
    leave_id: str,
    *,
    user_id: str = "alice",
    status: str = "pending",
    leave_type: str = "annual",
    created_days_ago: float = 1,
    department_id: str | None = None,
) -> dict:
    leave = {
        "_id": leave_id,
        "user": {"_id": user_id},
        "status": status,
        "leaveType": leave_type,
        "createdAt": _iso(NOW - timedelta(days=created_days_ago)),
        "startDate": _iso(NOW + timedelta(days=3)),
    }
    if department_id:
        leave["departmentId"] = department_id
    return leave


def _make_department(department_id: str = "dept-eng", *, name: str = "Engineering") -> dict:
    return {"_id": department_id, "name": name}
