"""Authoritative analytics source — remote client, payload cache, stale-while-revalidate.

``AuthoritativeSource.fetch`` never raises: whatever cannot be fetched comes
back as ``None``, which the merge resolver treats as "use the local
computation".
"""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

import requests

from analytics_engine.common.exceptions import FetchFailure
from analytics_engine.common.filters import FilterCriteria
from analytics_engine.config import settings

logger = logging.getLogger(__name__)

OVERVIEW_PATH = "/analytics/overview"
DEPARTMENT_PATH = "/analytics/hod/analytics"


# ══════════════════════════════════════════════════════════════════════
# Remote API client
# ══════════════════════════════════════════════════════════════════════

class AnalyticsApiClient:
    """Analytics API client with bounded retries and exponential backoff."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        token: Optional[str] = None,
        *,
        retries: Optional[int] = None,
        timeout: Optional[float] = None,
        backoff_base: Optional[float] = None,
        backoff_max: Optional[float] = None,
        session: Optional[requests.Session] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.base_url = (base_url or settings.ANALYTICS_API_BASE_URL).rstrip("/")
        self.retries = settings.FETCH_RETRIES if retries is None else retries
        self.timeout = timeout or settings.FETCH_TIMEOUT_SECONDS
        self.backoff_base = settings.FETCH_BACKOFF_BASE_SECONDS if backoff_base is None else backoff_base
        self.backoff_max = settings.FETCH_BACKOFF_MAX_SECONDS if backoff_max is None else backoff_max
        self._sleep = sleep

        self.session = session or requests.Session()
        self.session.headers.update({
            "Accept": "application/json",
            "User-Agent": "AnalyticsEngine/1.0",
        })
        token = settings.ANALYTICS_API_TOKEN if token is None else token
        if token:
            self.session.headers["Authorization"] = f"Bearer {token}"

    def backoff(self, attempt: int) -> float:
        """Delay before retry number *attempt* (0-based): ``min(base * 2**attempt, max)``."""
        return min(self.backoff_base * (2 ** attempt), self.backoff_max)

    # ── HTTP with retry ───────────────────────────────────────────────

    def get(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        """GET *path*, retrying ``retries`` times; raises ``FetchFailure`` when all attempts fail."""
        url = f"{self.base_url}{path}"
        attempts = self.retries + 1
        last_error: Optional[BaseException] = None
        for attempt in range(attempts):
            try:
                resp = self.session.get(url, params=params, timeout=self.timeout)
                resp.raise_for_status()
                return resp.json()
            except (requests.RequestException, ValueError) as e:
                last_error = e
                if attempt < attempts - 1:
                    wait = self.backoff(attempt)
                    logger.warning(
                        "Request failed (attempt %d/%d): %s — retrying in %.1fs",
                        attempt + 1, attempts, e, wait,
                    )
                    self._sleep(wait)
        raise FetchFailure(path, attempts, last_error)

    def fetch_overview(self, criteria: FilterCriteria, department_id: Optional[str] = None) -> Any:
        """Pre-aggregated payload for the organisation, or for one department."""
        params: Dict[str, Any] = {
            "timeRange": criteria.time_range.value,
            "status": criteria.status,
        }
        if criteria.include_overdue:
            params["includeOverdue"] = "true"
        if department_id:
            params["departmentId"] = department_id
            return self.get(DEPARTMENT_PATH, params)
        return self.get(OVERVIEW_PATH, params)


# ══════════════════════════════════════════════════════════════════════
# Payload cache
# ══════════════════════════════════════════════════════════════════════

@dataclass
class CacheEntry:
    payload: Any
    fetched_at: float


class SnapshotCache:
    """Last authoritative payload per ``(scopeId, filters)``."""

    def __init__(self, stale_after: Optional[float] = None, clock: Callable[[], float] = time.monotonic):
        self.stale_after = settings.CACHE_STALE_SECONDS if stale_after is None else stale_after
        self._clock = clock
        self._entries: dict[tuple[str, str], CacheEntry] = {}

    @staticmethod
    def key(scope_id: str, criteria: FilterCriteria) -> tuple[str, str]:
        return scope_id, json.dumps(criteria.to_wire(), sort_keys=True)

    def get(self, scope_id: str, criteria: FilterCriteria) -> Optional[CacheEntry]:
        return self._entries.get(self.key(scope_id, criteria))

    def put(self, scope_id: str, criteria: FilterCriteria, payload: Any) -> None:
        self._entries[self.key(scope_id, criteria)] = CacheEntry(payload, self._clock())

    def is_stale(self, entry: CacheEntry) -> bool:
        return self._clock() - entry.fetched_at >= self.stale_after

    def clear(self) -> None:
        self._entries.clear()


# ══════════════════════════════════════════════════════════════════════
# Stale-while-revalidate source
# ══════════════════════════════════════════════════════════════════════

class AuthoritativeSource:
    """Combines client and cache; ``None`` means "fall back to local computation"."""

    def __init__(self, client: AnalyticsApiClient, cache: Optional[SnapshotCache] = None):
        self.client = client
        self.cache = cache or SnapshotCache()

    def fetch(
        self,
        scope_id: str,
        criteria: FilterCriteria,
        department_id: Optional[str] = None,
    ) -> Optional[Any]:
        entry = self.cache.get(scope_id, criteria)
        if entry is not None and not self.cache.is_stale(entry):
            return entry.payload

        try:
            payload = self.client.fetch_overview(criteria, department_id=department_id)
        except FetchFailure as exc:
            if entry is not None:
                logger.warning("Refetch failed for scope %s; serving stale payload: %s", scope_id, exc)
                return entry.payload
            logger.warning("Authoritative fetch failed for scope %s; falling back: %s", scope_id, exc)
            return None

        self.cache.put(scope_id, criteria, payload)
        return payload
