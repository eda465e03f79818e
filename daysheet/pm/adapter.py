# daysheet/pm/adapter.py
"""
Project-management / time-tracking backend boundary.

Concrete backends implement `PmAdapter`. Reference data that changes slowly
(projects, activity types) is held in a per-adapter TTL cache keyed by
request parameters.
"""

import asyncio
import logging
import time
from datetime import date
from typing import Any, Awaitable, Callable, List, Optional, Protocol, Sequence, Tuple

from cachetools import TTLCache

from daysheet.processing_service.models import (
    ActivityType,
    Allocation,
    PmContext,
    Project,
    SubmitResult,
    TimeLogSubmission,
    TimeRecord,
)
from daysheet.shared.errors import LockViolation, SubmissionError

log = logging.getLogger(__name__)


class PmAdapter(Protocol):
    name: str

    async def get_projects(self) -> List[Project]: ...

    async def get_activity_types(self, project_id: Optional[str] = None) -> List[ActivityType]: ...

    async def get_allocations(self, day: date) -> List[Allocation]: ...

    async def get_existing_records(self, day: date) -> List[TimeRecord]: ...

    async def get_time_lock_date(self) -> Optional[date]: ...

    async def submit_time_log(self, entry: TimeLogSubmission) -> SubmitResult: ...


class ReferenceCache:
    """Per-adapter TTL cache for slow-changing reference data. Nothing is shared between adapters."""

    def __init__(self, ttl_s: float = 300.0, maxsize: int = 128, clock: Callable[[], float] = time.monotonic):
        self._cache: TTLCache = TTLCache(maxsize=maxsize, ttl=ttl_s, timer=clock)

    def get(self, key: Tuple) -> Optional[Any]:
        return self._cache.get(key)

    def set(self, key: Tuple, value: Any) -> None:
        self._cache[key] = value

    async def get_or_fetch(self, key: Tuple, fetch: Callable[[], Awaitable[Any]]) -> Any:
        cached = self.get(key)
        if cached is not None:
            return cached
        value = await fetch()
        self.set(key, value)
        return value

    def clear(self) -> None:
        self._cache.clear()


MOCK_PROJECTS = [
    Project(id="p1", name="Project Alpha", code="ALPHA"),
    Project(id="p2", name="DevApp", code="DEV"),
    Project(id="p3", name="Customer Portal", code="CP"),
    Project(id="p4", name="Internal/Admin", code="INT"),
    Project(id="p5", name="Sales & Marketing", code="SAL"),
    Project(id="p6", name="Training", code="TRN"),
]

MOCK_ACTIVITY_TYPES = [
    ActivityType(id="a1", name="Development"),
    ActivityType(id="a2", name="R&D"),
    ActivityType(id="a3", name="Meetings"),
    ActivityType(id="a4", name="Administration"),
    ActivityType(id="a5", name="Documentation"),
    ActivityType(id="a6", name="Testing"),
    ActivityType(id="a7", name="Planning"),
]

MOCK_ALLOCATIONS = [
    Allocation(project_id="p1", project_name="Project Alpha", allocated_hours=3),
    Allocation(project_id="p2", project_name="DevApp", allocated_hours=3),
    Allocation(project_id="p4", project_name="Internal/Admin", allocated_hours=1.5),
]


class MockPmAdapter:
    """In-memory backend with demo projects. Records submissions instead of sending them."""

    name = "mock"

    def __init__(self, time_lock_date: Optional[date] = None, ttl_s: float = 300.0):
        self.time_lock_date = time_lock_date
        self.submitted: List[TimeLogSubmission] = []
        self.cache = ReferenceCache(ttl_s)

    async def get_projects(self) -> List[Project]:
        async def fetch():
            return list(MOCK_PROJECTS)
        return await self.cache.get_or_fetch(("projects",), fetch)

    async def get_activity_types(self, project_id: Optional[str] = None) -> List[ActivityType]:
        async def fetch():
            return list(MOCK_ACTIVITY_TYPES)
        return await self.cache.get_or_fetch(("activity_types", project_id or "all"), fetch)

    async def get_allocations(self, day: date) -> List[Allocation]:
        return list(MOCK_ALLOCATIONS)

    async def get_existing_records(self, day: date) -> List[TimeRecord]:
        names = {p.id: p.name for p in MOCK_PROJECTS}
        types = {t.id: t.name for t in MOCK_ACTIVITY_TYPES}
        return [
            TimeRecord(
                project_id=e.project_id,
                project_name=names.get(e.project_id, e.project_id),
                activity_type_id=e.activity_type_id,
                activity_type_name=types.get(e.activity_type_id),
                date=e.date,
                hours=e.hours,
                description=e.description,
            )
            for e in self.submitted
            if e.date == day
        ]

    async def get_time_lock_date(self) -> Optional[date]:
        return self.time_lock_date

    async def submit_time_log(self, entry: TimeLogSubmission) -> SubmitResult:
        if entry.project_id not in {p.id for p in MOCK_PROJECTS}:
            raise SubmissionError(entry.id, f"Unknown project '{entry.project_id}'")
        if entry.activity_type_id not in {t.id for t in MOCK_ACTIVITY_TYPES}:
            raise SubmissionError(entry.id, f"Unknown activity type '{entry.activity_type_id}'")
        log.info(f"[MockPM] Submitting time log: {entry.model_dump_json()}")
        self.submitted.append(entry)
        return SubmitResult(entry_id=entry.id, success=True)


# Adapters idle longer than this are dropped and rebuilt on next use
ADAPTER_IDLE_TTL_S = 3600.0
ADAPTER_CACHE_SIZE = 256

_adapters: TTLCache = TTLCache(maxsize=ADAPTER_CACHE_SIZE, ttl=ADAPTER_IDLE_TTL_S)


def get_pm_adapter(provider: str = "mock", user: Optional[str] = None, ttl_s: float = 300.0) -> PmAdapter:
    """Returns the adapter for a provider, one instance per user."""
    if provider != "mock":
        raise ValueError(f"Unknown PM provider: {provider}")
    key = f"{provider}:{user or ''}"
    adapter = _adapters.get(key)
    if adapter is None:
        adapter = MockPmAdapter(ttl_s=ttl_s)
    # Re-inserting restarts the idle timer
    _adapters[key] = adapter
    return adapter


async def build_pm_context(adapter: PmAdapter, day: date) -> PmContext:
    projects, activity_types, allocations, existing, lock_date = await asyncio.gather(
        adapter.get_projects(),
        adapter.get_activity_types(),
        adapter.get_allocations(day),
        adapter.get_existing_records(day),
        adapter.get_time_lock_date(),
    )
    return PmContext(
        projects=projects,
        activity_types=activity_types,
        allocations=allocations,
        existing_records=existing,
        time_lock_date=lock_date,
    )


async def submit_entries(adapter: PmAdapter, entries: Sequence[TimeLogSubmission]) -> List[SubmitResult]:
    """
    Submits a batch of time-log entries.

    The lock date is checked once for the whole batch before anything is
    sent; a single locked entry rejects the batch. After that each entry is
    submitted on its own and failures are reported per entry.
    """
    lock_date = await adapter.get_time_lock_date()
    if lock_date is not None:
        locked = [e for e in entries if e.date <= lock_date]
        if locked:
            log.warning(f"Rejecting batch of {len(entries)}: {len(locked)} entries on or before lock date {lock_date}.")
            raise LockViolation(lock_date)

    async def submit_one(entry: TimeLogSubmission) -> SubmitResult:
        try:
            result = await adapter.submit_time_log(entry)
        except SubmissionError as e:
            log.warning(f"Backend rejected entry {e.entry_id}: {e}")
            return SubmitResult(entry_id=entry.id, success=False, error=str(e))
        except Exception as e:
            log.error(f"Submission of entry {entry.id} failed: {e}", exc_info=True)
            return SubmitResult(entry_id=entry.id, success=False, error=str(e))
        return SubmitResult(entry_id=entry.id, success=result.success, error=result.error)

    results = await asyncio.gather(*(submit_one(e) for e in entries))
    failures = sum(1 for r in results if not r.success)
    log.info(f"Submitted {len(results)} time-log entries ({failures} failed).")
    return list(results)
