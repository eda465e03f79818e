import asyncio
import pytest
from datetime import date
from typing import List

from daysheet.client.cache import SuggestionCache
from daysheet.client.lifecycle import READY, SUBMITTED, SUGGESTIONS, SuggestionController
from daysheet.processing_service.models import (
    PmContext,
    Project,
    SourceActivity,
    SubmitResult,
    Suggestion,
    SuggestionResponse,
)
from daysheet.shared.errors import ActionNotAllowed, ModelTransportError

DAY = date(2025, 1, 15)


def make_suggestion(n: int, hours: float = 1.0) -> Suggestion:
    return Suggestion(
        id=f"s{n}",
        project_id=f"p{n}",
        project_name=f"Project {n}",
        activity_type_id="a1",
        activity_type_name="Development",
        hours=hours,
        description=f"Work item {n}",
        source_activities=[SourceActivity(source="chat", title="hi", timestamp=f"2025-01-15T0{n}:00:00+00:00")],
    )


class FakeBackend:
    def __init__(self, suggestions=None, lock_date=None):
        self.suggestions = suggestions if suggestions is not None else [make_suggestion(i) for i in (1, 2, 3)]
        self.lock_date = lock_date
        self.suggest_calls = 0
        self.context_calls = 0
        self.submitted: List = []
        self.suggest_error = None
        self.submit_error = None
        self.gate = None

    async def fetch_pm_context(self, day):
        self.context_calls += 1
        return PmContext(projects=[Project(id="p1", name="Project 1")], time_lock_date=self.lock_date)

    async def suggest(self, day, hours, context):
        self.suggest_calls += 1
        if self.gate is not None:
            await self.gate.wait()
        if self.suggest_error:
            raise self.suggest_error
        return SuggestionResponse(
            suggestions=[s.model_copy() for s in self.suggestions],
            total_hours=sum(s.hours for s in self.suggestions),
            unaccounted_minutes=0,
        )

    async def submit(self, entries):
        if self.submit_error:
            raise self.submit_error
        self.submitted.extend(entries)
        return [SubmitResult(entry_id=e.id, success=e.id != "s3", error=None if e.id != "s3" else "rejected") for e in entries]


class FakeClock:
    def __init__(self):
        self.now = 100.0

    def __call__(self):
        return self.now


@pytest.fixture
def backend():
    return FakeBackend()


@pytest.fixture
def cache():
    return SuggestionCache(":memory:")


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def highlights():
    return []


@pytest.fixture
def controller(backend, cache, clock, highlights):
    return SuggestionController(backend, cache, DAY, on_highlight=highlights.append, clock=clock)


@pytest.mark.asyncio
async def test_generate_populates_and_focuses_first(controller, cache, highlights):
    await controller.generate()

    assert controller.state == SUGGESTIONS
    assert [s.status for s in controller.suggestions] == ["pending"] * 3
    assert controller.expanded_id == "s1"
    assert highlights[-1] == ["chat-2025-01-15T01:00:00+00:00"]
    assert cache.load(DAY) is not None


@pytest.mark.asyncio
async def test_generate_restores_from_cache(controller, backend, cache):
    await controller.generate()
    controller.approve("s1")

    fresh = SuggestionController(backend, cache, DAY)
    await fresh.generate()

    assert backend.suggest_calls == 1
    assert fresh.suggestions[0].status == "approved"
    assert fresh.state == SUGGESTIONS


@pytest.mark.asyncio
async def test_force_refresh_bypasses_cache(controller, backend):
    await controller.generate()
    await controller.generate(force_refresh=True)
    assert backend.suggest_calls == 2


@pytest.mark.asyncio
async def test_approve_advances_to_next_pending(controller):
    await controller.generate()
    controller.approve("s2")
    controller.approve("s1")
    assert controller.expanded_id == "s3"
    controller.approve("s3")
    assert controller.expanded_id is None
    assert controller.approved_hours == 3.0


@pytest.mark.asyncio
async def test_reject_then_undo(controller, clock):
    await controller.generate()

    controller.reject("s2")
    assert "s2" not in [s.id for s in controller.visible_suggestions]
    assert controller.expanded_id == "s3"

    clock.now += 3
    assert controller.undo() is True
    restored = controller.suggestions[1]
    assert restored.id == "s2"
    assert restored.status == "pending"
    assert controller.expanded_id == "s2"


@pytest.mark.asyncio
async def test_undo_expires(controller, clock):
    await controller.generate()
    controller.reject("s2")
    clock.now += 6
    assert controller.undo() is False
    assert controller.suggestions[1].status == "skipped"


@pytest.mark.asyncio
async def test_second_undo_is_noop(controller):
    await controller.generate()
    controller.reject("s1")
    assert controller.undo() is True
    assert controller.undo() is False


@pytest.mark.asyncio
async def test_undo_refused_while_locked_keeps_rejection(controller, clock):
    await controller.generate()
    controller.reject("s2")
    unlocked = controller.pm_context
    controller.pm_context = unlocked.model_copy(update={"time_lock_date": DAY})

    with pytest.raises(ActionNotAllowed):
        controller.undo()
    assert controller.suggestions[1].status == "skipped"

    controller.pm_context = unlocked
    clock.now += 2
    assert controller.undo() is True
    assert controller.suggestions[1].status == "pending"


@pytest.mark.asyncio
async def test_approve_all(controller):
    await controller.generate()
    controller.reject("s1")
    controller.approve_all()
    assert [s.status for s in controller.suggestions] == ["skipped", "approved", "approved"]
    assert controller.expanded_id is None
    assert controller.pending_suggestions == []


@pytest.mark.asyncio
async def test_edit_rules(controller):
    await controller.generate()

    controller.approve("s1")
    edited = controller.edit("s1", hours=1.2, description="Pairing on login")
    assert edited.status == "edited"
    assert edited.hours == 1.0
    assert controller.suggestions[0].description == "Pairing on login"

    still_pending = controller.edit("s2", hours=2)
    assert still_pending.status == "pending"

    controller.reject("s3")
    with pytest.raises(ActionNotAllowed):
        controller.edit("s3", hours=2)
    with pytest.raises(ActionNotAllowed):
        controller.edit("s2", status="approved")


@pytest.mark.asyncio
async def test_submit_sends_approved_and_edited(controller, backend, cache):
    await controller.generate()
    controller.approve("s1")
    controller.approve("s3")
    controller.edit("s3", hours=2.5)

    results = await controller.submit()

    assert controller.state == SUBMITTED
    assert [e.id for e in backend.submitted] == ["s1", "s3"]
    assert backend.submitted[1].hours == 2.5
    assert backend.submitted[0].date == DAY
    assert backend.submitted[0].description == "Work item 1"
    assert results["s1"].success and not results["s3"].success
    assert cache.load(DAY).state == SUBMITTED


@pytest.mark.asyncio
async def test_submit_failure_keeps_approvals(controller, backend):
    await controller.generate()
    controller.approve("s1")
    backend.submit_error = ConnectionError("offline")

    await controller.submit()

    assert controller.state == SUGGESTIONS
    assert controller.error == "offline"
    assert controller.suggestions[0].status == "approved"


@pytest.mark.asyncio
async def test_submit_requires_approvals(controller):
    await controller.generate()
    with pytest.raises(ActionNotAllowed):
        await controller.submit()


@pytest.mark.asyncio
async def test_locked_date_disables_mutations(cache):
    backend = FakeBackend(lock_date=DAY)
    controller = SuggestionController(backend, cache, DAY)
    await controller.generate()

    assert controller.is_locked
    for action in (lambda: controller.approve("s1"), lambda: controller.reject("s1"),
                   lambda: controller.edit("s1", hours=2), controller.approve_all):
        with pytest.raises(ActionNotAllowed):
            action()
    with pytest.raises(ActionNotAllowed):
        await controller.submit()

    await controller.generate(force_refresh=True)
    assert backend.suggest_calls == 2


@pytest.mark.asyncio
async def test_actions_rejected_before_generate(controller):
    with pytest.raises(ActionNotAllowed):
        controller.approve_all()


@pytest.mark.asyncio
async def test_generation_failure_keeps_previous_suggestions(controller, backend, cache):
    await controller.generate()
    backend.suggest_error = ModelTransportError("Gemini timed out after 30s")

    await controller.generate(force_refresh=True)

    assert controller.state == SUGGESTIONS
    assert len(controller.suggestions) == 3
    assert "timed out" in controller.error
    assert cache.load(DAY) is not None


@pytest.mark.asyncio
async def test_first_generation_failure_returns_to_ready(controller, backend):
    backend.suggest_error = ModelTransportError("empty response")
    await controller.generate()
    assert controller.state == READY
    assert controller.error == "empty response"


@pytest.mark.asyncio
async def test_stale_generation_discarded(controller, backend):
    backend.gate = asyncio.Event()
    task = asyncio.create_task(controller.generate())
    await asyncio.sleep(0)

    await controller.set_date(date(2025, 1, 16))
    backend.gate.set()
    await task

    assert controller.day == date(2025, 1, 16)
    assert controller.suggestions == []
    assert controller.state == READY


@pytest.mark.asyncio
async def test_set_date_without_cache_fetches_context_only(controller, backend):
    await controller.generate()
    await controller.set_date(date(2025, 1, 16))

    assert controller.state == READY
    assert controller.suggestions == []
    assert controller.pm_context is not None
    assert backend.context_calls == 2
    assert backend.suggest_calls == 1


@pytest.mark.asyncio
async def test_set_date_back_restores_cache(controller):
    await controller.generate()
    controller.approve("s1")
    await controller.set_date(date(2025, 1, 16))
    await controller.set_date(DAY)

    assert controller.state == SUGGESTIONS
    assert controller.suggestions[0].status == "approved"


@pytest.mark.asyncio
async def test_focus_navigation_and_expand(controller, highlights):
    await controller.generate()
    controller.reject("s2")

    assert controller.expanded_id == "s3"
    controller.expand("s3")
    assert controller.expanded_id is None
    assert highlights[-1] == []

    controller.focus_next()
    assert controller.expanded_id == "s1"
    controller.focus_next()
    assert controller.expanded_id == "s3"
    controller.focus_next()
    assert controller.expanded_id == "s3"
    controller.focus_previous()
    assert controller.expanded_id == "s1"

    controller.expand("s3")
    assert controller.expanded_id == "s3"
    assert highlights[-1] == ["chat-2025-01-15T03:00:00+00:00"]


@pytest.mark.asyncio
async def test_total_hours_excludes_skipped(controller):
    await controller.generate()
    controller.reject("s1")
    assert controller.total_hours == 2.0
