"""
Review-session controller for draft time-log suggestions.

Holds the state of one user's review session for one date:
ready -> loading -> suggestions <-> submitting -> submitted.
Network, model and storage access go through injected collaborators.
"""
import logging
import time
from datetime import date
from typing import Callable, Dict, List, Optional, Protocol, Sequence

from daysheet.client.cache import CachedSession, SuggestionCache
from daysheet.processing_service.logic.suggestion_parser import round_to_half
from daysheet.processing_service.models import (
    HourMap,
    PmContext,
    SubmitResult,
    Suggestion,
    SuggestionResponse,
    TimeLogSubmission,
)
from daysheet.shared.errors import ActionNotAllowed

log = logging.getLogger(__name__)

READY = "ready"
LOADING = "loading"
SUGGESTIONS = "suggestions"
SUBMITTING = "submitting"
SUBMITTED = "submitted"

UNDO_WINDOW_S = 5.0

EDITABLE_FIELDS = {
    "project_id",
    "project_name",
    "activity_type_id",
    "activity_type_name",
    "hours",
    "description",
    "internal_note",
}


class SuggestionBackend(Protocol):
    async def fetch_pm_context(self, day: date) -> PmContext: ...

    async def suggest(self, day: date, hours: HourMap, context: PmContext) -> SuggestionResponse: ...

    async def submit(self, entries: Sequence[TimeLogSubmission]) -> List[SubmitResult]: ...


class _Rejection:
    def __init__(self, suggestion: Suggestion, index: int, at: float):
        self.suggestion = suggestion
        self.index = index
        self.at = at


class SuggestionController:
    def __init__(
        self,
        backend: SuggestionBackend,
        cache: SuggestionCache,
        day: date,
        hours: Optional[HourMap] = None,
        on_highlight: Optional[Callable[[List[str]], None]] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.backend = backend
        self.cache = cache
        self.on_highlight = on_highlight
        self.clock = clock

        self.day = day
        self.hours: HourMap = hours or {}
        self.state = READY
        self.suggestions: List[Suggestion] = []
        self.pm_context: Optional[PmContext] = None
        self.submit_results: Dict[str, SubmitResult] = {}
        self.unaccounted_minutes: float = 0.0
        self.expanded_id: Optional[str] = None
        self.error: Optional[str] = None
        self._rejection: Optional[_Rejection] = None

    # --- Derived views ---
    @property
    def visible_suggestions(self) -> List[Suggestion]:
        return [s for s in self.suggestions if s.status != "skipped"]

    @property
    def pending_suggestions(self) -> List[Suggestion]:
        return [s for s in self.suggestions if s.status == "pending"]

    @property
    def approved_suggestions(self) -> List[Suggestion]:
        return [s for s in self.suggestions if s.status in ("approved", "edited")]

    @property
    def approved_hours(self) -> float:
        return sum(s.hours for s in self.approved_suggestions)

    @property
    def total_hours(self) -> float:
        return sum(s.hours for s in self.visible_suggestions)

    @property
    def is_locked(self) -> bool:
        return self.pm_context is not None and self.pm_context.is_locked(self.day)

    # --- Internals ---
    def _index(self, suggestion_id: str) -> int:
        for i, s in enumerate(self.suggestions):
            if s.id == suggestion_id:
                return i
        raise KeyError(suggestion_id)

    def _replace(self, index: int, **update) -> Suggestion:
        updated = self.suggestions[index].model_copy(update=update)
        self.suggestions[index] = updated
        return updated

    def _require_mutable(self, action: str):
        if self.is_locked:
            raise ActionNotAllowed(f"Cannot {action}: hours are locked through {self.pm_context.time_lock_date}")
        if self.state != SUGGESTIONS:
            raise ActionNotAllowed(f"Cannot {action} while {self.state}")

    def _highlight(self, suggestion: Optional[Suggestion]):
        if self.on_highlight is None:
            return
        keys = [f"{a.source}-{a.timestamp}" for a in suggestion.source_activities] if suggestion else []
        self.on_highlight(keys)

    def _focus(self, suggestion: Optional[Suggestion]):
        self.expanded_id = suggestion.id if suggestion else None
        self._highlight(suggestion)

    def _advance_focus(self, after_index: int):
        for s in self.suggestions[after_index + 1:]:
            if s.status == "pending":
                self._focus(s)
                return
        self._focus(None)

    def _persist(self):
        if self.state not in (SUGGESTIONS, SUBMITTED):
            return
        self.cache.save(self.day, self.suggestions, self.pm_context, self.submit_results, self.state)

    def _restore(self, cached: CachedSession):
        self.suggestions = list(cached.suggestions)
        self.pm_context = cached.pm_context
        self.submit_results = dict(cached.submit_results)
        self.state = cached.state if cached.state in (SUGGESTIONS, SUBMITTED) else SUGGESTIONS
        self.unaccounted_minutes = 0.0
        self.error = None
        self._rejection = None
        self._focus(None)
        log.info(f"Restored {len(self.suggestions)} suggestions for {self.day} from cache.")

    def _is_stale(self, started_for: date) -> bool:
        if self.day != started_for:
            log.info(f"Discarding result for {started_for}; session moved to {self.day}.")
            return True
        return False

    # --- Actions ---
    async def generate(self, force_refresh: bool = False) -> List[Suggestion]:
        """
        Loads suggestions for the current date.

        A valid cache entry is restored unless force_refresh is set. On
        failure the session returns to its previous suggestions (or to
        ready) with `error` set.
        """
        if not force_refresh:
            cached = self.cache.load(self.day)
            if cached is not None:
                self._restore(cached)
                return self.suggestions

        day = self.day
        fallback_state = SUGGESTIONS if self.suggestions else READY
        self.state = LOADING
        self.error = None
        try:
            context = await self.backend.fetch_pm_context(day)
            if self._is_stale(day):
                return self.suggestions
            self.pm_context = context
            response = await self.backend.suggest(day, self.hours, context)
        except Exception as e:
            if self._is_stale(day):
                return self.suggestions
            log.error(f"Suggestion generation for {day} failed: {e}", exc_info=True)
            self.error = str(e)
            self.state = fallback_state
            return self.suggestions
        if self._is_stale(day):
            return self.suggestions

        self.suggestions = list(response.suggestions)
        self.unaccounted_minutes = response.unaccounted_minutes
        self.submit_results = {}
        self._rejection = None
        self.state = SUGGESTIONS
        self._focus(self.suggestions[0] if self.suggestions else None)
        self._persist()
        return self.suggestions

    def approve(self, suggestion_id: str):
        self._require_mutable("approve")
        index = self._index(suggestion_id)
        self._replace(index, status="approved")
        self._advance_focus(index)
        self._persist()

    def reject(self, suggestion_id: str):
        self._require_mutable("reject")
        index = self._index(suggestion_id)
        original = self.suggestions[index]
        self._replace(index, status="skipped")
        self._rejection = _Rejection(original, index, self.clock())
        self._advance_focus(index)
        self._persist()

    def undo(self) -> bool:
        """Restores the last rejected suggestion if still inside the undo window."""
        rejection = self._rejection
        if rejection is None:
            return False
        if self.clock() - rejection.at > UNDO_WINDOW_S:
            self._rejection = None
            return False
        # A refused undo keeps the rejection for a retry within the window
        self._require_mutable("undo")
        self._rejection = None
        try:
            index = self._index(rejection.suggestion.id)
        except KeyError:
            index = min(rejection.index, len(self.suggestions))
            self.suggestions.insert(index, rejection.suggestion)
        restored = self._replace(index, status="pending")
        self._focus(restored)
        self._persist()
        return True

    def approve_all(self):
        self._require_mutable("approve all")
        for i, s in enumerate(self.suggestions):
            if s.status == "pending":
                self._replace(i, status="approved")
        self._focus(None)
        self._persist()

    def edit(self, suggestion_id: str, **fields) -> Suggestion:
        self._require_mutable("edit")
        index = self._index(suggestion_id)
        current = self.suggestions[index]
        if current.status == "skipped":
            raise ActionNotAllowed("Skipped suggestions cannot be edited")
        unknown = set(fields) - EDITABLE_FIELDS
        if unknown:
            raise ActionNotAllowed(f"Fields not editable: {', '.join(sorted(unknown))}")

        update = dict(fields)
        if "hours" in update:
            update["hours"] = round_to_half(float(update["hours"]))
        if current.status == "approved":
            update["status"] = "edited"
        updated = self._replace(index, **update)
        self._persist()
        return updated

    async def submit(self) -> Dict[str, SubmitResult]:
        """
        Sends every approved or edited suggestion as a time-log entry.
        On failure the approvals stay in place and `error` is set.
        """
        self._require_mutable("submit")
        approved = self.approved_suggestions
        if not approved:
            raise ActionNotAllowed("Nothing approved to submit")

        entries = [
            TimeLogSubmission(
                id=s.id,
                project_id=s.project_id,
                activity_type_id=s.activity_type_id,
                date=self.day,
                hours=s.hours,
                description=s.description,
                internal_note=s.internal_note or None,
            )
            for s in approved
        ]

        day = self.day
        self.state = SUBMITTING
        self.error = None
        try:
            results = await self.backend.submit(entries)
        except Exception as e:
            if self._is_stale(day):
                return self.submit_results
            log.error(f"Submission for {day} failed: {e}", exc_info=True)
            self.error = str(e)
            self.state = SUGGESTIONS
            self._persist()
            return self.submit_results
        if self._is_stale(day):
            return self.submit_results

        self.submit_results = {r.entry_id: r for r in results}
        self.state = SUBMITTED
        self._persist()
        failed = [r for r in results if not r.success]
        if failed:
            log.warning(f"{len(failed)} of {len(results)} entries failed to submit for {day}.")
        return self.submit_results

    def expand(self, suggestion_id: str):
        """Toggles focus on a suggestion."""
        if self.expanded_id == suggestion_id:
            self._focus(None)
            return
        self._focus(self.suggestions[self._index(suggestion_id)])

    def _move_focus(self, step: int):
        visible = self.visible_suggestions
        if not visible:
            return
        ids = [s.id for s in visible]
        if self.expanded_id not in ids:
            self._focus(visible[0] if step > 0 else visible[-1])
            return
        position = ids.index(self.expanded_id) + step
        if 0 <= position < len(visible):
            self._focus(visible[position])

    def focus_next(self):
        self._move_focus(1)

    def focus_previous(self):
        self._move_focus(-1)

    async def set_date(self, day: date, hours: Optional[HourMap] = None):
        """
        Switches the session to another date. A cached session is restored;
        otherwise the session resets and only the PM context is fetched.
        """
        self.day = day
        self.hours = hours or {}
        self._rejection = None

        cached = self.cache.load(day)
        if cached is not None:
            self._restore(cached)
            return

        self.state = READY
        self.suggestions = []
        self.submit_results = {}
        self.unaccounted_minutes = 0.0
        self.pm_context = None
        self.error = None
        self._focus(None)
        try:
            context = await self.backend.fetch_pm_context(day)
        except Exception as e:
            if not self._is_stale(day):
                log.warning(f"Could not load PM context for {day}: {e}")
                self.error = str(e)
            return
        if not self._is_stale(day):
            self.pm_context = context
