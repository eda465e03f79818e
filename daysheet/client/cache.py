"""
Durable client-side cache for the suggestion panel.
Uses SQLite to keep one versioned envelope per date, so a session can be
restored without calling the model again.
"""
import json
import logging
import sqlite3
from contextlib import contextmanager
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Optional

from daysheet.processing_service.models import PmContext, SubmitResult, Suggestion

log = logging.getLogger(__name__)

CACHE_VERSION = 2
TABLE_NAME = "suggestion_cache"
KEY_PREFIX = "ai-suggestions"


def cache_key(day: date) -> str:
    return f"{KEY_PREFIX}:{day.isoformat()}"


class CachedSession:
    """A restored envelope, already validated against version and date."""

    def __init__(
        self,
        day: date,
        suggestions: List[Suggestion],
        pm_context: Optional[PmContext],
        submit_results: Dict[str, SubmitResult],
        state: str,
    ):
        self.day = day
        self.suggestions = suggestions
        self.pm_context = pm_context
        self.submit_results = submit_results
        self.state = state


class SuggestionCache:
    def __init__(self, db_path: str = ":memory:"):
        self.db_path = db_path
        # An in-memory database lives only as long as its connection.
        self._conn = sqlite3.connect(db_path) if db_path == ":memory:" else None
        self.initialize()

    def get_db_connection(self) -> sqlite3.Connection:
        """Establishes a connection to the SQLite database."""
        conn = self._conn or sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        return conn

    @contextmanager
    def connection(self):
        """Yields a connection inside a transaction; file-backed connections are closed afterwards."""
        conn = self.get_db_connection()
        try:
            with conn:
                yield conn
        finally:
            if conn is not self._conn:
                conn.close()

    def initialize(self):
        try:
            with self.connection() as conn:
                conn.execute(f"""
                    CREATE TABLE IF NOT EXISTS {TABLE_NAME} (
                        cache_key TEXT PRIMARY KEY,
                        payload TEXT NOT NULL,   -- JSON envelope
                        saved_at TEXT NOT NULL   -- ISO 8601, UTC
                    )
                """)
            log.info(f"Suggestion cache initialized at {self.db_path}")
        except sqlite3.Error as e:
            log.error(f"Error initializing suggestion cache: {e}", exc_info=True)
            raise

    def _read(self, key: str) -> Optional[str]:
        with self.connection() as conn:
            row = conn.execute(f"SELECT payload FROM {TABLE_NAME} WHERE cache_key = ?", (key,)).fetchone()
        return row["payload"] if row else None

    def _delete(self, key: str):
        try:
            with self.connection() as conn:
                conn.execute(f"DELETE FROM {TABLE_NAME} WHERE cache_key = ?", (key,))
        except sqlite3.Error as e:
            log.error(f"Error deleting cache entry {key}: {e}", exc_info=True)

    def load(self, day: date) -> Optional[CachedSession]:
        """
        Returns the cached session for a date, or None on a miss.
        Entries written by another version or for another date are deleted.
        """
        key = cache_key(day)
        try:
            raw = self._read(key)
        except sqlite3.Error as e:
            log.error(f"Error reading cache entry {key}: {e}", exc_info=True)
            return None
        if raw is None:
            return None

        try:
            envelope = json.loads(raw)
        except json.JSONDecodeError:
            log.warning(f"Cache entry {key} is not valid JSON. Treating as a miss.")
            return None
        if not isinstance(envelope, dict):
            return None

        if envelope.get("v") != CACHE_VERSION or envelope.get("date") != day.isoformat():
            log.warning(f"Discarding cache entry {key} (version {envelope.get('v')}, date {envelope.get('date')}).")
            self._delete(key)
            return None

        try:
            suggestions = [Suggestion.model_validate(s) for s in envelope.get("suggestions") or []]
            context_raw = envelope.get("pm_context")
            pm_context = PmContext.model_validate(context_raw) if context_raw else None
            results = {
                entry_id: SubmitResult.model_validate(r)
                for entry_id, r in (envelope.get("submit_results") or {}).items()
            }
        except ValueError as e:
            log.warning(f"Cache entry {key} has an unexpected shape: {e}. Treating as a miss.")
            return None

        return CachedSession(
            day=day,
            suggestions=suggestions,
            pm_context=pm_context,
            submit_results=results,
            state=envelope.get("state") or "suggestions",
        )

    def save(
        self,
        day: date,
        suggestions: List[Suggestion],
        pm_context: Optional[PmContext],
        submit_results: Dict[str, SubmitResult],
        state: str,
    ) -> bool:
        """Writes the envelope for a date. Failures are logged and reported as False."""
        envelope: Dict[str, Any] = {
            "v": CACHE_VERSION,
            "date": day.isoformat(),
            "suggestions": [s.model_dump(mode="json", by_alias=True) for s in suggestions],
            "pm_context": pm_context.model_dump(mode="json", by_alias=True) if pm_context else None,
            "submit_results": {k: r.model_dump(mode="json", by_alias=True) for k, r in submit_results.items()},
            "state": state,
        }
        key = cache_key(day)
        try:
            with self.connection() as conn:
                conn.execute(
                    f"INSERT OR REPLACE INTO {TABLE_NAME} (cache_key, payload, saved_at) VALUES (?, ?, ?)",
                    (key, json.dumps(envelope), datetime.now(timezone.utc).isoformat()),
                )
            log.debug(f"Saved {len(suggestions)} suggestions to cache entry {key}.")
            return True
        except sqlite3.Error as e:
            log.error(f"Error writing cache entry {key}: {e}", exc_info=True)
            return False

    def clear(self, day: date):
        self._delete(cache_key(day))
