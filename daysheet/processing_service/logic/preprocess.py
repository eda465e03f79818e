# daysheet/processing_service/logic/preprocess.py
"""
Flattens the hourly buckets back into one chronological activity list,
trimmed to keep the suggestion prompt bounded, and derives the day-shape
signals (calendar time, time between meetings, lunch) from it.
"""

import logging
from datetime import datetime, time
from typing import Dict, List, Optional
from zoneinfo import ZoneInfo

import polars as pl

from daysheet.processing_service.logic.settings import settings as service_settings
from daysheet.processing_service.models import (
    Activity,
    ActivitySource,
    FlatActivity,
    HourBucket,
    PreprocessedData,
)

log = logging.getLogger(__name__)

CHAT_TITLE_LIMIT = 100
LUNCH_WINDOW = (time(11, 0), time(13, 0))


def activity_title(a: Activity) -> str:
    """Human-readable one-line title for an activity of any source."""
    source = a.source
    if source == ActivitySource.CALENDAR:
        return a.title or "Untitled event"
    if source == ActivitySource.MAIL:
        return a.subject or "Untitled email"
    if source == ActivitySource.CHAT:
        label = "DM" if a.is_dm else f"#{a.channel or 'unknown'}"
        return f"{label}: {a.text or ''}"[:CHAT_TITLE_LIMIT]
    if source == ActivitySource.DOCUMENT:
        return f"{(a.type or 'Edited').capitalize()}: {a.title or 'Untitled doc'}"
    if source == ActivitySource.KANBAN_CARD:
        return a.card_name or "Kanban activity"
    if source == ActivitySource.CODE_HOST:
        return f"{a.repo_name or 'Code'}: {a.title or ''}"
    if source == ActivitySource.ISSUE_TRACKER:
        return f"{a.issue_key or 'Issue'}: {a.issue_summary or a.detail or ''}"
    return a.title or "Unknown activity"


def minutes_between(start: datetime, end: datetime) -> int:
    return round((end - start).total_seconds() / 60)


class Preprocessor:
    """Turns hourly buckets into PreprocessedData. Pure given its input."""

    def __init__(
        self,
        tz: str = "UTC",
        source_caps: Optional[Dict[str, int]] = None,
        default_cap: Optional[int] = None,
        lunch_deduction_min: Optional[int] = None,
    ):
        self.tz = ZoneInfo(tz)
        self.source_caps = source_caps if source_caps is not None else service_settings.SOURCE_CAPS
        self.default_cap = default_cap if default_cap is not None else service_settings.DEFAULT_SOURCE_CAP
        self.lunch_deduction_min = (
            lunch_deduction_min if lunch_deduction_min is not None else service_settings.LUNCH_DEDUCTION_MIN
        )

    def flatten(self, buckets: Dict[int, HourBucket]) -> List[FlatActivity]:
        flat: List[FlatActivity] = []
        for hour in sorted(buckets):
            bucket = buckets[hour]
            for a in [*bucket.primaries, *bucket.communications]:
                if a.is_spanning:
                    continue
                entry = FlatActivity(
                    source=a.source.value,
                    title=activity_title(a),
                    timestamp=a.timestamp,
                    type=a.type or None,
                )
                if a.end_time is not None:
                    entry.end_time = a.end_time
                    entry.duration_minutes = minutes_between(a.timestamp, a.end_time)
                flat.append(entry)
        return flat

    def dedupe_sort_and_cap(self, flat: List[FlatActivity]) -> List[FlatActivity]:
        """Drops duplicate source/timestamp/title rows, sorts, and keeps the earliest N per source."""
        if not flat:
            return []

        df = pl.DataFrame({
            "idx": list(range(len(flat))),
            "source": [a.source for a in flat],
            "title": [a.title for a in flat],
            "ts": [a.timestamp.timestamp() for a in flat],
            "cap": [self.source_caps.get(a.source, self.default_cap) for a in flat],
        })

        kept = (
            df.unique(subset=["source", "ts", "title"], keep="first", maintain_order=True)
            .sort("ts", maintain_order=True)
            .with_columns(pl.int_range(0, pl.len()).over("source").alias("rank"))
            .filter(pl.col("rank") < pl.col("cap"))
        )
        dropped = df.height - kept.height
        if dropped:
            log.debug(f"Dropped {dropped} duplicate or over-cap activities while preprocessing.")
        return [flat[i] for i in kept["idx"].to_list()]

    def _local_minutes(self, moment: datetime) -> int:
        local = moment.astimezone(self.tz)
        return local.hour * 60 + local.minute

    def detect_lunch(self, activities: List[FlatActivity], calendar_events: List[FlatActivity]) -> bool:
        if not activities:
            return False

        lunch_start = LUNCH_WINDOW[0].hour * 60 + LUNCH_WINDOW[0].minute
        lunch_end = LUNCH_WINDOW[1].hour * 60 + LUNCH_WINDOW[1].minute

        if self._local_minutes(activities[0].timestamp) >= lunch_start:
            return False

        for event in calendar_events:
            start = self._local_minutes(event.timestamp)
            if start <= lunch_start and start + (event.duration_minutes or 0) >= lunch_end:
                return False

        return not any(
            lunch_start <= self._local_minutes(a.timestamp) < lunch_end for a in activities
        )

    @staticmethod
    def gap_minutes(calendar_events: List[FlatActivity]) -> int:
        # Gaps run from the latest end seen so far; nested meetings open no gap.
        total = 0
        latest_end: Optional[datetime] = None
        for event in calendar_events:
            if latest_end is not None:
                gap = minutes_between(latest_end, event.timestamp)
                if gap > 0:
                    total += gap
            if event.end_time is not None and (latest_end is None or event.end_time > latest_end):
                latest_end = event.end_time
        return total

    def preprocess(self, buckets: Dict[int, HourBucket]) -> PreprocessedData:
        activities = self.dedupe_sort_and_cap(self.flatten(buckets))

        calendar_events = [
            a for a in activities
            if a.source == ActivitySource.CALENDAR.value and a.duration_minutes
        ]
        calendar_minutes = sum(e.duration_minutes for e in calendar_events)
        gap_minutes = self.gap_minutes(calendar_events)
        lunch_detected = self.detect_lunch(activities, calendar_events)

        deduction = self.lunch_deduction_min if lunch_detected else 0
        total_active = max(0, calendar_minutes + gap_minutes - deduction)

        log.info(
            f"Preprocessed {len(activities)} activities: {calendar_minutes} calendar min, "
            f"{gap_minutes} gap min, lunch={'yes' if lunch_detected else 'no'}."
        )
        return PreprocessedData(
            activities=activities,
            calendar_minutes=calendar_minutes,
            gap_minutes=gap_minutes,
            lunch_detected=lunch_detected,
            total_active_minutes=total_active,
        )


def preprocess(buckets: Dict[int, HourBucket], tz: str = "UTC") -> PreprocessedData:
    return Preprocessor(tz=tz).preprocess(buckets)
