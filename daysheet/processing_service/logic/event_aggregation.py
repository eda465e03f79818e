# daysheet/processing_service/logic/event_aggregation.py
"""
Event aggregation module for Daysheet.
Buckets a flat list of normalized activities into per-hour structures and
derives the day's headline counts from them.
"""

import logging
import re
from collections import defaultdict
from datetime import datetime
from typing import Dict, Iterable, List, Optional
from zoneinfo import ZoneInfo

from daysheet.processing_service.models import (
    Activity,
    ActivitySource,
    DaySummary,
    HourBucket,
)

log = logging.getLogger(__name__)

# Reply/forward prefixes in English, Scandinavian, German and Dutch mail clients
_REPLY_PREFIX = re.compile(r"^\s*(re|sv|fwd|fw|vs|aw|wg|antw|tr)\s*:\s*", re.IGNORECASE)

CALENDAR_SENDER_MARKERS = (
    "calendar-notification@google.com",
    "google calendar",
    "calendar.google.com",
)


def normalize_subject(subject: Optional[str]) -> str:
    """Strips any chain of reply/forward prefixes, then trims and case-folds."""
    if not subject:
        return ""
    previous = None
    text = subject
    while previous != text:
        previous = text
        text = _REPLY_PREFIX.sub("", text)
    return text.strip().casefold()


def is_calendar_notification(activity: Activity) -> bool:
    sender = (activity.sender or "").lower()
    return any(marker in sender for marker in CALENDAR_SENDER_MARKERS)


def dedupe_mail_by_thread(mails: Iterable[Activity]) -> List[Activity]:
    """Keeps only the first message per normalized thread subject."""
    seen = set()
    kept = []
    for mail in mails:
        key = normalize_subject(mail.subject)
        if key in seen:
            continue
        seen.add(key)
        kept.append(mail)
    return kept


class HourlyAggregator:
    """Buckets activities into hours of a work window."""

    def __init__(self, start_hour: int = 6, end_hour: int = 23, tz: str = "UTC"):
        if not 0 <= start_hour < end_hour <= 24:
            raise ValueError(f"Invalid work window {start_hour}-{end_hour}")
        self.start_hour = start_hour
        self.end_hour = end_hour
        self.tz = ZoneInfo(tz)

    def _local_hour(self, moment: datetime) -> int:
        return moment.astimezone(self.tz).hour

    def bucket_by_hour(self, activities: Iterable[Activity]) -> Dict[int, List[Activity]]:
        buckets: Dict[int, List[Activity]] = {h: [] for h in range(self.start_hour, self.end_hour)}

        for activity in activities:
            try:
                hour = self._local_hour(activity.timestamp)
            except (AttributeError, TypeError, ValueError, OverflowError):
                log.debug(f"Dropping activity without a usable timestamp: {activity!r}")
                continue

            if hour < self.start_hour or hour >= self.end_hour:
                continue

            if activity.end_time is None:
                buckets[hour].append(activity)
                continue

            try:
                end_hour = self._local_hour(activity.end_time)
            except (AttributeError, TypeError, ValueError, OverflowError):
                end_hour = hour
            # An event ending on a later local day still runs to the end of the window
            if activity.end_time.astimezone(self.tz).date() > activity.timestamp.astimezone(self.tz).date():
                end_hour = self.end_hour - 1
            end_hour = max(hour, min(end_hour, self.end_hour - 1))

            for h in range(hour, end_hour + 1):
                buckets[h].append(activity.model_copy(update={
                    "is_spanning": h != hour,
                    "span_start": h == hour,
                }))

        return buckets

    @staticmethod
    def merge_hour(hour_activities: List[Activity]) -> HourBucket:
        """Splits one hour into calendar primaries and sorted communications."""
        if not hour_activities:
            return HourBucket()

        primaries = [a for a in hour_activities if a.source == ActivitySource.CALENDAR]
        mails = [
            a for a in hour_activities
            if a.source == ActivitySource.MAIL and not is_calendar_notification(a)
        ]
        others = [
            a for a in hour_activities
            if a.source not in (ActivitySource.CALENDAR, ActivitySource.MAIL)
        ]

        communications = sorted(others + dedupe_mail_by_thread(mails), key=lambda a: a.timestamp)
        return HourBucket(primaries=primaries, communications=communications)

    def aggregate(self, activities: Iterable[Activity]) -> Dict[int, HourBucket]:
        buckets = self.bucket_by_hour(activities)
        return {hour: self.merge_hour(hour_activities) for hour, hour_activities in buckets.items()}


def aggregate(
    activities: Iterable[Activity],
    start_hour: int = 6,
    end_hour: int = 23,
    tz: str = "UTC",
) -> Dict[int, HourBucket]:
    return HourlyAggregator(start_hour, end_hour, tz).aggregate(activities)


def summarize(buckets: Dict[int, HourBucket]) -> DaySummary:
    counts: Dict[str, int] = defaultdict(int)
    meetings = 0
    for bucket in buckets.values():
        meetings += sum(1 for p in bucket.primaries if not p.is_spanning)
        for c in bucket.communications:
            counts[c.source.value if isinstance(c.source, ActivitySource) else str(c.source)] += 1

    return DaySummary(
        total_meetings=meetings,
        total_messages=counts[ActivitySource.CHAT.value],
        total_emails=counts[ActivitySource.MAIL.value],
        total_doc_edits=counts[ActivitySource.DOCUMENT.value],
        total_kanban_activities=counts[ActivitySource.KANBAN_CARD.value],
        total_code_activities=counts[ActivitySource.CODE_HOST.value],
        total_issue_activities=counts[ActivitySource.ISSUE_TRACKER.value],
    )
