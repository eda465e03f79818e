# daysheet/ingestion_service/normalizers.py
"""
One normalizer per activity source. Each turns a raw record, shaped the way
that source's API client hands it over, into the common Activity model.
"""

import logging
from datetime import date, datetime, timezone
from typing import Any, Callable, Dict, Iterable, List, Optional

from pydantic import ValidationError as PydanticValidationError

from daysheet.processing_service.models import Activity, ActivitySource

log = logging.getLogger(__name__)

RawRecord = Dict[str, Any]


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Accepts ISO strings, dates, datetimes and epoch seconds. Returns None if unusable."""
    if value is None or value == "":
        return None
    try:
        if isinstance(value, datetime):
            dt = value
        elif isinstance(value, date):
            dt = datetime(value.year, value.month, value.day)
        elif isinstance(value, (int, float)):
            return datetime.fromtimestamp(float(value), tz=timezone.utc)
        elif isinstance(value, str):
            text = value.strip()
            try:
                return datetime.fromtimestamp(float(text), tz=timezone.utc)
            except ValueError:
                dt = datetime.fromisoformat(text.replace('Z', '+00:00'))
        else:
            return None
    except (ValueError, OverflowError, OSError):
        return None
    return dt.replace(tzinfo=timezone.utc) if dt.tzinfo is None else dt


def _calendar_time(value: Any) -> Any:
    if isinstance(value, dict):
        return value.get("dateTime") or value.get("date")
    return value


def normalize_calendar(raw: RawRecord) -> Dict[str, Any]:
    attendees = []
    for attendee in raw.get("attendees") or []:
        attendees.append(attendee.get("email", "") if isinstance(attendee, dict) else str(attendee))
    return {
        "type": raw.get("type") or "meeting",
        "title": raw.get("summary") or raw.get("title") or "(No title)",
        "description": raw.get("description") or "",
        "attendees": attendees,
        "timestamp": _calendar_time(raw.get("start") or raw.get("timestamp")),
        "end_time": _calendar_time(raw.get("end") or raw.get("end_time")),
        "url": raw.get("htmlLink") or raw.get("url"),
    }


def normalize_mail(raw: RawRecord) -> Dict[str, Any]:
    return {
        "type": raw.get("type") or "email",
        "subject": raw.get("subject") or "(No subject)",
        "sender": raw.get("from") or raw.get("sender") or "",
        "timestamp": raw.get("date") or raw.get("timestamp"),
        "url": raw.get("url"),
    }


def normalize_chat(raw: RawRecord) -> Dict[str, Any]:
    return {
        "type": raw.get("type") or "message",
        "channel": raw.get("channel"),
        "is_dm": bool(raw.get("is_dm") or raw.get("isDm")),
        "text": raw.get("text") or "",
        "timestamp": raw.get("timestamp") or raw.get("ts"),
        "url": raw.get("permalink") or raw.get("url"),
    }


def normalize_document(raw: RawRecord) -> Dict[str, Any]:
    return {
        "type": raw.get("type") or "edit",
        "title": raw.get("title") or raw.get("name"),
        "timestamp": raw.get("timestamp") or raw.get("modified_time"),
        "url": raw.get("url"),
    }


def normalize_kanban_card(raw: RawRecord) -> Dict[str, Any]:
    return {
        "type": raw.get("type") or "card_updated",
        "card_name": raw.get("card_name") or raw.get("cardName"),
        "board_name": raw.get("board_name") or raw.get("boardName"),
        "detail": raw.get("list_name") or raw.get("listName"),
        "timestamp": raw.get("timestamp") or raw.get("date"),
        "url": raw.get("url"),
    }


def normalize_code_host(raw: RawRecord) -> Dict[str, Any]:
    repo = raw.get("repo_name") or raw.get("repoName") or ""
    return {
        "type": raw.get("type") or "commit",
        "repo_name": repo.split("/")[-1] if repo else None,
        "title": raw.get("title") or "",
        "timestamp": raw.get("timestamp"),
        "url": raw.get("url"),
    }


def normalize_issue_tracker(raw: RawRecord) -> Dict[str, Any]:
    return {
        "type": raw.get("type") or "issue_commented",
        "issue_key": raw.get("issue_key") or raw.get("issueKey"),
        "issue_summary": raw.get("issue_summary") or raw.get("issueSummary"),
        "project_name": raw.get("project_name") or raw.get("projectName"),
        "detail": (raw.get("detail") or "")[:120] or None,
        "timestamp": raw.get("timestamp"),
        "url": raw.get("url"),
    }


NORMALIZERS: Dict[ActivitySource, Callable[[RawRecord], Dict[str, Any]]] = {
    ActivitySource.CALENDAR: normalize_calendar,
    ActivitySource.MAIL: normalize_mail,
    ActivitySource.CHAT: normalize_chat,
    ActivitySource.DOCUMENT: normalize_document,
    ActivitySource.KANBAN_CARD: normalize_kanban_card,
    ActivitySource.CODE_HOST: normalize_code_host,
    ActivitySource.ISSUE_TRACKER: normalize_issue_tracker,
}


def normalize(source: ActivitySource, raw: RawRecord) -> Optional[Activity]:
    """Normalizes one raw record. Records without a usable timestamp yield None."""
    fields = NORMALIZERS[source](raw)
    timestamp = parse_timestamp(fields.pop("timestamp", None))
    if timestamp is None:
        log.debug(f"Skipping {source.value} record without a usable timestamp.")
        return None
    fields["end_time"] = parse_timestamp(fields.get("end_time"))
    try:
        return Activity(source=source, timestamp=timestamp, **fields)
    except PydanticValidationError as e:
        log.warning(f"Skipping malformed {source.value} record: {e}")
        return None


def normalize_all(source: ActivitySource, records: Iterable[RawRecord]) -> List[Activity]:
    activities = []
    for raw in records:
        if not isinstance(raw, dict):
            continue
        activity = normalize(source, raw)
        if activity is not None:
            activities.append(activity)
    return activities
