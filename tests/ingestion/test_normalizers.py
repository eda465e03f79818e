import pytest
from datetime import datetime, timezone

from daysheet.ingestion_service.normalizers import normalize, normalize_all, parse_timestamp
from daysheet.processing_service.models import ActivitySource


def test_calendar_record():
    activity = normalize(ActivitySource.CALENDAR, {
        "summary": "Sprint planning",
        "start": {"dateTime": "2025-01-15T09:00:00+01:00"},
        "end": {"dateTime": "2025-01-15T10:00:00+01:00"},
        "attendees": [{"email": "kari@example.com"}, "ola@example.com"],
        "htmlLink": "https://calendar.example.com/e/1",
    })
    assert activity.source == ActivitySource.CALENDAR
    assert activity.title == "Sprint planning"
    assert activity.timestamp == datetime(2025, 1, 15, 8, 0, tzinfo=timezone.utc)
    assert activity.end_time == datetime(2025, 1, 15, 9, 0, tzinfo=timezone.utc)
    assert activity.attendees == ["kari@example.com", "ola@example.com"]
    assert activity.type == "meeting"


def test_calendar_all_day_and_missing_title():
    activity = normalize(ActivitySource.CALENDAR, {"start": {"date": "2025-01-15"}, "end": {"date": "2025-01-16"}})
    assert activity.title == "(No title)"
    assert activity.timestamp == datetime(2025, 1, 15, tzinfo=timezone.utc)


def test_mail_record():
    activity = normalize(ActivitySource.MAIL, {"from": "boss@example.com", "date": "2025-01-15T08:15:00Z"})
    assert activity.subject == "(No subject)"
    assert activity.sender == "boss@example.com"


def test_chat_epoch_ts():
    activity = normalize(ActivitySource.CHAT, {"channel": "dev", "text": "deployed", "ts": "1736931600.5"})
    assert activity.timestamp == datetime(2025, 1, 15, 9, 0, 0, 500000, tzinfo=timezone.utc)
    assert activity.channel == "dev"
    assert activity.is_dm is False


def test_code_host_repo_shortened():
    activity = normalize(ActivitySource.CODE_HOST, {
        "repo_name": "acme/devapp", "title": "Fix login", "type": "pr_merged", "timestamp": "2025-01-15T10:00:00Z",
    })
    assert activity.repo_name == "devapp"
    assert activity.type == "pr_merged"


def test_issue_detail_truncated():
    activity = normalize(ActivitySource.ISSUE_TRACKER, {
        "issueKey": "DEV-7", "detail": "x" * 200, "timestamp": "2025-01-15T10:00:00Z",
    })
    assert activity.issue_key == "DEV-7"
    assert len(activity.detail) == 120


def test_swapped_interval_fixed():
    activity = normalize(ActivitySource.CALENDAR, {
        "summary": "Backwards",
        "start": "2025-01-15T11:00:00Z",
        "end": "2025-01-15T10:00:00Z",
    })
    assert activity.timestamp < activity.end_time


def test_record_without_timestamp_skipped():
    assert normalize(ActivitySource.DOCUMENT, {"title": "Roadmap"}) is None
    assert normalize(ActivitySource.DOCUMENT, {"title": "Roadmap", "timestamp": "not a date"}) is None


def test_normalize_all_skips_bad_records():
    activities = normalize_all(ActivitySource.KANBAN_CARD, [
        {"cardName": "Login page", "boardName": "DevApp", "listName": "Doing", "date": "2025-01-15T12:00:00Z"},
        {"cardName": "No time"},
        "garbage",
    ])
    assert len(activities) == 1
    assert activities[0].card_name == "Login page"
    assert activities[0].detail == "Doing"


@pytest.mark.parametrize("value", [None, "", "yesterday", {"a": 1}])
def test_parse_timestamp_rejects(value):
    assert parse_timestamp(value) is None
