# daysheet/processing_service/models.py

import enum
import logging
from datetime import date, datetime, timezone
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

log = logging.getLogger(__name__)


class CamelModel(BaseModel):
    """Base for wire models: snake_case attributes, camelCase JSON."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ActivitySource(str, enum.Enum):
    CALENDAR = "calendar"
    MAIL = "mail"
    CHAT = "chat"
    DOCUMENT = "document"
    KANBAN_CARD = "kanban_card"
    CODE_HOST = "code_host"
    ISSUE_TRACKER = "issue_tracker"


def _as_utc(v):
    if isinstance(v, str):
        v = datetime.fromisoformat(v.replace('Z', '+00:00'))
    if isinstance(v, datetime):
        return v.replace(tzinfo=timezone.utc) if v.tzinfo is None else v.astimezone(timezone.utc)
    raise ValueError("Invalid datetime format")


# --- Activities ---
class Activity(CamelModel):
    """
    A normalized event from any source. Immutable; created once per fetch
    and thrown away with the request.
    """
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    source: ActivitySource
    type: str = ""
    timestamp: datetime
    end_time: Optional[datetime] = None

    # Source-specific descriptive fields
    title: Optional[str] = None
    subject: Optional[str] = None
    sender: Optional[str] = None
    channel: Optional[str] = None
    is_dm: bool = False
    text: Optional[str] = None
    description: Optional[str] = None
    attendees: List[str] = Field(default_factory=list)
    card_name: Optional[str] = None
    board_name: Optional[str] = None
    repo_name: Optional[str] = None
    issue_key: Optional[str] = None
    issue_summary: Optional[str] = None
    project_name: Optional[str] = None
    detail: Optional[str] = None
    url: Optional[str] = None

    # Set by the aggregator on per-hour copies of interval activities
    is_spanning: bool = False
    span_start: Optional[bool] = None

    @field_validator('timestamp', 'end_time', mode='before')
    @classmethod
    def ensure_utc(cls, v):
        if v is None:
            return v
        return _as_utc(v)

    @model_validator(mode='before')
    @classmethod
    def order_interval(cls, data):
        if not isinstance(data, dict):
            return data
        start_key = 'timestamp'
        end_key = 'end_time' if 'end_time' in data else 'endTime'
        start, end = data.get(start_key), data.get(end_key)
        if start is None or end is None:
            return data
        try:
            start_dt, end_dt = _as_utc(start), _as_utc(end)
        except (TypeError, ValueError):
            return data
        if end_dt < start_dt:
            log.warning(f"Activity: end_time {end_dt} is before timestamp {start_dt}. Swapping.")
            data = dict(data)
            data[start_key], data[end_key] = end_dt, start_dt
        return data


class HourBucket(CamelModel):
    primaries: List[Activity] = Field(default_factory=list)
    communications: List[Activity] = Field(default_factory=list)


class DaySummary(CamelModel):
    total_meetings: int = 0
    total_messages: int = 0
    total_emails: int = 0
    total_doc_edits: int = 0
    total_kanban_activities: int = 0
    total_code_activities: int = 0
    total_issue_activities: int = 0


class FlatActivity(CamelModel):
    source: str
    title: str
    timestamp: datetime
    end_time: Optional[datetime] = None
    duration_minutes: Optional[int] = None
    type: Optional[str] = None


class PreprocessedData(CamelModel):
    activities: List[FlatActivity] = Field(default_factory=list)
    calendar_minutes: int = 0
    gap_minutes: int = 0
    lunch_detected: bool = False
    total_active_minutes: int = 0


# --- Project management context ---
class Project(CamelModel):
    id: str
    name: str
    code: Optional[str] = None


class ActivityType(CamelModel):
    id: str
    name: str
    project_id: Optional[str] = None


class Allocation(CamelModel):
    project_id: str
    project_name: str
    allocated_hours: float


class TimeRecord(CamelModel):
    """Time already logged for a date in the time-tracking backend."""
    project_id: str
    project_name: str
    activity_type_id: Optional[str] = None
    activity_type_name: Optional[str] = None
    date: date
    hours: float
    description: str = ""


class PmContext(CamelModel):
    projects: List[Project] = Field(default_factory=list)
    activity_types: List[ActivityType] = Field(default_factory=list)
    allocations: List[Allocation] = Field(default_factory=list)
    existing_records: List[TimeRecord] = Field(default_factory=list)
    time_lock_date: Optional[date] = None

    def is_locked(self, target: date) -> bool:
        return self.time_lock_date is not None and target <= self.time_lock_date


# --- Suggestions ---
Confidence = Literal["high", "medium", "low"]
SuggestionStatus = Literal["pending", "approved", "skipped", "edited"]


class SourceActivity(CamelModel):
    source: str
    title: str
    timestamp: str
    estimated_minutes: Optional[int] = None


class Suggestion(CamelModel):
    """A draft time-log line awaiting review."""
    id: str
    project_id: str
    project_name: str
    activity_type_id: str
    activity_type_name: str
    hours: float
    description: str = ""
    internal_note: str = ""
    reasoning: str = ""
    confidence: Confidence = "medium"
    source_activities: List[SourceActivity] = Field(default_factory=list)
    status: SuggestionStatus = "pending"


class SuggestionResponse(CamelModel):
    suggestions: List[Suggestion]
    total_hours: float
    unaccounted_minutes: float


class TimeLogSubmission(CamelModel):
    id: str
    project_id: str
    activity_type_id: str
    date: date
    hours: float
    description: str = ""
    internal_note: Optional[str] = None


class SubmitResult(CamelModel):
    entry_id: str
    success: bool
    error: Optional[str] = None


HourMap = Dict[int, HourBucket]
