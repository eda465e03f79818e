from datetime import date as date_type
from typing import Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

from daysheet.processing_service.models import (
    CamelModel,
    DaySummary,
    HourBucket,
    PmContext,
    SubmitResult,
    TimeLogSubmission,
)


# Token schemas (for single-user authentication)
class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_in: int


# Activities
class DayActivitiesResponse(CamelModel):
    """Bucketed activities for one day, with per-source counts."""
    date: date_type
    timezone: str
    hours: Dict[int, HourBucket]
    summary: DaySummary
    sources: Dict[str, int]


# Suggestions
class SuggestRequest(CamelModel):
    date: date_type
    hours: Dict[int, HourBucket] = Field(default_factory=dict)
    pm_context: PmContext = Field(default_factory=PmContext)
    timezone: Optional[str] = None


class SubmitRequest(CamelModel):
    entries: List[TimeLogSubmission]

    @field_validator("entries")
    @classmethod
    def check_entries(cls, v: List[TimeLogSubmission]) -> List[TimeLogSubmission]:
        if not v:
            raise ValueError("At least one entry is required")
        for entry in v:
            if not (0 < entry.hours <= 24):
                raise ValueError(f"Entry {entry.id}: hours must be greater than 0 and at most 24")
            if not entry.project_id or not entry.activity_type_id:
                raise ValueError(f"Entry {entry.id}: project and activity type are required")
        return v


class SubmitResponse(CamelModel):
    results: List[SubmitResult]
