import os

# Must be set before daysheet settings modules are imported
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("AI_PROVIDER", "heuristic")
os.environ.setdefault("DAYSHEET_USERNAME", "admin")
os.environ.setdefault("DAYSHEET_PASSWORD", "admin123")

import pytest

from daysheet.pm.adapter import MOCK_ACTIVITY_TYPES, MOCK_ALLOCATIONS, MOCK_PROJECTS
from daysheet.processing_service.models import Activity, ActivitySource, PmContext


@pytest.fixture
def pm_context() -> PmContext:
    return PmContext(
        projects=list(MOCK_PROJECTS),
        activity_types=list(MOCK_ACTIVITY_TYPES),
        allocations=list(MOCK_ALLOCATIONS),
    )


@pytest.fixture
def meeting():
    def _make(title, start, end):
        return Activity(source=ActivitySource.CALENDAR, type="meeting", title=title, timestamp=start, end_time=end)
    return _make
