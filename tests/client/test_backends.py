import pytest
import requests
from datetime import date
from unittest.mock import MagicMock, patch

from daysheet.client.backends import (
    HttpSuggestionBackend,
    LocalSuggestionBackend,
    create_backend,
    create_controller,
)
from daysheet.pm.adapter import MockPmAdapter
from daysheet.processing_service.logic.settings import Settings
from daysheet.processing_service.logic.suggestions import SuggestionService
from daysheet.processing_service.models import PmContext, TimeLogSubmission
from daysheet.shared.errors import AuthError, DaysheetError, LockViolation, ModelTransportError

DAY = date(2025, 1, 15)


def response(status_code=200, payload=None):
    resp = MagicMock()
    resp.status_code = status_code
    resp.json.return_value = payload if payload is not None else {}
    resp.text = str(payload)
    if status_code >= 400:
        resp.raise_for_status.side_effect = requests.exceptions.HTTPError(response=resp)
    return resp


@pytest.fixture
def backend():
    return HttpSuggestionBackend("http://daysheet.local/", token="tok", tz="Europe/Oslo")


@pytest.mark.asyncio
async def test_http_fetch_pm_context(backend):
    with patch("daysheet.client.backends.requests.request") as request:
        request.return_value = response(payload={"projects": [{"id": "p1", "name": "Project Alpha"}], "timeLockDate": "2025-01-10"})
        context = await backend.fetch_pm_context(DAY)

    assert context.time_lock_date == date(2025, 1, 10)
    method, url = request.call_args.args
    assert (method, url) == ("GET", "http://daysheet.local/api/v1/ai/pm-context")
    assert request.call_args.kwargs["params"] == {"date": "2025-01-15"}
    assert request.call_args.kwargs["headers"]["Authorization"] == "Bearer tok"


@pytest.mark.asyncio
async def test_http_suggest_sends_camel_case(backend):
    with patch("daysheet.client.backends.requests.request") as request:
        request.return_value = response(payload={"suggestions": [], "totalHours": 0, "unaccountedMinutes": 450})
        result = await backend.suggest(DAY, {}, PmContext())

    assert result.unaccounted_minutes == 450
    body = request.call_args.kwargs["json"]
    assert body["date"] == "2025-01-15"
    assert body["timezone"] == "Europe/Oslo"
    assert "pmContext" in body


@pytest.mark.asyncio
@pytest.mark.parametrize("status, error", [
    (401, AuthError),
    (403, LockViolation),
    (502, ModelTransportError),
    (500, DaysheetError),
])
async def test_http_errors_mapped(backend, status, error):
    entries = [TimeLogSubmission(id="e1", project_id="p1", activity_type_id="a1", date=DAY, hours=1)]
    with patch("daysheet.client.backends.requests.request") as request:
        request.return_value = response(status, {"detail": "nope"})
        with pytest.raises(error):
            await backend.submit(entries)


@pytest.mark.asyncio
async def test_http_connection_error(backend):
    with patch("daysheet.client.backends.requests.request", side_effect=requests.exceptions.ConnectionError("refused")):
        with pytest.raises(DaysheetError):
            await backend.fetch_pm_context(DAY)


@pytest.mark.asyncio
async def test_local_backend_round_trip():
    settings = Settings()
    settings.AI_PROVIDER = "heuristic"
    settings.TARGET_WORKDAY_HOURS = 7.5
    adapter = MockPmAdapter()
    local = LocalSuggestionBackend(SuggestionService(settings), adapter, tz="UTC")

    context = await local.fetch_pm_context(DAY)
    suggested = await local.suggest(DAY, {}, context)
    assert len(suggested.suggestions) == 1
    assert suggested.suggestions[0].confidence == "low"

    s = suggested.suggestions[0]
    results = await local.submit([
        TimeLogSubmission(id=s.id, project_id=s.project_id, activity_type_id=s.activity_type_id, date=DAY, hours=s.hours),
    ])
    assert results[0].success
    assert len(await adapter.get_existing_records(DAY)) == 1


def test_create_backend_uses_http_when_url_configured():
    with patch("daysheet.client.backends.config.DAYSHEET_API_URL", "http://daysheet.local"), \
            patch("daysheet.client.backends.config.DAYSHEET_API_TOKEN", "tok"):
        created = create_backend()
    assert isinstance(created, HttpSuggestionBackend)
    assert created.token == "tok"


def test_create_controller_defaults_to_local_backend(tmp_path):
    with patch("daysheet.client.backends.config.DAYSHEET_API_URL", ""), \
            patch("daysheet.client.backends.config.CLIENT_CACHE_PATH", str(tmp_path / "cache.db")):
        controller = create_controller(DAY)
    assert isinstance(controller.backend, LocalSuggestionBackend)
    assert controller.cache.db_path == str(tmp_path / "cache.db")
    assert controller.state == "ready"
