"""
Backends for the review controller: one calling the services in-process,
one talking to the HTTP API.
"""
import asyncio
import logging
from datetime import date
from typing import Any, Callable, Dict, List, Optional, Sequence

import requests

from daysheet.client import config
from daysheet.client.cache import SuggestionCache
from daysheet.client.lifecycle import SuggestionController
from daysheet.pm.adapter import PmAdapter, build_pm_context, get_pm_adapter, submit_entries
from daysheet.processing_service.logic.settings import settings as service_settings
from daysheet.processing_service.logic.suggestions import SuggestionService
from daysheet.processing_service.models import (
    HourMap,
    PmContext,
    SubmitResult,
    SuggestionResponse,
    TimeLogSubmission,
)
from daysheet.shared.errors import (
    AuthError,
    DaysheetError,
    LockViolation,
    ModelTransportError,
    ValidationError,
)

log = logging.getLogger(__name__)


class LocalSuggestionBackend:
    def __init__(self, service: SuggestionService, pm_adapter: PmAdapter, tz: Optional[str] = None):
        self.service = service
        self.pm_adapter = pm_adapter
        self.tz = tz

    async def fetch_pm_context(self, day: date) -> PmContext:
        return await build_pm_context(self.pm_adapter, day)

    async def suggest(self, day: date, hours: HourMap, context: PmContext) -> SuggestionResponse:
        return await self.service.generate(day, hours, context, tz=self.tz)

    async def submit(self, entries: Sequence[TimeLogSubmission]) -> List[SubmitResult]:
        return await submit_entries(self.pm_adapter, entries)


class HttpSuggestionBackend:
    """Calls the Daysheet API with a bearer token. Blocking requests run in a worker thread."""

    def __init__(self, base_url: str, token: str, timeout_s: float = 60.0, tz: Optional[str] = None):
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.timeout_s = timeout_s
        self.tz = tz

    def _request(self, method: str, path: str, **kwargs) -> Any:
        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.token}",
        }
        url = f"{self.base_url}{path}"
        try:
            response = requests.request(method, url, headers=headers, timeout=self.timeout_s, **kwargs)
            response.raise_for_status()
        except requests.exceptions.HTTPError as e:
            status = e.response.status_code
            try:
                detail = e.response.json().get("detail", e.response.text)
            except ValueError:
                detail = e.response.text
            log.error(f"HTTP error from {url}: {status} - {detail}")
            if status == 401:
                raise AuthError(detail) from e
            if status == 403:
                raise LockViolation(None, detail) from e
            if status in (400, 422):
                raise ValidationError(detail) from e
            if status == 502:
                raise ModelTransportError(detail) from e
            raise DaysheetError(f"{status}: {detail}") from e
        except requests.exceptions.RequestException as e:
            log.error(f"Error calling {url}: {e}", exc_info=True)
            raise DaysheetError(f"Could not reach {url}: {e}") from e
        return response.json()

    async def fetch_pm_context(self, day: date) -> PmContext:
        data = await asyncio.to_thread(
            self._request, "GET", "/api/v1/ai/pm-context", params={"date": day.isoformat()}
        )
        return PmContext.model_validate(data)

    async def suggest(self, day: date, hours: HourMap, context: PmContext) -> SuggestionResponse:
        payload: Dict[str, Any] = {
            "date": day.isoformat(),
            "hours": {str(h): b.model_dump(mode="json", by_alias=True) for h, b in hours.items()},
            "pmContext": context.model_dump(mode="json", by_alias=True),
        }
        if self.tz:
            payload["timezone"] = self.tz
        data = await asyncio.to_thread(self._request, "POST", "/api/v1/ai/suggest", json=payload)
        return SuggestionResponse.model_validate(data)

    async def submit(self, entries: Sequence[TimeLogSubmission]) -> List[SubmitResult]:
        payload = {"entries": [e.model_dump(mode="json", by_alias=True) for e in entries]}
        data = await asyncio.to_thread(self._request, "POST", "/api/v1/ai/submit", json=payload)
        return [SubmitResult.model_validate(r) for r in data.get("results", [])]


def create_backend():
    """HTTP backend when an API URL is configured, in-process services otherwise."""
    if config.DAYSHEET_API_URL:
        return HttpSuggestionBackend(
            config.DAYSHEET_API_URL,
            token=config.DAYSHEET_API_TOKEN,
            timeout_s=config.REQUEST_TIMEOUT_SECONDS,
            tz=config.LOCAL_TZ,
        )
    return LocalSuggestionBackend(
        SuggestionService(service_settings),
        get_pm_adapter(service_settings.PM_PROVIDER, ttl_s=service_settings.PM_CACHE_TTL_S),
        tz=config.LOCAL_TZ,
    )


def create_controller(
    day: date,
    hours: Optional[HourMap] = None,
    on_highlight: Optional[Callable[[List[str]], None]] = None,
) -> SuggestionController:
    cache = SuggestionCache(config.CLIENT_CACHE_PATH)
    return SuggestionController(create_backend(), cache, day, hours=hours, on_highlight=on_highlight)
