from functools import lru_cache
from typing import List

from fastapi import Depends

from daysheet.api_service.auth import require_auth
from daysheet.ingestion_service.fetchers import SourceFetcher
from daysheet.pm.adapter import PmAdapter, get_pm_adapter
from daysheet.processing_service.logic.settings import settings as service_settings
from daysheet.processing_service.logic.suggestions import SuggestionService

# Concrete source clients register here at startup; the list is empty by default.
_fetchers: List[SourceFetcher] = []


def configure_fetchers(fetchers: List[SourceFetcher]):
    _fetchers[:] = fetchers


def get_fetchers() -> List[SourceFetcher]:
    return list(_fetchers)


@lru_cache()
def get_suggestion_service() -> SuggestionService:
    return SuggestionService(service_settings)


def get_pm(current_user: str = Depends(require_auth)) -> PmAdapter:
    """The PM adapter for the signed-in user."""
    return get_pm_adapter(service_settings.PM_PROVIDER, current_user, service_settings.PM_CACHE_TTL_S)
