# daysheet/ingestion_service/fetchers.py
"""
Concurrent fan-in of all activity sources for one day.

Every source is fetched independently; a failing source is logged and
contributes an empty list, so aggregation always gets a best-effort union.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Dict, Iterable, List, Mapping, Optional, Protocol

from daysheet.ingestion_service.normalizers import RawRecord, normalize_all
from daysheet.processing_service.models import Activity, ActivitySource
from daysheet.shared.errors import SourceFetchError

log = logging.getLogger(__name__)


class SourceFetcher(Protocol):
    source: ActivitySource

    async def fetch(self, day: date, auth_token: Optional[str]) -> List[Activity]:
        ...


@dataclass
class FetchResult:
    activities: List[Activity] = field(default_factory=list)
    sources: Dict[str, int] = field(default_factory=dict)


class StaticSourceFetcher:
    """Serves pre-recorded raw records for one source, regardless of the requested day."""

    def __init__(self, source: ActivitySource, records: Iterable[RawRecord], requires_token: bool = False):
        self.source = source
        self.records = list(records)
        self.requires_token = requires_token

    async def fetch(self, day: date, auth_token: Optional[str]) -> List[Activity]:
        if self.requires_token and not auth_token:
            return []
        return normalize_all(self.source, self.records)


async def _fetch_isolated(fetcher: SourceFetcher, day: date, token: Optional[str]) -> List[Activity]:
    source = fetcher.source.value
    try:
        activities = await fetcher.fetch(day, token)
    except Exception as e:
        err = SourceFetchError(source, str(e))
        log.error(f"Source fetch failed, continuing without it: {err}", exc_info=True)
        return []
    log.info(f"[{source}] Found {len(activities)} activities for {day}")
    return list(activities or [])


async def gather_activities(
    fetchers: Iterable[SourceFetcher],
    day: date,
    tokens: Optional[Mapping[str, str]] = None,
) -> FetchResult:
    """Runs every fetcher concurrently and merges their output."""
    tokens = tokens or {}
    fetchers = list(fetchers)
    results = await asyncio.gather(*(
        _fetch_isolated(f, day, tokens.get(f.source.value)) for f in fetchers
    ))

    merged = FetchResult(sources={s.value: 0 for s in ActivitySource})
    for fetcher, activities in zip(fetchers, results):
        merged.activities.extend(activities)
        merged.sources[fetcher.source.value] += len(activities)
    return merged
