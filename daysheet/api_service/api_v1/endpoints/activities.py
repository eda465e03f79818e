import logging
import re
from datetime import date
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from fastapi import APIRouter, Depends, Query, Request

from daysheet.api_service import schemas
from daysheet.api_service.api_v1.deps import get_fetchers
from daysheet.api_service.auth import require_auth
from daysheet.ingestion_service.fetchers import gather_activities
from daysheet.processing_service.logic.event_aggregation import aggregate, summarize
from daysheet.processing_service.logic.settings import settings as service_settings
from daysheet.processing_service.models import ActivitySource
from daysheet.shared.errors import ValidationError

logger = logging.getLogger(__name__)

router = APIRouter()

DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def parse_date_string(date_string: str) -> date:
    if not DATE_PATTERN.match(date_string or ""):
        raise ValidationError("Invalid date format. Please use YYYY-MM-DD.")
    try:
        return date.fromisoformat(date_string)
    except ValueError:
        raise ValidationError("Invalid date format. Please use YYYY-MM-DD.")


def parse_timezone(tz: str) -> str:
    try:
        ZoneInfo(tz)
    except (ZoneInfoNotFoundError, ValueError):
        raise ValidationError(f"Unknown timezone: {tz}")
    return tz


def token_header(source: ActivitySource) -> str:
    """kanban_card -> X-Kanban-Card-Token"""
    return "X-" + "-".join(part.capitalize() for part in source.value.split("_")) + "-Token"


def source_tokens(request: Request) -> dict:
    tokens = {}
    for source in ActivitySource:
        value = request.headers.get(token_header(source))
        if value:
            tokens[source.value] = value
    return tokens


@router.get("", response_model=schemas.DayActivitiesResponse, response_model_by_alias=True)
async def read_day_activities(
    request: Request,
    date: str = Query(..., description="Date in YYYY-MM-DD format."),
    tz: str = Query(service_settings.LOCAL_TZ, description="IANA timezone, e.g. Europe/Oslo."),
    fetchers: list = Depends(get_fetchers),
    _: str = Depends(require_auth),
):
    target_date = parse_date_string(date)
    tz = parse_timezone(tz)

    fetched = await gather_activities(fetchers, target_date, source_tokens(request))
    hours = aggregate(
        fetched.activities,
        start_hour=service_settings.WORK_START_HOUR,
        end_hour=service_settings.WORK_END_HOUR,
        tz=tz,
    )
    summary = summarize(hours)
    logger.info(f"Aggregated {len(fetched.activities)} activities into {len(hours)} hours for {target_date} ({tz}).")
    return schemas.DayActivitiesResponse(
        date=target_date,
        timezone=tz,
        hours=hours,
        summary=summary,
        sources=fetched.sources,
    )
