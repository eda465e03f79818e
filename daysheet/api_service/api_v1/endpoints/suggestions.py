import logging

from fastapi import APIRouter, Depends, Query

from daysheet.api_service import schemas
from daysheet.api_service.api_v1.deps import get_pm, get_suggestion_service
from daysheet.api_service.api_v1.endpoints.activities import parse_date_string, parse_timezone
from daysheet.api_service.auth import require_auth
from daysheet.pm.adapter import PmAdapter, build_pm_context, submit_entries
from daysheet.processing_service.logic.suggestions import SuggestionService
from daysheet.processing_service.models import PmContext, SuggestionResponse

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/pm-context", response_model=PmContext, response_model_by_alias=True)
async def read_pm_context(
    date: str = Query(..., description="Date in YYYY-MM-DD format."),
    pm: PmAdapter = Depends(get_pm),
):
    """Projects, activity types, allocations, logged hours and lock date for a day."""
    return await build_pm_context(pm, parse_date_string(date))


@router.post("/suggest", response_model=SuggestionResponse, response_model_by_alias=True)
async def suggest_time_logs(
    request: schemas.SuggestRequest,
    service: SuggestionService = Depends(get_suggestion_service),
    _: str = Depends(require_auth),
):
    tz = parse_timezone(request.timezone) if request.timezone else None
    logger.info(f"Generating suggestions for {request.date} from {len(request.hours)} hours of activity.")
    return await service.generate(request.date, request.hours, request.pm_context, tz=tz)


@router.post("/submit", response_model=schemas.SubmitResponse, response_model_by_alias=True)
async def submit_time_logs(
    request: schemas.SubmitRequest,
    pm: PmAdapter = Depends(get_pm),
):
    """Submits approved entries. The lock date is enforced here whatever the client shows."""
    results = await submit_entries(pm, request.entries)
    return schemas.SubmitResponse(results=results)
