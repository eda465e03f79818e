# daysheet/processing_service/logic/suggestions.py
"""
Suggestion pipeline for Daysheet.
Preprocesses a day's hourly buckets and produces draft time-log suggestions,
either through the generative model or the keyword heuristic, depending on
configuration.
"""

import json
import logging
from datetime import date
from typing import Dict, Optional

from daysheet.processing_service.logic import prompts
from daysheet.processing_service.logic.heuristic import HeuristicSuggestionGenerator
from daysheet.processing_service.logic.llm_processing import AiAdapter, GeminiAdapter
from daysheet.processing_service.logic.preprocess import Preprocessor
from daysheet.processing_service.logic.settings import Settings as ServiceSettingsType
from daysheet.processing_service.logic.suggestion_parser import parse_suggestions
from daysheet.processing_service.models import (
    HourBucket,
    PmContext,
    PreprocessedData,
    SuggestionResponse,
)

log = logging.getLogger(__name__)

HEURISTIC_PROVIDER = "heuristic"


class SuggestionService:
    """Orchestrates preprocessing, generation and parsing for one day."""

    def __init__(self, settings: ServiceSettingsType, ai_adapter: Optional[AiAdapter] = None):
        self.settings = settings
        self.use_heuristic = ai_adapter is None and settings.AI_PROVIDER == HEURISTIC_PROVIDER
        self.ai_adapter = ai_adapter
        if self.ai_adapter is None and not self.use_heuristic:
            self.ai_adapter = GeminiAdapter(settings)
        self.heuristic = HeuristicSuggestionGenerator(settings.TARGET_WORKDAY_HOURS)

    def preprocess(self, hours: Dict[int, HourBucket], tz: str) -> PreprocessedData:
        return Preprocessor(
            tz=tz,
            source_caps=self.settings.SOURCE_CAPS,
            default_cap=self.settings.DEFAULT_SOURCE_CAP,
            lunch_deduction_min=self.settings.LUNCH_DEDUCTION_MIN,
        ).preprocess(hours)

    async def _model_output(self, data: PreprocessedData, context: PmContext, day: date, tz: str) -> str:
        if self.use_heuristic:
            return json.dumps(self.heuristic.generate_raw(data, context))

        prompt = prompts.assemble_prompt(
            data,
            context,
            day,
            tz=tz,
            workday_hours=self.settings.TARGET_WORKDAY_HOURS,
            lunch_deduction_min=self.settings.LUNCH_DEDUCTION_MIN,
        )
        log.info(f"Requesting suggestions from {self.ai_adapter.name} for {day} ({len(prompt)} prompt chars).")
        return await self.ai_adapter.generate_suggestions(prompt, prompts.SUGGESTION_SCHEMA_HINT)

    async def generate(
        self,
        day: date,
        hours: Dict[int, HourBucket],
        context: PmContext,
        tz: Optional[str] = None,
    ) -> SuggestionResponse:
        """
        Produces suggestions for a day.

        Model transport failures and unparseable output propagate to the
        caller; they are never replaced by heuristic output.
        """
        tz = tz or self.settings.LOCAL_TZ
        data = self.preprocess(hours, tz)
        raw = await self._model_output(data, context, day, tz)
        suggestions = parse_suggestions(raw)

        total_hours = sum(s.hours for s in suggestions)
        unaccounted = max(0.0, self.settings.TARGET_WORKDAY_HOURS * 60 - total_hours * 60)
        log.info(f"Generated {len(suggestions)} suggestions for {day} totalling {total_hours:g} h.")
        return SuggestionResponse(
            suggestions=suggestions,
            total_hours=total_hours,
            unaccounted_minutes=unaccounted,
        )
