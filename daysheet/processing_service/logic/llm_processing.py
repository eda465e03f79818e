# daysheet/processing_service/logic/llm_processing.py
"""
LLM processing module for Daysheet.
Wraps the Google Gemini client behind a small adapter that returns the raw
text of the model's answer, or raises ModelTransportError.
"""

import asyncio
import logging
from typing import Optional, Protocol

from google import genai
from google.genai import types as genai_types

from daysheet.processing_service.logic.settings import Settings as ServiceSettingsType
from daysheet.shared.errors import ModelTransportError

log = logging.getLogger(__name__)


class AiAdapter(Protocol):
    name: str

    async def generate_suggestions(self, prompt: str, schema_hint: dict) -> str:
        ...


class GeminiAdapter:
    """Handles suggestion generation through Gemini."""

    name = "gemini"

    def __init__(self, settings: ServiceSettingsType):
        self.settings = settings
        self.client: Optional[genai.Client] = None
        self._client_initialized = False

    def _initialize_client(self):
        """Lazy initialization of the LLM client."""
        if self._client_initialized:
            return

        api_key = self.settings.GEMINI_API_KEY
        if not api_key:
            raise ModelTransportError("GEMINI_API_KEY not configured")

        try:
            self.client = genai.Client(api_key=api_key)
        except Exception as e:
            log.error(f"Failed to initialize Gemini client: {e}", exc_info=True)
            raise ModelTransportError(f"Could not initialize Gemini client: {e}") from e

        self._client_initialized = True
        log.info(f"Gemini client initialized with model target: {self.settings.ENRICHMENT_MODEL_NAME}")

    async def generate_suggestions(self, prompt: str, schema_hint: dict) -> str:
        """
        Sends the prompt to Gemini and returns the response text.

        Args:
            prompt: The fully assembled instruction.
            schema_hint: Loose shape of the expected answer. Gemini is only
                asked for JSON; the parser does the real validation.

        Returns:
            The raw text of the model's answer.
        """
        self._initialize_client()

        config = genai_types.GenerateContentConfig(
            response_mime_type="application/json",
            temperature=self.settings.LLM_TEMPERATURE,
        )
        timeout_s = self.settings.LLM_TIMEOUT_S

        try:
            response = await asyncio.wait_for(
                asyncio.to_thread(
                    self.client.models.generate_content,
                    model=self.settings.ENRICHMENT_MODEL_NAME,
                    contents=prompt,
                    config=config,
                ),
                timeout=timeout_s,
            )
        except asyncio.TimeoutError as e:
            log.error(f"Gemini timed out after {timeout_s:g}s")
            raise ModelTransportError(f"Gemini timed out after {timeout_s:g}s") from e
        except Exception as e:
            log.error(f"Gemini request failed: {e}", exc_info=True)
            raise ModelTransportError(f"Gemini request failed: {e}") from e

        if response.prompt_feedback and response.prompt_feedback.block_reason:
            log.error(f"Prompt blocked by Gemini: {response.prompt_feedback.block_reason}")
            raise ModelTransportError(f"Gemini blocked the prompt: {response.prompt_feedback.block_reason}")

        if not response.text:
            log.warning("Empty response from Gemini")
            raise ModelTransportError("Gemini returned an empty response")

        return response.text
