import os
import logging
from pathlib import Path
from dotenv import load_dotenv

logger = logging.getLogger(__name__)

# Define project root and .env path
SERVICE_ROOT = Path(__file__).parent.parent
DOTENV_PATH = SERVICE_ROOT / '.env'

if DOTENV_PATH.exists():
    load_dotenv(DOTENV_PATH)
    logger.info(f"Loaded .env file from {DOTENV_PATH}")
else:
    logger.debug(f".env file not found at {DOTENV_PATH}. Relying on environment variables.")


class Settings:
    """Settings for activity aggregation and suggestion generation."""

    # --- Suggestion provider ---
    AI_PROVIDER: str = os.getenv("AI_PROVIDER", "gemini").lower()

    # --- Gemini API ---
    GEMINI_API_KEY: str = os.getenv("GEMINI_API_KEY", "")
    ENRICHMENT_MODEL_NAME: str = os.getenv("ENRICHMENT_MODEL_NAME", "gemini-2.5-flash")
    LLM_TEMPERATURE: float = float(os.getenv("LLM_TEMPERATURE", "0.3"))
    LLM_TIMEOUT_S: float = float(os.getenv("LLM_TIMEOUT_S", "30"))

    # --- Timezone ---
    LOCAL_TZ: str = os.getenv("LOCAL_TZ", "UTC")

    # --- Work window ---
    WORK_START_HOUR: int = int(os.getenv("WORK_START_HOUR", "6"))
    WORK_END_HOUR: int = int(os.getenv("WORK_END_HOUR", "23"))

    # --- Workday ---
    TARGET_WORKDAY_HOURS: float = float(os.getenv("TARGET_WORKDAY_HOURS", "7.5"))
    LUNCH_DEDUCTION_MIN: int = int(os.getenv("LUNCH_DEDUCTION_MIN", "30"))

    # --- Prompt size caps ---
    CHAT_CAP: int = int(os.getenv("CHAT_CAP", "5"))
    MAIL_CAP: int = int(os.getenv("MAIL_CAP", "5"))
    DEFAULT_SOURCE_CAP: int = int(os.getenv("DEFAULT_SOURCE_CAP", "10"))

    # --- Project management backend ---
    PM_PROVIDER: str = os.getenv("PM_PROVIDER", "mock").lower()
    PM_CACHE_TTL_S: float = float(os.getenv("PM_CACHE_TTL_S", "300"))

    @property
    def SOURCE_CAPS(self) -> dict:
        return {"chat": self.CHAT_CAP, "mail": self.MAIL_CAP}

    def __init__(self):
        if self.AI_PROVIDER == "gemini" and not self.GEMINI_API_KEY:
            logger.warning("GEMINI_API_KEY is not set in environment. LLM calls will fail.")


settings = Settings()
