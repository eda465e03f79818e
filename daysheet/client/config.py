"""
Configuration for the review client.
"""
import os

# Base URL of the Daysheet API. Empty means the services run in-process.
DAYSHEET_API_URL = os.getenv("DAYSHEET_API_URL", "")

# Bearer token for the API, as issued by /api/v1/auth/token
DAYSHEET_API_TOKEN = os.getenv("DAYSHEET_API_TOKEN", "")

# Timeout for a single API call in seconds; suggestion generation can be slow
REQUEST_TIMEOUT_SECONDS = float(os.getenv("REQUEST_TIMEOUT_SECONDS", 60))

# Path to the local SQLite database holding review sessions
CLIENT_CACHE_PATH = os.getenv("CLIENT_CACHE_PATH", "daysheet_cache.db")

# Timezone the user's day is interpreted in
LOCAL_TZ = os.getenv("LOCAL_TZ", "UTC")
