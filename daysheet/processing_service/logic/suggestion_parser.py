# daysheet/processing_service/logic/suggestion_parser.py
"""
Turns generative-model output into validated Suggestion records.

Model output is unreliable: it can arrive wrapped in markdown fences, with
chatter around the array, or cut off mid-array when the output limit is hit.
`parse_suggestions` tries three recoveries in order and then coerces every
field of every recovered item, so only a total absence of an array raises.
"""

import json
import logging
import math
import re
import uuid
from typing import Any, Iterable, List, Optional

from daysheet.processing_service.models import SourceActivity, Suggestion
from daysheet.shared.errors import ParseError

log = logging.getLogger(__name__)

UNKNOWN_PROJECT = "Unknown project"
UNKNOWN_ACTIVITY_TYPE = "Unknown type"
DEFAULT_HOURS = 0.5
MAX_HOURS = 24.0
CONFIDENCE_LEVELS = ("high", "medium", "low")

# Keys a model may wrap the array in
ENVELOPE_KEYS = ("suggestions", "entries", "items", "data")
# Any of these marks a bare object as a single suggestion
SUGGESTION_KEYS = ("projectId", "project_id", "projectName", "project_name", "hours")

_ARRAY_SPAN = re.compile(r"\[[\s\S]*\]")
_OBJECT_SPAN = re.compile(r"\{[\s\S]*\}")
_ENVELOPE_OPEN = re.compile(r'^[^\[{]*\{\s*"(?:' + "|".join(ENVELOPE_KEYS) + r')"\s*:\s*\[')


def round_to_half(value: float) -> float:
    """Nearest multiple of 0.5 within [0.5, MAX_HOURS]."""
    if math.isnan(value):
        return DEFAULT_HOURS
    value = min(max(value, 0.0), MAX_HOURS)
    return max(0.5, math.floor(value * 2 + 0.5) / 2)


def _strip_fences(text: str) -> str:
    text = text.strip()
    if text.startswith("```"):
        end = text.find('\n')
        text = text[end + 1:] if end != -1 else text[3:]
        if text.rstrip().endswith("```"):
            text = text.rstrip()[:-3]
    return text.strip()


def _loads_array(text: str) -> Optional[list]:
    try:
        data = json.loads(text)
    except (json.JSONDecodeError, TypeError, ValueError):
        return None
    if isinstance(data, dict):
        for key in ENVELOPE_KEYS:
            if isinstance(data.get(key), list):
                return data[key]
        if any(key in data for key in SUGGESTION_KEYS):
            return [data]
        return None
    return data if isinstance(data, list) else None


def _salvage_truncated(text: str) -> Optional[list]:
    """Cuts a truncated array back to its last complete object and closes it."""
    start = text.find("[")
    if start == -1:
        return None
    end = text.rfind("}")
    while end > start:
        candidate = text[start:end + 1].rstrip().rstrip(",") + "]"
        data = _loads_array(candidate)
        if data is not None:
            return data
        end = text.rfind("}", start, end)
    return None


def _opens_with_object(text: str) -> bool:
    brace, bracket = text.find("{"), text.find("[")
    return brace != -1 and (bracket == -1 or brace < bracket)


def extract_array(model_output: str) -> list:
    """Locates the suggestion array in raw model output, or raises ParseError."""
    if not model_output or not model_output.strip():
        raise ParseError("Model output is empty")

    text = _strip_fences(model_output)

    data = _loads_array(text)
    if data is not None:
        return data

    # An outer object's nested arrays (sourceActivities) are never the suggestion array
    outer_object = _opens_with_object(text)
    match = (_OBJECT_SPAN if outer_object else _ARRAY_SPAN).search(text)
    if match:
        data = _loads_array(match.group(0))
        if data is not None:
            log.warning("Recovered suggestions from surrounding text in model output.")
            return data

    if not outer_object or _ENVELOPE_OPEN.match(text):
        data = _salvage_truncated(text)
        if data is not None:
            log.warning(f"Salvaged {len(data)} item(s) from truncated model output.")
            return data

    raise ParseError(f"Could not find a JSON array in model output: {model_output[:200]!r}")


def _as_str(value: Any, default: str = "") -> str:
    if value is None or value == "":
        return default
    if isinstance(value, (dict, list)):
        return default
    return str(value)


def _as_hours(value: Any) -> float:
    try:
        hours = float(value)
    except (TypeError, ValueError):
        return DEFAULT_HOURS
    if not math.isfinite(hours) or hours <= 0:
        return DEFAULT_HOURS
    return round_to_half(hours)


def _as_minutes(value: Any) -> Optional[int]:
    try:
        minutes = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(minutes) or minutes <= 0:
        return None
    return int(round(minutes))


def _as_confidence(value: Any) -> str:
    if isinstance(value, str) and value.strip().lower() in CONFIDENCE_LEVELS:
        return value.strip().lower()
    return "medium"


def _as_source_activities(value: Any) -> List[SourceActivity]:
    if not isinstance(value, list):
        return []
    activities = []
    for item in value:
        if not isinstance(item, dict):
            continue
        activities.append(SourceActivity(
            source=_as_str(item.get("source")),
            title=_as_str(item.get("title")),
            timestamp=_as_str(item.get("timestamp")),
            estimated_minutes=_as_minutes(item.get("estimatedMinutes", item.get("estimated_minutes"))),
        ))
    return activities


def _pick(item: dict, camel: str, snake: str) -> Any:
    return item.get(camel, item.get(snake))


def normalize_item(item: dict) -> Suggestion:
    """Coerces one raw item into a fresh pending Suggestion. Never raises."""
    return Suggestion(
        id=str(uuid.uuid4()),
        project_id=_as_str(_pick(item, "projectId", "project_id")),
        project_name=_as_str(_pick(item, "projectName", "project_name"), UNKNOWN_PROJECT),
        activity_type_id=_as_str(_pick(item, "activityTypeId", "activity_type_id")),
        activity_type_name=_as_str(_pick(item, "activityTypeName", "activity_type_name"), UNKNOWN_ACTIVITY_TYPE),
        hours=_as_hours(item.get("hours")),
        description=_as_str(item.get("description")),
        internal_note=_as_str(_pick(item, "internalNote", "internal_note")),
        reasoning=_as_str(item.get("reasoning")),
        confidence=_as_confidence(item.get("confidence")),
        source_activities=_as_source_activities(_pick(item, "sourceActivities", "source_activities")),
        status="pending",
    )


def normalize_items(items: Iterable[Any]) -> List[Suggestion]:
    suggestions = []
    for item in items:
        if not isinstance(item, dict):
            log.warning(f"Skipping non-object suggestion item: {item!r}")
            continue
        suggestions.append(normalize_item(item))
    return suggestions


def parse_suggestions(model_output: str) -> List[Suggestion]:
    return normalize_items(extract_array(model_output))
