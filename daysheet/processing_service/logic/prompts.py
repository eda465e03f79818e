# daysheet/processing_service/logic/prompts.py

"""
This file contains the LLM prompt used to turn a day of activity into draft
time-log entries, and the function that fills it in.
"""

from datetime import date
from typing import Dict, List
from zoneinfo import ZoneInfo

from daysheet.processing_service.models import ActivityType, PmContext, PreprocessedData

# --- Time-log Suggestion Prompt ---

SUGGESTION_SCHEMA_DESCRIPTION = """[
  {
    "projectId": "string",
    "projectName": "string",
    "activityTypeId": "string",
    "activityTypeName": "string",
    "hours": number,
    "description": "Short, client-friendly description",
    "internalNote": "More detailed internal note",
    "reasoning": "Why this line was suggested",
    "confidence": "high" | "medium" | "low",
    "sourceActivities": [
      { "source": "string", "title": "string", "timestamp": "ISO string", "estimatedMinutes": number }
    ]
  }
]"""

SUGGESTION_SCHEMA_HINT = {"type": "array", "items": {"type": "object"}}

TIME_LOG_SUGGESTION_PROMPT = """
You are an assistant that helps consultants log their working hours.

RULES:
- A standard workday is {workday_hours} hours
- Round each line to the nearest 0.5 hour (minimum 0.5 hours per line)
- Write descriptions in plain, client-friendly language
- Write internal notes with more detail for colleagues
- Answer ONLY with a valid JSON array matching the schema below, no other text
- The sum of all hours should be about {workday_hours} hours
- If rounding pushes the total above {workday_hours} hours, trim the line with the lowest confidence first

DATE: {day_iso}

AVAILABLE PROJECTS:
{project_list}

ACTIVITY TYPES:
{activity_type_list}

ALLOCATIONS (hint for distribution):
{allocation_list}

ALREADY LOGGED FOR THIS DATE (do not count twice):
{existing_list}

TODAY'S ACTIVITIES:
{activity_list}

ANALYSIS:
- Calendar time: {calendar_minutes} minutes
- Time between meetings: {gap_minutes} minutes
- Lunch detected: {lunch}
- Estimated active time: {active_minutes} minutes

SCHEMA (return a JSON array):
{schema_description}

Generate the suggestions now.
"""


def _format_hours(hours: float) -> str:
    return f"{hours:g}"


def _render_projects(context: PmContext) -> str:
    if not context.projects:
        return "No projects available."
    return "\n".join(
        f"- {p.name} (ID: {p.id}{f', code: {p.code}' if p.code else ''})"
        for p in context.projects
    )


def _render_activity_types(context: PmContext) -> str:
    if not context.activity_types:
        return "No activity types available."

    general: List[ActivityType] = []
    by_project: Dict[str, List[ActivityType]] = {}
    for t in context.activity_types:
        if t.project_id:
            by_project.setdefault(t.project_id, []).append(t)
        else:
            general.append(t)

    lines = [f"- {t.name} (ID: {t.id})" for t in general]
    project_names = {p.id: p.name for p in context.projects}
    for project_id, types in by_project.items():
        lines.append(f"{project_names.get(project_id, project_id)}:")
        lines.extend(f"  - {t.name} (ID: {t.id})" for t in types)
    return "\n".join(lines)


def _render_allocations(context: PmContext) -> str:
    if not context.allocations:
        return "No allocations registered."
    return "\n".join(f"- {a.project_name}: {_format_hours(a.allocated_hours)} h" for a in context.allocations)


def _render_existing(context: PmContext) -> str:
    if not context.existing_records:
        return "Nothing logged yet."
    lines = []
    for r in context.existing_records:
        label = f"{r.project_name} / {r.activity_type_name}" if r.activity_type_name else r.project_name
        note = f" - {r.description}" if r.description else ""
        lines.append(f"- {label}: {_format_hours(r.hours)} h{note}")
    return "\n".join(lines)


def _render_activities(data: PreprocessedData, tz: ZoneInfo) -> str:
    if not data.activities:
        return "No activities recorded."
    lines = []
    for a in data.activities:
        clock = a.timestamp.astimezone(tz).strftime("%H:%M")
        duration = f" ({a.duration_minutes} min)" if a.duration_minutes else ""
        lines.append(f"- [{clock}] [{a.source}] {a.title}{duration}")
    return "\n".join(lines)


def assemble_prompt(
    data: PreprocessedData,
    context: PmContext,
    day: date,
    tz: str = "UTC",
    workday_hours: float = 7.5,
    lunch_deduction_min: int = 30,
) -> str:
    """Renders the full instruction text. Does no truncation of its own."""
    return TIME_LOG_SUGGESTION_PROMPT.format(
        workday_hours=_format_hours(workday_hours),
        day_iso=day.isoformat(),
        project_list=_render_projects(context),
        activity_type_list=_render_activity_types(context),
        allocation_list=_render_allocations(context),
        existing_list=_render_existing(context),
        activity_list=_render_activities(data, ZoneInfo(tz)),
        calendar_minutes=data.calendar_minutes,
        gap_minutes=data.gap_minutes,
        lunch=f"yes (-{lunch_deduction_min} min)" if data.lunch_detected else "no",
        active_minutes=data.total_active_minutes,
        schema_description=SUGGESTION_SCHEMA_DESCRIPTION,
    ).strip() + "\n"
