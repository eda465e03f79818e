# daysheet/processing_service/logic/heuristic.py
"""
Keyword-driven suggestion generator.

A deterministic stand-in for the generative model, used when no model is
configured (tests, offline demos). Its keyword table is tied to the demo
project names served by the mock PM adapter and does not generalize.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from daysheet.processing_service.logic.suggestion_parser import normalize_items, round_to_half
from daysheet.processing_service.models import (
    ActivitySource,
    ActivityType,
    FlatActivity,
    PmContext,
    PreprocessedData,
    Project,
    Suggestion,
)

log = logging.getLogger(__name__)

DEFAULT_ACTIVITY_MINUTES = 15
FALLBACK_PROJECT_NAME = "Internal/Admin"

PROJECT_KEYWORDS: Dict[str, List[str]] = {
    "Project Alpha": ["alpha", "sprint", "planning", "standup", "retro"],
    "DevApp": [
        "dev", "frontend", "backend", "react", "component", "layout", "code",
        "pull request", "merged pr", "opened pr", "reviewed pr", "commit", "github",
    ],
    "Customer Portal": ["portal", "customer", "client", "demo"],
    "Internal/Admin": ["admin", "internal", "lunch", "1:1", "one-on-one", "all-hands", "weekly", "status"],
    "Sales & Marketing": ["sale", "marketing", "pitch", "proposal"],
    "Training": ["training", "course", "onboarding", "workshop"],
}

# Activity-type guesses, checked in priority order
DEVELOPMENT_TYPE = "Development"
DOCUMENTATION_TYPE = "Documentation"
MEETINGS_TYPE = "Meetings"

CONFIDENCE_ORDER = {"low": 0, "medium": 1, "high": 2}

SOURCE_LABELS = {
    ActivitySource.CALENDAR.value: "Meeting",
    ActivitySource.CHAT.value: "Chat",
    ActivitySource.DOCUMENT.value: "Doc",
    ActivitySource.CODE_HOST.value: "Code",
    ActivitySource.MAIL.value: "Email",
    ActivitySource.KANBAN_CARD.value: "Card",
    ActivitySource.ISSUE_TRACKER.value: "Issue",
}


@dataclass
class ProjectGroup:
    project: Project
    activities: List[FlatActivity] = field(default_factory=list)

    @property
    def sources(self) -> set:
        return {a.source for a in self.activities}

    @property
    def minutes(self) -> int:
        return sum(a.duration_minutes or DEFAULT_ACTIVITY_MINUTES for a in self.activities)


def match_project(activity: FlatActivity, projects: List[Project]) -> Optional[Project]:
    """First keyword hit wins; a hit for a project the backend doesn't offer is ignored."""
    text = activity.title.lower()
    by_name = {p.name: p for p in projects}
    for project_name, keywords in PROJECT_KEYWORDS.items():
        project = by_name.get(project_name)
        if project is None:
            continue
        if any(kw.lower() in text for kw in keywords):
            return project
    return None


def guess_activity_type(activities: List[FlatActivity], activity_types: List[ActivityType]) -> ActivityType:
    sources = {a.source for a in activities}
    by_name = {t.name: t for t in activity_types}

    if ActivitySource.CODE_HOST.value in sources and DEVELOPMENT_TYPE in by_name:
        return by_name[DEVELOPMENT_TYPE]
    if (ActivitySource.DOCUMENT.value in sources
            and ActivitySource.CALENDAR.value not in sources
            and DOCUMENTATION_TYPE in by_name):
        return by_name[DOCUMENTATION_TYPE]
    if ActivitySource.CALENDAR.value in sources and MEETINGS_TYPE in by_name:
        return by_name[MEETINGS_TYPE]
    return activity_types[0]


def describe(activities: List[FlatActivity]) -> str:
    parts = []
    meetings = [a.title for a in activities if a.source == ActivitySource.CALENDAR.value]
    if meetings:
        parts.append(", ".join(meetings[:2]))
    if any(a.source == ActivitySource.CODE_HOST.value for a in activities):
        parts.append("development")
    if any(a.source == ActivitySource.DOCUMENT.value for a in activities):
        parts.append("documentation work")
    if any(a.source == ActivitySource.ISSUE_TRACKER.value for a in activities):
        parts.append("issue follow-up")
    if not parts and any(a.source == ActivitySource.CHAT.value for a in activities):
        parts.append("communication and follow-up")

    text = ", ".join(parts)
    return text[:1].upper() + text[1:] if text else "Miscellaneous work"


def internal_note(activities: List[FlatActivity]) -> str:
    return ". ".join(
        f"{SOURCE_LABELS.get(a.source, a.source)}: {a.title[:50]}" for a in activities[:4]
    )


class HeuristicSuggestionGenerator:
    """Groups activities by keyword-matched project and sizes each group."""

    def __init__(self, target_hours: float = 7.5):
        self.target_hours = target_hours

    def group_activities(self, activities: List[FlatActivity], context: PmContext) -> List[ProjectGroup]:
        groups: Dict[str, ProjectGroup] = {}
        unmatched: List[FlatActivity] = []

        for activity in activities:
            project = match_project(activity, context.projects)
            if project is None:
                unmatched.append(activity)
                continue
            groups.setdefault(project.id, ProjectGroup(project)).activities.append(activity)

        if unmatched:
            fallback = next(
                (p for p in context.projects if p.name == FALLBACK_PROJECT_NAME),
                context.projects[0],
            )
            groups.setdefault(fallback.id, ProjectGroup(fallback)).activities.extend(unmatched)

        return list(groups.values())

    def _build_items(self, groups: List[ProjectGroup], context: PmContext) -> List[dict]:
        items = []
        for group in groups:
            activity_type = guess_activity_type(group.activities, context.activity_types)
            has_meeting = ActivitySource.CALENDAR.value in group.sources
            items.append({
                "projectId": group.project.id,
                "projectName": group.project.name,
                "activityTypeId": activity_type.id,
                "activityTypeName": activity_type.name,
                "hours": round_to_half(group.minutes / 60),
                "description": describe(group.activities),
                "internalNote": internal_note(group.activities),
                "reasoning": f"{len(group.activities)} activities matched to this project by keyword and time spent.",
                "confidence": "high" if has_meeting else "medium",
                "sourceActivities": [
                    {
                        "source": a.source,
                        "title": a.title,
                        "timestamp": a.timestamp.isoformat(),
                        "estimatedMinutes": a.duration_minutes or DEFAULT_ACTIVITY_MINUTES,
                    }
                    for a in group.activities
                ],
            })
        return items

    def _empty_day_item(self, context: PmContext) -> dict:
        fallback = next(
            (p for p in context.projects if p.name == FALLBACK_PROJECT_NAME),
            context.projects[0],
        )
        activity_type = context.activity_types[0]
        return {
            "projectId": fallback.id,
            "projectName": fallback.name,
            "activityTypeId": activity_type.id,
            "activityTypeName": activity_type.name,
            "hours": self.target_hours,
            "description": "Miscellaneous work",
            "internalNote": "",
            "reasoning": "No activity was recorded for this day.",
            "confidence": "low",
            "sourceActivities": [],
        }

    def fit_to_target(self, items: List[dict], context: PmContext) -> None:
        """Trims the least confident lines or tops up an allocated one to hit the target."""
        if not items:
            return
        total = sum(item["hours"] for item in items)

        if total > self.target_hours:
            excess = total - self.target_hours
            for item in sorted(items, key=lambda i: CONFIDENCE_ORDER.get(i["confidence"], 1)):
                if excess <= 0:
                    break
                reduction = min(excess, item["hours"] - 0.5)
                if reduction > 0:
                    item["hours"] = round_to_half(item["hours"] - reduction)
                    excess -= reduction
        elif total < self.target_hours:
            allocated_ids = {a.project_id for a in context.allocations}
            receiver = next((i for i in items if i["projectId"] in allocated_ids), items[0])
            receiver["hours"] = round_to_half(receiver["hours"] + self.target_hours - total)

    def generate_raw(self, data: PreprocessedData, context: PmContext) -> List[dict]:
        if not context.projects or not context.activity_types:
            log.warning("Heuristic generator has no projects or activity types to work with.")
            return []

        if not data.activities:
            return [self._empty_day_item(context)]

        items = self._build_items(self.group_activities(data.activities, context), context)
        self.fit_to_target(items, context)
        log.info(
            f"Heuristic generator produced {len(items)} suggestions totalling "
            f"{sum(i['hours'] for i in items):g} h."
        )
        return items

    def generate(self, data: PreprocessedData, context: PmContext) -> List[Suggestion]:
        return normalize_items(self.generate_raw(data, context))
