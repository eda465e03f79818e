import pytest
from datetime import datetime, timedelta, timezone

from daysheet.processing_service.logic.heuristic import HeuristicSuggestionGenerator, match_project
from daysheet.processing_service.models import FlatActivity, PmContext, PreprocessedData


def at(hour, minute=0) -> datetime:
    return datetime(2025, 1, 15, hour, minute, tzinfo=timezone.utc)


def flat(source, title, hour, minute=0, minutes=None):
    return FlatActivity(
        source=source,
        title=title,
        timestamp=at(hour, minute),
        end_time=at(hour, minute) + timedelta(minutes=minutes) if minutes else None,
        duration_minutes=minutes,
    )


@pytest.fixture
def generator():
    return HeuristicSuggestionGenerator(target_hours=7.5)


@pytest.fixture
def day():
    return PreprocessedData(activities=[
        flat("calendar", "Sprint planning", 9, minutes=60),
        flat("code_host", "devapp: Fix login", 10, 15),
        flat("document", "Edit: Customer portal spec", 11),
        flat("chat", "#random: coffee?", 14),
    ])


def by_project(suggestions):
    return {s.project_name: s for s in suggestions}


def test_groups_by_keyword(generator, day, pm_context):
    suggestions = by_project(generator.generate(day, pm_context))

    assert set(suggestions) == {"Project Alpha", "DevApp", "Customer Portal", "Internal/Admin"}
    assert suggestions["Project Alpha"].activity_type_name == "Meetings"
    assert suggestions["Project Alpha"].confidence == "high"
    assert suggestions["DevApp"].activity_type_name == "Development"
    assert suggestions["DevApp"].confidence == "medium"
    assert suggestions["Customer Portal"].activity_type_name == "Documentation"
    # Unmatched chat falls back to the first activity type
    assert suggestions["Internal/Admin"].activity_type_name == "Development"


def test_shortfall_goes_to_allocated_project(generator, day, pm_context):
    suggestions = by_project(generator.generate(day, pm_context))

    assert sum(s.hours for s in suggestions.values()) == pytest.approx(7.5)
    # Project Alpha is the first line with an allocation and takes the remainder
    assert suggestions["Project Alpha"].hours == 1.0 + 5.0
    assert suggestions["Customer Portal"].hours == 0.5


def test_excess_trimmed_but_never_below_half_hour(generator, pm_context):
    data = PreprocessedData(activities=[
        flat("calendar", "Alpha steering", 7, minutes=240),
        flat("calendar", "Customer portal demo", 11, minutes=240),
        flat("calendar", "Onboarding workshop", 15, minutes=240),
    ])
    suggestions = generator.generate(data, pm_context)

    assert len(suggestions) == 3
    assert abs(sum(s.hours for s in suggestions) - 7.5) <= 0.5
    assert all(s.hours >= 0.5 and (s.hours * 2).is_integer() for s in suggestions)


def test_low_confidence_lines_trimmed_first(generator, pm_context):
    data = PreprocessedData(activities=[
        flat("calendar", "Alpha steering", 7, minutes=360),
        flat("code_host", "devapp: big refactor", 14, minutes=240),
    ])
    suggestions = by_project(generator.generate(data, pm_context))
    assert suggestions["Project Alpha"].hours == 6.0
    assert suggestions["DevApp"].hours == 1.5


def test_output_order_follows_activity_order(generator, day, pm_context):
    names = [s.project_name for s in generator.generate(day, pm_context)]
    assert names == ["Project Alpha", "DevApp", "Customer Portal", "Internal/Admin"]


def test_empty_day_yields_single_low_confidence_line(generator, pm_context):
    suggestions = generator.generate(PreprocessedData(), pm_context)
    assert len(suggestions) == 1
    assert suggestions[0].project_name == "Internal/Admin"
    assert suggestions[0].hours == 7.5
    assert suggestions[0].confidence == "low"


def test_no_projects_yields_nothing(generator, day):
    assert generator.generate(day, PmContext()) == []


def test_source_activities_carry_estimates(generator, day, pm_context):
    suggestions = by_project(generator.generate(day, pm_context))
    sources = suggestions["DevApp"].source_activities
    assert sources[0].source == "code_host"
    assert sources[0].estimated_minutes == 15
    assert sources[0].timestamp == at(10, 15).isoformat()


def test_keyword_for_missing_project_ignored(pm_context):
    context = PmContext(projects=[p for p in pm_context.projects if p.name != "Training"])
    assert match_project(flat("calendar", "Onboarding workshop", 9), context.projects) is None
