import json
from datetime import date

import httpx
import pytest

from hackatime.errors import AuthenticationRequired
from hackatime.statistics import (
    analyze_programmer_class,
    calculate_trends,
    class_score,
    collect_dashboard_stats,
    generate_charts,
    generate_insights,
    infer_languages,
    load_programmer_classes,
    process_statistics,
)
from hackatime.stats_cache import StatsCache
from hackatime.storage import MemoryCacheStore
from tests.helpers import RecordingHandler, authenticated_store, build_api, fixed_today, hours_route

TODAY = date(2024, 3, 15)  # a Friday
HOURS = "/api/v1/authenticated/hours"
STREAK = "/api/v1/authenticated/streak"

CLASSES = [
    {
        "name": "Web Wizard",
        "description": "Lives in the browser.",
        "technologies": ["HTML", "CSS", "JavaScript"],
        "level": "Beginner",
        "color": "#FB4B20",
        "conditions": {"primary_languages": ["HTML", "CSS"], "max_hours": 50},
    },
    {
        "name": "Polyglot",
        "description": "Speaks every language.",
        "technologies": ["Rust", "Go", "Python"],
        "level": "Expert",
        "color": "#4CAF50",
        "conditions": {"language_count": 5, "min_hours": 100, "min_streak": 7},
    },
]


async def _stats(routes: dict) -> tuple[StatsCache, RecordingHandler]:
    handler = RecordingHandler(routes)
    stats = StatsCache(
        api=build_api(handler),
        token_store=await authenticated_store(),
        cache_store=MemoryCacheStore(),
        today_fn=fixed_today(TODAY),
    )
    return stats, handler


@pytest.mark.asyncio
async def test_collect_dashboard_stats() -> None:
    seconds = {
        ("2024-03-15", "2024-03-15"): 3600,
        ("2024-03-14", "2024-03-14"): 7200,
        ("2024-03-11", "2024-03-11"): 1800,
        ("2024-03-01", "2024-03-08"): 9000,
        ("2023-03-16", "2024-03-15"): 360000,
    }
    stats, _handler = await _stats(
        {HOURS: hours_route(seconds), STREAK: {"streak_days": 3, "longest_streak": 10}}
    )

    dashboard = await collect_dashboard_stats(stats)

    assert dashboard["current_streak"] == 3
    assert dashboard["longest_streak"] == 10
    assert dashboard["weekly_stats"]["time_coded_seconds"] == 12600
    assert list(dashboard["weekly_stats"]["daily_hours"])[0] == "2024-03-15"
    assert dashboard["weekly_stats"]["daily_hours"]["2024-03-14"] == {
        "date": "2024-03-14",
        "day_name": "Thu",
        "hours": 2.0,
        "seconds": 7200,
    }
    assert len(dashboard["weekly_stats"]["daily_hours"]) == 7
    assert dashboard["all_time_stats"]["time_coded_seconds"] == 360000
    assert dashboard["calculated_metrics"] == {
        "daily_average_hours": 0.5,
        "weekly_hours": 3.5,
        "weekly_change_percent": 40,
        "prev_week_hours": 2.5,
        "prev_week_seconds": 9000,
    }


@pytest.mark.asyncio
async def test_collect_dashboard_stats_tolerates_remote_failures() -> None:
    def failing_hours(request: httpx.Request) -> httpx.Response:
        if request.url.params["start_date"] == "2024-03-14":
            return httpx.Response(500, text="boom")
        return hours_route({("2024-03-15", "2024-03-15"): 600})(request)

    stats, _handler = await _stats(
        {HOURS: failing_hours, STREAK: httpx.Response(503, text="maintenance")}
    )

    dashboard = await collect_dashboard_stats(stats)

    assert dashboard["weekly_stats"]["daily_hours"]["2024-03-14"]["seconds"] == 0
    assert dashboard["weekly_stats"]["time_coded_seconds"] == 600
    assert dashboard["current_streak"] == 0
    assert dashboard["longest_streak"] == 0


@pytest.mark.asyncio
async def test_collect_dashboard_stats_requires_authentication() -> None:
    stats, handler = await _stats({HOURS: hours_route({})})
    async with stats.token_store.transaction() as transaction:
        await transaction.reset()

    with pytest.raises(AuthenticationRequired):
        await collect_dashboard_stats(stats)

    assert handler.requests == []


@pytest.mark.asyncio
async def test_past_days_come_from_cache_on_refresh() -> None:
    stats, handler = await _stats({HOURS: hours_route({}), STREAK: {"streak_days": 0}})

    await collect_dashboard_stats(stats)
    first = handler.count(HOURS)
    await collect_dashboard_stats(stats)

    # Only today's day and the all-time range include today.
    assert first == 9
    assert handler.count(HOURS) == first + 2


def test_trends_increase() -> None:
    trends = calculate_trends(weekly_seconds=36000, prev_week_seconds=18000, current_streak=4)

    weekly, streak, focus = trends
    assert weekly.title == "Weekly Coding Time"
    assert weekly.value == "10.0h"
    assert weekly.change == "+100%"
    assert weekly.change_type == "increase"
    assert weekly.color == "#4CAF50"
    assert streak.value == "4 days"
    assert streak.change == "+1 days"
    assert streak.color == "#FF5722"
    assert focus.value == "1.4h/day"
    assert focus.change == "+100%"


def test_trends_decrease() -> None:
    weekly, _streak, focus = calculate_trends(
        weekly_seconds=9000, prev_week_seconds=36000, current_streak=1
    )

    assert weekly.change == "-75%"
    assert weekly.change_type == "decrease"
    assert weekly.color == "#F44336"
    assert focus.change == "-75%"


def test_trends_neutral_without_activity() -> None:
    weekly, streak, focus = calculate_trends(weekly_seconds=0, prev_week_seconds=0, current_streak=0)

    assert weekly.change == "No change"
    assert weekly.change_type == "neutral"
    assert streak.change == "Maintained"
    assert streak.color == "#FF9800"
    assert focus.change == "No change"


def test_trends_new_activity_counts_as_full_increase() -> None:
    weekly, _streak, _focus = calculate_trends(weekly_seconds=60, prev_week_seconds=0, current_streak=1)

    assert weekly.change == "+100%"


def test_charts_default_to_empty_week() -> None:
    charts = generate_charts({})

    daily = charts[0]
    assert daily.id == "daily_hours"
    assert daily.data["labels"] == ["Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun"]
    assert daily.data["datasets"][0]["data"] == [0.0] * 7
    assert [chart.id for chart in charts] == ["daily_hours", "weekly_trend"]


def test_charts_order_days_chronologically() -> None:
    dashboard = {
        "weekly_stats": {
            "time_coded_seconds": 10800,
            "daily_hours": {
                "2024-03-15": {"date": "2024-03-15", "day_name": "Fri", "hours": 2.0, "seconds": 7200},
                "2024-03-14": {"date": "2024-03-14", "day_name": "Thu", "hours": 1.0, "seconds": 3600},
            },
            "top_language": {"name": "Python", "seconds": 5400},
        }
    }

    charts = generate_charts(dashboard)

    assert charts[0].data["labels"] == ["Thu", "Fri"]
    assert charts[0].data["datasets"][0]["data"] == [1.0, 2.0]
    language = charts[1]
    assert language.id == "language_distribution"
    assert language.data["labels"] == ["Python", "Others"]
    assert language.data["datasets"][0]["data"] == [50, 50]
    trend = charts[2]
    assert trend.data["labels"] == ["Week 4", "Week 3", "Week 2", "Week 1"]
    assert trend.data["datasets"][0]["data"][-1] == 3.0


def test_insights_thresholds() -> None:
    consistency, streak, total = generate_insights(
        weekly_seconds=2 * 7 * 3600, all_time_seconds=1000 * 3600, current_streak=30
    )

    assert consistency.title == "Consistent Coder"
    assert consistency.value == "2.0h/day"
    assert streak.title == "Streak Master"
    assert total.title == "Coding Veteran"
    assert total.value == "1000h total"


def test_insights_for_beginners() -> None:
    consistency, streak, total = generate_insights(
        weekly_seconds=3600, all_time_seconds=5 * 3600, current_streak=0
    )

    assert consistency.title == "Room for Growth"
    assert streak.title == "Fresh Start"
    assert streak.value == "0 days"
    assert total.title == "Just Getting Started"


def test_insights_middle_bands() -> None:
    consistency, streak, total = generate_insights(
        weekly_seconds=7 * 3600, all_time_seconds=150 * 3600, current_streak=7
    )

    assert consistency.title == "Steady Progress"
    assert streak.title == "Week Warrior"
    assert total.title == "Experienced Coder"


def test_infer_languages_grows_with_experience() -> None:
    assert infer_languages(5, 0) == ["HTML", "CSS", "JavaScript"]
    assert infer_languages(25, 5) == ["JavaScript", "Python", "TypeScript"]
    assert infer_languages(150, 10) == ["JavaScript", "Python", "Java", "Rust", "Go"]


def test_class_score() -> None:
    conditions = {"primary_languages": ["HTML", "CSS", "Rust"], "language_count": 3, "min_hours": 10}

    assert class_score(conditions, ["HTML", "CSS", "JavaScript"], 5, 0) == 2 * 2 + 3 - 0.5


def test_programmer_class_picks_best_match() -> None:
    veteran = {"all_time_stats": {"time_coded_seconds": 200 * 3600}, "current_streak": 10}
    newcomer = {"all_time_stats": {"time_coded_seconds": 3600}, "current_streak": 0}

    assert analyze_programmer_class(veteran, CLASSES).class_name == "Polyglot"
    assert analyze_programmer_class(newcomer, CLASSES).class_name == "Web Wizard"


def test_programmer_class_falls_back_to_explorer() -> None:
    result = analyze_programmer_class({}, [])

    assert result.class_name == "Code Explorer"
    assert result.technologies == ["HTML", "CSS", "JavaScript"]
    assert result.level == "Learning"


def test_load_programmer_classes(tmp_path) -> None:
    path = tmp_path / "programmer_classes.json"
    path.write_text(json.dumps({"classes": CLASSES}), encoding="utf-8")

    assert load_programmer_classes(path) == CLASSES
    assert load_programmer_classes(tmp_path / "missing.json") == []


def test_load_programmer_classes_invalid(tmp_path) -> None:
    path = tmp_path / "programmer_classes.json"
    path.write_text("not json", encoding="utf-8")

    assert load_programmer_classes(path) == []


def test_process_statistics() -> None:
    dashboard = {
        "current_streak": 2,
        "weekly_stats": {"time_coded_seconds": 7 * 3600, "daily_hours": {}},
        "all_time_stats": {"time_coded_seconds": 12 * 3600},
        "calculated_metrics": {"prev_week_hours": 3.5},
    }

    statistics = process_statistics(dashboard, CLASSES)

    assert statistics.trends[0].change == "+100%"
    assert [insight.title for insight in statistics.insights] == [
        "Steady Progress",
        "Getting Started",
        "Learning Journey",
    ]
    assert statistics.programmer_class.class_name == "Web Wizard"
    payload = statistics.to_dict()
    assert payload["programmer_class"]["class_name"] == "Web Wizard"
    assert payload["charts"][0]["chart_type"] == "bar"
