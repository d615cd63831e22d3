from __future__ import annotations

import json
import math
from dataclasses import asdict, dataclass, field
from datetime import date, timedelta
from pathlib import Path
from typing import Any

from .constants import LOGGER
from .errors import RemoteUnavailable, ResponseParseError
from .stats_cache import StatsCache

SECONDS_PER_HOUR = 3600.0
DAY_NAMES = ["Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun"]

GREEN = "#4CAF50"
RED = "#F44336"
ORANGE = "#FF9800"
DEEP_ORANGE = "#FF5722"
BLUE = "#2196F3"
PURPLE = "#9C27B0"
GOLD = "#FFD700"
BRAND = "#FB4B20"


@dataclass
class TrendStatistic:
    title: str
    value: str
    change: str
    change_type: str
    period: str
    icon: str = ""
    color: str = ORANGE


@dataclass
class ChartData:
    id: str
    title: str
    chart_type: str
    data: dict[str, Any]
    period: str
    color_scheme: str = "orange"


@dataclass
class Insight:
    title: str
    description: str
    value: str
    trend: str
    icon: str = ""
    color: str = PURPLE


@dataclass
class ProgrammerClass:
    class_name: str
    description: str
    technologies: list[str] = field(default_factory=list)
    level: str = "Unknown"
    color: str = PURPLE


@dataclass
class StatisticsData:
    trends: list[TrendStatistic]
    charts: list[ChartData]
    insights: list[Insight]
    programmer_class: ProgrammerClass

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def code_explorer() -> ProgrammerClass:
    return ProgrammerClass(
        class_name="Code Explorer",
        description="An enthusiastic learner discovering the vast world of programming.",
        technologies=["HTML", "CSS", "JavaScript"],
        level="Learning",
        color=PURPLE,
    )


def _round(value: float, digits: int = 0) -> float:
    # Half away from zero.
    scale = 10**digits
    return math.copysign(math.floor(abs(value) * scale + 0.5) / scale, value)


def _percent_change(current: float, previous: float) -> int:
    if previous > 0:
        return int(_round((current - previous) / previous * 100))
    if current > 0:
        return 100
    return 0


def _seconds(payload: Any) -> int:
    if not isinstance(payload, dict):
        return 0
    value = payload.get("total_seconds")
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return 0
    return max(0, int(value))


def _int_field(payload: Any, key: str) -> int:
    if not isinstance(payload, dict):
        return 0
    value = payload.get(key)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return 0
    return max(0, int(value))


# -- dashboard aggregation ----------------------------------------------------


async def _seconds_for(stats_cache: StatsCache, start: date, end: date, label: str) -> int:
    try:
        return _seconds(await stats_cache.fetch_range(start, end))
    except (RemoteUnavailable, ResponseParseError) as error:
        LOGGER.warning("Failed to fetch hours for %s: %s", label, error)
        return 0


async def collect_dashboard_stats(stats_cache: StatsCache, today: date | None = None) -> dict[str, Any]:
    today = today or stats_cache.today()

    daily_hours: dict[str, dict[str, Any]] = {}
    total_seconds = 0
    for days_ago in range(7):
        day = today - timedelta(days=days_ago)
        seconds = await _seconds_for(stats_cache, day, day, day.isoformat())
        total_seconds += seconds
        daily_hours[day.isoformat()] = {
            "date": day.isoformat(),
            "day_name": DAY_NAMES[day.weekday()],
            "hours": seconds / SECONDS_PER_HOUR,
            "seconds": seconds,
        }

    prev_week_end = today - timedelta(days=7)
    prev_week_start = prev_week_end - timedelta(days=7)
    prev_week_seconds = await _seconds_for(
        stats_cache, prev_week_start, prev_week_end, "previous week"
    )

    all_time_seconds = await _seconds_for(
        stats_cache, today - timedelta(days=365), today, "all time"
    )

    try:
        streak = await stats_cache.fetch_streak()
    except (RemoteUnavailable, ResponseParseError) as error:
        LOGGER.error("Failed to fetch streak data: %s", error)
        streak = {}

    weekly_hours = total_seconds / SECONDS_PER_HOUR
    LOGGER.info(
        "Week comparison: current=%.2fh previous=%.2fh",
        weekly_hours,
        prev_week_seconds / SECONDS_PER_HOUR,
    )

    return {
        "current_streak": _int_field(streak, "streak_days"),
        "longest_streak": _int_field(streak, "longest_streak"),
        "weekly_stats": {
            "time_coded_seconds": total_seconds,
            "daily_hours": daily_hours,
        },
        "all_time_stats": {
            "time_coded_seconds": all_time_seconds,
        },
        "calculated_metrics": {
            "daily_average_hours": _round(weekly_hours / 7, 1),
            "weekly_hours": _round(weekly_hours, 1),
            "weekly_change_percent": _percent_change(total_seconds, prev_week_seconds),
            "prev_week_hours": _round(prev_week_seconds / SECONDS_PER_HOUR, 1),
            "prev_week_seconds": prev_week_seconds,
        },
    }


# -- processing ---------------------------------------------------------------


def _trend(title: str, value: str, change: int, suffix: str, *, rising_color: str) -> TrendStatistic:
    if change > 0:
        return TrendStatistic(title, value, f"+{change}{suffix}", "increase", "vs last week", color=rising_color)
    if change < 0:
        return TrendStatistic(title, value, f"{change}{suffix}", "decrease", "vs last week", color=RED)
    neutral = "Maintained" if title == "Coding Streak" else "No change"
    return TrendStatistic(title, value, neutral, "neutral", "vs last week", color=ORANGE)


def calculate_trends(weekly_seconds: float, prev_week_seconds: float, current_streak: int) -> list[TrendStatistic]:
    time_change = _percent_change(weekly_seconds, prev_week_seconds)
    LOGGER.info(
        "Weekly change: %.2fh -> %.2fh = %s%%",
        prev_week_seconds / SECONDS_PER_HOUR,
        weekly_seconds / SECONDS_PER_HOUR,
        time_change,
    )

    # Without history the streak is assumed to have grown by one day.
    last_week_streak = current_streak - 1 if current_streak > 0 else 0
    streak_change = current_streak - last_week_streak

    daily_average = weekly_seconds / SECONDS_PER_HOUR / 7
    last_week_daily = prev_week_seconds / SECONDS_PER_HOUR / 7
    focus_change = _percent_change(daily_average, last_week_daily)

    return [
        _trend(
            "Weekly Coding Time",
            f"{weekly_seconds / SECONDS_PER_HOUR:.1f}h",
            time_change,
            "%",
            rising_color=GREEN,
        ),
        _trend(
            "Coding Streak",
            f"{current_streak} days",
            streak_change,
            " days",
            rising_color=DEEP_ORANGE,
        ),
        _trend(
            "Daily Focus Time",
            f"{daily_average:.1f}h/day",
            focus_change,
            "%",
            rising_color=GREEN,
        ),
    ]


def generate_charts(dashboard: dict[str, Any]) -> list[ChartData]:
    weekly = dashboard.get("weekly_stats") or {}
    daily_hours = weekly.get("daily_hours") or {}

    labels: list[str] = []
    values: list[float] = []
    for key in sorted(daily_hours):
        day = daily_hours[key]
        hours = day.get("hours")
        if isinstance(hours, (int, float)):
            labels.append(day.get("day_name", ""))
            values.append(float(hours))
    if not values:
        labels = list(DAY_NAMES)
        values = [0.0] * len(DAY_NAMES)

    charts = [
        ChartData(
            id="daily_hours",
            title="Daily Coding Hours",
            chart_type="bar",
            data={
                "labels": labels,
                "datasets": [
                    {
                        "label": "Hours",
                        "data": values,
                        "backgroundColor": BRAND,
                        "borderColor": BRAND,
                        "borderWidth": 1,
                    }
                ],
            },
            period="Last 7 days",
        )
    ]

    current_week_seconds = _int_field(weekly, "time_coded_seconds")

    top_language = weekly.get("top_language")
    if isinstance(top_language, dict):
        language_seconds = _int_field(top_language, "seconds")
        percentage = int(_round(language_seconds / (current_week_seconds or 1) * 100))
        charts.append(
            ChartData(
                id="language_distribution",
                title="Top Language",
                chart_type="doughnut",
                data={
                    "labels": [top_language.get("name") or "Unknown", "Others"],
                    "datasets": [
                        {
                            "data": [percentage, 100 - percentage],
                            "backgroundColor": [BRAND, "#E0E0E0"],
                            "borderWidth": 0,
                        }
                    ],
                },
                period="This week",
            )
        )

    # Earlier weeks are projected from the current one; only the last point is measured.
    current_hours = current_week_seconds / SECONDS_PER_HOUR
    trend_values = [current_hours * (0.8 + week * 0.1) for week in range(3)] + [current_hours]
    charts.append(
        ChartData(
            id="weekly_trend",
            title="Weekly Trend",
            chart_type="line",
            data={
                "labels": [f"Week {4 - week}" for week in range(4)],
                "datasets": [
                    {
                        "label": "Hours",
                        "data": trend_values,
                        "borderColor": BRAND,
                        "backgroundColor": "rgba(251, 75, 32, 0.1)",
                        "fill": True,
                        "tension": 0.4,
                    }
                ],
            },
            period="Last 4 weeks",
        )
    )
    return charts


def generate_insights(weekly_seconds: float, all_time_seconds: float, current_streak: int) -> list[Insight]:
    daily_average = weekly_seconds / SECONDS_PER_HOUR / 7
    per_day = f"{daily_average:.1f}h/day"
    if daily_average >= 2.0:
        consistency = Insight(
            "Consistent Coder",
            "You've been coding consistently every day this week!",
            per_day,
            "Great consistency",
            color=GREEN,
        )
    elif daily_average >= 1.0:
        consistency = Insight(
            "Steady Progress",
            "You're maintaining a good coding rhythm.",
            per_day,
            "Keep it up",
            color=ORANGE,
        )
    else:
        consistency = Insight(
            "Room for Growth",
            "Try to code a bit more each day to build momentum.",
            per_day,
            "Build momentum",
            color=BLUE,
        )

    days = f"{current_streak} days"
    if current_streak >= 30:
        streak = Insight(
            "Streak Master",
            "Incredible! You've been coding for over a month straight!",
            days,
            "Amazing dedication",
            color=GOLD,
        )
    elif current_streak >= 7:
        streak = Insight(
            "Week Warrior",
            "You've been coding for a full week! Great job!",
            days,
            "Excellent progress",
            color=DEEP_ORANGE,
        )
    elif current_streak > 0:
        streak = Insight(
            "Getting Started",
            "You're building a coding habit! Keep it going!",
            days,
            "Building momentum",
            color=GREEN,
        )
    else:
        streak = Insight(
            "Fresh Start",
            "Ready to start your coding journey? Let's begin!",
            "0 days",
            "Start today",
            color=PURPLE,
        )

    total_hours = all_time_seconds / SECONDS_PER_HOUR
    total = f"{_round(total_hours):.0f}h total"
    if total_hours >= 1000:
        overall = Insight(
            "Coding Veteran",
            "You've logged over 1000 hours of coding! Incredible dedication!",
            total,
            "Expert level",
            color=GOLD,
        )
    elif total_hours >= 100:
        overall = Insight(
            "Experienced Coder",
            "You've put in serious time coding! Keep up the great work!",
            total,
            "Strong foundation",
            color=GREEN,
        )
    elif total_hours >= 10:
        overall = Insight(
            "Learning Journey",
            "You're building your coding skills! Every hour counts.",
            total,
            "Growing skills",
            color=BLUE,
        )
    else:
        overall = Insight(
            "Just Getting Started",
            "Every expert was once a beginner. Keep coding!",
            total,
            "Beginning journey",
            color=PURPLE,
        )

    return [consistency, streak, overall]


# -- programmer class ---------------------------------------------------------


def load_programmer_classes(path: str | Path) -> list[dict[str, Any]]:
    try:
        raw = json.loads(Path(path).read_text(encoding="utf-8"))
    except (OSError, ValueError) as error:
        LOGGER.info("Programmer classes unavailable (%s): %s", path, error)
        return []
    if not isinstance(raw, dict) or not isinstance(raw.get("classes"), list):
        return []
    return [item for item in raw["classes"] if isinstance(item, dict)]


def infer_languages(total_hours: float, current_streak: int) -> list[str]:
    # No per-language breakdown is available, so experience stands in for it.
    if total_hours >= 100:
        languages = ["JavaScript", "Python", "Java"]
        if current_streak >= 7:
            languages += ["Rust", "Go"]
        return languages
    if total_hours >= 20:
        languages = ["JavaScript", "Python"]
        if current_streak >= 5:
            languages.append("TypeScript")
        return languages
    return ["HTML", "CSS", "JavaScript"]


def _number(value: Any) -> float | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return float(value)


def class_score(
    conditions: dict[str, Any],
    languages: list[str],
    total_hours: float,
    current_streak: int,
) -> float:
    score = 0.0

    primary = conditions.get("primary_languages")
    if isinstance(primary, list):
        score += 2.0 * sum(1 for language in primary if language in languages)

    language_count = _number(conditions.get("language_count"))
    if language_count is not None and len(languages) >= language_count:
        score += 3.0

    min_hours = _number(conditions.get("min_hours"))
    if min_hours is not None:
        score += 1.0 if total_hours >= min_hours else -0.5

    max_hours = _number(conditions.get("max_hours"))
    if max_hours is not None:
        score += 1.0 if total_hours <= max_hours else -0.5

    min_streak = _number(conditions.get("min_streak"))
    if min_streak is not None and current_streak >= min_streak:
        score += 0.5

    return score


def analyze_programmer_class(dashboard: dict[str, Any], classes: list[dict[str, Any]]) -> ProgrammerClass:
    total_hours = _int_field(dashboard.get("all_time_stats"), "time_coded_seconds") / SECONDS_PER_HOUR
    current_streak = _int_field(dashboard, "current_streak")
    languages = infer_languages(total_hours, current_streak)

    best: dict[str, Any] | None = None
    best_score = 0.0
    for candidate in classes:
        conditions = candidate.get("conditions")
        if not isinstance(conditions, dict):
            continue
        score = class_score(conditions, languages, total_hours, current_streak)
        if score > best_score:
            best, best_score = candidate, score

    if best is None:
        return code_explorer()

    technologies = best.get("technologies")
    return ProgrammerClass(
        class_name=best.get("name") or "Unknown",
        description=best.get("description") or "",
        technologies=[item for item in technologies if isinstance(item, str)]
        if isinstance(technologies, list)
        else [],
        level=best.get("level") or "Unknown",
        color=best.get("color") or PURPLE,
    )


def process_statistics(
    dashboard: dict[str, Any],
    classes: list[dict[str, Any]] | None = None,
) -> StatisticsData:
    current_streak = _int_field(dashboard, "current_streak")
    weekly_seconds = float(_int_field(dashboard.get("weekly_stats"), "time_coded_seconds"))
    all_time_seconds = float(_int_field(dashboard.get("all_time_stats"), "time_coded_seconds"))

    metrics = dashboard.get("calculated_metrics") or {}
    prev_week_seconds = _number(metrics.get("prev_week_seconds"))
    if prev_week_seconds is None:
        prev_week_seconds = (_number(metrics.get("prev_week_hours")) or 0.0) * SECONDS_PER_HOUR

    return StatisticsData(
        trends=calculate_trends(weekly_seconds, prev_week_seconds, current_streak),
        charts=generate_charts(dashboard),
        insights=generate_insights(weekly_seconds, all_time_seconds, current_streak),
        programmer_class=analyze_programmer_class(dashboard, classes or []),
    )
