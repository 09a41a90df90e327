from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import Dict, Iterable, List, Optional, Set, Union

STREAK_CATEGORIES = ["mood", "journal", "chat"]
OVERALL = "overall"


@dataclass(frozen=True)
class ActivityRecord:
    user_id: int
    category: str
    occurred_at: datetime


@dataclass(frozen=True)
class Milestone:
    threshold_days: int
    title: str
    reward: str


@dataclass
class StreakResult:
    category: str
    current_streak_days: int
    milestone: Optional[Milestone]
    next_milestone: Optional[Milestone]

    @property
    def best_streak_days(self) -> int:
        # No persisted history, so the best known streak is the current one.
        return self.current_streak_days


STREAK_MILESTONES = [
    Milestone(3, "Getting Started", "🌱"),
    Milestone(7, "One Week Strong", "💪"),
    Milestone(14, "Two Week Champion", "🏆"),
    Milestone(30, "Monthly Master", "🌟"),
    Milestone(60, "Consistency King", "👑"),
    Milestone(100, "Legendary Streak", "🔥"),
]


def to_utc_date(value: Union[datetime, date]) -> date:
    """Calendar day of a timestamp in UTC. Naive datetimes are already UTC."""
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc)
        return value.date()
    return value


def collect_active_dates(records: Iterable[ActivityRecord]) -> Set[date]:
    return {to_utc_date(record.occurred_at) for record in records}


def count_streak(active_dates: Set[date], today: date) -> int:
    yesterday = today - timedelta(days=1)
    if today in active_dates:
        cursor = today
    elif yesterday in active_dates:
        cursor = yesterday
    else:
        return 0
    streak = 0
    while cursor in active_dates:
        streak += 1
        cursor = cursor - timedelta(days=1)
    return streak


def compute_streak(records: Iterable[ActivityRecord], reference: Union[datetime, date]) -> int:
    return count_streak(collect_active_dates(records), to_utc_date(reference))


def milestone_for(streak_days: int, milestones: List[Milestone] = STREAK_MILESTONES) -> Optional[Milestone]:
    achieved = None
    for milestone in milestones:
        if milestone.threshold_days <= streak_days:
            achieved = milestone
        else:
            break
    return achieved


def next_milestone_for(streak_days: int, milestones: List[Milestone] = STREAK_MILESTONES) -> Optional[Milestone]:
    for milestone in milestones:
        if milestone.threshold_days > streak_days:
            return milestone
    return None


def compute_streak_result(
    category: str,
    records: Iterable[ActivityRecord],
    reference: Union[datetime, date],
) -> StreakResult:
    streak = compute_streak(records, reference)
    return StreakResult(
        category=category,
        current_streak_days=streak,
        milestone=milestone_for(streak),
        next_milestone=next_milestone_for(streak),
    )


def group_by_category(records: Iterable[ActivityRecord]) -> Dict[str, List[ActivityRecord]]:
    grouped: Dict[str, List[ActivityRecord]] = {category: [] for category in STREAK_CATEGORIES}
    for record in records:
        grouped.setdefault(record.category, []).append(record)
    return grouped


def compute_all_streaks(
    records: Iterable[ActivityRecord],
    reference: Union[datetime, date],
) -> Dict[str, StreakResult]:
    """Streak per category plus the overall streak over the union of all activity."""
    records = list(records)
    results = {
        category: compute_streak_result(category, items, reference)
        for category, items in group_by_category(records).items()
    }
    results[OVERALL] = compute_streak_result(OVERALL, records, reference)
    return results


def milestone_payload(milestone: Optional[Milestone]) -> Optional[dict]:
    if milestone is None:
        return None
    return {
        "days": milestone.threshold_days,
        "title": milestone.title,
        "reward": milestone.reward,
    }


def build_streak_summary(records: Iterable[ActivityRecord], reference: Union[datetime, date]) -> dict:
    records = list(records)
    results = compute_all_streaks(records, reference)
    streaks = {
        name: {
            "current": result.current_streak_days,
            "best": result.best_streak_days,
            "milestone": milestone_payload(result.milestone),
            "next_milestone": milestone_payload(result.next_milestone),
        }
        for name, result in results.items()
    }
    counts = {category: 0 for category in STREAK_CATEGORIES}
    for record in records:
        counts[record.category] = counts.get(record.category, 0) + 1
    stats = {
        "total_active_days": len(collect_active_dates(records)),
        "mood_entries_count": counts.get("mood", 0),
        "journal_entries_count": counts.get("journal", 0),
        "chat_messages_count": counts.get("chat", 0),
        "longest_streak": max(result.current_streak_days for result in results.values()),
    }
    return {
        "streaks": streaks,
        "stats": stats,
        "milestones": [milestone_payload(item) for item in STREAK_MILESTONES],
    }
