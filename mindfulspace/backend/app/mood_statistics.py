from __future__ import annotations

import math
import statistics
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Dict, Iterable, List, Optional, Sequence

from .streak_engine import to_utc_date

GRANULARITIES = ("day", "week", "month")
PERIOD_DAYS = {"7d": 7, "30d": 30, "90d": 90}
MIN_CORRELATION_PAIRS = 3
TOP_TAGS_LIMIT = 10


@dataclass
class MoodSample:
    mood_score: Optional[int]
    recorded_at: datetime
    emotions: List[str] = field(default_factory=list)
    activities: List[str] = field(default_factory=list)
    sleep_hours: Optional[float] = None
    energy_level: Optional[int] = None
    stress_level: Optional[int] = None


@dataclass
class MoodTrendPoint:
    period_key: str
    average_mood: float
    entry_count: int
    highest_mood: int
    lowest_mood: int


@dataclass
class MoodStatisticsSnapshot:
    period: str
    total_entries: int
    average_mood: float
    highest_mood: int
    lowest_mood: int
    mood_variability: float
    trends: List[MoodTrendPoint]
    emotions: List[dict]
    activities: List[dict]
    correlations: Dict[str, Optional[float]]


def period_start(period: str, now: datetime) -> datetime:
    if period == "1y":
        try:
            return now.replace(year=now.year - 1)
        except ValueError:
            # Feb 29 has no counterpart in the previous year.
            return now.replace(year=now.year - 1, day=28)
    if period not in PERIOD_DAYS:
        raise ValueError(f"Unknown period: {period}")
    return now - timedelta(days=PERIOD_DAYS[period])


def compute_variability(scores: Sequence[float]) -> float:
    """Population standard deviation, rounded to two places."""
    if len(scores) < 2:
        return 0.0
    return round(statistics.pstdev(scores), 2)


def pearson_correlation(x: Sequence[float], y: Sequence[float]) -> Optional[float]:
    """Pearson coefficient rounded to three places, or None when it is not computable."""
    if len(x) != len(y) or len(x) < MIN_CORRELATION_PAIRS:
        return None
    n = len(x)
    sum_x = sum(x)
    sum_y = sum(y)
    sum_xy = sum(a * b for a, b in zip(x, y))
    sum_xx = sum(a * a for a in x)
    sum_yy = sum(b * b for b in y)
    numerator = n * sum_xy - sum_x * sum_y
    spread = (n * sum_xx - sum_x * sum_x) * (n * sum_yy - sum_y * sum_y)
    if spread <= 0:
        return None
    return round(numerator / math.sqrt(spread), 3)


def paired_values(samples: Iterable[MoodSample], attribute: str) -> tuple:
    moods: List[float] = []
    others: List[float] = []
    for sample in samples:
        value = getattr(sample, attribute)
        if sample.mood_score is None or value is None:
            continue
        moods.append(sample.mood_score)
        others.append(value)
    return moods, others


def compute_correlations(samples: Sequence[MoodSample]) -> Dict[str, Optional[float]]:
    correlations: Dict[str, Optional[float]] = {}
    for key, attribute in (
        ("mood_vs_sleep", "sleep_hours"),
        ("mood_vs_energy", "energy_level"),
        ("mood_vs_stress", "stress_level"),
    ):
        moods, others = paired_values(samples, attribute)
        correlations[key] = pearson_correlation(moods, others)
    return correlations


def top_counts(groups: Iterable[Iterable[str]], label: str, limit: int = TOP_TAGS_LIMIT) -> List[dict]:
    counter: Counter = Counter()
    for tags in groups:
        counter.update(tags or [])
    return [{label: tag, "count": count} for tag, count in counter.most_common(limit)]


def period_key(recorded_at: datetime, granularity: str) -> str:
    day = to_utc_date(recorded_at)
    if granularity == "day":
        return day.isoformat()
    if granularity == "week":
        # weekday(): Monday is 0, so Sunday lands on 6.
        sunday = day - timedelta(days=(day.weekday() + 1) % 7)
        return sunday.isoformat()
    if granularity == "month":
        return f"{day.year:04d}-{day.month:02d}"
    raise ValueError(f"Unknown granularity: {granularity}")


def group_mood_data(samples: Iterable[MoodSample], granularity: str = "day") -> List[MoodTrendPoint]:
    if granularity not in GRANULARITIES:
        raise ValueError(f"Unknown granularity: {granularity}")
    buckets: Dict[str, List[int]] = {}
    for sample in samples:
        if sample.mood_score is None:
            continue
        buckets.setdefault(period_key(sample.recorded_at, granularity), []).append(sample.mood_score)
    return [
        MoodTrendPoint(
            period_key=key,
            average_mood=round(statistics.mean(scores), 2),
            entry_count=len(scores),
            highest_mood=max(scores),
            lowest_mood=min(scores),
        )
        for key, scores in sorted(buckets.items())
    ]


def summarize(samples: Sequence[MoodSample], period: str, granularity: str = "day") -> MoodStatisticsSnapshot:
    scores = [sample.mood_score for sample in samples if sample.mood_score is not None]
    return MoodStatisticsSnapshot(
        period=period,
        total_entries=len(samples),
        average_mood=round(statistics.mean(scores), 2) if scores else 0.0,
        highest_mood=max(scores) if scores else 0,
        lowest_mood=min(scores) if scores else 0,
        mood_variability=compute_variability(scores),
        trends=group_mood_data(samples, granularity),
        emotions=top_counts((sample.emotions for sample in samples), "emotion"),
        activities=top_counts((sample.activities for sample in samples), "activity"),
        correlations=compute_correlations(samples),
    )
