from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Dict, List, Optional

XP_PER_LEVEL = 100


@dataclass(frozen=True)
class Achievement:
    achievement_id: str
    title: str
    description: str
    icon: str
    category: str
    max_progress: int
    xp: int
    badge: str


@dataclass
class AchievementState:
    progress: int = 0
    unlocked: bool = False
    unlocked_at: Optional[datetime] = None


@dataclass
class ProgressUpdate:
    achievement: Achievement
    progress: int
    unlocked: bool
    just_unlocked: bool
    unlocked_at: Optional[datetime]


ACHIEVEMENTS = [
    Achievement("first_steps", "First Steps", "Complete your first wellness activity",
                "🎯", "getting_started", 1, 50, "Beginner"),
    Achievement("breathing_master", "Breathing Master", "Complete 10 breathing exercises",
                "🫁", "mindfulness", 10, 200, "Zen Master"),
    Achievement("gratitude_guru", "Gratitude Guru", "Write 5 gratitude journal entries",
                "🙏", "journaling", 5, 150, "Grateful Heart"),
    Achievement("consistency_champion", "Consistency Champion", "Log mood for 7 consecutive days",
                "📈", "tracking", 7, 300, "Consistent"),
    Achievement("community_connector", "Community Connector", "Add 3 trusted connections",
                "🤝", "social", 3, 100, "Connected"),
    Achievement("ai_companion", "AI Companion", "Have 5 AI chat conversations",
                "🤖", "support", 5, 125, "Tech Savvy"),
]

ACHIEVEMENTS_BY_ID = {achievement.achievement_id: achievement for achievement in ACHIEVEMENTS}


def get_achievement(achievement_id: str) -> Optional[Achievement]:
    return ACHIEVEMENTS_BY_ID.get(achievement_id)


def level_for_xp(total_xp: int) -> int:
    return total_xp // XP_PER_LEVEL + 1


def apply_progress(
    achievement: Achievement,
    state: Optional[AchievementState],
    increment: int,
    now: datetime,
) -> ProgressUpdate:
    """
    Add `increment` to the stored progress, capped at the achievement maximum.

    Reaching the maximum unlocks the achievement. `just_unlocked` is true only
    for the update that crosses the threshold, and the first unlock time is kept.
    """
    previous = state or AchievementState()
    progress = min(achievement.max_progress, previous.progress + increment)
    unlocked = previous.unlocked or progress >= achievement.max_progress
    just_unlocked = unlocked and not previous.unlocked
    return ProgressUpdate(
        achievement=achievement,
        progress=progress,
        unlocked=unlocked,
        just_unlocked=just_unlocked,
        unlocked_at=now if just_unlocked else previous.unlocked_at,
    )


def achievement_payload(achievement: Achievement) -> dict:
    return {
        "id": achievement.achievement_id,
        "title": achievement.title,
        "description": achievement.description,
        "icon": achievement.icon,
        "category": achievement.category,
        "max_progress": achievement.max_progress,
        "rewards": {"xp": achievement.xp, "badge": achievement.badge},
    }


def build_achievement_summary(states: Dict[str, AchievementState]) -> dict:
    items: List[dict] = []
    total_xp = 0
    unlocked_count = 0
    for achievement in ACHIEVEMENTS:
        state = states.get(achievement.achievement_id) or AchievementState()
        if state.unlocked:
            unlocked_count += 1
            total_xp += achievement.xp
        item = achievement_payload(achievement)
        item.update({
            "progress": state.progress,
            "unlocked": state.unlocked,
            "unlocked_at": state.unlocked_at.isoformat() if state.unlocked_at else None,
            "percentage": round(min(100.0, state.progress / achievement.max_progress * 100), 2),
        })
        items.append(item)
    return {
        "achievements": items,
        "stats": {
            "total_achievements": len(ACHIEVEMENTS),
            "unlocked_count": unlocked_count,
            "completion_percentage": round(unlocked_count / len(ACHIEVEMENTS) * 100),
            "total_xp": total_xp,
            "level": level_for_xp(total_xp),
        },
    }
