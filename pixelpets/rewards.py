"""Task batches, quiz streak bonuses and the daily login streak."""

from __future__ import annotations

import random
from datetime import date, timedelta
from typing import List, Optional, Tuple

from .config import TASK_BATCH_SIZE
from .models import Task, UserStreak, utcnow

TASK_TEMPLATES: List[Tuple[str, int]] = [
    ("Clean your room", 15),
    ("Do homework for 30 minutes", 12),
    ("Help with dishes", 10),
    ("Take out the trash", 8),
    ("Read for 20 minutes", 12),
    ("Exercise for 15 minutes", 15),
    ("Water the plants", 8),
    ("Organize your desk", 10),
    ("Help prepare a meal", 14),
    ("Practice a skill", 12),
]

STREAK_BONUS_EVERY = 3
STREAK_BONUS = 5


def draw_tasks(
    user_id: str, *, size: int = TASK_BATCH_SIZE, rng: Optional[random.Random] = None
) -> List[Task]:
    rng = rng or random
    picked = rng.sample(TASK_TEMPLATES, k=min(size, len(TASK_TEMPLATES)))
    return [Task(user_id=user_id, label=label, reward=reward) for label, reward in picked]


def streak_bonus(streak: int) -> int:
    """+$5 for every 3 correct answers in a row."""
    return (streak // STREAK_BONUS_EVERY) * STREAK_BONUS


def task_reward(task: Task, streak: int) -> int:
    return task.reward + streak_bonus(streak)


def advance_daily_streak(
    streak: Optional[UserStreak], user_id: str, today: date
) -> Tuple[UserStreak, bool]:
    """
    Register a login on `today`. Returns the new row and whether it changed.

    Same day keeps the streak, the next day extends it, any gap restarts it
    at 1 (the login history is kept either way).
    """
    if streak is None or streak.last_login_date is None:
        fresh = UserStreak(user_id=user_id, current_streak=1, last_login_date=today, login_dates=[today])
        return fresh, True

    if streak.last_login_date == today:
        return streak, False

    if streak.last_login_date == today - timedelta(days=1):
        current = streak.current_streak + 1
    else:
        current = 1

    dates = list(streak.login_dates)
    if today not in dates:
        dates.append(today)
    updated = streak.model_copy(
        update={
            "current_streak": current,
            "last_login_date": today,
            "login_dates": dates,
            "updated_at": utcnow(),
        }
    )
    return updated, True
