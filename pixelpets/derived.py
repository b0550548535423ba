"""
Derived state
─────────────
Pure projections from the stat vector and ledger counters to what the
display layer shows: mood, status line and achievements. Nothing here is
persisted except through `AchievementTracker`'s caller.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Iterable, List, Set, Tuple

from .models import AVERAGED_FIELDS, Achievement, StatVector


class Mood(str, Enum):
    SICK = "sick"
    SLEEPY = "sleepy"
    DISTRESSED = "distressed"
    DIRTY = "dirty"
    EXCITED = "excited"
    VERY_HAPPY = "very happy"
    HAPPY = "happy"
    CONTENT = "content"
    NEUTRAL = "neutral"
    WORRIED = "worried"
    SAD = "sad"
    CRYING = "crying"


# (field, below, mood) – first match wins
MOOD_ALERTS: Tuple[Tuple[str, int, Mood], ...] = (
    ("health", 30, Mood.SICK),
    ("energy", 20, Mood.SLEEPY),
    ("hunger", 20, Mood.DISTRESSED),
    ("cleanliness", 20, Mood.DIRTY),
)

# (average above, mood)
MOOD_LADDER: Tuple[Tuple[float, Mood], ...] = (
    (85, Mood.VERY_HAPPY),
    (70, Mood.HAPPY),
    (55, Mood.CONTENT),
    (40, Mood.NEUTRAL),
    (25, Mood.WORRIED),
    (15, Mood.SAD),
)


def mood(stats: StatVector) -> Mood:
    for name, below, alert in MOOD_ALERTS:
        if getattr(stats, name) < below:
            return alert
    average = stats.average()
    if stats.happiness > 90 and average > 80:
        return Mood.EXCITED
    for above, label in MOOD_LADDER:
        if average > above:
            return label
    return Mood.CRYING


STATUS_ALERTS: Tuple[Tuple[str, int, str], ...] = (
    ("health", 20, "Needs urgent medical attention!"),
    ("hunger", 15, "Starving and weak..."),
    ("cleanliness", 15, "Desperately needs a bath!"),
    ("energy", 15, "Exhausted and can barely move..."),
)
LOW_STAT = 30
LOW_STAT_GATE = 2
NEGLECTED_STATUS = "Needs care in several areas!"

STATUS_LADDER: Tuple[Tuple[float, str], ...] = (
    (90, "Living the dream! Absolutely perfect!"),
    (85, "Thriving and full of life!"),
    (75, "Very happy and content!"),
    (65, "Happy and healthy!"),
    (55, "Doing pretty well overall!"),
    (45, "Doing okay, but could use some attention"),
    (35, "Starting to feel neglected..."),
)
FALLBACK_STATUS = "Not doing well, needs care soon!"


def status(stats: StatVector) -> str:
    for name, below, text in STATUS_ALERTS:
        if getattr(stats, name) < below:
            return text
    low = sum(1 for name in AVERAGED_FIELDS if getattr(stats, name) < LOW_STAT)
    if low >= LOW_STAT_GATE:
        return NEGLECTED_STATUS
    average = stats.average()
    for above, text in STATUS_LADDER:
        if average > above:
            return text
    return FALLBACK_STATUS


# ──────────────────────────────────────────────────────────
# Achievements
# ──────────────────────────────────────────────────────────
class Scope(str, Enum):
    GLOBAL = "global"
    PET = "pet"


@dataclass(frozen=True)
class AchievementContext:
    stats: StatVector
    level: int = 1
    tasks_done: int = 0
    answer_streak: int = 0
    daily_streak: int = 0
    balance: int = 0
    total_spent: int = 0
    expense_count: int = 0


@dataclass(frozen=True)
class AchievementRule:
    id: str
    name: str
    description: str
    scope: Scope
    check: Callable[[AchievementContext], bool]
    # stat rules stay locked until the user has completed a task
    stat_based: bool = False

    @property
    def per_pet(self) -> bool:
        return self.scope is Scope.PET


ACHIEVEMENTS: Tuple[AchievementRule, ...] = (
    AchievementRule("perfect_health", "Perfect Health", "Maintain 100% health",
                    Scope.PET, lambda c: c.stats.health == 100, stat_based=True),
    AchievementRule("happy_pet", "Happiness Master", "Keep happiness above 90%",
                    Scope.PET, lambda c: c.stats.happiness >= 90, stat_based=True),
    AchievementRule("well_fed", "Gourmet Chef", "Keep hunger above 80%",
                    Scope.PET, lambda c: c.stats.hunger >= 80, stat_based=True),
    AchievementRule("clean_pet", "Squeaky Clean", "Maintain cleanliness above 85%",
                    Scope.PET, lambda c: c.stats.cleanliness >= 85, stat_based=True),
    AchievementRule("energetic", "Full of Energy", "Keep energy above 75%",
                    Scope.PET, lambda c: c.stats.energy >= 75, stat_based=True),
    AchievementRule("loved_pet", "Best Friends", "Reach 80+ love with your pet",
                    Scope.PET, lambda c: c.stats.love >= 80, stat_based=True),
    AchievementRule("level_5", "Rising Star", "Reach level 5",
                    Scope.PET, lambda c: c.level >= 5),
    AchievementRule("level_10", "Pixel Master", "Reach level 10",
                    Scope.PET, lambda c: c.level >= 10),
    AchievementRule("streak_3", "Streak Starter", "Get a 3 answer streak",
                    Scope.GLOBAL, lambda c: c.answer_streak >= 3),
    AchievementRule("streak_10", "On Fire", "Get a 10 answer streak",
                    Scope.GLOBAL, lambda c: c.answer_streak >= 10),
    AchievementRule("tasks_5", "Task Beginner", "Complete 5 tasks",
                    Scope.GLOBAL, lambda c: c.tasks_done >= 5),
    AchievementRule("tasks_25", "Task Master", "Complete 25 tasks",
                    Scope.GLOBAL, lambda c: c.tasks_done >= 25),
    AchievementRule("daily_7", "Weekly Warrior", "Log in 7 days in a row",
                    Scope.GLOBAL, lambda c: c.daily_streak >= 7),
    AchievementRule("saver", "Money Saver", "Have $500+ balance",
                    Scope.GLOBAL, lambda c: c.balance >= 500),
    AchievementRule("quiz_whiz", "Quiz Whiz", "Complete 50 tasks",
                    Scope.PET, lambda c: c.tasks_done >= 50),
    AchievementRule("big_spender", "Big Spender", "Spend $500 in total",
                    Scope.PET, lambda c: c.total_spent >= 500),
    AchievementRule("shopaholic", "Shopaholic", "Make 10 purchases",
                    Scope.PET, lambda c: c.expense_count >= 10),
)

ACHIEVEMENTS_BY_ID = {rule.id: rule for rule in ACHIEVEMENTS}


def satisfied(ctx: AchievementContext) -> List[AchievementRule]:
    """Rules whose predicate holds for `ctx`, stat rules gated on one task."""
    played = ctx.tasks_done >= 1
    return [rule for rule in ACHIEVEMENTS if (played or not rule.stat_based) and rule.check(ctx)]


@dataclass
class AchievementTracker:
    """
    What one session knows is unlocked, plus what it already announced.

    Built fresh per session from the user's stored achievements. Once a key
    is recorded it is never reported as pending again, and a notification
    is produced at most once per achievement id.
    """

    user_id: str
    pet_id: str
    unlocked: Set[Tuple[str, str]] = field(default_factory=set)
    shown: Set[str] = field(default_factory=set)

    @classmethod
    def from_rows(cls, user_id: str, pet_id: str, rows: Iterable[Achievement]) -> "AchievementTracker":
        tracker = cls(user_id=user_id, pet_id=pet_id)
        for row in rows:
            tracker.unlocked.add((row.achievement_id, row.pet_id))
        return tracker

    def is_unlocked(self, rule: AchievementRule) -> bool:
        if rule.per_pet:
            return (rule.id, self.pet_id) in self.unlocked
        return any(achievement_id == rule.id for achievement_id, _ in self.unlocked)

    def pending(self, ctx: AchievementContext) -> List[AchievementRule]:
        return [rule for rule in satisfied(ctx) if not self.is_unlocked(rule)]

    def record(self, rule: AchievementRule) -> bool:
        """Mark `rule` unlocked; True if it should be announced now."""
        self.unlocked.add((rule.id, self.pet_id))
        if rule.id in self.shown:
            return False
        self.shown.add(rule.id)
        return True

    def unlocked_ids(self) -> List[str]:
        return sorted(
            rule.id for rule in ACHIEVEMENTS if self.is_unlocked(rule)
        )
