"""
Pydantic models for everything the engine reads, writes or publishes.

Stats are plain ints in [0, 100]. `StatVector` is immutable: every policy
returns a new vector built through `shifted` / `with_values`, both of which
clamp, so no mutation can leave a field out of bounds.
"""

from __future__ import annotations

import uuid
from datetime import date, datetime, timezone
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from .config import NEUTRAL_STAT, STAT_MAX, STAT_MIN

STAT_FIELDS = ("hunger", "happiness", "energy", "cleanliness", "health", "love")
# love is left out of the mood/status average
AVERAGED_FIELDS = ("hunger", "happiness", "energy", "cleanliness", "health")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return uuid.uuid4().hex


def clamp(value: float) -> int:
    return max(STAT_MIN, min(STAT_MAX, int(value)))


class Species(str, Enum):
    DOG = "dog"
    CAT = "cat"
    BIRD = "bird"
    FISH = "fish"
    MOUSE = "mouse"


# ──────────────────────────────────────────────────────────
# Stat vector
# ──────────────────────────────────────────────────────────
class StatVector(BaseModel):
    model_config = ConfigDict(frozen=True)

    hunger: int = Field(NEUTRAL_STAT, ge=STAT_MIN, le=STAT_MAX)
    happiness: int = Field(NEUTRAL_STAT, ge=STAT_MIN, le=STAT_MAX)
    energy: int = Field(NEUTRAL_STAT, ge=STAT_MIN, le=STAT_MAX)
    cleanliness: int = Field(NEUTRAL_STAT, ge=STAT_MIN, le=STAT_MAX)
    health: int = Field(NEUTRAL_STAT, ge=STAT_MIN, le=STAT_MAX)
    love: int = Field(NEUTRAL_STAT, ge=STAT_MIN, le=STAT_MAX)

    def shifted(self, **deltas: int) -> "StatVector":
        """Add deltas field by field, clamping each result."""
        values = self.model_dump()
        for name, delta in deltas.items():
            values[name] = clamp(values[name] + delta)
        return StatVector(**values)

    def with_values(self, **values: int) -> "StatVector":
        current = self.model_dump()
        current.update({name: clamp(v) for name, v in values.items()})
        return StatVector(**current)

    def zero_count(self) -> int:
        return sum(1 for name in STAT_FIELDS if getattr(self, name) == STAT_MIN)

    def average(self) -> float:
        return sum(getattr(self, name) for name in AVERAGED_FIELDS) / len(AVERAGED_FIELDS)


# ──────────────────────────────────────────────────────────
# Persisted rows
# ──────────────────────────────────────────────────────────
class Pet(BaseModel):
    id: str = Field(default_factory=new_id)
    owner_id: str
    name: str = Field(..., min_length=1, max_length=40)
    species: Species
    stats: StatVector = Field(default_factory=StatVector)
    xp: int = Field(0, ge=0)
    level: int = Field(1, ge=1)
    last_updated: Optional[datetime] = None
    created_at: datetime = Field(default_factory=utcnow)


class UserFinances(BaseModel):
    user_id: str
    balance: int = Field(0, ge=0)
    total_earned: int = Field(0, ge=0)
    total_spent: int = Field(0, ge=0)


class Expense(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=new_id)
    pet_id: str
    user_id: str
    category: str
    item: str
    amount: int = Field(..., gt=0)
    created_at: datetime = Field(default_factory=utcnow)


class Task(BaseModel):
    id: str = Field(default_factory=new_id)
    user_id: str
    label: str
    reward: int = Field(..., ge=0)
    completed: bool = False
    completed_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=utcnow)


class Achievement(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=new_id)
    user_id: str
    pet_id: str
    achievement_id: str
    unlocked_at: datetime = Field(default_factory=utcnow)


class SavingsGoal(BaseModel):
    id: str = Field(default_factory=new_id)
    user_id: str
    pet_id: str
    target_amount: int = Field(..., gt=0)
    created_at: datetime = Field(default_factory=utcnow)


class UserStreak(BaseModel):
    user_id: str
    current_streak: int = Field(0, ge=0)
    last_login_date: Optional[date] = None
    login_dates: List[date] = Field(default_factory=list)
    updated_at: datetime = Field(default_factory=utcnow)


# ──────────────────────────────────────────────────────────
# Report shapes (display layer)
# ──────────────────────────────────────────────────────────
class BudgetReport(BaseModel):
    totals_by_category: Dict[str, int] = Field(default_factory=dict)
    top_category: Optional[str] = None
    top_category_amount: int = 0
    average_transaction: float = 0.0
    most_expensive: Optional[Expense] = None
    savings_goal: Optional[int] = None
    savings_progress: float = 0.0
    goal_reached: bool = False
