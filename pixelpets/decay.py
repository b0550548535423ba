"""
Stat decay over time
────────────────────
Two regimes:
      offline  – catch-up applied once when a pet is loaded, scaled by the
                 whole hours elapsed since `last_updated`
      tick     – a small fixed decrement applied on every live-timer firing
"""

from __future__ import annotations

import math
import random
from datetime import datetime, timedelta
from typing import Optional

from .config import PET_LOST_ZERO_STATS
from .models import Pet, StatVector

# per elapsed hour; each decrement is floor(units * rate)
OFFLINE_RATES = {
    "hunger": 1.0,
    "happiness": 0.5,
    "cleanliness": 0.8,
    "energy": 0.3,
    "love": 0.4,
}
OFFLINE_HEALTH_RATE = 0.2
OFFLINE_NEGLECT_THRESHOLD = 20

TICK_DECREMENTS = {
    "hunger": 2,
    "cleanliness": 2,
    "energy": 1,
    "love": 1,
}
TICK_HAPPINESS_DECREMENT = 1
TICK_HEALTH_DECREMENT = 1
TICK_NEGLECT_THRESHOLD = 15


def elapsed_units(last_updated: Optional[datetime], now: datetime) -> int:
    """Whole hours since `last_updated`; 0 below one hour or when unset."""
    if last_updated is None:
        return 0
    hours = (now - last_updated).total_seconds() / 3600
    if hours < 1:
        return 0
    return math.floor(hours)


def offline_decay(stats: StatVector, units: int) -> StatVector:
    if units <= 0:
        return stats
    deltas = {name: -math.floor(units * rate) for name, rate in OFFLINE_RATES.items()}
    # neglect is judged on the values before this step
    if stats.hunger < OFFLINE_NEGLECT_THRESHOLD or stats.cleanliness < OFFLINE_NEGLECT_THRESHOLD:
        deltas["health"] = -math.floor(units * OFFLINE_HEALTH_RATE)
    return stats.shifted(**deltas)


def apply_offline_decay(pet: Pet, now: datetime) -> int:
    """
    Decay `pet` in place for the time it spent unobserved and return the
    number of hour units applied.

    `last_updated` advances by the units consumed, not to `now`, so the
    fractional hour carries over and a second load inside the same hour
    bucket applies nothing.
    """
    if pet.last_updated is None:
        pet.last_updated = now
        return 0

    units = elapsed_units(pet.last_updated, now)
    if units:
        pet.stats = offline_decay(pet.stats, units)
        pet.last_updated = pet.last_updated + timedelta(hours=units)
    return units


def tick_decay(
    stats: StatVector,
    *,
    happiness_chance: float = 1.0,
    rng: Optional[random.Random] = None,
) -> StatVector:
    rng = rng or random
    deltas = {name: -amount for name, amount in TICK_DECREMENTS.items()}
    if happiness_chance >= 1.0 or rng.random() < happiness_chance:
        deltas["happiness"] = -TICK_HAPPINESS_DECREMENT
    if stats.hunger < TICK_NEGLECT_THRESHOLD or stats.cleanliness < TICK_NEGLECT_THRESHOLD:
        deltas["health"] = -TICK_HEALTH_DECREMENT
    return stats.shifted(**deltas)


def is_lost(stats: StatVector) -> bool:
    return stats.zero_count() >= PET_LOST_ZERO_STATS
