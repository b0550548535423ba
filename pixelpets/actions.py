"""
Care actions
────────────
`apply_action` validates an action against the current stats and balance
and returns the resulting stats, xp/level and the expense to record. It
never touches storage; the session charges the ledger and persists.
"""

from __future__ import annotations

import random
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Optional, Tuple

from .errors import InsufficientFunds, NotHungry, TooTired
from .models import StatVector
from .toys import Toy, draw_toy, format_label

XP_PER_LEVEL = 100
PLAY_MIN_ENERGY = 10


class ActionKind(str, Enum):
    FEED = "feed"
    PLAY = "play"
    CLEAN = "clean"
    REST = "rest"
    VET = "vet"
    BUY_TOY = "toy"


@dataclass(frozen=True)
class ActionRule:
    cost: int
    deltas: Dict[str, int] = field(default_factory=dict)
    sets: Dict[str, int] = field(default_factory=dict)
    category: Optional[str] = None
    item: Optional[str] = None


ACTIONS: Dict[ActionKind, ActionRule] = {
    ActionKind.FEED: ActionRule(
        cost=10,
        deltas={"hunger": 30, "happiness": 5, "love": 5},
        category="food",
        item="Pet Food",
    ),
    ActionKind.PLAY: ActionRule(
        cost=5,
        deltas={"happiness": 20, "energy": -10, "hunger": -5},
        category="toy",
        item="Playtime",
    ),
    ActionKind.CLEAN: ActionRule(
        cost=8,
        deltas={"cleanliness": 40, "happiness": 10},
        category="supplies",
        item="Bath & Grooming",
    ),
    ActionKind.REST: ActionRule(cost=0, deltas={"energy": 30, "hunger": -5}),
    ActionKind.VET: ActionRule(
        cost=50,
        deltas={"happiness": -10},
        sets={"health": 100},
        category="vet",
        item="Veterinary Care",
    ),
    # item label comes from the toy drawn
    ActionKind.BUY_TOY: ActionRule(cost=25, deltas={"happiness": 15}, category="toy"),
}


@dataclass(frozen=True)
class ActionOutcome:
    kind: ActionKind
    stats: StatVector
    xp: int
    level: int
    level_ups: int
    cost: int
    category: Optional[str] = None
    item: Optional[str] = None
    toy: Optional[Toy] = None

    @property
    def charges(self) -> bool:
        return self.cost > 0 and self.item is not None


def xp_for_next_level(level: int) -> int:
    return level * XP_PER_LEVEL


def gain_xp(xp: int, level: int, amount: int) -> Tuple[int, int, int]:
    """Add `amount` xp; returns (xp, level, level_ups)."""
    xp += amount
    level_ups = 0
    while xp >= xp_for_next_level(level):
        xp -= xp_for_next_level(level)
        level += 1
        level_ups += 1
    return xp, level, level_ups


def level_progress(xp: int, level: int) -> float:
    required = xp_for_next_level(level)
    return min(100.0, max(0.0, xp / required * 100))


def check_action(kind: ActionKind, stats: StatVector, balance: int) -> ActionRule:
    """Raise a ValidationError if `kind` cannot run right now."""
    rule = ACTIONS[kind]
    if rule.cost > balance:
        raise InsufficientFunds(rule.cost, balance)
    if kind is ActionKind.FEED and stats.hunger >= 100:
        raise NotHungry()
    if kind is ActionKind.PLAY and stats.energy <= PLAY_MIN_ENERGY:
        raise TooTired()
    return rule


def apply_action(
    kind: ActionKind,
    stats: StatVector,
    balance: int,
    *,
    xp: int = 0,
    level: int = 1,
    rng: Optional[random.Random] = None,
) -> ActionOutcome:
    kind = ActionKind(kind)
    rule = check_action(kind, stats, balance)

    updated = stats.shifted(**rule.deltas)
    if rule.sets:
        updated = updated.with_values(**rule.sets)

    toy = None
    item = rule.item
    if kind is ActionKind.BUY_TOY:
        toy = draw_toy(rng)
        item = format_label(toy)

    level_ups = 0
    if rule.cost > 0:
        # 1 xp per coin spent; a level-up refills happiness and energy
        xp, level, level_ups = gain_xp(xp, level, rule.cost)
        if level_ups:
            updated = updated.with_values(happiness=100, energy=100)

    return ActionOutcome(
        kind=kind,
        stats=updated,
        xp=xp,
        level=level,
        level_ups=level_ups,
        cost=rule.cost,
        category=rule.category,
        item=item,
        toy=toy,
    )
