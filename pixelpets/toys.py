"""Toy catalogue and weighted-rarity draws for the buy-toy action."""

from __future__ import annotations

import random
import re
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict


class Rarity(str, Enum):
    COMMON = "Common"
    RARE = "Rare"
    EPIC = "Epic"
    LEGENDARY = "Legendary"


class Toy(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    rarity: Rarity
    icon: str


# percent chance per rarity; must add up to 100
RARITY_WEIGHTS: Dict[Rarity, int] = {
    Rarity.COMMON: 50,
    Rarity.RARE: 25,
    Rarity.EPIC: 15,
    Rarity.LEGENDARY: 10,
}

CATALOGUE: List[Toy] = [
    Toy(name="Squeaky Ball", rarity=Rarity.COMMON, icon="🎾"),
    Toy(name="Wooden Stick", rarity=Rarity.COMMON, icon="🪵"),
    Toy(name="Old Sock", rarity=Rarity.COMMON, icon="🧦"),
    Toy(name="Cardboard Box", rarity=Rarity.COMMON, icon="📦"),
    Toy(name="Frisbee", rarity=Rarity.RARE, icon="🥏"),
    Toy(name="Laser Pointer", rarity=Rarity.RARE, icon="🔦"),
    Toy(name="Plushie", rarity=Rarity.RARE, icon="🧸"),
    Toy(name="Chew Rope", rarity=Rarity.RARE, icon="🧶"),
    Toy(name="Auto-Feeder", rarity=Rarity.EPIC, icon="🤖"),
    Toy(name="Scratching Post", rarity=Rarity.EPIC, icon="💈"),
    Toy(name="Tunnel", rarity=Rarity.EPIC, icon="🚇"),
    Toy(name="Golden Bone", rarity=Rarity.LEGENDARY, icon="🦴"),
    Toy(name="Diamond Collar", rarity=Rarity.LEGENDARY, icon="💎"),
    Toy(name="Rocket Ship", rarity=Rarity.LEGENDARY, icon="🚀"),
]

_LABEL = re.compile(r"^\[(?P<rarity>[^\]]+)\] (?P<name>.+)$")


def roll_rarity(roll: float) -> Rarity:
    """Map a roll in [0, 100) onto the rarity ladder."""
    threshold = 0
    for rarity, weight in RARITY_WEIGHTS.items():
        threshold += weight
        if roll < threshold:
            return rarity
    return Rarity.LEGENDARY


def draw_toy(rng: Optional[random.Random] = None) -> Toy:
    rng = rng or random
    rarity = roll_rarity(rng.random() * 100)
    pool = [toy for toy in CATALOGUE if toy.rarity is rarity]
    return rng.choice(pool)


def format_label(toy: Toy) -> str:
    """Expense label for a toy, e.g. "[Rare] Frisbee"."""
    return f"[{toy.rarity.value}] {toy.name}"


def parse_label(label: str) -> Toy:
    match = _LABEL.match(label)
    if match:
        name = match.group("name")
        known = next((t for t in CATALOGUE if t.name == name), None)
        try:
            rarity = Rarity(match.group("rarity"))
        except ValueError:
            rarity = Rarity.COMMON
        return Toy(name=name, rarity=rarity, icon=known.icon if known else "🎁")
    # labels written before rarities existed
    return Toy(name=label, rarity=Rarity.COMMON, icon="🧸")
