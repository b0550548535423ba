"""
Runtime configuration for the PixelPets engine
──────────────────────────────────────────────
• Secrets and knobs come from the environment
• A .env file at the project root is loaded in development
• Game-wide constants shared by the policies live here too
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

ROOT_DIR = Path(__file__).parent.parent  # project root “…/”
ENV_FILE = ROOT_DIR / ".env"

load_dotenv(ENV_FILE, override=False)  # no-op if vars already set


# ──────────────────────────────────────────────────────────
# 1.  Game constants
# ──────────────────────────────────────────────────────────
STAT_MIN = 0
STAT_MAX = 100
NEUTRAL_STAT = 50  # new pets start here, not at 100

STARTING_BALANCE = 50
PET_COST = 50

PET_LOST_ZERO_STATS = 3
TASK_BATCH_SIZE = 3


# ──────────────────────────────────────────────────────────
# 2.  Settings (environment driven)
# ──────────────────────────────────────────────────────────
@dataclass(frozen=True)
class Settings:
    bot_token: str = ""
    allowed_origin: str = "https://pixelpets.app"
    state_file: Path = ROOT_DIR / "state.json"
    tick_seconds: float = 15.0
    tick_happiness_chance: float = 1.0
    quiz_endpoint: Optional[str] = None
    quiz_api_key: Optional[str] = None
    rate_limit: str = "5/second"
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            bot_token=os.getenv("BOT_TOKEN", ""),
            allowed_origin=os.getenv("ALLOWED_ORIGIN", cls.allowed_origin),
            state_file=Path(os.getenv("STATE_FILE", str(ROOT_DIR / "state.json"))),
            tick_seconds=float(os.getenv("TICK_SECONDS", "15")),
            tick_happiness_chance=float(os.getenv("TICK_HAPPINESS_CHANCE", "1.0")),
            quiz_endpoint=os.getenv("QUIZ_ENDPOINT") or None,
            quiz_api_key=os.getenv("QUIZ_API_KEY") or None,
            rate_limit=os.getenv("RATE_LIMIT", cls.rate_limit),
            log_level=os.getenv("LOG_LEVEL", cls.log_level),
        )


settings = Settings.from_env()


def configure_logging(level: str = settings.log_level) -> None:
    """Install a single root handler; repeated calls only adjust the level."""
    root = logging.getLogger()
    if not root.handlers:
        logging.basicConfig(
            format="%(asctime)s %(levelname)-7s %(name)s: %(message)s",
        )
    root.setLevel(level.upper())
