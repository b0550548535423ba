import hashlib
import hmac
import json
import time
import urllib.parse
import uuid
from datetime import datetime, timedelta, timezone

from pixelpets.models import Pet, Species, StatVector, Task, UserFinances

BOT_TOKEN = "test:token"
USER_ID = "123"
NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def signed_init_data(bot_token: str, user_id: int = 123, auth_date: int = None) -> str:
    """
    Return a valid Web-App initData string for the given bot token.
    """
    user_json = json.dumps(  # ← MINIFIED
        {"id": user_id, "first_name": "Test"}, separators=(",", ":")  # <-- no spaces
    )
    payload = {
        "query_id": str(uuid.uuid4()),
        "user": user_json,
        "auth_date": str(auth_date or int(time.time())),
    }

    data_check = "\n".join(f"{k}={v}" for k, v in sorted(payload.items()))
    secret = hmac.new(b"WebAppData", bot_token.encode(), hashlib.sha256).digest()
    payload["hash"] = hmac.new(secret, data_check.encode(), hashlib.sha256).hexdigest()

    return urllib.parse.urlencode(payload, quote_via=urllib.parse.quote)


class FakeClock:
    def __init__(self, now: datetime = NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


def make_pet(owner_id: str = USER_ID, *, last_updated: datetime = NOW, **stats) -> Pet:
    return Pet(
        owner_id=owner_id,
        name="Biscuit",
        species=Species.DOG,
        stats=StatVector(**stats),
        last_updated=last_updated,
        created_at=NOW,
    )


async def seed(store, *, balance: int = 100, **stats) -> Pet:
    """Store one pet for USER_ID plus a finance row holding `balance`."""
    pet = make_pet(**stats)
    await store.insert_pet(pet)
    await store.insert_finances(UserFinances(user_id=USER_ID, balance=balance, total_earned=balance))
    return pet


async def seed_tasks(store, count: int = 3, reward: int = 10):
    tasks = [Task(user_id=USER_ID, label=f"Chore {i}", reward=reward) for i in range(count)]
    return await store.insert_tasks(tasks)
