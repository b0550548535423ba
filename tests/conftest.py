import os
import tempfile
import types

# keep the dev state file out of the working tree
os.environ.setdefault("STATE_FILE", os.path.join(tempfile.gettempdir(), "pixelpets-test-state.json"))

import pytest
import pytest_asyncio
from fastapi.testclient import TestClient
from httpx import AsyncClient, ASGITransport

from pixelpets import main, validate
from pixelpets.store import MemoryStore

from helpers import USER_ID


# ─── fixture: isolate DB to an in-memory store ─────────────────────────
@pytest.fixture(autouse=True)
def store(monkeypatch):
    fake_store = MemoryStore()
    monkeypatch.setattr(main.app.state, "store", fake_store)
    monkeypatch.setattr(main.app.state, "generator", None)
    yield fake_store  # tests can inspect / mutate


# ─── fixture: disable SlowAPI middleware (rate-limit) ──────────────────
@pytest.fixture(autouse=True)
def disable_limiter(monkeypatch):
    monkeypatch.setattr(main.limiter, "enabled", False)


# ─── sync TestClient (simple) ──────────────────────────────────────────
@pytest.fixture
def client():
    return TestClient(main.app)


# ─── async client for async tests ──────────────────────────────────────
@pytest_asyncio.fixture
async def async_client():
    transport = ASGITransport(app=main.app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture(autouse=True)
def bypass_init_data(monkeypatch):
    """
    Replace pixelpets.validate.get_init_data with a stub that
    trusts whatever comes in and returns an object
    that looks like WebAppInitData(user.id = 123).
    """

    class DummyInit:  # mimics WebAppInitData interface
        def __init__(self, user_id: int):
            self.user = types.SimpleNamespace(id=user_id)

    def fake_get_init_data(raw: str, bot_token: str, *, lifetime: int = 3600, request=None):
        if request is not None:
            request.state.user_id = USER_ID
        return DummyInit(int(USER_ID))

    monkeypatch.setattr(validate, "get_init_data", fake_get_init_data)
    yield
