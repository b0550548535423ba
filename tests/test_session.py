import asyncio
import random
from datetime import timedelta

import pytest

from pixelpets.actions import ActionKind
from pixelpets.config import Settings
from pixelpets.errors import (
    InsufficientFunds,
    NotFound,
    PersistenceError,
    PetLostError,
    TaskAlreadyAttempted,
)
from pixelpets.models import Achievement
from pixelpets.session import PetSession, SessionState
from pixelpets.store import MemoryStore

from helpers import NOW, USER_ID, FakeClock, seed, seed_tasks


class FlakyStore(MemoryStore):
    """Fails the next `failures` pet writes."""

    def __init__(self):
        super().__init__()
        self.failures = 0

    async def update_pet(self, pet):
        if self.failures:
            self.failures -= 1
            raise PersistenceError("store offline")
        return await super().update_pet(pet)


def _session(store, pet, clock=None, **kwargs):
    return PetSession(
        store,
        USER_ID,
        pet.id,
        clock=clock or FakeClock(),
        rng=random.Random(0),
        **kwargs,
    )


# ─── load ──────────────────────────────────────────────────────────────
@pytest.mark.asyncio
async def test_load_applies_three_hours_of_decay(store):
    pet = await seed(store)
    pet.last_updated = NOW - timedelta(hours=3)
    await store.update_pet(pet)

    async with _session(store, pet) as session:
        stats = session.pet.stats
        assert session.state is SessionState.READY

    assert (stats.hunger, stats.happiness, stats.cleanliness) == (47, 49, 48)
    assert (stats.energy, stats.love, stats.health) == (50, 49, 50)
    saved = await store.get_pet(pet.id)
    assert saved.stats == stats
    assert saved.last_updated == NOW


@pytest.mark.asyncio
async def test_second_load_within_the_hour_is_a_no_op(store):
    pet = await seed(store, last_updated=NOW - timedelta(hours=2, minutes=10))
    clock = FakeClock()
    async with _session(store, pet, clock) as session:
        first = session.pet.stats

    clock.advance(minutes=30)
    async with _session(store, pet, clock) as session:
        assert session.pet.stats == first


@pytest.mark.asyncio
async def test_load_foreign_pet_is_not_found(store):
    pet = await seed(store)
    session = PetSession(store, "someone-else", pet.id, clock=FakeClock())
    with pytest.raises(NotFound):
        async with session:
            pass
    assert not session.timer_running


@pytest.mark.asyncio
async def test_load_registers_daily_login(store):
    pet = await seed(store)
    async with _session(store, pet) as session:
        assert session.last_snapshot.daily_streak == 1
    streak = await store.get_streak(USER_ID)
    assert streak.last_login_date == NOW.date()


@pytest.mark.asyncio
async def test_load_publishes_snapshot(store):
    pet = await seed(store)
    seen = []

    async def publish(snapshot):
        seen.append(snapshot)

    async with _session(store, pet, publish=publish):
        pass
    assert len(seen) == 1
    assert seen[0].status == "Doing okay, but could use some attention"


# ─── actions ───────────────────────────────────────────────────────────
@pytest.mark.asyncio
async def test_feed_without_funds_changes_nothing(store):
    pet = await seed(store, balance=5, hunger=40)
    async with _session(store, pet) as session:
        with pytest.raises(InsufficientFunds):
            await session.perform(ActionKind.FEED)
        assert session.pet.stats.hunger == 40

    assert (await store.get_finances(USER_ID)).balance == 5
    assert await store.list_expenses(USER_ID) == []


@pytest.mark.asyncio
async def test_vet_visit(store):
    pet = await seed(store, balance=100, health=40, happiness=60)
    async with _session(store, pet) as session:
        snap = await session.perform(ActionKind.VET)

    assert snap.pet.stats.health == 100
    assert snap.pet.stats.happiness == 50
    assert snap.finances.balance == 50
    expenses = await store.list_expenses(USER_ID, pet.id)
    assert [(e.category, e.amount) for e in expenses] == [("vet", 50)]
    assert (await store.get_pet(pet.id)).stats.health == 100


@pytest.mark.asyncio
async def test_buy_toy_reports_the_toy(store):
    pet = await seed(store, balance=100)
    async with _session(store, pet) as session:
        snap = await session.perform(ActionKind.BUY_TOY)
    assert snap.toy is not None
    expense = (await store.list_expenses(USER_ID, pet.id))[0]
    assert expense.item.endswith(snap.toy.name)


# ─── ticks ─────────────────────────────────────────────────────────────
@pytest.mark.asyncio
async def test_tick_decays_and_saves(store):
    pet = await seed(store)
    clock = FakeClock()
    async with _session(store, pet, clock) as session:
        clock.advance(seconds=15)
        snap = await session.tick()

    assert snap.pet.stats.hunger == 48
    saved = await store.get_pet(pet.id)
    assert saved.stats.hunger == 48
    assert saved.last_updated == NOW + timedelta(seconds=15)


@pytest.mark.asyncio
async def test_pet_lost_after_three_zeros(store):
    pet = await seed(store, hunger=2, cleanliness=2, energy=1)
    async with _session(store, pet) as session:
        snap = await session.tick()
        assert snap.state is SessionState.PET_LOST
        frozen = session.pet.stats

        assert await session.tick() is None
        assert session.pet.stats == frozen
        with pytest.raises(PetLostError):
            await session.perform(ActionKind.REST)

        await session.abandon()
    assert await store.get_pet(pet.id) is None


@pytest.mark.asyncio
async def test_lost_pet_stays_lost_on_reload(store):
    pet = await seed(store, hunger=0, cleanliness=0, energy=0)
    async with _session(store, pet) as session:
        assert session.state is SessionState.PET_LOST
        with pytest.raises(RuntimeError):
            session.start()


@pytest.mark.asyncio
async def test_failed_tick_write_is_retried():
    flaky = FlakyStore()
    pet = await seed(flaky)
    async with _session(flaky, pet) as session:
        flaky.failures = 1
        await session.tick()
        assert (await flaky.get_pet(pet.id)).stats.hunger == 50
        assert session.pet.stats.hunger == 48

        await session.tick()
        assert (await flaky.get_pet(pet.id)).stats.hunger == 46


@pytest.mark.asyncio
async def test_close_saves_pending_write():
    flaky = FlakyStore()
    pet = await seed(flaky)
    session = _session(flaky, pet)
    await session.load()
    flaky.failures = 1
    await session.tick()
    await session.close()
    assert (await flaky.get_pet(pet.id)).stats.hunger == 48
    assert session.state is SessionState.NAVIGATED_AWAY


@pytest.mark.asyncio
async def test_timer_runs_until_close(store):
    pet = await seed(store)
    session = _session(store, pet, settings=Settings(tick_seconds=0.01))
    await session.load()
    session.start()
    assert session.state is SessionState.ACTIVE
    await asyncio.sleep(0.1)
    await session.close()

    assert not session.timer_running
    after_close = session.pet.stats
    assert after_close.hunger < 50
    await asyncio.sleep(0.05)
    assert session.pet.stats == after_close


@pytest.mark.asyncio
async def test_timer_stops_when_pet_is_lost(store):
    pet = await seed(store, hunger=2, cleanliness=2, energy=1)
    session = _session(store, pet, settings=Settings(tick_seconds=0.01))
    await session.load()
    session.start()
    await asyncio.sleep(0.1)
    assert session.state is SessionState.PET_LOST
    assert not session.timer_running
    await session.close()
    assert session.state is SessionState.PET_LOST


# ─── quiz answers ──────────────────────────────────────────────────────
@pytest.mark.asyncio
async def test_correct_answers_pay_streak_bonus(store):
    pet = await seed(store, balance=50)
    tasks = await seed_tasks(store, count=3, reward=10)
    async with _session(store, pet) as session:
        for task in tasks:
            snap = await session.answer(task.id, True)

    assert snap.finances.balance == 50 + 10 + 10 + 15
    assert snap.answer_streak == 3
    assert snap.tasks_done == 3
    assert snap.pet.stats.love == 65
    assert "streak_3" in snap.unlocked
    assert await store.count_completed_tasks(USER_ID) == 3


@pytest.mark.asyncio
async def test_wrong_answer_resets_streak_and_locks_task(store):
    pet = await seed(store)
    first, second = await seed_tasks(store, count=2)
    async with _session(store, pet) as session:
        await session.answer(first.id, True)
        snap = await session.answer(second.id, False)
        assert snap.answer_streak == 0
        assert snap.finances.balance == 110

        with pytest.raises(TaskAlreadyAttempted):
            await session.answer(second.id, True)
        with pytest.raises(TaskAlreadyAttempted):
            await session.answer(first.id, True)


@pytest.mark.asyncio
async def test_unknown_task_is_not_found(store):
    pet = await seed(store)
    async with _session(store, pet) as session:
        with pytest.raises(NotFound):
            await session.answer("missing", True)


@pytest.mark.asyncio
async def test_stat_achievement_unlocks_after_first_task(store):
    pet = await seed(store, happiness=95)
    (task,) = await seed_tasks(store, count=1)
    async with _session(store, pet) as session:
        assert "happy_pet" not in session.last_snapshot.unlocked
        snap = await session.answer(task.id, True)
        assert "Happiness Master" in snap.new_achievements

        again = await session.perform(ActionKind.REST)
        assert "Happiness Master" not in again.new_achievements

    rows = await store.list_achievements(USER_ID)
    assert [r.achievement_id for r in rows].count("happy_pet") == 1


class TaskWritesFail(MemoryStore):
    async def update_task(self, task):
        raise PersistenceError("store offline")


@pytest.mark.asyncio
async def test_action_that_zeroes_a_third_stat_loses_the_pet(store):
    pet = await seed(store, balance=100, happiness=5, cleanliness=0, love=0)
    async with _session(store, pet) as session:
        snap = await session.perform(ActionKind.VET)
        assert snap.state is SessionState.PET_LOST
        assert snap.new_achievements == []
        with pytest.raises(PetLostError):
            await session.perform(ActionKind.REST)


@pytest.mark.asyncio
async def test_reward_not_paid_when_completion_is_not_saved():
    failing = TaskWritesFail()
    pet = await seed(failing, balance=50)
    (task,) = await seed_tasks(failing, count=1, reward=10)

    for _ in range(2):
        async with _session(failing, pet) as session:
            with pytest.raises(PersistenceError):
                await session.answer(task.id, True)
            assert session.tasks_done == 0

    finances = await failing.get_finances(USER_ID)
    assert (finances.balance, finances.total_earned) == (50, 50)
    assert not (await failing.get_task(task.id)).completed


@pytest.mark.asyncio
async def test_achievement_stored_by_another_session_is_not_announced(store):
    pet = await seed(store, happiness=95)
    (task,) = await seed_tasks(store, count=1)
    async with _session(store, pet) as session:
        other_tab = Achievement(user_id=USER_ID, pet_id=pet.id, achievement_id="happy_pet")
        await store.insert_achievement(other_tab, per_pet=True)

        snap = await session.answer(task.id, True)
        assert "Happiness Master" not in snap.new_achievements
        assert "happy_pet" in snap.unlocked
