"""
Pet session orchestrator
────────────────────────
One `PetSession` per open pet screen:

      LOADING → READY → ACTIVE → PET_LOST | NAVIGATED_AWAY

• load()   – fetch everything concurrently, apply offline decay once
• start()  – own the live tick timer (an asyncio task)
• perform(), answer() – user input, serialized with ticks by one lock
• close()  – release the timer; safe on every exit path

Snapshots are pushed to `publish` after every change. Store write failures
during ticks are logged and the write is retried on the next tick.
"""

from __future__ import annotations

import asyncio
import logging
import random
from datetime import datetime
from enum import Enum
from typing import Awaitable, Callable, List, Optional, Set

from pydantic import BaseModel, Field

from .actions import ActionKind, apply_action, level_progress
from .config import Settings, settings as default_settings
from .decay import apply_offline_decay, is_lost, tick_decay
from .derived import (
    ACHIEVEMENTS_BY_ID,
    AchievementContext,
    AchievementTracker,
    Mood,
    mood,
    status,
)
from .errors import NotFound, PersistenceError, PetLostError, TaskAlreadyAttempted
from .ledger import EconomyLedger
from .models import (
    Achievement,
    Expense,
    Pet,
    SavingsGoal,
    Task,
    UserFinances,
    UserStreak,
    utcnow,
)
from .rewards import advance_daily_streak, task_reward
from .store import DataStore
from .toys import Toy

logger = logging.getLogger(__name__)

TASK_LOVE_BONUS = 5


class SessionState(str, Enum):
    LOADING = "loading"
    READY = "ready"
    ACTIVE = "active"
    PET_LOST = "pet_lost"
    NAVIGATED_AWAY = "navigated_away"


class PetSnapshot(BaseModel):
    state: SessionState
    pet: Pet
    mood: Mood
    status: str
    finances: UserFinances
    level_progress: float
    answer_streak: int = 0
    daily_streak: int = 0
    tasks_done: int = 0
    unlocked: List[str] = Field(default_factory=list)
    new_achievements: List[str] = Field(default_factory=list)
    toy: Optional[Toy] = None
    level_ups: int = 0


Publisher = Callable[[PetSnapshot], Awaitable[None]]


class PetSession:
    def __init__(
        self,
        store: DataStore,
        user_id: str,
        pet_id: str,
        *,
        settings: Settings = default_settings,
        clock: Callable[[], datetime] = utcnow,
        rng: Optional[random.Random] = None,
        publish: Optional[Publisher] = None,
    ):
        self.store = store
        self.user_id = user_id
        self.pet_id = pet_id
        self.settings = settings
        self.clock = clock
        self.rng = rng or random.Random()
        self.publish = publish
        self.ledger = EconomyLedger(store, user_id)

        self.state = SessionState.LOADING
        self.pet: Optional[Pet] = None
        self.finances: Optional[UserFinances] = None
        self.expenses: List[Expense] = []
        self.tasks: List[Task] = []
        self.savings_goal: Optional[SavingsGoal] = None
        self.streak: Optional[UserStreak] = None
        self.tasks_done = 0
        self.answer_streak = 0
        self.incorrect_task_ids: Set[str] = set()
        self.tracker = AchievementTracker(user_id=user_id, pet_id=pet_id)

        self._mutex = asyncio.Lock()
        self._timer: Optional[asyncio.Task] = None
        self._dirty = False
        self.last_snapshot: Optional[PetSnapshot] = None

    # ── lifecycle ────────────────────────────────────────
    async def __aenter__(self) -> "PetSession":
        try:
            await self.load()
        except BaseException:
            await self.close()
            raise
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def load(self) -> PetSnapshot:
        self.state = SessionState.LOADING
        (
            pet,
            finances,
            expenses,
            tasks,
            achievements,
            goal,
            tasks_done,
            streak,
        ) = await asyncio.gather(
            self.store.get_pet(self.pet_id),
            self.ledger.ensure(),
            self.store.list_expenses(self.user_id, self.pet_id),
            self.store.list_tasks(self.user_id),
            self.store.list_achievements(self.user_id),
            self.store.latest_savings_goal(self.user_id, self.pet_id),
            self.store.count_completed_tasks(self.user_id),
            self.store.get_streak(self.user_id),
        )
        if pet is None or pet.owner_id != self.user_id:
            raise NotFound(f"pet {self.pet_id}")

        self.pet = pet
        self.finances = finances
        self.expenses = expenses
        self.tasks = tasks
        self.savings_goal = goal
        self.tasks_done = tasks_done
        self.tracker = AchievementTracker.from_rows(self.user_id, self.pet_id, achievements)

        units = apply_offline_decay(pet, self.clock())
        if units:
            logger.info("pet %s: offline decay of %d hour(s)", pet.id, units)
        await self._save_pet()

        await self._register_login(streak)

        if is_lost(pet.stats):
            self._lose()
            new = []
        else:
            self.state = SessionState.READY
            new = await self._check_achievements()
        snapshot = self.snapshot(new_achievements=new)
        await self._publish(snapshot)
        return snapshot

    def start(self) -> None:
        """Start the live tick timer; the session owns it until close()."""
        if self.state is not SessionState.READY:
            raise RuntimeError(f"cannot start a session in state {self.state.value}")
        self.state = SessionState.ACTIVE
        self._timer = asyncio.create_task(self._run_timer(), name=f"tick:{self.pet_id}")

    async def close(self) -> None:
        if self.state is not SessionState.PET_LOST:
            self.state = SessionState.NAVIGATED_AWAY
        timer, self._timer = self._timer, None
        if timer is not None and timer is not asyncio.current_task():
            timer.cancel()
            try:
                await timer
            except asyncio.CancelledError:
                pass
        if self._dirty and self.pet is not None:
            await self._save_pet()

    async def abandon(self) -> None:
        """Remove a lost pet for good; the only way out of PET_LOST."""
        if self.state is not SessionState.PET_LOST:
            raise RuntimeError("only a lost pet can be removed")
        await self.store.delete_pet(self.pet_id)
        self._dirty = False
        logger.info("pet %s removed by %s", self.pet_id, self.user_id)
        await self.close()

    @property
    def timer_running(self) -> bool:
        return self._timer is not None and not self._timer.done()

    # ── live decay ───────────────────────────────────────
    async def _run_timer(self) -> None:
        while self.state is SessionState.ACTIVE:
            await asyncio.sleep(self.settings.tick_seconds)
            try:
                await self.tick()
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("tick failed for pet %s", self.pet_id)

    async def tick(self) -> Optional[PetSnapshot]:
        async with self._mutex:
            if self.state not in (SessionState.READY, SessionState.ACTIVE):
                return None
            pet = self._pet()
            pet.stats = tick_decay(
                pet.stats,
                happiness_chance=self.settings.tick_happiness_chance,
                rng=self.rng,
            )
            pet.last_updated = self.clock()
            await self._save_pet()

            new: List[str] = []
            if is_lost(pet.stats):
                self._lose()
            else:
                new = await self._check_achievements()
            snapshot = self.snapshot(new_achievements=new)
        await self._publish(snapshot)
        return snapshot

    def _lose(self) -> None:
        logger.warning("pet %s has left (%d stats at zero)", self.pet_id, self._pet().stats.zero_count())
        self.state = SessionState.PET_LOST
        timer = self._timer
        # the timer loop exits by itself when it is the caller
        if timer is not None and timer is not asyncio.current_task():
            timer.cancel()

    # ── user input ───────────────────────────────────────
    async def perform(self, kind: ActionKind) -> PetSnapshot:
        async with self._mutex:
            self._require_alive()
            pet = self._pet()
            outcome = apply_action(
                kind,
                pet.stats,
                self._finances().balance,
                xp=pet.xp,
                level=pet.level,
                rng=self.rng,
            )
            if outcome.charges:
                # the debit is the commit point; a refusal leaves the pet untouched
                self.finances, expense = await self.ledger.charge(
                    outcome.cost,
                    pet_id=pet.id,
                    category=outcome.category,
                    item=outcome.item,
                )
                if expense is not None:
                    self.expenses.insert(0, expense)

            pet.stats = outcome.stats
            pet.xp = outcome.xp
            pet.level = outcome.level
            pet.last_updated = self.clock()
            await self._save_pet()

            new: List[str] = []
            if is_lost(pet.stats):
                self._lose()
            else:
                new = await self._check_achievements()
            snapshot = self.snapshot(new_achievements=new, toy=outcome.toy, level_ups=outcome.level_ups)
        await self._publish(snapshot)
        return snapshot

    async def answer(self, task_id: str, correct: bool) -> PetSnapshot:
        """Settle a quiz for `task_id`: reward on success, streak reset otherwise."""
        async with self._mutex:
            self._require_alive()
            task = await self._task(task_id)
            if task.completed or task.id in self.incorrect_task_ids:
                raise TaskAlreadyAttempted()

            new: List[str] = []
            if not correct:
                self.answer_streak = 0
                self.incorrect_task_ids.add(task.id)
            else:
                # completion is the commit point; no reward unless it is stored
                done = task.model_copy(update={"completed": True, "completed_at": self.clock()})
                await self.store.update_task(done)
                task.completed = done.completed
                task.completed_at = done.completed_at

                streak = self.answer_streak + 1
                self.finances = await self.ledger.credit(task_reward(task, streak))
                self.answer_streak = streak
                self.tasks_done += 1

                pet = self._pet()
                pet.stats = pet.stats.shifted(love=TASK_LOVE_BONUS)
                await self._save_pet()
                new = await self._check_achievements()
            snapshot = self.snapshot(new_achievements=new)
        await self._publish(snapshot)
        return snapshot

    # ── derived state ────────────────────────────────────
    def achievement_context(self) -> AchievementContext:
        pet = self._pet()
        finances = self._finances()
        return AchievementContext(
            stats=pet.stats,
            level=pet.level,
            tasks_done=self.tasks_done,
            answer_streak=self.answer_streak,
            daily_streak=self.streak.current_streak if self.streak else 0,
            balance=finances.balance,
            total_spent=finances.total_spent,
            expense_count=len(self.expenses),
        )

    async def _check_achievements(self) -> List[str]:
        """Persist newly satisfied achievements once; return those to announce."""
        announced = []
        for rule in self.tracker.pending(self.achievement_context()):
            row = Achievement(user_id=self.user_id, pet_id=self.pet_id, achievement_id=rule.id)
            try:
                inserted = await self.store.insert_achievement(row, per_pet=rule.per_pet)
            except PersistenceError:
                logger.error("achievement %s not saved", rule.id, exc_info=True)
                continue
            if not inserted:
                # another session stored it first
                self.tracker.unlocked.add((rule.id, self.pet_id))
                continue
            if self.tracker.record(rule):
                logger.info("user %s unlocked %s", self.user_id, rule.id)
                announced.append(rule.id)
        return announced

    def snapshot(
        self,
        *,
        new_achievements: Optional[List[str]] = None,
        toy: Optional[Toy] = None,
        level_ups: int = 0,
    ) -> PetSnapshot:
        pet = self._pet()
        return PetSnapshot(
            state=self.state,
            pet=pet.model_copy(deep=True),
            mood=mood(pet.stats),
            status=status(pet.stats),
            finances=self._finances(),
            level_progress=level_progress(pet.xp, pet.level),
            answer_streak=self.answer_streak,
            daily_streak=self.streak.current_streak if self.streak else 0,
            tasks_done=self.tasks_done,
            unlocked=self.tracker.unlocked_ids(),
            new_achievements=[ACHIEVEMENTS_BY_ID[i].name for i in new_achievements or []],
            toy=toy,
            level_ups=level_ups,
        )

    # ── helpers ──────────────────────────────────────────
    async def _register_login(self, streak: Optional[UserStreak]) -> None:
        self.streak, changed = advance_daily_streak(streak, self.user_id, self.clock().date())
        if changed:
            try:
                await self.store.upsert_streak(self.streak)
            except PersistenceError:
                logger.error("login streak for %s not saved", self.user_id, exc_info=True)

    async def _save_pet(self) -> None:
        """Best effort: a failed write is logged and retried on the next save."""
        try:
            await self.store.update_pet(self._pet())
        except PersistenceError:
            self._dirty = True
            logger.error("could not save pet %s, will retry", self.pet_id, exc_info=True)
        else:
            self._dirty = False

    async def _publish(self, snapshot: PetSnapshot) -> None:
        self.last_snapshot = snapshot
        if self.publish is None:
            return
        try:
            await self.publish(snapshot)
        except Exception:
            logger.warning("display update for pet %s failed", self.pet_id, exc_info=True)

    async def _task(self, task_id: str) -> Task:
        task = next((t for t in self.tasks if t.id == task_id), None)
        if task is None:
            task = await self.store.get_task(task_id)
            if task is None or task.user_id != self.user_id:
                raise NotFound(f"task {task_id}")
            self.tasks.append(task)
        return task

    def _require_alive(self) -> None:
        if self.state is SessionState.PET_LOST:
            raise PetLostError()
        if self.state not in (SessionState.READY, SessionState.ACTIVE):
            raise RuntimeError(f"session is {self.state.value}")

    def _pet(self) -> Pet:
        if self.pet is None:
            raise RuntimeError("session not loaded")
        return self.pet

    def _finances(self) -> UserFinances:
        if self.finances is None:
            raise RuntimeError("session not loaded")
        return self.finances
