"""
Data store
──────────
The engine only talks to the `DataStore` interface: row-level CRUD over the
entities in `models`, plus one atomic primitive (`adjust_finances`) so balance
updates never go through a client-side read-modify-write.

Two implementations share one document layout:
      MemoryStore   – process-local, used by tests and the dev server
      JsonFileStore – the same document persisted to STATE_FILE
Every mutation runs under a single asyncio.Lock (single writer).
"""

from __future__ import annotations

import asyncio
import copy
import json
import logging
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, AsyncIterator, Dict, List, Optional

from .errors import InsufficientFunds, NotFound, PersistenceError
from .models import (
    Achievement,
    Expense,
    Pet,
    SavingsGoal,
    Task,
    UserFinances,
    UserStreak,
)

logger = logging.getLogger(__name__)

TABLES = ("pets", "finances", "expenses", "tasks", "achievements", "savings_goals", "streaks")


class DataStore(ABC):
    # pets
    @abstractmethod
    async def get_pet(self, pet_id: str) -> Optional[Pet]: ...

    @abstractmethod
    async def list_pets(self, owner_id: str) -> List[Pet]: ...

    @abstractmethod
    async def insert_pet(self, pet: Pet) -> Pet: ...

    @abstractmethod
    async def update_pet(self, pet: Pet) -> Pet: ...

    @abstractmethod
    async def delete_pet(self, pet_id: str) -> None: ...

    # finances
    @abstractmethod
    async def get_finances(self, user_id: str) -> Optional[UserFinances]: ...

    @abstractmethod
    async def insert_finances(self, finances: UserFinances) -> UserFinances: ...

    @abstractmethod
    async def adjust_finances(
        self, user_id: str, *, balance: int = 0, earned: int = 0, spent: int = 0
    ) -> UserFinances:
        """Apply the deltas atomically; refuse to take balance below zero."""

    # expenses
    @abstractmethod
    async def insert_expense(self, expense: Expense) -> Expense: ...

    @abstractmethod
    async def list_expenses(self, user_id: str, pet_id: Optional[str] = None) -> List[Expense]: ...

    # tasks
    @abstractmethod
    async def insert_tasks(self, tasks: List[Task]) -> List[Task]: ...

    @abstractmethod
    async def list_tasks(self, user_id: str) -> List[Task]: ...

    @abstractmethod
    async def get_task(self, task_id: str) -> Optional[Task]: ...

    @abstractmethod
    async def update_task(self, task: Task) -> Task: ...

    @abstractmethod
    async def delete_incomplete_tasks(self, user_id: str) -> int: ...

    @abstractmethod
    async def count_completed_tasks(self, user_id: str) -> int: ...

    # achievements
    @abstractmethod
    async def insert_achievement(self, achievement: Achievement, *, per_pet: bool) -> bool:
        """Insert unless the (user, id[, pet]) key exists. True if inserted."""

    @abstractmethod
    async def list_achievements(self, user_id: str) -> List[Achievement]: ...

    # savings goals
    @abstractmethod
    async def insert_savings_goal(self, goal: SavingsGoal) -> SavingsGoal: ...

    @abstractmethod
    async def latest_savings_goal(self, user_id: str, pet_id: str) -> Optional[SavingsGoal]: ...

    # streaks
    @abstractmethod
    async def get_streak(self, user_id: str) -> Optional[UserStreak]: ...

    @abstractmethod
    async def upsert_streak(self, streak: UserStreak) -> UserStreak: ...


def empty_document() -> Dict[str, Any]:
    return {
        "pets": {},
        "finances": {},
        "expenses": [],
        "tasks": {},
        "achievements": [],
        "savings_goals": [],
        "streaks": {},
    }


def _row(model) -> Dict[str, Any]:
    return model.model_dump(mode="json")


class MemoryStore(DataStore):
    """Whole database as one JSON-compatible dict."""

    def __init__(self, document: Optional[Dict[str, Any]] = None):
        self._db = document if document is not None else empty_document()
        for table in TABLES:
            self._db.setdefault(table, empty_document()[table])
        self._lock = asyncio.Lock()

    def _flush(self) -> None:
        """Persist the document; no-op in memory."""

    @asynccontextmanager
    async def _writing(self) -> AsyncIterator[Dict[str, Any]]:
        async with self._lock:
            before = copy.deepcopy(self._db)
            try:
                yield self._db
                self._flush()
            except OSError as exc:
                self._db = before
                raise PersistenceError(f"could not write state: {exc}") from exc
            except Exception:
                self._db = before
                raise

    # ── pets ─────────────────────────────────────────────
    async def get_pet(self, pet_id: str) -> Optional[Pet]:
        row = self._db["pets"].get(pet_id)
        return Pet.model_validate(row) if row else None

    async def list_pets(self, owner_id: str) -> List[Pet]:
        pets = [Pet.model_validate(r) for r in self._db["pets"].values() if r["owner_id"] == owner_id]
        return sorted(pets, key=lambda p: p.created_at, reverse=True)

    async def insert_pet(self, pet: Pet) -> Pet:
        async with self._writing() as db:
            db["pets"][pet.id] = _row(pet)
        return pet

    async def update_pet(self, pet: Pet) -> Pet:
        async with self._writing() as db:
            if pet.id not in db["pets"]:
                raise NotFound(f"pet {pet.id}")
            db["pets"][pet.id] = _row(pet)
        return pet

    async def delete_pet(self, pet_id: str) -> None:
        async with self._writing() as db:
            db["pets"].pop(pet_id, None)

    # ── finances ─────────────────────────────────────────
    async def get_finances(self, user_id: str) -> Optional[UserFinances]:
        row = self._db["finances"].get(user_id)
        return UserFinances.model_validate(row) if row else None

    async def insert_finances(self, finances: UserFinances) -> UserFinances:
        async with self._writing() as db:
            existing = db["finances"].get(finances.user_id)
            if existing is not None:
                return UserFinances.model_validate(existing)
            db["finances"][finances.user_id] = _row(finances)
        return finances

    async def adjust_finances(
        self, user_id: str, *, balance: int = 0, earned: int = 0, spent: int = 0
    ) -> UserFinances:
        async with self._writing() as db:
            row = db["finances"].get(user_id)
            if row is None:
                raise NotFound(f"finances for {user_id}")
            if row["balance"] + balance < 0:
                raise InsufficientFunds(-balance, row["balance"])
            row["balance"] += balance
            row["total_earned"] += earned
            row["total_spent"] += spent
            result = UserFinances.model_validate(row)
        return result

    # ── expenses ─────────────────────────────────────────
    async def insert_expense(self, expense: Expense) -> Expense:
        async with self._writing() as db:
            db["expenses"].append(_row(expense))
        return expense

    async def list_expenses(self, user_id: str, pet_id: Optional[str] = None) -> List[Expense]:
        rows = [
            Expense.model_validate(r)
            for r in self._db["expenses"]
            if r["user_id"] == user_id and (pet_id is None or r["pet_id"] == pet_id)
        ]
        return sorted(rows, key=lambda e: e.created_at, reverse=True)

    # ── tasks ────────────────────────────────────────────
    async def insert_tasks(self, tasks: List[Task]) -> List[Task]:
        async with self._writing() as db:
            for task in tasks:
                db["tasks"][task.id] = _row(task)
        return tasks

    async def list_tasks(self, user_id: str) -> List[Task]:
        tasks = [Task.model_validate(r) for r in self._db["tasks"].values() if r["user_id"] == user_id]
        return sorted(tasks, key=lambda t: t.created_at, reverse=True)

    async def get_task(self, task_id: str) -> Optional[Task]:
        row = self._db["tasks"].get(task_id)
        return Task.model_validate(row) if row else None

    async def update_task(self, task: Task) -> Task:
        async with self._writing() as db:
            if task.id not in db["tasks"]:
                raise NotFound(f"task {task.id}")
            db["tasks"][task.id] = _row(task)
        return task

    async def delete_incomplete_tasks(self, user_id: str) -> int:
        async with self._writing() as db:
            doomed = [
                task_id
                for task_id, r in db["tasks"].items()
                if r["user_id"] == user_id and not r["completed"]
            ]
            for task_id in doomed:
                del db["tasks"][task_id]
        return len(doomed)

    async def count_completed_tasks(self, user_id: str) -> int:
        return sum(1 for r in self._db["tasks"].values() if r["user_id"] == user_id and r["completed"])

    # ── achievements ─────────────────────────────────────
    async def insert_achievement(self, achievement: Achievement, *, per_pet: bool) -> bool:
        async with self._writing() as db:
            for r in db["achievements"]:
                same = r["user_id"] == achievement.user_id and r["achievement_id"] == achievement.achievement_id
                if same and (not per_pet or r["pet_id"] == achievement.pet_id):
                    return False
            db["achievements"].append(_row(achievement))
        return True

    async def list_achievements(self, user_id: str) -> List[Achievement]:
        return [Achievement.model_validate(r) for r in self._db["achievements"] if r["user_id"] == user_id]

    # ── savings goals ────────────────────────────────────
    async def insert_savings_goal(self, goal: SavingsGoal) -> SavingsGoal:
        async with self._writing() as db:
            db["savings_goals"].append(_row(goal))
        return goal

    async def latest_savings_goal(self, user_id: str, pet_id: str) -> Optional[SavingsGoal]:
        goals = [
            SavingsGoal.model_validate(r)
            for r in self._db["savings_goals"]
            if r["user_id"] == user_id and r["pet_id"] == pet_id
        ]
        return max(goals, key=lambda g: g.created_at) if goals else None

    # ── streaks ──────────────────────────────────────────
    async def get_streak(self, user_id: str) -> Optional[UserStreak]:
        row = self._db["streaks"].get(user_id)
        return UserStreak.model_validate(row) if row else None

    async def upsert_streak(self, streak: UserStreak) -> UserStreak:
        async with self._writing() as db:
            db["streaks"][streak.user_id] = _row(streak)
        return streak


class JsonFileStore(MemoryStore):
    """Naive JSON persistence – good enough for dev and single-process use."""

    def __init__(self, path: Path):
        self.path = Path(path)
        self.path.touch(exist_ok=True)  # ensure the file is present
        super().__init__(self._read())

    def _read(self) -> Dict[str, Any]:
        try:
            with self.path.open() as f:
                return json.load(f)
        except json.JSONDecodeError:
            logger.warning("state file %s unreadable, starting empty", self.path)
            return empty_document()

    def _flush(self) -> None:
        self.path.write_text(json.dumps(self._db, indent=1))
