"""
Account-level operations that live outside an open pet screen:
adoption, task batches, savings goals and the spending report.
"""

from __future__ import annotations

import logging
import random
from typing import List, Optional, Tuple

from .config import PET_COST
from .errors import InsufficientFunds, NotFound, PixelPetsError, ValidationError
from .ledger import EconomyLedger
from .models import BudgetReport, Pet, SavingsGoal, Species, StatVector, Task, UserFinances, utcnow
from .report import budget_report, toy_collection
from .rewards import draw_tasks
from .store import DataStore
from .toys import Toy

logger = logging.getLogger(__name__)


async def adopt_pet(store: DataStore, user_id: str, name: str, species: Species) -> Tuple[Pet, UserFinances]:
    """Create a pet at neutral stats and charge the adoption fee for it."""
    name = name.strip()
    if not name:
        raise ValidationError("pet needs a name")
    species = Species(species)

    ledger = EconomyLedger(store, user_id)
    current = await ledger.ensure()
    if current.balance < PET_COST:
        raise InsufficientFunds(PET_COST, current.balance)

    now = utcnow()
    pet = await store.insert_pet(
        Pet(owner_id=user_id, name=name, species=species, stats=StatVector(), last_updated=now, created_at=now)
    )
    try:
        finances, _ = await ledger.charge(PET_COST, pet_id=pet.id, category="adoption", item=f"Adopted {name}")
    except PixelPetsError:
        # balance moved under us; the pet never existed
        await store.delete_pet(pet.id)
        raise
    logger.info("user %s adopted %s the %s", user_id, name, species.value)
    return pet, finances


async def owned_pet(store: DataStore, user_id: str, pet_id: str) -> Pet:
    pet = await store.get_pet(pet_id)
    if pet is None or pet.owner_id != user_id:
        raise NotFound(f"pet {pet_id}")
    return pet


async def generate_tasks(store: DataStore, user_id: str, *, rng: Optional[random.Random] = None) -> List[Task]:
    """Replace the user's pending tasks with a fresh batch."""
    dropped = await store.delete_incomplete_tasks(user_id)
    batch = await store.insert_tasks(draw_tasks(user_id, rng=rng))
    logger.debug("user %s: %d pending task(s) replaced", user_id, dropped)
    return batch


async def set_savings_goal(store: DataStore, user_id: str, pet_id: str, amount: int) -> SavingsGoal:
    if amount <= 0:
        raise ValidationError("savings goal must be positive")
    await owned_pet(store, user_id, pet_id)
    return await store.insert_savings_goal(SavingsGoal(user_id=user_id, pet_id=pet_id, target_amount=amount))


async def pet_report(store: DataStore, user_id: str, pet_id: str) -> Tuple[BudgetReport, List[Toy]]:
    await owned_pet(store, user_id, pet_id)
    finances = await EconomyLedger(store, user_id).ensure()
    expenses = await store.list_expenses(user_id, pet_id)
    goal = await store.latest_savings_goal(user_id, pet_id)
    return budget_report(expenses, finances.balance, goal), toy_collection(expenses)
