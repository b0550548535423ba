"""Balance bookkeeping for one user, routed through the store's atomic adjust."""

from __future__ import annotations

import logging
from typing import Optional, Tuple

from .config import STARTING_BALANCE
from .errors import NotFound, PersistenceError
from .models import Expense, UserFinances
from .store import DataStore

logger = logging.getLogger(__name__)


class EconomyLedger:
    def __init__(self, store: DataStore, user_id: str):
        self.store = store
        self.user_id = user_id

    async def ensure(self) -> UserFinances:
        """Return the user's finance row, creating it with the starting balance."""
        finances = await self.store.get_finances(self.user_id)
        if finances is not None:
            return finances
        logger.info("opening finances for %s with $%d", self.user_id, STARTING_BALANCE)
        return await self.store.insert_finances(
            UserFinances(
                user_id=self.user_id,
                balance=STARTING_BALANCE,
                total_earned=STARTING_BALANCE,
                total_spent=0,
            )
        )

    async def credit(self, amount: int) -> UserFinances:
        if amount < 0:
            raise ValueError("credit amount must be non-negative")
        try:
            return await self.store.adjust_finances(self.user_id, balance=amount, earned=amount)
        except NotFound:
            await self.ensure()
            return await self.store.adjust_finances(self.user_id, balance=amount, earned=amount)

    async def debit(self, amount: int) -> UserFinances:
        """Raises InsufficientFunds (from the store) when amount > balance."""
        if amount < 0:
            raise ValueError("debit amount must be non-negative")
        try:
            return await self.store.adjust_finances(self.user_id, balance=-amount, spent=amount)
        except NotFound:
            await self.ensure()
            return await self.store.adjust_finances(self.user_id, balance=-amount, spent=amount)

    async def charge(
        self, amount: int, *, pet_id: str, category: str, item: str
    ) -> Tuple[UserFinances, Optional[Expense]]:
        """
        Debit `amount` and record one Expense row for it.

        The debit is the commit point: if it fails nothing was spent and the
        error propagates. A failed expense insert after a successful debit is
        logged and reported as a missing expense.
        """
        finances = await self.debit(amount)
        expense = Expense(
            pet_id=pet_id,
            user_id=self.user_id,
            category=category,
            item=item,
            amount=amount,
        )
        try:
            await self.store.insert_expense(expense)
        except PersistenceError:
            logger.error("expense row for %s ($%d) was not saved", item, amount, exc_info=True)
            return finances, None
        return finances, expense
