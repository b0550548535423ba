"""Error taxonomy shared by the policies, the store and the session."""

from __future__ import annotations

from typing import Optional


class PixelPetsError(Exception):
    """Root of every error raised by the engine."""


class ValidationError(PixelPetsError):
    """A precondition was not met; nothing was changed."""

    reason = "action not allowed"

    def __init__(self, reason: Optional[str] = None):
        if reason is not None:
            self.reason = reason
        super().__init__(self.reason)


class InsufficientFunds(ValidationError):
    reason = "insufficient funds"

    def __init__(self, amount: int, balance: int):
        self.amount = amount
        self.balance = balance
        super().__init__()


class NotHungry(ValidationError):
    reason = "not hungry"


class TooTired(ValidationError):
    reason = "too tired"


class TaskAlreadyAttempted(ValidationError):
    reason = "task already attempted"


class PetLostError(ValidationError):
    reason = "pet has left"


class NotFound(PixelPetsError):
    """Pet, task or finance row missing (or owned by someone else)."""


class PersistenceError(PixelPetsError):
    """A write to the data store failed."""


class GenerationFailure(PixelPetsError):
    """The remote question generator could not produce a question."""
