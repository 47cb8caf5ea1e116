"""
Capacity ledger interface.
Allows swapping the counter store without changing admission logic.
"""

import enum
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional


class ReservationResult(str, enum.Enum):
    RESERVED = "reserved"
    AT_CAPACITY = "at_capacity"

    def __bool__(self) -> bool:
        return self is ReservationResult.RESERVED


@dataclass(frozen=True)
class Occupancy:
    unit_id: str
    current: int
    max: Optional[int]  # None = unlimited

    @property
    def available(self) -> Optional[int]:
        if self.max is None:
            return None
        return max(0, self.max - self.current)

    @property
    def is_full(self) -> bool:
        return self.max is not None and self.current >= self.max


class CapacityLedger(ABC):
    """
    Authoritative occupancy per admission unit (event or track).

    Implementations must make try_reserve linearizable per unit: two
    concurrent reservations never both succeed when one slot remains.
    """

    @abstractmethod
    async def register(self, unit_id: str, unit_type: str, capacity: Optional[int]) -> None:
        """Create the counter for a unit. Idempotent."""

    @abstractmethod
    async def set_capacity(self, unit_id: str, capacity: Optional[int]) -> bool:
        """
        Change the limit of a unit.

        Returns:
            False if the new limit is below current occupancy (nothing changed)
        """

    @abstractmethod
    async def try_reserve(self, unit_id: str, holder: str, amount: int = 1) -> ReservationResult:
        """
        Atomically take `amount` slots on behalf of `holder`.

        Args:
            unit_id: Event or track id
            holder: Stable key of the reservation owner
            amount: Slots to take

        Returns:
            RESERVED, or AT_CAPACITY if the unit cannot take `amount` more
        """

    @abstractmethod
    async def release(self, unit_id: str, holder: str) -> None:
        """Give back the holder's slots. Never rejected, floors at zero."""

    @abstractmethod
    async def occupancy_of(self, unit_id: str) -> Occupancy:
        """Read-only snapshot."""

    @abstractmethod
    async def recount(self, unit_id: str) -> Occupancy:
        """Reconcile occupancy with live reservations."""

    @abstractmethod
    async def units_held_by(self, holder: str) -> list[tuple[str, str]]:
        """(unit_id, unit_type) pairs the holder currently has reservations on."""
