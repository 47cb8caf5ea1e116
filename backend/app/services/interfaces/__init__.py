"""
Service interfaces for dependency inversion.
Allows swapping implementations without changing business logic.
"""

from .ledger import CapacityLedger, Occupancy, ReservationResult
from .profile import ProfileCompleteness, ProfileProvider
from .notifier import Notifier

__all__ = [
    'CapacityLedger', 'Occupancy', 'ReservationResult',
    'ProfileCompleteness', 'ProfileProvider',
    'Notifier',
]
