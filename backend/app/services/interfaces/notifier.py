"""
Notification collaborator interface.
Delivery (push, email) happens outside this service.
"""

from abc import ABC, abstractmethod
from typing import Optional


class Notifier(ABC):
    @abstractmethod
    async def notify_attending(self, user_id: str, event_id: str, track_id: Optional[str]) -> None:
        pass
