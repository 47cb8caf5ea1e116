"""
Default attending notifier.

Push/email delivery is owned by another service; here we only emit a
structured log line that the delivery pipeline tails.
"""

from typing import Optional

from app.core.logging import get_logger
from app.services.interfaces.notifier import Notifier

logger = get_logger(__name__)


class LoggingNotifier(Notifier):
    async def notify_attending(self, user_id: str, event_id: str, track_id: Optional[str]) -> None:
        logger.info("notify_attending", user_id=user_id, event_id=event_id, track_id=track_id)
