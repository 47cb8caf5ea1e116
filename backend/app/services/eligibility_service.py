"""
Eligibility gate: a user may only request admission with a complete profile.
"""

from dataclasses import dataclass, field
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.config import get_settings
from app.core.exceptions import IneligibleError, NotFoundError
from app.core.logging import get_logger
from app.db.session import persistence_guard
from app.models.user import User
from app.services.interfaces.profile import ProfileCompleteness, ProfileProvider

logger = get_logger(__name__)
settings = get_settings()

FIELD_LABELS = {
    "first_name": "First Name",
    "last_name": "Last Name",
    "phone_number": "Phone Number",
    "email": "Email",
    "t_shirt_size": "T-Shirt Size",
    "dietary_restrictions": "Dietary Restrictions",
    "accessibility_needs": "Accessibility Needs",
}


def completeness_of(values: dict[str, Optional[str]], required: list[str]) -> ProfileCompleteness:
    """A field counts as missing when it is None or blank."""
    missing = [
        name for name in required
        if values.get(name) is None or not str(values.get(name)).strip()
    ]
    percent = round((len(required) - len(missing)) / len(required) * 100) if required else 100
    return ProfileCompleteness(missing_fields=missing, percent=percent, labels=FIELD_LABELS)


class DatabaseProfileProvider(ProfileProvider):
    """Reads profile fields from the `users` table."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        required_fields: Optional[list[str]] = None,
    ):
        self.session_factory = session_factory
        self.required_fields = required_fields or list(settings.PROFILE_REQUIRED_FIELDS)

    async def check_completeness(self, user_id: str) -> ProfileCompleteness:
        with persistence_guard("profile.check_completeness"):
            async with self.session_factory() as session:
                result = await session.execute(select(User).where(User.id == user_id))
                user = result.scalar_one_or_none()

        if user is None:
            raise NotFoundError("User", user_id)

        values = {name: getattr(user, name, None) for name in self.required_fields}
        return completeness_of(values, self.required_fields)


@dataclass(frozen=True)
class Eligibility:
    eligible: bool
    missing_fields: list[str] = field(default_factory=list)
    missing_labels: list[str] = field(default_factory=list)
    percent: int = 100


class EligibilityGate:
    """Pure predicate over the profile collaborator. No side effects."""

    def __init__(self, profiles: ProfileProvider):
        self.profiles = profiles

    async def check_eligibility(self, user_id: str, event_id: str) -> Eligibility:
        completeness = await self.profiles.check_completeness(user_id)
        if completeness.is_complete:
            return Eligibility(eligible=True, percent=completeness.percent)

        logger.info(
            "eligibility_failed",
            user_id=user_id,
            event_id=event_id,
            missing_fields=completeness.missing_fields,
            percent=completeness.percent,
        )
        return Eligibility(
            eligible=False,
            missing_fields=list(completeness.missing_fields),
            missing_labels=completeness.missing_labels,
            percent=completeness.percent,
        )

    async def ensure_eligible(self, user_id: str, event_id: str) -> None:
        """Raises IneligibleError listing the missing fields."""
        eligibility = await self.check_eligibility(user_id, event_id)
        if not eligibility.eligible:
            raise IneligibleError(
                eligibility.missing_fields,
                labels=eligibility.missing_labels,
                percent=eligibility.percent,
            )
