"""
Tests for the profile-completeness eligibility gate.
"""

import pytest

from app.core.exceptions import IneligibleError, NotFoundError
from app.services.eligibility_service import (
    FIELD_LABELS,
    DatabaseProfileProvider,
    EligibilityGate,
    completeness_of,
)
from app.services.interfaces.profile import ProfileCompleteness, ProfileProvider

REQUIRED = ["first_name", "last_name", "phone_number", "email"]


def test_completeness_counts_blank_as_missing():
    result = completeness_of(
        {"first_name": "Ada", "last_name": "  ", "phone_number": None, "email": "ada@example.com"},
        REQUIRED,
    )
    assert result.missing_fields == ["last_name", "phone_number"]
    assert result.percent == 50
    assert not result.is_complete
    assert result.missing_labels == ["Last Name", "Phone Number"]


def test_completeness_full_profile():
    result = completeness_of({name: "x" for name in REQUIRED}, REQUIRED)
    assert result.is_complete
    assert result.percent == 100
    assert result.missing_fields == []


def test_completeness_rounds_percent():
    result = completeness_of({"first_name": "Ada"}, REQUIRED[:3])
    assert result.percent == 33


class StaticProfiles(ProfileProvider):
    def __init__(self, missing):
        self.missing = missing
        self.calls = 0

    async def check_completeness(self, user_id):
        self.calls += 1
        return ProfileCompleteness(missing_fields=self.missing, percent=60, labels=FIELD_LABELS)


@pytest.mark.asyncio
async def test_gate_is_a_pure_predicate():
    """The gate only asks the profile collaborator; it never writes."""
    profiles = StaticProfiles(["phone_number"])
    gate = EligibilityGate(profiles)

    eligibility = await gate.check_eligibility("user", "event")

    assert eligibility.eligible is False
    assert eligibility.missing_fields == ["phone_number"]
    assert eligibility.percent == 60
    assert profiles.calls == 1


@pytest.mark.asyncio
async def test_ensure_eligible_raises_with_missing_fields():
    gate = EligibilityGate(StaticProfiles(["phone_number", "t_shirt_size"]))

    with pytest.raises(IneligibleError) as exc_info:
        await gate.ensure_eligible("user", "event")

    error = exc_info.value
    assert error.missing_fields == ["phone_number", "t_shirt_size"]
    assert "Phone Number" in error.message
    assert "T-Shirt Size" in error.message
    assert error.details["completion_percentage"] == 60


@pytest.mark.asyncio
async def test_database_provider_reads_user_profile(session_factory, user_id, incomplete_user_id):
    provider = DatabaseProfileProvider(session_factory)

    complete = await provider.check_completeness(user_id)
    assert complete.is_complete

    incomplete = await provider.check_completeness(incomplete_user_id)
    assert not incomplete.is_complete
    assert "phone_number" in incomplete.missing_fields
    assert "first_name" not in incomplete.missing_fields


@pytest.mark.asyncio
async def test_database_provider_custom_required_fields(session_factory, incomplete_user_id):
    provider = DatabaseProfileProvider(session_factory, required_fields=["first_name"])
    assert (await provider.check_completeness(incomplete_user_id)).is_complete


@pytest.mark.asyncio
async def test_database_provider_unknown_user(session_factory):
    provider = DatabaseProfileProvider(session_factory)
    with pytest.raises(NotFoundError):
        await provider.check_completeness("no-such-user")
