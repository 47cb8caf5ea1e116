"""
Shared FastAPI dependencies.
"""

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.db.session import get_session_factory
from app.services.admission_service import AdmissionOrchestrator


def get_orchestrator(
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
) -> AdmissionOrchestrator:
    """
    Orchestrator bound to the request's session factory.

    RSVP endpoints use this instead of `get_db`: each ledger and RSVP step
    runs in its own short transaction.
    """
    return AdmissionOrchestrator(session_factory)
