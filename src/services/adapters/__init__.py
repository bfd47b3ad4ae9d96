"""
Claim Store Adapters for Demo/Live Mode.

Provides the repository abstraction the lifecycle services persist through,
with an in-memory store (demo/tests) and a SQL store (live).
"""

from src.services.adapters.base import (
    AdapterMode,
    ClaimQuery,
    ClaimRepository,
    WritePrecondition,
)
from src.services.adapters.memory_repository import InMemoryClaimRepository
from src.services.adapters.sql_repository import SqlClaimRepository


def create_claim_repository(
    mode: AdapterMode = AdapterMode.DEMO,
    session_maker=None,
) -> ClaimRepository:
    """
    Build a claim repository for the requested mode.

    Args:
        mode: DEMO for the in-memory store, LIVE for SQL
        session_maker: async_sessionmaker for LIVE mode (defaults to the
            configured database)

    Returns:
        ClaimRepository implementation
    """
    if mode == AdapterMode.LIVE:
        if session_maker is None:
            from src.db.connection import get_session_maker

            session_maker = get_session_maker()
        return SqlClaimRepository(session_maker)
    return InMemoryClaimRepository()


__all__ = [
    # Base
    "AdapterMode",
    "ClaimQuery",
    "ClaimRepository",
    "WritePrecondition",
    # Implementations
    "InMemoryClaimRepository",
    "SqlClaimRepository",
    "create_claim_repository",
]
