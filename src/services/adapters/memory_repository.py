"""
In-Memory Claim Repository.

Demo-mode store backing tests and local runs. Claims are deep-copied on the
way in and out, and every write is checked against its precondition under an
asyncio lock, so it behaves like a real store with optimistic concurrency.
"""

import asyncio
from typing import Iterable, Optional

from src.schemas.claim import Claim
from src.services.adapters.base import (
    ClaimQuery,
    ClaimRepository,
    WritePrecondition,
    matches_query,
    order_and_limit,
)
from src.utils.errors import AlreadyExistsError, ConcurrentModificationError, NotFoundError
from src.utils.logging import get_logger

logger = get_logger(__name__)


class InMemoryClaimRepository(ClaimRepository):
    """Dict-backed claim store."""

    def __init__(self, claims: Optional[Iterable[Claim]] = None):
        self._claims: dict[str, Claim] = {}
        self._lock = asyncio.Lock()
        if claims:
            self.seed(claims)

    def seed(self, claims: Iterable[Claim]) -> None:
        """Load claims without going through insert (test fixtures, demo data)."""
        for claim in claims:
            self._claims[claim.id] = claim.model_copy(deep=True)

    def clear(self) -> None:
        self._claims.clear()

    def count(self) -> int:
        return len(self._claims)

    @staticmethod
    def _copy(claim: Optional[Claim]) -> Optional[Claim]:
        return claim.model_copy(deep=True) if claim is not None else None

    async def find_by_id(self, claim_id: str) -> Optional[Claim]:
        return self._copy(self._claims.get(claim_id))

    async def find_by_claim_number(self, claim_number: str) -> Optional[Claim]:
        if not claim_number:
            return None
        for claim in self._claims.values():
            if claim.claim_number == claim_number:
                return self._copy(claim)
        return None

    async def find_by_clearinghouse_id(self, clearinghouse_claim_id: str) -> Optional[Claim]:
        if not clearinghouse_claim_id:
            return None
        for claim in self._claims.values():
            if claim.tracking.clearinghouse_claim_id == clearinghouse_claim_id:
                return self._copy(claim)
        return None

    async def find_many(self, claim_ids: Iterable[str]) -> list[Claim]:
        return [
            self._copy(self._claims[claim_id])
            for claim_id in claim_ids
            if claim_id in self._claims
        ]

    async def insert(self, claim: Claim) -> Claim:
        async with self._lock:
            if claim.id in self._claims:
                raise AlreadyExistsError("Claim", claim.id, existing_id=claim.id)
            if claim.claim_number:
                # Claim numbers are unique, as in the SQL store
                for stored in self._claims.values():
                    if stored.claim_number == claim.claim_number:
                        raise AlreadyExistsError(
                            "Claim", claim.claim_number, existing_id=stored.id
                        )
            self._claims[claim.id] = claim.model_copy(deep=True)
        logger.debug(f"Inserted claim {claim.id}")
        return self._copy(claim)

    async def save(
        self,
        claim: Claim,
        precondition: Optional[WritePrecondition] = None,
    ) -> Claim:
        async with self._lock:
            stored = self._claims.get(claim.id)
            if stored is None:
                raise NotFoundError("Claim", claim.id)

            if precondition is not None:
                if (
                    precondition.expected_status is not None
                    and stored.status != precondition.expected_status
                ):
                    raise ConcurrentModificationError(
                        claim.id,
                        expected=precondition.expected_status,
                        actual=stored.status,
                    )
                if precondition.require_no_secondary and stored.cob.secondary_claim_id:
                    raise ConcurrentModificationError(
                        claim.id,
                        expected="no secondary claim",
                        actual=stored.cob.secondary_claim_id,
                    )

            self._claims[claim.id] = claim.model_copy(deep=True)
        return self._copy(claim)

    async def delete(self, claim_id: str) -> bool:
        async with self._lock:
            return self._claims.pop(claim_id, None) is not None

    async def query(self, query: ClaimQuery) -> list[Claim]:
        matched = [
            self._copy(claim)
            for claim in self._claims.values()
            if matches_query(claim, query)
        ]
        return order_and_limit(matched, query)

    async def list_all(self) -> list[Claim]:
        return [self._copy(claim) for claim in self._claims.values()]
