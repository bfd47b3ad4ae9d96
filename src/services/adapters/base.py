"""
Claim Repository Interface.

Abstract persistence boundary for the lifecycle services. The state engine,
status translator, deadline tracker and secondary-claim generator only talk
to this interface, so they run unchanged against the in-memory store (tests,
demo) or the SQL store (live).
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Iterable, Optional

from src.core.enums import ClaimStatus
from src.schemas.claim import Claim
from src.utils.clock import ensure_utc


class AdapterMode(str, Enum):
    """Repository backing store."""

    DEMO = "demo"  # In-memory
    LIVE = "live"  # SQL database


@dataclass(frozen=True)
class WritePrecondition:
    """
    Optimistic-concurrency guard evaluated against the stored claim at write time.

    Attributes:
        expected_status: Stored status must still equal this value
        require_no_secondary: Stored ``cob.secondary_claim_id`` must still be unset
    """

    expected_status: Optional[ClaimStatus] = None
    require_no_secondary: bool = False


@dataclass
class ClaimQuery:
    """Filter for status / date-range queries."""

    statuses: Optional[frozenset[ClaimStatus]] = None
    exclude_statuses: Optional[frozenset[ClaimStatus]] = None
    payer_id: Optional[str] = None
    submitted_from: Optional[datetime] = None
    submitted_to: Optional[datetime] = None
    require_submitted_date: bool = False
    is_secondary: Optional[bool] = None
    has_secondary_insurance: Optional[bool] = None
    limit: Optional[int] = None
    order_by_submitted: str = field(default="asc")

    def __post_init__(self):
        if self.statuses is not None:
            self.statuses = frozenset(self.statuses)
        if self.exclude_statuses is not None:
            self.exclude_statuses = frozenset(self.exclude_statuses)
        if self.order_by_submitted not in ("asc", "desc"):
            raise ValueError("order_by_submitted must be 'asc' or 'desc'")


class ClaimRepository(ABC):
    """
    Abstract claim store.

    Implementations must return detached copies: mutating a returned claim
    never changes stored state until ``save`` succeeds.
    """

    @abstractmethod
    async def find_by_id(self, claim_id: str) -> Optional[Claim]:
        """Get claim by ID."""
        pass

    @abstractmethod
    async def find_by_claim_number(self, claim_number: str) -> Optional[Claim]:
        """Get claim by provider-assigned claim number."""
        pass

    @abstractmethod
    async def find_by_clearinghouse_id(self, clearinghouse_claim_id: str) -> Optional[Claim]:
        """Get claim by clearinghouse-assigned claim ID."""
        pass

    @abstractmethod
    async def find_many(self, claim_ids: Iterable[str]) -> list[Claim]:
        """Get the claims that exist among ``claim_ids`` (missing IDs are skipped)."""
        pass

    @abstractmethod
    async def insert(self, claim: Claim) -> Claim:
        """Store a new claim. Raises AlreadyExistsError on duplicate ID."""
        pass

    @abstractmethod
    async def save(
        self,
        claim: Claim,
        precondition: Optional[WritePrecondition] = None,
    ) -> Claim:
        """
        Persist an existing claim.

        Raises:
            NotFoundError: claim does not exist
            ConcurrentModificationError: precondition no longer holds
        """
        pass

    @abstractmethod
    async def delete(self, claim_id: str) -> bool:
        """Remove a claim. Only used to compensate a failed multi-step write."""
        pass

    @abstractmethod
    async def query(self, query: ClaimQuery) -> list[Claim]:
        """Status / payer / submission-date range query."""
        pass

    @abstractmethod
    async def list_all(self) -> list[Claim]:
        """All stored claims."""
        pass

    async def find_ready_for_secondary(self) -> list[Claim]:
        """Paid primary claims with EOB on file and no secondary claim yet."""
        candidates = await self.query(
            ClaimQuery(
                statuses=frozenset({ClaimStatus.PAID}),
                has_secondary_insurance=True,
            )
        )
        return [
            claim
            for claim in candidates
            if claim.cob.is_primary
            and claim.cob.primary_payment.eob_received
            and claim.cob.secondary_claim_id is None
        ]


def matches_query(claim: Claim, query: ClaimQuery) -> bool:
    """Evaluate a ClaimQuery against one claim (shared by in-memory filtering)."""
    if query.statuses is not None and claim.status not in query.statuses:
        return False
    if query.exclude_statuses is not None and claim.status in query.exclude_statuses:
        return False
    if query.payer_id is not None and claim.insurance.payer_id != query.payer_id:
        return False
    if query.is_secondary is not None and claim.cob.is_secondary != query.is_secondary:
        return False
    if (
        query.has_secondary_insurance is not None
        and claim.secondary_insurance.has_secondary != query.has_secondary_insurance
    ):
        return False

    submitted = claim.tracking.submitted_date
    needs_date = (
        query.require_submitted_date
        or query.submitted_from is not None
        or query.submitted_to is not None
    )
    if needs_date and submitted is None:
        return False
    if submitted is not None:
        submitted = ensure_utc(submitted)
    if query.submitted_from is not None and submitted < ensure_utc(query.submitted_from):
        return False
    if query.submitted_to is not None and submitted > ensure_utc(query.submitted_to):
        return False
    return True


def order_and_limit(claims: list[Claim], query: ClaimQuery) -> list[Claim]:
    """Sort by submission date (undated claims last) and apply the limit."""
    dated = [c for c in claims if c.tracking.submitted_date is not None]
    undated = [c for c in claims if c.tracking.submitted_date is None]
    dated.sort(
        key=lambda c: ensure_utc(c.tracking.submitted_date),
        reverse=query.order_by_submitted == "desc",
    )
    ordered = dated + undated
    if query.limit is not None:
        ordered = ordered[: query.limit]
    return ordered
