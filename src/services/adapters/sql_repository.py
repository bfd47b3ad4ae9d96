"""
SQL Claim Repository.

Live-mode store on async SQLAlchemy. Guarded writes are a single
``UPDATE claims SET ... WHERE id = :id AND status = :expected`` (plus
``AND secondary_claim_id IS NULL`` for secondary linking); a zero row count
means another writer got there first.
Source: https://docs.sqlalchemy.org/en/20/orm/queryguide/dml.html
"""

from typing import Any, Iterable, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.models.claim import ClaimRecord
from src.schemas.claim import Claim
from src.services.adapters.base import (
    ClaimQuery,
    ClaimRepository,
    WritePrecondition,
    matches_query,
    order_and_limit,
)
from src.utils.clock import ensure_utc
from src.utils.errors import AlreadyExistsError, ConcurrentModificationError, NotFoundError
from src.utils.logging import get_logger

logger = get_logger(__name__)


class SqlClaimRepository(ClaimRepository):
    """Claim store backed by the ``claims`` table."""

    def __init__(self, session_maker: async_sessionmaker[AsyncSession]):
        self._session_maker = session_maker

    # =========================================================================
    # Mapping
    # =========================================================================

    @staticmethod
    def _columns(claim: Claim) -> dict[str, Any]:
        submitted = claim.tracking.submitted_date
        return {
            "claim_number": claim.claim_number,
            "clearinghouse_claim_id": claim.tracking.clearinghouse_claim_id,
            "status": claim.status.value,
            "payer_id": claim.insurance.payer_id,
            "submitted_date": ensure_utc(submitted) if submitted else None,
            "is_primary": claim.cob.is_primary,
            "is_secondary": claim.cob.is_secondary,
            "has_secondary_insurance": claim.secondary_insurance.has_secondary,
            "secondary_claim_id": claim.cob.secondary_claim_id,
            "document": claim.model_dump(mode="json"),
        }

    @staticmethod
    def _to_claim(record: Optional[ClaimRecord]) -> Optional[Claim]:
        if record is None:
            return None
        return Claim.model_validate(record.document)

    async def _find_one(self, *criteria) -> Optional[Claim]:
        async with self._session_maker() as session:
            result = await session.execute(select(ClaimRecord).where(*criteria).limit(1))
            return self._to_claim(result.scalar_one_or_none())

    # =========================================================================
    # Reads
    # =========================================================================

    async def find_by_id(self, claim_id: str) -> Optional[Claim]:
        return await self._find_one(ClaimRecord.id == claim_id)

    async def find_by_claim_number(self, claim_number: str) -> Optional[Claim]:
        if not claim_number:
            return None
        return await self._find_one(ClaimRecord.claim_number == claim_number)

    async def find_by_clearinghouse_id(self, clearinghouse_claim_id: str) -> Optional[Claim]:
        if not clearinghouse_claim_id:
            return None
        return await self._find_one(
            ClaimRecord.clearinghouse_claim_id == clearinghouse_claim_id
        )

    async def find_many(self, claim_ids: Iterable[str]) -> list[Claim]:
        ids = list(claim_ids)
        if not ids:
            return []
        async with self._session_maker() as session:
            result = await session.execute(select(ClaimRecord).where(ClaimRecord.id.in_(ids)))
            by_id = {record.id: record for record in result.scalars().all()}
        # Preserve caller order
        return [self._to_claim(by_id[claim_id]) for claim_id in ids if claim_id in by_id]

    async def query(self, query: ClaimQuery) -> list[Claim]:
        stmt = select(ClaimRecord)
        if query.statuses is not None:
            stmt = stmt.where(ClaimRecord.status.in_([s.value for s in query.statuses]))
        if query.exclude_statuses is not None:
            stmt = stmt.where(
                ClaimRecord.status.notin_([s.value for s in query.exclude_statuses])
            )
        if query.payer_id is not None:
            stmt = stmt.where(ClaimRecord.payer_id == query.payer_id)
        if query.is_secondary is not None:
            stmt = stmt.where(ClaimRecord.is_secondary.is_(query.is_secondary))
        if query.has_secondary_insurance is not None:
            stmt = stmt.where(
                ClaimRecord.has_secondary_insurance.is_(query.has_secondary_insurance)
            )

        async with self._session_maker() as session:
            result = await session.execute(stmt)
            records = result.scalars().all()

        # Date bounds and ordering are applied on the documents so timezone
        # handling is identical across backends.
        claims = [self._to_claim(record) for record in records]
        return order_and_limit([c for c in claims if matches_query(c, query)], query)

    async def list_all(self) -> list[Claim]:
        async with self._session_maker() as session:
            result = await session.execute(select(ClaimRecord))
            return [self._to_claim(record) for record in result.scalars().all()]

    # =========================================================================
    # Writes
    # =========================================================================

    async def insert(self, claim: Claim) -> Claim:
        record = ClaimRecord(id=claim.id, **self._columns(claim))
        async with self._session_maker() as session:
            session.add(record)
            try:
                await session.commit()
            except IntegrityError as e:
                await session.rollback()
                logger.warning(f"Duplicate claim insert rejected: {claim.id}")
                raise AlreadyExistsError(
                    "Claim", claim.claim_number or claim.id, existing_id=claim.id
                ) from e
        return claim.model_copy(deep=True)

    async def save(
        self,
        claim: Claim,
        precondition: Optional[WritePrecondition] = None,
    ) -> Claim:
        stmt = update(ClaimRecord).where(ClaimRecord.id == claim.id)
        if precondition is not None:
            if precondition.expected_status is not None:
                stmt = stmt.where(ClaimRecord.status == precondition.expected_status.value)
            if precondition.require_no_secondary:
                stmt = stmt.where(ClaimRecord.secondary_claim_id.is_(None))
        stmt = stmt.values(**self._columns(claim)).execution_options(
            synchronize_session=False
        )

        async with self._session_maker() as session:
            result = await session.execute(stmt)
            if result.rowcount == 0:
                await session.rollback()
                current = await session.get(ClaimRecord, claim.id)
                if current is None:
                    raise NotFoundError("Claim", claim.id)
                if (
                    precondition is not None
                    and precondition.require_no_secondary
                    and current.secondary_claim_id
                ):
                    raise ConcurrentModificationError(
                        claim.id,
                        expected="no secondary claim",
                        actual=current.secondary_claim_id,
                    )
                raise ConcurrentModificationError(
                    claim.id,
                    expected=precondition.expected_status if precondition else None,
                    actual=current.status,
                )
            await session.commit()
        return claim.model_copy(deep=True)

    async def delete(self, claim_id: str) -> bool:
        async with self._session_maker() as session:
            record = await session.get(ClaimRecord, claim_id)
            if record is None:
                return False
            await session.delete(record)
            await session.commit()
        logger.info(f"Deleted claim {claim_id}")
        return True
