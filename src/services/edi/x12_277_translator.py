"""
X12 277 Claim Status Response Translator.

Maps payer claim status codes onto internal claim statuses and applies a
logical 277 response batch to stored claims. Only the logical content of
the response is handled here; segment-level parsing is a clearinghouse
concern.

Each response item is independent: whatever fails for one item (no matching
claim, an illegal transition, malformed item data, a store error) is recorded
on that item's result and the batch moves on.
"""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import IntEnum
from typing import TYPE_CHECKING, List, Optional

from pydantic import ValidationError as PydanticValidationError

from src.core.enums import ClaimStatus, StatusChangeSource
from src.schemas.claim import Claim
from src.services.adapters.base import ClaimRepository
from src.utils.errors import ClaimLifecycleError, ErrorKind, UnexpectedError
from src.utils.logging import get_logger

if TYPE_CHECKING:
    from src.services.claim_state_machine import ClaimStatusEngine

logger = get_logger(__name__)


# =============================================================================
# Status Code Tables
# =============================================================================


class X277StatusCode(IntEnum):
    """Payer claim status codes carried in a 277 response."""

    # Acknowledgement
    ACK_FORWARDED = 1
    ACK_RECEIPT = 2
    ACK_ACCEPTED = 3
    ACK_REJECTED = 4
    # Finalized / summary
    FINALIZED_PAYMENT = 5
    FINALIZED_DENIAL = 6
    FINALIZED_PARTIAL_PAYMENT = 7
    STATUS_PENDING = 8
    STATUS_FINALIZED = 9
    # Processing detail
    ACCEPTED_FOR_PROCESSING = 10
    PENDING_AWAITING_INFO = 11
    PENDING_UNDER_REVIEW = 12
    PENDING_PRICING = 13
    PENDING_COB = 14
    SUSPENDED_AWAITING_PROVIDER_INFO = 15
    SUSPENDED_INVESTIGATION = 16
    SUSPENDED_MEDICAL_DIRECTOR_REVIEW = 17
    PAID_FULL = 18
    PAID_PARTIAL = 19
    DENIED_NOT_COVERED = 20
    DENIED_PRIOR_AUTH_REQUIRED = 21
    DENIED_SERVICE_NOT_COVERED = 22
    DENIED_TIMELY_FILING = 23
    DENIED_DUPLICATE = 24
    PENDED_INFO_REQUESTED = 25
    PROCESSED_AWAITING_PAYMENT = 26
    PROCESSED_PAYMENT_ISSUED = 27


STATUS_CODE_DESCRIPTIONS: dict[X277StatusCode, str] = {
    X277StatusCode.ACK_FORWARDED: "Acknowledgement/Forwarded",
    X277StatusCode.ACK_RECEIPT: "Acknowledgement/Receipt",
    X277StatusCode.ACK_ACCEPTED: "Acknowledgement/Accepted",
    X277StatusCode.ACK_REJECTED: "Acknowledgement/Rejected",
    X277StatusCode.FINALIZED_PAYMENT: "Finalized/Payment",
    X277StatusCode.FINALIZED_DENIAL: "Finalized/Denial",
    X277StatusCode.FINALIZED_PARTIAL_PAYMENT: "Finalized/Partial Payment",
    X277StatusCode.STATUS_PENDING: "Status/Pending",
    X277StatusCode.STATUS_FINALIZED: "Status/Finalized",
    X277StatusCode.ACCEPTED_FOR_PROCESSING: "Accepted for Processing",
    X277StatusCode.PENDING_AWAITING_INFO: "Pending: Awaiting Information",
    X277StatusCode.PENDING_UNDER_REVIEW: "Pending: Under Review",
    X277StatusCode.PENDING_PRICING: "Pending: Pricing",
    X277StatusCode.PENDING_COB: "Pending: Coordination of Benefits",
    X277StatusCode.SUSPENDED_AWAITING_PROVIDER_INFO: "Suspended: Awaiting Information from Provider",
    X277StatusCode.SUSPENDED_INVESTIGATION: "Suspended: Under Investigation",
    X277StatusCode.SUSPENDED_MEDICAL_DIRECTOR_REVIEW: "Suspended: Review by Medical Director",
    X277StatusCode.PAID_FULL: "Paid: Full Payment",
    X277StatusCode.PAID_PARTIAL: "Paid: Partial Payment",
    X277StatusCode.DENIED_NOT_COVERED: "Denied: Patient Not Covered",
    X277StatusCode.DENIED_PRIOR_AUTH_REQUIRED: "Denied: Prior Authorization Required",
    X277StatusCode.DENIED_SERVICE_NOT_COVERED: "Denied: Service Not Covered",
    X277StatusCode.DENIED_TIMELY_FILING: "Denied: Timely Filing Limit",
    X277StatusCode.DENIED_DUPLICATE: "Denied: Duplicate Claim",
    X277StatusCode.PENDED_INFO_REQUESTED: "Pended: Additional Information Requested",
    X277StatusCode.PROCESSED_AWAITING_PAYMENT: "Processed: Awaiting Payment",
    X277StatusCode.PROCESSED_PAYMENT_ISSUED: "Processed: Payment Issued",
}

STATUS_CODE_MAPPING: dict[X277StatusCode, ClaimStatus] = {
    X277StatusCode.ACK_FORWARDED: ClaimStatus.SUBMITTED,
    X277StatusCode.ACK_RECEIPT: ClaimStatus.ACKNOWLEDGED,
    X277StatusCode.ACK_ACCEPTED: ClaimStatus.ACKNOWLEDGED,
    X277StatusCode.ACK_REJECTED: ClaimStatus.REJECTED,
    X277StatusCode.FINALIZED_PAYMENT: ClaimStatus.PAID,
    X277StatusCode.FINALIZED_DENIAL: ClaimStatus.DENIED,
    X277StatusCode.FINALIZED_PARTIAL_PAYMENT: ClaimStatus.PARTIALLY_PAID,
    X277StatusCode.STATUS_PENDING: ClaimStatus.PENDING,
    X277StatusCode.STATUS_FINALIZED: ClaimStatus.CLOSED,
    X277StatusCode.ACCEPTED_FOR_PROCESSING: ClaimStatus.ACKNOWLEDGED,
    X277StatusCode.PENDING_AWAITING_INFO: ClaimStatus.PENDED,
    X277StatusCode.PENDING_UNDER_REVIEW: ClaimStatus.UNDER_REVIEW,
    X277StatusCode.PENDING_PRICING: ClaimStatus.PENDING,
    X277StatusCode.PENDING_COB: ClaimStatus.PENDING,
    X277StatusCode.SUSPENDED_AWAITING_PROVIDER_INFO: ClaimStatus.PENDED,
    X277StatusCode.SUSPENDED_INVESTIGATION: ClaimStatus.UNDER_REVIEW,
    X277StatusCode.SUSPENDED_MEDICAL_DIRECTOR_REVIEW: ClaimStatus.UNDER_REVIEW,
    X277StatusCode.PAID_FULL: ClaimStatus.PAID,
    X277StatusCode.PAID_PARTIAL: ClaimStatus.PARTIALLY_PAID,
    X277StatusCode.DENIED_NOT_COVERED: ClaimStatus.DENIED,
    X277StatusCode.DENIED_PRIOR_AUTH_REQUIRED: ClaimStatus.DENIED,
    X277StatusCode.DENIED_SERVICE_NOT_COVERED: ClaimStatus.DENIED,
    X277StatusCode.DENIED_TIMELY_FILING: ClaimStatus.DENIED,
    X277StatusCode.DENIED_DUPLICATE: ClaimStatus.REJECTED,
    X277StatusCode.PENDED_INFO_REQUESTED: ClaimStatus.PENDED,
    X277StatusCode.PROCESSED_AWAITING_PAYMENT: ClaimStatus.APPROVED_FOR_PAYMENT,
    X277StatusCode.PROCESSED_PAYMENT_ISSUED: ClaimStatus.PAID,
}

for _table in (STATUS_CODE_DESCRIPTIONS, STATUS_CODE_MAPPING):
    _missing = set(X277StatusCode) - set(_table)
    if _missing:
        raise RuntimeError(f"277 status table missing codes: {sorted(_missing)}")

UNRECOGNIZED_CODE_STATUS = ClaimStatus.PENDING


def describe_status_code(code: int) -> str:
    """Description for a 277 code, or an 'unrecognized' note."""
    try:
        return STATUS_CODE_DESCRIPTIONS[X277StatusCode(code)]
    except ValueError:
        return f"Unrecognized status code {code}"


# =============================================================================
# Data Classes
# =============================================================================


@dataclass
class TranslatedStatus:
    """Internal reading of one payer status code."""

    code: int
    description: str
    status: ClaimStatus
    recognized: bool


@dataclass
class ClaimStatusItem:
    """One claim entry in a logical 277 response."""

    status_code: int
    claim_number: Optional[str] = None
    claim_id: Optional[str] = None  # Clearinghouse-assigned ID
    status_description: Optional[str] = None
    trace_number: Optional[str] = None
    payment_amount: Optional[Decimal] = None
    payment_date: Optional[datetime] = None
    check_number: Optional[str] = None
    era_number: Optional[str] = None
    denial_reason: Optional[str] = None
    denial_code: Optional[str] = None


@dataclass
class ClaimStatusResponse:
    """Logical 277 response batch."""

    claims: List[ClaimStatusItem] = field(default_factory=list)
    trace_number: Optional[str] = None


@dataclass
class ItemResult:
    """Outcome for one response item; keeps the inbound key for reconciliation."""

    success: bool
    claim_number: Optional[str] = None
    claim_id: Optional[str] = None
    status_code: Optional[int] = None
    new_status: Optional[ClaimStatus] = None
    previous_status: Optional[ClaimStatus] = None
    error_kind: Optional[ErrorKind] = None
    error: Optional[str] = None


@dataclass
class Response277Result:
    """Aggregate outcome of a 277 batch."""

    total: int = 0
    successful: int = 0
    failed: int = 0
    results: List[ItemResult] = field(default_factory=list)


# =============================================================================
# Translator
# =============================================================================


class StatusCodeTranslator:
    """
    Drives the status engine from payer status responses.

    Args:
        engine: ClaimStatusEngine applying the transitions
        repository: Claim store used to resolve response items
        concurrency: Max items processed at once (1 = sequential)
    """

    def __init__(
        self,
        engine: "ClaimStatusEngine",
        repository: ClaimRepository,
        concurrency: int = 1,
    ):
        self._engine = engine
        self._repository = repository
        self._concurrency = max(1, concurrency)

    @staticmethod
    def translate(code: int) -> TranslatedStatus:
        """Map a payer code to an internal status; unknown codes map to pending."""
        try:
            known = X277StatusCode(code)
        except ValueError:
            return TranslatedStatus(
                code=code,
                description=describe_status_code(code),
                status=UNRECOGNIZED_CODE_STATUS,
                recognized=False,
            )
        return TranslatedStatus(
            code=int(known),
            description=STATUS_CODE_DESCRIPTIONS[known],
            status=STATUS_CODE_MAPPING[known],
            recognized=True,
        )

    async def _resolve(self, item: ClaimStatusItem) -> Optional[Claim]:
        claim = None
        if item.claim_number:
            claim = await self._repository.find_by_claim_number(item.claim_number)
        if claim is None and item.claim_id:
            claim = await self._repository.find_by_clearinghouse_id(item.claim_id)
        return claim

    async def _process_item(
        self,
        item: ClaimStatusItem,
        trace_number: Optional[str],
    ) -> ItemResult:
        # Imported here: the engine module depends on this one for code descriptions
        from src.services.claim_state_machine import StatusUpdateData

        result = ItemResult(
            success=False,
            claim_number=item.claim_number,
            claim_id=item.claim_id,
            status_code=item.status_code,
        )

        try:
            claim = await self._resolve(item)
            if claim is None:
                result.error_kind = ErrorKind.NOT_FOUND
                result.error = "Claim not found"
                logger.warning(
                    f"277 item not matched: claim_number={item.claim_number} "
                    f"claim_id={item.claim_id}"
                )
                return result

            translated = self.translate(item.status_code)
            result.claim_number = result.claim_number or claim.claim_number
            result.claim_id = result.claim_id or claim.tracking.clearinghouse_claim_id
            result.previous_status = claim.status

            description = translated.description
            if translated.recognized and item.status_description:
                description = item.status_description

            denial_reason = item.denial_reason
            if translated.status in (ClaimStatus.DENIED, ClaimStatus.REJECTED) and not denial_reason:
                denial_reason = translated.description

            data = StatusUpdateData(
                source=StatusChangeSource.EDI_277,
                reference_number=item.trace_number or trace_number,
                status_code=item.status_code,
                status_code_description=description,
                notes=None if translated.recognized else translated.description,
                payment_amount=item.payment_amount,
                payment_date=item.payment_date,
                check_number=item.check_number,
                era_number=item.era_number,
                denial_reason=denial_reason,
                denial_code=item.denial_code,
                pend_reason=(
                    translated.description
                    if translated.status == ClaimStatus.PENDED
                    else None
                ),
            )

            update = await self._engine.update_status(
                claim.id, translated.status, data, actor_id=None
            )
            result.success = True
            result.new_status = update.claim.status

        except ClaimLifecycleError as e:
            result.error_kind = e.kind
            result.error = e.message
            logger.warning(
                f"277 item failed for {item.claim_number or item.claim_id}: "
                f"{e.kind.value}: {e.message}"
            )
        except PydanticValidationError as e:
            result.error_kind = ErrorKind.VALIDATION
            result.error = "; ".join(
                f"{'.'.join(str(part) for part in err['loc'])}: {err['msg']}"
                for err in e.errors()
            )
            logger.warning(
                f"277 item rejected for {item.claim_number or item.claim_id}: {result.error}"
            )
        except Exception as e:
            error = UnexpectedError(e)
            result.error_kind = error.kind
            result.error = error.message
            logger.exception(
                f"277 item failed unexpectedly for {item.claim_number or item.claim_id}: {e}"
            )

        return result

    async def process_277_response(self, batch: ClaimStatusResponse) -> Response277Result:
        """
        Apply every item of a 277 response.

        Args:
            batch: Logical 277 response

        Returns:
            Response277Result with one result per item, in input order
        """
        if self._concurrency > 1:
            semaphore = asyncio.Semaphore(self._concurrency)

            async def process_with_semaphore(item: ClaimStatusItem) -> ItemResult:
                async with semaphore:
                    return await self._process_item(item, batch.trace_number)

            results = list(
                await asyncio.gather(*[process_with_semaphore(i) for i in batch.claims])
            )
        else:
            results = [
                await self._process_item(item, batch.trace_number) for item in batch.claims
            ]

        outcome = Response277Result(
            total=len(results),
            successful=sum(1 for r in results if r.success),
            failed=sum(1 for r in results if not r.success),
            results=results,
        )
        logger.info(
            f"Processed 277 response: {outcome.successful}/{outcome.total} applied, "
            f"{outcome.failed} failed"
        )
        return outcome
