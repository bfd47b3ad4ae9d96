"""
X12 277 Status Translator Tests.

Tests for:
- Status code tables
- Code translation, including unrecognized codes
- Batch application with per-item failure isolation
"""

from decimal import Decimal

import pytest

from src.core.enums import ClaimStatus, StatusChangeSource
from src.services.adapters.memory_repository import InMemoryClaimRepository
from src.services.claim_state_machine import ClaimStatusEngine
from src.services.edi.x12_277_translator import (
    STATUS_CODE_DESCRIPTIONS,
    STATUS_CODE_MAPPING,
    ClaimStatusItem,
    ClaimStatusResponse,
    StatusCodeTranslator,
    X277StatusCode,
    describe_status_code,
)
from src.utils.errors import ErrorKind
from tests.fixtures import make_claim


@pytest.fixture
def translator(repository, engine):
    return StatusCodeTranslator(engine, repository)


class TestStatusCodeTables:
    """Tests for the 277 status code tables."""

    def test_every_code_is_mapped_and_described(self):
        assert set(STATUS_CODE_MAPPING) == set(X277StatusCode)
        assert set(STATUS_CODE_DESCRIPTIONS) == set(X277StatusCode)

    def test_codes_run_from_1_to_27(self):
        assert sorted(int(c) for c in X277StatusCode) == list(range(1, 28))

    @pytest.mark.parametrize(
        "code,expected",
        [
            (1, ClaimStatus.SUBMITTED),
            (2, ClaimStatus.ACKNOWLEDGED),
            (4, ClaimStatus.REJECTED),
            (6, ClaimStatus.DENIED),
            (7, ClaimStatus.PARTIALLY_PAID),
            (9, ClaimStatus.CLOSED),
            (11, ClaimStatus.PENDED),
            (12, ClaimStatus.UNDER_REVIEW),
            (14, ClaimStatus.PENDING),
            (18, ClaimStatus.PAID),
            (19, ClaimStatus.PARTIALLY_PAID),
            (23, ClaimStatus.DENIED),
            (24, ClaimStatus.REJECTED),
            (26, ClaimStatus.APPROVED_FOR_PAYMENT),
            (27, ClaimStatus.PAID),
        ],
    )
    def test_selected_mappings(self, code, expected):
        assert StatusCodeTranslator.translate(code).status == expected

    def test_describe_known_and_unknown(self):
        assert describe_status_code(20) == "Denied: Patient Not Covered"
        assert describe_status_code(99) == "Unrecognized status code 99"


class TestTranslate:
    """Tests for single-code translation."""

    def test_recognized_code(self):
        translated = StatusCodeTranslator.translate(25)

        assert translated.recognized is True
        assert translated.status == ClaimStatus.PENDED
        assert translated.description == "Pended: Additional Information Requested"

    def test_unrecognized_code_maps_to_pending(self):
        translated = StatusCodeTranslator.translate(0)

        assert translated.recognized is False
        assert translated.status == ClaimStatus.PENDING
        assert translated.description == "Unrecognized status code 0"


class TestProcess277Response:
    """Tests for applying a 277 batch."""

    @pytest.mark.asyncio
    async def test_denial_defaults_reason_to_description(self, translator, repository):
        """Test a denial code without reason uses the code description."""
        claim = make_claim(status=ClaimStatus.ACKNOWLEDGED, claim_number="CLM-100")
        repository.seed([claim])

        result = await translator.process_277_response(
            ClaimStatusResponse(
                claims=[ClaimStatusItem(status_code=20, claim_number="CLM-100")],
                trace_number="TRN-1",
            )
        )

        assert result.total == 1 and result.successful == 1
        item = result.results[0]
        assert item.new_status == ClaimStatus.DENIED
        assert item.previous_status == ClaimStatus.ACKNOWLEDGED

        stored = await repository.find_by_id(claim.id)
        entry = stored.status_history[-1]
        assert entry.source == StatusChangeSource.EDI_277
        assert entry.changed_by is None
        assert entry.status_code == 20
        assert entry.denial_reason == "Denied: Patient Not Covered"
        assert entry.reference_number == "TRN-1"

    @pytest.mark.asyncio
    async def test_unrecognized_code_moves_to_pending_with_note(self, translator, repository):
        claim = make_claim(status=ClaimStatus.ACKNOWLEDGED, claim_number="CLM-101")
        repository.seed([claim])

        result = await translator.process_277_response(
            ClaimStatusResponse(claims=[ClaimStatusItem(status_code=99, claim_number="CLM-101")])
        )

        assert result.results[0].success is True
        stored = await repository.find_by_id(claim.id)
        entry = stored.status_history[-1]
        assert stored.status == ClaimStatus.PENDING
        assert entry.notes == "Unrecognized status code 99"
        assert entry.status_code_description == "Unrecognized status code 99"

    @pytest.mark.asyncio
    async def test_payment_code_records_payment(self, translator, repository):
        claim = make_claim(status=ClaimStatus.PENDING, claim_number="CLM-102")
        repository.seed([claim])

        await translator.process_277_response(
            ClaimStatusResponse(
                claims=[
                    ClaimStatusItem(
                        status_code=18,
                        claim_number="CLM-102",
                        payment_amount=Decimal("720.50"),
                        check_number="CHK-9",
                    )
                ]
            )
        )

        stored = await repository.find_by_id(claim.id)
        assert stored.status == ClaimStatus.PAID
        assert stored.amount_paid == Decimal("720.50")
        assert stored.payment.check_number == "CHK-9"

    @pytest.mark.asyncio
    async def test_pend_code_sets_pend_reason(self, translator, repository):
        claim = make_claim(status=ClaimStatus.ACKNOWLEDGED, claim_number="CLM-103")
        repository.seed([claim])

        await translator.process_277_response(
            ClaimStatusResponse(claims=[ClaimStatusItem(status_code=11, claim_number="CLM-103")])
        )

        stored = await repository.find_by_id(claim.id)
        assert stored.status == ClaimStatus.PENDED
        assert stored.status_history[-1].pend_reason == "Pending: Awaiting Information"

    @pytest.mark.asyncio
    async def test_payer_description_overrides_table(self, translator, repository):
        claim = make_claim(status=ClaimStatus.SUBMITTED, claim_number="CLM-104")
        repository.seed([claim])

        await translator.process_277_response(
            ClaimStatusResponse(
                claims=[
                    ClaimStatusItem(
                        status_code=3,
                        claim_number="CLM-104",
                        status_description="Accepted by payer front end",
                    )
                ]
            )
        )

        stored = await repository.find_by_id(claim.id)
        assert stored.status_history[-1].status_code_description == "Accepted by payer front end"

    @pytest.mark.asyncio
    async def test_lookup_by_clearinghouse_id(self, translator, repository):
        claim = make_claim(status=ClaimStatus.SUBMITTED, clearinghouse_claim_id="CH-555")
        repository.seed([claim])

        result = await translator.process_277_response(
            ClaimStatusResponse(claims=[ClaimStatusItem(status_code=2, claim_id="CH-555")])
        )

        assert result.results[0].success is True
        assert result.results[0].claim_number == claim.claim_number
        stored = await repository.find_by_id(claim.id)
        assert stored.status == ClaimStatus.ACKNOWLEDGED

    @pytest.mark.asyncio
    async def test_failures_are_isolated_per_item(self, translator, repository):
        """Test unmatched and illegal items fail without stopping the batch."""
        draft = make_claim(status=ClaimStatus.DRAFT, claim_number="CLM-200")
        submitted = make_claim(status=ClaimStatus.SUBMITTED, claim_number="CLM-201")
        repository.seed([draft, submitted])

        result = await translator.process_277_response(
            ClaimStatusResponse(
                claims=[
                    ClaimStatusItem(status_code=2, claim_number="CLM-UNKNOWN"),
                    ClaimStatusItem(status_code=18, claim_number="CLM-200"),
                    ClaimStatusItem(status_code=2, claim_number="CLM-201"),
                ]
            )
        )

        assert result.total == 3
        assert result.successful == 1
        assert result.failed == 2
        unknown, illegal, applied = result.results
        assert unknown.error_kind == ErrorKind.NOT_FOUND
        assert unknown.claim_number == "CLM-UNKNOWN"
        assert illegal.error_kind == ErrorKind.INVALID_TRANSITION
        assert applied.success is True

        stored_draft = await repository.find_by_id(draft.id)
        assert stored_draft.status == ClaimStatus.DRAFT
        assert stored_draft.status_history == []

    @pytest.mark.asyncio
    async def test_concurrent_processing_keeps_input_order(
        self, repository, clock, audit_sink
    ):
        engine = ClaimStatusEngine(repository, clock=clock, audit_sink=audit_sink)
        translator = StatusCodeTranslator(engine, repository, concurrency=4)
        claims = [
            make_claim(status=ClaimStatus.SUBMITTED, claim_number=f"CLM-3{i:02d}")
            for i in range(6)
        ]
        repository.seed(claims)

        result = await translator.process_277_response(
            ClaimStatusResponse(
                claims=[ClaimStatusItem(status_code=2, claim_number=c.claim_number) for c in claims]
            )
        )

        assert result.successful == 6
        assert [r.claim_number for r in result.results] == [c.claim_number for c in claims]

    @pytest.mark.asyncio
    async def test_empty_batch(self, translator):
        result = await translator.process_277_response(ClaimStatusResponse())

        assert result.total == 0
        assert result.results == []

    @pytest.mark.asyncio
    async def test_malformed_item_does_not_stop_batch(self, translator, repository):
        """Test an item with unusable payment data fails alone."""
        bad = make_claim(status=ClaimStatus.PENDING, claim_number="BAD-1")
        good = make_claim(status=ClaimStatus.SUBMITTED, claim_number="GOOD-1")
        repository.seed([bad, good])

        result = await translator.process_277_response(
            ClaimStatusResponse(
                claims=[
                    ClaimStatusItem(status_code=18, claim_number="BAD-1", payment_amount="N/A"),
                    ClaimStatusItem(status_code=2, claim_number="GOOD-1"),
                ]
            )
        )

        assert result.total == 2
        assert result.successful == 1
        malformed, applied = result.results
        assert malformed.success is False
        assert malformed.error_kind == ErrorKind.VALIDATION
        assert "payment_amount" in malformed.error
        assert applied.success is True
        assert (await repository.find_by_id(bad.id)).status == ClaimStatus.PENDING
        assert (await repository.find_by_id(good.id)).status == ClaimStatus.ACKNOWLEDGED

    @pytest.mark.asyncio
    async def test_store_error_does_not_stop_batch(self, clock, audit_sink):
        """Test a store failure on one item is recorded and the rest applied."""

        class UnreachableClaimRepository(InMemoryClaimRepository):
            async def find_by_claim_number(self, claim_number):
                if claim_number == "CLM-DOWN":
                    raise RuntimeError("database unavailable")
                return await super().find_by_claim_number(claim_number)

        repository = UnreachableClaimRepository()
        engine = ClaimStatusEngine(repository, clock=clock, audit_sink=audit_sink)
        translator = StatusCodeTranslator(engine, repository)
        claim = make_claim(status=ClaimStatus.SUBMITTED, claim_number="CLM-UP")
        repository.seed([claim])

        result = await translator.process_277_response(
            ClaimStatusResponse(
                claims=[
                    ClaimStatusItem(status_code=2, claim_number="CLM-DOWN"),
                    ClaimStatusItem(status_code=2, claim_number="CLM-UP"),
                ]
            )
        )

        failed, applied = result.results
        assert failed.error_kind == ErrorKind.UNEXPECTED
        assert "database unavailable" in failed.error
        assert applied.success is True
        assert result.failed == 1

    @pytest.mark.asyncio
    async def test_denial_and_payment_codes_end_to_end(self, translator, repository):
        """Test codes 6, 18 and 19 land as denied, paid and partially paid."""
        denied = make_claim(status=ClaimStatus.PENDING, claim_number="CLM-406")
        paid = make_claim(status=ClaimStatus.PENDING, claim_number="CLM-418")
        partial = make_claim(status=ClaimStatus.PENDING, claim_number="CLM-419")
        repository.seed([denied, paid, partial])

        result = await translator.process_277_response(
            ClaimStatusResponse(
                claims=[
                    ClaimStatusItem(status_code=6, claim_number="CLM-406"),
                    ClaimStatusItem(
                        status_code=18,
                        claim_number="CLM-418",
                        payment_amount=Decimal("1000.00"),
                        check_number="CHK-18",
                    ),
                    ClaimStatusItem(
                        status_code=19,
                        claim_number="CLM-419",
                        payment_amount=Decimal("400.00"),
                    ),
                ]
            )
        )

        assert result.successful == 3
        assert [r.new_status for r in result.results] == [
            ClaimStatus.DENIED,
            ClaimStatus.PAID,
            ClaimStatus.PARTIALLY_PAID,
        ]

        stored_denied = await repository.find_by_id(denied.id)
        assert stored_denied.status_history[-1].denial_reason == "Finalized/Denial"
        assert stored_denied.status_history[-1].source == StatusChangeSource.EDI_277

        stored_paid = await repository.find_by_id(paid.id)
        assert stored_paid.amount_paid == Decimal("1000.00")
        assert stored_paid.payment.check_number == "CHK-18"

        stored_partial = await repository.find_by_id(partial.id)
        assert stored_partial.status == ClaimStatus.PARTIALLY_PAID
        assert stored_partial.amount_paid == Decimal("400.00")
