"""
Claim Lifecycle Service Tests.

End-to-end flows through the facade on the in-memory store.
"""

from datetime import date
from decimal import Decimal

import pytest

from src.core.enums import AuditAction, ClaimStatus, COBRule, RelationshipToInsured
from src.services import ClaimLifecycleService, create_claim_lifecycle_service
from src.services.adapters import AdapterMode, InMemoryClaimRepository, create_claim_repository
from src.services.claim_state_machine import StatusUpdateData
from src.services.edi.x12_277_translator import ClaimStatusItem, ClaimStatusResponse
from src.services.secondary_claims import COBPatientInfo, PrimaryPaymentData
from tests.fixtures import make_claim, make_insurance


class TestFactory:
    """Tests for create_claim_lifecycle_service."""

    def test_components_share_one_store(self, service, repository):
        assert isinstance(service, ClaimLifecycleService)
        assert service.repository is repository
        assert service.engine._repository is repository
        assert service.secondary_generator._engine is service.engine
        assert service.translator._engine is service.engine

    def test_defaults(self, repository):
        service = create_claim_lifecycle_service(repository)

        assert service.scheduler.is_running is False

    def test_demo_repository(self):
        assert isinstance(create_claim_repository(AdapterMode.DEMO), InMemoryClaimRepository)


class TestClaimLifecycleFlow:
    """Tests for a claim travelling from draft to secondary filing."""

    @pytest.mark.asyncio
    async def test_full_primary_to_secondary_flow(self, service, repository, audit_sink, clock):
        claim = make_claim(claim_number="CLM-900", has_secondary=True)
        repository.seed([claim])

        await service.update_claim_status(claim.id, ClaimStatus.SUBMITTED, actor_id="biller-1")
        clock.advance(days=2)
        batch = await service.process_277_response(
            ClaimStatusResponse(claims=[ClaimStatusItem(status_code=2, claim_number="CLM-900")])
        )
        assert batch.successful == 1

        clock.advance(days=20)
        await service.process_277_response(
            ClaimStatusResponse(
                claims=[
                    ClaimStatusItem(
                        status_code=18,
                        claim_number="CLM-900",
                        payment_amount=Decimal("700.00"),
                    )
                ]
            )
        )

        readiness = await service.validate_secondary_readiness(claim.id)
        assert not readiness.ready
        assert [c.name.value for c in readiness.failed_checks] == ["eob_received"]

        await service.record_primary_payment(
            claim.id, PrimaryPaymentData(amount=Decimal("700.00")), user_id="biller-1"
        )
        assert [c.id for c in await service.get_ready_for_secondary()] == [claim.id]

        result = await service.generate_secondary_claim(
            claim.id, PrimaryPaymentData(amount=Decimal("700.00")), user_id="biller-1"
        )
        assert result.secondary_claim.claim_number == "CLM-900-S"
        assert result.amounts.secondary_charges == Decimal("300.00")

        history = await service.get_status_history(claim.id)
        assert [e.status for e in history.history] == [
            ClaimStatus.SUBMITTED,
            ClaimStatus.ACKNOWLEDGED,
            ClaimStatus.PAID,
        ]
        timeline = await service.get_status_timeline(claim.id)
        assert timeline.total_duration_days == 22

        stats = await service.get_secondary_claim_stats()
        assert stats.secondary_filed == 1
        assert len(audit_sink.by_action(AuditAction.STATUS_CHANGED)) == 3

    @pytest.mark.asyncio
    async def test_denial_and_appeal(self, service, repository):
        claim = make_claim(status=ClaimStatus.UNDER_REVIEW)
        repository.seed([claim])

        await service.update_claim_status(
            claim.id,
            ClaimStatus.DENIED,
            StatusUpdateData(denial_reason="Not medically necessary", denial_code="CO-50"),
        )
        result = await service.update_claim_status(
            claim.id, ClaimStatus.APPEALED, StatusUpdateData(reason="Records attached")
        )

        assert result.claim.status == ClaimStatus.APPEALED
        denied = await service.get_claims_by_status(ClaimStatus.DENIED)
        assert denied == []
        stats = await service.get_status_statistics()
        assert stats.by_status["appealed"].count == 1

    @pytest.mark.asyncio
    async def test_reporting_delegates(self, service, repository):
        repository.seed([make_claim(status=ClaimStatus.PENDING)])

        assert (await service.get_aging_report()).by_status[ClaimStatus.PENDING].count == 1
        assert await service.check_stale_claims() == []
        assert (await service.check_timely_filing_deadlines()).checked == 0
        assert (await service.auto_generate_status_inquiries()).count == 0
        assert (await service.generate_276_inquiry([])).inquiry_count == 0

    def test_determine_cob_order(self, service):
        own = make_insurance("OWN", relationship=RelationshipToInsured.SELF)
        parent = make_insurance("PARENT", insured_dob=date(1970, 1, 1))

        result = service.determine_cob_order(COBPatientInfo(), parent, own)

        assert result.rule == COBRule.SUBSCRIBER
        assert result.primary.payer_id == "OWN"
